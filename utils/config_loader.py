"""
配置加载器

功能：
- 加载JSON / YAML / INI配置文件
- 环境变量覆盖（前缀 + 双下划线分隔节名和字段名）
- 简单schema验证
- 合并为 core.config.EngineConfig
"""

import json
import os
import typing
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import fields
from pathlib import Path
from typing import Dict, Any, List, Tuple, Optional

import yaml

from core.config import EngineConfig

DEFAULT_ENV_PREFIX = "ORBIT_ENGINE_"


class ConfigLoadError(Exception):
    """配置加载错误"""
    pass


class ConfigValidationError(Exception):
    """配置验证错误"""
    pass


# 引擎配置的结构约束：每个节都必须是对象
ENGINE_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        name: {"type": "object"}
        for name in ("prediction", "sampling", "pass_cache", "batch", "logging")
    },
}


class ConfigLoader:
    """
    配置加载器

    支持多种格式的配置文件加载和验证
    """

    FORMAT_MAP = {
        ".json": "json",
        ".yaml": "yaml",
        ".yml": "yaml",
        ".ini": "ini",
        ".conf": "ini",
        ".cfg": "ini"
    }

    def __init__(self):
        self._loaded_config: Optional[Dict[str, Any]] = None
        self._file_path: Optional[str] = None

    def load(self, path: str, format: str = "auto") -> Dict[str, Any]:
        """
        加载配置文件

        Args:
            path: 配置文件路径
            format: 文件格式 ("auto", "json", "yaml", "ini")

        Returns:
            Dict[str, Any]: 配置字典，空文件返回空字典

        Raises:
            ConfigLoadError: 文件不存在、格式不支持或解析失败
        """
        if not os.path.exists(path):
            raise ConfigLoadError(f"Config file not found: {path}")

        if format == "auto":
            format = self._detect_format(path)

        loaders = {"json": self._load_json, "yaml": self._load_yaml, "ini": self._load_ini}
        if format not in loaders:
            raise ConfigLoadError(f"Unsupported config format: {format}")

        config = loaders[format](path) or {}
        if not isinstance(config, dict):
            raise ConfigLoadError(f"Config root must be a mapping: {path}")

        self._loaded_config = config
        self._file_path = path
        return config

    def _detect_format(self, path: str) -> str:
        ext = Path(path).suffix.lower()
        if ext in self.FORMAT_MAP:
            return self.FORMAT_MAP[ext]
        raise ConfigLoadError(f"Cannot detect config format from extension: {ext}")

    def _load_json(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
            return json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            raise ConfigLoadError(f"JSON parse error: {e}") from e

    def _load_yaml(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"YAML parse error: {e}") from e

    def _load_ini(self, path: str) -> Dict[str, Any]:
        try:
            parser = ConfigParser()
            parser.read(path, encoding='utf-8')
            return {section: dict(parser.items(section)) for section in parser.sections()}
        except ConfigParserError as e:
            raise ConfigLoadError(f"INI parse error: {e}") from e

    def load_from_env(self, prefix: str = DEFAULT_ENV_PREFIX) -> Dict[str, Any]:
        """
        从环境变量加载配置

        ORBIT_ENGINE_PREDICTION__STEP_SECONDS=30 -> {"prediction": {"step_seconds": "30"}}
        不含双下划线的变量放在顶层。

        Args:
            prefix: 环境变量前缀（不区分大小写）

        Returns:
            Dict[str, Any]: 配置字典（值为字符串）
        """
        result: Dict[str, Any] = {}
        prefix_lower = prefix.lower()

        for key, value in os.environ.items():
            key_lower = key.lower()
            if not key_lower.startswith(prefix_lower):
                continue
            config_key = key_lower[len(prefix_lower):]
            if "__" in config_key:
                section, name = config_key.split("__", 1)
                result.setdefault(section, {})[name] = value
            else:
                result[config_key] = value

        return result

    def validate(self, config: Dict[str, Any], schema: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        验证配置

        支持 type / required / properties / items 四种约束。

        Args:
            config: 配置字典
            schema: 验证schema

        Returns:
            Tuple[bool, List[str]]: (是否有效, 错误列表)
        """
        errors = self._validate_node(config, schema or {}, "root")
        if isinstance(config, dict):
            for name in (schema or {}).get("required", []):
                if name not in config:
                    errors.append(f"Missing required field: {name}")
        return not errors, errors

    _TYPE_MAP = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
        "null": type(None)
    }

    def _validate_node(self, value: Any, schema: Dict[str, Any], path: str) -> List[str]:
        errors = []
        expected = self._TYPE_MAP.get(schema.get("type"))
        if expected is not None and not isinstance(value, expected):
            errors.append(
                f"Field '{path}' has wrong type: expected {schema['type']}, "
                f"got {type(value).__name__}"
            )
            return errors

        if isinstance(value, dict):
            for prop, prop_schema in schema.get("properties", {}).items():
                if prop in value:
                    errors.extend(self._validate_node(value[prop], prop_schema, f"{path}.{prop}"))

        if isinstance(value, list) and "items" in schema:
            for i, item in enumerate(value):
                errors.extend(self._validate_node(item, schema["items"], f"{path}[{i}]"))

        return errors

    def get_loaded_config(self) -> Optional[Dict[str, Any]]:
        """获取最后加载的配置"""
        return self._loaded_config

    def get_file_path(self) -> Optional[str]:
        """获取最后加载的文件路径"""
        return self._file_path


def _coerce(value: Any, annotation: Any) -> Any:
    """把字符串值（INI/环境变量）转换为字段类型"""
    if not isinstance(value, str):
        return value
    args = typing.get_args(annotation)
    if type(None) in args:
        if value.strip().lower() in ("", "none", "null"):
            return None
        annotation = next(a for a in args if a is not type(None))
    if annotation is bool:
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ConfigValidationError(f"Invalid boolean value: {value!r}")
    if annotation in (int, float):
        try:
            return annotation(value)
        except ValueError as e:
            raise ConfigValidationError(f"Invalid numeric value: {value!r}") from e
    return value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in base.items()}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_engine_config(path: Optional[str] = None,
                       env_prefix: Optional[str] = DEFAULT_ENV_PREFIX) -> EngineConfig:
    """
    加载引擎配置

    优先级：环境变量 > 配置文件 > 默认值

    Args:
        path: 配置文件路径（可选）
        env_prefix: 环境变量前缀，None表示不读取环境变量

    Returns:
        EngineConfig

    Raises:
        ConfigLoadError: 文件加载失败
        ConfigValidationError: 结构或字段值非法
    """
    loader = ConfigLoader()
    data: Dict[str, Any] = {}
    if path is not None:
        data = loader.load(path)
    if env_prefix:
        data = _merge(data, loader.load_from_env(env_prefix))

    valid, errors = loader.validate(data, ENGINE_CONFIG_SCHEMA)
    if not valid:
        raise ConfigValidationError("; ".join(errors))

    sections = {f.name: f.type for f in fields(EngineConfig)}
    typed: Dict[str, Any] = {}
    for section, values in data.items():
        if section not in sections:
            raise ConfigValidationError(f"Unknown config section: {section}")
        hints = {f.name: f.type for f in fields(sections[section])}
        typed[section] = {
            name: _coerce(value, hints[name]) if name in hints else value
            for name, value in values.items()
        }

    try:
        return EngineConfig.from_dict(typed)
    except ValueError as e:
        raise ConfigValidationError(str(e)) from e
