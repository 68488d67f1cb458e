"""
日志管理模块

引擎各模块使用 logging.getLogger(__name__) 记录日志，
本模块负责给引擎的顶层logger（core）挂载处理器：
- 控制台 / 文件（可按日期或小时轮转）
- 文本或JSON格式
- 结构化消息（字典）
"""

import json
import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict, Any, Optional, Union

ENGINE_LOGGER_NAME = "core"


class LoggerConfigError(Exception):
    """日志配置错误"""
    pass


class JsonFormatter(logging.Formatter):
    """JSON格式日志格式化器"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage()
        }

        # 结构化消息的附加字段
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """文本格式日志格式化器"""

    def __init__(self, fmt: Optional[str] = None):
        super().__init__(
            fmt=fmt or "%(asctime)s - %(name)s [%(threadName)s] - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def _make_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JsonFormatter()
    if format_type == "text":
        return TextFormatter()
    raise LoggerConfigError(f"Invalid log format: {format_type}")


class Logger:
    """
    日志管理器

    包装一个标准库logger，负责处理器和级别配置
    """

    LEVEL_MAP = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL
    }

    def __init__(self, name: str = ENGINE_LOGGER_NAME, level: str = "INFO"):
        """
        Args:
            name: Logger名称
            level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)

        Raises:
            LoggerConfigError: 无效的日志级别
        """
        self.name = name
        self.level = self._check_level(level)
        self._logger = logging.getLogger(name)
        self._logger.setLevel(self.LEVEL_MAP[self.level])

        # 重新配置时清除旧处理器（避免重复输出）
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()
        self._logger.propagate = False

    def _check_level(self, level: str) -> str:
        level = str(level).upper()
        if level not in self.LEVEL_MAP:
            raise LoggerConfigError(f"Invalid log level: {level}. Valid: {list(self.LEVEL_MAP)}")
        return level

    @property
    def handlers(self):
        return list(self._logger.handlers)

    def _add(self, handler: logging.Handler, format_type: str) -> "Logger":
        handler.setLevel(self.LEVEL_MAP[self.level])
        handler.setFormatter(_make_formatter(format_type))
        self._logger.addHandler(handler)
        return self

    def add_console_handler(self, format_type: str = "text") -> "Logger":
        """添加控制台处理器（stdout），支持链式调用"""
        return self._add(logging.StreamHandler(sys.stdout), format_type)

    def add_file_handler(self, path: str, rotation: str = "none",
                         format_type: str = "text", backup_count: int = 7) -> "Logger":
        """
        添加文件处理器

        Args:
            path: 日志文件路径
            rotation: 轮转策略 ("none", "daily", "hourly")
            format_type: 格式类型 ("text", "json")
            backup_count: 保留的备份文件数量

        Returns:
            Logger: 自身，支持链式调用
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        if rotation == "daily":
            handler = TimedRotatingFileHandler(path, when="midnight", interval=1,
                                               backupCount=backup_count, encoding="utf-8")
        elif rotation == "hourly":
            handler = TimedRotatingFileHandler(path, when="H", interval=1,
                                               backupCount=backup_count, encoding="utf-8")
        elif rotation == "none":
            handler = logging.FileHandler(path, encoding="utf-8")
        else:
            raise LoggerConfigError(f"Invalid rotation: {rotation}")

        return self._add(handler, format_type)

    def log(self, level: str, message: Union[str, Dict[str, Any]]) -> None:
        """
        记录日志

        Args:
            level: 日志级别
            message: 字符串或字典（字典的"message"键作为正文，其余字段进入JSON输出）
        """
        levelno = self.LEVEL_MAP[self._check_level(level)]
        if isinstance(message, dict):
            self._logger.log(levelno, message.get("message", ""), extra={"extra_data": message})
        else:
            self._logger.log(levelno, message)

    def debug(self, message: Union[str, Dict[str, Any]]) -> None:
        self.log("DEBUG", message)

    def info(self, message: Union[str, Dict[str, Any]]) -> None:
        self.log("INFO", message)

    def warning(self, message: Union[str, Dict[str, Any]]) -> None:
        self.log("WARNING", message)

    def error(self, message: Union[str, Dict[str, Any]]) -> None:
        self.log("ERROR", message)

    def set_level(self, level: str) -> None:
        """设置日志级别（同时更新所有处理器）"""
        self.level = self._check_level(level)
        self._logger.setLevel(self.LEVEL_MAP[self.level])
        for handler in self._logger.handlers:
            handler.setLevel(self.LEVEL_MAP[self.level])


def configure_engine_logging(config, name: str = ENGINE_LOGGER_NAME) -> Logger:
    """
    按 LoggingConfig 配置引擎日志

    Args:
        config: core.config.LoggingConfig
        name: 顶层logger名称

    Returns:
        Logger

    Raises:
        LoggerConfigError: 级别或格式非法
    """
    logger = Logger(name, config.level)
    if config.console:
        logger.add_console_handler(config.format_type)
    if config.log_file:
        logger.add_file_handler(config.log_file, rotation="daily", format_type=config.format_type)
    return logger
