"""
引擎配置

各组件的配置数据类，由 EngineConfig 聚合。
文件和环境变量的加载见 utils.config_loader.load_engine_config。
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PredictionConfig:
    """过境预报配置"""

    # 扫描
    step_seconds: float = 20.0  # 固定扫描步长
    refine_tolerance_seconds: float = 1.0  # 开始/结束时间细化精度
    min_elevation: float = 0.0  # 最小仰角（度）

    # 光照
    eclipse_scan_step_seconds: float = 30.0  # 过境内地影切换扫描步长
    twilight_elevation: float = -6.0  # 地面点黑暗阈值（民用晨昏线）

    # 其他
    epoch_margin_minutes: float = 90.0  # 根数历元提前量
    max_passes: int = 50  # 单次预报最多过境数

    def __post_init__(self):
        if self.step_seconds <= 0:
            raise ValueError(f"step_seconds must be positive, got {self.step_seconds}")
        if self.refine_tolerance_seconds <= 0:
            raise ValueError("refine_tolerance_seconds must be positive")
        if not (0.0 <= self.min_elevation < 90.0):
            raise ValueError(f"min_elevation must be in [0, 90), got {self.min_elevation}")
        if self.eclipse_scan_step_seconds <= 0:
            raise ValueError("eclipse_scan_step_seconds must be positive")
        if self.max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {self.max_passes}")


@dataclass(frozen=True)
class SamplingConfig:
    """位置采样配置"""
    samples_per_orbit: int = 120
    interpolation_degree: int = 5

    def __post_init__(self):
        if self.samples_per_orbit < 2:
            raise ValueError(f"samples_per_orbit must be >= 2, got {self.samples_per_orbit}")
        if not (1 <= self.interpolation_degree < self.samples_per_orbit):
            raise ValueError(f"Invalid interpolation_degree: {self.interpolation_degree}")


@dataclass(frozen=True)
class PassCacheConfig:
    """过境缓存配置"""
    past_days: float = 1.0  # 预报窗口起点（当前时间之前）
    future_days: float = 4.0  # 预报窗口终点（当前时间之后）
    validity_days: float = 1.0  # 锚点前后多长时间内缓存有效
    horizon_hours: float = 48.0  # 读取时的默认时间范围
    ttl_seconds: Optional[float] = None  # 距锚点的模拟时间超过该值即过期，None表示不过期

    def __post_init__(self):
        if self.past_days < 0 or self.future_days <= 0:
            raise ValueError("Prediction window must extend into the future")
        if self.validity_days <= 0:
            raise ValueError(f"validity_days must be positive, got {self.validity_days}")
        if self.validity_days > self.future_days:
            raise ValueError("validity_days cannot exceed future_days")
        if self.horizon_hours <= 0:
            raise ValueError(f"horizon_hours must be positive, got {self.horizon_hours}")
        if self.ttl_seconds is not None and self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {self.ttl_seconds}")


@dataclass(frozen=True)
class BatchConfig:
    """批处理配置"""
    batch_size: int = 20
    max_workers: Optional[int] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")


@dataclass(frozen=True)
class LoggingConfig:
    """日志配置"""
    level: str = "INFO"
    format_type: str = "text"  # "text" 或 "json"
    log_file: Optional[str] = None
    console: bool = True

    def __post_init__(self):
        if self.format_type not in ("text", "json"):
            raise ValueError(f"format_type must be 'text' or 'json', got {self.format_type}")


_SECTIONS = {
    'prediction': PredictionConfig,
    'sampling': SamplingConfig,
    'pass_cache': PassCacheConfig,
    'batch': BatchConfig,
    'logging': LoggingConfig,
}


@dataclass(frozen=True)
class EngineConfig:
    """引擎配置"""
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    pass_cache: PassCacheConfig = field(default_factory=PassCacheConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EngineConfig':
        """
        从字典创建配置

        未知的节或字段会被拒绝，缺失的字段使用默认值。

        Args:
            data: {节名: {字段: 值}}

        Returns:
            EngineConfig

        Raises:
            ValueError: 未知节/字段或字段值非法
        """
        data = data or {}
        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        kwargs = {}
        for name, section_cls in _SECTIONS.items():
            values = data.get(name) or {}
            if not isinstance(values, dict):
                raise ValueError(f"Config section '{name}' must be a mapping")
            allowed = {f.name for f in fields(section_cls)}
            bad = set(values) - allowed
            if bad:
                raise ValueError(f"Unknown fields in '{name}': {sorted(bad)}")
            try:
                kwargs[name] = section_cls(**values)
            except TypeError as e:
                raise ValueError(f"Invalid '{name}' config: {e}") from e
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
