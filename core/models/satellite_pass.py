"""
过境数据模型

一次过境是目标在地面点可观测的连续时间段，按仰角或幅宽模型判定，
附带地面点与目标的光照状态。
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Tuple


class PassMode(Enum):
    """可见性判定模型"""
    ELEVATION = "elevation"
    SWATH = "swath"


@dataclass(frozen=True)
class EclipseTransition:
    """
    过境期间的地影切换事件

    Attributes:
        time: 切换时刻
        enters_shadow: True表示进入地影，False表示离开地影
    """
    time: datetime
    enters_shadow: bool


@dataclass(frozen=True)
class SatellitePass:
    """
    过境窗口

    Attributes:
        name: 目标名称
        satnum: 编目号
        ground_point_name: 地面点名称
        start_time: 开始时间
        end_time: 结束时间
        mode: 判定模型
        max_elevation: 最大仰角（度，仰角模型）
        azimuth_apex: 最大仰角时的方位角（度，仰角模型）
        azimuth_start: 开始方位角（度，仰角模型）
        azimuth_end: 结束方位角（度，仰角模型）
        min_distance: 星下点到地面点最小距离（千米，幅宽模型）
        swath_width: 幅宽（千米，幅宽模型）
        apex_time: 最大仰角/最近距离时刻
        ground_point_dark_at_start: 开始时地面点是否处于黑暗
        ground_point_dark_at_end: 结束时地面点是否处于黑暗
        eclipsed_at_start: 开始时目标是否在地影中
        eclipsed_at_end: 结束时目标是否在地影中
        eclipse_transitions: 过境期间（不含端点）的地影切换
        epoch_in_future: 轨道根数历元晚于该过境（根数尚未生效）
        epoch_time: 轨道根数历元
    """
    name: str
    satnum: int
    ground_point_name: str
    start_time: datetime
    end_time: datetime
    mode: PassMode = PassMode.ELEVATION
    max_elevation: Optional[float] = None
    azimuth_apex: Optional[float] = None
    azimuth_start: Optional[float] = None
    azimuth_end: Optional[float] = None
    min_distance: Optional[float] = None
    swath_width: Optional[float] = None
    apex_time: Optional[datetime] = None
    ground_point_dark_at_start: Optional[bool] = None
    ground_point_dark_at_end: Optional[bool] = None
    eclipsed_at_start: Optional[bool] = None
    eclipsed_at_end: Optional[bool] = None
    eclipse_transitions: Tuple[EclipseTransition, ...] = field(default_factory=tuple)
    epoch_in_future: bool = False
    epoch_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.start_time < self.end_time:
            raise ValueError(
                f"Pass start must precede end: {self.start_time} >= {self.end_time}"
            )

        elevation_fields = (self.max_elevation, self.azimuth_apex)
        swath_fields = (self.min_distance, self.swath_width)
        if self.mode == PassMode.ELEVATION:
            if any(v is not None for v in swath_fields):
                raise ValueError("Elevation pass cannot carry swath fields")
        elif any(v is not None for v in elevation_fields):
            raise ValueError("Swath pass cannot carry elevation fields")

        # 光照字段成对出现
        if (self.ground_point_dark_at_start is None) != (self.ground_point_dark_at_end is None):
            raise ValueError("Ground point illumination must be given at both start and end")
        if (self.eclipsed_at_start is None) != (self.eclipsed_at_end is None):
            raise ValueError("Object illumination must be given at both start and end")

        if self.epoch_in_future and self.epoch_time is None:
            raise ValueError("epoch_time is required when epoch_in_future is set")

        object.__setattr__(self, "eclipse_transitions", tuple(self.eclipse_transitions))

    def duration(self) -> float:
        """过境持续时间（秒）"""
        return (self.end_time - self.start_time).total_seconds()

    def overlaps(self, other: 'SatellitePass') -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time

    def __lt__(self, other):
        """用于排序"""
        return self.start_time < other.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'satnum': self.satnum,
            'ground_point_name': self.ground_point_name,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'duration': self.duration(),
            'mode': self.mode.value,
            'max_elevation': self.max_elevation,
            'azimuth_apex': self.azimuth_apex,
            'min_distance': self.min_distance,
            'swath_width': self.swath_width,
            'ground_point_dark_at_start': self.ground_point_dark_at_start,
            'ground_point_dark_at_end': self.ground_point_dark_at_end,
            'eclipsed_at_start': self.eclipsed_at_start,
            'eclipsed_at_end': self.eclipsed_at_end,
            'eclipse_transitions': [
                {'time': t.time.isoformat(), 'enters_shadow': t.enters_shadow}
                for t in self.eclipse_transitions
            ],
            'epoch_in_future': self.epoch_in_future,
            'epoch_time': self.epoch_time.isoformat() if self.epoch_time else None,
        }
