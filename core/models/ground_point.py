"""
地面观测点模型

定义过境预报使用的地面观测点（经纬度、高度、名称）
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
import math
import numbers

import numpy as np

from core.orbit.utils import geodetic_to_ecef


class InvalidGroundPointError(ValueError):
    """地面点参数非法"""
    pass


@dataclass(frozen=True)
class GroundPoint:
    """
    地面观测点

    Attributes:
        latitude: 纬度（度）
        longitude: 经度（度）
        height: 海拔高度（米），低于MIN_HEIGHT时抬升到MIN_HEIGHT
        name: 显示名称（可选）
    """
    latitude: float
    longitude: float
    height: float = 0.0
    name: Optional[str] = None

    MIN_HEIGHT = 2.0  # 米

    def __post_init__(self):
        """初始化后验证"""
        for field_name in ("latitude", "longitude", "height"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise InvalidGroundPointError(f"{field_name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InvalidGroundPointError(f"{field_name} must be finite, got {value}")
        if not (-90 <= self.latitude <= 90):
            raise InvalidGroundPointError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not (-180 <= self.longitude <= 180):
            raise InvalidGroundPointError(f"Longitude must be in [-180, 180], got {self.longitude}")
        if self.height < self.MIN_HEIGHT:
            object.__setattr__(self, "height", self.MIN_HEIGHT)

    @property
    def display_name(self) -> str:
        """显示名称，未命名时使用坐标"""
        if self.name:
            return self.name
        return f"Groundstation [{self.latitude:.2f}°, {self.longitude:.2f}°]"

    @property
    def has_name(self) -> bool:
        return bool(self.name)

    def get_ecef_position(self) -> np.ndarray:
        """
        获取地固系位置（WGS84）

        Returns:
            np.ndarray: (x, y, z) 千米
        """
        return geodetic_to_ecef(self.latitude, self.longitude, self.height / 1000.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'height': self.height,
            'name': self.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroundPoint':
        try:
            return cls(
                latitude=data['latitude'],
                longitude=data['longitude'],
                height=data.get('height', 0.0),
                name=data.get('name'),
            )
        except KeyError as e:
            raise InvalidGroundPointError(f"Missing ground point field: {e}") from e
