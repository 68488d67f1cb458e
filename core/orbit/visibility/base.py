"""
可见性几何基类

提供地面点-目标可见性判定的抽象接口及仰角、幅宽两种模型。
模型把地固系位置映射为"可见裕量"：裕量 >= 0 表示可见，
裕量越大越接近过境顶点，扫描和细化逻辑因此对两种模型通用。
"""

from abc import ABC, abstractmethod
from typing import List, Tuple
import math

import numpy as np

from core.models.ground_point import GroundPoint
from core.models.satellite_pass import PassMode
from ..utils import EARTH_RADIUS_KM, ecef_to_geodetic, great_circle_distance, look_angles


def visible_area_width(altitude_km: float, min_elevation: float = 0.0) -> float:
    """
    可见区域直径（球形地球）

    地心角 λ = acos(R·cos(e) / (R + h)) - e，宽度为 2·R·λ。

    Args:
        altitude_km: 目标高度（千米）
        min_elevation: 最小仰角（度）

    Returns:
        float: 可见区域直径（千米）
    """
    if altitude_km <= 0:
        return 0.0
    e = math.radians(min_elevation)
    ratio = EARTH_RADIUS_KM * math.cos(e) / (EARTH_RADIUS_KM + altitude_km)
    central_angle = math.acos(max(-1.0, min(1.0, ratio))) - e
    return 2.0 * EARTH_RADIUS_KM * max(0.0, central_angle)


def find_visible_runs(visible: np.ndarray) -> List[Tuple[int, int]]:
    """
    从可见性序列中提取连续可见段

    Args:
        visible: bool数组

    Returns:
        List[(first, last)]: 每段第一个和最后一个可见采样的索引
    """
    visible = np.asarray(visible, dtype=bool)
    if visible.size == 0:
        return []
    padded = np.concatenate(([False], visible, [False]))
    edges = np.diff(padded.astype(np.int8))
    starts = np.nonzero(edges == 1)[0]
    ends = np.nonzero(edges == -1)[0] - 1
    return list(zip(starts.tolist(), ends.tolist()))


class VisibilityGeometry(ABC):
    """
    可见性几何基类

    抽象基类，定义可见裕量的接口
    """

    mode: PassMode

    def __init__(self, ground_point: GroundPoint):
        """
        初始化

        Args:
            ground_point: 地面点
        """
        self.ground_point = ground_point
        self.observer_ecef = ground_point.get_ecef_position()

    @abstractmethod
    def margin(self, fixed_positions: np.ndarray) -> np.ndarray:
        """
        计算可见裕量

        Args:
            fixed_positions: 目标地固系位置 (N, 3) 或 (3,)，千米

        Returns:
            np.ndarray: (N,) 裕量，>= 0 表示可见
        """
        pass

    def look_angles(self, fixed_positions: np.ndarray):
        """观测点到目标的 (方位角, 仰角, 斜距)"""
        return look_angles(self.observer_ecef, self.ground_point.latitude,
                           self.ground_point.longitude, fixed_positions)


class ElevationGeometry(VisibilityGeometry):
    """仰角模型：目标仰角高于最小仰角时可见"""

    mode = PassMode.ELEVATION

    def __init__(self, ground_point: GroundPoint, min_elevation: float = 0.0):
        super().__init__(ground_point)
        self.min_elevation = min_elevation

    def margin(self, fixed_positions: np.ndarray) -> np.ndarray:
        _, elevation, _ = self.look_angles(fixed_positions)
        return elevation - self.min_elevation

    def footprint_width(self, altitude_km: float) -> float:
        """该仰角门限下的可见区域直径（千米）"""
        return visible_area_width(altitude_km, self.min_elevation)


class SwathGeometry(VisibilityGeometry):
    """幅宽模型：星下点到地面点的大圆距离小于半幅宽时可见"""

    mode = PassMode.SWATH

    def __init__(self, ground_point: GroundPoint, swath_width: float):
        """
        Args:
            ground_point: 地面点
            swath_width: 幅宽（千米）
        """
        if swath_width <= 0:
            raise ValueError(f"swath_width must be positive, got {swath_width}")
        super().__init__(ground_point)
        self.swath_width = swath_width

    def ground_distance(self, fixed_positions: np.ndarray) -> np.ndarray:
        """星下点到地面点的大圆距离（千米）"""
        latitude, longitude, _ = ecef_to_geodetic(fixed_positions)
        return great_circle_distance(self.ground_point.latitude, self.ground_point.longitude,
                                     latitude, longitude)

    def margin(self, fixed_positions: np.ndarray) -> np.ndarray:
        return self.swath_width / 2.0 - self.ground_distance(fixed_positions)
