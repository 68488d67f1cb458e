"""
光照计算器

- 太阳位置（低精度解析模型，精度约0.01°）
- 锥形本影模型判断目标是否处于地影
- 地面点晨昏判断（太阳高度低于民用晨昏线）
- 过境期间的地影切换搜索
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

import numpy as np

from core.models.satellite_pass import EclipseTransition
from .frames import ReferenceFrameTransform
from .utils import (
    AU_KM, J2000_JD, SUN_RADIUS_KM, WGS84_A_KM,
    datetime_to_jd, look_angles, time_grid,
)

logger = logging.getLogger(__name__)


class IlluminationCalculator:
    """
    光照计算器

    太阳位置在平赤道系中给出，与TEME的差异远小于地影判断所需精度。
    """

    EARTH_RADIUS_KM = WGS84_A_KM
    SUN_RADIUS_KM = SUN_RADIUS_KM
    CIVIL_TWILIGHT_DEG = -6.0

    def __init__(self, frames: Optional[ReferenceFrameTransform] = None,
                 twilight_elevation: float = CIVIL_TWILIGHT_DEG):
        """
        Args:
            frames: 参考系转换器
            twilight_elevation: 地面点视为黑暗的太阳高度阈值（度）
        """
        self.frames = frames or ReferenceFrameTransform()
        self.twilight_elevation = twilight_elevation

    # ------------------------------------------------------------------
    # 太阳位置
    # ------------------------------------------------------------------

    @staticmethod
    def _sun_from_days(days):
        """由J2000起算天数计算太阳惯性系位置（千米），支持数组"""
        days = np.asarray(days, dtype=float)
        mean_longitude = np.radians(np.mod(280.460 + 0.9856474 * days, 360.0))
        mean_anomaly = np.radians(np.mod(357.528 + 0.9856003 * days, 360.0))

        # 黄经（含中心差）
        ecliptic_longitude = (mean_longitude
                              + np.radians(1.915) * np.sin(mean_anomaly)
                              + np.radians(0.020) * np.sin(2 * mean_anomaly))
        obliquity = np.radians(23.439 - 0.0000004 * days)
        distance = (1.00014 - 0.01671 * np.cos(mean_anomaly)
                    - 0.00014 * np.cos(2 * mean_anomaly)) * AU_KM

        x = distance * np.cos(ecliptic_longitude)
        y = distance * np.cos(obliquity) * np.sin(ecliptic_longitude)
        z = distance * np.sin(obliquity) * np.sin(ecliptic_longitude)
        return np.stack((x, y, z), axis=-1)

    def sun_position(self, dt: datetime) -> np.ndarray:
        """
        太阳惯性系位置

        Args:
            dt: UTC时间

        Returns:
            np.ndarray: (x, y, z) 千米
        """
        jd, fr = datetime_to_jd(dt)
        return self._sun_from_days((jd - J2000_JD) + fr)

    def sun_positions(self, start: datetime, offsets_seconds: np.ndarray) -> np.ndarray:
        """批量计算太阳位置，返回 (N, 3) 千米"""
        jd, fr = datetime_to_jd(start)
        return self._sun_from_days((jd - J2000_JD) + fr + np.asarray(offsets_seconds) / 86400.0)

    # ------------------------------------------------------------------
    # 目标地影
    # ------------------------------------------------------------------

    def is_in_shadow(self, sat_pos, sun_pos):
        """
        判断目标是否在地球本影锥内

        本影锥：以日地连线为轴，半顶角 asin((Rs - Re) / d)，
        距地心 x 处的本影半径为 Re - x * tan(α)。

        Args:
            sat_pos: 目标位置 (3,) 或 (N, 3)，千米
            sun_pos: 太阳位置，形状与sat_pos一致

        Returns:
            bool 或 np.ndarray[bool]
        """
        sat = np.atleast_2d(np.asarray(sat_pos, dtype=float))
        sun = np.atleast_2d(np.asarray(sun_pos, dtype=float))

        sun_dist = np.linalg.norm(sun, axis=1)
        sun_unit = sun / sun_dist[:, None]

        # 沿日地轴的投影，负值表示目标在地球背阳一侧
        projection = np.einsum('ij,ij->i', sat, sun_unit)
        perpendicular = np.linalg.norm(sat - projection[:, None] * sun_unit, axis=1)

        half_angle = np.arcsin((self.SUN_RADIUS_KM - self.EARTH_RADIUS_KM) / sun_dist)
        umbra_radius = self.EARTH_RADIUS_KM + projection * np.tan(half_angle)

        shadow = (projection < 0) & (perpendicular < umbra_radius)
        if np.ndim(sat_pos) == 1:
            return bool(shadow[0])
        return shadow

    def find_eclipse_transitions(self, orbit_model, start_time: datetime, end_time: datetime,
                                 step_seconds: float = 30.0,
                                 tolerance_seconds: float = 1.0) -> List[EclipseTransition]:
        """
        搜索区间内（不含端点）的地影切换

        先按固定步长扫描，再对状态变化的相邻采样二分细化。

        Args:
            orbit_model: 轨道模型（OrbitModel）
            start_time: 开始时间
            end_time: 结束时间
            step_seconds: 扫描步长（秒）
            tolerance_seconds: 细化精度（秒）

        Returns:
            List[EclipseTransition]: 按时间排序的切换事件

        Raises:
            PropagationError: 轨道传播失败
        """
        if end_time <= start_time:
            return []

        offsets = time_grid(start_time, end_time, step_seconds)
        positions, _ = orbit_model.propagate_many(start_time, offsets)
        shadow = self.is_in_shadow(positions, self.sun_positions(start_time, offsets))

        transitions = []
        changes = np.nonzero(shadow[1:] != shadow[:-1])[0]
        for idx in changes:
            lo = start_time + timedelta(seconds=float(offsets[idx]))
            hi = start_time + timedelta(seconds=float(offsets[idx + 1]))
            state_lo = bool(shadow[idx])
            while (hi - lo).total_seconds() > tolerance_seconds:
                mid = lo + (hi - lo) / 2
                if orbit_model.is_eclipsed(mid) == state_lo:
                    lo = mid
                else:
                    hi = mid
            if start_time < hi < end_time:
                transitions.append(EclipseTransition(time=hi, enters_shadow=not state_lo))

        return transitions

    # ------------------------------------------------------------------
    # 地面点光照
    # ------------------------------------------------------------------

    def sun_elevation(self, ground_point, dt: datetime) -> float:
        """
        地面点处的太阳高度角

        Args:
            ground_point: 地面点
            dt: UTC时间

        Returns:
            float: 太阳高度角（度）
        """
        sun_fixed = self.frames.inertial_to_fixed(self.sun_position(dt), dt)
        _, elevation, _ = look_angles(ground_point.get_ecef_position(),
                                      ground_point.latitude, ground_point.longitude, sun_fixed)
        return float(elevation[0])

    def is_ground_point_dark(self, ground_point, dt: datetime) -> bool:
        """地面点是否处于黑暗（太阳低于晨昏线），与目标无关"""
        return self.sun_elevation(ground_point, dt) < self.twilight_elevation

    def lighting_condition(self, ground_point, dt: datetime) -> str:
        """光照状态描述："Dark" 或 "Light" """
        return "Dark" if self.is_ground_point_dark(ground_point, dt) else "Light"
