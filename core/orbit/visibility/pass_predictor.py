"""
过境预报器

固定步长向量化扫描 + 二分细化开始/结束时间 + 黄金分割细化顶点。
每次过境独立标注地面点光照、目标地影状态和过境期间的地影切换。
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Union

import numpy as np

from core.config import PredictionConfig
from core.models.ground_point import GroundPoint
from core.models.satellite_pass import PassMode, SatellitePass
from ..frames import ReferenceFrameTransform
from ..illumination import IlluminationCalculator
from ..propagator.orbit_model import OrbitModel
from ..utils import time_grid, to_utc_naive
from .base import ElevationGeometry, SwathGeometry, VisibilityGeometry, find_visible_runs

logger = logging.getLogger(__name__)

_INV_PHI = (math.sqrt(5.0) - 1.0) / 2.0


class PassPredictor:
    """
    过境预报器

    无内部状态（除配置外），可在多个线程间共享。
    同样的输入总是产生同样的输出。
    """

    def __init__(self, config: Optional[PredictionConfig] = None,
                 frames: Optional[ReferenceFrameTransform] = None,
                 illumination: Optional[IlluminationCalculator] = None):
        """
        初始化

        Args:
            config: 预报配置
            frames: 参考系转换器
            illumination: 光照计算器
        """
        self.config = config or PredictionConfig()
        self.frames = frames or ReferenceFrameTransform()
        self.illumination = illumination or IlluminationCalculator(
            self.frames, twilight_elevation=self.config.twilight_elevation
        )

    def geometry_for(self, orbit_model: OrbitModel, ground_point: GroundPoint,
                     mode: PassMode) -> VisibilityGeometry:
        """按判定模型创建可见性几何"""
        if mode == PassMode.SWATH:
            return SwathGeometry(ground_point, orbit_model.swath_width())
        return ElevationGeometry(ground_point, self.config.min_elevation)

    def compute_passes(self, orbit_model: OrbitModel, ground_point: GroundPoint,
                       mode: Union[PassMode, str], start_time: datetime,
                       end_time: datetime) -> List[SatellitePass]:
        """
        计算时间区间内的全部过境

        Args:
            orbit_model: 轨道模型
            ground_point: 地面点
            mode: 判定模型（仰角/幅宽）
            start_time: 开始时间
            end_time: 结束时间

        Returns:
            List[SatellitePass]: 按开始时间排序、互不重叠的过境列表

        Raises:
            PropagationError: 该目标轨道传播失败
            OrientationResolutionError: 地球定向不可用
        """
        mode = PassMode(mode)
        start_time = to_utc_naive(start_time)
        end_time = to_utc_naive(end_time)
        if end_time <= start_time:
            return []

        geometry = self.geometry_for(orbit_model, ground_point, mode)

        offsets = time_grid(start_time, end_time, self.config.step_seconds)
        positions, _ = orbit_model.propagate_many(start_time, offsets)
        fixed = self.frames.inertial_to_fixed_many(positions, start_time, offsets)
        margin = geometry.margin(fixed)

        def at(index: int) -> datetime:
            return start_time + timedelta(seconds=float(offsets[index]))

        passes = []
        last_index = len(offsets) - 1
        for first, last in find_visible_runs(margin >= 0):
            if len(passes) >= self.config.max_passes:
                logger.debug(f"{orbit_model.name}: pass limit {self.config.max_passes} reached")
                break

            # 扫描区间端点处已可见的过境截断到端点
            pass_start = start_time if first == 0 else \
                self._refine_crossing(orbit_model, geometry, at(first - 1), at(first))
            pass_end = end_time if last == last_index else \
                self._refine_crossing(orbit_model, geometry, at(last), at(last + 1))
            if pass_start >= pass_end:
                continue

            peak = first + int(np.argmax(margin[first:last + 1]))
            apex_time = self._refine_apex(
                orbit_model, geometry,
                max(pass_start, at(max(peak - 1, 0))),
                min(pass_end, at(min(peak + 1, last_index))),
            )
            if self._margin_at(orbit_model, geometry, apex_time) < margin[peak]:
                apex_time = at(peak)

            passes.append(self._build_pass(orbit_model, ground_point, geometry,
                                           pass_start, pass_end, apex_time, start_time))

        logger.debug(
            f"{orbit_model.name}: {len(passes)} {mode.value} passes over "
            f"{ground_point.display_name} in [{start_time.isoformat()}, {end_time.isoformat()}]"
        )
        return passes

    # ------------------------------------------------------------------
    # 细化
    # ------------------------------------------------------------------

    def _fixed_position(self, orbit_model: OrbitModel, time: datetime) -> np.ndarray:
        state = orbit_model.propagate(time)
        return self.frames.inertial_to_fixed(state.position_eci, time)

    def _margin_at(self, orbit_model: OrbitModel, geometry: VisibilityGeometry,
                   time: datetime) -> float:
        return float(geometry.margin(self._fixed_position(orbit_model, time))[0])

    def _refine_crossing(self, orbit_model: OrbitModel, geometry: VisibilityGeometry,
                         lo: datetime, hi: datetime) -> datetime:
        """
        二分细化可见性切换时刻

        lo 和 hi 处的可见性不同。返回值总是 hi 一侧的边界，
        因此开始时间落在可见侧、结束时间落在不可见侧。
        """
        lo_visible = self._margin_at(orbit_model, geometry, lo) >= 0
        tolerance = self.config.refine_tolerance_seconds
        while (hi - lo).total_seconds() > tolerance:
            mid = lo + (hi - lo) / 2
            if (self._margin_at(orbit_model, geometry, mid) >= 0) == lo_visible:
                lo = mid
            else:
                hi = mid
        return hi

    def _refine_apex(self, orbit_model: OrbitModel, geometry: VisibilityGeometry,
                     lo: datetime, hi: datetime) -> datetime:
        """黄金分割搜索[lo, hi]内裕量最大的时刻"""
        a, b = 0.0, (hi - lo).total_seconds()
        if b <= 0:
            return lo

        def f(seconds: float) -> float:
            return self._margin_at(orbit_model, geometry, lo + timedelta(seconds=seconds))

        c = b - _INV_PHI * (b - a)
        d = a + _INV_PHI * (b - a)
        fc, fd = f(c), f(d)
        while b - a > self.config.refine_tolerance_seconds:
            if fc > fd:
                b, d, fd = d, c, fc
                c = b - _INV_PHI * (b - a)
                fc = f(c)
            else:
                a, c, fc = c, d, fd
                d = a + _INV_PHI * (b - a)
                fd = f(d)
        return lo + timedelta(seconds=(a + b) / 2.0)

    # ------------------------------------------------------------------
    # 结果构建
    # ------------------------------------------------------------------

    def _build_pass(self, orbit_model: OrbitModel, ground_point: GroundPoint,
                    geometry: VisibilityGeometry, pass_start: datetime, pass_end: datetime,
                    apex_time: datetime, window_start: datetime) -> SatellitePass:
        apex_fixed = self._fixed_position(orbit_model, apex_time)

        mode_fields = {}
        if geometry.mode == PassMode.ELEVATION:
            start_fixed = self._fixed_position(orbit_model, pass_start)
            end_fixed = self._fixed_position(orbit_model, pass_end)
            azimuth, elevation, _ = geometry.look_angles(
                np.vstack((start_fixed, apex_fixed, end_fixed))
            )
            mode_fields.update(
                max_elevation=float(min(90.0, max(0.0, elevation[1]))),
                azimuth_apex=float(azimuth[1]),
                azimuth_start=float(azimuth[0]),
                azimuth_end=float(azimuth[2]),
            )
        else:
            mode_fields.update(
                min_distance=float(geometry.ground_distance(apex_fixed)[0]),
                swath_width=float(geometry.swath_width),
            )

        # 根数历元晚于窗口起点时，标记历元提前量之前的过境
        epoch = orbit_model.epoch
        epoch_cutoff = epoch - timedelta(minutes=self.config.epoch_margin_minutes)
        epoch_in_future = epoch > window_start and pass_start < epoch_cutoff

        transitions = self.illumination.find_eclipse_transitions(
            orbit_model, pass_start, pass_end,
            step_seconds=self.config.eclipse_scan_step_seconds,
            tolerance_seconds=self.config.refine_tolerance_seconds,
        )

        return SatellitePass(
            name=orbit_model.name,
            satnum=orbit_model.satnum,
            ground_point_name=ground_point.display_name,
            start_time=pass_start,
            end_time=pass_end,
            mode=geometry.mode,
            apex_time=apex_time,
            ground_point_dark_at_start=self.illumination.is_ground_point_dark(ground_point, pass_start),
            ground_point_dark_at_end=self.illumination.is_ground_point_dark(ground_point, pass_end),
            eclipsed_at_start=orbit_model.is_eclipsed(pass_start),
            eclipsed_at_end=orbit_model.is_eclipsed(pass_end),
            eclipse_transitions=tuple(transitions),
            epoch_in_future=epoch_in_future,
            epoch_time=epoch if epoch_in_future else None,
            **mode_fields,
        )
