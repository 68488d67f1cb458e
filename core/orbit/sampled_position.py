"""
采样位置缓存

为单个目标维护一个滑动时间窗口内的位置采样（地固系和惯性系），
窗口为当前时刻前半个周期到后1.5个周期，每周期120个采样点。
窗口移动时只计算缺失的前缀/后缀，并丢弃窗口外的旧采样。
采样之间使用Lagrange多项式插值，窗口外保持边界值（不外推）。

所有位置单位为米。
"""

import bisect
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from core.config import SamplingConfig
from .frames import ReferenceFrameTransform
from .propagator.orbit_model import OrbitModel, PropagationError
from .utils import to_utc_naive

logger = logging.getLogger(__name__)


class Frame(Enum):
    """位置参考系"""
    FIXED = "fixed"
    INERTIAL = "inertial"


@dataclass(frozen=True)
class PositionSample:
    """单个采样：时间、地固系位置、惯性系位置（米）"""
    time: datetime
    position_fixed: np.ndarray
    position_inertial: np.ndarray

    def position(self, frame: Frame) -> np.ndarray:
        return self.position_fixed if frame == Frame.FIXED else self.position_inertial


@dataclass(frozen=True)
class InterpolatedPosition:
    """
    插值结果

    Attributes:
        position: 位置（米）
        degraded: 查询时间在采样区间外，返回的是边界保持值
    """
    position: np.ndarray
    degraded: bool = False


class SampledPositionCache:
    """
    采样位置缓存

    采样点位于以 anchor 为原点、步长为 周期/120 的固定网格上，
    因此重复覆盖同一时间段不会产生重复采样。
    """

    SAMPLES_PER_ORBIT = 120
    INTERPOLATION_DEGREE = 5
    BACKWARD_PERIODS = 0.5
    FORWARD_PERIODS = 1.5

    def __init__(self, orbit_model: OrbitModel,
                 frames: Optional[ReferenceFrameTransform] = None,
                 samples_per_orbit: int = SAMPLES_PER_ORBIT,
                 interpolation_degree: int = INTERPOLATION_DEGREE):
        """
        Args:
            orbit_model: 轨道模型
            frames: 参考系转换器
            samples_per_orbit: 每周期采样点数
            interpolation_degree: 插值多项式阶数
        """
        if samples_per_orbit < 2:
            raise ValueError(f"samples_per_orbit must be >= 2, got {samples_per_orbit}")
        if interpolation_degree < 1:
            raise ValueError(f"interpolation_degree must be >= 1, got {interpolation_degree}")

        self._model = orbit_model
        self._frames = frames or ReferenceFrameTransform()
        self.interpolation_degree = interpolation_degree
        self.period_seconds = orbit_model.orbital_period_seconds
        self.step_seconds = self.period_seconds / samples_per_orbit

        self._anchor: Optional[datetime] = None
        self._first_index = 0
        self._samples: List[PositionSample] = []
        self._offsets: List[float] = []
        self._valid = not orbit_model.error
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, orbit_model: OrbitModel, config: SamplingConfig,
                    frames: Optional[ReferenceFrameTransform] = None) -> 'SampledPositionCache':
        return cls(orbit_model, frames=frames, samples_per_orbit=config.samples_per_orbit,
                   interpolation_degree=config.interpolation_degree)

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def orbit_model(self) -> OrbitModel:
        return self._model

    @property
    def valid(self) -> bool:
        """采样是否有效（传播失败后为False，渲染端应隐藏该目标）"""
        return self._valid and not self._model.error

    @property
    def samples(self) -> Tuple[PositionSample, ...]:
        with self._lock:
            return tuple(self._samples)

    @property
    def covered_interval(self) -> Optional[Tuple[datetime, datetime]]:
        """当前采样覆盖的时间区间"""
        with self._lock:
            if not self._samples:
                return None
            return self._samples[0].time, self._samples[-1].time

    def target_window(self, center_time: datetime) -> Tuple[datetime, datetime]:
        """以center_time为基准的目标窗口 [t - P/2, t + 1.5P]"""
        center_time = to_utc_naive(center_time)
        return (center_time - timedelta(seconds=self.BACKWARD_PERIODS * self.period_seconds),
                center_time + timedelta(seconds=self.FORWARD_PERIODS * self.period_seconds))

    # ------------------------------------------------------------------
    # 采样维护
    # ------------------------------------------------------------------

    def _time_of(self, index: int) -> datetime:
        return self._anchor + timedelta(seconds=index * self.step_seconds)

    def _compute_sample(self, index: int) -> PositionSample:
        time = self._time_of(index)
        state = self._model.propagate(time)
        inertial = np.asarray(state.position_eci) * 1000.0
        fixed = self._frames.inertial_to_fixed(inertial, time)
        return PositionSample(time=time, position_fixed=fixed, position_inertial=inertial)

    def ensure_coverage(self, center_time: datetime) -> int:
        """
        保证采样覆盖以center_time为基准的目标窗口

        已覆盖时不做任何计算；否则只计算缺失的前缀和后缀，
        然后丢弃目标窗口外的采样。

        Args:
            center_time: 当前时间

        Returns:
            int: 新计算的采样数

        Raises:
            OrientationResolutionError: 地球定向数据不可用
        """
        window_start, window_end = self.target_window(center_time)

        with self._lock:
            if not self.valid:
                return 0

            if self._anchor is None:
                self._anchor = window_start

            lo = math.floor((window_start - self._anchor).total_seconds() / self.step_seconds)
            hi = math.ceil((window_end - self._anchor).total_seconds() / self.step_seconds)

            if self._samples:
                first = self._first_index
                last = first + len(self._samples) - 1
                if first <= lo and hi <= last:
                    return 0
                if hi < first or lo > last:
                    # 与当前窗口不相交，重新建立网格
                    self._reset(window_start)
                    lo, hi = 0, math.ceil(
                        (window_end - window_start).total_seconds() / self.step_seconds)

            if not self._samples:
                self._first_index = lo
                computed = self._extend_forward(lo, hi)
            else:
                first = self._first_index
                last = first + len(self._samples) - 1
                computed = self._extend_backward(lo, first - 1)
                computed += self._extend_forward(last + 1, hi)

            self._trim(lo, hi)

        if computed:
            logger.debug(f"{self._model.name}: computed {computed} new samples")
        return computed

    def _reset(self, anchor: datetime) -> None:
        self._anchor = anchor
        self._first_index = 0
        self._samples = []
        self._offsets = []

    def _extend_forward(self, start_index: int, stop_index: int) -> int:
        count = 0
        for index in range(start_index, stop_index + 1):
            try:
                sample = self._compute_sample(index)
            except PropagationError as e:
                self._invalidate(e)
                break
            self._samples.append(sample)
            self._offsets.append((sample.time - self._anchor).total_seconds())
            count += 1
        return count

    def _extend_backward(self, start_index: int, stop_index: int) -> int:
        """计算[start_index, stop_index]并插入到前面（从后往前计算，保持连续）"""
        new_samples = []
        new_offsets = []
        for index in range(stop_index, start_index - 1, -1):
            try:
                sample = self._compute_sample(index)
            except PropagationError as e:
                self._invalidate(e)
                break
            new_samples.append(sample)
            new_offsets.append((sample.time - self._anchor).total_seconds())
        if new_samples:
            new_samples.reverse()
            new_offsets.reverse()
            self._samples = new_samples + self._samples
            self._offsets = new_offsets + self._offsets
            self._first_index -= len(new_samples)
        return len(new_samples)

    def _trim(self, lo: int, hi: int) -> None:
        """丢弃网格索引在[lo, hi]之外的采样"""
        drop_front = max(0, lo - self._first_index)
        keep = max(0, hi - max(lo, self._first_index) + 1)
        if drop_front or len(self._samples) - drop_front > keep:
            self._samples = self._samples[drop_front:drop_front + keep]
            self._offsets = self._offsets[drop_front:drop_front + keep]
            self._first_index += drop_front

    def _invalidate(self, error: PropagationError) -> None:
        self._valid = False
        logger.warning(f"Sampling stopped for {self._model.name}: {error}")

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def is_interpolated(self, time: datetime) -> bool:
        """查询时间是否在采样覆盖区间内"""
        interval = self.covered_interval
        if interval is None:
            return False
        time = to_utc_naive(time)
        return interval[0] <= time <= interval[1]

    def lookup(self, time: datetime, frame: Frame = Frame.FIXED) -> Optional[InterpolatedPosition]:
        """
        插值获取位置

        Args:
            time: 查询时间
            frame: 参考系

        Returns:
            InterpolatedPosition，无采样时返回None
        """
        time = to_utc_naive(time)
        with self._lock:
            if not self._samples:
                return None

            t = (time - self._anchor).total_seconds()
            offsets = self._offsets

            if t <= offsets[0]:
                return InterpolatedPosition(self._samples[0].position(frame).copy(),
                                            degraded=t < offsets[0])
            if t >= offsets[-1]:
                return InterpolatedPosition(self._samples[-1].position(frame).copy(),
                                            degraded=t > offsets[-1])

            idx = bisect.bisect_left(offsets, t)
            if offsets[idx] == t:
                return InterpolatedPosition(self._samples[idx].position(frame).copy())

            n_points = min(self.interpolation_degree + 1, len(offsets))
            start = min(max(0, idx - (n_points + 1) // 2), len(offsets) - n_points)
            xs = np.asarray(offsets[start:start + n_points]) - t
            ys = np.array([s.position(frame) for s in self._samples[start:start + n_points]])

        return InterpolatedPosition(self._lagrange(xs, ys))

    @staticmethod
    def _lagrange(xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """在x=0处计算Lagrange插值（xs已相对查询时间平移）"""
        result = np.zeros(ys.shape[1])
        for j in range(len(xs)):
            others = np.delete(xs, j)
            weight = np.prod(others / (others - xs[j]))
            result += weight * ys[j]
        return result

    def position_at(self, time: datetime, frame: Frame = Frame.FIXED) -> Optional[np.ndarray]:
        """插值位置（米），无采样时返回None"""
        result = self.lookup(time, frame)
        return None if result is None else result.position

    def positions_for_next_orbit(self, start: datetime, frame: Frame = Frame.INERTIAL,
                                 loop: bool = True) -> List[np.ndarray]:
        """
        获取从start起一个周期内的原始采样位置

        Args:
            start: 开始时间
            frame: 参考系
            loop: 是否在末尾重复第一个点以闭合轨迹

        Returns:
            List[np.ndarray]: 采样位置列表
        """
        start = to_utc_naive(start)
        end = start + timedelta(seconds=self.period_seconds)
        with self._lock:
            positions = [s.position(frame) for s in self._samples if start <= s.time <= end]
        if loop and positions:
            positions.append(positions[0])
        return positions

    def ground_track(self, time: datetime, samples_fwd: int = 2, samples_bwd: int = 0,
                     interval: float = 600.0) -> List[np.ndarray]:
        """
        以固定间隔采样地固系位置，用于绘制星下点轨迹

        Args:
            time: 基准时间
            samples_fwd: 向后采样数
            samples_bwd: 向前采样数
            interval: 采样间隔（秒）

        Returns:
            List[np.ndarray]: 地固系位置（米）
        """
        time = to_utc_naive(time)
        track = []
        for k in range(-samples_bwd, samples_fwd + 1):
            position = self.position_at(time + timedelta(seconds=k * interval), Frame.FIXED)
            if position is not None:
                track.append(position)
        return track
