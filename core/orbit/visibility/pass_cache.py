"""
过境缓存

按 (地面点, 目标) 缓存过境预报结果，并在模拟时间移出有效窗口、
光照过滤配置变化或显式失效时重新计算。

状态机：EMPTY -> VALID -> STALE -> VALID -> ...

并发：
- 缓存条目是不可变对象，读者总是看到完整的一份结果
- 每次重算分配递增序号，晚完成的旧结果和失效前发起的结果直接丢弃
- 相同锚点窗口和过滤配置的在途重算会被复用，不重复提交
"""

import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from core.config import PassCacheConfig
from core.models.ground_point import GroundPoint
from core.models.satellite_pass import PassMode, SatellitePass
from ..propagator.orbit_model import OrbitModel, PropagationError
from ..utils import to_utc_naive
from .pass_filter import VisibilityFilterConfig, filter_passes
from .pass_predictor import PassPredictor

logger = logging.getLogger(__name__)


class PassCacheState(Enum):
    """缓存状态"""
    EMPTY = "empty"
    VALID = "valid"
    STALE = "stale"


class PassAvailability(Enum):
    """过境可用性（供界面区分显示）"""
    NO_GROUND_POINT = "no_ground_point"
    PENDING = "pending"
    NO_PASSES = "no_passes"
    PASSES = "passes"
    CONTINUOUS_VISIBILITY = "continuous_visibility"
    ERROR = "error"


@dataclass(frozen=True)
class PassCacheEntry:
    """
    一次预报的完整结果

    Attributes:
        passes: 过境（按开始时间排序）
        anchor_time: 计算时的模拟时间
        window_start: 预报窗口起点
        window_end: 预报窗口终点
        valid_from: 有效期起点
        valid_until: 有效期终点
        filter_snapshot: 计算时的光照过滤配置
        mode: 判定模型
        sequence: 重算序号
        continuous: 整个预报窗口内持续可见
    """
    passes: Tuple[SatellitePass, ...]
    anchor_time: datetime
    window_start: datetime
    window_end: datetime
    valid_from: datetime
    valid_until: datetime
    filter_snapshot: VisibilityFilterConfig
    mode: PassMode
    sequence: int
    continuous: bool = False


@dataclass(frozen=True)
class _Request:
    """在途重算"""
    sequence: int
    valid_from: datetime
    valid_until: datetime
    filter_snapshot: VisibilityFilterConfig
    mode: PassMode
    future: Future


class PassCache:
    """
    单个 (地面点, 目标) 的过境缓存
    """

    def __init__(self, orbit_model: OrbitModel, ground_point: GroundPoint,
                 mode: PassMode = PassMode.ELEVATION,
                 predictor: Optional[PassPredictor] = None,
                 config: Optional[PassCacheConfig] = None):
        """
        初始化

        Args:
            orbit_model: 轨道模型
            ground_point: 地面点
            mode: 判定模型
            predictor: 过境预报器
            config: 缓存配置
        """
        self._orbit_model = orbit_model
        self.ground_point = ground_point
        self._mode = PassMode(mode)
        self.predictor = predictor or PassPredictor()
        self.config = config or PassCacheConfig()

        self._lock = threading.Lock()
        self._entry: Optional[PassCacheEntry] = None
        self._stale = False
        self._sequence = 0
        self._latest_applied = 0
        self._invalidated_through = 0
        self._in_flight: List[_Request] = []
        self._last_error: Optional[Exception] = None

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def orbit_model(self) -> OrbitModel:
        return self._orbit_model

    @property
    def key(self) -> Tuple[str, int]:
        """(地面点名称, 编目号)"""
        return self.ground_point.display_name, self._orbit_model.satnum

    @property
    def mode(self) -> PassMode:
        return self._mode

    @property
    def entry(self) -> Optional[PassCacheEntry]:
        return self._entry

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def state(self) -> PassCacheState:
        with self._lock:
            if self._entry is None:
                return PassCacheState.EMPTY
            return PassCacheState.STALE if self._stale else PassCacheState.VALID

    @property
    def availability(self) -> PassAvailability:
        entry = self._entry
        if self._last_error is not None or self._orbit_model.error:
            return PassAvailability.ERROR
        if entry is None:
            return PassAvailability.PENDING
        if entry.continuous:
            return PassAvailability.CONTINUOUS_VISIBILITY
        return PassAvailability.PASSES if entry.passes else PassAvailability.NO_PASSES

    # ------------------------------------------------------------------
    # 失效
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """标记缓存失效，已发起的重算结果将被丢弃"""
        with self._lock:
            self._stale = True
            self._invalidated_through = self._sequence
            self._in_flight = []
        logger.debug(f"Pass cache invalidated for {self.key}")

    def set_mode(self, mode: PassMode) -> None:
        """切换判定模型"""
        mode = PassMode(mode)
        if mode != self._mode:
            self._mode = mode
            self.invalidate()

    def set_orbit_model(self, orbit_model: OrbitModel) -> None:
        """替换为新的根数，清除错误状态"""
        with self._lock:
            self._orbit_model = orbit_model
            self._last_error = None
        self.invalidate()

    def _window(self, time: datetime) -> Tuple[datetime, datetime, datetime, datetime]:
        config = self.config
        return (time - timedelta(days=config.past_days),
                time + timedelta(days=config.future_days),
                time - timedelta(days=config.validity_days),
                time + timedelta(days=config.validity_days))

    def _is_fresh(self, time: datetime, snapshot: VisibilityFilterConfig) -> bool:
        entry = self._entry
        if entry is None or self._stale:
            return False
        # 传播失败过的根数需要重算以记录错误
        if self._orbit_model.error:
            return False
        if entry.mode != self._mode or entry.filter_snapshot != snapshot:
            return False
        if not (entry.valid_from <= time <= entry.valid_until):
            return False
        ttl = self.config.ttl_seconds
        if ttl is not None and abs((time - entry.anchor_time).total_seconds()) > ttl:
            return False
        return True

    def is_valid_for(self, time: datetime,
                     filter_config: Optional[VisibilityFilterConfig] = None) -> bool:
        """缓存是否可直接用于该时间和过滤配置"""
        with self._lock:
            return self._is_fresh(to_utc_naive(time), filter_config or VisibilityFilterConfig())

    # ------------------------------------------------------------------
    # 更新
    # ------------------------------------------------------------------

    def _begin(self, time: datetime, snapshot: VisibilityFilterConfig):
        """在锁内调用：标记过期并分配序号"""
        if self._entry is not None:
            self._stale = True
        self._sequence += 1
        return self._sequence, self._mode, self._orbit_model

    def _compute(self, time: datetime, snapshot: VisibilityFilterConfig, mode: PassMode,
                 orbit_model: OrbitModel, sequence: int) -> PassCacheEntry:
        window_start, window_end, valid_from, valid_until = self._window(time)
        passes = self.predictor.compute_passes(orbit_model, self.ground_point, mode,
                                               window_start, window_end)
        continuous = (len(passes) == 1 and passes[0].start_time == window_start
                      and passes[0].end_time == window_end)
        return PassCacheEntry(
            passes=tuple(passes),
            anchor_time=time,
            window_start=window_start,
            window_end=window_end,
            valid_from=valid_from,
            valid_until=valid_until,
            filter_snapshot=snapshot,
            mode=mode,
            sequence=sequence,
            continuous=continuous,
        )

    def _apply(self, entry: PassCacheEntry) -> bool:
        """原子替换缓存条目，过时结果丢弃并返回False"""
        with self._lock:
            if entry.sequence <= self._invalidated_through or entry.sequence < self._latest_applied:
                logger.debug(f"Discarding stale pass result #{entry.sequence} for {self.key}")
                return False
            self._entry = entry
            self._latest_applied = entry.sequence
            self._stale = entry.sequence < self._sequence and self._stale
            self._last_error = None
        logger.debug(f"Pass cache for {self.key} updated: {len(entry.passes)} passes")
        return True

    def _record_error(self, sequence: int, error: Exception) -> None:
        with self._lock:
            if sequence > self._invalidated_through and sequence >= self._latest_applied:
                self._last_error = error
        logger.warning(f"Pass prediction failed for {self.key}: {error}")

    def update(self, time: datetime,
               filter_config: Optional[VisibilityFilterConfig] = None) -> bool:
        """
        同步更新缓存

        Args:
            time: 当前模拟时间
            filter_config: 当前光照过滤配置

        Returns:
            bool: 是否重新计算

        Raises:
            PropagationError: 轨道传播失败
        """
        time = to_utc_naive(time)
        snapshot = filter_config or VisibilityFilterConfig()
        with self._lock:
            if self._is_fresh(time, snapshot):
                logger.debug(f"Pass cache hit for {self.key}")
                return False
            sequence, mode, orbit_model = self._begin(time, snapshot)

        try:
            entry = self._compute(time, snapshot, mode, orbit_model, sequence)
        except PropagationError as e:
            self._record_error(sequence, e)
            raise
        self._apply(entry)
        return True

    def update_async(self, time: datetime, executor: Executor,
                     filter_config: Optional[VisibilityFilterConfig] = None) -> Future:
        """
        在线程池中更新缓存（发起后不等待）

        已有覆盖该时间且过滤配置相同的在途重算时直接返回其Future。

        Args:
            time: 当前模拟时间
            executor: 线程池
            filter_config: 当前光照过滤配置

        Returns:
            Future[bool]: 结果是否被采用；缓存有效时为已完成的False
        """
        time = to_utc_naive(time)
        snapshot = filter_config or VisibilityFilterConfig()
        with self._lock:
            if self._is_fresh(time, snapshot):
                done: Future = Future()
                done.set_result(False)
                return done
            for request in self._in_flight:
                if (request.filter_snapshot == snapshot and request.mode == self._mode
                        and request.valid_from <= time <= request.valid_until):
                    return request.future

            sequence, mode, orbit_model = self._begin(time, snapshot)
            _, _, valid_from, valid_until = self._window(time)
            future = executor.submit(self._run, time, snapshot, mode, orbit_model, sequence)
            self._in_flight.append(_Request(sequence, valid_from, valid_until,
                                            snapshot, mode, future))
        return future

    def _run(self, time: datetime, snapshot: VisibilityFilterConfig, mode: PassMode,
             orbit_model: OrbitModel, sequence: int) -> bool:
        try:
            entry = self._compute(time, snapshot, mode, orbit_model, sequence)
        except PropagationError as e:
            self._record_error(sequence, e)
            raise
        finally:
            with self._lock:
                self._in_flight = [r for r in self._in_flight if r.sequence != sequence]
        return self._apply(entry)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def passes(self, now: datetime, horizon_hours: Optional[float] = None,
               filter_config: Optional[VisibilityFilterConfig] = None) -> List[SatellitePass]:
        """
        读取过滤后的过境

        不触发计算；过滤配置缺省时使用缓存时的快照。

        Args:
            now: 当前时间
            horizon_hours: 时间范围（小时）
            filter_config: 光照过滤配置

        Returns:
            List[SatellitePass]
        """
        entry = self._entry
        if entry is None:
            return []
        return filter_passes(
            entry.passes, now,
            horizon_hours if horizon_hours is not None else self.config.horizon_hours,
            filter_config or entry.filter_snapshot,
            self.predictor.config.epoch_margin_minutes,
        )


class PassCacheRegistry:
    """
    地面点的过境缓存集合

    以 (地面点名称, 编目号) 为键。地面点、可见目标集合或判定模型变化时
    所有缓存失效。
    """

    def __init__(self, predictor: Optional[PassPredictor] = None,
                 config: Optional[PassCacheConfig] = None,
                 mode: PassMode = PassMode.ELEVATION):
        self.predictor = predictor or PassPredictor()
        self.config = config or PassCacheConfig()
        self._mode = PassMode(mode)
        self._ground_point: Optional[GroundPoint] = None
        self._models: Dict[int, OrbitModel] = {}
        self._caches: Dict[Tuple[str, int], PassCache] = {}
        self._lock = threading.Lock()

    @property
    def ground_point(self) -> Optional[GroundPoint]:
        return self._ground_point

    @property
    def mode(self) -> PassMode:
        return self._mode

    def _new_cache(self, orbit_model: OrbitModel) -> PassCache:
        return PassCache(orbit_model, self._ground_point, self._mode,
                         predictor=self.predictor, config=self.config)

    def set_ground_point(self, ground_point: Optional[GroundPoint]) -> None:
        """更换地面点，重建全部缓存"""
        with self._lock:
            self._ground_point = ground_point
            self._caches = {}
            if ground_point is not None:
                for orbit_model in self._models.values():
                    cache = self._new_cache(orbit_model)
                    self._caches[cache.key] = cache
        name = ground_point.display_name if ground_point else None
        logger.info(f"Ground point set to {name}, {len(self._caches)} pass caches reset")

    def add_object(self, orbit_model: OrbitModel) -> Optional[PassCache]:
        """
        加入目标（同编目号则替换根数）

        Returns:
            该目标的缓存，未设置地面点时为None
        """
        with self._lock:
            self._models[orbit_model.satnum] = orbit_model
            existing = [c for c in self._caches.values() if c.orbit_model.satnum == orbit_model.satnum]
        for cache in existing:
            cache.set_orbit_model(orbit_model)
        self.invalidate_all()

        with self._lock:
            if self._ground_point is None:
                return None
            key = (self._ground_point.display_name, orbit_model.satnum)
            if key not in self._caches:
                self._caches[key] = self._new_cache(orbit_model)
            return self._caches[key]

    def remove_object(self, satnum: int) -> None:
        with self._lock:
            self._models.pop(satnum, None)
            self._caches = {k: c for k, c in self._caches.items() if k[1] != satnum}
        self.invalidate_all()

    def set_mode(self, mode: PassMode) -> None:
        """切换判定模型"""
        mode = PassMode(mode)
        with self._lock:
            self._mode = mode
            caches = list(self._caches.values())
        for cache in caches:
            cache.set_mode(mode)

    def invalidate_all(self) -> None:
        for cache in self.caches():
            cache.invalidate()

    def caches(self) -> List[PassCache]:
        with self._lock:
            return list(self._caches.values())

    def cache_for(self, satnum: int) -> Optional[PassCache]:
        with self._lock:
            if self._ground_point is None:
                return None
            return self._caches.get((self._ground_point.display_name, satnum))

    def passes_for_ground_point(self, now: datetime,
                                filter_config: Optional[VisibilityFilterConfig] = None,
                                horizon_hours: Optional[float] = None) -> List[SatellitePass]:
        """
        合并所有目标的过境并过滤排序

        Args:
            now: 当前时间
            filter_config: 光照过滤配置
            horizon_hours: 时间范围（小时）

        Returns:
            List[SatellitePass]
        """
        merged = []
        for cache in self.caches():
            entry = cache.entry
            if entry is not None:
                merged.extend(entry.passes)
        return filter_passes(
            merged, now,
            horizon_hours if horizon_hours is not None else self.config.horizon_hours,
            filter_config,
            self.predictor.config.epoch_margin_minutes,
        )

    def availability(self) -> PassAvailability:
        """地面点整体的过境可用性"""
        if self._ground_point is None:
            return PassAvailability.NO_GROUND_POINT
        states = [cache.availability for cache in self.caches()]
        if not states:
            return PassAvailability.NO_PASSES
        for candidate in (PassAvailability.PASSES, PassAvailability.CONTINUOUS_VISIBILITY,
                          PassAvailability.PENDING):
            if candidate in states:
                return candidate
        if all(s == PassAvailability.ERROR for s in states):
            return PassAvailability.ERROR
        return PassAvailability.NO_PASSES
