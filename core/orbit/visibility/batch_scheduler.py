"""
批量过境更新调度器

按固定批次大小在线程池中更新多个过境缓存：
- 每批全部完成后才开始下一批
- 批次之间调用让出回调，把控制权交还宿主（不会在单个目标的计算中途让出）
- 单个任务失败只记录，不影响同批和后续任务
"""

import os
import logging
import threading
import time as _time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.config import BatchConfig
from .pass_cache import PassCache
from .pass_filter import VisibilityFilterConfig

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """
    批量更新结果

    Attributes:
        total: 任务总数
        recomputed: 重新计算的缓存键
        skipped: 缓存有效、未计算的缓存键
        failures: 失败的缓存键及异常
        batches: 批次数
        elapsed_seconds: 耗时（秒）
    """
    total: int = 0
    recomputed: List[Tuple[str, int]] = field(default_factory=list)
    skipped: List[Tuple[str, int]] = field(default_factory=list)
    failures: Dict[Tuple[str, int], Exception] = field(default_factory=dict)
    batches: int = 0
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        return len(self.recomputed) + len(self.skipped)

    @property
    def failed(self) -> int:
        return len(self.failures)


class BatchScheduler:
    """
    批量调度器

    Attributes:
        batch_size: 每批任务数
        max_workers: 线程池大小，默认CPU核心数×2
    """

    def __init__(self, batch_size: int = 20, max_workers: Optional[int] = None,
                 yield_callback: Optional[Callable[[int, int], None]] = None):
        """
        初始化

        Args:
            batch_size: 每批任务数
            max_workers: 线程池大小
            yield_callback: 批次间回调 (已完成任务数, 任务总数)
        """
        config = BatchConfig(batch_size=batch_size, max_workers=max_workers)
        self.batch_size = config.batch_size
        self.max_workers = max_workers or ((os.cpu_count() or 1) * 2)
        self.yield_callback = yield_callback
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="pass_batch"
        )
        # 后台运行使用单独的线程，避免占用计算线程池
        self._runner = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pass_batch_runner")
        self._run_lock = threading.Lock()
        logger.info(f"BatchScheduler initialized: batch_size={batch_size}, workers={self.max_workers}")

    @classmethod
    def from_config(cls, config: BatchConfig,
                    yield_callback: Optional[Callable[[int, int], None]] = None) -> 'BatchScheduler':
        return cls(batch_size=config.batch_size, max_workers=config.max_workers,
                   yield_callback=yield_callback)

    def run(self, caches: Sequence[PassCache], time: datetime,
            filter_config: Optional[VisibilityFilterConfig] = None) -> BatchResult:
        """
        分批更新缓存并等待全部完成

        Args:
            caches: 过境缓存列表
            time: 当前模拟时间
            filter_config: 光照过滤配置

        Returns:
            BatchResult
        """
        with self._run_lock:
            return self._run(list(caches), time, filter_config)

    def _run(self, caches: List[PassCache], time: datetime,
             filter_config: Optional[VisibilityFilterConfig]) -> BatchResult:
        started = _time.perf_counter()
        result = BatchResult(total=len(caches))
        if not caches:
            return result

        logger.info(f"Updating {len(caches)} pass caches in batches of {self.batch_size}")

        for offset in range(0, len(caches), self.batch_size):
            batch = caches[offset:offset + self.batch_size]
            futures = {
                self._executor.submit(cache.update, time, filter_config): cache.key
                for cache in batch
            }
            for future in as_completed(futures):
                key = futures[future]
                try:
                    if future.result():
                        result.recomputed.append(key)
                    else:
                        result.skipped.append(key)
                except Exception as e:
                    logger.error(f"Failed to update passes for {key}: {e}")
                    result.failures[key] = e
            result.batches += 1

            done = offset + len(batch)
            logger.debug(f"Progress: {done}/{len(caches)}")
            if done < len(caches) and self.yield_callback is not None:
                try:
                    self.yield_callback(done, len(caches))
                except Exception as e:
                    logger.error(f"Yield callback failed after {done}/{len(caches)} updates: {e}")

        result.elapsed_seconds = _time.perf_counter() - started
        logger.info(
            f"Completed {result.total} pass updates: {len(result.recomputed)} recomputed, "
            f"{len(result.skipped)} cached, {result.failed} failed "
            f"({result.elapsed_seconds:.2f}s)"
        )
        return result

    def submit(self, caches: Sequence[PassCache], time: datetime,
               filter_config: Optional[VisibilityFilterConfig] = None,
               on_complete: Optional[Callable[[BatchResult], None]] = None) -> Future:
        """
        后台分批更新（发起后不等待）

        Args:
            caches: 过境缓存列表
            time: 当前模拟时间
            filter_config: 光照过滤配置
            on_complete: 完成回调

        Returns:
            Future[BatchResult]
        """
        future = self._runner.submit(self.run, list(caches), time, filter_config)
        if on_complete is not None:
            def _notify(f: Future):
                if f.exception() is not None:
                    logger.error(f"Background pass update failed: {f.exception()}")
                    return
                on_complete(f.result())
            future.add_done_callback(_notify)
        return future

    def shutdown(self):
        """关闭线程池"""
        self._runner.shutdown(wait=True)
        self._executor.shutdown(wait=True)
        logger.info("BatchScheduler shut down")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
