"""过境预报模块"""

from .base import VisibilityGeometry, ElevationGeometry, SwathGeometry, visible_area_width
from .pass_predictor import PassPredictor
from .pass_filter import VisibilityFilterConfig, filter_passes
from .pass_cache import (
    PassCache, PassCacheEntry, PassCacheRegistry, PassCacheState, PassAvailability,
)
from .batch_scheduler import BatchScheduler, BatchResult

__all__ = [
    'VisibilityGeometry', 'ElevationGeometry', 'SwathGeometry', 'visible_area_width',
    'PassPredictor',
    'VisibilityFilterConfig', 'filter_passes',
    'PassCache', 'PassCacheEntry', 'PassCacheRegistry', 'PassCacheState', 'PassAvailability',
    'BatchScheduler', 'BatchResult',
]
