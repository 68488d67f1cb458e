"""
过境过滤

读取时对缓存的过境列表做时间范围、根数历元和光照过滤，纯函数，不修改输入。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from core.models.satellite_pass import SatellitePass
from ..utils import to_utc_naive

DEFAULT_HORIZON_HOURS = 48.0
DEFAULT_EPOCH_MARGIN_MINUTES = 90.0


@dataclass(frozen=True)
class VisibilityFilterConfig:
    """
    光照过滤配置

    Attributes:
        hide_sunlit: 只保留地面点在开始或结束时处于黑暗的过境
        show_only_lit: 只保留目标在开始或结束时被照亮、或过境期间有地影切换的过境
    """
    hide_sunlit: bool = False
    show_only_lit: bool = False


def _ground_point_dark(p: SatellitePass) -> bool:
    return bool(p.ground_point_dark_at_start) or bool(p.ground_point_dark_at_end)


def _object_lit(p: SatellitePass) -> bool:
    # 未标注光照时视为被照亮
    if p.eclipsed_at_start is None:
        return True
    return (not p.eclipsed_at_start) or (not p.eclipsed_at_end) or bool(p.eclipse_transitions)


def filter_passes(passes: Iterable[SatellitePass], now: datetime,
                  horizon_hours: float = DEFAULT_HORIZON_HOURS,
                  filter_config: Optional[VisibilityFilterConfig] = None,
                  epoch_margin_minutes: float = DEFAULT_EPOCH_MARGIN_MINUTES) -> List[SatellitePass]:
    """
    过滤并排序过境

    依次执行：
    1. 时间范围：保留 start - now < horizon_hours 的过境（含 now 时刻开始的过境）
    2. 根数历元：去掉 epoch_in_future 且开始早于 epoch_time - epoch_margin_minutes 的过境
    3. hide_sunlit：地面点在开始或结束时处于黑暗
    4. show_only_lit：目标在开始或结束时被照亮，或有地影切换
    5. 按开始时间升序排序

    Args:
        passes: 过境列表
        now: 当前时间
        horizon_hours: 时间范围（小时）
        filter_config: 光照过滤配置
        epoch_margin_minutes: 根数历元提前量（分钟），应与预报时标记使用的值一致

    Returns:
        List[SatellitePass]: 过滤后的新列表
    """
    now = to_utc_naive(now)
    horizon = timedelta(hours=horizon_hours)
    config = filter_config or VisibilityFilterConfig()
    epoch_margin = timedelta(minutes=epoch_margin_minutes)

    result = [p for p in passes if p.start_time - now < horizon]
    result = [p for p in result
              if not (p.epoch_in_future and p.start_time < p.epoch_time - epoch_margin)]
    if config.hide_sunlit:
        result = [p for p in result if _ground_point_dark(p)]
    if config.show_only_lit:
        result = [p for p in result if _object_lit(p)]
    return sorted(result, key=lambda p: p.start_time)
