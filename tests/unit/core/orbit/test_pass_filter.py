"""
过境过滤测试
"""

from datetime import datetime, timedelta

import pytest

from core.models.satellite_pass import EclipseTransition, SatellitePass
from core.orbit.visibility.pass_filter import VisibilityFilterConfig, filter_passes

NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_pass(start_offset_minutes, duration_minutes=8, **kwargs):
    start = NOW + timedelta(minutes=start_offset_minutes)
    return SatellitePass(
        name="TEST",
        satnum=1,
        ground_point_name="Munich",
        start_time=start,
        end_time=start + timedelta(minutes=duration_minutes),
        **kwargs,
    )


class TestHorizon:
    """测试时间范围过滤"""

    def test_passes_beyond_horizon_dropped(self):
        passes = [make_pass(60), make_pass(47 * 60), make_pass(49 * 60)]
        result = filter_passes(passes, NOW)
        assert [p.start_time for p in result] == [passes[0].start_time, passes[1].start_time]

    def test_pass_starting_now_kept(self):
        assert len(filter_passes([make_pass(0)], NOW)) == 1

    def test_past_passes_kept(self):
        assert len(filter_passes([make_pass(-30)], NOW)) == 1

    def test_custom_horizon(self):
        passes = [make_pass(30), make_pass(90)]
        assert len(filter_passes(passes, NOW, horizon_hours=1)) == 1

    def test_horizon_uses_exact_difference(self):
        """47.5小时后开始的过境不会因为取整而被误判"""
        assert len(filter_passes([make_pass(48 * 60 - 30)], NOW)) == 1
        assert filter_passes([make_pass(48 * 60)], NOW) == []


class TestEpochFilter:
    """测试根数历元过滤"""

    def test_pass_long_before_epoch_dropped(self):
        p = make_pass(10, epoch_in_future=True,
                      epoch_time=NOW + timedelta(minutes=10) + timedelta(hours=2))
        assert filter_passes([p], NOW) == []

    def test_pass_within_margin_kept(self):
        p = make_pass(10, epoch_in_future=True,
                      epoch_time=NOW + timedelta(minutes=10) + timedelta(minutes=80))
        assert filter_passes([p], NOW) == [p]

    def test_untagged_pass_kept(self):
        p = make_pass(10)
        assert filter_passes([p], NOW) == [p]

    def test_custom_margin(self):
        """提前量与预报标记时使用的值一致"""
        p = make_pass(10, epoch_in_future=True,
                      epoch_time=NOW + timedelta(minutes=10) + timedelta(minutes=60))
        assert filter_passes([p], NOW) == [p]
        assert filter_passes([p], NOW, epoch_margin_minutes=30) == []


class TestIlluminationFilters:
    """测试光照过滤"""

    @pytest.fixture
    def passes(self):
        # 输入顺序打乱，验证输出排序
        return [
            make_pass(300, ground_point_dark_at_start=False, ground_point_dark_at_end=False,
                      eclipsed_at_start=False, eclipsed_at_end=False),
            make_pass(100, ground_point_dark_at_start=True, ground_point_dark_at_end=True,
                      eclipsed_at_start=True, eclipsed_at_end=True),
            make_pass(200, ground_point_dark_at_start=False, ground_point_dark_at_end=True,
                      eclipsed_at_start=True, eclipsed_at_end=True,
                      eclipse_transitions=(EclipseTransition(NOW + timedelta(minutes=203), False),
                                           EclipseTransition(NOW + timedelta(minutes=206), True))),
            make_pass(400, ground_point_dark_at_start=False, ground_point_dark_at_end=False,
                      eclipsed_at_start=True, eclipsed_at_end=False),
        ]

    def test_no_filter_sorts_only(self, passes):
        result = filter_passes(passes, NOW)
        assert [p.start_time for p in result] == sorted(p.start_time for p in passes)

    def test_hide_sunlit(self, passes):
        result = filter_passes(passes, NOW, filter_config=VisibilityFilterConfig(hide_sunlit=True))
        # 全黑暗和部分黑暗的过境，按开始时间排序
        assert result == [passes[1], passes[2]]

    def test_show_only_lit(self, passes):
        result = filter_passes(passes, NOW, filter_config=VisibilityFilterConfig(show_only_lit=True))
        # 全程地影且无切换的过境被去掉
        assert result == [passes[2], passes[0], passes[3]]

    def test_both_filters(self, passes):
        config = VisibilityFilterConfig(hide_sunlit=True, show_only_lit=True)
        assert filter_passes(passes, NOW, filter_config=config) == [passes[2]]

    def test_unannotated_treated_as_lit(self):
        p = make_pass(10)
        assert filter_passes([p], NOW, filter_config=VisibilityFilterConfig(show_only_lit=True)) == [p]
        assert filter_passes([p], NOW, filter_config=VisibilityFilterConfig(hide_sunlit=True)) == []

    def test_input_not_modified(self, passes):
        before = list(passes)
        filter_passes(passes, NOW, filter_config=VisibilityFilterConfig(hide_sunlit=True))
        assert passes == before
