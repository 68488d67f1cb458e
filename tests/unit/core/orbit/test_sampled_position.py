"""
采样位置缓存测试

- 窗口覆盖
- 增量扩展（只计算新增后缀）
- 插值精度与边界保持
- 传播失败后停止采样
"""

import math
from datetime import timedelta
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from core.config import SamplingConfig
from core.orbit.frames import ReferenceFrameTransform
from core.orbit.sampled_position import Frame, SampledPositionCache


@pytest.fixture
def cache(iss_model):
    return SampledPositionCache(iss_model)


class TestCoverage:
    """测试窗口覆盖"""

    def test_step_is_period_over_120(self, cache, iss_model):
        assert cache.step_seconds == pytest.approx(iss_model.orbital_period_seconds / 120)

    def test_window_containment(self, cache, start_time):
        cache.ensure_coverage(start_time)
        period = cache.period_seconds
        for fraction in np.linspace(-0.5, 1.5, 41):
            t = start_time + timedelta(seconds=fraction * period)
            assert cache.is_interpolated(t)
            result = cache.lookup(t)
            assert result is not None
            assert not result.degraded

    def test_initial_sample_count(self, cache, start_time):
        computed = cache.ensure_coverage(start_time)
        # 2个周期，每周期120个采样
        assert 240 <= computed <= 242
        assert len(cache.samples) == computed

    def test_repeat_is_noop(self, cache, start_time):
        cache.ensure_coverage(start_time)
        assert cache.ensure_coverage(start_time) == 0

    def test_incremental_extension_computes_suffix_only(self, cache, iss_model, start_time):
        with patch.object(iss_model, "propagate", wraps=iss_model.propagate) as spy:
            cache.ensure_coverage(start_time)
            initial_calls = spy.call_count

            computed = cache.ensure_coverage(start_time + timedelta(seconds=60))

        assert spy.call_count - initial_calls == computed
        # 60秒只需要1-2个新采样（步长约46秒）
        assert 1 <= computed <= 3

    def test_backward_extension_computes_prefix_only(self, cache, start_time):
        cache.ensure_coverage(start_time)
        computed = cache.ensure_coverage(start_time - timedelta(seconds=100))
        assert 1 <= computed <= 4

    def test_old_samples_trimmed(self, cache, start_time):
        cache.ensure_coverage(start_time)
        later = start_time + timedelta(seconds=cache.period_seconds)
        cache.ensure_coverage(later)

        window_start, window_end = cache.target_window(later)
        first, last = cache.covered_interval
        step = timedelta(seconds=cache.step_seconds)
        assert window_start - step < first <= window_start
        assert window_end <= last < window_end + step

    def test_samples_ordered_and_unique(self, cache, start_time):
        cache.ensure_coverage(start_time)
        cache.ensure_coverage(start_time + timedelta(minutes=30))
        cache.ensure_coverage(start_time + timedelta(minutes=10))
        times = [s.time for s in cache.samples]
        assert times == sorted(set(times))

    def test_disjoint_jump_rebuilds(self, cache, start_time):
        cache.ensure_coverage(start_time)
        far = start_time + timedelta(days=2)
        cache.ensure_coverage(far)
        assert cache.is_interpolated(far)
        assert not cache.is_interpolated(start_time)


class TestInterpolation:
    """测试插值"""

    def test_matches_direct_propagation(self, cache, iss_model, start_time):
        cache.ensure_coverage(start_time)
        frames = ReferenceFrameTransform()
        for seconds in (7.3, 1234.5, 3000.1):
            t = start_time + timedelta(seconds=seconds)
            inertial = np.asarray(iss_model.propagate(t).position_eci) * 1000.0
            fixed = frames.inertial_to_fixed(inertial, t)
            assert np.linalg.norm(cache.position_at(t, Frame.INERTIAL) - inertial) < 10.0
            assert np.linalg.norm(cache.position_at(t, Frame.FIXED) - fixed) < 10.0

    def test_exact_sample_returned_unchanged(self, cache, start_time):
        cache.ensure_coverage(start_time)
        sample = cache.samples[10]
        np.testing.assert_array_equal(cache.position_at(sample.time), sample.position_fixed)

    def test_positions_in_meters(self, cache, start_time):
        cache.ensure_coverage(start_time)
        radius = np.linalg.norm(cache.position_at(start_time))
        assert 6.6e6 < radius < 6.9e6

    def test_hold_at_edge(self, cache, start_time):
        cache.ensure_coverage(start_time)
        result = cache.lookup(start_time + timedelta(days=1))
        assert result.degraded
        np.testing.assert_array_equal(result.position, cache.samples[-1].position_fixed)

        result = cache.lookup(start_time - timedelta(days=1))
        assert result.degraded
        np.testing.assert_array_equal(result.position, cache.samples[0].position_fixed)

    def test_empty_cache(self, cache, start_time):
        assert cache.lookup(start_time) is None
        assert cache.position_at(start_time) is None
        assert cache.covered_interval is None
        assert not cache.is_interpolated(start_time)


class TestHelpers:
    """测试轨迹辅助方法"""

    def test_positions_for_next_orbit_closed_loop(self, cache, start_time):
        cache.ensure_coverage(start_time)
        positions = cache.positions_for_next_orbit(start_time)
        assert 119 <= len(positions) - 1 <= 122
        np.testing.assert_array_equal(positions[0], positions[-1])

    def test_positions_for_next_orbit_open(self, cache, start_time):
        cache.ensure_coverage(start_time)
        closed = cache.positions_for_next_orbit(start_time, loop=True)
        opened = cache.positions_for_next_orbit(start_time, loop=False)
        assert len(closed) == len(opened) + 1

    def test_ground_track(self, cache, start_time):
        cache.ensure_coverage(start_time)
        track = cache.ground_track(start_time, samples_fwd=2, samples_bwd=1, interval=600)
        assert len(track) == 4
        for position in track:
            assert 6.6e6 < np.linalg.norm(position) < 6.9e6


class TestValidity:
    """测试传播失败"""

    def test_failure_stops_sampling(self, cache, iss_model, start_time):
        cache.ensure_coverage(start_time)
        assert cache.valid

        failing = MagicMock()
        failing.satnum = 25544
        nan = (math.nan, math.nan, math.nan)
        failing.sgp4.return_value = (6, nan, nan)
        with patch.object(iss_model, "_satrec", failing):
            cache.ensure_coverage(start_time + timedelta(minutes=30))

        assert not cache.valid
        assert iss_model.error
        # 失败后不再计算新采样
        assert cache.ensure_coverage(start_time + timedelta(hours=3)) == 0

    def test_from_config(self, iss_model):
        cache = SampledPositionCache.from_config(iss_model, SamplingConfig(samples_per_orbit=60))
        assert cache.step_seconds == pytest.approx(iss_model.orbital_period_seconds / 60)
        assert cache.interpolation_degree == 5

    def test_invalid_parameters(self, iss_model):
        with pytest.raises(ValueError):
            SampledPositionCache(iss_model, samples_per_orbit=1)
        with pytest.raises(ValueError):
            SampledPositionCache(iss_model, interpolation_degree=0)
