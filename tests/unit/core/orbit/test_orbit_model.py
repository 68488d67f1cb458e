"""
轨道模型测试

测试TLE解析、SGP4传播、派生属性和传播失败处理
"""

import math
from datetime import timedelta
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from core.orbit.propagator import (
    InvalidElementSetError,
    OrbitModel,
    OrbitRegime,
    PropagationError,
)


class TestParsing:
    """测试根数解析"""

    def test_from_three_line_tle(self, iss_tle):
        model = OrbitModel.from_tle(iss_tle)
        assert model.name == "ISS (ZARYA)"
        assert model.satnum == 25544

    def test_name_prefix_stripped(self, iss_lines):
        line1, line2 = iss_lines
        model = OrbitModel.from_tle(f"0 ISS (ZARYA)\n{line1}\n{line2}")
        assert model.name == "ISS (ZARYA)"

    def test_two_line_tle_uses_satnum_as_name(self, iss_lines):
        model = OrbitModel.from_tle("\n".join(iss_lines))
        assert model.name == "25544"

    def test_malformed_lines_rejected(self):
        with pytest.raises(InvalidElementSetError):
            OrbitModel("bad", "not a tle line", "neither is this")

    def test_wrong_line_count_rejected(self, iss_lines):
        with pytest.raises(InvalidElementSetError):
            OrbitModel.from_tle(iss_lines[0])

    def test_epoch(self, iss_model, iss_epoch):
        assert abs((iss_model.epoch - iss_epoch).total_seconds()) < 1.0

    def test_period(self, iss_model):
        """15.501 圈/天 -> 约92.9分钟"""
        assert iss_model.orbital_period == pytest.approx(1440.0 / 15.50103472, rel=1e-3)
        assert iss_model.orbital_period_seconds == pytest.approx(iss_model.orbital_period * 60)

    def test_with_elements_returns_new_instance(self, iss_model, iss_lines):
        updated = iss_model.with_elements(*iss_lines)
        assert updated is not iss_model
        assert updated.name == iss_model.name
        assert updated.line1 == iss_model.line1


class TestDerivedProperties:
    """测试轨道类型和幅宽"""

    def test_leo_regime(self, iss_model):
        assert iss_model.orbit_regime() == OrbitRegime.LEO
        assert not iss_model.is_deep_space

    def test_geo_regime(self, geo_model):
        assert geo_model.orbit_regime() == OrbitRegime.GEO
        assert geo_model.is_deep_space

    @pytest.mark.parametrize("name,swath", [
        ("METOP-B", 2900.0),
        ("AQUA", 2330.0),
        ("SUOMI NPP", 3000.0),
        ("SENTINEL-2A", 290.0),
        ("LANDSAT 9", 185.0),
        ("ISS (ZARYA)", 200.0),
    ])
    def test_swath_lookup(self, name, swath, iss_lines):
        assert OrbitModel(name, *iss_lines).swath_width() == swath


class TestPropagation:
    """测试SGP4传播"""

    def test_leo_radius(self, iss_model, start_time):
        state = iss_model.propagate(start_time)
        radius = np.linalg.norm(state.position_eci)
        assert 6600.0 < radius < 6900.0
        assert 7.0 < np.linalg.norm(state.velocity_eci) < 8.0

    def test_deterministic(self, iss_model, start_time):
        a = iss_model.propagate(start_time)
        b = iss_model.propagate(start_time)
        assert a == b

    def test_backward_propagation(self, iss_model, iss_epoch):
        state = iss_model.propagate(iss_epoch - timedelta(days=1))
        assert 6600.0 < np.linalg.norm(state.position_eci) < 6900.0

    def test_batch_matches_scalar(self, iss_model, start_time):
        offsets = np.array([0.0, 20.0, 600.0, 3600.0])
        positions, velocities = iss_model.propagate_many(start_time, offsets)
        assert positions.shape == (4, 3)
        for i, offset in enumerate(offsets):
            state = iss_model.propagate(start_time + timedelta(seconds=offset))
            np.testing.assert_allclose(positions[i], state.position_eci, atol=1e-6)
            np.testing.assert_allclose(velocities[i], state.velocity_eci, atol=1e-9)

    def test_is_eclipsed_returns_bool(self, iss_model, start_time):
        assert isinstance(iss_model.is_eclipsed(start_time), bool)

    def test_eclipse_occurs_each_orbit(self, iss_model, start_time):
        """一圈内既有光照段也有地影段"""
        period = iss_model.orbital_period_seconds
        states = {iss_model.is_eclipsed(start_time + timedelta(seconds=s))
                  for s in np.linspace(0, period, 60)}
        assert states == {True, False}


class TestPropagationFailure:
    """测试传播失败"""

    def _failing_satrec(self):
        satrec = MagicMock()
        satrec.satnum = 25544
        nan = (math.nan, math.nan, math.nan)
        satrec.sgp4.return_value = (6, nan, nan)
        satrec.sgp4_array.side_effect = lambda jd, fr: (
            np.full(len(jd), 6), np.full((len(jd), 3), math.nan), np.full((len(jd), 3), math.nan)
        )
        return satrec

    def test_error_code_raises_and_sets_flag(self, iss_model, start_time):
        with patch.object(iss_model, "_satrec", self._failing_satrec()):
            with pytest.raises(PropagationError) as exc_info:
                iss_model.propagate(start_time)
        assert exc_info.value.error_code == 6
        assert iss_model.error

    def test_error_flag_is_sticky(self, iss_model, start_time):
        with patch.object(iss_model, "_satrec", self._failing_satrec()):
            iss_model.position_eci(start_time)
        # 恢复后依然标记为失败，且不再传播
        with pytest.raises(PropagationError):
            iss_model.propagate(start_time)
        with pytest.raises(PropagationError):
            iss_model.propagate_many(start_time, np.array([0.0, 60.0]))
        assert iss_model.error
        assert iss_model.position_eci(start_time) is None

    def test_batch_failure(self, iss_model, start_time):
        with patch.object(iss_model, "_satrec", self._failing_satrec()):
            with pytest.raises(PropagationError):
                iss_model.propagate_many(start_time, np.array([0.0, 60.0]))
        assert iss_model.error

    def test_position_eci_returns_none_on_failure(self, iss_model, start_time):
        with patch.object(iss_model, "_satrec", self._failing_satrec()):
            assert iss_model.position_eci(start_time) is None

    def test_fresh_elements_clear_error(self, iss_model, iss_lines, start_time):
        with patch.object(iss_model, "_satrec", self._failing_satrec()):
            iss_model.position_eci(start_time)
        assert not iss_model.with_elements(*iss_lines).error
        assert iss_model.with_elements(*iss_lines).propagate(start_time).position_eci is not None
