"""
光照计算器测试

测试太阳位置、锥形本影、地面点晨昏和地影切换搜索
"""

import math
from datetime import datetime, timedelta

import numpy as np
import pytest

from core.models.ground_point import GroundPoint
from core.orbit.illumination import IlluminationCalculator
from core.orbit.utils import AU_KM


@pytest.fixture
def calculator():
    return IlluminationCalculator()


class TestSunPosition:
    """测试太阳位置"""

    def test_distance_about_one_au(self, calculator):
        distance = np.linalg.norm(calculator.sun_position(datetime(2024, 3, 20)))
        assert 0.98 * AU_KM < distance < 1.02 * AU_KM

    def test_summer_solstice_declination(self, calculator):
        sun = calculator.sun_position(datetime(2024, 6, 20, 21, 0))
        declination = math.degrees(math.asin(sun[2] / np.linalg.norm(sun)))
        assert declination == pytest.approx(23.44, abs=0.1)

    def test_batch_matches_scalar(self, calculator):
        start = datetime(2024, 1, 1)
        offsets = np.array([0.0, 3600.0, 86400.0])
        batch = calculator.sun_positions(start, offsets)
        for i, offset in enumerate(offsets):
            np.testing.assert_allclose(
                batch[i], calculator.sun_position(start + timedelta(seconds=offset)), rtol=1e-9
            )


class TestShadow:
    """测试锥形本影模型"""

    def test_sunlit_side(self, calculator):
        assert calculator.is_in_shadow((7000.0, 0.0, 0.0), (1.496e8, 0.0, 0.0)) is False

    def test_behind_earth(self, calculator):
        assert calculator.is_in_shadow((-7000.0, 0.0, 0.0), (1.496e8, 0.0, 0.0)) is True

    def test_night_side_outside_cone(self, calculator):
        assert calculator.is_in_shadow((-7000.0, 7000.0, 0.0), (1.496e8, 0.0, 0.0)) is False

    def test_umbra_narrows_with_distance(self, calculator):
        """本影锥半径随距离减小：同样的横向偏移在远处不在本影中"""
        sun = (1.496e8, 0.0, 0.0)
        assert calculator.is_in_shadow((-7000.0, 6300.0, 0.0), sun)
        assert not calculator.is_in_shadow((-400000.0, 6300.0, 0.0), sun)

    def test_vectorized(self, calculator):
        sats = np.array([[7000.0, 0.0, 0.0], [-7000.0, 0.0, 0.0]])
        suns = np.array([[1.496e8, 0.0, 0.0]] * 2)
        np.testing.assert_array_equal(calculator.is_in_shadow(sats, suns), [False, True])


class TestGroundPointLighting:
    """测试地面点晨昏"""

    def test_noon_is_light(self, calculator):
        point = GroundPoint(latitude=48.1351, longitude=11.582, name="Munich")
        noon = datetime(2024, 6, 21, 11, 15)
        assert calculator.sun_elevation(point, noon) > 50.0
        assert not calculator.is_ground_point_dark(point, noon)
        assert calculator.lighting_condition(point, noon) == "Light"

    def test_midnight_is_dark(self, calculator):
        point = GroundPoint(latitude=48.1351, longitude=11.582, name="Munich")
        midnight = datetime(2024, 12, 21, 23, 15)
        assert calculator.sun_elevation(point, midnight) < -50.0
        assert calculator.is_ground_point_dark(point, midnight)
        assert calculator.lighting_condition(point, midnight) == "Dark"

    def test_twilight_threshold(self):
        """太阳在地平线下3°时：民用晨昏线(-6°)内仍算亮，阈值0°时算暗"""
        point = GroundPoint(latitude=0.0, longitude=0.0)
        civil = IlluminationCalculator()
        strict = IlluminationCalculator(twilight_elevation=0.0)
        # 春分附近赤道，日落约18:07 UTC，之后每分钟下降约0.25°
        t = datetime(2024, 3, 20, 18, 20)
        elevation = civil.sun_elevation(point, t)
        assert -6.0 < elevation < 0.0
        assert not civil.is_ground_point_dark(point, t)
        assert strict.is_ground_point_dark(point, t)


class TestEclipseTransitions:
    """测试过境期间的地影切换搜索"""

    def test_transitions_alternate_and_lie_inside(self, calculator, iss_model, start_time):
        end_time = start_time + timedelta(hours=6)
        transitions = calculator.find_eclipse_transitions(iss_model, start_time, end_time)

        # 约4圈，每圈进出地影各一次
        assert 6 <= len(transitions) <= 10
        for a, b in zip(transitions, transitions[1:]):
            assert a.time < b.time
            assert a.enters_shadow != b.enters_shadow
        assert all(start_time < t.time < end_time for t in transitions)

    def test_transition_direction_matches_state(self, calculator, iss_model, start_time):
        transitions = calculator.find_eclipse_transitions(
            iss_model, start_time, start_time + timedelta(hours=2)
        )
        for t in transitions:
            assert iss_model.is_eclipsed(t.time + timedelta(seconds=5)) == t.enters_shadow
            assert iss_model.is_eclipsed(t.time - timedelta(seconds=5)) != t.enters_shadow

    def test_empty_interval(self, calculator, iss_model, start_time):
        assert calculator.find_eclipse_transitions(iss_model, start_time, start_time) == []
