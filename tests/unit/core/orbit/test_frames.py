"""
参考系转换测试
"""

import math
from datetime import datetime, timedelta

import numpy as np
import pytest

from core.orbit.frames import OrientationResolutionError, ReferenceFrameTransform
from core.orbit.utils import datetime_to_jd, gmst_from_jd


@pytest.fixture
def frames():
    return ReferenceFrameTransform()


class TestRotation:
    """测试惯性系/地固系旋转"""

    def test_rotation_angle_is_gmst(self, frames):
        t = datetime(2024, 3, 20, 12, 0)
        jd, fr = datetime_to_jd(t)
        assert frames.earth_rotation_angle(t) == pytest.approx(float(gmst_from_jd(jd, fr)))

    def test_norm_and_z_preserved(self, frames):
        t = datetime(2024, 3, 20, 12, 0)
        position = np.array([6778.0, -1200.5, 3000.25])
        fixed = frames.inertial_to_fixed(position, t)
        assert np.linalg.norm(fixed) == pytest.approx(np.linalg.norm(position))
        assert fixed[2] == pytest.approx(position[2])

    def test_inverse(self, frames):
        t = datetime(2024, 3, 20, 12, 0)
        position = np.array([6778.0, -1200.5, 3000.25])
        back = frames.fixed_to_inertial(frames.inertial_to_fixed(position, t), t)
        np.testing.assert_allclose(back, position, atol=1e-9)

    def test_matrix_is_orthonormal(self, frames):
        m = frames.rotation_matrix(datetime(2030, 1, 1))
        np.testing.assert_allclose(m @ m.T, np.eye(3), atol=1e-12)

    def test_rotation_direction(self, frames):
        """惯性系中固定的点在地固系中向西移动"""
        t = datetime(2024, 1, 1)
        position = np.array([7000.0, 0.0, 0.0])
        a = frames.inertial_to_fixed(position, t)
        b = frames.inertial_to_fixed(position, t + timedelta(minutes=10))
        lon_a = math.atan2(a[1], a[0])
        lon_b = math.atan2(b[1], b[0])
        diff = (lon_b - lon_a + math.pi) % (2 * math.pi) - math.pi
        assert diff < 0

    def test_batch_matches_scalar(self, frames):
        start = datetime(2024, 5, 1, 6, 0)
        offsets = np.array([0.0, 60.0, 3600.0, 86400.0])
        positions = np.array([[7000.0, 10.0, 5.0]] * 4)
        batch = frames.inertial_to_fixed_many(positions, start, offsets)
        for i, offset in enumerate(offsets):
            scalar = frames.inertial_to_fixed(positions[i], start + timedelta(seconds=offset))
            np.testing.assert_allclose(batch[i], scalar, atol=1e-6)


class TestOrientationErrors:
    """测试超出支持范围时报错，不退化为单位矩阵"""

    def test_far_future_raises(self, frames):
        with pytest.raises(OrientationResolutionError):
            frames.inertial_to_fixed([7000.0, 0.0, 0.0], datetime(2150, 1, 1))

    def test_before_space_age_raises(self, frames):
        with pytest.raises(OrientationResolutionError):
            frames.rotation_matrix(datetime(1950, 1, 1))

    def test_non_datetime_raises(self, frames):
        with pytest.raises(OrientationResolutionError):
            frames.earth_rotation_angle(float("nan"))

    def test_batch_crossing_limit_raises(self, frames):
        start = datetime(2099, 12, 31, 12, 0)
        offsets = np.array([0.0, 86400.0])
        with pytest.raises(OrientationResolutionError):
            frames.inertial_to_fixed_many(np.zeros((2, 3)), start, offsets)
