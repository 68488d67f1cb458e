"""
参考系转换

TEME惯性系与伪地固系（PEF）之间的转换。
只考虑地球自转（GMST），不做岁差章动和极移修正，与SGP4输出精度匹配。
"""

import logging
import math
from datetime import datetime
from typing import Sequence

import numpy as np

from .utils import datetime_to_jd, gmst_from_jd, rotation_z, to_utc_naive

logger = logging.getLogger(__name__)


class OrientationResolutionError(RuntimeError):
    """无法确定给定时刻的地球定向"""
    pass


class ReferenceFrameTransform:
    """
    惯性系 <-> 地固系转换器

    旋转只依赖时间；超出支持范围的时间直接报错，不会退化为单位矩阵。
    """

    SUPPORTED_START = datetime(1957, 1, 1)
    SUPPORTED_END = datetime(2100, 1, 1)

    def _resolve(self, time: datetime) -> datetime:
        if not isinstance(time, datetime):
            raise OrientationResolutionError(f"Cannot resolve earth orientation for {time!r}")
        time = to_utc_naive(time)
        if not (self.SUPPORTED_START <= time < self.SUPPORTED_END):
            raise OrientationResolutionError(
                f"Earth orientation unavailable for {time.isoformat()} "
                f"(supported {self.SUPPORTED_START.year}-{self.SUPPORTED_END.year})"
            )
        return time

    def earth_rotation_angle(self, time: datetime) -> float:
        """
        获取地球自转角（GMST）

        Args:
            time: UTC时间

        Returns:
            float: 弧度

        Raises:
            OrientationResolutionError: 时间超出支持范围
        """
        jd, fr = datetime_to_jd(self._resolve(time))
        theta = float(gmst_from_jd(jd, fr))
        if not math.isfinite(theta):
            raise OrientationResolutionError(f"Non-finite rotation angle at {time.isoformat()}")
        return theta

    def rotation_matrix(self, time: datetime) -> np.ndarray:
        """惯性系到地固系的旋转矩阵"""
        return rotation_z(self.earth_rotation_angle(time))

    def inertial_to_fixed(self, position: Sequence[float], time: datetime) -> np.ndarray:
        """
        惯性系位置转换到地固系

        Args:
            position: 惯性系位置向量
            time: UTC时间

        Returns:
            np.ndarray: 地固系位置向量（单位与输入相同）
        """
        return self.rotation_matrix(time) @ np.asarray(position, dtype=float)

    def fixed_to_inertial(self, position: Sequence[float], time: datetime) -> np.ndarray:
        """地固系位置转换到惯性系（旋转矩阵的转置）"""
        return self.rotation_matrix(time).T @ np.asarray(position, dtype=float)

    def inertial_to_fixed_many(self, positions: np.ndarray, start: datetime,
                               offsets_seconds: np.ndarray) -> np.ndarray:
        """
        批量转换

        Args:
            positions: (N, 3) 惯性系位置
            start: 基准时间
            offsets_seconds: (N,) 相对基准时间的秒偏移

        Returns:
            np.ndarray: (N, 3) 地固系位置
        """
        start = self._resolve(start)
        offsets_seconds = np.asarray(offsets_seconds, dtype=float)
        if offsets_seconds.size:
            # 两端都必须在支持范围内
            last = offsets_seconds.max()
            if (self.SUPPORTED_END - start).total_seconds() <= last:
                raise OrientationResolutionError(
                    f"Earth orientation unavailable beyond {self.SUPPORTED_END.isoformat()}"
                )
            first = offsets_seconds.min()
            if (self.SUPPORTED_START - start).total_seconds() > first:
                raise OrientationResolutionError(
                    f"Earth orientation unavailable before {self.SUPPORTED_START.isoformat()}"
                )

        jd, fr = datetime_to_jd(start)
        theta = gmst_from_jd(jd, fr + offsets_seconds / 86400.0)
        if not np.all(np.isfinite(theta)):
            raise OrientationResolutionError("Non-finite rotation angle in batch")

        c = np.cos(theta)
        s = np.sin(theta)
        positions = np.asarray(positions, dtype=float)
        x = c * positions[:, 0] + s * positions[:, 1]
        y = -s * positions[:, 0] + c * positions[:, 1]
        return np.column_stack((x, y, positions[:, 2]))
