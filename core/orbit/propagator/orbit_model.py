"""
轨道模型

封装单个目标的TLE两行根数，基于sgp4库传播TEME惯性系位置速度，
并提供轨道周期、轨道类型、地影和幅宽等派生信息。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple
import logging
import math

import numpy as np
from sgp4.api import Satrec

from ..illumination import IlluminationCalculator
from ..utils import TWO_PI, datetime_to_jd, jd_to_datetime, to_utc_naive

logger = logging.getLogger(__name__)


class PropagationError(RuntimeError):
    """轨道传播失败（根数退化、目标再入等）"""

    def __init__(self, message: str, satnum: Optional[int] = None,
                 error_code: Optional[int] = None):
        super().__init__(message)
        self.satnum = satnum
        self.error_code = error_code


class InvalidElementSetError(ValueError):
    """TLE格式错误"""
    pass


class OrbitRegime(Enum):
    """轨道类型"""
    LEO = "LEO"  # 近地轨道
    MEO = "MEO"  # 中地球轨道
    GEO = "GEO"  # 地球同步轨道
    HEO = "HEO"  # 大椭圆轨道


@dataclass(frozen=True)
class SatelliteState:
    """卫星状态"""
    timestamp: datetime
    position_eci: Tuple[float, float, float]  # km
    velocity_eci: Tuple[float, float, float]  # km/s


# 已知载荷幅宽（千米）：精确名称
_SWATH_BY_NAME = {
    "SUOMI NPP": 3000.0,
    "NOAA 20 (JPSS-1)": 3000.0,
    "NOAA 21 (JPSS-2)": 3000.0,
    "AQUA": 2330.0,
    "TERRA": 2330.0,
}

# 已知载荷幅宽（千米）：名称包含
_SWATH_BY_KEYWORD = (
    ("SENTINEL-2", 290.0),
    ("SENTINEL-3", 740.0),
    ("LANDSAT", 185.0),
    ("FENGYUN", 2900.0),
    ("METOP", 2900.0),
)

DEFAULT_SWATH_KM = 200.0


class OrbitModel:
    """
    轨道模型

    根数在构造后不可变；更新根数需要创建新实例（见 with_elements）。
    传播是确定性的：同一时刻重复调用返回完全相同的结果。
    一旦传播失败，error 标志保持为 True，之后的传播直接抛出 PropagationError，
    直到换用新根数（with_elements）。
    """

    DEEP_SPACE_PERIOD_MINUTES = 225.0
    GEO_PERIOD_MINUTES = 1436.0

    def __init__(self, name: str, line1: str, line2: str):
        """
        初始化轨道模型

        Args:
            name: 目标名称
            line1: TLE第一行
            line2: TLE第二行

        Raises:
            InvalidElementSetError: TLE格式错误
        """
        line1 = line1.strip()
        line2 = line2.strip()
        if not line1.startswith("1 ") or not line2.startswith("2 "):
            raise InvalidElementSetError("TLE lines must start with '1 ' and '2 '")

        try:
            satrec = Satrec.twoline2rv(line1, line2)
        except (ValueError, IndexError) as e:
            raise InvalidElementSetError(f"Cannot parse TLE: {e}") from e

        if satrec.no_kozai <= 0:
            raise InvalidElementSetError(f"Invalid mean motion in TLE for {satrec.satnum}")

        self._line1 = line1
        self._line2 = line2
        self._satrec = satrec
        self._name = name.strip() or str(satrec.satnum)
        self._period_minutes = TWO_PI / satrec.no_kozai
        self._epoch = jd_to_datetime(satrec.jdsatepoch, satrec.jdsatepochF)
        self._error = satrec.error != 0
        self._illumination = IlluminationCalculator()

        if self._error:
            logger.warning(f"Element set for {self._name} failed SGP4 init (code {satrec.error})")

    @classmethod
    def from_tle(cls, tle: str) -> 'OrbitModel':
        """
        从TLE文本创建（两行或带名称的三行）

        名称行以 "0 " 开头时去掉该前缀。
        """
        lines = [line for line in tle.strip().splitlines() if line.strip()]
        if len(lines) == 3:
            name = lines[0].strip()
            if name.startswith("0 "):
                name = name[2:]
            return cls(name, lines[1], lines[2])
        if len(lines) == 2:
            return cls("", lines[0], lines[1])
        raise InvalidElementSetError(f"Expected 2 or 3 TLE lines, got {len(lines)}")

    def with_elements(self, line1: str, line2: str) -> 'OrbitModel':
        """使用新根数创建新的轨道模型（保留名称）"""
        return OrbitModel(self._name, line1, line2)

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def line1(self) -> str:
        return self._line1

    @property
    def line2(self) -> str:
        return self._line2

    @property
    def satnum(self) -> int:
        """编目号"""
        return self._satrec.satnum

    @property
    def epoch(self) -> datetime:
        """根数历元（UTC）"""
        return self._epoch

    @property
    def orbital_period(self) -> float:
        """轨道周期（分钟）"""
        return self._period_minutes

    @property
    def orbital_period_seconds(self) -> float:
        return self._period_minutes * 60.0

    @property
    def error(self) -> bool:
        """传播是否失败过"""
        return self._error

    @property
    def is_deep_space(self) -> bool:
        return self._period_minutes >= self.DEEP_SPACE_PERIOD_MINUTES

    def orbit_regime(self) -> OrbitRegime:
        """按周期和偏心率划分轨道类型"""
        if self._satrec.ecco > 0.25:
            return OrbitRegime.HEO
        if self._period_minutes < self.DEEP_SPACE_PERIOD_MINUTES:
            return OrbitRegime.LEO
        if abs(self._period_minutes - self.GEO_PERIOD_MINUTES) <= 0.1 * self.GEO_PERIOD_MINUTES:
            return OrbitRegime.GEO
        return OrbitRegime.MEO

    def swath_width(self) -> float:
        """载荷幅宽（千米），仅幅宽模型使用"""
        if self._name in _SWATH_BY_NAME:
            return _SWATH_BY_NAME[self._name]
        for keyword, swath in _SWATH_BY_KEYWORD:
            if keyword in self._name:
                return swath
        return DEFAULT_SWATH_KM

    # ------------------------------------------------------------------
    # 传播
    # ------------------------------------------------------------------

    def _fail(self, message: str, code: Optional[int]) -> PropagationError:
        if not self._error:
            logger.warning(f"Propagation failed for {self._name} ({self.satnum}): {message}")
        self._error = True
        return PropagationError(message, satnum=self.satnum, error_code=code)

    def _check_usable(self) -> None:
        """传播失败过的根数不再使用，直到换用新根数"""
        if self._error:
            raise PropagationError(
                f"Element set for {self._name} ({self.satnum}) failed earlier, new elements required",
                satnum=self.satnum,
            )

    def propagate(self, dt: datetime) -> SatelliteState:
        """
        传播到指定时间

        Args:
            dt: 目标时间（UTC）

        Returns:
            SatelliteState: TEME惯性系状态

        Raises:
            PropagationError: SGP4返回错误码或非有限值
        """
        self._check_usable()
        jd, fr = datetime_to_jd(dt)
        code, position, velocity = self._satrec.sgp4(jd, fr)

        if code != 0:
            raise self._fail(f"SGP4 propagation error code: {code}", code)
        if not all(math.isfinite(v) for v in position):
            raise self._fail("SGP4 returned non-finite position", code)

        return SatelliteState(
            timestamp=to_utc_naive(dt),
            position_eci=tuple(position),
            velocity_eci=tuple(velocity),
        )

    def propagate_many(self, start: datetime,
                       offsets_seconds: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        批量传播

        Args:
            start: 基准时间
            offsets_seconds: 相对基准时间的秒偏移

        Returns:
            (positions, velocities): (N, 3) 千米、千米/秒

        Raises:
            PropagationError: 任一时刻传播失败
        """
        self._check_usable()
        jd, fr = datetime_to_jd(start)
        offsets_seconds = np.asarray(offsets_seconds, dtype=float)
        jd_array = np.full(offsets_seconds.shape, jd)
        fr_array = fr + offsets_seconds / 86400.0

        codes, positions, velocities = self._satrec.sgp4_array(jd_array, fr_array)

        failed = np.nonzero(codes)[0]
        if failed.size:
            first = int(failed[0])
            when = start + timedelta(seconds=float(offsets_seconds[first]))
            raise self._fail(
                f"SGP4 propagation error code {int(codes[first])} at {when.isoformat()}",
                int(codes[first]),
            )
        if not np.all(np.isfinite(positions)):
            raise self._fail("SGP4 returned non-finite positions", None)

        return positions, velocities

    def position_eci(self, dt: datetime) -> Optional[Tuple[float, float, float]]:
        """惯性系位置（千米），传播失败返回None"""
        try:
            return self.propagate(dt).position_eci
        except PropagationError:
            return None

    def is_eclipsed(self, dt: datetime) -> bool:
        """
        目标是否处于地球本影

        Raises:
            PropagationError: 轨道传播失败
        """
        position = np.asarray(self.propagate(dt).position_eci)
        return self._illumination.is_in_shadow(position, self._illumination.sun_position(dt))

    def __repr__(self) -> str:
        return (f"OrbitModel(name={self._name!r}, satnum={self.satnum}, "
                f"period={self._period_minutes:.2f}min, epoch={self._epoch.isoformat()})")
