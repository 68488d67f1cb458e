"""
轨道工具函数

提供时间转换、格林尼治恒星时、大地坐标转换等共享工具函数和常量
"""

import math
from datetime import datetime, timezone, timedelta
from typing import Tuple

import numpy as np
from sgp4.api import jday

# =============================================================================
# 常数
# =============================================================================

# 地球平均半径（千米），用于大圆距离
EARTH_RADIUS_KM = 6371.0

# WGS84椭球参数（千米）
WGS84_A_KM = 6378.137
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)

# 太阳半径（千米）
SUN_RADIUS_KM = 696340.0

# 天文单位（千米）
AU_KM = 149597870.7

# J2000.0 儒略日
J2000_JD = 2451545.0

SECONDS_PER_DAY = 86400.0
TWO_PI = 2.0 * math.pi


# =============================================================================
# 时间工具
# =============================================================================

def to_utc_naive(dt: datetime) -> datetime:
    """
    统一为无时区UTC时间

    带时区的时间转换为UTC后去掉时区信息，无时区时间视为UTC。

    Args:
        dt: 输入时间

    Returns:
        datetime: 无时区UTC时间
    """
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def datetime_to_jd(dt: datetime) -> Tuple[float, float]:
    """
    datetime转换为儒略日（整数部分+小数部分，保持精度）

    Args:
        dt: UTC时间

    Returns:
        (jd, fr)
    """
    dt = to_utc_naive(dt)
    return jday(dt.year, dt.month, dt.day,
                dt.hour, dt.minute, dt.second + dt.microsecond / 1e6)


def jd_to_datetime(jd: float, fr: float = 0.0) -> datetime:
    """
    儒略日转换为无时区UTC时间（微秒精度）

    Args:
        jd: 儒略日整数部分
        fr: 儒略日小数部分

    Returns:
        datetime
    """
    days = (jd - 2440587.5) + fr
    return datetime(1970, 1, 1) + timedelta(microseconds=round(days * SECONDS_PER_DAY * 1e6))


def time_grid(start: datetime, end: datetime, step_seconds: float) -> np.ndarray:
    """
    生成[start, end]区间内的秒偏移序列（包含终点）

    Args:
        start: 开始时间
        end: 结束时间
        step_seconds: 步长（秒）

    Returns:
        np.ndarray: 相对start的秒偏移
    """
    total = (end - start).total_seconds()
    if total <= 0:
        return np.zeros(1)
    offsets = np.arange(0.0, total, step_seconds)
    if offsets.size == 0 or offsets[-1] < total:
        offsets = np.append(offsets, total)
    return offsets


# =============================================================================
# 地球定向
# =============================================================================

def gmst_from_jd(jd, fr):
    """
    格林尼治平恒星时（IAU-82模型）

    与SGP4/TEME配套使用，支持标量和numpy数组。

    Args:
        jd: 儒略日整数部分（UT1近似为UTC）
        fr: 儒略日小数部分

    Returns:
        GMST（弧度，[0, 2π)）
    """
    tut1 = ((jd - J2000_JD) + fr) / 36525.0
    seconds = (-6.2e-6 * tut1 ** 3 + 0.093104 * tut1 ** 2
               + (876600.0 * 3600.0 + 8640184.812866) * tut1 + 67310.54841)
    return np.mod(seconds * (math.pi / 180.0) / 240.0, TWO_PI)


def rotation_z(theta: float) -> np.ndarray:
    """
    惯性系到地固系的绕Z轴旋转矩阵

    Args:
        theta: 旋转角（弧度）

    Returns:
        3x3 旋转矩阵
    """
    c = math.cos(theta)
    s = math.sin(theta)
    return np.array([[c, s, 0.0],
                     [-s, c, 0.0],
                     [0.0, 0.0, 1.0]])


# =============================================================================
# 坐标转换
# =============================================================================

def geodetic_to_ecef(latitude: float, longitude: float, height_km: float) -> np.ndarray:
    """
    WGS84大地坐标转换为地固系坐标

    Args:
        latitude: 纬度（度）
        longitude: 经度（度）
        height_km: 椭球高（千米）

    Returns:
        np.ndarray: (x, y, z) 千米
    """
    lat = math.radians(latitude)
    lon = math.radians(longitude)
    sin_lat = math.sin(lat)
    n = WGS84_A_KM / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    x = (n + height_km) * math.cos(lat) * math.cos(lon)
    y = (n + height_km) * math.cos(lat) * math.sin(lon)
    z = (n * (1.0 - WGS84_E2) + height_km) * sin_lat
    return np.array([x, y, z])


def ecef_to_geodetic(positions: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    地固系坐标转换为WGS84大地坐标（迭代法，支持批量）

    Args:
        positions: (N, 3) 或 (3,) 千米

    Returns:
        (latitude, longitude, height)：度、度、千米
    """
    pos = np.atleast_2d(positions)
    x, y, z = pos[:, 0], pos[:, 1], pos[:, 2]
    lon = np.arctan2(y, x)
    p = np.hypot(x, y)
    lat = np.arctan2(z, p * (1.0 - WGS84_E2))
    for _ in range(5):
        sin_lat = np.sin(lat)
        n = WGS84_A_KM / np.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
        lat = np.arctan2(z + n * WGS84_E2 * sin_lat, p)
    sin_lat = np.sin(lat)
    n = WGS84_A_KM / np.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    cos_lat = np.cos(lat)
    # 极区用z分量计算高度
    height = np.where(
        np.abs(cos_lat) > 1e-10,
        p / np.where(np.abs(cos_lat) > 1e-10, cos_lat, 1.0) - n,
        np.abs(z) - n * (1.0 - WGS84_E2),
    )
    return np.degrees(lat), np.degrees(lon), height


def look_angles(observer_ecef: np.ndarray, latitude: float, longitude: float,
                target_ecef: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    计算观测点到目标的方位角、仰角和斜距（支持批量）

    Args:
        observer_ecef: 观测点地固系坐标（千米）
        latitude: 观测点纬度（度）
        longitude: 观测点经度（度）
        target_ecef: 目标地固系坐标 (N, 3) 或 (3,)，千米

    Returns:
        (azimuth, elevation, range)：度、度、千米
    """
    lat = math.radians(latitude)
    lon = math.radians(longitude)
    sin_lat, cos_lat = math.sin(lat), math.cos(lat)
    sin_lon, cos_lon = math.sin(lon), math.cos(lon)

    d = np.atleast_2d(target_ecef) - observer_ecef
    east = -sin_lon * d[:, 0] + cos_lon * d[:, 1]
    north = -sin_lat * cos_lon * d[:, 0] - sin_lat * sin_lon * d[:, 1] + cos_lat * d[:, 2]
    up = cos_lat * cos_lon * d[:, 0] + cos_lat * sin_lon * d[:, 1] + sin_lat * d[:, 2]

    rng = np.sqrt(east ** 2 + north ** 2 + up ** 2)
    elevation = np.degrees(np.arcsin(np.clip(up / np.where(rng > 0, rng, 1.0), -1.0, 1.0)))
    azimuth = np.mod(np.degrees(np.arctan2(east, north)), 360.0)
    return azimuth, elevation, rng


def great_circle_distance(lat1, lon1, lat2, lon2, radius: float = EARTH_RADIUS_KM):
    """
    球面大圆距离（haversine，支持批量）

    Args:
        lat1, lon1: 点1（度）
        lat2, lon2: 点2（度）
        radius: 球半径（千米）

    Returns:
        距离（千米）
    """
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    dphi = phi2 - phi1
    dlmb = np.radians(lon2) - np.radians(lon1)
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
    return radius * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))
