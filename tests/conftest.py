"""
Pytest 配置文件

定义共享的 fixtures：参考TLE、地面点、引擎配置
"""

from datetime import datetime

import pytest

from core.config import EngineConfig
from core.models.ground_point import GroundPoint
from core.orbit.propagator.orbit_model import OrbitModel


# ISS参考根数，历元 2019-12-09 16:38:29 UTC
ISS_LINE1 = "1 25544U 98067A   19343.69339541  .00001764  00000-0  38792-4 0  9991"
ISS_LINE2 = "2 25544  51.6439 211.2001 0007417  17.6667  85.6398 15.50103472202482"

# 地球同步轨道根数（周期约1436分钟）
GEO_LINE1 = "1 99999U 20001A   19343.50000000  .00000000  00000-0  00000-0 0  9990"
GEO_LINE2 = "2 99999   0.0500  90.0000 0002000 270.0000  90.0000  1.00270000    10"

ISS_EPOCH = datetime(2019, 12, 9, 16, 38, 29)


@pytest.fixture
def iss_tle():
    """三行格式ISS根数"""
    return f"ISS (ZARYA)\n{ISS_LINE1}\n{ISS_LINE2}\n"


@pytest.fixture
def iss_model():
    """ISS轨道模型"""
    return OrbitModel("ISS (ZARYA)", ISS_LINE1, ISS_LINE2)


@pytest.fixture
def metop_model():
    """名称为METOP-B的近地轨道模型（幅宽2900km）"""
    return OrbitModel("METOP-B", ISS_LINE1, ISS_LINE2)


@pytest.fixture
def geo_model():
    """地球同步轨道模型"""
    return OrbitModel("GEO TEST", GEO_LINE1, GEO_LINE2)


@pytest.fixture
def munich():
    """中纬度城市地面点"""
    return GroundPoint(latitude=48.1351, longitude=11.5820, height=519.0, name="Munich")


@pytest.fixture
def start_time():
    """历元之后的预报起点"""
    return datetime(2019, 12, 10, 0, 0, 0)


@pytest.fixture
def engine_config():
    """默认引擎配置"""
    return EngineConfig()


@pytest.fixture
def iss_lines():
    """ISS根数两行"""
    return ISS_LINE1, ISS_LINE2


@pytest.fixture
def iss_epoch():
    return ISS_EPOCH
