"""
核心模块 - 轨道采样与过境预报引擎

包含数据模型、轨道计算、过境缓存等核心功能
"""

from .models.ground_point import GroundPoint, InvalidGroundPointError
from .models.satellite_pass import SatellitePass, EclipseTransition, PassMode
from .config import EngineConfig

__all__ = [
    'GroundPoint', 'InvalidGroundPointError',
    'SatellitePass', 'EclipseTransition', 'PassMode',
    'EngineConfig',
]
