"""核心数据模型"""

from .ground_point import GroundPoint, InvalidGroundPointError
from .satellite_pass import SatellitePass, EclipseTransition, PassMode

__all__ = [
    'GroundPoint', 'InvalidGroundPointError',
    'SatellitePass', 'EclipseTransition', 'PassMode',
]
