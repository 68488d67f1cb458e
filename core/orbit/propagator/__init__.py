"""轨道传播器"""

from .orbit_model import (
    OrbitModel, OrbitRegime, SatelliteState, PropagationError, InvalidElementSetError,
)

__all__ = [
    'OrbitModel',
    'OrbitRegime',
    'SatelliteState',
    'PropagationError',
    'InvalidElementSetError',
]
