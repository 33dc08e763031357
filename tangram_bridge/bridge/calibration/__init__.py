"""
Scale calibration and calibration persistence.

Public API:
    ScaleCalibrator(config, store).resolve_scale(frame) -> float
    CalibrationStore, InMemoryCalibrationStore, JsonCalibrationStore
"""

from .calibrator import (
    ScaleCalibrator,
    check_vertex_count,
    edge_lengths,
    find_right_angle_vertex,
    triangle_leg_length,
)
from .store import CalibrationStore, InMemoryCalibrationStore, JsonCalibrationStore

__all__ = [
    "ScaleCalibrator",
    "check_vertex_count",
    "edge_lengths",
    "find_right_angle_vertex",
    "triangle_leg_length",
    "CalibrationStore",
    "InMemoryCalibrationStore",
    "JsonCalibrationStore",
]
