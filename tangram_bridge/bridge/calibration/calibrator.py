"""
Scale Calibrator.

Estimates the scale (rectified pixels per one square side) from the pieces of
a frame. Fallback order, first success wins:

    1. square          -> mean edge length
    2. large triangle  -> leg / 1.0
    3. medium triangle -> leg / (1/sqrt(2))
    4. small triangle  -> leg / 0.5

Leg ratios come from BridgeConfig.triangle_leg_ratios. Leg length is the mean
of the two edges adjacent to the right-angle vertex.
"""

from __future__ import annotations
from typing import Callable
import numpy as np

from ..config import BridgeConfig
from ..errors import (
    AmbiguousRightAngle,
    DegenerateShape,
    ExcessVertices,
    InsufficientVertices,
    NoCalibrationSource,
    ObjectSkip,
)
from ..models import CVFrame, CVObject, PieceShape, PieceType, piece_type_for_label
from .store import CalibrationStore
from ...logger import get_logger

logger = get_logger(__name__)


def edge_lengths(vertices: np.ndarray) -> np.ndarray:
    """Lengths of the closed polygon's edges; edge i runs from vertex i to i+1."""
    return np.linalg.norm(np.roll(vertices, -1, axis=0) - vertices, axis=1)


def check_vertex_count(vertices: np.ndarray, piece_type: PieceType) -> None:
    """
    Raises:
        InsufficientVertices: Fewer vertices than the shape requires
        ExcessVertices: More vertices than the shape requires
    """
    required = piece_type.vertex_count
    count = len(vertices)
    if count < required:
        raise InsufficientVertices(f"{piece_type.value} needs {required} vertices, got {count}")
    if count > required:
        raise ExcessVertices(f"{piece_type.value} needs {required} vertices, got {count}")


def find_right_angle_vertex(vertices: np.ndarray, ambiguity_ratio: float = 0.05) -> int:
    """
    Index of a triangle's right-angle vertex.

    Args:
        vertices: (3, 2) triangle vertices
        ambiguity_ratio: Minimum relative gap between the two longest edges

    Returns:
        Index (0..2) of the vertex opposite the hypotenuse

    Raises:
        AmbiguousRightAngle: Two longest edges nearly equal
        DegenerateShape: Zero-length hypotenuse

    Notes:
        - Edge i joins vertex i and vertex i+1, so the vertex not on edge i
          is vertex i+2
    """
    lengths = edge_lengths(vertices)
    order = np.argsort(lengths)
    longest = float(lengths[order[2]])
    second = float(lengths[order[1]])

    if longest <= 0:
        raise DegenerateShape("Triangle has zero-length edges")
    if (longest - second) / longest < ambiguity_ratio:
        raise AmbiguousRightAngle(
            f"Two longest edges differ by {(longest - second) / longest:.3f} "
            f"(< {ambiguity_ratio})"
        )

    return int((order[2] + 2) % 3)


def triangle_leg_length(vertices: np.ndarray, ambiguity_ratio: float = 0.05) -> float:
    """Mean length of the two edges adjacent to the right-angle vertex."""
    corner = find_right_angle_vertex(vertices, ambiguity_ratio)
    apex = vertices[corner]
    legs = [
        np.linalg.norm(vertices[(corner + 1) % 3] - apex),
        np.linalg.norm(vertices[(corner + 2) % 3] - apex),
    ]
    return float(np.mean(legs))


def _square_scale(obj: CVObject, piece_type: PieceType, config: BridgeConfig) -> float:
    check_vertex_count(obj.vertices, piece_type)
    return float(np.mean(edge_lengths(obj.vertices)))


def _triangle_scale(obj: CVObject, piece_type: PieceType, config: BridgeConfig) -> float:
    check_vertex_count(obj.vertices, piece_type)
    leg = triangle_leg_length(obj.vertices, config.right_angle_ambiguity_ratio)
    return leg / config.triangle_leg_ratios[piece_type.shape.value]


def _is_shape(shape: PieceShape) -> Callable[[PieceType], bool]:
    return lambda piece_type: piece_type.shape is shape


# (name, predicate, estimator) in priority order
ESTIMATORS: list[tuple[str, Callable[[PieceType], bool], Callable[..., float]]] = [
    ("square", _is_shape(PieceShape.SQUARE), _square_scale),
    ("large_triangle", _is_shape(PieceShape.LARGE_TRIANGLE), _triangle_scale),
    ("medium_triangle", _is_shape(PieceShape.MEDIUM_TRIANGLE), _triangle_scale),
    ("small_triangle", _is_shape(PieceShape.SMALL_TRIANGLE), _triangle_scale),
]


class ScaleCalibrator:
    """
    Scale estimation with a persistent cache (CalibrationStore).

    Example:
        >>> calibrator = ScaleCalibrator(BridgeConfig(), InMemoryCalibrationStore())
        >>> scale = calibrator.resolve_scale(frame)   # calibrates on first call
        >>> calibrator.resolve_scale(other_frame)     # cached value
    """

    def __init__(self, config: BridgeConfig, store: CalibrationStore):
        self.config = config
        self.store = store

    def calibrate(self, frame: CVFrame) -> float:
        """
        Estimate the scale from a (rectified) frame, ignoring the cache.

        Returns:
            Scale > 0 in rectified pixels per square side

        Raises:
            NoCalibrationSource: No piece allowed an estimate
        """
        typed = [
            (obj, piece_type_for_label(obj.name)) for obj in frame.objects
        ]

        for name, predicate, estimator in ESTIMATORS:
            for obj, piece_type in typed:
                if piece_type is None or not predicate(piece_type):
                    continue
                try:
                    scale = estimator(obj, piece_type, self.config)
                except ObjectSkip as e:
                    logger.debug("Calibration candidate %s rejected: %s", obj.name, e)
                    continue

                if np.isfinite(scale) and scale > 0:
                    logger.info("Calibrated scale %.3f from %s (%s)", scale, name, obj.name)
                    return float(scale)

        raise NoCalibrationSource(
            f"No square or triangle usable for calibration among {len(frame.objects)} objects"
        )

    def resolve_scale(self, frame: CVFrame) -> float:
        """
        Cached scale if set, else calibrate and cache.

        Raises:
            NoCalibrationSource: Uncalibrated and the frame has no usable piece
        """
        cached = self.store.get_scale()
        if cached is not None:
            return cached

        scale = self.calibrate(frame)
        self.store.set_scale(scale)
        return scale

    def invalidate(self) -> None:
        logger.info("Calibration invalidated")
        self.store.invalidate()
