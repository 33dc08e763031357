"""
Angle helpers for the internal (normalized) coordinate space.

Conventions:
- Radians, canonical range (-pi, pi]: +pi included, -pi excluded
- Counter-clockwise positive (standard rotation matrix)

The sensor reports clockwise-positive angles in a Y-down pixel space; the
Coordinate Converter is the only place where the handedness changes.
"""

from __future__ import annotations
import math
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ..models import PieceType

TWO_PI = 2.0 * math.pi


def normalize_angle(angle: float) -> float:
    """
    Map an angle into (-pi, pi].

    Args:
        angle: Any finite angle in radians

    Returns:
        Equivalent angle in (-pi, pi]

    Notes:
        - Values already in range are returned unchanged, so the function is
          exactly idempotent (no floating-point drift on repeated calls)
        - -pi maps to +pi

    Example:
        >>> normalize_angle(3 * math.pi / 2)   # -pi/2
        >>> normalize_angle(-math.pi)          # pi
    """
    angle = float(angle)
    if -math.pi < angle <= math.pi:
        return angle

    wrapped = math.fmod(angle + math.pi, TWO_PI)
    if wrapped <= 0.0:
        wrapped += TWO_PI
    result = wrapped - math.pi

    # Rounding can land exactly on the excluded bound
    if result <= -math.pi:
        return math.pi
    if result > math.pi:
        return math.pi
    return result


def angle_difference(a: float, b: float) -> float:
    """Signed difference a - b, normalized into (-pi, pi]."""
    return normalize_angle(a - b)


def rotate_vector(vector, angle: float) -> np.ndarray:
    """
    Rotate a 2D vector counter-clockwise by angle.

    Args:
        vector: (2,) array-like (x, y)
        angle: Rotation in radians, CCW positive

    Returns:
        Rotated vector, shape (2,)
    """
    x, y = float(vector[0]), float(vector[1])
    c = math.cos(angle)
    s = math.sin(angle)
    return np.array([x * c - y * s, x * s + y * c], dtype=float)


def reduce_by_symmetry(angle: float, period: float) -> float:
    """
    Reduce an angle modulo a symmetry period into (-period/2, period/2].

    Args:
        angle: Angle in radians
        period: Rotational symmetry period in radians (> 0)

    Returns:
        Smallest equivalent angle under the symmetry

    Example:
        >>> reduce_by_symmetry(math.radians(95), math.pi / 2)   # ~5 degrees
    """
    if period <= 0:
        raise ValueError(f"period must be > 0, got {period}")

    half = period / 2.0
    reduced = math.fmod(float(angle), period)
    if reduced < 0.0:
        reduced += period
    if reduced > half:
        reduced -= period
    if reduced <= -half:
        reduced += period
    return reduced


def symmetry_period(piece_type: PieceType) -> float:
    """
    Rotational symmetry period used for rotation matching.

    square: pi/2, triangles: pi, parallelogram: 2*pi (no reduction).
    """
    from ..models import PieceShape

    shape = piece_type.shape
    if shape is PieceShape.SQUARE:
        return math.pi / 2
    if shape is PieceShape.PARALLELOGRAM:
        return TWO_PI
    return math.pi
