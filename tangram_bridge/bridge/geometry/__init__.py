"""Angle helpers for the internal coordinate space."""

from .angles import (
    TWO_PI,
    normalize_angle,
    angle_difference,
    rotate_vector,
    reduce_by_symmetry,
    symmetry_period,
)

__all__ = [
    "TWO_PI",
    "normalize_angle",
    "angle_difference",
    "rotate_vector",
    "reduce_by_symmetry",
    "symmetry_period",
]
