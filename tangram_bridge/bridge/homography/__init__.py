"""
Homography Normalizer: sensor pixels -> rectified table plane.

Public API:
    HomographyNormalizer(config).normalize(frame) -> NormalizationResult
"""

from .normalizer import (
    HomographyNormalizer,
    NormalizationResult,
    is_identity,
    is_valid_homography,
    project_points,
)

__all__ = [
    "HomographyNormalizer",
    "NormalizationResult",
    "is_identity",
    "is_valid_homography",
    "project_points",
]
