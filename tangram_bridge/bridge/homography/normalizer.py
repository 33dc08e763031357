"""
Homography Normalizer.

Maps raw sensor coordinates onto the rectified (top-down) table plane by
applying the frame's 3x3 homography to every vertex and translation.

Conventions:
- H maps sensor pixels -> rectified pixels: [x', y', w]^T = H [x, y, 1]^T
- Perspective divide by w; |w| < degenerate_w_epsilon is degenerate
- Per-object failure: the object is skipped, the frame continues
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional
import cv2
import numpy as np

from ..config import BridgeConfig
from ..errors import DegenerateTransform
from ..models import CVFrame, CVObject, SkippedObject
from ...logger import get_logger

logger = get_logger(__name__)


@dataclass
class NormalizationResult:
    """
    Output of HomographyNormalizer.normalize().

    Attributes:
        frame: Frame with rectified objects (homography_applied=True if H was applied)
        skipped: Objects dropped because of a degenerate projection
        source_indices: Index of each surviving object in the input frame
    """
    frame: CVFrame
    skipped: list[SkippedObject] = field(default_factory=list)
    source_indices: list[int] = field(default_factory=list)


def is_valid_homography(H: Optional[np.ndarray]) -> bool:
    """True if H is a finite 3x3 matrix."""
    if H is None:
        return False
    H = np.asarray(H)
    return H.shape == (3, 3) and bool(np.all(np.isfinite(H)))


def is_identity(H: np.ndarray, tol: float = 1e-9) -> bool:
    """True if H equals the identity up to scale (H[2, 2] normalized)."""
    if abs(H[2, 2]) < tol:
        return False
    return bool(np.allclose(H / H[2, 2], np.eye(3), atol=tol))


def project_points(points: np.ndarray, H: np.ndarray, epsilon: float) -> np.ndarray:
    """
    Apply homography H to (N, 2) points.

    Args:
        points: (N, 2) points
        H: 3x3 homography
        epsilon: Minimum |w| for a valid perspective divide

    Returns:
        (N, 2) projected points

    Raises:
        DegenerateTransform: If any point maps to |w| < epsilon
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if points.shape[0] == 0:
        return points.copy()

    # cv2 divides silently; check w first
    w = points @ H[2, :2] + H[2, 2]
    if np.any(np.abs(w) < epsilon):
        bad = int(np.argmin(np.abs(w)))
        raise DegenerateTransform(
            f"Point {points[bad].tolist()} projects to w={w[bad]:.3g} (|w| < {epsilon:g})"
        )

    projected = cv2.perspectiveTransform(points.reshape(-1, 1, 2), H.astype(np.float64))
    return projected.reshape(-1, 2)


class HomographyNormalizer:
    """
    Applies the frame homography to all objects of a frame.

    Example:
        >>> normalizer = HomographyNormalizer(BridgeConfig())
        >>> result = normalizer.normalize(frame)
        >>> result.frame.homography_applied   # True if a valid H was present
    """

    def __init__(self, config: BridgeConfig):
        self.config = config

    def normalize(self, frame: CVFrame) -> NormalizationResult:
        all_indices = list(range(len(frame.objects)))

        if frame.homography_applied or frame.homography is None:
            return NormalizationResult(frame=frame, source_indices=all_indices)

        H = np.asarray(frame.homography, dtype=float)
        if not is_valid_homography(H):
            logger.warning(
                "Ignoring invalid homography (shape %s, finite=%s)",
                H.shape, bool(np.all(np.isfinite(H))) if H.size else False,
            )
            return NormalizationResult(frame=frame, source_indices=all_indices)

        if is_identity(H):
            logger.debug("Homography is identity; applying anyway")

        objects: list[CVObject] = []
        skipped: list[SkippedObject] = []
        source_indices: list[int] = []

        for index, obj in enumerate(frame.objects):
            try:
                objects.append(self.normalize_object(obj, H))
                source_indices.append(index)
            except DegenerateTransform as e:
                logger.info("Skipping object %d (%s): %s", index, obj.name, e)
                skipped.append(SkippedObject(index, obj.name, e.code, str(e)))

        normalized = replace(frame, objects=objects, homography_applied=True)
        return NormalizationResult(frame=normalized, skipped=skipped, source_indices=source_indices)

    def normalize_object(self, obj: CVObject, H: np.ndarray) -> CVObject:
        """
        Project one object's vertices and translation through H.

        Raises:
            DegenerateTransform: Vertex or translation projects to infinity
        """
        eps = self.config.degenerate_w_epsilon
        vertices = project_points(obj.vertices, H, eps)
        translation = project_points(obj.translation.reshape(1, 2), H, eps)[0]
        return replace(obj, vertices=vertices, translation=translation)
