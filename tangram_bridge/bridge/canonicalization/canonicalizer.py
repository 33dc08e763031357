"""
Vertex Canonicalizer.

Gives every detected polygon a deterministic vertex order, independent of the
order the sensor reported:

- Winding: clockwise on screen (Y down), i.e. positive shoelace area in pixel
  coordinates. Counter-clockwise input is reversed.
- Start vertex:
  - square / parallelogram: min-Y vertex, ties broken by min-X
  - triangles: right-angle vertex

canonicalize() is idempotent: canonicalize(canonicalize(v)) == canonicalize(v).
Flip detection is separate and uses the raw (sensor) order.
"""

from __future__ import annotations
from dataclasses import dataclass
import numpy as np

from ..calibration.calibrator import check_vertex_count, find_right_angle_vertex
from ..config import BridgeConfig
from ..errors import DegenerateShape
from ..models import CVObject, PieceShape, PieceType


@dataclass
class CanonicalShape:
    """
    Canonicalized polygon of one object.

    Attributes:
        vertices: (N, 2) vertices, clockwise on screen, canonical start first
        flipped: Mirrored piece (parallelogram only)
    """
    vertices: np.ndarray
    flipped: bool


def signed_area(vertices: np.ndarray) -> float:
    """
    Shoelace area of a closed polygon.

    Returns:
        Positive for clockwise order on screen (Y down),
        negative for counter-clockwise
    """
    x = vertices[:, 0]
    y = vertices[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


class VertexCanonicalizer:
    """Deterministic vertex ordering and flip detection."""

    def __init__(self, config: BridgeConfig):
        self.config = config

    def canonicalize(self, vertices: np.ndarray, piece_type: PieceType) -> np.ndarray:
        """
        Reorder vertices to clockwise winding with a deterministic start.

        Args:
            vertices: (N, 2) vertices in pixel space
            piece_type: Piece type (determines count + start rule)

        Returns:
            (N, 2) reordered copy

        Raises:
            InsufficientVertices / ExcessVertices: Wrong vertex count
            DegenerateShape: Zero-area polygon
            AmbiguousRightAngle: Triangle without a unique right angle
        """
        vertices = np.asarray(vertices, dtype=float).reshape(-1, 2)
        check_vertex_count(vertices, piece_type)

        area = signed_area(vertices)
        if abs(area) < self.config.vertex_tie_epsilon:
            raise DegenerateShape(f"{piece_type.value} polygon has zero area")

        if area < 0:
            vertices = vertices[::-1]

        if piece_type.is_triangle:
            start = find_right_angle_vertex(vertices, self.config.right_angle_ambiguity_ratio)
        else:
            start = self._top_left_vertex(vertices)

        return np.roll(vertices, -start, axis=0).copy()

    def detect_flip(self, vertices: np.ndarray, piece_type: PieceType) -> bool:
        """
        True if a parallelogram is mirrored.

        Notes:
            - Uses the raw sensor order: counter-clockwise on screen = flipped
            - Triangles and squares are mirror-symmetric: always False
        """
        if piece_type.shape is not PieceShape.PARALLELOGRAM:
            return False
        vertices = np.asarray(vertices, dtype=float).reshape(-1, 2)
        return signed_area(vertices) < 0

    def canonicalize_object(self, obj: CVObject, piece_type: PieceType) -> CanonicalShape:
        """Canonical vertices + flip state of one sensor object."""
        vertices = self.canonicalize(obj.vertices, piece_type)
        return CanonicalShape(vertices=vertices, flipped=self.detect_flip(obj.vertices, piece_type))

    def _top_left_vertex(self, vertices: np.ndarray) -> int:
        """Index of the min-Y vertex; ties (within vertex_tie_epsilon) go to min-X."""
        eps = self.config.vertex_tie_epsilon
        min_y = vertices[:, 1].min()
        candidates = np.flatnonzero(vertices[:, 1] <= min_y + eps)
        return int(candidates[np.argmin(vertices[candidates, 0])])
