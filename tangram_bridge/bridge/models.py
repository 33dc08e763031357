"""
Bridge Data Models.

This module defines the data structures shared by all bridge components:
- Pose2D: 2D pose (position + orientation) in normalized units
- PieceShape / PieceType: The 7 canonical tangram pieces and their shapes
- CVObject / CVFrame: Raw sensor input (pixel space)
- InternalPiece / InternalPuzzleState: Canonical per-frame model
- TargetPiece: Target pose of one puzzle slot
- ValidationFailure / ValidationResult: Validator output
- SkippedObject / FrameReport: Per-frame diagnostics

Sensor data is in pixels, Y-down, rotation in degrees (clockwise on screen).
Internal data is normalized (1.0 = one square side), rotation in radians (-pi, pi].

NOTE: Piece lifecycle states are NOT defined here. They live in
      lifecycle/states.py together with PieceRecord.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, TYPE_CHECKING
import math
import numpy as np

if TYPE_CHECKING:
    from .lifecycle.states import StateTransition


@dataclass(frozen=True)
class Pose2D:
    """
    2D pose: position + orientation.

    Attributes:
        x: X position (normalized units)
        y: Y position (normalized units)
        theta: Orientation in radians, (-pi, pi], ccw positive
    """
    x: float
    y: float
    theta: float

    def distance_to(self, other: Pose2D) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


class PieceShape(Enum):
    """Geometric shape classes. Pieces of the same shape are interchangeable."""
    SMALL_TRIANGLE = "small_triangle"
    MEDIUM_TRIANGLE = "medium_triangle"
    LARGE_TRIANGLE = "large_triangle"
    SQUARE = "square"
    PARALLELOGRAM = "parallelogram"


class PieceType(Enum):
    """The 7 canonical tangram pieces."""
    SMALL_TRIANGLE_1 = "smallTriangle1"
    SMALL_TRIANGLE_2 = "smallTriangle2"
    MEDIUM_TRIANGLE = "mediumTriangle"
    LARGE_TRIANGLE_1 = "largeTriangle1"
    LARGE_TRIANGLE_2 = "largeTriangle2"
    SQUARE = "square"
    PARALLELOGRAM = "parallelogram"

    @property
    def shape(self) -> PieceShape:
        return _SHAPES[self]

    @property
    def is_triangle(self) -> bool:
        return self.shape in (
            PieceShape.SMALL_TRIANGLE, PieceShape.MEDIUM_TRIANGLE, PieceShape.LARGE_TRIANGLE
        )

    @property
    def vertex_count(self) -> int:
        return 3 if self.is_triangle else 4


_SHAPES = {
    PieceType.SMALL_TRIANGLE_1: PieceShape.SMALL_TRIANGLE,
    PieceType.SMALL_TRIANGLE_2: PieceShape.SMALL_TRIANGLE,
    PieceType.MEDIUM_TRIANGLE: PieceShape.MEDIUM_TRIANGLE,
    PieceType.LARGE_TRIANGLE_1: PieceShape.LARGE_TRIANGLE,
    PieceType.LARGE_TRIANGLE_2: PieceShape.LARGE_TRIANGLE,
    PieceType.SQUARE: PieceShape.SQUARE,
    PieceType.PARALLELOGRAM: PieceShape.PARALLELOGRAM,
}


def _as_points(value: Any, what: str) -> np.ndarray:
    """Coerce a nested list into an (N, 2) float array."""
    points = np.asarray(value, dtype=float)
    if points.size == 0:
        return np.zeros((0, 2), dtype=float)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"{what} must have shape (N, 2), got {points.shape}")
    return points


@dataclass
class CVObject:
    """
    One detected piece as reported by the sensor.

    Attributes:
        name: Sensor class label (e.g. "tangram_square")
        class_id: Numeric class id
        rotation_degrees: Rotation in degrees (sensor convention)
        translation: Translation in pixels, shape (2,)
        vertices: Ordered vertices in pixels, shape (N, 2)
        stable_id: Optional id that is stable across frames
        confidence: Optional detector confidence [0..1]

    Notes:
        - Vertex order is the sensor's; canonicalization happens later
    """
    name: str
    class_id: int
    rotation_degrees: float
    translation: np.ndarray  # (2,) px
    vertices: np.ndarray  # (N, 2) px
    stable_id: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CVObject:
        """
        Parse one sensor object entry.

        Expected keys: name, class_id, pose{rotation_degrees, translation}, vertices.
        Optional keys: id, confidence.

        Raises:
            KeyError / TypeError / ValueError: Malformed entry
        """
        pose = data["pose"]
        translation = np.asarray(pose["translation"], dtype=float).reshape(-1)
        if translation.shape != (2,):
            raise ValueError(f"translation must have 2 components, got {translation.shape[0]}")

        stable_id = data.get("id")
        confidence = data.get("confidence")

        obj = cls(
            name=str(data["name"]),
            class_id=int(data.get("class_id", -1)),
            rotation_degrees=float(pose["rotation_degrees"]),
            translation=translation,
            vertices=_as_points(data.get("vertices", []), "vertices"),
            stable_id=None if stable_id is None else str(stable_id),
            confidence=None if confidence is None else float(confidence),
        )
        field_name = obj.non_finite_field()
        if field_name is not None:
            raise ValueError(f"{field_name} must be finite")
        return obj

    def non_finite_field(self) -> Optional[str]:
        """Name of the first NaN / infinite pose field, None if all are finite."""
        if not math.isfinite(self.rotation_degrees):
            return "rotation_degrees"
        if not np.all(np.isfinite(self.translation)):
            return "translation"
        if not np.all(np.isfinite(self.vertices)):
            return "vertices"
        return None


@dataclass
class CVFrame:
    """
    One sensor frame.

    Attributes:
        objects: Ordered detected objects
        homography: Optional 3x3 homography (sensor pixels -> rectified plane)
        homography_applied: True if vertices/translations are already rectified
        timestamp: Optional capture time in seconds
        malformed: Indices + messages of object entries that failed to parse

    Notes:
        - Built by the sensor collaborator or parsed via from_dict()
    """
    objects: list[CVObject] = field(default_factory=list)
    homography: Optional[np.ndarray] = None
    homography_applied: bool = False
    timestamp: Optional[float] = None
    malformed: list[tuple[int, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CVFrame:
        """
        Parse the sensor JSON event format.

        Raises:
            ValueError: If the payload itself is malformed (not a mapping,
                        'objects' not a list). Malformed object entries are
                        kept in `malformed` and reported as per-object skips.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Frame payload must be an object, got {type(data).__name__}")

        raw_objects = data.get("objects", [])
        if not isinstance(raw_objects, list):
            raise ValueError("'objects' must be a list")

        objects = []
        malformed = []
        for index, entry in enumerate(raw_objects):
            try:
                objects.append(CVObject.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                malformed.append((index, f"{type(e).__name__}: {e}"))

        homography = data.get("homography")
        if homography is not None:
            homography = np.asarray(homography, dtype=float)

        timestamp = data.get("timestamp")

        return cls(
            objects=objects,
            homography=homography,
            homography_applied=bool(data.get("homography_applied", False)),
            timestamp=None if timestamp is None else float(timestamp),
            malformed=malformed,
        )


@dataclass(frozen=True)
class InternalPiece:
    """
    Canonical piece in the internal model.

    Attributes:
        piece_id: Stable piece identifier
        piece_type: One of the 7 canonical pieces
        position: (x, y) in normalized units (1.0 = one square side)
        rotation: Radians in (-pi, pi], ccw positive
        flipped: Mirrored piece (meaningful for the parallelogram only)
    """
    piece_id: str
    piece_type: PieceType
    position: tuple[float, float]
    rotation: float
    flipped: bool = False

    @property
    def pose(self) -> Pose2D:
        return Pose2D(self.position[0], self.position[1], self.rotation)


@dataclass(frozen=True)
class InternalPuzzleState:
    """
    Per-frame canonical model. Rebuilt every frame, never persisted.

    Attributes:
        pieces: Converted pieces in sensor order
        schema_version: Schema tag
        calibration_scale: Scale used for this frame (px per square side),
                           0.0 if the frame was uncalibrated
    """
    pieces: tuple[InternalPiece, ...] = ()
    schema_version: str = "1.0"
    calibration_scale: float = 0.0

    def piece(self, piece_id: str) -> Optional[InternalPiece]:
        for piece in self.pieces:
            if piece.piece_id == piece_id:
                return piece
        return None

    @property
    def piece_ids(self) -> list[str]:
        return [p.piece_id for p in self.pieces]


@dataclass(frozen=True)
class TargetPiece:
    """
    Target slot of the current puzzle. Immutable per session.

    Attributes:
        target_id: Unique target identifier
        piece_type: Expected piece (any piece of the same shape may fill it)
        position: (x, y) in normalized units
        rotation: Radians
        flipped: Expected flip state (parallelogram only)
    """
    target_id: str
    piece_type: PieceType
    position: tuple[float, float]
    rotation: float = 0.0
    flipped: bool = False

    @property
    def pose(self) -> Pose2D:
        return Pose2D(self.position[0], self.position[1], self.rotation)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TargetPiece:
        """
        Parse {"id", "piece_type", "position": [x, y], "rotation", "flipped"}.

        Raises:
            ValueError: Unknown piece type or malformed position
        """
        try:
            piece_type = PieceType(data["piece_type"])
        except ValueError:
            raise ValueError(f"Unknown piece_type: {data['piece_type']!r}") from None

        position = tuple(float(v) for v in data["position"])
        if len(position) != 2:
            raise ValueError(f"position must have 2 components, got {len(position)}")

        return cls(
            target_id=str(data["id"]),
            piece_type=piece_type,
            position=position,
            rotation=float(data.get("rotation", 0.0)),
            flipped=bool(data.get("flipped", False)),
        )


class FailureKind(Enum):
    """Why a piece did not validate."""
    WRONG_POSITION = "wrong_position"
    WRONG_ROTATION = "wrong_rotation"
    NEEDS_FLIP = "needs_flip"
    WRONG_PIECE = "wrong_piece"
    NO_MATCHING_TARGET = "no_matching_target"
    NO_VALIDATED_PIECES_NEARBY = "no_validated_pieces_nearby"


@dataclass(frozen=True)
class ValidationFailure:
    """
    Validation failure reason.

    Attributes:
        kind: Failure category
        value: Position offset (square sides) for WRONG_POSITION,
               rotation error (degrees) for WRONG_ROTATION, else None
    """
    kind: FailureKind
    value: Optional[float] = None

    @property
    def nudge_message(self) -> str:
        if self.kind is FailureKind.WRONG_POSITION:
            return "Try moving closer" if (self.value or 0.0) > 1.0 else "Almost there!"
        if self.kind is FailureKind.WRONG_ROTATION:
            return "Try rotating" if (self.value or 0.0) > 45.0 else "Slight rotation needed"
        if self.kind is FailureKind.NEEDS_FLIP:
            return "Try flipping the piece"
        if self.kind is FailureKind.WRONG_PIECE:
            return "Try a different piece"
        if self.kind is FailureKind.NO_VALIDATED_PIECES_NEARBY:
            return "Connect to other pieces"
        return "Keep trying"


@dataclass(frozen=True)
class ValidationResult:
    """
    Validation outcome for one submitted piece.

    Attributes:
        piece_id: Validated piece
        target_id: Matched target, None on failure
        passed: True if the piece matches target_id
        failure: Reason on failure, None on success
    """
    piece_id: str
    target_id: Optional[str]
    passed: bool
    failure: Optional[ValidationFailure] = None


@dataclass(frozen=True)
class SkippedObject:
    """One entry of a frame's skip list."""
    index: int
    label: str
    code: str
    message: str


@dataclass
class FrameReport:
    """
    Everything one processed frame produced.

    Attributes:
        state: InternalPuzzleState of the frame
        transitions: Lifecycle transitions in the order they happened
        results: Validation results of submitted pieces
        skipped: Objects dropped during conversion
        diagnostics: Frame-level messages (e.g. uncalibrated frame)
        timings_ms: Per-stage timings if enabled
        complete: Every target has exactly one Validated piece bound
    """
    state: InternalPuzzleState
    transitions: list[StateTransition] = field(default_factory=list)
    results: list[ValidationResult] = field(default_factory=list)
    skipped: list[SkippedObject] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    timings_ms: dict[str, float] = field(default_factory=dict)
    complete: bool = False


# Sensor label -> piece type. Canonical type names are accepted as well.
LABEL_TABLE: dict[str, PieceType] = {
    "tangram_square": PieceType.SQUARE,
    "tangram_triangle_sml": PieceType.SMALL_TRIANGLE_1,
    "tangram_triangle_sml2": PieceType.SMALL_TRIANGLE_2,
    "tangram_triangle_med": PieceType.MEDIUM_TRIANGLE,
    "tangram_triangle_lrg": PieceType.LARGE_TRIANGLE_1,
    "tangram_triangle_lrg2": PieceType.LARGE_TRIANGLE_2,
    "tangram_parallelogram": PieceType.PARALLELOGRAM,
}


def piece_type_for_label(label: str) -> Optional[PieceType]:
    """Map a sensor label (or canonical type name) to a PieceType, None if unknown."""
    piece_type = LABEL_TABLE.get(label)
    if piece_type is not None:
        return piece_type
    try:
        return PieceType(label)
    except ValueError:
        return None
