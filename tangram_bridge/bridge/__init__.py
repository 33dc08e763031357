"""
CV Bridge: sensor detections -> canonical tangram model -> validation.

Main API:
    FrameProcessor(config, store).process_frame(frame) -> FrameReport

Lower-level components (usable on their own):
    HomographyNormalizer, ScaleCalibrator, VertexCanonicalizer,
    CoordinateConverter, PieceLifecycleTracker, ConstructionGroupManager,
    AnchorManager, Validator
"""

from .config import BridgeConfig, ToleranceProfile, Transform2D
from .errors import (
    BridgeError,
    ObjectSkip,
    DegenerateTransform,
    AmbiguousRightAngle,
    InsufficientVertices,
    ExcessVertices,
    DegenerateShape,
    UnknownPieceLabel,
    MalformedObject,
    NoCalibrationSource,
)
from .models import (
    Pose2D,
    PieceShape,
    PieceType,
    CVObject,
    CVFrame,
    InternalPiece,
    InternalPuzzleState,
    TargetPiece,
    FailureKind,
    ValidationFailure,
    ValidationResult,
    SkippedObject,
    FrameReport,
    piece_type_for_label,
)
from .calibration import (
    CalibrationStore,
    InMemoryCalibrationStore,
    JsonCalibrationStore,
    ScaleCalibrator,
)
from .homography import HomographyNormalizer
from .canonicalization import VertexCanonicalizer
from .conversion import CoordinateConverter
from .lifecycle import PieceLifecycleTracker, PieceRecord, StateTransition
from .grouping import AnchorManager, ConstructionGroupManager, GroupPhase
from .validation import Validator
from .processor import FrameProcessor


__all__ = [
    # Main API
    "FrameProcessor",
    # Config
    "BridgeConfig",
    "ToleranceProfile",
    "Transform2D",
    # Errors
    "BridgeError",
    "ObjectSkip",
    "DegenerateTransform",
    "AmbiguousRightAngle",
    "InsufficientVertices",
    "ExcessVertices",
    "DegenerateShape",
    "UnknownPieceLabel",
    "MalformedObject",
    "NoCalibrationSource",
    # Models
    "Pose2D",
    "PieceShape",
    "PieceType",
    "CVObject",
    "CVFrame",
    "InternalPiece",
    "InternalPuzzleState",
    "TargetPiece",
    "FailureKind",
    "ValidationFailure",
    "ValidationResult",
    "SkippedObject",
    "FrameReport",
    "piece_type_for_label",
    # Components
    "CalibrationStore",
    "InMemoryCalibrationStore",
    "JsonCalibrationStore",
    "ScaleCalibrator",
    "HomographyNormalizer",
    "VertexCanonicalizer",
    "CoordinateConverter",
    "PieceLifecycleTracker",
    "PieceRecord",
    "StateTransition",
    "AnchorManager",
    "ConstructionGroupManager",
    "GroupPhase",
    "Validator",
]
