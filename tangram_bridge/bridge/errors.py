"""
Bridge error taxonomy.

Per-object errors (ObjectSkip subclasses) shrink a frame's piece count and are
reported in the frame's skip list; they never abort frame processing.
NoCalibrationSource is frame-level: without a cached scale the frame yields an
empty InternalPuzzleState.

A missing target match is NOT an exception; it is reported as an Invalid
lifecycle state carrying a ValidationFailure (see models.py).
"""


class BridgeError(Exception):
    """Base class for all bridge errors. `code` is stable for serialization."""

    code = "bridge_error"


class ObjectSkip(BridgeError):
    """A single detected object cannot be converted and is dropped."""

    code = "object_skip"


class DegenerateTransform(ObjectSkip):
    """Homography maps a vertex or the translation to infinity (w ~ 0)."""

    code = "degenerate_transform"


class AmbiguousRightAngle(ObjectSkip):
    """Two longest triangle edges are nearly equal; no unique hypotenuse."""

    code = "ambiguous_right_angle"


class InsufficientVertices(ObjectSkip):
    """Fewer vertices than the piece shape requires."""

    code = "insufficient_vertices"


class ExcessVertices(ObjectSkip):
    """More vertices than the piece shape requires."""

    code = "excess_vertices"


class DegenerateShape(ObjectSkip):
    """Vertices enclose (almost) no area."""

    code = "degenerate_shape"


class UnknownPieceLabel(ObjectSkip):
    """Sensor label has no entry in the piece type table."""

    code = "unknown_piece_label"


class MalformedObject(ObjectSkip):
    """Sensor object entry is missing fields or has wrong types."""

    code = "malformed_object"


class NoCalibrationSource(BridgeError):
    """No square or triangle in the frame allowed a scale estimate."""

    code = "no_calibration_source"
