"""
Bridge Configuration Models.

This module defines the configuration structures for the CV bridge:
- Transform2D: 2D rigid transformation (translation + rotation)
- ToleranceProfile: Validation tolerance presets
- BridgeConfig: All bridge parameters (6 groups)

All lengths in normalized units (1.0 = one square side) unless stated otherwise.
Angles in radians, range (-pi, pi], counterclockwise positive.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Literal, Mapping
import math
import numpy as np


@dataclass
class Transform2D:
    """
    2D transformation: translation + rotation.

    Attributes:
        x: Translation in x (normalized units)
        y: Translation in y (normalized units)
        theta: Rotation angle in radians (CCW), range (-pi, pi]

    Rotation convention:
        - CCW (positive theta = counter-clockwise)
        - Example: theta=pi/2 rotates point (1,0) to (0,1)
        - Consistent with standard rotation matrix

    Notes:
        - Used for anchor-relative poses (piece pose expressed in anchor frame)
        - Rotation around origin, then translation
    """
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def to_matrix(self) -> np.ndarray:
        """
        Convert to 3x3 homogeneous transformation matrix.

        Returns:
            3x3 numpy array: [[cos(t) -sin(t) tx]
                              [sin(t)  cos(t) ty]
                              [0       0      1 ]]
        """
        c = np.cos(self.theta)
        s = np.sin(self.theta)

        return np.array([
            [c, -s, self.x],
            [s,  c, self.y],
            [0,  0, 1]
        ], dtype=float)

    @classmethod
    def from_matrix(cls, mat: np.ndarray) -> Transform2D:
        """
        Create Transform2D from 3x3 homogeneous matrix.

        Notes:
            - Extracts translation from mat[:2, 2]
            - Extracts rotation via arctan2(mat[1,0], mat[0,0])
            - Angle normalized to (-pi, pi]
        """
        from .geometry.angles import normalize_angle

        x = float(mat[0, 2])
        y = float(mat[1, 2])
        theta = normalize_angle(float(np.arctan2(mat[1, 0], mat[0, 0])))
        return cls(x, y, theta)

    def compose(self, other: Transform2D) -> Transform2D:
        """
        Compose this transform with another: result = self ∘ other.

        Notes:
            - Matrix multiplication: mat_result = mat_self @ mat_other
            - other is applied to points first, then self
        """
        return Transform2D.from_matrix(self.to_matrix() @ other.to_matrix())

    def inverse(self) -> Transform2D:
        """
        Compute inverse transform.

        Notes:
            - If T maps points from A to B, T^-1 maps from B to A
        """
        return Transform2D.from_matrix(np.linalg.inv(self.to_matrix()))


class ToleranceProfile(Enum):
    """
    Validation tolerance presets.

    Values are (position tolerance in square sides, rotation tolerance in degrees).
    """
    EASY = (0.40, 15.0)
    STANDARD = (0.25, 10.0)
    PRECISE = (0.15, 5.0)
    EXPERT = (0.08, 3.0)

    @property
    def position(self) -> float:
        return self.value[0]

    @property
    def rotation_rad(self) -> float:
        return math.radians(self.value[1])


@dataclass
class BridgeConfig:
    """
    Complete bridge configuration (all parameters).

    Organized in 6 groups:
    1. Validation: Tolerances and feature-angle offsets
    2. Lifecycle: Movement/settle thresholds for the piece state machine
    3. Grouping: Construction group clustering policy
    4. Calibration: Scale estimation parameters
    5. Conversion: Sensor-to-internal conversion parameters
    6. Diagnostics: Timing output

    Notes:
        - All lengths in normalized units (square side = 1.0)
        - All durations in seconds, compared against frame timestamps
        - Externally supplied; see from_dict() for the recognized keys
    """

    # ========== 1. Validation ==========
    position_tolerance: float = 0.25
    """Max Euclidean distance between piece and target positions (square sides)."""

    rotation_tolerance: float = math.radians(10.0)
    """Max feature-angle error after symmetry reduction (radians)."""

    triangle_target_offset: float = math.pi / 4
    """Canonical feature offset for triangles in target space (radians).

    Calibrated constant: validated against known-good placements,
    not derived from first principles."""

    triangle_piece_offset: float = 3 * math.pi / 4
    """Canonical feature offset for triangles in piece space (radians).
    Negated for flipped pieces. See triangle_target_offset."""

    validation_mode: Literal["immediate", "group"] = "immediate"
    """How Placed pieces enter validation.
       - 'immediate': Placed -> Validating in the same frame
       - 'group': only when the piece's construction group phase allows it"""

    # ========== 2. Lifecycle ==========
    movement_threshold: float = 0.4
    """Displacement that turns a Detected/settled piece into Moved (square sides)."""

    movement_rotation_threshold: float = 0.087
    """Rotation change that counts as movement (radians, ~5 degrees)."""

    jitter_threshold: float = 0.05
    """Displacement still considered 'at rest' while settling (square sides).
    Must be smaller than movement_threshold."""

    settle_dwell_duration: float = 0.2
    """Time a Moved piece must stay within jitter_threshold to become Placed (s)."""

    lost_piece_timeout: float = 1.0
    """Time without observation after which a piece falls back to Unobserved (s)."""

    # ========== 3. Grouping ==========
    group_proximity_threshold: float = 1.5
    """Max centroid distance for two pieces to be linked (square sides)."""

    group_stability_duration: float = 0.5
    """Time two pieces must stay within proximity before they are linked (s)."""

    group_exploring_window: float = 10.0
    """Age below which a two-piece group without connections is only 'exploring' (s)."""

    # ========== 4. Calibration ==========
    triangle_leg_ratios: dict[str, float] = field(default_factory=lambda: {
        "large_triangle": 1.0,
        "medium_triangle": 1.0 / math.sqrt(2),
        "small_triangle": 0.5,
    })
    """Leg length of each triangle shape expressed in square sides.
    scale = leg / ratio."""

    right_angle_ambiguity_ratio: float = 0.05
    """Relative difference below which the two longest triangle edges are
    considered equal (right angle ambiguous)."""

    # ========== 5. Conversion ==========
    camera_inversion: bool = False
    """Initial camera-inversion flag, used only if the calibration store has none."""

    degenerate_w_epsilon: float = 1e-9
    """Homogeneous divisor magnitude below which a projected point is degenerate."""

    vertex_tie_epsilon: float = 1e-6
    """Coordinate tolerance for min-Y / min-X start vertex tie-breaking (px)."""

    schema_version: str = "1.0"
    """Schema tag written into every InternalPuzzleState."""

    # ========== 6. Diagnostics ==========
    record_timings: bool = False
    """Record per-stage timings (ms) in each FrameReport."""

    def __post_init__(self):
        positive = (
            "position_tolerance", "rotation_tolerance", "movement_threshold",
            "jitter_threshold", "group_proximity_threshold", "degenerate_w_epsilon",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

        non_negative = (
            "settle_dwell_duration", "group_stability_duration", "lost_piece_timeout",
            "movement_rotation_threshold", "right_angle_ambiguity_ratio",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

        if self.jitter_threshold >= self.movement_threshold:
            raise ValueError(
                f"jitter_threshold ({self.jitter_threshold}) must be smaller than "
                f"movement_threshold ({self.movement_threshold})"
            )

        if self.validation_mode not in ("immediate", "group"):
            raise ValueError(
                f"validation_mode must be 'immediate' or 'group', got {self.validation_mode!r}"
            )

        for shape in ("large_triangle", "medium_triangle", "small_triangle"):
            ratio = self.triangle_leg_ratios.get(shape)
            if ratio is None or ratio <= 0:
                raise ValueError(f"triangle_leg_ratios[{shape!r}] must be > 0, got {ratio}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BridgeConfig:
        """
        Build a config from an external mapping (JSON body, app config).

        Args:
            data: Mapping of option name -> value. Unknown keys are rejected.
                  Optional key 'profile' ('easy' | 'standard' | 'precise' | 'expert')
                  applies a tolerance preset before explicit tolerances.

        Raises:
            ValueError: Unknown option or invalid value
        """
        data = dict(data)
        profile = data.pop("profile", None)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config option(s): {', '.join(unknown)}")

        config = cls()
        if profile is not None:
            try:
                config = config.with_profile(ToleranceProfile[str(profile).upper()])
            except KeyError:
                raise ValueError(f"Unknown tolerance profile: {profile!r}") from None

        return replace(config, **data)

    def with_profile(self, profile: ToleranceProfile) -> BridgeConfig:
        """Return a copy with the preset's position/rotation tolerances."""
        return replace(
            self,
            position_tolerance=profile.position,
            rotation_tolerance=profile.rotation_rad,
        )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
