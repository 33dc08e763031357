"""
Piece lifecycle states.

DetectionState is a tagged union: one frozen dataclass per variant, each
carrying only its own data. A PieceRecord changes state only by replacing the
whole variant (PieceRecord.transition_to), which returns a StateTransition.

IMPORTANT: DetectionState and PieceRecord are defined ONLY here.

State graph:
    Unobserved -> Detected -> Moved -> Placed -> Validating -> Validated | Invalid
    Placed / Validating / Validated / Invalid -> Moved     (renewed movement)
    any -> Unobserved                                     (piece lost)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from ..models import PieceType, Pose2D, ValidationFailure


@dataclass(frozen=True)
class Unobserved:
    name: ClassVar[str] = "unobserved"


@dataclass(frozen=True)
class Detected:
    """First seen; baseline is the pose movement is measured from."""
    name: ClassVar[str] = "detected"
    baseline: Pose2D
    detected_at: float


@dataclass(frozen=True)
class Moved:
    name: ClassVar[str] = "moved"
    since: float


@dataclass(frozen=True)
class Placed:
    """At rest for settle_dwell_duration after moving."""
    name: ClassVar[str] = "placed"
    at: float


@dataclass(frozen=True)
class Validating:
    name: ClassVar[str] = "validating"


@dataclass(frozen=True)
class Validated:
    """Matches target_id; connections are the group members that also validated."""
    name: ClassVar[str] = "validated"
    target_id: str
    connections: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Invalid:
    name: ClassVar[str] = "invalid"
    reason: ValidationFailure


DetectionState = Union[Unobserved, Detected, Moved, Placed, Validating, Validated, Invalid]

_VALIDATABLE = (Placed, Validating, Validated, Invalid)


def can_validate(state: DetectionState) -> bool:
    """Placed, Validating, Validated and Invalid pieces take part in validation."""
    return isinstance(state, _VALIDATABLE)


def is_interactable(state: DetectionState) -> bool:
    """Pieces the user has touched (anything but Unobserved / Detected)."""
    return not isinstance(state, (Unobserved, Detected))


@dataclass(frozen=True)
class StateTransition:
    """
    One lifecycle event.

    Attributes:
        piece_id: Piece that changed state
        previous: State name before
        current: State name after
        timestamp: Frame time (s)
        reason: Short cause ("movement", "settled", "lost", ...)
    """
    piece_id: str
    previous: str
    current: str
    timestamp: float
    reason: str = ""


@dataclass
class PieceRecord:
    """
    Per-piece state that persists across frames.

    Attributes:
        piece_id: Stable piece id
        piece_type: Piece type of the latest observation
        state: Current DetectionState variant
        pose: Latest observed pose
        flipped: Latest observed flip state
        baseline_pose: Pose at detection (movement reference while Detected)
        settle_pose: Reference pose while settling (Moved)
        settle_since: Time the piece came to rest at settle_pose
        placed_pose: Pose at Placed (movement reference afterwards)
        first_moved_at: First time the piece entered Moved
        last_moved_at: Latest time the piece moved
        last_seen_at: Latest frame that contained the piece
        interaction_count: Number of Moved entries
        is_anchor: Anchor of its construction group
        assigned_target_id: Bound target (explicit binding only)
    """
    piece_id: str
    piece_type: PieceType
    state: DetectionState = field(default_factory=Unobserved)
    pose: Optional[Pose2D] = None
    flipped: bool = False
    baseline_pose: Optional[Pose2D] = None
    settle_pose: Optional[Pose2D] = None
    settle_since: Optional[float] = None
    placed_pose: Optional[Pose2D] = None
    first_moved_at: Optional[float] = None
    last_moved_at: Optional[float] = None
    last_seen_at: Optional[float] = None
    interaction_count: int = 0
    is_anchor: bool = False
    assigned_target_id: Optional[str] = None

    def transition_to(
        self, new_state: DetectionState, timestamp: float, reason: str = ""
    ) -> Optional[StateTransition]:
        """
        Replace the state variant.

        Returns:
            StateTransition, or None if the state name did not change
            (same variant with updated data, e.g. new connections)
        """
        previous = self.state
        self.state = new_state
        if previous.name == new_state.name:
            return None
        return StateTransition(self.piece_id, previous.name, new_state.name, timestamp, reason)
