"""
Piece lifecycle: state variants, per-piece records and the tracker.

Public API:
    PieceLifecycleTracker(config).update(state, timestamp) -> list[StateTransition]
"""

from .states import (
    DetectionState,
    Unobserved,
    Detected,
    Moved,
    Placed,
    Validating,
    Validated,
    Invalid,
    PieceRecord,
    StateTransition,
    can_validate,
    is_interactable,
)
from .tracker import PieceLifecycleTracker

__all__ = [
    "DetectionState",
    "Unobserved",
    "Detected",
    "Moved",
    "Placed",
    "Validating",
    "Validated",
    "Invalid",
    "PieceRecord",
    "StateTransition",
    "can_validate",
    "is_interactable",
    "PieceLifecycleTracker",
]
