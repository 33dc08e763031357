"""
Piece Lifecycle Tracker.

Holds the piece-id -> PieceRecord table and advances every record once per
frame. Movement and settling are measured against frame timestamps:

- Detected -> Moved: displacement from baseline > movement_threshold
  (or rotation change > movement_rotation_threshold)
- Moved -> Placed: displacement from the settle reference stays below
  jitter_threshold for settle_dwell_duration
- Placed / Validating / Validated / Invalid -> Moved: displacement from the
  placed pose > movement_threshold
- any -> Unobserved: unseen for lost_piece_timeout (binding + anchor released)
"""

from __future__ import annotations
from typing import Iterator, Optional

from ..config import BridgeConfig
from ..geometry.angles import angle_difference
from ..models import InternalPiece, InternalPuzzleState, Pose2D, ValidationFailure
from .states import (
    Detected,
    Invalid,
    Moved,
    PieceRecord,
    Placed,
    StateTransition,
    Unobserved,
    Validated,
    Validating,
    can_validate,
)
from ...logger import get_logger

logger = get_logger(__name__)


class PieceLifecycleTracker:
    """
    Per-piece state machine over all pieces seen in the session.

    Example:
        >>> tracker = PieceLifecycleTracker(BridgeConfig())
        >>> transitions = tracker.update(state, timestamp=0.0)
        >>> tracker.get("square").state.name   # 'detected'
    """

    def __init__(self, config: BridgeConfig):
        self.config = config
        self._records: dict[str, PieceRecord] = {}

    # ---------- table access ----------

    def get(self, piece_id: str) -> Optional[PieceRecord]:
        return self._records.get(piece_id)

    def records(self) -> list[PieceRecord]:
        return list(self._records.values())

    def __iter__(self) -> Iterator[PieceRecord]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def reset(self) -> None:
        self._records.clear()

    def submittable(self) -> list[PieceRecord]:
        """Records in Placed / Validating / Validated / Invalid. Detected pieces never qualify."""
        return [r for r in self._records.values() if can_validate(r.state)]

    # ---------- per-frame update ----------

    def _moved(self, reference: Pose2D, pose: Pose2D) -> bool:
        if reference.distance_to(pose) > self.config.movement_threshold:
            return True
        return abs(angle_difference(pose.theta, reference.theta)) > self.config.movement_rotation_threshold

    def _at_rest(self, reference: Pose2D, pose: Pose2D) -> bool:
        if reference.distance_to(pose) >= self.config.jitter_threshold:
            return False
        return abs(angle_difference(pose.theta, reference.theta)) <= self.config.movement_rotation_threshold

    def update(self, state: InternalPuzzleState, timestamp: float) -> list[StateTransition]:
        """
        Advance all records by one frame.

        Args:
            state: Converted pieces of this frame
            timestamp: Frame time (s)

        Returns:
            Transitions in the order they happened
        """
        transitions: list[StateTransition] = []
        seen = set()

        for piece in state.pieces:
            seen.add(piece.piece_id)
            record = self._records.get(piece.piece_id)
            if record is None:
                record = PieceRecord(piece_id=piece.piece_id, piece_type=piece.piece_type)
                self._records[piece.piece_id] = record
            self._observe(record, piece, timestamp, transitions)

        for record in self._records.values():
            if record.piece_id in seen or isinstance(record.state, Unobserved):
                continue
            if record.last_seen_at is not None and timestamp - record.last_seen_at >= self.config.lost_piece_timeout:
                self._lose(record, timestamp, transitions)

        return transitions

    def _observe(
        self,
        record: PieceRecord,
        piece: InternalPiece,
        timestamp: float,
        transitions: list[StateTransition],
    ) -> None:
        pose = piece.pose
        record.piece_type = piece.piece_type
        record.pose = pose
        record.flipped = piece.flipped
        record.last_seen_at = timestamp
        current = record.state

        if isinstance(current, Unobserved):
            record.baseline_pose = pose
            self._emit(transitions, record.transition_to(Detected(pose, timestamp), timestamp, "appeared"))

        elif isinstance(current, Detected):
            if self._moved(current.baseline, pose):
                self._start_moving(record, pose, timestamp, transitions)

        elif isinstance(current, Moved):
            if not self._at_rest(record.settle_pose, pose):
                # Still moving: restart the dwell
                record.settle_pose = pose
                record.settle_since = timestamp
                record.last_moved_at = timestamp
            elif timestamp - record.settle_since >= self.config.settle_dwell_duration:
                record.placed_pose = pose
                self._emit(transitions, record.transition_to(Placed(timestamp), timestamp, "settled"))

        elif can_validate(current):
            if self._moved(record.placed_pose, pose):
                self._start_moving(record, pose, timestamp, transitions)

    def _start_moving(
        self,
        record: PieceRecord,
        pose: Pose2D,
        timestamp: float,
        transitions: list[StateTransition],
    ) -> None:
        record.interaction_count += 1
        record.last_moved_at = timestamp
        if record.first_moved_at is None:
            record.first_moved_at = timestamp
        record.settle_pose = pose
        record.settle_since = timestamp
        self._emit(transitions, record.transition_to(Moved(timestamp), timestamp, "movement"))

    def _lose(self, record: PieceRecord, timestamp: float, transitions: list[StateTransition]) -> None:
        logger.debug("Piece %s lost (last seen %.3f)", record.piece_id, record.last_seen_at)
        record.assigned_target_id = None
        record.is_anchor = False
        record.first_moved_at = None
        record.placed_pose = None
        record.settle_pose = None
        record.settle_since = None
        self._emit(transitions, record.transition_to(Unobserved(), timestamp, "lost"))

    @staticmethod
    def _emit(transitions: list[StateTransition], transition: Optional[StateTransition]) -> None:
        if transition is not None:
            logger.debug(
                "Piece %s: %s -> %s (%s)",
                transition.piece_id, transition.previous, transition.current, transition.reason,
            )
            transitions.append(transition)

    # ---------- validation-driven transitions ----------

    def begin_validation(self, piece_id: str, timestamp: float) -> Optional[StateTransition]:
        """Placed -> Validating. Other states are left unchanged."""
        record = self._records[piece_id]
        if not isinstance(record.state, Placed):
            return None
        return record.transition_to(Validating(), timestamp, "validation")

    def mark_validated(
        self,
        piece_id: str,
        target_id: str,
        connections: frozenset[str],
        timestamp: float,
    ) -> Optional[StateTransition]:
        """Validated(target_id) and bind the target (releasing its previous holder)."""
        self.bind(piece_id, target_id)
        record = self._records[piece_id]
        return record.transition_to(Validated(target_id, frozenset(connections)), timestamp, "match")

    def mark_invalid(
        self, piece_id: str, failure: ValidationFailure, timestamp: float
    ) -> Optional[StateTransition]:
        """Invalid(failure). The binding is kept."""
        record = self._records[piece_id]
        return record.transition_to(Invalid(failure), timestamp, failure.kind.value)

    # ---------- binding ----------

    def holder_of(self, target_id: str) -> Optional[PieceRecord]:
        for record in self._records.values():
            if record.assigned_target_id == target_id:
                return record
        return None

    def bind(self, piece_id: str, target_id: str) -> None:
        """
        Bind piece_id to target_id.

        Notes:
            - A target is bound to at most one piece: a previous holder is unbound
        """
        holder = self.holder_of(target_id)
        if holder is not None and holder.piece_id != piece_id:
            logger.debug("Target %s taken over by %s from %s", target_id, piece_id, holder.piece_id)
            holder.assigned_target_id = None
        record = self._records[piece_id]
        if record.assigned_target_id != target_id:
            logger.debug("Piece %s bound to %s", piece_id, target_id)
        record.assigned_target_id = target_id

    def unbind(self, piece_id: str) -> None:
        record = self._records.get(piece_id)
        if record is not None:
            record.assigned_target_id = None

    def assignments(self) -> dict[str, str]:
        """piece_id -> bound target_id."""
        return {
            r.piece_id: r.assigned_target_id
            for r in self._records.values()
            if r.assigned_target_id is not None
        }

    def clear_bindings(self) -> None:
        """Unbind every piece; Validated / Invalid pieces go back to Validating."""
        for record in self._records.values():
            record.assigned_target_id = None
            if isinstance(record.state, (Validated, Invalid)):
                record.transition_to(Validating(), record.last_seen_at or 0.0, "targets changed")
