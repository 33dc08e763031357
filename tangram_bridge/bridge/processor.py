"""
Frame Processor: the complete per-frame data flow.

    CVFrame
      -> CoordinateConverter      (homography, scale, canonicalization)
      -> PieceLifecycleTracker    (Detected / Moved / Placed / ...)
      -> ConstructionGroupManager (proximity clusters + phase)
      -> AnchorManager            (anchor per group, target-space poses)
      -> Validator                (binding, Validated / Invalid)
      -> FrameReport

All state (calibration cache, record table, anchors) is touched only under
one lock, so frames from several streams are processed one at a time.
"""

from __future__ import annotations
from typing import Iterable, Optional, Sequence
import threading
import time

from .calibration import CalibrationStore, InMemoryCalibrationStore
from .config import BridgeConfig
from .conversion import CoordinateConverter
from .grouping import AnchorManager, ConstructionGroup, ConstructionGroupManager
from .lifecycle import Moved, PieceLifecycleTracker, PieceRecord, Placed, StateTransition, Unobserved
from .models import (
    CVFrame,
    FailureKind,
    FrameReport,
    InternalPiece,
    TargetPiece,
    ValidationFailure,
    ValidationResult,
)
from .validation import Validator
from ..logger import get_logger
from ..performance import FrameTimer

logger = get_logger(__name__)


class FrameProcessor:
    """
    Stateful bridge between the sensor stream and the puzzle model.

    Example:
        >>> processor = FrameProcessor(BridgeConfig(), InMemoryCalibrationStore())
        >>> processor.set_targets(targets)
        >>> report = processor.process_frame(frame)
        >>> report.complete
        False
    """

    def __init__(self, config: Optional[BridgeConfig] = None, store: Optional[CalibrationStore] = None):
        self.config = config or BridgeConfig()
        self.store = store if store is not None else InMemoryCalibrationStore()
        self.timer = FrameTimer(enabled=self.config.record_timings)

        self.converter = CoordinateConverter(self.config, self.store, timer=self.timer)
        self.tracker = PieceLifecycleTracker(self.config)
        self.validator = Validator(self.config)
        self.groups = ConstructionGroupManager(self.config)
        self.anchors = AnchorManager(self.config, self.validator)

        self._targets: tuple[TargetPiece, ...] = ()
        self._lock = threading.Lock()

    # ---------- session control ----------

    @property
    def targets(self) -> tuple[TargetPiece, ...]:
        return self._targets

    def set_targets(self, targets: Iterable[TargetPiece]) -> None:
        """
        Load a new puzzle. All bindings are released.

        Raises:
            ValueError: Duplicate target ids
        """
        targets = tuple(targets)
        ids = [t.target_id for t in targets]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate target ids")

        with self._lock:
            self._targets = targets
            self.tracker.clear_bindings()
        logger.info("Loaded %d targets", len(targets))

    def reset(self) -> None:
        """Forget all pieces, groups and anchors (targets and calibration stay)."""
        with self._lock:
            self.tracker.reset()
            self.groups.reset()
            self.anchors.reset()

    def invalidate_calibration(self) -> None:
        with self._lock:
            self.converter.invalidate_calibration()

    def set_scale(self, scale: float) -> None:
        """Set the calibration scale manually. Raises ValueError if scale <= 0."""
        with self._lock:
            self.store.set_scale(scale)

    def set_camera_inversion(self, inverted: bool) -> None:
        with self._lock:
            self.store.set_camera_inversion(inverted)

    def records(self) -> list[PieceRecord]:
        with self._lock:
            return self.tracker.records()

    # ---------- per-frame processing ----------

    def process_frame(self, frame: CVFrame, timestamp: Optional[float] = None) -> FrameReport:
        """
        Run the full data flow for one frame.

        Args:
            frame: Sensor frame
            timestamp: Frame time (s); defaults to frame.timestamp, else time.monotonic()

        Returns:
            FrameReport with state, transitions, results, skips and diagnostics
        """
        if timestamp is None:
            timestamp = frame.timestamp if frame.timestamp is not None else time.monotonic()

        with self._lock:
            return self._process(frame, float(timestamp))

    def _process(self, frame: CVFrame, timestamp: float) -> FrameReport:
        with self.timer.time_block("convert"):
            conversion = self.converter.convert(frame)

        report = FrameReport(
            state=conversion.state,
            skipped=conversion.skipped,
            diagnostics=list(conversion.diagnostics),
        )

        with self.timer.time_block("lifecycle"):
            transitions = self.tracker.update(conversion.state, timestamp)
        for transition in transitions:
            if transition.current == Moved.name:
                self.anchors.note_moved(transition.piece_id)
            elif transition.current == Unobserved.name:
                self.anchors.forget(transition.piece_id)
        report.transitions.extend(transitions)

        records = {r.piece_id: r for r in self.tracker}

        with self.timer.time_block("grouping"):
            groups = self.groups.update(records.values(), timestamp)
            self.anchors.update(groups, records)

        self._gate(groups, records, timestamp, report.transitions)

        if self._targets:
            with self.timer.time_block("validate"):
                self._validate(groups, records, timestamp, report)
            report.complete = self.validator.is_complete(records.values(), self._targets)

        report.timings_ms = self.timer.collect()
        return report

    def _gate(
        self,
        groups: Sequence[ConstructionGroup],
        records: dict[str, PieceRecord],
        timestamp: float,
        transitions: list[StateTransition],
    ) -> None:
        """Placed -> Validating, immediately or when the group phase allows it."""
        phase_of = {m: g.phase for g in groups for m in g.member_ids}

        for record in records.values():
            if not isinstance(record.state, Placed):
                continue
            if self.config.validation_mode == "group":
                phase = phase_of.get(record.piece_id)
                if phase is None or not phase.should_validate:
                    continue
            transition = self.tracker.begin_validation(record.piece_id, timestamp)
            if transition is not None:
                transitions.append(transition)

    def _validate(
        self,
        groups: Sequence[ConstructionGroup],
        records: dict[str, PieceRecord],
        timestamp: float,
        report: FrameReport,
    ) -> None:
        """
        Validate all submitted pieces in target space.

        Notes:
            - Non-anchor pieces first; an anchor only validates once another
              member of its group validated (its target stays free until then)
            - Anchors without a validated partner -> Invalid(no_validated_pieces_nearby)
        """
        submitted = {
            r.piece_id for r in self.tracker.submittable()
            if not isinstance(r.state, Placed)
        }
        if not submitted:
            return

        group_of: dict[str, ConstructionGroup] = {}
        members: list[InternalPiece] = []
        anchors: list[InternalPiece] = []

        for group in groups:
            poses, mapping = self.anchors.validation_poses(group, records, self._targets)
            for piece_id in group.member_ids:
                if piece_id not in submitted:
                    continue
                group_of[piece_id] = group
                if mapping is not None and piece_id == mapping.anchor_id:
                    anchors.append(poses[piece_id])
                else:
                    members.append(poses[piece_id])

        assignments = self.tracker.assignments()
        results = self.validator.validate_set(members, self._targets, assignments)
        passed_ids = {r.piece_id for r in results if r.passed}
        consumed = {r.target_id for r in results if r.passed}

        supported = [
            a for a in anchors
            if any(m in passed_ids for m in group_of[a.piece_id].member_ids if m != a.piece_id)
        ]
        anchor_results = self.validator.validate_set(supported, self._targets, assignments, reserved=consumed)
        passed_ids |= {r.piece_id for r in anchor_results if r.passed}
        results.extend(anchor_results)

        supported_ids = {a.piece_id for a in supported}
        for anchor in anchors:
            if anchor.piece_id not in supported_ids:
                failure = ValidationFailure(FailureKind.NO_VALIDATED_PIECES_NEARBY)
                results.append(ValidationResult(anchor.piece_id, None, False, failure))

        for result in results:
            if result.passed:
                group = group_of[result.piece_id]
                connections = frozenset(
                    m for m in group.member_ids if m != result.piece_id and m in passed_ids
                )
                transition = self.tracker.mark_validated(
                    result.piece_id, result.target_id, connections, timestamp
                )
            else:
                transition = self.tracker.mark_invalid(result.piece_id, result.failure, timestamp)
            if transition is not None:
                report.transitions.append(transition)

        report.results.extend(results)
