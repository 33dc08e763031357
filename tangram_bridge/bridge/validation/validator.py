"""
Validator: matches pieces against target poses.

A piece matches a target iff
    1. same shape (the two small / two large triangles are interchangeable)
    2. position distance <= position_tolerance
    3. flip state equal (parallelogram only)
    4. feature-angle error, reduced by the shape's symmetry period,
       <= rotation_tolerance

Feature angles:
    feature_target = target.rotation + target_offset(shape)
    feature_piece  = piece.rotation + (-piece_offset if flipped else piece_offset)

Offsets are triangle_target_offset / triangle_piece_offset for triangles and
0 for square / parallelogram.
"""

from __future__ import annotations
from typing import Iterable, Mapping, Optional, Sequence
import math

from ..config import BridgeConfig
from ..geometry.angles import normalize_angle, reduce_by_symmetry, symmetry_period
from ..lifecycle.states import PieceRecord, Validated
from ..models import (
    FailureKind,
    InternalPiece,
    PieceShape,
    PieceType,
    TargetPiece,
    ValidationFailure,
    ValidationResult,
)


class Validator:
    """
    Tolerance matching of pieces against targets.

    Example:
        >>> validator = Validator(BridgeConfig())
        >>> validator.validate(piece, target)
        True
        >>> results = validator.validate_set(pieces, targets, assignments={})
    """

    def __init__(self, config: BridgeConfig):
        self.config = config

    # ---------- feature angles ----------

    def target_offset(self, piece_type: PieceType) -> float:
        return self.config.triangle_target_offset if piece_type.is_triangle else 0.0

    def piece_offset(self, piece_type: PieceType, flipped: bool) -> float:
        if not piece_type.is_triangle:
            return 0.0
        offset = self.config.triangle_piece_offset
        return -offset if flipped else offset

    def target_feature_angle(self, target: TargetPiece) -> float:
        return target.rotation + self.target_offset(target.piece_type)

    def piece_feature_angle(self, piece: InternalPiece) -> float:
        return piece.rotation + self.piece_offset(piece.piece_type, piece.flipped)

    def rotation_error(self, piece: InternalPiece, target: TargetPiece) -> float:
        """Feature-angle error (radians) after symmetry reduction, >= 0."""
        delta = normalize_angle(self.target_feature_angle(target) - self.piece_feature_angle(piece))
        return abs(reduce_by_symmetry(delta, symmetry_period(target.piece_type)))

    # ---------- single piece ----------

    def check(self, piece: InternalPiece, target: TargetPiece) -> Optional[ValidationFailure]:
        """
        First failing criterion for piece vs. target, None on match.

        Order: shape, position, flip, rotation.
        """
        if piece.piece_type.shape is not target.piece_type.shape:
            return ValidationFailure(FailureKind.WRONG_PIECE)

        distance = piece.pose.distance_to(target.pose)
        if distance > self.config.position_tolerance:
            return ValidationFailure(FailureKind.WRONG_POSITION, distance)

        if target.piece_type.shape is PieceShape.PARALLELOGRAM and piece.flipped != target.flipped:
            return ValidationFailure(FailureKind.NEEDS_FLIP)

        error = self.rotation_error(piece, target)
        if error > self.config.rotation_tolerance:
            return ValidationFailure(FailureKind.WRONG_ROTATION, math.degrees(error))

        return None

    def validate(self, piece: InternalPiece, target: TargetPiece) -> bool:
        return self.check(piece, target) is None

    def diagnose(self, piece: InternalPiece, targets: Sequence[TargetPiece]) -> ValidationFailure:
        """
        Failure reason for a piece that matched none of targets.

        Notes:
            - Closest same-shape target decides (position / flip / rotation)
            - No same-shape target at all -> WRONG_PIECE
        """
        same_shape = [t for t in targets if t.piece_type.shape is piece.piece_type.shape]
        if not same_shape:
            return ValidationFailure(FailureKind.WRONG_PIECE)

        closest = min(same_shape, key=lambda t: piece.pose.distance_to(t.pose))
        failure = self.check(piece, closest)
        return failure or ValidationFailure(FailureKind.NO_MATCHING_TARGET)

    # ---------- sets ----------

    def validate_set(
        self,
        pieces: Sequence[InternalPiece],
        targets: Sequence[TargetPiece],
        assignments: Mapping[str, str],
        reserved: Iterable[str] = (),
    ) -> list[ValidationResult]:
        """
        Validate pieces against targets with instance binding.

        Args:
            pieces: Submitted pieces (validation poses)
            targets: All targets of the puzzle
            assignments: piece_id -> currently bound target_id
            reserved: Target ids already consumed by an earlier pass

        Returns:
            One ValidationResult per piece, in input order. At most one
            passing result per target.

        Notes:
            - Pass 1: bound pieces are checked against their own target
            - Pass 2: remaining pieces search unconsumed same-shape targets,
              closest first
        """
        by_id = {t.target_id: t for t in targets}
        consumed = set(reserved)
        results: dict[str, ValidationResult] = {}

        for piece in pieces:
            target_id = assignments.get(piece.piece_id)
            target = by_id.get(target_id) if target_id is not None else None
            if target is None or target_id in consumed:
                continue
            if self.validate(piece, target):
                consumed.add(target_id)
                results[piece.piece_id] = ValidationResult(piece.piece_id, target_id, True)

        for piece in pieces:
            if piece.piece_id in results:
                continue

            pool = [t for t in targets if t.target_id not in consumed]
            candidates = sorted(
                (t for t in pool if t.piece_type.shape is piece.piece_type.shape),
                key=lambda t: piece.pose.distance_to(t.pose),
            )
            match = next((t for t in candidates if self.validate(piece, t)), None)

            if match is not None:
                consumed.add(match.target_id)
                results[piece.piece_id] = ValidationResult(piece.piece_id, match.target_id, True)
            else:
                failure = self._diagnose_in_pool(piece, targets, pool)
                results[piece.piece_id] = ValidationResult(piece.piece_id, None, False, failure)

        return [results[p.piece_id] for p in pieces]

    def _diagnose_in_pool(
        self,
        piece: InternalPiece,
        targets: Sequence[TargetPiece],
        pool: Sequence[TargetPiece],
    ) -> ValidationFailure:
        same_shape_pool = [t for t in pool if t.piece_type.shape is piece.piece_type.shape]
        if same_shape_pool:
            return self.diagnose(piece, same_shape_pool)
        if any(t.piece_type.shape is piece.piece_type.shape for t in targets):
            # Every same-shape target already taken this pass
            return ValidationFailure(FailureKind.NO_MATCHING_TARGET)
        return ValidationFailure(FailureKind.WRONG_PIECE)

    def count_matches(self, pieces: Sequence[InternalPiece], targets: Sequence[TargetPiece]) -> int:
        """Number of pieces that pass validate_set without prior bindings."""
        return sum(r.passed for r in self.validate_set(pieces, targets, {}))

    @staticmethod
    def is_complete(records: Iterable[PieceRecord], targets: Sequence[TargetPiece]) -> bool:
        """
        True iff every target has exactly one Validated piece bound to it.

        Args:
            records: PieceRecords (lifecycle table)
            targets: All targets of the puzzle
        """
        if not targets:
            return False

        counts = {t.target_id: 0 for t in targets}
        for record in records:
            if isinstance(record.state, Validated) and record.assigned_target_id in counts:
                counts[record.assigned_target_id] += 1
        return all(count == 1 for count in counts.values())
