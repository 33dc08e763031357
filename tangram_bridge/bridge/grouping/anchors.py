"""
Anchor & Relative Position Manager.

Every multi-piece construction group has exactly one anchor. Member poses
are validated relative to the anchor, so a group assembled anywhere on the
table (at any orientation) validates the same way.

Anchor selection:
- New group: the member that entered Moved first
- Anchor removed (lost, unassigned, or left the group): the group's most
  recently moved member is promoted
- Merged groups: the earliest-moved anchor wins

Anchor mapping (piece space -> target space):
    anchor_frame = (p_anchor, feature_piece(anchor))
    target_frame = (p_target, feature_target(target) - k * symmetry_period)
    piece' = target_frame ∘ anchor_frame^-1 ∘ piece
Every k under which the anchor still matches is tried; the mapping that
validates the most members wins.
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
import math

from ..config import BridgeConfig, Transform2D
from ..geometry.angles import normalize_angle, symmetry_period
from ..lifecycle.states import PieceRecord
from ..models import InternalPiece, Pose2D, TargetPiece
from ..validation import Validator
from .groups import ConstructionGroup
from ...logger import get_logger

logger = get_logger(__name__)


def pose_to_transform(pose: Pose2D) -> Transform2D:
    return Transform2D(pose.x, pose.y, pose.theta)


def relative_pose(piece: Pose2D, anchor: Pose2D) -> Transform2D:
    """
    Piece pose expressed in the anchor's frame: anchor^-1 ∘ piece.

    Invariant to any rigid motion applied to both poses.
    """
    return pose_to_transform(anchor).inverse().compose(pose_to_transform(piece))


def record_to_piece(record: PieceRecord) -> InternalPiece:
    """Absolute InternalPiece from a record's latest observation."""
    return InternalPiece(
        piece_id=record.piece_id,
        piece_type=record.piece_type,
        position=(record.pose.x, record.pose.y),
        rotation=record.pose.theta,
        flipped=record.flipped,
    )


@dataclass(frozen=True)
class AnchorMapping:
    """
    Rigid mapping of a group into target space.

    Attributes:
        anchor_id: Anchor piece
        target_id: Target the anchor is mapped onto
        anchor_frame: Anchor position + piece feature angle (piece space)
        target_frame: Target position + feature angle the anchor frame lands on

    Notes:
        - piece' = target_frame ∘ relative_pose(piece, anchor_frame)
    """
    anchor_id: str
    target_id: str
    anchor_frame: Pose2D
    target_frame: Pose2D

    @property
    def rotation_delta(self) -> float:
        return normalize_angle(self.target_frame.theta - self.anchor_frame.theta)

    def apply(self, piece: InternalPiece) -> InternalPiece:
        placed = pose_to_transform(self.target_frame).compose(relative_pose(piece.pose, self.anchor_frame))
        return InternalPiece(
            piece_id=piece.piece_id,
            piece_type=piece.piece_type,
            position=(placed.x, placed.y),
            rotation=normalize_angle(placed.theta),
            flipped=piece.flipped,
        )


class AnchorManager:
    """
    Anchor bookkeeping across frames.

    Example:
        >>> anchors = AnchorManager(config, validator)
        >>> anchors.note_moved("square")
        >>> anchor_by_group = anchors.update(groups, records_by_id)
        >>> poses, mapping = anchors.validation_poses(group, records_by_id, targets)
    """

    def __init__(self, config: BridgeConfig, validator: Validator):
        self.config = config
        self.validator = validator
        # piece_id -> None, least recently moved first
        self._recent: OrderedDict[str, None] = OrderedDict()
        self._anchor_members: dict[str, frozenset[str]] = {}
        self._orphaned: set[str] = set()

    def reset(self) -> None:
        self._recent.clear()
        self._anchor_members.clear()
        self._orphaned.clear()

    def note_moved(self, piece_id: str) -> None:
        self._recent[piece_id] = None
        self._recent.move_to_end(piece_id)

    def forget(self, piece_id: str) -> None:
        self._recent.pop(piece_id, None)

    def most_recently_moved(self, candidates: Sequence[str]) -> Optional[str]:
        wanted = set(candidates)
        for piece_id in reversed(self._recent):
            if piece_id in wanted:
                return piece_id
        return None

    # ---------- anchor selection ----------

    @staticmethod
    def _first_moved_key(record: PieceRecord):
        first = record.first_moved_at
        return (math.inf if first is None else first, record.piece_id)

    def update(
        self,
        groups: Sequence[ConstructionGroup],
        records: Mapping[str, PieceRecord],
    ) -> dict[str, str]:
        """
        Assign one anchor per multi-piece group.

        Returns:
            group_id -> anchor piece_id (singletons have no anchor)
        """
        multi = [g for g in groups if not g.is_singleton]
        grouped_ids = {m for g in multi for m in g.member_ids}

        for anchor_id, members in self._anchor_members.items():
            record = records.get(anchor_id)
            if anchor_id not in grouped_ids or record is None or not record.is_anchor:
                self._orphaned |= members - {anchor_id}

        for record in records.values():
            if record.piece_id not in grouped_ids:
                record.is_anchor = False

        anchor_by_group: dict[str, str] = {}
        anchor_members: dict[str, frozenset[str]] = {}

        for group in multi:
            member_records = [records[m] for m in group.member_ids]
            flagged = [r for r in member_records if r.is_anchor]

            if flagged:
                anchor = min(flagged, key=self._first_moved_key)
            else:
                anchor = None
                if any(m in self._orphaned for m in group.member_ids):
                    promoted = self.most_recently_moved(group.member_ids)
                    anchor = records[promoted] if promoted is not None else None
                    if anchor is not None:
                        logger.debug("Promoted %s to anchor of group %s", anchor.piece_id, group.group_id)
                if anchor is None:
                    anchor = min(member_records, key=self._first_moved_key)

            for record in member_records:
                record.is_anchor = record is anchor

            self._orphaned -= set(group.member_ids)
            anchor_by_group[group.group_id] = anchor.piece_id
            anchor_members[anchor.piece_id] = frozenset(group.member_ids)

        self._orphaned &= set(records)
        self._anchor_members = anchor_members
        return anchor_by_group

    # ---------- relative positioning ----------

    def mapping_onto(self, anchor: InternalPiece, target: TargetPiece, turns: int = 0) -> AnchorMapping:
        """
        Mapping that puts the anchor exactly onto target (feature-angle space).

        Args:
            anchor: Anchor piece (absolute pose)
            target: Target for the anchor
            turns: Number of symmetry periods subtracted from the target
                   feature angle (same anchor match, group turned around it)
        """
        period = symmetry_period(target.piece_type)
        anchor_frame = Pose2D(anchor.position[0], anchor.position[1], self.validator.piece_feature_angle(anchor))
        target_theta = normalize_angle(self.validator.target_feature_angle(target) - turns * period)
        target_frame = Pose2D(target.position[0], target.position[1], target_theta)
        return AnchorMapping(anchor.piece_id, target.target_id, anchor_frame, target_frame)

    def candidate_mappings(self, anchor: InternalPiece, target: TargetPiece) -> list[AnchorMapping]:
        """One mapping per rotation under which the anchor still matches target."""
        count = max(1, int(round(2 * math.pi / symmetry_period(target.piece_type))))
        return [self.mapping_onto(anchor, target, k) for k in range(count)]

    def select_mapping(
        self,
        anchor: PieceRecord,
        pieces: Sequence[InternalPiece],
        targets: Sequence[TargetPiece],
    ) -> Optional[AnchorMapping]:
        """
        Mapping of the anchor's group into target space.

        Notes:
            - Candidate targets: the anchor's bound target, otherwise every
              same-shape target
            - Each candidate is tried at every symmetric anchor rotation
              (4 for the square, 2 for triangles)
            - The mapping that validates the most group members wins
              (first candidate wins ties)
        """
        anchor_piece = next(p for p in pieces if p.piece_id == anchor.piece_id)
        by_id = {t.target_id: t for t in targets}

        bound = by_id.get(anchor.assigned_target_id) if anchor.assigned_target_id else None
        if bound is not None:
            candidates = [bound]
        else:
            candidates = [t for t in targets if t.piece_type.shape is anchor.piece_type.shape]
        if not candidates:
            return None

        best = None
        best_score = -1
        for target in candidates:
            for mapping in self.candidate_mappings(anchor_piece, target):
                score = self.validator.count_matches([mapping.apply(p) for p in pieces], targets)
                if score > best_score:
                    best, best_score = mapping, score
        return best

    def validation_poses(
        self,
        group: ConstructionGroup,
        records: Mapping[str, PieceRecord],
        targets: Sequence[TargetPiece],
    ) -> tuple[dict[str, InternalPiece], Optional[AnchorMapping]]:
        """
        Poses to validate for every group member.

        Returns:
            (piece_id -> InternalPiece in target space, mapping used or None)
            Singletons and groups without a usable anchor use absolute poses.
        """
        pieces = [record_to_piece(records[m]) for m in group.member_ids]
        absolute = {p.piece_id: p for p in pieces}

        if group.is_singleton:
            return absolute, None

        anchor = next((records[m] for m in group.member_ids if records[m].is_anchor), None)
        if anchor is None:
            return absolute, None

        mapping = self.select_mapping(anchor, pieces, targets)
        if mapping is None:
            return absolute, None

        return {p.piece_id: mapping.apply(p) for p in pieces}, mapping
