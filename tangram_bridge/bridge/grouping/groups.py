"""
Construction groups.

Pieces the user has interacted with are clustered into construction groups:
two pieces are linked once their centroids have stayed closer than
group_proximity_threshold for at least group_stability_duration. Groups are
the transitive closure of that relation (connected components).

Each group carries a phase describing how far its construction is:

    scattered    <= 1 piece
    exploring    2 pieces, no connections, younger than group_exploring_window
    completing   connections / 6 > 0.6, or >= 5 pieces with >= 3 connections
    building     >= 4 pieces with >= 2 connections
    constructing >= 3 pieces, or >= 1 connection
    exploring    otherwise

A connection is a linked pair whose pieces are both Validated.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial.distance import pdist, squareform

from ..config import BridgeConfig
from ..lifecycle.states import PieceRecord, Validated, is_interactable

# Max number of connections in a full tangram (7 pieces, spanning structure)
MAX_CONNECTIONS = 6


class GroupPhase(Enum):
    SCATTERED = "scattered"
    EXPLORING = "exploring"
    CONSTRUCTING = "constructing"
    BUILDING = "building"
    COMPLETING = "completing"

    @property
    def should_validate(self) -> bool:
        return self in (GroupPhase.CONSTRUCTING, GroupPhase.BUILDING, GroupPhase.COMPLETING)


def compute_phase(member_count: int, connections: int, age: float, exploring_window: float) -> GroupPhase:
    if member_count <= 1:
        return GroupPhase.SCATTERED
    if member_count == 2 and connections == 0 and age < exploring_window:
        return GroupPhase.EXPLORING

    ratio = connections / MAX_CONNECTIONS
    if ratio > 0.6 or (member_count >= 5 and connections >= 3):
        return GroupPhase.COMPLETING
    if member_count >= 4 and connections >= 2:
        return GroupPhase.BUILDING
    if member_count >= 3 or connections >= 1:
        return GroupPhase.CONSTRUCTING
    return GroupPhase.EXPLORING


@dataclass(frozen=True)
class ConstructionGroup:
    """
    One cluster of linked pieces.

    Attributes:
        group_id: Smallest member id (stable while that member stays)
        member_ids: Sorted member piece ids
        formed_at: Time the oldest link of the group formed (s)
        connections: Linked pairs with both pieces Validated
        phase: Construction phase
    """
    group_id: str
    member_ids: tuple[str, ...]
    formed_at: float
    connections: int
    phase: GroupPhase

    @property
    def is_singleton(self) -> bool:
        return len(self.member_ids) <= 1

    def __contains__(self, piece_id: str) -> bool:
        return piece_id in self.member_ids


class ConstructionGroupManager:
    """
    Recomputes construction groups every frame.

    Pair proximity start times are tracked across frames, so a link only
    forms after the pair stayed close for group_stability_duration.
    """

    def __init__(self, config: BridgeConfig):
        self.config = config
        self._pair_since: dict[tuple[str, str], float] = {}

    def reset(self) -> None:
        self._pair_since.clear()

    def update(self, records: Iterable[PieceRecord], timestamp: float) -> list[ConstructionGroup]:
        """
        Cluster interactable pieces.

        Args:
            records: All lifecycle records
            timestamp: Frame time (s)

        Returns:
            Groups sorted by group_id; every interactable piece is in exactly one
        """
        members = sorted(
            (r for r in records if is_interactable(r.state) and r.pose is not None),
            key=lambda r: r.piece_id,
        )
        ids = [r.piece_id for r in members]
        n = len(members)

        if n == 0:
            self._pair_since.clear()
            return []

        positions = np.array([[r.pose.x, r.pose.y] for r in members], dtype=float)
        distances = squareform(pdist(positions)) if n > 1 else np.zeros((1, 1))

        linked = np.zeros((n, n), dtype=bool)
        still_close = {}
        for i in range(n):
            for j in range(i + 1, n):
                if distances[i, j] >= self.config.group_proximity_threshold:
                    continue
                key = (ids[i], ids[j])
                since = self._pair_since.get(key, timestamp)
                still_close[key] = since
                if timestamp - since >= self.config.group_stability_duration:
                    linked[i, j] = True

        # Pairs that drifted apart (or lost a piece) start over
        self._pair_since = still_close

        n_components, labels = connected_components(csr_matrix(linked), directed=False)

        validated = [isinstance(r.state, Validated) for r in members]
        groups = []
        for label in range(n_components):
            indices = np.flatnonzero(labels == label)
            member_ids = tuple(ids[i] for i in indices)

            link_times = [
                still_close[(ids[i], ids[j])]
                for i in indices for j in indices
                if i < j and linked[i, j]
            ]
            connections = sum(
                1 for i in indices for j in indices
                if i < j and linked[i, j] and validated[i] and validated[j]
            )
            formed_at = min(link_times) if link_times else timestamp
            phase = compute_phase(
                len(member_ids), connections, timestamp - formed_at,
                self.config.group_exploring_window,
            )
            groups.append(ConstructionGroup(member_ids[0], member_ids, formed_at, connections, phase))

        return sorted(groups, key=lambda g: g.group_id)
