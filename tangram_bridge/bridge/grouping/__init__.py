"""
Construction groups and anchor-relative positioning.

Public API:
    ConstructionGroupManager(config).update(records, timestamp) -> list[ConstructionGroup]
    AnchorManager(config, validator).update(groups, records) -> dict[group_id, anchor_id]
"""

from .groups import ConstructionGroup, ConstructionGroupManager, GroupPhase, compute_phase
from .anchors import AnchorManager, AnchorMapping, record_to_piece, relative_pose

__all__ = [
    "ConstructionGroup",
    "ConstructionGroupManager",
    "GroupPhase",
    "compute_phase",
    "AnchorManager",
    "AnchorMapping",
    "record_to_piece",
    "relative_pose",
]
