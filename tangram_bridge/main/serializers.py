"""JSON views of bridge objects for the HTTP routes."""

import math

from tangram_bridge.bridge import (
    FrameReport,
    InternalPiece,
    PieceRecord,
    SkippedObject,
    StateTransition,
    ValidationResult,
)
from tangram_bridge.bridge.lifecycle import Detected, Invalid, Moved, Placed, Validated


def failure_to_dict(failure):
    if failure is None:
        return None
    return {
        'kind': failure.kind.value,
        'value': failure.value,
        'message': failure.nudge_message,
    }


def piece_to_dict(piece: InternalPiece):
    return {
        'id': piece.piece_id,
        'piece_type': piece.piece_type.value,
        'position': list(piece.position),
        'rotation': piece.rotation,
        'rotation_degrees': math.degrees(piece.rotation),
        'flipped': piece.flipped,
    }


def state_to_dict(state):
    data = {'name': state.name}
    if isinstance(state, Detected):
        data['detected_at'] = state.detected_at
    elif isinstance(state, Moved):
        data['since'] = state.since
    elif isinstance(state, Placed):
        data['at'] = state.at
    elif isinstance(state, Validated):
        data['target_id'] = state.target_id
        data['connections'] = sorted(state.connections)
    elif isinstance(state, Invalid):
        data['reason'] = failure_to_dict(state.reason)
    return data


def record_to_dict(record: PieceRecord):
    pose = record.pose
    return {
        'id': record.piece_id,
        'piece_type': record.piece_type.value,
        'state': state_to_dict(record.state),
        'pose': None if pose is None else {'x': pose.x, 'y': pose.y, 'theta': pose.theta},
        'flipped': record.flipped,
        'is_anchor': record.is_anchor,
        'assigned_target_id': record.assigned_target_id,
        'interaction_count': record.interaction_count,
        'last_moved_at': record.last_moved_at,
        'last_seen_at': record.last_seen_at,
    }


def transition_to_dict(transition: StateTransition):
    return {
        'piece_id': transition.piece_id,
        'from': transition.previous,
        'to': transition.current,
        'timestamp': transition.timestamp,
        'reason': transition.reason,
    }


def result_to_dict(result: ValidationResult):
    return {
        'piece_id': result.piece_id,
        'target_id': result.target_id,
        'passed': result.passed,
        'failure': failure_to_dict(result.failure),
    }


def skipped_to_dict(skipped: SkippedObject):
    return {
        'index': skipped.index,
        'label': skipped.label,
        'code': skipped.code,
        'message': skipped.message,
    }


def report_to_dict(report: FrameReport):
    state = report.state
    return {
        'schema_version': state.schema_version,
        'calibration_scale': state.calibration_scale,
        'pieces': [piece_to_dict(p) for p in state.pieces],
        'transitions': [transition_to_dict(t) for t in report.transitions],
        'results': [result_to_dict(r) for r in report.results],
        'skipped': [skipped_to_dict(s) for s in report.skipped],
        'diagnostics': list(report.diagnostics),
        'timings_ms': dict(report.timings_ms),
        'complete': report.complete,
    }
