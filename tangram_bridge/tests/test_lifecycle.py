"""
Tests for the Piece Lifecycle Tracker.

State graph: Unobserved -> Detected -> Moved -> Placed -> Validating ->
Validated | Invalid, with renewed movement back to Moved and lost pieces
back to Unobserved.
"""

import pytest

from tangram_bridge.bridge.config import BridgeConfig
from tangram_bridge.bridge.lifecycle import (
    Detected,
    Invalid,
    Moved,
    PieceLifecycleTracker,
    Placed,
    Unobserved,
    Validated,
    Validating,
)
from tangram_bridge.bridge.models import FailureKind, InternalPuzzleState, PieceType, ValidationFailure
from tangram_bridge.tests.helpers import make_piece


def state_with(*pieces):
    return InternalPuzzleState(pieces=tuple(pieces), calibration_scale=100.0)


def square_at(x, y, rotation=0.0):
    return make_piece(PieceType.SQUARE, (x, y), rotation, piece_id="sq")


@pytest.fixture
def tracker():
    return PieceLifecycleTracker(BridgeConfig())


def settle(tracker, x, y, start, rotation=0.0):
    """Move the square to (x, y) at `start` and hold it there until placed."""
    tracker.update(state_with(square_at(x, y, rotation)), start)
    tracker.update(state_with(square_at(x, y, rotation)), start + 0.1)
    return tracker.update(state_with(square_at(x, y, rotation)), start + 0.3)


def test_first_appearance_detected(tracker):
    """Test 1: Unobserved -> Detected with baseline."""
    print("Test 1: Detected...", end=" ")

    transitions = tracker.update(state_with(square_at(1.0, 1.0)), 0.0)

    record = tracker.get("sq")
    assert isinstance(record.state, Detected)
    assert record.state.baseline.x == 1.0
    assert [(t.previous, t.current) for t in transitions] == [("unobserved", "detected")]
    assert tracker.submittable() == []

    print("✓")


def test_jitter_keeps_detected(tracker):
    tracker.update(state_with(square_at(1.0, 1.0)), 0.0)
    tracker.update(state_with(square_at(1.1, 1.0)), 0.1)
    assert isinstance(tracker.get("sq").state, Detected)


def test_movement_then_settle(tracker):
    """Test 2: Detected -> Moved -> Placed after the dwell time."""
    print("Test 2: Moved -> Placed...", end=" ")

    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    transitions = tracker.update(state_with(square_at(2.0, 0.0)), 0.5)
    record = tracker.get("sq")
    assert isinstance(record.state, Moved)
    assert record.interaction_count == 1
    assert record.first_moved_at == 0.5
    assert transitions[-1].reason == "movement"

    # Not yet settled
    tracker.update(state_with(square_at(2.01, 0.0)), 0.6)
    assert isinstance(record.state, Moved)

    transitions = tracker.update(state_with(square_at(2.02, 0.0)), 0.8)
    assert isinstance(record.state, Placed)
    assert [t.current for t in transitions] == ["placed"]
    assert tracker.submittable() == [record]

    print("✓")


def test_rotation_counts_as_movement(tracker):
    tracker.update(state_with(square_at(0.0, 0.0, 0.0)), 0.0)
    tracker.update(state_with(square_at(0.0, 0.0, 0.5)), 0.1)
    assert isinstance(tracker.get("sq").state, Moved)


def test_continued_motion_restarts_dwell(tracker):
    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    tracker.update(state_with(square_at(1.0, 0.0)), 0.1)
    tracker.update(state_with(square_at(1.2, 0.0)), 0.2)
    tracker.update(state_with(square_at(1.4, 0.0)), 0.35)
    assert isinstance(tracker.get("sq").state, Moved)
    tracker.update(state_with(square_at(1.4, 0.0)), 0.6)
    assert isinstance(tracker.get("sq").state, Placed)


def test_validated_survives_jitter_and_regresses_on_movement(tracker):
    """Test 3: Bound piece stays Validated under jitter; movement -> Moved."""
    print("Test 3: Jitter vs. movement...", end=" ")

    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    settle(tracker, 2.0, 0.0, 1.0)
    tracker.begin_validation("sq", 1.3)
    tracker.mark_validated("sq", "t_square", frozenset(), 1.3)
    record = tracker.get("sq")
    assert isinstance(record.state, Validated)
    assert record.assigned_target_id == "t_square"

    tracker.update(state_with(square_at(2.1, 0.05)), 1.4)
    assert isinstance(record.state, Validated), "Sub-threshold jitter must keep Validated"

    transitions = tracker.update(state_with(square_at(3.0, 0.0)), 1.5)
    assert isinstance(record.state, Moved)
    assert [(t.previous, t.current) for t in transitions] == [("validated", "moved")]
    assert record.assigned_target_id == "t_square", "Movement alone does not unbind"
    assert record.interaction_count == 2

    print("✓")


def test_validation_transitions(tracker):
    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    settle(tracker, 2.0, 0.0, 1.0)

    assert tracker.begin_validation("sq", 1.3).current == "validating"
    assert isinstance(tracker.get("sq").state, Validating)
    assert tracker.begin_validation("sq", 1.3) is None

    failure = ValidationFailure(FailureKind.WRONG_POSITION, 0.4)
    transition = tracker.mark_invalid("sq", failure, 1.3)
    assert transition.current == "invalid"
    assert tracker.get("sq").state == Invalid(failure)


def test_lost_piece_unbinds(tracker):
    """Test 4: Unseen for lost_piece_timeout -> Unobserved, binding + anchor released."""
    print("Test 4: Lost piece...", end=" ")

    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    settle(tracker, 2.0, 0.0, 1.0)
    tracker.begin_validation("sq", 1.3)
    tracker.mark_validated("sq", "t_square", frozenset(), 1.3)
    record = tracker.get("sq")
    record.is_anchor = True

    tracker.update(state_with(), 2.0)
    assert isinstance(record.state, Validated), "Not lost before the timeout"

    transitions = tracker.update(state_with(), 2.5)
    assert isinstance(record.state, Unobserved)
    assert transitions[-1].reason == "lost"
    assert record.assigned_target_id is None
    assert record.is_anchor is False

    tracker.update(state_with(square_at(2.0, 0.0)), 2.6)
    assert isinstance(record.state, Detected)

    print("✓")


def test_bind_takeover(tracker):
    """Test 5: A target is bound to at most one piece."""
    tracker.update(state_with(
        make_piece(PieceType.LARGE_TRIANGLE_1, (0, 0), piece_id="a"),
        make_piece(PieceType.LARGE_TRIANGLE_2, (3, 0), piece_id="b"),
    ), 0.0)

    tracker.bind("a", "t1")
    tracker.bind("b", "t1")
    assert tracker.get("a").assigned_target_id is None
    assert tracker.get("b").assigned_target_id == "t1"
    assert tracker.assignments() == {"b": "t1"}


def test_clear_bindings(tracker):
    tracker.update(state_with(square_at(0.0, 0.0)), 0.0)
    settle(tracker, 2.0, 0.0, 1.0)
    tracker.begin_validation("sq", 1.3)
    tracker.mark_validated("sq", "t_square", frozenset(), 1.3)

    tracker.clear_bindings()
    assert tracker.assignments() == {}
    assert isinstance(tracker.get("sq").state, Validating)
