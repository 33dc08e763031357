"""
Tests for the Scale Calibrator and calibration stores.

Scale = pixels per one square side:
- square side S -> S
- large triangle leg S -> S
- medium triangle leg L -> L * sqrt(2)
- small triangle leg L -> L * 2
"""

import json
import math

import numpy as np
import pytest

from tangram_bridge.bridge.calibration import (
    InMemoryCalibrationStore,
    JsonCalibrationStore,
    ScaleCalibrator,
    find_right_angle_vertex,
)
from tangram_bridge.bridge.config import BridgeConfig
from tangram_bridge.bridge.errors import AmbiguousRightAngle, NoCalibrationSource
from tangram_bridge.bridge.models import PieceType
from tangram_bridge.tests.helpers import make_frame, make_object, square_vertices, triangle_vertices


@pytest.fixture
def calibrator():
    return ScaleCalibrator(BridgeConfig(), InMemoryCalibrationStore())


def test_square_scale(calibrator):
    """Test 1: Square side S -> scale S."""
    print("Test 1: Square scale...", end=" ")

    frame = make_frame([make_object(PieceType.SQUARE, (0, 0), vertices=square_vertices(0, 0, 87.5))])
    scale = calibrator.calibrate(frame)
    assert np.isclose(scale, 87.5), f"Expected 87.5, got {scale}"

    print("✓")


@pytest.mark.parametrize("piece_type,leg,expected", [
    (PieceType.LARGE_TRIANGLE_1, 120.0, 120.0),
    (PieceType.MEDIUM_TRIANGLE, 100.0, 100.0 * math.sqrt(2)),
    (PieceType.SMALL_TRIANGLE_2, 40.0, 80.0),
])
def test_triangle_scale(calibrator, piece_type, leg, expected):
    """Test 2: Triangle fallbacks use the leg ratios."""
    frame = make_frame([make_object(piece_type, (0, 0), vertices=triangle_vertices(10, 10, leg))])
    assert np.isclose(calibrator.calibrate(frame), expected)


def test_priority_square_first(calibrator):
    """Test 3: Square wins over triangles regardless of frame order."""
    print("Test 3: Priority...", end=" ")

    frame = make_frame([
        make_object(PieceType.SMALL_TRIANGLE_1, (0, 0), vertices=triangle_vertices(0, 0, 10.0)),
        make_object(PieceType.LARGE_TRIANGLE_1, (0, 0), vertices=triangle_vertices(0, 0, 70.0)),
        make_object(PieceType.SQUARE, (0, 0), vertices=square_vertices(0, 0, 50.0)),
    ])
    assert np.isclose(calibrator.calibrate(frame), 50.0)

    print("✓")


def test_fallback_skips_bad_candidates(calibrator):
    """Test 4: Square with wrong vertex count falls back to the large triangle."""
    frame = make_frame([
        make_object(PieceType.SQUARE, (0, 0), vertices=[[0, 0], [10, 0], [10, 10]]),
        make_object(PieceType.LARGE_TRIANGLE_2, (0, 0), vertices=triangle_vertices(0, 0, 64.0)),
    ])
    assert np.isclose(calibrator.calibrate(frame), 64.0)


def test_no_source_raises(calibrator):
    """Test 5: Only a parallelogram -> NoCalibrationSource."""
    frame = make_frame([make_object(PieceType.PARALLELOGRAM, (0, 0))])
    with pytest.raises(NoCalibrationSource):
        calibrator.calibrate(frame)


def test_right_angle_vertex_any_order():
    """Test 6: Right-angle vertex found for every vertex order."""
    print("Test 6: Right-angle vertex...", end=" ")

    triangle = triangle_vertices(5, 5, 30.0)  # right angle at index 0
    for shift in range(3):
        rolled = np.roll(triangle, shift, axis=0)
        index = find_right_angle_vertex(rolled)
        assert np.allclose(rolled[index], [5, 5]), f"shift={shift}: got {rolled[index]}"

    print("✓")


def test_equilateral_is_ambiguous():
    triangle = np.array([[0.0, 0.0], [10.0, 0.0], [5.0, 5.0 * math.sqrt(3)]])
    with pytest.raises(AmbiguousRightAngle):
        find_right_angle_vertex(triangle)


def test_resolve_scale_caches(calibrator):
    """Test 7: Cached scale is reused until invalidated."""
    print("Test 7: Cache...", end=" ")

    first = make_frame([make_object(PieceType.SQUARE, (0, 0), vertices=square_vertices(0, 0, 100.0))])
    second = make_frame([make_object(PieceType.SQUARE, (0, 0), vertices=square_vertices(0, 0, 50.0))])

    assert calibrator.resolve_scale(first) == 100.0
    assert calibrator.resolve_scale(second) == 100.0

    calibrator.invalidate()
    assert calibrator.resolve_scale(second) == 50.0

    print("✓")


def test_failed_calibration_keeps_cache():
    store = InMemoryCalibrationStore(scale=42.0)
    calibrator = ScaleCalibrator(BridgeConfig(), store)
    assert calibrator.resolve_scale(make_frame([])) == 42.0


def test_store_rejects_non_positive_scale():
    store = InMemoryCalibrationStore()
    with pytest.raises(ValueError):
        store.set_scale(0.0)
    with pytest.raises(ValueError):
        store.set_scale(-3.0)


def test_json_store_roundtrip(tmp_path):
    """Test 8: JSON store persists scale + inversion across sessions."""
    print("Test 8: JSON store...", end=" ")

    path = tmp_path / "calibration.json"
    store = JsonCalibrationStore(path)
    assert store.get_scale() is None

    store.set_scale(123.0)
    store.set_camera_inversion(True)
    store.flush()

    with open(path) as f:
        data = json.load(f)
    assert data["scale"] == 123.0
    assert data["camera_inversion"] is True
    assert data["calibration_date"]

    reopened = JsonCalibrationStore(path)
    assert reopened.get_scale() == 123.0
    assert reopened.get_camera_inversion() is True

    reopened.invalidate()
    reopened.flush()
    assert JsonCalibrationStore(path).get_scale() is None

    store.close()
    reopened.close()
    print("✓")


def test_json_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "calibration.json"
    path.write_text("{not json")
    store = JsonCalibrationStore(path)
    assert store.get_scale() is None
    store.close()
