"""Tests for the Homography Normalizer."""

import numpy as np

from tangram_bridge.bridge.config import BridgeConfig
from tangram_bridge.bridge.homography import HomographyNormalizer, is_identity, project_points
from tangram_bridge.bridge.errors import DegenerateTransform
from tangram_bridge.bridge.models import PieceType
from tangram_bridge.tests.helpers import make_frame, make_object

import pytest


@pytest.fixture
def normalizer():
    return HomographyNormalizer(BridgeConfig())


def test_identity_keeps_points(normalizer):
    """Test 1: Identity homography leaves points unchanged (and sets the flag)."""
    print("Test 1: Identity homography...", end=" ")

    obj = make_object(PieceType.SQUARE, (120.0, 80.0))
    frame = make_frame([obj], homography=np.eye(3))
    result = normalizer.normalize(frame)

    assert result.frame.homography_applied
    assert np.allclose(result.frame.objects[0].vertices, obj.vertices, atol=1e-9)
    assert np.allclose(result.frame.objects[0].translation, obj.translation, atol=1e-9)
    assert result.skipped == []

    print("✓")


def test_translation_and_scale_applied(normalizer):
    """Test 2: Affine H maps vertices and translation."""
    print("Test 2: Affine homography...", end=" ")

    H = np.array([[2.0, 0.0, 10.0], [0.0, 2.0, -5.0], [0.0, 0.0, 1.0]])
    obj = make_object(PieceType.SQUARE, (100.0, 100.0))
    result = normalizer.normalize(make_frame([obj], homography=H))

    out = result.frame.objects[0]
    assert np.allclose(out.translation, [210.0, 195.0])
    assert np.allclose(out.vertices[0], obj.vertices[0] * 2 + [10.0, -5.0])

    print("✓")


def test_perspective_divide():
    """Test 3: Projective row divides by w."""
    H = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 2.0]])
    points = project_points(np.array([[4.0, 6.0]]), H, 1e-9)
    assert np.allclose(points, [[2.0, 3.0]])


def test_degenerate_object_skipped(normalizer):
    """Test 4: w ~ 0 skips only the affected object."""
    print("Test 4: Degenerate w...", end=" ")

    # w = 1 - x / 100 -> zero at x = 100
    H = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [-0.01, 0.0, 1.0]])
    bad = make_object(PieceType.SQUARE, (100.0, 0.0), vertices=[[100, 0], [150, 0], [150, 50], [100, 50]])
    good = make_object(PieceType.SQUARE, (10.0, 10.0), vertices=[[0, 0], [20, 0], [20, 20], [0, 20]])
    result = normalizer.normalize(make_frame([bad, good], homography=H))

    assert len(result.frame.objects) == 1
    assert result.source_indices == [1]
    assert len(result.skipped) == 1
    assert result.skipped[0].index == 0
    assert result.skipped[0].code == DegenerateTransform.code

    print("✓")


def test_already_applied_passthrough(normalizer):
    """Test 5: homography_applied=True leaves the frame untouched."""
    H = np.diag([5.0, 5.0, 1.0])
    frame = make_frame([make_object(PieceType.SQUARE, (1.0, 1.0))], homography=H, homography_applied=True)
    result = normalizer.normalize(frame)
    assert result.frame is frame


def test_invalid_matrix_treated_as_absent(normalizer):
    """Test 6: Non-3x3 matrix -> pass through."""
    frame = make_frame([make_object(PieceType.SQUARE, (1.0, 1.0))], homography=np.eye(2))
    result = normalizer.normalize(frame)
    assert result.frame is frame
    assert not result.frame.homography_applied


def test_is_identity_up_to_scale():
    assert is_identity(np.eye(3) * 3.0)
    assert not is_identity(np.diag([1.0, 2.0, 1.0]))
