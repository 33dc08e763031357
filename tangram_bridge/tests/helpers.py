"""Builders for sensor frames, pieces and targets used across the tests."""

import math

import numpy as np

from tangram_bridge.bridge.config import BridgeConfig
from tangram_bridge.bridge.models import (
    CVFrame,
    CVObject,
    InternalPiece,
    PieceShape,
    PieceType,
    TargetPiece,
)

LABELS = {
    PieceType.SQUARE: "tangram_square",
    PieceType.SMALL_TRIANGLE_1: "tangram_triangle_sml",
    PieceType.SMALL_TRIANGLE_2: "tangram_triangle_sml2",
    PieceType.MEDIUM_TRIANGLE: "tangram_triangle_med",
    PieceType.LARGE_TRIANGLE_1: "tangram_triangle_lrg",
    PieceType.LARGE_TRIANGLE_2: "tangram_triangle_lrg2",
    PieceType.PARALLELOGRAM: "tangram_parallelogram",
}


def square_vertices(x, y, side):
    """Axis-aligned square, top-left corner at (x, y), clockwise on screen."""
    return np.array([[x, y], [x + side, y], [x + side, y + side], [x, y + side]], dtype=float)


def triangle_vertices(x, y, leg):
    """Right triangle with the right angle at (x, y), clockwise on screen."""
    return np.array([[x, y], [x + leg, y], [x, y + leg]], dtype=float)


def parallelogram_vertices(x, y, side):
    """Parallelogram, clockwise on screen (not flipped)."""
    return np.array(
        [[x, y], [x + side, y], [x + 1.5 * side, y + 0.7 * side], [x + 0.5 * side, y + 0.7 * side]],
        dtype=float,
    )


def vertices_for(piece_type, x, y, scale=100.0):
    """Shape of piece_type sized for `scale` pixels per square side."""
    ratios = BridgeConfig().triangle_leg_ratios
    if piece_type.shape is PieceShape.SQUARE:
        return square_vertices(x, y, scale)
    if piece_type.shape is PieceShape.PARALLELOGRAM:
        return parallelogram_vertices(x, y, scale)
    return triangle_vertices(x, y, scale * ratios[piece_type.shape.value])


def make_object(piece_type, translation, rotation_degrees=0.0, vertices=None, stable_id=None, scale=100.0):
    tx, ty = translation
    if vertices is None:
        vertices = vertices_for(piece_type, tx, ty, scale)
    return CVObject(
        name=LABELS[piece_type],
        class_id=list(LABELS).index(piece_type),
        rotation_degrees=rotation_degrees,
        translation=np.array([tx, ty], dtype=float),
        vertices=np.asarray(vertices, dtype=float),
        stable_id=stable_id,
    )


def make_frame(objects, homography=None, homography_applied=False, timestamp=None):
    return CVFrame(
        objects=list(objects),
        homography=None if homography is None else np.asarray(homography, dtype=float),
        homography_applied=homography_applied,
        timestamp=timestamp,
    )


def make_piece(piece_type, position, rotation=0.0, flipped=False, piece_id=None):
    return InternalPiece(
        piece_id=piece_id or piece_type.value,
        piece_type=piece_type,
        position=tuple(position),
        rotation=rotation,
        flipped=flipped,
    )


def make_target(target_id, piece_type, position, rotation=0.0, flipped=False):
    return TargetPiece(target_id, piece_type, tuple(position), rotation, flipped)


def matching_rotation(target, config=None):
    """Piece rotation (radians) whose feature angle equals the target's."""
    config = config or BridgeConfig()
    if not target.piece_type.is_triangle:
        return target.rotation
    offset = config.triangle_piece_offset
    if target.flipped:
        offset = -offset
    return target.rotation + config.triangle_target_offset - offset


def full_tangram_targets():
    """Seven targets, one per piece, in square-side units."""
    return [
        make_target("t_large_1", PieceType.LARGE_TRIANGLE_1, (0.0, 0.0), 0.0),
        make_target("t_large_2", PieceType.LARGE_TRIANGLE_2, (1.0, 0.0), math.pi / 2),
        make_target("t_medium", PieceType.MEDIUM_TRIANGLE, (0.5, 1.0), math.pi),
        make_target("t_square", PieceType.SQUARE, (1.5, 1.0), 0.0),
        make_target("t_small_1", PieceType.SMALL_TRIANGLE_1, (2.0, 0.5), -math.pi / 2),
        make_target("t_small_2", PieceType.SMALL_TRIANGLE_2, (2.0, 1.5), 0.0),
        make_target("t_parallelogram", PieceType.PARALLELOGRAM, (1.0, 2.0), math.pi / 4),
    ]


def object_at_target(target, scale=100.0, offset=(0.0, 0.0), piece_type=None):
    """Sensor object placed exactly on target (plus an offset in square sides)."""
    piece_type = piece_type or target.piece_type
    x = (target.position[0] + offset[0]) * scale
    y = (target.position[1] + offset[1]) * scale
    rotation = math.degrees(matching_rotation(target))
    return make_object(piece_type, (x, y), rotation, scale=scale)
