"""
Coordinate Converter.

Turns one sensor frame into the canonical InternalPuzzleState:

    1. Homography normalization (sensor px -> rectified px)
    2. Scale: cached, else calibrate; uncalibrated -> empty state
    3. Per object: label -> PieceType, canonicalize, pose in square sides
    4. Camera inversion: rotation += pi, position negated
    5. Assemble state with schema version

Per-object failures are collected in the skip list; they never abort the frame.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional
import math
import numpy as np

from ..calibration import CalibrationStore, ScaleCalibrator
from ..canonicalization import VertexCanonicalizer
from ..config import BridgeConfig
from ..errors import MalformedObject, NoCalibrationSource, ObjectSkip, UnknownPieceLabel
from ..geometry.angles import normalize_angle
from ..homography import HomographyNormalizer
from ..models import (
    CVFrame,
    CVObject,
    InternalPiece,
    InternalPuzzleState,
    SkippedObject,
    piece_type_for_label,
)
from ...logger import get_logger
from ...performance import FrameTimer

logger = get_logger(__name__)


@dataclass
class ConversionResult:
    """
    Output of CoordinateConverter.convert().

    Attributes:
        state: Converted pieces (empty if uncalibrated)
        skipped: Objects dropped, with reason
        diagnostics: Frame-level messages
    """
    state: InternalPuzzleState
    skipped: list[SkippedObject] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)

    @property
    def calibrated(self) -> bool:
        return self.state.calibration_scale > 0


class CoordinateConverter:
    """
    Sensor frame -> InternalPuzzleState.

    Example:
        >>> store = InMemoryCalibrationStore()
        >>> converter = CoordinateConverter(BridgeConfig(), store)
        >>> state = converter.convert_to_internal(frame)
        >>> state.pieces[0].position   # in square sides
    """

    def __init__(
        self,
        config: BridgeConfig,
        store: CalibrationStore,
        timer: Optional[FrameTimer] = None,
    ):
        self.config = config
        self.store = store
        self.normalizer = HomographyNormalizer(config)
        self.calibrator = ScaleCalibrator(config, store)
        self.canonicalizer = VertexCanonicalizer(config)
        self.timer = timer or FrameTimer(enabled=False)

    @property
    def camera_inversion(self) -> bool:
        stored = self.store.get_camera_inversion()
        return self.config.camera_inversion if stored is None else stored

    def convert_to_internal(self, frame: CVFrame) -> InternalPuzzleState:
        return self.convert(frame).state

    def convert(self, frame: CVFrame) -> ConversionResult:
        skipped = [
            SkippedObject(index, "", MalformedObject.code, message)
            for index, message in frame.malformed
        ]
        for index, message in frame.malformed:
            logger.info("Skipping malformed object %d: %s", index, message)

        # NaN / inf poses never reach projection, calibration or angle math
        finite: list[CVObject] = []
        finite_indices: list[int] = []
        for index, obj in enumerate(frame.objects):
            field_name = obj.non_finite_field()
            if field_name is None:
                finite.append(obj)
                finite_indices.append(index)
                continue
            message = f"{field_name} must be finite"
            logger.info("Skipping object %d (%s): %s", index, obj.name, message)
            skipped.append(SkippedObject(index, obj.name, MalformedObject.code, message))

        with self.timer.time_block("normalize"):
            normalized = self.normalizer.normalize(replace(frame, objects=finite))
        skipped.extend(replace(s, index=finite_indices[s.index]) for s in normalized.skipped)
        source_indices = [finite_indices[i] for i in normalized.source_indices]
        rectified = normalized.frame

        with self.timer.time_block("calibrate"):
            try:
                scale = self.calibrator.resolve_scale(rectified)
            except NoCalibrationSource as e:
                message = f"Uncalibrated frame: {e}"
                logger.warning(message)
                empty = InternalPuzzleState(schema_version=self.config.schema_version)
                return ConversionResult(state=empty, skipped=skipped, diagnostics=[message])

        inverted = self.camera_inversion
        pieces: list[InternalPiece] = []
        id_counts: dict[str, int] = {}

        with self.timer.time_block("pieces"):
            for source_index, obj in zip(source_indices, rectified.objects):
                try:
                    piece = self.convert_object(obj, scale, inverted)
                except ObjectSkip as e:
                    logger.info("Skipping object %d (%s): %s", source_index, obj.name, e)
                    skipped.append(SkippedObject(source_index, obj.name, e.code, str(e)))
                    continue

                piece_id = piece.piece_id
                id_counts[piece_id] = id_counts.get(piece_id, 0) + 1
                if id_counts[piece_id] > 1:
                    piece = replace(piece, piece_id=f"{piece_id}#{id_counts[piece_id]}")
                pieces.append(piece)

        state = InternalPuzzleState(
            pieces=tuple(pieces),
            schema_version=self.config.schema_version,
            calibration_scale=scale,
        )
        return ConversionResult(state=state, skipped=skipped)

    def convert_object(self, obj: CVObject, scale: float, inverted: bool) -> InternalPiece:
        """
        Convert one rectified object.

        Raises:
            UnknownPieceLabel: Label not in the piece type table
            ObjectSkip: Canonicalization failure (vertex count, degenerate shape, ...)
        """
        piece_type = piece_type_for_label(obj.name)
        if piece_type is None:
            raise UnknownPieceLabel(f"Unknown piece label {obj.name!r}")

        # Canonical order first; pose is derived afterwards
        shape = self.canonicalizer.canonicalize_object(obj, piece_type)

        position = np.asarray(obj.translation, dtype=float) / scale
        rotation = normalize_angle(math.radians(obj.rotation_degrees))

        if inverted:
            rotation = normalize_angle(rotation + math.pi)
            position = -position

        return InternalPiece(
            piece_id=obj.stable_id or piece_type.value,
            piece_type=piece_type,
            position=(float(position[0]), float(position[1])),
            rotation=rotation,
            flipped=shape.flipped,
        )

    def invalidate_calibration(self) -> None:
        self.calibrator.invalidate()

