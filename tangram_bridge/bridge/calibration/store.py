"""
Calibration persistence.

The calibrated scale and the camera-inversion flag outlive a single frame
(and, with JsonCalibrationStore, a session). Components receive a store
instance; nothing reads calibration from module-level state.

JSON format:
    {
      "scale": 100.0,
      "camera_inversion": false,
      "calibration_date": "2026-10-18T12:00:00"
    }
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
import json
import os
import threading

from ...logger import get_logger

logger = get_logger(__name__)


def _check_scale(scale: float) -> float:
    scale = float(scale)
    if not scale > 0:
        raise ValueError(f"Calibration scale must be > 0, got {scale}")
    return scale


class CalibrationStore(ABC):
    """Persistent calibration state: scale + camera inversion."""

    @abstractmethod
    def get_scale(self) -> Optional[float]:
        """Cached scale (px per square side), None if uncalibrated."""

    @abstractmethod
    def set_scale(self, scale: float) -> None:
        """Cache a new scale. Raises ValueError if scale <= 0."""

    @abstractmethod
    def invalidate(self) -> None:
        """Drop the cached scale; the next frame recalibrates."""

    @abstractmethod
    def get_camera_inversion(self) -> Optional[bool]:
        """Camera-inversion flag, None if never set."""

    @abstractmethod
    def set_camera_inversion(self, inverted: bool) -> None:
        pass


class InMemoryCalibrationStore(CalibrationStore):
    """Session-only store."""

    def __init__(self, scale: Optional[float] = None, camera_inversion: Optional[bool] = None):
        self._scale = None if scale is None else _check_scale(scale)
        self._camera_inversion = camera_inversion

    def get_scale(self) -> Optional[float]:
        return self._scale

    def set_scale(self, scale: float) -> None:
        self._scale = _check_scale(scale)

    def invalidate(self) -> None:
        self._scale = None

    def get_camera_inversion(self) -> Optional[bool]:
        return self._camera_inversion

    def set_camera_inversion(self, inverted: bool) -> None:
        self._camera_inversion = bool(inverted)


class JsonCalibrationStore(CalibrationStore):
    """
    Store backed by a JSON file.

    The file is read once at construction. Every change is written by a
    single background worker, so the frame thread never waits for disk I/O.
    Write errors are logged, not raised.

    Example:
        >>> store = JsonCalibrationStore(Path("calibration.json"))
        >>> store.set_scale(100.0)   # returns immediately
        >>> store.flush()            # wait for the write (tests, shutdown)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="calibration-store")
        self._scale: Optional[float] = None
        self._camera_inversion: Optional[bool] = None
        self._calibration_date: Optional[str] = None

        if self.path.exists():
            self.load()

    def load(self) -> None:
        """Load scale and inversion flag from the JSON file."""
        try:
            with open(self.path, 'r') as f:
                params = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read calibration file %s: %s", self.path, e)
            return

        scale = params.get("scale")
        inversion = params.get("camera_inversion")
        with self._lock:
            if isinstance(scale, (int, float)) and scale > 0:
                self._scale = float(scale)
            elif scale is not None:
                logger.warning("Ignoring invalid stored scale %r in %s", scale, self.path)
            self._camera_inversion = None if inversion is None else bool(inversion)
            self._calibration_date = params.get("calibration_date")

        logger.info(
            "Calibration loaded from %s (calibrated on: %s)",
            self.path, self._calibration_date or "unknown",
        )

    def get_scale(self) -> Optional[float]:
        with self._lock:
            return self._scale

    def set_scale(self, scale: float) -> None:
        scale = _check_scale(scale)
        with self._lock:
            self._scale = scale
            self._calibration_date = datetime.now().isoformat()
        self._schedule_write()

    def invalidate(self) -> None:
        with self._lock:
            self._scale = None
            self._calibration_date = None
        self._schedule_write()

    def get_camera_inversion(self) -> Optional[bool]:
        with self._lock:
            return self._camera_inversion

    def set_camera_inversion(self, inverted: bool) -> None:
        with self._lock:
            self._camera_inversion = bool(inverted)
        self._schedule_write()

    def flush(self) -> None:
        """Block until all scheduled writes are done."""
        self._executor.submit(lambda: None).result()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _snapshot(self) -> dict:
        with self._lock:
            return {
                "scale": self._scale,
                "camera_inversion": self._camera_inversion,
                "calibration_date": self._calibration_date,
            }

    def _schedule_write(self) -> None:
        self._executor.submit(self._write, self._snapshot())

    def _write(self, params: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, 'w') as f:
                json.dump(params, f, indent=2)
            os.replace(tmp_path, self.path)
            logger.debug("Calibration saved to %s", self.path)
        except OSError as e:
            logger.error("Could not write calibration file %s: %s", self.path, e)
