"""
Coordinate Converter: sensor frame -> InternalPuzzleState.

Public API:
    CoordinateConverter(config, store).convert(frame) -> ConversionResult
"""

from .converter import ConversionResult, CoordinateConverter

__all__ = ["ConversionResult", "CoordinateConverter"]
