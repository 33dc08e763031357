"""Vertex Canonicalizer: deterministic start vertex + winding, flip detection."""

from .canonicalizer import CanonicalShape, VertexCanonicalizer, signed_area

__all__ = ["CanonicalShape", "VertexCanonicalizer", "signed_area"]
