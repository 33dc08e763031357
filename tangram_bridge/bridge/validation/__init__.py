"""Validator: feature-angle tolerance matching with instance binding."""

from .validator import Validator

__all__ = ["Validator"]
