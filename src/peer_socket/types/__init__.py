"""Reusable type definitions for peer-socket."""

from .base import StrictBaseModel

__all__ = [
    "StrictBaseModel",
]
