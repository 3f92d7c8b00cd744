"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import EntityStore

__all__ = ["EntityStore"]
