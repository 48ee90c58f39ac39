"""Derived category and platform aggregates."""

from .recalculator import (
    PlatformAggregate,
    UsableContentPolicy,
    has_usable_content,
    recompute,
    recompute_platform,
)

__all__ = [
    "PlatformAggregate",
    "UsableContentPolicy",
    "has_usable_content",
    "recompute",
    "recompute_platform",
]
