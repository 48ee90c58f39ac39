"""Catalog and state management errors."""

from __future__ import annotations

from pydantic import BaseModel


class CatalogError(Exception):
    """Base exception for catalog lifecycle operations."""


class ValidationError(CatalogError):
    """Raised when a transition guard or input check is violated.

    Nothing is mutated when this error is raised.
    """


class NotFoundError(CatalogError):
    """Raised when a referenced category, item, or media record is absent."""


class StateError(CatalogError):
    """Base exception for state repository operations."""


class MissingStateError(StateError, NotFoundError):
    """Raised when no persisted state exists for a category."""


class RecoverableAnomaly(BaseModel):
    """Malformed item data substituted with a safe default during a recompute.

    Attributes:
        item_id: Identifier of the offending item, when known.
        letter: Letter slot holding the item.
        field: Name of the field that was defaulted.
        message: Human-readable description of the substitution.
    """

    item_id: str | None = None
    letter: str
    field: str
    message: str


__all__ = [
    "CatalogError",
    "ValidationError",
    "NotFoundError",
    "StateError",
    "MissingStateError",
    "RecoverableAnomaly",
]
