"""State persistence helpers for abcatalog."""

from __future__ import annotations

import json
import logging
from datetime import timezone
from pathlib import Path
from typing import List

from pydantic import ValidationError as PydanticValidationError

from .errors import (
    CatalogError,
    MissingStateError,
    NotFoundError,
    RecoverableAnomaly,
    StateError,
    ValidationError,
)
from .letters import ALPHABET, normalize_letter
from .models import (
    AcquisitionStatus,
    AuditEvent,
    Category,
    CategoryAggregate,
    CategoryDraft,
    CollectionStrategy,
    Item,
    ItemDraft,
    MediaDraft,
    MediaRecord,
    MediaStatus,
    PublicationStatus,
    QualityScore,
    utcnow,
)
from .store import CategoryStore, InMemoryCategoryStore

DEFAULT_STATE_DIRNAME = ".abcatalog"
LOGGER = logging.getLogger(__name__)


class StateRepository:
    """Persist categories as JSON documents beneath a catalog root."""

    def __init__(self, root: Path, base_dirname: str = DEFAULT_STATE_DIRNAME) -> None:
        """Initialize the repository.

        Args:
            root: Directory that owns the catalog state.
            base_dirname: Name of the directory that stores state artifacts.
        """
        self._root = root
        self._base_dirname = base_dirname

    @property
    def state_dir(self) -> Path:
        """Return the directory holding the catalog state."""
        return self._root / self._base_dirname

    @property
    def audit_log_path(self) -> Path:
        """Return the path of the JSON-lines audit log."""
        return self.state_dir / "audit.jsonl"

    def initialize(self) -> Path:
        """Prepare the state directories.

        Returns:
            Path: Directory containing the category documents.
        """
        directory = self.state_dir / "categories"
        directory.mkdir(parents=True, exist_ok=True)
        self.audit_log_path.touch(exist_ok=True)
        return directory

    def get(self, category_id: str) -> Category:
        """Load one category.

        Args:
            category_id: Identifier of the category to load.

        Returns:
            Category: Deserialized category.

        Raises:
            MissingStateError: If no document exists for the category.
            StateError: If the stored document cannot be parsed.
        """
        path = self._category_path(category_id)
        if not path.exists():
            raise MissingStateError(f"No category state found at {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateError(f"Invalid category data in {path}: {exc}") from exc

        try:
            return Category.model_validate(data)
        except PydanticValidationError as exc:
            raise StateError(f"Invalid category data in {path}: {exc}") from exc

    def save(self, category: Category) -> None:
        """Persist a category, refreshing its ``updated_at`` stamp."""
        directory = self.initialize()
        category.updated_at = utcnow()
        if category.created_at.tzinfo is None:
            category.created_at = category.created_at.replace(tzinfo=timezone.utc)
        payload = category.model_dump(mode="json")
        target = directory / f"{category.id}.json"
        scratch = target.with_suffix(".json.tmp")
        scratch.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        scratch.replace(target)

    def exists(self, category_id: str) -> bool:
        return self._category_path(category_id).exists()

    def list(self) -> List[Category]:
        """Load every readable category ordered by id.

        A document that cannot be parsed is logged and skipped; loading it
        directly with :meth:`get` still raises.
        """
        directory = self.state_dir / "categories"
        if not directory.exists():
            return []
        categories: List[Category] = []
        for path in sorted(directory.glob("*.json")):
            try:
                categories.append(self.get(path.stem))
            except StateError as exc:
                LOGGER.warning("Skipping unreadable category %s: %s", path.stem, exc)
        return categories

    def _category_path(self, category_id: str) -> Path:
        return self.state_dir / "categories" / f"{category_id}.json"


__all__ = [
    "StateRepository",
    "DEFAULT_STATE_DIRNAME",
    "CategoryStore",
    "InMemoryCategoryStore",
    "ALPHABET",
    "normalize_letter",
    "AcquisitionStatus",
    "AuditEvent",
    "Category",
    "CategoryAggregate",
    "CategoryDraft",
    "CollectionStrategy",
    "Item",
    "ItemDraft",
    "MediaDraft",
    "MediaRecord",
    "MediaStatus",
    "PublicationStatus",
    "QualityScore",
    "CatalogError",
    "ValidationError",
    "NotFoundError",
    "StateError",
    "MissingStateError",
    "RecoverableAnomaly",
]
