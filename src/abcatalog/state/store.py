"""Persistence adapter protocol for categories."""

from __future__ import annotations

import threading
from typing import Dict, List, Protocol, runtime_checkable

from .errors import MissingStateError
from .models import Category


@runtime_checkable
class CategoryStore(Protocol):
    """CRUD surface the catalog service needs from persistence."""

    def get(self, category_id: str) -> Category: ...

    def save(self, category: Category) -> None: ...

    def exists(self, category_id: str) -> bool: ...

    def list(self) -> List[Category]: ...


class InMemoryCategoryStore:
    """Process-local store that hands out deep copies of saved categories."""

    def __init__(self) -> None:
        self._categories: Dict[str, Category] = {}
        self._lock = threading.Lock()

    def get(self, category_id: str) -> Category:
        with self._lock:
            try:
                category = self._categories[category_id]
            except KeyError:
                raise MissingStateError(f"No category stored with id {category_id!r}") from None
            return category.model_copy(deep=True)

    def save(self, category: Category) -> None:
        with self._lock:
            self._categories[category.id] = category.model_copy(deep=True)

    def exists(self, category_id: str) -> bool:
        with self._lock:
            return category_id in self._categories

    def list(self) -> List[Category]:
        with self._lock:
            return [
                self._categories[key].model_copy(deep=True) for key in sorted(self._categories)
            ]


__all__ = ["CategoryStore", "InMemoryCategoryStore"]
