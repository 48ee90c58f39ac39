"""Catalog service: the library surface over the lifecycle engine.

Every operation that touches a category runs under that category's lock and
follows the same load, mutate, recompute, save, audit sequence. A failure
anywhere before the save leaves the stored category untouched. Different
categories share no state and proceed in parallel.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from pydantic import BaseModel, Field

from abcatalog.aggregates.recalculator import PlatformAggregate, recompute, recompute_platform
from abcatalog.backlog.prioritizer import PriorityEntry, iter_platform_backlog, rank
from abcatalog.config.models import CatalogConfig
from abcatalog.gaps.analyzer import GapReport, PlatformGapReport, analyze, analyze_platform
from abcatalog.lifecycle.audit import AuditSink, InMemoryAuditSink
from abcatalog.lifecycle.machine import ItemLifecycle, TransitionRecord
from abcatalog.media.manager import MediaChange, MediaSetManager
from abcatalog.quality.gate import GateDecision, GateThresholds, decision_status, evaluate
from abcatalog.state.errors import CatalogError, ValidationError
from abcatalog.state.letters import normalize_letter
from abcatalog.state.models import (
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
    utcnow,
)
from abcatalog.state.store import CategoryStore

LOGGER = logging.getLogger(__name__)


class BulkItemResult(BaseModel):
    """Outcome for one item of a bulk request."""

    item_id: str
    success: bool
    error: Optional[str] = None
    before: Optional[PublicationStatus] = None
    after: Optional[PublicationStatus] = None


class BulkResult(BaseModel):
    """Per-item outcomes of a bulk request plus success/failure totals."""

    results: List[BulkItemResult] = Field(default_factory=list)
    succeeded: int = 0
    failed: int = 0


@dataclass(slots=True)
class _Session:
    category: Category
    events: List[AuditEvent] = field(default_factory=list)

    def add(self, records: Sequence[TransitionRecord]) -> None:
        self.events.extend(record.to_event(self.category.id) for record in records)

    def note(
        self,
        actor: str,
        action: str,
        resource_id: str,
        *,
        resource_type: str = "item",
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> None:
        self.events.append(
            AuditEvent(
                actor=actor,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                category_id=self.category.id,
                before=before or {},
                after=after or {},
                description=description,
            )
        )


class CatalogService:
    """Coordinate media, lifecycle, aggregates, backlog, and gap analysis."""

    def __init__(
        self,
        store: CategoryStore,
        audit_sink: AuditSink | None = None,
        config: CatalogConfig | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence adapter for categories.
            audit_sink: Destination for transition audit events.
            config: Effective configuration; defaults apply when omitted.
        """
        self._store = store
        self._audit = audit_sink if audit_sink is not None else InMemoryAuditSink()
        self._config = config or CatalogConfig()
        self._media = MediaSetManager()
        self._lifecycle = ItemLifecycle(self._config.lifecycle)
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @property
    def config(self) -> CatalogConfig:
        return self._config

    @property
    def lifecycle(self) -> ItemLifecycle:
        return self._lifecycle

    # ------------------------------------------------------------------ #
    # Categories and items                                               #
    # ------------------------------------------------------------------ #

    def create_category(self, draft: CategoryDraft, *, actor: str = "system") -> Category:
        """Create an empty category with all 26 letter slots.

        Raises:
            ValidationError: If a category with the same id already exists.
        """
        with self._lock_for(draft.id):
            if self._store.exists(draft.id):
                raise ValidationError(f"category {draft.id!r} already exists")
            strategy = draft.strategy or CollectionStrategy(
                target_images_per_item=self._config.lifecycle.default_target_count,
                min_quality_threshold=self._config.quality.min_quality_threshold,
                auto_approval_threshold=self._config.quality.auto_approval_threshold,
                max_search_attempts=self._config.lifecycle.max_search_attempts,
            )
            category = Category(
                id=draft.id,
                name=draft.name,
                description=draft.description,
                icon=draft.icon,
                color=draft.color,
                group=draft.group,
                tags=list(draft.tags),
                strategy=strategy,
            )
            session = _Session(category)
            session.note(actor, "create", category.id, resource_type="category")
            self._finish(session)
            LOGGER.info("Created category %s", category.id)
            return category

    def get_category(self, category_id: str) -> Category:
        """Return a snapshot of a category.

        Raises:
            NotFoundError: If the category does not exist.
        """
        with self._lock_for(category_id):
            return self._store.get(category_id)

    def list_categories(self) -> List[Category]:
        return self._store.list()

    def create_item(
        self,
        category_id: str,
        letter: str,
        draft: ItemDraft,
        *,
        actor: str = "system",
    ) -> Item:
        """Add a new item to the ``letter`` slot of a category.

        Raises:
            NotFoundError: If the category does not exist.
            ValidationError: If the letter is malformed, the name does not
                start with it, or the item id is already used.
        """
        bucket_letter = normalize_letter(letter)
        initial = next((char for char in draft.name.strip() if char.isalpha()), "")
        if initial.upper() != bucket_letter:
            raise ValidationError(
                f"item name {draft.name!r} does not start with letter {bucket_letter}"
            )

        with self._editing(category_id) as session:
            category = session.category
            if draft.id is not None:
                known = {existing.id for _, existing in category.iter_items(include_archived=True)}
                if draft.id in known:
                    raise ValidationError(f"item {draft.id!r} already exists in {category_id!r}")
            fields = draft.model_dump(exclude_none=True)
            item = Item(letter=bucket_letter, **fields)
            category.bucket(bucket_letter).append(item)
            session.note(
                actor, "create", item.id, after={"letter": bucket_letter, "name": item.name}
            )
        return item

    def archive_item(self, category_id: str, item_id: str, *, actor: str) -> Item:
        """Soft-archive an item; it leaves aggregates, backlog, and gaps."""
        with self._editing(category_id) as session:
            _, item = session.category.find_item(item_id)
            session.add(self._lifecycle.archive(item, actor=actor))
        return item

    # ------------------------------------------------------------------ #
    # Media                                                              #
    # ------------------------------------------------------------------ #

    def add_candidate_media(
        self,
        category_id: str,
        item_id: str,
        draft: MediaDraft,
        *,
        actor: str = "acquisition",
    ) -> MediaRecord:
        """Attach a pending media candidate produced by an acquisition worker."""
        with self._editing(category_id) as session:
            item = self._active_item(session.category, item_id)
            record = self._media.add_candidate(item, draft)
            session.note(
                actor,
                "media_added",
                item.id,
                after={"media_id": record.id, "status": record.status.value},
            )
        return record

    def set_media_status(
        self,
        category_id: str,
        item_id: str,
        media_id: str,
        status: MediaStatus,
        *,
        reason: Optional[str] = None,
        actor: str = "system",
        override: bool = False,
    ) -> Item:
        """Change a media record's status and re-derive the item's lifecycle.

        Returns:
            Item: The updated item, whose acquisition status may have flipped.
        """
        with self._editing(category_id) as session:
            item = self._active_item(session.category, item_id)
            self._apply_media_status(
                session, item, media_id, status, reason=reason, actor=actor, override=override
            )
        return item

    def apply_quality_gate(
        self,
        category_id: str,
        item_id: str,
        media_id: str,
        *,
        actor: str = "quality-gate",
    ) -> GateDecision:
        """Evaluate a candidate against the category thresholds and apply the result."""
        with self._editing(category_id) as session:
            item = self._active_item(session.category, item_id)
            record = item.find_media(media_id)
            decision = evaluate(record, GateThresholds.from_strategy(session.category.strategy))
            reason = None
            if decision == GateDecision.REJECT:
                reason = "quality score below minimum threshold"
            self._apply_media_status(
                session, item, media_id, decision_status(decision), reason=reason, actor=actor
            )
        return decision

    def set_primary_media(
        self, category_id: str, item_id: str, media_id: str, *, actor: str
    ) -> MediaRecord:
        with self._editing(category_id) as session:
            item = self._active_item(session.category, item_id)
            previous = item.primary.id if item.primary else None
            record = self._media.set_primary(item, media_id)
            session.note(
                actor,
                "set_primary",
                item.id,
                before={"primary": previous},
                after={"primary": record.id},
            )
        return record

    def remove_media(self, category_id: str, item_id: str, media_id: str, *, actor: str) -> Item:
        """Delete a rejected media record from the item's counts."""
        with self._editing(category_id) as session:
            item = self._active_item(session.category, item_id)
            self._media.remove(item, media_id)
            session.note(actor, "media_deleted", item.id, before={"media_id": media_id})
            session.add(self._lifecycle.reevaluate(item, session.category, actor=actor))
        return item

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    def request_acquisition_change(
        self,
        category_id: str,
        item_id: str,
        desired: AcquisitionStatus,
        *,
        actor: str,
    ) -> Item:
        with self._editing(category_id) as session:
            _, item = session.category.find_item(item_id)
            session.add(
                self._lifecycle.request_acquisition_change(
                    item, session.category, desired, actor=actor
                )
            )
        return item

    def record_search_attempt(
        self, category_id: str, item_id: str, *, actor: str = "acquisition"
    ) -> Item:
        with self._editing(category_id) as session:
            _, item = session.category.find_item(item_id)
            session.add(self._lifecycle.record_search_attempt(item, session.category, actor=actor))
        return item

    def request_publication_change(
        self,
        category_id: str,
        item_id: str,
        desired: PublicationStatus,
        *,
        actor: str,
    ) -> Item:
        """Change an item's publication status.

        Raises:
            NotFoundError: If the category or item does not exist.
            ValidationError: If the guard rejects the change; nothing is saved.
        """
        with self._editing(category_id) as session:
            _, item = session.category.find_item(item_id)
            session.add(self._lifecycle.request_publication_change(item, desired, actor=actor))
        return item

    def bulk_publication_change(
        self,
        category_id: str,
        item_ids: Sequence[str],
        desired: PublicationStatus,
        *,
        actor: str,
    ) -> BulkResult:
        """Apply one publication request to many items independently.

        A failing item is reported and skipped; items processed before or
        after it keep their changes. The aggregate is recomputed once for the
        whole batch.

        Raises:
            NotFoundError: If the category itself does not exist.
        """
        result = BulkResult()
        with self._editing(category_id) as session:
            for item_id in item_ids:
                before: Optional[PublicationStatus] = None
                try:
                    _, item = session.category.find_item(item_id)
                    before = item.publication_status
                    records = self._lifecycle.request_publication_change(
                        item, desired, actor=actor
                    )
                except CatalogError as exc:
                    LOGGER.debug("Bulk publication change skipped %s: %s", item_id, exc)
                    result.results.append(
                        BulkItemResult(
                            item_id=item_id, success=False, error=str(exc), before=before
                        )
                    )
                    result.failed += 1
                    continue
                session.add(records)
                result.results.append(
                    BulkItemResult(
                        item_id=item_id, success=True, before=before, after=item.publication_status
                    )
                )
                result.succeeded += 1
            session.note(
                actor,
                "bulk_update_status",
                "bulk",
                resource_type="category",
                after={
                    "publication_status": desired.value,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                },
                description=f"Bulk updated {result.succeeded} items to {desired.value}",
            )
        LOGGER.info(
            "Bulk publication change in %s: %d succeeded, %d failed",
            category_id,
            result.succeeded,
            result.failed,
        )
        return result

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def recompute_aggregates(self, category_id: str) -> CategoryAggregate:
        """Recompute, store, and return a category's aggregate."""
        with self._editing(category_id) as session:
            pass
        return session.category.aggregate

    def platform_aggregates(self) -> PlatformAggregate:
        return recompute_platform(
            self._store.list(), self._config.aggregates.usable_content, self._lifecycle
        )

    def rank_backlog(self, category_id: str) -> List[PriorityEntry]:
        category = self.get_category(category_id)
        return rank(category, self._config.backlog, self._lifecycle)

    def platform_backlog(self, *, limit: Optional[int] = None) -> List[PriorityEntry]:
        return list(
            iter_platform_backlog(
                self._store.list(), self._config.backlog, self._lifecycle, limit=limit
            )
        )

    def analyze_gaps(self, category_id: str) -> GapReport:
        category = self.get_category(category_id)
        return analyze(category, self._config.aggregates.usable_content)

    def analyze_platform_gaps(self) -> PlatformGapReport:
        return analyze_platform(
            self._store.list(), self._config.aggregates.usable_content, self._config.gaps
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _lock_for(self, category_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(category_id)
            if lock is None:
                lock = self._locks[category_id] = threading.RLock()
            return lock

    @contextmanager
    def _editing(self, category_id: str) -> Iterator[_Session]:
        with self._lock_for(category_id):
            session = _Session(self._store.get(category_id))
            yield session
            self._finish(session)

    def _finish(self, session: _Session) -> None:
        category = session.category
        category.aggregate = recompute(
            category, self._config.aggregates.usable_content, self._lifecycle
        )
        category.updated_at = utcnow()
        self._store.save(category)
        for event in session.events:
            self._audit.record(event)

    def _active_item(self, category: Category, item_id: str) -> Item:
        _, item = category.find_item(item_id)
        if item.is_archived:
            raise ValidationError(f"item {item_id!r} is archived")
        return item

    def _apply_media_status(
        self,
        session: _Session,
        item: Item,
        media_id: str,
        status: MediaStatus,
        *,
        reason: Optional[str],
        actor: str,
        override: bool = False,
    ) -> MediaChange:
        change = self._media.set_status(
            item, media_id, status, reason=reason, actor=actor, override=override
        )
        if change.changed:
            session.note(
                actor,
                "media_status_change",
                item.id,
                before={
                    "media_id": media_id,
                    "status": change.before.value,
                    "primary": change.primary_before,
                },
                after={
                    "media_id": media_id,
                    "status": change.after.value,
                    "primary": change.primary_after,
                },
                description=reason,
            )
        session.add(self._lifecycle.reevaluate(item, session.category, actor=actor))
        return change


__all__ = ["CatalogService", "BulkResult", "BulkItemResult"]
