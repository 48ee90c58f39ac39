"""Dual-track item lifecycle: acquisition status and publication status.

The acquisition track follows the approved media count: an item is complete
exactly when its approved records reach the effective target. The publication
track is operator driven, but an item can never be published while its
acquisition is pending. Every method returns the transitions it applied so the
caller can emit audit events and trigger an aggregate recompute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from abcatalog.config.models import LifecycleSettings
from abcatalog.state.errors import ValidationError
from abcatalog.state.models import (
    AcquisitionStatus,
    AuditEvent,
    Category,
    Item,
    PublicationStatus,
    utcnow,
)

LOGGER = logging.getLogger(__name__)

PUBLISH_PENDING_MESSAGE = (
    "cannot publish an item with pending acquisition; evidence required first"
)

_ACQUISITION_TRANSITIONS: dict[AcquisitionStatus, frozenset[AcquisitionStatus]] = {
    AcquisitionStatus.PENDING: frozenset({AcquisitionStatus.COLLECTING}),
    AcquisitionStatus.COLLECTING: frozenset({AcquisitionStatus.PENDING, AcquisitionStatus.FAILED}),
    AcquisitionStatus.FAILED: frozenset({AcquisitionStatus.PENDING}),
    AcquisitionStatus.COMPLETE: frozenset({AcquisitionStatus.PENDING}),
}

_PUBLICATION_TRANSITIONS: dict[PublicationStatus, frozenset[PublicationStatus]] = {
    PublicationStatus.DRAFT: frozenset({PublicationStatus.REVIEW, PublicationStatus.PUBLISHED}),
    PublicationStatus.REVIEW: frozenset({PublicationStatus.DRAFT, PublicationStatus.PUBLISHED}),
    PublicationStatus.PUBLISHED: frozenset({PublicationStatus.DRAFT}),
}


@dataclass(slots=True)
class TransitionRecord:
    """One applied status change.

    Attributes:
        item_id: Item that changed.
        action: Audit action name.
        field: Item field that changed.
        before: Value before the change.
        after: Value after the change.
        actor: Operator or worker responsible.
    """

    item_id: str
    action: str
    field: str
    before: Any
    after: Any
    actor: str

    def to_event(self, category_id: Optional[str] = None) -> AuditEvent:
        """Return the audit event describing this transition."""
        before = _plain(self.before)
        after = _plain(self.after)
        return AuditEvent(
            actor=self.actor,
            action=self.action,
            resource_id=self.item_id,
            category_id=category_id,
            before={self.field: before},
            after={self.field: after},
            description=f"{self.field} {before} -> {after}",
        )


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


class ItemLifecycle:
    """Apply guarded acquisition and publication transitions to items."""

    def __init__(self, settings: LifecycleSettings | None = None) -> None:
        self._settings = settings or LifecycleSettings()

    @property
    def settings(self) -> LifecycleSettings:
        return self._settings

    def effective_target(self, item: Item, category: Category) -> int:
        """Return the approved-media count that completes ``item``.

        The ``any_approved`` policy completes on the first approved record;
        ``target`` uses the item's override or the category strategy.
        """
        if self._settings.completion_policy == "any_approved":
            return 1
        return item.target_count or category.strategy.target_images_per_item

    def target_met(self, item: Item, category: Category) -> bool:
        return item.approved_count >= self.effective_target(item, category)

    def reevaluate(
        self, item: Item, category: Category, *, actor: str = "system"
    ) -> List[TransitionRecord]:
        """Bring the acquisition status in line with the approved media count.

        Reaching the target completes the item from any state; a complete item
        that falls below the target returns to pending.
        """
        current = item.acquisition_status or AcquisitionStatus.PENDING
        if self.target_met(item, category):
            desired = AcquisitionStatus.COMPLETE
        elif current == AcquisitionStatus.COMPLETE:
            desired = AcquisitionStatus.PENDING
        else:
            desired = current

        if desired == item.acquisition_status:
            return []
        return self._set_acquisition(item, desired, actor=actor, action="acquisition_reevaluated")

    def request_acquisition_change(
        self,
        item: Item,
        category: Category,
        desired: AcquisitionStatus,
        *,
        actor: str,
    ) -> List[TransitionRecord]:
        """Apply an explicit acquisition status request.

        Raises:
            ValidationError: If the item is archived, the transition is not in
                the table, or it contradicts the completion guard.
        """
        self._ensure_active(item)
        current = item.acquisition_status or AcquisitionStatus.PENDING
        if desired == current:
            if item.acquisition_status is None:
                # Unknown legacy status; store the normalized value.
                return self._set_acquisition(
                    item, desired, actor=actor, action="acquisition_change"
                )
            return []

        met = self.target_met(item, category)
        if desired == AcquisitionStatus.COMPLETE:
            if not met:
                target = self.effective_target(item, category)
                raise ValidationError(
                    f"item {item.id!r} has {item.approved_count} approved media; "
                    f"{target} required to complete"
                )
        elif met:
            raise ValidationError(
                f"item {item.id!r} has reached its approved media target and must stay complete"
            )
        elif desired not in _ACQUISITION_TRANSITIONS[current]:
            raise ValidationError(
                f"acquisition cannot move from {current.value} to {desired.value}"
            )

        if current == AcquisitionStatus.FAILED and desired == AcquisitionStatus.PENDING:
            item.search_attempts = 0
        return self._set_acquisition(item, desired, actor=actor, action="acquisition_change")

    def record_search_attempt(
        self, item: Item, category: Category, *, actor: str = "system"
    ) -> List[TransitionRecord]:
        """Count one acquisition search for ``item``.

        A pending item starts collecting. Once the category's search budget is
        spent without reaching the target the item fails.
        """
        self._ensure_active(item)
        if item.acquisition_status in (AcquisitionStatus.COMPLETE, AcquisitionStatus.FAILED):
            raise ValidationError(
                f"item {item.id!r} is {item.acquisition_status.value}; no search is needed"
            )

        item.search_attempts += 1
        item.updated_at = utcnow()
        records: List[TransitionRecord] = []
        if (item.acquisition_status or AcquisitionStatus.PENDING) == AcquisitionStatus.PENDING:
            records.extend(
                self._set_acquisition(
                    item, AcquisitionStatus.COLLECTING, actor=actor, action="search_started"
                )
            )
        if (
            item.search_attempts >= category.strategy.max_search_attempts
            and not self.target_met(item, category)
        ):
            records.extend(
                self._set_acquisition(
                    item, AcquisitionStatus.FAILED, actor=actor, action="search_exhausted"
                )
            )
        return records

    def request_publication_change(
        self,
        item: Item,
        desired: PublicationStatus,
        *,
        actor: str,
    ) -> List[TransitionRecord]:
        """Apply a publication status request.

        The first move into ``published`` stamps ``published_at`` and
        ``published_by``; re-publishing leaves them untouched and unpublishing
        keeps them for audit.

        Raises:
            ValidationError: If the item is archived, acquisition is pending
                while publishing, or the transition is not in the table.
        """
        self._ensure_active(item)
        current = item.publication_status or PublicationStatus.DRAFT
        acquisition = item.acquisition_status or AcquisitionStatus.PENDING

        if desired == PublicationStatus.PUBLISHED and acquisition == AcquisitionStatus.PENDING:
            LOGGER.debug("Rejected publish for item %s: acquisition pending", item.id)
            raise ValidationError(PUBLISH_PENDING_MESSAGE)
        if desired == current:
            if item.publication_status is None:
                return self._set_publication(
                    item, desired, actor=actor, action="publication_change"
                )
            return []
        if desired not in _PUBLICATION_TRANSITIONS[current]:
            raise ValidationError(
                f"publication cannot move from {current.value} to {desired.value}"
            )

        return self._set_publication(item, desired, actor=actor, action="publication_change")

    def archive(self, item: Item, *, actor: str) -> List[TransitionRecord]:
        """Soft-archive ``item``; archived items accept no further transitions."""
        self._ensure_active(item)
        now = utcnow()
        item.archived_at = now
        item.updated_at = now
        for record in item.media:
            record.is_primary = False
        LOGGER.info("Archived item %s", item.id)
        return [TransitionRecord(item.id, "archive", "archived", False, True, actor)]

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _ensure_active(self, item: Item) -> None:
        if item.is_archived:
            raise ValidationError(f"item {item.id!r} is archived")

    def _set_acquisition(
        self,
        item: Item,
        desired: AcquisitionStatus,
        *,
        actor: str,
        action: str,
    ) -> List[TransitionRecord]:
        before = item.acquisition_status
        now = utcnow()
        item.acquisition_status = desired
        item.updated_at = now
        if desired == AcquisitionStatus.COMPLETE:
            item.completed_at = now
        elif before == AcquisitionStatus.COMPLETE:
            item.completed_at = None

        LOGGER.info(
            "Item %s acquisition %s -> %s", item.id, _plain(before), desired.value
        )
        records = [TransitionRecord(item.id, action, "acquisition_status", before, desired, actor)]

        if (
            desired == AcquisitionStatus.PENDING
            and item.publication_status == PublicationStatus.PUBLISHED
        ):
            records.extend(
                self._set_publication(
                    item, PublicationStatus.DRAFT, actor=actor, action="auto_unpublish"
                )
            )
        return records

    def _set_publication(
        self,
        item: Item,
        desired: PublicationStatus,
        *,
        actor: str,
        action: str,
    ) -> List[TransitionRecord]:
        before = item.publication_status
        item.publication_status = desired
        item.updated_at = utcnow()
        if desired == PublicationStatus.PUBLISHED and item.published_at is None:
            item.published_at = item.updated_at
            item.published_by = actor
        LOGGER.info("Item %s publication %s -> %s", item.id, _plain(before), desired.value)
        return [TransitionRecord(item.id, action, "publication_status", before, desired, actor)]


__all__ = ["ItemLifecycle", "TransitionRecord", "PUBLISH_PENDING_MESSAGE"]
