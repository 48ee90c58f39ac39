"""Media set management: candidate intake, approval states, and primary selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from abcatalog.state.errors import ValidationError
from abcatalog.state.models import Item, MediaDraft, MediaRecord, MediaStatus, new_id, utcnow

LOGGER = logging.getLogger(__name__)

_MACHINE_TRANSITIONS: dict[MediaStatus, frozenset[MediaStatus]] = {
    MediaStatus.PENDING: frozenset(
        {
            MediaStatus.PROCESSING,
            MediaStatus.APPROVED,
            MediaStatus.REJECTED,
            MediaStatus.MANUAL_REVIEW,
        }
    ),
    MediaStatus.PROCESSING: frozenset(
        {MediaStatus.APPROVED, MediaStatus.REJECTED, MediaStatus.MANUAL_REVIEW}
    ),
    MediaStatus.MANUAL_REVIEW: frozenset({MediaStatus.APPROVED, MediaStatus.REJECTED}),
    MediaStatus.APPROVED: frozenset(),
    MediaStatus.REJECTED: frozenset(),
}
TERMINAL_STATUSES = frozenset({MediaStatus.APPROVED, MediaStatus.REJECTED})


@dataclass(slots=True)
class MediaChange:
    """Before/after view of one media status request.

    Attributes:
        record_id: Media record that was addressed.
        before: Status prior to the request.
        after: Status after the request.
        primary_before: Primary record id before the request.
        primary_after: Primary record id after the request.
    """

    record_id: str
    before: MediaStatus
    after: MediaStatus
    primary_before: Optional[str]
    primary_after: Optional[str]

    @property
    def changed(self) -> bool:
        return self.before != self.after or self.primary_before != self.primary_after


def _primary_rank(record: MediaRecord) -> tuple:
    score = record.overall_score
    return (-(score if score is not None else -1.0), record.created_at, record.id)


class MediaSetManager:
    """Maintain an item's media records and the counts derived from them."""

    def add_candidate(self, item: Item, draft: MediaDraft) -> MediaRecord:
        """Append a new ``Pending`` record built from ``draft``.

        Args:
            item: Item receiving the candidate.
            draft: Candidate data produced by an acquisition worker.

        Returns:
            MediaRecord: The stored record.

        Raises:
            ValidationError: If the draft reuses an existing record id.
        """
        record_id = draft.id or new_id()
        if any(existing.id == record_id for existing in item.media):
            raise ValidationError(f"media record {record_id!r} already exists on item {item.id!r}")

        now = utcnow()
        record = MediaRecord(
            id=record_id,
            source_provider=draft.source_provider,
            source_id=draft.source_id,
            source_url=draft.source_url,
            file_path=draft.file_path,
            metadata=draft.metadata,
            quality_score=draft.quality_score,
            status=MediaStatus.PENDING,
            created_at=draft.created_at or now,
            updated_at=now,
        )
        item.media.append(record)
        self.recount(item)
        item.updated_at = now
        return record

    def set_status(
        self,
        item: Item,
        record_id: str,
        status: MediaStatus,
        *,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
        override: bool = False,
    ) -> MediaChange:
        """Move a media record to ``status``.

        Approved and rejected are terminal for the machine; leaving them needs
        ``override=True``. Counts and the primary choice are re-derived on
        every change.

        Args:
            item: Item owning the record.
            record_id: Identifier of the record to update.
            status: Desired media status.
            reason: Optional note stored as the rejection reason.
            actor: Operator or worker applying the change.
            override: Allow leaving a terminal status.

        Returns:
            MediaChange: Before/after status and primary record ids.

        Raises:
            NotFoundError: If the record does not exist on the item.
            ValidationError: If the transition is not allowed.
        """
        record = item.find_media(record_id)
        before = record.status
        primary_before = item.primary.id if item.primary else None

        if before == status:
            return MediaChange(record_id, before, status, primary_before, primary_before)

        if before in TERMINAL_STATUSES:
            if not override:
                raise ValidationError(
                    f"media record {record_id!r} is {before.value}; "
                    "an operator override is required to change it"
                )
        elif status not in _MACHINE_TRANSITIONS[before]:
            raise ValidationError(
                f"media record {record_id!r} cannot move from {before.value} to {status.value}"
            )

        now = utcnow()
        record.status = status
        record.updated_at = now
        if status == MediaStatus.APPROVED:
            record.approved_at = now
            record.approved_by = actor
            record.rejection_reason = None
        else:
            record.approved_at = None
            record.approved_by = None
            record.is_primary = False
            if status == MediaStatus.REJECTED:
                record.rejection_reason = reason

        self.recount(item)
        primary = self.select_primary(item)
        item.updated_at = now
        LOGGER.debug(
            "Media %s on item %s: %s -> %s", record_id, item.id, before.value, status.value
        )
        return MediaChange(
            record_id, before, status, primary_before, primary.id if primary else None
        )

    def select_primary(self, item: Item) -> Optional[MediaRecord]:
        """Ensure the item has at most one primary record, and that it is approved.

        A valid primary is kept. Otherwise the approved record with the highest
        overall score wins, ties going to the earliest ``created_at``.

        Returns:
            Optional[MediaRecord]: The primary record, or ``None`` when nothing
            is approved.
        """
        approved = [
            record
            for record in item.media
            if record.is_live and record.status == MediaStatus.APPROVED
        ]
        flagged = sorted((record for record in approved if record.is_primary), key=_primary_rank)
        keep = flagged[0] if flagged else None
        if keep is None and approved:
            keep = min(approved, key=_primary_rank)

        for record in item.media:
            record.is_primary = record is keep
        return keep

    def set_primary(self, item: Item, record_id: str) -> MediaRecord:
        """Make an approved record the item's primary representation.

        Raises:
            NotFoundError: If the record does not exist on the item.
            ValidationError: If the record is not approved.
        """
        record = item.find_media(record_id)
        if record.status != MediaStatus.APPROVED:
            raise ValidationError(
                f"media record {record_id!r} is {record.status.value}; "
                "only approved media can be primary"
            )
        for other in item.media:
            other.is_primary = other is record
        item.updated_at = utcnow()
        return record

    def remove(self, item: Item, record_id: str) -> MediaRecord:
        """Soft-delete a rejected record so it leaves every count.

        Raises:
            NotFoundError: If the record does not exist on the item.
            ValidationError: If the record is not rejected.
        """
        record = item.find_media(record_id)
        if record.status != MediaStatus.REJECTED:
            raise ValidationError(
                f"media record {record_id!r} is {record.status.value}; "
                "only rejected media can be deleted"
            )
        now = utcnow()
        record.deleted_at = now
        record.is_primary = False
        self.recount(item)
        item.updated_at = now
        return record

    def recount(self, item: Item) -> None:
        """Re-derive collected, approved, and rejected counts from the records."""
        live = item.live_media()
        item.collected_count = len(live)
        item.approved_count = sum(1 for record in live if record.status == MediaStatus.APPROVED)
        item.rejected_count = sum(1 for record in live if record.status == MediaStatus.REJECTED)


__all__ = ["MediaChange", "MediaSetManager", "TERMINAL_STATUSES"]
