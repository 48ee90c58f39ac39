"""Pure recomputation of category and platform counters."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Literal, Tuple

from pydantic import BaseModel, Field

from abcatalog.lifecycle.machine import ItemLifecycle
from abcatalog.state.errors import RecoverableAnomaly
from abcatalog.state.letters import LETTER_COUNT
from abcatalog.state.models import (
    AcquisitionStatus,
    Category,
    CategoryAggregate,
    Item,
    MediaStatus,
    PublicationStatus,
)

LOGGER = logging.getLogger(__name__)

UsableContentPolicy = Literal["acquired", "any_item", "approved_media"]

_ACQUIRED = frozenset({AcquisitionStatus.COLLECTING, AcquisitionStatus.COMPLETE})


def has_usable_content(item: Item, policy: UsableContentPolicy = "acquired") -> bool:
    """Return whether ``item`` fills its letter slot under ``policy``.

    Args:
        item: Item to inspect.
        policy: ``acquired`` counts items whose acquisition is collecting or
            complete, ``any_item`` counts every live item, and
            ``approved_media`` requires at least one approved record.

    Returns:
        bool: True when the item counts as usable content.
    """
    if item.is_archived:
        return False
    if policy == "any_item":
        return True
    if policy == "approved_media":
        return any(
            record.is_live and record.status == MediaStatus.APPROVED for record in item.media
        )
    return (item.acquisition_status or AcquisitionStatus.PENDING) in _ACQUIRED


class PlatformAggregate(BaseModel):
    """Counters summed across every category."""

    total_categories: int = 0
    total_items: int = 0
    completed_items: int = 0
    published_items: int = 0
    total_media: int = 0
    approved_media: int = 0
    average_quality: float | None = None
    filled_letter_slots: int = 0
    total_letter_slots: int = 0
    categories: Dict[str, CategoryAggregate] = Field(default_factory=dict)


def _fold(
    category: Category, policy: UsableContentPolicy, lifecycle: ItemLifecycle
) -> Tuple[CategoryAggregate, float, int]:
    aggregate = CategoryAggregate()
    anomalies: List[RecoverableAnomaly] = []
    score_sum = 0.0
    score_count = 0

    for index, (letter, items) in enumerate(category.iter_letters()):
        for item in items:
            if item.is_archived:
                aggregate.archived_items += 1
                continue
            aggregate.total_items += 1

            for field, message in item.load_repairs.items():
                anomalies.append(
                    RecoverableAnomaly(item_id=item.id, letter=letter, field=field, message=message)
                )

            acquisition = item.acquisition_status
            if acquisition is None:
                acquisition = AcquisitionStatus.PENDING
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="acquisition_status",
                        message="missing or unknown acquisition status counted as pending",
                    )
                )
            publication = item.publication_status
            if publication is None:
                publication = PublicationStatus.DRAFT
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="publication_status",
                        message="missing or unknown publication status counted as draft",
                    )
                )
            if item.letter != letter:
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="letter",
                        message=f"item letter {item.letter!r} does not match its slot",
                    )
                )
            aggregate.acquisition_counts[acquisition] += 1
            aggregate.publication_counts[publication] += 1

            live = item.live_media()
            approved = 0
            rejected = 0
            for record in live:
                aggregate.total_media += 1
                aggregate.media_counts[record.status] += 1
                if record.status == MediaStatus.APPROVED:
                    approved += 1
                    if record.quality_score is not None:
                        score_sum += record.quality_score.overall
                        score_count += 1
                elif record.status == MediaStatus.REJECTED:
                    rejected += 1

            target = lifecycle.effective_target(item, category)
            if acquisition == AcquisitionStatus.COMPLETE and approved < target:
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="acquisition_status",
                        message=f"complete with {approved} approved media; target is {target}",
                    )
                )
            if (
                publication == PublicationStatus.PUBLISHED
                and acquisition == AcquisitionStatus.PENDING
            ):
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="publication_status",
                        message="published while acquisition is pending",
                    )
                )

            stored = (item.collected_count, item.approved_count, item.rejected_count)
            if stored != (len(live), approved, rejected):
                anomalies.append(
                    RecoverableAnomaly(
                        item_id=item.id,
                        letter=letter,
                        field="media_counts",
                        message=(
                            f"stored counts {stored} differ from media records "
                            f"{(len(live), approved, rejected)}"
                        ),
                    )
                )

            if has_usable_content(item, policy):
                aggregate.letters_filled[index] = True

    aggregate.filled_letters = sum(aggregate.letters_filled)
    if score_count:
        aggregate.average_quality = round(score_sum / score_count, 2)
    aggregate.anomalies = anomalies
    return aggregate, score_sum, score_count


def recompute(
    category: Category,
    policy: UsableContentPolicy = "acquired",
    lifecycle: ItemLifecycle | None = None,
) -> CategoryAggregate:
    """Fold the category's 26 letter slots into a fresh aggregate.

    The result depends only on the category passed in, so repeated calls on
    unchanged state are identical. Malformed items never abort the fold: they
    are counted with safe defaults and reported as anomalies.

    Args:
        category: Category to summarize. It is not modified.
        policy: Usable-content rule used for the letter fill flags.
        lifecycle: Lifecycle supplying the completion target; complete items
            below it are reported as anomalies.

    Returns:
        CategoryAggregate: Derived counters for the category.
    """
    aggregate, _, _ = _fold(category, policy, lifecycle or ItemLifecycle())
    if aggregate.anomalies:
        LOGGER.warning(
            "Category %s recompute substituted defaults for %d anomalies",
            category.id,
            len(aggregate.anomalies),
        )
        for anomaly in aggregate.anomalies:
            LOGGER.debug("Anomaly in %s/%s: %s", category.id, anomaly.letter, anomaly.message)
    return aggregate


def recompute_platform(
    categories: Iterable[Category],
    policy: UsableContentPolicy = "acquired",
    lifecycle: ItemLifecycle | None = None,
) -> PlatformAggregate:
    """Sum category aggregates into platform-wide counters."""
    lifecycle = lifecycle or ItemLifecycle()
    platform = PlatformAggregate()
    score_sum = 0.0
    score_count = 0
    for category in categories:
        aggregate, category_sum, category_count = _fold(category, policy, lifecycle)
        platform.categories[category.id] = aggregate
        platform.total_categories += 1
        platform.total_items += aggregate.total_items
        platform.completed_items += aggregate.completed_items
        platform.published_items += aggregate.published_items
        platform.total_media += aggregate.total_media
        platform.approved_media += aggregate.media_counts[MediaStatus.APPROVED]
        platform.filled_letter_slots += aggregate.filled_letters
        platform.total_letter_slots += LETTER_COUNT
        score_sum += category_sum
        score_count += category_count
    if score_count:
        platform.average_quality = round(score_sum / score_count, 2)
    return platform


__all__ = [
    "UsableContentPolicy",
    "PlatformAggregate",
    "has_usable_content",
    "recompute",
    "recompute_platform",
]
