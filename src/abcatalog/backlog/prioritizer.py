"""Acquisition backlog ranking."""

from __future__ import annotations

import heapq
import itertools
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from abcatalog.config.models import BacklogSettings
from abcatalog.lifecycle.machine import ItemLifecycle
from abcatalog.state.letters import ALPHABET
from abcatalog.state.models import AcquisitionStatus, Category, Item

_OPEN_STATUSES = frozenset({AcquisitionStatus.PENDING, AcquisitionStatus.COLLECTING})


class PriorityEntry(BaseModel):
    """One item awaiting acquisition work, with its urgency score."""

    category_id: str
    letter: str
    item_id: str
    item_name: str
    score: int
    approved_count: int
    target_count: int
    search_attempts: int
    created_at: datetime
    position: int

    @property
    def sort_key(self) -> Tuple[int, datetime, str, int, int]:
        """Return the total-order key: score desc, then oldest first."""
        return (
            -self.score,
            self.created_at,
            self.category_id,
            ALPHABET.index(self.letter),
            self.position,
        )


def score_item(item: Item, settings: BacklogSettings | None = None) -> int:
    """Return the backlog priority for ``item``; higher is more urgent.

    Items with no live media get a cold-start bonus, every search attempt
    costs ``attempt_penalty``, easy items are boosted and hard ones demoted.
    The result never drops below zero.
    """
    settings = settings or BacklogSettings()
    score = settings.base_score
    if not item.live_media():
        score += settings.cold_start_bonus
    score -= settings.attempt_penalty * item.search_attempts
    if item.difficulty == 1:
        score += settings.easy_bonus
    elif item.difficulty >= settings.hard_difficulty:
        score -= settings.hard_penalty
    return max(score, 0)


def rank(
    category: Category,
    settings: BacklogSettings | None = None,
    lifecycle: ItemLifecycle | None = None,
) -> List[PriorityEntry]:
    """Rank the category's items that still need acquisition work.

    Only live items whose acquisition is pending or collecting and whose
    approved media are below the effective target are included. Every call
    recomputes from the current state.

    Args:
        category: Category to scan.
        settings: Scoring weights.
        lifecycle: Lifecycle supplying the completion target policy.

    Returns:
        List[PriorityEntry]: Entries sorted by score descending, ties going to
        the oldest item.
    """
    lifecycle = lifecycle or ItemLifecycle()
    entries: List[PriorityEntry] = []
    for letter, items in category.iter_letters():
        for position, item in enumerate(items):
            if item.is_archived:
                continue
            if (item.acquisition_status or AcquisitionStatus.PENDING) not in _OPEN_STATUSES:
                continue
            target = lifecycle.effective_target(item, category)
            if item.approved_count >= target:
                continue
            entries.append(
                PriorityEntry(
                    category_id=category.id,
                    letter=letter,
                    item_id=item.id,
                    item_name=item.name,
                    score=score_item(item, settings),
                    approved_count=item.approved_count,
                    target_count=target,
                    search_attempts=item.search_attempts,
                    created_at=item.created_at,
                    position=position,
                )
            )
    entries.sort(key=lambda entry: entry.sort_key)
    return entries


def iter_platform_backlog(
    categories: Iterable[Category],
    settings: BacklogSettings | None = None,
    lifecycle: ItemLifecycle | None = None,
    *,
    limit: Optional[int] = None,
) -> Iterator[PriorityEntry]:
    """Lazily merge the ranked backlogs of several categories.

    Args:
        categories: Categories to merge.
        settings: Scoring weights.
        lifecycle: Lifecycle supplying the completion target policy.
        limit: Stop after this many entries when given.

    Yields:
        PriorityEntry: Entries in global priority order.
    """
    rankings = [rank(category, settings, lifecycle) for category in categories]
    merged = heapq.merge(*rankings, key=lambda entry: entry.sort_key)
    if limit is not None:
        merged = itertools.islice(merged, limit)
    yield from merged


__all__ = ["PriorityEntry", "score_item", "rank", "iter_platform_backlog"]
