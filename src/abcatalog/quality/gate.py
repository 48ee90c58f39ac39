"""Quality gate deciding what happens to a scored media candidate."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from abcatalog.config.models import QualitySettings
from abcatalog.state.models import CollectionStrategy, MediaRecord, MediaStatus


class GateDecision(str, Enum):
    """Outcome of evaluating a media record against the thresholds."""

    AUTO_APPROVE = "auto_approve"
    REJECT = "reject"
    NEEDS_MANUAL_REVIEW = "needs_manual_review"


_DECISION_STATUS = {
    GateDecision.AUTO_APPROVE: MediaStatus.APPROVED,
    GateDecision.REJECT: MediaStatus.REJECTED,
    GateDecision.NEEDS_MANUAL_REVIEW: MediaStatus.MANUAL_REVIEW,
}


@dataclass(frozen=True, slots=True)
class GateThresholds:
    """Score thresholds consulted by :func:`evaluate`.

    Attributes:
        min_quality_threshold: Scores strictly below are rejected.
        auto_approval_threshold: Scores at or above are approved automatically.
    """

    min_quality_threshold: float = 7.0
    auto_approval_threshold: float = 8.5

    def __post_init__(self) -> None:
        if self.auto_approval_threshold < self.min_quality_threshold:
            raise ValueError("auto_approval_threshold must be >= min_quality_threshold")

    @classmethod
    def from_strategy(cls, strategy: CollectionStrategy) -> "GateThresholds":
        return cls(
            min_quality_threshold=strategy.min_quality_threshold,
            auto_approval_threshold=strategy.auto_approval_threshold,
        )

    @classmethod
    def from_settings(cls, settings: QualitySettings) -> "GateThresholds":
        return cls(
            min_quality_threshold=settings.min_quality_threshold,
            auto_approval_threshold=settings.auto_approval_threshold,
        )


def evaluate(record: MediaRecord, thresholds: GateThresholds) -> GateDecision:
    """Classify ``record`` by its overall quality score.

    Args:
        record: Media record carrying an optional quality score.
        thresholds: Rejection and auto-approval thresholds.

    Returns:
        GateDecision: ``NEEDS_MANUAL_REVIEW`` when the record has no score or the
        score falls in ``[min, auto)``; ``REJECT`` below ``min``;
        ``AUTO_APPROVE`` otherwise.
    """
    score = record.overall_score
    if score is None:
        return GateDecision.NEEDS_MANUAL_REVIEW
    if score < thresholds.min_quality_threshold:
        return GateDecision.REJECT
    if score < thresholds.auto_approval_threshold:
        return GateDecision.NEEDS_MANUAL_REVIEW
    return GateDecision.AUTO_APPROVE


def decision_status(decision: GateDecision) -> MediaStatus:
    """Return the media status a caller should apply for ``decision``."""
    return _DECISION_STATUS[decision]


__all__ = ["GateDecision", "GateThresholds", "evaluate", "decision_status"]
