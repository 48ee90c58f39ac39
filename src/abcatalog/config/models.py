"""Configuration models describing abcatalog settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CatalogBaseModel(BaseModel):
    """Shared configuration for abcatalog Pydantic settings models."""

    model_config = ConfigDict(extra="forbid")


class QualitySettings(CatalogBaseModel):
    """Default quality gate thresholds applied to new categories.

    Attributes:
        min_quality_threshold: Scores below this value are rejected outright.
        auto_approval_threshold: Scores at or above this value are approved
            without operator review.
    """

    min_quality_threshold: float = Field(default=7.0, ge=0, le=10)
    auto_approval_threshold: float = Field(default=8.5, ge=0, le=10)

    @model_validator(mode="after")
    def _check_ordering(self) -> "QualitySettings":
        if self.auto_approval_threshold < self.min_quality_threshold:
            raise ValueError("auto_approval_threshold must be >= min_quality_threshold")
        return self


class LifecycleSettings(CatalogBaseModel):
    """Acquisition lifecycle policy.

    Attributes:
        completion_policy: ``target`` completes an item once its approved media
            reach the item's target count; ``any_approved`` completes it on the
            first approved record.
        default_target_count: Target used for new categories.
        max_search_attempts: Search attempts allowed before an item fails.
    """

    completion_policy: Literal["target", "any_approved"] = "target"
    default_target_count: int = Field(default=3, ge=1)
    max_search_attempts: int = Field(default=5, ge=1)


class AggregateSettings(CatalogBaseModel):
    """Aggregate recalculation options.

    Attributes:
        usable_content: Rule deciding whether an item fills its letter slot.
    """

    usable_content: Literal["acquired", "any_item", "approved_media"] = "acquired"


class BacklogSettings(CatalogBaseModel):
    """Weights for the acquisition backlog priority score."""

    base_score: int = 100
    cold_start_bonus: int = 50
    attempt_penalty: int = 10
    easy_bonus: int = 20
    hard_penalty: int = 20
    hard_difficulty: int = Field(default=3, ge=1, le=5)


class GapSettings(CatalogBaseModel):
    """Gap analysis thresholds.

    Attributes:
        problem_letter_threshold: Cross-category completion ratio under which a
            letter is reported as a platform problem.
        max_platform_recommendations: Number of problem letters turned into
            recommendations.
    """

    problem_letter_threshold: float = Field(default=0.5, ge=0, le=1)
    max_platform_recommendations: int = Field(default=5, ge=0)


class LoggingSettings(CatalogBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        rich_tracebacks: Whether the console handler renders rich tracebacks.
    """

    level: str = "WARNING"
    rich_tracebacks: bool = False


class CLIOptions(CatalogBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        backlog_limit: Default number of backlog entries to display.
    """

    quiet_default: bool = False
    backlog_limit: int = Field(default=25, ge=1)


class CatalogConfig(CatalogBaseModel):
    """Top-level configuration struct for abcatalog.

    Attributes:
        quality: Quality gate defaults.
        lifecycle: Acquisition lifecycle policy.
        aggregates: Aggregate recalculation options.
        backlog: Backlog scoring weights.
        gaps: Gap analysis thresholds.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    quality: QualitySettings = Field(default_factory=QualitySettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    aggregates: AggregateSettings = Field(default_factory=AggregateSettings)
    backlog: BacklogSettings = Field(default_factory=BacklogSettings)
    gaps: GapSettings = Field(default_factory=GapSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "CatalogBaseModel",
    "QualitySettings",
    "LifecycleSettings",
    "AggregateSettings",
    "BacklogSettings",
    "GapSettings",
    "LoggingSettings",
    "CLIOptions",
    "CatalogConfig",
]
