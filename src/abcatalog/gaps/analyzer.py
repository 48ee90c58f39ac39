"""Letter coverage gap analysis for categories and the whole platform."""

from __future__ import annotations

from typing import Iterable, List, Literal

from pydantic import BaseModel, Field

from abcatalog.aggregates.recalculator import UsableContentPolicy, has_usable_content
from abcatalog.config.models import GapSettings
from abcatalog.state.letters import ALPHABET, LETTER_COUNT
from abcatalog.state.models import Category

LetterStatus = Literal["critical", "minimal", "good"]


class LetterGap(BaseModel):
    """Coverage of one letter slot within a category."""

    letter: str
    total_items: int
    usable_items: int
    status: LetterStatus


class Recommendation(BaseModel):
    """Remediation suggestion attached to a category gap report."""

    type: Literal["critical", "enhancement"]
    priority: Literal["high", "medium"]
    action: str
    message: str
    letters: List[str] = Field(default_factory=list)


class GapReport(BaseModel):
    """Per-letter classification of a category."""

    category_id: str
    category_name: str
    letters: List[LetterGap]
    critical_letters: List[str]
    minimal_letters: List[str]
    completeness: int
    completeness_percentage: int
    recommendations: List[Recommendation]


class LetterCoverage(BaseModel):
    """Cross-category coverage of one letter."""

    letter: str
    total_categories: int
    categories_with_content: int
    usable_items: int
    completion_rate: float
    critical_categories: List[str] = Field(default_factory=list)


class PlatformRecommendation(BaseModel):
    """Suggestion targeting a letter that is weak across categories."""

    letter: str
    priority: Literal["high"] = "high"
    action: str = "bulk_content_generation"
    description: str
    impact: str


class PlatformGapReport(BaseModel):
    """Platform-wide letter coverage, worst letters first."""

    total_categories: int
    letters: List[LetterCoverage]
    problem_letters: List[str]
    average_completion_rate: float
    overall_completion_percentage: int
    recommendations: List[PlatformRecommendation]


def _classify(usable: int) -> LetterStatus:
    if usable == 0:
        return "critical"
    if usable == 1:
        return "minimal"
    return "good"


def _joined(letters: List[str]) -> str:
    return ", ".join(letters) if letters else "none"


def analyze(category: Category, policy: UsableContentPolicy = "acquired") -> GapReport:
    """Classify each of the category's letters as critical, minimal, or good.

    Both recommendations are always present, even with empty letter lists, so
    callers decide what to render.
    """
    letters: List[LetterGap] = []
    for letter, items in category.iter_letters():
        live = [item for item in items if not item.is_archived]
        usable = sum(1 for item in live if has_usable_content(item, policy))
        letters.append(
            LetterGap(
                letter=letter,
                total_items=len(live),
                usable_items=usable,
                status=_classify(usable),
            )
        )

    critical = [gap.letter for gap in letters if gap.status == "critical"]
    minimal = [gap.letter for gap in letters if gap.status == "minimal"]
    covered = LETTER_COUNT - len(critical)
    return GapReport(
        category_id=category.id,
        category_name=category.name,
        letters=letters,
        critical_letters=critical,
        minimal_letters=minimal,
        completeness=covered,
        completeness_percentage=round(100 * covered / LETTER_COUNT),
        recommendations=[
            Recommendation(
                type="critical",
                priority="high",
                action="bulk_add_items",
                message=f"Add items for letters: {_joined(critical)}",
                letters=critical,
            ),
            Recommendation(
                type="enhancement",
                priority="medium",
                action="add_alternative_items",
                message=f"Consider adding more items for: {_joined(minimal)}",
                letters=minimal,
            ),
        ],
    )


def analyze_platform(
    categories: Iterable[Category],
    policy: UsableContentPolicy = "acquired",
    settings: GapSettings | None = None,
) -> PlatformGapReport:
    """Rank letters by their cross-category completion rate, worst first."""
    settings = settings or GapSettings()
    reports = [analyze(category, policy) for category in categories]
    total = len(reports)

    coverage: List[LetterCoverage] = []
    for index, letter in enumerate(ALPHABET):
        with_content = 0
        usable_items = 0
        critical_categories: List[str] = []
        for report in reports:
            gap = report.letters[index]
            usable_items += gap.usable_items
            if gap.status == "critical":
                critical_categories.append(report.category_id)
            else:
                with_content += 1
        coverage.append(
            LetterCoverage(
                letter=letter,
                total_categories=total,
                categories_with_content=with_content,
                usable_items=usable_items,
                completion_rate=with_content / total if total else 0.0,
                critical_categories=critical_categories,
            )
        )

    coverage.sort(key=lambda entry: (entry.completion_rate, entry.letter))
    problems = [
        entry for entry in coverage if entry.completion_rate < settings.problem_letter_threshold
    ]
    filled = sum(entry.categories_with_content for entry in coverage)
    slots = total * LETTER_COUNT

    return PlatformGapReport(
        total_categories=total,
        letters=coverage,
        problem_letters=[entry.letter for entry in problems],
        average_completion_rate=round(
            sum(entry.completion_rate for entry in coverage) / LETTER_COUNT, 4
        ),
        overall_completion_percentage=round(100 * filled / slots) if slots else 0,
        recommendations=[
            PlatformRecommendation(
                letter=entry.letter,
                description=(
                    f"Generate content for letter {entry.letter} across "
                    f"{len(entry.critical_categories)} categories"
                ),
                impact=f"Would fill {len(entry.critical_categories)} empty letter slots",
            )
            for entry in problems[: settings.max_platform_recommendations]
        ],
    )


__all__ = [
    "LetterStatus",
    "LetterGap",
    "Recommendation",
    "GapReport",
    "LetterCoverage",
    "PlatformRecommendation",
    "PlatformGapReport",
    "analyze",
    "analyze_platform",
]
