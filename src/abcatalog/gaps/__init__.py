"""Letter coverage gap analysis."""

from .analyzer import (
    GapReport,
    LetterCoverage,
    LetterGap,
    PlatformGapReport,
    PlatformRecommendation,
    Recommendation,
    analyze,
    analyze_platform,
)

__all__ = [
    "GapReport",
    "LetterCoverage",
    "LetterGap",
    "PlatformGapReport",
    "PlatformRecommendation",
    "Recommendation",
    "analyze",
    "analyze_platform",
]
