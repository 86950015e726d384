"""
Deterministic draft metrics.

These are the fallbacks backends use whenever a provider's own scoring or
comparison call fails, so an iteration always ends up with metrics.
"""
from __future__ import annotations

import dataclasses
from typing import List

from scriptwizard.config import settings
from scriptwizard.models.records import IterationMetrics
from scriptwizard.services.export import SECTION_HEADING_PATTERN
from scriptwizard.utils.helpers import (
    count_words,
    repeated_phrase_ratio,
    round_half_up,
    safe_divide,
)


@dataclasses.dataclass(frozen=True)
class Comparison:
    """Outcome of comparing a previous draft with its revision."""

    redundancy_reduction: float
    improvement_areas: List[str]


def estimate_duration_minutes(word_count: int, words_per_minute: int = 0) -> int:
    """Spoken length in whole minutes, never less than one."""
    rate = words_per_minute or settings.WORDS_PER_MINUTE
    return max(1, round_half_up(word_count / rate))


def estimate_duration_seconds(word_count: int, words_per_minute: int = 0) -> int:
    return estimate_duration_minutes(word_count, words_per_minute) * 60


def heuristic_metrics(content: str, words_per_minute: int = 0) -> IterationMetrics:
    word_count = count_words(content)
    return IterationMetrics(
        word_count=word_count,
        estimated_duration=estimate_duration_seconds(word_count, words_per_minute),
    )


def redundancy_reduction(original: str, revised: str) -> float:
    """
    Percentage drop in repeated 5-word phrases from *original* to *revised*.

    0.0 when the original has no repetition or the revision repeats more.
    """
    before = repeated_phrase_ratio(original)
    after = repeated_phrase_ratio(revised)
    if before <= 0.0:
        return 0.0
    return round(max(0.0, (before - after) / before) * 100.0, 1)


def heuristic_comparison(original: str, revised: str) -> Comparison:
    reduction = redundancy_reduction(original, revised)

    areas: List[str] = []
    if reduction > 0:
        areas.append("Reduced repeated phrasing")

    words_before = count_words(original)
    words_after = count_words(revised)
    change = safe_divide(words_after - words_before, words_before)
    if change <= -0.05:
        areas.append("More concise wording")
    elif change >= 0.05:
        areas.append("Expanded content")

    headings_before = len(SECTION_HEADING_PATTERN.findall(original))
    headings_after = len(SECTION_HEADING_PATTERN.findall(revised))
    if headings_after != headings_before:
        areas.append("Restructured sections")

    return Comparison(redundancy_reduction=reduction, improvement_areas=areas)
