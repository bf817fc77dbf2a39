"""Ranking and retention policy over scored items.

Pure functions, deterministic for a given input:

    1. retain items that are not LOW, or that score at least 6 overall
    2. sort by importance (HIGH > MEDIUM > LOW), then overall_score desc;
       the sort is stable, so ties keep their input order
    3. keep the top `limit` (20 by default)
"""

from typing import Sequence

from models.scoring import Importance, ScoredItem

DEFAULT_LIMIT = 20
LOW_SCORE_THRESHOLD = 6


def is_retained(item: ScoredItem) -> bool:
    """LOW items survive only with a high enough overall score."""
    return item.importance is not Importance.LOW or item.overall_score >= LOW_SCORE_THRESHOLD


def rank_key(item: ScoredItem) -> tuple[int, int]:
    return (-item.importance.rank, -item.overall_score)


def rank_items(items: Sequence[ScoredItem], limit: int = DEFAULT_LIMIT) -> list[ScoredItem]:
    """Filter, sort and truncate scored items."""
    retained = [item for item in items if is_retained(item)]
    return sorted(retained, key=rank_key)[:limit]
