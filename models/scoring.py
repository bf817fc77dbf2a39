"""Scoring models: categories, importance tiers, and scored items.

This module defines the output of the scoring stage. Every RawItem that
passes through the scorer becomes a ScoredItem carrying a category, an
importance tier, four 1-10 sub-scores, and (for HIGH items whose deep
analysis succeeded) a StrategicDetail block.

Scoring Model:
    impact_score     - how much the development changes the field
    timing_score     - how time-sensitive it is
    players_score    - how significant the organizations involved are
    precedent_score  - how much it sets a pattern others will follow

    overall_score is derived, never supplied: the four sub-scores are
    averaged and rounded half up (5.5 -> 6, 4.5 -> 5).
"""

import logging
import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from models.item import RawItem

logger = logging.getLogger(__name__)


class Category(str, Enum):
    """Strategic category assigned to each item by the scorer."""

    MODEL_RELEASES = "model_releases"
    REGULATORY = "regulatory"
    FUNDING = "funding"
    RESEARCH_BREAKTHROUGH = "research_breakthrough"
    COMPETITIVE_POSITIONING = "competitive_positioning"
    INFRASTRUCTURE = "infrastructure"


# Map common alias strings from LLM output to supported categories.
_CATEGORY_ALIASES: dict[str, Category] = {
    "model_release": Category.MODEL_RELEASES,
    "release": Category.MODEL_RELEASES,
    "releases": Category.MODEL_RELEASES,
    "product_launch": Category.MODEL_RELEASES,
    "regulation": Category.REGULATORY,
    "policy": Category.REGULATORY,
    "legal": Category.REGULATORY,
    "investment": Category.FUNDING,
    "acquisition": Category.FUNDING,
    "m&a": Category.FUNDING,
    "research": Category.RESEARCH_BREAKTHROUGH,
    "breakthrough": Category.RESEARCH_BREAKTHROUGH,
    "paper": Category.RESEARCH_BREAKTHROUGH,
    "competition": Category.COMPETITIVE_POSITIONING,
    "competitive": Category.COMPETITIVE_POSITIONING,
    "strategy": Category.COMPETITIVE_POSITIONING,
    "compute": Category.INFRASTRUCTURE,
    "hardware": Category.INFRASTRUCTURE,
    "tooling": Category.INFRASTRUCTURE,
}


def normalize_category(value: str | Category | None) -> Category:
    """Normalize a raw category value into a supported Category."""
    if isinstance(value, Category):
        return value
    if value is None:
        return Category.RESEARCH_BREAKTHROUGH
    raw = str(value).strip().lower()
    if not raw:
        return Category.RESEARCH_BREAKTHROUGH
    normalized = raw.replace(" ", "_").replace("-", "_")
    try:
        return Category(normalized)
    except ValueError:
        mapped = _CATEGORY_ALIASES.get(normalized)
        if mapped is not None:
            return mapped
        logger.warning("Unknown scorer category; defaulting to research_breakthrough | value=%s", value)
        return Category.RESEARCH_BREAKTHROUGH


class Importance(str, Enum):
    """Coarse priority tier. Ordered HIGH > MEDIUM > LOW."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Position in the total order (higher is more important)."""
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {
    Importance.HIGH: 3,
    Importance.MEDIUM: 2,
    Importance.LOW: 1,
}


def normalize_importance(value: str | Importance) -> Importance:
    """Accept 'high', ' High ' etc. from model output."""
    if isinstance(value, Importance):
        return value
    return Importance(str(value).strip().upper())


def overall_score(impact: int, timing: int, players: int, precedent: int) -> int:
    """Mean of the four sub-scores, rounded half up."""
    return math.floor((impact + timing + players + precedent) / 4 + 0.5)


class StrategicDetail(BaseModel):
    """Deep strategic analysis attached to HIGH-importance items.

    Attributes:
        takeaway: 1-2 sentences on why the item matters strategically
        implications: Ordered list of consequences
        affected_players: Organizations affected (unique, order kept)
        next_moves: What this enables or which responses to expect
        timing_rationale: Why this is happening now
    """

    model_config = ConfigDict(frozen=True)

    takeaway: str
    implications: list[str] = Field(default_factory=list)
    affected_players: list[str] = Field(default_factory=list)
    next_moves: str = ""
    timing_rationale: str = ""

    @field_validator("affected_players")
    @classmethod
    def _unique_players(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(p.strip() for p in value if p.strip()))


class ScoredItem(RawItem):
    """A RawItem enriched with the scorer's judgement.

    The model enforces two invariants:
        - overall_score is always the rounded mean of the four sub-scores
          (it is computed, so it cannot drift from them)
        - strategic_detail may only be present on HIGH items

    Attributes:
        id: Identifier, unique within one snapshot only
        category: Strategic category
        importance: HIGH / MEDIUM / LOW tier
        impact_score, timing_score, players_score, precedent_score: 1..10
        reasoning: Scorer's brief explanation
        strategic_detail: Deep analysis (HIGH items, when the call succeeded)
        scored_at: When the item was scored
    """

    id: str = Field(description="Snapshot-scoped identifier")
    category: Category
    importance: Importance
    impact_score: int = Field(ge=1, le=10)
    timing_score: int = Field(ge=1, le=10)
    players_score: int = Field(ge=1, le=10)
    precedent_score: int = Field(ge=1, le=10)
    reasoning: str = ""
    strategic_detail: StrategicDetail | None = None
    scored_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_score(self) -> int:
        return overall_score(
            self.impact_score,
            self.timing_score,
            self.players_score,
            self.precedent_score,
        )

    @model_validator(mode="after")
    def _detail_only_when_high(self) -> "ScoredItem":
        if self.strategic_detail is not None and self.importance is not Importance.HIGH:
            raise ValueError("strategic_detail is only allowed on HIGH importance items")
        return self

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"ScoredItem({self.id}, {self.importance.value}/{self.overall_score}, '{self.title[:50]}')"
