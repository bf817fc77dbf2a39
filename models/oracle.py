"""Typed oracle contracts.

Each oracle call site has a response model that the oracle's JSON output
is parsed and validated into, plus a defined fallback used when the call
or the validation fails:

    ScoreResult        -> ScoreResult.fallback()     (per-item scoring)
    StrategicAnalysis  -> no detail                  (deep analysis)
    LinkAnalysis       -> LinkResult.empty()         (cross-linking)

Field names follow the JSON keys the prompts ask for, so the schema the
oracle sees and the prompt text agree.
"""

import logging

from pydantic import BaseModel, Field, field_validator

from models.scoring import (
    Category,
    Importance,
    StrategicDetail,
    normalize_category,
    normalize_importance,
)
from models.snapshot import Connection, LinkResult, Relationship

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 3
FALLBACK_REASONING = "analysis failed"


class ScoreResult(BaseModel):
    """First-pass categorization returned by the scoring oracle."""

    category: Category = Field(description="One of the strategic categories")
    importance: Importance = Field(description="HIGH, MEDIUM or LOW")
    impact_score: int = Field(ge=1, le=10, description="Impact on the field (1-10)")
    timing_score: int = Field(ge=1, le=10, description="Time sensitivity (1-10)")
    players_score: int = Field(ge=1, le=10, description="Significance of players involved (1-10)")
    precedent_score: int = Field(ge=1, le=10, description="Precedent it sets (1-10)")
    reasoning: str = Field(default="", description="Brief explanation")

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category(value)

    @field_validator("importance", mode="before")
    @classmethod
    def _normalize_importance(cls, value):
        return normalize_importance(value)

    @classmethod
    def fallback(cls) -> "ScoreResult":
        """Low-confidence default substituted when scoring fails."""
        return cls(
            category=Category.RESEARCH_BREAKTHROUGH,
            importance=Importance.LOW,
            impact_score=FALLBACK_SCORE,
            timing_score=FALLBACK_SCORE,
            players_score=FALLBACK_SCORE,
            precedent_score=FALLBACK_SCORE,
            reasoning=FALLBACK_REASONING,
        )

    @property
    def is_fallback(self) -> bool:
        return self.reasoning == FALLBACK_REASONING

    def __str__(self) -> str:
        return f"ScoreResult({self.importance.value}, {self.category.value})"


class StrategicAnalysis(BaseModel):
    """Deep-dive analysis returned for HIGH items."""

    strategic_takeaway: str = Field(description="1-2 sentences on why this matters strategically")
    implications: list[str] = Field(default_factory=list, description="Key implications")
    affected_players: list[str] = Field(default_factory=list, description="Companies or organizations affected")
    next_moves: str = Field(default="", description="What this enables or which responses to expect")
    timing_significance: str = Field(default="", description="Why this is happening now")

    def to_detail(self) -> StrategicDetail:
        return StrategicDetail(
            takeaway=self.strategic_takeaway,
            implications=self.implications,
            affected_players=self.affected_players,
            next_moves=self.next_moves,
            timing_rationale=self.timing_significance,
        )


class LinkedPair(BaseModel):
    """One connection as the oracle reports it."""

    story1_id: str
    story2_id: str
    relationship: str
    explanation: str = ""

    @field_validator("story1_id", "story2_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Models often echo numeric-looking ids back as numbers
        return str(value).strip()


class LinkAnalysis(BaseModel):
    """Cross-link response: connections, trends and power shifts."""

    connections: list[LinkedPair] = Field(default_factory=list)
    trends: list[str] = Field(default_factory=list)
    power_shifts: str = Field(default="", description="Analysis of changing competitive dynamics")

    def to_result(self, known_ids: set[str]) -> LinkResult:
        """Validate connections against the supplied ids and convert.

        Pairs that reference unknown ids, link an item to itself, or use an
        unsupported relationship tag are dropped.
        """
        connections = []
        for pair in self.connections:
            if pair.story1_id not in known_ids or pair.story2_id not in known_ids:
                logger.debug("Dropping connection with unknown id | a=%s b=%s", pair.story1_id, pair.story2_id)
                continue
            if pair.story1_id == pair.story2_id:
                continue
            try:
                relationship = Relationship(pair.relationship.strip().lower())
            except ValueError:
                logger.debug("Dropping connection with unknown relationship | value=%s", pair.relationship)
                continue
            connections.append(Connection(
                item_a_id=pair.story1_id,
                item_b_id=pair.story2_id,
                relationship=relationship,
                explanation=pair.explanation,
            ))
        return LinkResult(
            connections=connections,
            trends=[t for t in self.trends if t.strip()],
            power_shift_summary=self.power_shifts,
        )
