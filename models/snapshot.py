"""Snapshot models: connections, link results, and the published snapshot.

An IntelligenceSnapshot is the only state readers ever see. It is built
wholesale at the end of a successful pipeline run and never mutated
afterwards; a new run produces a new snapshot that replaces it.

Connection ids refer to ScoredItem.id values inside the same snapshot.
Ids are not stable across runs, so a Connection has no meaning outside
the snapshot that carries it.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from models.scoring import ScoredItem


class Relationship(str, Enum):
    """How two items in a snapshot relate to each other."""

    RESPONSE_TO = "response_to"
    ENABLES = "enables"
    COMPETES_WITH = "competes_with"
    BUILDS_ON = "builds_on"


class Connection(BaseModel):
    """A directed relationship between two items of one snapshot."""

    model_config = ConfigDict(frozen=True)

    item_a_id: str
    item_b_id: str
    relationship: Relationship
    explanation: str = ""


class LinkResult(BaseModel):
    """Output of the cross-link stage."""

    model_config = ConfigDict(frozen=True)

    connections: list[Connection] = Field(default_factory=list)
    trends: list[str] = Field(default_factory=list)
    power_shift_summary: str = ""

    @classmethod
    def empty(cls) -> "LinkResult":
        """Result used when linking is skipped or fails."""
        return cls(connections=[], trends=[], power_shift_summary="")

    @property
    def is_empty(self) -> bool:
        return not self.connections and not self.trends and not self.power_shift_summary


class IntelligenceSnapshot(BaseModel):
    """One complete, immutable result of a pipeline run.

    Attributes:
        items: Scored items in rank order
        generated_at: When the snapshot was assembled
        connections: Cross-item relationships (ids refer to items above)
        trends: Free-text thematic trends
        power_shift_summary: Narrative on shifting competitive dynamics
        run_id: Identifier of the run that produced the snapshot
        stats: Per-stage counts and timing for the run
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[ScoredItem, ...] = ()
    generated_at: datetime
    connections: tuple[Connection, ...] = ()
    trends: tuple[str, ...] = ()
    power_shift_summary: str = ""
    run_id: str = ""
    stats: dict[str, Any] = Field(default_factory=dict)

    def find_item(self, item_id: str) -> ScoredItem | None:
        """Look up an item by id within this snapshot."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None
