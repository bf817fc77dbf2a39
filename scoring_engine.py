"""Batched scoring of normalized items.

The engine walks the normalized item list in fixed-size groups. Items in
a group are scored concurrently; an item the scorer marks HIGH gets its
deep-analysis follow-up inside the same task. Groups run one after
another with a pacing delay between them, unless a shared token bucket
is doing the pacing instead.

Group boundaries only affect timing: the output list has one ScoredItem
per input item, in input order.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol, Sequence

from models.item import RawItem
from models.oracle import FALLBACK_REASONING, ScoreResult
from models.scoring import Importance, ScoredItem, StrategicDetail

logger = logging.getLogger(__name__)


class Scorer(Protocol):
    async def score(self, item: RawItem) -> ScoreResult: ...


class Analyst(Protocol):
    async def analyze(self, item: RawItem) -> StrategicDetail | None: ...


ITEM_ID_PREFIX = "it-"


def new_item_id() -> str:
    """Random id; unique within a snapshot, not stable across runs.

    The prefix keeps ids from looking numeric, so an oracle echoing them
    back as JSON numbers can't strip leading zeros.
    """
    return ITEM_ID_PREFIX + uuid.uuid4().hex[:12]


def build_scored_item(
    item: RawItem,
    result: ScoreResult,
    item_id: str,
    detail: StrategicDetail | None = None,
    scored_at: datetime | None = None,
) -> ScoredItem:
    """Combine a RawItem with its score (and optional detail)."""
    return ScoredItem(
        **item.model_dump(),
        id=item_id,
        category=result.category,
        importance=result.importance,
        impact_score=result.impact_score,
        timing_score=result.timing_score,
        players_score=result.players_score,
        precedent_score=result.precedent_score,
        reasoning=result.reasoning,
        strategic_detail=detail if result.importance is Importance.HIGH else None,
        scored_at=scored_at or datetime.now(timezone.utc),
    )


@dataclass
class ScoringStats:
    """Counts from one score_all call."""

    scored: int = 0
    fallbacks: int = 0      # Items that got the default result
    high: int = 0           # Items marked HIGH
    detailed: int = 0       # HIGH items with strategic detail
    groups: int = 0


class ScoringEngine:
    """Scores items in paced, concurrent groups.

    Args:
        scorer: First-pass scorer (ScorerAgent or compatible)
        analyst: Deep-analysis agent for HIGH items
        batch_size: Items scored concurrently per group
        batch_delay: Seconds to wait between groups (0 disables)
        id_factory: Callable producing item ids
        sleep: Awaitable sleep used for pacing (injectable for tests)
    """

    def __init__(
        self,
        scorer: Scorer,
        analyst: Analyst,
        batch_size: int = 5,
        batch_delay: float = 2.0,
        id_factory: Callable[[], str] = new_item_id,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.scorer = scorer
        self.analyst = analyst
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._id_factory = id_factory
        self._sleep = sleep

    async def _score_one(self, item: RawItem) -> ScoredItem:
        result = await self.scorer.score(item)
        detail = None
        if result.importance is Importance.HIGH:
            try:
                detail = await self.analyst.analyze(item)
            except Exception as e:
                # The score stands; only the deep dive is lost
                logger.error("Deep analysis error for '%s...': %s", item.title[:50], e, exc_info=True)
        return build_scored_item(item, result, self._id_factory(), detail)

    async def score_all(self, items: Sequence[RawItem]) -> tuple[list[ScoredItem], ScoringStats]:
        """Score every item, preserving input order.

        Returns:
            Tuple of (scored items, stats)
        """
        total = len(items)
        stats = ScoringStats()
        output: list[ScoredItem] = []

        logger.info(
            "Scoring started | total=%d batch_size=%d batch_delay=%.1fs",
            total, self.batch_size, self.batch_delay,
        )

        for start in range(0, total, self.batch_size):
            group = items[start:start + self.batch_size]
            stats.groups += 1
            results = await asyncio.gather(
                *(self._score_one(item) for item in group),
                return_exceptions=True,
            )

            for item, result in zip(group, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, Exception):
                    logger.error("Scoring error for '%s...': %s", item.title[:50], result, exc_info=result)
                    result = build_scored_item(item, ScoreResult.fallback(), self._id_factory())
                output.append(result)

            done = len(output)
            logger.info("Scoring progress: %d/%d (%.0f%%)", done, total, done / total * 100)

            if done < total and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        for scored in output:
            stats.scored += 1
            if scored.reasoning == FALLBACK_REASONING and scored.importance is Importance.LOW:
                stats.fallbacks += 1
            if scored.importance is Importance.HIGH:
                stats.high += 1
                if scored.strategic_detail is not None:
                    stats.detailed += 1

        logger.info(
            "Scoring complete | total=%d high=%d detailed=%d fallbacks=%d",
            stats.scored, stats.high, stats.detailed, stats.fallbacks,
        )
        return output, stats
