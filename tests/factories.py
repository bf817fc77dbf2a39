"""Builders and fakes shared by the test modules."""

import itertools
from datetime import datetime, timezone

from models.item import RawItem
from models.oracle import ScoreResult
from models.scoring import Category, Importance, ScoredItem, StrategicDetail
from models.snapshot import LinkResult
from sources import SourceAdapter

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
_ids = itertools.count(1)


def raw_item(title: str = "Open weights model tops leaderboard", source: str = "TechCrunch", **kwargs) -> RawItem:
    kwargs.setdefault("url", f"https://example.com/{next(_ids)}")
    kwargs.setdefault("published", NOW)
    return RawItem(title=title, source=source, **kwargs)


def scored_item(
    importance: Importance = Importance.MEDIUM,
    scores: tuple[int, int, int, int] = (5, 5, 5, 5),
    title: str | None = None,
    **kwargs,
) -> ScoredItem:
    n = next(_ids)
    impact, timing, players, precedent = scores
    return ScoredItem(
        id=kwargs.pop("id", f"item{n}"),
        title=title or f"Story {n}",
        url=f"https://example.com/{n}",
        source=kwargs.pop("source", "arXiv"),
        published=NOW,
        category=kwargs.pop("category", Category.MODEL_RELEASES),
        importance=importance,
        impact_score=impact,
        timing_score=timing,
        players_score=players,
        precedent_score=precedent,
        scored_at=NOW,
        **kwargs,
    )


def score_result(importance: Importance = Importance.MEDIUM, score: int = 5) -> ScoreResult:
    return ScoreResult(
        category=Category.FUNDING,
        importance=importance,
        impact_score=score,
        timing_score=score,
        players_score=score,
        precedent_score=score,
        reasoning="test",
    )


def detail(takeaway: str = "Shifts the frontier") -> StrategicDetail:
    return StrategicDetail(takeaway=takeaway, implications=["cheaper inference"], affected_players=["Acme"])


class StaticSource(SourceAdapter):
    """Adapter that returns fixed items (or raises) without touching the network."""

    def __init__(self, name: str, items=None, error: Exception | None = None):
        super().__init__(timeout=1.0)
        self.name = name
        self.items = list(items or [])
        self.error = error
        self.calls = 0

    async def _fetch(self, session):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


class TableScorer:
    """Scores items from a title -> ScoreResult table; unknown titles get MEDIUM/5."""

    def __init__(self, table: dict[str, ScoreResult] | None = None, fail_on: set[str] | None = None):
        self.table = table or {}
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    async def score(self, item: RawItem) -> ScoreResult:
        self.calls.append(item.title)
        if item.title in self.fail_on:
            raise RuntimeError("oracle unavailable")
        return self.table.get(item.title, score_result())


class FakeAnalyst:
    def __init__(self, result: StrategicDetail | None = None):
        self.result = result if result is not None else detail()
        self.calls: list[str] = []

    async def analyze(self, item: RawItem) -> StrategicDetail | None:
        self.calls.append(item.title)
        return self.result


class FakeLinker:
    def __init__(self, error: Exception | None = None, result: LinkResult | None = None):
        self.error = error
        self.result = result or LinkResult(trends=["open weights"], power_shift_summary="Labs converge")
        self.calls = 0

    async def link(self, items):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result
