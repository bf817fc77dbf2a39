"""Tests for batched scoring and the HIGH-item deep dive."""

import asyncio

from factories import FakeAnalyst, TableScorer, detail, raw_item, score_result
from models.oracle import FALLBACK_REASONING
from models.scoring import Importance
from scoring_engine import ITEM_ID_PREFIX, ScoringEngine, build_scored_item


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ConcurrencyTracker(TableScorer):
    """Tracks the largest number of score() calls in flight at once."""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.peak = 0

    async def score(self, item):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        return await super().score(item)


def _engine(scorer, analyst=None, **kwargs):
    kwargs.setdefault("sleep", RecordingSleep())
    return ScoringEngine(scorer, analyst or FakeAnalyst(), **kwargs)


def test_output_order_matches_input_across_groups():
    items = [raw_item(f"Item {i}") for i in range(12)]
    engine = _engine(TableScorer(), batch_size=5)

    scored, stats = asyncio.run(engine.score_all(items))

    assert [s.title for s in scored] == [i.title for i in items]
    assert stats.groups == 3
    assert stats.scored == 12


def test_sleeps_between_groups_only():
    sleep = RecordingSleep()
    engine = _engine(TableScorer(), batch_size=5, batch_delay=2.0, sleep=sleep)

    asyncio.run(engine.score_all([raw_item(f"Item {i}") for i in range(11)]))

    assert sleep.calls == [2.0, 2.0]


def test_no_sleep_when_delay_disabled():
    sleep = RecordingSleep()
    engine = _engine(TableScorer(), batch_size=2, batch_delay=0, sleep=sleep)

    asyncio.run(engine.score_all([raw_item(f"Item {i}") for i in range(6)]))

    assert sleep.calls == []


def test_group_size_bounds_concurrency():
    tracker = ConcurrencyTracker()
    engine = _engine(tracker, batch_size=3)

    asyncio.run(engine.score_all([raw_item(f"Item {i}") for i in range(10)]))

    assert tracker.peak == 3


def test_high_items_get_detail():
    scorer = TableScorer({"Big launch": score_result(Importance.HIGH, 9)})
    analyst = FakeAnalyst()
    engine = _engine(scorer, analyst)

    scored, stats = asyncio.run(engine.score_all([raw_item("Big launch"), raw_item("Minor patch")]))

    assert analyst.calls == ["Big launch"]
    assert scored[0].strategic_detail is not None
    assert scored[1].strategic_detail is None
    assert stats.high == 1 and stats.detailed == 1


def test_failed_deep_dive_keeps_item():
    scorer = TableScorer({"Big launch": score_result(Importance.HIGH, 9)})
    analyst = FakeAnalyst()
    analyst.result = None
    engine = _engine(scorer, analyst)

    scored, stats = asyncio.run(engine.score_all([raw_item("Big launch")]))

    assert scored[0].importance is Importance.HIGH
    assert scored[0].overall_score == 9
    assert scored[0].strategic_detail is None
    assert stats.detailed == 0


def test_scorer_exception_substitutes_fallback():
    scorer = TableScorer(fail_on={"Broken"})
    engine = _engine(scorer, batch_size=2)

    scored, stats = asyncio.run(engine.score_all([raw_item("Fine"), raw_item("Broken"), raw_item("Also fine")]))

    assert len(scored) == 3
    assert scored[1].importance is Importance.LOW
    assert scored[1].reasoning == FALLBACK_REASONING
    assert scored[1].overall_score == 3
    assert stats.fallbacks == 1


def test_ids_unique_within_run():
    engine = _engine(TableScorer())
    scored, _ = asyncio.run(engine.score_all([raw_item("Same") for _ in range(15)]))
    assert len({s.id for s in scored}) == 15
    assert all(s.id.startswith(ITEM_ID_PREFIX) and not s.id.isdigit() for s in scored)


def test_empty_input():
    scored, stats = asyncio.run(_engine(TableScorer()).score_all([]))
    assert scored == []
    assert stats.groups == 0


def test_build_scored_item_ignores_detail_below_high():
    item = build_scored_item(raw_item(), score_result(Importance.MEDIUM), "x1", detail())
    assert item.strategic_detail is None
    assert item.id == "x1"


def test_raising_analyst_keeps_score():
    class ExplodingAnalyst:
        async def analyze(self, item):
            raise RuntimeError("analysis backend down")

    scorer = TableScorer({"Big launch": score_result(Importance.HIGH, 9)})
    engine = _engine(scorer, ExplodingAnalyst())

    scored, stats = asyncio.run(engine.score_all([raw_item("Big launch")]))

    assert scored[0].importance is Importance.HIGH
    assert scored[0].overall_score == 9
    assert scored[0].reasoning == "test"
    assert scored[0].strategic_detail is None
    assert stats.fallbacks == 0
    assert stats.detailed == 0
