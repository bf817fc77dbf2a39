"""Tests for the pipeline orchestrator."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from config import Config
from factories import FakeAnalyst, FakeLinker, StaticSource, TableScorer, raw_item, score_result
from models.scoring import Importance
from models.snapshot import IntelligenceSnapshot
from pipeline import IntelligencePipeline, PipelineError, PipelineState


def _config(**overrides) -> Config:
    overrides.setdefault("openai_api_key", "test")
    overrides.setdefault("score_batch_delay", 0.0)
    return Config(**overrides)


def _sources():
    return [
        StaticSource("arXiv", [raw_item("Sparse routing paper", source="arXiv")]),
        StaticSource("Hacker News", [raw_item("OpenAI pricing change", source="Hacker News")]),
        StaticSource("TechCrunch", [raw_item("Chip startup raises", source="TechCrunch"),
                                    raw_item("Minor SDK update", source="TechCrunch")]),
        StaticSource("GitHub", error=ConnectionError("rate limited")),
    ]


def _scorer():
    return TableScorer({
        "OpenAI pricing change": score_result(Importance.HIGH, 8),
        "Chip startup raises": score_result(Importance.MEDIUM, 7),
        "Sparse routing paper": score_result(Importance.MEDIUM, 5),
        "Minor SDK update": score_result(Importance.LOW, 2),
    })


def _pipeline(**kwargs) -> IntelligencePipeline:
    kwargs.setdefault("sources", _sources())
    kwargs.setdefault("scorer", _scorer())
    kwargs.setdefault("analyst", FakeAnalyst())
    kwargs.setdefault("linker", FakeLinker())
    return IntelligencePipeline(kwargs.pop("config", _config()), **kwargs)


def _fingerprint(snapshot: IntelligenceSnapshot):
    return [(i.title, i.importance, i.overall_score, i.strategic_detail) for i in snapshot.items]


class TestRunOnce:
    def test_publishes_ranked_snapshot(self):
        pipeline = _pipeline()

        snapshot = asyncio.run(pipeline.run_once())

        assert [i.title for i in snapshot.items] == [
            "OpenAI pricing change",
            "Chip startup raises",
            "Sparse routing paper",
        ]
        assert snapshot.items[0].strategic_detail is not None
        assert snapshot.trends == ("open weights",)
        assert snapshot.power_shift_summary == "Labs converge"
        assert snapshot.stats["source_errors"] == 1
        assert snapshot.stats["fetched"] == 4
        assert snapshot.stats["ranked"] == 3
        assert pipeline.current_snapshot() is snapshot
        assert pipeline.state is PipelineState.IDLE

    def test_same_inputs_same_snapshot(self):
        pipeline = _pipeline()

        first = asyncio.run(pipeline.run_once())
        second = asyncio.run(pipeline.run_once())

        assert _fingerprint(first) == _fingerprint(second)
        assert first.run_id != second.run_id

    def test_all_sources_failing_publishes_empty(self):
        sources = [StaticSource("arXiv", error=TimeoutError()), StaticSource("GitHub", error=OSError())]
        linker = FakeLinker()
        pipeline = _pipeline(sources=sources, linker=linker)

        snapshot = asyncio.run(pipeline.run_once())

        assert snapshot.items == ()
        assert pipeline.current_snapshot() is snapshot

    def test_token_bucket_replaces_fixed_delay(self):
        pipeline = _pipeline(config=_config(oracle_rate_per_minute=600, score_batch_delay=2.0))

        assert pipeline.limiter is not None
        assert pipeline.engine.batch_delay == 0.0

    def test_fixed_delay_without_bucket(self):
        pipeline = _pipeline(config=_config(score_batch_delay=1.5))

        assert pipeline.limiter is None
        assert pipeline.engine.batch_delay == 1.5


class TestFailure:
    def test_failed_run_keeps_previous_snapshot(self):
        pipeline = _pipeline()
        good = asyncio.run(pipeline.run_once())

        pipeline.linker = FakeLinker(error=RuntimeError("linker exploded"))
        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run_once())

        assert exc_info.value.stage is PipelineState.LINKING
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert pipeline.state is PipelineState.ERROR
        assert pipeline.current_snapshot() is good
        assert "linker exploded" in pipeline.last_error

    def test_failure_before_first_publish_leaves_cache_empty(self):
        pipeline = _pipeline(linker=FakeLinker(error=ValueError("bad")))

        with pytest.raises(PipelineError):
            asyncio.run(pipeline.run_once())

        assert pipeline.current_snapshot() is None

    def test_recovers_after_failure(self):
        pipeline = _pipeline(linker=FakeLinker(error=ValueError("bad")))
        with pytest.raises(PipelineError):
            asyncio.run(pipeline.run_once())

        pipeline.linker = FakeLinker()
        snapshot = asyncio.run(pipeline.run_once())

        assert pipeline.state is PipelineState.IDLE
        assert pipeline.last_error is None
        assert pipeline.current_snapshot() is snapshot


class TestCoalescing:
    def test_concurrent_triggers_share_one_run(self):
        sources = _sources()
        pipeline = _pipeline(sources=sources)

        async def trigger_twice():
            return await asyncio.gather(pipeline.run_once(), pipeline.run_once())

        first, second = asyncio.run(trigger_twice())

        assert first is second
        assert all(source.calls == 1 for source in sources)

    def test_joined_callers_all_see_failure(self):
        pipeline = _pipeline(linker=FakeLinker(error=RuntimeError("down")))

        async def trigger_twice():
            return await asyncio.gather(pipeline.run_once(), pipeline.run_once(), return_exceptions=True)

        results = asyncio.run(trigger_twice())

        assert all(isinstance(r, PipelineError) for r in results)
        assert pipeline.linker.calls == 1


class TestHealth:
    def test_before_first_run(self):
        health = _pipeline().health()

        assert health["state"] == "idle"
        assert health["last_updated"] is None
        assert health["stories_count"] == 0
        assert health["stale"] is True

    def test_after_run(self):
        pipeline = _pipeline()
        asyncio.run(pipeline.run_once())

        health = pipeline.health()

        assert health["stories_count"] == 3
        assert health["stale"] is False
        assert health["last_error"] is None

    def test_empty_run_counts_as_updated(self):
        pipeline = _pipeline(sources=[StaticSource("arXiv", error=ConnectionError("refused"))])
        snapshot = asyncio.run(pipeline.run_once())

        health = pipeline.health()

        assert health["last_updated"] == snapshot.generated_at.isoformat()
        assert health["stories_count"] == 0
        assert health["stale"] is False

    def test_stale_after_two_missed_intervals(self):
        pipeline = _pipeline(config=_config(refresh_interval_seconds=60))
        snapshot = asyncio.run(pipeline.run_once())
        old = snapshot.model_copy(update={"generated_at": datetime.now(timezone.utc) - timedelta(seconds=121)})
        pipeline.cache.publish(old)

        assert pipeline.health()["stale"] is True


class TestSchedule:
    def test_runs_immediately_then_waits(self):
        waits: list[float] = []

        async def fake_sleep(seconds):
            waits.append(seconds)
            raise asyncio.CancelledError()

        pipeline = _pipeline(config=_config(refresh_interval_seconds=7200), sleep=fake_sleep)

        async def run():
            with pytest.raises(asyncio.CancelledError):
                await pipeline.run_continuous()

        asyncio.run(run())

        assert pipeline.current_snapshot() is not None
        assert waits == [7200]

    def test_failed_run_does_not_stop_schedule(self):
        waits: list[float] = []

        async def fake_sleep(seconds):
            waits.append(seconds)
            if len(waits) == 2:
                raise asyncio.CancelledError()

        pipeline = _pipeline(linker=FakeLinker(error=RuntimeError("down")), sleep=fake_sleep)

        async def run():
            with pytest.raises(asyncio.CancelledError):
                await pipeline.run_continuous()

        asyncio.run(run())

        assert pipeline.linker.calls == 2

    def test_cancelling_scheduler_stops_inflight_run(self):
        class HangingSource(StaticSource):
            def __init__(self):
                super().__init__("arXiv")
                self.started = asyncio.Event()
                self.cancelled = False

            async def _fetch(self, session):
                self.started.set()
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise

        source = HangingSource()
        pipeline = _pipeline(sources=[source])

        async def run():
            scheduler = asyncio.create_task(pipeline.run_continuous())
            await source.started.wait()
            assert pipeline.running

            scheduler.cancel()
            with pytest.raises(asyncio.CancelledError):
                await scheduler

        asyncio.run(run())

        assert not pipeline.running
        assert source.cancelled
        assert pipeline.current_snapshot() is None
        assert pipeline.state is PipelineState.IDLE

    def test_close_without_run_is_noop(self):
        pipeline = _pipeline()
        asyncio.run(pipeline.close())
        assert not pipeline.running
