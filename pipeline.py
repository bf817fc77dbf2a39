"""Main pipeline orchestration for intelligence gathering.

This module coordinates the entire refresh workflow:

Pipeline Flow:
    1. GATHERING: Fetch all sources concurrently, flatten into one list
    2. SCORING: Score items in paced groups; HIGH items get a deep dive
    3. RANKING: Filter, sort and truncate (pure, deterministic)
    4. LINKING: One oracle pass over the top items for connections/trends
    5. PUBLISHING: Assemble an immutable snapshot and swap it into the cache

Failure Model:
    Item-level problems (a dead source, an unparseable score, a failed
    deep dive or link pass) are absorbed inside the stages and replaced
    with safe defaults. Anything that escapes a stage aborts the run: the
    state moves to ERROR, the previously published snapshot stays current,
    and the caller receives a PipelineError.

Overlapping Triggers:
    run_once() coalesces. If a run is already in flight, a second trigger
    awaits that run's outcome instead of starting another, so at most one
    run executes and publishes at a time.
"""

import asyncio
import logging
import time
import uuid
from contextlib import suppress
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from agents.analyst import AnalystAgent
from agents.linker import LinkerAgent
from agents.scorer import ScorerAgent
from cache import SnapshotCache
from config import Config
from models.scoring import ScoredItem
from models.snapshot import IntelligenceSnapshot
from observability.logging import clear_context, set_run_context, set_stage_context
from observability.tracing import setup_tracing, trace_operation
from ranking import rank_items
from scoring_engine import ScoringEngine
from sources import SourceAdapter, default_sources, gather_sources, normalize
from tools.ratelimit import TokenBucket

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Where the orchestrator is in its current (or last) run."""

    IDLE = "idle"
    GATHERING = "gathering"
    SCORING = "scoring"
    RANKING = "ranking"
    LINKING = "linking"
    PUBLISHING = "publishing"
    ERROR = "error"


class PipelineError(Exception):
    """A run aborted because a stage raised.

    Attributes:
        stage: The stage that was executing when the error escaped
        cause: The original exception
    """

    def __init__(self, stage: PipelineState, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Pipeline failed during {stage.value}: {type(cause).__name__}: {cause}")


@dataclass
class PipelineStats:
    """Statistics from a single pipeline run.

    Attributes:
        sources: Sources queried
        source_errors: Sources that failed and contributed nothing
        fetched: Items after normalization
        scored: Items scored (including fallbacks)
        fallbacks: Items that got the default low-confidence score
        high: Items marked HIGH
        detailed: HIGH items with strategic detail
        ranked: Items in the published snapshot
        connections: Connections found by the link pass
        duration: Total run time in seconds
    """

    sources: int = 0
    source_errors: int = 0
    fetched: int = 0
    scored: int = 0
    fallbacks: int = 0
    high: int = 0
    detailed: int = 0
    ranked: int = 0
    connections: int = 0
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


class IntelligencePipeline:
    """Async intelligence pipeline.

    Orchestrates the workflow from source fetching through publication and
    exposes the read surface used by the HTTP layer.

    Components:
        - Source adapters: arXiv, Hacker News, TechCrunch, GitHub
        - ScoringEngine: ScorerAgent + AnalystAgent, batched and paced
        - LinkerAgent: connections, trends and power shifts
        - SnapshotCache: the only state readers see

    Example:
        >>> pipeline = IntelligencePipeline(config)
        >>> snapshot = await pipeline.run_once()
        >>> pipeline.current_snapshot() is snapshot
        True
    """

    def __init__(
        self,
        config: Config,
        sources: Sequence[SourceAdapter] | None = None,
        scorer=None,
        analyst=None,
        linker=None,
        cache: SnapshotCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize pipeline with all components.

        Args:
            config: Application configuration
            sources: Source adapters (default: the four standard sources)
            scorer: First-pass scorer (default: ScorerAgent)
            analyst: Deep-analysis agent (default: AnalystAgent)
            linker: Cross-link agent (default: LinkerAgent)
            cache: Snapshot cache (default: a fresh SnapshotCache)
            sleep: Awaitable sleep between scheduled runs
        """
        self.config = config
        self.sources = list(sources) if sources is not None else default_sources(config)
        self.cache = cache or SnapshotCache()
        self._sleep = sleep

        # A token bucket replaces the fixed inter-group delay when configured
        self.limiter: TokenBucket | None = None
        batch_delay = config.score_batch_delay
        if config.oracle_rate_per_minute > 0:
            self.limiter = TokenBucket.per_minute(config.oracle_rate_per_minute)
            batch_delay = 0.0

        if scorer is None:
            scorer = ScorerAgent(config, limiter=self.limiter)
        if analyst is None:
            analyst = AnalystAgent(config, limiter=self.limiter)
        self.linker = linker or LinkerAgent(config, limiter=self.limiter)
        self.engine = ScoringEngine(
            scorer,
            analyst,
            batch_size=config.score_batch_size,
            batch_delay=batch_delay,
        )

        self.state = PipelineState.IDLE
        self.last_error: str | None = None
        self.last_stats: PipelineStats | None = None
        self._inflight: asyncio.Task | None = None

        # Optional: Distributed tracing
        if config.enable_logfire:
            setup_tracing(enabled=True, service_name="intelwatch", token=config.logfire_token)

    # === Read surface ===

    def current_snapshot(self) -> IntelligenceSnapshot | None:
        """Latest published snapshot, or None before the first success."""
        return self.cache.get()

    def find_item(self, item_id: str) -> ScoredItem | None:
        """Look up an item in the current snapshot."""
        return self.cache.find_item(item_id)

    @property
    def running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def health(self) -> dict[str, Any]:
        """Liveness and staleness report for the HTTP layer."""
        snapshot = self.cache.get()
        last_updated = snapshot.generated_at if snapshot is not None else None
        stale = True
        if last_updated is not None:
            age = (datetime.now(timezone.utc) - last_updated).total_seconds()
            stale = age > 2 * self.config.refresh_interval_seconds
        return {
            "status": "ok",
            "state": self.state.value,
            "running": self.running,
            "last_updated": last_updated.isoformat() if last_updated else None,
            "stories_count": len(snapshot.items) if snapshot is not None else 0,
            "stale": stale,
            "last_error": self.last_error,
        }

    # === Triggers ===

    async def run_once(self) -> IntelligenceSnapshot:
        """Trigger a refresh and return the published snapshot.

        Concurrent callers share one in-flight run.

        Raises:
            PipelineError: If any stage raised; the cache is left untouched
        """
        if self.running:
            logger.info("Refresh already in progress; joining in-flight run")
        else:
            self._inflight = asyncio.create_task(self._execute())
        # Shield so a cancelled caller doesn't cancel the run for everyone else
        return await asyncio.shield(self._inflight)

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        set_stage_context(state.value)
        logger.debug("Pipeline stage | state=%s", state.value)

    async def _execute(self) -> IntelligenceSnapshot:
        """Execute one complete pipeline run."""
        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        start = time.time()
        stats = PipelineStats(sources=len(self.sources))

        logger.info("Pipeline started | sources=%d", len(self.sources))

        try:
            with trace_operation("pipeline_run", {"run_id": run_id}):
                self._enter(PipelineState.GATHERING)
                with trace_operation("gather"):
                    batches = await gather_sources(self.sources)
                    items = normalize(batch.items for batch in batches)
                stats.source_errors = sum(1 for batch in batches if not batch.ok)
                stats.fetched = len(items)
                logger.info("Gather complete | items=%d source_errors=%d", stats.fetched, stats.source_errors)

                self._enter(PipelineState.SCORING)
                with trace_operation("score", {"items": len(items)}):
                    scored, scoring = await self.engine.score_all(items)
                stats.scored = scoring.scored
                stats.fallbacks = scoring.fallbacks
                stats.high = scoring.high
                stats.detailed = scoring.detailed

                self._enter(PipelineState.RANKING)
                ranked = rank_items(scored, limit=self.config.max_ranked_items)
                stats.ranked = len(ranked)
                logger.info("Ranking complete | scored=%d retained=%d", len(scored), len(ranked))

                self._enter(PipelineState.LINKING)
                with trace_operation("link", {"items": len(ranked)}):
                    links = await self.linker.link(ranked)
                stats.connections = len(links.connections)

                self._enter(PipelineState.PUBLISHING)
                stats.duration = time.time() - start
                snapshot = IntelligenceSnapshot(
                    items=tuple(ranked),
                    generated_at=datetime.now(timezone.utc),
                    connections=tuple(links.connections),
                    trends=tuple(links.trends),
                    power_shift_summary=links.power_shift_summary,
                    run_id=run_id,
                    stats=stats.to_dict(),
                )
                if not snapshot.items:
                    logger.warning("Publishing empty snapshot | fetched=%d", stats.fetched)
                self.cache.publish(snapshot)

        except asyncio.CancelledError:
            logger.info("Pipeline run cancelled | state=%s", self.state.value)
            self.state = PipelineState.IDLE
            raise
        except Exception as e:
            failed_stage = self.state
            self.state = PipelineState.ERROR
            self.last_error = f"{failed_stage.value}: {type(e).__name__}: {e}"
            logger.error("Pipeline error | stage=%s type=%s error=%s", failed_stage.value, type(e).__name__, e, exc_info=True)
            raise PipelineError(failed_stage, e) from e
        finally:
            clear_context()

        self.state = PipelineState.IDLE
        self.last_error = None
        self.last_stats = stats
        logger.info(
            "Pipeline done | run=%s duration=%.1fs fetched=%d ranked=%d high=%d connections=%d",
            run_id, stats.duration, stats.fetched, stats.ranked, stats.high, stats.connections,
        )
        return snapshot

    async def run_continuous(self) -> None:
        """Refresh immediately, then every REFRESH_INTERVAL_SECONDS.

        Failed runs are logged and the loop carries on with the previous
        snapshot still published.
        """
        run_count = 0
        total_errors = 0
        interval = self.config.refresh_interval_seconds

        logger.info("Starting scheduled refresh | interval=%ds", interval)

        try:
            while True:
                run_count += 1
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error("Scheduled run failed | run=%d error=%s", run_count, e)
                    total_errors += 1

                logger.info("Run complete | run=%d total_errors=%d", run_count, total_errors)
                await self._sleep(interval)

        except asyncio.CancelledError:
            logger.info("Scheduler stopped | runs=%d total_errors=%d", run_count, total_errors)
            await self.close()
            raise

    async def close(self) -> None:
        """Cancel any in-flight run and wait for it to unwind.

        Nothing is published by a cancelled run.
        """
        task = self._inflight
        if task is None or task.done():
            return
        logger.info("Cancelling in-flight run | state=%s", self.state.value)
        task.cancel()
        with suppress(asyncio.CancelledError, PipelineError):
            await task


async def run_once(config: Config) -> IntelligenceSnapshot:
    """Run the pipeline once and return the snapshot."""
    return await IntelligencePipeline(config).run_once()


async def run_continuous(config: Config) -> None:
    """Run the pipeline on its refresh schedule until cancelled."""
    await IntelligencePipeline(config).run_continuous()
