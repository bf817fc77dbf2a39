"""FastAPI application serving the published intelligence snapshot.

Routes:
    GET  /api/intelligence   Current snapshot (empty payload before the first run)
    POST /api/refresh        Run the pipeline now and return the new snapshot
    GET  /api/story/{id}     One item from the current snapshot
    GET  /health             Liveness and staleness check

Readers only ever see the cached snapshot; a refresh in progress never
blocks them. The scheduled refresh loop runs as a background task owned
by the application lifespan.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from models.scoring import ScoredItem
from models.snapshot import IntelligenceSnapshot
from pipeline import IntelligencePipeline, PipelineError

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def snapshot_payload(snapshot: IntelligenceSnapshot | None) -> dict[str, Any]:
    """JSON body for GET /api/intelligence."""
    if snapshot is None:
        return {
            "stories": [],
            "connections": [],
            "trends": [],
            "power_shifts": "",
            "generated_at": None,
            "run_id": None,
            "stats": {},
        }
    return {
        "stories": [item.model_dump(mode="json") for item in snapshot.items],
        "connections": [c.model_dump(mode="json") for c in snapshot.connections],
        "trends": list(snapshot.trends),
        "power_shifts": snapshot.power_shift_summary,
        "generated_at": snapshot.generated_at.isoformat(),
        "run_id": snapshot.run_id,
        "stats": snapshot.stats,
    }


def create_app(pipeline: IntelligencePipeline, schedule: bool = True) -> FastAPI:
    """Build the API around a pipeline instance.

    Args:
        pipeline: Pipeline whose cache backs the read routes
        schedule: Start the periodic refresh loop with the app

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task: asyncio.Task | None = None
        if schedule:
            task = asyncio.create_task(pipeline.run_continuous())
            logger.info("Refresh scheduler started | interval=%ds", pipeline.config.refresh_interval_seconds)

        yield

        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await pipeline.close()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="AI Intelligence API",
        description="Ranked, cross-linked AI industry news",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=pipeline.config.cors_origins,
        allow_credentials="*" not in pipeline.config.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/api/intelligence", tags=["Intelligence"])
    async def get_intelligence() -> dict[str, Any]:
        """Latest published snapshot."""
        return snapshot_payload(pipeline.current_snapshot())

    @app.post("/api/refresh", tags=["Intelligence"])
    async def refresh():
        """Run the pipeline now (joining any run already in flight)."""
        try:
            snapshot = await pipeline.run_once()
        except PipelineError as e:
            logger.error("Manual refresh failed | stage=%s error=%s", e.stage.value, e.cause)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": str(e)},
            )
        return {"success": True, "data": snapshot_payload(snapshot)}

    @app.get("/api/story/{story_id}", tags=["Intelligence"])
    async def get_story(story_id: str) -> ScoredItem:
        """One item of the current snapshot."""
        item = pipeline.find_item(story_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Story not found")
        return item

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Liveness plus snapshot staleness."""
        return pipeline.health()

    return app
