"""Linker agent for cross-item connections and trends.

Runs once per pipeline run over the top of the ranked list. The oracle
sees each candidate's id, title and category and reports how items relate
(response_to, enables, competes_with, builds_on), which themes run through
them, and how competitive power is shifting.

Cross-linking is best-effort: fewer than two candidates short-circuits to
an empty result without calling the oracle, and any failure returns the
same empty result.
"""

import logging
from typing import Sequence

from pydantic_ai import Agent, PromptedOutput
from pydantic_ai.models import Model

from config import Config
from models.oracle import LinkAnalysis
from models.scoring import ScoredItem
from models.snapshot import LinkResult
from tools.llm import create_model, model_settings
from tools.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

LINKER_PROMPT = """Analyze potential connections between the AI developments you are given. Return JSON with:
{
  "connections": [
    {
      "story1_id": "id",
      "story2_id": "id",
      "relationship": "response_to|enables|competes_with|builds_on",
      "explanation": "why these are connected"
    }
  ],
  "trends": ["trend1", "trend2"],
  "power_shifts": "analysis of changing competitive dynamics"
}

Only reference ids from the list you are given."""


def _create_agent(model: str | Model, config: Config) -> Agent[None, LinkAnalysis]:
    model_instance = create_model(model) if isinstance(model, str) else model
    return Agent(
        model_instance,
        output_type=PromptedOutput(LinkAnalysis),
        system_prompt=LINKER_PROMPT,
        model_settings=model_settings(config, max_tokens=800),
        retries=0,  # one request per call; invalid output falls back
    )


def build_message(items: Sequence[ScoredItem]) -> str:
    lines = [
        f"ID: {item.id}, Title: {item.title}, Category: {item.category.value}"
        for item in items
    ]
    return "Stories to analyze:\n" + "\n".join(lines)


class LinkerAgent:
    """Infers pairwise relationships and trends across top items."""

    def __init__(
        self,
        config: Config,
        model: str | Model | None = None,
        limiter: TokenBucket | None = None,
    ):
        self.config = config
        self.max_candidates = config.link_candidates
        self._limiter = limiter
        self._agent = _create_agent(model or config.linker_model, config)

    async def link(self, items: Sequence[ScoredItem]) -> LinkResult:
        """Cross-link the top `max_candidates` items."""
        candidates = list(items[: self.max_candidates])
        if len(candidates) < 2:
            return LinkResult.empty()

        try:
            if self._limiter:
                await self._limiter.acquire()
            result = await self._agent.run(build_message(candidates))
        except Exception as e:
            logger.error("Cross-linking failed: %s | type=%s", e, type(e).__name__, exc_info=True)
            return LinkResult.empty()

        linked = result.output.to_result({item.id for item in candidates})
        dropped = len(result.output.connections) - len(linked.connections)
        logger.info(
            "Cross-linking complete | candidates=%d connections=%d dropped=%d trends=%d",
            len(candidates), len(linked.connections), dropped, len(linked.trends),
        )
        return linked
