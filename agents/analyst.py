"""Analyst agent for deep strategic analysis of HIGH-importance items.

Only items the scorer marked HIGH reach this agent. It issues one extra
oracle call per item and returns a StrategicDetail. Failure is tolerated:
the item keeps its importance and scores, it just carries no detail.
"""

import logging

from pydantic_ai import Agent, PromptedOutput
from pydantic_ai.models import Model

from config import Config
from models.item import RawItem
from models.oracle import StrategicAnalysis
from models.scoring import StrategicDetail
from tools.llm import create_model, model_settings
from tools.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

ANALYST_PROMPT = """Provide strategic analysis for the AI development you are given. Return JSON with:
{
  "strategic_takeaway": "1-2 sentence summary of why this matters strategically",
  "implications": ["implication1", "implication2", "implication3"],
  "affected_players": ["company1", "company2"],
  "next_moves": "what this enables or what responses to expect",
  "timing_significance": "why this is happening now"
}

Think like a strategic analyst, not a tech reporter."""


def _create_agent(model: str | Model, config: Config) -> Agent[None, StrategicAnalysis]:
    model_instance = create_model(model) if isinstance(model, str) else model
    return Agent(
        model_instance,
        output_type=PromptedOutput(StrategicAnalysis),
        system_prompt=ANALYST_PROMPT,
        model_settings=model_settings(config, max_tokens=600),
        retries=0,  # one request per call; invalid output falls back
    )


class AnalystAgent:
    """Produces StrategicDetail for HIGH items."""

    def __init__(
        self,
        config: Config,
        model: str | Model | None = None,
        limiter: TokenBucket | None = None,
    ):
        self.config = config
        self._limiter = limiter
        self._agent = _create_agent(model or config.analyst_model, config)

    async def analyze(self, item: RawItem) -> StrategicDetail | None:
        """Deep-dive one item.

        Returns:
            StrategicDetail, or None if the call or its validation failed
        """
        message = f"""Title: {item.title}
Summary: {item.summary_text}"""
        try:
            if self._limiter:
                await self._limiter.acquire()
            result = await self._agent.run(message)
            usage = result.usage
            logger.info(
                "Deep analysis complete | title=%s players=%d tokens=%d/%d",
                item.title[:50],
                len(result.output.affected_players),
                usage.input_tokens or 0,
                usage.output_tokens or 0,
            )
            return result.output.to_detail()
        except Exception as e:
            logger.error("Deep analysis failed for '%s...': %s | type=%s", item.title[:50], e, type(e).__name__, exc_info=True)
            return None
