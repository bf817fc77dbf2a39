"""Scorer agent for first-pass categorization of feed items.

This module implements the ScorerAgent, which asks the scoring oracle to
categorize each item, assign an importance tier, and rate it on four
strategic dimensions.

Design Philosophy:
    - Typed contract: the oracle's JSON is parsed and validated into a
      ScoreResult; anything that doesn't validate counts as a failure
    - Fail-safe: any failure yields ScoreResult.fallback() (LOW, all 3s)
      so one bad item never fails the batch
    - Rate aware: every call takes a token from the shared limiter when
      one is configured
"""

import logging

from pydantic_ai import Agent, PromptedOutput
from pydantic_ai.models import Model

from config import Config
from models.item import RawItem
from models.oracle import ScoreResult
from tools.llm import create_model, model_settings
from tools.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

SCORER_PROMPT = """You are a strategic analyst covering the AI industry. Analyze the AI/tech news item you are given and categorize it.

Return JSON with:
{
  "category": "model_releases|regulatory|funding|research_breakthrough|competitive_positioning|infrastructure",
  "importance": "HIGH|MEDIUM|LOW",
  "impact_score": 1-10,
  "timing_score": 1-10,
  "players_score": 1-10,
  "precedent_score": 1-10,
  "reasoning": "brief explanation"
}

## Scoring Dimensions
- impact_score: how much this changes what is possible or what the market looks like
- timing_score: how time-sensitive it is for someone tracking the industry
- players_score: how significant the organizations and people involved are
- precedent_score: how likely it is to set a pattern others will follow

## Importance
- HIGH: shifts the competitive landscape or sets a precedent others must react to
- MEDIUM: notable development worth tracking
- LOW: incremental, niche, or mostly promotional

Focus on strategic implications, not just technical details."""


def _create_agent(model: str | Model, config: Config) -> Agent[None, ScoreResult]:
    """Create the underlying PydanticAI agent for scoring.

    Uses PromptedOutput so the oracle answers with JSON text that is
    validated against ScoreResult.
    """
    model_instance = create_model(model) if isinstance(model, str) else model
    return Agent(
        model_instance,
        output_type=PromptedOutput(ScoreResult),
        system_prompt=SCORER_PROMPT,
        model_settings=model_settings(config, max_tokens=500),
        retries=0,  # one request per call; invalid output falls back
    )


def build_message(item: RawItem) -> str:
    """User message carrying the item's title, summary and source."""
    return f"""Title: {item.title}
Summary: {item.summary_text}
Source: {item.source}"""


class ScorerAgent:
    """Categorizes and scores feed items.

    Example:
        >>> scorer = ScorerAgent(config)
        >>> result = await scorer.score(item)
        >>> result.importance
        <Importance.HIGH: 'HIGH'>
    """

    def __init__(
        self,
        config: Config,
        model: str | Model | None = None,
        limiter: TokenBucket | None = None,
    ):
        """Initialize the scorer agent.

        Args:
            config: Application configuration
            model: Override for config.scorer_model (model string or instance)
            limiter: Shared rate limiter for oracle calls
        """
        self.config = config
        self._limiter = limiter
        self._agent = _create_agent(model or config.scorer_model, config)

    async def score(self, item: RawItem) -> ScoreResult:
        """Score a single item, falling back to the default on any failure."""
        try:
            if self._limiter:
                await self._limiter.acquire()
            result = await self._agent.run(build_message(item))
            usage = result.usage
            logger.debug(
                "Scored: %s... -> %s | tokens=%d/%d",
                item.title[:50],
                result.output,
                usage.input_tokens or 0,
                usage.output_tokens or 0,
            )
            return result.output
        except Exception as e:
            logger.error("Scoring failed for '%s...': %s", item.title[:50], e, exc_info=True)
            return ScoreResult.fallback()
