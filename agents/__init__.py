"""PydanticAI agents backing the scoring oracle.

ScorerAgent:
    First pass over every item: category, importance, four sub-scores.

AnalystAgent:
    Deep strategic analysis, only for items the scorer marked HIGH.

LinkerAgent:
    One pass over the top-ranked items to find connections, trends and
    power shifts.

Each agent absorbs its own failures and returns a safe default (fallback
score, no detail, empty link result), so a broken oracle never aborts a run.

Example:
    >>> from agents import ScorerAgent
    >>> result = await ScorerAgent(config).score(item)
"""

from agents.analyst import AnalystAgent
from agents.linker import LinkerAgent
from agents.scorer import ScorerAgent

__all__ = [
    "ScorerAgent",
    "AnalystAgent",
    "LinkerAgent",
]
