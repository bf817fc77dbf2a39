"""Pydantic models for the intelligence pipeline.

This package contains all data models used throughout the pipeline:

RawItem:
    Feed item produced by a source adapter (title, summary, url, source).

ScoredItem:
    RawItem plus category, importance, sub-scores and optional
    StrategicDetail. overall_score is derived from the sub-scores.

ScoreResult / StrategicAnalysis / LinkAnalysis:
    Typed oracle responses with their fallbacks.

IntelligenceSnapshot:
    The immutable, published result of one pipeline run.

Example:
    >>> from models import RawItem, ScoreResult
    >>> ScoreResult.fallback().importance
    <Importance.LOW: 'LOW'>
"""

from models.item import RawItem
from models.scoring import Category, Importance, ScoredItem, StrategicDetail
from models.oracle import LinkAnalysis, ScoreResult, StrategicAnalysis
from models.snapshot import Connection, IntelligenceSnapshot, LinkResult, Relationship

__all__ = [
    "RawItem",
    "Category",
    "Importance",
    "ScoredItem",
    "StrategicDetail",
    "ScoreResult",
    "StrategicAnalysis",
    "LinkAnalysis",
    "Connection",
    "Relationship",
    "LinkResult",
    "IntelligenceSnapshot",
]
