"""Tests for item, scoring, oracle and snapshot models."""

import pytest
from pydantic import ValidationError

from models.oracle import FALLBACK_REASONING, LinkAnalysis, ScoreResult, StrategicAnalysis
from models.scoring import Category, Importance, StrategicDetail, normalize_category, overall_score
from models.snapshot import IntelligenceSnapshot, Relationship
from factories import NOW, detail, raw_item, scored_item


class TestOverallScore:
    def test_mean_of_sub_scores(self):
        item = scored_item(scores=(8, 6, 7, 7))
        assert item.overall_score == 7

    def test_rounds_half_up(self):
        assert overall_score(5, 5, 6, 6) == 6
        assert overall_score(4, 5, 5, 4) == 5
        assert overall_score(1, 1, 1, 2) == 1

    def test_serialized_with_item(self):
        item = scored_item(scores=(9, 9, 9, 9))
        assert item.model_dump()["overall_score"] == 9

    def test_sub_scores_bounded(self):
        with pytest.raises(ValidationError):
            scored_item(scores=(11, 5, 5, 5))
        with pytest.raises(ValidationError):
            scored_item(scores=(0, 5, 5, 5))


class TestStrategicDetail:
    def test_allowed_on_high(self):
        item = scored_item(Importance.HIGH, strategic_detail=detail())
        assert item.strategic_detail.takeaway == "Shifts the frontier"

    @pytest.mark.parametrize("importance", [Importance.MEDIUM, Importance.LOW])
    def test_rejected_below_high(self, importance):
        with pytest.raises(ValidationError):
            scored_item(importance, strategic_detail=detail())

    def test_affected_players_unique_in_order(self):
        d = StrategicDetail(takeaway="x", affected_players=["Acme", "Globex", "Acme", " "])
        assert d.affected_players == ["Acme", "Globex"]


class TestCategory:
    def test_exact_value(self):
        assert normalize_category("funding") is Category.FUNDING

    def test_spacing_and_case(self):
        assert normalize_category("Model Releases") is Category.MODEL_RELEASES

    def test_alias(self):
        assert normalize_category("regulation") is Category.REGULATORY

    def test_unknown_defaults_to_research(self):
        assert normalize_category("gossip") is Category.RESEARCH_BREAKTHROUGH


class TestScoreResult:
    def test_parses_loose_oracle_output(self):
        result = ScoreResult.model_validate({
            "category": "Competitive Positioning",
            "importance": " high ",
            "impact_score": 8,
            "timing_score": 7,
            "players_score": 9,
            "precedent_score": 6,
            "reasoning": "big lab move",
        })
        assert result.category is Category.COMPETITIVE_POSITIONING
        assert result.importance is Importance.HIGH

    def test_invalid_importance_rejected(self):
        with pytest.raises(ValidationError):
            ScoreResult.model_validate({
                "category": "funding", "importance": "CRITICAL",
                "impact_score": 5, "timing_score": 5, "players_score": 5, "precedent_score": 5,
            })

    def test_fallback(self):
        fallback = ScoreResult.fallback()
        assert fallback.importance is Importance.LOW
        assert fallback.category is Category.RESEARCH_BREAKTHROUGH
        assert {fallback.impact_score, fallback.timing_score, fallback.players_score, fallback.precedent_score} == {3}
        assert fallback.reasoning == FALLBACK_REASONING
        assert fallback.is_fallback


class TestOracleContracts:
    def test_strategic_analysis_to_detail(self):
        analysis = StrategicAnalysis(
            strategic_takeaway="Commoditizes mid-size models",
            implications=["price war"],
            affected_players=["Acme"],
            next_moves="Competitors cut prices",
            timing_significance="GPU supply eased",
        )
        d = analysis.to_detail()
        assert d.takeaway == "Commoditizes mid-size models"
        assert d.timing_rationale == "GPU supply eased"

    def test_link_analysis_drops_invalid_pairs(self):
        analysis = LinkAnalysis.model_validate({
            "connections": [
                {"story1_id": "a", "story2_id": "b", "relationship": "builds_on", "explanation": "same lab"},
                {"story1_id": "a", "story2_id": "zzz", "relationship": "enables"},
                {"story1_id": "b", "story2_id": "b", "relationship": "enables"},
                {"story1_id": "a", "story2_id": "c", "relationship": "inspired_by"},
            ],
            "trends": ["agents", ""],
            "power_shifts": "Open labs gain ground",
        })
        result = analysis.to_result({"a", "b", "c"})
        assert len(result.connections) == 1
        assert result.connections[0].relationship is Relationship.BUILDS_ON
        assert result.trends == ["agents"]
        assert result.power_shift_summary == "Open labs gain ground"

    def test_numeric_ids_coerced(self):
        analysis = LinkAnalysis.model_validate({
            "connections": [{"story1_id": 1, "story2_id": 2, "relationship": "competes_with"}],
        })
        assert len(analysis.to_result({"1", "2"}).connections) == 1


class TestSnapshot:
    def test_find_item(self):
        a, b = scored_item(id="a"), scored_item(id="b")
        snapshot = IntelligenceSnapshot(items=(a, b), generated_at=NOW)
        assert snapshot.find_item("b") is b
        assert snapshot.find_item("missing") is None
        assert len(snapshot.items) == 2

    def test_frozen(self):
        snapshot = IntelligenceSnapshot(generated_at=NOW)
        with pytest.raises(ValidationError):
            snapshot.trends = ("x",)

    def test_raw_item_summary_falls_back_to_title(self):
        assert raw_item("Only a title").summary_text == "Only a title"
        assert raw_item("T", summary="Body").summary_text == "Body"
