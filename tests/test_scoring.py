"""Tests for the weighted score aggregation."""

import pytest

from callqa.schemas import CriterionVerdict
from callqa.scoring import ScoreAggregator, round_half_up


def verdict(passed, weight=1, name="Criterio"):
    return CriterionVerdict(criterion_name=name, passed=passed, weight=weight)


@pytest.fixture
def aggregator():
    return ScoreAggregator()


class TestAggregate:
    def test_single_passed_criterion_scores_ten(self, aggregator):
        result = aggregator.aggregate([verdict(True)], [])
        assert result.final_score == 10.0

    def test_weighted_with_risk_penalty(self, aggregator):
        results = [verdict(True, weight=2), verdict(False, weight=1)]
        result = aggregator.aggregate(results, ["cancelar", "insatisfeito"])
        assert result.final_score == 5.7

    def test_no_criteria_is_neutral(self, aggregator):
        assert aggregator.aggregate([], []).final_score == 7.5

    def test_all_failed_hits_floor(self, aggregator):
        results = [verdict(False, weight=3), verdict(False)]
        assert aggregator.aggregate(results, []).final_score == 3.0

    def test_penalty_never_goes_below_floor(self, aggregator):
        result = aggregator.aggregate([verdict(True)], ["w"] * 50)
        assert result.final_score == 3.0

    def test_zero_weight_counts_as_one(self, aggregator):
        results = [verdict(True, weight=0), verdict(False, weight=1)]
        assert aggregator.aggregate(results, []).final_score == 5.0

    @pytest.mark.parametrize("criteria", [
        [],
        [verdict(True)],
        [verdict(False)],
        [verdict(True, 3), verdict(False, 1), verdict(True, 2)],
    ])
    @pytest.mark.parametrize("risk_count", [0, 1, 4, 20])
    def test_score_within_bounds(self, aggregator, criteria, risk_count):
        score = aggregator.aggregate(criteria, ["r"] * risk_count).final_score
        assert 3.0 <= score <= 10.0

    def test_penalty_is_monotonic(self, aggregator):
        criteria = [verdict(True, 2), verdict(True, 1), verdict(False, 1)]
        scores = [aggregator.aggregate(criteria, ["r"] * n).final_score for n in range(12)]
        assert scores == sorted(scores, reverse=True)
        assert scores[-1] == 3.0


class TestJustification:
    def test_reports_passed_count(self, aggregator):
        result = aggregator.aggregate([verdict(True), verdict(False), verdict(True)], [])
        assert "2/3" in result.justification
        assert "Penalizacao" not in result.justification

    def test_mentions_penalty_when_risk_words(self, aggregator):
        result = aggregator.aggregate([verdict(True)], ["cancelar", "reembolso"])
        assert "Penalizacao de 1.0 pontos" in result.justification
        assert "2 palavra(s)" in result.justification


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        assert round_half_up(6.65) == 6.7
        assert round_half_up(2.5, 0) == 3.0

    def test_thirds(self):
        assert round_half_up(20 / 3) == 6.7
