from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from .schemas import CriterionVerdict, ScoreResult

NEUTRAL_SCORE = 7.5
POINTS_PER_CRITERION = 10
RISK_WORD_PENALTY = 0.5
MIN_SCORE = 3.0
MAX_SCORE = 10.0


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


class ScoreAggregator:
    """Weighted pass rate on a 0-10 scale, minus half a point per risk phrase, floored at 3.0."""

    def aggregate(self, criteria_results: Sequence[CriterionVerdict], risk_words: Sequence[str]) -> ScoreResult:
        total_weight = 0
        weighted_score = 0
        for result in criteria_results:
            weight = result.weight or 1
            total_weight += weight
            if result.passed:
                weighted_score += weight * POINTS_PER_CRITERION

        raw_score = weighted_score / total_weight if total_weight > 0 else NEUTRAL_SCORE
        score = max(raw_score - RISK_WORD_PENALTY * len(risk_words), MIN_SCORE)
        score = min(round_half_up(score), MAX_SCORE)

        passed = sum(1 for r in criteria_results if r.passed)
        justification = f"Pontuacao baseada em {passed}/{len(criteria_results)} criterios cumpridos."
        if risk_words:
            penalty = RISK_WORD_PENALTY * len(risk_words)
            justification += (
                f" Penalizacao de {penalty:.1f} pontos por {len(risk_words)} palavra(s) de risco detetada(s)."
            )
        return ScoreResult(final_score=score, justification=justification)
