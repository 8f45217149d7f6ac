from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from .models import AlertSettings, Call
from .repository import Repository
from .schemas import Alert as AlertSchema, AlertDraft, AlertEmission, AnalysisResult
from .scoring import round_half_up

logger = logging.getLogger(__name__)

MIN_NEXT_STEP_LENGTH = 10


@dataclass
class AlertRules:
    low_score_threshold: float = 5.0
    long_call_threshold_seconds: int = 1800
    risk_words: Optional[List[str]] = None  # None: use the analyzer's configured list
    low_score_enabled: bool = True
    risk_words_enabled: bool = True
    long_duration_enabled: bool = True
    no_next_step_enabled: bool = True


class AlertEngine:
    def __init__(self, low_score_threshold: float = 5.0, long_call_threshold_seconds: int = 1800):
        self.defaults = AlertRules(
            low_score_threshold=low_score_threshold,
            long_call_threshold_seconds=long_call_threshold_seconds,
        )

    def rules_for(self, company_settings: Optional[AlertSettings]) -> AlertRules:
        """Environment defaults overlaid with the company's alert settings, if any."""
        if company_settings is None:
            return self.defaults
        rules = AlertRules(
            low_score_threshold=self.defaults.low_score_threshold,
            long_call_threshold_seconds=self.defaults.long_call_threshold_seconds,
            low_score_enabled=company_settings.low_score_enabled,
            risk_words_enabled=company_settings.risk_words_enabled,
            long_duration_enabled=company_settings.long_duration_enabled,
            no_next_step_enabled=company_settings.no_next_step_enabled,
        )
        if company_settings.low_score_threshold is not None:
            rules.low_score_threshold = company_settings.low_score_threshold
        if company_settings.long_duration_threshold_minutes is not None:
            rules.long_call_threshold_seconds = company_settings.long_duration_threshold_minutes * 60
        if company_settings.risk_words_list:
            words = [w.strip() for w in company_settings.risk_words_list.split(",") if w.strip()]
            rules.risk_words = words or None
        return rules

    def evaluate(self, call: Call, analysis: AnalysisResult, rules: Optional[AlertRules] = None) -> List[AlertDraft]:
        """Triggered alerts in rule order; the rules are independent of each other."""
        rules = rules or self.defaults
        drafts = []

        score = call.final_score
        if rules.low_score_enabled and score is not None and score < rules.low_score_threshold:
            drafts.append(AlertDraft(
                type="low_score",
                message=f"Chamada com pontuacao baixa: {score}. Requer atencao.",
            ))

        if rules.risk_words_enabled and analysis.risk_words:
            drafts.append(AlertDraft(
                type="risk_words",
                message=f"Palavras de risco detetadas: {', '.join(analysis.risk_words)}",
            ))

        duration = call.duration_seconds or 0
        if rules.long_duration_enabled and duration > rules.long_call_threshold_seconds:
            minutes = int(round_half_up(duration / 60, 0))
            drafts.append(AlertDraft(
                type="long_duration",
                message=f"Chamada com duracao excessiva: {minutes} minutos",
            ))

        next_step = analysis.next_step
        if rules.no_next_step_enabled and (not next_step or len(next_step.strip()) < MIN_NEXT_STEP_LENGTH):
            drafts.append(AlertDraft(
                type="no_next_step",
                message="Proximo passo nao definido claramente na chamada",
            ))

        return drafts

    def derive_alerts(
        self,
        repo: Repository,
        call: Call,
        analysis: AnalysisResult,
        rules: Optional[AlertRules] = None,
    ) -> AlertEmission:
        """Evaluate and persist each alert on its own; one failed insert does not stop the rest."""
        emission = AlertEmission()
        for draft in self.evaluate(call, analysis, rules):
            try:
                alert = repo.add_alert(call, draft)
            except SQLAlchemyError as e:
                error = f"Failed to persist {draft.type} alert for call {call.id}: {e}"
                logger.error(error)
                emission.errors.append(error)
                continue
            emission.alerts.append(AlertSchema.model_validate(alert))
        return emission
