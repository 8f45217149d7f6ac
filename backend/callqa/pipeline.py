"""Call evaluation pipeline.

Stages run strictly in order for one call:

    Created -> AudioResolved -> Transcribed -> CriteriaResolved -> Analyzed
    -> Scored -> Persisted -> AlertsEmitted -> Done

Creating the call row and resolving criteria are fatal when the store fails.
A redelivered external call id returns the stored result once the call is
scored; before that the existing row is evaluated again. Audio download,
transcription and analysis degrade to fallbacks. Alert persistence is per
alert and collects its errors. There is no retry here;
the caller (webhook handler) owns retry policy.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import asyncio
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .alerts import AlertEngine
from .analysis import CallAnalyzer
from .criteria import CriteriaSelector
from .exceptions import CallCreationError, StoreUnavailable
from .models import Call
from .repository import Repository
from .schemas import (
    Alert as AlertSchema, AlertEmission, CallInput, CriterionVerdict, Highlight, ProcessedCall, TranscriptSegment,
)
from .scoring import ScoreAggregator
from .storage import FileStorage, download_audio
from .transcription import Transcriber

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallPipeline:
    def __init__(
        self,
        session_factory,
        transcriber: Transcriber,
        analyzer: CallAnalyzer,
        storage: FileStorage,
        aggregator: Optional[ScoreAggregator] = None,
        alert_engine: Optional[AlertEngine] = None,
        retention_days: int = 60,
        download_timeout_seconds: float = 60.0,
    ):
        self.session_factory = session_factory
        self.transcriber = transcriber
        self.analyzer = analyzer
        self.storage = storage
        self.aggregator = aggregator or ScoreAggregator()
        self.alert_engine = alert_engine or AlertEngine()
        self.retention_days = retention_days
        self.download_timeout_seconds = download_timeout_seconds

    async def process(self, data: CallInput) -> ProcessedCall:
        logger.info(f"Starting call processing for {data.phone_number} (company {data.company_id}, agent {data.agent_id})")
        db = self.session_factory()
        try:
            repo = Repository(db)

            # Created; store work runs in a worker thread so the event loop keeps serving
            call, stored = await asyncio.to_thread(self._open_call, repo, data)
            if stored is not None:
                return stored
            call_id = call.id
            logger.info(f"Processing call record {call_id}")

            # AudioResolved
            audio_reference = data.audio_file_path or call.audio_file_path
            if data.audio_url and not audio_reference:
                audio_reference = await download_audio(
                    data.audio_url, call_id, self.storage, self.download_timeout_seconds
                )
                if audio_reference:
                    await asyncio.to_thread(self._record_audio_path, repo, call, audio_reference)
            logger.info(f"Call {call_id} audio reference: {audio_reference}")

            # Transcribed
            transcript = await self.transcriber.transcribe(audio_reference, data.duration_seconds)
            logger.info(f"Call {call_id} transcription completed, length: {len(transcript.text)}")

            # CriteriaResolved
            criteria, rules, categories = await asyncio.to_thread(self._resolve_criteria, repo, data)
            logger.info(f"Call {call_id} evaluated against {len(criteria)} criteria")

            # Analyzed
            analysis = await self.analyzer.analyze(
                transcript.text, criteria, transcript.timestamps,
                risk_words=rules.risk_words, categories=categories,
            )

            # Scored
            score = self.aggregator.aggregate(analysis.criteria_results, analysis.risk_words)
            logger.info(f"Call {call_id} scored {score.final_score}")

            # Persisted, AlertsEmitted
            emission = await asyncio.to_thread(self._persist, repo, call, transcript, analysis, score, rules)
            logger.info(f"Call {call_id} alerts generated: {len(emission.alerts)}")

            return ProcessedCall(
                call_id=call_id,
                transcription=transcript.text,
                transcription_timestamps=transcript.timestamps,
                summary=analysis.summary,
                next_step_recommendation=analysis.next_step,
                final_score=score.final_score,
                score_justification=score.justification,
                what_went_well=analysis.what_went_well,
                what_went_wrong=analysis.what_went_wrong,
                risk_words_detected=analysis.risk_words,
                criteria_results=analysis.criteria_results,
                detected_category=analysis.detected_category,
                alerts_generated=emission.alerts,
                alert_errors=emission.errors,
            )
        finally:
            db.close()

    def _open_call(self, repo: Repository, data: CallInput) -> Tuple[Optional[Call], Optional[ProcessedCall]]:
        """The call row to evaluate, or the stored result when the external id was already scored.

        A known external id whose row has no score yet belongs to a delivery
        that failed part way; that row is evaluated again instead of being
        returned empty.
        """
        if data.external_call_id:
            existing = repo.find_call_by_external_id(data.company_id, data.external_call_id)
            if existing is not None:
                return self._resume_or_return(existing, data)

        call_date = utcnow()
        try:
            call = repo.create_call(data, call_date, call_date + timedelta(days=self.retention_days))
        except IntegrityError as e:
            existing = None
            if data.external_call_id:
                existing = repo.find_call_by_external_id(data.company_id, data.external_call_id)
            if existing is None:
                raise CallCreationError(f"Failed to create call record: {e}") from e
            logger.info(f"External call {data.external_call_id} was created concurrently as call {existing.id}")
            return self._resume_or_return(existing, data)
        logger.info(f"Created call record {call.id}")
        return call, None

    def _resume_or_return(self, existing: Call, data: CallInput) -> Tuple[Optional[Call], Optional[ProcessedCall]]:
        if existing.final_score is not None:
            logger.info(f"External call {data.external_call_id} already processed as call {existing.id}")
            return None, self.stored_result(existing)
        logger.info(f"External call {data.external_call_id} has no score yet; resuming call {existing.id}")
        return existing, None

    @staticmethod
    def _record_audio_path(repo: Repository, call: Call, audio_reference: str) -> None:
        try:
            repo.set_audio_path(call, audio_reference)
        except SQLAlchemyError as e:
            repo.db.rollback()
            logger.warning(f"Could not record audio path for call {call.id}: {e}")

    def _resolve_criteria(self, repo: Repository, data: CallInput):
        """Criteria, alert rules and category names for the call's agent; any store failure is fatal."""
        agent = repo.get_agent(data.agent_id)
        criteria = CriteriaSelector(repo.db).select_for_agent(agent, data.company_id)
        try:
            categories = agent.category_names() if agent is not None else []
            rules = self.alert_engine.rules_for(repo.get_alert_settings(data.company_id))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to load alert settings for company {data.company_id}: {e}") from e
        return criteria, rules, categories

    def _persist(self, repo: Repository, call: Call, transcript, analysis, score, rules) -> AlertEmission:
        repo.save_analysis(call, transcript, analysis, score)
        return self.alert_engine.derive_alerts(repo, call, analysis, rules)

    async def simulate_call(
        self,
        company_id: int,
        agent_id: int,
        phone_number: str,
        duration_seconds: int = 180,
    ) -> ProcessedCall:
        """Run the full pipeline for a synthetic inbound call, no telephony provider involved."""
        return await self.process(CallInput(
            company_id=company_id,
            agent_id=agent_id,
            phone_number=phone_number,
            direction="inbound",
            duration_seconds=duration_seconds,
            external_call_id=f"SIMULATED_{int(utcnow().timestamp() * 1000)}",
        ))

    @staticmethod
    def stored_result(call: Call) -> ProcessedCall:
        """ProcessedCall rebuilt from a call row that was already evaluated."""
        return ProcessedCall(
            call_id=call.id,
            transcription=call.transcription or "",
            transcription_timestamps=[TranscriptSegment(**s) for s in call.transcription_timestamps or []],
            summary=call.summary or "",
            next_step_recommendation=call.next_step_recommendation or "",
            final_score=call.final_score,
            score_justification=call.score_justification or "",
            what_went_well=[Highlight(**h) for h in call.what_went_well or []],
            what_went_wrong=[Highlight(**h) for h in call.what_went_wrong or []],
            risk_words_detected=list(call.risk_words_detected or []),
            criteria_results=[
                CriterionVerdict(
                    criterion_id=r.criterion_id,
                    criterion_name=r.criterion_name or "",
                    passed=r.passed,
                    justification=r.justification or "",
                    timestamp_reference=r.timestamp_reference,
                )
                for r in call.criteria_results
            ],
            detected_category=call.detected_category,
            alerts_generated=[AlertSchema.model_validate(a) for a in call.alerts],
        )
