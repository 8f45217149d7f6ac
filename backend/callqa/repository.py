"""Store operations used by the call pipeline, alert engine and retention sweeper."""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import CallCreationError, StoreUnavailable
from .models import Alert, AlertSettings, Call, CallCriterionResult, User
from .schemas import AlertDraft, AnalysisResult, CallInput, ScoreResult, TranscriptResult


class Repository:
    """Thin wrapper over a SQLAlchemy session; one instance per unit of work."""

    def __init__(self, db: Session):
        self.db = db

    # Calls

    def create_call(self, data: CallInput, call_date: datetime, expires_at: datetime) -> Call:
        """Insert the metadata-only call row and return it with its id assigned.

        IntegrityError is re-raised as is so callers can detect a duplicate
        external call id; every other store failure becomes CallCreationError.
        """
        call = Call(
            company_id=data.company_id,
            agent_id=data.agent_id,
            external_call_id=data.external_call_id,
            phone_number=data.phone_number,
            direction=data.direction,
            duration_seconds=data.duration_seconds,
            audio_file_path=data.audio_file_path,
            call_date=call_date,
            expires_at=expires_at,
        )
        try:
            self.db.add(call)
            self.db.commit()
            self.db.refresh(call)
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise CallCreationError(f"Failed to create call record: {e}") from e
        if call.id is None:
            raise CallCreationError("Failed to create call record - no ID returned")
        return call

    def find_call_by_external_id(self, company_id: int, external_call_id: str) -> Optional[Call]:
        return self.db.query(Call).filter(
            Call.company_id == company_id,
            Call.external_call_id == external_call_id,
        ).first()

    def set_audio_path(self, call: Call, audio_file_path: str) -> None:
        call.audio_file_path = audio_file_path
        self.db.commit()

    def save_analysis(
        self,
        call: Call,
        transcript: TranscriptResult,
        analysis: AnalysisResult,
        score: ScoreResult,
    ) -> List[CallCriterionResult]:
        """Write the analysis fields and one result row per evaluated criterion.

        Result rows left by an earlier, interrupted evaluation of the same call
        are replaced.
        """
        call.transcription = transcript.text
        call.transcription_timestamps = [s.model_dump() for s in transcript.timestamps]
        call.summary = analysis.summary
        call.next_step_recommendation = analysis.next_step
        call.final_score = score.final_score
        call.score_justification = score.justification
        call.what_went_well = [h.model_dump() for h in analysis.what_went_well]
        call.what_went_wrong = [h.model_dump() for h in analysis.what_went_wrong]
        call.risk_words_detected = list(analysis.risk_words)
        call.detected_category = analysis.detected_category

        rows = [
            CallCriterionResult(
                call_id=call.id,
                criterion_id=verdict.criterion_id,
                criterion_name=verdict.criterion_name,
                passed=verdict.passed,
                justification=verdict.justification,
                timestamp_reference=verdict.timestamp_reference,
            )
            for verdict in analysis.criteria_results
        ]
        try:
            self.db.query(CallCriterionResult).filter(
                CallCriterionResult.call_id == call.id
            ).delete(synchronize_session=False)
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Failed to persist analysis for call {call.id}: {e}") from e
        return rows

    # Agents

    def get_agent(self, agent_id: int) -> Optional[User]:
        try:
            return self.db.query(User).filter(User.id == agent_id).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to load agent {agent_id}: {e}") from e

    # Alerts

    def get_alert_settings(self, company_id: int) -> Optional[AlertSettings]:
        return self.db.query(AlertSettings).filter(AlertSettings.company_id == company_id).first()

    def add_alert(self, call: Call, draft: AlertDraft) -> Alert:
        alert = Alert(
            company_id=call.company_id,
            call_id=call.id,
            agent_id=call.agent_id,
            type=draft.type,
            message=draft.message,
        )
        try:
            self.db.add(alert)
            self.db.commit()
            self.db.refresh(alert)
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return alert

    def list_alerts(
        self,
        company_id: int,
        agent_id: Optional[int] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Alert]:
        query = self.db.query(Alert).filter(Alert.company_id == company_id)
        if agent_id:
            query = query.filter(Alert.agent_id == agent_id)
        if unread_only:
            query = query.filter(Alert.is_read.is_(False))
        return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()

    def mark_alert_read(self, alert_id: int) -> Optional[Alert]:
        alert = self.db.query(Alert).filter(Alert.id == alert_id).first()
        if alert is None:
            return None
        alert.is_read = True
        self.db.commit()
        self.db.refresh(alert)
        return alert

    # Retention

    def expired_calls(self, cutoff: datetime) -> List[Tuple[int, Optional[str]]]:
        rows = self.db.query(Call.id, Call.audio_file_path).filter(Call.call_date < cutoff).all()
        return [(row.id, row.audio_file_path) for row in rows]

    def delete_calls(self, call_ids: List[int]) -> int:
        """Bulk delete; criteria results, alerts and feedback go with the rows via ON DELETE CASCADE."""
        if not call_ids:
            return 0
        deleted = self.db.query(Call).filter(Call.id.in_(call_ids)).delete(synchronize_session=False)
        self.db.commit()
        return deleted
