from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime

CallDirection = Literal["inbound", "outbound", "meeting"]
AlertType = Literal["low_score", "risk_words", "long_duration", "no_next_step"]

class CamelModel(BaseModel):
    """Serialized with camelCase keys for the HTTP layer; accepts either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

# Transcription schemas
class TranscriptSegment(BaseModel):
    speaker: str
    text: str
    timestamp: str  # MM:SS offset into the call

class TranscriptResult(BaseModel):
    text: str
    timestamps: List[TranscriptSegment] = []

# Analysis schemas
class CriterionVerdict(CamelModel):
    criterion_id: Optional[int] = None
    criterion_name: str
    passed: bool
    justification: str = ""
    timestamp_reference: Optional[str] = None
    weight: int = 1

class Highlight(BaseModel):
    text: str
    timestamp: Optional[str] = None

class AnalysisResult(BaseModel):
    summary: str = ""
    next_step: str = ""
    criteria_results: List[CriterionVerdict] = []
    risk_words: List[str] = []
    what_went_well: List[Highlight] = []
    what_went_wrong: List[Highlight] = []
    detected_category: Optional[str] = None

class ScoreResult(BaseModel):
    final_score: float
    justification: str

# Alert schemas
class AlertDraft(BaseModel):
    type: AlertType
    message: str

class Alert(CamelModel):
    id: int
    company_id: int
    call_id: int
    agent_id: Optional[int] = None
    type: AlertType
    message: str
    is_read: bool = False
    created_at: Optional[datetime] = None

class AlertEmission(BaseModel):
    alerts: List[Alert] = []
    errors: List[str] = []

# Pipeline schemas
class CallInput(CamelModel):
    company_id: int
    agent_id: int
    phone_number: str
    direction: CallDirection = "inbound"
    duration_seconds: int = Field(ge=0)
    audio_file_path: Optional[str] = None
    audio_url: Optional[str] = None
    external_call_id: Optional[str] = None

class ProcessedCall(CamelModel):
    call_id: int
    transcription: str
    transcription_timestamps: List[TranscriptSegment] = []
    summary: str = ""
    next_step_recommendation: str = ""
    final_score: Optional[float] = None
    score_justification: str = ""
    what_went_well: List[Highlight] = []
    what_went_wrong: List[Highlight] = []
    risk_words_detected: List[str] = []
    criteria_results: List[CriterionVerdict] = []
    detected_category: Optional[str] = None
    alerts_generated: List[Alert] = []
    alert_errors: List[str] = []

class SimulateRequest(CamelModel):
    company_id: int
    agent_id: int
    phone_number: str = "+351000000000"
    duration_seconds: int = Field(default=180, ge=0)

# Retention schemas
class SweepResult(CamelModel):
    deleted_count: int = 0
    errors: List[str] = []

class RetentionPolicy(CamelModel):
    retention_days: int
    description: str
