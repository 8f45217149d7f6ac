from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

DEFAULT_RISK_WORDS = [
    "cancelar", "cancelamento",
    "reclamacao", "reclamar",
    "advogado", "processo", "tribunal",
    "insatisfeito", "insatisfacao",
    "devolver", "devolucao",
    "reembolso",
    "nunca mais", "pessimo",
]

class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./callqa.db"
    # When set, DATABASE_URL is read from this AWS Secrets Manager secret
    database_secret_name: str = ""

    # AWS
    aws_region: str = "us-east-1"
    aws_s3_bucket_audio: str = "callqa-audio"

    # Audio storage: "local" or "s3"
    storage_backend: str = "local"
    upload_dir: str = "./uploads"
    audio_download_timeout_seconds: float = 60.0

    # OpenAI
    openai_api_key: str = ""
    openai_max_retries: int = 2
    openai_analysis_model: str = "gpt-4o"
    openai_transcription_model: str = "whisper-1"

    # Backend timeouts (a timeout counts as a backend failure)
    transcription_timeout_seconds: float = 120.0
    analysis_timeout_seconds: float = 60.0

    # Alert thresholds
    low_score_threshold: float = 5.0
    long_call_threshold_seconds: int = 1800
    # RISK_WORDS is read from the environment as a JSON list
    risk_words: List[str] = DEFAULT_RISK_WORDS

    # Retention
    retention_days: int = Field(default=60, ge=1)
    retention_interval_hours: int = 24
    enable_retention_scheduler: bool = True

    # CORS
    allowed_origins: List[str] = ["http://localhost:3000"]

    # Demo seeding
    auto_seed_demo: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

settings = Settings()
