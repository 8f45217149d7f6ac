"""Composition root: builds the pipeline and sweeper from settings.

OpenAI backends are only wired in when an API key is configured; otherwise
the scripted transcript and keyword evaluator are used on every call.
"""

from typing import Optional
import logging

from openai import AsyncOpenAI

from .alerts import AlertEngine
from .analysis import CallAnalyzer, OpenAIAnalysisBackend
from .config import Settings, settings as default_settings
from .database import SessionLocal
from .pipeline import CallPipeline
from .retention import RetentionSweeper
from .storage import FileStorage, LocalFileStorage, S3FileStorage
from .transcription import Transcriber, WhisperBackend

logger = logging.getLogger(__name__)


def build_storage(settings: Settings = default_settings) -> FileStorage:
    if settings.storage_backend == "s3":
        return S3FileStorage(settings.aws_s3_bucket_audio, settings.aws_region)
    return LocalFileStorage(settings.upload_dir)


def build_openai_client(settings: Settings = default_settings) -> Optional[AsyncOpenAI]:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; using fallback transcription and keyword analysis")
        return None
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        max_retries=settings.openai_max_retries,
        timeout=max(settings.transcription_timeout_seconds, settings.analysis_timeout_seconds),
    )


def build_transcriber(settings: Settings, storage: FileStorage, client: Optional[AsyncOpenAI]) -> Transcriber:
    backend = None
    if client is not None:
        backend = WhisperBackend(client, storage, model=settings.openai_transcription_model)
    return Transcriber(backend=backend, timeout_seconds=settings.transcription_timeout_seconds)


def build_analyzer(settings: Settings, client: Optional[AsyncOpenAI]) -> CallAnalyzer:
    backend = None
    if client is not None:
        backend = OpenAIAnalysisBackend(client, model=settings.openai_analysis_model)
    return CallAnalyzer(settings.risk_words, backend=backend, timeout_seconds=settings.analysis_timeout_seconds)


def build_pipeline(session_factory=SessionLocal, settings: Settings = default_settings,
                   storage: Optional[FileStorage] = None) -> CallPipeline:
    storage = storage or build_storage(settings)
    client = build_openai_client(settings)
    return CallPipeline(
        session_factory,
        transcriber=build_transcriber(settings, storage, client),
        analyzer=build_analyzer(settings, client),
        storage=storage,
        alert_engine=AlertEngine(
            low_score_threshold=settings.low_score_threshold,
            long_call_threshold_seconds=settings.long_call_threshold_seconds,
        ),
        retention_days=settings.retention_days,
        download_timeout_seconds=settings.audio_download_timeout_seconds,
    )


def build_sweeper(session_factory=SessionLocal, settings: Settings = default_settings,
                  storage: Optional[FileStorage] = None) -> RetentionSweeper:
    return RetentionSweeper(session_factory, storage or build_storage(settings), settings.retention_days)
