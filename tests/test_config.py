"""Tests for settings, the composition root and demo seeding."""

import pytest
from pydantic import ValidationError

from callqa.analysis import OpenAIAnalysisBackend
from callqa.config import DEFAULT_RISK_WORDS, Settings
from callqa.criteria import CriteriaSelector
from callqa.factory import build_pipeline, build_storage, build_sweeper
from callqa.models import AlertSettings, Company, Criterion, User
from callqa.seeder import DEFAULT_CRITERIA, seed_demo_data
from callqa.storage import LocalFileStorage, S3FileStorage
from callqa.transcription import WhisperBackend


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("LOW_SCORE_THRESHOLD", "RISK_WORDS", "RETENTION_DAYS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.low_score_threshold == 5.0
        assert settings.long_call_threshold_seconds == 1800
        assert settings.retention_days == 60
        assert settings.risk_words == DEFAULT_RISK_WORDS

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RISK_WORDS", '["fatura", "atraso"]')
        monkeypatch.setenv("LOW_SCORE_THRESHOLD", "6.5")
        monkeypatch.setenv("retention_days", "30")
        settings = Settings(_env_file=None)
        assert settings.risk_words == ["fatura", "atraso"]
        assert settings.low_score_threshold == 6.5
        assert settings.retention_days == 30

    def test_retention_days_below_one_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, retention_days=0)

    def test_reads_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LOW_SCORE_THRESHOLD", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("low_score_threshold=4.5\n")
        assert Settings(_env_file=env_file).low_score_threshold == 4.5


class TestFactory:
    def test_without_api_key_uses_fallbacks(self, session_factory, tmp_path):
        settings = Settings(_env_file=None, openai_api_key="", upload_dir=str(tmp_path))
        pipeline = build_pipeline(session_factory, settings)
        assert pipeline.transcriber.backend is None
        assert pipeline.analyzer.backend is None
        assert isinstance(pipeline.storage, LocalFileStorage)
        assert pipeline.retention_days == settings.retention_days

    def test_with_api_key_wires_openai(self, session_factory, tmp_path):
        settings = Settings(_env_file=None, openai_api_key="sk-test", upload_dir=str(tmp_path),
                            low_score_threshold=6.0)
        pipeline = build_pipeline(session_factory, settings)
        assert isinstance(pipeline.transcriber.backend, WhisperBackend)
        assert isinstance(pipeline.analyzer.backend, OpenAIAnalysisBackend)
        assert pipeline.alert_engine.defaults.low_score_threshold == 6.0

    def test_s3_storage(self):
        settings = Settings(_env_file=None, storage_backend="s3", aws_region="eu-west-1")
        storage = build_storage(settings)
        assert isinstance(storage, S3FileStorage)
        assert storage.bucket == settings.aws_s3_bucket_audio

    def test_sweeper(self, session_factory, tmp_path):
        settings = Settings(_env_file=None, retention_days=90, upload_dir=str(tmp_path))
        assert build_sweeper(session_factory, settings).retention_days == 90


class TestSeeder:
    def test_seeds_demo_company(self, session_factory, db):
        seed_demo_data(session_factory)

        company = db.query(Company).filter(Company.name == "Demo Company").one()
        assert db.query(Criterion).filter(Criterion.company_id == company.id).count() == len(DEFAULT_CRITERIA)
        assert db.query(AlertSettings).filter(AlertSettings.company_id == company.id).count() == 1

        agent = db.query(User).filter(User.username == "ana.suporte").one()
        criteria = CriteriaSelector(db).select_for_agent(agent, company.id)
        assert len(criteria) == 13
        assert {c.category for c in criteria} == {"all", "Suporte"}

    def test_demo_agent_in_two_categories(self, session_factory, db):
        seed_demo_data(session_factory)
        company = db.query(Company).filter(Company.name == "Demo Company").one()
        agent = db.query(User).filter(User.username == "joao.misto").one()

        assert agent.category_names() == ["Suporte", "Comercial"]
        criteria = CriteriaSelector(db).select_for_agent(agent, company.id)
        assert len(criteria) == len(DEFAULT_CRITERIA)

    def test_is_idempotent(self, session_factory, db):
        seed_demo_data(session_factory)
        seed_demo_data(session_factory)
        assert db.query(Company).filter(Company.name == "Demo Company").count() == 1
