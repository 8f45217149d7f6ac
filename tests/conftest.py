"""Shared test fixtures for the call QA pipeline."""

import pytest
from sqlalchemy.orm import sessionmaker

from callqa.alerts import AlertEngine
from callqa.analysis import CallAnalyzer
from callqa.config import DEFAULT_RISK_WORDS
from callqa.criteria import get_or_create_category
from callqa.database import init_db, make_engine
from callqa.models import Company, Criterion, User
from callqa.pipeline import CallPipeline
from callqa.transcription import Transcriber

from fakes import MemoryStorage


@pytest.fixture
def engine(tmp_path):
    """Engine on a temp SQLite file with the schema created."""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """A company with two categories, agents in each (one in both) and a mix of global and category criteria."""
    company = Company(name="Acme")
    db.add(company)
    db.flush()

    suporte = get_or_create_category(db, company.id, "Suporte")
    comercial = get_or_create_category(db, company.id, "Comercial")

    criteria = {
        "greeting": Criterion(company_id=company.id, name="Saudacao/Abertura",
                              description="Cumprimento e abertura da chamada", weight=1),
        "next_step": Criterion(company_id=company.id, name="Proximo passo definido",
                               description="Definicao clara do proximo passo", weight=3),
        "risk": Criterion(company_id=company.id, name="Ausencia de palavras de risco",
                          description="Evitar palavras de risco ou gatilhos", weight=2),
        "empathy": Criterion(company_id=company.id, name="Empatia e compreensao",
                             description="Empatia pela situacao do cliente", weight=2,
                             category_id=suporte.id),
        "proposal": Criterion(company_id=company.id, name="Proposta comercial",
                              description="Proposta com valor para o cliente", weight=2,
                              category_id=comercial.id),
        "retired": Criterion(company_id=company.id, name="Script antigo", weight=1, is_active=False),
    }
    db.add_all(criteria.values())

    agents = {
        "support": User(company_id=company.id, username="ana", display_name="Ana Silva",
                        role="agent", category_id=suporte.id),
        "sales": User(company_id=company.id, username="rui", display_name="Rui Costa",
                      role="agent", category_id=comercial.id),
        "legacy": User(company_id=company.id, username="old", display_name="Old Agent",
                       role="agent", custom_role_name=" SUPORTE "),
        "general": User(company_id=company.id, username="gen", display_name="Generalist",
                        role="agent"),
        "multi": User(company_id=company.id, username="mia", display_name="Mia Santos",
                      role="agent", category_id=suporte.id, categories=[comercial]),
    }
    db.add_all(agents.values())
    db.commit()

    return {
        "company_id": company.id,
        "categories": {"suporte": suporte.id, "comercial": comercial.id},
        "criteria": {key: c.id for key, c in criteria.items()},
        "agents": {key: a.id for key, a in agents.items()},
    }


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def make_pipeline(session_factory, storage):
    """Factory for a CallPipeline with optional fake backends."""

    def _make(transcription_backend=None, analysis_backend=None, **kwargs):
        return CallPipeline(
            session_factory,
            transcriber=Transcriber(backend=transcription_backend, timeout_seconds=1.0),
            analyzer=CallAnalyzer(DEFAULT_RISK_WORDS, backend=analysis_backend, timeout_seconds=1.0),
            storage=storage,
            alert_engine=AlertEngine(),
            **kwargs,
        )

    return _make


@pytest.fixture
def pipeline(make_pipeline):
    return make_pipeline()
