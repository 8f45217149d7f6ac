from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from botocore.exceptions import BotoCoreError, ClientError
from .config import settings
import boto3
import json
import logging
import os

logger = logging.getLogger(__name__)

def get_secret_value(secret_name: str, key: str = None) -> str:
    """Get secret from AWS Secrets Manager or environment variable"""
    try:
        session = boto3.Session()
        client = session.client(
            service_name='secretsmanager',
            region_name=settings.aws_region
        )

        get_secret_value_response = client.get_secret_value(SecretId=secret_name)
        secret = json.loads(get_secret_value_response['SecretString'])

        if key:
            return secret.get(key, "")
        return secret
    except (BotoCoreError, ClientError, ValueError) as e:
        logger.warning(f"Could not get secret {secret_name}: {e}")
        if key:
            return os.getenv(key, "")
        return os.getenv(secret_name.replace("/", "_").replace("-", "_").upper(), "")

def resolve_database_url() -> str:
    """Database URL from Secrets Manager when a secret name is configured, else settings."""
    if settings.database_secret_name:
        database_url = get_secret_value(settings.database_secret_name, "DATABASE_URL")
        if database_url:
            return database_url
    return settings.database_url

@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

def make_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

database_url = resolve_database_url()
engine = make_engine(database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def init_db(bind=None):
    """Create all ORM tables."""
    from . import models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
