"""Purge of calls older than the retention horizon.

Deletes the stored recordings first (best effort) and then the call rows;
criteria results, alerts and feedback are removed with their call by the
database cascade.
"""

from datetime import timedelta
import logging

from sqlalchemy.exc import SQLAlchemyError

from .pipeline import utcnow
from .repository import Repository
from .schemas import RetentionPolicy, SweepResult
from .storage import FileStorage

logger = logging.getLogger(__name__)


def validate_retention_days(days: int) -> int:
    if days < 1:
        raise ValueError(f"retention_days must be at least 1, got {days}")
    return days


class RetentionSweeper:
    def __init__(self, session_factory, storage: FileStorage, retention_days: int = 60):
        self.session_factory = session_factory
        self.storage = storage
        self.retention_days = validate_retention_days(retention_days)

    def sweep(self, retention_days: int = None) -> SweepResult:
        """Delete calls whose call_date is older than the horizon.

        Raises ValueError for a horizon below one day, before anything is read
        or deleted; a zero or negative horizon would put the cutoff at or after
        now and purge every call.
        """
        days = self.retention_days if retention_days is None else validate_retention_days(retention_days)
        cutoff = utcnow() - timedelta(days=days)
        result = SweepResult()
        logger.info(f"Running cleanup for calls older than {days} days (before {cutoff.isoformat()})")

        db = self.session_factory()
        try:
            repo = Repository(db)
            expired = repo.expired_calls(cutoff)
            if not expired:
                logger.info("No expired calls found")
                return result
            logger.info(f"Found {len(expired)} expired calls to delete")

            for call_id, audio_file_path in expired:
                if not audio_file_path:
                    continue
                try:
                    if self.storage.delete(audio_file_path):
                        logger.info(f"Deleted audio file: {audio_file_path}")
                except Exception as e:
                    error = f"Failed to delete audio file for call {call_id}: {e}"
                    logger.error(error)
                    result.errors.append(error)

            result.deleted_count = repo.delete_calls([call_id for call_id, _ in expired])
            logger.info(f"Deleted {result.deleted_count} expired call records")
        except SQLAlchemyError as e:
            db.rollback()
            error = f"Retention cleanup failed: {e}"
            logger.error(error)
            result.errors.append(error)
        finally:
            db.close()
        return result

    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            retention_days=self.retention_days,
            description=f"Calls and recordings are automatically deleted after {self.retention_days} days",
        )
