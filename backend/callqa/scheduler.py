from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime, timezone
import logging
from .retention import RetentionSweeper

logger = logging.getLogger(__name__)
scheduler = BackgroundScheduler()

def retention_sweep_job(sweeper: RetentionSweeper):
    """Background job purging calls past the retention horizon"""
    result = sweeper.sweep()
    if result.errors:
        logger.warning(f"Retention sweep deleted {result.deleted_count} calls with {len(result.errors)} errors")
    else:
        logger.info(f"Retention sweep deleted {result.deleted_count} calls")
    return result

def start_scheduler(sweeper: RetentionSweeper, interval_hours: int = 24):
    """Start the background scheduler; the first sweep runs immediately"""
    if not scheduler.running:
        scheduler.add_job(
            func=retention_sweep_job,
            args=[sweeper],
            trigger=IntervalTrigger(hours=interval_hours),
            id='retention_sweep',
            name='Delete calls past retention',
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True
        )

        scheduler.start()
        logger.info(f"Background scheduler started (retention sweep every {interval_hours}h)")

def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
