"""
APScheduler configuration for unattended volume backups.

Runs the configured-volume backup on a cron schedule in the foreground
(`volback --daemon`). Settings are reloaded on every run so edits to the
settings file take effect without a restart.
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from volback.backup.executor import run_configured_backups
from volback.backup.runtime import RuntimeOperationError, get_runtime
from volback.backup.storage import ArchiveStore, PathError
from volback.settings import SettingsError, get_settings

logger = logging.getLogger(__name__)

JOB_ID = 'volume_backup'

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def init_scheduler(app, schedule: str, config_file: str = None):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
        schedule: Cron expression (minute hour day month day_of_week)
        config_file: Settings file to load on each run

    Returns:
        The scheduler

    Raises:
        ValueError: If the cron expression is invalid
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    flask_app = app
    timezone = app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    trigger = CronTrigger.from_crontab(schedule, timezone=timezone)

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Never back up the same volumes concurrently
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(job_defaults=job_defaults, timezone=timezone)

    scheduler.add_job(
        func=run_scheduled_backup,
        trigger=trigger,
        args=[config_file],
        id=JOB_ID,
        name='Unattended Volume Backup',
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler. Blocks until the scheduler is shut down.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job {job.id}: {job.name} ({job.trigger})")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler interrupted")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def run_scheduled_backup(config_file: str = None):
    """
    Scheduler job: back up every configured volume.

    Errors are logged rather than raised so the scheduler keeps running.

    Returns:
        BatchResult, or None if the run could not start
    """
    with flask_app.app_context():
        logger.info("Starting scheduled volume backup")
        try:
            settings = get_settings(config_file)
            store = ArchiveStore(settings.backup_dir)
            store.ensure_base_dir()
            runtime = get_runtime()
        except (SettingsError, PathError, RuntimeOperationError) as e:
            logger.error(f"Scheduled backup could not start: {e}")
            return None

        result = run_configured_backups(settings, store, runtime)
        if result.ok:
            logger.info(f"Scheduled backup completed: {result.summary()}")
        else:
            logger.error(f"Scheduled backup finished with failures: {result.summary()}")
        return result
