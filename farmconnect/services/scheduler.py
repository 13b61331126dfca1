"""
Background Scheduler: Periodic Jobs

Runs background tasks inside the API process using APScheduler:
- Crop deletion sweep (every CROP_SWEEP_INTERVAL_MINUTES)

Deletions are persisted on the crop as `deleteAfter`, so a restart loses
nothing: the sweep also runs once at start-up to catch up.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from farmconnect.services.marketplace.crop_service import CropService

logger = logging.getLogger('scheduler')


def run_crop_sweep(crop_service: CropService) -> int:
    try:
        return crop_service.sweep_due_deletions()
    except Exception as e:
        # next interval retries
        logger.error(f"Crop sweep failed: {e}")
        return 0


def init_scheduler(
    crop_service: CropService,
    interval_minutes: int = 10,
    scheduler: Optional[BackgroundScheduler] = None,
) -> BackgroundScheduler:
    """
    Initialize and start the background scheduler.
    """
    scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    # catch up on deletions that came due while the process was down
    run_crop_sweep(crop_service)

    scheduler.add_job(
        func=run_crop_sweep,
        args=[crop_service],
        trigger='interval',
        minutes=interval_minutes,
        id='crop_deletion_sweep',
        name='Crop Deletion Sweep',
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"Background scheduler started; crop sweep every {interval_minutes} min")
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
