from celery.signals import worker_ready
from assets_tracker.core.logger import logger
from assets_tracker.core.db import init_db


@worker_ready.connect
def at_worker_start(sender, **kwargs):
    """
    Automatically trigger when the Celery worker starts.
    """
    logger.info("Celery Worker is ready")
    init_db()
