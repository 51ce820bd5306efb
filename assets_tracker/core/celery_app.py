from celery import Celery
from celery.schedules import crontab
from assets_tracker.core.config import settings


def make_celery() -> Celery:
    celery = Celery(
        "assets_tracker",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "assets_tracker.tasks.snapshots",
            "assets_tracker.tasks.start",
        ],
    )

    celery.conf.update(
        timezone=settings.CELERY_TIMEZONE,
        enable_utc=settings.CELERY_ENABLE_UTC,
        broker_connection_retry_on_startup=True,
        worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    )

    if settings.CELERY_BEAT_ENABLED:
        celery.conf.beat_schedule = {
            'save-portfolio-snapshots-daily': {
                'task': 'assets_tracker.tasks.snapshots.save_daily_snapshots_task',
                'schedule': crontab(minute='30', hour='22'),
            },
        }
        celery.conf.beat_max_loop_interval = 10

    return celery


celery = make_celery()
