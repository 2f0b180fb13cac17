"""Celery application for background product mapping syncs."""

from celery import Celery

from multistore.core.config import settings

celery_app = Celery(
    "multistore",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "multistore.workers.tasks.multi_store",
    ],
)

# One sync fetches the primary catalog plus up to max_backup_stores backup
# catalogs, each bounded by catalog_fetch_deadline.
_SYNC_SOFT_LIMIT = int(settings.catalog_fetch_deadline * (settings.max_backup_stores + 1))

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_soft_time_limit=_SYNC_SOFT_LIMIT,
    task_time_limit=_SYNC_SOFT_LIMIT + 60,
    # A worker crash mid-sync requeues the store; the upsert is idempotent
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Adding a backup store must not hang when the broker is down
    broker_connection_timeout=5,
    task_publish_retry_policy={"max_retries": 1, "interval_start": 0, "interval_step": 1},
    task_default_queue="default",
    task_routes={
        "tasks.multi_store.*": {"queue": "sync"},
    },
)


class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Retries with exponential backoff and jitter on unexpected errors."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3
