"""
Celery application — background recalculation and re-detection.

Re-detection calls an external model service and can run for minutes, and
large jobs fan out over many pages, so both run off the request path.

Queues:
  quantities  — tasks.recalculate_job (CPU-bound geometry and rollups)
  redetection — tasks.redetect_page   (waits on the extraction service)
"""
from celery import Celery

from estimator.config import get_settings

_settings = get_settings()

# Re-detection gets the HTTP timeout plus room for the follow-up recalculation
_REDETECT_SOFT_LIMIT = int(_settings.redetect_timeout_seconds) + 120

celery_app = Celery(
    "estimator",
    broker=_settings.celery_broker_url,
    backend=_settings.celery_result_backend,
    include=["estimator.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_soft_time_limit=300,
    task_time_limit=600,
    result_expires=3600,
    task_default_queue="quantities",
    task_routes={
        "tasks.recalculate_job": {"queue": "quantities"},
        "tasks.redetect_page": {"queue": "redetection"},
    },
    task_annotations={
        "tasks.redetect_page": {
            "soft_time_limit": _REDETECT_SOFT_LIMIT,
            "time_limit": _REDETECT_SOFT_LIMIT + 60,
        },
    },
)
