from celery import Celery

from povgen.core.config import settings

celery_app = Celery(
    "povgen",
    broker=settings.redis_dsn,
    backend=settings.redis_dsn,
    include=["povgen.workers.tasks"],
)
# One generation per worker slot; a job is acknowledged only once it has run.
celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
