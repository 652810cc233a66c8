import asyncio
import logging

from povgen.core.errors import JobNotFoundError
from povgen.models import VideoJob
from povgen.services.pipeline import GenerationPipeline
from povgen.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run(pipeline: GenerationPipeline, job_id: str) -> VideoJob:
    try:
        return await pipeline.run(job_id)
    finally:
        await pipeline.backend.aclose()


@celery_app.task(name="generation.run_generation")
def run_generation(job_id: str) -> str | None:
    # The worker only sees the job through a shared store (status_store_backend=sql).
    pipeline = GenerationPipeline()
    try:
        job = asyncio.run(_run(pipeline, job_id))
    except JobNotFoundError:
        logger.warning("Job %s not found in worker store", job_id)
        return None
    return job.status.value
