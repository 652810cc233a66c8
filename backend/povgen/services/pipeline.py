import asyncio
import logging
import secrets
import string
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from povgen.core.config import settings
from povgen.core.errors import (
    DuplicateJobError,
    JobCancelledError,
    JobNotFoundError,
    JobStateConflictError,
    StageError,
    StageTimeoutError,
    ValidationError,
)
from povgen.models import JobStatus, VideoJob
from povgen.services.generator import GenerationBackend, get_generation_backend
from povgen.services.media import build_metadata
from povgen.services.narrative import extract_historical_period
from povgen.services.progress import STAGES, Stage, estimate_generation_time
from povgen.services.status_store import JobStatusStore, get_status_store

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
COMPLETED_STEP = "Video generation completed!"


def _token(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def new_video_id() -> str:
    return _token("pov")


def new_session_id() -> str:
    return _token("session")


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    duration: int
    session_id: str


def validate_request(prompt: Any, duration: Any, session_id: str | None = None) -> GenerationRequest:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")
    if len(prompt) > settings.max_prompt_length:
        raise ValidationError(f"Prompt must be {settings.max_prompt_length} characters or less")
    if isinstance(duration, bool) or duration not in settings.allowed_durations:
        allowed = [str(d) for d in settings.allowed_durations]
        raise ValidationError(f"Duration must be {', '.join(allowed[:-1])}, or {allowed[-1]} seconds")
    return GenerationRequest(prompt=prompt, duration=int(duration), session_id=session_id or new_session_id())


@dataclass
class GenerationContext:
    """Outputs collected while the stages run; only published on completion."""

    prompt: str
    duration: int
    enhanced_prompt: str | None = None
    thumbnail_url: str | None = None
    video_url: str | None = None
    subtitles: str | None = None


class GenerationPipeline:
    def __init__(
        self,
        store: JobStatusStore | None = None,
        backend: GenerationBackend | None = None,
        stage_timeout: float | None = None,
    ):
        self.store = store or get_status_store()
        self.backend = backend or get_generation_backend()
        self.stage_timeout = settings.stage_timeout_seconds if stage_timeout is None else stage_timeout
        self._cancel_tokens: dict[str, threading.Event] = {}
        self._background: set[asyncio.Task] = set()

    # ---- job bookkeeping ----

    def create_job(self, request: GenerationRequest) -> VideoJob:
        for _ in range(5):
            job_id = new_video_id()
            initial = VideoJob(
                id=job_id,
                prompt=request.prompt,
                duration=request.duration,
                session_id=request.session_id,
                historical_period=extract_historical_period(request.prompt),
            )
            try:
                job = self.store.create(job_id, initial)
            except DuplicateJobError:
                logger.warning("Generated job id %s collided, retrying", job_id)
                continue
            return job
        raise DuplicateJobError(job_id)

    def cancel(self, job_id: str) -> bool:
        """Ask an in-flight job to stop at its next stage boundary.

        Only jobs running in this process hold a token; queued jobs return False.
        """
        token = self._cancel_tokens.get(job_id)
        if token is None:
            return False
        token.set()
        return True

    def _commit(self, job_id: str, **changes) -> VideoJob:
        return self.store.update(job_id, changes)

    def _fail(self, job_id: str, code: str, message: str) -> VideoJob:
        logger.warning("Job %s failed [%s]: %s", job_id, code, message)
        try:
            return self._commit(job_id, status=JobStatus.failed, error=message, error_code=code)
        except JobStateConflictError:
            return self.store.get(job_id)

    # ---- stages ----

    async def _stage_prompt(self, ctx: GenerationContext) -> None:
        ctx.enhanced_prompt = await self.backend.enhance_prompt(ctx.prompt, ctx.duration)

    async def _stage_image(self, ctx: GenerationContext) -> None:
        ctx.thumbnail_url = await self.backend.generate_image(ctx.enhanced_prompt)

    async def _stage_video(self, ctx: GenerationContext) -> None:
        ctx.video_url = await self.backend.generate_video(ctx.thumbnail_url, ctx.enhanced_prompt, ctx.duration)

    async def _stage_subtitles(self, ctx: GenerationContext) -> None:
        ctx.subtitles = await self.backend.generate_subtitles(ctx.prompt)

    async def _stage_finalize(self, ctx: GenerationContext) -> None:
        missing = [name for name in ("thumbnail_url", "video_url", "subtitles") if not getattr(ctx, name)]
        if missing:
            raise StageError("STAGE_FAILED", f"Generation finished without {', '.join(missing)}")

    async def _run_stage(self, stage: Stage, ctx: GenerationContext) -> None:
        step = getattr(self, f"_stage_{stage.key}")
        # Only the deadline counts as a timeout; a stage's own TimeoutError is a plain failure.
        task = asyncio.ensure_future(step(ctx))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.stage_timeout)
        finally:
            if not task.done():
                task.cancel()
        if not done:
            raise StageTimeoutError(stage.key, self.stage_timeout)
        task.result()

    # ---- orchestration ----

    async def run(self, job_id: str) -> VideoJob:
        """Drive a pending job through every stage.

        Stage failures end in a ``failed`` job, never in an exception. Running a
        job that already started or finished is a no-op returning its record.
        """
        token = self._cancel_tokens.setdefault(job_id, threading.Event())
        try:
            return await self._execute(job_id, token)
        finally:
            self._cancel_tokens.pop(job_id, None)

    def _checkpoint(self, job_id: str, stage: Stage) -> VideoJob:
        # A client may have pushed progress past this stage; never pull it back.
        current = self.store.get(job_id)
        return self._commit(job_id, progress=max(stage.high, current.progress), current_step=stage.description)

    async def _execute(self, job_id: str, token: threading.Event) -> VideoJob:
        job = self.store.get(job_id)
        if job.status is not JobStatus.pending:
            logger.info("Job %s is %s; nothing to run", job_id, job.status.value)
            return job

        ctx = GenerationContext(prompt=job.prompt or "", duration=job.duration or settings.allowed_durations[0])
        try:
            job = self._commit(job_id, status=JobStatus.processing, current_step=STAGES[0].running_message)
            for index, stage in enumerate(STAGES):
                if token.is_set():
                    raise JobCancelledError(job_id)
                if index:
                    self._commit(job_id, current_step=stage.running_message)

                logger.info("Job %s: starting stage %s", job_id, stage.key)
                await self._run_stage(stage, ctx)
                logger.info("Job %s: finished stage %s", job_id, stage.key)

                if stage is STAGES[-1]:
                    job = self._commit(
                        job_id,
                        status=JobStatus.completed,
                        progress=100,
                        current_step=COMPLETED_STEP,
                        video_url=ctx.video_url,
                        thumbnail_url=ctx.thumbnail_url,
                        subtitles=ctx.subtitles,
                    )
                else:
                    job = self._checkpoint(job_id, stage)
        except JobNotFoundError:
            logger.warning("Job %s was deleted during generation", job_id)
            raise
        except JobStateConflictError as exc:
            job = self.store.get(job_id)
            if job.status.is_terminal:
                # Finalized out-of-band; that state wins.
                logger.info("Job %s finalized externally: %s", job_id, exc)
            else:
                job = self._fail(job_id, "STATE_CONFLICT", str(exc))
        except StageError as exc:
            job = self._fail(job_id, exc.code, exc.detail)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job %s: unexpected stage error", job_id)
            job = self._fail(job_id, "STAGE_FAILED", str(exc) or type(exc).__name__)
        return job

    def start_in_background(self, job_id: str) -> asyncio.Task:
        # Register the token up front so a cancel sent before the task starts is not lost.
        self._cancel_tokens.setdefault(job_id, threading.Event())
        task = asyncio.create_task(self.run(job_id))
        self._background.add(task)
        task.add_done_callback(lambda t: self._background_done(job_id, t))
        return task

    def _background_done(self, job_id: str, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning("Background generation of job %s was cancelled", job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background generation of job %s failed: %s", job_id, exc, exc_info=exc)

    async def generate(self, request: GenerationRequest) -> dict:
        """Create a job, run it to a terminal state and build the API payload."""
        job = self.create_job(request)
        try:
            job = await self.run(job.id)
        except JobNotFoundError:
            return {
                "success": False,
                "videoId": job.id,
                "status": JobStatus.failed.value,
                "error": "Video not found",
                "progress": 0,
            }
        return build_result(job, request)


def build_result(job: VideoJob, request: GenerationRequest) -> dict:
    if job.status is not JobStatus.completed:
        return {
            "success": False,
            "videoId": job.id,
            "status": JobStatus.failed.value,
            "error": job.error or "Video generation failed",
            "progress": job.progress,
        }
    return {
        "success": True,
        "videoId": job.id,
        "status": job.status.value,
        "videoUrl": job.video_url,
        "thumbnailUrl": job.thumbnail_url,
        "subtitles": job.subtitles,
        "progress": job.progress,
        "currentStep": job.current_step,
        "metadata": build_metadata(request.prompt, request.duration),
        "estimatedTime": estimate_generation_time(request.prompt),
        "historicalPeriod": extract_historical_period(request.prompt),
        "sessionId": request.session_id,
    }


@lru_cache
def get_pipeline() -> GenerationPipeline:
    return GenerationPipeline()
