import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from povgen.core.config import settings
from povgen.core.errors import DuplicateJobError, JobNotFoundError, JobStateConflictError, ValidationError
from povgen.models import JobStatus, VideoJob, utcnow
from povgen.schemas.video import (
    AsyncGenerationOut,
    DownloadRequestIn,
    GalleryItemOut,
    GalleryOut,
    GenerateVideoIn,
    ProgressOut,
    StageStateOut,
    VideoStatusOut,
    VideoStatusUpdateIn,
)
from povgen.services.media import build_download, format_webvtt, parse_subtitles, prepare_download, validate_download_options
from povgen.services.narrative import DEFAULT_NARRATIVE_ELEMENT, SUBTITLES
from povgen.services.pipeline import GenerationPipeline, get_pipeline, validate_request
from povgen.services.progress import estimate_generation_time, remaining_time, stage_for, stage_states
from povgen.workers.tasks import run_generation

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_id(video_id: str) -> str:
    if not video_id or not video_id.strip():
        raise ValidationError("Video ID is required")
    return video_id


def _demo_stub(pipeline: GenerationPipeline, video_id: str) -> VideoJob:
    now = utcnow()
    stub = VideoJob(
        id=video_id,
        status=JobStatus.completed,
        progress=100,
        current_step="Video generation completed",
        video_url=f"{settings.placeholder_video_base_url}/pov-historical-{video_id}.mp4",
        thumbnail_url=settings.placeholder_thumbnail_url,
        subtitles=SUBTITLES[DEFAULT_NARRATIVE_ELEMENT],
        created_at=now,
        updated_at=now,
        completed_at=now,
    )
    try:
        return pipeline.store.create(video_id, stub)
    except DuplicateJobError:
        return pipeline.store.get(video_id)


def _load_job(pipeline: GenerationPipeline, video_id: str) -> VideoJob:
    try:
        return pipeline.store.get(video_id)
    except JobNotFoundError:
        if not settings.stub_unknown_status:
            raise
        logger.info("Stubbing status for unknown video %s", video_id)
        return _demo_stub(pipeline, video_id)


def _completed_job(pipeline: GenerationPipeline, video_id: str) -> VideoJob:
    job = _load_job(pipeline, video_id)
    if job.status is not JobStatus.completed:
        raise JobStateConflictError(f"Video is {job.status.value}, not completed")
    return job


def _dispatch(pipeline: GenerationPipeline, video_id: str) -> None:
    if settings.task_queue_enabled:
        try:
            run_generation.delay(video_id)
            return
        except Exception as exc:  # noqa: BLE001
            logger.warning("Queue dispatch failed; fallback to in-process generation: %s", exc)
    pipeline.start_in_background(video_id)


@router.get("/generate-video")
def describe_service():
    prefix = settings.api_prefix
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "endpoints": {
            f"POST {prefix}/generate-video": "Generate a new POV historical video and wait for the result",
            f"POST {prefix}/generate-video/async": "Start a generation and poll its status",
            f"GET {prefix}/videos/:id/status": "Check video generation status",
            f"GET {prefix}/download/:id": "Download generated video",
        },
        "provider": settings.generation_provider,
        "durations": list(settings.allowed_durations),
        "costs": {f"{d}s": f"{d // 10} credit{'s' if d > 10 else ''}" for d in settings.allowed_durations},
    }


@router.post("/generate-video")
async def generate_video(payload: GenerateVideoIn, pipeline: GenerationPipeline = Depends(get_pipeline)):
    request = validate_request(payload.prompt, payload.duration, payload.session_id)
    return await pipeline.generate(request)


@router.post("/generate-video/async", response_model=AsyncGenerationOut)
async def start_generation(payload: GenerateVideoIn, pipeline: GenerationPipeline = Depends(get_pipeline)):
    request = validate_request(payload.prompt, payload.duration, payload.session_id)
    job = pipeline.create_job(request)
    _dispatch(pipeline, job.id)
    return AsyncGenerationOut(
        success=True,
        video_id=job.id,
        status=job.status.value,
        estimated_time=estimate_generation_time(request.prompt),
        session_id=request.session_id,
        message="Video generation started. Poll the status endpoint for progress.",
    )


@router.get("/videos", response_model=GalleryOut)
def list_videos(pipeline: GenerationPipeline = Depends(get_pipeline)):
    jobs = pipeline.store.list_jobs(limit=settings.gallery_page_size)
    return GalleryOut(
        items=[
            GalleryItemOut(
                id=j.id,
                prompt=j.prompt,
                duration=j.duration,
                thumbnail_url=j.thumbnail_url,
                video_url=j.video_url,
                created_at=j.created_at.isoformat(),
                historical_period=j.historical_period,
                status=j.status,
            )
            for j in jobs
        ],
        total=len(jobs),
    )


@router.get("/videos/{video_id}/status", response_model=VideoStatusOut, response_model_exclude_none=True)
def get_video_status(video_id: str, pipeline: GenerationPipeline = Depends(get_pipeline)):
    _require_id(video_id)
    return VideoStatusOut.from_job(_load_job(pipeline, video_id))


@router.put("/videos/{video_id}/status", response_model=VideoStatusOut, response_model_exclude_none=True)
def update_video_status(
    video_id: str,
    payload: VideoStatusUpdateIn,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    _require_id(video_id)
    job = pipeline.store.update(video_id, payload.changes())
    return VideoStatusOut.from_job(job)


@router.delete("/videos/{video_id}/status")
def delete_video_status(video_id: str, pipeline: GenerationPipeline = Depends(get_pipeline)):
    _require_id(video_id)
    if not pipeline.store.delete(video_id):
        raise JobNotFoundError(video_id)
    return {"success": True, "message": "Video status deleted successfully"}


@router.get("/videos/{video_id}/progress", response_model=ProgressOut)
def get_video_progress(video_id: str, pipeline: GenerationPipeline = Depends(get_pipeline)):
    _require_id(video_id)
    job = _load_job(pipeline, video_id)
    estimate = estimate_generation_time(job.prompt or "")
    return ProgressOut(
        video_id=job.id,
        progress=job.progress,
        current_stage=stage_for(job.progress).name,
        remaining_seconds=0 if job.status.is_terminal else remaining_time(estimate, job.progress),
        stages=[StageStateOut(key=s.key, name=s.name, state=state) for s, state in stage_states(job.progress)],
    )


@router.post("/videos/{video_id}/cancel")
def cancel_video(video_id: str, pipeline: GenerationPipeline = Depends(get_pipeline)):
    _require_id(video_id)
    job = pipeline.store.get(video_id)
    if job.status.is_terminal:
        raise JobStateConflictError(f"Video generation already {job.status.value}")
    if not pipeline.cancel(video_id):
        raise JobStateConflictError("Video generation is not running in this process")
    return {"success": True, "videoId": video_id, "message": "Cancellation requested"}


@router.get("/videos/{video_id}/subtitles.vtt", response_class=PlainTextResponse)
def get_subtitles_vtt(video_id: str, pipeline: GenerationPipeline = Depends(get_pipeline)):
    _require_id(video_id)
    job = _completed_job(pipeline, video_id)
    duration = job.duration or settings.allowed_durations[0]
    return format_webvtt(parse_subtitles(job.subtitles or "", duration))


@router.get("/download/{video_id}")
def get_download(
    video_id: str,
    format: str = "mp4",
    quality: str = "hd",
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    _require_id(video_id)
    validate_download_options(format, quality)
    job = _completed_job(pipeline, video_id)
    duration = job.duration or settings.allowed_durations[0]
    return build_download(video_id, job.video_url, duration, format, quality)


@router.post("/download/{video_id}")
def create_download(
    video_id: str,
    payload: DownloadRequestIn,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    _require_id(video_id)
    validate_download_options(payload.format, payload.quality)
    job = _completed_job(pipeline, video_id)
    return prepare_download(video_id, job.video_url, payload.format, payload.quality, payload.custom_filename)
