from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from povgen.models import JobStatus, VideoJob


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateVideoIn(CamelModel):
    # Left loose on purpose so validation messages come from the pipeline.
    prompt: Any = None
    duration: Any = None
    session_id: str | None = None


class AsyncGenerationOut(CamelModel):
    success: bool
    video_id: str
    status: str
    estimated_time: int
    session_id: str
    message: str


class VideoStatusOut(CamelModel):
    video_id: str
    status: JobStatus
    progress: int
    current_step: str
    video_url: str | None = None
    thumbnail_url: str | None = None
    subtitles: str | None = None
    error: str | None = None
    error_code: str | None = None
    created_at: str
    completed_at: str | None = None

    @classmethod
    def from_job(cls, job: VideoJob) -> "VideoStatusOut":
        return cls(
            video_id=job.id,
            status=job.status,
            progress=job.progress,
            current_step=job.current_step,
            video_url=job.video_url,
            thumbnail_url=job.thumbnail_url,
            subtitles=job.subtitles,
            error=job.error,
            error_code=job.error_code,
            created_at=job.created_at.isoformat(),
            completed_at=job.completed_at.isoformat() if job.completed_at else None,
        )


class VideoStatusUpdateIn(CamelModel):
    video_id: str | None = None
    status: JobStatus | None = None
    progress: int | None = None
    current_step: str | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    subtitles: str | None = None
    error: str | None = None
    error_code: str | None = None
    created_at: str | None = None
    completed_at: str | None = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually sent, minus the ones the server owns."""
        sent = self.model_dump(exclude_unset=True)
        for owned in ("video_id", "created_at", "completed_at"):
            sent.pop(owned, None)
        return sent


class StageStateOut(CamelModel):
    key: str
    name: str
    state: str


class ProgressOut(CamelModel):
    video_id: str
    progress: int
    current_stage: str
    remaining_seconds: int
    stages: list[StageStateOut]


class DownloadRequestIn(CamelModel):
    format: str = "mp4"
    quality: str = "hd"
    custom_filename: str | None = None


class GalleryItemOut(CamelModel):
    id: str
    prompt: str | None
    duration: int | None
    thumbnail_url: str | None
    video_url: str | None
    created_at: str
    historical_period: str | None
    status: JobStatus


class GalleryOut(CamelModel):
    items: list[GalleryItemOut]
    total: int
