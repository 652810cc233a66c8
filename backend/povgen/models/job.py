import enum
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any

from povgen.core.errors import JobStateConflictError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


@dataclass
class VideoJob:
    id: str
    status: JobStatus = JobStatus.pending
    progress: int = 0
    current_step: str = "Initializing..."
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    subtitles: str | None = None
    error: str | None = None
    error_code: str | None = None
    prompt: str | None = None
    duration: int | None = None
    session_id: str | None = None
    historical_period: str | None = None


# Never writable through an update: identity and lifecycle timestamps.
PROTECTED_FIELDS = frozenset({"id", "created_at", "updated_at", "completed_at"})
OUTPUT_FIELDS = ("video_url", "thumbnail_url", "subtitles")
UPDATABLE_FIELDS = frozenset(f.name for f in fields(VideoJob)) - PROTECTED_FIELDS
REQUIRED_FIELDS = frozenset({"status", "progress", "current_step"})


def apply_update(job: VideoJob, changes: dict[str, Any], now: datetime | None = None) -> VideoJob:
    """Merge ``changes`` into ``job`` and return the new record.

    The input record is left untouched so a rejected update has no side effect.
    ``completed_at`` is stamped the first time the job reaches a terminal status
    and is never moved afterwards.
    """
    now = now or utcnow()
    merged = {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}
    unknown = set(merged) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown job fields: {', '.join(sorted(unknown))}")
    nulled = sorted(name for name in REQUIRED_FIELDS if name in merged and merged[name] is None)
    if nulled:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}")

    try:
        status = JobStatus(merged.get("status", job.status))
    except ValueError as exc:
        raise ValidationError(f"Invalid status: {merged['status']}") from exc
    merged["status"] = status

    # Terminal jobs keep their lifecycle fields; only results may be corrected.
    if job.status.is_terminal:
        for name in ("status", "progress", "current_step"):
            if name in merged and merged[name] != getattr(job, name):
                raise JobStateConflictError(f"job {job.id} is already {job.status.value}")

    if status is JobStatus.completed:
        merged["progress"] = 100
    progress = merged.get("progress", job.progress)
    if not isinstance(progress, int) or isinstance(progress, bool) or not 0 <= progress <= 100:
        raise ValidationError("Progress must be an integer between 0 and 100")
    if status is not JobStatus.failed and progress < job.progress:
        raise JobStateConflictError(f"progress cannot decrease from {job.progress} to {progress}")
    if status is not JobStatus.completed and progress == 100:
        raise JobStateConflictError("progress 100 is reserved for completed jobs")

    if status is not JobStatus.completed and any(merged.get(name) is not None for name in OUTPUT_FIELDS):
        raise JobStateConflictError("output fields can only be set on completed jobs")
    if status is not JobStatus.failed and (merged.get("error") is not None or merged.get("error_code") is not None):
        raise JobStateConflictError("error fields can only be set on failed jobs")

    merged["updated_at"] = now
    if status.is_terminal and job.completed_at is None:
        merged["completed_at"] = now
    return replace(job, **merged)
