from povgen.models.entities import VideoJobRecord
from povgen.models.job import OUTPUT_FIELDS, JobStatus, VideoJob, apply_update, utcnow

__all__ = [
    "VideoJob",
    "VideoJobRecord",
    "JobStatus",
    "OUTPUT_FIELDS",
    "apply_update",
    "utcnow",
]
