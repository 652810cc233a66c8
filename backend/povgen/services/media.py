import random
import re
from dataclasses import dataclass
from datetime import date, timedelta

from povgen.core.config import settings
from povgen.core.errors import ValidationError
from povgen.models import utcnow

DOWNLOAD_FORMATS = ("mp4", "webm")
# quality -> (advertised file size, resolution)
DOWNLOAD_QUALITIES = {
    "hd": ("12.5 MB", "1080x1920"),
    "sd": ("6.8 MB", "720x1280"),
}


@dataclass
class SubtitleSegment:
    start: float
    end: float
    text: str


def generate_filename(prompt: str, today: date | None = None) -> str:
    today = today or utcnow().date()
    words = re.sub(r"[^a-z0-9\s]", "", prompt.lower()).split(" ")
    slug = "-".join([w for w in words if len(w) > 2][:4])
    return f"pov-{slug}-{today.isoformat()}.mp4"


def build_metadata(prompt: str, duration: int) -> dict:
    return {
        "title": f"POV: {prompt[:50]}...",
        "description": prompt,
        "duration": duration,
        "format": "mp4",
        "resolution": "1080x1920",
        "fileSize": random.randint(5_000_000, 15_000_000),
        "createdAt": utcnow().isoformat(),
    }


def validate_download_options(fmt: str, quality: str) -> None:
    if fmt not in DOWNLOAD_FORMATS:
        raise ValidationError(f"Invalid format. Supported formats: {', '.join(DOWNLOAD_FORMATS)}")
    if quality not in DOWNLOAD_QUALITIES:
        raise ValidationError(f"Invalid quality. Supported qualities: {', '.join(DOWNLOAD_QUALITIES)}")


def _with_extension(filename: str, fmt: str) -> str:
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    return f"{stem}.{fmt}"


def build_download(job_id: str, video_url: str, duration: int, fmt: str = "mp4", quality: str = "hd") -> dict:
    validate_download_options(fmt, quality)
    file_size, resolution = DOWNLOAD_QUALITIES[quality]
    return {
        "success": True,
        "downloadUrl": video_url,
        "filename": _with_extension(generate_filename(f"historical-video-{job_id}"), fmt),
        "format": fmt,
        "quality": quality,
        "fileSize": file_size,
        "resolution": resolution,
        "duration": f"{duration} seconds",
        "message": "Video ready for download",
    }


def prepare_download(
    job_id: str,
    video_url: str,
    fmt: str = "mp4",
    quality: str = "hd",
    custom_filename: str | None = None,
) -> dict:
    validate_download_options(fmt, quality)
    filename = custom_filename or generate_filename(f"pov-historical-{job_id}")
    expires_at = utcnow() + timedelta(hours=settings.download_expiry_hours)
    return {
        "success": True,
        "videoId": job_id,
        "downloadUrl": video_url,
        "filename": _with_extension(filename, fmt),
        "format": fmt,
        "quality": quality,
        "estimatedSize": DOWNLOAD_QUALITIES[quality][0],
        "expiresAt": expires_at.isoformat(),
    }


def parse_subtitles(text: str, duration: float) -> list[SubtitleSegment]:
    """Split subtitle text into sentences spread evenly over the clip."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", text.strip()) if s.strip()]
    if not sentences:
        return []
    span = duration / len(sentences)
    return [
        SubtitleSegment(start=round(i * span, 3), end=round((i + 1) * span, 3), text=s)
        for i, s in enumerate(sentences)
    ]


def _vtt_time(seconds: float) -> str:
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def format_webvtt(segments: list[SubtitleSegment]) -> str:
    lines = ["WEBVTT", ""]
    for idx, seg in enumerate(segments, start=1):
        lines.extend([str(idx), f"{_vtt_time(seg.start)} --> {_vtt_time(seg.end)}", seg.text, ""])
    return "\n".join(lines)
