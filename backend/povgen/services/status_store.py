import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, fields, replace
from datetime import timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from povgen.core.config import settings
from povgen.core.errors import DuplicateJobError, JobNotFoundError
from povgen.models import VideoJob, VideoJobRecord, apply_update, utcnow

logger = logging.getLogger(__name__)

_JOB_FIELDS = tuple(f.name for f in fields(VideoJob))


class JobStatusStore(ABC):
    """Keyed store of video job records.

    Reads and writes are atomic per job id. Operations on different ids are
    independent of each other.
    """

    @abstractmethod
    def create(self, job_id: str, initial: VideoJob | None = None) -> VideoJob: ...

    @abstractmethod
    def get(self, job_id: str) -> VideoJob: ...

    @abstractmethod
    def update(self, job_id: str, changes: dict[str, Any]) -> VideoJob: ...

    @abstractmethod
    def delete(self, job_id: str) -> bool: ...

    @abstractmethod
    def list_jobs(self, limit: int = 50) -> list[VideoJob]: ...


def _new_job(job_id: str, initial: VideoJob | None) -> VideoJob:
    now = utcnow()
    if initial is None:
        return VideoJob(id=job_id, created_at=now, updated_at=now)
    return replace(initial, id=job_id)


class InMemoryJobStore(JobStatusStore):
    def __init__(self):
        self._jobs: dict[str, VideoJob] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.Lock()
            return lock

    def create(self, job_id: str, initial: VideoJob | None = None) -> VideoJob:
        with self._lock_for(job_id):
            if job_id in self._jobs:
                raise DuplicateJobError(job_id)
            job = _new_job(job_id, initial)
            self._jobs[job_id] = job
            return job

    def get(self, job_id: str) -> VideoJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return replace(job)

    def update(self, job_id: str, changes: dict[str, Any]) -> VideoJob:
        with self._lock_for(job_id):
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            job = apply_update(current, changes)
            self._jobs[job_id] = job
            return job

    def delete(self, job_id: str) -> bool:
        with self._lock_for(job_id):
            existed = self._jobs.pop(job_id, None) is not None
        # Ids are never reused, so the lock can go with the record.
        with self._registry_lock:
            self._locks.pop(job_id, None)
        return existed

    def list_jobs(self, limit: int = 50) -> list[VideoJob]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]


def _as_utc(value):
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_job(row: VideoJobRecord) -> VideoJob:
    job = VideoJob(**{name: getattr(row, name) for name in _JOB_FIELDS})
    job.created_at = _as_utc(job.created_at)
    job.updated_at = _as_utc(job.updated_at)
    job.completed_at = _as_utc(job.completed_at)
    return job


class SqlJobStore(JobStatusStore):
    """SQLAlchemy-backed store; each call runs in its own transaction."""

    def __init__(self, session_factory: Callable[[], Session] | None = None, create_schema: bool = True):
        if session_factory is None:
            from povgen.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        if create_schema:
            from povgen.db.base import Base

            with self._session_factory() as db:
                Base.metadata.create_all(bind=db.get_bind())

    def create(self, job_id: str, initial: VideoJob | None = None) -> VideoJob:
        job = _new_job(job_id, initial)
        with self._session_factory() as db:
            if db.get(VideoJobRecord, job_id) is not None:
                raise DuplicateJobError(job_id)
            db.add(VideoJobRecord(**asdict(job)))
            db.commit()
        return job

    def get(self, job_id: str) -> VideoJob:
        with self._session_factory() as db:
            row = db.get(VideoJobRecord, job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            return _to_job(row)

    def update(self, job_id: str, changes: dict[str, Any]) -> VideoJob:
        with self._session_factory() as db:
            query = db.query(VideoJobRecord).filter(VideoJobRecord.id == job_id)
            if db.get_bind().dialect.name != "sqlite":
                query = query.with_for_update()
            row = query.first()
            if row is None:
                raise JobNotFoundError(job_id)
            job = apply_update(_to_job(row), changes)
            for name in _JOB_FIELDS:
                setattr(row, name, getattr(job, name))
            db.commit()
            return job

    def delete(self, job_id: str) -> bool:
        with self._session_factory() as db:
            deleted = db.query(VideoJobRecord).filter(VideoJobRecord.id == job_id).delete()
            db.commit()
            return bool(deleted)

    def list_jobs(self, limit: int = 50) -> list[VideoJob]:
        with self._session_factory() as db:
            rows = (
                db.query(VideoJobRecord)
                .order_by(VideoJobRecord.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_to_job(r) for r in rows]


@lru_cache
def get_status_store() -> JobStatusStore:
    backend = settings.status_store_backend.lower()
    if backend == "memory":
        return InMemoryJobStore()
    if backend == "sql":
        logger.info("Using SQL job status store at %s", settings.database_dsn)
        return SqlJobStore()
    raise ValueError(f"Unsupported status store backend: {settings.status_store_backend}")
