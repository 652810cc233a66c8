class ValidationError(Exception):
    """Malformed or out-of-range input. Never retried."""

    status_code = 400


class JobNotFoundError(Exception):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(f"job {job_id} not found")
        self.job_id = job_id


class DuplicateJobError(Exception):
    status_code = 409

    def __init__(self, job_id: str):
        super().__init__(f"job {job_id} already exists")
        self.job_id = job_id


class JobStateConflictError(Exception):
    """An update would break the job lifecycle (e.g. leaving a terminal state)."""

    status_code = 409


class StageError(Exception):
    def __init__(self, code: str, detail: str):
        super().__init__(detail)
        self.code = code
        self.detail = detail


class StageTimeoutError(StageError):
    def __init__(self, stage: str, seconds: float):
        super().__init__("TIMEOUT", f"Stage '{stage}' timed out after {seconds:g}s")
        self.stage = stage


class JobCancelledError(StageError):
    def __init__(self, job_id: str):
        super().__init__("CANCELLED", "Video generation was cancelled")
        self.job_id = job_id
