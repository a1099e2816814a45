from typing import Optional


class JobNodeError(Exception):
    """
    Base class for the failures of the job pipeline. The code is the
    HTTP status the routers answer with when the error reaches them.
    """

    code: int = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequest(JobNodeError):
    code = 422


class DuplicateId(JobNodeError):
    code = 409

    def __init__(self, jobId: str):
        super().__init__(f"job {jobId} already exists")
        self.jobId = jobId


class JobNotFound(JobNodeError):
    code = 404

    def __init__(self, jobId: str):
        super().__init__(f"job {jobId} not found")
        self.jobId = jobId


class ResourceNotFound(JobNodeError):
    code = 404


class InvalidTransition(JobNodeError):
    code = 409


class NoMatch(JobNodeError):
    """
    No cluster and command pair satisfies the criteria of a request.
    Never answered as an error: the job is accepted and recorded as
    failed, so it keeps the default code.
    """


class InsufficientCapacity(JobNodeError):
    code = 503

    def __init__(self, jobId: str, requested: int, available: int):
        super().__init__(
            f"job {jobId} requires {requested} MB but only"
            f" {available} MB are available"
        )
        self.jobId = jobId
        self.requested = requested
        self.available = available


class FetchFailure(JobNodeError):
    def __init__(self, uri: str, cause: str):
        super().__init__(f"unable to fetch {uri}: {cause}")
        self.uri = uri


class BuildFailure(JobNodeError):
    def __init__(
        self, step: str, cause: str, kind: Optional[str] = None
    ):
        super().__init__(f"workspace step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause
        self.kind = kind


class LaunchFailure(JobNodeError):
    pass
