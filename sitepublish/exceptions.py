"""Exception hierarchy for the publish pipeline.

Every error carries a ``reason_code`` that is reported to the pipeline
unchanged, so operators can tell a transient failure from one that needs
investigation.
"""
from typing import Optional


class PublishError(Exception):
    """Base exception for all publish failures."""

    reason_code = "INTERNAL_ERROR"

    def __init__(self, message: str, path: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(message)


class ConfigurationError(PublishError):
    """Raised when settings or the job descriptor are invalid."""

    reason_code = "CONFIGURATION_ERROR"


class ArtifactUnreadable(PublishError):
    """Raised when the commit archive is missing, corrupt or too large.

    Fatal for the job; raised before any bucket mutation.
    """

    reason_code = "ARTIFACT_UNREADABLE"


class StoreError(PublishError):
    """Raised by the object-store layer for a single failed call.

    Attributes:
        transient: A retry is likely to succeed.
        permission: Credentials were rejected or access was denied.
    """

    reason_code = "STORE_ERROR"

    def __init__(self, message: str, path: Optional[str] = None,
                 cause: Optional[BaseException] = None,
                 transient: bool = False, permission: bool = False):
        super().__init__(message, path=path, cause=cause)
        self.transient = transient
        self.permission = permission


class RemoteUnavailable(PublishError):
    """Raised when the bucket listing cannot be completed.

    Aborts the job without mutating the bucket.
    """

    def __init__(self, message: str, path: Optional[str] = None,
                 cause: Optional[BaseException] = None, permission: bool = False):
        super().__init__(message, path=path, cause=cause)
        self.permission = permission

    @property
    def reason_code(self):
        return "PERMISSION_DENIED" if self.permission else "REMOTE_UNAVAILABLE"


class OperationFailed(PublishError):
    """Raised when plan operations still fail after their retries.

    Attributes:
        stats: Counts of the run, reported with the failure.
    """

    reason_code = "OPERATION_FAILED"

    def __init__(self, message: str, stats: Optional[dict] = None):
        super().__init__(message)
        self.stats = stats or {}


class DeadlineExceeded(PublishError):
    """Raised when the time budget runs out before the work is done.

    Attributes:
        partial_progress: At least one operation was applied.
        stats: Counts of the run, reported with the failure.
    """

    def __init__(self, message: str, partial_progress: bool = False,
                 stats: Optional[dict] = None):
        super().__init__(message)
        self.partial_progress = partial_progress
        self.stats = stats or {}

    @property
    def reason_code(self):
        if self.partial_progress:
            return "DEADLINE_EXCEEDED_PARTIAL"
        return "DEADLINE_EXCEEDED_NO_PROGRESS"


class LockTimeout(PublishError):
    """Raised when the site lock cannot be acquired within the budget."""

    reason_code = "LOCK_TIMEOUT"


class StaleJob(PublishError):
    """Signals that the bucket already holds this commit or a newer one.

    Not a failure: the coordinator turns it into an immediate success.
    """

    reason_code = "STALE_JOB"
