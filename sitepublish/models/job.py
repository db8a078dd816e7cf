"""
Publish job model: one orchestrator request to publish one commit to one site
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .snapshot import CommitId


class JobStatus(str, Enum):
    """Lifecycle of a publish job. Terminal states are never left."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class ReasonCode(str, Enum):
    """Failure reason codes reported to the orchestrator."""
    ARTIFACT_UNREADABLE = "ARTIFACT_UNREADABLE"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    OPERATION_FAILED = "OPERATION_FAILED"
    DEADLINE_EXCEEDED_PARTIAL = "DEADLINE_EXCEEDED_PARTIAL"
    DEADLINE_EXCEEDED_NO_PROGRESS = "DEADLINE_EXCEEDED_NO_PROGRESS"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ArtifactLocator:
    """Where the archived commit tree lives.

    Either an S3 object (``bucket`` + ``key``) or a local ``path`` to a
    zip file or directory.
    """

    bucket: Optional[str] = None
    key: Optional[str] = None
    path: Optional[str] = None

    @property
    def is_s3(self) -> bool:
        return bool(self.bucket and self.key)

    def __str__(self):
        if self.is_s3:
            return f"s3://{self.bucket}/{self.key}"
        return str(self.path)


class PublishJob:
    """
    Request to publish one commit to one site.

    Status moves Pending → Running → Succeeded | Failed and never back.
    """

    def __init__(self, job_id, target_site, artifact, commit: CommitId,
                 branch="", deadline_seconds=300.0):
        """
        Initialize a PublishJob.

        Args:
            job_id: Orchestrator job identifier
            target_site: Site identifier (bucket name)
            artifact: ArtifactLocator of the commit archive
            commit: CommitId of the pushed commit
            branch: Tracked branch name (informational)
            deadline_seconds: Wall-clock budget granted by the orchestrator
        """
        self.job_id = job_id
        self.target_site = target_site
        self.artifact = artifact
        self.commit = commit
        self.branch = branch
        self.deadline_seconds = float(deadline_seconds)
        self.status = JobStatus.PENDING
        self.started_at = None
        self.finished_at = None

    def _transition(self, new_status: JobStatus, allowed_from):
        if self.status.is_terminal:
            raise ValueError(
                f"Job {self.job_id} already {self.status.value}; cannot move to {new_status.value}"
            )
        if self.status not in allowed_from:
            raise ValueError(
                f"Job {self.job_id}: illegal transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def start(self):
        self._transition(JobStatus.RUNNING, (JobStatus.PENDING,))
        self.started_at = time.time()

    def succeed(self):
        self._transition(JobStatus.SUCCEEDED, (JobStatus.PENDING, JobStatus.RUNNING))
        self.finished_at = time.time()

    def fail(self):
        self._transition(JobStatus.FAILED, (JobStatus.PENDING, JobStatus.RUNNING))
        self.finished_at = time.time()

    def to_dict(self):
        """Serialize to dictionary"""
        return {
            "job_id": self.job_id,
            "target_site": self.target_site,
            "artifact": str(self.artifact),
            "commit": self.commit.to_dict(),
            "branch": self.branch,
            "deadline_seconds": self.deadline_seconds,
            "status": self.status.value,
        }

    def __repr__(self):
        return (f"PublishJob({self.job_id}, site={self.target_site}, "
                f"commit={self.commit.short()}, status={self.status.value})")


@dataclass
class JobOutcome:
    """Terminal outcome reported to the orchestrator.

    Attributes:
        job_id: Job the outcome belongs to
        success: True for Success(jobId)
        reason_code: Failure reason (None on success)
        message: Human-readable summary
        stats: Optional statistics (sync result counts, stale flags)
    """

    job_id: str
    success: bool
    reason_code: Optional[ReasonCode] = None
    message: str = ""
    stats: dict = field(default_factory=dict)

    @classmethod
    def succeeded(cls, job_id: str, message: str = "", stats: Optional[dict] = None) -> "JobOutcome":
        return cls(job_id, True, None, message, stats or {})

    @classmethod
    def failed(cls, job_id: str, reason_code, message: str,
               stats: Optional[dict] = None) -> "JobOutcome":
        return cls(job_id, False, ReasonCode(reason_code), message, stats or {})

    def to_dict(self):
        """Serialize to dictionary"""
        return {
            "job_id": self.job_id,
            "success": self.success,
            "reason_code": self.reason_code.value if self.reason_code else None,
            "message": self.message,
            "stats": self.stats,
        }
