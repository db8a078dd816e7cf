"""
CodePipeline integration: job event parsing and result reporting.

The pipeline's Invoke stage calls the function with an event of the form::

    {"CodePipeline.job": {
        "id": "...",
        "data": {
            "actionConfiguration": {"configuration": {"UserParameters": "example.com"}},
            "inputArtifacts": [{"location": {"s3Location": {"bucketName": ..., "objectKey": ...}},
                                "revision": "<commit sha>"}],
            "artifactCredentials": {"accessKeyId": ..., "secretAccessKey": ..., "sessionToken": ...}
        }}}

and expects exactly one of PutJobSuccessResult / PutJobFailureResult.
"""
import json
import time
from dataclasses import dataclass, field
from typing import Optional

from ...exceptions import ConfigurationError
from ...models.job import ArtifactLocator, JobOutcome, PublishJob, ReasonCode
from ...models.snapshot import CommitId
from ...utils.logger import get_logger
from ...utils.retry import call_with_retry
from ..reporting import OutcomeReporter
from .operations import is_transient, translate_error

log = get_logger(__name__)

DEFAULT_BRANCH = "master"

# CodePipeline API limits
_MAX_FAILURE_MESSAGE = 5000
_MAX_SUMMARY = 2048

_FAILURE_TYPES = {
    ReasonCode.PERMISSION_DENIED: "PermissionError",
    ReasonCode.CONFIGURATION_ERROR: "ConfigurationError",
    ReasonCode.REMOTE_UNAVAILABLE: "SystemUnavailable",
    ReasonCode.LOCK_TIMEOUT: "SystemUnavailable",
}


@dataclass
class PipelineJobRequest:
    """A CodePipeline job event, normalized."""

    job_id: str
    site: str
    artifact: ArtifactLocator
    revision: str
    branch: str = DEFAULT_BRANCH
    repository: str = ""
    artifact_credentials: dict = field(default_factory=dict, repr=False)

    def to_publish_job(self, commit: CommitId, deadline_seconds: float) -> PublishJob:
        return PublishJob(
            job_id=self.job_id,
            target_site=self.site,
            artifact=self.artifact,
            commit=commit,
            branch=self.branch,
            deadline_seconds=deadline_seconds,
        )


def job_id_from_event(event) -> Optional[str]:
    """Best-effort job id extraction, for reporting malformed events."""
    try:
        return event["CodePipeline.job"]["id"]
    except (KeyError, TypeError):
        return None


def parse_user_parameters(raw) -> dict:
    """
    Parse the action's ``UserParameters``.

    Accepts the bare site name (as the stack configures it) or a JSON
    object with ``site`` and optional ``branch`` / ``repository``.

    Returns:
        Dictionary with ``site``, ``branch`` and ``repository``
    """
    text = (raw or "").strip()
    if not text:
        raise ConfigurationError("UserParameters is empty; expected the site bucket name")

    if text.startswith('{'):
        try:
            params = json.loads(text)
        except ValueError as e:
            raise ConfigurationError(f"UserParameters is not valid JSON: {e}") from e
        site = str(params.get("site", "")).strip()
        if not site:
            raise ConfigurationError("UserParameters JSON has no 'site'")
        return {
            "site": site,
            "branch": str(params.get("branch") or DEFAULT_BRANCH),
            "repository": str(params.get("repository") or site),
        }

    return {"site": text, "branch": DEFAULT_BRANCH, "repository": text}


def parse_job_event(event) -> PipelineJobRequest:
    """
    Normalize a CodePipeline job event.

    Raises:
        ConfigurationError: Required fields are missing
    """
    job_id = job_id_from_event(event)
    if not job_id:
        raise ConfigurationError("Event is not a CodePipeline job (no 'CodePipeline.job.id')")

    data = event["CodePipeline.job"].get("data") or {}
    configuration = (data.get("actionConfiguration") or {}).get("configuration") or {}
    params = parse_user_parameters(configuration.get("UserParameters"))

    artifacts = data.get("inputArtifacts") or []
    if not artifacts:
        raise ConfigurationError(f"Job {job_id} has no input artifact")
    artifact = artifacts[0]
    location = (artifact.get("location") or {}).get("s3Location") or {}
    bucket = location.get("bucketName")
    key = location.get("objectKey")
    if not bucket or not key:
        raise ConfigurationError(f"Job {job_id} input artifact has no S3 location")

    return PipelineJobRequest(
        job_id=job_id,
        site=params["site"],
        artifact=ArtifactLocator(bucket=bucket, key=key),
        revision=str(artifact.get("revision") or ""),
        branch=params["branch"],
        repository=params["repository"],
        artifact_credentials=data.get("artifactCredentials") or {},
    )


def failure_type(reason_code: ReasonCode) -> str:
    return _FAILURE_TYPES.get(reason_code, "JobFailed")


class CodePipelineReporter(OutcomeReporter):
    """
    Reports job outcomes through the CodePipeline API.

    Args:
        codepipeline_client: boto3 CodePipeline client
        retries: Retries for transient API failures
        base_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        sleep: Sleep function (injectable for tests)
    """

    def __init__(self, codepipeline_client, retries=3, base_delay=0.2, max_delay=5.0,
                 sleep=time.sleep):
        self.client = codepipeline_client
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep = sleep

    def _send(self, outcome: JobOutcome):
        if outcome.success:
            summary = outcome.message or "Published"
            self.client.put_job_success_result(
                jobId=outcome.job_id,
                executionDetails={"summary": summary[:_MAX_SUMMARY], "percentComplete": 100},
            )
        else:
            message = f"{outcome.reason_code.value}: {outcome.message}"
            self.client.put_job_failure_result(
                jobId=outcome.job_id,
                failureDetails={
                    "type": failure_type(outcome.reason_code),
                    "message": message[:_MAX_FAILURE_MESSAGE],
                },
            )

    def report(self, outcome):
        try:
            call_with_retry(
                lambda: self._send(outcome), self.retries,
                lambda e: is_transient(translate_error(e, None, "report")),
                base_delay=self.base_delay, max_delay=self.max_delay, sleep=self.sleep,
                description=f"report job {outcome.job_id}",
            )
        except Exception:
            log.exception("Could not report outcome of job %s to CodePipeline", outcome.job_id)
            raise

        if outcome.success:
            log.info("Reported success of job %s", outcome.job_id)
        else:
            log.info("Reported failure of job %s [%s]", outcome.job_id, outcome.reason_code.value)
