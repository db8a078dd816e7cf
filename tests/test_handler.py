"""
Tests for the Lambda entry point.
"""
import logging
from unittest.mock import MagicMock, patch

import pytest

from sitepublish import handler as handler_module
from sitepublish import runtime
from sitepublish.exceptions import ConfigurationError
from sitepublish.services.lock_store import MemoryLockStore

from conftest import FakeS3Client, build_zip, md5_hex, pipeline_event

ARTIFACT_KEY = "example-com/SourceArti/AbCdEf.zip"


@pytest.fixture
def aws(monkeypatch):
    """Patch boto3 sessions with in-memory buckets and mock pipeline clients."""
    monkeypatch.delenv("SITEPUBLISH_CONFIG", raising=False)
    monkeypatch.setenv("SITEPUBLISH_RETRY_BASE_DELAY", "0")
    monkeypatch.setenv("SITEPUBLISH_RETRY_MAX_DELAY", "0")
    monkeypatch.setattr(runtime, "MEMORY_LOCKS", MemoryLockStore())

    site = FakeS3Client()
    artifacts = FakeS3Client()
    codepipeline = MagicMock()
    codecommit = MagicMock()
    codecommit.get_commit.return_value = {"commit": {"committer": {"date": "1700000000 +0000"}}}

    clients = {"s3": site, "codepipeline": codepipeline, "codecommit": codecommit}
    session = MagicMock()
    session.client.side_effect = lambda name, **kwargs: clients[name]
    artifact_session = MagicMock()
    artifact_session.client.side_effect = lambda name, **kwargs: artifacts

    with patch("sitepublish.handler.create_boto3_session", return_value=session), \
            patch("sitepublish.runtime.create_boto3_session",
                  return_value=artifact_session) as artifact_factory:
        yield {
            "site": site,
            "artifacts": artifacts,
            "codepipeline": codepipeline,
            "codecommit": codecommit,
            "artifact_factory": artifact_factory,
        }


@pytest.fixture
def context():
    ctx = MagicMock()
    ctx.get_remaining_time_in_millis.return_value = 300000
    return ctx


def test_publishes_and_reports_success(aws, context):
    aws["artifacts"].seed(ARTIFACT_KEY, build_zip({"index.html": b"<h1>hello</h1>"}))
    aws["site"].seed("obsolete.html", b"old")

    result = handler_module.handler(pipeline_event(), context)

    assert result["success"] is True
    assert aws["site"].hashes() == {"index.html": md5_hex(b"<h1>hello</h1>")}
    aws["codepipeline"].put_job_success_result.assert_called_once()
    assert aws["codepipeline"].put_job_success_result.call_args.kwargs["jobId"] == \
        "11111111-abcd-1111-abcd-111111abcdef"
    aws["codecommit"].get_commit.assert_called_once_with(repositoryName="example.com",
                                                         commitId="3f2c1e9a")
    credentials = aws["artifact_factory"].call_args.kwargs["credentials"]
    assert credentials["accessKeyId"] == "AKIAEXAMPLE"


def test_missing_artifact_reported_as_failure(aws, context):
    result = handler_module.handler(pipeline_event(), context)

    assert result["success"] is False
    assert result["reason_code"] == "ARTIFACT_UNREADABLE"
    details = aws["codepipeline"].put_job_failure_result.call_args.kwargs["failureDetails"]
    assert details["type"] == "JobFailed"


def test_bad_user_parameters_reported(aws, context):
    result = handler_module.handler(pipeline_event(user_parameters=""), context)

    assert result["reason_code"] == "CONFIGURATION_ERROR"
    details = aws["codepipeline"].put_job_failure_result.call_args.kwargs["failureDetails"]
    assert details["type"] == "ConfigurationError"


def test_invalid_settings_reported(aws, context, monkeypatch):
    monkeypatch.setenv("SITEPUBLISH_WORKERS", "lots")

    result = handler_module.handler(pipeline_event(), context)

    assert result["reason_code"] == "CONFIGURATION_ERROR"
    assert "workers" in result["message"]


def test_non_pipeline_event_raises(aws, context):
    with pytest.raises(ConfigurationError):
        handler_module.handler({"source": "aws.events"}, context)

    aws["codepipeline"].put_job_success_result.assert_not_called()
    aws["codepipeline"].put_job_failure_result.assert_not_called()


def test_warns_without_state_bucket(aws, context, caplog):
    aws["artifacts"].seed(ARTIFACT_KEY, build_zip({"index.html": b"x"}))

    with caplog.at_level(logging.WARNING, logger="sitepublish"):
        handler_module.handler(pipeline_event(), context)

    assert "No state_bucket configured" in caplog.text
