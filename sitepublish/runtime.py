"""
Runtime wiring shared by the Lambda handler and the CLI
"""
from .services.aws.lock_store import S3LockStore
from .services.aws.operations import S3Operations
from .services.coordinator import ExecutionCoordinator
from .services.lock_store import MemoryLockStore
from .services.notification_service import NotificationService
from .services.publisher import SitePublisher
from .services.snapshot_reader import source_for_locator
from .utils.aws.aws_utils import client_config, create_boto3_session

# Serializes jobs within one warm container when no state bucket is configured
MEMORY_LOCKS = MemoryLockStore()


def site_operations_factory(session, config):
    """Return ``(site, deadline) -> S3Operations`` for site buckets."""
    def factory(site, deadline):
        client = session.client("s3", config=client_config(
            deadline, config["request_timeout_seconds"], config["workers"],
            reserve=config["report_reserve_seconds"]))
        return S3Operations(site, client)
    return factory


def artifact_source_factory(session, config, credentials=None):
    """
    Return ``(locator, deadline) -> source`` for commit archives.

    S3 archives are read with ``credentials`` (the pipeline's temporary
    artifact credentials) when given, otherwise with ``session``.
    """
    def factory(locator, deadline):
        if not locator.is_s3:
            return source_for_locator(locator, config=config)
        artifact_session = session
        if credentials:
            artifact_session = create_boto3_session(region_name=config["region"] or None,
                                                    credentials=credentials)
        client = artifact_session.client("s3", config=client_config(
            deadline, config["request_timeout_seconds"]))
        return source_for_locator(locator, S3Operations(locator.bucket, client), config)
    return factory


def build_lock_store(session, config):
    """S3 lock store when a state bucket is configured, else the in-process one."""
    if not config["state_bucket"]:
        return MEMORY_LOCKS
    client = session.client("s3", config=client_config(None, config["request_timeout_seconds"]))
    return S3LockStore(
        S3Operations(config["state_bucket"], client),
        prefix=config["state_prefix"],
        poll_seconds=config["lock_poll_seconds"],
        retries=config["operation_retries"],
        base_delay=config["retry_base_delay"],
    )


def build_notifier(session, config):
    sns_client = None
    if config["notification_enabled"] and config["notification_topic_arn"]:
        sns_client = session.client("sns")
    return NotificationService(config, sns_client=sns_client)


def build_coordinator(session, config, reporter, credentials=None, dry_run=False):
    """
    Assemble a coordinator for one invocation.

    Args:
        session: boto3 session for the site bucket, state bucket and SNS
        config: Loaded configuration
        reporter: OutcomeReporter for the job's orchestrator
        credentials: Optional artifact credentials from the pipeline job
        dry_run: Plan and log without mutating the bucket

    Returns:
        ExecutionCoordinator
    """
    publisher = SitePublisher(
        config,
        site_operations_factory(session, config),
        artifact_source_factory(session, config, credentials),
        dry_run=dry_run,
    )
    return ExecutionCoordinator(
        build_lock_store(session, config),
        publisher,
        reporter,
        notifier=build_notifier(session, config),
        reserve=config["report_reserve_seconds"],
    )
