"""
AWS Lambda entry point for the pipeline's publish stage.

Configure the function with handler ``sitepublish.handler.handler`` and
settings as ``SITEPUBLISH_*`` environment variables.
"""
from .exceptions import ConfigurationError
from .models.job import JobOutcome, ReasonCode
from .runtime import build_coordinator
from .services.aws.commits import CodeCommitOrderResolver
from .services.aws.pipeline import CodePipelineReporter, job_id_from_event, parse_job_event
from .utils.aws.aws_utils import client_config, create_boto3_session
from .utils.config_loader import DEFAULT_CONFIG, ConfigLoader
from .utils.deadline import Deadline
from .utils.logger import get_logger, set_job_context, setup_logging

log = get_logger(__name__)


def _reporter(session, config):
    client = session.client("codepipeline", config=client_config(
        None, config["request_timeout_seconds"]))
    return CodePipelineReporter(client, retries=config["report_retries"],
                                base_delay=config["retry_base_delay"],
                                max_delay=config["retry_max_delay"])


def _reject(reporter, job_id, error):
    outcome = JobOutcome.failed(job_id, ReasonCode.CONFIGURATION_ERROR, str(error))
    reporter.report(outcome)
    return outcome.to_dict()


def handler(event, context):
    """
    Publish the commit of one CodePipeline job to its site bucket.

    Returns:
        The reported outcome as a dictionary

    Raises:
        ConfigurationError: The event is not a CodePipeline job at all
        Exception: The outcome could not be reported to CodePipeline
    """
    config_error = None
    try:
        config = ConfigLoader.load_config()
    except ConfigurationError as e:
        config = dict(DEFAULT_CONFIG)
        config_error = e

    setup_logging(colour=False, level=config["log_level"])
    deadline = Deadline.from_lambda_context(context, config["default_deadline_seconds"])
    session = create_boto3_session(region_name=config["region"] or None)
    reporter = _reporter(session, config)

    job_id = job_id_from_event(event)
    set_job_context(job_id)
    if job_id is None:
        log.error("Ignoring event without a CodePipeline job: %s", sorted(event or {}))
        raise ConfigurationError("Event is not a CodePipeline job")
    if config_error is not None:
        log.error("Invalid configuration: %s", config_error)
        return _reject(reporter, job_id, config_error)

    try:
        request = parse_job_event(event)
    except ConfigurationError as e:
        log.error("Job %s: %s", job_id, e)
        return _reject(reporter, job_id, e)

    if not config["state_bucket"]:
        log.warning("No state_bucket configured: jobs for %s are serialized and "
                    "ordered within this container only", request.site)

    repository = config["repository_name"] or request.repository
    resolver = CodeCommitOrderResolver(
        session.client("codecommit", config=client_config(deadline, 10.0)), repository)
    commit = resolver.resolve(request.revision)
    job = request.to_publish_job(commit, deadline.remaining())

    coordinator = build_coordinator(session, config, reporter,
                                    credentials=request.artifact_credentials)
    outcome = coordinator.run(job, deadline)
    return outcome.to_dict()
