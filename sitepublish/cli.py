"""
sitepublish - command line interface

Runs the same engine as the Lambda function against a local zip file,
a directory or an S3 archive, so a site can be previewed or published
without the pipeline.
"""
import sys
import time
import argparse
from colorama import init, Fore, Style

from . import __version__
from .exceptions import PublishError
from .models.job import ArtifactLocator, PublishJob
from .models.plan import OperationKind
from .models.snapshot import CommitId
from .runtime import artifact_source_factory, build_coordinator, site_operations_factory
from .services.publisher import SitePublisher
from .services.reporting import LoggingReporter
from .utils.aws.aws_utils import create_boto3_session
from .utils.config_loader import ConfigLoader
from .utils.deadline import Deadline

# Initialize colorama
init(autoreset=True)

PLAN_EXAMPLES = """\
Examples:
  sitepublish plan ./public --bucket example.com
  sitepublish plan site.zip --bucket example.com --exclude "*.map"
  sitepublish plan s3://pipeline-artifacts/MyApp/abc123.zip --bucket example.com

Lists the Put and Delete operations that would mirror SOURCE into the bucket.
"""

PUBLISH_EXAMPLES = """\
Examples:
  sitepublish publish ./public --bucket example.com
  sitepublish publish site.zip --bucket example.com --revision 3f2c1e9 --order 1700000000
  sitepublish publish ./public --bucket example.com --dry-run --verbose

Mirrors SOURCE into the bucket under the site lock, as the pipeline does.
"""


def parse_source(source: str) -> ArtifactLocator:
    """Turn ``s3://bucket/key`` or a local path into an ArtifactLocator."""
    if source.startswith("s3://"):
        bucket, _, key = source[len("s3://"):].partition("/")
        if not bucket or not key:
            raise argparse.ArgumentTypeError(f"Invalid S3 URL: {source}")
        return ArtifactLocator(bucket=bucket, key=key)
    return ArtifactLocator(path=source)


def create_argument_parser():
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sitepublish",
        description="Mirror a commit snapshot into a static website bucket",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a JSON configuration file")
    parser.add_argument("--profile", help="AWS profile name")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")

    subparsers = parser.add_subparsers(dest="command")

    def add_common(sub):
        sub.add_argument("source", type=parse_source,
                         help="Zip file, directory or s3://bucket/key of the commit archive")
        sub.add_argument("--bucket", required=True, help="Site bucket (the domain name)")
        sub.add_argument("--exclude", action="append", default=[], metavar="PATTERN",
                         help="Glob of paths to leave out (repeatable)")
        sub.add_argument("--deadline", type=float, metavar="SECONDS",
                         help="Time budget (default: default_deadline_seconds)")
        sub.add_argument("--workers", type=int, help="Worker pool width")

    plan_parser = subparsers.add_parser(
        "plan", help="Show the operations a publish would apply",
        epilog=PLAN_EXAMPLES, formatter_class=argparse.RawDescriptionHelpFormatter)
    add_common(plan_parser)

    publish_parser = subparsers.add_parser(
        "publish", help="Publish SOURCE to the bucket",
        epilog=PUBLISH_EXAMPLES, formatter_class=argparse.RawDescriptionHelpFormatter)
    add_common(publish_parser)
    publish_parser.add_argument("--revision", default="local", help="Commit id being published")
    publish_parser.add_argument("--order", type=float,
                                help="Commit order (e.g. committer timestamp)")
    publish_parser.add_argument("--job-id", help="Job id (default: generated)")
    publish_parser.add_argument("--dry-run", action="store_true",
                                help="Plan and log without changing the bucket")

    return parser


def _load_config(args):
    overrides = {
        "profile": args.profile,
        "region": args.region,
        "workers": args.workers,
    }
    config = ConfigLoader.load_config(args.config, overrides=overrides)
    if args.exclude:
        config["exclude_patterns"] = list(config["exclude_patterns"]) + list(args.exclude)
    return config


def _print_plan(plan):
    for op in plan:
        if op.kind == OperationKind.PUT:
            print(f"{Fore.GREEN}+ {op.path}{Style.RESET_ALL} ({op.size_bytes} bytes)")
        else:
            print(f"{Fore.RED}- {op.path}{Style.RESET_ALL}")
    print(f"\n{Style.BRIGHT}{plan.summary()}{Style.RESET_ALL}")


def run_plan(args, config, session, deadline):
    publisher = SitePublisher(config, site_operations_factory(session, config),
                              artifact_source_factory(session, config), dry_run=True)
    job = PublishJob("plan", args.bucket, args.source, CommitId("local"),
                     deadline_seconds=deadline.budget)
    prepared = publisher.prepare(job, deadline)
    try:
        if prepared.plan.is_empty:
            print(f"{Fore.GREEN}s3://{args.bucket} already matches {args.source}")
        else:
            _print_plan(prepared.plan)
    finally:
        prepared.close()
    return 0


def run_publish(args, config, session, deadline):
    job_id = args.job_id or f"local-{int(time.time())}"
    job = PublishJob(job_id, args.bucket, args.source, CommitId(args.revision, args.order),
                     deadline_seconds=deadline.budget)
    coordinator = build_coordinator(session, config, LoggingReporter(), dry_run=args.dry_run)
    outcome = coordinator.run(job, deadline)

    if outcome.success:
        print(f"{Fore.GREEN}✓ {outcome.message}")
        return 0
    print(f"{Fore.RED}✗ [{outcome.reason_code.value}] {outcome.message}")
    return 1


def main():
    """Main CLI entry point."""
    from .utils.logger import setup_logging

    parser = create_argument_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 2

    setup_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        config = _load_config(args)
        if not (args.verbose or args.quiet):
            setup_logging(level=config["log_level"])
        deadline = Deadline(args.deadline or config["default_deadline_seconds"])
        session = create_boto3_session(profile_name=config["profile"] or None,
                                       region_name=config["region"] or None)
        if args.command == "plan":
            return run_plan(args, config, session, deadline)
        return run_publish(args, config, session, deadline)
    except PublishError as e:
        print(f"{Fore.RED}Error [{e.reason_code}]: {e}")
        return 1
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
