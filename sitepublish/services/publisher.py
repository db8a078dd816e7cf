"""
Site publisher: reads both trees, plans the difference and applies it.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from ..models.plan import SyncPlan, SyncResult
from ..models.remote import RemoteState
from ..models.snapshot import CommitSnapshot
from ..utils.logger import get_logger
from .content_types import ContentTypeResolver
from .executor import SyncExecutor
from .planner import SyncPlanner
from .remote_state import RemoteStateReader
from .snapshot_reader import SnapshotReader

log = get_logger(__name__)


@dataclass
class PreparedSync:
    """Everything needed to apply one job's plan."""

    snapshot: CommitSnapshot
    remote: RemoteState
    plan: SyncPlan
    operations: object

    def close(self):
        self.snapshot.close()


class SitePublisher:
    """
    Wires readers, planner and executor for one site bucket.

    Args:
        config: Loaded configuration
        site_operations: Callable ``(site, deadline) -> S3Operations`` for
            the site bucket
        artifact_source: Callable ``(locator, deadline) -> source`` for the
            commit archive
        dry_run: Plan and log without mutating the bucket
    """

    def __init__(self, config: dict, site_operations: Callable, artifact_source: Callable,
                 dry_run: bool = False):
        self.config = config
        self.site_operations = site_operations
        self.artifact_source = artifact_source
        self.dry_run = dry_run
        self.snapshot_reader = SnapshotReader.from_config(config)
        self.planner = SyncPlanner()
        self.resolver = ContentTypeResolver.from_config(config)

    def prepare(self, job, deadline) -> PreparedSync:
        """
        Read the snapshot and the bucket listing concurrently, then plan.

        Nothing in the bucket is touched. If either read fails the other's
        result is discarded and the error is raised.

        Raises:
            ArtifactUnreadable: Commit archive could not be read
            RemoteUnavailable: Bucket listing could not be completed
        """
        operations = self.site_operations(job.target_site, deadline)
        source = self.artifact_source(job.artifact, deadline)
        remote_reader = RemoteStateReader.from_config(operations, self.config)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="reader") as pool:
            snapshot_future = pool.submit(self.snapshot_reader.read, source, job.commit, deadline)
            remote_future = pool.submit(remote_reader.read, job.target_site, deadline)

            try:
                remote = remote_future.result()
            except Exception:
                snapshot_error = snapshot_future.exception()
                if snapshot_error is None:
                    snapshot_future.result().close()
                raise
            snapshot = snapshot_future.result()

        plan = self.planner.plan(snapshot, remote)
        return PreparedSync(snapshot=snapshot, remote=remote, plan=plan, operations=operations)

    def apply(self, prepared: PreparedSync, deadline) -> SyncResult:
        """Apply a prepared plan to the site bucket."""
        executor = SyncExecutor.from_config(prepared.operations, self.config,
                                            resolver=self.resolver, dry_run=self.dry_run)
        return executor.execute(prepared.plan, prepared.snapshot, deadline)
