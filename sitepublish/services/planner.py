"""
Sync planner: diffs a snapshot against remote state.
"""
from typing import Mapping

from ..models.plan import Operation, OperationKind, SyncPlan
from ..models.remote import RemoteState
from ..models.snapshot import CommitSnapshot
from ..utils.logger import get_logger

log = get_logger(__name__)


def diff_hashes(snapshot_hashes: Mapping[str, str], remote_hashes: Mapping[str, str]) -> SyncPlan:
    """
    Compute the plan converging ``remote_hashes`` to ``snapshot_hashes``.

    Put every snapshot path whose hash differs from (or is absent in) the
    remote; Delete every remote path absent from the snapshot. Paths with
    equal hashes produce nothing, so a converged bucket yields an empty plan.

    Args:
        snapshot_hashes: Mapping of path to content hash for the commit tree
        remote_hashes: Mapping of path to content hash for the bucket

    Returns:
        SyncPlan (operations carry no content locators)
    """
    operations = []
    for path, content_hash in snapshot_hashes.items():
        if remote_hashes.get(path) != content_hash:
            operations.append(Operation(OperationKind.PUT, path, content_hash=content_hash))
    for path in remote_hashes:
        if path not in snapshot_hashes:
            operations.append(Operation.delete(path))
    return SyncPlan(operations)


class SyncPlanner:
    """Builds executable plans from a snapshot and a remote state."""

    def plan(self, snapshot: CommitSnapshot, remote: RemoteState) -> SyncPlan:
        """
        Compute the executable plan for one job.

        Args:
            snapshot: Hashed commit tree
            remote: Freshly listed bucket state

        Returns:
            SyncPlan whose Puts carry the snapshot's content locators
        """
        entries = {entry.path: entry for entry in snapshot.materialize()}
        diff = diff_hashes({path: entry.content_hash for path, entry in entries.items()},
                           remote.hashes())
        plan = SyncPlan(
            Operation.put(entries[op.path]) if op.kind == OperationKind.PUT else op
            for op in diff
        )
        unchanged = len(entries) - len(plan.puts)
        log.info("Plan for %s: %s, %d unchanged", remote.site, plan.summary(), unchanged)
        return plan

