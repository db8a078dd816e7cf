"""
Sync executor: applies a plan to the site bucket under the job's deadline.
"""
import time
import threading
from concurrent.futures import ThreadPoolExecutor, wait

from ..exceptions import PublishError
from ..models.plan import OperationKind, SyncPlan, SyncResult
from ..utils.logger import get_logger
from ..utils.retry import call_with_retry
from .aws.operations import S3Operations, is_transient
from .content_types import ContentTypeResolver

log = get_logger(__name__)


class SyncExecutor:
    """
    Applies plan operations with a bounded worker pool.

    Operations on the same path run in plan order inside one worker;
    distinct paths run in parallel. Before each operation the remaining
    budget is checked, and once it is exhausted no further operation is
    started. A failed operation never stops unrelated ones.

    Args:
        operations: S3Operations bound to the site bucket
        resolver: ContentTypeResolver for Put headers
        workers: Worker pool width
        retries: Retries per operation for transient failures
        base_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        reserve: Seconds of the deadline kept back for reporting
        dry_run: Log the plan instead of applying it
        sleep: Sleep function used between retries
    """

    def __init__(self, operations: S3Operations, resolver: ContentTypeResolver,
                 workers=16, retries=3, base_delay=0.2, max_delay=5.0,
                 reserve=0.0, dry_run=False, sleep=time.sleep):
        self.operations = operations
        self.resolver = resolver
        self.workers = max(1, int(workers))
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.reserve = reserve
        self.dry_run = dry_run
        self.sleep = sleep

    @classmethod
    def from_config(cls, operations, config, resolver=None, dry_run=False):
        return cls(
            operations,
            resolver or ContentTypeResolver.from_config(config),
            workers=config["workers"],
            retries=config["operation_retries"],
            base_delay=config["retry_base_delay"],
            max_delay=config["retry_max_delay"],
            reserve=config["report_reserve_seconds"],
            dry_run=dry_run,
        )

    def execute(self, plan: SyncPlan, snapshot, deadline) -> SyncResult:
        """
        Apply a plan.

        Args:
            plan: Plan from the SyncPlanner
            snapshot: CommitSnapshot supplying Put content
            deadline: Job deadline

        Returns:
            SyncResult; never raises for per-operation failures
        """
        result = SyncResult(total=len(plan))
        if plan.is_empty:
            return result

        if self.dry_run:
            result.dry_run = True
            for op in plan:
                log.info("[dry-run] %s", op)
            return result

        if deadline.expired(self.reserve):
            log.warning("No time left to apply %s", plan.summary())
            result.mark_deadline_exceeded()
            result.close()
            return result

        chains = plan.chains()
        stop = threading.Event()
        pool = ThreadPoolExecutor(max_workers=min(self.workers, len(chains)),
                                  thread_name_prefix="sync-worker")
        log.info("Applying %s to s3://%s with %d worker(s)",
                 plan.summary(), self.operations.bucket_name, min(self.workers, len(chains)))
        try:
            futures = [
                pool.submit(self._run_chain, chain, snapshot, deadline, stop, result)
                for chain in chains
            ]
            done, not_done = wait(futures, timeout=deadline.remaining(self.reserve))
            if not_done:
                # Budget exhausted: start nothing new, then join the calls in flight
                stop.set()
                result.mark_deadline_exceeded()
                running = [future for future in not_done if not future.cancel()]
                if running:
                    log.info("Waiting for %d operation chain(s) in flight", len(running))
                    done |= wait(running).done
            for future in done:
                if future.cancelled():
                    continue
                error = future.exception()
                if error is not None:
                    raise error
        finally:
            stop.set()
            pool.shutdown(wait=True, cancel_futures=True)
            result.close()

        if result.deadline_exceeded:
            log.warning("Deadline reached on s3://%s: %s",
                        self.operations.bucket_name, result.summary())
        elif result.failed:
            log.error("Sync of s3://%s finished with failures: %s",
                      self.operations.bucket_name, result.summary())
        else:
            log.info("Sync of s3://%s complete: %s", self.operations.bucket_name, result.summary())
        return result

    def _run_chain(self, chain, snapshot, deadline, stop, result):
        for index, op in enumerate(chain):
            if stop.is_set() or deadline.expired(self.reserve):
                result.mark_deadline_exceeded()
                return
            try:
                self._apply(op, snapshot, deadline)
            except PublishError as e:
                log.error("%s %s failed: %s", op.kind.value, op.path, e)
                result.record_failure(op, str(e))
                # A later operation on this path must not run once an earlier one failed
                for blocked in chain[index + 1:]:
                    result.record_failure(blocked, f"not applied: {op.kind.value} {op.path} failed")
                return
            result.record_success(op)

    def _apply(self, op, snapshot, deadline):
        if op.kind == OperationKind.PUT:
            body = snapshot.read(op.content_locator)
            content_type, cache_control = self.resolver.resolve(op.path)

            def action():
                self.operations.put_object(op.path, body, content_type, cache_control,
                                           content_md5=op.content_hash)
        else:
            def action():
                self.operations.delete_object(op.path)

        call_with_retry(
            action, self.retries, is_transient,
            base_delay=self.base_delay, max_delay=self.max_delay,
            deadline=deadline, reserve=self.reserve, sleep=self.sleep,
            description=f"{op.kind.value} {op.path}",
        )
