"""
Execution coordinator: one publish job from lock to report.

Per site the coordinator moves Idle -> Locked(commit) -> Idle. While it
holds the site lock it is the only writer of the site's bucket and
ledger, so two commits are never mirrored into one bucket at once and
an older commit never overwrites a newer one.
"""
from typing import Optional

from ..exceptions import DeadlineExceeded, OperationFailed, PublishError, StaleJob, StoreError
from ..models.job import JobOutcome, PublishJob, ReasonCode
from ..models.plan import SyncResult
from ..utils.deadline import Deadline
from ..utils.logger import get_logger
from .lock_store import SiteLockStore
from .publisher import SitePublisher
from .reporting import OutcomeReporter

log = get_logger(__name__)

# Failed paths listed in a failure message before eliding the rest
_MAX_LISTED_PATHS = 20


def reason_for(error: PublishError) -> ReasonCode:
    """Map an exception to the reason code reported for it."""
    if isinstance(error, StoreError):
        return ReasonCode.PERMISSION_DENIED if error.permission else ReasonCode.REMOTE_UNAVAILABLE
    try:
        return ReasonCode(error.reason_code)
    except ValueError:
        return ReasonCode.INTERNAL_ERROR


def describe_failures(failed: dict) -> str:
    paths = sorted(failed)
    listed = ", ".join(paths[:_MAX_LISTED_PATHS])
    if len(paths) > _MAX_LISTED_PATHS:
        listed += f" and {len(paths) - _MAX_LISTED_PATHS} more"
    return listed


class ExecutionCoordinator:
    """
    Runs publish jobs under the per-site lock.

    Args:
        lock_store: Lock and ledger storage shared by every runner of a site
        publisher: SitePublisher doing the read/plan/apply work
        reporter: Delivers the outcome to the orchestrator
        notifier: Optional NotificationService told about every outcome
        reserve: Seconds of each deadline kept back for reporting
    """

    def __init__(self, lock_store: SiteLockStore, publisher: SitePublisher,
                 reporter: OutcomeReporter, notifier=None, reserve: float = 0.0):
        self.lock_store = lock_store
        self.publisher = publisher
        self.reporter = reporter
        self.notifier = notifier
        self.reserve = reserve

    def run(self, job: PublishJob, deadline: Deadline) -> JobOutcome:
        """
        Execute a job and report its outcome exactly once.

        The outcome is reported before the lock is released, and the lock
        is released on every path, including a failed report.

        Returns:
            JobOutcome that was reported

        Raises:
            Exception: Only when the outcome could not be reported
        """
        log.info("Job %s: publish %s to %s (%s)", job.job_id, job.commit.short(),
                 job.target_site, deadline)
        job.start()
        lock = None
        try:
            try:
                lock_deadline = Deadline(deadline.remaining(self.reserve))
                lock = self.lock_store.acquire(job.target_site, job.job_id, job.commit,
                                               lock_deadline)
                log.debug("Job %s holds the lock on %s", job.job_id, job.target_site)
                outcome = self._publish(job, deadline)
            except StaleJob as e:
                log.info("Job %s skipped: %s", job.job_id, e)
                outcome = JobOutcome.succeeded(job.job_id, str(e), {"skipped": True})
            except PublishError as e:
                log.error("Job %s failed: %s", job.job_id, e)
                outcome = JobOutcome.failed(job.job_id, reason_for(e), str(e),
                                            getattr(e, "stats", None))
            except Exception as e:
                log.exception("Job %s failed unexpectedly", job.job_id)
                outcome = JobOutcome.failed(job.job_id, ReasonCode.INTERNAL_ERROR,
                                            f"{type(e).__name__}: {e}")

            if outcome.success:
                job.succeed()
            else:
                job.fail()
            self.reporter.report(outcome)
        finally:
            if lock is not None:
                self.lock_store.release(lock)

        self._notify(job, outcome)
        return outcome

    def check_recency(self, job: PublishJob, ledger) -> None:
        """
        Raise StaleJob when the job's commit must not be applied.

        A commit that is not newer than the last applied one is stale. A
        commit older than one whose attempt has not completed yet is
        superseded: the newer commit's retry will converge the bucket.
        """
        commit = job.commit
        if not commit.is_newer_than(ledger.last_applied):
            raise StaleJob(f"Commit {commit.short()} is not newer than applied commit "
                           f"{ledger.last_applied.short()}")
        attempted = ledger.last_attempted
        if (attempted is not None and attempted != ledger.last_applied
                and commit.is_older_than(attempted)):
            raise StaleJob(f"Commit {commit.short()} is superseded by commit "
                           f"{attempted.short()}")

    def _publish(self, job, deadline) -> JobOutcome:
        site = job.target_site
        ledger = self.lock_store.load_ledger(site)
        self.check_recency(job, ledger)

        prepared = self.publisher.prepare(job, deadline)
        try:
            if prepared.plan.is_empty:
                log.info("Site %s already matches commit %s", site, job.commit.short())
                result = SyncResult(total=0)
                result.dry_run = self.publisher.dry_run
            else:
                if not self.publisher.dry_run:
                    ledger.last_attempted = job.commit
                    self.lock_store.save_ledger(site, ledger)
                result = self.publisher.apply(prepared, deadline)
        finally:
            prepared.close()

        return self._outcome(job, ledger, result)

    def _outcome(self, job, ledger, result: SyncResult) -> JobOutcome:
        """Turn a sync result into a success, or raise the failure it represents."""
        stats = result.to_dict()
        stats["commit"] = job.commit.revision

        if result.succeeded:
            if not self.publisher.dry_run:
                ledger.last_applied = job.commit
                self.lock_store.save_ledger(job.target_site, ledger)
            return JobOutcome.succeeded(
                job.job_id, f"Published {job.commit.short()} to {job.target_site}: "
                            f"{result.summary()}", stats)

        if result.deadline_exceeded:
            message = f"Deadline exceeded: {result.summary()}"
            if result.failed:
                message += f"; failed: {describe_failures(result.failed)}"
            raise DeadlineExceeded(message, partial_progress=result.partial_progress, stats=stats)

        raise OperationFailed(
            f"{len(result.failed)} operation(s) failed: {describe_failures(result.failed)}",
            stats=stats)

    def _notify(self, job, outcome: JobOutcome) -> Optional[bool]:
        if self.notifier is None or not self.notifier.is_enabled():
            return None
        return self.notifier.send_publish_notification(job, outcome)
