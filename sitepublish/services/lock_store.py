"""
Per-site lock and ledger storage.

The coordinator serializes jobs per site through a :class:`SiteLockStore`
and keeps the site's publish history in it. :class:`MemoryLockStore`
serves one process (a warm Lambda container, the CLI, tests); the S3
implementation in :mod:`sitepublish.services.aws.lock_store` serves
every container sharing a state bucket.
"""
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict

from ..exceptions import LockTimeout
from ..models.lock import SiteLedger, SiteLock
from ..models.snapshot import CommitId
from ..utils.logger import get_logger

log = get_logger(__name__)


class SiteLockStore(ABC):
    """Abstract per-site lock plus ledger."""

    @abstractmethod
    def acquire(self, site: str, job_id: str, commit: CommitId, deadline) -> SiteLock:
        """Block until the site lock is held or the deadline passes.

        Raises:
            LockTimeout: The lock could not be acquired in time
        """

    @abstractmethod
    def release(self, lock: SiteLock) -> None:
        """Release a lock obtained from :meth:`acquire`."""

    @abstractmethod
    def load_ledger(self, site: str) -> SiteLedger:
        """Return the site's ledger (empty when the site was never published)."""

    @abstractmethod
    def save_ledger(self, site: str, ledger: SiteLedger) -> None:
        """Persist the site's ledger. Called only while holding the lock."""


class MemoryLockStore(SiteLockStore):
    """
    In-process lock store.

    Waiters for the same site are served strictly in arrival order. A
    waiter that runs out of time leaves the queue without blocking the
    ones behind it.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._queues: Dict[str, deque] = {}
        self._holders: Dict[str, SiteLock] = {}
        self._ledgers: Dict[str, dict] = {}
        self._tokens = 0

    def acquire(self, site, job_id, commit, deadline):
        with self._condition:
            self._tokens += 1
            token = f"waiter-{self._tokens}"
            queue = self._queues.setdefault(site, deque())
            queue.append(token)
            if site in self._holders or queue[0] != token:
                log.info("Job %s queued for site %s (%d ahead)", job_id, site, len(queue) - 1)

            while site in self._holders or queue[0] != token:
                remaining = deadline.remaining()
                if remaining <= 0:
                    queue.remove(token)
                    self._condition.notify_all()
                    holder = self._holders.get(site)
                    raise LockTimeout(
                        f"Timed out waiting for site {site}"
                        + (f" (held by job {holder.job_id})" if holder else "")
                    )
                self._condition.wait(timeout=remaining)

            queue.popleft()
            lock = SiteLock(site=site, job_id=job_id, commit=commit,
                            expires_at=time.time() + deadline.remaining(), token=token)
            self._holders[site] = lock
            return lock

    def release(self, lock):
        with self._condition:
            holder = self._holders.get(lock.site)
            if holder is not None and holder.token == lock.token:
                del self._holders[lock.site]
            else:
                log.warning("Release of site %s by job %s which does not hold it",
                            lock.site, lock.job_id)
            self._condition.notify_all()

    def is_locked(self, site: str) -> bool:
        with self._condition:
            return site in self._holders

    def load_ledger(self, site):
        with self._condition:
            return SiteLedger.from_dict(self._ledgers.get(site))

    def save_ledger(self, site, ledger):
        with self._condition:
            self._ledgers[site] = ledger.to_dict()
