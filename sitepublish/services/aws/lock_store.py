"""
S3-backed site lock and ledger.

The lock is a lease object written with a conditional put
(``If-None-Match: *``), so only one writer can create it. Its body records
the holder and an expiry equal to the holder's deadline; an expired lease
is taken over with a put conditioned on the stale lease's ETag. The
ledger is a JSON object next to the lease, written only by the holder.

Layout in the state bucket::

    <prefix><site>/lock.json
    <prefix><site>/ledger.json
"""
import json
import time

from ...exceptions import LockTimeout, RemoteUnavailable, StoreError
from ...models.lock import SiteLedger, SiteLock
from ...utils.logger import get_logger
from ...utils.retry import backoff_delay, call_with_retry
from ..lock_store import SiteLockStore
from .operations import S3Operations, is_precondition_failed, is_not_found, is_transient

log = get_logger(__name__)

_JSON = "application/json"


class S3LockStore(SiteLockStore):
    """
    Lock store shared by every container that can reach the state bucket.

    Waiters poll with backoff; unlike :class:`MemoryLockStore`, arrival
    order across containers is best effort.

    Args:
        operations: S3Operations bound to the state bucket
        prefix: Key prefix for lock and ledger objects
        poll_seconds: Upper bound for the wait between acquisition attempts
        retries: Retries for transient failures of a single call
        base_delay: First backoff delay in seconds
        clock: Wall clock used for lease expiry
        sleep: Sleep function (injectable for tests)
    """

    def __init__(self, operations: S3Operations, prefix="sitepublish/", poll_seconds=2.0,
                 retries=3, base_delay=0.2, clock=time.time, sleep=time.sleep):
        self.operations = operations
        self.prefix = prefix
        self.poll_seconds = poll_seconds
        self.retries = retries
        self.base_delay = base_delay
        self.clock = clock
        self.sleep = sleep

    def _key(self, site, name):
        return f"{self.prefix}{site}/{name}"

    def _call(self, func, description, deadline=None):
        return call_with_retry(func, self.retries, is_transient, base_delay=self.base_delay,
                               max_delay=max(self.base_delay, self.poll_seconds),
                               deadline=deadline, sleep=self.sleep, description=description)

    def _read_json(self, key, deadline=None):
        """Return ``(data, etag)`` or ``(None, None)`` when the key is absent."""
        try:
            response = self._call(lambda: self.operations.get_object(key), f"get {key}", deadline)
        except StoreError as e:
            if is_not_found(e):
                return None, None
            raise
        body = response["Body"]
        try:
            data = json.loads(body.read().decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            log.warning("Ignoring unreadable state object %s: %s", key, e)
            data = {}
        finally:
            body.close()
        return data, response.get("ETag")

    def _write_lock(self, lock, **conditions):
        key = self._key(lock.site, "lock.json")
        body = json.dumps(lock.to_dict()).encode("utf-8")
        response = self.operations.put_object(key, body, _JSON, **conditions)
        lock.token = response.get("ETag")
        return lock

    def acquire(self, site, job_id, commit, deadline):
        key = self._key(site, "lock.json")
        attempt = 0
        announced = False

        while True:
            lock = SiteLock(site=site, job_id=job_id, commit=commit,
                            expires_at=self.clock() + deadline.remaining())
            try:
                return self._write_lock(lock, IfNoneMatch="*")
            except StoreError as e:
                if not (is_precondition_failed(e) or e.transient):
                    raise RemoteUnavailable(f"Cannot write lock {key}: {e}", cause=e,
                                            permission=e.permission) from e

            try:
                existing, etag = self._read_json(key, deadline)
            except StoreError as e:
                raise RemoteUnavailable(f"Cannot read lock {key}: {e}", cause=e,
                                        permission=e.permission) from e

            if existing is not None:
                holder = SiteLock.from_dict(existing, token=etag)
                if holder.is_expired(self.clock()):
                    log.warning("Taking over expired lock on %s from job %s", site, holder.job_id)
                    try:
                        return self._write_lock(lock, IfMatch=etag)
                    except StoreError as e:
                        if not (is_precondition_failed(e) or e.transient):
                            raise RemoteUnavailable(f"Cannot take over lock {key}: {e}",
                                                    cause=e, permission=e.permission) from e
                elif not announced:
                    log.info("Job %s waiting for site %s (held by job %s)",
                             job_id, site, holder.job_id)
                    announced = True

            delay = backoff_delay(attempt, self.base_delay, self.poll_seconds)
            if deadline.remaining() <= delay:
                raise LockTimeout(f"Timed out waiting for site {site}")
            self.sleep(delay)
            attempt += 1

    def release(self, lock):
        key = self._key(lock.site, "lock.json")
        try:
            current, _ = self._read_json(key)
            if current is not None and current.get("job_id") != lock.job_id:
                log.warning("Lock on %s now held by job %s; not releasing",
                            lock.site, current.get("job_id"))
                return
            self._call(lambda: self.operations.delete_object(key), f"delete {key}")
        except StoreError as e:
            # The lease still expires on its own
            log.error("Failed to release lock on %s: %s", lock.site, e)

    def load_ledger(self, site):
        key = self._key(site, "ledger.json")
        try:
            data, _ = self._read_json(key)
        except StoreError as e:
            raise RemoteUnavailable(f"Cannot read ledger {key}: {e}", cause=e,
                                    permission=e.permission) from e
        return SiteLedger.from_dict(data)

    def save_ledger(self, site, ledger):
        key = self._key(site, "ledger.json")
        body = json.dumps(ledger.to_dict()).encode("utf-8")
        try:
            self._call(lambda: self.operations.put_object(key, body, _JSON), f"put {key}")
        except StoreError as e:
            raise RemoteUnavailable(f"Cannot write ledger {key}: {e}", cause=e,
                                    permission=e.permission) from e
