"""
Tests for the in-process and S3-backed site lock stores.
"""
import json
import threading
import time
from unittest.mock import MagicMock

import pytest

from sitepublish.exceptions import LockTimeout, RemoteUnavailable, StoreError
from sitepublish.models.lock import SiteLedger, SiteLock
from sitepublish.models.snapshot import CommitId
from sitepublish.services.aws.lock_store import S3LockStore
from sitepublish.services.aws.operations import S3Operations
from sitepublish.services.lock_store import MemoryLockStore
from sitepublish.utils.deadline import Deadline

from conftest import FakeS3Client, client_error

COMMIT_A = CommitId("aaaaaaaaaaaa", 1.0)
COMMIT_B = CommitId("bbbbbbbbbbbb", 2.0)


class TestMemoryLockStore:

    def test_acquire_and_release(self):
        store = MemoryLockStore()
        lock = store.acquire("example.com", "job-1", COMMIT_A, Deadline(5))

        assert store.is_locked("example.com")
        assert lock.job_id == "job-1"
        assert lock.commit == COMMIT_A

        store.release(lock)
        assert not store.is_locked("example.com")

    def test_sites_are_independent(self):
        store = MemoryLockStore()
        store.acquire("a.com", "job-1", COMMIT_A, Deadline(5))
        lock = store.acquire("b.com", "job-2", COMMIT_A, Deadline(0.1))
        assert lock.site == "b.com"

    def test_timeout_while_held(self):
        store = MemoryLockStore()
        store.acquire("example.com", "job-1", COMMIT_A, Deadline(5))

        with pytest.raises(LockTimeout, match="job-1"):
            store.acquire("example.com", "job-2", COMMIT_B, Deadline(0.1))

    def test_waiters_served_in_arrival_order(self):
        store = MemoryLockStore()
        first = store.acquire("example.com", "job-0", COMMIT_A, Deadline(5))
        order = []

        def worker(name):
            lock = store.acquire("example.com", name, COMMIT_A, Deadline(5))
            order.append(name)
            store.release(lock)

        threads = []
        for i in range(1, 4):
            thread = threading.Thread(target=worker, args=(f"job-{i}",))
            thread.start()
            threads.append(thread)
            time.sleep(0.05)

        store.release(first)
        for thread in threads:
            thread.join(5)

        assert order == ["job-1", "job-2", "job-3"]

    def test_timed_out_waiter_leaves_queue(self):
        store = MemoryLockStore()
        first = store.acquire("example.com", "job-0", COMMIT_A, Deadline(5))
        errors = []
        acquired = []

        def impatient():
            try:
                store.acquire("example.com", "job-1", COMMIT_A, Deadline(0.1))
            except LockTimeout as e:
                errors.append(e)

        def patient():
            lock = store.acquire("example.com", "job-2", COMMIT_A, Deadline(5))
            acquired.append(lock.job_id)
            store.release(lock)

        t1 = threading.Thread(target=impatient)
        t1.start()
        time.sleep(0.02)
        t2 = threading.Thread(target=patient)
        t2.start()
        t1.join(5)
        assert len(errors) == 1

        store.release(first)
        t2.join(5)
        assert acquired == ["job-2"]

    def test_release_by_non_holder_is_ignored(self):
        store = MemoryLockStore()
        lock = store.acquire("example.com", "job-1", COMMIT_A, Deadline(5))
        store.release(SiteLock("example.com", "job-9", COMMIT_B, token="bogus"))
        assert store.is_locked("example.com")
        store.release(lock)

    def test_ledger_round_trip(self):
        store = MemoryLockStore()
        assert store.load_ledger("example.com") == SiteLedger()

        store.save_ledger("example.com", SiteLedger(last_applied=COMMIT_A, last_attempted=COMMIT_B))
        ledger = store.load_ledger("example.com")

        assert ledger.last_applied == COMMIT_A
        assert ledger.last_attempted == COMMIT_B


class TestS3LockStore:

    @pytest.fixture
    def state(self):
        client = FakeS3Client()
        return client, S3Operations("state-bucket", client)

    def make_store(self, operations, clock=time.time, sleep=None):
        return S3LockStore(operations, prefix="sitepublish/", poll_seconds=0.05, retries=2,
                           base_delay=0.01, clock=clock, sleep=sleep or (lambda s: None))

    def test_acquire_writes_conditional_lease(self, state):
        client, operations = state
        store = self.make_store(operations)

        lock = store.acquire("example.com", "job-1", COMMIT_A, Deadline(60))

        body = json.loads(client.data("sitepublish/example.com/lock.json"))
        assert body["job_id"] == "job-1"
        assert body["commit"] == {"revision": COMMIT_A.revision, "order": 1.0}
        assert lock.token == client.objects["sitepublish/example.com/lock.json"]["ETag"]

    def test_release_deletes_lease(self, state):
        client, operations = state
        store = self.make_store(operations)
        lock = store.acquire("example.com", "job-1", COMMIT_A, Deadline(60))

        store.release(lock)

        assert "sitepublish/example.com/lock.json" not in client.objects

    def test_held_lease_times_out(self, state):
        client, operations = state
        store = self.make_store(operations)
        store.acquire("example.com", "job-1", COMMIT_A, Deadline(60))

        other = self.make_store(operations, sleep=time.sleep)
        with pytest.raises(LockTimeout):
            other.acquire("example.com", "job-2", COMMIT_B, Deadline(0.2))

    def test_expired_lease_taken_over(self, state):
        client, operations = state
        now = [1000.0]
        store = self.make_store(operations, clock=lambda: now[0])
        store.acquire("example.com", "job-1", COMMIT_A, Deadline(30))

        now[0] += 31
        lock = store.acquire("example.com", "job-2", COMMIT_B, Deadline(30))

        assert lock.job_id == "job-2"
        body = json.loads(client.data("sitepublish/example.com/lock.json"))
        assert body["job_id"] == "job-2"

    def test_waits_for_release(self, state):
        client, operations = state
        store = self.make_store(operations)
        first = store.acquire("example.com", "job-1", COMMIT_A, Deadline(60))
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 2:
                store.release(first)

        waiter = self.make_store(operations, sleep=sleep)
        lock = waiter.acquire("example.com", "job-2", COMMIT_B, Deadline(60))

        assert lock.job_id == "job-2"
        assert len(sleeps) == 2

    def test_release_leaves_foreign_lease(self, state):
        client, operations = state
        store = self.make_store(operations)
        store.acquire("example.com", "job-2", COMMIT_B, Deadline(60))

        store.release(SiteLock("example.com", "job-1", COMMIT_A))

        assert "sitepublish/example.com/lock.json" in client.objects

    def test_release_failure_is_logged_not_raised(self, state):
        client, operations = state
        store = self.make_store(operations)
        lock = store.acquire("example.com", "job-1", COMMIT_A, Deadline(60))
        client.fail_always("delete", "sitepublish/example.com/lock.json", "AccessDenied")

        store.release(lock)

    def test_permission_error_on_acquire(self, state):
        client, operations = state
        client.fail_always("put", "sitepublish/example.com/lock.json", "AccessDenied")

        with pytest.raises(RemoteUnavailable) as exc_info:
            self.make_store(operations).acquire("example.com", "job-1", COMMIT_A, Deadline(60))
        assert exc_info.value.reason_code == "PERMISSION_DENIED"

    def test_ledger_round_trip(self, state):
        client, operations = state
        store = self.make_store(operations)
        assert store.load_ledger("example.com") == SiteLedger()

        store.save_ledger("example.com", SiteLedger(last_applied=COMMIT_A, last_attempted=COMMIT_B))

        assert store.load_ledger("example.com") == SiteLedger(COMMIT_A, COMMIT_B)
        assert json.loads(client.data("sitepublish/example.com/ledger.json"))["last_applied"] == {
            "revision": COMMIT_A.revision, "order": 1.0}

    def test_ledger_read_failure(self):
        operations = MagicMock()
        operations.get_object.side_effect = StoreError(
            "get failed", cause=client_error("AccessDenied"), permission=True)

        store = S3LockStore(operations, sleep=lambda s: None)
        with pytest.raises(RemoteUnavailable):
            store.load_ledger("example.com")
