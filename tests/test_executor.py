"""
Tests for applying plans to a bucket.
"""
import threading
import time

import pytest

from sitepublish.models.plan import SyncPlan
from sitepublish.models.remote import RemoteState
from sitepublish.models.snapshot import CommitId
from sitepublish.services.content_types import ContentTypeResolver
from sitepublish.services.executor import SyncExecutor
from sitepublish.services.planner import SyncPlanner, diff_hashes
from sitepublish.services.remote_state import RemoteStateReader
from sitepublish.services.snapshot_reader import LocalArtifactSource, SnapshotReader
from sitepublish.utils.deadline import Deadline

from conftest import md5_hex


def make_executor(site_ops, **kwargs):
    kwargs.setdefault("base_delay", 0)
    kwargs.setdefault("max_delay", 0)
    return SyncExecutor(site_ops, ContentTypeResolver(), **kwargs)


def plan_for(write_zip, site_ops, files):
    snapshot = SnapshotReader().read(LocalArtifactSource(write_zip(files)), CommitId("abc"))
    remote = RemoteStateReader(site_ops).read("example.com")
    return SyncPlanner().plan(snapshot, remote), snapshot


class TestSyncExecutor:

    def test_applies_puts_and_deletes(self, fake_s3, site_ops, write_zip):
        fake_s3.seed("old.html", b"gone")
        plan, snapshot = plan_for(write_zip, site_ops,
                                  {"index.html": b"<h1>home</h1>", "img/logo.png": b"PNG"})

        result = make_executor(site_ops).execute(plan, snapshot, Deadline(30))

        assert result.succeeded
        assert result.puts_done == 2
        assert result.deletes_done == 1
        assert fake_s3.hashes() == {"index.html": md5_hex(b"<h1>home</h1>"),
                                    "img/logo.png": md5_hex(b"PNG")}

    def test_put_sets_headers(self, fake_s3, site_ops, write_zip):
        plan, snapshot = plan_for(write_zip, site_ops, {"index.html": b"x", "a.png": b"y"})

        make_executor(site_ops).execute(plan, snapshot, Deadline(30))

        assert fake_s3.objects["index.html"]["ContentType"] == "text/html; charset=utf-8"
        assert fake_s3.objects["index.html"]["CacheControl"] == "public, max-age=30"
        assert fake_s3.objects["a.png"]["ContentType"] == "image/png"
        assert fake_s3.objects["a.png"]["CacheControl"] == "public, max-age=86400"

    def test_empty_plan_makes_no_calls(self, fake_s3, site_ops, write_zip):
        result = make_executor(site_ops).execute(SyncPlan(), None, Deadline(30))
        assert result.succeeded
        assert fake_s3.calls == []

    def test_dry_run_does_not_mutate(self, fake_s3, site_ops, write_zip):
        fake_s3.seed("old.html", b"gone")
        plan, snapshot = plan_for(write_zip, site_ops, {"index.html": b"x"})
        fake_s3.calls.clear()

        result = make_executor(site_ops, dry_run=True).execute(plan, snapshot, Deadline(30))

        assert result.succeeded
        assert result.dry_run
        assert fake_s3.calls == []
        assert set(fake_s3.objects) == {"old.html"}

    def test_transient_failure_retried(self, fake_s3, site_ops, write_zip):
        fake_s3.fail_once("put", "index.html", "SlowDown", "503")
        plan, snapshot = plan_for(write_zip, site_ops, {"index.html": b"x"})

        result = make_executor(site_ops, retries=3).execute(plan, snapshot, Deadline(30))

        assert result.succeeded
        assert fake_s3.calls_of("put") == ["index.html"] * 3

    def test_failed_operation_does_not_abort_others(self, fake_s3, site_ops, write_zip):
        fake_s3.seed("stale.css", b"old")
        fake_s3.fail_always("put", "b.html", "AccessDenied")
        plan, snapshot = plan_for(write_zip, site_ops,
                                  {"a.html": b"a", "b.html": b"b", "c.html": b"c"})

        result = make_executor(site_ops, retries=3).execute(plan, snapshot, Deadline(30))

        assert not result.succeeded
        assert result.failed_paths() == ["b.html"]
        assert result.puts_done == 2
        assert result.deletes_done == 1
        assert fake_s3.calls_of("put").count("b.html") == 1
        assert set(fake_s3.objects) == {"a.html", "c.html"}

    def test_exhausted_retries_reported(self, fake_s3, site_ops, write_zip):
        fake_s3.fail_always("delete", "old.html", "InternalError")
        fake_s3.seed("old.html", b"x")
        plan, snapshot = plan_for(write_zip, site_ops, {"index.html": b"x"})

        result = make_executor(site_ops, retries=2).execute(plan, snapshot, Deadline(30))

        assert result.failed_paths() == ["old.html"]
        assert fake_s3.calls_of("delete") == ["old.html"] * 3
        assert "index.html" in fake_s3.objects

    def test_delete_after_failed_put_not_applied(self, fake_s3, site_ops, write_zip):
        fake_s3.seed("docs/", b"")
        fake_s3.fail_always("put", "docs", "AccessDenied")
        plan, snapshot = plan_for(write_zip, site_ops, {"docs": b"page"})
        assert [str(op) for op in plan] == ["+ docs", "- docs/"]

        result = make_executor(site_ops).execute(plan, snapshot, Deadline(30))

        assert result.failed_paths() == ["docs", "docs/"]
        assert "not applied" in result.failed["docs/"]
        assert fake_s3.calls_of("delete") == []

    def test_put_precedes_delete_for_same_path(self, fake_s3, site_ops, write_zip):
        fake_s3.seed("about/", b"")
        plan, snapshot = plan_for(write_zip, site_ops, {"about": b"page"})

        make_executor(site_ops, workers=8).execute(plan, snapshot, Deadline(30))

        mutations = [(op, key) for op, key in fake_s3.calls if op in ("put", "delete")]
        assert mutations == [("put", "about"), ("delete", "about/")]

    def test_expired_deadline_starts_nothing(self, fake_s3, site_ops, write_zip):
        plan, snapshot = plan_for(write_zip, site_ops, {"a": b"1", "b": b"2"})
        fake_s3.calls.clear()

        result = make_executor(site_ops).execute(plan, snapshot, Deadline(0))

        assert result.deadline_exceeded
        assert not result.partial_progress
        assert result.not_started == 2
        assert fake_s3.calls == []

    def test_deadline_stops_scheduling(self, fake_s3, site_ops, write_zip):
        files = {f"page{i:02d}.html": b"x" for i in range(20)}
        plan, snapshot = plan_for(write_zip, site_ops, files)
        original_put = fake_s3.put_object

        def slow_put(**kwargs):
            time.sleep(0.2)
            return original_put(**kwargs)

        fake_s3.put_object = slow_put
        started = time.monotonic()

        result = make_executor(site_ops, workers=1).execute(plan, snapshot, Deadline(0.5))

        assert time.monotonic() - started < 2.0
        assert result.deadline_exceeded
        assert result.partial_progress
        assert 0 < result.puts_done < 20
        assert not result.succeeded
        # Nothing is still running once execute returns
        count = result.puts_done
        time.sleep(0.5)
        assert result.puts_done == count

    def test_operation_in_flight_is_joined_and_counted(self, fake_s3, site_ops, write_zip):
        plan, snapshot = plan_for(write_zip, site_ops, {"a.html": b"1"})
        original_put = fake_s3.put_object

        def slow_put(**kwargs):
            time.sleep(0.5)
            return original_put(**kwargs)

        fake_s3.put_object = slow_put

        result = make_executor(site_ops, workers=1).execute(plan, snapshot, Deadline(0.2))

        assert result.deadline_exceeded
        assert result.puts_done == 1
        assert result.partial_progress
        assert fake_s3.data("a.html") == b"1"

    def test_reserve_is_kept_for_reporting(self, fake_s3, site_ops, write_zip):
        plan, snapshot = plan_for(write_zip, site_ops, {"a": b"1"})
        fake_s3.calls.clear()

        result = make_executor(site_ops, reserve=10.0).execute(plan, snapshot, Deadline(5))

        assert result.deadline_exceeded
        assert fake_s3.calls == []

    def test_workers_run_in_parallel(self, fake_s3, site_ops, write_zip):
        plan, snapshot = plan_for(write_zip, site_ops, {f"f{i}": b"x" for i in range(4)})
        barrier = threading.Barrier(4, timeout=5)
        original_put = fake_s3.put_object

        def rendezvous_put(**kwargs):
            barrier.wait()
            return original_put(**kwargs)

        fake_s3.put_object = rendezvous_put

        result = make_executor(site_ops, workers=4).execute(plan, snapshot, Deadline(30))

        assert result.succeeded
        assert result.puts_done == 4


def test_from_config(site_ops, config):
    executor = SyncExecutor.from_config(site_ops, config, dry_run=True)
    assert executor.workers == 4
    assert executor.retries == config["operation_retries"]
    assert executor.dry_run


def test_diff_of_converged_bucket_is_empty(fake_s3, site_ops, write_zip):
    plan, snapshot = plan_for(write_zip, site_ops, {"a.html": b"a"})
    make_executor(site_ops).execute(plan, snapshot, Deadline(30))

    remote = RemoteStateReader(site_ops).read("example.com")
    assert diff_hashes(snapshot.hashes(), remote.hashes()).is_empty
    assert isinstance(remote, RemoteState)
