"""
Snapshot reader: turns an archived commit tree into a CommitSnapshot.

Archives come from the pipeline's artifact bucket (a zip written by the
source stage) or, for local runs, from a zip file or a directory. Any
problem with the archive is fatal for the job and is raised as
:class:`~sitepublish.exceptions.ArtifactUnreadable` before the bucket is
touched.
"""
import fnmatch
import io
import os
import tempfile
import threading
import zipfile
import zlib
from typing import Iterable, List, Optional, Tuple

from ..exceptions import ArtifactUnreadable, StoreError
from ..models.job import ArtifactLocator
from ..models.snapshot import CommitId, CommitSnapshot
from ..utils.logger import get_logger
from ..utils.retry import call_with_retry
from .aws.operations import S3Operations, is_transient, translate_error

log = get_logger(__name__)

_DOWNLOAD_CHUNK = 1024 * 1024
_SKIPPED_DIRS = {".git"}


def normalize_member(name: str) -> Tuple[str, bool]:
    """
    Normalize an archive member name into an object key.

    Args:
        name: Raw member name

    Returns:
        Tuple of (path, is_directory_marker); path is empty for the root

    Raises:
        ArtifactUnreadable: If the name is absolute or escapes the tree
    """
    raw = name.replace('\\', '/')
    if raw.startswith('/') or (len(raw) > 1 and raw[1] == ':'):
        raise ArtifactUnreadable(f"Unsafe absolute member name in archive: {name!r}", path=name)
    parts = [part for part in raw.split('/') if part not in ('', '.')]
    if '..' in parts:
        raise ArtifactUnreadable(f"Unsafe member name in archive: {name!r}", path=name)
    return '/'.join(parts), raw.endswith('/')


def is_excluded(path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatchcase(path, pattern) for pattern in patterns)


class ZipArchive:
    """
    Read access to a zip archive of a commit tree.

    Directory markers are dropped; when a path is present both as a file
    and as a marker, the file wins. Member reads are serialized because
    executor workers read concurrently from the same underlying file.

    Args:
        fileobj: Seekable binary file containing the zip
        exclude_patterns: Glob patterns of paths left out of the snapshot
    """

    def __init__(self, fileobj, exclude_patterns: Iterable[str] = ()):
        self._fileobj = fileobj
        self._lock = threading.Lock()
        try:
            self._zip = zipfile.ZipFile(fileobj)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError) as e:
            fileobj.close()
            raise ArtifactUnreadable(f"Artifact is not a readable zip archive: {e}", cause=e) from e
        self._members = self._index(list(exclude_patterns))

    def _index(self, exclude_patterns) -> List[Tuple[str, str]]:
        files = {}
        for info in self._zip.infolist():
            path, is_marker = normalize_member(info.filename)
            if not path or is_marker:
                continue
            if path in files:
                raise ArtifactUnreadable(f"Duplicate member in archive: {path}", path=path)
            if is_excluded(path, exclude_patterns):
                continue
            files[path] = info.filename
        return sorted(files.items())

    def members(self) -> List[Tuple[str, str]]:
        """Sorted ``(path, locator)`` pairs of every published file."""
        return list(self._members)

    def open(self, locator: str):
        """Return a binary stream of one member's content."""
        with self._lock:
            try:
                data = self._zip.read(locator)
            except KeyError as e:
                raise ArtifactUnreadable(f"Member missing from archive: {locator}", path=locator) from e
            except (zipfile.BadZipFile, zlib.error, EOFError, OSError, NotImplementedError) as e:
                raise ArtifactUnreadable(f"Corrupt archive member {locator}: {e}",
                                         path=locator, cause=e) from e
        return io.BytesIO(data)

    def close(self):
        self._zip.close()
        self._fileobj.close()


class DirectoryArchive:
    """
    Read access to a working-tree directory (local runs).

    Args:
        root: Directory to publish
        exclude_patterns: Glob patterns of paths left out of the snapshot
    """

    def __init__(self, root, exclude_patterns: Iterable[str] = ()):
        self.root = os.path.abspath(root)
        exclude_patterns = list(exclude_patterns)
        members = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIPPED_DIRS)
            for filename in filenames:
                full_path = os.path.join(dirpath, filename)
                path = os.path.relpath(full_path, self.root).replace(os.sep, '/')
                if is_excluded(path, exclude_patterns):
                    continue
                members.append((path, path))
        self._members = sorted(members)

    def members(self) -> List[Tuple[str, str]]:
        return list(self._members)

    def open(self, locator: str):
        try:
            return open(os.path.join(self.root, *locator.split('/')), 'rb')
        except OSError as e:
            raise ArtifactUnreadable(f"Cannot read {locator}: {e}", path=locator, cause=e) from e

    def close(self):
        pass


class LocalArtifactSource:
    """Artifact on the local filesystem: a zip file or a directory."""

    def __init__(self, path):
        self.path = path

    def fetch(self, max_bytes, exclude_patterns=(), deadline=None):
        if os.path.isdir(self.path):
            return DirectoryArchive(self.path, exclude_patterns)
        if not os.path.isfile(self.path):
            raise ArtifactUnreadable(f"Artifact not found: {self.path}", path=self.path)

        size = os.path.getsize(self.path)
        if size > max_bytes:
            raise ArtifactUnreadable(
                f"Artifact {self.path} is {size} bytes, limit is {max_bytes}", path=self.path
            )
        try:
            fileobj = open(self.path, 'rb')
        except OSError as e:
            raise ArtifactUnreadable(f"Cannot open artifact {self.path}: {e}", cause=e) from e
        return ZipArchive(fileobj, exclude_patterns)

    def __str__(self):
        return str(self.path)


class S3ArtifactSource:
    """
    Artifact stored as an S3 object (the pipeline's artifact bucket).

    Args:
        operations: S3Operations bound to the artifact bucket, built with
            the job's artifact credentials
        key: Object key of the zip
        retries: Retries for transient download failures
        base_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        reserve: Seconds of the deadline kept back for reporting
    """

    def __init__(self, operations: S3Operations, key: str, retries=3,
                 base_delay=0.2, max_delay=5.0, reserve=0.0):
        self.operations = operations
        self.key = key
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.reserve = reserve

    def _retry(self, func, deadline, description):
        return call_with_retry(
            func, self.retries, is_transient,
            base_delay=self.base_delay, max_delay=self.max_delay,
            deadline=deadline, reserve=self.reserve, description=description,
        )

    def _download(self, target, expected_size, max_bytes):
        target.seek(0)
        target.truncate()
        response = self.operations.get_object(self.key)
        body = response["Body"]
        received = 0
        try:
            while True:
                try:
                    chunk = body.read(_DOWNLOAD_CHUNK)
                except Exception as e:
                    raise translate_error(e, self.key, "read") from e
                if not chunk:
                    break
                received += len(chunk)
                if received > max_bytes:
                    raise ArtifactUnreadable(
                        f"Artifact {self} exceeds limit of {max_bytes} bytes", path=self.key
                    )
                target.write(chunk)
        finally:
            body.close()

        if expected_size is not None and received != expected_size:
            raise StoreError(f"Artifact {self} truncated: {received} of {expected_size} bytes",
                             path=self.key, transient=True)
        target.seek(0)
        return received

    def fetch(self, max_bytes, exclude_patterns=(), deadline=None):
        try:
            head = self._retry(lambda: self.operations.head_object(self.key), deadline, f"head {self}")
        except StoreError as e:
            raise ArtifactUnreadable(f"Cannot read artifact {self}: {e}", path=self.key, cause=e) from e
        if head is None:
            raise ArtifactUnreadable(f"Artifact not found: {self}", path=self.key)

        expected_size = head.get("ContentLength")
        if expected_size is not None and expected_size > max_bytes:
            raise ArtifactUnreadable(
                f"Artifact {self} is {expected_size} bytes, limit is {max_bytes}", path=self.key
            )

        target = tempfile.TemporaryFile()
        try:
            received = self._retry(lambda: self._download(target, expected_size, max_bytes),
                                   deadline, f"download {self}")
        except StoreError as e:
            target.close()
            raise ArtifactUnreadable(f"Cannot download artifact {self}: {e}",
                                     path=self.key, cause=e) from e
        except ArtifactUnreadable:
            target.close()
            raise

        log.debug("Downloaded artifact %s (%d bytes)", self, received)
        return ZipArchive(target, exclude_patterns)

    def __str__(self):
        return f"s3://{self.operations.bucket_name}/{self.key}"


class SnapshotReader:
    """
    Produces a fully hashed :class:`CommitSnapshot` from an artifact source.

    Args:
        max_artifact_bytes: Largest archive accepted
        exclude_patterns: Glob patterns of paths left out of the snapshot
    """

    def __init__(self, max_artifact_bytes=256 * 1024 * 1024, exclude_patterns: Iterable[str] = ()):
        self.max_artifact_bytes = int(max_artifact_bytes)
        self.exclude_patterns = list(exclude_patterns)

    @classmethod
    def from_config(cls, config):
        return cls(config["max_artifact_bytes"], config.get("exclude_patterns", []))

    def read(self, source, commit: CommitId, deadline=None) -> CommitSnapshot:
        """
        Read and hash a commit tree.

        Args:
            source: Artifact source (``fetch(max_bytes, exclude, deadline)``)
            commit: Commit the archive belongs to
            deadline: Optional job deadline bounding download retries

        Returns:
            CommitSnapshot with every entry hashed

        Raises:
            ArtifactUnreadable: Archive missing, truncated, corrupt or too large
        """
        log.info("Reading snapshot %s from %s", commit.short(), source)
        archive = source.fetch(self.max_artifact_bytes, self.exclude_patterns, deadline)
        snapshot = CommitSnapshot(commit, archive)
        try:
            snapshot.materialize()
        except ArtifactUnreadable:
            archive.close()
            raise
        log.info("Snapshot %s: %d file(s), %d bytes",
                 commit.short(), len(snapshot), snapshot.total_bytes)
        return snapshot


def source_for_locator(locator: ArtifactLocator, operations: Optional[S3Operations] = None,
                       config: Optional[dict] = None):
    """
    Build the artifact source matching a locator.

    Args:
        locator: ArtifactLocator from the job
        operations: S3Operations for the artifact bucket (S3 locators only)
        config: Configuration supplying retry settings

    Returns:
        LocalArtifactSource or S3ArtifactSource
    """
    config = config or {}
    if locator.is_s3:
        if operations is None:
            raise ValueError("S3 artifact locator requires S3Operations for the artifact bucket")
        return S3ArtifactSource(
            operations, locator.key,
            retries=config.get("list_retries", 3),
            base_delay=config.get("retry_base_delay", 0.2),
            max_delay=config.get("retry_max_delay", 5.0),
            reserve=config.get("report_reserve_seconds", 0.0),
        )
    if not locator.path:
        raise ArtifactUnreadable("Artifact locator has neither an S3 location nor a path")
    return LocalArtifactSource(locator.path)
