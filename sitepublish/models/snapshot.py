"""
Commit snapshot model: the immutable file tree of one pushed commit
"""
import hashlib
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

_HASH_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class CommitId:
    """Identity of a commit plus its position in the branch history.

    ``order`` is comparable only within one branch's push history (the
    committer timestamp). When it is unknown the commit is never treated
    as older than anything, so it is always applied.
    """

    revision: str
    order: Optional[float] = None

    def is_newer_than(self, other: Optional["CommitId"]) -> bool:
        """True unless ``other`` is this revision or provably more recent."""
        if other is None:
            return True
        if self.revision == other.revision:
            return False
        if self.order is None or other.order is None:
            return True
        return self.order >= other.order

    def is_older_than(self, other: Optional["CommitId"]) -> bool:
        """True only when both orders are known and this one is smaller."""
        if other is None or self.revision == other.revision:
            return False
        if self.order is None or other.order is None:
            return False
        return self.order < other.order

    def short(self) -> str:
        return self.revision[:12]

    def to_dict(self):
        """Serialize to dictionary"""
        return {"revision": self.revision, "order": self.order}

    @classmethod
    def from_dict(cls, data):
        """Deserialize from dictionary"""
        if not data or not data.get("revision"):
            return None
        order = data.get("order")
        return cls(revision=data["revision"], order=float(order) if order is not None else None)


@dataclass(frozen=True)
class FileEntry:
    """One file of a snapshot.

    Attributes:
        path: Object key the file is published under
        content_hash: Hex MD5 of the bytes (matches a single-part S3 ETag)
        size_bytes: Uncompressed size
        content_locator: Where the archive keeps the bytes (member name)
    """

    path: str
    content_hash: str
    size_bytes: int
    content_locator: str


def md5_of_stream(stream) -> Tuple[str, int]:
    """Return ``(hex_md5, size)`` of a binary stream read to exhaustion."""
    digest = hashlib.md5()
    size = 0
    while True:
        chunk = stream.read(_HASH_CHUNK)
        if not chunk:
            break
        digest.update(chunk)
        size += len(chunk)
    return digest.hexdigest(), size


class CommitSnapshot:
    """
    Immutable set of files representing one commit's tree.

    Iterating yields :class:`FileEntry` objects ordered by path. The first
    full pass hashes the archive members lazily and caches the result;
    later passes replay the cache, so the sequence is restartable.
    """

    def __init__(self, commit: CommitId, archive):
        """
        Initialize a snapshot.

        Args:
            commit: Commit the tree belongs to
            archive: Opened archive exposing ``members()`` and ``open()``
        """
        self.commit = commit
        self._archive = archive
        self._entries: Optional[Tuple[FileEntry, ...]] = None

    def __iter__(self) -> Iterator[FileEntry]:
        if self._entries is not None:
            yield from self._entries
            return

        collected = []
        for path, locator in self._archive.members():
            with self._archive.open(locator) as stream:
                content_hash, size = md5_of_stream(stream)
            entry = FileEntry(path=path, content_hash=content_hash,
                              size_bytes=size, content_locator=locator)
            collected.append(entry)
            yield entry
        self._entries = tuple(collected)

    def __len__(self):
        return len(self.materialize())

    def materialize(self) -> Tuple[FileEntry, ...]:
        """Hash every member now and return all entries."""
        if self._entries is None:
            for _ in self:
                pass
        return self._entries

    def hashes(self) -> Dict[str, str]:
        """Mapping of path to content hash."""
        return {entry.path: entry.content_hash for entry in self.materialize()}

    def read(self, content_locator: str) -> bytes:
        """Return the full content stored under ``content_locator``."""
        with self._archive.open(content_locator) as stream:
            return stream.read()

    @property
    def total_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self.materialize())

    def close(self):
        self._archive.close()

    def __repr__(self):
        count = len(self._entries) if self._entries is not None else "?"
        return f"CommitSnapshot({self.commit.short()}, files={count})"
