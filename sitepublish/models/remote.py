"""
Remote state model: the live keys of the website bucket
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Iterator, Optional


@dataclass(frozen=True)
class RemoteObject:
    """Live state of one key in the target bucket."""

    path: str
    content_hash: str
    last_modified: Optional[datetime] = None

    @property
    def is_multipart(self) -> bool:
        """Multipart ETags are not content MD5s and never match a snapshot hash."""
        return '-' in self.content_hash

    @classmethod
    def from_listing(cls, item: dict) -> "RemoteObject":
        """Build from one ``Contents`` element of a ListObjectsV2 page."""
        return cls(
            path=item['Key'],
            content_hash=str(item.get('ETag', '')).strip('"').lower(),
            last_modified=item.get('LastModified'),
        )


class RemoteState:
    """
    Set of objects currently present in one site's bucket.

    Read fresh for every job and never cached across invocations.
    """

    def __init__(self, site: str, objects: Optional[Iterable[RemoteObject]] = None):
        """
        Initialize remote state.

        Args:
            site: Site (bucket) the objects were listed from
            objects: Listed objects
        """
        self.site = site
        self._objects: Dict[str, RemoteObject] = {}
        for obj in objects or []:
            self._objects[obj.path] = obj

    def add(self, obj: RemoteObject) -> bool:
        """
        Add an object unless its key was already listed.

        Returns:
            True if the key was new
        """
        if obj.path in self._objects:
            return False
        self._objects[obj.path] = obj
        return True

    def get(self, path: str) -> Optional[RemoteObject]:
        return self._objects.get(path)

    def hashes(self) -> Dict[str, str]:
        """Mapping of path to content hash."""
        return {path: obj.content_hash for path, obj in self._objects.items()}

    def paths(self):
        return sorted(self._objects)

    def __contains__(self, path):
        return path in self._objects

    def __iter__(self) -> Iterator[RemoteObject]:
        for path in sorted(self._objects):
            yield self._objects[path]

    def __len__(self):
        return len(self._objects)

    def __repr__(self):
        return f"RemoteState({self.site}, objects={len(self._objects)})"
