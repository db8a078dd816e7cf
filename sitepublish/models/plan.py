"""
Sync plan and sync result models
"""
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class OperationKind(str, Enum):
    """Plan operation kinds.

    Inherits from ``str`` so that ``OperationKind.PUT == "put"`` is ``True``.
    """
    PUT = "put"
    DELETE = "delete"


def chain_key(path: str) -> str:
    """Path identity used for ordering: a key and its directory-marker form."""
    return path.rstrip('/') or path


@dataclass(frozen=True)
class Operation:
    """One mutation of the target bucket."""

    kind: OperationKind
    path: str
    content_locator: Optional[str] = None
    content_hash: Optional[str] = None
    size_bytes: int = 0

    @classmethod
    def put(cls, entry) -> "Operation":
        """Build a Put from a snapshot :class:`FileEntry`."""
        return cls(OperationKind.PUT, entry.path, entry.content_locator,
                   entry.content_hash, entry.size_bytes)

    @classmethod
    def delete(cls, path: str) -> "Operation":
        return cls(OperationKind.DELETE, path)

    def sort_key(self):
        # Deletes of a path always follow Puts of the same path
        return (chain_key(self.path), self.kind == OperationKind.DELETE, self.path)

    def __str__(self):
        sign = '+' if self.kind == OperationKind.PUT else '-'
        return f"{sign} {self.path}"


class SyncPlan:
    """
    Ordered set of operations converging a bucket to a snapshot.

    Derived per job and never persisted.
    """

    def __init__(self, operations: Iterable[Operation] = ()):
        self.operations: Tuple[Operation, ...] = tuple(sorted(operations, key=Operation.sort_key))

    @property
    def puts(self) -> List[Operation]:
        return [op for op in self.operations if op.kind == OperationKind.PUT]

    @property
    def deletes(self) -> List[Operation]:
        return [op for op in self.operations if op.kind == OperationKind.DELETE]

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def upload_bytes(self) -> int:
        return sum(op.size_bytes for op in self.puts)

    def chains(self) -> List[Tuple[Operation, ...]]:
        """
        Group operations that must run in order.

        Operations sharing a :func:`chain_key` form one chain, kept in plan
        order. Distinct chains are independent of each other.
        """
        grouped: Dict[str, List[Operation]] = {}
        for op in self.operations:
            grouped.setdefault(chain_key(op.path), []).append(op)
        return [tuple(ops) for ops in grouped.values()]

    def summary(self) -> str:
        return f"{len(self.puts)} put(s), {len(self.deletes)} delete(s)"

    def __iter__(self):
        return iter(self.operations)

    def __len__(self):
        return len(self.operations)

    def __eq__(self, other):
        if not isinstance(other, SyncPlan):
            return NotImplemented
        return self.operations == other.operations

    def __repr__(self):
        return f"SyncPlan({self.summary()})"


class SyncResult:
    """
    Outcome of applying a plan.

    Shared between executor worker threads; all mutation goes through the
    ``record_*`` methods, which hold an internal lock.
    """

    def __init__(self, total: int = 0):
        self.total = total
        self.completed: List[Operation] = []
        self.failed: Dict[str, str] = {}
        self.deadline_exceeded = False
        self.dry_run = False
        self._closed = False
        self._lock = threading.Lock()

    def record_success(self, op: Operation):
        with self._lock:
            if not self._closed:
                self.completed.append(op)

    def record_failure(self, op: Operation, message: str):
        with self._lock:
            if not self._closed:
                self.failed[op.path] = message

    def mark_deadline_exceeded(self):
        with self._lock:
            if not self._closed:
                self.deadline_exceeded = True

    def close(self):
        """Freeze the result; workers still in flight can no longer change it."""
        with self._lock:
            self._closed = True

    @property
    def puts_done(self) -> int:
        return sum(1 for op in self.completed if op.kind == OperationKind.PUT)

    @property
    def deletes_done(self) -> int:
        return sum(1 for op in self.completed if op.kind == OperationKind.DELETE)

    @property
    def not_started(self) -> int:
        with self._lock:
            return max(0, self.total - len(self.completed) - len(self.failed))

    @property
    def partial_progress(self) -> bool:
        return bool(self.completed)

    @property
    def succeeded(self) -> bool:
        if self.dry_run:
            return not self.failed
        return not self.failed and not self.deadline_exceeded and self.not_started == 0

    def failed_paths(self) -> List[str]:
        with self._lock:
            return sorted(self.failed)

    def summary(self) -> str:
        return (f"{self.puts_done} put, {self.deletes_done} deleted, "
                f"{len(self.failed)} failed, {self.not_started} not started "
                f"of {self.total}")

    def to_dict(self):
        """Serialize to dictionary"""
        return {
            "total": self.total,
            "puts": self.puts_done,
            "deletes": self.deletes_done,
            "failed": dict(self.failed),
            "not_started": self.not_started,
            "deadline_exceeded": self.deadline_exceeded,
            "partial_progress": self.partial_progress,
            "dry_run": self.dry_run,
        }

    def __repr__(self):
        return f"SyncResult({self.summary()})"
