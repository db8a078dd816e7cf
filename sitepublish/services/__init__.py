"""
Publish engine services.

- :mod:`content_types`   — path to Content-Type and Cache-Control
- :mod:`snapshot_reader` — commit archive to hashed snapshot
- :mod:`remote_state`    — paged bucket listing
- :mod:`planner`         — snapshot vs bucket diff
- :mod:`executor`        — plan application under a deadline
- :mod:`coordinator`     — per-site lock, recency and reporting
- :mod:`aws`             — S3, CodePipeline and CodeCommit adapters
"""
from .content_types import ContentTypeResolver
from .snapshot_reader import SnapshotReader
from .remote_state import RemoteStateReader
from .planner import SyncPlanner
from .executor import SyncExecutor
from .lock_store import SiteLockStore, MemoryLockStore
from .publisher import SitePublisher
from .coordinator import ExecutionCoordinator
from .notification_service import NotificationService

__all__ = [
    'ContentTypeResolver',
    'SnapshotReader',
    'RemoteStateReader',
    'SyncPlanner',
    'SyncExecutor',
    'SiteLockStore',
    'MemoryLockStore',
    'SitePublisher',
    'ExecutionCoordinator',
    'NotificationService',
]
