"""
Data models for snapshots, remote state, plans, jobs and site locks
"""
from .snapshot import CommitId, FileEntry, CommitSnapshot
from .remote import RemoteObject, RemoteState
from .plan import OperationKind, Operation, SyncPlan, SyncResult
from .job import JobStatus, ReasonCode, ArtifactLocator, PublishJob, JobOutcome
from .lock import SiteLock, SiteLedger

__all__ = [
    'CommitId',
    'FileEntry',
    'CommitSnapshot',
    'RemoteObject',
    'RemoteState',
    'OperationKind',
    'Operation',
    'SyncPlan',
    'SyncResult',
    'JobStatus',
    'ReasonCode',
    'ArtifactLocator',
    'PublishJob',
    'JobOutcome',
    'SiteLock',
    'SiteLedger',
]
