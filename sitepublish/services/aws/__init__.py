"""
AWS adapters.

- :mod:`operations` — primitive S3 list/head/get/put/delete helpers
- :mod:`lock_store` — site lock and ledger kept in a state bucket
- :mod:`pipeline`   — CodePipeline job parsing and result reporting
- :mod:`commits`    — CodeCommit commit ordering
"""
from .operations import S3Operations
from .lock_store import S3LockStore
from .pipeline import CodePipelineReporter, parse_job_event
from .commits import CodeCommitOrderResolver

__all__ = [
    'S3Operations',
    'S3LockStore',
    'CodePipelineReporter',
    'parse_job_event',
    'CodeCommitOrderResolver',
]
