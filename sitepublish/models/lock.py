"""
Site lock and ledger models
"""
from dataclasses import dataclass
from typing import Optional

from .snapshot import CommitId


@dataclass
class SiteLock:
    """Exclusive right to mutate one site, held by one job.

    Attributes:
        site: Site identifier
        job_id: Holder
        commit: Commit the holder is publishing
        expires_at: Wall-clock epoch seconds after which the lease may be taken over
        token: Backend-specific handle (ETag of the lease object, waiter token)
    """

    site: str
    job_id: str
    commit: CommitId
    expires_at: float = 0.0
    token: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        # A lease without an expiry (unreadable lock object) is abandoned
        return not self.expires_at or now >= self.expires_at

    def to_dict(self):
        """Serialize to dictionary"""
        return {
            "site": self.site,
            "job_id": self.job_id,
            "commit": self.commit.to_dict(),
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data, token=None):
        """Deserialize from dictionary"""
        return cls(
            site=data.get("site", ""),
            job_id=data.get("job_id", ""),
            commit=CommitId.from_dict(data.get("commit")) or CommitId(""),
            expires_at=float(data.get("expires_at", 0.0)),
            token=token,
        )


@dataclass
class SiteLedger:
    """Per-site record of publish history, written only by the coordinator.

    Attributes:
        last_applied: Commit of the last job that converged the bucket
        last_attempted: Commit of the last job that started mutating it
    """

    last_applied: Optional[CommitId] = None
    last_attempted: Optional[CommitId] = None

    def to_dict(self):
        """Serialize to dictionary"""
        return {
            "last_applied": self.last_applied.to_dict() if self.last_applied else None,
            "last_attempted": self.last_attempted.to_dict() if self.last_attempted else None,
        }

    @classmethod
    def from_dict(cls, data):
        """Deserialize from dictionary"""
        data = data or {}
        return cls(
            last_applied=CommitId.from_dict(data.get("last_applied")),
            last_attempted=CommitId.from_dict(data.get("last_attempted")),
        )
