"""
Commit order resolution through CodeCommit.

A git revision id alone says nothing about recency; the committer date
from ``GetCommit`` orders commits of one branch's push history.
"""
from typing import Optional

from ...models.snapshot import CommitId
from ...utils.logger import get_logger

log = get_logger(__name__)


def parse_git_date(value: str) -> Optional[float]:
    """
    Parse a CodeCommit user date such as ``"1484167798 -0800"``.

    Args:
        value: Epoch seconds optionally followed by a timezone offset

    Returns:
        Epoch seconds as float, or None if unparseable
    """
    if not value:
        return None
    try:
        return float(str(value).split()[0])
    except (ValueError, IndexError):
        return None


class CodeCommitOrderResolver:
    """
    Resolves revision ids to comparable :class:`CommitId` values.

    Args:
        codecommit_client: boto3 CodeCommit client
        repository_name: Repository the pipeline's source stage reads
    """

    def __init__(self, codecommit_client, repository_name: str):
        self.client = codecommit_client
        self.repository_name = repository_name

    def resolve(self, revision: str) -> CommitId:
        """
        Look up the committer date of a revision.

        Failures are logged and yield a CommitId with unknown order, which
        the coordinator always applies rather than skips.

        Args:
            revision: Commit id (SHA)

        Returns:
            CommitId
        """
        if not revision or not self.repository_name:
            return CommitId(revision or "unknown")

        try:
            response = self.client.get_commit(repositoryName=self.repository_name,
                                              commitId=revision)
        except Exception as e:
            log.warning("Cannot resolve order of commit %s in %s: %s",
                        revision[:12], self.repository_name, e)
            return CommitId(revision)

        commit = response.get("commit", {})
        order = parse_git_date(commit.get("committer", {}).get("date", ""))
        if order is None:
            order = parse_git_date(commit.get("author", {}).get("date", ""))
        return CommitId(revision, order)
