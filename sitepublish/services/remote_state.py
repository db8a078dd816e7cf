"""
Remote state reader: lists the live keys and hashes of a site's bucket.
"""
from ..exceptions import RemoteUnavailable, StoreError
from ..models.remote import RemoteObject, RemoteState
from ..utils.logger import get_logger
from ..utils.retry import call_with_retry
from .aws.operations import S3Operations, is_transient

log = get_logger(__name__)


class RemoteStateReader:
    """
    Reads a bucket listing page by page until exhaustion.

    A failed page is retried with the same continuation token, so a retry
    can neither skip nor repeat keys; keys that still arrive twice are
    dropped.

    Args:
        operations: S3Operations bound to the site bucket
        retries: Retries per page for transient failures
        base_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        reserve: Seconds of the deadline kept back for reporting
    """

    def __init__(self, operations: S3Operations, retries=5, base_delay=0.2,
                 max_delay=5.0, reserve=0.0):
        self.operations = operations
        self.retries = retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.reserve = reserve

    @classmethod
    def from_config(cls, operations, config):
        return cls(
            operations,
            retries=config["list_retries"],
            base_delay=config["retry_base_delay"],
            max_delay=config["retry_max_delay"],
            reserve=config["report_reserve_seconds"],
        )

    def read(self, site: str, deadline=None) -> RemoteState:
        """
        List every object in the site bucket.

        Args:
            site: Site identifier (recorded on the returned state)
            deadline: Optional job deadline bounding retries

        Returns:
            RemoteState

        Raises:
            RemoteUnavailable: Listing failed after bounded retry, or access denied
        """
        state = RemoteState(site)
        token = None
        pages = 0
        duplicates = 0

        while True:
            try:
                contents, next_token = call_with_retry(
                    lambda: self.operations.list_page(token),
                    self.retries, is_transient,
                    base_delay=self.base_delay, max_delay=self.max_delay,
                    deadline=deadline, reserve=self.reserve,
                    description=f"list s3://{self.operations.bucket_name} page {pages + 1}",
                )
            except StoreError as e:
                raise RemoteUnavailable(
                    f"Cannot list bucket {self.operations.bucket_name}: {e}",
                    cause=e, permission=e.permission,
                ) from e

            pages += 1
            for item in contents:
                if not state.add(RemoteObject.from_listing(item)):
                    duplicates += 1

            if not next_token:
                break
            if next_token == token:
                raise RemoteUnavailable(
                    f"Listing of {self.operations.bucket_name} returned a repeated continuation token"
                )
            token = next_token

        if duplicates:
            log.warning("Dropped %d duplicate key(s) while listing %s", duplicates, site)
        log.info("Remote state %s: %d object(s) in %d page(s)", site, len(state), pages)
        return state
