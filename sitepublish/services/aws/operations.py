"""
Low-level S3 primitive operations.

Provides the single class through which the engine touches a bucket:
paged listing, head, get, put and delete. botocore errors are translated
here, once, into :class:`~sitepublish.exceptions.StoreError` carrying
transient/permission flags that the retry policy relies on.
"""
import base64
from typing import List, Optional, Tuple

from botocore.exceptions import (
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from ...exceptions import StoreError
from ...utils.logger import get_logger

log = get_logger(__name__)

_TRANSIENT_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "OperationAborted",
    "ConditionalRequestConflict",
    "500",
    "502",
    "503",
    "504",
}

_PERMISSION_CODES = {
    "AccessDenied",
    "403",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "AllAccessDisabled",
    "AccountProblem",
}

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

_PRECONDITION_CODES = {"PreconditionFailed", "412"}


def error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def is_not_found(exc: BaseException) -> bool:
    cause = getattr(exc, "cause", exc)
    return isinstance(cause, ClientError) and error_code(cause) in _NOT_FOUND_CODES


def is_precondition_failed(exc: BaseException) -> bool:
    cause = getattr(exc, "cause", exc)
    return isinstance(cause, ClientError) and error_code(cause) in _PRECONDITION_CODES


def translate_error(exc: BaseException, key: Optional[str], action: str) -> StoreError:
    """Translate a botocore exception into a :class:`StoreError`."""
    label = f"{action} {key}" if key else action
    if isinstance(exc, ClientError):
        code = error_code(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        transient = code in _TRANSIENT_CODES or status >= 500 or status == 429
        permission = code in _PERMISSION_CODES
        return StoreError(f"{label} failed: {code or status}", path=key, cause=exc,
                          transient=transient, permission=permission)
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return StoreError(f"{label} failed: {exc}", path=key, cause=exc, transient=True)
    return StoreError(f"{label} failed: {exc}", path=key, cause=exc)


def is_transient(exc: BaseException) -> bool:
    """Retry predicate for :func:`sitepublish.utils.retry.call_with_retry`."""
    return isinstance(exc, StoreError) and exc.transient


class S3Operations:
    """Primitive operations on one bucket.

    Args:
        bucket_name: S3 bucket name
        s3_client: boto3 S3 client (built with deadline-bounded timeouts)
    """

    def __init__(self, bucket_name, s3_client):
        self.bucket_name = bucket_name
        self.s3_client = s3_client

    def list_page(self, continuation_token: Optional[str] = None,
                  prefix: str = "") -> Tuple[List[dict], Optional[str]]:
        """
        Fetch one page of a ListObjectsV2 listing.

        Args:
            continuation_token: Token returned by the previous page
            prefix: Key prefix to restrict the listing

        Returns:
            Tuple of (contents, next_token); next_token is None on the last page
        """
        params = {"Bucket": self.bucket_name}
        if prefix:
            params["Prefix"] = prefix
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            page = self.s3_client.list_objects_v2(**params)
        except Exception as e:
            raise translate_error(e, prefix or None, "list") from e

        contents = page.get("Contents", [])
        next_token = page.get("NextContinuationToken") if page.get("IsTruncated") else None
        return contents, next_token

    def head_object(self, key: str) -> Optional[dict]:
        """
        Fetch object metadata.

        Args:
            key: S3 object key

        Returns:
            HeadObject response, or None if the key does not exist
        """
        try:
            return self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except Exception as e:
            error = translate_error(e, key, "head")
            if is_not_found(error):
                return None
            raise error from e

    def get_object(self, key: str) -> dict:
        """
        Fetch an object; the caller streams ``response['Body']``.

        Args:
            key: S3 object key

        Returns:
            GetObject response
        """
        try:
            return self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except Exception as e:
            raise translate_error(e, key, "get") from e

    def put_object(self, key: str, body: bytes, content_type: str,
                   cache_control: Optional[str] = None,
                   content_md5: Optional[str] = None, **conditions) -> dict:
        """
        Write an object.

        Args:
            key: S3 object key
            body: Object bytes
            content_type: Content-Type header
            cache_control: Cache-Control header
            content_md5: Hex MD5 of ``body``; sent as Content-MD5 so S3
                rejects corrupted uploads
            **conditions: Conditional-write headers (``IfNoneMatch``, ``IfMatch``)

        Returns:
            PutObject response
        """
        params = {
            "Bucket": self.bucket_name,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
        }
        if cache_control:
            params["CacheControl"] = cache_control
        if content_md5:
            params["ContentMD5"] = base64.b64encode(bytes.fromhex(content_md5)).decode("ascii")
        params.update(conditions)
        log.debug("put s3://%s/%s (%d bytes, %s)", self.bucket_name, key, len(body), content_type)

        try:
            return self.s3_client.put_object(**params)
        except Exception as e:
            raise translate_error(e, key, "put") from e

    def delete_object(self, key: str) -> None:
        """
        Delete an object. Deleting a missing key is not an error.

        Args:
            key: S3 object key
        """
        log.debug("delete s3://%s/%s", self.bucket_name, key)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except Exception as e:
            error = translate_error(e, key, "delete")
            if is_not_found(error):
                return
            raise error from e
