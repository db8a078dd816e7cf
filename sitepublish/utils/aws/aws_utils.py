"""AWS utilities for session and client creation.

Every client used by a publish job is built with timeouts derived from
the job's remaining budget and with botocore's own retries disabled, so
the retry policy in :mod:`sitepublish.utils.retry` is the only one in
effect.
"""
from typing import Optional

import boto3
from botocore.config import Config

from ..deadline import Deadline


def create_boto3_session(
    profile_name: Optional[str] = None,
    region_name: Optional[str] = None,
    credentials: Optional[dict] = None,
):
    """Create a boto3 session.

    Args:
        profile_name: AWS CLI profile name (ignored when empty)
        region_name: Optional AWS region
        credentials: Optional explicit credentials as delivered in a
            CodePipeline job (``accessKeyId``, ``secretAccessKey``,
            ``sessionToken``)

    Returns:
        boto3.Session object

    Example:
        >>> session = create_boto3_session(region_name='us-east-1')
        >>> s3 = session.client('s3')
    """
    kwargs = {}
    if profile_name:
        kwargs['profile_name'] = profile_name
    if region_name:
        kwargs['region_name'] = region_name
    if credentials:
        kwargs['aws_access_key_id'] = credentials.get('accessKeyId')
        kwargs['aws_secret_access_key'] = credentials.get('secretAccessKey')
        kwargs['aws_session_token'] = credentials.get('sessionToken')
    return boto3.Session(**kwargs)


def client_config(
    deadline: Optional[Deadline] = None,
    request_timeout: float = 60.0,
    max_pool_connections: int = 10,
    reserve: float = 0.0,
) -> Config:
    """Build a botocore client config bounded by the job deadline.

    With a ``reserve``, connect plus read timeout fit inside it, so a call
    started just before the reserve begins has ended when it runs out.

    Args:
        deadline: Job deadline; per-request timeouts never exceed what is left
        request_timeout: Upper bound for connect/read timeouts
        max_pool_connections: HTTP pool size (match the worker count)
        reserve: Seconds of the deadline kept back for reporting

    Returns:
        botocore Config
    """
    if deadline is not None:
        timeout = deadline.timeout(request_timeout)
    else:
        timeout = float(request_timeout)
    connect_timeout = min(timeout, 10.0)

    if reserve > 0:
        timeout = max(1.0, min(timeout, reserve / 2))
        connect_timeout = min(connect_timeout, timeout)

    return Config(
        connect_timeout=connect_timeout,
        read_timeout=timeout,
        retries={'total_max_attempts': 1, 'mode': 'standard'},
        max_pool_connections=max(1, int(max_pool_connections)),
    )
