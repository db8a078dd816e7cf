"""AWS utilities sub-package.

Contains boto3 session creation and deadline-bounded client configuration.
"""
from .aws_utils import (
    create_boto3_session,
    client_config,
)

__all__ = [
    'create_boto3_session',
    'client_config',
]
