"""Utility modules for logging, AWS client management, and helpers."""

from cloudwait.utils.aws_client import AWSClientManager, AWSCredentials
from cloudwait.utils.retry import RetryStrategy
from cloudwait.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    CredentialError,
    NetworkError,
    StateError,
    ProvisioningError,
    ValidationError,
    ErrorHandler,
    error_handler,
    is_aws_error,
)
from cloudwait.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',
    'AWSCredentials',

    # Retry
    'RetryStrategy',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'CredentialError',
    'NetworkError',
    'StateError',
    'ProvisioningError',
    'ValidationError',
    'ErrorHandler',
    'error_handler',
    'is_aws_error',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
