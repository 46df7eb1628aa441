"""Errors raised while waiting on an asynchronous operation."""

from typing import Optional

from cloudwait.poller.models import StatusClass
from cloudwait.utils.errors import DeploymentError, ErrorCategory, ErrorSeverity


class PollError(DeploymentError):
    """Base class for poll session failures."""

    category = ErrorCategory.OPERATION


class ProbeError(PollError):
    """The status probe itself failed (transport, parse). Never retried."""

    def __init__(self, description: str, cause: Exception, **kwargs):
        super().__init__(
            f"Status check for {description} failed: {cause}",
            cause=cause,
            **kwargs
        )


class UnexpectedStateError(PollError):
    """The operation reached a status outside the pending and target sets."""

    def __init__(
        self,
        description: str,
        status: str,
        reason: Optional[str] = None,
        status_class: StatusClass = StatusClass.UNKNOWN,
        **kwargs
    ):
        message = f"{description} reached unexpected state '{status}'"
        if reason:
            message += f", reason: {reason}"
        super().__init__(message, **kwargs)
        self.status = status
        self.reason = reason
        self.status_class = status_class


class PollTimeoutError(PollError, TimeoutError):
    """The operation was still pending when the timeout elapsed."""

    def __init__(
        self,
        description: str,
        last_status: Optional[str],
        elapsed: float,
        timeout: float,
        **kwargs
    ):
        super().__init__(
            f"Timeout while waiting for {description} after {elapsed:.1f}s "
            f"(timeout {timeout:.1f}s, last state: {last_status or 'unknown'})",
            **kwargs
        )
        self.last_status = last_status
        self.elapsed = elapsed
        self.timeout = timeout


class CancellationError(PollError):
    """The wait was cancelled by the caller."""

    severity = ErrorSeverity.WARNING

    def __init__(self, description: str, last_status: Optional[str], elapsed: float, **kwargs):
        super().__init__(
            f"Wait for {description} cancelled after {elapsed:.1f}s",
            **kwargs
        )
        self.last_status = last_status
        self.elapsed = elapsed
