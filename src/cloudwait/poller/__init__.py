"""Polling of asynchronous operations until they reach a terminal status."""

from .models import (
    CancellationToken,
    PollSpec,
    ProbeResult,
    StatusClass,
    StatusProbe,
    classify_status,
)
from .errors import (
    CancellationError,
    PollError,
    PollTimeoutError,
    ProbeError,
    UnexpectedStateError,
)
from .waiter import wait_for_terminal

__all__ = [
    "CancellationToken",
    "PollSpec",
    "ProbeResult",
    "StatusClass",
    "StatusProbe",
    "classify_status",
    "CancellationError",
    "PollError",
    "PollTimeoutError",
    "ProbeError",
    "UnexpectedStateError",
    "wait_for_terminal",
]
