"""Wait for an asynchronous operation to reach a terminal status."""

import time
from typing import Any, Callable, Optional

from cloudwait.poller.errors import (
    CancellationError,
    PollError,
    PollTimeoutError,
    ProbeError,
    UnexpectedStateError,
)
from cloudwait.poller.models import (
    CancellationToken,
    PollSpec,
    StatusClass,
    StatusProbe,
    classify_status,
)
from cloudwait.utils.logging import get_logger

logger = get_logger(__name__)


def wait_for_terminal(
    spec: PollSpec,
    probe: StatusProbe,
    cancel: Optional[CancellationToken] = None,
    description: str = "operation",
    on_status_change: Optional[Callable[[Optional[str]], None]] = None,
) -> Any:
    """Poll `probe` until it reports a target status and return its result.

    Blocks the calling thread. Status checks are strictly sequential and every
    sleep can be interrupted through `cancel`.

    Args:
        spec: Status sets and timing for this session
        probe: Performs one remote status check
        cancel: Optional token another thread may use to abort the wait
        description: Human-readable name of the operation for error messages
        on_status_change: Called with the new status whenever it changes

    Returns:
        The `result` of the probe call that observed a target status

    Raises:
        ProbeError: The probe raised; the original exception is the cause
        UnexpectedStateError: A status outside the pending and target sets
        PollTimeoutError: Still pending after `spec.timeout` seconds
        CancellationError: `cancel` was set while waiting
    """
    cancel = cancel or CancellationToken()
    start = time.monotonic()
    last_status: Optional[str] = None
    interval = spec.poll_interval
    calls = 0

    if cancel.wait(spec.initial_delay):
        raise CancellationError(description, last_status, time.monotonic() - start)

    while True:
        try:
            observation = probe()
        except PollError:
            raise
        except Exception as e:
            raise ProbeError(description, e) from e
        calls += 1

        status = observation.status or None
        if calls == 1 or status != last_status:
            logger.debug(f"{description} status: {status or 'not yet available'}")
            if on_status_change is not None:
                on_status_change(status)
        last_status = status

        status_class = classify_status(spec, status)
        if status_class is StatusClass.TARGET:
            return observation.result
        if status_class is not StatusClass.PENDING:
            raise UnexpectedStateError(
                description, status, observation.reason, status_class=status_class
            )

        elapsed = time.monotonic() - start
        if elapsed >= spec.timeout:
            raise PollTimeoutError(description, last_status, elapsed, spec.timeout)

        delay = min(interval, spec.timeout - elapsed)
        logger.debug(f"{description} still pending, next check in {delay:.2f}s")
        if cancel.wait(delay):
            raise CancellationError(description, last_status, time.monotonic() - start)
        interval = spec.next_interval(interval)
