"""Data model for polling asynchronous operations to a terminal status."""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StatusClass(Enum):
    """Classification of an observed operation status."""
    PENDING = "pending"
    TARGET = "target"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single status check.

    `result` is the full fetched object and is handed back to the caller
    untouched. `status` may be None when the remote side has not created a
    status record yet. `reason` carries any failure explanation the remote
    side attached.
    """
    result: Any
    status: Optional[str]
    reason: Optional[str] = None


# A zero-argument callable performing one remote status check
StatusProbe = Callable[[], ProbeResult]


class PollSpec(BaseModel):
    """Configuration for one polling session. Durations are in seconds."""

    model_config = ConfigDict(frozen=True)

    pending_statuses: FrozenSet[str] = Field(
        default_factory=frozenset, description="Statuses meaning the operation is still in progress"
    )
    target_statuses: FrozenSet[str] = Field(
        ..., min_length=1, description="Statuses meaning the operation completed successfully"
    )
    failed_statuses: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Known terminal failure statuses, reported as FAILED rather than UNKNOWN",
    )
    timeout: float = Field(600.0, gt=0)
    initial_delay: float = Field(0.0, ge=0)
    poll_interval: float = Field(3.0, gt=0)
    backoff_factor: float = Field(1.0, ge=1.0)
    max_interval: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def validate_status_sets(self):
        """Status sets must not overlap."""
        overlap = self.pending_statuses & self.target_statuses
        if overlap:
            raise ValueError(f"Statuses cannot be both pending and target: {sorted(overlap)}")
        overlap = self.failed_statuses & (self.pending_statuses | self.target_statuses)
        if overlap:
            raise ValueError(f"Failed statuses overlap pending/target statuses: {sorted(overlap)}")
        if self.max_interval is not None and self.max_interval < self.poll_interval:
            raise ValueError("max_interval must not be smaller than poll_interval")
        return self

    def next_interval(self, current: float) -> float:
        """Interval to use after `current`, grown by the backoff factor."""
        interval = current * self.backoff_factor
        if self.max_interval is not None:
            interval = min(interval, self.max_interval)
        return interval


def classify_status(spec: PollSpec, status: Optional[str]) -> StatusClass:
    """Classify an observed status against a poll spec.

    An absent or empty status is PENDING: right after submission the remote
    side may not have materialized a status record yet.
    """
    if not status:
        return StatusClass.PENDING
    if status in spec.target_statuses:
        return StatusClass.TARGET
    if status in spec.pending_statuses:
        return StatusClass.PENDING
    if status in spec.failed_statuses:
        return StatusClass.FAILED
    return StatusClass.UNKNOWN


class CancellationToken:
    """Thread-safe cancellation flag with an interruptible wait."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if cancelled before or during the wait."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
