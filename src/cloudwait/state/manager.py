"""Reading and writing the project state file under an exclusive lock."""

import fcntl
import json
import os
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from cloudwait.utils.errors import StateError
from cloudwait.utils.logging import get_logger

from .models import Resource, State

logger = get_logger(__name__)

LOCK_RETRY_INTERVAL = 0.1


class StateLockError(StateError):
    """Another process holds the state lock."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('suggestions', ["Check whether another cloudwait process is running"])
        super().__init__(message, **kwargs)


class StateNotFoundError(StateError):
    pass


class StateManager:
    """Owns one project's state file.

    Used as a context manager by every command that changes state: entering
    takes the lock and loads the file when it exists, leaving releases it.
    Writes go to a temporary file that then replaces the state file.
    """

    def __init__(self, state_path: str):
        self.state_path = Path(state_path)
        self.lock_path = self.state_path.with_suffix(".lock")
        self._lock_file: Optional[int] = None
        self._current_state: Optional[State] = None

    def exists(self) -> bool:
        return self.state_path.exists()

    def load(self) -> State:
        """Read and validate the state file.

        Raises:
            StateNotFoundError: If the file does not exist
            StateError: If it is not JSON or not a valid state document
        """
        if not self.exists():
            raise StateNotFoundError(f"State file not found: {self.state_path}")

        try:
            data = json.loads(self.state_path.read_text())
        except json.JSONDecodeError as e:
            raise StateError(f"Failed to parse state file: {e}", cause=e)

        try:
            self._current_state = State.from_dict(data)
        except ValidationError as e:
            raise StateError(f"Invalid state file {self.state_path}: {e}", cause=e)

        logger.debug(f"Loaded {len(self._current_state.resources)} resource(s) from {self.state_path}")
        return self._current_state

    def save(self, state: Optional[State] = None) -> None:
        """Write `state`, or the loaded state, atomically."""
        state = state or self.get_state()
        temp_path = self.state_path.with_suffix(".tmp")
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(state.to_dict(), indent=2))
            temp_path.replace(self.state_path)
        except OSError as e:
            raise StateError(f"Failed to save state file: {e}", cause=e)
        self._current_state = state

    def initialize(self, project_name: str, region: str) -> State:
        state = State(project_name=project_name, region=region)
        self.save(state)
        return state

    def lock(self, timeout: float = 30) -> None:
        """Take the exclusive lock, waiting up to `timeout` seconds.

        Raises:
            StateLockError: If the lock is still held after `timeout`
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR)
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise StateLockError(f"Failed to acquire lock on state file after {timeout}s")
                time.sleep(LOCK_RETRY_INTERVAL)
        self._lock_file = fd

    def unlock(self) -> None:
        if self._lock_file is None:
            return
        fd, self._lock_file = self._lock_file, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def __enter__(self):
        self.lock()
        if self.exists():
            self.load()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unlock()

    def get_state(self) -> State:
        """The loaded state.

        Raises:
            StateError: If nothing has been loaded or initialized yet
        """
        if self._current_state is None:
            raise StateError("State not loaded. Call load() first.")
        return self._current_state

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self.get_state().get_resource(resource_id)

    def put_resource(self, resource: Resource) -> None:
        self.get_state().put_resource(resource)

    def remove_resource(self, resource_id: str) -> Optional[Resource]:
        return self.get_state().remove_resource(resource_id)
