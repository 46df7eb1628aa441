"""State management module for tracking provisioned resources."""

from .manager import StateLockError, StateManager, StateNotFoundError
from .models import Resource, State

__all__ = [
    "Resource",
    "State",
    "StateManager",
    "StateLockError",
    "StateNotFoundError",
]
