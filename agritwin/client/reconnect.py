"""Connection state machine with bounded exponential backoff."""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Client connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"  # Gave up after max_attempts consecutive failures


class InvalidTransitionError(RuntimeError):
    pass


class ReconnectPolicy:
    """Tracks connection state and decides when (and whether) to retry.

    The n-th consecutive failed attempt is followed by a delay of
    ``min(base_delay * 2 ** (n - 1), max_delay)``. After ``max_attempts``
    consecutive failures the state becomes FAILED and stays there until
    ``reset`` is called.
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float = 30.0, max_attempts: int = 5):
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("Require 0 < base_delay <= max_delay")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _transition(self, new_state: ConnectionState, *allowed: ConnectionState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(f"Cannot go from {self.state.value} to {new_state.value}")
        logger.debug(f"Connection state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def connecting(self) -> None:
        self._transition(
            ConnectionState.CONNECTING,
            ConnectionState.DISCONNECTED,
        )

    def connected(self) -> None:
        self._transition(ConnectionState.CONNECTED, ConnectionState.CONNECTING)
        self.attempts = 0

    def failed(self) -> Optional[float]:
        """Record a failed connection attempt.

        Returns:
            Seconds to wait before the next attempt, or None if the policy
            has given up.
        """
        self._transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING)
        self.attempts += 1
        if self.attempts >= self.max_attempts:
            self.state = ConnectionState.FAILED
            logger.error(f"Giving up after {self.attempts} failed connection attempts")
            return None
        return self.delay_for(self.attempts)

    def disconnected(self) -> None:
        """The live connection dropped."""
        self._transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTED)

    def reset(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
