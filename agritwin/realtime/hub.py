"""In-process channel pub/sub used to fan readings out to subscribers."""

import itertools
import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Callback = Callable[[str, str, Any], None]


class Subscription:
    """Handle for one channel membership. Unsubscribing twice is a no-op."""

    def __init__(self, hub: "ChannelHub", channel: str, token: int):
        self.hub = hub
        self.channel = channel
        self.token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.hub._remove(self.channel, self.token)
            self.active = False

    def __repr__(self) -> str:
        return f"Subscription(channel={self.channel!r}, active={self.active})"


class ChannelHub:
    """Named channels with any number of callback subscribers.

    Callbacks are invoked synchronously from ``publish`` in subscription
    order and must not block. A failing callback is logged and skipped.
    """

    def __init__(self):
        self._channels: Dict[str, Dict[int, Callback]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, callback: Callback) -> Subscription:
        """Add a subscriber to a channel.

        Args:
            channel: Channel name, e.g. "sensor-data" or "zone:zone-1-1".
            callback: Called as ``callback(channel, event, payload)``.

        Returns:
            A handle whose ``unsubscribe()`` removes this membership.
        """
        token = next(self._tokens)
        with self._lock:
            self._channels.setdefault(channel, {})[token] = callback
        logger.debug(f"Subscribed #{token} to {channel}")
        return Subscription(self, channel, token)

    def _remove(self, channel: str, token: int) -> None:
        with self._lock:
            subscribers = self._channels.get(channel)
            if not subscribers:
                return
            subscribers.pop(token, None)
            if not subscribers:
                del self._channels[channel]

    def publish(self, channel: str, event: str, payload: Any) -> int:
        """Deliver an event to every current subscriber of a channel.

        Returns:
            Number of subscribers that accepted the event.
        """
        with self._lock:
            callbacks: List[Callback] = list(self._channels.get(channel, {}).values())

        delivered = 0
        for callback in callbacks:
            try:
                callback(channel, event, payload)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber failed handling {event} on {channel}")
        return delivered

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, {}))

    @property
    def channels(self) -> List[str]:
        with self._lock:
            return sorted(self._channels)

    def close(self) -> None:
        """Drop every subscription."""
        with self._lock:
            self._channels.clear()
