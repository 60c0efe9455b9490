"""Per-connection channel memberships."""

import logging
import threading
from enum import Enum
from typing import Dict, Iterator, List, Optional

from agritwin.shared.errors import ConnectionClosedError
from .hub import Callback, ChannelHub, Subscription

logger = logging.getLogger(__name__)


class SubscriptionState(Enum):
    """Lifecycle of one connection's memberships."""
    EMPTY = "empty"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"  # Terminal


class ConnectionSubscriptions:
    """The channels one connection is joined to.

    Pinned memberships (the ``system`` channel) survive ``unsubscribe_all``
    and do not count towards the SUBSCRIBED state; only ``close`` drops them.
    """

    def __init__(self, connection_id: str, hub: ChannelHub, callback: Callback):
        self.connection_id = connection_id
        self.hub = hub
        self.callback = callback
        self._memberships: Dict[str, Subscription] = {}
        self._pinned: Dict[str, Subscription] = {}
        self._closed = False

    @property
    def state(self) -> SubscriptionState:
        if self._closed:
            return SubscriptionState.CLOSED
        if self._memberships:
            return SubscriptionState.SUBSCRIBED
        return SubscriptionState.EMPTY

    @property
    def channels(self) -> List[str]:
        return sorted(self._memberships)

    def is_subscribed(self, channel: str) -> bool:
        return channel in self._memberships or channel in self._pinned

    def subscribe(self, channel: str, pinned: bool = False) -> bool:
        """Join a channel.

        Returns:
            True if a new membership was created, False if already joined.

        Raises:
            ConnectionClosedError: If the connection has been closed.
        """
        if self._closed:
            raise ConnectionClosedError(
                f"Connection {self.connection_id} is closed, cannot join {channel}"
            )
        if self.is_subscribed(channel):
            return False

        subscription = self.hub.subscribe(channel, self.callback)
        if pinned:
            self._pinned[channel] = subscription
        else:
            self._memberships[channel] = subscription
        logger.debug(f"{self.connection_id} joined {channel}")
        return True

    def unsubscribe(self, channel: str) -> bool:
        subscription = self._memberships.pop(channel, None)
        if subscription is None:
            return False
        subscription.unsubscribe()
        return True

    def unsubscribe_all(self) -> int:
        """Leave every non-pinned channel.

        Returns:
            Number of memberships released.
        """
        released = len(self._memberships)
        for subscription in self._memberships.values():
            subscription.unsubscribe()
        self._memberships.clear()
        return released

    def close(self) -> None:
        """Release everything and reject further subscribes."""
        if self._closed:
            return
        self.unsubscribe_all()
        for subscription in self._pinned.values():
            subscription.unsubscribe()
        self._pinned.clear()
        self._closed = True


class SubscriptionRegistry:
    """All live connections and their memberships, keyed by connection id."""

    def __init__(self, hub: ChannelHub):
        self.hub = hub
        self._connections: Dict[str, ConnectionSubscriptions] = {}
        self._lock = threading.Lock()

    def register(self, connection_id: str, callback: Callback) -> ConnectionSubscriptions:
        connection = ConnectionSubscriptions(connection_id, self.hub, callback)
        with self._lock:
            previous = self._connections.get(connection_id)
            self._connections[connection_id] = connection
        if previous is not None:
            logger.warning(f"Replacing existing registration for {connection_id}")
            previous.close()
        return connection

    def get(self, connection_id: str) -> Optional[ConnectionSubscriptions]:
        with self._lock:
            return self._connections.get(connection_id)

    def unregister(self, connection_id: str) -> None:
        """Close and forget a connection. Unknown ids are ignored."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.close()

    def close_all(self) -> None:
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __iter__(self) -> Iterator[ConnectionSubscriptions]:
        with self._lock:
            return iter(list(self._connections.values()))
