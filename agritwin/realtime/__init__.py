"""Real-time fan-out: channel hub, subscription registry and WebSocket server."""

from .hub import ChannelHub, Subscription
from .registry import ConnectionSubscriptions, SubscriptionRegistry, SubscriptionState
from .server import RealtimeServer

__all__ = [
    "ChannelHub",
    "ConnectionSubscriptions",
    "RealtimeServer",
    "Subscription",
    "SubscriptionRegistry",
    "SubscriptionState",
]
