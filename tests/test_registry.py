"""Tests for per-connection subscription tracking."""

import pytest

from agritwin.realtime.hub import ChannelHub
from agritwin.realtime.registry import SubscriptionRegistry, SubscriptionState
from agritwin.shared.errors import ConnectionClosedError


def _noop(channel, event, payload):
    pass


def test_lifecycle_empty_subscribed_empty_closed():
    hub = ChannelHub()
    connection = SubscriptionRegistry(hub).register("c1", _noop)
    assert connection.state == SubscriptionState.EMPTY

    assert connection.subscribe("sensor-data")
    assert connection.subscribe("zone:zone-1-1")
    assert connection.state == SubscriptionState.SUBSCRIBED
    assert connection.channels == ["sensor-data", "zone:zone-1-1"]

    assert connection.unsubscribe_all() == 2
    assert connection.state == SubscriptionState.EMPTY
    assert hub.subscriber_count("sensor-data") == 0

    connection.close()
    assert connection.state == SubscriptionState.CLOSED


def test_subscribe_after_close_is_rejected():
    connection = SubscriptionRegistry(ChannelHub()).register("c1", _noop)
    connection.close()
    with pytest.raises(ConnectionClosedError):
        connection.subscribe("alerts")


def test_duplicate_subscribe_is_a_noop():
    hub = ChannelHub()
    connection = SubscriptionRegistry(hub).register("c1", _noop)
    assert connection.subscribe("alerts")
    assert not connection.subscribe("alerts")
    assert hub.subscriber_count("alerts") == 1


def test_pinned_channel_survives_unsubscribe_all():
    hub = ChannelHub()
    connection = SubscriptionRegistry(hub).register("c1", _noop)
    connection.subscribe("system", pinned=True)
    connection.subscribe("alerts")

    connection.unsubscribe_all()

    assert connection.state == SubscriptionState.EMPTY
    assert hub.subscriber_count("system") == 1
    connection.close()
    assert hub.subscriber_count("system") == 0


def test_single_unsubscribe():
    hub = ChannelHub()
    connection = SubscriptionRegistry(hub).register("c1", _noop)
    connection.subscribe("alerts")
    assert connection.unsubscribe("alerts")
    assert not connection.unsubscribe("alerts")
    assert connection.state == SubscriptionState.EMPTY


def test_unregister_closes_connection():
    hub = ChannelHub()
    registry = SubscriptionRegistry(hub)
    connection = registry.register("c1", _noop)
    connection.subscribe("sensor-data")

    registry.unregister("c1")
    registry.unregister("unknown")

    assert connection.state == SubscriptionState.CLOSED
    assert registry.get("c1") is None
    assert len(registry) == 0
    assert hub.subscriber_count("sensor-data") == 0


def test_register_replaces_existing_connection():
    hub = ChannelHub()
    registry = SubscriptionRegistry(hub)
    old = registry.register("c1", _noop)
    old.subscribe("alerts")
    new = registry.register("c1", _noop)

    assert old.state == SubscriptionState.CLOSED
    assert registry.get("c1") is new
    assert hub.subscriber_count("alerts") == 0


def test_close_all():
    hub = ChannelHub()
    registry = SubscriptionRegistry(hub)
    for connection_id in ("a", "b"):
        registry.register(connection_id, _noop).subscribe("sensor-data")
    assert len(list(registry)) == 2

    registry.close_all()
    assert len(registry) == 0
    assert hub.subscriber_count("sensor-data") == 0
