"""Tests for the channel hub."""

from agritwin.realtime.hub import ChannelHub


def test_publish_reaches_every_subscriber_of_channel():
    hub = ChannelHub()
    received = []
    hub.subscribe("sensor-data", lambda ch, ev, p: received.append(("a", ev, p)))
    hub.subscribe("sensor-data", lambda ch, ev, p: received.append(("b", ev, p)))
    hub.subscribe("alerts", lambda ch, ev, p: received.append(("c", ev, p)))

    delivered = hub.publish("sensor-data", "sensor-data:update", [1, 2])

    assert delivered == 2
    assert received == [("a", "sensor-data:update", [1, 2]), ("b", "sensor-data:update", [1, 2])]


def test_publish_without_subscribers_delivers_nothing():
    assert ChannelHub().publish("zone:zone-1-1", "zone-data:update", {}) == 0


def test_failing_subscriber_does_not_block_others():
    hub = ChannelHub()
    received = []

    def broken(channel, event, payload):
        raise ValueError("boom")

    hub.subscribe("alerts", broken)
    hub.subscribe("alerts", lambda ch, ev, p: received.append(p))

    assert hub.publish("alerts", "sensor:alert", {"alert_id": 1}) == 1
    assert received == [{"alert_id": 1}]


def test_unsubscribe_handle():
    hub = ChannelHub()
    received = []
    subscription = hub.subscribe("sensor-data", lambda ch, ev, p: received.append(p))

    subscription.unsubscribe()
    subscription.unsubscribe()

    assert not subscription.active
    assert hub.publish("sensor-data", "sensor-data:update", []) == 0
    assert received == []
    assert hub.channels == []


def test_unsubscribe_only_removes_own_membership():
    hub = ChannelHub()
    first = hub.subscribe("system", lambda ch, ev, p: None)
    hub.subscribe("system", lambda ch, ev, p: None)
    first.unsubscribe()
    assert hub.subscriber_count("system") == 1


def test_same_callback_can_join_several_channels():
    hub = ChannelHub()
    channels = []
    callback = lambda ch, ev, p: channels.append(ch)  # noqa: E731
    hub.subscribe("zone:zone-1-1", callback)
    hub.subscribe("sensor:zone-1-1-co2", callback)

    hub.publish("zone:zone-1-1", "zone-data:update", {})
    hub.publish("sensor:zone-1-1-co2", "sensor-data:update", [])

    assert channels == ["zone:zone-1-1", "sensor:zone-1-1-co2"]
    assert hub.channels == ["sensor:zone-1-1-co2", "zone:zone-1-1"]


def test_close_drops_all_subscriptions():
    hub = ChannelHub()
    hub.subscribe("alerts", lambda ch, ev, p: None)
    hub.close()
    assert hub.publish("alerts", "sensor:alert", {}) == 0
