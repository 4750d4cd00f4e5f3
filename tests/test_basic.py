"""
Basic smoke tests for open-status core components.
"""

import pytest

from open_status import Event, EventBus, EventFilter, GeoPoint, InvalidArgument, distance


def test_geopoint_creation():
    """Test basic GeoPoint creation."""
    point = GeoPoint(latitude=37.7749, longitude=-122.4194)
    assert point.latitude == 37.7749
    assert point.longitude == -122.4194
    assert point.to_dict() == {"latitude": 37.7749, "longitude": -122.4194}


def test_geopoint_rejects_out_of_range():
    """Test coordinate validation."""
    with pytest.raises(InvalidArgument):
        GeoPoint(latitude=90.5, longitude=0.0)
    with pytest.raises(InvalidArgument):
        GeoPoint(latitude=0.0, longitude=-180.01)
    with pytest.raises(InvalidArgument):
        GeoPoint(latitude=float("nan"), longitude=0.0)
    with pytest.raises(InvalidArgument):
        GeoPoint(latitude=True, longitude=0.0)


def test_geopoint_accepts_bounds():
    """Test that the exact range limits are valid."""
    GeoPoint(latitude=90.0, longitude=180.0)
    GeoPoint(latitude=-90.0, longitude=-180.0)


def test_invalid_argument_is_value_error():
    """InvalidArgument can be caught as a plain ValueError."""
    with pytest.raises(ValueError):
        GeoPoint(latitude=100.0, longitude=0.0)


def test_distance_same_point_is_zero():
    """Test degenerate distance."""
    p = GeoPoint(37.7749, -122.4194)
    assert distance(p, p) == 0.0


def test_distance_known_value():
    """~0.00454 degrees of latitude is about 505 m."""
    a = GeoPoint(37.7749, -122.4194)
    b = GeoPoint(37.77944, -122.4194)
    assert distance(a, b) == pytest.approx(504.8, abs=1.0)
    assert distance(a, b) == distance(b, a)


def test_distance_antipodal():
    """Half the circumference for antipodal points."""
    d = distance(GeoPoint(0.0, 0.0), GeoPoint(0.0, 180.0))
    assert d == pytest.approx(3.141592653589793 * 6_371_000.0, rel=1e-9)


def test_event_bus_publish_subscribe():
    """Test basic event publishing and subscription."""
    bus = EventBus()

    # Track received events
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(handler)

    event = Event(
        type="test.event",
        source="test",
        payload={"data": "value"},
    )
    bus.publish(event)

    assert len(received) == 1
    assert received[0].type == "test.event"
    assert received[0].payload["data"] == "value"


def test_event_bus_filtering():
    """Test event filtering by type and site."""
    bus = EventBus()

    status_events = []
    shop_events = []

    def status_handler(event: Event):
        status_events.append(event)

    def shop_handler(event: Event):
        shop_events.append(event)

    bus.subscribe(status_handler, EventFilter(event_type="status.changed"))
    bus.subscribe(shop_handler, EventFilter(site_id="shop-1"))

    bus.publish(Event(type="status.changed", source="test", site_id="shop-1"))
    bus.publish(Event(type="status.changed", source="test", site_id="shop-2"))
    bus.publish(Event(type="session.state_changed", source="test"))

    assert len(status_events) == 2
    assert len(shop_events) == 1
    assert shop_events[0].site_id == "shop-1"


def test_event_bus_handler_error_isolated():
    """A failing handler does not stop delivery to others."""
    bus = EventBus()
    received = []

    def broken(event: Event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.publish(Event(type="test.event", source="test"))

    assert len(received) == 1


def test_event_bus_unsubscribe():
    """Test removing a handler."""
    bus = EventBus()
    received = []

    def handler(event: Event):
        received.append(event)

    bus.subscribe(handler)
    bus.unsubscribe(handler)
    bus.publish(Event(type="test.event", source="test"))

    assert received == []
