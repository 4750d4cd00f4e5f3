"""Tests for status data models."""

from dataclasses import FrozenInstanceError

import pytest

from open_status import Cause, GeoPoint, InvalidArgument, LocationSample, Site, Status, StatusIntent

from factories import CENTER, FAR, T0, make_site


class TestStatus:
    """Tests for the closed status enumeration."""

    @pytest.mark.parametrize(
        "raw,expected",
        [("open", Status.OPEN), ("CLOSED", Status.CLOSED), (" Unknown ", Status.UNKNOWN)],
    )
    def test_parse_strings(self, raw, expected):
        assert Status.parse(raw) is expected

    def test_parse_passes_enum_through(self):
        assert Status.parse(Status.OPEN) is Status.OPEN

    @pytest.mark.parametrize("raw", ["opened", "", None, 1, True])
    def test_parse_rejects_unknown_values(self, raw):
        with pytest.raises(InvalidArgument):
            Status.parse(raw)

    def test_display(self):
        assert Status.OPEN.display == "OPEN"
        assert Status.UNKNOWN.display == "UNKNOWN"


class TestSite:
    """Tests for the Site model."""

    def test_defaults(self):
        site = make_site()

        assert site.status is Status.UNKNOWN
        assert site.override_active is False
        assert site.version == 0
        assert site.last_change_at is None
        assert site.needs_reevaluation is False

    def test_status_string_normalized(self):
        site = make_site(status="Open")
        assert site.status is Status.OPEN
        assert site.is_open
        assert site.status_text == "OPEN"

    def test_invalid_status_rejected(self):
        with pytest.raises(InvalidArgument):
            make_site(status="busy")

    @pytest.mark.parametrize("radius", [0.0, -10.0, float("nan"), float("inf")])
    def test_invalid_radius_rejected(self, radius):
        with pytest.raises(InvalidArgument):
            make_site(radius=radius)

    def test_empty_id_rejected(self):
        with pytest.raises(InvalidArgument):
            make_site(site_id="")

    def test_frozen(self):
        site = make_site()
        with pytest.raises(FrozenInstanceError):
            site.status = Status.OPEN  # type: ignore[misc]

    def test_contains(self):
        site = make_site(radius=50.0)
        assert site.contains(CENTER)
        assert not site.contains(FAR)
        assert site.distance_from(CENTER) == 0.0

    def test_record_round_trip(self):
        site = make_site(status=Status.CLOSED, override_active=True, version=7, last_change_at=T0)

        record = site.to_record()
        assert record["status"] == "closed"
        assert record["isManualOverride"] is True
        assert record["location"] == {"latitude": 37.7749, "longitude": -122.4194}

        assert Site.from_record(record) == site

    def test_from_record_defaults(self):
        site = Site.from_record(
            {"id": "s1", "ownerId": "o1", "location": {"latitude": 1.0, "longitude": 2.0}},
            default_radius=75.0,
        )

        assert site.radius_meters == 75.0
        assert site.status is Status.UNKNOWN
        assert site.version == 0

    @pytest.mark.parametrize(
        "record",
        [
            {"ownerId": "o1", "location": {"latitude": 1.0, "longitude": 2.0}},
            {"id": "s1", "location": {"latitude": 95.0, "longitude": 2.0}},
            {"id": "s1", "location": {"latitude": 1.0}},
            {"id": "s1", "location": {"latitude": 1.0, "longitude": 2.0}, "status": "maybe"},
        ],
    )
    def test_from_record_rejects_malformed(self, record):
        with pytest.raises(InvalidArgument):
            Site.from_record(record)


class TestLocationSample:
    """Tests for LocationSample validation."""

    def test_valid_sample(self):
        sample = LocationSample(point=CENTER, accuracy_meters=12.5, observed_at=T0)
        assert sample.point == CENTER

    def test_negative_accuracy_rejected(self):
        with pytest.raises(InvalidArgument):
            LocationSample(point=CENTER, accuracy_meters=-1.0, observed_at=T0)

    def test_point_must_be_geopoint(self):
        with pytest.raises(InvalidArgument):
            LocationSample(point=(1.0, 2.0), accuracy_meters=1.0, observed_at=T0)


def test_intent_override_flag_follows_cause():
    manual = StatusIntent("s", Status.OPEN, Status.CLOSED, Cause.MANUAL, 0)
    automatic = StatusIntent("s", Status.OPEN, Status.CLOSED, Cause.AUTOMATIC, 0)

    assert manual.override_active is True
    assert automatic.override_active is False


def test_geopoint_from_dict():
    assert GeoPoint.from_dict({"latitude": 1.5, "longitude": -3.0}) == GeoPoint(1.5, -3.0)
