"""Tests for the ReconciliationEngine decision logic."""

import math
from dataclasses import replace

import pytest

from open_status import Cause, GeoPoint, ReconciliationEngine, Status, distance

from factories import CENTER, FAR, OTHER_CENTER, make_site, sample_at


@pytest.fixture
def engine():
    """Engine trusting samples up to 100 m accuracy."""
    return ReconciliationEngine(max_accuracy_meters=100.0)


class TestEvaluate:
    """Tests for automatic evaluation."""

    def test_inside_radius_opens(self, engine):
        """Scenario: sample at the center of an UNKNOWN site."""
        site = make_site()
        intent = engine.evaluate(site, CENTER)

        assert intent is not None
        assert intent.site_id == "shop"
        assert intent.from_status is Status.UNKNOWN
        assert intent.to_status is Status.OPEN
        assert intent.cause is Cause.AUTOMATIC
        assert intent.based_on_version == 0
        assert intent.override_active is False

    def test_outside_radius_closes(self, engine):
        """Scenario: sample ~505 m away from an OPEN site."""
        site = make_site(status=Status.OPEN, version=3)
        intent = engine.evaluate(site, FAR)

        assert intent.to_status is Status.CLOSED
        assert intent.from_status is Status.OPEN
        assert intent.based_on_version == 3

    def test_no_intent_when_status_already_correct(self, engine):
        """Idempotence: no redundant writes."""
        assert engine.evaluate(make_site(status=Status.OPEN), CENTER) is None
        assert engine.evaluate(make_site(status=Status.CLOSED), FAR) is None

    def test_override_suppresses_evaluation(self, engine):
        """Automatic evaluation never touches an overridden site."""
        site = make_site(status=Status.OPEN, override_active=True)
        assert engine.evaluate(site, FAR) is None

        site = make_site(status=Status.CLOSED, override_active=True)
        assert engine.evaluate(site, CENTER) is None

    def test_boundary_is_inside(self, engine):
        """A location exactly on the radius counts as inside."""
        radius = distance(CENTER, FAR)
        site = make_site(radius=radius, status=Status.CLOSED)

        intent = engine.evaluate(site, FAR)

        assert intent is not None
        assert intent.to_status is Status.OPEN

    def test_just_past_boundary_is_outside(self, engine):
        """Slightly beyond the radius counts as outside."""
        radius = distance(CENTER, FAR) - 0.5
        site = make_site(radius=radius, status=Status.OPEN)

        assert engine.evaluate(site, FAR).to_status is Status.CLOSED

    def test_evaluation_does_not_mutate_site(self, engine):
        site = make_site()
        before = replace(site)
        engine.evaluate(site, CENTER)
        assert site == before


class TestHysteresis:
    """Tests for the optional exit margin."""

    def test_open_site_stays_open_inside_margin(self):
        """An open site needs to pass radius + margin to close."""
        engine = ReconciliationEngine(max_accuracy_meters=100.0, hysteresis_meters=20.0)
        radius = distance(CENTER, FAR) - 10.0
        site = make_site(radius=radius, status=Status.OPEN)

        assert engine.evaluate(site, FAR) is None

    def test_open_site_closes_beyond_margin(self):
        """Past radius + margin the site closes."""
        engine = ReconciliationEngine(max_accuracy_meters=100.0, hysteresis_meters=5.0)
        radius = distance(CENTER, FAR) - 10.0
        site = make_site(radius=radius, status=Status.OPEN)

        assert engine.evaluate(site, FAR).to_status is Status.CLOSED

    def test_closed_site_opens_only_inside_radius(self):
        """The margin does not widen the entry boundary."""
        engine = ReconciliationEngine(max_accuracy_meters=100.0, hysteresis_meters=20.0)
        radius = distance(CENTER, FAR) - 10.0
        site = make_site(radius=radius, status=Status.CLOSED)

        assert engine.evaluate(site, FAR) is None

    def test_zero_margin_matches_plain_radius(self, engine):
        radius = distance(CENTER, FAR) - 10.0
        site = make_site(radius=radius, status=Status.OPEN)
        assert engine.desired_status(site, FAR) is Status.CLOSED


class TestSampleAccuracy:
    """Tests for coarse-sample rejection."""

    def test_accepts_accurate_sample(self, engine):
        assert engine.accepts(sample_at(CENTER, accuracy=10.0)) is True

    def test_accepts_sample_at_threshold(self, engine):
        assert engine.accepts(sample_at(CENTER, accuracy=100.0)) is True

    def test_rejects_coarse_sample(self, engine):
        assert engine.accepts(sample_at(CENTER, accuracy=100.1)) is False

    def test_infinite_threshold_accepts_everything(self):
        engine = ReconciliationEngine(max_accuracy_meters=math.inf)
        assert engine.accepts(sample_at(CENTER, accuracy=5000.0)) is True


class TestToggle:
    """Tests for manual toggling."""

    def test_open_toggles_to_closed(self, engine):
        intent = engine.toggle(make_site(status=Status.OPEN, version=2))

        assert intent.to_status is Status.CLOSED
        assert intent.cause is Cause.MANUAL
        assert intent.override_active is True
        assert intent.based_on_version == 2

    def test_closed_toggles_to_open(self, engine):
        assert engine.toggle(make_site(status=Status.CLOSED)).to_status is Status.OPEN

    def test_unknown_toggles_to_open(self, engine):
        assert engine.toggle(make_site()).to_status is Status.OPEN

    def test_toggle_overridden_site_still_produces_intent(self, engine):
        """Toggling is an explicit action and is never a no-op."""
        site = make_site(status=Status.OPEN, override_active=True)
        intent = engine.toggle(site)

        assert intent.to_status is Status.CLOSED
        assert intent.cause is Cause.MANUAL


class TestClearOverride:
    """Tests for returning to automatic mode."""

    def test_clear_converges_to_automatic_status(self, engine):
        """Scenario: override OPEN while 505 m away, clearing closes."""
        site = make_site(status=Status.OPEN, override_active=True, version=4)
        intent = engine.clear_override(site, FAR)

        assert intent.to_status is Status.CLOSED
        assert intent.cause is Cause.AUTOMATIC
        assert intent.override_active is False
        assert intent.based_on_version == 4

    def test_clear_writes_flag_even_when_status_matches(self, engine):
        """The override flag itself must be persisted."""
        site = make_site(status=Status.OPEN, override_active=True)
        intent = engine.clear_override(site, CENTER)

        assert intent is not None
        assert intent.from_status is Status.OPEN
        assert intent.to_status is Status.OPEN
        assert intent.override_active is False

    def test_clear_without_location_keeps_status(self, engine):
        site = make_site(status=Status.CLOSED, override_active=True)
        intent = engine.clear_override(site, None)

        assert intent.to_status is Status.CLOSED
        assert intent.override_active is False

    def test_clear_on_automatic_site_behaves_like_evaluate(self, engine):
        site = make_site(status=Status.OPEN)

        assert engine.clear_override(site, CENTER) is None
        assert engine.clear_override(site, FAR).to_status is Status.CLOSED
        assert engine.clear_override(site, None) is None


class TestNearestSite:
    """Tests for the nearest-site lookup."""

    def test_nearest_site(self, engine):
        a = make_site("a", center=CENTER)
        b = make_site("b", center=OTHER_CENTER)

        south = GeoPoint(37.7720, -122.4194)

        site, d = engine.nearest_site([a, b], south)

        assert site.id == "a"
        assert d == pytest.approx(distance(CENTER, south))

    def test_nearest_site_past_midpoint(self, engine):
        a = make_site("a", center=CENTER)
        b = make_site("b", center=OTHER_CENTER)

        site, _ = engine.nearest_site([a, b], FAR)

        assert site.id == "b"

    def test_nearest_site_empty(self, engine):
        assert engine.nearest_site([], CENTER) is None

    def test_site_within_radius(self, engine):
        a = make_site("a", center=CENTER, radius=50.0)
        b = make_site("b", center=OTHER_CENTER, radius=100.0)

        assert engine.site_within_radius([a, b], CENTER).id == "a"
        assert engine.site_within_radius([a, b], FAR) is None

    def test_site_within_radius_uses_nearest_only(self, engine):
        """A large far site does not win over a nearer small one."""
        near_small = make_site("small", center=CENTER, radius=10.0)
        far_large = make_site("large", center=OTHER_CENTER, radius=5000.0)
        location = GeoPoint(37.7750, -122.4194)  # ~11 m from CENTER

        assert engine.site_within_radius([near_small, far_large], location) is None
