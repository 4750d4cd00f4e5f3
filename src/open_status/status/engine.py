"""The Core Logic Engine for site status reconciliation.

This module contains the pure decision logic. It accepts a site and a
location and returns status intents. It performs no I/O and reads no
clock; the session feeds it, the coordinator commits what it returns.
"""

import logging
from typing import Iterable, Optional

from open_status.core.geo import GeoPoint

from .models import Cause, LocationSample, Site, Status, StatusIntent

_LOGGER = logging.getLogger(__name__)


class ReconciliationEngine:
    """The functional core of the status system."""

    def __init__(self, max_accuracy_meters: float, hysteresis_meters: float = 0.0) -> None:
        """Initialize the engine.

        Args:
            max_accuracy_meters: Samples with a coarser reported accuracy are
                not trusted. No default; pass math.inf to accept everything.
            hysteresis_meters: Extra distance beyond the radius an open site
                must reach before it is closed automatically.
        """
        self.max_accuracy_meters = max_accuracy_meters
        self.hysteresis_meters = hysteresis_meters

    def accepts(self, sample: LocationSample) -> bool:
        """Check whether a sample is accurate enough to evaluate against."""
        if sample.accuracy_meters > self.max_accuracy_meters:
            _LOGGER.debug(
                f"Ignoring coarse sample: accuracy {sample.accuracy_meters:.0f}m > "
                f"{self.max_accuracy_meters:.0f}m"
            )
            return False
        return True

    def desired_status(self, site: Site, location: GeoPoint) -> Status:
        """Proximity rule: OPEN within the radius (inclusive), CLOSED outside.

        An already open site only closes once it is hysteresis_meters past
        the radius.
        """
        d = site.distance_from(location)
        limit = site.radius_meters
        if site.status is Status.OPEN:
            limit += self.hysteresis_meters
        return Status.OPEN if d <= limit else Status.CLOSED

    def evaluate(self, site: Site, location: GeoPoint) -> Optional[StatusIntent]:
        """Decide whether a site's status should change for a location.

        Args:
            site: Current site value (read under the site's lock).
            location: Best known device location.

        Returns:
            An automatic StatusIntent, or None when overridden or already correct.
        """
        if site.override_active:
            _LOGGER.debug(f"  {site.id}: Skipped (manual override)")
            return None

        desired = self.desired_status(site, location)
        if desired is site.status:
            return None

        _LOGGER.info(
            f"  {site.id}: {site.status.display} -> {desired.display} "
            f"(distance={site.distance_from(location):.0f}m, radius={site.radius_meters:.0f}m)"
        )
        return StatusIntent(
            site_id=site.id,
            from_status=site.status,
            to_status=desired,
            cause=Cause.AUTOMATIC,
            based_on_version=site.version,
        )

    def toggle(self, site: Site) -> StatusIntent:
        """Flip a site's status as an explicit owner action.

        Always returns an intent. UNKNOWN toggles to OPEN.
        """
        target = Status.CLOSED if site.status is Status.OPEN else Status.OPEN
        _LOGGER.info(f"  {site.id}: Manual toggle {site.status.display} -> {target.display}")
        return StatusIntent(
            site_id=site.id,
            from_status=site.status,
            to_status=target,
            cause=Cause.MANUAL,
            based_on_version=site.version,
        )

    def clear_override(self, site: Site, location: Optional[GeoPoint]) -> Optional[StatusIntent]:
        """Return a site to automatic mode.

        When an override is active the flag itself has to be written, so an
        intent is always returned: towards the automatic status if a location
        is known, otherwise keeping the current status.

        Returns:
            The intent to commit, or None if nothing needs writing.
        """
        if not site.override_active:
            return self.evaluate(site, location) if location is not None else None

        target = site.status if location is None else self.desired_status(site, location)
        _LOGGER.info(
            f"  {site.id}: Override cleared, {site.status.display} -> {target.display}"
            + ("" if location is not None else " (no location yet)")
        )
        return StatusIntent(
            site_id=site.id,
            from_status=site.status,
            to_status=target,
            cause=Cause.AUTOMATIC,
            based_on_version=site.version,
        )

    def nearest_site(
        self, sites: Iterable[Site], location: GeoPoint
    ) -> Optional[tuple[Site, float]]:
        """Find the closest site to a location.

        Returns:
            (site, distance_meters), or None if there are no sites.
        """
        best: Optional[tuple[Site, float]] = None
        for site in sites:
            d = site.distance_from(location)
            if best is None or d < best[1]:
                best = (site, d)
        return best

    def site_within_radius(self, sites: Iterable[Site], location: GeoPoint) -> Optional[Site]:
        """The nearest site, but only if the location lies inside its radius."""
        nearest = self.nearest_site(sites, location)
        if nearest and nearest[1] <= nearest[0].radius_meters:
            return nearest[0]
        return None
