"""
Core components of the open-status engine.

This package contains:
- geo: GeoPoint and great-circle distance
- errors: Error taxonomy
- bus: Event Bus for observer notifications
"""

from open_status.core.bus import Event, EventBus, EventFilter
from open_status.core.geo import GeoPoint, distance

__all__ = [
    "Event",
    "EventBus",
    "EventFilter",
    "GeoPoint",
    "distance",
]
