"""
open-status: Broadcast whether a place of business is open from the owner's location.

This library provides the proximity-based status reconciliation engine:
- Great-circle distance and site geometry
- Per-site serialized reconciliation of location samples and timer ticks
- Version-guarded writes with bounded retry
- Manual override that pins a status until cleared
"""

from open_status.core.bus import Event, EventBus, EventFilter
from open_status.core.errors import (
    CommitError,
    InvalidArgument,
    LocationSourceError,
    OpenStatusError,
    PermissionDenied,
    ServiceUnavailable,
    SessionStopped,
    StaleVersion,
    TransientStoreFailure,
)
from open_status.core.geo import GeoPoint, distance
from open_status.status import (
    Cause,
    InMemoryRecordStore,
    LocationSample,
    LocationSource,
    MonitoringConfig,
    MonitoringSession,
    QueueLocationSource,
    ReconciliationEngine,
    RecordStore,
    RetryPolicy,
    SessionState,
    Site,
    SiteRegistry,
    Status,
    StatusIntent,
    UpdateCoordinator,
)

__version__ = "0.1.0"

__all__ = [
    "Event",
    "EventBus",
    "EventFilter",
    "GeoPoint",
    "distance",
    "OpenStatusError",
    "InvalidArgument",
    "LocationSourceError",
    "PermissionDenied",
    "ServiceUnavailable",
    "SessionStopped",
    "CommitError",
    "StaleVersion",
    "TransientStoreFailure",
    "Cause",
    "InMemoryRecordStore",
    "LocationSample",
    "LocationSource",
    "MonitoringConfig",
    "MonitoringSession",
    "QueueLocationSource",
    "ReconciliationEngine",
    "RecordStore",
    "RetryPolicy",
    "SessionState",
    "Site",
    "SiteRegistry",
    "Status",
    "StatusIntent",
    "UpdateCoordinator",
]
