"""
Status reconciliation for open-status.

Derives each site's OPEN/CLOSED status from the owner's device location.

Features:
- Inclusive radius check per site (optional exit hysteresis)
- Coarse-sample rejection by reported accuracy
- Manual toggle pins the status until the override is cleared
- Optimistic concurrency via per-site versions
- Bounded exponential backoff on store failures
- Degraded mode when the location source fails

Events Emitted:
- status.changed, session.state_changed, session.degraded, session.error
"""

from .adapter import InMemoryRecordStore, LocationSource, QueueLocationSource, RecordStore
from .config import MonitoringConfig, RetryPolicy, config_schema, default_config, migrate_config
from .coordinator import UpdateCoordinator
from .engine import ReconciliationEngine
from .models import (
    Cause,
    LocationSample,
    SessionError,
    SessionState,
    Site,
    Status,
    StatusIntent,
)
from .registry import SiteRegistry
from .session import MonitoringSession

__all__ = [
    "InMemoryRecordStore",
    "LocationSource",
    "QueueLocationSource",
    "RecordStore",
    "MonitoringConfig",
    "RetryPolicy",
    "config_schema",
    "default_config",
    "migrate_config",
    "UpdateCoordinator",
    "ReconciliationEngine",
    "Cause",
    "LocationSample",
    "SessionError",
    "SessionState",
    "Site",
    "Status",
    "StatusIntent",
    "SiteRegistry",
    "MonitoringSession",
]
