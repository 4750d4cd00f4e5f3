"""Data models for the status engine.

All model classes are frozen (immutable). A Site is updated by replacing
it in the SiteRegistry, never by mutating it in place.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from open_status.core.errors import InvalidArgument
from open_status.core.geo import GeoPoint, distance


class Status(Enum):
    """Broadcast status of a site.

    UNKNOWN is the initial value and is never re-entered once exited.
    """

    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Status":
        """Validate a status coming from outside the engine.

        Raises:
            InvalidArgument: If value is not a Status or a known status string.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidArgument(f"Unknown status: {value!r}")

    @property
    def display(self) -> str:
        return self.value.upper()


class Cause(Enum):
    """Why a status intent was produced."""

    AUTOMATIC = "automatic"  # Proximity decision
    MANUAL = "manual"  # Owner action, pins the override


class SessionState(Enum):
    """Lifecycle of a MonitoringSession."""

    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass(frozen=True)
class Site:
    """A registered place whose open/closed status is broadcast.

    Attributes:
        id: Unique, owner-scoped identifier.
        owner_id: Owner the site belongs to.
        center: Center of the circular region.
        radius_meters: Region radius (must be > 0).
        name: Display name.
        status: Current broadcast status.
        override_active: True while a manual status pin is in effect.
        last_change_at: When status or override last changed (None if never).
        version: Optimistic-concurrency counter, +1 per accepted write.
        needs_reevaluation: Set when the override was cleared before any
            location was known; cleared by the next committed write.
    """

    id: str
    owner_id: str
    center: GeoPoint
    radius_meters: float
    name: str = ""
    status: Status = Status.UNKNOWN
    override_active: bool = False
    last_change_at: datetime | None = None
    version: int = 0
    needs_reevaluation: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidArgument("Site id must be non-empty")
        if not isinstance(self.center, GeoPoint):
            raise InvalidArgument(f"Site center must be a GeoPoint, got {self.center!r}")
        if not (isinstance(self.radius_meters, (int, float)) and math.isfinite(self.radius_meters)):
            raise InvalidArgument(f"Site radius must be a finite number: {self.radius_meters!r}")
        if self.radius_meters <= 0:
            raise InvalidArgument(f"Site radius must be > 0, got {self.radius_meters}")
        if self.version < 0:
            raise InvalidArgument(f"Site version must be >= 0, got {self.version}")
        # Validate at the boundary; normalizes "open" -> Status.OPEN
        object.__setattr__(self, "status", Status.parse(self.status))

    @property
    def is_open(self) -> bool:
        return self.status is Status.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status is Status.CLOSED

    @property
    def status_text(self) -> str:
        return self.status.display

    def distance_from(self, point: GeoPoint) -> float:
        """Distance from the site center to point, in meters."""
        return distance(self.center, point)

    def contains(self, point: GeoPoint) -> bool:
        """True if point lies within the radius (boundary inclusive)."""
        return self.distance_from(point) <= self.radius_meters

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the record-store mapping."""
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "name": self.name,
            "location": self.center.to_dict(),
            "radiusMeters": self.radius_meters,
            "status": self.status.value,
            "isManualOverride": self.override_active,
            "lastStatusChange": self.last_change_at.isoformat() if self.last_change_at else None,
            "version": self.version,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], default_radius: float = 50.0) -> "Site":
        """Build a Site from a record-store mapping.

        Args:
            record: Mapping in the shape produced by to_record().
            default_radius: Radius used when the record carries none.

        Raises:
            InvalidArgument: If required fields are missing or malformed.
        """
        try:
            last_change = record.get("lastStatusChange")
            if isinstance(last_change, str):
                last_change = datetime.fromisoformat(last_change)
            return cls(
                id=record["id"],
                owner_id=record.get("ownerId", ""),
                name=record.get("name", ""),
                center=GeoPoint.from_dict(record["location"]),
                radius_meters=record.get("radiusMeters", default_radius),
                status=Status.parse(record.get("status", Status.UNKNOWN.value)),
                override_active=bool(record.get("isManualOverride", False)),
                last_change_at=last_change,
                version=int(record.get("version", 0)),
            )
        except InvalidArgument:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidArgument(f"Malformed site record: {e}") from e


@dataclass(frozen=True)
class LocationSample:
    """A device location fix from the location source (untrusted input).

    Attributes:
        point: Reported position.
        accuracy_meters: Reported horizontal accuracy radius.
        observed_at: When the fix was taken.
    """

    point: GeoPoint
    accuracy_meters: float
    observed_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.point, GeoPoint):
            raise InvalidArgument(f"Sample point must be a GeoPoint, got {self.point!r}")
        if not isinstance(self.accuracy_meters, (int, float)) or math.isnan(self.accuracy_meters):
            raise InvalidArgument(f"Sample accuracy must be a number: {self.accuracy_meters!r}")
        if self.accuracy_meters < 0:
            raise InvalidArgument(f"Sample accuracy must be >= 0, got {self.accuracy_meters}")


@dataclass(frozen=True)
class StatusIntent:
    """A proposed, not-yet-committed status change.

    Consumed exactly once by the UpdateCoordinator.
    """

    site_id: str
    from_status: Status
    to_status: Status
    cause: Cause
    based_on_version: int

    @property
    def override_active(self) -> bool:
        """Override flag the write will store."""
        return self.cause is Cause.MANUAL


@dataclass(frozen=True)
class SessionError:
    """A surfaced error recorded by the session for observability."""

    kind: str
    message: str
    site_id: Optional[str] = None
    occurred_at: datetime | None = None
    details: Dict[str, Any] = field(default_factory=dict)
