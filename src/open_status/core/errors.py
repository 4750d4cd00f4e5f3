"""
Error taxonomy for the status engine.

Recoverable conditions (StaleVersion, bounded TransientStoreFailure) are
absorbed by the UpdateCoordinator. InvalidArgument is raised synchronously
to callers of the public API.
"""

from typing import Optional


class OpenStatusError(Exception):
    """Base class for all engine errors."""


class InvalidArgument(OpenStatusError, ValueError):
    """Malformed input (bad coordinates, unknown site id, bad config)."""


class SessionStopped(OpenStatusError):
    """stop() interrupted a caller-facing action; nothing is written after the stop."""


class LocationSourceError(OpenStatusError):
    """The location source terminated; the session continues degraded."""


class PermissionDenied(LocationSourceError):
    """Location permission was revoked or never granted."""


class ServiceUnavailable(LocationSourceError):
    """The platform location service is switched off or unreachable."""


class CommitError(OpenStatusError):
    """A status write could not be committed to the record store."""

    def __init__(self, message: str, site_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.site_id = site_id


class StaleVersion(CommitError):
    """
    The stored version no longer matches the version an intent was based on.

    Attributes:
        expected_version: Version the writer believed was current
        actual_version: Version found in the store (None if unknown)
    """

    def __init__(
        self,
        site_id: str,
        expected_version: int,
        actual_version: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"Stale write for site '{site_id}': based on version {expected_version}, "
            f"store has {actual_version}",
            site_id=site_id,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class TransientStoreFailure(CommitError):
    """Network or store hiccup. Retried with backoff inside the coordinator."""

    def __init__(self, message: str, site_id: Optional[str] = None, attempts: int = 0) -> None:
        super().__init__(message, site_id=site_id)
        self.attempts = attempts
