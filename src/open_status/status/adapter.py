"""
Collaborator interfaces for the status engine.

The adapters are the seam between the engine and the host platform: the
record store that persists sites and the source of device locations. The
host provides concrete implementations; the in-memory versions here back
the test suite and the example script.

Design Principle:
    The interfaces are intentionally minimal. The engine only needs a
    version-guarded write and a bulk read by owner from the store, and a
    stream of samples from the location source. Searching, change feeds,
    permission prompts and sampling policy belong to the host.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Union

from open_status.core.errors import (
    InvalidArgument,
    LocationSourceError,
    StaleVersion,
    TransientStoreFailure,
)

from .models import LocationSample, Site, Status

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """
    Abstract interface for the durable site store.

    The store is the source of truth across devices and sessions.
    """

    @abstractmethod
    async def fetch_sites(self, owner_id: str) -> List[Site]:
        """
        Bulk-read all sites belonging to an owner.

        Raises:
            TransientStoreFailure: If the store could not be reached
        """

    @abstractmethod
    async def fetch_site(self, site_id: str) -> Optional[Site]:
        """
        Read the current stored value of one site.

        Returns:
            The stored Site, or None if the record no longer exists

        Raises:
            TransientStoreFailure: If the store could not be reached
        """

    @abstractmethod
    async def conditional_update(
        self,
        site_id: str,
        expected_version: int,
        status: Status,
        override_active: bool,
        changed_at: datetime,
    ) -> Site:
        """
        Write status fields only if the stored version equals expected_version.

        On success the stored version becomes expected_version + 1.

        Returns:
            The Site as stored after the write

        Raises:
            StaleVersion: If the stored version differs from expected_version
            TransientStoreFailure: If the store could not be reached
            InvalidArgument: If the record does not exist
        """


class LocationSource(ABC):
    """
    Abstract push channel of device location samples.

    The stream may end normally or raise PermissionDenied /
    ServiceUnavailable, after which the session runs degraded until
    stream() is called again.
    """

    @abstractmethod
    def stream(self) -> AsyncIterator[LocationSample]:
        """Return an async iterator of samples."""


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store for testing and demos.

    Supports fault injection (transient failures, latency) and simulated
    writes from other devices.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._records: Dict[str, Site] = {}
        self._latency = latency
        self._fail_writes = 0
        self._fail_reads = 0
        self._apply_before_failing = False
        self.writes: list[tuple[str, int, Status, bool]] = []
        self.write_attempts = 0

    def put_site(self, site: Site) -> Site:
        """Insert or overwrite a record (no version check)."""
        self._records[site.id] = site
        return site

    def get_site(self, site_id: str) -> Optional[Site]:
        """Synchronous peek at a stored record for assertions."""
        return self._records.get(site_id)

    def set_latency(self, seconds: float) -> None:
        self._latency = seconds

    def fail_next_writes(self, count: int, apply_before_failing: bool = False) -> None:
        """
        Make the next count conditional writes raise TransientStoreFailure.

        With apply_before_failing the write lands and only the
        acknowledgement is lost.
        """
        self._fail_writes = count
        self._apply_before_failing = apply_before_failing

    def fail_next_reads(self, count: int) -> None:
        self._fail_reads = count

    def external_update(
        self,
        site_id: str,
        status: Optional[Status] = None,
        override_active: Optional[bool] = None,
        changed_at: Optional[datetime] = None,
    ) -> Site:
        """Simulate a write from another device or session."""
        current = self._records[site_id]
        updated = replace(
            current,
            status=status if status is not None else current.status,
            override_active=(
                override_active if override_active is not None else current.override_active
            ),
            last_change_at=changed_at or current.last_change_at,
            version=current.version + 1,
        )
        self._records[site_id] = updated
        return updated

    async def _pause(self) -> None:
        # Always yield so concurrent callers interleave like real I/O
        await asyncio.sleep(self._latency)

    def _maybe_fail_read(self) -> None:
        if self._fail_reads > 0:
            self._fail_reads -= 1
            raise TransientStoreFailure("Injected read failure")

    async def fetch_sites(self, owner_id: str) -> List[Site]:
        await self._pause()
        self._maybe_fail_read()
        return [s for s in self._records.values() if s.owner_id == owner_id]

    async def fetch_site(self, site_id: str) -> Optional[Site]:
        await self._pause()
        self._maybe_fail_read()
        return self._records.get(site_id)

    async def conditional_update(
        self,
        site_id: str,
        expected_version: int,
        status: Status,
        override_active: bool,
        changed_at: datetime,
    ) -> Site:
        await self._pause()
        self.write_attempts += 1

        if self._fail_writes > 0 and not self._apply_before_failing:
            self._fail_writes -= 1
            raise TransientStoreFailure("Injected write failure", site_id=site_id)

        current = self._records.get(site_id)
        if current is None:
            raise InvalidArgument(f"No stored record for site '{site_id}'")
        if current.version != expected_version:
            raise StaleVersion(site_id, expected_version, current.version)

        updated = replace(
            current,
            status=status,
            override_active=override_active,
            last_change_at=changed_at,
            version=expected_version + 1,
            needs_reevaluation=False,
        )
        self._records[site_id] = updated
        self.writes.append((site_id, updated.version, status, override_active))

        if self._fail_writes > 0:
            self._fail_writes -= 1
            raise TransientStoreFailure("Injected lost acknowledgement", site_id=site_id)

        return updated


class _StreamEnd:
    pass


_END = _StreamEnd()


class QueueLocationSource(LocationSource):
    """
    In-memory push source for testing and demos.

    Samples pushed before anyone listens are buffered.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Union[LocationSample, LocationSourceError, _StreamEnd]] = (
            asyncio.Queue()
        )

    def push(self, sample: LocationSample) -> None:
        self._queue.put_nowait(sample)

    def fail(self, error: LocationSourceError) -> None:
        """Terminate the current stream with a source error."""
        self._queue.put_nowait(error)

    def close(self) -> None:
        """End the current stream normally."""
        self._queue.put_nowait(_END)

    async def join(self) -> None:
        """Wait until every pushed item has been handled by the consumer."""
        await self._queue.join()

    async def stream(self) -> AsyncIterator[LocationSample]:
        while True:
            item = await self._queue.get()
            # task_done runs when the consumer asks for the next item
            try:
                if isinstance(item, _StreamEnd):
                    return
                if isinstance(item, LocationSourceError):
                    raise item
                yield item
            finally:
                self._queue.task_done()
