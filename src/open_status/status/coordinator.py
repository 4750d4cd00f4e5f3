"""UpdateCoordinator - the single write path for site status.

Turns StatusIntents into version-guarded writes against the record store
and keeps the SiteRegistry in sync with what was stored.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from open_status.core.bus import utc_now
from open_status.core.errors import InvalidArgument, StaleVersion, TransientStoreFailure
from open_status.core.geo import GeoPoint

from .adapter import RecordStore
from .config import RetryPolicy
from .engine import ReconciliationEngine
from .models import Site, StatusIntent
from .registry import SiteRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

CommitListener = Callable[[StatusIntent, Site], None]
RefreshListener = Callable[[Site, Site], None]


class UpdateCoordinator:
    """
    Serializes status intents into durable writes.

    Guarantees:
    - A write only lands if the stored version equals the intent's
      based_on_version (stale writes are rejected, never merged)
    - Version conflicts are resolved by re-reading and re-evaluating
    - Transient store failures are retried with exponential backoff
    - Every new stored value reaches a listener: on_commit for our own
      writes, on_refresh for values picked up while resolving a conflict

    Callers must hold the site's registry lock for the whole commit.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: SiteRegistry,
        engine: ReconciliationEngine,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        on_commit: Optional[CommitListener] = None,
        on_refresh: Optional[RefreshListener] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._engine = engine
        self._retry = retry_policy or RetryPolicy()
        self._clock = clock
        self._on_commit = on_commit
        self._on_refresh = on_refresh

    async def commit(self, intent: StatusIntent, location: Optional[GeoPoint] = None) -> Site:
        """
        Commit an intent, resolving conflicts against the store.

        Args:
            intent: The intent to write
            location: Best known location, used to re-evaluate after a conflict

        Returns:
            The site as stored after the commit (or after conflict recovery)

        Raises:
            TransientStoreFailure: If the retry budget ran out; the intent is dropped
            InvalidArgument: If the site's record disappeared from the store
        """
        current = intent
        conflicts = 0

        while True:
            try:
                site = await self._write(current)
            except StaleVersion as e:
                conflicts += 1
                logger.info(f"Version conflict on {current.site_id}: {e}; re-reading")
                fresh = await self._refresh(current.site_id)

                follow_up = None
                if location is not None:
                    follow_up = self._engine.evaluate(fresh, location)
                if follow_up is None:
                    return fresh
                if conflicts >= self._retry.max_attempts:
                    logger.warning(
                        f"Giving up on {current.site_id} after {conflicts} conflicts; "
                        f"next reconciliation pass will retry"
                    )
                    return fresh
                current = follow_up
                continue

            self._registry.replace(site)
            logger.info(
                f"Committed {site.id}: {current.from_status.display} -> {site.status_text} "
                f"(version={site.version}, cause={current.cause.value})"
            )
            if self._on_commit:
                self._on_commit(current, site)
            return site

    async def _write(self, intent: StatusIntent) -> Site:
        changed_at = self._clock()

        async def attempt() -> Site:
            return await self._store.conditional_update(
                intent.site_id,
                expected_version=intent.based_on_version,
                status=intent.to_status,
                override_active=intent.override_active,
                changed_at=changed_at,
            )

        return await self._with_retry(attempt, intent.site_id, "write")

    async def _refresh(self, site_id: str) -> Site:
        """Re-read a site from the store, update the registry and report changes."""
        previous = self._registry.get(site_id)
        fresh = await self._with_retry(lambda: self._store.fetch_site(site_id), site_id, "read")
        if fresh is None:
            self._registry.deregister(site_id)
            raise InvalidArgument(f"Site '{site_id}' no longer exists in the store")

        self._registry.replace(fresh)
        if previous is not None and _changed(previous, fresh):
            logger.info(
                f"Picked up stored change on {site_id}: {fresh.status_text} "
                f"(version={fresh.version}, override={fresh.override_active})"
            )
            if self._on_refresh:
                self._on_refresh(previous, fresh)
        return fresh

    async def _with_retry(
        self, operation: Callable[[], Awaitable[T]], site_id: str, what: str
    ) -> T:
        """
        Run a store operation, retrying transient failures with backoff.

        Each retry re-issues the same version-guarded request, so a writeset
        that went stale while we slept is rejected by the store rather than
        applied. CancelledError is never caught.
        """
        last_error: Optional[TransientStoreFailure] = None
        for attempt in range(self._retry.max_attempts):
            try:
                return await operation()
            except TransientStoreFailure as e:
                last_error = e
                if attempt + 1 >= self._retry.max_attempts:
                    break
                delay = self._retry.delay_for(attempt)
                logger.warning(
                    f"Store {what} for {site_id} failed ({e}); "
                    f"retry {attempt + 1}/{self._retry.max_attempts - 1} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        logger.error(f"Store {what} for {site_id} failed {self._retry.max_attempts} times; dropping")
        raise TransientStoreFailure(
            f"Store {what} for site '{site_id}' failed after "
            f"{self._retry.max_attempts} attempts: {last_error}",
            site_id=site_id,
            attempts=self._retry.max_attempts,
        ) from last_error


def _changed(previous: Site, fresh: Site) -> bool:
    return (
        previous.status is not fresh.status
        or previous.override_active != fresh.override_active
        or previous.version != fresh.version
    )
