"""MonitoringSession - lifecycle and public API of the status engine.

A session wires the ReconciliationEngine and UpdateCoordinator to the
host's collaborators: it loads the owner's sites, listens to the location
source, runs the periodic reconciliation timer and exposes the manual
toggle / override-clear entry points.
"""

import asyncio
import logging
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Coroutine, Deque, List, Optional, Set, Tuple

from open_status.core.bus import Event, EventBus, utc_now
from open_status.core.errors import (
    InvalidArgument,
    LocationSourceError,
    OpenStatusError,
    SessionStopped,
    TransientStoreFailure,
)

from .adapter import LocationSource, RecordStore
from .config import MonitoringConfig
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

logger = logging.getLogger(__name__)


class MonitoringSession:
    """
    Broadcasts an owner's site statuses from their device location.

    Features:
    - Sample-driven and timer-driven reconciliation of every site
    - Per-site serialization, cross-site concurrency
    - Manual toggle with override, and override clearing
    - Degraded mode when the location source fails
    - Observer events on the EventBus

    Events Emitted:
    - status.changed: After every committed status write, and when a
      conflict picks up a newer value from the store
    - session.state_changed: On STOPPED/STARTING/ACTIVE transitions
    - session.degraded: When the location source terminates with an error
    - session.error: When an error is surfaced (e.g. retries exhausted)

    Note: The host's background scheduler should call
    run_reconciliation_pass() when the process is woken up.
    """

    def __init__(
        self,
        store: RecordStore,
        location_source: LocationSource,
        config: MonitoringConfig,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._source = location_source
        self._config = config
        self._bus = bus or EventBus()
        self._clock = clock

        self._registry = SiteRegistry()
        self._engine = ReconciliationEngine(
            max_accuracy_meters=config.max_accuracy_meters,
            hysteresis_meters=config.hysteresis_meters,
        )
        self._coordinator = UpdateCoordinator(
            store,
            self._registry,
            self._engine,
            retry_policy=config.retry,
            clock=clock,
            on_commit=self._on_commit,
            on_refresh=self._on_refresh,
        )

        self._state = SessionState.STOPPED
        self._owner_id: Optional[str] = None
        self._last_sample: Optional[LocationSample] = None
        self._degraded = False
        self._subscription_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._errors: Deque[SessionError] = deque(maxlen=config.error_history_size)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def degraded(self) -> bool:
        """True while the location source is down; evaluation uses the last sample."""
        return self._degraded

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def last_sample(self) -> Optional[LocationSample]:
        return self._last_sample

    @property
    def errors(self) -> List[SessionError]:
        """Recently surfaced errors, oldest first."""
        return list(self._errors)

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def engine(self) -> ReconciliationEngine:
        return self._engine

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, owner_id: str) -> "MonitoringSession":
        """
        Load the owner's sites and begin monitoring.

        A start() while STARTING or ACTIVE is a no-op.

        Args:
            owner_id: Owner whose sites should be monitored

        Returns:
            This session

        Raises:
            InvalidArgument: If owner_id is empty
            TransientStoreFailure: If the sites could not be loaded
        """
        if self._state is not SessionState.STOPPED:
            logger.debug(f"start() ignored, session is {self._state.value}")
            return self
        if not owner_id:
            raise InvalidArgument("owner_id must be non-empty")

        self._owner_id = owner_id
        self._set_state(SessionState.STARTING)
        try:
            sites = await self._store.fetch_sites(owner_id)
        except BaseException:
            self._owner_id = None
            self._set_state(SessionState.STOPPED)
            raise

        if self._state is not SessionState.STARTING:
            # stop() was called while loading
            return self

        for site in sites:
            self._registry.register(site)
        if not sites:
            logger.warning(f"No sites found for owner: {owner_id}")

        self._degraded = False
        self._subscription_task = asyncio.create_task(self._consume_samples())
        self._timer_task = asyncio.create_task(self._timer_loop())
        self._set_state(SessionState.ACTIVE)
        logger.info(f"Monitoring started for {len(sites)} sites (owner={owner_id})")
        return self

    async def stop(self) -> None:
        """
        Stop monitoring. Idempotent.

        Cancels the subscription, the timer and every in-flight
        reconciliation or commit; uncommitted intents are dropped.
        """
        if self._state is SessionState.STOPPED:
            return

        current = asyncio.current_task()
        tasks = [
            t
            for t in (self._subscription_task, self._timer_task, *self._tasks)
            if t is not None and t is not current
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._subscription_task = None
        self._timer_task = None
        self._tasks.clear()
        self._registry.clear()
        self._last_sample = None
        self._degraded = False
        owner_id = self._owner_id
        self._set_state(SessionState.STOPPED)
        self._owner_id = None
        logger.info(f"Monitoring stopped (owner={owner_id})")

    async def resume_location_updates(self) -> bool:
        """
        Re-subscribe to the location source after it terminated.

        Returns:
            True if a new subscription was started
        """
        if not self.is_active:
            return False
        if self._subscription_task and not self._subscription_task.done():
            return False

        self._degraded = False
        self._subscription_task = asyncio.create_task(self._consume_samples())
        logger.info("Location updates resumed")
        return True

    # =========================================================================
    # Automatic path
    # =========================================================================

    async def handle_sample(self, sample: LocationSample) -> List[Site]:
        """
        Evaluate every site against a new sample and wait for the commits.

        Returns:
            Sites after reconciliation (empty if the sample was ignored)
        """
        if not self.is_active:
            logger.debug("Sample ignored, session not active")
            return []
        if not self._accept_sample(sample):
            return []
        return self._collect(await asyncio.gather(*self._spawn_pass(), return_exceptions=True))

    async def run_reconciliation_pass(self) -> List[Site]:
        """
        Re-evaluate all sites against the last known sample.

        Entry point for the timer and for the host's background scheduler.
        """
        if not self.is_active:
            logger.debug("Reconciliation pass skipped, session not active")
            return []
        if self._last_sample is None:
            logger.debug("Reconciliation pass skipped, no location yet")
            return list(self._registry.snapshot())

        logger.debug(f"Reconciliation pass over {len(self._registry)} sites")
        return self._collect(await asyncio.gather(*self._spawn_pass(), return_exceptions=True))

    async def wait_idle(self) -> None:
        """Wait until no reconciliation or commit is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _accept_sample(self, sample: LocationSample) -> bool:
        if not self._engine.accepts(sample):
            return False
        last = self._last_sample
        if last is not None and sample.observed_at < last.observed_at:
            logger.debug(f"Ignoring out-of-order sample from {sample.observed_at.isoformat()}")
            return False
        self._last_sample = sample
        return True

    def _spawn_pass(self) -> List[asyncio.Task]:
        return [self._spawn(self._reconcile_site(site_id)) for site_id in self._registry.site_ids()]

    async def _reconcile_site(self, site_id: str) -> Optional[Site]:
        if site_id not in self._registry:
            return None

        async with self._registry.lock(site_id):
            site = self._registry.get(site_id)
            if site is None or self._last_sample is None:
                return site

            # Read the latest sample under the lock so queued passes converge on it
            location = self._last_sample.point
            intent = self._engine.evaluate(site, location)
            if intent is None:
                if site.needs_reevaluation and not site.override_active:
                    site = replace(site, needs_reevaluation=False)
                    self._registry.replace(site)
                return site

            try:
                return await self._coordinator.commit(intent, location)
            except TransientStoreFailure as e:
                self._record_error(e)
                return self._registry.get(site_id)
            except InvalidArgument as e:
                self._record_error(e, site_id=site_id)
                return None

    async def _consume_samples(self) -> None:
        try:
            async for sample in self._source.stream():
                if self._accept_sample(sample):
                    self._spawn_pass()
        except LocationSourceError as e:
            self._mark_degraded(e)
        else:
            logger.info("Location stream ended")

    async def _timer_loop(self) -> None:
        interval = self._config.reconcile_interval
        while True:
            await asyncio.sleep(interval)
            logger.debug("Reconciliation timer tick")
            await self.run_reconciliation_pass()

    # =========================================================================
    # Manual-action surface
    # =========================================================================

    async def toggle_status(self, site_id: str) -> Site:
        """
        Flip a site between OPEN and CLOSED and pin it (manual override).

        Raises:
            InvalidArgument: If the site is unknown
            SessionStopped: If stop() interrupted the action
        """
        return await self._run_action(self._toggle(site_id), f"toggle of {site_id}")

    async def clear_override(self, site_id: str) -> Site:
        """
        Return a site to automatic mode and converge it immediately.

        Without a known location the status is kept and the site is
        flagged for re-evaluation on the next sample.

        Raises:
            InvalidArgument: If the site is unknown
            SessionStopped: If stop() interrupted the action
        """
        return await self._run_action(
            self._clear_override(site_id), f"override clear of {site_id}"
        )

    def current_snapshot(self) -> Tuple[Site, ...]:
        """Read-only view of every monitored site."""
        return self._registry.snapshot()

    async def _toggle(self, site_id: str) -> Site:
        async with self._registry.lock(site_id):
            site = self._registry.require(site_id)
            intent = self._engine.toggle(site)
            return await self._commit_manual(intent)

    async def _clear_override(self, site_id: str) -> Site:
        async with self._registry.lock(site_id):
            site = self._registry.require(site_id)
            location = self._last_sample.point if self._last_sample else None
            intent = self._engine.clear_override(site, location)
            if intent is None:
                return site

            committed = await self._commit_manual(intent)
            if location is None and not committed.override_active:
                committed = replace(committed, needs_reevaluation=True)
                self._registry.replace(committed)
            return committed

    async def _commit_manual(self, intent: StatusIntent) -> Site:
        location = self._last_sample.point if self._last_sample else None
        try:
            return await self._coordinator.commit(intent, location)
        except TransientStoreFailure as e:
            self._record_error(e)
            return self._registry.require(intent.site_id)

    # =========================================================================
    # Site management
    # =========================================================================

    async def add_site(self, site: Site) -> Site:
        """
        Start monitoring a newly registered site.

        Raises:
            InvalidArgument: If the session is not active, the site belongs to
                another owner or is already monitored
        """
        if not self.is_active:
            raise InvalidArgument("Session is not active")
        if site.owner_id != self._owner_id:
            raise InvalidArgument(f"Site '{site.id}' belongs to another owner")

        self._registry.register(site)
        if self._last_sample is not None:
            reconciled = await self._run_action(
                self._reconcile_site(site.id), f"reconciliation of {site.id}"
            )
            if reconciled is not None:
                return reconciled
        return site

    async def remove_site(self, site_id: str) -> Site:
        """
        Stop monitoring a site. The stored record is left untouched.

        Raises:
            InvalidArgument: If the site is unknown
        """
        async with self._registry.lock(site_id):
            site = self._registry.require(site_id)
            self._registry.deregister(site_id)
            return site

    def nearest_site(self) -> Optional[Tuple[Site, float]]:
        """Closest monitored site to the last known sample, with its distance."""
        if self._last_sample is None:
            return None
        return self._engine.nearest_site(self._registry, self._last_sample.point)

    def distance_to_site(self, site_id: str) -> Optional[float]:
        """
        Distance in meters from the last known sample to a site.

        Raises:
            InvalidArgument: If the site is unknown
        """
        site = self._registry.require(site_id)
        if self._last_sample is None:
            return None
        return site.distance_from(self._last_sample.point)

    # =========================================================================
    # Internals
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_action(self, coro: Coroutine[Any, Any, Any], what: str) -> Any:
        """
        Run a caller-facing action as a tracked task.

        stop() cancels the task; the caller sees SessionStopped rather than
        a CancelledError it cannot tell apart from its own cancellation.
        """
        task = self._spawn(coro)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise SessionStopped(f"Session stopped before {what} completed") from None

    def _collect(self, results: List[Any]) -> List[Site]:
        sites = []
        for result in results:
            if isinstance(result, Site):
                sites.append(result)
            elif isinstance(result, Exception):
                logger.error(f"Reconciliation failed: {result}", exc_info=result)
        return sites

    def _set_state(self, state: SessionState) -> None:
        previous = self._state
        self._state = state
        self._bus.publish(
            Event(
                type="session.state_changed",
                source="session",
                payload={
                    "state": state.value,
                    "previous_state": previous.value,
                    "owner_id": self._owner_id,
                },
                timestamp=self._clock(),
            )
        )

    def _on_commit(self, intent: StatusIntent, site: Site) -> None:
        self._publish_status(site, intent.from_status, intent.cause.value)

    def _on_refresh(self, previous: Site, fresh: Site) -> None:
        # Written by another device, or our own write whose ack was lost
        cause = Cause.MANUAL if fresh.override_active else Cause.AUTOMATIC
        self._publish_status(fresh, previous.status, cause.value, refreshed=True)

    def _publish_status(
        self, site: Site, previous_status: Status, cause: str, refreshed: bool = False
    ) -> None:
        self._bus.publish(
            Event(
                type="status.changed",
                source="session",
                site_id=site.id,
                payload={
                    "status": site.status.value,
                    "previous_status": previous_status.value,
                    "override_active": site.override_active,
                    "version": site.version,
                    "cause": cause,
                    "refreshed": refreshed,
                    "last_change_at": (
                        site.last_change_at.isoformat() if site.last_change_at else None
                    ),
                },
                timestamp=self._clock(),
            )
        )

    def _mark_degraded(self, error: LocationSourceError) -> None:
        self._degraded = True
        logger.warning(f"Location source failed ({type(error).__name__}: {error}); degraded")
        self._record_error(error)
        self._bus.publish(
            Event(
                type="session.degraded",
                source="session",
                payload={"reason": type(error).__name__, "message": str(error)},
                timestamp=self._clock(),
            )
        )

    def _record_error(self, error: OpenStatusError, site_id: Optional[str] = None) -> None:
        site_id = site_id or getattr(error, "site_id", None)
        entry = SessionError(
            kind=type(error).__name__,
            message=str(error),
            site_id=site_id,
            occurred_at=self._clock(),
        )
        self._errors.append(entry)
        logger.warning(f"Recorded {entry.kind} for {site_id or 'session'}: {entry.message}")
        self._bus.publish(
            Event(
                type="session.error",
                source="session",
                site_id=site_id,
                payload={"kind": entry.kind, "message": entry.message},
                timestamp=self._clock(),
            )
        )
