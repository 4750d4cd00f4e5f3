#!/usr/bin/env python3
"""
Quick example demonstrating open-status basic usage.

Run with: PYTHONPATH=src python3 example.py
"""

import asyncio
from datetime import datetime, timedelta, UTC

from open_status import (
    Event,
    GeoPoint,
    InMemoryRecordStore,
    LocationSample,
    MonitoringConfig,
    MonitoringSession,
    QueueLocationSource,
    Site,
)

SHOP = GeoPoint(37.7749, -122.4194)
AWAY = GeoPoint(37.77944, -122.4194)


def on_status_changed(event: Event) -> None:
    print(
        f"   → {event.site_id}: {event.payload['previous_status']} -> {event.payload['status']} "
        f"(cause={event.payload['cause']}, override={event.payload['override_active']})"
    )


async def main() -> None:
    print("=" * 60)
    print("open-status Example")
    print("=" * 60)

    # 1. Collaborators
    print("\n1. Creating collaborators...")
    store = InMemoryRecordStore()
    source = QueueLocationSource()
    store.put_site(
        Site(id="bakery", owner_id="owner-1", name="Corner Bakery", center=SHOP, radius_meters=50.0)
    )
    print("   ✓ Record store seeded with 'bakery' (50 m radius)")

    # 2. Session
    print("\n2. Starting monitoring session...")
    config = MonitoringConfig(max_accuracy_meters=100.0, reconcile_interval=60.0)
    session = MonitoringSession(store, source, config)
    session.bus.subscribe(on_status_changed)
    await session.start("owner-1")
    print(f"   ✓ Session {session.state.value} with {len(session.current_snapshot())} site(s)")

    now = datetime.now(UTC)

    # 3. Owner arrives
    print("\n3. Owner arrives at the shop...")
    await session.handle_sample(LocationSample(point=SHOP, accuracy_meters=8.0, observed_at=now))

    # 4. Owner leaves
    print("\n4. Owner walks ~500 m away...")
    await session.handle_sample(
        LocationSample(point=AWAY, accuracy_meters=8.0, observed_at=now + timedelta(minutes=5))
    )

    # 5. Manual override
    print("\n5. Owner keeps the shop open manually...")
    await session.toggle_status("bakery")
    await session.run_reconciliation_pass()
    print(f"   ✓ Still {session.current_snapshot()[0].status_text} after a background pass")

    # 6. Back to automatic
    print("\n6. Owner clears the override...")
    site = await session.clear_override("bakery")
    print(f"   ✓ bakery is {site.status_text} (version {site.version})")

    await session.stop()
    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
