"""
Background Consistency Auditor
==============================

Runs every ``AUDIT_INTERVAL_SECONDS`` (default 60 s).

Why it exists
-------------
Two engine operations commit in two phases:

* ``accept_booking`` claims the booking, then creates the ride + payment;
* ``rate_ride`` stores the rating, then folds it into the driver aggregate.

If the second phase fails the engine alerts once and gives up.  The auditor
keeps the resulting records visible: every cycle it logs each one at ERROR
until an operator reconciles it.  It never repairs anything itself, since a
repair racing a late second phase could apply the same side effect twice.

Concurrency safety
------------------
A **Redis distributed lock** ensures only one API process audits per cycle.
Records younger than ``AUDIT_GRACE_SECONDS`` are skipped so an in-flight
second phase is not reported.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridebroker.config import settings
from ridebroker.infrastructure.locks import DistributedLock
from ridebroker.infrastructure.redis_client import get_redis
from ridebroker.infrastructure.repositories import ConsistencyRepository

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass(frozen=True)
class AuditReport:
    bookings_without_ride: int = 0
    rides_without_payment: int = 0
    unaggregated_ratings: int = 0
    skipped: bool = False

    @property
    def total(self) -> int:
        return (
            self.bookings_without_ride
            + self.rides_without_payment
            + self.unaggregated_ratings
        )


# ── Public API ────────────────────────────────────────────────────────


async def start_audit_loop(session_factory: async_sessionmaker[AsyncSession]) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(session_factory))
    logger.info(
        "Consistency auditor started (interval=%ds)", settings.audit_interval_seconds
    )


async def stop_audit_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Consistency auditor stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Periodic loop: run an audit cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_audit_cycle(session_factory)
        except Exception:
            logger.exception("Unhandled error in audit cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.audit_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_audit_cycle(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> AuditReport:
    """Execute one audit cycle and report what it found."""
    redis = await get_redis()
    lock = DistributedLock(redis, "consistency_auditor", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return AuditReport(skipped=True)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(
        seconds=settings.audit_grace_seconds
    )
    try:
        async with session_factory() as session:
            repo = ConsistencyRepository(session)
            orphans = await repo.accepted_bookings_without_ride(cutoff)
            unpaid = await repo.rides_without_payment()
            ratings = await repo.unaggregated_ratings(cutoff)
    finally:
        await lock.release()

    for booking in orphans:
        logger.error(
            "Booking %s is accepted but has no ride (accepted at %s)",
            booking.id,
            booking.accepted_at,
        )
    for ride in unpaid:
        logger.error("Ride %s has no payment record", ride.id)
    for rating in ratings:
        logger.error(
            "Rating %s (ride %s, driver %s) is missing from the driver aggregate",
            rating.id,
            rating.ride_id,
            rating.driver_id,
        )

    report = AuditReport(
        bookings_without_ride=len(orphans),
        rides_without_payment=len(unpaid),
        unaggregated_ratings=len(ratings),
    )
    if report.total:
        logger.warning("Audit cycle: %d inconsistent records", report.total)
    return report
