"""
Lifecycle Engine
================

Owns every state transition across bookings, rides, payments and ratings.

Concurrency safety
------------------
Requests run concurrently and share nothing in-process.  Mutual exclusion
lives in the store: each transition is one conditional ``UPDATE`` keyed on
the expected current status (plus the caller's ownership column).  The
first writer to land matches one row and wins; everyone else matches zero
rows and gets a clean ``NotFoundError`` / ``ConflictError``.

Two-phase operations
--------------------
``accept_booking`` and ``rate_ride`` commit a first write (the claim, the
rating row) before a dependent second write (ride + payment, the driver
aggregate).  If the second phase fails the engine logs at CRITICAL, raises
``InternalError`` and does **not** retry: a retry could apply a side effect
twice.  ``ridebroker.workers.auditor`` keeps reporting the leftover records
until someone reconciles them.

Error contract
--------------
Public operations raise only ``LifecycleError`` subclasses.  Store failures
are logged with their traceback and surfaced as ``InternalError``.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from sqlalchemy import ColumnElement
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridebroker.config import settings
from ridebroker.domain.entities import Account, check_transition, driver_rating
from ridebroker.domain.enums import (
    ADMIN_CANCELLABLE,
    BOOKING_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingStatus,
    CancelledBy,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    VehicleType,
    parse_enum,
)
from ridebroker.domain.errors import (
    AuthorizationError,
    ConflictError,
    InternalError,
    LifecycleError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from ridebroker.domain.pricing import (
    DistanceEstimator,
    FixedDistanceEstimator,
    PricingStrategy,
    StandardPricing,
)
from ridebroker.infrastructure.models import (
    BookingModel,
    PaymentModel,
    RatingModel,
    RideModel,
)
from ridebroker.infrastructure.repositories import (
    AccountDirectory,
    BookingRepository,
    PaymentRepository,
    RatingRepository,
    RideRepository,
    VehicleRegistry,
)

logger = logging.getLogger(__name__)

BOOKING_PATCH_FIELDS = ("pickup_location", "dropoff_location", "requested_vehicle_type")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _store_guard(action: str):
    """Turn store failures into ``InternalError`` so nothing else escapes."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except LifecycleError:
                raise
            except SQLAlchemyError:
                logger.exception("Store failure while trying to %s", action)
                raise InternalError(f"Failed to {action}.")

        return wrapper

    return decorator


# ── Read models ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class OpenBooking:
    """A requested booking as drivers see it: no rider identity."""

    id: int
    pickup_location: str
    dropoff_location: str
    requested_vehicle_type: VehicleType
    estimated_distance: float
    estimated_fare: float
    status: BookingStatus
    created_at: datetime


@dataclass(frozen=True)
class Acceptance:
    ride: RideModel
    payment: PaymentModel


@dataclass(frozen=True)
class PartyView:
    username: str
    phone: Optional[str]


@dataclass(frozen=True)
class DriverView:
    username: str
    phone: Optional[str]
    rating: Optional[float]


@dataclass(frozen=True)
class VehicleView:
    vehicle_type: VehicleType
    plate_number: str
    brand: Optional[str]
    model: Optional[str]
    color: Optional[str]


@dataclass(frozen=True)
class RideDetail:
    id: int
    booking_id: int
    status: RideStatus
    distance: float
    fare: float
    duration: Optional[int]
    accepted_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    rider: PartyView
    driver: DriverView
    vehicle: VehicleView


# ── Engine ────────────────────────────────────────────────────────────


class LifecycleEngine:
    """Booking-to-ride state machine over an injected store handle."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pricing: PricingStrategy | None = None,
        distance_estimator: DistanceEstimator | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._sessions = session_factory
        self.pricing = pricing or StandardPricing(
            settings.base_fare, settings.rate_per_km
        )
        self.distance_estimator = distance_estimator or FixedDistanceEstimator(
            settings.default_distance_km
        )
        self.clock = clock or utcnow

    # ── Booking intake ────────────────────────────────────────────

    @_store_guard("create booking")
    async def create_booking(
        self,
        rider_id: int,
        pickup: Any,
        dropoff: Any,
        vehicle_type: Any,
    ) -> BookingModel:
        pickup = _require_text(pickup)
        dropoff = _require_text(dropoff)
        if vehicle_type is None or vehicle_type == "":
            raise ValidationError("Missing information.")
        requested = _vehicle_type(vehicle_type)

        distance = self.distance_estimator.estimate(pickup, dropoff)
        async with self._sessions() as session:
            booking = await BookingRepository(session).create(
                BookingModel(
                    rider_id=rider_id,
                    pickup_location=pickup,
                    dropoff_location=dropoff,
                    requested_vehicle_type=requested,
                    estimated_distance=distance,
                    estimated_fare=self.pricing.calculate(distance),
                    status=BookingStatus.REQUESTED,
                    created_at=self.clock(),
                )
            )
            await session.commit()
        logger.info("Booking %s requested by rider %s", booking.id, rider_id)
        return booking

    @_store_guard("retrieve booking")
    async def view_booking(self, booking_id: int, rider_id: int) -> BookingModel:
        async with self._sessions() as session:
            booking = await BookingRepository(session).get_owned(booking_id, rider_id)
        if booking is None:
            raise NotFoundError("Booking not found or access denied.")
        return booking

    @_store_guard("update booking")
    async def update_booking(
        self, booking_id: int, rider_id: int, patch: Mapping[str, Any]
    ) -> BookingModel:
        changes: dict[str, Any] = {
            field: patch[field]
            for field in BOOKING_PATCH_FIELDS
            if patch.get(field) is not None
        }
        if not changes:
            raise ValidationError("No valid fields provided for update.")
        if "requested_vehicle_type" in changes:
            changes["requested_vehicle_type"] = _vehicle_type(
                changes["requested_vehicle_type"]
            )
        for field in ("pickup_location", "dropoff_location"):
            if field in changes:
                changes[field] = _require_text(changes[field])

        async with self._sessions() as session:
            repo = BookingRepository(session)
            current = await repo.get_owned(booking_id, rider_id)
            if current is None or current.status != BookingStatus.REQUESTED:
                raise NotFoundError("Booking not found.")

            if "pickup_location" in changes or "dropoff_location" in changes:
                distance = self.distance_estimator.estimate(
                    changes.get("pickup_location", current.pickup_location),
                    changes.get("dropoff_location", current.dropoff_location),
                )
                changes["estimated_distance"] = distance
                changes["estimated_fare"] = self.pricing.calculate(distance)

            # The guard is re-checked by the write itself; the read above only
            # supplies the unchanged location for the estimate.
            updated = await repo.transition(
                booking_id, BookingStatus.REQUESTED, changes, rider_id=rider_id
            )
            if not updated:
                await session.rollback()
                raise NotFoundError("Booking not found.")
            await session.commit()
            booking = await _reload(session, BookingModel, booking_id)
        logger.info("Booking %s updated (%s)", booking_id, ", ".join(sorted(changes)))
        return booking

    @_store_guard("cancel booking")
    async def cancel_booking(self, booking_id: int, rider_id: int) -> BookingModel:
        check_transition(
            BOOKING_TRANSITIONS, BookingStatus.REQUESTED, BookingStatus.CANCELLED
        )
        async with self._sessions() as session:
            cancelled = await BookingRepository(session).transition(
                booking_id,
                BookingStatus.REQUESTED,
                {"status": BookingStatus.CANCELLED, "cancelled_at": self.clock()},
                rider_id=rider_id,
            )
            if not cancelled:
                await session.rollback()
                raise NotFoundError("Booking not found.")
            await session.commit()
            booking = await _reload(session, BookingModel, booking_id)
        logger.info("Booking %s cancelled by rider %s", booking_id, rider_id)
        return booking

    @_store_guard("retrieve bookings")
    async def list_open_bookings(
        self, vehicle_type: VehicleType | None = None
    ) -> list[OpenBooking]:
        async with self._sessions() as session:
            bookings = await BookingRepository(session).list_open(vehicle_type)
        return [
            OpenBooking(
                id=b.id,
                pickup_location=b.pickup_location,
                dropoff_location=b.dropoff_location,
                requested_vehicle_type=b.requested_vehicle_type,
                estimated_distance=b.estimated_distance,
                estimated_fare=b.estimated_fare,
                status=b.status,
                created_at=b.created_at,
            )
            for b in bookings
        ]

    @_store_guard("retrieve bookings")
    async def list_bookings_for_driver(self, driver_id: int) -> list[OpenBooking]:
        """Open bookings restricted to the driver's active vehicle type."""
        async with self._sessions() as session:
            vehicle = await VehicleRegistry(session).find_active_vehicle(driver_id)
        if vehicle is None:
            raise PreconditionError("No active vehicle found. Register a vehicle first.")
        return await self.list_open_bookings(vehicle.vehicle_type)

    # ── Accept (critical section) ─────────────────────────────────

    @_store_guard("accept booking")
    async def accept_booking(self, booking_id: int, driver_id: int) -> Acceptance:
        check_transition(
            BOOKING_TRANSITIONS, BookingStatus.REQUESTED, BookingStatus.ACCEPTED
        )
        async with self._sessions() as session:
            vehicle = await VehicleRegistry(session).find_active_vehicle(driver_id)
            if vehicle is None:
                raise PreconditionError(
                    "No active vehicle found. Register a vehicle first."
                )

            bookings = BookingRepository(session)
            booking = await bookings.get_open(booking_id)
            if booking is None:
                raise NotFoundError("Booking not found or already accepted/cancelled.")
            if (
                booking.requested_vehicle_type is not None
                and booking.requested_vehicle_type != vehicle.vehicle_type
            ):
                raise ValidationError(
                    "Your vehicle type does not match the booking request."
                )

            # Phase 1: claim.  Only the first conditional write to land matches.
            accepted_at = self.clock()
            claimed = await bookings.transition(
                booking_id,
                BookingStatus.REQUESTED,
                {"status": BookingStatus.ACCEPTED, "accepted_at": accepted_at},
            )
            if not claimed:
                await session.rollback()
                logger.warning(
                    "Driver %s lost the race for booking %s", driver_id, booking_id
                )
                raise ConflictError("Booking not found or already accepted/cancelled.")
            await session.commit()

            # Phase 2: materialise the ride and its pending payment.
            try:
                ride, payment = await RideRepository(session).create_with_payment(
                    booking=booking,
                    driver_id=driver_id,
                    vehicle_id=vehicle.id,
                    accepted_at=accepted_at,
                )
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.critical(
                    "Booking %s was claimed by driver %s but its ride/payment "
                    "could not be created; manual reconciliation required",
                    booking_id,
                    driver_id,
                    exc_info=True,
                )
                raise InternalError("Failed to accept booking.")

        logger.info(
            "Booking %s accepted by driver %s as ride %s", booking_id, driver_id, ride.id
        )
        return Acceptance(ride=ride, payment=payment)

    # ── Ride progression ──────────────────────────────────────────

    @_store_guard("start ride")
    async def start_ride(self, ride_id: int, driver_id: int) -> RideModel:
        return await self._advance_ride(
            ride_id,
            RideStatus.ACCEPTED,
            RideStatus.ONGOING,
            {"started_at": self.clock()},
            not_found="Ride not found or not in a startable state.",
            driver_id=driver_id,
        )

    @_store_guard("complete ride")
    async def complete_ride(self, ride_id: int, driver_id: int) -> RideModel:
        async with self._sessions() as session:
            ride = await RideRepository(session).get_scoped(
                ride_id, status=RideStatus.ONGOING, driver_id=driver_id
            )
        if ride is None or ride.started_at is None:
            raise NotFoundError("Ride not found or not in progress.")

        completed_at = self.clock()
        elapsed = as_utc(completed_at) - as_utc(ride.started_at)
        return await self._advance_ride(
            ride_id,
            RideStatus.ONGOING,
            RideStatus.COMPLETED,
            {
                "completed_at": completed_at,
                "duration": max(0, int(elapsed.total_seconds())),
            },
            not_found="Ride not found or not in progress.",
            extra=[RideModel.started_at == ride.started_at],
            driver_id=driver_id,
        )

    @_store_guard("cancel ride")
    async def cancel_ride(self, ride_id: int, caller: Account) -> RideModel:
        """Rider or driver of the ride backs out before pickup."""
        scope = caller.ride_scope()
        if not scope:
            raise AuthorizationError()
        return await self._advance_ride(
            ride_id,
            RideStatus.ACCEPTED,
            RideStatus.CANCELLED,
            {"cancelled_at": self.clock(), "cancelled_by": caller.cancelled_by},
            not_found="Ride not found.",
            **scope,
        )

    @_store_guard("cancel ride")
    async def force_cancel_ride(self, ride_id: int) -> RideModel:
        """Administrative cancel; also stops a ride that is already ongoing."""
        async with self._sessions() as session:
            cancelled = await RideRepository(session).transition(
                ride_id,
                ADMIN_CANCELLABLE,
                {
                    "status": RideStatus.CANCELLED,
                    "cancelled_at": self.clock(),
                    "cancelled_by": CancelledBy.ADMIN,
                },
            )
            if not cancelled:
                await session.rollback()
                raise NotFoundError("Ride not found or cannot be cancelled.")
            await session.commit()
            ride = await _reload(session, RideModel, ride_id)
        logger.info("Ride %s force-cancelled by admin", ride_id)
        return ride

    async def _advance_ride(
        self,
        ride_id: int,
        expected: RideStatus,
        target: RideStatus,
        values: dict[str, Any],
        not_found: str,
        extra: Iterable[ColumnElement[bool]] = (),
        **scope: int,
    ) -> RideModel:
        check_transition(RIDE_TRANSITIONS, expected, target)
        async with self._sessions() as session:
            moved = await RideRepository(session).transition(
                ride_id, expected, {**values, "status": target}, extra=extra, **scope
            )
            if not moved:
                await session.rollback()
                raise NotFoundError(not_found)
            await session.commit()
            ride = await _reload(session, RideModel, ride_id)
        logger.info("Ride %s: %s -> %s", ride_id, expected.value, target.value)
        return ride

    # ── Ride reads ────────────────────────────────────────────────

    @_store_guard("retrieve ride")
    async def view_ride(self, ride_id: int, caller: Account) -> RideDetail:
        async with self._sessions() as session:
            row = await RideRepository(session).get_detail(
                ride_id, **caller.ride_scope()
            )
        if row is None:
            raise NotFoundError("Ride not found or access denied.")
        ride, rider, driver, vehicle = row
        return RideDetail(
            id=ride.id,
            booking_id=ride.booking_id,
            status=ride.status,
            distance=ride.distance,
            fare=ride.fare,
            duration=ride.duration,
            accepted_at=ride.accepted_at,
            started_at=ride.started_at,
            completed_at=ride.completed_at,
            cancelled_at=ride.cancelled_at,
            rider=PartyView(username=rider.username, phone=rider.phone),
            driver=DriverView(
                username=driver.username,
                phone=driver.phone,
                rating=driver_rating(driver.rating_sum, driver.rating_count),
            ),
            vehicle=VehicleView(
                vehicle_type=vehicle.vehicle_type,
                plate_number=vehicle.plate_number,
                brand=vehicle.brand,
                model=vehicle.model,
                color=vehicle.color,
            ),
        )

    @_store_guard("retrieve rides")
    async def list_rides(self) -> list[RideModel]:
        async with self._sessions() as session:
            return await RideRepository(session).list_all()

    # ── Payment settlement ────────────────────────────────────────

    @_store_guard("pay")
    async def pay_for_ride(
        self,
        ride_id: int,
        rider_id: int,
        method: Any,
        transaction_reference: Optional[str] = None,
    ) -> PaymentModel:
        if method is None or method == "":
            raise ValidationError("Missing information.")
        payment_method = parse_enum(PaymentMethod, method)
        if payment_method is None:
            raise ValidationError("Invalid payment method.")
        reference = (transaction_reference or "").strip() or None
        if reference is None and payment_method != PaymentMethod.CASH:
            raise ValidationError("Missing information.")
        check_transition(
            PAYMENT_TRANSITIONS, PaymentStatus.PENDING, PaymentStatus.SUCCESS
        )

        async with self._sessions() as session:
            payments = PaymentRepository(session)
            settled = await payments.settle(
                ride_id,
                rider_id,
                {
                    "payment_method": payment_method,
                    "transaction_reference": reference,
                    "paid_at": self.clock(),
                },
            )
            if not settled:
                await session.rollback()
                raise NotFoundError("Payment not found.")
            await session.commit()
            payment = await payments.get_by_ride(ride_id)
        logger.info("Ride %s paid by rider %s via %s", ride_id, rider_id, payment_method.value)
        return payment

    # ── Rating ────────────────────────────────────────────────────

    @_store_guard("submit rating")
    async def rate_ride(
        self,
        ride_id: int,
        rider_id: int,
        rating: Any,
        comment: Optional[str] = None,
    ) -> RatingModel:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5.")

        async with self._sessions() as session:
            ride = await RideRepository(session).get_scoped(
                ride_id, status=RideStatus.COMPLETED, rider_id=rider_id
            )
            if ride is None:
                raise NotFoundError("Ride not found, not completed, or access denied.")

            ratings = RatingRepository(session)
            if await ratings.get_for(ride_id, rider_id) is not None:
                raise _already_rated()

            # Phase 1: the rating row.  The (ride, rider) unique constraint
            # settles concurrent duplicates.
            try:
                record = await ratings.create(
                    RatingModel(
                        ride_id=ride_id,
                        rider_id=rider_id,
                        driver_id=ride.driver_id,
                        rating=rating,
                        comment=comment or None,
                        aggregated=False,
                        created_at=self.clock(),
                    )
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise _already_rated()

            # Phase 2: fold into the driver aggregate, exactly once.  A
            # rollback expires loaded rows, so keep plain ids for the alert.
            rating_id, driver_id = record.id, ride.driver_id
            try:
                applied = await ratings.mark_aggregated(rating_id) and (
                    await AccountDirectory(session).record_driver_rating(
                        driver_id, rating
                    )
                )
                if applied:
                    await session.commit()
            except SQLAlchemyError:
                logger.exception("Driver aggregate update failed for rating %s", rating_id)
                applied = False
            if not applied:
                await session.rollback()
                logger.critical(
                    "Rating %s for ride %s was stored but driver %s aggregate was "
                    "not updated; manual reconciliation required",
                    rating_id,
                    ride_id,
                    driver_id,
                )
                raise InternalError("Failed to submit rating.")
            record.aggregated = True

        logger.info("Ride %s rated %s by rider %s", ride_id, rating, rider_id)
        return record


# ── Helpers ───────────────────────────────────────────────────────────


def _already_rated() -> ConflictError:
    return ConflictError("This ride has already been rated.", status_code=400)


def _require_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Missing information.")
    return value.strip()


def _vehicle_type(value: Any) -> VehicleType:
    vehicle_type = parse_enum(VehicleType, value)
    if vehicle_type is None:
        raise ValidationError("Invalid vehicle type.")
    return vehicle_type


async def _reload(session: AsyncSession, model, pk: int):
    """Fetch the committed row, bypassing any stale identity-map copy."""
    return await session.get(model, pk, populate_existing=True)
