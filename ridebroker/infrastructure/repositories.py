"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Every status change goes through
``_compare_and_set``: a single ``UPDATE ... WHERE <expected state>`` whose
row count tells the caller whether it won.  No repository offers a
read-modify-write path for a status column.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .models import (
    AdminModel,
    BookingModel,
    DriverModel,
    PaymentModel,
    RatingModel,
    RideModel,
    RiderModel,
    VehicleModel,
)
from ridebroker.domain.entities import ACCOUNT_TYPES, Account
from ridebroker.domain.enums import (
    BookingStatus,
    PaymentStatus,
    Role,
    RideStatus,
    VehicleStatus,
    VehicleType,
)

_ACCOUNT_MODELS = {
    Role.RIDER: RiderModel,
    Role.DRIVER: DriverModel,
    Role.ADMIN: AdminModel,
}


class _Repository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _compare_and_set(
        self,
        model,
        criteria: Iterable[ColumnElement[bool]],
        values: dict[str, Any],
    ) -> bool:
        """Atomic conditional write.  True iff exactly one row matched."""
        result = await self.session.execute(
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


# ── External collaborators ────────────────────────────────────────────


class AccountDirectory(_Repository):
    """Read access to rider / driver / admin accounts."""

    async def find_account_by_id(
        self, account_id: int, role: Role
    ) -> Optional[Account]:
        row = await self.session.get(_ACCOUNT_MODELS[role], account_id)
        if row is None:
            return None
        return ACCOUNT_TYPES[role].from_row(row)

    async def record_driver_rating(self, driver_id: int, rating: int) -> bool:
        """Fold one rating into the driver's aggregate (atomic increment)."""
        return await self._compare_and_set(
            DriverModel,
            [DriverModel.id == driver_id],
            {
                "rating_count": DriverModel.rating_count + 1,
                "rating_sum": DriverModel.rating_sum + rating,
            },
        )


class VehicleRegistry(_Repository):
    async def find_active_vehicle(self, driver_id: int) -> Optional[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel)
            .where(
                VehicleModel.driver_id == driver_id,
                VehicleModel.status == VehicleStatus.ACTIVE,
            )
            .order_by(VehicleModel.id)
            .limit(1)
        )
        return result.scalar_one_or_none()


# ── Ledgers ───────────────────────────────────────────────────────────


class BookingRepository(_Repository):
    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_owned(
        self, booking_id: int, rider_id: int
    ) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.id == booking_id,
                BookingModel.rider_id == rider_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_open(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.id == booking_id,
                BookingModel.status == BookingStatus.REQUESTED,
            )
        )
        return result.scalar_one_or_none()

    async def list_open(
        self, vehicle_type: VehicleType | None = None
    ) -> list[BookingModel]:
        query = (
            select(BookingModel)
            .where(BookingModel.status == BookingStatus.REQUESTED)
            .order_by(BookingModel.created_at, BookingModel.id)
        )
        if vehicle_type is not None:
            query = query.where(BookingModel.requested_vehicle_type == vehicle_type)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def transition(
        self,
        booking_id: int,
        expected: BookingStatus,
        values: dict[str, Any],
        rider_id: int | None = None,
    ) -> bool:
        criteria = [BookingModel.id == booking_id, BookingModel.status == expected]
        if rider_id is not None:
            criteria.append(BookingModel.rider_id == rider_id)
        return await self._compare_and_set(BookingModel, criteria, values)


class RideRepository(_Repository):
    async def create_with_payment(
        self,
        *,
        booking: BookingModel,
        driver_id: int,
        vehicle_id: int,
        accepted_at: datetime,
    ) -> tuple[RideModel, PaymentModel]:
        """Insert the ride and its pending payment in the current transaction."""
        ride = RideModel(
            booking_id=booking.id,
            rider_id=booking.rider_id,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            distance=booking.estimated_distance,
            fare=booking.estimated_fare,
            status=RideStatus.ACCEPTED,
            accepted_at=accepted_at,
        )
        self.session.add(ride)
        await self.session.flush()

        payment = PaymentModel(
            ride_id=ride.id,
            rider_id=ride.rider_id,
            driver_id=driver_id,
            amount=ride.fare,
            status=PaymentStatus.PENDING,
            created_at=accepted_at,
        )
        self.session.add(payment)
        await self.session.flush()
        return ride, payment

    async def get_scoped(
        self,
        ride_id: int,
        status: RideStatus | None = None,
        **scope: int,
    ) -> Optional[RideModel]:
        """Ride *ride_id* if it matches every owner column in *scope*."""
        query = select(RideModel).where(RideModel.id == ride_id)
        for column, value in scope.items():
            query = query.where(getattr(RideModel, column) == value)
        if status is not None:
            query = query.where(RideModel.status == status)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_detail(self, ride_id: int, **scope: int):
        """Ride joined with its rider, driver and vehicle, or ``None``."""
        rider = aliased(RiderModel)
        driver = aliased(DriverModel)
        vehicle = aliased(VehicleModel)
        query = (
            select(RideModel, rider, driver, vehicle)
            .join(rider, rider.id == RideModel.rider_id)
            .join(driver, driver.id == RideModel.driver_id)
            .join(vehicle, vehicle.id == RideModel.vehicle_id)
            .where(RideModel.id == ride_id)
        )
        for column, value in scope.items():
            query = query.where(getattr(RideModel, column) == value)
        result = await self.session.execute(query)
        return result.one_or_none()

    async def list_all(self) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel).order_by(RideModel.accepted_at.desc(), RideModel.id.desc())
        )
        return list(result.scalars().all())

    async def transition(
        self,
        ride_id: int,
        expected: RideStatus | Iterable[RideStatus],
        values: dict[str, Any],
        extra: Iterable[ColumnElement[bool]] = (),
        **scope: int,
    ) -> bool:
        if isinstance(expected, RideStatus):
            status_clause = RideModel.status == expected
        else:
            status_clause = RideModel.status.in_(list(expected))
        criteria = [RideModel.id == ride_id, status_clause, *extra]
        for column, value in scope.items():
            criteria.append(getattr(RideModel, column) == value)
        return await self._compare_and_set(RideModel, criteria, values)


class PaymentRepository(_Repository):
    async def get_by_ride(self, ride_id: int) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.ride_id == ride_id)
        )
        return result.scalar_one_or_none()

    async def settle(self, ride_id: int, rider_id: int, values: dict[str, Any]) -> bool:
        """Pending -> success, unless the ride has been cancelled."""
        live_ride = select(RideModel.id).where(
            RideModel.id == ride_id,
            RideModel.status != RideStatus.CANCELLED,
        )
        return await self._compare_and_set(
            PaymentModel,
            [
                PaymentModel.ride_id == ride_id,
                PaymentModel.rider_id == rider_id,
                PaymentModel.status == PaymentStatus.PENDING,
                PaymentModel.ride_id.in_(live_ride),
            ],
            {**values, "status": PaymentStatus.SUCCESS},
        )


class RatingRepository(_Repository):
    async def get_for(self, ride_id: int, rider_id: int) -> Optional[RatingModel]:
        result = await self.session.execute(
            select(RatingModel).where(
                RatingModel.ride_id == ride_id,
                RatingModel.rider_id == rider_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, rating: RatingModel) -> RatingModel:
        self.session.add(rating)
        await self.session.flush()
        return rating

    async def mark_aggregated(self, rating_id: int) -> bool:
        return await self._compare_and_set(
            RatingModel,
            [RatingModel.id == rating_id, RatingModel.aggregated.is_(False)],
            {"aggregated": True},
        )


class ConsistencyRepository(_Repository):
    """Queries for the records a failed second phase leaves behind."""

    async def accepted_bookings_without_ride(
        self, accepted_before: datetime
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .outerjoin(RideModel, RideModel.booking_id == BookingModel.id)
            .where(
                BookingModel.status == BookingStatus.ACCEPTED,
                BookingModel.accepted_at < accepted_before,
                RideModel.id.is_(None),
            )
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())

    async def rides_without_payment(self) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .outerjoin(PaymentModel, PaymentModel.ride_id == RideModel.id)
            .where(PaymentModel.id.is_(None))
            .order_by(RideModel.id)
        )
        return list(result.scalars().all())

    async def unaggregated_ratings(self, created_before: datetime) -> list[RatingModel]:
        result = await self.session.execute(
            select(RatingModel)
            .where(
                RatingModel.aggregated.is_(False),
                RatingModel.created_at < created_before,
            )
            .order_by(RatingModel.id)
        )
        return list(result.scalars().all())
