"""
SQLAlchemy ORM models.

Tables
------
* ``riders`` / ``drivers`` / ``admins`` -- Account Directory (read by the core;
  the driver rating aggregate is the only column the core writes)
* ``vehicles``  -- Vehicle Registry
* ``bookings``  -- rider trip requests
* ``rides``     -- accepted trips, exactly one per accepted booking
* ``payments``  -- exactly one per ride
* ``ratings``   -- at most one per (ride, rider)

Indexes
-------
* **B-Tree** on every ``status`` column (the conditional updates and the
  open-booking listing filter on it) and on the owner foreign keys.
* **Unique** on ``rides.booking_id``, ``payments.ride_id`` and
  ``ratings (ride_id, rider_id)``; these back the 1:1 invariants at the
  store level.
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .database import Base
from ridebroker.domain.enums import (
    AccountStatus,
    BookingStatus,
    CancelledBy,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    VehicleStatus,
    VehicleType,
)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Persist enum *values* (``"4 people car"``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ── Account Directory ─────────────────────────────────────────────────


class RiderModel(Base):
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    status = Column(
        _enum(AccountStatus, "accountstatus"),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    status = Column(
        _enum(AccountStatus, "accountstatus"),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )
    rating_count = Column(Integer, default=0, nullable=False)
    rating_sum = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AdminModel(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    status = Column(
        _enum(AccountStatus, "accountstatus"),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ── Vehicle Registry ──────────────────────────────────────────────────


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    vehicle_type = Column(_enum(VehicleType, "vehicletype"), nullable=False)
    plate_number = Column(String(20), nullable=False)
    brand = Column(String(60), nullable=True)
    model = Column(String(60), nullable=True)
    color = Column(String(30), nullable=True)
    status = Column(
        _enum(VehicleStatus, "vehiclestatus"),
        default=VehicleStatus.ACTIVE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_vehicles_driver_status", "driver_id", "status"),)


# ── Ledgers ───────────────────────────────────────────────────────────


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    pickup_location = Column(String(255), nullable=False)
    dropoff_location = Column(String(255), nullable=False)
    requested_vehicle_type = Column(_enum(VehicleType, "vehicletype"), nullable=False)
    estimated_distance = Column(Float, nullable=False)
    estimated_fare = Column(Float, nullable=False)
    status = Column(
        _enum(BookingStatus, "bookingstatus"),
        default=BookingStatus.REQUESTED,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_rider", "rider_id"),
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id"), unique=True, nullable=False
    )
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    distance = Column(Float, nullable=False)
    fare = Column(Float, nullable=False)
    status = Column(
        _enum(RideStatus, "ridestatus"),
        default=RideStatus.ACCEPTED,
        nullable=False,
    )
    accepted_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(_enum(CancelledBy, "cancelledby"), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver", "driver_id"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), unique=True, nullable=False)
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    amount = Column(Float, nullable=False)
    payment_method = Column(_enum(PaymentMethod, "paymentmethod"), nullable=True)
    transaction_reference = Column(String(128), nullable=True)
    status = Column(
        _enum(PaymentStatus, "paymentstatus"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_payments_rider", "rider_id"),)


class RatingModel(Base):
    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    # False until the driver's rating_count / rating_sum include this row
    aggregated = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("ride_id", "rider_id", name="uq_ratings_ride_rider"),
        Index("idx_ratings_aggregated", "aggregated"),
    )
