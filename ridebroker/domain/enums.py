"""Domain enumerations and state-transition rules."""

import enum


class Role(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class BookingStatus(str, enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


class RideStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK = "bank"
    CREDIT_CARD = "credit_card"


class VehicleType(str, enum.Enum):
    CAR_4P = "4 people car"
    CAR_6P = "6 people car"
    MOTOR = "motor"
    VAN = "van"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CancelledBy(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


# State machines: maps current status -> set of valid next statuses
BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.REQUESTED: {BookingStatus.ACCEPTED, BookingStatus.CANCELLED},
    BookingStatus.ACCEPTED: set(),
    BookingStatus.CANCELLED: set(),
}

RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.ACCEPTED: {RideStatus.ONGOING, RideStatus.CANCELLED},
    RideStatus.ONGOING: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

# Administrative override: an admin may also stop a ride already on the road.
ADMIN_CANCELLABLE: frozenset[RideStatus] = frozenset(
    {RideStatus.ACCEPTED, RideStatus.ONGOING}
)

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.SUCCESS},
    PaymentStatus.SUCCESS: set(),
}


def parse_enum(enum_cls, value):
    """Return the member of *enum_cls* whose value is *value*, or ``None``."""
    try:
        return enum_cls(value)
    except ValueError:
        return None
