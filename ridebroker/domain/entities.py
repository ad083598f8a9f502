"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** via ``check_transition``: every conditional write the
  Lifecycle Engine issues is first validated against the transition tables
  in ``enums`` (REQUESTED -> ACCEPTED | CANCELLED for bookings,
  ACCEPTED -> ONGOING -> COMPLETED | CANCELLED for rides).
- **Polymorphic accounts**: ``Rider``, ``Driver`` and ``Admin`` share the
  ``Account`` capability.  Ride visibility and cancellation attribution are
  answered by the account variant itself, never by comparing role strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Mapping, Optional

from .enums import AccountStatus, CancelledBy, Role


class InvalidStateTransition(Exception):
    """Raised when a status change violates a state machine."""


def check_transition(table: Mapping, current, new) -> None:
    """Raise unless *current* -> *new* is listed in *table*."""
    allowed = table.get(current, set())
    if new not in allowed:
        raise InvalidStateTransition(f"Cannot transition from {current} to {new}")


# ── Accounts ──────────────────────────────────────────────────────────


@dataclass
class Account:
    id: int
    username: str
    status: AccountStatus = AccountStatus.ACTIVE
    phone: Optional[str] = None
    email: Optional[str] = None

    role: ClassVar[Role]

    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def ride_scope(self) -> dict[str, int]:
        """Column filters restricting ride queries to what this account may see."""
        raise NotImplementedError

    @property
    def cancelled_by(self) -> CancelledBy:
        return CancelledBy(self.role.value)

    @classmethod
    def from_row(cls, row) -> "Account":
        return cls(
            id=row.id,
            username=row.username,
            status=AccountStatus(row.status),
            phone=row.phone,
            email=row.email,
        )


@dataclass
class Rider(Account):
    role: ClassVar[Role] = Role.RIDER

    def ride_scope(self) -> dict[str, int]:
        return {"rider_id": self.id}


@dataclass
class Driver(Account):
    rating_count: int = 0
    rating_sum: int = 0

    role: ClassVar[Role] = Role.DRIVER

    def ride_scope(self) -> dict[str, int]:
        return {"driver_id": self.id}

    @property
    def rating(self) -> Optional[float]:
        return driver_rating(self.rating_sum, self.rating_count)

    @classmethod
    def from_row(cls, row) -> "Driver":
        return cls(
            id=row.id,
            username=row.username,
            status=AccountStatus(row.status),
            phone=row.phone,
            email=row.email,
            rating_count=row.rating_count or 0,
            rating_sum=row.rating_sum or 0,
        )


@dataclass
class Admin(Account):
    role: ClassVar[Role] = Role.ADMIN

    def ride_scope(self) -> dict[str, int]:
        return {}


ACCOUNT_TYPES: dict[Role, type[Account]] = {
    Role.RIDER: Rider,
    Role.DRIVER: Driver,
    Role.ADMIN: Admin,
}


def driver_rating(rating_sum: int, rating_count: int) -> Optional[float]:
    """Average rating, or ``None`` for a driver nobody has rated yet."""
    if not rating_count:
        return None
    return rating_sum / rating_count
