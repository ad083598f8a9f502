"""
Shared test fixtures.

Each test gets its own SQLite file (via aiosqlite) so that concurrent
sessions share one store and really contend on the conditional writes,
without Docker / PostgreSQL / Redis.  Redis is only touched by the auditor
and is mocked there.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridebroker.domain.enums import AccountStatus, VehicleStatus, VehicleType
from ridebroker.domain.pricing import FixedDistanceEstimator, StandardPricing
from ridebroker.infrastructure.database import (
    build_session_factory,
    create_engine_for,
    create_schema,
)
from ridebroker.infrastructure.models import (
    AdminModel,
    DriverModel,
    RiderModel,
    VehicleModel,
)
from ridebroker.services.lifecycle import LifecycleEngine

# ── Seeded accounts ───────────────────────────────────────────────────

RIDER_ID = 1
OTHER_RIDER_ID = 2
INACTIVE_RIDER_ID = 3

DRIVER_ID = 1  # 4 people car
RIVAL_DRIVER_ID = 2  # 4 people car
MOTOR_DRIVER_ID = 3  # motor
NO_VEHICLE_DRIVER_ID = 4

ADMIN_ID = 1

CAR = VehicleType.CAR_4P.value
EXPECTED_FARE = 24.1  # 4.1 + 10 km x 2.0


class FakeClock:
    """Deterministic UTC clock the tests move forward by hand."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def caller(account_id: int, role: str) -> dict[str, str]:
    return {"X-Caller-Id": str(account_id), "X-Caller-Role": role}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def sessions(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create the schema in a fresh SQLite file and seed the accounts."""
    db_engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'ridebroker.db'}")
    await create_schema(db_engine)
    factory = build_session_factory(db_engine)

    async with factory() as session:
        session.add_all(
            [
                RiderModel(id=RIDER_ID, username="aisyah", email="aisyah@example.com", phone="0101"),
                RiderModel(id=OTHER_RIDER_ID, username="daniel", email="daniel@example.com"),
                RiderModel(
                    id=INACTIVE_RIDER_ID,
                    username="ghost",
                    email="ghost@example.com",
                    status=AccountStatus.INACTIVE,
                ),
                DriverModel(id=DRIVER_ID, username="hafiz", email="hafiz@example.com", phone="0202"),
                DriverModel(id=RIVAL_DRIVER_ID, username="lim", email="lim@example.com"),
                DriverModel(id=MOTOR_DRIVER_ID, username="kumar", email="kumar@example.com"),
                DriverModel(id=NO_VEHICLE_DRIVER_ID, username="tan", email="tan@example.com"),
                AdminModel(id=ADMIN_ID, username="ops", email="ops@example.com"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                VehicleModel(
                    driver_id=DRIVER_ID,
                    vehicle_type=VehicleType.CAR_4P,
                    plate_number="WXY 1234",
                    brand="Perodua",
                    model="Myvi",
                    color="white",
                ),
                VehicleModel(
                    driver_id=RIVAL_DRIVER_ID,
                    vehicle_type=VehicleType.CAR_4P,
                    plate_number="VBN 5678",
                ),
                VehicleModel(
                    driver_id=MOTOR_DRIVER_ID,
                    vehicle_type=VehicleType.MOTOR,
                    plate_number="JKL 910",
                ),
                VehicleModel(
                    driver_id=NO_VEHICLE_DRIVER_ID,
                    vehicle_type=VehicleType.VAN,
                    plate_number="OLD 1",
                    status=VehicleStatus.INACTIVE,
                ),
            ]
        )
        await session.commit()

    yield factory

    await db_engine.dispose()


@pytest.fixture
def engine(sessions, clock) -> LifecycleEngine:
    return LifecycleEngine(
        sessions,
        pricing=StandardPricing(base_fare=4.1, rate_per_km=2.0),
        distance_estimator=FixedDistanceEstimator(10.0),
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(sessions, engine) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient over the app, sharing the test store and engine."""
    from ridebroker.api.app import create_app
    from ridebroker.api.middleware import limiter

    with (
        patch("ridebroker.workers.auditor.start_audit_loop", new_callable=AsyncMock),
        patch("ridebroker.workers.auditor.stop_audit_loop", new_callable=AsyncMock),
    ):
        app = create_app(session_factory=sessions, engine=engine)
        limiter.enabled = False
        transport = ASGITransport(app=app)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
        finally:
            limiter.enabled = True
