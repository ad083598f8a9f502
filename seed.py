"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 5 sample riders
  - 4 sample drivers, each with one active vehicle (one per vehicle type)
  - 1 admin
  - 4 open bookings, requested through the Lifecycle Engine
"""

import asyncio

from sqlalchemy import func, select

from ridebroker.domain.enums import AccountStatus, VehicleStatus, VehicleType
from ridebroker.infrastructure.database import get_session_factory
from ridebroker.infrastructure.models import (
    AdminModel,
    DriverModel,
    RiderModel,
    VehicleModel,
)
from ridebroker.services.lifecycle import LifecycleEngine

RIDERS = [
    {"username": "aisyah", "email": "aisyah@example.com", "phone": "+60 12-345 6701"},
    {"username": "daniel", "email": "daniel@example.com", "phone": "+60 12-345 6702"},
    {"username": "mei", "email": "mei@example.com", "phone": "+60 12-345 6703"},
    {"username": "ravi", "email": "ravi@example.com", "phone": "+60 12-345 6704"},
    {"username": "sofia", "email": "sofia@example.com", "phone": "+60 12-345 6705"},
]

DRIVERS = [
    (
        {"username": "hafiz", "email": "hafiz@example.com", "phone": "+60 13-111 0001"},
        {"vehicle_type": VehicleType.CAR_4P, "plate_number": "WXY 1234", "brand": "Perodua", "model": "Myvi", "color": "white"},
    ),
    (
        {"username": "lim", "email": "lim@example.com", "phone": "+60 13-111 0002"},
        {"vehicle_type": VehicleType.CAR_6P, "plate_number": "VBN 5678", "brand": "Toyota", "model": "Innova", "color": "silver"},
    ),
    (
        {"username": "kumar", "email": "kumar@example.com", "phone": "+60 13-111 0003"},
        {"vehicle_type": VehicleType.MOTOR, "plate_number": "JKL 910", "brand": "Honda", "model": "EX5", "color": "red"},
    ),
    (
        {"username": "tan", "email": "tan@example.com", "phone": "+60 13-111 0004"},
        {"vehicle_type": VehicleType.VAN, "plate_number": "PQR 4321", "brand": "Nissan", "model": "Urvan", "color": "black"},
    ),
]

BOOKINGS = [
    ("KL Sentral", "KLCC", VehicleType.CAR_4P),
    ("Mid Valley", "Bangsar South", VehicleType.MOTOR),
    ("KLIA Terminal 1", "Putrajaya", VehicleType.VAN),
    ("Petaling Jaya", "Subang Jaya", VehicleType.CAR_6P),
]


async def seed():
    sessions = get_session_factory()
    async with sessions() as session:
        # Check if already seeded
        existing = await session.execute(select(func.count()).select_from(RiderModel))
        if existing.scalar():
            print("Database already seeded. Skipping.")
            return

        riders = [RiderModel(status=AccountStatus.ACTIVE, **r) for r in RIDERS]
        session.add_all(riders)

        for account, vehicle in DRIVERS:
            driver = DriverModel(status=AccountStatus.ACTIVE, **account)
            session.add(driver)
            await session.flush()
            session.add(
                VehicleModel(driver_id=driver.id, status=VehicleStatus.ACTIVE, **vehicle)
            )

        session.add(
            AdminModel(
                username="ops",
                email="ops@example.com",
                status=AccountStatus.ACTIVE,
            )
        )
        await session.commit()
        rider_ids = [r.id for r in riders]

    engine = LifecycleEngine(sessions)
    for rider_id, (pickup, dropoff, vehicle_type) in zip(rider_ids, BOOKINGS):
        await engine.create_booking(rider_id, pickup, dropoff, vehicle_type.value)

    print(
        f"Seeded {len(RIDERS)} riders, {len(DRIVERS)} drivers with vehicles, "
        f"1 admin and {len(BOOKINGS)} open bookings."
    )


if __name__ == "__main__":
    asyncio.run(seed())
