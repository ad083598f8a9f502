"""
Driver endpoints
================

GET   /api/v1/drivers/booking                   -- open bookings
PATCH /api/v1/drivers/booking/{booking_id}/accept -- claim a booking
PATCH /api/v1/drivers/ride/{ride_id}/start      -- passenger picked up
PATCH /api/v1/drivers/ride/{ride_id}/complete   -- passenger dropped off
"""

from fastapi import APIRouter, Depends, Query, Request

from ridebroker.api.dependencies import RecordId, driver_only, get_engine
from ridebroker.api.middleware import limiter
from ridebroker.api.schemas import AcceptResponse, OpenBookingResponse, RideResponse
from ridebroker.config import settings
from ridebroker.domain.entities import Account
from ridebroker.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/booking",
    response_model=list[OpenBookingResponse],
    summary="List bookings waiting for a driver",
)
@limiter.limit(settings.rate_limit)
async def list_bookings(
    request: Request,
    matching_vehicle: bool = Query(
        False, description="Only bookings that request my active vehicle's type."
    ),
    caller: Account = Depends(driver_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    if matching_vehicle:
        bookings = await engine.list_bookings_for_driver(caller.id)
    else:
        bookings = await engine.list_open_bookings()
    return [OpenBookingResponse.model_validate(b) for b in bookings]


@router.patch(
    "/booking/{booking_id}/accept",
    response_model=AcceptResponse,
    summary="Accept a booking",
    description=(
        "First driver to accept wins; everyone else receives 404. "
        "Creates the ride and its pending payment."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_booking(
    request: Request,
    booking_id: RecordId,
    caller: Account = Depends(driver_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    acceptance = await engine.accept_booking(booking_id, caller.id)
    return AcceptResponse.model_validate(acceptance)


@router.patch(
    "/ride/{ride_id}/start",
    response_model=RideResponse,
    summary="Start a ride",
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(driver_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.start_ride(ride_id, caller.id)


@router.patch(
    "/ride/{ride_id}/complete",
    response_model=RideResponse,
    summary="Complete a ride",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(driver_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.complete_ride(ride_id, caller.id)
