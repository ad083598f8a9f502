"""
Rider endpoints
===============

POST  /api/v1/users/booking              -- request a trip
GET   /api/v1/users/booking/{booking_id} -- view own booking
PATCH /api/v1/users/booking/{booking_id} -- edit a still-requested booking
PATCH /api/v1/users/booking/{booking_id}/cancel -- withdraw a booking
PATCH /api/v1/users/ride/{ride_id}/payment      -- settle the ride's payment
POST  /api/v1/users/ride/{ride_id}/rating       -- rate a completed ride
"""

from fastapi import APIRouter, Depends, Request

from ridebroker.api.dependencies import RecordId, get_engine, rider_only
from ridebroker.api.middleware import limiter
from ridebroker.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    BookingUpdateRequest,
    PaymentRequest,
    PaymentResponse,
    RatingRequest,
    RatingResponse,
)
from ridebroker.config import settings
from ridebroker.domain.entities import Account
from ridebroker.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/users", tags=["riders"])


@router.post(
    "/booking",
    status_code=201,
    response_model=BookingResponse,
    summary="Request a trip",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.create_booking(
        caller.id,
        body.pickup_location,
        body.dropoff_location,
        body.requested_vehicle_type,
    )


@router.get(
    "/booking/{booking_id}",
    response_model=BookingResponse,
    summary="View own booking",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: RecordId,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.view_booking(booking_id, caller.id)


@router.patch(
    "/booking/{booking_id}",
    response_model=BookingResponse,
    summary="Edit a booking that no driver has accepted yet",
)
@limiter.limit(settings.rate_limit)
async def update_booking(
    request: Request,
    booking_id: RecordId,
    body: BookingUpdateRequest,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.update_booking(
        booking_id, caller.id, body.model_dump(exclude_none=True)
    )


@router.patch(
    "/booking/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a requested booking",
    description="Keeps the booking as history; only REQUESTED bookings can be cancelled.",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: RecordId,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.cancel_booking(booking_id, caller.id)


@router.patch(
    "/ride/{ride_id}/payment",
    response_model=PaymentResponse,
    summary="Pay for a ride",
)
@limiter.limit(settings.rate_limit)
async def pay_for_ride(
    request: Request,
    ride_id: RecordId,
    body: PaymentRequest,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.pay_for_ride(
        ride_id, caller.id, body.payment_method, body.transaction_reference
    )


@router.post(
    "/ride/{ride_id}/rating",
    status_code=201,
    response_model=RatingResponse,
    summary="Rate a completed ride",
)
@limiter.limit(settings.rate_limit)
async def rate_ride(
    request: Request,
    ride_id: RecordId,
    body: RatingRequest,
    caller: Account = Depends(rider_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.rate_ride(ride_id, caller.id, body.rating, body.comment)
