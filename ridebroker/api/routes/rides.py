"""
Ride endpoints shared by both parties
=====================================

GET   /api/v1/rides/{ride_id}        -- ride detail (rider or driver of the ride)
PATCH /api/v1/rides/{ride_id}/cancel -- cancel before pickup (rider or driver)
"""

from fastapi import APIRouter, Depends, Request

from ridebroker.api.dependencies import RecordId, get_engine, ride_party
from ridebroker.api.middleware import limiter
from ridebroker.api.schemas import RideDetailResponse, RideResponse
from ridebroker.config import settings
from ridebroker.domain.entities import Account
from ridebroker.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/rides", tags=["rides"])


@router.get(
    "/{ride_id}",
    response_model=RideDetailResponse,
    summary="Get ride detail",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(ride_party),
    engine: LifecycleEngine = Depends(get_engine),
):
    detail = await engine.view_ride(ride_id, caller)
    return RideDetailResponse.model_validate(detail)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions an ACCEPTED ride to CANCELLED. Once the driver has "
        "started the ride it can no longer be cancelled here."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(ride_party),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.cancel_ride(ride_id, caller)
