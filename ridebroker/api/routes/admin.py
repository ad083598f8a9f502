"""
Admin / observability endpoints
===============================

GET   /api/v1/admins/ride                 -- list all rides
GET   /api/v1/admins/ride/{ride_id}       -- any ride's detail
PATCH /api/v1/admins/ride/{ride_id}/cancel -- force-cancel an accepted or ongoing ride
GET   /api/v1/admins/health               -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from ridebroker.api.dependencies import RecordId, admin_only, get_engine
from ridebroker.api.middleware import limiter
from ridebroker.api.schemas import (
    HealthResponse,
    RideDetailResponse,
    RideResponse,
    RideSummaryResponse,
)
from ridebroker.config import settings
from ridebroker.domain.entities import Account
from ridebroker.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/admins", tags=["admin"])


@router.get(
    "/ride",
    response_model=list[RideSummaryResponse],
    summary="List all rides, newest first",
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    caller: Account = Depends(admin_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.list_rides()


@router.get(
    "/ride/{ride_id}",
    response_model=RideDetailResponse,
    summary="Get any ride's detail",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(admin_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    detail = await engine.view_ride(ride_id, caller)
    return RideDetailResponse.model_validate(detail)


@router.patch(
    "/ride/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Force-cancel a ride",
)
@limiter.limit(settings.rate_limit)
async def force_cancel_ride(
    request: Request,
    ride_id: RecordId,
    caller: Account = Depends(admin_only),
    engine: LifecycleEngine = Depends(get_engine),
):
    return await engine.force_cancel_ride(ride_id)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
