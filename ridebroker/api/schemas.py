"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ── Requests ──────────────────────────────────────────────────────────
# Enumerated fields arrive as plain strings; the Lifecycle Engine owns
# their validation so every entry point reports the same error.


class BookingCreateRequest(BaseModel):
    pickup_location: Optional[str] = Field(None, max_length=255)
    dropoff_location: Optional[str] = Field(None, max_length=255)
    requested_vehicle_type: Optional[str] = Field(
        None, description="One of: 4 people car, 6 people car, motor, van."
    )


class BookingUpdateRequest(BaseModel):
    pickup_location: Optional[str] = Field(None, max_length=255)
    dropoff_location: Optional[str] = Field(None, max_length=255)
    requested_vehicle_type: Optional[str] = None


class PaymentRequest(BaseModel):
    payment_method: Optional[str] = Field(
        None, description="One of: cash, bank, credit_card."
    )
    transaction_reference: Optional[str] = Field(
        None,
        max_length=128,
        description="Required for bank and credit_card payments.",
    )


class RatingRequest(BaseModel):
    # Any JSON value is accepted so that 4.5 or "5" is reported as a rating
    # error rather than a schema error.
    rating: Any = None
    comment: Optional[str] = Field(None, max_length=1000)


# ── Responses ─────────────────────────────────────────────────────────


class BookingResponse(BaseModel):
    id: int
    rider_id: int
    pickup_location: str
    dropoff_location: str
    requested_vehicle_type: str
    estimated_distance: float
    estimated_fare: float
    status: str
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OpenBookingResponse(BaseModel):
    id: int
    pickup_location: str
    dropoff_location: str
    requested_vehicle_type: str
    estimated_distance: float
    estimated_fare: float
    status: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    booking_id: int
    rider_id: int
    driver_id: int
    vehicle_id: int
    distance: float
    fare: float
    status: str
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    duration: Optional[int] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    ride_id: int
    amount: float
    payment_method: Optional[str] = None
    transaction_reference: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AcceptResponse(BaseModel):
    ride: RideResponse
    payment: PaymentResponse

    model_config = {"from_attributes": True}


class RatingResponse(BaseModel):
    id: int
    ride_id: int
    driver_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PartyResponse(BaseModel):
    username: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class DriverPartyResponse(PartyResponse):
    rating: Optional[float] = None


class VehicleResponse(BaseModel):
    vehicle_type: str
    plate_number: str
    brand: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None

    model_config = {"from_attributes": True}


class RideDetailResponse(BaseModel):
    id: int
    booking_id: int
    status: str
    distance: float
    fare: float
    duration: Optional[int] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    rider: PartyResponse
    driver: DriverPartyResponse
    vehicle: VehicleResponse

    model_config = {"from_attributes": True}


class RideSummaryResponse(BaseModel):
    id: int
    rider_id: int
    driver_id: int
    vehicle_id: int
    distance: float
    duration: Optional[int] = None
    fare: float
    status: str

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error: str
