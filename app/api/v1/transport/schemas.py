from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.fees.schemas import MAX_AMOUNT


class BusStopCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    pickup_time: str = Field(..., max_length=10, description="HH:MM")
    drop_time: str = Field(..., max_length=10, description="HH:MM")
    charges: Decimal = Field(
        Decimal("0"), ge=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2, description="Monthly transport fee"
    )


class BusStopResponse(BaseModel):
    id: UUID
    route_id: UUID
    name: str
    pickup_time: str
    drop_time: str
    charges: Decimal

    class Config:
        from_attributes = True


class TransportRouteCreate(BaseModel):
    route_name: str = Field(..., min_length=1, max_length=255)
    bus_number: str = Field(..., min_length=1, max_length=50)
    driver_name: str = Field(..., min_length=1, max_length=255)
    capacity: int = Field(..., gt=0)
    bus_stops: List[BusStopCreate] = Field(default_factory=list)


class TransportRouteResponse(BaseModel):
    id: UUID
    branch_id: UUID
    route_name: str
    bus_number: str
    driver_name: str
    capacity: int
    member_count: int = 0
    bus_stops: List[BusStopResponse] = Field(default_factory=list)


class AssignTransportRequest(BaseModel):
    route_id: UUID
    stop_id: UUID
    student_id: UUID
