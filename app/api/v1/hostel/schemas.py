from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.fees.schemas import MAX_AMOUNT


class HostelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    warden: str = Field("", max_length=255)


class HostelResponse(BaseModel):
    id: UUID
    branch_id: UUID
    name: str
    warden: str

    class Config:
        from_attributes = True


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(..., gt=0)
    fee: Decimal = Field(
        ..., ge=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2, description="Monthly fee per occupant"
    )
    room_type: str = Field("Shared", max_length=50)


class RoomOccupant(BaseModel):
    student_id: UUID
    name: str


class RoomResponse(BaseModel):
    id: UUID
    hostel_id: UUID
    room_number: str
    capacity: int
    fee: Decimal
    room_type: str
    occupants: List[RoomOccupant] = Field(default_factory=list)


class AssignRoomRequest(BaseModel):
    student_id: UUID
