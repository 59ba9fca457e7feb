"""Hostel router: hostels, rooms, room assignment."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.schemas import MessageResponse
from app.auth.dependencies import get_tenant_context
from app.auth.schemas import TenantContext
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import AssignRoomRequest, HostelCreate, HostelResponse, RoomCreate, RoomResponse
from . import service

router = APIRouter(prefix="/api/v1/hostels", tags=["hostels"])


@router.post("", response_model=HostelResponse, status_code=status.HTTP_201_CREATED)
async def create_hostel(
    payload: HostelCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> HostelResponse:
    return await service.create_hostel(db, ctx, payload)


@router.post("/{hostel_id}/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    hostel_id: UUID,
    payload: RoomCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> RoomResponse:
    try:
        return await service.create_room(db, ctx, hostel_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{hostel_id}/rooms", response_model=List[RoomResponse])
async def list_rooms(
    hostel_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[RoomResponse]:
    try:
        return await service.list_rooms(db, ctx, hostel_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/rooms/{room_id}/assign", response_model=MessageResponse)
async def assign_student_to_room(
    room_id: UUID,
    payload: AssignRoomRequest,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MessageResponse:
    try:
        await service.assign_student_to_room(db, ctx, room_id, payload.student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Student assigned and fees updated.")


@router.delete("/students/{student_id}/room", response_model=MessageResponse)
async def remove_student_from_room(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MessageResponse:
    try:
        await service.remove_student_from_room(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Student removed from room.")
