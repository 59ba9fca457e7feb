"""Hostel service: hostels, rooms, room assignment with the prorated hostel charge."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fee_service
from app.api.v1.fees.ledger import academic_month_index, format_amount, months_remaining_in_session
from app.auth.schemas import TenantContext
from app.core.enums import ServiceType
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import Hostel, Room, Student
from app.db.session import atomic

from .schemas import HostelCreate, HostelResponse, RoomCreate, RoomOccupant, RoomResponse

logger = logging.getLogger(__name__)

ALREADY_IN_ROOM = "Student is already assigned to a room"


async def _get_hostel_in_branch(db: AsyncSession, ctx: TenantContext, hostel_id: UUID) -> Hostel:
    hostel = (
        await db.execute(select(Hostel).where(Hostel.id == hostel_id, Hostel.branch_id == ctx.branch_id))
    ).scalar_one_or_none()
    if not hostel:
        raise NotFoundError("Hostel not found")
    return hostel


async def _get_room_in_branch(db: AsyncSession, ctx: TenantContext, room_id: UUID) -> Room:
    # Row lock serializes capacity checks for the same room
    room = (
        await db.execute(
            select(Room)
            .join(Hostel, Hostel.id == Room.hostel_id)
            .where(Room.id == room_id, Hostel.branch_id == ctx.branch_id)
            .with_for_update(of=Room)
        )
    ).scalar_one_or_none()
    if not room:
        raise NotFoundError("Room not found")
    return room


async def _claim_room(db: AsyncSession, student_id: UUID, room_id: UUID, start_month: int) -> None:
    """Set the room only while the student still has none; a concurrent claim that won first fails here."""
    result = await db.execute(
        update(Student)
        .where(Student.id == student_id, Student.room_id.is_(None))
        .values(room_id=room_id, hostel_start_month=start_month)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(ALREADY_IN_ROOM)


def _room_to_response(room: Room, occupants: List[Student]) -> RoomResponse:
    return RoomResponse(
        id=room.id,
        hostel_id=room.hostel_id,
        room_number=room.room_number,
        capacity=room.capacity,
        fee=room.fee,
        room_type=room.room_type,
        occupants=[RoomOccupant(student_id=s.id, name=s.name) for s in occupants],
    )


async def create_hostel(db: AsyncSession, ctx: TenantContext, payload: HostelCreate) -> HostelResponse:
    async with atomic(db):
        hostel = Hostel(branch_id=ctx.branch_id, name=payload.name.strip(), warden=payload.warden.strip())
        db.add(hostel)
        await db.flush()
    return HostelResponse.model_validate(hostel)


async def create_room(
    db: AsyncSession,
    ctx: TenantContext,
    hostel_id: UUID,
    payload: RoomCreate,
) -> RoomResponse:
    async with atomic(db):
        hostel = await _get_hostel_in_branch(db, ctx, hostel_id)
        room_number = payload.room_number.strip()
        existing = (
            await db.execute(
                select(Room.id).where(Room.hostel_id == hostel.id, Room.room_number == room_number)
            )
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"Room {room_number} already exists in this hostel")
        room = Room(
            hostel_id=hostel.id,
            room_number=room_number,
            capacity=payload.capacity,
            fee=payload.fee,
            room_type=payload.room_type,
        )
        db.add(room)
        await db.flush()
    return _room_to_response(room, [])


async def list_rooms(db: AsyncSession, ctx: TenantContext, hostel_id: UUID) -> List[RoomResponse]:
    """Rooms of a hostel, each with its current occupants."""
    hostel = await _get_hostel_in_branch(db, ctx, hostel_id)
    rooms = (
        await db.execute(select(Room).where(Room.hostel_id == hostel.id).order_by(Room.room_number))
    ).scalars().all()
    if not rooms:
        return []
    students = (
        await db.execute(
            select(Student)
            .where(Student.branch_id == ctx.branch_id, Student.room_id.in_([r.id for r in rooms]))
            .order_by(Student.name)
        )
    ).scalars().all()
    return [_room_to_response(r, [s for s in students if s.room_id == r.id]) for r in rooms]


async def assign_student_to_room(
    db: AsyncSession,
    ctx: TenantContext,
    room_id: UUID,
    student_id: UUID,
    today: Optional[date] = None,
) -> None:
    """
    Put a student in a room and charge the room fee for the rest of the
    session. Charge, fee record and assignment commit together or not at all.
    """
    today = today or date.today()
    async with atomic(db):
        room = await _get_room_in_branch(db, ctx, room_id)
        student = await fee_service.get_student_in_branch(db, ctx, student_id, lock=True)
        if student.room_id is not None:
            raise ConflictError(ALREADY_IN_ROOM)

        occupied = (
            await db.execute(select(func.count(Student.id)).where(Student.room_id == room.id))
        ).scalar_one()
        if occupied >= room.capacity:
            raise ConflictError("Room is full")

        months_left = months_remaining_in_session(today)
        await fee_service.post_service_charge(
            db,
            ctx,
            student.id,
            room.fee,
            ServiceType.HOSTEL,
            f"Hostel Assigned: Room {room.room_number} ({months_left} months @ {format_amount(room.fee)})",
            months_remaining=months_left,
            today=today,
        )
        await _claim_room(db, student.id, room.id, academic_month_index(today))
        student.room = room
        student.hostel_start_month = academic_month_index(today)

    logger.info("Assigned student %s to room %s", student_id, room_id)


async def remove_student_from_room(db: AsyncSession, ctx: TenantContext, student_id: UUID) -> None:
    """Clear the room assignment. Charges already posted stay on the ledger."""
    async with atomic(db):
        student = await fee_service.get_student_in_branch(db, ctx, student_id)
        student.room = None
        student.hostel_start_month = None
    logger.info("Removed student %s from hostel room", student_id)
