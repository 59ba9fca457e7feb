"""Transport service: routes, bus stops, stop assignment with the prorated transport charge."""

import logging
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fee_service
from app.api.v1.fees.ledger import academic_month_index, format_amount, months_remaining_in_session
from app.auth.schemas import TenantContext
from app.core.enums import ServiceType
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import BusStop, Student, TransportRoute
from app.db.session import atomic

from .schemas import (
    BusStopCreate,
    BusStopResponse,
    TransportRouteCreate,
    TransportRouteResponse,
)

logger = logging.getLogger(__name__)

ALREADY_ON_ROUTE = "Student is already assigned to a transport route"


async def _get_route_in_branch(db: AsyncSession, ctx: TenantContext, route_id: UUID) -> TransportRoute:
    route = (
        await db.execute(
            select(TransportRoute).where(
                TransportRoute.id == route_id,
                TransportRoute.branch_id == ctx.branch_id,
            )
        )
    ).scalar_one_or_none()
    if not route:
        raise NotFoundError("Transport route not found")
    return route


async def _claim_route(db: AsyncSession, student_id: UUID, route_id: UUID, stop_id: UUID, start_month: int) -> None:
    result = await db.execute(
        update(Student)
        .where(Student.id == student_id, Student.transport_route_id.is_(None))
        .values(transport_route_id=route_id, bus_stop_id=stop_id, transport_start_month=start_month)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(ALREADY_ON_ROUTE)


def _route_to_response(route: TransportRoute, stops: List[BusStop], member_count: int) -> TransportRouteResponse:
    return TransportRouteResponse(
        id=route.id,
        branch_id=route.branch_id,
        route_name=route.route_name,
        bus_number=route.bus_number,
        driver_name=route.driver_name,
        capacity=route.capacity,
        member_count=member_count,
        bus_stops=[BusStopResponse.model_validate(s) for s in stops],
    )


async def create_route(
    db: AsyncSession,
    ctx: TenantContext,
    payload: TransportRouteCreate,
) -> TransportRouteResponse:
    """Create a route together with its initial stops."""
    async with atomic(db):
        route = TransportRoute(
            branch_id=ctx.branch_id,
            route_name=payload.route_name.strip(),
            bus_number=payload.bus_number.strip(),
            driver_name=payload.driver_name.strip(),
            capacity=payload.capacity,
        )
        db.add(route)
        await db.flush()
        stops = []
        for s in payload.bus_stops:
            stop = BusStop(
                route_id=route.id,
                name=s.name.strip(),
                pickup_time=s.pickup_time,
                drop_time=s.drop_time,
                charges=s.charges,
            )
            db.add(stop)
            stops.append(stop)
        await db.flush()
    return _route_to_response(route, sorted(stops, key=lambda s: s.name), 0)


async def create_stop(
    db: AsyncSession,
    ctx: TenantContext,
    route_id: UUID,
    payload: BusStopCreate,
) -> BusStopResponse:
    async with atomic(db):
        route = await _get_route_in_branch(db, ctx, route_id)
        stop = BusStop(
            route_id=route.id,
            name=payload.name.strip(),
            pickup_time=payload.pickup_time,
            drop_time=payload.drop_time,
            charges=payload.charges,
        )
        db.add(stop)
        await db.flush()
    return BusStopResponse.model_validate(stop)


async def list_routes(db: AsyncSession, ctx: TenantContext) -> List[TransportRouteResponse]:
    """Routes of the branch with their stops and the number of students riding each."""
    routes = (
        await db.execute(
            select(TransportRoute)
            .where(TransportRoute.branch_id == ctx.branch_id)
            .order_by(TransportRoute.route_name)
        )
    ).scalars().all()
    if not routes:
        return []
    route_ids = [r.id for r in routes]
    stops = (
        await db.execute(select(BusStop).where(BusStop.route_id.in_(route_ids)).order_by(BusStop.name))
    ).scalars().all()
    counts: Dict[UUID, int] = dict(
        (
            await db.execute(
                select(Student.transport_route_id, func.count(Student.id))
                .where(Student.branch_id == ctx.branch_id, Student.transport_route_id.in_(route_ids))
                .group_by(Student.transport_route_id)
            )
        ).all()
    )
    return [
        _route_to_response(r, [s for s in stops if s.route_id == r.id], counts.get(r.id, 0))
        for r in routes
    ]


async def assign_student_to_stop(
    db: AsyncSession,
    ctx: TenantContext,
    route_id: UUID,
    stop_id: UUID,
    student_id: UUID,
    today: Optional[date] = None,
) -> None:
    """
    Put a student on a route at a stop and charge the stop's monthly fee for
    the rest of the session, all in one transaction.
    """
    today = today or date.today()
    async with atomic(db):
        route = await _get_route_in_branch(db, ctx, route_id)
        stop = (
            await db.execute(select(BusStop).where(BusStop.id == stop_id, BusStop.route_id == route.id))
        ).scalar_one_or_none()
        if not stop:
            raise NotFoundError("Bus stop not found on this route")
        student = await fee_service.get_student_in_branch(db, ctx, student_id, lock=True)
        if student.transport_route_id is not None:
            raise ConflictError(ALREADY_ON_ROUTE)

        months_left = months_remaining_in_session(today)
        await fee_service.post_service_charge(
            db,
            ctx,
            student.id,
            stop.charges,
            ServiceType.TRANSPORT,
            f"Transport Assigned: {stop.name} ({months_left} months @ {format_amount(stop.charges)})",
            months_remaining=months_left,
            today=today,
        )
        await _claim_route(db, student.id, route.id, stop.id, academic_month_index(today))
        student.transport_route_id = route.id
        student.bus_stop = stop
        student.transport_start_month = academic_month_index(today)

    logger.info("Assigned student %s to route %s at stop %s", student_id, route_id, stop_id)


async def remove_student_from_route(db: AsyncSession, ctx: TenantContext, student_id: UUID) -> None:
    """Clear the transport assignment. Charges already posted stay on the ledger."""
    async with atomic(db):
        student = await fee_service.get_student_in_branch(db, ctx, student_id)
        student.transport_route_id = None
        student.bus_stop = None
        student.transport_start_month = None
    logger.info("Removed student %s from transport route", student_id)
