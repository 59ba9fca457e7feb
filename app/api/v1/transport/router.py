"""Transport router: routes, stops, member assignment."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.schemas import MessageResponse
from app.auth.dependencies import get_tenant_context
from app.auth.schemas import TenantContext
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AssignTransportRequest,
    BusStopCreate,
    BusStopResponse,
    TransportRouteCreate,
    TransportRouteResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/transport", tags=["transport"])


@router.post("/routes", response_model=TransportRouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: TransportRouteCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> TransportRouteResponse:
    return await service.create_route(db, ctx, payload)


@router.get("/routes", response_model=List[TransportRouteResponse])
async def list_routes(
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[TransportRouteResponse]:
    return await service.list_routes(db, ctx)


@router.post("/routes/{route_id}/stops", response_model=BusStopResponse, status_code=status.HTTP_201_CREATED)
async def create_stop(
    route_id: UUID,
    payload: BusStopCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> BusStopResponse:
    try:
        return await service.create_stop(db, ctx, route_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/assign", response_model=MessageResponse)
async def assign_student_to_stop(
    payload: AssignTransportRequest,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MessageResponse:
    try:
        await service.assign_student_to_stop(db, ctx, payload.route_id, payload.stop_id, payload.student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Transport assigned and fees updated.")


@router.delete("/students/{student_id}", response_model=MessageResponse)
async def remove_student_from_route(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MessageResponse:
    try:
        await service.remove_student_from_route(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Member removed from route successfully.")
