"""Fees router: templates, fee records, breakdown, payments, adjustments, reports."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_tenant_context
from app.auth.schemas import TenantContext
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AdjustmentCreate,
    AdjustmentResponse,
    AssignTemplateToClassRequest,
    ClassFeeSummary,
    DefaulterItem,
    FeeHistoryItem,
    FeeOverviewItem,
    FeeRecordResponse,
    FeeTemplateCreate,
    FeeTemplateResponse,
    MessageResponse,
    MonthlyBreakdownResponse,
    PaymentCreate,
    PaymentResponse,
    StudentFeeProfileResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee Template ---
@router.post("/templates", response_model=FeeTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_template(
    payload: FeeTemplateCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> FeeTemplateResponse:
    try:
        return await service.create_fee_template(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/templates", response_model=List[FeeTemplateResponse])
async def list_fee_templates(
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[FeeTemplateResponse]:
    return await service.list_fee_templates(db, ctx)


@router.put("/classes/{class_id}/template", response_model=MessageResponse)
async def assign_template_to_class(
    class_id: UUID,
    payload: AssignTemplateToClassRequest,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MessageResponse:
    try:
        await service.assign_template_to_class(db, ctx, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Fee template updated for class")


# --- Student fee record ---
@router.post("/students/{student_id}/record", response_model=FeeRecordResponse)
async def get_or_initialize_fee_record(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> FeeRecordResponse:
    try:
        return await service.get_or_initialize_fee_record(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}", response_model=StudentFeeProfileResponse)
async def get_student_fee_profile(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> StudentFeeProfileResponse:
    try:
        return await service.get_student_fee_profile(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/breakdown", response_model=MonthlyBreakdownResponse)
async def get_monthly_breakdown(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> MonthlyBreakdownResponse:
    try:
        return await service.compute_monthly_breakdown(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/history", response_model=List[FeeHistoryItem])
async def get_fee_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[FeeHistoryItem]:
    try:
        return await service.get_fee_history(db, ctx, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Payment ---
@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentResponse:
    try:
        return await service.record_payment(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Adjustment ---
@router.post("/adjustments", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def post_adjustment(
    payload: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> AdjustmentResponse:
    try:
        return await service.post_adjustment(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Reports ---
@router.get("/overview", response_model=List[FeeOverviewItem])
async def get_fee_collection_overview(
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[FeeOverviewItem]:
    return await service.get_fee_collection_overview(db, ctx)


@router.get("/class-summaries", response_model=List[ClassFeeSummary])
async def get_class_fee_summaries(
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[ClassFeeSummary]:
    return await service.get_class_fee_summaries(db, ctx)


@router.get("/classes/{class_id}/defaulters", response_model=List[DefaulterItem])
async def get_class_defaulters(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[DefaulterItem]:
    try:
        return await service.get_class_defaulters(db, ctx, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
