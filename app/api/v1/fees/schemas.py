"""Fees schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.enums import FeeAdjustmentType

from .ledger import ACADEMIC_MONTH_NAMES

# Money columns are Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


# --- Fee Template ---
class TemplateComponent(BaseModel):
    component: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2)


class TemplateMonth(BaseModel):
    month: str
    total: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2)
    breakdown: List[TemplateComponent] = Field(default_factory=list)

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        if v not in ACADEMIC_MONTH_NAMES:
            raise ValueError(f"month must be one of {', '.join(ACADEMIC_MONTH_NAMES)}")
        return v


class FeeTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2, description="Annual amount")
    grade_level: int = Field(..., ge=0)
    monthly_breakdown: List[TemplateMonth] = Field(default_factory=list)

    @field_validator("monthly_breakdown")
    @classmethod
    def validate_unique_months(cls, v: List[TemplateMonth]) -> List[TemplateMonth]:
        names = [m.month for m in v]
        if len(names) != len(set(names)):
            raise ValueError("Each month may appear only once in monthly_breakdown")
        return v


class FeeTemplateResponse(BaseModel):
    id: UUID
    branch_id: UUID
    name: str
    amount: Decimal
    grade_level: int
    monthly_breakdown: Optional[list] = None
    effective_annual_amount: Decimal
    created_at: datetime


class AssignTemplateToClassRequest(BaseModel):
    fee_template_id: Optional[UUID] = None


# --- Fee Record ---
class FeeRecordResponse(BaseModel):
    id: UUID
    student_id: UUID
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    due_date: date
    created_at: datetime
    updated_at: datetime


# --- Breakdown ---
class BreakdownComponent(BaseModel):
    component: str
    amount: Decimal


class MonthBreakdown(BaseModel):
    month: str
    total: Decimal
    breakdown: List[BreakdownComponent]


class MonthlyBreakdownResponse(BaseModel):
    student_id: UUID
    months: List[MonthBreakdown]
    annual_total: Decimal


# --- Payment ---
class PaymentCreate(BaseModel):
    student_id: UUID
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2)
    transaction_id: Optional[str] = Field(None, max_length=100)
    details: Optional[str] = None


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    fee_record_id: Optional[UUID] = None
    amount: Decimal
    paid_date: datetime
    transaction_id: str
    details: Optional[str] = None

    class Config:
        from_attributes = True


# --- Adjustment ---
class AdjustmentCreate(BaseModel):
    student_id: UUID
    type: FeeAdjustmentType
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=1)


class AdjustmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    type: str
    amount: Decimal
    reason: str
    service_type: Optional[str] = None
    adjusted_by: str
    date: datetime

    class Config:
        from_attributes = True


# --- History / Profile ---
class PaymentHistoryItem(PaymentResponse):
    item_type: Literal["payment"] = "payment"


class AdjustmentHistoryItem(AdjustmentResponse):
    item_type: Literal["adjustment"] = "adjustment"


FeeHistoryItem = Union[PaymentHistoryItem, AdjustmentHistoryItem]


class FeeStatusSummary(BaseModel):
    total: Decimal
    paid: Decimal
    pending: Decimal


class StudentFeeProfileResponse(BaseModel):
    student_id: UUID
    student_name: str
    class_name: Optional[str] = None
    fee_status: FeeStatusSummary
    materialized: bool
    due_date: Optional[date] = None
    monthly_breakdown: List[MonthBreakdown]
    annual_total: Decimal
    history: List[FeeHistoryItem]


# --- Reports ---
class FeeOverviewItem(BaseModel):
    student_id: UUID
    name: str
    class_name: str
    total_fee: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    last_paid_date: Optional[datetime] = None
    due_date: date
    status: str


class ClassFeeSummary(BaseModel):
    class_id: UUID
    class_name: str
    student_count: int
    defaulter_count: int
    pending_amount: Decimal


class DefaulterItem(BaseModel):
    student_id: UUID
    student_name: str
    pending_amount: Decimal


class MessageResponse(BaseModel):
    message: str
