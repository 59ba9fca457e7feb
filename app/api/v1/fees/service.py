"""Fees service: templates, fee records, service charges, payments, adjustments, reports.

Ledger rule: FeeRecord.total_amount / paid_amount change only through
_increment_fee_record (SQL-side arithmetic), always in the same transaction
as the FeeAdjustment / FeePayment row explaining the change.
"""

import logging
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import TenantContext
from app.core.enums import FeeAdjustmentType, FeeStatus, ServiceType
from app.core.exceptions import ConflictError, NotFoundError, ValidationFailed
from app.core.models import FeeAdjustment, FeePayment, FeeRecord, FeeTemplate, SchoolClass, Student
from app.db.session import atomic

from .ledger import (
    ZERO,
    ServiceLine,
    build_monthly_breakdown,
    derived_net_total,
    effective_annual_tuition,
    months_remaining_in_session,
    service_start_index,
    session_due_date,
    signed_amount,
    to_decimal,
)
from .schemas import (
    AdjustmentCreate,
    AdjustmentHistoryItem,
    AdjustmentResponse,
    AssignTemplateToClassRequest,
    ClassFeeSummary,
    DefaulterItem,
    FeeOverviewItem,
    FeeRecordResponse,
    FeeStatusSummary,
    FeeTemplateCreate,
    FeeTemplateResponse,
    MonthlyBreakdownResponse,
    PaymentCreate,
    PaymentHistoryItem,
    PaymentResponse,
    StudentFeeProfileResponse,
)

logger = logging.getLogger(__name__)

AdjustmentPairs = List[Tuple[str, Decimal]]


def _today(today: Optional[date]) -> date:
    return today or date.today()


# --- Lookups ---
async def get_student_in_branch(
    db: AsyncSession, ctx: TenantContext, student_id: UUID, lock: bool = False
) -> Student:
    """Student of the caller's branch. Other branches' students are reported as not found."""
    stmt = (
        select(Student)
        .where(Student.id == student_id, Student.branch_id == ctx.branch_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        # Only the students row; the eager joins are outer joins.
        stmt = stmt.with_for_update(of=Student)
    student = (await db.execute(stmt)).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def _get_fee_record(db: AsyncSession, student_id: UUID, lock: bool = False) -> Optional[FeeRecord]:
    stmt = select(FeeRecord).where(FeeRecord.student_id == student_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _adjustment_pairs(db: AsyncSession, student_id: UUID) -> AdjustmentPairs:
    rows = (
        await db.execute(
            select(FeeAdjustment.type, FeeAdjustment.amount).where(FeeAdjustment.student_id == student_id)
        )
    ).all()
    return [(t, to_decimal(a)) for t, a in rows]


# --- Ledger derivation ---
def _service_lines(student: Student, today: date) -> List[ServiceLine]:
    lines: List[ServiceLine] = []
    if student.room is not None:
        lines.append(
            ServiceLine(
                label=f"Hostel ({student.room.room_number})",
                monthly_rate=to_decimal(student.room.fee),
                start_index=service_start_index(student.hostel_start_month, student.admitted_at, today),
            )
        )
    if student.bus_stop is not None:
        lines.append(
            ServiceLine(
                label=f"Transport ({student.bus_stop.name})",
                monthly_rate=to_decimal(student.bus_stop.charges),
                start_index=service_start_index(student.transport_start_month, student.admitted_at, today),
            )
        )
    return lines


def _template_terms(student: Student) -> Tuple[Optional[Decimal], Optional[list]]:
    template = student.school_class.fee_template if student.school_class is not None else None
    if template is None:
        return None, None
    return to_decimal(template.amount), template.monthly_breakdown


def _student_breakdown(student: Student, today: date):
    amount, monthly = _template_terms(student)
    return build_monthly_breakdown(amount, monthly, _service_lines(student, today))


def _ledger_totals(
    student: Student,
    record: Optional[FeeRecord],
    adjustments: AdjustmentPairs,
    today: date,
) -> Tuple[Decimal, Decimal]:
    """(total, paid): the stored record when materialized, else the derived total."""
    if record is not None:
        return to_decimal(record.total_amount), to_decimal(record.paid_amount)
    _, annual_total = _student_breakdown(student, today)
    return derived_net_total(annual_total, adjustments), ZERO


async def ensure_fee_record(db: AsyncSession, student: Student, today: date) -> FeeRecord:
    """
    Return the student's fee record, creating it from the derived total when
    missing. Does not commit. A concurrent creator for the same student trips
    the unique constraint and this call fails with a conflict.
    """
    record = await _get_fee_record(db, student.id, lock=True)
    if record is not None:
        return record

    _, annual_total = _student_breakdown(student, today)
    net_total = derived_net_total(annual_total, await _adjustment_pairs(db, student.id))
    record = FeeRecord(
        student_id=student.id,
        total_amount=net_total,
        paid_amount=ZERO,
        due_date=session_due_date(today),
    )
    db.add(record)
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("Fee record is being initialized by another request; retry")
    logger.info("Initialized fee record for student %s with total %s", student.id, net_total)
    return record


async def _increment_fee_record(
    db: AsyncSession,
    record_id: UUID,
    total_delta: Decimal = ZERO,
    paid_delta: Decimal = ZERO,
) -> None:
    await db.execute(
        update(FeeRecord)
        .where(FeeRecord.id == record_id)
        .values(
            total_amount=FeeRecord.total_amount + total_delta,
            paid_amount=FeeRecord.paid_amount + paid_delta,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


# --- Fee Record ---
def record_to_response(record: FeeRecord) -> FeeRecordResponse:
    total = to_decimal(record.total_amount)
    paid = to_decimal(record.paid_amount)
    return FeeRecordResponse(
        id=record.id,
        student_id=record.student_id,
        total_amount=total,
        paid_amount=paid,
        pending_amount=total - paid,
        due_date=record.due_date,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


async def get_or_initialize_fee_record(
    db: AsyncSession,
    ctx: TenantContext,
    student_id: UUID,
    today: Optional[date] = None,
) -> FeeRecordResponse:
    async with atomic(db):
        student = await get_student_in_branch(db, ctx, student_id)
        record = await ensure_fee_record(db, student, _today(today))
    return record_to_response(record)


# --- Service charges ---
async def post_service_charge(
    db: AsyncSession,
    ctx: TenantContext,
    student_id: UUID,
    monthly_rate: Decimal,
    service_type: Optional[ServiceType],
    reason: str,
    months_remaining: Optional[int] = None,
    today: Optional[date] = None,
) -> Optional[FeeAdjustment]:
    """
    Charge monthly_rate * months_remaining onto the student's record and log
    it as a `charge` adjustment. Nothing is written when the charge is zero.
    Not idempotent: callers must guard against re-assignment. Does not commit.
    """
    today = _today(today)
    if months_remaining is None:
        months_remaining = months_remaining_in_session(today)
    total_charge = to_decimal(monthly_rate) * months_remaining
    if total_charge <= 0:
        return None

    student = await get_student_in_branch(db, ctx, student_id)
    record = await ensure_fee_record(db, student, today)
    await _increment_fee_record(db, record.id, total_delta=total_charge)
    adjustment = FeeAdjustment(
        student_id=student.id,
        type=FeeAdjustmentType.CHARGE.value,
        amount=total_charge,
        reason=reason,
        service_type=service_type.value if service_type else None,
        adjusted_by=ctx.actor_name,
        date=datetime.utcnow(),
    )
    db.add(adjustment)
    await db.flush()
    logger.info("Posted service charge of %s to student %s: %s", total_charge, student.id, reason)
    return adjustment


# --- Breakdown ---
async def compute_monthly_breakdown(
    db: AsyncSession,
    ctx: TenantContext,
    student_id: UUID,
    today: Optional[date] = None,
) -> MonthlyBreakdownResponse:
    student = await get_student_in_branch(db, ctx, student_id)
    months, annual_total = _student_breakdown(student, _today(today))
    return MonthlyBreakdownResponse(student_id=student.id, months=months, annual_total=annual_total)


# --- Payment ---
def _payment_to_response(payment: FeePayment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        student_id=payment.student_id,
        fee_record_id=payment.fee_record_id,
        amount=to_decimal(payment.amount),
        paid_date=payment.paid_date,
        transaction_id=payment.transaction_id,
        details=payment.details,
    )


async def record_payment(
    db: AsyncSession,
    ctx: TenantContext,
    payload: PaymentCreate,
    today: Optional[date] = None,
) -> PaymentResponse:
    """Log a payment and raise paid_amount by the same amount. Overpayment is allowed."""
    amount = to_decimal(payload.amount)
    if amount <= 0:
        raise ValidationFailed("Payment amount must be greater than zero")

    async with atomic(db):
        student = await get_student_in_branch(db, ctx, payload.student_id)
        record = await ensure_fee_record(db, student, _today(today))
        payment = FeePayment(
            student_id=student.id,
            fee_record_id=record.id,
            amount=amount,
            paid_date=datetime.utcnow(),
            transaction_id=(payload.transaction_id or "").strip() or f"CASH-{int(time.time() * 1000)}",
            details=(payload.details or "").strip() or f"Payment collected by {ctx.actor_name}",
        )
        db.add(payment)
        await db.flush()
        await _increment_fee_record(db, record.id, paid_delta=amount)

    logger.info("Recorded payment %s of %s for student %s", payment.transaction_id, amount, student.id)
    return _payment_to_response(payment)


# --- Adjustment ---
def _adjustment_to_response(adj: FeeAdjustment) -> AdjustmentResponse:
    return AdjustmentResponse(
        id=adj.id,
        student_id=adj.student_id,
        type=adj.type,
        amount=to_decimal(adj.amount),
        reason=adj.reason,
        service_type=adj.service_type,
        adjusted_by=adj.adjusted_by,
        date=adj.date,
    )


async def post_adjustment(
    db: AsyncSession,
    ctx: TenantContext,
    payload: AdjustmentCreate,
    today: Optional[date] = None,
) -> AdjustmentResponse:
    """Manual charge (fine) or concession (discount). Amount is positive; type decides the sign."""
    amount = to_decimal(payload.amount)
    if amount <= 0:
        raise ValidationFailed("Adjustment amount must be greater than zero")
    reason = payload.reason.strip()
    if not reason:
        raise ValidationFailed("Adjustment reason is required")

    async with atomic(db):
        student = await get_student_in_branch(db, ctx, payload.student_id)
        record = await ensure_fee_record(db, student, _today(today))
        adjustment = FeeAdjustment(
            student_id=student.id,
            type=payload.type.value,
            amount=amount,
            reason=reason,
            adjusted_by=ctx.actor_name,
            date=datetime.utcnow(),
        )
        db.add(adjustment)
        await db.flush()
        await _increment_fee_record(db, record.id, total_delta=signed_amount(payload.type.value, amount))

    logger.info("Posted %s of %s for student %s", payload.type.value, amount, student.id)
    return _adjustment_to_response(adjustment)


# --- History / Profile ---
async def _history_items(db: AsyncSession, student_id: UUID) -> list:
    payments = (
        await db.execute(select(FeePayment).where(FeePayment.student_id == student_id))
    ).scalars().all()
    adjustments = (
        await db.execute(
            select(FeeAdjustment).where(FeeAdjustment.student_id == student_id).order_by(FeeAdjustment.date)
        )
    ).scalars().all()
    items = [PaymentHistoryItem(**_payment_to_response(p).model_dump()) for p in payments]
    items += [AdjustmentHistoryItem(**_adjustment_to_response(a).model_dump()) for a in adjustments]
    items.sort(
        key=lambda i: i.paid_date if isinstance(i, PaymentHistoryItem) else i.date,
        reverse=True,
    )
    return items


async def get_fee_history(db: AsyncSession, ctx: TenantContext, student_id: UUID) -> list:
    student = await get_student_in_branch(db, ctx, student_id)
    return await _history_items(db, student.id)


async def get_student_fee_profile(
    db: AsyncSession,
    ctx: TenantContext,
    student_id: UUID,
    today: Optional[date] = None,
) -> StudentFeeProfileResponse:
    """Fee block of the student profile. Read-only: never materializes a record."""
    today = _today(today)
    student = await get_student_in_branch(db, ctx, student_id)
    record = await _get_fee_record(db, student.id)
    adjustments = await _adjustment_pairs(db, student.id)
    months, annual_total = _student_breakdown(student, today)
    total, paid = _ledger_totals(student, record, adjustments, today)
    return StudentFeeProfileResponse(
        student_id=student.id,
        student_name=student.name,
        class_name=student.school_class.display_name if student.school_class else None,
        fee_status=FeeStatusSummary(total=total, paid=paid, pending=total - paid),
        materialized=record is not None,
        due_date=record.due_date if record else session_due_date(today),
        monthly_breakdown=months,
        annual_total=annual_total,
        history=await _history_items(db, student.id),
    )


# --- Reports ---
async def _branch_ledger_inputs(
    db: AsyncSession,
    students: Sequence[Student],
) -> Tuple[Dict[UUID, FeeRecord], Dict[UUID, AdjustmentPairs]]:
    ids = [s.id for s in students]
    if not ids:
        return {}, {}
    records = (
        await db.execute(select(FeeRecord).where(FeeRecord.student_id.in_(ids)))
    ).scalars().all()
    adj_rows = (
        await db.execute(
            select(FeeAdjustment.student_id, FeeAdjustment.type, FeeAdjustment.amount).where(
                FeeAdjustment.student_id.in_(ids)
            )
        )
    ).all()
    adjustments: Dict[UUID, AdjustmentPairs] = {}
    for sid, t, a in adj_rows:
        adjustments.setdefault(sid, []).append((t, to_decimal(a)))
    return {r.student_id: r for r in records}, adjustments


async def get_fee_collection_overview(
    db: AsyncSession,
    ctx: TenantContext,
    today: Optional[date] = None,
) -> List[FeeOverviewItem]:
    today = _today(today)
    students = (
        await db.execute(
            select(Student).where(Student.branch_id == ctx.branch_id).order_by(Student.name)
        )
    ).scalars().all()
    records, adjustments = await _branch_ledger_inputs(db, students)
    last_paid: Dict[UUID, datetime] = {}
    if students:
        rows = (
            await db.execute(
                select(FeePayment.student_id, func.max(FeePayment.paid_date))
                .where(FeePayment.student_id.in_([s.id for s in students]))
                .group_by(FeePayment.student_id)
            )
        ).all()
        last_paid = {sid: paid_at for sid, paid_at in rows}

    items = []
    for s in students:
        record = records.get(s.id)
        total, paid = _ledger_totals(s, record, adjustments.get(s.id, []), today)
        pending = total - paid
        items.append(
            FeeOverviewItem(
                student_id=s.id,
                name=s.name,
                class_name=s.school_class.display_name if s.school_class else "Unassigned",
                total_fee=total,
                paid_amount=paid,
                pending_amount=pending,
                last_paid_date=last_paid.get(s.id),
                due_date=record.due_date if record else session_due_date(today),
                status=(FeeStatus.PAID if pending <= 0 and total > 0 else FeeStatus.DUE).value,
            )
        )
    return items


async def get_class_fee_summaries(
    db: AsyncSession,
    ctx: TenantContext,
    today: Optional[date] = None,
) -> List[ClassFeeSummary]:
    today = _today(today)
    classes = (
        await db.execute(
            select(SchoolClass)
            .where(SchoolClass.branch_id == ctx.branch_id)
            .order_by(SchoolClass.grade_level, SchoolClass.section)
        )
    ).scalars().all()
    students = (
        await db.execute(
            select(Student).where(Student.branch_id == ctx.branch_id, Student.status == "active")
        )
    ).scalars().all()
    records, adjustments = await _branch_ledger_inputs(db, students)

    by_class: Dict[UUID, List[Student]] = {}
    for s in students:
        if s.class_id is not None:
            by_class.setdefault(s.class_id, []).append(s)

    summaries = []
    for c in classes:
        members = by_class.get(c.id, [])
        pending_total = ZERO
        defaulters = 0
        for s in members:
            total, paid = _ledger_totals(s, records.get(s.id), adjustments.get(s.id, []), today)
            pending = total - paid
            if pending > 0:
                pending_total += pending
                defaulters += 1
        summaries.append(
            ClassFeeSummary(
                class_id=c.id,
                class_name=c.display_name,
                student_count=len(members),
                defaulter_count=defaulters,
                pending_amount=pending_total,
            )
        )
    return summaries


async def get_class_defaulters(
    db: AsyncSession,
    ctx: TenantContext,
    class_id: UUID,
    today: Optional[date] = None,
) -> List[DefaulterItem]:
    today = _today(today)
    school_class = await _get_class_in_branch(db, ctx, class_id)
    students = (
        await db.execute(
            select(Student)
            .where(
                Student.branch_id == ctx.branch_id,
                Student.class_id == school_class.id,
                Student.status == "active",
            )
            .order_by(Student.name)
        )
    ).scalars().all()
    records, adjustments = await _branch_ledger_inputs(db, students)
    out = []
    for s in students:
        total, paid = _ledger_totals(s, records.get(s.id), adjustments.get(s.id, []), today)
        pending = total - paid
        if pending > 0:
            out.append(DefaulterItem(student_id=s.id, student_name=s.name, pending_amount=pending))
    return out


# --- Fee Template ---
async def _get_class_in_branch(db: AsyncSession, ctx: TenantContext, class_id: UUID) -> SchoolClass:
    school_class = (
        await db.execute(
            select(SchoolClass).where(SchoolClass.id == class_id, SchoolClass.branch_id == ctx.branch_id)
        )
    ).scalar_one_or_none()
    if not school_class:
        raise NotFoundError("Class not found")
    return school_class


def _template_to_response(t: FeeTemplate) -> FeeTemplateResponse:
    return FeeTemplateResponse(
        id=t.id,
        branch_id=t.branch_id,
        name=t.name,
        amount=to_decimal(t.amount),
        grade_level=t.grade_level,
        monthly_breakdown=t.monthly_breakdown,
        effective_annual_amount=effective_annual_tuition(to_decimal(t.amount), t.monthly_breakdown),
        created_at=t.created_at,
    )


async def create_fee_template(
    db: AsyncSession,
    ctx: TenantContext,
    payload: FeeTemplateCreate,
) -> FeeTemplateResponse:
    async with atomic(db):
        template = FeeTemplate(
            branch_id=ctx.branch_id,
            name=payload.name.strip(),
            amount=payload.amount,
            grade_level=payload.grade_level,
            monthly_breakdown=[m.model_dump(mode="json", exclude_none=True) for m in payload.monthly_breakdown] or None,
        )
        db.add(template)
        await db.flush()
    return _template_to_response(template)


async def list_fee_templates(db: AsyncSession, ctx: TenantContext) -> List[FeeTemplateResponse]:
    result = await db.execute(
        select(FeeTemplate)
        .where(FeeTemplate.branch_id == ctx.branch_id)
        .order_by(FeeTemplate.grade_level, FeeTemplate.name)
    )
    return [_template_to_response(t) for t in result.scalars().all()]


async def assign_template_to_class(
    db: AsyncSession,
    ctx: TenantContext,
    class_id: UUID,
    payload: AssignTemplateToClassRequest,
) -> None:
    """Link (or unlink with null) a class's fee template. Materialized records are unaffected."""
    async with atomic(db):
        school_class = await _get_class_in_branch(db, ctx, class_id)
        template = None
        if payload.fee_template_id is not None:
            template = (
                await db.execute(
                    select(FeeTemplate).where(
                        FeeTemplate.id == payload.fee_template_id,
                        FeeTemplate.branch_id == ctx.branch_id,
                    )
                )
            ).scalar_one_or_none()
            if not template:
                raise NotFoundError("Fee template not found")
        school_class.fee_template = template
