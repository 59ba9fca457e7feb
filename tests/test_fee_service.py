from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.fees import service as fee_service
from app.api.v1.fees.schemas import AdjustmentCreate, PaymentCreate
from app.auth.schemas import TenantContext
from app.core.enums import FeeAdjustmentType, ServiceType
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import FeeAdjustment, FeePayment, FeeRecord, Student

SEPTEMBER = date(2025, 9, 15)


async def _record(db: AsyncSession, student_id) -> FeeRecord:
    result = await db.execute(
        select(FeeRecord).where(FeeRecord.student_id == student_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _count(db: AsyncSession, model, student_id) -> int:
    return (await db.execute(select(func.count(model.id)).where(model.student_id == student_id))).scalar_one()


@pytest.mark.asyncio
async def test_initialize_fee_record_from_template(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    record = await fee_service.get_or_initialize_fee_record(db_session, ctx, student.id, today=SEPTEMBER)

    assert record.total_amount == Decimal("12000")
    assert record.paid_amount == Decimal("0")
    assert record.pending_amount == Decimal("12000")
    assert record.due_date == date(2025, 4, 1)

    again = await fee_service.get_or_initialize_fee_record(db_session, ctx, student.id, today=SEPTEMBER)
    assert again.id == record.id
    assert again.total_amount == Decimal("12000")
    assert await _count(db_session, FeeRecord, student.id) == 1


@pytest.mark.asyncio
async def test_derived_total_matches_materialized_total(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    profile = await fee_service.get_student_fee_profile(db_session, ctx, student.id, today=SEPTEMBER)
    assert profile.materialized is False
    assert profile.fee_status.total == Decimal("12000")
    assert await _count(db_session, FeeRecord, student.id) == 0

    record = await fee_service.get_or_initialize_fee_record(db_session, ctx, student.id, today=SEPTEMBER)
    assert record.total_amount == profile.fee_status.total


@pytest.mark.asyncio
async def test_record_payment(db_session: AsyncSession, ctx: TenantContext, student: Student) -> None:
    payment = await fee_service.record_payment(
        db_session,
        ctx,
        PaymentCreate(student_id=student.id, amount=Decimal("200"), transaction_id="TXN1"),
        today=SEPTEMBER,
    )

    assert payment.transaction_id == "TXN1"
    assert payment.details == "Payment collected by Asha Registrar"
    record = await _record(db_session, student.id)
    assert record.total_amount == Decimal("12000")
    assert record.paid_amount == Decimal("200")
    assert payment.fee_record_id == record.id


@pytest.mark.asyncio
async def test_record_payment_defaults_cash_transaction_id(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    first = await fee_service.record_payment(
        db_session, ctx, PaymentCreate(student_id=student.id, amount=Decimal("5000")), today=SEPTEMBER
    )
    await fee_service.record_payment(
        db_session, ctx, PaymentCreate(student_id=student.id, amount=Decimal("7500.50")), today=SEPTEMBER
    )

    assert first.transaction_id.startswith("CASH-")
    record = await _record(db_session, student.id)
    # overpayment is accepted
    assert record.paid_amount == Decimal("12500.50")
    assert await _count(db_session, FeePayment, student.id) == 2


@pytest.mark.asyncio
async def test_adjustments_keep_running_total_consistent(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    await fee_service.post_adjustment(
        db_session,
        ctx,
        AdjustmentCreate(student_id=student.id, type=FeeAdjustmentType.CONCESSION, amount=Decimal("1000"), reason="Sibling discount"),
        today=SEPTEMBER,
    )
    adj = await fee_service.post_adjustment(
        db_session,
        ctx,
        AdjustmentCreate(student_id=student.id, type=FeeAdjustmentType.CHARGE, amount=Decimal("500"), reason="Late fine"),
        today=SEPTEMBER,
    )

    assert adj.adjusted_by == "Asha Registrar"
    record = await _record(db_session, student.id)
    assert record.total_amount == Decimal("11500")

    rows = (
        await db_session.execute(select(FeeAdjustment.type, FeeAdjustment.amount).where(FeeAdjustment.student_id == student.id))
    ).all()
    signed = sum((a if t == "charge" else -a for t, a in rows), Decimal("0"))
    assert record.total_amount == Decimal("12000") + signed


@pytest.mark.asyncio
async def test_post_service_charge_prorates_remaining_months(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    adjustment = await fee_service.post_service_charge(
        db_session, ctx, student.id, Decimal("500"), ServiceType.HOSTEL, "Hostel Assigned", today=SEPTEMBER
    )
    await db_session.commit()

    assert adjustment.amount == Decimal("3500")
    assert adjustment.type == "charge"
    assert adjustment.service_type == "HOSTEL"
    record = await _record(db_session, student.id)
    assert record.total_amount == Decimal("15500")


@pytest.mark.asyncio
async def test_post_service_charge_without_template(
    db_session: AsyncSession, ctx: TenantContext, unclassed_student: Student
) -> None:
    await fee_service.post_service_charge(
        db_session, ctx, unclassed_student.id, Decimal("500"), ServiceType.TRANSPORT, "Transport Assigned",
        months_remaining=7, today=SEPTEMBER,
    )
    await db_session.commit()

    record = await _record(db_session, unclassed_student.id)
    assert record.total_amount == Decimal("3500")
    assert record.paid_amount == Decimal("0")


@pytest.mark.asyncio
async def test_post_service_charge_is_not_idempotent(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    for _ in range(2):
        await fee_service.post_service_charge(
            db_session, ctx, student.id, Decimal("500"), ServiceType.HOSTEL, "Hostel Assigned", today=SEPTEMBER
        )
    await db_session.commit()

    record = await _record(db_session, student.id)
    assert record.total_amount == Decimal("12000") + 2 * Decimal("3500")
    assert await _count(db_session, FeeAdjustment, student.id) == 2


@pytest.mark.asyncio
async def test_zero_service_charge_writes_nothing(
    db_session: AsyncSession, ctx: TenantContext, student: Student
) -> None:
    result = await fee_service.post_service_charge(
        db_session, ctx, student.id, Decimal("0"), ServiceType.TRANSPORT, "Transport Assigned", today=SEPTEMBER
    )
    await db_session.commit()

    assert result is None
    assert await _count(db_session, FeeRecord, student.id) == 0
    assert await _count(db_session, FeeAdjustment, student.id) == 0


@pytest.mark.asyncio
async def test_other_branch_student_is_not_found(
    db_session: AsyncSession, ctx: TenantContext, other_branch_student: Student
) -> None:
    student_id = other_branch_student.id
    with pytest.raises(NotFoundError):
        await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id)
    with pytest.raises(NotFoundError):
        await fee_service.record_payment(
            db_session, ctx, PaymentCreate(student_id=student_id, amount=Decimal("100"))
        )
    assert await _count(db_session, FeePayment, student_id) == 0


@pytest.mark.asyncio
async def test_concurrent_initialization_conflicts(
    db_session: AsyncSession, ctx: TenantContext, student: Student, monkeypatch: pytest.MonkeyPatch
) -> None:
    student_id = student.id
    await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)

    async def no_record(*args, **kwargs):
        return None

    # the existence check misses a record another request just created
    monkeypatch.setattr(fee_service, "_get_fee_record", no_record)
    with pytest.raises(ConflictError):
        await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)
    monkeypatch.undo()

    assert await _count(db_session, FeeRecord, student_id) == 1


def _fail_after_increment(monkeypatch: pytest.MonkeyPatch) -> None:
    """The running total is written, then the request dies before committing."""
    original = fee_service._increment_fee_record

    async def increment_then_fail(*args, **kwargs):
        await original(*args, **kwargs)
        raise RuntimeError("write failed")

    monkeypatch.setattr(fee_service, "_increment_fee_record", increment_then_fail)


@pytest.mark.asyncio
async def test_failed_payment_rolls_back_everything(
    db_session: AsyncSession, ctx: TenantContext, student: Student, monkeypatch: pytest.MonkeyPatch
) -> None:
    student_id = student.id
    await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)

    _fail_after_increment(monkeypatch)
    with pytest.raises(RuntimeError):
        await fee_service.record_payment(
            db_session, ctx, PaymentCreate(student_id=student_id, amount=Decimal("400")), today=SEPTEMBER
        )
    monkeypatch.undo()

    record = await _record(db_session, student_id)
    assert record.paid_amount == Decimal("0")
    assert record.total_amount == Decimal("12000")
    assert await _count(db_session, FeePayment, student_id) == 0


@pytest.mark.asyncio
async def test_failed_adjustment_rolls_back_everything(
    db_session: AsyncSession, ctx: TenantContext, student: Student, monkeypatch: pytest.MonkeyPatch
) -> None:
    student_id = student.id
    await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)

    _fail_after_increment(monkeypatch)
    with pytest.raises(RuntimeError):
        await fee_service.post_adjustment(
            db_session,
            ctx,
            AdjustmentCreate(student_id=student_id, type=FeeAdjustmentType.CHARGE, amount=Decimal("750"), reason="Lab fee"),
            today=SEPTEMBER,
        )
    monkeypatch.undo()

    record = await _record(db_session, student_id)
    assert record.total_amount == Decimal("12000")
    assert await _count(db_session, FeeAdjustment, student_id) == 0


@pytest.mark.asyncio
async def test_failed_first_payment_leaves_no_record(
    db_session: AsyncSession, ctx: TenantContext, student: Student, monkeypatch: pytest.MonkeyPatch
) -> None:
    student_id = student.id

    _fail_after_increment(monkeypatch)
    with pytest.raises(RuntimeError):
        await fee_service.record_payment(
            db_session, ctx, PaymentCreate(student_id=student_id, amount=Decimal("400")), today=SEPTEMBER
        )
    monkeypatch.undo()

    assert await _count(db_session, FeeRecord, student_id) == 0
    assert await _count(db_session, FeePayment, student_id) == 0


@pytest.mark.asyncio
async def test_overlapping_payments_are_both_counted(
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    interleave,
    ctx: TenantContext,
    student: Student,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    student_id = student.id
    await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)

    # both requests hold the same paid_amount before either adds to it
    monkeypatch.setattr(fee_service, "ensure_fee_record", interleave.after(fee_service.ensure_fee_record))
    async with session_factory() as first, session_factory() as second:
        results = await interleave.run(
            (
                first,
                fee_service.record_payment(
                    first, ctx, PaymentCreate(student_id=student_id, amount=Decimal("300"), transaction_id="TXN-A"), today=SEPTEMBER
                ),
            ),
            (
                second,
                fee_service.record_payment(
                    second, ctx, PaymentCreate(student_id=student_id, amount=Decimal("200"), transaction_id="TXN-B"), today=SEPTEMBER
                ),
            ),
        )
    monkeypatch.undo()

    assert sorted(r.transaction_id for r in results) == ["TXN-A", "TXN-B"]
    record = await _record(db_session, student_id)
    assert record.paid_amount == Decimal("500")
    assert await _count(db_session, FeePayment, student_id) == 2


@pytest.mark.asyncio
async def test_overlapping_adjustments_are_both_counted(
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    interleave,
    ctx: TenantContext,
    student: Student,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    student_id = student.id
    await fee_service.get_or_initialize_fee_record(db_session, ctx, student_id, today=SEPTEMBER)

    monkeypatch.setattr(fee_service, "ensure_fee_record", interleave.after(fee_service.ensure_fee_record))
    async with session_factory() as first, session_factory() as second:
        results = await interleave.run(
            (
                first,
                fee_service.post_adjustment(
                    first,
                    ctx,
                    AdjustmentCreate(student_id=student_id, type=FeeAdjustmentType.CHARGE, amount=Decimal("600"), reason="Trip"),
                    today=SEPTEMBER,
                ),
            ),
            (
                second,
                fee_service.post_adjustment(
                    second,
                    ctx,
                    AdjustmentCreate(student_id=student_id, type=FeeAdjustmentType.CONCESSION, amount=Decimal("100"), reason="Waiver"),
                    today=SEPTEMBER,
                ),
            ),
        )
    monkeypatch.undo()

    assert sorted(r.reason for r in results) == ["Trip", "Waiver"]
    record = await _record(db_session, student_id)
    assert record.total_amount == Decimal("12500")
    assert await _count(db_session, FeeAdjustment, student_id) == 2


@pytest.mark.asyncio
async def test_fee_history_newest_first(db_session: AsyncSession, ctx: TenantContext, student: Student) -> None:
    await fee_service.record_payment(
        db_session, ctx, PaymentCreate(student_id=student.id, amount=Decimal("100"), transaction_id="TXN1"), today=SEPTEMBER
    )
    await fee_service.post_adjustment(
        db_session,
        ctx,
        AdjustmentCreate(student_id=student.id, type=FeeAdjustmentType.CONCESSION, amount=Decimal("300"), reason="Merit"),
        today=SEPTEMBER,
    )

    history = await fee_service.get_fee_history(db_session, ctx, student.id)
    assert {item.item_type for item in history} == {"payment", "adjustment"}
    stamps = [item.paid_date if item.item_type == "payment" else item.date for item in history]
    assert stamps == sorted(stamps, reverse=True)


@pytest.mark.asyncio
async def test_reports(
    db_session: AsyncSession,
    ctx: TenantContext,
    student: Student,
    second_student: Student,
) -> None:
    await fee_service.record_payment(
        db_session, ctx, PaymentCreate(student_id=student.id, amount=Decimal("12000")), today=SEPTEMBER
    )

    overview = await fee_service.get_fee_collection_overview(db_session, ctx, today=SEPTEMBER)
    by_name = {item.name: item for item in overview}
    assert by_name["Ravi Kumar"].status == "Paid"
    assert by_name["Ravi Kumar"].last_paid_date is not None
    # not materialized yet: derived total
    assert by_name["Meera Shah"].status == "Due"
    assert by_name["Meera Shah"].pending_amount == Decimal("12000")
    assert by_name["Meera Shah"].due_date == date(2025, 4, 1)

    summaries = await fee_service.get_class_fee_summaries(db_session, ctx, today=SEPTEMBER)
    assert len(summaries) == 1
    assert summaries[0].class_name == "Grade 5-A"
    assert summaries[0].student_count == 2
    assert summaries[0].defaulter_count == 1
    assert summaries[0].pending_amount == Decimal("12000")

    defaulters = await fee_service.get_class_defaulters(db_session, ctx, student.class_id, today=SEPTEMBER)
    assert [d.student_name for d in defaulters] == ["Meera Shah"]


@pytest.mark.asyncio
async def test_class_defaulters_other_branch_class(
    db_session: AsyncSession, other_ctx: TenantContext, student: Student
) -> None:
    with pytest.raises(NotFoundError):
        await fee_service.get_class_defaulters(db_session, other_ctx, student.class_id)
