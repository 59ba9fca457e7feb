"""Students service: classes and admission."""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fee_service
from app.auth.schemas import TenantContext
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import FeeTemplate, SchoolClass, Student
from app.db.session import atomic

from .schemas import ClassCreate, ClassResponse, StudentCreate, StudentResponse

logger = logging.getLogger(__name__)


async def create_class(db: AsyncSession, ctx: TenantContext, payload: ClassCreate) -> ClassResponse:
    section = payload.section.strip()
    async with atomic(db):
        existing = (
            await db.execute(
                select(SchoolClass.id).where(
                    SchoolClass.branch_id == ctx.branch_id,
                    SchoolClass.grade_level == payload.grade_level,
                    SchoolClass.section == section,
                )
            )
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"Class Grade {payload.grade_level}-{section} already exists")

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

        school_class = SchoolClass(
            branch_id=ctx.branch_id,
            grade_level=payload.grade_level,
            section=section,
            fee_template=template,
        )
        db.add(school_class)
        await db.flush()
    return ClassResponse.model_validate(school_class)


async def admit_student(
    db: AsyncSession,
    ctx: TenantContext,
    payload: StudentCreate,
    today: Optional[date] = None,
) -> StudentResponse:
    """Create the student and materialize their fee record in the same transaction."""
    today = today or date.today()
    async with atomic(db):
        if payload.class_id is not None:
            school_class = (
                await db.execute(
                    select(SchoolClass.id).where(
                        SchoolClass.id == payload.class_id,
                        SchoolClass.branch_id == ctx.branch_id,
                    )
                )
            ).scalar_one_or_none()
            if not school_class:
                raise NotFoundError("Class not found")

        student = Student(
            branch_id=ctx.branch_id,
            name=payload.name.strip(),
            class_id=payload.class_id,
            status="active",
            admitted_at=payload.admitted_at or datetime.utcnow(),
        )
        db.add(student)
        await db.flush()

        student = await fee_service.get_student_in_branch(db, ctx, student.id)
        record = await fee_service.ensure_fee_record(db, student, today)

    logger.info("Admitted student %s to branch %s", student.id, ctx.branch_id)
    return StudentResponse(
        id=student.id,
        branch_id=student.branch_id,
        name=student.name,
        class_id=student.class_id,
        class_name=student.school_class.display_name if student.school_class else None,
        status=student.status,
        admitted_at=student.admitted_at,
        fee_record=fee_service.record_to_response(record),
    )
