from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.fees.schemas import FeeRecordResponse


class ClassCreate(BaseModel):
    grade_level: int = Field(..., ge=0)
    section: str = Field(..., min_length=1, max_length=20)
    fee_template_id: Optional[UUID] = None


class ClassResponse(BaseModel):
    id: UUID
    branch_id: UUID
    grade_level: int
    section: str
    display_name: str
    fee_template_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class StudentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    class_id: Optional[UUID] = None
    admitted_at: Optional[datetime] = Field(None, description="Defaults to now")


class StudentResponse(BaseModel):
    id: UUID
    branch_id: UUID
    name: str
    class_id: Optional[UUID] = None
    class_name: Optional[str] = None
    status: str
    admitted_at: datetime
    fee_record: FeeRecordResponse
