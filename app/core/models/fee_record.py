"""Fee record: a student's materialized running total / paid snapshot. One per student."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class FeeRecord(Base):
    """
    Running ledger totals. total_amount and paid_amount are only ever changed
    by SQL-side increments, each paired with a FeeAdjustment / FeePayment row.
    """

    __tablename__ = "fee_records"
    __table_args__ = (
        # Serializes lazy initialization: concurrent creators collide here
        UniqueConstraint("student_id", name="uq_fee_record_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student", backref="fee_records")
