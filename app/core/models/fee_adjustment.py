"""Fee adjustment: immutable signed delta on a student's total. The audit trail of total_amount."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, Uuid

from app.db.session import Base


class FeeAdjustment(Base):
    """
    amount is stored positive; type decides the sign (charge adds, concession subtracts).
    service_type is set for hostel/transport charges posted on assignment.
    """

    __tablename__ = "fee_adjustments"
    __table_args__ = (
        CheckConstraint("type IN ('charge','concession')", name="chk_fee_adjustment_type"),
        CheckConstraint("amount > 0", name="chk_fee_adjustment_amount_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    service_type = Column(String(20), nullable=True)  # HOSTEL, TRANSPORT
    adjusted_by = Column(String(255), nullable=False)
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
