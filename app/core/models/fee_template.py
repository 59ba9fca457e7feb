"""Fee template: grade-level default billing schedule for a branch."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class FeeTemplate(Base):
    """
    Annual amount plus an optional month-by-month schedule.

    monthly_breakdown shape:
        [{"month": "April", "total": 1000},
         {"month": "May", "breakdown": [{"component": "Tuition", "amount": 800}, ...]}, ...]
    """

    __tablename__ = "fee_templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    grade_level = Column(Integer, nullable=False)
    monthly_breakdown = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    branch = relationship("Branch", backref="fee_templates")
