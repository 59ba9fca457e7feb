import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class User(Base):
    """Staff member of a branch (registrar, principal, ...). Acts on the ledger."""

    __tablename__ = "users"
    __table_args__ = (
        # Email must be unique per branch
        UniqueConstraint("branch_id", "email", name="uq_user_branch_email"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)  # UserRole value
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    branch = relationship("Branch", back_populates="users")
