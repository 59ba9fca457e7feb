"""Branch-scoped classes (grade + section). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class SchoolClass(Base):
    """Grade/section of a branch. Billing comes from the linked fee template, if any."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("branch_id", "grade_level", "section", name="uq_class_branch_grade_section"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    grade_level = Column(Integer, nullable=False)
    section = Column(String(20), nullable=False)
    fee_template_id = Column(Uuid, ForeignKey("fee_templates.id", ondelete="SET NULL"), nullable=True)

    fee_template = relationship("FeeTemplate", lazy="joined")

    @property
    def display_name(self) -> str:
        return f"Grade {self.grade_level}-{self.section}"
