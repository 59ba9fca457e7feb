import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Student(Base):
    """
    Student of a branch.

    hostel_start_month / transport_start_month hold the session month index
    (0 = April ... 11 = March) at which the current service began.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="active")
    admitted_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    room_id = Column(Uuid, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True, index=True)
    hostel_start_month = Column(Integer, nullable=True)
    transport_route_id = Column(Uuid, ForeignKey("transport_routes.id", ondelete="SET NULL"), nullable=True, index=True)
    bus_stop_id = Column(Uuid, ForeignKey("bus_stops.id", ondelete="SET NULL"), nullable=True)
    transport_start_month = Column(Integer, nullable=True)

    school_class = relationship("SchoolClass", foreign_keys=[class_id], lazy="joined")
    room = relationship("Room", foreign_keys=[room_id], lazy="joined")
    bus_stop = relationship("BusStop", foreign_keys=[bus_stop_id], lazy="joined")
