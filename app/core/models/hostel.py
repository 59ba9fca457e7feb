import uuid

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Hostel(Base):
    __tablename__ = "hostels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    warden = Column(String(255), nullable=False, default="")

    rooms = relationship("Room", back_populates="hostel", order_by="Room.room_number")


class Room(Base):
    """Hostel room. fee is the monthly charge per occupant."""

    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("hostel_id", "room_number", name="uq_room_hostel_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    hostel_id = Column(Uuid, ForeignKey("hostels.id", ondelete="CASCADE"), nullable=False, index=True)
    room_number = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=False)
    fee = Column(Numeric(12, 2), nullable=False)
    room_type = Column(String(50), nullable=False, default="Shared")

    hostel = relationship("Hostel", back_populates="rooms")
