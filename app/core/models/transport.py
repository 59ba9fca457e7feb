import uuid

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class TransportRoute(Base):
    __tablename__ = "transport_routes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    branch_id = Column(Uuid, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    route_name = Column(String(255), nullable=False)
    bus_number = Column(String(50), nullable=False)
    driver_name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False)

    bus_stops = relationship("BusStop", back_populates="route", order_by="BusStop.name")


class BusStop(Base):
    """Stop on a route. charges is the monthly transport fee for students boarding here."""

    __tablename__ = "bus_stops"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    route_id = Column(Uuid, ForeignKey("transport_routes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    pickup_time = Column(String(10), nullable=False)
    drop_time = Column(String(10), nullable=False)
    charges = Column(Numeric(12, 2), nullable=False, default=0)

    route = relationship("TransportRoute", back_populates="bus_stops")
