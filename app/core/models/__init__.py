from app.core.models.branch import Branch
from app.auth.models import User
from app.core.models.fee_template import FeeTemplate
from app.core.models.class_model import SchoolClass
from app.core.models.hostel import Hostel, Room
from app.core.models.transport import BusStop, TransportRoute
from app.core.models.student import Student
from app.core.models.fee_record import FeeRecord
from app.core.models.fee_payment import FeePayment
from app.core.models.fee_adjustment import FeeAdjustment

__all__ = [
    "Branch",
    "FeeTemplate",
    "SchoolClass",
    "Hostel",
    "Room",
    "TransportRoute",
    "BusStop",
    "Student",
    "FeeRecord",
    "FeePayment",
    "FeeAdjustment",
]
