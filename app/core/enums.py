from enum import Enum


class BranchStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class UserRole(str, Enum):
    ADMIN = "Admin"
    PRINCIPAL = "Principal"
    REGISTRAR = "Registrar"
    PARENT = "Parent"


class FeeAdjustmentType(str, Enum):
    CHARGE = "charge"
    CONCESSION = "concession"


class ServiceType(str, Enum):
    HOSTEL = "HOSTEL"
    TRANSPORT = "TRANSPORT"


class FeeStatus(str, Enum):
    PAID = "Paid"
    DUE = "Due"
