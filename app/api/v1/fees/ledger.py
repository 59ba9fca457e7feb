"""
Fee ledger arithmetic: academic-session months, template tuition, prorated
hostel/transport services and signed adjustments. Pure functions, no I/O.

The academic session runs April to March. Month indexes are session-relative:
April = 0 ... March = 11.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_CEILING, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from app.core.enums import FeeAdjustmentType

ACADEMIC_MONTH_NAMES = [
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
    "January",
    "February",
    "March",
]

SESSION_START_MONTH = 4  # April
MONTHS_IN_SESSION = 12

ZERO = Decimal("0")


def to_decimal(val: Any) -> Decimal:
    if val is None:
        return ZERO
    return val if isinstance(val, Decimal) else Decimal(str(val))


def format_amount(val: Any) -> str:
    """500.00 -> "500", 499.50 -> "499.50"."""
    value = to_decimal(val)
    if value == value.to_integral_value():
        return f"{value:.0f}"
    return f"{value:.2f}"


def academic_month_index(d: Union[date, datetime]) -> int:
    """Calendar month -> session index (April 0, January 9, March 11)."""
    if d.month >= SESSION_START_MONTH:
        return d.month - SESSION_START_MONTH
    return d.month + (MONTHS_IN_SESSION - SESSION_START_MONTH)


def session_start_year(d: Union[date, datetime]) -> int:
    return d.year if d.month >= SESSION_START_MONTH else d.year - 1


def session_start_date(d: Union[date, datetime]) -> date:
    return date(session_start_year(d), SESSION_START_MONTH, 1)


def session_due_date(d: Union[date, datetime]) -> date:
    """Fees fall due on the first day of the session containing d."""
    return session_start_date(d)


def months_remaining_in_session(d: Union[date, datetime]) -> int:
    """Months left including the current one. March (last month) gives 1."""
    return MONTHS_IN_SESSION - academic_month_index(d)


def _find_template_month(monthly_breakdown: Any, month_name: str) -> Optional[Dict[str, Any]]:
    if not isinstance(monthly_breakdown, list):
        return None
    for entry in monthly_breakdown:
        if isinstance(entry, dict) and entry.get("month") == month_name:
            return entry
    return None


def monthly_tuition(
    template_amount: Optional[Decimal],
    monthly_breakdown: Any,
    month_name: str,
) -> Decimal:
    """
    Tuition for one month. Priority: sum of the month's itemized components,
    then the month's fixed total, then the annual amount spread over 12
    months (rounded up). A month listed with neither components nor a total
    bills nothing.
    """
    entry = _find_template_month(monthly_breakdown, month_name)
    if entry is not None:
        components = entry.get("breakdown")
        if isinstance(components, list) and components:
            return sum((to_decimal(c.get("amount")) for c in components if isinstance(c, dict)), ZERO)
        if entry.get("total"):
            return to_decimal(entry["total"])
        return ZERO
    if template_amount:
        return (to_decimal(template_amount) / MONTHS_IN_SESSION).to_integral_value(rounding=ROUND_CEILING)
    return ZERO


def effective_annual_tuition(template_amount: Optional[Decimal], monthly_breakdown: Any) -> Decimal:
    return sum(
        (monthly_tuition(template_amount, monthly_breakdown, m) for m in ACADEMIC_MONTH_NAMES),
        ZERO,
    )


def signed_amount(adjustment_type: str, amount: Any) -> Decimal:
    value = to_decimal(amount)
    return value if adjustment_type == FeeAdjustmentType.CHARGE.value else -value


def signed_adjustment_total(adjustments: Iterable[Tuple[str, Any]]) -> Decimal:
    """Sum of (type, amount) pairs: charges add, everything else subtracts."""
    return sum((signed_amount(t, a) for t, a in adjustments), ZERO)


def service_start_index(
    explicit_start: Optional[int],
    admitted_at: Optional[Union[date, datetime]],
    today: date,
) -> int:
    """Month a service began: the recorded index, else the admission month
    when admission happened inside the current session, else April."""
    if explicit_start is not None:
        return explicit_start
    if admitted_at is not None:
        admitted_day = admitted_at.date() if isinstance(admitted_at, datetime) else admitted_at
        if admitted_day > session_start_date(today):
            return academic_month_index(admitted_day)
    return 0


@dataclass
class ServiceLine:
    """A recurring monthly service billed from start_index onwards."""

    label: str
    monthly_rate: Decimal
    start_index: int

    def charge_for(self, month_index: int) -> Decimal:
        return self.monthly_rate if month_index >= self.start_index else ZERO

    def prorated_total(self) -> Decimal:
        return self.monthly_rate * max(0, MONTHS_IN_SESSION - self.start_index)


def build_monthly_breakdown(
    template_amount: Optional[Decimal],
    monthly_breakdown: Any,
    services: Iterable[ServiceLine] = (),
) -> Tuple[List[Dict[str, Any]], Decimal]:
    """
    Twelve entries, April to March:
        {"month": "April", "total": Decimal, "breakdown": [{"component": str, "amount": Decimal}]}
    plus the accumulated annual total.
    """
    services = list(services)
    months: List[Dict[str, Any]] = []
    annual_total = ZERO
    for index, month_name in enumerate(ACADEMIC_MONTH_NAMES):
        tuition = monthly_tuition(template_amount, monthly_breakdown, month_name)
        components = []
        if tuition > 0:
            components.append({"component": "Tuition", "amount": tuition})
        month_total = tuition
        for service in services:
            charge = service.charge_for(index)
            if charge > 0:
                components.append({"component": service.label, "amount": charge})
                month_total += charge
        annual_total += month_total
        months.append({"month": month_name, "total": month_total, "breakdown": components})
    return months, annual_total


def derived_net_total(annual_total: Decimal, adjustments: Iterable[Tuple[str, Any]]) -> Decimal:
    """Total owed by a student whose fee record is not materialized yet.
    A newly initialized record stores exactly this value."""
    return annual_total + signed_adjustment_total(adjustments)
