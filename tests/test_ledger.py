from datetime import date, datetime
from decimal import Decimal

import pytest

from app.api.v1.fees.ledger import (
    ServiceLine,
    academic_month_index,
    build_monthly_breakdown,
    derived_net_total,
    effective_annual_tuition,
    format_amount,
    monthly_tuition,
    months_remaining_in_session,
    service_start_index,
    session_due_date,
    session_start_year,
    signed_adjustment_total,
)


@pytest.mark.parametrize(
    "day, index",
    [
        (date(2025, 4, 1), 0),
        (date(2025, 9, 15), 5),
        (date(2025, 12, 31), 8),
        (date(2026, 1, 5), 9),
        (date(2026, 3, 31), 11),
    ],
)
def test_academic_month_index(day: date, index: int) -> None:
    assert academic_month_index(day) == index


@pytest.mark.parametrize(
    "day, remaining",
    [
        (date(2025, 4, 10), 12),
        (date(2025, 6, 1), 10),
        (date(2025, 9, 1), 7),
        (date(2026, 1, 20), 3),
        (date(2026, 3, 2), 1),
    ],
)
def test_months_remaining_in_session(day: date, remaining: int) -> None:
    assert months_remaining_in_session(day) == remaining


def test_session_boundaries() -> None:
    assert session_start_year(date(2026, 2, 10)) == 2025
    assert session_start_year(date(2025, 4, 1)) == 2025
    assert session_due_date(date(2026, 2, 10)) == date(2025, 4, 1)
    assert session_due_date(datetime(2025, 11, 3, 9, 30)) == date(2025, 4, 1)


def test_monthly_tuition_spreads_annual_amount() -> None:
    assert monthly_tuition(Decimal("12000"), None, "April") == Decimal("1000")
    # rounded up to whole units
    assert monthly_tuition(Decimal("1000"), None, "May") == Decimal("84")


def test_monthly_tuition_priority() -> None:
    schedule = [
        {"month": "April", "total": 3000, "breakdown": [{"component": "Admission", "amount": 2000}, {"component": "Books", "amount": "750.50"}]},
        {"month": "May", "total": 1500},
        {"month": "June"},
    ]
    assert monthly_tuition(Decimal("12000"), schedule, "April") == Decimal("2750.50")
    assert monthly_tuition(Decimal("12000"), schedule, "May") == Decimal("1500")
    assert monthly_tuition(Decimal("12000"), schedule, "June") == Decimal("0")
    assert monthly_tuition(Decimal("12000"), schedule, "July") == Decimal("1000")
    assert monthly_tuition(None, None, "July") == Decimal("0")


def test_effective_annual_tuition() -> None:
    assert effective_annual_tuition(Decimal("12000"), None) == Decimal("12000")
    assert effective_annual_tuition(Decimal("12000"), [{"month": "April", "total": 5000}]) == Decimal("16000")
    assert effective_annual_tuition(None, None) == Decimal("0")


def test_signed_adjustment_total() -> None:
    adjustments = [("charge", Decimal("500")), ("concession", Decimal("1000")), ("charge", "250.50")]
    assert signed_adjustment_total(adjustments) == Decimal("-249.50")
    assert signed_adjustment_total([]) == Decimal("0")


def test_service_start_index() -> None:
    today = date(2025, 10, 1)
    assert service_start_index(3, datetime(2025, 7, 1), today) == 3
    # admitted mid-session: service counted from the admission month
    assert service_start_index(None, datetime(2025, 7, 15), today) == 3
    # admitted in an earlier session: whole session
    assert service_start_index(None, datetime(2023, 7, 15), today) == 0
    assert service_start_index(None, None, today) == 0


def test_build_monthly_breakdown_with_services() -> None:
    hostel = ServiceLine(label="Hostel (101)", monthly_rate=Decimal("500"), start_index=5)
    transport = ServiceLine(label="Transport (Main Gate)", monthly_rate=Decimal("300"), start_index=0)
    months, annual_total = build_monthly_breakdown(Decimal("12000"), None, [hostel, transport])

    assert [m["month"] for m in months][0] == "April"
    assert [m["month"] for m in months][-1] == "March"
    assert len(months) == 12

    august, september = months[4], months[5]
    assert [c["component"] for c in august["breakdown"]] == ["Tuition", "Transport (Main Gate)"]
    assert august["total"] == Decimal("1300")
    assert [c["component"] for c in september["breakdown"]] == ["Tuition", "Hostel (101)", "Transport (Main Gate)"]
    assert september["total"] == Decimal("1800")

    assert hostel.prorated_total() == Decimal("3500")
    assert annual_total == Decimal("12000") + Decimal("3500") + Decimal("3600")
    assert annual_total == sum(m["total"] for m in months)


def test_build_monthly_breakdown_without_template() -> None:
    months, annual_total = build_monthly_breakdown(None, None)
    assert annual_total == Decimal("0")
    assert all(m["breakdown"] == [] for m in months)


def test_derived_net_total() -> None:
    total = derived_net_total(Decimal("12000"), [("concession", Decimal("2000")), ("charge", Decimal("150"))])
    assert total == Decimal("10150")


def test_format_amount() -> None:
    assert format_amount(Decimal("500.00")) == "500"
    assert format_amount(Decimal("499.5")) == "499.50"
    assert format_amount(None) == "0"
