"""
utils.py
Validation, dates, exports (JSON backup + CSV reports), sample data.
"""

from __future__ import annotations

import csv
import json
import numbers
from datetime import date, datetime, timedelta

import pandas as pd

from errors import ValidationError
from models import (
    CONTRIBUTION_TYPES,
    EVENT_PRIORITIES,
    EXPENSE_CATEGORIES,
    EXPENSE_STATUSES,
)

EXPORT_VERSION = "2.0"

# Collections a JSON backup must carry (as lists) to be importable
REQUIRED_COLLECTIONS = ("members", "feeYears", "transactions", "pendingFees", "expenses", "contributions")
OPTIONAL_COLLECTIONS = ("invoices", "activities", "events")


def today_iso() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def add_days(start_iso: str, days: int) -> str:
    return (parse_iso(start_iso) + timedelta(days=days)).isoformat()


def is_amount(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _check_amount(value, label: str, errors: list[str]) -> None:
    if not is_amount(value):
        errors.append(f"{label} must be numeric.")
    elif value < 0:
        errors.append(f"{label} cannot be negative.")


def _check_date(value, label: str, errors: list[str]) -> None:
    try:
        parse_iso(value)
    except (TypeError, ValueError):
        errors.append(f"{label} must be a valid ISO date (YYYY-MM-DD).")


def _check_required(value, label: str, errors: list[str]) -> None:
    if value is None or not str(value).strip():
        errors.append(f"{label} is required.")


def validate_member_inputs(name, villa_no, membership_fee, join_date) -> list[str]:
    errors: list[str] = []
    _check_required(name, "Name", errors)
    _check_required(villa_no, "Villa no", errors)
    _check_amount(membership_fee, "Membership fee", errors)
    _check_date(join_date, "Join date", errors)
    return errors


def validate_fee_inputs(amount, pay_date=None) -> list[str]:
    errors: list[str] = []
    _check_amount(amount, "Amount", errors)
    if pay_date is not None:
        _check_date(pay_date, "Payment date", errors)
    return errors


def validate_fee_year_inputs(year, amount) -> list[str]:
    errors: list[str] = []
    if not isinstance(year, int) or isinstance(year, bool) or year <= 0:
        errors.append("Year must be a positive integer.")
    _check_amount(amount, "Fee amount", errors)
    return errors


def validate_pending_inputs(fee_type, amount, due_date) -> list[str]:
    errors: list[str] = []
    _check_required(fee_type, "Fee type", errors)
    _check_amount(amount, "Amount", errors)
    _check_date(due_date, "Due date", errors)
    return errors


def validate_expense_inputs(exp_date, description, category, amount, paid_by, status) -> list[str]:
    errors: list[str] = []
    _check_date(exp_date, "Date", errors)
    _check_required(description, "Description", errors)
    if category not in EXPENSE_CATEGORIES:
        errors.append(f"Category must be one of: {', '.join(EXPENSE_CATEGORIES)}.")
    _check_amount(amount, "Amount", errors)
    _check_required(paid_by, "Paid by", errors)
    if status not in EXPENSE_STATUSES:
        errors.append(f"Status must be one of: {', '.join(EXPENSE_STATUSES)}.")
    return errors


def validate_contribution_inputs(con_date, contributor_name, villa, con_type, purpose, amount) -> list[str]:
    errors: list[str] = []
    _check_date(con_date, "Date", errors)
    _check_required(contributor_name, "Contributor name", errors)
    _check_required(villa, "Villa / location", errors)
    if con_type not in CONTRIBUTION_TYPES:
        errors.append(f"Type must be one of: {', '.join(CONTRIBUTION_TYPES)}.")
    _check_required(purpose, "Purpose", errors)
    _check_amount(amount, "Amount", errors)
    return errors


def validate_event_inputs(title, ev_date, ev_time, ev_type, priority) -> list[str]:
    errors: list[str] = []
    _check_required(title, "Title", errors)
    _check_date(ev_date, "Date", errors)
    try:
        datetime.strptime(ev_time or "", "%H:%M")
    except ValueError:
        errors.append("Time must be HH:MM.")
    _check_required(ev_type, "Type", errors)
    if priority not in EVENT_PRIORITIES:
        errors.append(f"Priority must be one of: {', '.join(EVENT_PRIORITIES)}.")
    return errors


def validate_snapshot(data) -> list[str]:
    """
    Structural check only: top-level collections present and list-typed.
    Individual records are not schema-checked.
    """
    if not isinstance(data, dict):
        return ["Backup must be a JSON object."]
    errors: list[str] = []
    for key in REQUIRED_COLLECTIONS:
        if not isinstance(data.get(key), list):
            errors.append(f"'{key}' must be present and be a list.")
    for key in OPTIONAL_COLLECTIONS:
        if key in data and not isinstance(data[key], list):
            errors.append(f"'{key}' must be a list.")
    if "settings" in data and not isinstance(data["settings"], dict):
        errors.append("'settings' must be an object.")
    if "nextIds" in data and not isinstance(data["nextIds"], dict):
        errors.append("'nextIds' must be an object.")
    return errors


# ---------- JSON backup ----------

def export_json(ledger) -> str:
    payload = ledger.snapshot()
    payload["exportDate"] = datetime.now().isoformat()
    payload["version"] = EXPORT_VERSION
    return json.dumps(payload, indent=2)


def import_json(text: str | bytes) -> dict:
    """
    Parse + structurally validate a JSON backup. The caller hands the result to
    ClubLedger.load_snapshot to replace state.
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON file: {e}") from e
    errors = validate_snapshot(data)
    if errors:
        raise ValidationError(errors)
    return data


# ---------- CSV reports ----------

def _to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False, quoting=csv.QUOTE_ALL).encode("utf-8")


def members_to_csv_bytes(members, fee_years) -> bytes:
    years = [fy.year for fy in fee_years]
    columns = ["Sl No", "Name", "Villa No", "Status", "Membership Fee"]
    columns += [f"Annual Fee {y}" for y in years]
    columns += ["Total Paid", "Join Date", "Active"]
    rows = []
    for i, m in enumerate(members, start=1):
        rows.append(
            [i, m.name, m.villa_no, m.status, m.membership_fee]
            + [m.fees.get(y, 0) for y in years]
            + [m.total_paid, m.join_date, "Yes" if m.is_active else "No"]
        )
    return _to_csv_bytes(pd.DataFrame(rows, columns=columns))


def transactions_to_csv_bytes(transactions, members) -> bytes:
    villas = {m.id: m.villa_no for m in members}
    columns = ["Transaction ID", "Date", "Member Name", "Villa No", "Fee Type", "Amount"]
    rows = [
        [t.id, t.date, t.member_name, villas.get(t.member_id, ""), t.type.replace("_", " ").upper(), t.amount]
        for t in transactions
    ]
    return _to_csv_bytes(pd.DataFrame(rows, columns=columns))


def expenses_to_csv_bytes(expenses) -> bytes:
    columns = ["Date", "Description", "Category", "Amount", "Paid By", "Status", "Receipt"]
    rows = [
        [e.date, e.description, e.category, e.amount, e.paid_by, e.status, e.receipt or "No"]
        for e in expenses
    ]
    return _to_csv_bytes(pd.DataFrame(rows, columns=columns))


def contributions_to_csv_bytes(contributions) -> bytes:
    columns = ["Date", "Contributor", "Villa/Location", "Type", "Purpose", "Amount", "Receipt"]
    rows = [
        [c.date, c.contributor_name, c.villa, c.type, c.purpose, c.amount, c.receipt or "No"]
        for c in contributions
    ]
    return _to_csv_bytes(pd.DataFrame(rows, columns=columns))


def fee_report_to_csv_bytes(members, fee_years) -> bytes:
    """Per member: each year's paid amount, total paid and what is still owed at configured rates."""
    years = [fy.year for fy in fee_years]
    columns = ["Member Name", "Status"] + [f"{y} Fee" for y in years] + ["Total Paid", "Total Pending"]
    rows = []
    for m in members:
        owed = sum(fy.amount for fy in fee_years if not m.fees.get(fy.year))
        rows.append([m.name, m.status] + [m.fees.get(y, 0) for y in years] + [m.total_paid, owed])
    return _to_csv_bytes(pd.DataFrame(rows, columns=columns))


# ---------- Sample data ----------

def insert_sample_data(ledger) -> None:
    """
    Register 2023-2025 fee years (if missing) and add 4 members with a mix of paid
    and unpaid years (adds new members each run).
    """
    for year in (2023, 2024, 2025):
        if ledger.find_fee_year(year) is None:
            ledger.add_fee_year(year, 500)

    # name, villa, status, membership fee, join date, paid years
    members = [
        ("PRAVEEN", "16", "FOUNDING MEMBER", 3000, "2023-01-01", (2023, 2024)),
        ("BINU", "23", "FOUNDING MEMBER", 3000, "2023-01-01", (2023, 2024, 2025)),
        ("MATHEWS", "05", "NEW MEMBER", 3000, "2023-08-01", (2024, 2025)),
        ("ALEX", "10", "APPROVED FOR MEMBERSHIP", 0, "2024-01-01", (2025,)),
    ]
    for name, villa, status, fee, joined, paid_years in members:
        m = ledger.add_member(name, villa, status=status, membership_fee=fee, join_date=joined)
        for year in paid_years:
            ledger.collect_fee(m.id, year, 500, pay_date=f"{year}-01-15")
        if fee == 0:
            ledger.add_pending(m.id, "Membership Fee", 3000, notes="Approved, membership fee due")

    today = date.today()
    ledger.add_event(
        "Club Meeting",
        (today + timedelta(days=3)).isoformat(),
        "18:00",
        "meeting",
        "medium",
        description="Monthly club meeting to discuss upcoming events and improvements.",
        created_by="admin",
    )
