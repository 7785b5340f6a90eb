"""
reports.py
Read-only aggregations over a ClubLedger (dashboard, financial summary, reports).

Two separate notions of "pending" live here:
- implicit pending: (member, fee year) pairs whose stored amount is 0
- tracked pending: explicit PendingFee records
They are never added together.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Iterable

import pandas as pd

from models import CONTRIBUTION_TYPES, EXPENSE_CATEGORIES, EXTERNAL_CONTRIBUTION_TYPES


def total_collected(ledger) -> float:
    return sum(m.total_paid for m in ledger.members)


def _unpaid_pairs(ledger):
    for m in ledger.members:
        for fy in ledger.fee_years:
            if m.fees.get(fy.year, 0) == 0:
                yield m, fy


def implicit_pending_count(ledger) -> int:
    return sum(1 for _ in _unpaid_pairs(ledger))


def implicit_pending_amount(ledger) -> float:
    """Uses each fee year's configured amount, not what a member actually owes."""
    return sum(fy.amount for _, fy in _unpaid_pairs(ledger))


def tracked_pending_count(ledger) -> int:
    return len(ledger.pending_fees)


def tracked_pending_amount(ledger) -> float:
    return sum(p.amount for p in ledger.pending_fees)


def per_category_totals(collection: Iterable, key_fn: Callable, categories: Iterable[str] = ()) -> dict:
    """
    Group records by key_fn(record) and sum their `amount`.
    Returns {key: {"count": n, "total": amount}}; `categories` are always present (zeros if unused).
    """
    df = pd.DataFrame([{"key": key_fn(r), "amount": r.amount} for r in collection], columns=["key", "amount"])
    result = {c: {"count": 0, "total": 0} for c in categories}
    if df.empty:
        return result
    grouped = df.groupby("key", sort=False, dropna=False)["amount"].agg(["count", "sum"])
    for key, row in grouped.iterrows():
        result[key] = {"count": int(row["count"]), "total": row["sum"].item()}
    return result


def expense_category_totals(ledger) -> dict:
    return per_category_totals(ledger.expenses, lambda e: e.category, EXPENSE_CATEGORIES)


def contribution_type_totals(ledger) -> dict:
    return per_category_totals(ledger.contributions, lambda c: c.type, CONTRIBUTION_TYPES)


def _top_key(totals: dict) -> str:
    if not totals:
        return "None"
    return str(max(totals, key=lambda k: totals[k]["total"]))


def expense_report(ledger) -> dict:
    """Total, flat monthly average over a 12-month year, and the costliest category."""
    total = sum(e.amount for e in ledger.expenses)
    return {
        "total": total,
        "monthly_average": round(total / 12),
        "top_category": _top_key(per_category_totals(ledger.expenses, lambda e: e.category)),
    }


def contribution_report(ledger) -> dict:
    total = sum(c.amount for c in ledger.contributions)
    count = len(ledger.contributions)
    return {
        "total": total,
        "average": round(total / count) if count else 0,
        "top_contributor": _top_key(per_category_totals(ledger.contributions, lambda c: c.contributor_name)),
    }


def fee_year_summary(ledger) -> list[dict]:
    rows = []
    for fy in ledger.fee_years:
        paid = [m.fees.get(fy.year, 0) for m in ledger.members]
        unpaid = sum(1 for amt in paid if amt == 0)
        rows.append({
            "year": fy.year,
            "description": fy.description,
            "is_active": fy.is_active,
            "collected": sum(paid),
            "unpaid_members": unpaid,
            "pending": unpaid * fy.amount,
        })
    return rows


def financial_summary(ledger) -> dict:
    membership_fees = sum(m.membership_fee for m in ledger.members)
    by_year = {fy.year: sum(m.fees.get(fy.year, 0) for m in ledger.members) for fy in ledger.fee_years}
    member_fees = membership_fees + sum(by_year.values())
    contributions = sum(c.amount for c in ledger.contributions)
    expenses = sum(e.amount for e in ledger.expenses)
    total_income = member_fees + contributions
    return {
        "membership_fees": membership_fees,
        "annual_fees": by_year,
        "member_fees": member_fees,
        "contributions": contributions,
        "total_income": total_income,
        "expenses": expenses,
        "net_balance": total_income - expenses,
        "implicit_pending": implicit_pending_amount(ledger),
        "tracked_pending": tracked_pending_amount(ledger),
    }


def expense_summary(ledger, today: date | None = None) -> dict:
    today = today or date.today()
    month = f"{today.year:04d}-{today.month:02d}"
    return {
        "total": sum(e.amount for e in ledger.expenses),
        "this_month": sum(e.amount for e in ledger.expenses if e.date.startswith(month)),
        "pending_reimbursements": sum(e.amount for e in ledger.expenses if e.status == "Pending"),
    }


def contribution_summary(ledger) -> dict:
    return {
        "total": sum(c.amount for c in ledger.contributions),
        "member": sum(c.amount for c in ledger.contributions if c.type == "Member"),
        "external": sum(c.amount for c in ledger.contributions if c.type in EXTERNAL_CONTRIBUTION_TYPES),
    }


def member_statistics(ledger) -> dict:
    members = ledger.members
    return {
        "total": len(members),
        "founding": sum(1 for m in members if m.status == "FOUNDING MEMBER"),
        "new": sum(1 for m in members if m.status == "NEW MEMBER"),
        "approved": sum(1 for m in members if m.status == "APPROVED FOR MEMBERSHIP"),
        "inactive": sum(1 for m in members if not m.is_active),
    }


def dashboard(ledger) -> dict:
    contributions = sum(c.amount for c in ledger.contributions)
    return {
        "total_members": len(ledger.members),
        "active_members": sum(1 for m in ledger.members if m.is_active),
        "total_collected": total_collected(ledger) + contributions,
        "implicit_pending": implicit_pending_count(ledger),
        "tracked_pending": tracked_pending_count(ledger),
    }


def revenue_by_month(ledger) -> pd.DataFrame:
    """Transaction log grouped by YYYY-MM, newest first (adjustments included as signed deltas)."""
    df = pd.DataFrame([{"date": t.date, "amount": t.amount} for t in ledger.transactions], columns=["date", "amount"])
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    df["month"] = df["date"].str[:7]
    out = df.groupby("month", as_index=False)["amount"].sum().rename(columns={"amount": "revenue"})
    return out.sort_values("month", ascending=False).reset_index(drop=True)
