"""
ledger.py
ClubLedger: the in-memory fee ledger engine (members, fee years, transactions,
pending fees) plus the club's expenses, contributions, invoices and events.

Every public mutation validates first and raises before touching state, then
applies all of its sub-steps and hands one full snapshot to `on_change`.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Callable, Iterable

from loguru import logger

import utils
from errors import (
    DuplicatePendingError,
    DuplicateYearError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from models import (
    MEMBERSHIP_FEE_TYPE,
    EXTRA_PENDING_FEE_TYPES,
    INVOICE_STATUSES,
    PENDING_DUE_DAYS,
    Activity,
    ClubSettings,
    Contribution,
    Event,
    Expense,
    FeeYear,
    Invoice,
    Member,
    PendingFee,
    Transaction,
    adjustment_type,
)

MEMBER_PATCH_FIELDS = {"name", "villa_no", "status", "membership_fee", "join_date", "is_active"}
EXPENSE_PATCH_FIELDS = {"date", "description", "category", "amount", "paid_by", "status", "receipt"}
CONTRIBUTION_PATCH_FIELDS = {"date", "contributor_name", "villa", "type", "purpose", "amount", "receipt"}
EVENT_PATCH_FIELDS = {"title", "description", "date", "time", "type", "priority", "is_active"}
SETTINGS_PATCH_FIELDS = {"club_name", "default_membership_fee", "default_annual_fee", "current_year"}

_ANNUAL_FEE_RE = re.compile(r"^annual fee (\d{4})$", re.IGNORECASE)


def compute_total_paid(member: Member, years: Iterable[int] | None = None) -> float:
    """membership fee + sum of fee-year amounts (missing years count as 0)."""
    if years is None:
        years = member.fees.keys()
    return member.membership_fee + sum(member.fees.get(y, 0) for y in years)


def has_unpaid_fee(member: Member, years: Iterable[int]) -> bool:
    return any(not member.fees.get(y) for y in years)


def _next_id(records, *extra_ids) -> int:
    ids = [r.id for r in records] + [i for i in extra_ids if i is not None]
    return max(ids, default=0) + 1


def _slug(text: str) -> str:
    return re.sub(r"\s+", "_", text.strip().lower())


def _raise_if(errors: list[str]) -> None:
    if errors:
        raise ValidationError(errors)


def _check_patch(patch: dict, allowed: set[str]) -> None:
    unknown = sorted(set(patch) - allowed)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}.")


class ClubLedger:
    def __init__(self, settings: ClubSettings | None = None,
                 on_change: Callable[[dict], None] | None = None):
        self.settings = settings or ClubSettings()
        self.on_change = on_change

        self.members: list[Member] = []
        self._fee_years: dict[int, FeeYear] = {}
        self.transactions: list[Transaction] = []
        self.pending_fees: list[PendingFee] = []
        self.expenses: list[Expense] = []
        self.contributions: list[Contribution] = []
        self.invoices: list[Invoice] = []
        self.events: list[Event] = []
        self.activities: list[Activity] = []
        # next id per record kind; only ever grows so deleted ids are never reissued
        self.next_ids: dict[str, int] = {}

    # ---------- internal ----------

    def _issue_id(self, kind: str, records, *extra_ids) -> int:
        new_id = max(self.next_ids.get(kind, 1), _next_id(records, *extra_ids))
        self.next_ids[kind] = new_id + 1
        return new_id

    def _commit(self, activity_type: str, description: str) -> None:
        self.activities.append(
            Activity(
                id=self._issue_id("activities", self.activities),
                type=activity_type,
                description=description,
                timestamp=utils.now_iso(),
            )
        )
        logger.info(f"{activity_type}: {description}")
        if self.on_change is None:
            return
        try:
            self.on_change(self.snapshot())
        except Exception as e:
            logger.exception(f"Saving after '{activity_type}' failed")
            raise PersistenceError(activity_type, e) from e

    def _append_transaction(self, member: Member, type_key: str, amount, tx_date: str, **extra) -> Transaction:
        tx = Transaction(
            id=self._issue_id("transactions", self.transactions),
            member_id=member.id,
            member_name=member.name,
            type=type_key,
            amount=amount,
            date=tx_date,
            timestamp=utils.now_iso(),
            **extra,
        )
        self.transactions.append(tx)
        return tx

    def _require_year(self, year: int) -> FeeYear:
        fy = self._fee_years.get(year)
        if fy is None:
            raise NotFoundError("Fee year", year)
        return fy

    # ---------- members ----------

    def get_member(self, member_id: int) -> Member:
        for m in self.members:
            if m.id == member_id:
                return m
        raise NotFoundError("Member", member_id)

    def find_members(self, search: str = "", status: str = "") -> list[Member]:
        term = search.strip().lower()
        return [
            m for m in self.members
            if (not term or term in m.name.lower() or term in m.villa_no.lower())
            and (not status or m.status == status)
        ]

    def add_member(self, name: str, villa_no: str, status: str = "NEW MEMBER",
                   membership_fee: float | None = None, join_date: str | None = None,
                   is_active: bool = True) -> Member:
        if membership_fee is None:
            membership_fee = self.settings.default_membership_fee
        join_date = join_date or utils.today_iso()
        _raise_if(utils.validate_member_inputs(name, villa_no, membership_fee, join_date))

        # deleted members' ids stay reserved by their transactions / pending fees
        new_id = self._issue_id(
            "members",
            self.members,
            *(t.member_id for t in self.transactions),
            *(p.member_id for p in self.pending_fees),
        )
        member = Member(
            id=new_id,
            name=name.strip(),
            villa_no=str(villa_no).strip(),
            status=status,
            membership_fee=membership_fee,
            join_date=join_date,
            is_active=is_active,
            fees={year: 0 for year in self._fee_years},
        )
        self.members.append(member)
        self._commit("Member Added", f"Added new member: {member.name}")
        return member

    def update_member(self, member_id: int, **patch) -> Member:
        member = self.get_member(member_id)
        _check_patch(patch, MEMBER_PATCH_FIELDS)
        merged = {f: getattr(member, f) for f in MEMBER_PATCH_FIELDS} | patch
        _raise_if(
            utils.validate_member_inputs(
                merged["name"], merged["villa_no"], merged["membership_fee"], merged["join_date"]
            )
        )
        for key, value in patch.items():
            setattr(member, key, value.strip() if isinstance(value, str) and key in ("name", "villa_no") else value)
        self._commit("Member Updated", f"Updated details for {member.name}")
        return member

    def delete_member(self, member_id: int) -> Member:
        """Transactions and pending fees referencing the member are kept."""
        member = self.get_member(member_id)
        self.members.remove(member)
        self._commit("Member Deleted", f"Deleted member: {member.name}")
        return member

    def set_fee(self, member_id: int, year: int, amount: float) -> Member:
        member = self.get_member(member_id)
        self._require_year(year)
        _raise_if(utils.validate_fee_inputs(amount))
        member.fees[year] = amount
        self._commit("Fee Updated", f"Set {member.name}'s {year} fee to {amount}")
        return member

    def has_unpaid_fee(self, member: Member) -> bool:
        return has_unpaid_fee(member, self._fee_years)

    # ---------- fee years ----------

    @property
    def fee_years(self) -> list[FeeYear]:
        return sorted(self._fee_years.values(), key=lambda fy: fy.year)

    def active_fee_years(self) -> list[FeeYear]:
        return [fy for fy in self.fee_years if fy.is_active]

    def find_fee_year(self, year: int) -> FeeYear | None:
        return self._fee_years.get(year)

    def add_fee_year(self, year: int, amount: float | None = None, description: str | None = None) -> FeeYear:
        if amount is None:
            amount = self.settings.default_annual_fee
        _raise_if(utils.validate_fee_year_inputs(year, amount))
        if year in self._fee_years:
            raise DuplicateYearError(year)

        fee_year = FeeYear(year=year, amount=amount, description=description or f"Annual Fee {year}")
        self._fee_years[year] = fee_year
        for member in self.members:
            member.fees.setdefault(year, 0)
        self._commit("Fee Year Added", f"Added fee year {year} with amount {amount}")
        return fee_year

    def toggle_fee_year(self, year: int) -> bool:
        fee_year = self._require_year(year)
        fee_year.is_active = not fee_year.is_active
        state = "Activated" if fee_year.is_active else "Deactivated"
        self._commit("Fee Year Updated", f"{state} fee year {year}")
        return fee_year.is_active

    def update_fee_year(self, year: int, amount: float | None = None, description: str | None = None) -> FeeYear:
        """Metadata only; members' stored amounts for the year are untouched."""
        fee_year = self._require_year(year)
        if amount is not None:
            _raise_if(utils.validate_fee_inputs(amount))
            fee_year.amount = amount
        if description is not None:
            fee_year.description = description
        self._commit("Fee Year Updated", f"Updated fee year {year}: {fee_year.amount} - {fee_year.description}")
        return fee_year

    def fee_year_has_payments(self, year: int) -> bool:
        return any(m.fees.get(year, 0) > 0 for m in self.members)

    def delete_fee_year(self, year: int) -> bool:
        """
        Drop the year from the registry and every member's fees, and purge its
        collection transactions. Returns False (no-op) for an unknown year.
        """
        if year not in self._fee_years:
            logger.debug(f"delete_fee_year: {year} not registered")
            return False
        del self._fee_years[year]
        for member in self.members:
            member.fees.pop(year, None)
        purged = self._purge(str(year))
        self._commit("Fee Year Deleted", f"Deleted fee year {year} ({purged} transactions removed)")
        return True

    # ---------- transactions ----------

    def member_transactions(self, member_id: int) -> list[Transaction]:
        return [t for t in self.transactions if t.member_id == member_id]

    def record_collection(self, member_id: int, fee_type_key: str, amount: float,
                          pay_date: str | None = None, from_pending: bool = False,
                          pending_fee_id: int | None = None) -> Transaction:
        """Append-only; member balances are not touched (see collect_fee)."""
        member = self.get_member(member_id)
        pay_date = pay_date or utils.today_iso()
        _raise_if(utils.validate_fee_inputs(amount, pay_date))
        tx = self._append_transaction(
            member, str(fee_type_key), amount, pay_date,
            from_pending=from_pending, pending_fee_id=pending_fee_id,
        )
        self._commit("Fee Collected", f"Collected {tx.type} {amount} from {member.name}")
        return tx

    def record_adjustment(self, member_id: int, year: int, old_amount: float, new_amount: float,
                          reason: str = "", notes: str = "") -> Transaction:
        member = self.get_member(member_id)
        errors = utils.validate_fee_inputs(new_amount)
        if not utils.is_amount(old_amount):
            errors.append("Original amount must be numeric.")
        _raise_if(errors)
        tx = self._append_adjustment(member, year, old_amount, new_amount, reason, notes)
        self._commit("Fee Adjusted", f"Recorded {year} adjustment of {tx.amount} for {member.name}")
        return tx

    def _append_adjustment(self, member, year, old_amount, new_amount, reason, notes) -> Transaction:
        return self._append_transaction(
            member, adjustment_type(year), new_amount - old_amount, utils.today_iso(),
            is_adjustment=True, reason=reason, notes=notes,
            original_amount=old_amount, new_amount=new_amount,
        )

    def _purge(self, type_key: str) -> int:
        before = len(self.transactions)
        self.transactions = [t for t in self.transactions if t.type != type_key]
        return before - len(self.transactions)

    def purge_transactions(self, type_key: str) -> int:
        purged = self._purge(type_key)
        if purged:
            self._commit("Transactions Purged", f"Removed {purged} '{type_key}' transactions")
        return purged

    def collect_fee(self, member_id: int, year: int, amount: float, pay_date: str | None = None) -> Transaction:
        """Set the member's fee for `year` and log the collection in one step."""
        member = self.get_member(member_id)
        self._require_year(year)
        pay_date = pay_date or utils.today_iso()
        _raise_if(utils.validate_fee_inputs(amount, pay_date))

        member.fees[year] = amount
        tx = self._append_transaction(member, str(year), amount, pay_date)
        self._commit("Fee Collected", f"Collected Annual Fee {year} {amount} from {member.name}")
        return tx

    def adjust_fee(self, member_id: int, year: int, new_amount: float,
                   reason: str = "", notes: str = "") -> Transaction:
        """Correct a stored fee-year amount; the delta is logged as an adjustment."""
        member = self.get_member(member_id)
        self._require_year(year)
        _raise_if(utils.validate_fee_inputs(new_amount))

        old_amount = member.fees.get(year, 0)
        member.fees[year] = new_amount
        tx = self._append_adjustment(member, year, old_amount, new_amount, reason, notes)

        if new_amount > old_amount:
            change = f"increased from {old_amount} to {new_amount}"
        elif new_amount < old_amount:
            change = f"reduced from {old_amount} to {new_amount}"
        else:
            change = "corrected (no amount change)"
        self._commit("Fee Adjusted", f"{member.name}'s {year} fee {change}. Reason: {reason}")
        return tx

    # ---------- pending fees ----------

    def get_pending(self, pending_id: int) -> PendingFee:
        for p in self.pending_fees:
            if p.id == pending_id:
                return p
        raise NotFoundError("Pending fee", pending_id)

    def pending_fee_type_options(self) -> list[str]:
        return [fy.description for fy in self.active_fee_years()] + EXTRA_PENDING_FEE_TYPES

    def resolve_pending_fee_type(self, fee_type: str) -> int | str | None:
        """
        Map a pending fee type to what it pays for: a registered fee year (int),
        the membership fee, or None for free-form categories.
        """
        for fy in self.fee_years:
            if fy.description == fee_type:
                return fy.year
        match = _ANNUAL_FEE_RE.match(fee_type.strip())
        if match and int(match.group(1)) in self._fee_years:
            return int(match.group(1))
        if fee_type == MEMBERSHIP_FEE_TYPE:
            return MEMBERSHIP_FEE_TYPE
        return None

    def add_pending(self, member_id: int, fee_type: str, amount: float,
                    due_date: str | None = None, notes: str = "") -> PendingFee:
        member = self.get_member(member_id)
        today = utils.today_iso()
        due_date = due_date or utils.add_days(today, PENDING_DUE_DAYS)
        _raise_if(utils.validate_pending_inputs(fee_type, amount, due_date))
        if any(p.member_id == member_id and p.fee_type == fee_type for p in self.pending_fees):
            raise DuplicatePendingError(member_id, fee_type)

        pending = PendingFee(
            id=self._issue_id("pendingFees", self.pending_fees, *(t.pending_fee_id for t in self.transactions)),
            member_id=member.id,
            member_name=member.name,
            fee_type=fee_type,
            amount=amount,
            due_date=due_date,
            notes=notes,
            created_date=today,
        )
        self.pending_fees.append(pending)
        self._commit("Pending Fee Added", f"Added pending {fee_type} {amount} for {member.name}")
        return pending

    def collect_pending(self, pending_id: int, pay_date: str | None = None) -> Transaction:
        """
        Apply a pending fee to its member (fee year or membership fee are SET to
        the pending amount), log it with from_pending=True and drop the entry.
        """
        pending = self.get_pending(pending_id)
        member = self.get_member(pending.member_id)
        pay_date = pay_date or utils.today_iso()
        _raise_if(utils.validate_fee_inputs(pending.amount, pay_date))

        target = self.resolve_pending_fee_type(pending.fee_type)
        if target == MEMBERSHIP_FEE_TYPE:
            member.membership_fee = pending.amount
            type_key = _slug(MEMBERSHIP_FEE_TYPE)
        elif isinstance(target, int):
            member.fees[target] = pending.amount
            type_key = str(target)
        else:
            type_key = _slug(pending.fee_type)

        tx = self._append_transaction(
            member, type_key, pending.amount, pay_date,
            from_pending=True, pending_fee_id=pending.id,
        )
        self.pending_fees.remove(pending)
        self._commit("Pending Fee Collected", f"Collected {pending.fee_type} {pending.amount} from {member.name}")
        return tx

    def remove_pending(self, pending_id: int) -> PendingFee:
        pending = self.get_pending(pending_id)
        self.pending_fees.remove(pending)
        self._commit("Pending Fee Removed", f"Removed pending {pending.fee_type} for {pending.member_name}")
        return pending

    # ---------- expenses ----------

    def _get(self, records: list, record_id: int, kind: str):
        for r in records:
            if r.id == record_id:
                return r
        raise NotFoundError(kind, record_id)

    def find_expenses(self, search: str = "", category: str = "", status: str = "") -> list[Expense]:
        term = search.strip().lower()
        return [
            e for e in self.expenses
            if (not term or term in e.description.lower() or term in e.paid_by.lower())
            and (not category or e.category == category)
            and (not status or e.status == status)
        ]

    def add_expense(self, exp_date: str, description: str, category: str, amount: float,
                    paid_by: str, status: str = "Paid", receipt: str = "") -> Expense:
        _raise_if(utils.validate_expense_inputs(exp_date, description, category, amount, paid_by, status))
        expense = Expense(
            id=self._issue_id("expenses", self.expenses),
            date=exp_date,
            description=description.strip(),
            category=category,
            amount=amount,
            paid_by=paid_by.strip(),
            status=status,
            receipt=receipt,
            timestamp=utils.now_iso(),
        )
        self.expenses.append(expense)
        self._commit("Expense Added", f"Added new expense: {expense.description} - {amount}")
        return expense

    def update_expense(self, expense_id: int, **patch) -> Expense:
        expense = self._get(self.expenses, expense_id, "Expense")
        _check_patch(patch, EXPENSE_PATCH_FIELDS)
        m = {f: getattr(expense, f) for f in EXPENSE_PATCH_FIELDS} | patch
        _raise_if(utils.validate_expense_inputs(
            m["date"], m["description"], m["category"], m["amount"], m["paid_by"], m["status"]
        ))
        for key, value in patch.items():
            setattr(expense, key, value)
        self._commit("Expense Updated", f"Updated expense: {expense.description}")
        return expense

    def delete_expense(self, expense_id: int) -> Expense:
        expense = self._get(self.expenses, expense_id, "Expense")
        self.expenses.remove(expense)
        self._commit("Expense Deleted", f"Deleted expense: {expense.description}")
        return expense

    # ---------- contributions ----------

    def find_contributions(self, search: str = "", con_type: str = "") -> list[Contribution]:
        term = search.strip().lower()
        return [
            c for c in self.contributions
            if (not term or any(term in str(f).lower() for f in (c.contributor_name, c.villa, c.purpose)))
            and (not con_type or c.type == con_type)
        ]

    def add_contribution(self, con_date: str, contributor_name: str, villa: str, con_type: str,
                         purpose: str, amount: float, receipt: str = "") -> Contribution:
        _raise_if(utils.validate_contribution_inputs(con_date, contributor_name, villa, con_type, purpose, amount))
        contribution = Contribution(
            id=self._issue_id("contributions", self.contributions),
            date=con_date,
            contributor_name=contributor_name.strip(),
            villa=villa.strip(),
            type=con_type,
            purpose=purpose.strip(),
            amount=amount,
            receipt=receipt,
            timestamp=utils.now_iso(),
        )
        self.contributions.append(contribution)
        self._commit("Contribution Added", f"Added new contribution from {contribution.contributor_name} - {amount}")
        return contribution

    def update_contribution(self, contribution_id: int, **patch) -> Contribution:
        contribution = self._get(self.contributions, contribution_id, "Contribution")
        _check_patch(patch, CONTRIBUTION_PATCH_FIELDS)
        m = {f: getattr(contribution, f) for f in CONTRIBUTION_PATCH_FIELDS} | patch
        _raise_if(utils.validate_contribution_inputs(
            m["date"], m["contributor_name"], m["villa"], m["type"], m["purpose"], m["amount"]
        ))
        for key, value in patch.items():
            setattr(contribution, key, value)
        self._commit("Contribution Updated", f"Updated contribution from {contribution.contributor_name}")
        return contribution

    def delete_contribution(self, contribution_id: int) -> Contribution:
        contribution = self._get(self.contributions, contribution_id, "Contribution")
        self.contributions.remove(contribution)
        self._commit("Contribution Deleted", f"Deleted contribution from {contribution.contributor_name}")
        return contribution

    # ---------- invoices ----------

    def find_invoices(self, search: str = "", status: str = "", member_id: int | None = None) -> list[Invoice]:
        term = search.strip().lower()
        return [
            i for i in self.invoices
            if (not term or any(term in str(f).lower() for f in (i.invoice_number, i.member_name, i.member_villa)))
            and (not status or i.status == status)
            and (member_id is None or i.member_id == member_id)
        ]

    def generate_invoice(self, member_id: int, inv_date: str | None = None) -> Invoice:
        """Bill every registered fee year the member has not paid, at the configured amount."""
        member = self.get_member(member_id)
        items = [
            {"description": fy.description, "amount": fy.amount}
            for fy in self.fee_years
            if not member.fees.get(fy.year)
        ]
        if not items:
            raise ValidationError(f"No pending fees for {member.name}.")

        invoice_id = self._issue_id("invoices", self.invoices)
        invoice = Invoice(
            id=invoice_id,
            invoice_number=f"INV-{invoice_id:05d}",
            member_id=member.id,
            member_name=member.name,
            member_villa=member.villa_no,
            items=items,
            total=sum(i["amount"] for i in items),
            date=inv_date or utils.today_iso(),
        )
        self.invoices.append(invoice)
        self._commit("Invoice Generated", f"Generated invoice {invoice.invoice_number} for {member.name}")
        return invoice

    def set_invoice_status(self, invoice_id: int, status: str) -> Invoice:
        invoice = self._get(self.invoices, invoice_id, "Invoice")
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Invoice status must be one of {', '.join(INVOICE_STATUSES)}.")
        invoice.status = status
        self._commit("Invoice Updated", f"Marked invoice {invoice.invoice_number} as {status}")
        return invoice

    def delete_invoice(self, invoice_id: int) -> Invoice:
        invoice = self._get(self.invoices, invoice_id, "Invoice")
        self.invoices.remove(invoice)
        self._commit("Invoice Deleted", f"Deleted invoice {invoice.invoice_number}")
        return invoice

    # ---------- events ----------

    def add_event(self, title: str, ev_date: str, ev_time: str, ev_type: str, priority: str,
                  description: str = "", created_by: str = "") -> Event:
        _raise_if(utils.validate_event_inputs(title, ev_date, ev_time, ev_type, priority))
        event = Event(
            id=self._issue_id("events", self.events),
            title=title.strip(),
            description=description.strip(),
            date=ev_date,
            time=ev_time,
            type=ev_type,
            priority=priority,
            created_by=created_by,
            created_date=utils.today_iso(),
        )
        self.events.append(event)
        self._commit("Event Created", f"Created new event: {event.title}")
        return event

    def update_event(self, event_id: int, **patch) -> Event:
        event = self._get(self.events, event_id, "Event")
        _check_patch(patch, EVENT_PATCH_FIELDS)
        m = {f: getattr(event, f) for f in EVENT_PATCH_FIELDS} | patch
        _raise_if(utils.validate_event_inputs(m["title"], m["date"], m["time"], m["type"], m["priority"]))
        for key, value in patch.items():
            setattr(event, key, value)
        self._commit("Event Updated", f"Updated event: {event.title}")
        return event

    def delete_event(self, event_id: int) -> Event:
        event = self._get(self.events, event_id, "Event")
        self.events.remove(event)
        self._commit("Event Deleted", f"Deleted event: {event.title}")
        return event

    def upcoming_events(self, days: int = 7, now: datetime | None = None) -> list[Event]:
        now = now or datetime.now()
        until = now + timedelta(days=days)

        upcoming = []
        for e in self.events:
            if not e.is_active:
                continue
            try:
                starts = datetime.fromisoformat(f"{e.date}T{e.time}")
            except (TypeError, ValueError):
                logger.warning(f"Event {e.id} '{e.title}': unparsable date/time {e.date!r} {e.time!r}, skipped")
                continue
            if now <= starts <= until:
                upcoming.append((starts, e))
        return [e for _, e in sorted(upcoming, key=lambda pair: pair[0])]

    # ---------- activity / settings ----------

    def recent_activities(self, n: int = 5) -> list[Activity]:
        return list(reversed(self.activities[-n:]))

    def update_settings(self, **patch) -> ClubSettings:
        _check_patch(patch, SETTINGS_PATCH_FIELDS)
        errors: list[str] = []
        for key in ("default_membership_fee", "default_annual_fee"):
            if key in patch and (not utils.is_amount(patch[key]) or patch[key] < 0):
                errors.append(f"{key} must be a non-negative number.")
        _raise_if(errors)
        for key, value in patch.items():
            setattr(self.settings, key, value)
        self._commit("Settings Updated", f"Updated settings: {', '.join(sorted(patch))}")
        return self.settings

    # ---------- snapshot ----------

    def snapshot(self) -> dict:
        return {
            "members": [m.to_dict() for m in self.members],
            "feeYears": [fy.to_dict() for fy in self.fee_years],
            "transactions": [t.to_dict() for t in self.transactions],
            "pendingFees": [p.to_dict() for p in self.pending_fees],
            "expenses": [e.to_dict() for e in self.expenses],
            "contributions": [c.to_dict() for c in self.contributions],
            "invoices": [i.to_dict() for i in self.invoices],
            "activities": [a.to_dict() for a in self.activities],
            "events": [e.to_dict() for e in self.events],
            "settings": self.settings.to_dict(),
            "nextIds": dict(self.next_ids),
        }

    def load_snapshot(self, data: dict, source: str = "snapshot") -> None:
        """Replace all state with `data` (structure-checked, records are not)."""
        _raise_if(utils.validate_snapshot(data))
        try:
            members = [Member.from_dict(d) for d in data["members"]]
            fee_years = {fy.year: fy for fy in (FeeYear.from_dict(d) for d in data["feeYears"])}
            transactions = [Transaction.from_dict(d) for d in data["transactions"]]
            pending_fees = [PendingFee.from_dict(d) for d in data["pendingFees"]]
            expenses = [Expense.from_dict(d) for d in data["expenses"]]
            contributions = [Contribution.from_dict(d) for d in data["contributions"]]
            invoices = [Invoice.from_dict(d) for d in data.get("invoices", [])]
            activities = [Activity.from_dict(d) for d in data.get("activities", [])]
            events = [Event.from_dict(d) for d in data.get("events", [])]
            settings = ClubSettings.from_dict(data.get("settings") or {})
            # older backups have no counters; _issue_id falls back to max+1 over the records
            next_ids = {str(k): int(v) for k, v in (data.get("nextIds") or {}).items()}
        except (TypeError, KeyError, ValueError, AttributeError) as e:
            raise ValidationError(f"Malformed record in {source}: {e}") from e

        for m in members:
            stray = set(m.fees) - set(fee_years)
            if stray:
                logger.warning(f"Member {m.id}: dropping fees for unregistered years {sorted(stray)}")
                for year in stray:
                    del m.fees[year]
            for year in fee_years:
                m.fees.setdefault(year, 0)

        self.members = members
        self._fee_years = fee_years
        self.transactions = transactions
        self.pending_fees = pending_fees
        self.expenses = expenses
        self.contributions = contributions
        self.invoices = invoices
        self.activities = activities
        self.events = events
        self.settings = settings
        self.next_ids = next_ids
        logger.info(f"Loaded {source}: {len(members)} members, {len(fee_years)} fee years")

    @classmethod
    def from_snapshot(cls, data: dict, on_change: Callable[[dict], None] | None = None) -> "ClubLedger":
        ledger = cls(on_change=on_change)
        ledger.load_snapshot(data)
        return ledger

    def import_snapshot(self, data: dict, source: str = "import") -> None:
        """load_snapshot + activity entry and save, for user-initiated imports."""
        self.load_snapshot(data, source=source)
        self._commit("Data Import", f"Imported database from {source}")
