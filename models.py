"""
models.py
Lightweight domain records (dataclasses) + club defaults.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date

DEFAULT_CLUB_NAME = "Passion Hills Table Tennis Club"
DEFAULT_MEMBERSHIP_FEE = 3000
DEFAULT_ANNUAL_FEE = 500

MEMBER_STATUSES = [
    "FOUNDING MEMBER",
    "FOUNDING MEMBER (Inactive)",
    "NEW MEMBER",
    "APPROVED FOR MEMBERSHIP",
]

MEMBERSHIP_FEE_TYPE = "Membership Fee"
# Offered after the active fee years when adding a pending fee
EXTRA_PENDING_FEE_TYPES = [MEMBERSHIP_FEE_TYPE, "Special Assessment", "Tournament Fee", "Other"]
PENDING_STATUS = "Pending"
PENDING_DUE_DAYS = 30

EXPENSE_CATEGORIES = ["Equipment", "Maintenance", "Events", "Utilities", "Other"]
EXPENSE_STATUSES = ["Paid", "Pending"]

CONTRIBUTION_TYPES = ["Member", "External", "Donation", "Sponsorship"]
EXTERNAL_CONTRIBUTION_TYPES = ("External", "Donation", "Sponsorship")

EVENT_TYPES = ["tournament", "fee_reminder", "meeting", "maintenance", "orientation", "other"]
EVENT_PRIORITIES = ["high", "medium", "low"]
INVOICE_STATUSES = ["Generated", "Sent", "Paid", "Overdue"]


def adjustment_type(year: int) -> str:
    return f"fee_adjustment_{year}"


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Member:
    id: int
    name: str
    villa_no: str
    status: str
    membership_fee: float
    join_date: str
    is_active: bool = True
    # year -> amount paid for that fee year (0 == unpaid)
    fees: dict[int, float] = field(default_factory=dict)

    @property
    def total_paid(self) -> float:
        return self.membership_fee + sum(self.fees.values())

    def to_dict(self) -> dict:
        d = asdict(self)
        d["fees"] = {str(y): amt for y, amt in sorted(self.fees.items())}
        d["total_paid"] = self.total_paid
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        d = _known_fields(cls, data)
        d["fees"] = {int(y): amt for y, amt in (data.get("fees") or {}).items()}
        return cls(**d)


@dataclass
class FeeYear:
    year: int
    amount: float
    description: str
    is_active: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FeeYear":
        d = _known_fields(cls, data)
        d["year"] = int(d["year"])
        return cls(**d)


@dataclass(frozen=True)
class Transaction:
    id: int
    member_id: int
    member_name: str
    type: str
    amount: float  # signed for adjustments
    date: str
    timestamp: str
    from_pending: bool = False
    pending_fee_id: int | None = None
    is_adjustment: bool = False
    reason: str | None = None
    notes: str | None = None
    original_amount: float | None = None
    new_amount: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(**_known_fields(cls, data))


@dataclass
class PendingFee:
    id: int
    member_id: int
    member_name: str
    fee_type: str
    amount: float
    due_date: str
    notes: str
    created_date: str
    status: str = PENDING_STATUS

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PendingFee":
        return cls(**_known_fields(cls, data))


@dataclass
class Expense:
    id: int
    date: str
    description: str
    category: str
    amount: float
    paid_by: str
    status: str
    receipt: str = ""
    timestamp: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Expense":
        return cls(**_known_fields(cls, data))


@dataclass
class Contribution:
    id: int
    date: str
    contributor_name: str
    villa: str
    type: str
    purpose: str
    amount: float
    receipt: str = ""
    timestamp: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Contribution":
        return cls(**_known_fields(cls, data))


@dataclass
class Invoice:
    id: int
    invoice_number: str
    member_id: int
    member_name: str
    member_villa: str
    items: list[dict]  # [{"description": ..., "amount": ...}]
    total: float
    date: str
    status: str = "Generated"  # one of INVOICE_STATUSES

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        return cls(**_known_fields(cls, data))


@dataclass
class Event:
    id: int
    title: str
    description: str
    date: str
    time: str
    type: str
    priority: str
    is_active: bool = True
    created_by: str = ""
    created_date: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class Activity:
    id: int
    type: str
    description: str
    timestamp: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Activity":
        return cls(**_known_fields(cls, data))


@dataclass
class ClubSettings:
    club_name: str = DEFAULT_CLUB_NAME
    default_membership_fee: float = DEFAULT_MEMBERSHIP_FEE
    default_annual_fee: float = DEFAULT_ANNUAL_FEE
    current_year: int = field(default_factory=lambda: date.today().year)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClubSettings":
        return cls(**_known_fields(cls, data))
