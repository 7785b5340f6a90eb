"""
errors.py
Error kinds raised by the ledger engine. The UI decides how to show them.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every engine error."""


class NotFoundError(LedgerError):
    """Referenced member / fee year / pending fee / record does not exist."""

    def __init__(self, kind: str, key):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key!r} not found.")


class DuplicateYearError(LedgerError):
    def __init__(self, year: int):
        self.year = year
        super().__init__(f"Fee year {year} already exists.")


class DuplicatePendingError(LedgerError):
    def __init__(self, member_id: int, fee_type: str):
        self.member_id = member_id
        self.fee_type = fee_type
        super().__init__(f"A pending '{fee_type}' already exists for member {member_id}.")


class ValidationError(LedgerError):
    """Bad input: missing field, negative amount, malformed date, bad snapshot."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(" ".join(self.errors))


class PersistenceError(LedgerError):
    """The change is applied in memory but the save hook failed."""

    def __init__(self, activity_type: str, cause: Exception):
        self.activity_type = activity_type
        self.cause = cause
        super().__init__(f"{activity_type} was applied but could not be saved: {cause}")
