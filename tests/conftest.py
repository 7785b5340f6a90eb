"""
Pytest configuration and fixtures for the club fee ledger tests
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ledger import ClubLedger  # noqa: E402


@pytest.fixture
def ledger():
    """Ledger with fee years 2023-2025 at 500 each"""
    lg = ClubLedger()
    for year in (2023, 2024, 2025):
        lg.add_fee_year(year, 500)
    return lg


@pytest.fixture
def member(ledger):
    """Founding member: membership 3000, paid 2023 and 2024, 2025 unpaid"""
    m = ledger.add_member("PRAVEEN", "16", status="FOUNDING MEMBER", membership_fee=3000, join_date="2023-01-01")
    ledger.set_fee(m.id, 2023, 500)
    ledger.set_fee(m.id, 2024, 500)
    return m


@pytest.fixture
def unpaid_member(ledger):
    """Approved member with nothing paid yet"""
    return ledger.add_member("ALEX", "10", status="APPROVED FOR MEMBERSHIP", membership_fee=0, join_date="2024-01-01")
