"""
Persistence tests - sqlite snapshot holder, JSON backup, CSV exports, validation helpers
"""
import json
import sqlite3
import pytest

import db
import utils
from errors import PersistenceError, ValidationError
from ledger import ClubLedger


@pytest.fixture
def populated(ledger, member, unpaid_member):
    ledger.collect_fee(member.id, 2025, 500, "2025-01-15")
    ledger.adjust_fee(member.id, 2023, 450, reason="Discount")
    ledger.add_pending(unpaid_member.id, "Membership Fee", 3000, "2025-06-30", "Approved")
    ledger.add_expense("2025-03-05", "Table repair", "Maintenance", 800, "Binu", "Paid")
    ledger.add_contribution("2025-03-01", "Renith", "25", "Member", "Nets", 1000)
    ledger.add_event("Club Meeting", "2025-01-25", "18:00", "meeting", "medium")
    ledger.toggle_fee_year(2023)
    return ledger


class TestJsonBackup:
    """Export / import round trip"""

    def test_round_trip(self, populated):
        text = utils.export_json(populated)
        restored = ClubLedger.from_snapshot(utils.import_json(text))

        assert restored.members == populated.members
        assert restored.fee_years == populated.fee_years
        assert restored.transactions == populated.transactions
        assert restored.pending_fees == populated.pending_fees
        assert restored.expenses == populated.expenses
        assert restored.contributions == populated.contributions
        assert restored.events == populated.events
        assert restored.settings == populated.settings

    def test_export_metadata(self, populated):
        data = json.loads(utils.export_json(populated))
        assert data["version"] == utils.EXPORT_VERSION
        assert "exportDate" in data
        assert data["members"][0]["total_paid"] == 3000 + 450 + 500 + 500
        assert data["members"][0]["fees"] == {"2023": 450, "2024": 500, "2025": 500}

    def test_invalid_json(self):
        with pytest.raises(ValidationError):
            utils.import_json("{not json")

    def test_missing_collection(self, populated):
        data = json.loads(utils.export_json(populated))
        del data["pendingFees"]
        with pytest.raises(ValidationError):
            utils.import_json(json.dumps(data))

    def test_collection_wrong_type(self):
        data = {k: [] for k in utils.REQUIRED_COLLECTIONS}
        data["members"] = {}
        assert utils.validate_snapshot(data) == ["'members' must be present and be a list."]

    def test_counters_in_backup(self, populated, unpaid_member):
        inv = populated.generate_invoice(unpaid_member.id)
        populated.delete_invoice(inv.id)
        restored = ClubLedger.from_snapshot(utils.import_json(utils.export_json(populated)))
        assert restored.next_ids == populated.next_ids
        assert restored.generate_invoice(unpaid_member.id).invoice_number == "INV-00002"

    def test_counters_wrong_type(self):
        data = {k: [] for k in utils.REQUIRED_COLLECTIONS}
        data["nextIds"] = [1, 2]
        assert utils.validate_snapshot(data) == ["'nextIds' must be an object."]

    def test_import_replaces_state_and_logs(self, populated):
        snapshot = populated.snapshot()
        lg = ClubLedger()
        lg.add_member("SOMEONE", "1")
        lg.import_snapshot(snapshot, "backup.json")
        assert [m.name for m in lg.members] == ["PRAVEEN", "ALEX"]
        assert lg.activities[-1].type == "Data Import"

    def test_malformed_record(self):
        data = {k: [] for k in utils.REQUIRED_COLLECTIONS}
        data["members"] = [{"id": 1}]
        lg = ClubLedger()
        with pytest.raises(ValidationError):
            lg.load_snapshot(data)
        assert lg.members == []

    def test_load_normalizes_fee_schema(self):
        data = {k: [] for k in utils.REQUIRED_COLLECTIONS}
        data["feeYears"] = [{"year": 2024, "amount": 500, "description": "Annual Fee 2024", "is_active": True}]
        data["members"] = [{
            "id": 1, "name": "A", "villa_no": "1", "status": "NEW MEMBER", "membership_fee": 100,
            "join_date": "2024-01-01", "is_active": True, "fees": {"2019": 50},
        }]
        lg = ClubLedger.from_snapshot(data)
        assert lg.members[0].fees == {2024: 0}
        assert lg.members[0].total_paid == 100


class TestSqliteHolder:
    """db.py snapshot save / load"""

    def test_save_on_every_mutation(self, tmp_path):
        path = tmp_path / "club.db"
        db.init_db(path)
        assert db.load_state(path) is None

        lg = ClubLedger(on_change=lambda snap: db.save_state(snap, db_file=path))
        lg.add_fee_year(2025, 500)
        m = lg.add_member("BINU", "23", membership_fee=3000)
        lg.collect_fee(m.id, 2025, 500)

        saved = db.load_state(path)
        assert saved == json.loads(json.dumps(lg.snapshot()))
        assert db.last_saved_at(path) is not None

        restored = ClubLedger.from_snapshot(saved)
        assert restored.members == lg.members
        assert restored.get_member(m.id).total_paid == 3500

    def test_clear_state(self, tmp_path):
        path = tmp_path / "club.db"
        db.init_db(path)
        db.save_state({"members": []}, db_file=path)
        db.clear_state(path)
        assert db.load_state(path) is None


class TestCsvExports:
    """CSV report builders"""

    def test_members_csv(self, populated):
        lines = utils.members_to_csv_bytes(populated.members, populated.fee_years).decode("utf-8").splitlines()
        assert lines[0] == (
            '"Sl No","Name","Villa No","Status","Membership Fee","Annual Fee 2023",'
            '"Annual Fee 2024","Annual Fee 2025","Total Paid","Join Date","Active"'
        )
        assert lines[1].startswith('"1","PRAVEEN","16"')
        assert len(lines) == 3

    def test_financial_csv(self, populated):
        text = utils.transactions_to_csv_bytes(populated.transactions, populated.members).decode("utf-8")
        assert '"FEE ADJUSTMENT 2023"' in text
        assert '"-50"' in text

    def test_fee_report_csv(self, populated):
        lines = utils.fee_report_to_csv_bytes(populated.members, populated.fee_years).decode("utf-8").splitlines()
        assert lines[2].endswith('"0","1500"')

    def test_empty_exports_have_headers(self):
        assert utils.expenses_to_csv_bytes([]).decode("utf-8").startswith('"Date","Description"')
        assert utils.contributions_to_csv_bytes([]).decode("utf-8").startswith('"Date","Contributor"')


class TestValidation:
    """Input validation helpers"""

    def test_member_inputs(self):
        assert utils.validate_member_inputs("A", "1", 3000, "2024-01-01") == []
        errors = utils.validate_member_inputs(" ", "", "abc", "2024-13-01")
        assert len(errors) == 4

    def test_bool_is_not_an_amount(self):
        assert utils.validate_fee_inputs(True) == ["Amount must be numeric."]

    def test_fee_year_inputs(self):
        assert utils.validate_fee_year_inputs(2025, 500) == []
        assert len(utils.validate_fee_year_inputs("2025", -1)) == 2


class TestSampleData:
    """Sample data loader"""

    def test_insert_sample_data(self):
        lg = ClubLedger()
        utils.insert_sample_data(lg)
        assert [fy.year for fy in lg.fee_years] == [2023, 2024, 2025]
        assert len(lg.members) == 4
        assert len(lg.pending_fees) == 1
        for m in lg.members:
            assert m.total_paid == m.membership_fee + sum(m.fees.values())


class TestSaveFailure:
    """A failing sqlite holder"""

    def test_unwritable_database(self, tmp_path, member, ledger):
        path = tmp_path / "club.db"
        db.init_db(path)
        db.execute("DROP TABLE app_state", db_file=path)
        ledger.on_change = lambda snap: db.save_state(snap, db_file=path)

        with pytest.raises(PersistenceError) as exc:
            ledger.collect_fee(member.id, 2025, 500)
        assert isinstance(exc.value.cause, sqlite3.Error)
        assert "not be saved" in str(exc.value)
