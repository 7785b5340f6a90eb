"""
Ledger engine tests - members, fee years, transactions, pending fees
"""
import pytest
from datetime import datetime

from errors import (
    DuplicatePendingError,
    DuplicateYearError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ledger import ClubLedger, compute_total_paid, has_unpaid_fee


def assert_totals_consistent(ledger):
    years = [fy.year for fy in ledger.fee_years]
    for m in ledger.members:
        assert sorted(m.fees) == years
        assert m.total_paid == m.membership_fee + sum(m.fees.get(y, 0) for y in years)


class TestMemberStore:
    """Member add / update / delete / set_fee"""

    def test_add_member_backfills_registered_years(self, ledger):
        m = ledger.add_member("JOSEPH", "20", membership_fee=3000)
        assert m.fees == {2023: 0, 2024: 0, 2025: 0}
        assert m.total_paid == 3000
        assert ledger.get_member(m.id) is m

    def test_add_member_uses_default_fee(self, ledger):
        m = ledger.add_member("BINU", "23")
        assert m.membership_fee == ledger.settings.default_membership_fee

    def test_add_member_validation_leaves_store_untouched(self, ledger):
        with pytest.raises(ValidationError) as exc:
            ledger.add_member("", "16", membership_fee=-1)
        assert len(exc.value.errors) == 2
        assert ledger.members == []

    def test_update_member_recomputes_total(self, ledger, member):
        ledger.update_member(member.id, membership_fee=2500, name="PRAVEEN K")
        assert member.name == "PRAVEEN K"
        assert member.total_paid == 3500

    def test_update_member_unknown_field(self, ledger, member):
        with pytest.raises(ValidationError):
            ledger.update_member(member.id, total_paid=99)

    def test_update_missing_member(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.update_member(404, name="X")

    def test_delete_member_keeps_transactions(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.delete_member(member.id)
        assert ledger.members == []
        assert len(ledger.member_transactions(member.id)) == 1

    def test_new_member_does_not_reuse_orphaned_id(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.delete_member(member.id)
        newcomer = ledger.add_member("JOHN", "10")
        assert newcomer.id != member.id

    def test_set_fee_unregistered_year(self, ledger, member):
        with pytest.raises(NotFoundError):
            ledger.set_fee(member.id, 2030, 500)

    def test_set_fee_negative(self, ledger, member):
        with pytest.raises(ValidationError):
            ledger.set_fee(member.id, 2025, -5)
        assert member.fees[2025] == 0

    def test_set_fee_idempotent(self, ledger, member):
        ledger.set_fee(member.id, 2025, 500)
        first = (dict(member.fees), member.total_paid)
        ledger.set_fee(member.id, 2025, 500)
        assert (dict(member.fees), member.total_paid) == first

    def test_compute_total_paid_treats_missing_as_zero(self, member):
        assert compute_total_paid(member, [2023, 2024, 2025, 2099]) == 4000
        assert compute_total_paid(member) == member.total_paid

    def test_has_unpaid_fee(self, ledger, member):
        assert ledger.has_unpaid_fee(member)
        ledger.set_fee(member.id, 2025, 500)
        assert not ledger.has_unpaid_fee(member)
        assert has_unpaid_fee(member, [2023, 2026])

    def test_find_members(self, ledger, member, unpaid_member):
        assert ledger.find_members("prav") == [member]
        assert ledger.find_members("10") == [unpaid_member]
        assert ledger.find_members(status="FOUNDING MEMBER") == [member]


class TestFeeYearRegistry:
    """Fee year registration drives the per-member fee schema"""

    def test_add_fee_year_backfill(self):
        lg = ClubLedger()
        lg.add_fee_year(2023, 500)
        lg.add_fee_year(2024, 500)
        members = [lg.add_member(f"M{i}", str(i), membership_fee=3000) for i in range(3)]
        lg.set_fee(members[0].id, 2023, 500)
        before = [m.total_paid for m in members]

        fy = lg.add_fee_year(2025, 500, "Annual Fee 2025")

        assert fy.description == "Annual Fee 2025"
        assert all(m.fees[2025] == 0 for m in members)
        assert [m.total_paid for m in members] == before

    def test_duplicate_year(self, ledger):
        with pytest.raises(DuplicateYearError):
            ledger.add_fee_year(2024, 600)

    def test_default_description_and_sorting(self, ledger):
        ledger.add_fee_year(2020, 400)
        assert ledger.find_fee_year(2020).description == "Annual Fee 2020"
        assert [fy.year for fy in ledger.fee_years] == [2020, 2023, 2024, 2025]

    def test_toggle_keeps_schema_and_totals(self, ledger, member):
        assert ledger.toggle_fee_year(2023) is False
        assert 2023 not in [fy.year for fy in ledger.active_fee_years()]
        assert "Annual Fee 2023" not in ledger.pending_fee_type_options()
        assert member.fees[2023] == 500
        assert member.total_paid == 4000
        assert ledger.toggle_fee_year(2023) is True

    def test_toggle_unknown_year(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.toggle_fee_year(1999)

    def test_update_fee_year_is_metadata_only(self, ledger, member):
        ledger.update_fee_year(2023, amount=700, description="Annual Fee 2023 (revised)")
        assert ledger.find_fee_year(2023).amount == 700
        assert member.fees[2023] == 500

    def test_delete_fee_year_with_paid_members(self, ledger, member, unpaid_member):
        ledger.collect_fee(member.id, 2025, 500)
        other = ledger.collect_fee(unpaid_member.id, 2024, 500)
        assert ledger.fee_year_has_payments(2023)

        assert ledger.delete_fee_year(2023) is True

        assert 2023 not in member.fees and 2023 not in unpaid_member.fees
        assert member.total_paid == 4000
        assert unpaid_member.total_paid == 500
        assert other in ledger.transactions
        assert ledger.find_fee_year(2023) is None
        assert_totals_consistent(ledger)

    def test_delete_fee_year_purges_its_transactions(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.delete_fee_year(2025)
        assert not any(t.type == "2025" for t in ledger.transactions)

    def test_delete_unknown_year_is_noop(self, ledger, member):
        activities = len(ledger.activities)
        assert ledger.delete_fee_year(1990) is False
        assert len(ledger.activities) == activities


class TestTransactionLog:
    """Collections and adjustments"""

    def test_collect_scenario(self, ledger, member):
        ledger.set_fee(member.id, 2025, 500)
        tx = ledger.record_collection(member.id, "2025", 500, "2025-03-01")

        assert member.total_paid == 4500
        assert ledger.transactions == [tx]
        assert (tx.amount, tx.type, tx.member_name) == (500, "2025", "PRAVEEN")

    def test_record_collection_does_not_touch_member(self, ledger, member):
        ledger.record_collection(member.id, "2025", 500)
        assert member.fees[2025] == 0

    def test_collect_fee_is_single_step(self, ledger, member):
        saves = []
        ledger.on_change = saves.append
        tx = ledger.collect_fee(member.id, 2025, 500, "2025-02-01")
        assert member.fees[2025] == 500
        assert tx.type == "2025" and tx.date == "2025-02-01"
        assert len(saves) == 1
        assert saves[0]["transactions"][-1]["id"] == tx.id

    def test_collect_fee_rejects_bad_date_before_writing(self, ledger, member):
        with pytest.raises(ValidationError):
            ledger.collect_fee(member.id, 2025, 500, "01/02/2025")
        assert member.fees[2025] == 0
        assert ledger.transactions == []

    def test_transactions_not_deduplicated(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.collect_fee(member.id, 2025, 500)
        assert member.total_paid == 4500
        assert len(ledger.transactions) == 2

    def test_adjust_fee_records_signed_delta(self, ledger, member):
        tx = ledger.adjust_fee(member.id, 2024, 300, reason="Partial waiver", notes="Committee decision")
        assert member.fees[2024] == 300
        assert member.total_paid == 3800
        assert tx.type == "fee_adjustment_2024"
        assert tx.amount == -200
        assert (tx.original_amount, tx.new_amount, tx.reason) == (500, 300, "Partial waiver")
        assert tx.is_adjustment

    def test_record_adjustment_only_appends(self, ledger, member):
        tx = ledger.record_adjustment(member.id, 2023, 500, 600, "Late fee")
        assert tx.amount == 100
        assert member.fees[2023] == 500

    def test_purge_transactions(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.adjust_fee(member.id, 2025, 400)
        assert ledger.purge_transactions("2025") == 1
        assert [t.type for t in ledger.transactions] == ["fee_adjustment_2025"]


class TestPendingFees:
    """Tracked pending fees"""

    def test_add_pending_defaults(self, ledger, member):
        p = ledger.add_pending(member.id, "Annual Fee 2025", 500)
        assert p.status == "Pending"
        assert p.member_name == "PRAVEEN"
        assert p.due_date > p.created_date

    def test_duplicate_pending(self, ledger, member):
        ledger.add_pending(member.id, "Annual Fee 2025", 500)
        with pytest.raises(DuplicatePendingError):
            ledger.add_pending(member.id, "Annual Fee 2025", 500)
        assert len(ledger.pending_fees) == 1

    def test_same_type_for_other_member_is_fine(self, ledger, member, unpaid_member):
        ledger.add_pending(member.id, "Annual Fee 2025", 500)
        ledger.add_pending(unpaid_member.id, "Annual Fee 2025", 500)
        assert len(ledger.pending_fees) == 2

    def test_add_pending_unknown_member(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.add_pending(99, "Other", 100)

    def test_collect_pending_annual_fee(self, ledger, member):
        ledger.set_fee(member.id, 2024, 0)
        p = ledger.add_pending(member.id, "Annual Fee 2024", 500)

        tx = ledger.collect_pending(p.id)

        assert member.fees[2024] == 500
        assert member.total_paid == 4000
        assert tx.from_pending and tx.pending_fee_id == p.id
        assert tx.type == "2024"
        assert ledger.pending_fees == []

    def test_collect_pending_matches_custom_description(self, ledger, member):
        ledger.update_fee_year(2025, description="Season 2025 dues")
        p = ledger.add_pending(member.id, "Season 2025 dues", 450)
        ledger.collect_pending(p.id)
        assert member.fees[2025] == 450

    def test_collect_pending_membership_fee_sets(self, ledger, unpaid_member):
        p = ledger.add_pending(unpaid_member.id, "Membership Fee", 3000)
        tx = ledger.collect_pending(p.id)
        assert unpaid_member.membership_fee == 3000
        assert tx.type == "membership_fee"

        p2 = ledger.add_pending(unpaid_member.id, "Membership Fee", 3000)
        ledger.collect_pending(p2.id)
        assert unpaid_member.membership_fee == 3000

    def test_collect_pending_free_form_type(self, ledger, member):
        before = member.total_paid
        p = ledger.add_pending(member.id, "Tournament Fee", 200)
        tx = ledger.collect_pending(p.id)
        assert tx.type == "tournament_fee"
        assert member.total_paid == before

    def test_collect_pending_for_deleted_member(self, ledger, member):
        p = ledger.add_pending(member.id, "Other", 100)
        ledger.delete_member(member.id)
        with pytest.raises(NotFoundError):
            ledger.collect_pending(p.id)
        assert ledger.pending_fees == [p]
        assert ledger.transactions == []

    def test_remove_pending(self, ledger, member):
        p = ledger.add_pending(member.id, "Other", 100)
        assert ledger.remove_pending(p.id) is p
        with pytest.raises(NotFoundError):
            ledger.collect_pending(p.id)

    def test_pending_allowed_again_after_collection(self, ledger, member):
        p = ledger.add_pending(member.id, "Other", 100)
        ledger.collect_pending(p.id)
        again = ledger.add_pending(member.id, "Other", 100)
        assert again.id != p.id

    def test_fee_type_options(self, ledger):
        options = ledger.pending_fee_type_options()
        assert options[:3] == ["Annual Fee 2023", "Annual Fee 2024", "Annual Fee 2025"]
        assert "Membership Fee" in options


class TestConsistency:
    """totalPaid and fee schema after a mixed sequence of operations"""

    def test_mixed_sequence(self, ledger, member, unpaid_member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.adjust_fee(unpaid_member.id, 2024, 250)
        ledger.add_fee_year(2026, 600)
        p = ledger.add_pending(unpaid_member.id, "Annual Fee 2026", 600)
        ledger.collect_pending(p.id)
        ledger.update_member(member.id, membership_fee=2000)
        ledger.delete_fee_year(2023)
        assert_totals_consistent(ledger)
        assert unpaid_member.total_paid == 850


class TestIdAllocation:
    """Ids are never reissued after a delete"""

    def test_transaction_id_not_reused_after_fee_year_delete(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        ledger.adjust_fee(member.id, 2025, 450)
        ledger.add_fee_year(2026, 500)
        dropped = ledger.collect_fee(member.id, 2026, 500)
        ledger.delete_fee_year(2026)

        tx = ledger.collect_fee(member.id, 2025, 500)
        assert tx.id > dropped.id
        assert len({t.id for t in ledger.transactions}) == len(ledger.transactions)

    def test_invoice_number_not_reused_after_delete(self, ledger, member):
        first = ledger.generate_invoice(member.id)
        ledger.delete_invoice(first.id)
        second = ledger.generate_invoice(member.id)
        assert second.id != first.id
        assert second.invoice_number == "INV-00002"

    def test_expense_id_not_reused_after_delete(self, ledger):
        e = ledger.add_expense("2025-01-10", "New net", "Equipment", 1200, "Varun")
        ledger.delete_expense(e.id)
        assert ledger.add_expense("2025-01-11", "Balls", "Equipment", 300, "Varun").id == e.id + 1

    def test_counters_survive_snapshot(self, ledger, member):
        tx = ledger.collect_fee(member.id, 2025, 500)
        ledger.purge_transactions("2025")
        restored = ClubLedger.from_snapshot(ledger.snapshot())
        assert restored.collect_fee(member.id, 2025, 500).id == tx.id + 1

    def test_snapshot_without_counters_falls_back_to_records(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        data = ledger.snapshot()
        del data["nextIds"]
        restored = ClubLedger.from_snapshot(data)
        assert restored.collect_fee(member.id, 2024, 500).id == 2


class TestOtherRecords:
    """Expenses, contributions, invoices, events, activity log"""

    def test_expense_crud(self, ledger):
        e = ledger.add_expense("2025-01-10", "New net", "Equipment", 1200, "Varun", "Pending")
        ledger.update_expense(e.id, status="Paid")
        assert e.status == "Paid"
        with pytest.raises(ValidationError):
            ledger.update_expense(e.id, category="Snacks")
        ledger.delete_expense(e.id)
        assert ledger.expenses == []

    def test_contribution_validation(self, ledger):
        with pytest.raises(ValidationError):
            ledger.add_contribution("2025-01-10", "Ajith", "27", "Gift", "Balls", 500)
        c = ledger.add_contribution("2025-01-10", "Ajith", "27", "Member", "Balls", 500)
        ledger.update_contribution(c.id, amount=600)
        assert c.amount == 600

    def test_generate_invoice(self, ledger, member):
        ledger.update_fee_year(2025, amount=600)
        inv = ledger.generate_invoice(member.id, "2025-04-01")
        assert inv.items == [{"description": "Annual Fee 2025", "amount": 600}]
        assert inv.total == 600
        assert inv.invoice_number == "INV-00001"

    def test_invoice_with_nothing_due(self, ledger, member):
        ledger.collect_fee(member.id, 2025, 500)
        with pytest.raises(ValidationError):
            ledger.generate_invoice(member.id)
        assert ledger.invoices == []

    def test_upcoming_events(self, ledger):
        now = datetime(2025, 1, 20, 12, 0)
        soon = ledger.add_event("Club Meeting", "2025-01-25", "18:00", "meeting", "medium")
        ledger.add_event("Tournament", "2025-02-15", "09:00", "tournament", "high")
        past = ledger.add_event("Maintenance", "2025-01-19", "10:00", "maintenance", "low")
        assert ledger.upcoming_events(7, now=now) == [soon]
        ledger.update_event(soon.id, is_active=False)
        assert ledger.upcoming_events(7, now=now) == []
        assert past not in ledger.upcoming_events(30, now=now)

    def test_event_time_validation(self, ledger):
        with pytest.raises(ValidationError):
            ledger.add_event("Meeting", "2025-01-25", "6pm", "meeting", "medium")

    def test_activity_log(self, ledger, member):
        recent = ledger.recent_activities(2)
        assert [a.type for a in recent] == ["Fee Updated", "Fee Updated"]
        assert recent[0].id > recent[1].id

    def test_find_expenses(self, ledger):
        ledger.add_expense("2025-01-10", "New net", "Equipment", 1200, "Varun", "Pending")
        ledger.add_expense("2025-01-12", "Light repair", "Maintenance", 400, "Binu", "Paid")
        ledger.add_expense("2025-01-15", "Paddles", "Equipment", 900, "Binu", "Paid")
        assert [e.description for e in ledger.find_expenses("binu")] == ["Light repair", "Paddles"]
        assert [e.description for e in ledger.find_expenses("NET")] == ["New net"]
        assert [e.description for e in ledger.find_expenses(category="Equipment", status="Paid")] == ["Paddles"]
        assert len(ledger.find_expenses()) == 3

    def test_find_contributions(self, ledger):
        ledger.add_contribution("2025-01-10", "Ajith", "27", "Member", "Balls", 500)
        ledger.add_contribution("2025-01-11", "Sports Shop", "Town", "Sponsorship", "Jerseys", 2500)
        assert [c.contributor_name for c in ledger.find_contributions("town")] == ["Sports Shop"]
        assert [c.contributor_name for c in ledger.find_contributions("balls")] == ["Ajith"]
        assert ledger.find_contributions("ajith", con_type="Sponsorship") == []

    def test_find_invoices(self, ledger, member, unpaid_member):
        a = ledger.generate_invoice(member.id)
        b = ledger.generate_invoice(unpaid_member.id)
        ledger.set_invoice_status(b.id, "Paid")
        assert ledger.find_invoices("alex") == [b]
        assert ledger.find_invoices("INV-00001") == [a]
        assert ledger.find_invoices(status="Generated") == [a]
        assert ledger.find_invoices(member_id=unpaid_member.id) == [b]

    def test_invoice_status_validation(self, ledger, member):
        inv = ledger.generate_invoice(member.id)
        with pytest.raises(ValidationError):
            ledger.set_invoice_status(inv.id, "Lost")
        assert inv.status == "Generated"

    def test_upcoming_events_skip_unparsable(self, ledger):
        now = datetime(2025, 1, 20, 12, 0)
        ledger.add_event("Club Meeting", "2025-01-25", "18:00", "meeting", "medium")
        data = ledger.snapshot()
        broken = dict(data["events"][0], id=2, title="Imported", time="")
        data["events"].append(broken)
        lg = ClubLedger.from_snapshot(data)
        assert [e.title for e in lg.upcoming_events(7, now=now)] == ["Club Meeting"]


class TestSaveFailure:
    """on_change errors surface as PersistenceError"""

    def test_save_error_is_wrapped(self, ledger, member):
        def broken_save(snapshot):
            raise OSError("disk full")

        ledger.on_change = broken_save
        with pytest.raises(PersistenceError) as exc:
            ledger.collect_fee(member.id, 2025, 500)
        assert exc.value.activity_type == "Fee Collected"
        assert isinstance(exc.value.cause, OSError)
        # still an engine error, so the UI handles it with the others
        assert isinstance(exc.value, LedgerError)
