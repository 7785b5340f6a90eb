"""
app.py
Streamlit Club Fee Ledger (members, annual fees, pending fees, expenses, contributions).
Run: streamlit run app.py
"""

from __future__ import annotations

import os
import sqlite3
import sys
from datetime import date, time, timedelta

import pandas as pd
import streamlit as st
from loguru import logger

import db
import reports
import utils
from errors import LedgerError, PersistenceError
from ledger import ClubLedger
from models import (
    CONTRIBUTION_TYPES,
    EVENT_PRIORITIES,
    EVENT_TYPES,
    EXPENSE_CATEGORIES,
    EXPENSE_STATUSES,
    INVOICE_STATUSES,
    MEMBER_STATUSES,
)

LOG_DIR = os.environ.get("CLUB_LEDGER_LOG_DIR", "logs")

st.set_page_config(page_title="Club Fee Ledger", layout="wide")


def setup_logging():
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level="INFO",
    )
    logger.add(f"{LOG_DIR}/club_ledger_{{time:YYYY-MM-DD}}.log", rotation="1 day", retention="30 days", level="DEBUG")


def init_once():
    # Build the engine once per session from the last saved snapshot
    if "ledger" in st.session_state:
        return
    setup_logging()
    db.init_db()
    saved = db.load_state()
    if saved:
        ledger = ClubLedger.from_snapshot(saved, on_change=db.save_state)
    else:
        ledger = ClubLedger(on_change=db.save_state)
    st.session_state.ledger = ledger


def get_ledger() -> ClubLedger:
    return st.session_state.ledger


def run_action(fn, *args, success: str | None = None, **kwargs):
    """Call an engine operation; show engine errors instead of crashing the page."""
    try:
        result = fn(*args, **kwargs)
    except PersistenceError as e:
        st.error(f"{e.activity_type} is shown on screen but was NOT saved to the database: {e.cause}")
        return None
    except sqlite3.Error as e:
        logger.exception(f"Database error in {getattr(fn, '__name__', fn)}")
        st.error(f"Database error, the change was not saved: {e}")
        return None
    except LedgerError as e:
        st.error(str(e))
        return None
    if success:
        st.success(success)
    return result


def money(value) -> str:
    return f"₹{value:,.0f}"


def member_options(ledger: ClubLedger) -> dict[str, int]:
    return {f"{m.name} (Villa {m.villa_no}) - ID {m.id}": m.id for m in ledger.members}


def members_frame(ledger: ClubLedger, members) -> pd.DataFrame:
    rows = []
    for m in members:
        row = {"id": m.id, "name": m.name, "villa_no": m.villa_no, "status": m.status,
               "membership_fee": m.membership_fee}
        for fy in ledger.fee_years:
            row[f"Annual Fee {fy.year}"] = m.fees.get(fy.year, 0)
        row["total_paid"] = m.total_paid
        row["unpaid"] = "yes" if ledger.has_unpaid_fee(m) else ""
        rows.append(row)
    return pd.DataFrame(rows)


def records_frame(records) -> pd.DataFrame:
    return pd.DataFrame([r.to_dict() for r in records])


# ---------- Pages ----------

def dashboard_page(ledger: ClubLedger):
    st.header("📊 Dashboard")

    d = reports.dashboard(ledger)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total members", d["total_members"])
    c2.metric("Active members", d["active_members"])
    c3.metric("Total collected", money(d["total_collected"]))
    c4.metric("Unpaid fee years", d["implicit_pending"])

    st.divider()
    st.subheader("Recent activity")
    recent = ledger.recent_activities()
    if recent:
        st.dataframe(records_frame(recent), use_container_width=True, hide_index=True)
    else:
        st.caption("No recent activities.")

    st.subheader("Upcoming events (next 7 days)")
    upcoming = ledger.upcoming_events()
    if upcoming:
        st.dataframe(records_frame(upcoming), use_container_width=True, hide_index=True)
    else:
        st.caption("No events in the next 7 days.")


def member_form(ledger: ClubLedger, existing=None):
    st.subheader(f"✏️ Edit Member (ID: {existing.id})" if existing else "➕ Add Member")

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", value=existing.name if existing else "")
        villa_no = st.text_input("Villa no", value=existing.villa_no if existing else "")
        status = st.selectbox(
            "Status",
            options=MEMBER_STATUSES,
            index=MEMBER_STATUSES.index(existing.status) if existing and existing.status in MEMBER_STATUSES else 2,
        )
    with col2:
        fee = st.number_input(
            "Membership fee", min_value=0, step=100,
            value=int(existing.membership_fee if existing else ledger.settings.default_membership_fee),
        )
        join_date = st.date_input(
            "Join date", value=utils.parse_iso(existing.join_date) if existing else date.today()
        ).isoformat()
        is_active = st.checkbox("Active", value=existing.is_active if existing else True)

    if st.button("Save", type="primary"):
        if existing:
            done = run_action(
                ledger.update_member, existing.id, name=name, villa_no=villa_no, status=status,
                membership_fee=fee, join_date=join_date, is_active=is_active,
            )
        else:
            done = run_action(
                ledger.add_member, name, villa_no, status=status, membership_fee=fee,
                join_date=join_date, is_active=is_active,
            )
        if done:
            st.session_state.edit_member_id = None
            st.rerun()


def members_page(ledger: ClubLedger):
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/villa)")
        status_filter = st.selectbox("Status", ["All"] + MEMBER_STATUSES)

    members = ledger.find_members(search, "" if status_filter == "All" else status_filter)
    st.dataframe(members_frame(ledger, members), use_container_width=True, hide_index=True)
    st.caption(f"{len(members)} of {len(ledger.members)} shown")

    st.divider()

    options = member_options(ledger)
    selected = st.selectbox("Select member", ["(none)"] + list(options))
    if selected != "(none)":
        member_id = options[selected]
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Edit"):
                st.session_state.edit_member_id = member_id
                st.rerun()
        with c2:
            delete_confirm = st.checkbox("Confirm delete", value=False, key="del_member")
            if st.button("Delete", disabled=not delete_confirm):
                if run_action(ledger.delete_member, member_id, success="Member deleted."):
                    st.rerun()
        txs = ledger.member_transactions(member_id)
        if txs:
            st.dataframe(records_frame(txs), use_container_width=True, hide_index=True)

    st.divider()

    edit_id = st.session_state.get("edit_member_id")
    if edit_id:
        try:
            member_form(ledger, existing=ledger.get_member(edit_id))
        except LedgerError:
            st.session_state.edit_member_id = None
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(ledger)


def fees_page(ledger: ClubLedger):
    st.header("💳 Fees")

    summary = reports.fee_year_summary(ledger)
    if summary:
        st.dataframe(pd.DataFrame(summary), use_container_width=True, hide_index=True)

    options = member_options(ledger)
    if not options:
        st.info("No members yet. Add a member first.")
        return

    tab_collect, tab_adjust, tab_pending = st.tabs(["Collect fee", "Adjust fee", "Pending fees"])

    with tab_collect:
        active = ledger.active_fee_years()
        if not active:
            st.info("No active fee years.")
        else:
            label = st.selectbox("Member", list(options), key="collect_member")
            fy = st.selectbox("Fee type", active, format_func=lambda f: f"{f.description} ({money(f.amount)})")
            amount = st.number_input("Amount", min_value=0, step=50, value=int(fy.amount), key="collect_amount")
            pay_date = st.date_input("Payment date", value=date.today()).isoformat()
            if st.button("Collect", type="primary"):
                if run_action(ledger.collect_fee, options[label], fy.year, amount, pay_date, success="Fee collected."):
                    st.rerun()

    with tab_adjust:
        if not ledger.fee_years:
            st.info("No fee years configured.")
        else:
            label = st.selectbox("Member", list(options), key="adjust_member")
            member = ledger.get_member(options[label])
            fy = st.selectbox("Fee year", ledger.fee_years, format_func=lambda f: str(f.year), key="adjust_year")
            st.write(f"Current amount: **{money(member.fees.get(fy.year, 0))}**")
            new_amount = st.number_input("New amount", min_value=0, step=50, value=int(member.fees.get(fy.year, 0)))
            reason = st.text_input("Reason")
            notes = st.text_input("Notes", key="adjust_notes")
            if st.button("Save adjustment", type="primary"):
                if run_action(ledger.adjust_fee, member.id, fy.year, new_amount, reason, notes, success="Fee adjusted."):
                    st.rerun()

    with tab_pending:
        label = st.selectbox("Member", list(options), key="pending_member")
        fee_type = st.selectbox("Fee type", ledger.pending_fee_type_options())
        amount = st.number_input("Amount", min_value=0, step=50, value=int(ledger.settings.default_annual_fee), key="pending_amount")
        due = st.date_input("Due date", value=date.today() + timedelta(days=30)).isoformat()
        notes = st.text_input("Notes", key="pending_notes")
        if st.button("Add pending fee"):
            if run_action(ledger.add_pending, options[label], fee_type, amount, due, notes, success="Pending fee added."):
                st.rerun()

        st.divider()
        if not ledger.pending_fees:
            st.caption("No pending fees.")
        for p in list(ledger.pending_fees):
            c1, c2, c3 = st.columns([3, 1, 1])
            c1.write(f"**{p.member_name}** · {p.fee_type} · {money(p.amount)} · due {p.due_date}" + (f" · {p.notes}" if p.notes else ""))
            if c2.button("Collect", key=f"collect_pending_{p.id}"):
                if run_action(ledger.collect_pending, p.id, success=f"Collected {p.fee_type} from {p.member_name}."):
                    st.rerun()
            if c3.button("Remove", key=f"remove_pending_{p.id}"):
                if run_action(ledger.remove_pending, p.id, success="Pending fee removed."):
                    st.rerun()


def fee_years_page(ledger: ClubLedger):
    st.header("📅 Fee Years")

    if ledger.fee_years:
        st.dataframe(records_frame(ledger.fee_years), use_container_width=True, hide_index=True)
    else:
        st.caption("No fee years configured.")

    st.subheader("Add fee year")
    c1, c2, c3 = st.columns(3)
    year = c1.number_input("Year", min_value=2000, max_value=2100, step=1, value=date.today().year + 1)
    amount = c2.number_input("Amount", min_value=0, step=50, value=int(ledger.settings.default_annual_fee))
    description = c3.text_input("Description (optional)")
    if st.button("Add fee year", type="primary"):
        if run_action(ledger.add_fee_year, int(year), amount, description or None, success=f"Fee year {year} added."):
            st.rerun()

    if not ledger.fee_years:
        return

    st.divider()
    fy = st.selectbox("Manage fee year", ledger.fee_years, format_func=lambda f: f"{f.year} - {f.description}")
    c1, c2 = st.columns(2)
    with c1:
        new_amount = st.number_input("New amount", min_value=0, step=50, value=int(fy.amount), key=f"fy_amount_{fy.year}")
        new_desc = st.text_input("New description", value=fy.description, key=f"fy_desc_{fy.year}")
        if st.button("Update"):
            if run_action(ledger.update_fee_year, fy.year, new_amount, new_desc, success="Fee year updated."):
                st.rerun()
        if st.button("Deactivate" if fy.is_active else "Activate"):
            run_action(ledger.toggle_fee_year, fy.year)
            st.rerun()
    with c2:
        if ledger.fee_year_has_payments(fy.year):
            st.warning(f"Some members have already paid fees for {fy.year}. Deleting removes those amounts and their collection records.")
        confirm = st.checkbox("Confirm delete", key=f"fy_del_{fy.year}")
        if st.button("Delete fee year", disabled=not confirm):
            run_action(ledger.delete_fee_year, fy.year, success=f"Fee year {fy.year} deleted.")
            st.rerun()


def expenses_page(ledger: ClubLedger):
    st.header("🧾 Expenses")

    s = reports.expense_summary(ledger)
    c1, c2, c3 = st.columns(3)
    c1.metric("Total expenses", money(s["total"]))
    c2.metric("This month", money(s["this_month"]))
    c3.metric("Pending reimbursements", money(s["pending_reimbursements"]))

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (description/paid by)", key="exp_search")
        category_filter = st.selectbox("Category", ["All"] + EXPENSE_CATEGORIES, key="exp_cat_filter")
        status_filter = st.selectbox("Status", ["All"] + EXPENSE_STATUSES, key="exp_status_filter")

    expenses = ledger.find_expenses(
        search,
        "" if category_filter == "All" else category_filter,
        "" if status_filter == "All" else status_filter,
    )
    if expenses:
        st.dataframe(records_frame(expenses), use_container_width=True, hide_index=True)
    st.caption(f"{len(expenses)} of {len(ledger.expenses)} shown")

    st.subheader("Add expense")
    c1, c2, c3 = st.columns(3)
    exp_date = c1.date_input("Date", value=date.today(), key="exp_date").isoformat()
    description = c1.text_input("Description", key="exp_desc")
    category = c2.selectbox("Category", EXPENSE_CATEGORIES)
    amount = c2.number_input("Amount", min_value=0.0, step=100.0, key="exp_amount")
    paid_by = c3.text_input("Paid by")
    status = c3.selectbox("Status", EXPENSE_STATUSES)
    receipt = st.text_input("Receipt reference (optional)", key="exp_receipt")
    if st.button("Add expense", type="primary"):
        if run_action(ledger.add_expense, exp_date, description, category, amount, paid_by, status, receipt,
                      success="Expense added."):
            st.rerun()

    if ledger.expenses:
        st.divider()
        options = {f"{e.date} {e.description} ({money(e.amount)}) - ID {e.id}": e.id for e in ledger.expenses}
        label = st.selectbox("Delete expense", list(options))
        if st.button("Delete", disabled=not st.checkbox("Confirm delete", key="exp_del")):
            run_action(ledger.delete_expense, options[label], success="Expense deleted.")
            st.rerun()


def contributions_page(ledger: ClubLedger):
    st.header("🤝 Contributions")

    s = reports.contribution_summary(ledger)
    c1, c2, c3 = st.columns(3)
    c1.metric("Total contributions", money(s["total"]))
    c2.metric("Member", money(s["member"]))
    c3.metric("External", money(s["external"]))

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (contributor/villa/purpose)", key="con_search")
        type_filter = st.selectbox("Type", ["All"] + CONTRIBUTION_TYPES, key="con_type_filter")

    contributions = ledger.find_contributions(search, "" if type_filter == "All" else type_filter)
    if contributions:
        st.dataframe(records_frame(contributions), use_container_width=True, hide_index=True)
    st.caption(f"{len(contributions)} of {len(ledger.contributions)} shown")

    st.subheader("Add contribution")
    c1, c2, c3 = st.columns(3)
    con_date = c1.date_input("Date", value=date.today(), key="con_date").isoformat()
    name = c1.text_input("Contributor name")
    villa = c2.text_input("Villa / location")
    con_type = c2.selectbox("Type", CONTRIBUTION_TYPES)
    purpose = c3.text_input("Purpose")
    amount = c3.number_input("Amount", min_value=0.0, step=100.0, key="con_amount")
    if st.button("Add contribution", type="primary"):
        if run_action(ledger.add_contribution, con_date, name, villa, con_type, purpose, amount,
                      success="Contribution added."):
            st.rerun()

    if ledger.contributions:
        st.divider()
        options = {f"{c.date} {c.contributor_name} ({money(c.amount)}) - ID {c.id}": c.id for c in ledger.contributions}
        label = st.selectbox("Delete contribution", list(options))
        if st.button("Delete", disabled=not st.checkbox("Confirm delete", key="con_del")):
            run_action(ledger.delete_contribution, options[label], success="Contribution deleted.")
            st.rerun()


def invoices_page(ledger: ClubLedger):
    st.header("🧮 Invoices")

    options = member_options(ledger)
    if options:
        label = st.selectbox("Member", list(options), key="invoice_member")
        if st.button("Generate invoice", type="primary"):
            inv = run_action(ledger.generate_invoice, options[label])
            if inv:
                st.success(f"Generated {inv.invoice_number} for {money(inv.total)}.")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (number/member/villa)", key="inv_search")
        status_filter = st.selectbox("Status", ["All"] + INVOICE_STATUSES, key="inv_status_filter")
        member_filter = st.selectbox("Member", ["All"] + list(options), key="inv_member_filter")

    invoices = ledger.find_invoices(
        search,
        "" if status_filter == "All" else status_filter,
        None if member_filter == "All" else options[member_filter],
    )
    st.caption(f"{len(invoices)} of {len(ledger.invoices)} shown")
    for inv in reversed(invoices):
        with st.expander(f"{inv.invoice_number} · {inv.member_name} (Villa {inv.member_villa}) · {money(inv.total)}"):
            st.caption(f"Date: {inv.date}")
            st.table(pd.DataFrame(inv.items))
            new_status = st.selectbox(
                "Status", INVOICE_STATUSES, key=f"inv_status_{inv.id}",
                index=INVOICE_STATUSES.index(inv.status) if inv.status in INVOICE_STATUSES else 0,
            )
            if new_status != inv.status and st.button("Update status", key=f"upd_inv_{inv.id}"):
                run_action(ledger.set_invoice_status, inv.id, new_status, success="Invoice updated.")
                st.rerun()
            if st.button("Delete", key=f"del_inv_{inv.id}"):
                run_action(ledger.delete_invoice, inv.id)
                st.rerun()


def events_page(ledger: ClubLedger):
    st.header("📣 Events")

    if ledger.events:
        st.dataframe(records_frame(ledger.events), use_container_width=True, hide_index=True)

    st.subheader("Add event")
    c1, c2 = st.columns(2)
    title = c1.text_input("Title")
    description = c1.text_area("Description")
    ev_date = c2.date_input("Date", value=date.today(), key="ev_date").isoformat()
    ev_time = c2.time_input("Time", value=time(18, 0)).strftime("%H:%M")
    ev_type = c2.selectbox("Type", EVENT_TYPES)
    priority = c2.selectbox("Priority", EVENT_PRIORITIES, index=1)
    if st.button("Add event", type="primary"):
        if run_action(ledger.add_event, title, ev_date, ev_time, ev_type, priority,
                      description=description, created_by="admin", success="Event created."):
            st.rerun()

    if ledger.events:
        options = {f"{e.date} {e.title} - ID {e.id}": e.id for e in ledger.events}
        label = st.selectbox("Delete event", list(options))
        if st.button("Delete", disabled=not st.checkbox("Confirm delete", key="ev_del")):
            run_action(ledger.delete_event, options[label], success="Event deleted.")
            st.rerun()


def reports_page(ledger: ClubLedger):
    st.header("📈 Reports")

    fin = reports.financial_summary(ledger)
    rows = [("Total membership fees", fin["membership_fees"])]
    rows += [(f"Annual fees {year}", total) for year, total in fin["annual_fees"].items()]
    rows += [
        ("Total contributions", fin["contributions"]),
        ("Total income", fin["total_income"]),
        ("Total expenses", fin["expenses"]),
        ("Net balance", fin["net_balance"]),
        ("Unpaid fee years (at configured rates)", fin["implicit_pending"]),
        ("Tracked pending fees", fin["tracked_pending"]),
    ]
    st.subheader("Financial summary")
    st.table(pd.DataFrame(rows, columns=["Item", "Amount"]))

    st.subheader("Member statistics")
    st.table(pd.DataFrame([reports.member_statistics(ledger)]))

    c1, c2 = st.columns(2)
    with c1:
        st.subheader("Expenses by category")
        st.table(pd.DataFrame.from_dict(reports.expense_category_totals(ledger), orient="index"))
    with c2:
        st.subheader("Contributions by type")
        st.table(pd.DataFrame.from_dict(reports.contribution_type_totals(ledger), orient="index"))

    exp = reports.expense_report(ledger)
    con = reports.contribution_report(ledger)
    c1, c2, c3 = st.columns(3)
    c1.metric("Total expenses", money(exp["total"]))
    c2.metric("Average monthly expense", money(exp["monthly_average"]))
    c3.metric("Top expense category", exp["top_category"])
    c1, c2, c3 = st.columns(3)
    c1.metric("Total contributions", money(con["total"]))
    c2.metric("Average contribution", money(con["average"]))
    c3.metric("Top contributor", con["top_contributor"])

    st.subheader("Revenue by month")
    st.dataframe(reports.revenue_by_month(ledger), use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("Exports")
    today = utils.today_iso()
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.download_button("Members CSV", utils.members_to_csv_bytes(ledger.members, ledger.fee_years),
                       file_name="club_members.csv", mime="text/csv")
    c2.download_button("Financial CSV", utils.transactions_to_csv_bytes(ledger.transactions, ledger.members),
                       file_name="club_financial.csv", mime="text/csv")
    c3.download_button("Fee report CSV", utils.fee_report_to_csv_bytes(ledger.members, ledger.fee_years),
                       file_name=f"fee_report_{today}.csv", mime="text/csv")
    c4.download_button("Expenses CSV", utils.expenses_to_csv_bytes(ledger.expenses),
                       file_name=f"expense_report_{today}.csv", mime="text/csv")
    c5.download_button("Contributions CSV", utils.contributions_to_csv_bytes(ledger.contributions),
                       file_name=f"contribution_report_{today}.csv", mime="text/csv")


def settings_page(ledger: ClubLedger):
    st.header("⚙️ Settings")

    s = ledger.settings
    club_name = st.text_input("Club name", value=s.club_name)
    c1, c2 = st.columns(2)
    membership = c1.number_input("Default membership fee", min_value=0, step=100, value=int(s.default_membership_fee))
    annual = c2.number_input("Default annual fee", min_value=0, step=50, value=int(s.default_annual_fee))
    if st.button("Save settings", type="primary"):
        run_action(ledger.update_settings, club_name=club_name, default_membership_fee=membership,
                   default_annual_fee=annual, success="Settings saved.")

    st.divider()
    st.subheader("Backup")
    st.caption(f"Last saved: {db.last_saved_at() or 'never'}")
    st.download_button(
        "Download database JSON",
        data=utils.export_json(ledger),
        file_name=f"club_database_{date.today().isoformat()}.json",
        mime="application/json",
    )

    uploaded = st.file_uploader("Import database JSON (replaces all data)", type=["json"])
    if uploaded is not None and st.button("Import", disabled=not st.checkbox("I understand this replaces all data")):
        data = run_action(utils.import_json, uploaded.getvalue())
        if data is not None and run_action(ledger.import_snapshot, data, uploaded.name, success="Database imported."):
            st.rerun()

    st.divider()
    st.subheader("Sample data")
    st.caption("Registers 2023-2025 fee years and adds 4 sample members (adds new rows each run).")
    if st.button("Insert sample data"):
        run_action(utils.insert_sample_data, ledger, success="Sample data inserted.")
        st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Members": members_page,
    "Fees": fees_page,
    "Fee Years": fee_years_page,
    "Expenses": expenses_page,
    "Contributions": contributions_page,
    "Invoices": invoices_page,
    "Events": events_page,
    "Reports": reports_page,
    "Settings": settings_page,
}


def run():
    init_once()
    ledger = get_ledger()

    st.sidebar.title(f"🏓 {ledger.settings.club_name}")
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    names = list(PAGES)
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))

    PAGES[st.session_state.page](ledger)


if __name__ == "__main__":
    run()
