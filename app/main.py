"""
Streamlit Frontend for the Family Fund Ledger

This is the screen the family uses day to day: Mummy and Vaibhav record
what they spend, Papa records what he tops up, and everyone can see how
much is still owed.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation for anything destructive
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

Every form goes through the input validator first; the fund service
enforces the ledger rules again on submit.
"""

import asyncio
from datetime import date, timedelta

import streamlit as st

from family_fund.audit import configure_logging, create_correlation_id
from family_fund.config import get_settings, validate_all_settings
from family_fund.ledger import FundError
from family_fund.models.fund import TransactionType
from family_fund.orchestrator import (
    FundService,
    OperationOutcome,
    RemoteStatus,
    create_fund_service,
)
from family_fund.queries import LedgerQuery, SortOrder, transactions_to_csv
from family_fund.services.storage import RemoteUnavailableError, StorageError
from family_fund.validation import FundInputValidator


# Page configuration
st.set_page_config(
    page_title="Family Fund",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

TYPE_LABELS = {
    TransactionType.SPEND: "💸 Spend",
    TransactionType.DEPOSIT: "🏦 Deposit",
    TransactionType.PAPA_TOPUP: "🤝 Papa Top-up",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_service() -> FundService:
    """Get or create the fund service (cached)."""
    configure_logging(get_settings().app.log_level)
    service = create_fund_service()
    run_async(service.initialize())
    return service


def rupees(amount) -> str:
    return f"₹{amount:,.2f}"


def show_outcome(outcome: OperationOutcome, message: str) -> None:
    """Report a finished operation, including whether Sheets got it."""
    if outcome.remote_status is RemoteStatus.FAILED:
        st.warning(
            f"{message} Saved on this device, but Google Sheets could not be "
            f"updated: {outcome.remote_error}. It will catch up from this device."
        )
    else:
        st.success(message)


def run_operation(coro, message: str) -> bool:
    """Run a service call and show the result. Returns True on success."""
    try:
        outcome = run_async(coro)
    except FundError as e:
        st.error(f"Not saved: {e}")
        return False
    except RemoteUnavailableError as e:
        st.error(f"Google Sheets is not responding, nothing was changed. ({e})")
        return False
    except StorageError as e:
        st.error(f"Could not save the fund data on this device: {e}")
        return False
    show_outcome(outcome, message)
    return True


def main():
    """Main application entry point."""
    service = get_service()

    # Sidebar navigation
    st.sidebar.title("💰 Family Fund")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🏠 Dashboard", "➕ Record Transaction", "📒 Ledger", "📜 History", "⚙️ Manage Fund"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How it works:**
        1. Record every spend from an account
        2. Papa's top-ups pay the spending back
        3. The shortfall is what is still owed
        """
    )
    if not service.remote_enabled:
        st.sidebar.caption("Running on this device only (Google Sheets off)")

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard_page(service)
    elif page == "➕ Record Transaction":
        render_transaction_page(service)
    elif page == "📒 Ledger":
        render_ledger_page(service)
    elif page == "📜 History":
        render_history_page(service)
    elif page == "⚙️ Manage Fund":
        render_manage_page(service)


def render_dashboard_page(service: FundService):
    """Render the per-account and family totals."""
    st.title("🏠 Dashboard")

    summary = service.summary()

    col1, col2, col3 = st.columns(3)
    col1.metric("Family Target", rupees(summary.total_target))
    col2.metric("Family Actual", rupees(summary.total_actual))
    col3.metric("Family Shortfall", rupees(summary.family_shortfall))

    st.markdown("---")

    columns = st.columns(max(len(summary.accounts), 1))
    for column, account in zip(columns, summary.accounts):
        with column:
            st.subheader(account.name.value)
            st.metric("Target Balance", rupees(account.target_balance))
            st.metric(
                "Actual Balance",
                rupees(account.actual_balance),
                delta=rupees(-account.target_gap) if account.target_gap else None,
            )
            if account.is_fully_covered:
                st.markdown(f"""
                <div class="success-box">
                    <h4>✅ Fully reimbursed</h4>
                    <p>Surplus: {rupees(-account.shortfall)}</p>
                </div>
                """, unsafe_allow_html=True)
            else:
                st.markdown(f"""
                <div class="warning-box">
                    <h4>⚠️ Still owed</h4>
                    <p class="big-number">{rupees(account.shortfall)}</p>
                </div>
                """, unsafe_allow_html=True)

    recent = service.query_transactions(LedgerQuery(limit=5)).transactions
    if recent:
        st.markdown("### Recent Transactions")
        st.dataframe(
            [
                {
                    "When": tx.created_at.strftime("%d %b %Y %H:%M"),
                    "Account": tx.account_name.value,
                    "Type": TYPE_LABELS[tx.type],
                    "Amount": rupees(tx.amount),
                    "Description": tx.description,
                }
                for tx in recent
            ],
            use_container_width=True,
            hide_index=True,
        )


def render_transaction_page(service: FundService):
    """Render the record-transaction form."""
    st.title("➕ Record Transaction")

    accounts = service.accounts()
    if not accounts:
        st.error("No accounts found. Use 'Manage Fund' to reset the fund.")
        return

    with st.form("transaction_form", clear_on_submit=True):
        account = st.selectbox(
            "Account *",
            options=accounts,
            format_func=lambda a: f"{a.name.value} (available {rupees(a.actual_balance)})",
        )
        tx_type = st.radio(
            "Type *",
            options=list(TransactionType),
            format_func=lambda t: TYPE_LABELS[t],
            horizontal=True,
        )
        amount = st.text_input("Amount (₹) *", placeholder="e.g., 4000")
        description = st.text_input("Description *", placeholder="e.g., Groceries")
        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return

    validator = FundInputValidator(service.state)
    result = validator.validate_transaction(account.id, tx_type, amount, description)
    if not result.is_valid:
        st.error(validator.get_user_friendly_summary(result))
        return
    if result.warnings:
        st.warning(validator.get_user_friendly_summary(result))

    run_operation(
        service.apply_transaction(
            account_id=result.values["account_id"],
            tx_type=result.values["tx_type"],
            amount=result.values["amount"],
            description=result.values["description"],
            correlation_id=create_correlation_id(),
        ),
        f"{TYPE_LABELS[tx_type]} of {rupees(result.values['amount'])} recorded for "
        f"{account.name.value}.",
    )


def render_ledger_page(service: FundService):
    """Render the filterable ledger with delete and export."""
    st.title("📒 Ledger")

    accounts = service.accounts()

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        search = st.text_input("Search", placeholder="description or name")
    with col2:
        account_filter = st.selectbox(
            "Account",
            options=[None] + accounts,
            format_func=lambda a: "All Accounts" if a is None else a.name.value,
        )
    with col3:
        type_filter = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda t: "All Types" if t is None else TYPE_LABELS[t],
        )
    with col4:
        sort_order = st.selectbox(
            "Order",
            options=list(SortOrder),
            format_func=lambda s: "Newest first" if s is SortOrder.NEWEST_FIRST else "Oldest first",
        )

    date_range = st.date_input("Date Range", value=[], help="Optional")
    date_from = date_range[0] if len(date_range) > 0 else None
    date_to = date_range[1] if len(date_range) > 1 else date_from

    result = service.query_transactions(LedgerQuery(
        search=search or None,
        account_id=account_filter.id if account_filter else None,
        tx_type=type_filter,
        date_from=date_from,
        date_to=date_to,
        sort_order=sort_order,
    ))

    st.caption(result.query_description)
    col1, col2, col3 = st.columns(3)
    col1.metric("Spent", rupees(result.total_spent))
    col2.metric("Deposited", rupees(result.total_deposited))
    col3.metric("Papa Top-ups", rupees(result.total_topped_up))

    if not result.data_found:
        st.info("📋 No transactions match these filters.")
    else:
        st.download_button(
            "⬇️ Download CSV",
            data=transactions_to_csv(result.transactions),
            file_name=f"family_fund_{date.today().isoformat()}.csv",
            mime="text/csv",
        )
        for tx in result.transactions:
            row = st.columns([2, 2, 2, 2, 4, 1])
            row[0].write(tx.created_at.strftime("%d %b %Y %H:%M"))
            row[1].write(tx.account_name.value)
            row[2].write(TYPE_LABELS[tx.type])
            row[3].write(rupees(tx.amount))
            row[4].write(tx.description)
            if row[5].button("🗑️", key=f"delete_{tx.id}", help="Delete and reverse"):
                if run_operation(
                    service.delete_transaction(tx.id, correlation_id=create_correlation_id()),
                    f"Deleted; {rupees(tx.amount)} reversed on {tx.account_name.value}.",
                ):
                    st.rerun()

    st.markdown("---")
    with st.expander("🧹 Delete all transactions in a date range"):
        today = date.today()
        start = st.date_input("From", value=today - timedelta(days=30), key="bulk_from")
        end = st.date_input("To", value=today, key="bulk_to")

        validator = FundInputValidator(service.state)
        check = validator.validate_bulk_delete(start, end)
        if not check.is_valid:
            st.error(validator.get_user_friendly_summary(check))
            return
        if check.warnings:
            st.warning(validator.get_user_friendly_summary(check))

        confirmed = st.checkbox("I understand these transactions will be deleted", key="bulk_ok")
        if st.button("Delete range", disabled=not confirmed or not check.values.get("matching_transactions")):
            if run_operation(
                service.bulk_delete_transactions(start, end, correlation_id=create_correlation_id()),
                f"Deleted {check.values['matching_transactions']} transaction(s).",
            ):
                st.rerun()


def render_history_page(service: FundService):
    """Render target and adjustment history."""
    st.title("📜 History")

    accounts = service.accounts()
    account_filter = st.selectbox(
        "Account",
        options=[None] + accounts,
        format_func=lambda a: "All Accounts" if a is None else a.name.value,
    )
    account_id = account_filter.id if account_filter else None

    targets_tab, adjustments_tab = st.tabs(["🎯 Target Changes", "🔧 Balance Adjustments"])

    with targets_tab:
        history = service.target_history(account_id)
        if not history:
            st.info("No target changes yet.")
        else:
            st.dataframe(
                [
                    {
                        "When": h.changed_at.strftime("%d %b %Y %H:%M"),
                        "Account": h.account_name.value,
                        "Old Target": rupees(h.old_target_balance),
                        "New Target": rupees(h.new_target_balance),
                        "Change": rupees(h.change_amount),
                        "Reason": h.reason,
                    }
                    for h in history
                ],
                use_container_width=True,
                hide_index=True,
            )

    with adjustments_tab:
        history = service.adjustment_history(account_id)
        if not history:
            st.info("No manual adjustments yet.")
        else:
            st.dataframe(
                [
                    {
                        "When": h.adjusted_at.strftime("%d %b %Y %H:%M"),
                        "Account": h.account_name.value,
                        "Old Balance": rupees(h.old_actual_balance),
                        "New Balance": rupees(h.new_actual_balance),
                        "Reason": h.adjustment_reason,
                    }
                    for h in history
                ],
                use_container_width=True,
                hide_index=True,
            )


def render_manage_page(service: FundService):
    """Render targets, adjustments, reset and connection status."""
    st.title("⚙️ Manage Fund")

    accounts = service.accounts()
    validator = FundInputValidator(service.state)

    st.markdown("### 👨‍👩‍👦 Family Target")
    st.caption("Split 2:1 between Mummy and Vaibhav.")
    with st.form("family_target_form"):
        total = st.text_input("New family target (₹) *", value=str(service.summary().total_target))
        reason = st.text_input("Reason *")
        submitted = st.form_submit_button("Update family target")
    if submitted:
        result = validator.validate_family_target(total, reason)
        if not result.is_valid:
            st.error(validator.get_user_friendly_summary(result))
        else:
            if result.warnings:
                st.warning(validator.get_user_friendly_summary(result))
            run_operation(
                service.update_family_target(
                    result.values["new_total"],
                    result.values["reason"],
                    correlation_id=create_correlation_id(),
                ),
                f"Targets set: Mummy {rupees(result.values['mummy_portion'])}, "
                f"Vaibhav {rupees(result.values['vaibhav_portion'])}.",
            )

    st.markdown("---")
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("### 🎯 Account Target")
        with st.form("target_form"):
            account = st.selectbox(
                "Account",
                options=accounts,
                format_func=lambda a: f"{a.name.value} (now {rupees(a.target_balance)})",
                key="target_account",
            )
            new_target = st.text_input("New target (₹) *")
            reason = st.text_input("Reason *", key="target_reason")
            submitted = st.form_submit_button("Update target")
        if submitted and account is not None:
            result = validator.validate_target_update(account.id, new_target, reason)
            if not result.is_valid:
                st.error(validator.get_user_friendly_summary(result))
            else:
                run_operation(
                    service.update_target_balance(
                        account.id,
                        result.values["new_target"],
                        result.values["reason"],
                        correlation_id=create_correlation_id(),
                    ),
                    f"{account.name.value}'s target is now {rupees(result.values['new_target'])}.",
                )

    with col2:
        st.markdown("### 🔧 Correct Actual Balance")
        st.caption("Use when the bank balance differs. No transaction is created.")
        with st.form("adjust_form"):
            account = st.selectbox(
                "Account",
                options=accounts,
                format_func=lambda a: f"{a.name.value} (now {rupees(a.actual_balance)})",
                key="adjust_account",
            )
            new_actual = st.text_input("Actual balance (₹) *")
            reason = st.text_input("Reason *", key="adjust_reason")
            submitted = st.form_submit_button("Save correction")
        if submitted and account is not None:
            result = validator.validate_adjustment(account.id, new_actual, reason)
            if not result.is_valid:
                st.error(validator.get_user_friendly_summary(result))
            else:
                if result.warnings:
                    st.warning(validator.get_user_friendly_summary(result))
                run_operation(
                    service.adjust_actual_balance(
                        account.id,
                        result.values["new_actual"],
                        result.values["reason"],
                        correlation_id=create_correlation_id(),
                    ),
                    f"{account.name.value}'s balance corrected to "
                    f"{rupees(result.values['new_actual'])}.",
                )

    st.markdown("---")
    with st.expander("🚨 Reset everything"):
        st.markdown(
            "Deletes **all** transactions and history and restores "
            "Mummy to ₹2,00,000 and Vaibhav to ₹1,00,000. This cannot be undone."
        )
        confirmed = st.checkbox("I understand everything will be erased", key="reset_ok")
        if st.button("Reset fund", disabled=not confirmed):
            if run_operation(
                service.reset_all(correlation_id=create_correlation_id()),
                "Fund reset to the starting balances.",
            ):
                st.rerun()

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    health = run_async(service.health_check())

    if health["local"]:
        st.success(f"✅ Local data file - {get_settings().app.local_state_file}")
    else:
        st.error("❌ Local data file could not be read")

    if not service.remote_enabled:
        error = status.get("google_sheets_error", "Turned off (set FUND_REMOTE_ENABLED=true)")
        st.info(f"☁️ Google Sheets - {error}")
    elif health["remote"]:
        st.success("✅ Google Sheets (Storage) - Connected")
    else:
        st.error("❌ Google Sheets (Storage) - Not reachable")

    if service.has_unsynced_changes:
        st.warning(
            "⚠️ Google Sheets is behind this device. It will be overwritten from "
            "the local data on the next restart."
        )
        if service.remote_enabled and st.button("Push local data to Google Sheets now"):
            try:
                run_async(service.sync_remote())
            except StorageError as e:
                st.error(f"Push failed: {e}")
            else:
                st.success("Google Sheets is up to date.")


if __name__ == "__main__":
    main()
