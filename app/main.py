"""
Streamlit Frontend for the Expense Tracker

This is the screen the two of us use every day to log shared household
expenses.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. A scanned receipt only fills in the form
3. Clear error messages in simple language
4. Manual entry always works, even when every AI model is down
5. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees what was read from the receipt
- User confirms or edits
- Nothing is saved without an explicit "Save" action
"""

import base64
from datetime import date

import streamlit as st

from expense_tracker.aggregation import (
    MonthWindow,
    available_months,
    compute_totals,
    filter_by_month,
    format_expense_date,
    format_month_display,
    select_expenses,
    suggest_stores,
)
from expense_tracker.async_runner import BackgroundEventLoop
from expense_tracker.audit import create_correlation_id
from expense_tracker.config import validate_all_settings
from expense_tracker.export import export_filename
from expense_tracker.models.expense import ExpenseCategory, Person
from expense_tracker.orchestrator import (
    ExpenseFlow,
    InvalidInputError,
    ReceiptScanFlow,
    create_app_components,
)
from expense_tracker.services.storage import NotFoundError, StorageError
from expense_tracker.services.vision import AllModelsFailedError
from expense_tracker.validation import ExpenseValidator


# Page configuration
st.set_page_config(
    page_title="Expense Tracker",
    page_icon="💸",
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
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)

CATEGORIES = list(ExpenseCategory)
PEOPLE = list(Person)

validator = ExpenseValidator()


@st.cache_resource
def get_event_loop() -> BackgroundEventLoop:
    """One event loop for the whole process, shared by every session."""
    return BackgroundEventLoop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run(coro)


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def to_data_uri(uploaded_file) -> str:
    encoded = base64.b64encode(uploaded_file.getvalue()).decode("ascii")
    return f"data:{uploaded_file.type or 'image/jpeg'};base64,{encoded}"


def main():
    """Main application entry point."""
    expense_flow, receipt_flow, mongo_client = get_components()

    # Sidebar navigation
    st.sidebar.title("💸 Expense Tracker")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["➕ Add Expense", "📋 Expenses", "📊 Summary", "🔁 Store Names", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Scan a receipt or type the details
        2. Check the store, amount and category
        3. Save

        Scanning is optional; you can always enter an expense by hand.
        """
    )

    # Route to appropriate page
    if page == "➕ Add Expense":
        render_add_page(expense_flow, receipt_flow)
    elif page == "📋 Expenses":
        render_expenses_page(expense_flow)
    elif page == "📊 Summary":
        render_summary_page(expense_flow)
    elif page == "🔁 Store Names":
        render_conversion_page(receipt_flow)
    elif page == "⚙️ Settings":
        render_settings_page(expense_flow, mongo_client)


def render_add_page(expense_flow: ExpenseFlow, receipt_flow: ReceiptScanFlow):
    """Render the add-expense page (receipt scan + form)."""
    st.title("➕ Add Expense")

    if "prefill" not in st.session_state:
        st.session_state.prefill = None
    if "scan_model" not in st.session_state:
        st.session_state.scan_model = None

    # Step 1: Optional receipt scan
    with st.expander("📷 Scan a receipt", expanded=st.session_state.prefill is None):
        uploaded_file = st.file_uploader(
            "Receipt photo",
            type=["jpg", "jpeg", "png", "webp"],
            help="A clear photo with the store name and the total visible",
        )
        if uploaded_file and st.button("🔍 Read Receipt", type="primary"):
            with st.spinner("Reading the receipt... Please wait."):
                try:
                    result = run_async(
                        receipt_flow.scan(
                            to_data_uri(uploaded_file),
                            correlation_id=create_correlation_id(),
                        )
                    )
                    st.session_state.prefill = result.prefill
                    st.session_state.scan_model = result.used_model
                    st.rerun()
                except InvalidInputError as e:
                    st.error(str(e))
                except AllModelsFailedError as e:
                    st.markdown(f"""
                    <div class="error-box">
                        <h4>🤖 Could not read the receipt</h4>
                        <p>{e.error_code}: the AI models are unavailable right now.</p>
                        <p><strong>Please enter the details below by hand.</strong></p>
                    </div>
                    """, unsafe_allow_html=True)

    prefill = st.session_state.prefill
    if prefill is not None:
        note = "Matched a saved store name. " if prefill.converted else ""
        st.markdown(f"""
        <div class="success-box">
            <h4>✅ Receipt read by {st.session_state.scan_model}</h4>
            <p>{note}Please check the details below before saving.</p>
        </div>
        """, unsafe_allow_html=True)

    # Step 2: Review and save
    st.markdown("### Expense Details")

    expenses = run_async(expense_flow.list_expenses())

    col1, col2 = st.columns(2)

    with col1:
        store_name = st.text_input(
            "Store Name *",
            value=prefill.store_name if prefill else "",
        )
        suggestions = suggest_stores(expenses, store_name) if store_name else []
        if suggestions and store_name not in suggestions:
            st.caption("Used before: " + ", ".join(suggestions))

        amount = st.text_input(
            "Amount (₪) *",
            value=prefill.amount if prefill else "",
            help="For example 45.50",
        )

        default_category = prefill.category if prefill and prefill.category else ExpenseCategory.GROCERIES
        category = st.selectbox(
            "Category *",
            options=CATEGORIES,
            index=CATEGORIES.index(default_category),
            format_func=lambda c: c.label,
        )

    with col2:
        person = st.radio(
            "Who paid? *",
            options=PEOPLE,
            format_func=lambda p: p.display_name,
            horizontal=True,
        )
        expense_date = st.date_input("Date *", value=date.today())

    description = st.text_area(
        "Description (optional)",
        value=prefill.description if prefill else "",
    )

    st.markdown("---")

    col1, col2 = st.columns([2, 1])

    with col1:
        if st.button("✅ Save Expense", type="primary"):
            payload = {
                "storeName": store_name,
                "amount": amount,
                "category": category.value,
                "person": person.value,
                "date": format_expense_date(expense_date),
                "description": description,
            }
            try:
                expense = run_async(
                    expense_flow.add_expense(payload, correlation_id=create_correlation_id())
                )
                st.session_state.prefill = None
                st.success(
                    f"Saved: {expense.store_name} - ₪{expense.amount:,.2f} "
                    f"({expense.person.display_name})"
                )
            except InvalidInputError as e:
                st.error(validator.get_user_friendly_summary(e.result))
            except StorageError as e:
                st.error(f"Failed to save: {str(e)}")

    with col2:
        if prefill is not None and st.button("❌ Clear Scan"):
            st.session_state.prefill = None
            st.rerun()


def render_expenses_page(expense_flow: ExpenseFlow):
    """Render the expenses list, one section per month."""
    st.title("📋 Expenses")

    if "months_shown" not in st.session_state:
        st.session_state.months_shown = 1

    expenses = run_async(expense_flow.list_expenses())
    window = MonthWindow(expenses, months_shown=st.session_state.months_shown)

    search_month = st.selectbox(
        "Jump to month",
        options=[None] + available_months(expenses),
        format_func=lambda m: "Recent months" if m is None else format_month_display(m),
    )

    months = [search_month] if search_month else window.visible_months
    selected = select_expenses(expenses, window, search_month=search_month)

    if not selected and not search_month:
        st.info("No expenses yet this month. Use 'Add Expense' to log one.")

    for month in months:
        month_expenses = filter_by_month(selected, month)
        totals = compute_totals(month_expenses)

        st.markdown(f"### {format_month_display(month)}")
        cols = st.columns(len(PEOPLE) + 1)
        cols[0].metric("Total", f"₪{totals.total:,.2f}")
        for col, person in zip(cols[1:], PEOPLE):
            col.metric(person.display_name, f"₪{totals.spent_by(person):,.2f}")

        for expense in month_expenses:
            col1, col2, col3 = st.columns([5, 2, 1])
            col1.markdown(
                f"**{expense.store_name}** · {expense.category.label} · "
                f"{expense.person.display_name} · {expense.date}"
                + (f"  \n_{expense.description}_" if expense.description else "")
            )
            col2.markdown(f"**₪{expense.amount:,.2f}**")
            if col3.button("🗑️", key=f"delete-{expense.id}"):
                try:
                    run_async(expense_flow.delete_expense(expense.id))
                    st.rerun()
                except NotFoundError:
                    st.warning("This expense was already deleted.")
                    st.rerun()

    if not search_month and window.has_more:
        if st.button("⬇️ Load more months"):
            st.session_state.months_shown += 1
            st.rerun()

    st.markdown("---")
    with st.expander("⚠️ Clear all data"):
        st.warning("This deletes every expense and resets the shared account balance.")
        confirmed = st.checkbox("I understand this cannot be undone")
        if st.button("Delete everything", disabled=not confirmed):
            deleted, failed = run_async(expense_flow.clear_all())
            if failed:
                st.error(f"Deleted {deleted} expenses; {failed} could not be deleted.")
            else:
                st.success(f"Deleted {deleted} expenses.")
            st.session_state.months_shown = 1


def render_summary_page(expense_flow: ExpenseFlow):
    """Render the monthly dashboard and export."""
    st.title("📊 Summary")

    summary = run_async(expense_flow.get_summary())

    st.markdown(f"### {format_month_display(summary.month)}")
    col1, col2, col3 = st.columns(3)
    col1.metric("Spent this month", f"₪{summary.totals.total:,.2f}")
    col2.metric("Shared account", f"₪{summary.shared_account_balance:,.2f}")
    col3.metric(
        "Remaining",
        f"₪{summary.remaining_balance:,.2f}",
        delta="Overspent" if summary.remaining_balance < 0 else None,
        delta_color="inverse",
    )

    cols = st.columns(len(PEOPLE))
    for col, person in zip(cols, PEOPLE):
        col.metric(f"{person.display_name} spent", f"₪{summary.totals.spent_by(person):,.2f}")

    cols = st.columns(len(PEOPLE))
    for col, person in zip(cols, PEOPLE):
        balance = summary.balance_of(person)
        col.metric(
            f"{person.display_name} balance",
            f"{'+' if balance >= 0 else ''}₪{balance:,.2f}",
            help="Spend minus half of this month's total",
        )

    st.markdown("---")
    st.markdown("### Export")
    st.download_button(
        "📥 Download Excel report",
        data=run_async(expense_flow.export_workbook()),
        file_name=export_filename(),
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


def render_conversion_page(receipt_flow: ReceiptScanFlow):
    """Render the store-name conversion table."""
    st.title("🔁 Store Names")
    st.markdown(
        "Teach the scanner your stores: when a receipt's store name contains "
        "the receipt text below, the form uses your name and category instead."
    )

    table = receipt_flow.conversion_table
    entries = run_async(table.list_entries())

    if entries:
        st.dataframe(
            [
                {
                    "ID": entry.id,
                    "Receipt text": entry.id_name,
                    "Store name": entry.store_name,
                    "Category": entry.category.label,
                    "Comment": entry.comment,
                }
                for entry in entries
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No store names saved yet.")

    st.markdown("### Add or edit")
    existing = st.selectbox(
        "Entry",
        options=[None] + entries,
        format_func=lambda e: "➕ New entry" if e is None else f"#{e.id} {e.id_name}",
    )

    with st.form("conversion-entry"):
        id_name = st.text_input("Receipt text *", value=existing.id_name if existing else "")
        store_name = st.text_input("Store name *", value=existing.store_name if existing else "")
        category = st.selectbox(
            "Category *",
            options=CATEGORIES,
            index=CATEGORIES.index(existing.category) if existing else 0,
            format_func=lambda c: c.label,
        )
        comment = st.text_input("Comment", value=existing.comment if existing else "")
        submitted = st.form_submit_button("💾 Save", type="primary")

    if submitted:
        payload = {
            "id": existing.id if existing else None,
            "id_name": id_name,
            "store_name": store_name,
            "category": category.value,
            "comment": comment,
        }
        result, cleaned = validator.validate_conversion_entry(payload, require_id=existing is not None)
        if result.has_errors:
            st.error(validator.get_user_friendly_summary(result))
        else:
            if existing:
                try:
                    run_async(table.update_entry(
                        entry_id=cleaned["entry_id"],
                        id_name=cleaned["id_name"],
                        store_name=cleaned["store_name"],
                        category=cleaned["category"],
                        comment=cleaned.get("comment", ""),
                    ))
                except NotFoundError:
                    st.warning("This entry was deleted in the meantime.")
            else:
                run_async(table.add_entry(
                    id_name=cleaned["id_name"],
                    store_name=cleaned["store_name"],
                    category=cleaned["category"],
                    comment=cleaned.get("comment", ""),
                ))
            st.rerun()

    if existing and st.button(f"🗑️ Delete #{existing.id}"):
        try:
            run_async(table.delete_entry(existing.id))
        except NotFoundError:
            st.warning("This entry was already deleted.")
        st.rerun()


def render_settings_page(expense_flow: ExpenseFlow, mongo_client):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Shared Account")
    settings = run_async(expense_flow.get_settings())
    balance = st.number_input(
        "Shared account balance (₪)",
        value=float(settings.shared_account_balance),
        min_value=0.0,
        step=100.0,
        format="%.2f",
    )
    if st.button("💾 Save Balance", type="primary"):
        try:
            run_async(expense_flow.update_settings({"sharedAccountBalance": balance}))
            st.success("Saved.")
        except InvalidInputError as e:
            st.error(str(e))

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("MongoDB (Storage)", "mongodb"),
        ("OpenRouter (Receipt AI)", "openrouter"),
        ("Gemini (Backup AI)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if mongo_client is not None:
        if mongo_client.ping():
            st.success("✅ Database reachable")
        else:
            st.error("❌ Database unreachable - changes will fail until it is back")
    else:
        st.warning("Running without a database: data is kept in memory only.")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
