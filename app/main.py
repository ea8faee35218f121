"""
Streamlit Frontend for SpendWise

A thin shell over SessionController. Every button maps to exactly one
controller operation; nothing on this page computes balances, budget
usage or bill status itself. Those come from QueryExecutor.

DESIGN PRINCIPLES:
1. One controller per browser session, loaded once
2. Notifications are the only feedback channel for background work
3. Clear error messages in simple language
"""

import asyncio
import base64
from datetime import date
from decimal import Decimal

import streamlit as st

from spendwise.models import (
    Bill,
    BudgetPeriod,
    ExpenseCategory,
    FilterConfig,
    Goal,
    IncomeCategory,
    NotificationType,
    Transaction,
    TransactionType,
)
from spendwise.orchestrator import SessionController, create_app_components
from spendwise.queries import BillStatus, QueryExecutor, bill_status


# Page configuration
st.set_page_config(
    page_title="SpendWise",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

NOTIFICATION_ICONS = {
    NotificationType.ALERT: "🚨",
    NotificationType.WARNING: "⚠️",
    NotificationType.INFO: "ℹ️",
    NotificationType.SUCCESS: "✅",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_controller() -> SessionController:
    """Get this browser session's controller, loading it on first use."""
    if "controller" not in st.session_state:
        controller = create_app_components()
        with st.spinner("Loading your data..."):
            run_async(controller.load())
        st.session_state.controller = controller
    return st.session_state.controller


def money(amount: Decimal, controller: SessionController) -> str:
    return f"{controller.currency_symbol}{amount:,.2f}"


def main():
    """Main application entry point."""
    controller = get_controller()
    unread = controller.state.unread_count

    st.sidebar.title("💰 SpendWise")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Dashboard",
            "🧾 Transactions",
            "📅 Bills",
            "🎯 Goals",
            f"🔔 Notifications ({unread})",
            "✨ Insights",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page.startswith("📊"):
        render_dashboard_page(controller)
    elif page.startswith("🧾"):
        render_transactions_page(controller)
    elif page.startswith("📅"):
        render_bills_page(controller)
    elif page.startswith("🎯"):
        render_goals_page(controller)
    elif page.startswith("🔔"):
        render_notifications_page(controller)
    elif page.startswith("✨"):
        render_insights_page(controller)
    else:
        render_settings_page(controller)


def render_dashboard_page(controller: SessionController):
    st.title("📊 Dashboard")
    today = date.today()
    queries = QueryExecutor(controller.state)
    totals = queries.totals()

    col1, col2, col3 = st.columns(3)
    col1.metric("Balance", money(totals.balance, controller))
    col2.metric("Income", money(totals.income, controller))
    col3.metric("Expenses", money(totals.expense, controller))

    st.markdown("### Budgets")
    statuses = queries.budget_statuses(today)
    if not statuses:
        st.info("No budgets yet. Set one below.")
    for status in statuses:
        st.progress(
            min(float(status.percent) / 100, 1.0),
            text=(
                f"{status.category}: {money(status.spent, controller)} of "
                f"{money(status.limit, controller)} ({status.period.value})"
            ),
        )

    with st.form("budget_form"):
        col1, col2, col3 = st.columns(3)
        category = col1.selectbox("Category", [c.value for c in ExpenseCategory])
        limit = col2.number_input("Limit (0 removes)", min_value=0.0, step=100.0)
        period = col3.selectbox("Period", list(BudgetPeriod), format_func=lambda p: p.value)
        if st.form_submit_button("Save Budget"):
            run_async(controller.set_budget_limit(category, Decimal(str(limit)), period))
            st.rerun()

    st.markdown("### Upcoming Bills")
    for bill in queries.unpaid_bills(today)[:5]:
        st.write(f"**{bill.name}** · day {bill.due_day} · {money(bill.amount, controller)}")


def render_transactions_page(controller: SessionController):
    st.title("🧾 Transactions")

    with st.expander("➕ Add Transaction"):
        uploaded_file = st.file_uploader(
            "📸 Receipt (optional)",
            type=["jpg", "jpeg", "png", "webp"],
            key="receipt_upload",
        )
        if uploaded_file is not None and st.button("🔍 Scan Receipt"):
            image_b64 = base64.b64encode(uploaded_file.getvalue()).decode("ascii")
            with st.spinner("Reading receipt..."):
                receipt = run_async(
                    controller.scan_receipt(image_b64, uploaded_file.type or "image/jpeg")
                )
            if receipt is None:
                st.warning("Could not read this receipt. Please fill in the details yourself.")
            else:
                st.session_state.receipt = receipt
                st.session_state.receipt_image = image_b64
                st.success("Receipt scanned. Check the details below before saving.")

        receipt = st.session_state.get("receipt")
        with st.form("add_transaction", clear_on_submit=True):
            tx_type = st.radio(
                "Type", list(TransactionType), format_func=lambda t: t.value.title(), horizontal=True
            )
            description = st.text_input(
                "Description", value=(receipt.merchant or "") if receipt else ""
            )
            amount = st.number_input(
                "Amount",
                min_value=0.0,
                step=10.0,
                value=float(receipt.amount) if receipt and receipt.amount is not None else 0.0,
            )
            categories = (
                [c.value for c in ExpenseCategory]
                if tx_type == TransactionType.EXPENSE
                else [c.value for c in IncomeCategory]
            )
            default_category = (
                categories.index(receipt.category.value)
                if receipt and receipt.category and receipt.category.value in categories
                else 0
            )
            category = st.selectbox("Category", categories, index=default_category)
            tx_date = st.date_input(
                "Date", value=receipt.date if receipt and receipt.date else date.today()
            )
            notes = st.text_area("Notes")
            if st.form_submit_button("Save"):
                run_async(
                    controller.add_transaction(
                        Transaction(
                            type=tx_type,
                            amount=Decimal(str(amount)),
                            description=description,
                            category=category,
                            date=tx_date,
                            notes=notes or None,
                            attachment=st.session_state.pop("receipt_image", None),
                        )
                    )
                )
                st.session_state.pop("receipt", None)
                st.success("Saved!")

    query = st.text_input("🔍 Search")
    selected = st.multiselect("Categories", [c.value for c in ExpenseCategory])
    config = FilterConfig(query=query, categories=selected)

    queries = QueryExecutor(controller.state)
    matching = queries.filter_transactions(config)
    st.download_button(
        "⬇️ Export CSV",
        data=queries.to_csv(matching),
        file_name=f"spendwise_report_{date.today().isoformat()}.csv",
        mime="text/csv",
    )
    groups = queries.group_by_date(matching)
    if not groups:
        st.info("No transactions match.")
    for day, transactions in groups.items():
        st.markdown(f"**{day.strftime('%d %B %Y')}**")
        for t in transactions:
            col1, col2, col3 = st.columns([4, 2, 1])
            col1.write(f"{t.description} · {t.category}")
            sign = "+" if t.is_income else "-"
            col2.write(f"{sign}{money(t.amount, controller)}")
            if col3.button("🗑️", key=f"del_{t.id}"):
                run_async(controller.delete_transaction(t.id))
                st.rerun()


def render_bills_page(controller: SessionController):
    st.title("📅 Bills")
    today = date.today()

    for bill in controller.state.bills:
        status = bill_status(bill, today)
        col1, col2, col3 = st.columns([4, 2, 2])
        auto = " · auto-pay" if bill.auto_pay else ""
        col1.write(f"**{bill.name}** · day {bill.due_day}{auto}")
        col2.write(f"{money(bill.amount, controller)} · {status.value}")
        if status != BillStatus.PAID and col3.button("Pay now", key=f"pay_{bill.id}"):
            run_async(controller.pay_bill(bill.id))
            st.rerun()

    with st.form("add_bill", clear_on_submit=True):
        st.markdown("### Add Bill")
        name = st.text_input("Name")
        amount = st.number_input("Amount", min_value=0.0, step=10.0)
        due_day = st.number_input("Due day", min_value=1, max_value=31, value=1)
        auto_pay = st.checkbox("Auto-pay")
        if st.form_submit_button("Add") and name:
            bill = Bill(
                name=name,
                amount=Decimal(str(amount)),
                due_day=int(due_day),
                auto_pay=auto_pay,
            )
            run_async(controller.set_bills([*controller.state.bills, bill]))
            st.rerun()


def render_goals_page(controller: SessionController):
    st.title("🎯 Goals")

    for goal in controller.state.goals:
        percent = goal.percent_complete
        st.markdown(f"**{goal.name}**: {money(goal.current_amount, controller)} of "
                    f"{money(goal.target_amount, controller)}")
        if percent is not None:
            st.progress(min(float(percent) / 100, 1.0))
        col1, col2 = st.columns([3, 1])
        deposit = col1.number_input("Deposit", min_value=0.0, step=100.0, key=f"dep_{goal.id}")
        if col2.button("Deposit", key=f"btn_{goal.id}") and deposit > 0:
            run_async(controller.deposit_to_goal(goal.id, Decimal(str(deposit))))
            st.rerun()

    with st.form("add_goal", clear_on_submit=True):
        st.markdown("### New Goal")
        name = st.text_input("Name")
        target = st.number_input("Target", min_value=0.0, step=1000.0)
        if st.form_submit_button("Create") and name:
            goal = Goal(name=name, target_amount=Decimal(str(target)))
            run_async(controller.set_goals([*controller.state.goals, goal]))
            st.rerun()


def render_notifications_page(controller: SessionController):
    st.title("🔔 Notifications")

    col1, col2 = st.columns(2)
    if col1.button("Mark all read"):
        run_async(controller.mark_notifications_read())
        st.rerun()
    if col2.button("Clear all"):
        run_async(controller.clear_notifications())
        st.rerun()

    if not controller.state.notifications:
        st.info("You're all caught up.")
    for n in controller.state.notifications:
        icon = NOTIFICATION_ICONS.get(n.type, "")
        weight = "" if n.read else "**"
        st.markdown(f"{icon} {weight}{n.title}{weight}: {n.message}")


def render_insights_page(controller: SessionController):
    st.title("✨ Insights")

    if st.button("Analyze my spending"):
        with st.spinner("Thinking..."):
            insights = run_async(controller.request_insights())
        if insights is None:
            st.info("No insights available right now.")
        else:
            st.markdown(insights.summary)
            st.metric(
                "Predicted next month",
                f"{controller.currency_symbol}{insights.prediction.next_month_total:,.0f}",
                insights.prediction.trend,
            )
            for anomaly in insights.anomalies:
                st.warning(f"**{anomaly.title}**: {anomaly.description}")
            for tip in insights.saving_tips:
                st.write(f"💡 {tip}")

    if st.button("Scan for subscriptions"):
        with st.spinner("Scanning..."):
            analysis = run_async(controller.request_subscription_analysis())
        if analysis is None:
            st.info("Add a few more transactions first.")
        else:
            for sub in analysis.new_subscriptions:
                st.write(f"🔁 {sub.name}: {sub.amount:,.2f} ({sub.frequency})")
            for change in analysis.price_changes:
                st.write(f"📈 {change.name}: {change.old_amount:,.2f} → {change.new_amount:,.2f}")
            for item in analysis.redundant:
                st.write(f"♻️ {item.name}: {item.reason}")


def render_settings_page(controller: SessionController):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Expected Monthly Income")
    income = st.number_input(
        "Amount",
        min_value=0.0,
        value=float(controller.state.expected_income),
        step=1000.0,
    )
    if st.button("Save income"):
        run_async(controller.set_expected_income(Decimal(str(income))))
        st.success("Saved!")

    st.markdown("### Connection Status")

    from spendwise.config import validate_all_settings

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")


if __name__ == "__main__":
    main()
