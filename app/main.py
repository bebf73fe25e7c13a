import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import threading
from datetime import date

import pandas as pd
import streamlit as st

from budgetwatch.aggregator import by_category, month_key
from budgetwatch.categories import CATEGORIES
from budgetwatch.config import configure_logging, settings
from budgetwatch.dispatcher import register
from budgetwatch.events import BUDGET_ALERT, EventBus, register_default_handlers
from budgetwatch.formatting import format_currency, format_month
from budgetwatch.services import create_service
from budgetwatch.storage import JsonFileKeyValueStore
from budgetwatch.transforms import load_seed

configure_logging()
st.set_page_config(page_title="Budget Watch", layout="wide")


class StreamlitNotifier:
    """Toast notifications, allowed through the sidebar toggle."""

    async def has_permission(self) -> bool:
        return bool(st.session_state.get("notifications_enabled"))

    async def request_permission(self) -> bool:
        return bool(st.session_state.get("notifications_enabled"))

    async def notify_now(self, title: str, body: str) -> None:
        st.toast(f"**{title}**\n\n{body}", icon="🔔")


class StreamlitAlert:
    def show_alert(self, title: str, body: str) -> None:
        st.session_state.alert_dialogs.append({"title": title, "body": body})


@st.cache_resource
def shared_store() -> JsonFileKeyValueStore:
    return JsonFileKeyValueStore(settings.data_path)


@st.cache_resource
def write_lock() -> threading.Lock:
    return threading.Lock()


def run_locked(coro):
    """Run a write or a budget pass while every other session waits.

    Each script run gets its own event loop, so the service's asyncio locks
    only cover one run; this lock covers the whole process.
    """
    with write_lock():
        return asyncio.run(coro)


def remember_alert(event, payload: dict) -> dict:
    st.session_state.alert_log.append({
        "time": pd.Timestamp.now().strftime("%H:%M:%S"),
        "kind": payload["kind"],
        "category": payload["category"],
        "message": payload["body"],
        "channel": "notification" if payload["notified"] else "alert",
    })
    return {"remembered": True}


if "alert_log" not in st.session_state:
    st.session_state.alert_log = []
if "alert_dialogs" not in st.session_state:
    st.session_state.alert_dialogs = []
# one bus per script run so sessions never see each other's alerts
bus = EventBus()
register_default_handlers(bus)
bus.subscribe(BUDGET_ALERT, remember_alert)

st.sidebar.markdown("### 👤 Profile")
owner_id = st.sidebar.text_input("Nickname", value=st.session_state.get("nickname", "demo")).strip() or "demo"
st.session_state["nickname"] = owner_id
st.sidebar.caption("The nickname only picks whose records are shown. It is not a login.")
st.sidebar.toggle("🔔 Allow notifications", key="notifications_enabled")
notifier = StreamlitNotifier()
if not asyncio.run(register(notifier, timeout=settings.io_timeout)):
    st.sidebar.caption("Notifications are off, alerts will show on the page instead.")

service = create_service(shared_store(), notifier, StreamlitAlert(), bus=bus)

if st.sidebar.button("Load demo data"):
    seed_expenses, seed_budgets = load_seed(settings.seed_path)

    async def import_seed():
        for b in seed_budgets:
            await service.budgets.upsert(owner_id, {"category": b.category, "amount": b.amount, "month_year": b.month_year})
        for e in seed_expenses:
            await service.expenses.create(owner_id, {
                "description": e.description, "amount": e.amount,
                "category": e.category, "occurred_on": e.occurred_on,
            })

    run_locked(import_seed())
    st.sidebar.success(f"Imported {len(seed_expenses)} expenses and {len(seed_budgets)} budgets")

menu = st.sidebar.radio("Menu", ["🏠 Overview", "🧾 Expenses", "💰 Budgets", "⚠️ Alerts"])

for dialog in st.session_state.alert_dialogs:
    st.warning(f"**{dialog['title']}**\n\n{dialog['body']}")
if st.session_state.alert_dialogs and st.button("OK", key="btn_dismiss_alerts"):
    st.session_state.alert_dialogs = []
    st.rerun()

if menu == "🏠 Overview":
    month = st.text_input("Month (YYYY-MM)", value=month_key(date.today()))
    try:
        report = asyncio.run(service.monthly_report(owner_id, month))
    except ValueError:
        st.error("Month must look like 2024-07")
        st.stop()

    st.title(f"🏠 {format_month(month)}")
    k1, k2 = st.columns(2)
    with k1:
        st.metric("Spent this month", format_currency(report["total"], settings.currency))
    with k2:
        st.metric("Budgets", len(report["budgets"]))

    st.subheader("📂 Spending by category")
    if report["by_category"]:
        breakdown = pd.DataFrame(
            [{"Category": c, "Spent": v} for c, v in report["by_category"].items()]
        )
        breakdown["Share"] = (breakdown["Spent"] / breakdown["Spent"].sum() * 100).round(1)
        breakdown["Spent"] = breakdown["Spent"].map(lambda v: format_currency(v, settings.currency))
        st.table(breakdown)
    else:
        st.info("No expenses this month.")

    st.subheader("🎯 Budget progress")
    if report["budgets"]:
        for s in report["budgets"]:
            status = "🔴 EXCEEDED" if s.exceeded else ("🟠" if s.percentage >= settings.warning_pct else "✅")
            st.write(
                f"{status} **{s.category}**: {format_currency(s.spent, settings.currency)} / "
                f"{format_currency(s.budget_amount, settings.currency)} "
                f"({format_currency(s.remaining, settings.currency)} left)"
            )
            st.progress(min(100.0, s.percentage) / 100)
    else:
        st.info("No budgets set for this month.")

elif menu == "🧾 Expenses":
    st.title("🧾 Expenses")
    expenses = asyncio.run(service.expenses.list_expenses(owner_id))

    editing = None
    edit_id = st.selectbox(
        "Edit an existing expense",
        options=[""] + [e.id for e in expenses],
        format_func=lambda i: "➕ New expense" if not i else next(
            f"{e.occurred_on} · {e.description or 'Untitled'} · {format_currency(e.amount, settings.currency)}"
            for e in expenses if e.id == i
        ),
    )
    if edit_id:
        editing = next(e for e in expenses if e.id == edit_id)

    with st.form("expense_form", clear_on_submit=editing is None):
        col1, col2 = st.columns(2)
        with col1:
            occurred_on = st.date_input("Date", value=editing.occurred_on if editing else date.today())
            amount = st.text_input("Amount", value=str(editing.amount) if editing else "")
        with col2:
            category = st.selectbox(
                "Category", CATEGORIES,
                index=CATEGORIES.index(editing.category) if editing else 0,
            )
            description = st.text_input("Description", value=editing.description if editing else "", max_chars=100)
        submitted = st.form_submit_button("Save expense")

    if submitted:
        data = {"description": description, "amount": amount, "category": category, "occurred_on": occurred_on}
        try:
            result = run_locked(service.save_expense(owner_id, data, expense_id=edit_id or None))
        except ValueError as e:
            st.error(str(e))
        except KeyError:
            st.error("That expense no longer exists")
        else:
            if result.outcomes:
                st.success(f"✅ Expense saved! {len(result.outcomes)} alert(s) triggered.")
            else:
                st.success("✅ Expense saved!")
            for dialog in st.session_state.alert_dialogs:
                st.warning(f"**{dialog['title']}**\n\n{dialog['body']}")

    if editing and st.button("🗑 Delete this expense", key="btn_delete_expense"):
        run_locked(service.expenses.delete(owner_id, editing.id))
        st.rerun()

    st.subheader("📋 All expenses")
    selected_category = st.selectbox("Category filter", ["All"] + list(CATEGORIES), key="expense_filter")
    shown = expenses if selected_category == "All" else list(filter(by_category(selected_category), expenses))
    if shown:
        st.dataframe(pd.DataFrame([{
            "Date": e.occurred_on.isoformat(),
            "Description": e.description or "Untitled",
            "Category": e.category,
            "Amount": format_currency(e.amount, settings.currency),
        } for e in shown]), use_container_width=True)
    else:
        st.info("No expenses yet.")

elif menu == "💰 Budgets":
    st.title("💰 Budgets")
    month = st.text_input("Month (YYYY-MM)", value=month_key(date.today()), key="budget_month")

    with st.form("budget_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            category = st.selectbox("Category", CATEGORIES)
        with col2:
            amount = st.text_input("Monthly limit")
        submitted = st.form_submit_button("Save budget")

    if submitted:
        try:
            run_locked(service.budgets.upsert(owner_id, {"category": category, "amount": amount, "month_year": month}))
        except ValueError as e:
            st.error(str(e))
        else:
            st.success(f"Budget for {category} saved")

    budgets = asyncio.run(service.budgets.list_budgets(owner_id, month))
    if budgets:
        for b in budgets:
            c1, c2 = st.columns([4, 1])
            with c1:
                st.write(f"**{b.category}**: {format_currency(b.amount, settings.currency)}")
            with c2:
                if st.button("Delete", key=f"del_{b.id}"):
                    run_locked(service.budgets.delete(owner_id, b.id))
                    st.rerun()
    else:
        st.info("No budgets for this month. Set one above to get alerts.")

elif menu == "⚠️ Alerts":
    st.title("⚠️ Alerts")
    if st.button("🔄 Check budgets now"):
        outcomes = run_locked(service.check_budgets(owner_id))
        st.caption(f"{len(outcomes)} new alert(s)")
    if st.session_state.alert_log:
        st.dataframe(pd.DataFrame(list(reversed(st.session_state.alert_log))), use_container_width=True)
        if st.button("Clear", key="btn_clear_alerts"):
            st.session_state.alert_log = []
            st.rerun()
    else:
        st.info("No alerts this session.")
