"""Streamlit app for the family budget tracker.

Renders the Overview, Transactions, Budget, Dashboard, Wealth and Settings
screens on top of a single :class:`~family_budget.state.AppState` kept in
``st.session_state``.  All numbers come from :mod:`calculations` and
:mod:`wealth`; this module only lays them out.

To run the dashboard from the command line::

    streamlit run family_budget/dashboard.py
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import date
from typing import Any, Dict, Optional

import streamlit as st

if __package__:
    from . import config
    from . import visualization as viz
    from .db import Database
    from .errors import FamilyBudgetError, ValidationError
    from .formatting import format_currency, format_date, format_percent
    from .models import ASSET_TYPE_LABELS, ASSET_TYPES, PAYMENT_METHOD_TYPES, Expense, Income, WealthAsset
    from .persistent_cache import load_cache, save_cache
    from .state import AppState
    from .wealth import asset_roi, days_until_maturity, group_assets_by_type, maturity_status
else:
    CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
    PARENT_DIR = os.path.dirname(CURRENT_DIR)
    if PARENT_DIR not in sys.path:
        sys.path.insert(0, PARENT_DIR)
    from family_budget import config  # type: ignore
    from family_budget import visualization as viz  # type: ignore
    from family_budget.db import Database  # type: ignore
    from family_budget.errors import FamilyBudgetError, ValidationError  # type: ignore
    from family_budget.formatting import format_currency, format_date, format_percent  # type: ignore
    from family_budget.models import (  # type: ignore
        ASSET_TYPE_LABELS, ASSET_TYPES, PAYMENT_METHOD_TYPES, Expense, Income, WealthAsset,
    )
    from family_budget.persistent_cache import load_cache, save_cache  # type: ignore
    from family_budget.state import AppState  # type: ignore
    from family_budget.wealth import (  # type: ignore
        asset_roi, days_until_maturity, group_assets_by_type, maturity_status,
    )

logger = logging.getLogger(__name__)

PERIOD_OPTIONS = {
    'month': 'This Month',
    '3months': 'Last 3 Months',
    '6months': 'Last 6 Months',
    'year': 'Last Year',
}
HEALTH_COLORS = {'good': 'green', 'warning': 'orange', 'danger': 'red'}


def _get_state(user_id: str) -> AppState:
    state = st.session_state.get('app_state')
    if state is None or state.user_id != user_id:
        db = Database()
        db.init_db()
        state = AppState(db, user_id)
        state.load_families()
        st.session_state['app_state'] = state
    return state


def _run(action, *args, **kwargs) -> Any:
    """Call a state mutation and surface failures inline."""
    try:
        return action(*args, **kwargs)
    except ValidationError as exc:
        st.error(f"{exc.field}: {exc.message}")
    except FamilyBudgetError as exc:
        logger.warning("%s failed: %s", getattr(action, '__name__', action), exc)
        st.error(str(exc))
    return None


def render_sidebar(state: AppState) -> str:
    st.sidebar.title("💰 Family Budget")
    if state.families:
        ids = [f.id for f in state.families]
        names = {f.id: f.name for f in state.families}
        current = state.current_family.id if state.current_family else ids[0]
        selected = st.sidebar.selectbox(
            "Family", options=ids, index=ids.index(current), format_func=names.get
        )
        if selected != current:
            _run(state.switch_family, selected)
    return st.sidebar.radio("Page", ["Overview", "Transactions", "Budget", "Dashboard", "Wealth", "Settings"])


def render_pending_confirmation(state: AppState) -> None:
    if state.pending is None:
        return
    st.warning(state.pending.prompt)
    col1, col2 = st.columns(2)
    if col1.button("Delete", type="primary"):
        _run(state.confirm_pending)
        st.rerun()
    if col2.button("Cancel"):
        state.cancel_pending()
        st.rerun()


def _expense_fields(state: AppState, key: str, expense: Optional[Expense] = None) -> Dict[str, Any]:
    """Expense inputs, prefilled from ``expense`` when editing."""
    categories = {c.id: f"{c.icon} {c.name}" for c in state.categories if c.type == 'expense'}
    methods = {m.id: m.name for m in state.payment_methods}
    category_options = [None] + list(categories)
    method_options = [None] + list(methods)
    current_category = expense.category_id if expense else None
    current_method = expense.payment_method_id if expense else None
    return {
        'title': st.text_input("Title", value=expense.title if expense else "", key=f"{key}_title"),
        'amount': st.text_input("Amount", value=f"{expense.amount:g}" if expense else "", key=f"{key}_amount"),
        'transaction_date': st.date_input(
            "Date",
            value=expense.transaction_date.date() if expense and expense.transaction_date else date.today(),
            key=f"{key}_date",
        ),
        'category_id': st.selectbox(
            "Category",
            options=category_options,
            index=category_options.index(current_category) if current_category in category_options else 0,
            format_func=lambda c: categories.get(c, '📦 Uncategorized'),
            key=f"{key}_category",
        ),
        'payment_method_id': st.selectbox(
            "Payment Method",
            options=method_options,
            index=method_options.index(current_method) if current_method in method_options else 0,
            format_func=lambda m: methods.get(m, 'None'),
            key=f"{key}_method",
        ),
        'description': st.text_area(
            "Description", value=expense.description if expense else "", key=f"{key}_description"
        ),
    }


def _income_fields(key: str, income: Optional[Income] = None) -> Dict[str, Any]:
    return {
        'source': st.text_input("Source", value=income.source if income else "", key=f"{key}_source"),
        'amount': st.text_input("Amount", value=f"{income.amount:g}" if income else "", key=f"{key}_amount"),
        'date': st.date_input(
            "Date", value=income.date if income and income.date else date.today(), key=f"{key}_date"
        ),
    }


def render_overview(state: AppState) -> None:
    st.header("📊 Overview")
    overview = state.budget_overview()
    stats = overview['stats']
    totals = state.monthly_totals()

    col1, col2, col3 = st.columns(3)
    col1.metric("Spent This Month", format_currency(totals['expenses']))
    col2.metric("Income This Month", format_currency(totals['income']))
    col3.metric("Safe to Spend / Day", format_currency(stats['safe_to_spend']))

    with st.form("expense_form", clear_on_submit=True):
        st.subheader("Add Expense")
        values = _expense_fields(state, "new_expense")
        if st.form_submit_button("Add Expense"):
            _run(state.add_expense, values)

    with st.form("income_form", clear_on_submit=True):
        st.subheader("Add Income")
        values = _income_fields("new_income")
        if st.form_submit_button("Add Income"):
            _run(state.add_income, values)

    st.subheader("Recent Expenses")
    names = {c.id: f"{c.icon} {c.name}" for c in state.categories}
    for expense in state.recent_expenses():
        col1, col2, col3 = st.columns([4, 2, 1])
        col1.write(f"{names.get(expense.category_id, '📦 Uncategorized')} · {expense.title}")
        col2.write(f"{format_currency(expense.amount)} · {format_date(expense.transaction_date)}")
        if col3.button("🗑️", key=f"del_expense_{expense.id}"):
            _run(state.request_delete, 'expense', expense.id, expense.title)
            st.rerun()

    st.subheader("Recent Income")
    for income in state.recent_incomes():
        col1, col2 = st.columns([6, 1])
        col1.write(f"💼 {income.source} · {format_currency(income.amount)} · {format_date(income.date)}")
        if col2.button("🗑️", key=f"del_income_{income.id}"):
            _run(state.request_delete, 'income', income.id, income.source)
            st.rerun()


def render_budget(state: AppState) -> None:
    st.header("🎯 Budget")
    overview = state.budget_overview()
    stats = overview['stats']

    if overview['budget'] is not None:
        st.subheader(f"{date.today():%B %Y} Budget · {format_currency(stats['total'])}")
        st.progress(min(1.0, stats['percentage'] / 100.0))
        color = HEALTH_COLORS[overview['health']]
        st.markdown(f":{color}[{format_percent(stats['percentage'])} used]")
        st.caption(f"Month elapsed: {format_percent(overview['month_progress'])}")
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Spent", format_currency(stats['spent']))
        col2.metric("Remaining", format_currency(stats['remaining']))
        col3.metric("Safe to Spend / Day", format_currency(stats['safe_to_spend']))
        col4.metric("Days Left", stats['days_left'])
    else:
        st.info("No budget set for this month yet.")

    with st.form("budget_form"):
        amount = st.text_input("Monthly budget amount")
        label = "Update Budget" if overview['budget'] is not None else "Set Budget"
        if st.form_submit_button(label):
            _run(state.save_budget, amount)


def render_analytics(state: AppState) -> None:
    st.header("📈 Dashboard")
    cache = load_cache(state.cache_path)
    options = list(PERIOD_OPTIONS)
    saved = cache.get('dashboard_period')
    period = st.selectbox(
        "Period",
        options=options,
        index=options.index(saved) if saved in options else 1,
        format_func=PERIOD_OPTIONS.get,
    )
    if period != saved:
        cache['dashboard_period'] = period
        save_cache(cache, state.cache_path)
    data = state.dashboard(period)

    col1, col2, col3 = st.columns(3)
    col1.metric("Total Income", format_currency(data['total_income']))
    col2.metric("Total Expenses", format_currency(data['total_expenses']))
    col3.metric("Net Savings", format_currency(data['net_savings']))

    monthly = data['monthly']
    st.plotly_chart(viz.create_spending_trend_chart(monthly), use_container_width=True)
    col1, col2 = st.columns(2)
    col1.plotly_chart(viz.create_category_pie_chart(data['categories']), use_container_width=True)
    col2.plotly_chart(viz.create_payment_method_pie_chart(data['payment_methods']), use_container_width=True)
    st.plotly_chart(viz.create_budget_utilization_chart(monthly), use_container_width=True)
    col1, col2 = st.columns(2)
    col1.plotly_chart(viz.create_income_trend_chart(monthly), use_container_width=True)
    col2.plotly_chart(viz.create_income_vs_expense_chart(monthly), use_container_width=True)


def _render_asset(asset) -> None:
    roi = asset_roi(asset)
    days = days_until_maturity(asset)
    st.markdown(f"**{asset.type_icon} {asset.asset_name}** ({asset.type_label})")
    line = f"Current: {format_currency(asset.current_amount, max_fraction_digits=0)}"
    if asset.asset_type != 'bank':
        line += f" · Invested: {format_currency(asset.invested_amount, max_fraction_digits=0)}"
    if roi is not None:
        line += f" · {'📈' if roi >= 0 else '📉'} {roi:.2f}% ROI"
    st.write(line)
    if days is not None:
        status = maturity_status(days)
        message = "🎉 Matured!" if days <= 0 else f"⏰ {days} days until maturity"
        st.caption(f"{message} ({status})")


def render_transactions(state: AppState) -> None:
    st.header("🧾 Transactions")
    names = {c.id: f"{c.icon} {c.name}" for c in state.categories}

    st.subheader("Expenses")
    if not state.expenses:
        st.info("No expenses yet.")
    for expense in state.expenses:
        title = (
            f"{format_date(expense.transaction_date)} · {names.get(expense.category_id, '📦 Uncategorized')}"
            f" · {expense.title} · {format_currency(expense.amount)}"
        )
        with st.expander(title):
            with st.form(f"edit_expense_{expense.id}"):
                values = _expense_fields(state, f"expense_{expense.id}", expense)
                if st.form_submit_button("Save"):
                    _run(state.update_expense, expense.id, values)
            if st.button("🗑️ Delete", key=f"del_txn_expense_{expense.id}"):
                _run(state.request_delete, 'expense', expense.id, expense.title)
                st.rerun()

    st.subheader("Income")
    if not state.incomes:
        st.info("No income recorded yet.")
    for income in state.incomes:
        with st.expander(f"{format_date(income.date)} · 💼 {income.source} · {format_currency(income.amount)}"):
            with st.form(f"edit_income_{income.id}"):
                values = _income_fields(f"income_{income.id}", income)
                if st.form_submit_button("Save"):
                    _run(state.update_income, income.id, values)
            if st.button("🗑️ Delete", key=f"del_txn_income_{income.id}"):
                _run(state.request_delete, 'income', income.id, income.source)
                st.rerun()


def _asset_fields(key: str, asset: Optional[WealthAsset] = None) -> Dict[str, Any]:
    types = list(ASSET_TYPES)

    def amount(value):
        return f"{value:g}" if value is not None else ""

    return {
        'asset_type': st.selectbox(
            "Type", options=types,
            index=types.index(asset.asset_type) if asset and asset.asset_type in types else 0,
            format_func=lambda t: ASSET_TYPE_LABELS[t]['label'],
            key=f"{key}_type",
        ),
        'asset_name': st.text_input("Name", value=asset.asset_name if asset else "", key=f"{key}_name"),
        'invested_amount': st.text_input(
            "Invested amount", value=amount(asset.invested_amount) if asset else "", key=f"{key}_invested"
        ),
        'current_amount': st.text_input(
            "Current amount", value=amount(asset.current_amount) if asset else "", key=f"{key}_current"
        ),
        'maturity_amount': st.text_input(
            "Maturity amount (FD only)", value=amount(asset.maturity_amount) if asset else "", key=f"{key}_maturity"
        ),
        'maturity_date': st.text_input(
            "Maturity date (FD only, YYYY-MM-DD)",
            value=asset.maturity_date.isoformat() if asset and asset.maturity_date else "",
            key=f"{key}_maturity_date",
        ),
        'notes': st.text_area("Notes", value=asset.notes if asset else "", key=f"{key}_notes"),
    }


def render_wealth(state: AppState) -> None:
    st.header("💎 Wealth")
    summary = state.wealth_summary()
    view = st.radio("View", ["My Wealth", "Family Wealth"], horizontal=True)
    figures = summary['mine'] if view == "My Wealth" else summary['family']

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total", format_currency(figures['total'], max_fraction_digits=0))
    col2.metric("Invested", format_currency(figures['invested'], max_fraction_digits=0))
    col3.metric("Gains", format_currency(figures['gains'], max_fraction_digits=0))
    col4.metric("ROI", format_percent(figures['roi'], 2))
    st.plotly_chart(viz.create_wealth_breakdown_chart(figures['by_type']), use_container_width=True)

    views = summary['views']
    candidates = state.sharing_candidates()
    selected_type = st.selectbox(
        "Asset type", options=['all'] + list(ASSET_TYPES),
        format_func=lambda t: 'All' if t == 'all' else ASSET_TYPE_LABELS[t]['label'],
    )
    for asset_type, assets in group_assets_by_type(views.my_wealth, selected_type).items():
        st.subheader(f"{ASSET_TYPE_LABELS[asset_type]['icon']} {ASSET_TYPE_LABELS[asset_type]['label']}")
        for asset in assets:
            _render_asset(asset)
            with st.expander("✏️ Edit"):
                with st.form(f"edit_asset_{asset.id}"):
                    values = _asset_fields(f"asset_{asset.id}", asset)
                    shared_with = st.multiselect(
                        "Share with",
                        options=sorted(set(candidates) | set(asset.shared_with)),
                        default=asset.shared_with,
                        key=f"asset_{asset.id}_share",
                    )
                    if st.form_submit_button("Save Asset"):
                        _run(state.update_wealth_asset, asset.id, values, shared_with)
            if st.button("🗑️ Delete", key=f"del_asset_{asset.id}"):
                _run(state.request_delete, 'wealth_asset', asset.id, asset.asset_name)
                st.rerun()

    if views.shared_assets:
        st.subheader("👥 Shared with you")
        for asset in views.shared_assets:
            _render_asset(asset)

    with st.form("wealth_form", clear_on_submit=True):
        st.subheader("Add Asset")
        values = _asset_fields("new_asset")
        shared_with = st.multiselect("Share with", options=candidates)
        if st.form_submit_button("Save Asset"):
            _run(state.add_wealth_asset, values, shared_with)


def render_members(state: AppState) -> None:
    st.subheader("Family Members")
    for member in state.members:
        is_admin = member.role == 'admin'
        you = " (you)" if member.user_id == state.user_id else ""
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.write(f"{'👑 Admin' if is_admin else '👤 Member'} · {member.user_id}{you}")
        if not state.is_admin or member.user_id == state.user_id:
            continue
        if not is_admin and col2.button("Promote", key=f"promote_{member.user_id}"):
            _run(state.promote_member, member.user_id)
            st.rerun()
        if col3.button("Remove", key=f"remove_{member.user_id}"):
            _run(state.remove_member, member.user_id)
            st.rerun()

    if state.is_admin:
        with st.form("member_form", clear_on_submit=True):
            user_id = st.text_input("User ID to add")
            if st.form_submit_button("Add Member"):
                _run(state.add_member, user_id)
    else:
        st.caption("Ask a family admin to add new members.")


def render_settings(state: AppState) -> None:
    st.header("⚙️ Settings")
    with st.form("family_form", clear_on_submit=True):
        name = st.text_input("New family name")
        if st.form_submit_button("Create Family"):
            _run(state.create_family, name)

    if state.current_family is None:
        return

    render_members(state)

    st.subheader("Categories")
    for category in state.categories:
        with st.expander(f"{category.icon} {category.name} ({category.type})"):
            with st.form(f"edit_category_{category.id}"):
                values = {
                    'name': st.text_input("Name", value=category.name, key=f"category_{category.id}_name"),
                    'icon': st.text_input("Icon", value=category.icon or "📦", key=f"category_{category.id}_icon"),
                    'type': st.selectbox(
                        "Type", options=['expense', 'income'],
                        index=1 if category.type == 'income' else 0,
                        key=f"category_{category.id}_type",
                    ),
                }
                if st.form_submit_button("Save"):
                    _run(state.update_category, category.id, values)
            if st.button("🗑️ Delete", key=f"del_category_{category.id}"):
                _run(state.request_delete, 'category', category.id, category.name)
                st.rerun()
    with st.form("category_form", clear_on_submit=True):
        values = {
            'name': st.text_input("Category name"),
            'icon': st.text_input("Icon", value="📦"),
            'type': st.selectbox("Type", options=['expense', 'income']),
        }
        if st.form_submit_button("Add Category"):
            _run(state.add_category, values)

    st.subheader("Payment Methods")
    method_types = list(PAYMENT_METHOD_TYPES)
    for method in state.payment_methods:
        with st.expander(f"{method.name} ({method.type})"):
            with st.form(f"edit_method_{method.id}"):
                values = {
                    'name': st.text_input("Name", value=method.name, key=f"method_{method.id}_name"),
                    'type': st.selectbox(
                        "Type", options=method_types,
                        index=method_types.index(method.type) if method.type in method_types else 0,
                        key=f"method_{method.id}_type",
                    ),
                }
                if st.form_submit_button("Save"):
                    _run(state.update_payment_method, method.id, values)
            if st.button("🗑️ Delete", key=f"del_method_{method.id}"):
                _run(state.request_delete, 'payment_method', method.id, method.name)
                st.rerun()
    with st.form("payment_method_form", clear_on_submit=True):
        values = {
            'name': st.text_input("Payment method name"),
            'type': st.selectbox("Type", options=method_types, key="method_type"),
        }
        if st.form_submit_button("Add Payment Method"):
            _run(state.add_payment_method, values)

    if state.is_admin:
        if st.button(f"Delete family '{state.current_family.name}'"):
            _run(state.request_delete, 'family', state.current_family.id, state.current_family.name)
            st.rerun()


def main() -> None:
    """Entry point for the Streamlit app."""
    config.configure_logging()
    config.ensure_data_directories()
    st.set_page_config(page_title="Family Budget", page_icon="💰", layout="wide")

    user_id = st.sidebar.text_input("User ID", value=config.DEFAULT_USER_ID).strip()
    if not user_id:
        st.info("Enter your user id in the sidebar to begin.")
        st.stop()

    try:
        state = _get_state(user_id)
    except FamilyBudgetError as exc:
        st.error(str(exc))
        st.stop()

    page = render_sidebar(state)
    render_pending_confirmation(state)

    if state.current_family is None and page not in ("Settings", "Wealth"):
        st.info("👨‍👩‍👧‍👦 No family selected. Create or select a family from Settings to start budgeting.")
        return

    if page == "Overview":
        render_overview(state)
    elif page == "Transactions":
        render_transactions(state)
    elif page == "Budget":
        render_budget(state)
    elif page == "Dashboard":
        render_analytics(state)
    elif page == "Wealth":
        render_wealth(state)
    else:
        render_settings(state)


if __name__ == "__main__":
    main()
