"""Plotly visualisation helpers for the family budget dashboard.

Each function accepts one of the DataFrames produced by
:mod:`family_budget.calculations` or :mod:`family_budget.wealth` and returns
a ``plotly.graph_objects.Figure`` that Streamlit renders via
``st.plotly_chart``.  Empty input yields a blank figure titled
"No data to display" rather than an error.
"""

from __future__ import annotations

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .calculations import CHART_COLORS, chart_color

INCOME_COLOR = '#10b981'
EXPENSE_COLOR = '#ef4444'
BUDGET_COLOR = '#6366f1'


def _empty_figure(title: str = "No data to display") -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title=title)
    return fig


def create_spending_trend_chart(monthly: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Line chart of monthly spending.

    Parameters
    ----------
    monthly : pandas.DataFrame
        Output of :func:`~family_budget.calculations.build_monthly_series`.
    title : str, optional
        Chart title.

    Returns
    -------
    plotly.graph_objects.Figure
        Interactive line chart.
    """
    if monthly.empty:
        return _empty_figure()
    fig = px.line(monthly, x="Month", y="Spending", markers=True)
    fig.update_traces(line_color=EXPENSE_COLOR)
    fig.update_layout(title=title or "Spending Trend", xaxis_title="Month", yaxis_title="Amount")
    return fig


def create_income_trend_chart(monthly: pd.DataFrame, title: str | None = None) -> go.Figure:
    if monthly.empty:
        return _empty_figure()
    fig = px.bar(monthly, x="Month", y="Income")
    fig.update_traces(marker_color=INCOME_COLOR)
    fig.update_layout(title=title or "Income Trend", xaxis_title="Month", yaxis_title="Amount")
    return fig


def create_income_vs_expense_chart(monthly: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Grouped bars comparing income and spending per month."""
    if monthly.empty:
        return _empty_figure()
    fig = go.Figure()
    fig.add_trace(go.Bar(name="Income", x=monthly["Month"], y=monthly["Income"], marker_color=INCOME_COLOR))
    fig.add_trace(go.Bar(name="Expenses", x=monthly["Month"], y=monthly["Spending"], marker_color=EXPENSE_COLOR))
    fig.update_layout(
        title=title or "Income vs Expenses",
        barmode="group",
        xaxis_title="Month",
        yaxis_title="Amount",
    )
    return fig


def create_budget_utilization_chart(monthly: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Grouped bars of each month's budget against what was spent."""
    if monthly.empty:
        return _empty_figure()
    fig = go.Figure()
    fig.add_trace(go.Bar(name="Budget", x=monthly["Month"], y=monthly["Budget"], marker_color=BUDGET_COLOR))
    fig.add_trace(go.Bar(name="Spent", x=monthly["Month"], y=monthly["Budget Spent"], marker_color=EXPENSE_COLOR))
    fig.update_layout(
        title=title or "Budget Utilization",
        barmode="group",
        xaxis_title="Month",
        yaxis_title="Amount",
    )
    return fig


def create_category_pie_chart(categories: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Donut chart of spending by category.

    Uses the ``color`` column when present (see
    :func:`~family_budget.calculations.category_breakdown`), otherwise
    assigns palette colors by position.
    """
    if categories.empty:
        return _empty_figure()
    labels = [f"{icon} {name}" for icon, name in zip(categories["icon"], categories["name"])]
    colors = (
        list(categories["color"]) if "color" in categories.columns
        else [chart_color(i) for i in range(len(categories))]
    )
    fig = go.Figure(go.Pie(labels=labels, values=categories["total"], hole=0.4, marker_colors=colors))
    fig.update_layout(title=title or "Spending by Category")
    return fig


def create_payment_method_pie_chart(payments: pd.DataFrame, title: str | None = None) -> go.Figure:
    if payments.empty:
        return _empty_figure()
    fig = go.Figure(go.Pie(
        labels=payments["name"],
        values=payments["value"],
        hole=0.4,
        marker_colors=list(payments["color"]),
    ))
    fig.update_layout(title=title or "Spending by Payment Method")
    return fig


def create_wealth_breakdown_chart(by_type: pd.DataFrame, title: str | None = None) -> go.Figure:
    """Donut chart of wealth by asset type, legend ordered by total."""
    if by_type.empty:
        return _empty_figure()
    labels = [f"{icon} {label}" for icon, label in zip(by_type["icon"], by_type["label"])]
    fig = go.Figure(go.Pie(
        labels=labels,
        values=by_type["total"],
        hole=0.5,
        sort=False,
        marker_colors=CHART_COLORS[:len(by_type)],
    ))
    fig.update_layout(title=title or "Wealth by Asset Type")
    return fig
