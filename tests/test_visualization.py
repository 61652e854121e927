from datetime import date, datetime

import pandas as pd

from family_budget import visualization as viz
from family_budget.calculations import build_dashboard
from family_budget.models import Category, Expense, Income, PaymentMethod, WealthAsset
from family_budget.wealth import summarize_wealth


def _dashboard():
    expenses = [
        Expense('e1', 'f1', 'u1', 120.0, datetime(2024, 6, 3), category_id='c1', payment_method_id='pm1'),
        Expense('e2', 'f1', 'u1', 80.0, datetime(2024, 5, 9), category_id='c2', payment_method_id='pm1'),
    ]
    incomes = [Income('i1', 'f1', 'u1', 'Salary', 1000.0, date(2024, 6, 1))]
    categories = [Category('c1', 'f1', 'Food', '🍔'), Category('c2', 'f1', 'Fuel', '⛽')]
    methods = [PaymentMethod('pm1', 'f1', 'Cash', 'cash')]
    return build_dashboard(expenses, incomes, [], categories, methods, '3months', date(2024, 6, 15))


def test_empty_frames_give_placeholder_figures():
    for make_chart in (
        viz.create_spending_trend_chart,
        viz.create_income_trend_chart,
        viz.create_income_vs_expense_chart,
        viz.create_budget_utilization_chart,
        viz.create_category_pie_chart,
        viz.create_payment_method_pie_chart,
        viz.create_wealth_breakdown_chart,
    ):
        fig = make_chart(pd.DataFrame())
        assert fig.layout.title.text == 'No data to display'
        assert len(fig.data) == 0


def test_monthly_charts():
    monthly = _dashboard()['monthly']
    trend = viz.create_spending_trend_chart(monthly)
    assert list(trend.data[0].y) == [0.0, 80.0, 120.0]

    comparison = viz.create_income_vs_expense_chart(monthly)
    assert [trace.name for trace in comparison.data] == ['Income', 'Expenses']

    utilization = viz.create_budget_utilization_chart(monthly, title='June')
    assert [trace.name for trace in utilization.data] == ['Budget', 'Spent']
    assert utilization.layout.title.text == 'June'


def test_pie_charts_use_breakdown_colors():
    data = _dashboard()
    categories = viz.create_category_pie_chart(data['categories'])
    assert list(categories.data[0].labels) == ['🍔 Food', '⛽ Fuel']
    assert list(categories.data[0].marker.colors) == list(data['categories']['color'])

    payments = viz.create_payment_method_pie_chart(data['payment_methods'])
    assert list(payments.data[0].values) == [200.0]


def test_wealth_breakdown_chart():
    by_type = summarize_wealth([
        WealthAsset('b1', 'u1', 'bank', 'Savings', 5000.0),
        WealthAsset('s1', 'u1', 'stock', 'Shares', 400.0, invested_amount=500.0),
    ])['by_type']
    fig = viz.create_wealth_breakdown_chart(by_type)
    assert list(fig.data[0].labels) == ['💰 Bank', '📊 Stock']
