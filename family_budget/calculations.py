"""Budget calculation and aggregation utilities.

This module turns raw expense, income and budget rows into the figures shown
on the Overview, Budget and Dashboard screens: spend-to-date and
safe-to-spend for the current budget, category totals, payment method
totals, and calendar-month series over a selectable window.

Every function is pure: it reads its arguments (plus the wall-clock date when
no ``today``/``now`` is given) and returns freshly built values.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .formatting import month_label
from .models import (
    UNCATEGORIZED_ICON,
    UNCATEGORIZED_NAME,
    Budget,
    Category,
    Expense,
    Income,
    PaymentMethod,
)

logger = logging.getLogger(__name__)

CHART_COLORS = [
    '#6366f1',  # primary
    '#a855f7',  # secondary
    '#ec4899',  # accent
    '#10b981',  # success
    '#f59e0b',  # warning
    '#3b82f6',  # blue
    '#8b5cf6',  # purple
    '#14b8a6',  # teal
    '#f97316',  # orange
    '#06b6d4',  # cyan
]

# Months to step back from the current month for each dashboard period.
PERIOD_OFFSETS = {
    'month': 0,
    '3months': 2,
    '6months': 5,
    'year': 11,
}
DEFAULT_PERIOD = '3months'

CATEGORY_COLUMNS = ['id', 'name', 'icon', 'total', 'count']
PAYMENT_COLUMNS = ['name', 'value', 'color']
MONTHLY_COLUMNS = ['Month', 'Period', 'Spending', 'Income', 'Budget', 'Budget Spent']


def _as_day(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _today(today: Optional[date]) -> date:
    return _as_day(today) if today is not None else date.today()


def chart_color(index: int) -> str:
    """Pick a palette color, cycling through ``CHART_COLORS``."""
    return CHART_COLORS[index % len(CHART_COLORS)]


# ---------------------------------------------------------------------------
# Budget selection and statistics
# ---------------------------------------------------------------------------


def select_budget(candidates: Sequence[Budget]) -> Optional[Budget]:
    """Resolve several matching budgets to one.

    The most recently created budget wins; budgets without ``created_at``
    rank lowest, and a later ``start_date`` breaks remaining ties.  When
    everything ties, input order is kept.
    """
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.warning(
            "%d budgets overlap the same period (%s); using the most recently created",
            len(candidates),
            ', '.join(str(b.id) for b in candidates),
        )
    # max() returns the first of equally ranked items
    return max(candidates, key=lambda b: (b.created_at or datetime.min, b.start_date or date.min))


def find_current_budget(budgets: Iterable[Budget], today: Optional[date] = None) -> Optional[Budget]:
    """Return the budget whose period contains ``today``."""
    day = _today(today)
    return select_budget([b for b in budgets if b.contains(day)])


def budget_for_month(budgets: Iterable[Budget], month_start: date, month_end: date) -> Optional[Budget]:
    """Return the budget whose period overlaps any day of the given month."""
    return select_budget([b for b in budgets if b.overlaps(month_start, month_end)])


def filter_by_date_range(records: Iterable[Any], start: date, end: date) -> List[Any]:
    """Keep expenses/incomes whose calendar day lies in ``[start, end]``."""
    kept = []
    for record in records:
        day = _as_day(getattr(record, 'transaction_date', None) or getattr(record, 'date', None))
        if day is not None and start <= day <= end:
            kept.append(record)
    return kept


def calculate_budget_stats(
    budget: Optional[Budget],
    expenses: Iterable[Expense],
    today: Optional[date] = None,
) -> Dict[str, float]:
    """Calculate spend-to-date figures for a budget period.

    Args:
        budget: The budget to evaluate, or ``None`` when there is none
        expenses: Every expense of the budget's family
        today: Evaluation date; defaults to the current date

    Returns:
        Dictionary with keys total, spent, remaining, percentage,
        safe_to_spend and days_left.  ``percentage`` is clamped to 100 and
        ``remaining`` never drops below zero.

    Example:
        >>> b = Budget('b1', 'f1', 10000, date(2024, 6, 1), date(2024, 6, 30))
        >>> e = [Expense('e1', 'f1', 'u1', 4000, datetime(2024, 6, 10))]
        >>> calculate_budget_stats(b, e, today=date(2024, 6, 15))['safe_to_spend']
        375.0
    """
    if budget is None:
        return {
            'total': 0.0,
            'spent': 0.0,
            'remaining': 0.0,
            'percentage': 0.0,
            'safe_to_spend': 0.0,
            'days_left': 0,
        }

    total = float(budget.amount or 0.0)
    in_period = filter_by_date_range(expenses, budget.start_date, budget.end_date)
    spent = float(sum(e.amount or 0.0 for e in in_period))
    remaining = max(0.0, total - spent)
    percentage = (spent / total * 100.0) if total > 0 else 0.0

    days_left = max(0, (budget.end_date - _today(today)).days + 1)
    safe_to_spend = remaining / days_left if days_left > 0 else 0.0

    return {
        'total': total,
        'spent': spent,
        'remaining': remaining,
        'percentage': min(100.0, percentage),
        'safe_to_spend': safe_to_spend,
        'days_left': days_left,
    }


def budget_health(percentage: float) -> str:
    """Band a (clamped) budget percentage into good / warning / danger."""
    if percentage < 50:
        return 'good'
    if percentage < 80:
        return 'warning'
    return 'danger'


def month_bounds(day: date) -> Tuple[date, date]:
    period = pd.Period(day, freq='M')
    return period.start_time.date(), period.end_time.date()


def month_progress(today: Optional[date] = None) -> float:
    """Percentage of the current calendar month elapsed, counting today."""
    day = _today(today)
    start, end = month_bounds(day)
    total_days = (end - start).days + 1
    days_passed = (day - start).days + 1
    return days_passed / total_days * 100.0


def monthly_totals(
    expenses: Sequence[Expense],
    incomes: Sequence[Income],
    today: Optional[date] = None,
) -> Dict[str, float]:
    """Expense and income totals for the calendar month containing ``today``."""
    start, end = month_bounds(_today(today))
    total_expenses = sum(e.amount for e in filter_by_date_range(expenses, start, end))
    total_income = sum(i.amount for i in filter_by_date_range(incomes, start, end))
    return {
        'expenses': float(total_expenses),
        'income': float(total_income),
        'net': float(total_income - total_expenses),
    }


# ---------------------------------------------------------------------------
# Category and payment method breakdowns
# ---------------------------------------------------------------------------


def group_by_category(expenses: Iterable[Expense], categories: Iterable[Category]) -> pd.DataFrame:
    """Group expenses by category with totals and counts.

    Args:
        expenses: Expenses to group
        categories: Known categories used to label each group

    Returns:
        DataFrame with columns id, name, icon, total, count sorted by total
        (descending, ties keep first-appearance order).  Category ids that
        match no category keep their own group, labelled Uncategorized.
    """
    lookup = {c.id: c for c in categories}
    groups: Dict[Any, Dict[str, Any]] = {}

    for expense in expenses:
        category_id = expense.category_id
        if category_id not in groups:
            category = lookup.get(category_id)
            groups[category_id] = {
                'id': category_id,
                'name': category.name if category else UNCATEGORIZED_NAME,
                'icon': category.icon if category and category.icon else UNCATEGORIZED_ICON,
                'total': 0.0,
                'count': 0,
            }
        groups[category_id]['total'] += float(expense.amount or 0.0)
        groups[category_id]['count'] += 1

    result = pd.DataFrame(list(groups.values()), columns=CATEGORY_COLUMNS)
    if result.empty:
        return result
    return result.sort_values('total', ascending=False, kind='stable').reset_index(drop=True)


def category_breakdown(expenses: Iterable[Expense], categories: Iterable[Category]) -> pd.DataFrame:
    """Category groups with a chart color assigned by position."""
    grouped = group_by_category(expenses, categories)
    grouped['color'] = [chart_color(i) for i in range(len(grouped))]
    return grouped


def payment_method_breakdown(
    expenses: Iterable[Expense],
    payment_methods: Iterable[PaymentMethod],
    color_offset: int = 0,
) -> pd.DataFrame:
    """Sum expenses per payment method name.

    Expenses without a payment method, or pointing at one that was deleted,
    are left out.  Colors continue from ``color_offset`` so the slices do
    not reuse the category colors shown beside them.
    """
    names = {pm.id: pm.name for pm in payment_methods}
    totals: Dict[str, float] = {}
    for expense in expenses:
        name = names.get(expense.payment_method_id)
        if name is None:
            continue
        totals[name] = totals.get(name, 0.0) + float(expense.amount or 0.0)

    rows = [
        {'name': name, 'value': value, 'color': chart_color(index + color_offset)}
        for index, (name, value) in enumerate(totals.items())
    ]
    return pd.DataFrame(rows, columns=PAYMENT_COLUMNS)


# ---------------------------------------------------------------------------
# Calendar-month series
# ---------------------------------------------------------------------------


def date_window(period: str = DEFAULT_PERIOD, now: Optional[date] = None) -> Tuple[date, date]:
    """Return the month-aligned ``(start, end)`` window for a period token.

    Unknown tokens fall back to three months.
    """
    offset = PERIOD_OFFSETS.get(period, PERIOD_OFFSETS[DEFAULT_PERIOD])
    current = pd.Period(_today(now), freq='M')
    start = (current - offset).start_time.date()
    end = current.end_time.date()
    return start, end


def _monthly_sums(records: Sequence[Any], date_attr: str) -> Dict[str, float]:
    frame = pd.DataFrame(
        [{'date': getattr(r, date_attr), 'amount': float(r.amount or 0.0)} for r in records],
        columns=['date', 'amount'],
    )
    frame = frame.dropna(subset=['date'])
    if frame.empty:
        return {}
    frame['Month'] = pd.to_datetime(frame['date']).dt.to_period('M')
    grouped = frame.groupby('Month')['amount'].sum()
    return {str(month): float(total) for month, total in grouped.items()}


def build_monthly_series(
    expenses: Sequence[Expense],
    incomes: Sequence[Income],
    budgets: Sequence[Budget],
    window: Tuple[date, date],
) -> pd.DataFrame:
    """Bucket transactions into calendar months across ``window``.

    Every month in the window gets a row, even without transactions.
    Spending and Income only count rows inside the window.  Budget is the
    amount of the budget overlapping that month and Budget Spent sums the
    month's expenses from the full, unfiltered expense list.

    Returns:
        DataFrame with columns Month (label such as ``Jun 2024``), Period
        (``2024-06``), Spending, Income, Budget and Budget Spent
    """
    start, end = window
    filtered_expenses = filter_by_date_range(expenses, start, end)
    filtered_incomes = filter_by_date_range(incomes, start, end)

    spending = _monthly_sums(filtered_expenses, 'transaction_date')
    income = _monthly_sums(filtered_incomes, 'date')
    all_spending = _monthly_sums(list(expenses), 'transaction_date')

    rows = []
    for month in pd.period_range(start=start, end=end, freq='M'):
        key = str(month)
        month_start = month.start_time.date()
        month_end = month.end_time.date()
        budget = budget_for_month(budgets, month_start, month_end)
        rows.append({
            'Month': month_label(month_start),
            'Period': key,
            'Spending': spending.get(key, 0.0),
            'Income': income.get(key, 0.0),
            'Budget': float(budget.amount) if budget else 0.0,
            'Budget Spent': all_spending.get(key, 0.0),
        })

    return pd.DataFrame(rows, columns=MONTHLY_COLUMNS)


def build_dashboard(
    expenses: Sequence[Expense],
    incomes: Sequence[Income],
    budgets: Sequence[Budget],
    categories: Sequence[Category],
    payment_methods: Sequence[PaymentMethod],
    period: str = DEFAULT_PERIOD,
    now: Optional[date] = None,
) -> Dict[str, Any]:
    """Compute every aggregate the Dashboard screen shows for a period.

    Returns:
        Dictionary with keys period, window, total_income, total_expenses,
        net_savings, monthly (see :func:`build_monthly_series`), categories
        (see :func:`category_breakdown`) and payment_methods (see
        :func:`payment_method_breakdown`)
    """
    window = date_window(period, now)
    filtered_expenses = filter_by_date_range(expenses, *window)
    filtered_incomes = filter_by_date_range(incomes, *window)

    total_expenses = float(sum(e.amount for e in filtered_expenses))
    total_income = float(sum(i.amount for i in filtered_incomes))

    categories_df = category_breakdown(filtered_expenses, categories)
    payments_df = payment_method_breakdown(
        filtered_expenses, payment_methods, color_offset=len(categories_df)
    )

    return {
        'period': period if period in PERIOD_OFFSETS else DEFAULT_PERIOD,
        'window': window,
        'total_income': total_income,
        'total_expenses': total_expenses,
        'net_savings': total_income - total_expenses,
        'monthly': build_monthly_series(expenses, incomes, budgets, window),
        'categories': categories_df,
        'payment_methods': payments_df,
    }
