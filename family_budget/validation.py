"""Form validation run before anything is written to the database.

Each validator takes the raw form values (usually strings straight from an
input widget), normalises them, and returns a dictionary ready to hand to
:class:`family_budget.db.Database`.  Problems raise
:class:`~family_budget.errors.ValidationError` naming the offending field.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .errors import ValidationError
from .models import (
    ASSET_TYPES,
    CATEGORY_TYPES,
    PAYMENT_METHOD_TYPES,
    parse_amount,
    parse_date,
    parse_datetime,
)


def _required_text(values: Mapping[str, Any], key: str, label: str) -> str:
    text = str(values.get(key) or '').strip()
    if not text:
        raise ValidationError(key, f"{label} is required")
    return text


def _amount(values: Mapping[str, Any], key: str, label: str, *, positive: bool = True) -> float:
    raw = values.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(key, f"{label} is required")
    amount = parse_amount(raw)
    if amount is None:
        raise ValidationError(key, f"{label} must be a number")
    if positive and amount <= 0:
        raise ValidationError(key, f"{label} must be greater than zero")
    if amount < 0:
        raise ValidationError(key, f"{label} cannot be negative")
    return amount


def _optional_amount(values: Mapping[str, Any], key: str, label: str) -> Optional[float]:
    raw = values.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return _amount(values, key, label, positive=False)


def _choice(values: Mapping[str, Any], key: str, label: str, choices) -> str:
    value = str(values.get(key) or '').strip()
    if value not in choices:
        raise ValidationError(key, f"{label} must be one of: {', '.join(choices)}")
    return value


def validate_expense(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate an expense form.

    ``category_id`` and ``payment_method_id`` are optional references;
    ``transaction_date`` accepts a date, datetime or ISO string.
    """
    title = _required_text(values, 'title', 'Title')
    amount = _amount(values, 'amount', 'Amount')
    transaction_date = parse_datetime(values.get('transaction_date'))
    if transaction_date is None:
        raise ValidationError('transaction_date', 'Date is required')
    return {
        'title': title,
        'amount': amount,
        'transaction_date': transaction_date,
        'category_id': values.get('category_id') or None,
        'payment_method_id': values.get('payment_method_id') or None,
        'description': str(values.get('description') or '').strip(),
    }


def validate_income(values: Mapping[str, Any]) -> Dict[str, Any]:
    source = _required_text(values, 'source', 'Source')
    amount = _amount(values, 'amount', 'Amount')
    income_date = parse_date(values.get('date'))
    if income_date is None:
        raise ValidationError('date', 'Date is required')
    return {'source': source, 'amount': amount, 'date': income_date}


def validate_budget_amount(raw: Any) -> float:
    """Parse the monthly budget input; it must be a positive number."""
    amount = parse_amount(raw)
    if amount is None or amount <= 0:
        raise ValidationError('amount', 'Please enter a valid budget amount')
    return amount


def validate_category(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        'name': _required_text(values, 'name', 'Name'),
        'icon': str(values.get('icon') or '').strip() or '📦',
        'type': _choice(values, 'type', 'Type', CATEGORY_TYPES),
    }


def validate_payment_method(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        'name': _required_text(values, 'name', 'Name'),
        'type': _choice(values, 'type', 'Type', PAYMENT_METHOD_TYPES),
    }


def validate_family_name(raw: Any) -> str:
    return _required_text({'name': raw}, 'name', 'Family name')


def validate_member_user_id(raw: Any) -> str:
    return _required_text({'user_id': raw}, 'user_id', 'User ID')


def validate_wealth_asset(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a wealth asset form.

    Bank balances need only a current amount; every other type needs the
    invested amount too.  Fixed deposits additionally need a maturity amount
    and date, which are dropped for all other types.
    """
    asset_type = _choice(values, 'asset_type', 'Asset type', ASSET_TYPES)
    asset_name = _required_text(values, 'asset_name', 'Name')
    current_amount = _amount(values, 'current_amount', 'Current amount', positive=False)

    if asset_type == 'bank':
        invested_amount = _optional_amount(values, 'invested_amount', 'Invested amount')
    else:
        invested_amount = _amount(values, 'invested_amount', 'Invested amount', positive=False)

    maturity_amount = None
    maturity_date = None
    if asset_type == 'fd':
        maturity_amount = _amount(values, 'maturity_amount', 'Maturity amount', positive=False)
        maturity_date = parse_date(values.get('maturity_date'))
        if maturity_date is None:
            raise ValidationError('maturity_date', 'Maturity date is required')

    return {
        'asset_type': asset_type,
        'asset_name': asset_name,
        'invested_amount': invested_amount,
        'current_amount': current_amount,
        'maturity_amount': maturity_amount,
        'maturity_date': maturity_date,
        'notes': str(values.get('notes') or '').strip(),
    }
