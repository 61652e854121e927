"""Record types for families, transactions, budgets and wealth assets.

Rows coming back from the database (or typed in through a form) are turned
into these dataclasses before any aggregation runs.  Dates are plain
``datetime.date`` values, transaction timestamps are ``datetime.datetime``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

CATEGORY_TYPES = ('expense', 'income')
PAYMENT_METHOD_TYPES = ('cash', 'credit_card', 'bank', 'other')
FAMILY_ROLES = ('member', 'admin')

ASSET_TYPE_LABELS: Dict[str, Dict[str, str]] = {
    'mutual_fund': {'label': 'Mutual Fund', 'icon': '📈'},
    'stock': {'label': 'Stock', 'icon': '📊'},
    'epf': {'label': 'EPF', 'icon': '🏦'},
    'nps': {'label': 'NPS', 'icon': '🏛️'},
    'bank': {'label': 'Bank', 'icon': '💰'},
    'fd': {'label': 'Fixed Deposit', 'icon': '🏅'},
}
ASSET_TYPES = tuple(ASSET_TYPE_LABELS)

UNCATEGORIZED_NAME = 'Uncategorized'
UNCATEGORIZED_ICON = '📦'


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_datetime(value: Any) -> Optional[datetime]:
    """Coerce strings, dates and pandas timestamps into a naive datetime."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    ts = pd.to_datetime(value, errors='coerce')
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.to_pydatetime()


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def parse_amount(value: Any) -> Optional[float]:
    """Return ``value`` as a float, or ``None`` when it is missing/non-numeric."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        return None
    parsed = pd.to_numeric([value], errors='coerce')
    number = parsed[0]
    if pd.isna(number):
        return None
    return float(number)


def _amount_or_zero(value: Any) -> float:
    parsed = parse_amount(value)
    return parsed if parsed is not None else 0.0


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Family:
    id: str
    name: str
    user_role: Optional[str] = None


@dataclass
class FamilyMember:
    family_id: str
    user_id: str
    role: str = 'member'


@dataclass
class Category:
    id: str
    family_id: str
    name: str
    icon: str = UNCATEGORIZED_ICON
    type: str = 'expense'


@dataclass
class PaymentMethod:
    id: str
    family_id: str
    name: str
    type: str = 'other'


@dataclass
class Expense:
    id: str
    family_id: str
    user_id: str
    amount: float
    transaction_date: datetime
    category_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    title: str = ''
    description: str = ''

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Expense':
        return cls(
            id=row['id'],
            family_id=row['family_id'],
            user_id=row.get('user_id') or '',
            amount=_amount_or_zero(row.get('amount')),
            transaction_date=parse_datetime(row.get('transaction_date')),
            category_id=row.get('category_id'),
            payment_method_id=row.get('payment_method_id'),
            title=row.get('title') or '',
            description=row.get('description') or '',
        )


@dataclass
class Income:
    id: str
    family_id: str
    user_id: str
    source: str
    amount: float
    date: date

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Income':
        return cls(
            id=row['id'],
            family_id=row['family_id'],
            user_id=row.get('user_id') or '',
            source=row.get('source') or '',
            amount=_amount_or_zero(row.get('amount')),
            date=parse_date(row.get('date')),
        )


@dataclass
class Budget:
    id: str
    family_id: str
    amount: float
    start_date: date
    end_date: date
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Budget':
        return cls(
            id=row['id'],
            family_id=row['family_id'],
            amount=_amount_or_zero(row.get('amount')),
            start_date=parse_date(row.get('start_date')),
            end_date=parse_date(row.get('end_date')),
            created_by=row.get('created_by'),
            created_at=parse_datetime(row.get('created_at')),
        )


@dataclass
class WealthSharing:
    asset_id: str
    shared_with_user_id: str


@dataclass
class WealthAsset:
    id: str
    user_id: str
    asset_type: str
    asset_name: str
    current_amount: float
    invested_amount: Optional[float] = None
    maturity_amount: Optional[float] = None
    maturity_date: Optional[date] = None
    notes: str = ''
    created_at: Optional[datetime] = None
    shared_with: List[str] = field(default_factory=list)
    # Set by the visibility resolver; ``None`` until resolved.
    is_owner: Optional[bool] = None

    @property
    def type_label(self) -> str:
        return ASSET_TYPE_LABELS.get(self.asset_type, {}).get('label', self.asset_type)

    @property
    def type_icon(self) -> str:
        return ASSET_TYPE_LABELS.get(self.asset_type, {}).get('icon', '')

    @classmethod
    def from_row(cls, row: Mapping[str, Any], shared_with: Optional[List[str]] = None) -> 'WealthAsset':
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            asset_type=row['asset_type'],
            asset_name=row.get('asset_name') or '',
            current_amount=_amount_or_zero(row.get('current_amount')),
            invested_amount=parse_amount(row.get('invested_amount')),
            maturity_amount=parse_amount(row.get('maturity_amount')),
            maturity_date=parse_date(row.get('maturity_date')),
            notes=row.get('notes') or '',
            created_at=parse_datetime(row.get('created_at')),
            shared_with=list(shared_with or []),
        )
