"""SQLite persistence for families, transactions, budgets and wealth assets.

Every call opens its own connection, so a :class:`Database` can be shared
freely between Streamlit reruns.  Mutations return the authoritative row as
stored, which callers use to replace their cached copy.  Any failure surfaces
as :class:`~family_budget.errors.PersistenceError` with a readable message.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pandas as pd

from .config import DB_PATH
from .errors import PersistenceError
from .models import (
    Budget,
    Category,
    Expense,
    Family,
    FamilyMember,
    Income,
    PaymentMethod,
    WealthAsset,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS families (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS family_members (
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'member',
    joined_at TEXT,
    PRIMARY KEY (family_id, user_id)
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    icon TEXT,
    type TEXT NOT NULL DEFAULT 'expense'
);

CREATE TABLE IF NOT EXISTS payment_methods (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'other'
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    user_id TEXT,
    category_id TEXT,
    payment_method_id TEXT,
    title TEXT,
    amount REAL NOT NULL,
    description TEXT,
    transaction_date TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS incomes (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    user_id TEXT,
    source TEXT,
    amount REAL NOT NULL,
    date TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    amount REAL NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    created_by TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS wealth_assets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    asset_type TEXT NOT NULL,
    asset_name TEXT NOT NULL,
    invested_amount REAL,
    current_amount REAL NOT NULL,
    maturity_amount REAL,
    maturity_date TEXT,
    notes TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS wealth_sharing (
    asset_id TEXT NOT NULL REFERENCES wealth_assets(id) ON DELETE CASCADE,
    shared_with_user_id TEXT NOT NULL,
    PRIMARY KEY (asset_id, shared_with_user_id)
);

CREATE INDEX IF NOT EXISTS ix_expenses_family ON expenses (family_id, transaction_date);
CREATE INDEX IF NOT EXISTS ix_incomes_family ON incomes (family_id, date);
CREATE INDEX IF NOT EXISTS ix_budgets_family ON budgets (family_id, start_date);
CREATE INDEX IF NOT EXISTS ix_members_user ON family_members (user_id);
CREATE INDEX IF NOT EXISTS ix_wealth_owner ON wealth_assets (user_id);
CREATE INDEX IF NOT EXISTS ix_sharing_user ON wealth_sharing (shared_with_user_id);
"""

# Writable columns per table; anything else in a values dict is ignored.
TABLE_COLUMNS: Dict[str, Sequence[str]] = {
    'categories': ('name', 'icon', 'type'),
    'payment_methods': ('name', 'type'),
    'expenses': ('category_id', 'payment_method_id', 'title', 'amount', 'description', 'transaction_date'),
    'incomes': ('source', 'amount', 'date'),
    'wealth_assets': (
        'asset_type', 'asset_name', 'invested_amount', 'current_amount',
        'maturity_amount', 'maturity_date', 'notes',
    ),
}

DEFAULT_CATEGORIES = [
    {'name': 'Food & Dining', 'icon': '🍔', 'type': 'expense'},
    {'name': 'Transportation', 'icon': '🚗', 'type': 'expense'},
    {'name': 'Shopping', 'icon': '🛍️', 'type': 'expense'},
    {'name': 'Entertainment', 'icon': '🎬', 'type': 'expense'},
    {'name': 'Bills & Utilities', 'icon': '💡', 'type': 'expense'},
    {'name': 'Healthcare', 'icon': '🏥', 'type': 'expense'},
    {'name': 'Salary', 'icon': '💼', 'type': 'income'},
    {'name': 'Freelance', 'icon': '💻', 'type': 'income'},
    {'name': 'Investments', 'icon': '📈', 'type': 'income'},
]

DEFAULT_PAYMENT_METHODS = [
    {'name': 'Cash', 'type': 'cash'},
    {'name': 'Credit Card', 'type': 'credit_card'},
    {'name': 'Bank Account', 'type': 'bank'},
]


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now().isoformat(timespec='seconds')


def _to_db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec='seconds')
    if isinstance(value, date):
        return value.isoformat()
    return value


class Database:
    """Family budget storage backed by a single SQLite file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else DB_PATH

    # -- plumbing -----------------------------------------------------------

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            logger.error("Database error while trying to %s: %s", action, exc)
            raise PersistenceError(f"Failed to {action}. Please try again.") from exc

    def init_db(self) -> None:
        with self._guard('initialise the database'), self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self.connect() as conn:
            df = pd.read_sql_query(sql, conn, params=list(params))
        df = df.astype(object).where(df.notna(), None)
        return df.to_dict('records')

    def _fetch_row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return rows[0] if rows else None

    @staticmethod
    def _insert_with(conn: sqlite3.Connection, table: str, values: Mapping[str, Any]) -> str:
        row = {key: _to_db_value(value) for key, value in values.items()}
        row.setdefault('id', _new_id())
        columns = ', '.join(row)
        placeholders = ', '.join('?' for _ in row)
        conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", list(row.values()))
        return row['id']

    def _insert(self, table: str, values: Mapping[str, Any]) -> str:
        with self.connect() as conn:
            row_id = self._insert_with(conn, table, values)
            conn.commit()
        return row_id

    def _update(self, table: str, row_id: str, values: Mapping[str, Any]) -> bool:
        allowed = TABLE_COLUMNS[table]
        updates = {k: _to_db_value(v) for k, v in values.items() if k in allowed}
        if not updates:
            return False
        assignments = ', '.join(f"{column} = ?" for column in updates)
        with self.connect() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                list(updates.values()) + [row_id],
            )
            conn.commit()
            return cursor.rowcount > 0

    def _delete(self, table: str, row_id: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            conn.commit()
            return cursor.rowcount > 0

    def _writable(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in values.items() if k in TABLE_COLUMNS[table]}

    # -- families -----------------------------------------------------------

    def create_family(self, name: str, user_id: str) -> Family:
        """Create a family with ``user_id`` as admin plus default categories
        and payment methods."""
        with self._guard('create the family'), self.connect() as conn:
            # single transaction: nothing is kept unless every insert succeeds
            family_id = self._insert_with(conn, 'families', {'name': name, 'created_at': _now()})
            conn.execute(
                "INSERT INTO family_members (family_id, user_id, role, joined_at) VALUES (?, ?, 'admin', ?)",
                (family_id, user_id, _now()),
            )
            for category in DEFAULT_CATEGORIES:
                self._insert_with(conn, 'categories', dict(category, family_id=family_id))
            for method in DEFAULT_PAYMENT_METHODS:
                self._insert_with(conn, 'payment_methods', dict(method, family_id=family_id))
            conn.commit()
        logger.info("Created family %s for user %s", family_id, user_id)
        return Family(id=family_id, name=name, user_role='admin')

    def delete_family(self, family_id: str) -> bool:
        with self._guard('delete the family'):
            deleted = self._delete('families', family_id)
        if not deleted:
            raise PersistenceError(
                'No family was deleted. You may not have permission to delete this family.'
            )
        return True

    def fetch_families(self, user_id: str) -> List[Family]:
        """Families ``user_id`` belongs to, with their role in each."""
        sql = (
            "SELECT f.id, f.name, m.role AS user_role FROM family_members m "
            "JOIN families f ON f.id = m.family_id WHERE m.user_id = ? "
            "ORDER BY f.created_at ASC, f.name ASC"
        )
        with self._guard('load families'):
            rows = self._query(sql, (user_id,))
        return [Family(id=r['id'], name=r['name'], user_role=r['user_role']) for r in rows]

    def add_member(self, family_id: str, user_id: str, role: str = 'member') -> FamilyMember:
        with self._guard('add the family member'), self.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO family_members (family_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (family_id, user_id, role, _now()),
            )
            conn.commit()
        return FamilyMember(family_id=family_id, user_id=user_id, role=role)

    def remove_member(self, family_id: str, user_id: str) -> bool:
        with self._guard('remove the family member'), self.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM family_members WHERE family_id = ? AND user_id = ?",
                (family_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def update_member_role(self, family_id: str, user_id: str, role: str) -> FamilyMember:
        with self._guard('update the member role'), self.connect() as conn:
            cursor = conn.execute(
                "UPDATE family_members SET role = ? WHERE family_id = ? AND user_id = ?",
                (role, family_id, user_id),
            )
            conn.commit()
            updated = cursor.rowcount > 0
        if not updated:
            raise PersistenceError('Family member not found.')
        return FamilyMember(family_id=family_id, user_id=user_id, role=role)

    def fetch_members(self, family_id: str) -> List[FamilyMember]:
        with self._guard('load family members'):
            rows = self._query(
                "SELECT family_id, user_id, role FROM family_members WHERE family_id = ? ORDER BY joined_at",
                (family_id,),
            )
        return [FamilyMember(**r) for r in rows]

    def fetch_co_members(self, user_id: str) -> List[FamilyMember]:
        """Rosters of every family ``user_id`` belongs to (for sharing)."""
        sql = (
            "SELECT m.family_id, m.user_id, m.role FROM family_members m "
            "WHERE m.family_id IN (SELECT family_id FROM family_members WHERE user_id = ?) "
            "ORDER BY m.family_id, m.joined_at"
        )
        with self._guard('load family members'):
            rows = self._query(sql, (user_id,))
        return [FamilyMember(**r) for r in rows]

    # -- expenses -----------------------------------------------------------

    def fetch_expenses(self, family_id: str) -> List[Expense]:
        with self._guard('load expenses'):
            rows = self._query(
                "SELECT * FROM expenses WHERE family_id = ? ORDER BY transaction_date DESC, created_at DESC",
                (family_id,),
            )
        return [Expense.from_row(r) for r in rows]

    def add_expense(self, family_id: str, user_id: str, values: Mapping[str, Any]) -> Expense:
        with self._guard('add the expense'):
            expense_id = self._insert('expenses', dict(
                self._writable('expenses', values),
                family_id=family_id, user_id=user_id, created_at=_now(),
            ))
            return Expense.from_row(self._fetch_row('expenses', expense_id))

    def update_expense(self, expense_id: str, values: Mapping[str, Any]) -> Expense:
        with self._guard('update the expense'):
            self._update('expenses', expense_id, values)
            row = self._fetch_row('expenses', expense_id)
        if row is None:
            raise PersistenceError('Expense not found.')
        return Expense.from_row(row)

    def delete_expense(self, expense_id: str) -> bool:
        with self._guard('delete the expense'):
            return self._delete('expenses', expense_id)

    # -- incomes ------------------------------------------------------------

    def fetch_incomes(self, family_id: str) -> List[Income]:
        with self._guard('load incomes'):
            rows = self._query(
                "SELECT * FROM incomes WHERE family_id = ? ORDER BY date DESC, created_at DESC",
                (family_id,),
            )
        return [Income.from_row(r) for r in rows]

    def add_income(self, family_id: str, user_id: str, values: Mapping[str, Any]) -> Income:
        with self._guard('add the income'):
            income_id = self._insert('incomes', dict(
                self._writable('incomes', values),
                family_id=family_id, user_id=user_id, created_at=_now(),
            ))
            return Income.from_row(self._fetch_row('incomes', income_id))

    def update_income(self, income_id: str, values: Mapping[str, Any]) -> Income:
        with self._guard('update the income'):
            self._update('incomes', income_id, values)
            row = self._fetch_row('incomes', income_id)
        if row is None:
            raise PersistenceError('Income not found.')
        return Income.from_row(row)

    def delete_income(self, income_id: str) -> bool:
        with self._guard('delete the income'):
            return self._delete('incomes', income_id)

    # -- budgets ------------------------------------------------------------

    def fetch_budgets(self, family_id: str) -> List[Budget]:
        with self._guard('load budgets'):
            rows = self._query(
                "SELECT * FROM budgets WHERE family_id = ? ORDER BY start_date DESC",
                (family_id,),
            )
        return [Budget.from_row(r) for r in rows]

    def upsert_budget(
        self,
        family_id: str,
        user_id: str,
        amount: float,
        start_date: date,
        end_date: date,
        budget_id: Optional[str] = None,
    ) -> Budget:
        """Insert a budget, or update the row with ``budget_id`` in place."""
        row_id = budget_id or _new_id()
        sql = (
            "INSERT INTO budgets (id, family_id, amount, start_date, end_date, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET amount = excluded.amount, "
            "start_date = excluded.start_date, end_date = excluded.end_date, "
            "created_by = excluded.created_by"
        )
        params = (
            row_id, family_id, float(amount), _to_db_value(start_date),
            _to_db_value(end_date), user_id, _now(),
        )
        with self._guard('save the budget'):
            with self.connect() as conn:
                conn.execute(sql, params)
                conn.commit()
            return Budget.from_row(self._fetch_row('budgets', row_id))

    # -- categories and payment methods ---------------------------------------

    def fetch_categories(self, family_id: str) -> List[Category]:
        with self._guard('load categories'):
            rows = self._query("SELECT * FROM categories WHERE family_id = ? ORDER BY name", (family_id,))
        return [Category(**r) for r in rows]

    def add_category(self, family_id: str, values: Mapping[str, Any]) -> Category:
        with self._guard('add the category'):
            category_id = self._insert('categories', dict(self._writable('categories', values), family_id=family_id))
            return Category(**self._fetch_row('categories', category_id))

    def update_category(self, category_id: str, values: Mapping[str, Any]) -> Category:
        with self._guard('update the category'):
            self._update('categories', category_id, values)
            row = self._fetch_row('categories', category_id)
        if row is None:
            raise PersistenceError('Category not found.')
        return Category(**row)

    def delete_category(self, category_id: str) -> bool:
        with self._guard('delete the category'):
            return self._delete('categories', category_id)

    def fetch_payment_methods(self, family_id: str) -> List[PaymentMethod]:
        with self._guard('load payment methods'):
            rows = self._query("SELECT * FROM payment_methods WHERE family_id = ? ORDER BY name", (family_id,))
        return [PaymentMethod(**r) for r in rows]

    def add_payment_method(self, family_id: str, values: Mapping[str, Any]) -> PaymentMethod:
        with self._guard('add the payment method'):
            method_id = self._insert(
                'payment_methods', dict(self._writable('payment_methods', values), family_id=family_id)
            )
            return PaymentMethod(**self._fetch_row('payment_methods', method_id))

    def update_payment_method(self, method_id: str, values: Mapping[str, Any]) -> PaymentMethod:
        with self._guard('update the payment method'):
            self._update('payment_methods', method_id, values)
            row = self._fetch_row('payment_methods', method_id)
        if row is None:
            raise PersistenceError('Payment method not found.')
        return PaymentMethod(**row)

    def delete_payment_method(self, method_id: str) -> bool:
        with self._guard('delete the payment method'):
            return self._delete('payment_methods', method_id)

    # -- wealth -------------------------------------------------------------

    def _sharing_map(self, asset_ids: Sequence[str]) -> Dict[str, List[str]]:
        if not asset_ids:
            return {}
        placeholders = ','.join('?' for _ in asset_ids)
        rows = self._query(
            f"SELECT asset_id, shared_with_user_id FROM wealth_sharing WHERE asset_id IN ({placeholders})",
            asset_ids,
        )
        shared: Dict[str, List[str]] = {}
        for row in rows:
            shared.setdefault(row['asset_id'], []).append(row['shared_with_user_id'])
        return shared

    def fetch_wealth_assets(self, user_id: str) -> List[WealthAsset]:
        """Assets owned by ``user_id`` plus assets shared with them."""
        sql = (
            "SELECT * FROM wealth_assets WHERE user_id = ? OR id IN "
            "(SELECT asset_id FROM wealth_sharing WHERE shared_with_user_id = ?) "
            "ORDER BY created_at DESC"
        )
        with self._guard('load wealth assets'):
            rows = self._query(sql, (user_id, user_id))
            shared = self._sharing_map([r['id'] for r in rows])
        return [WealthAsset.from_row(r, shared.get(r['id'])) for r in rows]

    def _replace_sharing(self, asset_id: str, shared_with: Sequence[str]) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM wealth_sharing WHERE asset_id = ?", (asset_id,))
            conn.executemany(
                "INSERT OR IGNORE INTO wealth_sharing (asset_id, shared_with_user_id) VALUES (?, ?)",
                [(asset_id, uid) for uid in shared_with],
            )
            conn.commit()

    def _fetch_asset(self, asset_id: str) -> Optional[WealthAsset]:
        row = self._fetch_row('wealth_assets', asset_id)
        if row is None:
            return None
        return WealthAsset.from_row(row, self._sharing_map([asset_id]).get(asset_id))

    def add_wealth_asset(
        self,
        user_id: str,
        values: Mapping[str, Any],
        shared_with: Sequence[str] = (),
    ) -> WealthAsset:
        with self._guard('save the asset'):
            asset_id = self._insert('wealth_assets', dict(
                self._writable('wealth_assets', values), user_id=user_id, created_at=_now(),
            ))
            self._replace_sharing(asset_id, shared_with)
            return self._fetch_asset(asset_id)

    def update_wealth_asset(
        self,
        asset_id: str,
        values: Mapping[str, Any],
        shared_with: Optional[Sequence[str]] = None,
    ) -> WealthAsset:
        """Update an asset; a non-``None`` ``shared_with`` replaces its grants."""
        with self._guard('save the asset'):
            self._update('wealth_assets', asset_id, values)
            if shared_with is not None:
                self._replace_sharing(asset_id, shared_with)
            asset = self._fetch_asset(asset_id)
        if asset is None:
            raise PersistenceError('Asset not found.')
        return asset

    def delete_wealth_asset(self, asset_id: str) -> bool:
        with self._guard('delete the asset'):
            return self._delete('wealth_assets', asset_id)
