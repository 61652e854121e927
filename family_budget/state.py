"""Session state for the family budget app.

:class:`AppState` is the one handle every screen receives.  It owns the
current user's families, the selected family, and a cached copy of that
family's rows.  All writes go through it:

* every mutation returns the authoritative row from the database and the
  cached collection is updated by that row's id (replaced, or prepended when
  new); deletes remove the id;
* destructive actions are two-step: :meth:`AppState.request_delete` records a
  :class:`PendingAction` and nothing happens until
  :meth:`AppState.confirm_pending` (or :meth:`AppState.cancel_pending`);
* only the owner may change or delete a wealth asset, and only admins may
  manage members or delete the family.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from . import calculations as calc
from . import wealth
from .db import Database
from .errors import (
    NoFamilySelectedError,
    PendingActionError,
    PermissionDeniedError,
    ValidationError,
)
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
from .persistent_cache import load_selected_family_id, save_selected_family_id
from .validation import (
    validate_budget_amount,
    validate_category,
    validate_expense,
    validate_family_name,
    validate_income,
    validate_member_user_id,
    validate_payment_method,
    validate_wealth_asset,
)

logger = logging.getLogger(__name__)

# kind -> (Database delete method, cached collection attribute)
DELETABLE = {
    'expense': ('delete_expense', 'expenses'),
    'income': ('delete_income', 'incomes'),
    'category': ('delete_category', 'categories'),
    'payment_method': ('delete_payment_method', 'payment_methods'),
    'wealth_asset': ('delete_wealth_asset', 'wealth_assets'),
    'family': ('delete_family', 'families'),
    'member': ('remove_member', 'members'),
}


@dataclass
class PendingAction:
    """A destructive action waiting for the user to confirm it."""

    kind: str
    target_id: str
    label: str = ''

    @property
    def prompt(self) -> str:
        name = self.label or self.kind.replace('_', ' ')
        return f"Are you sure you want to delete {name}?"


def _apply_row(
    collection: List[Any],
    row: Any,
    key: Optional[Callable[[Any], Any]] = None,
    descending: bool = True,
) -> List[Any]:
    """Replace the element with ``row.id`` or prepend ``row`` when absent.

    With ``key`` the result is re-sorted (stable) so the collection keeps the
    order the database returns it in; a new row goes first among equal keys.
    """
    updated = list(collection)
    for index, existing in enumerate(updated):
        if existing.id == row.id:
            updated[index] = row
            break
    else:
        updated.insert(0, row)
    if key is not None:
        updated.sort(key=key, reverse=descending)
    return updated


def _by_transaction_date(expense: Expense) -> datetime:
    return expense.transaction_date or datetime.min


def _by_income_date(income: Income) -> date:
    return income.date or date.min


def _by_start_date(budget: Budget) -> date:
    return budget.start_date or date.min


def _by_name(row: Any) -> str:
    return row.name


class AppState:
    """Families, the current family and its cached rows for one user."""

    def __init__(self, db: Database, user_id: str, cache_path: Optional[Path] = None):
        self.db = db
        self.user_id = user_id
        self.cache_path = cache_path
        self.families: List[Family] = []
        self.current_family: Optional[Family] = None
        self.pending: Optional[PendingAction] = None
        self._clear_family_data()
        self.wealth_assets: List[WealthAsset] = []
        self.co_members: List[FamilyMember] = []

    def _clear_family_data(self) -> None:
        self.expenses: List[Expense] = []
        self.incomes: List[Income] = []
        self.budgets: List[Budget] = []
        self.categories: List[Category] = []
        self.payment_methods: List[PaymentMethod] = []
        self.members: List[FamilyMember] = []

    def _require_family(self) -> Family:
        if self.current_family is None:
            raise NoFamilySelectedError('Please create or select a family first.')
        return self.current_family

    def _require_admin(self, action: str) -> Family:
        family = self._require_family()
        if family.user_role != 'admin':
            raise PermissionDeniedError(f"Only admins can {action}.")
        return family

    def _owned_asset(self, asset_id: str) -> WealthAsset:
        asset = next((a for a in self.wealth_assets if a.id == asset_id), None)
        if asset is None or asset.user_id != self.user_id:
            raise PermissionDeniedError('Only the owner can change or delete this asset.')
        return asset

    @property
    def is_admin(self) -> bool:
        return self.current_family is not None and self.current_family.user_role == 'admin'

    # -- families -----------------------------------------------------------

    def load_families(self) -> List[Family]:
        """Fetch the user's families and settle on a current one.

        Keeps the current family if it still exists, otherwise the saved
        selection, otherwise the first family returned.
        """
        self.families = self.db.fetch_families(self.user_id)
        by_id = {f.id: f for f in self.families}

        chosen = None
        if self.current_family is not None:
            chosen = by_id.get(self.current_family.id)
        if chosen is None:
            chosen = by_id.get(load_selected_family_id(self.cache_path))
        if chosen is None and self.families:
            chosen = self.families[0]

        self.current_family = chosen
        self.refresh()
        return self.families

    def switch_family(self, family_id: str) -> Family:
        family = next((f for f in self.families if f.id == family_id), None)
        if family is None:
            raise NoFamilySelectedError(f"You are not a member of family {family_id}.")
        self.current_family = family
        save_selected_family_id(family.id, self.cache_path)
        logger.info("User %s switched to family %s", self.user_id, family.id)
        self.refresh()
        return family

    def create_family(self, name: Any) -> Family:
        family = self.db.create_family(validate_family_name(name), self.user_id)
        self.families = self.db.fetch_families(self.user_id)
        return self.switch_family(family.id)

    def refresh(self) -> None:
        """Reload every cached collection for the current family."""
        self.wealth_assets = self.db.fetch_wealth_assets(self.user_id)
        self.co_members = self.db.fetch_co_members(self.user_id)
        if self.current_family is None:
            self._clear_family_data()
            return
        family_id = self.current_family.id
        self.expenses = self.db.fetch_expenses(family_id)
        self.incomes = self.db.fetch_incomes(family_id)
        self.budgets = self.db.fetch_budgets(family_id)
        self.categories = self.db.fetch_categories(family_id)
        self.payment_methods = self.db.fetch_payment_methods(family_id)
        self.members = self.db.fetch_members(family_id)

    # -- members ------------------------------------------------------------

    def _reload_members(self) -> None:
        family = self._require_family()
        self.members = self.db.fetch_members(family.id)
        self.co_members = self.db.fetch_co_members(self.user_id)

    def add_member(self, user_id: Any) -> FamilyMember:
        """Add ``user_id`` to the current family as a plain member."""
        family = self._require_admin('add members')
        new_id = validate_member_user_id(user_id)
        if any(m.user_id == new_id for m in self.members):
            raise ValidationError('user_id', 'This user is already a member of this family')
        member = self.db.add_member(family.id, new_id, role='member')
        logger.info("User %s added %s to family %s", self.user_id, new_id, family.id)
        self._reload_members()
        return member

    def promote_member(self, user_id: str) -> FamilyMember:
        family = self._require_admin('promote members')
        if not any(m.user_id == user_id for m in self.members):
            raise ValidationError('user_id', 'This user is not a member of this family')
        member = self.db.update_member_role(family.id, user_id, 'admin')
        self._reload_members()
        return member

    def remove_member(self, user_id: str, label: str = '') -> PendingAction:
        """Queue removal of a member; runs on :meth:`confirm_pending`."""
        return self.request_delete('member', user_id, label or user_id)

    # -- mutations ----------------------------------------------------------

    def add_expense(self, values: Mapping[str, Any]) -> Expense:
        family = self._require_family()
        row = self.db.add_expense(family.id, self.user_id, validate_expense(values))
        self.expenses = _apply_row(self.expenses, row, _by_transaction_date)
        return row

    def update_expense(self, expense_id: str, values: Mapping[str, Any]) -> Expense:
        row = self.db.update_expense(expense_id, validate_expense(values))
        self.expenses = _apply_row(self.expenses, row, _by_transaction_date)
        return row

    def add_income(self, values: Mapping[str, Any]) -> Income:
        family = self._require_family()
        row = self.db.add_income(family.id, self.user_id, validate_income(values))
        self.incomes = _apply_row(self.incomes, row, _by_income_date)
        return row

    def update_income(self, income_id: str, values: Mapping[str, Any]) -> Income:
        row = self.db.update_income(income_id, validate_income(values))
        self.incomes = _apply_row(self.incomes, row, _by_income_date)
        return row

    def save_budget(self, amount: Any, today: Optional[date] = None) -> Budget:
        """Set the budget for the month containing ``today``.

        Updates the current budget in place when there is one.
        """
        family = self._require_family()
        value = validate_budget_amount(amount)
        day = today or date.today()
        start, end = calc.month_bounds(day)
        current = calc.find_current_budget(self.budgets, day)
        row = self.db.upsert_budget(
            family.id, self.user_id, value, start, end,
            budget_id=current.id if current else None,
        )
        self.budgets = _apply_row(self.budgets, row, _by_start_date)
        return row

    def add_category(self, values: Mapping[str, Any]) -> Category:
        family = self._require_family()
        row = self.db.add_category(family.id, validate_category(values))
        self.categories = _apply_row(self.categories, row, _by_name, descending=False)
        return row

    def update_category(self, category_id: str, values: Mapping[str, Any]) -> Category:
        row = self.db.update_category(category_id, validate_category(values))
        self.categories = _apply_row(self.categories, row, _by_name, descending=False)
        return row

    def add_payment_method(self, values: Mapping[str, Any]) -> PaymentMethod:
        family = self._require_family()
        row = self.db.add_payment_method(family.id, validate_payment_method(values))
        self.payment_methods = _apply_row(self.payment_methods, row, _by_name, descending=False)
        return row

    def update_payment_method(self, method_id: str, values: Mapping[str, Any]) -> PaymentMethod:
        row = self.db.update_payment_method(method_id, validate_payment_method(values))
        self.payment_methods = _apply_row(self.payment_methods, row, _by_name, descending=False)
        return row

    def add_wealth_asset(self, values: Mapping[str, Any], shared_with: Sequence[str] = ()) -> WealthAsset:
        row = self.db.add_wealth_asset(self.user_id, validate_wealth_asset(values), shared_with)
        self.wealth_assets = _apply_row(self.wealth_assets, row)
        return row

    def update_wealth_asset(
        self,
        asset_id: str,
        values: Mapping[str, Any],
        shared_with: Optional[Sequence[str]] = None,
    ) -> WealthAsset:
        self._owned_asset(asset_id)
        row = self.db.update_wealth_asset(asset_id, validate_wealth_asset(values), shared_with)
        self.wealth_assets = _apply_row(self.wealth_assets, row)
        return row

    # -- confirmation step for deletes --------------------------------------

    def request_delete(self, kind: str, target_id: str, label: str = '') -> PendingAction:
        """Record a delete to be run by :meth:`confirm_pending`.

        Wealth assets can only be deleted by their owner; families and
        members only by an admin of the current family.
        """
        if kind not in DELETABLE:
            raise ValueError(f"Cannot delete unknown kind '{kind}'")
        if kind == 'wealth_asset':
            self._owned_asset(target_id)
        elif kind == 'family':
            family = next((f for f in self.families if f.id == target_id), None)
            if family is None or family.user_role != 'admin':
                raise PermissionDeniedError('Only admins can delete a family.')
        elif kind == 'member':
            self._require_admin('remove members')
            if target_id == self.user_id:
                raise PermissionDeniedError('You cannot remove yourself from the family.')
        self.pending = PendingAction(kind=kind, target_id=target_id, label=label)
        return self.pending

    def cancel_pending(self) -> None:
        if self.pending is None:
            raise PendingActionError('Nothing is waiting for confirmation.')
        self.pending = None

    def confirm_pending(self) -> PendingAction:
        """Run the pending delete and drop the row from the cache."""
        action = self.pending
        if action is None:
            raise PendingActionError('Nothing is waiting for confirmation.')
        self.pending = None

        if action.kind == 'member':
            family = self._require_admin('remove members')
            self.db.remove_member(family.id, action.target_id)
            self._reload_members()
            return action

        method_name, attribute = DELETABLE[action.kind]
        getattr(self.db, method_name)(action.target_id)
        setattr(self, attribute, [row for row in getattr(self, attribute) if row.id != action.target_id])

        if action.kind == 'family':
            if self.current_family is not None and self.current_family.id == action.target_id:
                self.current_family = None
                self._clear_family_data()
            self.load_families()
        return action

    # -- read-only views ----------------------------------------------------

    def current_budget(self, today: Optional[date] = None) -> Optional[Budget]:
        return calc.find_current_budget(self.budgets, today)

    def budget_overview(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Figures for the Budget screen: the current budget, its stats,
        a health band and how far through the month we are."""
        budget = self.current_budget(today)
        stats = calc.calculate_budget_stats(budget, self.expenses, today)
        return {
            'budget': budget,
            'stats': stats,
            'health': calc.budget_health(stats['percentage']),
            'month_progress': calc.month_progress(today),
        }

    def monthly_totals(self, today: Optional[date] = None) -> Dict[str, float]:
        return calc.monthly_totals(self.expenses, self.incomes, today)

    def recent_expenses(self, limit: int = 5) -> List[Expense]:
        return self.expenses[:limit]

    def recent_incomes(self, limit: int = 2) -> List[Income]:
        return self.incomes[:limit]

    def dashboard(self, period: str = calc.DEFAULT_PERIOD, now: Optional[date] = None) -> Dict[str, Any]:
        return calc.build_dashboard(
            self.expenses, self.incomes, self.budgets,
            self.categories, self.payment_methods, period, now,
        )

    def wealth_views(self) -> wealth.WealthViews:
        family_id = self.current_family.id if self.current_family else None
        return wealth.resolve_wealth_visibility(
            self.user_id, family_id, self.wealth_assets, None, self.co_members,
        )

    def wealth_summary(self) -> Dict[str, Any]:
        views = self.wealth_views()
        return {
            'views': views,
            'mine': wealth.summarize_wealth(views.my_wealth),
            'family': wealth.summarize_wealth(views.family_wealth),
        }

    def sharing_candidates(self) -> List[str]:
        """User ids the current user may share an asset with (any family)."""
        seen: List[str] = []
        for member in self.co_members:
            if member.user_id != self.user_id and member.user_id not in seen:
                seen.append(member.user_id)
        return seen
