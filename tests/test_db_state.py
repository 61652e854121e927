"""Integration tests for the SQLite store and the app state built on it."""

from __future__ import annotations

from datetime import date

import pytest

from family_budget.calculations import group_by_category
import family_budget.db
from family_budget.db import DEFAULT_CATEGORIES, DEFAULT_PAYMENT_METHODS, Database
from family_budget.errors import (
    NoFamilySelectedError,
    PendingActionError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from family_budget.persistent_cache import load_selected_family_id, save_selected_family_id
from family_budget.state import AppState


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / 'budget.db')
    database.init_db()
    return database


def _state(db, tmp_path, user_id='u1'):
    return AppState(db, user_id, cache_path=tmp_path / 'cache.json')


def _expense_form(**overrides):
    form = {'title': 'Groceries', 'amount': '250', 'transaction_date': '2024-06-10'}
    form.update(overrides)
    return form


def test_create_family_seeds_defaults_and_selects_it(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')

    assert state.current_family.id == family.id
    assert state.current_family.user_role == 'admin'
    assert len(state.categories) == len(DEFAULT_CATEGORIES)
    assert len(state.payment_methods) == len(DEFAULT_PAYMENT_METHODS)
    assert load_selected_family_id(tmp_path / 'cache.json') == family.id
    assert [m.user_id for m in db.fetch_members(family.id)] == ['u1']


def test_load_families_prefers_saved_selection(db, tmp_path):
    alpha = db.create_family('Alpha', 'u1')
    beta = db.create_family('Beta', 'u1')

    save_selected_family_id(beta.id, tmp_path / 'cache.json')
    state = _state(db, tmp_path)
    state.load_families()
    assert state.current_family.id == beta.id

    save_selected_family_id('missing', tmp_path / 'cache.json')
    fresh = _state(db, tmp_path)
    fresh.load_families()
    assert fresh.current_family.id == alpha.id


def test_user_without_family_has_no_current_family(db, tmp_path):
    state = _state(db, tmp_path, user_id='loner')
    assert state.load_families() == []
    assert state.current_family is None
    with pytest.raises(NoFamilySelectedError):
        state.add_expense(_expense_form())
    with pytest.raises(NoFamilySelectedError):
        state.switch_family('someone-elses')


def test_switch_family_reloads_rows(db, tmp_path):
    state = _state(db, tmp_path)
    first = state.create_family('First')
    state.add_expense(_expense_form())
    second = state.create_family('Second')

    assert state.current_family.id == second.id
    assert state.expenses == []
    state.switch_family(first.id)
    assert [e.title for e in state.expenses] == ['Groceries']


def test_mutations_replace_cached_rows_by_id(db, tmp_path):
    state = _state(db, tmp_path)
    state.create_family('Home')
    expense = state.add_expense(_expense_form())
    assert state.expenses[0].id == expense.id
    assert expense.amount == 250.0

    updated = state.update_expense(expense.id, _expense_form(amount='300', title='Market'))
    assert len(state.expenses) == 1
    assert state.expenses[0].amount == 300.0
    assert state.expenses[0].title == 'Market'
    assert updated.id == expense.id

    income = state.add_income({'source': 'Salary', 'amount': '1000', 'date': '2024-06-01'})
    state.update_income(income.id, {'source': 'Salary', 'amount': '1200', 'date': '2024-06-01'})
    assert [i.amount for i in state.incomes] == [1200.0]


def test_save_budget_reuses_current_budget(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')

    first = state.save_budget('10000', today=date(2024, 6, 15))
    assert (first.start_date, first.end_date) == (date(2024, 6, 1), date(2024, 6, 30))
    second = state.save_budget('12000', today=date(2024, 6, 20))

    assert second.id == first.id
    assert second.amount == 12000.0
    assert len(state.budgets) == 1
    assert len(db.fetch_budgets(family.id)) == 1

    july = state.save_budget(5000, today=date(2024, 7, 2))
    assert july.id != first.id
    assert len(db.fetch_budgets(family.id)) == 2


def test_budget_overview(db, tmp_path):
    state = _state(db, tmp_path)
    state.create_family('Home')
    state.save_budget('10000', today=date(2024, 6, 15))
    state.add_expense(_expense_form(amount='4000'))

    overview = state.budget_overview(today=date(2024, 6, 15))
    assert overview['stats']['spent'] == 4000.0
    assert overview['stats']['days_left'] == 16
    assert overview['stats']['safe_to_spend'] == 375.0
    assert overview['health'] == 'good'


def test_deletes_wait_for_confirmation(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')
    expense = state.add_expense(_expense_form())

    action = state.request_delete('expense', expense.id, label='Groceries')
    assert action.prompt == 'Are you sure you want to delete Groceries?'
    assert len(db.fetch_expenses(family.id)) == 1

    state.cancel_pending()
    assert state.pending is None
    assert len(db.fetch_expenses(family.id)) == 1

    state.request_delete('expense', expense.id)
    state.confirm_pending()
    assert state.expenses == []
    assert db.fetch_expenses(family.id) == []

    with pytest.raises(PendingActionError):
        state.confirm_pending()
    with pytest.raises(PendingActionError):
        state.cancel_pending()


def test_request_delete_rejects_unknown_kind(db, tmp_path):
    state = _state(db, tmp_path)
    with pytest.raises(ValueError):
        state.request_delete('planet', 'x')


def test_deleted_category_falls_back_to_uncategorized(db, tmp_path):
    state = _state(db, tmp_path)
    state.create_family('Home')
    category = state.add_category({'name': 'Pets', 'icon': '🐶', 'type': 'expense'})
    state.add_expense(_expense_form(category_id=category.id))

    state.request_delete('category', category.id)
    state.confirm_pending()

    grouped = group_by_category(state.expenses, state.categories)
    assert list(grouped['name']) == ['Uncategorized']
    assert list(grouped['id']) == [category.id]


def test_deleting_current_family_moves_to_another(db, tmp_path):
    state = _state(db, tmp_path)
    first = state.create_family('First')
    second = state.create_family('Second')

    state.request_delete('family', second.id)
    state.confirm_pending()
    assert [f.id for f in state.families] == [first.id]
    assert state.current_family.id == first.id
    with pytest.raises(PersistenceError):
        db.delete_family(second.id)


def test_update_of_missing_row_raises(db):
    with pytest.raises(PersistenceError):
        db.update_expense('missing', {'amount': 1.0})


def test_shared_wealth_follows_current_family(db, tmp_path):
    state = _state(db, tmp_path)
    f1 = state.create_family('Mine')
    f2 = state.create_family('In-laws')
    db.add_member(f1.id, 'u2')
    db.add_member(f2.id, 'u3')

    asset_form = {'asset_type': 'stock', 'asset_name': 'Shares', 'current_amount': 400, 'invested_amount': 500}
    from_u2 = db.add_wealth_asset('u2', asset_form, shared_with=['u1'])
    from_u3 = db.add_wealth_asset('u3', dict(asset_form, asset_name='Bonds'), shared_with=['u1'])
    db.add_wealth_asset('u2', dict(asset_form, asset_name='Private'))
    own = state.add_wealth_asset({'asset_type': 'bank', 'asset_name': 'Savings', 'current_amount': '5000'})

    state.switch_family(f1.id)
    views = state.wealth_views()
    assert [a.id for a in views.my_wealth] == [own.id]
    assert {a.id for a in views.family_wealth} == {own.id, from_u2.id}
    assert [a.id for a in views.hidden_shared] == [from_u3.id]
    assert sorted(state.sharing_candidates()) == ['u2', 'u3']

    state.switch_family(f2.id)
    views = state.wealth_views()
    assert {a.id for a in views.family_wealth} == {own.id, from_u3.id}

    summary = state.wealth_summary()
    assert summary['mine']['total'] == 5000.0
    assert summary['family']['total'] == 5400.0


def test_updating_asset_sharing_replaces_grants(db):
    form = {'asset_type': 'epf', 'asset_name': 'EPF', 'current_amount': 900, 'invested_amount': 800}
    asset = db.add_wealth_asset('u1', form, shared_with=['u2', 'u3'])
    assert sorted(asset.shared_with) == ['u2', 'u3']

    unchanged = db.update_wealth_asset(asset.id, dict(form, current_amount=950))
    assert sorted(unchanged.shared_with) == ['u2', 'u3']
    assert unchanged.current_amount == 950.0

    narrowed = db.update_wealth_asset(asset.id, form, shared_with=['u3'])
    assert narrowed.shared_with == ['u3']
    assert [a.id for a in db.fetch_wealth_assets('u2')] == []

    db.delete_wealth_asset(asset.id)
    assert db.fetch_wealth_assets('u1') == []
    assert db.fetch_wealth_assets('u3') == []


def test_failed_family_creation_leaves_nothing_behind(db, monkeypatch):
    monkeypatch.setattr(
        family_budget.db, 'DEFAULT_CATEGORIES', [{'name': None, 'icon': '📦', 'type': 'expense'}],
    )
    with pytest.raises(PersistenceError):
        db.create_family('Broken', 'u1')
    assert db.fetch_families('u1') == []


def test_new_rows_keep_date_order(db, tmp_path):
    state = _state(db, tmp_path)
    state.create_family('Home')
    newer = state.add_expense(_expense_form(title='Newer', transaction_date='2024-06-20'))
    older = state.add_expense(_expense_form(title='Older', transaction_date='2024-06-01'))

    assert [e.id for e in state.expenses] == [newer.id, older.id]
    assert state.recent_expenses(1)[0].id == newer.id

    state.update_expense(older.id, _expense_form(title='Older', transaction_date='2024-06-25'))
    assert [e.id for e in state.expenses] == [older.id, newer.id]

    state.add_income({'source': 'Salary', 'amount': '1000', 'date': '2024-06-01'})
    state.add_income({'source': 'Bonus', 'amount': '500', 'date': '2024-05-01'})
    assert [i.source for i in state.incomes] == ['Salary', 'Bonus']


def test_new_categories_keep_name_order(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')
    state.add_category({'name': 'Aaa Pets', 'icon': '🐶', 'type': 'expense'})

    names = [c.name for c in state.categories]
    assert names == sorted(names)
    assert names == [c.name for c in db.fetch_categories(family.id)]


def test_admin_manages_members(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')
    assert state.is_admin
    assert state.sharing_candidates() == []

    state.add_member(' u2 ')
    assert [m.user_id for m in state.members] == ['u1', 'u2']
    assert state.sharing_candidates() == ['u2']
    with pytest.raises(ValidationError):
        state.add_member('u2')
    with pytest.raises(ValidationError):
        state.add_member('  ')

    state.promote_member('u2')
    roles = {m.user_id: m.role for m in db.fetch_members(family.id)}
    assert roles == {'u1': 'admin', 'u2': 'admin'}
    with pytest.raises(ValidationError):
        state.promote_member('nobody')


def test_member_removal_waits_for_confirmation(db, tmp_path):
    state = _state(db, tmp_path)
    family = state.create_family('Home')
    state.add_member('u2')

    with pytest.raises(PermissionDeniedError):
        state.remove_member('u1')

    action = state.remove_member('u2', label='Asha')
    assert action.prompt == 'Are you sure you want to delete Asha?'
    assert len(db.fetch_members(family.id)) == 2

    state.confirm_pending()
    assert [m.user_id for m in state.members] == ['u1']
    assert [m.user_id for m in db.fetch_members(family.id)] == ['u1']
    assert state.sharing_candidates() == []


def test_plain_members_cannot_manage_the_family(db, tmp_path):
    family = db.create_family('Home', 'u1')
    db.add_member(family.id, 'u2')
    db.add_member(family.id, 'u3')
    state = _state(db, tmp_path, user_id='u2')
    state.load_families()
    assert not state.is_admin

    with pytest.raises(PermissionDeniedError):
        state.add_member('u4')
    with pytest.raises(PermissionDeniedError):
        state.promote_member('u3')
    with pytest.raises(PermissionDeniedError):
        state.remove_member('u3')
    with pytest.raises(PermissionDeniedError):
        state.request_delete('family', family.id)

    assert state.pending is None
    assert [f.id for f in db.fetch_families('u1')] == [family.id]
    assert {m.user_id: m.role for m in db.fetch_members(family.id)} == {
        'u1': 'admin', 'u2': 'member', 'u3': 'member',
    }


def test_only_the_owner_changes_a_shared_asset(db, tmp_path):
    family = db.create_family('Home', 'u1')
    db.add_member(family.id, 'u2')
    form = {'asset_type': 'stock', 'asset_name': 'Shares', 'current_amount': 400, 'invested_amount': 500}
    asset = db.add_wealth_asset('u1', form, shared_with=['u2'])

    viewer = _state(db, tmp_path, user_id='u2')
    viewer.load_families()
    assert [a.id for a in viewer.wealth_views().family_wealth] == [asset.id]

    with pytest.raises(PermissionDeniedError):
        viewer.update_wealth_asset(asset.id, dict(form, current_amount=1), shared_with=['u2', 'u9'])
    with pytest.raises(PermissionDeniedError):
        viewer.request_delete('wealth_asset', asset.id)
    with pytest.raises(PermissionDeniedError):
        viewer.update_wealth_asset('missing', form)

    [stored] = db.fetch_wealth_assets('u1')
    assert stored.current_amount == 400.0
    assert stored.shared_with == ['u2']

    owner = _state(db, tmp_path, user_id='u1')
    owner.load_families()
    updated = owner.update_wealth_asset(asset.id, dict(form, current_amount=450), shared_with=[])
    assert updated.current_amount == 450.0
    owner.request_delete('wealth_asset', asset.id)
    owner.confirm_pending()
    assert db.fetch_wealth_assets('u1') == []


def test_update_role_of_missing_member_raises(db):
    family = db.create_family('Home', 'u1')
    with pytest.raises(PersistenceError):
        db.update_member_role(family.id, 'nobody', 'admin')
