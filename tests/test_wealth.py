"""Tests for wealth visibility and aggregation."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from family_budget.models import FamilyMember, WealthAsset, WealthSharing
from family_budget.wealth import (
    BY_TYPE_COLUMNS,
    asset_roi,
    days_until_maturity,
    group_assets_by_type,
    maturity_status,
    resolve_wealth_visibility,
    summarize_wealth,
)


def _members():
    return [
        FamilyMember('f1', 'u1', 'admin'),
        FamilyMember('f1', 'u2'),
        FamilyMember('f2', 'u1'),
        FamilyMember('f2', 'u3', 'admin'),
    ]


def _assets():
    return [
        WealthAsset('a1', 'u1', 'mutual_fund', 'Index Fund', 1200.0, invested_amount=1000.0),
        WealthAsset('a2', 'u2', 'stock', 'Shares', 400.0, invested_amount=500.0, shared_with=['u1']),
        WealthAsset('a3', 'u3', 'bank', 'Savings', 5000.0, shared_with=['u1']),
        WealthAsset('a4', 'u2', 'epf', 'Provident Fund', 9000.0, invested_amount=8000.0),
    ]


def _ids(assets):
    return [a.id for a in assets]


def test_family_view_only_includes_owners_in_current_family():
    views = resolve_wealth_visibility('u1', 'f1', _assets(), [], _members())
    assert _ids(views.my_wealth) == ['a1']
    assert _ids(views.family_wealth) == ['a1', 'a2']
    assert _ids(views.hidden_shared) == ['a3']
    assert _ids(views.shared_assets) == ['a2']


def test_switching_family_changes_visible_shared_assets():
    views = resolve_wealth_visibility('u1', 'f2', _assets(), [], _members())
    assert _ids(views.my_wealth) == ['a1']
    assert _ids(views.family_wealth) == ['a1', 'a3']
    assert _ids(views.hidden_shared) == ['a2']


def test_unshared_assets_of_other_users_never_show():
    for family_id in ('f1', 'f2', None):
        views = resolve_wealth_visibility('u1', family_id, _assets(), [], _members())
        seen = _ids(views.my_wealth) + _ids(views.family_wealth) + _ids(views.hidden_shared)
        assert 'a4' not in seen


def test_no_family_hides_every_shared_asset():
    views = resolve_wealth_visibility('u1', None, _assets(), [], _members())
    assert _ids(views.family_wealth) == ['a1']
    assert sorted(_ids(views.hidden_shared)) == ['a2', 'a3']


def test_visibility_tags_ownership_without_mutating_input():
    assets = _assets()
    views = resolve_wealth_visibility('u1', 'f1', assets, [], _members())
    assert [a.is_owner for a in views.family_wealth] == [True, False]
    assert all(a.is_owner is None for a in assets)


def test_sharing_rows_grant_visibility():
    assets = [WealthAsset('a5', 'u2', 'nps', 'Pension', 700.0, invested_amount=600.0)]
    views = resolve_wealth_visibility(
        'u1', 'f1', assets, [WealthSharing('a5', 'u1')], _members(),
    )
    assert _ids(views.family_wealth) == ['a5']


def test_missing_sharing_rows_fall_back_to_asset_grants():
    views = resolve_wealth_visibility('u1', 'f1', _assets(), None, _members())
    assert _ids(views.family_wealth) == ['a1', 'a2']
    assert _ids(views.hidden_shared) == ['a3']


def test_summary_excludes_bank_from_invested():
    summary = summarize_wealth([WealthAsset('w1', 'u1', 'bank', 'Savings', 5000.0)])
    assert summary['total'] == 5000.0
    assert summary['invested'] == 0.0
    assert summary['gains'] == 5000.0
    assert summary['roi'] == 0.0
    assert summary['count'] == 1


def test_summary_of_family_view():
    views = resolve_wealth_visibility('u1', 'f1', _assets(), [], _members())
    summary = summarize_wealth(views.family_wealth)
    assert summary['total'] == 1600.0
    assert summary['invested'] == 1500.0
    assert summary['gains'] == 100.0
    assert summary['roi'] == pytest.approx(100.0 / 1500.0 * 100.0)


def test_negative_gains_are_reported():
    summary = summarize_wealth([
        WealthAsset('s1', 'u1', 'stock', 'Shares', 400.0, invested_amount=500.0),
    ])
    assert summary['gains'] == -100.0
    assert summary['roi'] == pytest.approx(-20.0)


def test_by_type_is_sorted_with_percentages():
    assets = [
        WealthAsset('m1', 'u1', 'mutual_fund', 'Fund A', 1000.0, invested_amount=900.0),
        WealthAsset('s1', 'u1', 'stock', 'Shares', 400.0, invested_amount=500.0),
        WealthAsset('b1', 'u1', 'bank', 'Savings', 5000.0),
        WealthAsset('m2', 'u1', 'mutual_fund', 'Fund B', 200.0, invested_amount=200.0),
    ]
    by_type = summarize_wealth(assets)['by_type']
    assert list(by_type.columns) == BY_TYPE_COLUMNS
    assert list(by_type['asset_type']) == ['bank', 'mutual_fund', 'stock']
    assert list(by_type['total']) == [5000.0, 1200.0, 400.0]
    assert list(by_type['count']) == [1, 2, 1]
    assert list(by_type['label']) == ['Bank', 'Mutual Fund', 'Stock']
    assert by_type['percent'].sum() == pytest.approx(100.0)
    assert by_type['percent'].iloc[0] == pytest.approx(5000.0 / 6600.0 * 100.0)


def test_empty_summary():
    summary = summarize_wealth([])
    assert summary['total'] == 0.0
    assert summary['roi'] == 0.0
    assert summary['by_type'].empty


def test_asset_roi():
    assert asset_roi(WealthAsset('b', 'u1', 'bank', 'Savings', 100.0)) is None
    assert asset_roi(WealthAsset('z', 'u1', 'stock', 'Gift', 100.0, invested_amount=0.0)) == 0.0
    assert asset_roi(WealthAsset('s', 'u1', 'stock', 'Shares', 1150.0, invested_amount=1000.0)) == 15.0
    assert asset_roi(WealthAsset('t', 'u1', 'stock', 'Shares', 100.0, invested_amount=300.0)) == -66.67


def _fd(maturity):
    return WealthAsset(
        'fd1', 'u1', 'fd', 'Deposit', 10000.0,
        invested_amount=10000.0, maturity_amount=11000.0, maturity_date=maturity,
    )


def test_days_until_maturity_rounds_up():
    now = datetime(2024, 6, 15, 0, 0)
    assert days_until_maturity(_fd(date(2024, 6, 17)), now) == 2
    assert days_until_maturity(_fd(date(2024, 6, 15)), now) == 0
    assert days_until_maturity(_fd(date(2024, 6, 17)), datetime(2024, 6, 15, 12, 0)) == 2
    assert days_until_maturity(_fd(date(2024, 6, 10)), now) == -5


def test_days_until_maturity_only_for_fixed_deposits():
    stock = WealthAsset('s', 'u1', 'stock', 'Shares', 100.0, invested_amount=90.0)
    assert days_until_maturity(stock, datetime(2024, 6, 15)) is None
    assert days_until_maturity(_fd(None), datetime(2024, 6, 15)) is None


@pytest.mark.parametrize(
    'days, status',
    [
        (-5, 'matured'),
        (0, 'matured'),
        (1, 'critical'),
        (3, 'critical'),
        (4, 'warning'),
        (7, 'warning'),
        (8, 'info'),
        (30, 'info'),
        (31, 'normal'),
        (None, None),
    ],
)
def test_maturity_status(days, status):
    assert maturity_status(days) == status


def test_group_assets_by_type():
    grouped = group_assets_by_type(_assets())
    assert list(grouped) == ['mutual_fund', 'stock', 'bank', 'epf']
    assert list(group_assets_by_type(_assets(), 'all')) == ['mutual_fund', 'stock', 'bank', 'epf']
    assert list(group_assets_by_type(_assets(), 'bank')) == ['bank']
