"""Wealth visibility and aggregation.

Assets belong to one user and can be shared with any number of other users.
A shared asset only shows up while its owner and the viewer are both members
of the viewer's currently selected family, so switching family changes the
visible set even though the sharing grant itself is family-independent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .models import ASSET_TYPE_LABELS, FamilyMember, WealthAsset, WealthSharing

BY_TYPE_COLUMNS = ['asset_type', 'label', 'icon', 'total', 'count', 'percent']

# Upper bounds (inclusive) in days for each maturity status, checked in order.
MATURITY_BANDS = [
    (0, 'matured'),
    (3, 'critical'),
    (7, 'warning'),
    (30, 'info'),
]


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


@dataclass
class WealthViews:
    """Assets visible to one user under one family context."""

    my_wealth: List[WealthAsset] = field(default_factory=list)
    family_wealth: List[WealthAsset] = field(default_factory=list)
    # Shared with the user, but the owner is outside the current family.
    hidden_shared: List[WealthAsset] = field(default_factory=list)

    @property
    def shared_assets(self) -> List[WealthAsset]:
        return [a for a in self.family_wealth if not a.is_owner]


def resolve_wealth_visibility(
    user_id: str,
    family_id: Optional[str],
    assets: Iterable[WealthAsset],
    sharings: Optional[Iterable[WealthSharing]],
    members: Iterable[FamilyMember],
) -> WealthViews:
    """Split assets into the "my wealth" and "family wealth" views.

    Args:
        user_id: The requesting user
        family_id: The requester's current family; ``None`` hides all
            shared assets
        assets: Candidate assets, with sharing recipients in ``shared_with``
        sharings: Extra sharing rows merged with each asset's ``shared_with``;
            may be ``None``
        members: Family roster; only rows of ``family_id`` are used

    Returns:
        :class:`WealthViews` whose assets are copies tagged with ``is_owner``
    """
    assets = list(assets)
    recipients: Dict[str, set] = {}
    for asset in assets:
        recipients.setdefault(asset.id, set()).update(asset.shared_with)
    for sharing in sharings or []:
        recipients.setdefault(sharing.asset_id, set()).add(sharing.shared_with_user_id)

    family_member_ids = {
        m.user_id for m in members if m.family_id == family_id
    } - {user_id}

    views = WealthViews()
    seen = set()
    for asset in assets:
        if asset.id in seen:
            continue
        seen.add(asset.id)
        if asset.user_id == user_id:
            owned = replace(asset, is_owner=True)
            views.my_wealth.append(owned)
            views.family_wealth.append(owned)
        elif user_id in recipients.get(asset.id, ()):
            shared = replace(asset, is_owner=False)
            if asset.user_id in family_member_ids:
                views.family_wealth.append(shared)
            else:
                views.hidden_shared.append(shared)
    return views


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def invested_amount(asset: WealthAsset) -> float:
    """Invested capital of an asset; bank balances and blanks count as 0."""
    if asset.asset_type == 'bank' or asset.invested_amount is None:
        return 0.0
    return float(asset.invested_amount)


def summarize_wealth(assets: Sequence[WealthAsset]) -> Dict[str, Any]:
    """Total, invested, gains, ROI and per-type breakdown of assets.

    ``by_type`` is a DataFrame with columns asset_type, label, icon, total,
    count and percent (share of the overall total), sorted by total
    descending.
    """
    total = float(sum(a.current_amount or 0.0 for a in assets))
    invested = float(sum(invested_amount(a) for a in assets))
    gains = total - invested
    roi = (gains / invested * 100.0) if invested > 0 else 0.0

    frame = pd.DataFrame(
        [{'asset_type': a.asset_type, 'total': float(a.current_amount or 0.0)} for a in assets],
        columns=['asset_type', 'total'],
    )
    if frame.empty:
        by_type = pd.DataFrame(columns=BY_TYPE_COLUMNS)
    else:
        by_type = (
            frame.groupby('asset_type', sort=False)['total']
            .agg(['sum', 'count'])
            .rename(columns={'sum': 'total'})
            .reset_index()
        )
        by_type['label'] = by_type['asset_type'].map(
            lambda t: ASSET_TYPE_LABELS.get(t, {}).get('label', t)
        )
        by_type['icon'] = by_type['asset_type'].map(
            lambda t: ASSET_TYPE_LABELS.get(t, {}).get('icon', '')
        )
        by_type['percent'] = (by_type['total'] / total * 100.0) if total > 0 else 0.0
        by_type = (
            by_type[BY_TYPE_COLUMNS]
            .sort_values('total', ascending=False, kind='stable')
            .reset_index(drop=True)
        )

    return {
        'total': total,
        'invested': invested,
        'gains': gains,
        'roi': roi,
        'count': len(assets),
        'by_type': by_type,
    }


def asset_roi(asset: WealthAsset) -> Optional[float]:
    """Per-asset ROI for the list view; ``None`` for bank balances."""
    if asset.asset_type == 'bank':
        return None
    invested = asset.invested_amount or 0.0
    if invested == 0:
        return 0.0
    return round((asset.current_amount - invested) / invested * 100.0, 2)


def days_until_maturity(asset: WealthAsset, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days until a fixed deposit matures, rounded up.

    Non-FD assets and FDs without a maturity date return ``None``.
    """
    if asset.asset_type != 'fd' or asset.maturity_date is None:
        return None
    moment = now if now is not None else datetime.now()
    if not isinstance(moment, datetime):
        moment = datetime(moment.year, moment.month, moment.day)
    matures = datetime(asset.maturity_date.year, asset.maturity_date.month, asset.maturity_date.day)
    return math.ceil((matures - moment).total_seconds() / 86400)


def maturity_status(days: Optional[int]) -> Optional[str]:
    if days is None:
        return None
    for limit, status in MATURITY_BANDS:
        if days <= limit:
            return status
    return 'normal'


def group_assets_by_type(
    assets: Iterable[WealthAsset],
    asset_type: Optional[str] = None,
) -> Dict[str, List[WealthAsset]]:
    """Group assets by type in first-appearance order.

    Passing ``asset_type`` (anything but ``'all'``) keeps only that type.
    """
    grouped: Dict[str, List[WealthAsset]] = {}
    for asset in assets:
        if asset_type not in (None, 'all') and asset.asset_type != asset_type:
            continue
        grouped.setdefault(asset.asset_type, []).append(asset)
    return grouped
