"""Lightweight persistent cache for per-device preferences.

Holds the last selected family so the next session opens on it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import CACHE_PATH

DEFAULT_CACHE: Dict[str, Any] = {
    'selected_family_id': None,
    'dashboard_period': '3months',
}


def load_cache(path: Path | None = None) -> Dict[str, Any]:
    target = path or CACHE_PATH
    if not target.exists():
        return DEFAULT_CACHE.copy()
    try:
        with target.open('r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (json.JSONDecodeError, OSError):
        return DEFAULT_CACHE.copy()
    if not isinstance(data, dict):
        return DEFAULT_CACHE.copy()
    merged = DEFAULT_CACHE.copy()
    merged.update({k: v for k, v in data.items() if k in DEFAULT_CACHE})
    return merged


def save_cache(cache: Dict[str, Any], path: Path | None = None) -> None:
    target = path or CACHE_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open('w', encoding='utf-8') as handle:
        json.dump(cache, handle, indent=2, sort_keys=True)


def load_selected_family_id(path: Path | None = None) -> Optional[str]:
    return load_cache(path).get('selected_family_id')


def save_selected_family_id(family_id: Optional[str], path: Path | None = None) -> None:
    cache = load_cache(path)
    cache['selected_family_id'] = family_id
    save_cache(cache, path)
