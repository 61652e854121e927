"""Configuration management for the family budget app.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

# Base project root - assumes this file is in family_budget/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("FAMILY_BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("FAMILY_BUDGET_DB_PATH", DATA_DIR / "family_budget.db")
).resolve()

# Locally persisted UI state (selected family id)
CACHE_PATH = Path(
    os.getenv("FAMILY_BUDGET_CACHE_PATH", DATA_DIR / "persistent_cache.json")
).resolve()

# Identity is supplied by an external provider; the dashboard falls back to this
DEFAULT_USER_ID = os.getenv("FAMILY_BUDGET_USER_ID", "")

LOG_LEVEL = os.getenv("FAMILY_BUDGET_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, DB_PATH.parent, CACHE_PATH.parent]:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for scripts and the Streamlit app."""
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
