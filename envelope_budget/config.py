"""Configuration management for the envelope budget engine.

This module centralizes path values and environment variable overrides
for the store boundary and the entry points (dashboard, scripts).
Engine constants such as tolerances live in ``engine/config/engine.json``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

# Base project root - assumes this file is in envelope_budget/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("ENVELOPE_BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))
EXPORTS_DIR = DATA_DIR / "exports"

# Database
DB_PATH = Path(
    os.getenv("ENVELOPE_BUDGET_DB_PATH", DATA_DIR / "budget.db")
).resolve()

LOG_LEVEL = os.getenv("ENVELOPE_BUDGET_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, EXPORTS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for entry points (dashboard, scripts)."""
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
