"""Test bootstrap for storefront-scenarios."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import structlog

APP_ROOT = Path(__file__).resolve().parents[1]
APPS_DIR = APP_ROOT.parent
EXTRA_PATHS = [
    APP_ROOT,
    APP_ROOT / "tests",
    APPS_DIR / "e2e-harness",
    APPS_DIR / "e2e-harness" / "tests",
]

for path in EXTRA_PATHS:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
