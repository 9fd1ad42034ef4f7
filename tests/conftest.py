"""Pytest configuration: import paths and settings isolation."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for proper imports with pytest-xdist
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from fetch_throttler.settings import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch):
    # Throttlers built without a config read FETCH_THROTTLER_* once per cache.
    for name in (
        "FETCH_THROTTLER_SCOPE",
        "FETCH_THROTTLER_MAX_CONCURRENCY",
        "FETCH_THROTTLER_INTERVAL_MS",
        "FETCH_THROTTLER_MAX_RETRY",
        "FETCH_THROTTLER_CAPACITY",
        "FETCH_THROTTLER_BASE_URL",
        "FETCH_THROTTLER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()
