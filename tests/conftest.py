"""
pytest configuration for the Kumiho access core tests.

Adds src directory to Python path for imports and isolates tests from the
developer's environment.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

KUMIHO_ENV_VARS = (
    "KUMIHO_BASE_URL",
    "KUMIHO_SERVICE_TOKEN",
    "KUMIHO_TENANT_ID",
    "KUMIHO_USER_TOKEN",
    "KUMIHO_REQUEST_TIMEOUT_MS",
    "KUMIHO_RETRY_BUDGET_MS",
    "KUMIHO_MAX_ATTEMPTS",
    "KUMIHO_RECONNECT_DELAY_SECONDS",
    "KUMIHO_CURSOR_STORE_PATH",
)


@pytest.fixture(autouse=True)
def clean_kumiho_env(monkeypatch):
    """Tests never see KUMIHO_* variables from the outer shell."""
    for name in KUMIHO_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
