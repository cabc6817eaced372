import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _fresh_settings_and_store(monkeypatch):
    """Isolate every test from ambient COMPANION_* config and stored context."""
    from src.companion.config import get_settings
    from src.companion.services.context_store import reset_context_store

    for name in list(os.environ):
        if name.startswith("COMPANION_") or name == "REDIS_URL":
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_context_store()
    yield
    get_settings.cache_clear()
    reset_context_store()
