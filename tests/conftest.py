import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def isolate_feed_env(monkeypatch):
    """Keep a developer's .env/LOG_LEVEL from leaking feed settings into tests."""
    for name in (
        "BAR_HISTORY_URL",
        "SINGLE_POLL_INTERVAL",
        "BASKET_POLL_INTERVAL",
        "LIVE_PRICE_ECHO_DELAYS",
        "BASKET_REFRESH_EVERY_TICK",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
