import os
import sys
from pathlib import Path

import pytest


# Ensure the `api/` directory is on sys.path so tests can import `mailguard.*`
CURRENT_FILE = Path(__file__).resolve()
API_DIR = CURRENT_FILE.parents[1]  # .../api
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Keep tests off any real database.
os.environ.setdefault("DATABASE_URL", "sqlite://")


from mailguard import state  # noqa: E402
from mailguard.schemas import Policy  # noqa: E402


BASE_MESSAGE = {
    "message_id": "<msg001@example.com>",
    "from_address": "alice@example.com",
    "from_display": "Alice",
    "to_address": "bob@company.com",
    "subject": "Hello",
    "body_text": "Just checking in.",
    "source_ip": "203.0.113.7",
    "spf_pass": True,
    "dkim_pass": True,
    "dmarc_pass": True,
    "ml_score": 0.05,
    "sender_domain_age_days": 400,
}


@pytest.fixture
def make_raw():
    """Factory for raw message dicts based on a clean, authenticated message."""

    def _make(**overrides):
        raw = dict(BASE_MESSAGE)
        raw.update(overrides)
        return raw

    return _make


@pytest.fixture
def policy():
    return Policy(id="policy-1", tenant_id="tenant-1", block_threshold=0.9, quarantine_threshold=0.7)


@pytest.fixture(autouse=True)
def reset_state():
    state.reset()
    yield
    state.reset()
