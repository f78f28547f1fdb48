import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from leadcall.provider import CallResult
from leadcall.store import LeadStore


class TickingClock:
    """Each call returns a time one second after the previous one."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def store():
    s = LeadStore(":memory:", clock=TickingClock())
    yield s
    s.close()


@pytest.fixture
def provider():
    p = AsyncMock()
    counter = {"n": 0}

    async def _place_call(name, phone, email):
        counter["n"] += 1
        return f"call_{counter['n']}"

    p.place_call.side_effect = _place_call
    p.get_call_result.return_value = CallResult.pending()
    return p


@pytest.fixture
def make_lead(store):
    def _make(name="Jonas", phone="+15125551234", email=None, **kwargs):
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        return store.create(name, phone, email, **kwargs)
    return _make


@pytest.fixture
def ended_payload():
    return json.dumps({
        "summary": "Customer was happy with the service.",
        "transcript": (
            "AI: How satisfied are you with our service?\n"
            "User: Very satisfied, 9 out of 10\n"
            "AI: What did you find especially helpful?\n"
            "User: The quick response time"
        ),
        "duration": 95,
        "endedReason": "assistant-ended-call",
        "status": "ended",
    })
