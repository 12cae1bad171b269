"""Shared fixtures: a throwaway SQLite database per test and fake outbound collaborators."""
import itertools
import random
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.core.config import settings
from backend.core.database import init_database
from backend.models.lead import LeadCreate
from backend.services.composer import MessageComposer
from backend.services.container import build_services
from backend.services.gemini_client import GeminiClient
from backend.services.quota import DailyQuotaTracker
from backend.stores.jobs import JobStore
from backend.stores.leads import LeadStore
from backend.stores.records import LogStore, SummaryStore
from backend.stores.responses import ResponseStore


class FakeClock:
    """Settable UTC clock for quota tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args):
        self.now = datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def temp_database(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{tmp_path / 'leadbot-test.db'}")
    monkeypatch.setattr(settings, "storage_path", str(tmp_path / "messages"))
    monkeypatch.setattr(settings, "environment", "test")
    init_database()
    yield tmp_path / "leadbot-test.db"


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def no_sleep():
    return AsyncMock(return_value=None)


@pytest.fixture
def dispatcher():
    counter = itertools.count(1)
    fake = MagicMock()
    fake.send = AsyncMock(side_effect=lambda target, content: f"delivery-{next(counter)}")
    fake.is_ready.return_value = True
    return fake


@pytest.fixture
def composer():
    """Composer with no AI configured: always the deterministic fallback."""
    return MessageComposer(ai=GeminiClient(api_key=""), rng=random.Random(7))


@pytest.fixture
def fake_ai():
    ai = MagicMock()
    ai.available = True
    ai.generate = AsyncMock(return_value="Thanks for getting back to us! Would Tuesday work for a call?")
    return ai


@pytest.fixture
def ai_composer(fake_ai):
    return MessageComposer(ai=fake_ai, rng=random.Random(7))


@pytest.fixture
def lead_store():
    return LeadStore()


@pytest.fixture
def response_store():
    return ResponseStore()


@pytest.fixture
def job_store():
    return JobStore()


@pytest.fixture
def log_store():
    return LogStore()


@pytest.fixture
def summary_store():
    return SummaryStore()


@pytest.fixture
def make_lead(lead_store):
    """Create a stored lead; pass email and/or phone."""

    def _make(name="Acme Plumbing", email=None, phone=None, **extra):
        return lead_store.create(LeadCreate(
            name=name,
            email=email,
            phone=phone,
            source_url="https://www.acmeplumbing.com/contact",
            **extra,
        ))

    return _make


@pytest.fixture
def services(dispatcher, composer, no_sleep):
    return build_services(
        dispatcher=dispatcher,
        composer=composer,
        quota=DailyQuotaTracker(3),
        sleep=no_sleep,
        rng=random.Random(0),
    )
