"""Test configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Load environment variables before any imports that need them
from dotenv import load_dotenv
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

# Ensure src is in path
sys.path.insert(0, str(project_root))

import pytest

from src.modules.adaptation.interface import AdaptationSignal, SignalContext
from src.modules.adaptation.locks import InProcessLearnerLock
from src.modules.adaptation.service import AdaptationEngineService
from src.modules.adaptation.store import (
    InMemoryEventStore,
    InMemoryProfileStore,
    InMemoryRuleStore,
)
from src.shared.config import Settings
from src.shared.models import SignalType


@pytest.fixture
def tenant_id():
    """Sample tenant identifier."""
    return "tenant-a"


@pytest.fixture
def learner_id():
    """Sample learner identifier."""
    return "learner-1"


@pytest.fixture
def base_time():
    """Fixed reference instant for signal timestamps."""
    return datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's .env."""
    return Settings(
        _env_file=None,
        environment="test",
        mastery_history_limit=500,
        default_history_limit=50,
    )


@pytest.fixture
def stores():
    """Fresh in-memory stores."""
    event_store = InMemoryEventStore()
    return InMemoryProfileStore(event_store=event_store), InMemoryRuleStore(), event_store


@pytest.fixture
def engine(stores, test_settings):
    """Adaptation engine over in-memory stores."""
    profile_store, rule_store, event_store = stores
    return AdaptationEngineService(
        profile_store=profile_store,
        rule_store=rule_store,
        event_store=event_store,
        lock=InProcessLearnerLock(),
        settings=test_settings,
    )


@pytest.fixture
def make_signal(base_time):
    """Build a signal offset ``minutes`` from the reference instant."""

    def _make(
        signal_type: SignalType,
        value: float,
        minutes: float = 0,
        competency_id: str | None = None,
        domain: str | None = None,
        session_id: str | None = None,
    ) -> AdaptationSignal:
        return AdaptationSignal(
            type=signal_type,
            value=value,
            timestamp=base_time + timedelta(minutes=minutes),
            context=SignalContext(
                competency_id=competency_id,
                domain=domain,
                session_id=session_id,
            ),
        )

    return _make
