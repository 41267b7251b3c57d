from datetime import datetime, timedelta, timezone

import pytest

from backend.app.consent_policy import ConsentNotifier, build_consent_manager
from backend.app.consent_store import ConsentStore
from backend.app.flags import MemoryFlagJar
from backend.app.settings import ConsentConfig
from backend.app.storage import MemoryStorage
from backend.app.visit_ledger import VisitLedger


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return ConsentConfig(policy_version="1.0", flag_ttl_days=183, retention_months=18, debug=True)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def flags(clock):
    return MemoryFlagJar(clock=clock)


@pytest.fixture
def store(storage, flags, config, clock):
    return ConsentStore(storage, flags, config, clock=clock)


@pytest.fixture
def ledger(storage, config, clock):
    return VisitLedger(storage, config, clock=clock)


@pytest.fixture
def notifier(config):
    return ConsentNotifier(debug=config.debug)


@pytest.fixture
def manager(storage, flags, config, clock, notifier):
    return build_consent_manager(storage, flags, config, notifier=notifier, clock=clock, context="tab-1")
