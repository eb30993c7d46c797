from __future__ import annotations

import pytest

from askexpert.configuration.store import ConfigurationKey, StaticConfigurationStore
from askexpert.tickets.lifecycle import TicketLifecycle
from askexpert.tickets.repository import InMemoryTicketStore

from .support import TEAM_ID, FixedClock, RecordingNotifier


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def configuration() -> StaticConfigurationStore:
    return StaticConfigurationStore(
        {
            ConfigurationKey.TEAM_ID: TEAM_ID,
            ConfigurationKey.WELCOME_TEXT: "Welcome aboard",
        }
    )


@pytest.fixture
def store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def lifecycle(store, notifier, configuration, clock) -> TicketLifecycle:
    return TicketLifecycle(store, notifier, configuration, clock=clock)
