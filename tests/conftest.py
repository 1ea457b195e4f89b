"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.identity import Actor  # noqa: E402
from domain.lead import Lead  # noqa: E402
from repositories.store import InMemoryRecordStore  # noqa: E402

NOW = datetime(2026, 3, 10, 15, 30, 0, tzinfo=timezone.utc)
TODAY = "2026-03-10"


class FixedClock:
    """Settable clock so tests can move time forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def diego() -> Actor:
    return Actor("Diego")


@pytest.fixture
def gaston() -> Actor:
    return Actor("Gaston")


@pytest.fixture
def admin() -> Actor:
    return Actor("Mati", is_administrator=True)


def candidate(name: str = "Acme Bar", lead_id: str = "lead-acme", **fields) -> Lead:
    """An unowned discovery result."""

    return Lead(lead_id=lead_id, name=name, **fields)
