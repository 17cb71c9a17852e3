"""Root conftest.py for the Vigil test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator

import pytest
from pytest_mock import MockerFixture

from src.core.config import get_settings
from src.core.context import clear_request_context
from tests.fixtures.fakes import FakeClock, FakeEngine


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Clear the request context variables before and after each test."""
    clear_request_context()
    yield
    clear_request_context()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def wall_clock(mocker: MockerFixture) -> FakeClock:
    """Replace ``time.time`` with a manually advanced clock."""
    clock = FakeClock(start=1_700_000_000.0)
    mocker.patch("time.time", new=clock)
    return clock


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Provide a store engine double."""
    return FakeEngine()
