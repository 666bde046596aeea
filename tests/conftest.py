"""
Shared test fixtures for the truststore-manager test suite.

Provides a deterministic clock so polling loops run instantly.
"""

from __future__ import annotations

import pytest

from tests.builders import FakeClock


@pytest.fixture()
def clock() -> FakeClock:
    """A fresh FakeClock; `sleep` advances time instead of blocking."""
    return FakeClock()
