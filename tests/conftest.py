"""Pytest fixtures shared by the whole suite.

All tests are network-isolated: socket connections are blocked by default.
"""

from __future__ import annotations

import socket
from collections.abc import Iterator
from datetime import UTC, datetime

import pytest

from tests.fakes import FakeClock, InMemoryFileSystem
from tests.support.errors import NetworkIsolationError


def _blocked_socket_connect(self: socket.socket, *args: object, **kwargs: object) -> None:
    _ = (self, kwargs)
    raise NetworkIsolationError(str(args))


@pytest.fixture(autouse=True)
def block_network_access(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Block all network access in tests.

    HTTP behaviour is exercised through fake sessions and fake JSON clients.
    """
    monkeypatch.setattr(socket.socket, "connect", _blocked_socket_connect)
    yield


@pytest.fixture
def clock() -> FakeClock:
    """A controllable clock starting at a fixed UTC instant."""
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=UTC))


@pytest.fixture
def in_memory_fs() -> InMemoryFileSystem:
    """Provide an in-memory filesystem for tests."""
    return InMemoryFileSystem()
