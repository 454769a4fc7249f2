"""Pytest configuration and fixtures."""

import pytest

from boltbox.backends.sandbox.memory import MemorySandbox
from boltbox.sessions import OwnerKey, SessionOrchestrator, SessionRegistry


class FakeClock:
    """Manually advanced clock for deterministic idle checks."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def backend() -> MemorySandbox:
    """In-memory sandbox backend recording every call."""
    return MemorySandbox()


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    """Session registry driven by the fake clock."""
    return SessionRegistry(clock=clock)


@pytest.fixture
def orchestrator(backend: MemorySandbox, registry: SessionRegistry) -> SessionOrchestrator:
    """Orchestrator over the memory backend."""
    return SessionOrchestrator(backend, registry, request_timeout=5.0)


@pytest.fixture
def owner_key() -> OwnerKey:
    return OwnerKey("user-1", "project-1")


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "sandbox": {"backend": "memory", "request_timeout_seconds": 5},
        "reaper": {
            "interval_seconds": 60,
            "idle_seconds": 600,
            "destroy_seconds": 3600,
            "failed_retention_seconds": 120,
        },
        "agent": {"provider": "mock"},
        "retry": {"attempts": 3, "backoff_seconds": 0},
        "logging": {"level": "DEBUG", "format": "text"},
    }
