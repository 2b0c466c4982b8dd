import os
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from src.api.config import AppConfig  # noqa: E402
from src.api.db import create_sqlite_store  # noqa: E402
from src.api.main import create_app  # noqa: E402
from src.api.notifications import NotificationPort  # noqa: E402
from src.api.repositories import create_memory_store  # noqa: E402


def make_config(**overrides) -> AppConfig:
    values = dict(
        persistence_backend="memory",
        sqlite_db_path="",
        cors_allow_origins=["*"],
        enable_basic_auth=False,
        basic_auth_username=None,
        basic_auth_password=None,
        reminder_check_enabled=False,
    )
    values.update(overrides)
    return AppConfig(**values)


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingPort(NotificationPort):
    """Notification port that remembers every show() call."""

    def __init__(self, fail_on_titles=()) -> None:
        self.calls: List[Tuple[str, str, str]] = []
        self._fail_on_titles = set(fail_on_titles)

    def is_supported(self) -> bool:
        return True

    def permission_state(self):
        return "granted"

    async def request_permission(self):
        return "granted"

    def show(self, title: str, body: str, tag: str) -> None:
        if title in self._fail_on_titles:
            raise RuntimeError(f"cannot show {title}")
        self.calls.append((title, body, tag))


def iso_minutes_from_now(minutes: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, clock):
    if request.param == "sqlite":
        return create_sqlite_store(str(tmp_path / "daybook.db"), clock=clock)
    return create_memory_store(clock=clock)


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(config=make_config(), store=create_memory_store()))
