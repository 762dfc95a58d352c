from __future__ import annotations

import sys
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quizbot.entities import Base  # noqa: E402
from quizbot.errors import StoreUnavailable  # noqa: E402
from quizbot.progress_store import DurableProgressStore, ProgressStoreAdapter  # noqa: E402
from quizbot.task_catalog import TaskCatalog, default_catalog  # noqa: E402


class FakeStore(ProgressStoreAdapter):
    """Durable-store double with a switchable outage and call counters."""

    durable = True

    def __init__(self) -> None:
        self.rows: dict[int, dict[int, bool]] = {}
        self.down = False
        self.loads = 0
        self.upserts = 0
        self._lock = threading.Lock()

    def load_progress(self, user_id: int) -> dict[int, bool]:
        with self._lock:
            self.loads += 1
            if self.down:
                raise StoreUnavailable("store is down")
            return dict(self.rows.get(user_id, {}))

    def upsert_progress(self, user_id: int, task_id: int, solved: bool) -> None:
        with self._lock:
            self.upserts += 1
            if self.down:
                raise StoreUnavailable("store is down")
            user_rows = self.rows.setdefault(user_id, {})
            user_rows[task_id] = user_rows.get(task_id, False) or solved


@pytest.fixture
def catalog() -> TaskCatalog:
    return default_catalog()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def durable_store(sqlite_engine: Engine) -> DurableProgressStore:
    return DurableProgressStore(sessionmaker(bind=sqlite_engine, future=True), timeout_seconds=1.0)
