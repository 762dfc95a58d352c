# quizbot/progress_store.py

import logging
from typing import Callable, Dict

from sqlalchemy import or_, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizbot.entities import UserProgress
from quizbot.errors import StoreUnavailable

logger = logging.getLogger("quizbot")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ProgressStoreAdapter:
    """
    Contract of the backing store:
      load_progress(user_id)  -> {task_id: solved}
      upsert_progress(user_id, task_id, solved)
    Both raise StoreUnavailable. `durable` tells the coordinator whether the
    store is the system of record.
    """
    durable = False

    def load_progress(self, user_id: int) -> Dict[int, bool]:
        raise NotImplementedError

    def upsert_progress(self, user_id: int, task_id: int, solved: bool) -> None:
        raise NotImplementedError


class MemoryOnlyProgressStore(ProgressStoreAdapter):
    """
    No durable store configured: every user starts empty and writes are not
    persisted anywhere. The cache becomes the only record of progress.
    """
    durable = False

    def load_progress(self, user_id: int) -> Dict[int, bool]:
        return {}

    def upsert_progress(self, user_id: int, task_id: int, solved: bool) -> None:
        return None


class DurableProgressStore(ProgressStoreAdapter):
    """
    user_progress table through a SQLAlchemy session factory.

    Every call runs in its own short transaction. On PostgreSQL the transaction
    gets a statement_timeout of timeout_seconds; the engine's driver timeout
    covers connect and socket reads.
    """
    durable = True

    def __init__(self, session_factory: Callable[[], Session], timeout_seconds: float = 3.0):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    def _apply_deadline(self, session: Session) -> None:
        if session.get_bind().dialect.name == "postgresql":
            ms = max(1, int(self.timeout_seconds * 1000))
            session.execute(text(f"SET LOCAL statement_timeout = {ms}"))

    def load_progress(self, user_id: int) -> Dict[int, bool]:
        session = self.session_factory()
        try:
            self._apply_deadline(session)
            rows = (
                session.query(UserProgress.task_id, UserProgress.solved)
                .filter(UserProgress.user_id == int(user_id))
                .all()
            )
            session.commit()
            return {int(task_id): bool(solved) for (task_id, solved) in rows}
        except (SQLAlchemyError, OSError) as e:
            session.rollback()
            raise StoreUnavailable(f"load_progress failed for user {user_id}: {e}")
        finally:
            session.close()

    def upsert_progress(self, user_id: int, task_id: int, solved: bool) -> None:
        """
        INSERT ... ON CONFLICT (user_id, task_id) DO UPDATE, merging with OR so a
        solved flag never goes back to false. Idempotent and safe to retry.
        """
        session = self.session_factory()
        try:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise StoreUnavailable(f"Upsert not supported for dialect '{dialect}'")

            self._apply_deadline(session)
            stmt = insert(UserProgress).values(
                user_id=int(user_id),
                task_id=int(task_id),
                solved=bool(solved),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[UserProgress.user_id, UserProgress.task_id],
                set_={"solved": or_(UserProgress.solved, stmt.excluded.solved)},
            )
            session.execute(stmt)
            session.commit()
        except (SQLAlchemyError, OSError) as e:
            session.rollback()
            raise StoreUnavailable(
                f"upsert_progress failed for user {user_id}, task {task_id}: {e}"
            )
        finally:
            session.close()
