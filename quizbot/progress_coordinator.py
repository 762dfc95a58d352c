# quizbot/progress_coordinator.py

import logging
from typing import Dict

from quizbot.errors import ConfigurationError
from quizbot.progress_cache import ProgressCache
from quizbot.progress_store import ProgressStoreAdapter

logger = logging.getLogger("quizbot")


class ProgressCoordinator:
    """
    Cache-aside access to per-user progress.

    Reconciled mode (durable store): reads populate the cache on miss; writes go
    to the store first and reach the cache only after the store confirmed them.

    Cache-only mode (memory-only store): the cache is the system of record and
    writes are applied to it directly. Nothing survives a restart; this mode is
    for running without a database, not for deployments that need durability.
    """

    def __init__(self, cache: ProgressCache, store: ProgressStoreAdapter):
        self.cache = cache
        self.store = store
        self.durable = bool(store.durable)
        if not self.durable and cache.evicts:
            raise ConfigurationError(
                "Cache eviction cannot be enabled without a durable store: "
                "evicted progress would be lost"
            )
        self._record = self._record_reconciled if self.durable else self._record_cache_only

    def get_progress(self, user_id: int) -> Dict[int, bool]:
        """
        Return a private snapshot of the user's progress.
        Raises StoreUnavailable when the store cannot be read; that is never
        reported as "no progress".
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation(user_id)
        progress = self.store.load_progress(user_id)
        if not self.cache.put(user_id, progress, generation=generation):
            # a write landed while we were loading; the loaded rows may predate it
            logger.debug("Discarded stale progress load for user %s", user_id)
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached
            return self.store.load_progress(user_id)
        return dict(progress)

    def record_solved(self, user_id: int, task_id: int) -> None:
        """
        Mark task_id solved for user_id. Idempotent.
        Raises StoreUnavailable in reconciled mode when the store write fails; the
        cache is left untouched in that case.
        """
        self._record(user_id, task_id)

    def _record_reconciled(self, user_id: int, task_id: int) -> None:
        self.store.upsert_progress(user_id, task_id, True)
        self.cache.merge_solved(user_id, task_id)

    def _record_cache_only(self, user_id: int, task_id: int) -> None:
        self.cache.merge_solved(user_id, task_id, create=True)
