# quizbot/progress_cache.py

import threading
import time
from typing import Dict, Optional

Snapshot = Dict[int, bool]


class ProgressCache:
    """
    In-memory, per-user progress snapshots (task_id -> solved) with:
    - copy-on-read / copy-on-write: callers never share a dict with the cache
    - a per-user generation, bumped by every write or invalidation, so a store
      load that raced with a write can be discarded instead of cached. Values come
      from one cache-wide clock; users without a cached entry are forgotten on
      sweep and then read the floor, which is above every token handed out
      before the sweep
    - optional sliding TTL (expires ttl_seconds after last touch); None = keep forever
    - thread-safe operations; the lock is never held across store I/O
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        # user_id -> {"progress": Snapshot, "expires_at": float | None}
        self._items: Dict[int, Dict[str, object]] = {}
        # user_id -> generation; pruned by sweep_expired()
        self._generations: Dict[int, int] = {}
        self._clock = 0
        self._floor = 0

    @property
    def evicts(self) -> bool:
        return self.ttl_seconds is not None

    def _expiry(self, now: float) -> Optional[float]:
        if self.ttl_seconds is None:
            return None
        return now + self.ttl_seconds

    def _live_item_unlocked(self, user_id: int) -> Optional[Dict[str, object]]:
        item = self._items.get(user_id)
        if item is None:
            return None
        now = time.time()
        expires_at = item["expires_at"]
        if expires_at is not None and float(expires_at) <= now:
            # expired -> drop
            del self._items[user_id]
            return None
        item["expires_at"] = self._expiry(now)
        return item

    def _bump_unlocked(self, user_id: int) -> None:
        self._clock += 1
        self._generations[user_id] = self._clock

    def _generation_unlocked(self, user_id: int) -> int:
        return self._generations.get(user_id, self._floor)

    def generation(self, user_id: int) -> int:
        """Token to take before loading from the store; see put()."""
        with self._lock:
            return self._generation_unlocked(user_id)

    def get(self, user_id: int) -> Optional[Snapshot]:
        with self._lock:
            item = self._live_item_unlocked(user_id)
            if item is None:
                return None
            return dict(item["progress"])  # type: ignore[arg-type]

    def put(self, user_id: int, snapshot: Snapshot, generation: Optional[int] = None) -> bool:
        """
        Store a copy of snapshot. With a generation token the put is skipped when
        the user's entry was written or invalidated after the token was taken.
        Returns whether the snapshot was stored.
        """
        with self._lock:
            if generation is not None and self._generation_unlocked(user_id) != generation:
                return False
            self._items[user_id] = {
                "progress": dict(snapshot),
                "expires_at": self._expiry(time.time()),
            }
            return True

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._items.pop(user_id, None)
            self._bump_unlocked(user_id)

    def merge_solved(self, user_id: int, task_id: int, create: bool = False) -> bool:
        """
        Atomically set one flag to True without replacing the rest of the snapshot.

        An absent entry stays absent (the next read reloads it) unless create=True.
        Always bumps the generation so an in-flight stale load cannot land.
        Returns whether a cached entry now holds the flag.
        """
        with self._lock:
            self._bump_unlocked(user_id)
            item = self._live_item_unlocked(user_id)
            if item is None:
                if not create:
                    return False
                item = {"progress": {}, "expires_at": self._expiry(time.time())}
                self._items[user_id] = item
            progress: Snapshot = item["progress"]  # type: ignore[assignment]
            progress[task_id] = True
            return True

    def sweep_expired(self) -> int:
        """
        Delete expired snapshots and the generations of users with no cached
        entry. Safe to call from the periodic sweep loop.
        Returns how many entries were removed.

        A load that is in flight across a sweep gets its put() rejected and the
        coordinator falls back to an uncached read.
        """
        if self.ttl_seconds is None:
            return 0
        now = time.time()
        removed = 0
        with self._lock:
            expired = [
                k for k, v in self._items.items()
                if v["expires_at"] is not None and float(v["expires_at"]) <= now
            ]
            for k in expired:
                del self._items[k]
                removed += 1

            idle = [k for k in self._generations if k not in self._items]
            if idle:
                for k in idle:
                    del self._generations[k]
                self._clock += 1
                self._floor = self._clock
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
