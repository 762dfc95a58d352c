import threading

import pytest

from quizbot.errors import ConfigurationError, StoreUnavailable
from quizbot.progress_cache import ProgressCache
from quizbot.progress_coordinator import ProgressCoordinator
from quizbot.progress_store import MemoryOnlyProgressStore


def test_miss_loads_from_store_and_populates_cache(fake_store) -> None:
    fake_store.rows[5] = {1: True}
    cache = ProgressCache()
    coordinator = ProgressCoordinator(cache, fake_store)

    assert coordinator.get_progress(5) == {1: True}
    assert cache.get(5) == {1: True}

    assert coordinator.get_progress(5) == {1: True}
    assert fake_store.loads == 1


def test_new_user_gets_empty_snapshot(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    assert coordinator.get_progress(5) == {}


def test_returned_snapshot_is_private(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    snapshot = coordinator.get_progress(5)
    snapshot[1] = True
    assert coordinator.get_progress(5) == {}


def test_store_read_failure_is_surfaced(fake_store) -> None:
    fake_store.down = True
    cache = ProgressCache()
    coordinator = ProgressCoordinator(cache, fake_store)
    with pytest.raises(StoreUnavailable):
        coordinator.get_progress(5)
    assert cache.get(5) is None


def test_record_solved_twice_is_idempotent(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    coordinator.get_progress(5)
    coordinator.record_solved(5, 2)
    once = coordinator.get_progress(5)
    coordinator.record_solved(5, 2)
    twice = coordinator.get_progress(5)

    assert once == twice == {2: True}
    assert fake_store.rows[5] == {2: True}


def test_solved_task_never_regresses(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    coordinator.record_solved(5, 1)
    assert coordinator.get_progress(5)[1] is True

    # cache dropped and reloaded, plus a later failed write
    coordinator.cache.invalidate(5)
    assert coordinator.get_progress(5)[1] is True
    fake_store.down = True
    with pytest.raises(StoreUnavailable):
        coordinator.record_solved(5, 2)
    assert coordinator.get_progress(5)[1] is True


def test_failed_write_is_not_visible(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    assert coordinator.get_progress(5) == {}

    fake_store.down = True
    with pytest.raises(StoreUnavailable):
        coordinator.record_solved(5, 1)
    assert coordinator.get_progress(5) == {}

    fake_store.down = False
    coordinator.cache.invalidate(5)
    assert coordinator.get_progress(5) == {}


def test_write_without_cached_entry_is_seen_on_next_read(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    coordinator.record_solved(5, 3)
    assert coordinator.cache.get(5) is None
    assert coordinator.get_progress(5) == {3: True}


def test_load_racing_with_write_is_not_cached_stale(fake_store) -> None:
    cache = ProgressCache()
    coordinator = ProgressCoordinator(cache, fake_store)
    original_load = fake_store.load_progress
    raced = []

    def racing_load(user_id: int) -> dict[int, bool]:
        rows = original_load(user_id)
        if not raced:
            # another session commits a solved task after our SELECT ran
            raced.append(True)
            coordinator.record_solved(user_id, 1)
        return rows

    fake_store.load_progress = racing_load

    assert coordinator.get_progress(5) == {1: True}
    assert coordinator.get_progress(5) == {1: True}


def test_concurrent_writes_for_one_user_are_all_kept(fake_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    coordinator.get_progress(9)
    barrier = threading.Barrier(5)

    def answer(task_id: int) -> None:
        barrier.wait()
        coordinator.record_solved(9, task_id)
        coordinator.get_progress(9)

    threads = [threading.Thread(target=answer, args=(task_id,)) for task_id in range(1, 6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    expected = {task_id: True for task_id in range(1, 6)}
    assert coordinator.get_progress(9) == expected
    assert fake_store.rows[9] == expected


def test_cache_only_mode_records_in_cache() -> None:
    coordinator = ProgressCoordinator(ProgressCache(), MemoryOnlyProgressStore())
    assert coordinator.durable is False
    assert coordinator.get_progress(5) == {}

    coordinator.record_solved(5, 1)
    coordinator.record_solved(5, 1)
    assert coordinator.get_progress(5) == {1: True}


def test_cache_only_mode_write_before_first_read() -> None:
    coordinator = ProgressCoordinator(ProgressCache(), MemoryOnlyProgressStore())
    coordinator.record_solved(5, 2)
    assert coordinator.get_progress(5) == {2: True}


def test_cache_only_mode_rejects_evicting_cache() -> None:
    with pytest.raises(ConfigurationError):
        ProgressCoordinator(ProgressCache(ttl_seconds=60), MemoryOnlyProgressStore())


def test_reconciled_mode_against_sqlite(durable_store) -> None:
    coordinator = ProgressCoordinator(ProgressCache(), durable_store)
    assert coordinator.get_progress(1) == {}
    coordinator.record_solved(1, 4)
    assert coordinator.get_progress(1) == {4: True}

    fresh = ProgressCoordinator(ProgressCache(), durable_store)
    assert fresh.get_progress(1) == {4: True}


def test_write_timeout_after_cache_populated_keeps_entry(fake_store) -> None:
    fake_store.rows[5] = {3: True}
    coordinator = ProgressCoordinator(ProgressCache(), fake_store)
    assert coordinator.get_progress(5) == {3: True}
    generation = coordinator.cache.generation(5)

    def timed_out(user_id: int, task_id: int, solved: bool) -> None:
        raise StoreUnavailable("timeout")

    fake_store.upsert_progress = timed_out
    with pytest.raises(StoreUnavailable, match="timeout"):
        coordinator.record_solved(5, 1)

    assert coordinator.cache.get(5) == {3: True}
    assert coordinator.cache.generation(5) == generation
    assert fake_store.loads == 1
