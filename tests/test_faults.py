from concurrent.futures import ThreadPoolExecutor

from chunkvault.backend import BatchResult, InMemoryBackend
from chunkvault.errors import BackendError
from chunkvault.faults import FaultConfig, FaultEngine, FaultyBackend


def _results(count):
    return [BatchResult(key=f"k{i}", bins={"part": b"data", "pos": i}) for i in range(count)]


def test_fault_statistics_and_duplication():
    engine = FaultEngine(seed=1234)
    engine.configure(FaultConfig(loss=0.2, duplicate=0.5, reorder=1.0))

    mutated = engine.apply_batch(_results(5), expected=5)

    assert len(mutated) == 5 + engine.stats.duplicated
    assert sum(1 for item in mutated if item.bins is None) == engine.stats.lost
    assert engine.stats.reordered == 1
    assert {item.key for item in mutated} == {f"k{i}" for i in range(5)}


def test_config_is_clamped():
    engine = FaultEngine()
    config = engine.configure(FaultConfig(loss=-1.0, fail_commit=7.0))
    assert config.loss == 0.0
    assert config.fail_commit == 1.0
    assert engine.current_config()["fail_commit"] == 1.0


def test_corrupt_position_goes_out_of_range():
    engine = FaultEngine(seed=1)
    engine.configure(FaultConfig(corrupt_position=1.0))
    mutated = engine.apply_batch(_results(3), expected=3)
    assert all(item.bins["pos"] >= 3 for item in mutated)
    assert engine.current_stats()["corrupted"] == 3


def test_non_transactional_put_is_never_failed():
    engine = FaultEngine()
    engine.configure(FaultConfig(fail_put=1.0))
    backend = FaultyBackend(InMemoryBackend(), engine)
    backend.put(None, "k", {"v": 1})
    assert backend.get("k") == {"v": 1}


def test_disabled_engine_is_transparent():
    inner = InMemoryBackend()
    backend = FaultyBackend(inner)
    txn = backend.begin()
    backend.put(txn, "k", {"v": 1})
    backend.commit(txn)
    assert [(r.key, r.bins) for r in backend.batch_get(["k"])] == [("k", {"v": 1})]
    assert backend.delete("k") is True


def test_counters_are_exact_under_concurrent_failures():
    engine = FaultEngine(seed=9)
    engine.configure(FaultConfig(fail_delete=1.0))
    backend = FaultyBackend(InMemoryBackend(), engine)

    def attempt(index):
        try:
            backend.delete(f"k{index}")
        except BackendError:
            return 1
        return 0

    with ThreadPoolExecutor(max_workers=8) as pool:
        failures = sum(pool.map(attempt, range(400)))

    assert failures == 400
    assert engine.current_stats()["failed_deletes"] == 400
