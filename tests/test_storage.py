import os

import pytest

from chunkvault.backend import InMemoryBackend
from chunkvault.config import Settings
from chunkvault.errors import BlobCorruptError, BlobNotFoundError, EmptyBlobError
from chunkvault.faults import FaultConfig, FaultEngine, FaultyBackend
from chunkvault.pipelines.chunking import build_chunks
from chunkvault.pipelines.cleanup import cleanup_stale, resolve_stale_set
from chunkvault.pipelines.writer import WriteState, write_chunks
from chunkvault.storage import BlobStorage


def _storage(backend=None, **overrides):
    settings = Settings(**overrides)
    return BlobStorage(backend or InMemoryBackend(), settings)


def test_ten_mebibyte_scenario():
    storage = _storage(chunk_size=1_048_576, max_blob_size=32 * 1024 * 1024)
    backend = storage.backend
    payload = os.urandom(10_485_760)

    first = storage.put_blob(payload)
    assert first.committed
    assert len(first.outcome.chunk_ids) == 10
    # 10 чанков + 1 запись метаданных
    assert len(backend.keys()) == 11
    assert storage.get_blob() == payload

    second = storage.put_blob(payload)
    assert second.committed
    assert len(second.outcome.chunk_ids) == 10
    assert set(second.outcome.chunk_ids).isdisjoint(first.outcome.chunk_ids)
    assert second.cleanup.deleted == first.outcome.chunk_ids
    assert len(backend.keys()) == 11
    for chunk_id in first.outcome.chunk_ids:
        assert backend.get(storage.keyspace.qualify(chunk_id)) is None
    assert storage.get_blob() == payload


def test_empty_blob_rejected_before_touching_backend():
    storage = _storage()
    with pytest.raises(EmptyBlobError):
        storage.put_blob(b"")
    assert storage.backend.keys() == []


def test_oversized_blob_rejected():
    storage = _storage(max_blob_size=10)
    with pytest.raises(ValueError):
        storage.put_blob(b"x" * 11)


def test_not_found_and_corrupt_are_distinct():
    storage = _storage(chunk_size=4)
    with pytest.raises(BlobNotFoundError):
        storage.get_blob()
    assert storage.stat() is None

    result = storage.put_blob(b"0123456789")
    storage.backend.delete(storage.keyspace.qualify(result.outcome.chunk_ids[0]))
    with pytest.raises(BlobCorruptError) as excinfo:
        storage.get_blob()
    assert excinfo.value.missing == (0,)


def test_aborted_write_keeps_previous_version():
    engine = FaultEngine(seed=11)
    inner = InMemoryBackend()
    storage = _storage(FaultyBackend(inner, engine), chunk_size=3)

    storage.put_blob(b"version-one")
    keys_before = inner.keys()

    engine.configure(FaultConfig(fail_put=1.0))
    result = storage.put_blob(b"version-two!")
    assert not result.committed
    assert result.outcome.state is WriteState.ABORTED
    assert result.cleanup is None
    assert inner.keys() == keys_before

    engine.configure(FaultConfig())
    assert storage.get_blob() == b"version-one"


def test_cleanup_failure_does_not_affect_new_version():
    engine = FaultEngine(seed=3)
    inner = InMemoryBackend()
    storage = _storage(FaultyBackend(inner, engine), chunk_size=2)

    first = storage.put_blob(b"abcdef")
    engine.configure(FaultConfig(fail_delete=1.0))
    second = storage.put_blob(b"ghijkl")

    assert second.committed
    assert second.cleanup.failed == first.outcome.chunk_ids
    assert storage.get_blob() == b"ghijkl"
    # осиротевшие чанки остаются в хранилище
    assert len(inner.keys()) == 1 + 3 + 3


def test_history_records_stage_metrics():
    storage = _storage(chunk_size=4, history_size=2)
    for value in (b"one", b"two", b"three"):
        storage.put_blob(value)

    history = storage.history()
    assert len(history) == 2
    last = storage.last_write()
    assert last is history[-1]
    assert last.stage_metrics["chunking"]["chunks"] == 2
    assert last.stage_metrics["transaction"]["state"] == "committed"
    assert last.stage_metrics["cleanup"]["deleted"] == 1


def test_file_helpers(tmp_path):
    source = tmp_path / "Sample.bin"
    source.write_bytes(b"file contents" * 100)
    storage = _storage(chunk_size=64)

    assert storage.put_file(source).committed
    target = tmp_path / "out" / "Control_Sample.bin"
    target.parent.mkdir()
    target.write_bytes(b"stale")
    assert storage.export_to(target) == target
    assert target.read_bytes() == source.read_bytes()


def test_failed_pre_read_reports_write_failure():
    class _Unreachable(InMemoryBackend):
        def get(self, key):
            from chunkvault.errors import BackendError

            raise BackendError("get", "connection refused")

    storage = _storage(_Unreachable())
    result = storage.put_blob(b"data")
    assert not result.committed
    assert result.outcome.state is WriteState.IDLE
    assert "connection refused" in result.outcome.error


def test_concurrent_writers_share_stale_set_last_commit_wins():
    storage = _storage(chunk_size=4)
    backend, keyspace, key = storage.backend, storage.keyspace, storage.metadata_key
    original = storage.put_blob(b"original")

    stale_a = resolve_stale_set(backend, keyspace, key)
    stale_b = resolve_stale_set(backend, keyspace, key)
    assert stale_a == stale_b == original.outcome.chunk_ids

    write_a = write_chunks(backend, keyspace, key, build_chunks(b"writer-a", 4))
    write_b = write_chunks(backend, keyspace, key, build_chunks(b"writer-b", 4))
    assert write_a.committed and write_b.committed

    cleanup_a = cleanup_stale(backend, keyspace, stale_a, keep=write_a.chunk_ids)
    cleanup_b = cleanup_stale(backend, keyspace, stale_b, keep=write_b.chunk_ids)
    assert cleanup_a.deleted == original.outcome.chunk_ids
    assert cleanup_b.missing == original.outcome.chunk_ids
    assert cleanup_b.deleted == ()
    assert cleanup_b.failed == ()

    assert storage.get_blob() == b"writer-b"
    # чанки вытесненной версии остаются сиротами
    for chunk_id in write_a.chunk_ids:
        assert backend.get(keyspace.qualify(chunk_id)) is not None
