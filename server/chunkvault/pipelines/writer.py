"""Транзакционная запись набора чанков и метаданных."""

from __future__ import annotations

import enum
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..backend.base import Keyspace, KVBackend, Transaction
from ..errors import BackendError
from .chunking import Chunk
from .records import ChunkRecord, MetadataRecord, encode_chunk_record, encode_metadata_record

logger = logging.getLogger(__name__)


class WriteState(str, enum.Enum):
    """Состояния пути записи."""

    IDLE = "idle"
    CHUNKS_PREPARED = "chunks_prepared"
    TXN_OPEN = "txn_open"
    CHUNKS_STAGED = "chunks_staged"
    METADATA_STAGED = "metadata_staged"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class WriteOutcome:
    """Итог записи: либо версия опубликована целиком, либо ничего."""

    state: WriteState
    chunk_ids: Tuple[str, ...] = ()
    staged: int = 0
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def committed(self) -> bool:
        return self.state is WriteState.COMMITTED


def new_chunk_id() -> str:
    return str(uuid.uuid4())


def _stage_chunk(
    backend: KVBackend,
    txn: Transaction,
    keyspace: Keyspace,
    chunk_id: str,
    chunk: Chunk,
) -> None:
    record = ChunkRecord(payload=chunk.payload, position=chunk.position)
    backend.put(txn, keyspace.qualify(chunk_id), encode_chunk_record(record))


def _stage_chunks(
    backend: KVBackend,
    txn: Transaction,
    keyspace: Keyspace,
    chunk_ids: Sequence[str],
    chunks: Sequence[Chunk],
    workers: int,
) -> Tuple[int, Optional[BackendError]]:
    if workers <= 1:
        for staged, (chunk_id, chunk) in enumerate(zip(chunk_ids, chunks)):
            try:
                _stage_chunk(backend, txn, keyspace, chunk_id, chunk)
            except BackendError as exc:
                return staged, exc
        return len(chunks), None

    # все потоки пишут через один и тот же дескриптор транзакции
    staged = 0
    failure: Optional[BackendError] = None
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(_stage_chunk, backend, txn, keyspace, chunk_id, chunk)
            for chunk_id, chunk in zip(chunk_ids, chunks)
        ]
        for future in futures:
            try:
                future.result()
                staged += 1
            except BackendError as exc:
                if failure is None:
                    failure = exc
    return staged, failure


def write_chunks(
    backend: KVBackend,
    keyspace: Keyspace,
    metadata_key: str,
    chunks: Sequence[Chunk],
    *,
    workers: int = 1,
) -> WriteOutcome:
    """Записать чанки и метаданные одной транзакцией.

    Каждому чанку выдаётся новый идентификатор, даже если содержимое не
    изменилось. При любой ошибке хранилища транзакция явно отменяется и
    возвращается исход ``ABORTED``; вызывающий считает blob неизменным.
    """

    start = time.perf_counter()
    state = WriteState.CHUNKS_PREPARED
    chunk_ids: List[str] = [new_chunk_id() for _ in chunks]
    logger.debug("Подготовлено %d чанков для %s.", len(chunk_ids), metadata_key)

    try:
        txn = backend.begin()
    except BackendError as exc:
        logger.error("Не удалось открыть транзакцию: %s", exc)
        return WriteOutcome(
            state=WriteState.ABORTED,
            error=str(exc),
            duration=time.perf_counter() - start,
        )
    state = WriteState.TXN_OPEN
    logger.debug("Транзакция %s открыта.", txn.txn_id)

    staged, failure = _stage_chunks(backend, txn, keyspace, chunk_ids, chunks, workers)
    if failure is None:
        state = WriteState.CHUNKS_STAGED
        try:
            metadata = MetadataRecord.for_ids(chunk_ids)
            backend.put(txn, keyspace.qualify(metadata_key), encode_metadata_record(metadata))
            state = WriteState.METADATA_STAGED
            backend.commit(txn)
            state = WriteState.COMMITTED
        except BackendError as exc:
            failure = exc

    duration = time.perf_counter() - start
    if failure is not None:
        logger.error(
            "Ошибка транзакции %s в состоянии %s: %s", txn.txn_id, state.value, failure
        )
        _abort(backend, txn)
        return WriteOutcome(
            state=WriteState.ABORTED,
            chunk_ids=tuple(chunk_ids),
            staged=staged,
            error=str(failure),
            duration=duration,
        )

    logger.info("Транзакция %s зафиксирована: %d чанков.", txn.txn_id, len(chunk_ids))
    return WriteOutcome(
        state=state,
        chunk_ids=tuple(chunk_ids),
        staged=staged,
        duration=duration,
    )


def _abort(backend: KVBackend, txn: Transaction) -> None:
    try:
        backend.abort(txn)
    except BackendError as exc:
        # незафиксированные записи хранилище отбросит само по таймауту транзакции
        logger.error("Не удалось отменить транзакцию %s: %s", txn.txn_id, exc)
