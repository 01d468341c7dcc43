"""Хранилище blob поверх KV-бэкенда и история записей."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, List, Optional, Tuple

from .backend.base import Keyspace, KVBackend
from .config import Settings
from .errors import BackendError, BlobCorruptError, BlobNotFoundError, EmptyBlobError, StructuralError
from .pipelines.chunking import build_chunks
from .pipelines.cleanup import CleanupReport, cleanup_stale, resolve_stale_set
from .pipelines.reader import ReadOutcome, ReadStatus, read_blob
from .pipelines.records import MetadataRecord, decode_metadata_record
from .pipelines.writer import WriteOutcome, WriteState, write_chunks

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WriteRecord:
    write_id: str
    size_bytes: int
    outcome: WriteOutcome
    stale_ids: Tuple[str, ...] = ()
    cleanup: Optional[CleanupReport] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stage_metrics: Dict[str, Dict[str, int | float | str | bool | None]] = field(default_factory=dict)

    @property
    def committed(self) -> bool:
        return self.outcome.committed


@dataclass(frozen=True, slots=True)
class PutResult:
    """Итог ``put_blob``: исход транзакции и отчёт об очистке, если она была."""

    record: WriteRecord

    @property
    def committed(self) -> bool:
        return self.record.committed

    @property
    def outcome(self) -> WriteOutcome:
        return self.record.outcome

    @property
    def cleanup(self) -> Optional[CleanupReport]:
        return self.record.cleanup


class BlobStorage:
    """Запись и чтение одного blob с фиксированным ключом метаданных.

    Бэкенд передаётся явно; сам класс не блокирует конкурентных писателей,
    при гонке побеждает последняя зафиксированная версия.
    """

    def __init__(self, backend: KVBackend, settings: Settings):
        self.backend = backend
        self.settings = settings
        self.keyspace = Keyspace(namespace=settings.namespace, set_name=settings.set_name)
        self.metadata_key = settings.metadata_key
        self._history: Deque[WriteRecord] = deque(maxlen=settings.history_size)
        self._lock = threading.RLock()

    # -------- Запись --------
    def put_blob(self, data: bytes) -> PutResult:
        if not data:
            raise EmptyBlobError("Пустой blob не записывается.")
        if len(data) > self.settings.max_blob_size:
            raise ValueError(
                f"Размер blob {len(data)} превышает предел {self.settings.max_blob_size}."
            )

        chunks = build_chunks(data, self.settings.chunk_size)
        write_id = uuid.uuid4().hex
        try:
            stale_ids = resolve_stale_set(self.backend, self.keyspace, self.metadata_key)
        except BackendError as exc:
            # без предварительного чтения транзакция не открывается
            logger.error("Запись %s: не удалось прочитать текущие метаданные: %s", write_id, exc)
            stale_ids = ()
            outcome = WriteOutcome(state=WriteState.IDLE, error=str(exc))
        else:
            logger.debug("Запись %s: %d чанков, устаревших %d.", write_id, len(chunks), len(stale_ids))
            outcome = write_chunks(
                self.backend,
                self.keyspace,
                self.metadata_key,
                chunks,
                workers=self.settings.write_workers,
            )
        record = WriteRecord(
            write_id=write_id,
            size_bytes=len(data),
            outcome=outcome,
            stale_ids=stale_ids,
        )
        record.stage_metrics["chunking"] = {
            "input_bytes": len(data),
            "chunk_size": self.settings.chunk_size,
            "chunks": len(chunks),
        }
        record.stage_metrics["transaction"] = {
            "state": outcome.state.value,
            "staged": outcome.staged,
            "duration_s": round(outcome.duration, 6),
            "error": outcome.error,
        }

        if outcome.state is WriteState.COMMITTED:
            record.cleanup = cleanup_stale(
                self.backend,
                self.keyspace,
                stale_ids,
                keep=outcome.chunk_ids,
                durable=self.settings.durable_delete,
            )
            record.stage_metrics["cleanup"] = dict(record.cleanup.as_metrics())
        else:
            logger.warning("Запись %s отменена, текущая версия не изменилась.", write_id)

        with self._lock:
            self._history.append(record)
        return PutResult(record=record)

    def put_file(self, path: str | Path) -> PutResult:
        return self.put_blob(Path(path).read_bytes())

    # -------- Чтение --------
    def read(self) -> ReadOutcome:
        return read_blob(self.backend, self.keyspace, self.metadata_key)

    def get_blob(self) -> bytes:
        outcome = self.read()
        if outcome.status is ReadStatus.NOT_FOUND:
            raise BlobNotFoundError(self.metadata_key)
        if outcome.status is ReadStatus.CORRUPT or outcome.data is None:
            raise BlobCorruptError(self.metadata_key, outcome.error or "unknown", outcome.missing)
        return outcome.data

    def export_to(self, path: str | Path) -> Path:
        """Сохранить текущую версию в файл, заменив существующий."""

        target = Path(path)
        data = self.get_blob()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def stat(self) -> Optional[MetadataRecord]:
        bins = self.backend.get(self.keyspace.qualify(self.metadata_key))
        if bins is None:
            return None
        try:
            return decode_metadata_record(bins)
        except StructuralError as exc:
            raise BlobCorruptError(self.metadata_key, str(exc)) from exc

    # -------- История --------
    def history(self) -> List[WriteRecord]:
        with self._lock:
            return list(self._history)

    def last_write(self) -> Optional[WriteRecord]:
        with self._lock:
            return self._history[-1] if self._history else None
