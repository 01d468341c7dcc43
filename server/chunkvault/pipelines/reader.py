"""Чтение метаданных, пакетная выборка чанков и сборка blob."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from ..backend.base import Keyspace, KVBackend
from ..errors import StructuralError
from .chunking import ChunkAssembler
from .records import MetadataRecord, decode_chunk_record, decode_metadata_record

logger = logging.getLogger(__name__)


class ReadStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"


@dataclass(frozen=True, slots=True)
class ReadOutcome:
    status: ReadStatus
    data: Optional[bytes] = None
    metadata: Optional[MetadataRecord] = None
    missing: Tuple[int, ...] = ()
    rejected: int = 0
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def found(self) -> bool:
        return self.status is ReadStatus.FOUND


def read_blob(backend: KVBackend, keyspace: Keyspace, metadata_key: str) -> ReadOutcome:
    """Собрать текущую версию blob.

    Результаты пакетного чтения могут прийти в любом порядке, с пропусками и
    повторами; порядок байтов задают только позиции чанков. Если хоть один
    слот не заполнен, возвращается ``CORRUPT`` без частичных данных. Ошибки
    хранилища (:class:`BackendError`) пробрасываются вызывающему.
    """

    start = time.perf_counter()
    bins = backend.get(keyspace.qualify(metadata_key))
    if bins is None:
        return ReadOutcome(status=ReadStatus.NOT_FOUND, duration=time.perf_counter() - start)

    try:
        metadata = decode_metadata_record(bins)
    except StructuralError as exc:
        logger.warning("Метаданные %s повреждены: %s", metadata_key, exc)
        return ReadOutcome(
            status=ReadStatus.CORRUPT,
            error=str(exc),
            duration=time.perf_counter() - start,
        )

    results = backend.batch_get([keyspace.qualify(chunk_id) for chunk_id in metadata.chunk_ids])
    assembler = ChunkAssembler(metadata.chunk_count)
    rejected = 0
    for result in results:
        record = decode_chunk_record(result.bins, metadata.chunk_count, key=result.key)
        if record is None:
            rejected += 1
            continue
        assembler.add(record.to_chunk())

    try:
        data = assembler.reassemble()
    except StructuralError as exc:
        logger.warning("Сборка %s не удалась: %s", metadata_key, exc)
        return ReadOutcome(
            status=ReadStatus.CORRUPT,
            metadata=metadata,
            missing=exc.missing,
            rejected=rejected,
            error=str(exc),
            duration=time.perf_counter() - start,
        )

    return ReadOutcome(
        status=ReadStatus.FOUND,
        data=data,
        metadata=metadata,
        rejected=rejected,
        duration=time.perf_counter() - start,
    )
