"""Типизированные записи KV-хранилища и их проверка на границе."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..errors import StructuralError
from .chunking import Chunk

logger = logging.getLogger(__name__)

PAYLOAD_BIN = "part"
POSITION_BIN = "pos"
CHUNK_IDS_BIN = "list"
CHUNK_COUNT_BIN = "size"

Bins = Dict[str, object]


@dataclass(frozen=True, slots=True)
class ChunkRecord:
    payload: bytes
    position: int

    def to_chunk(self) -> Chunk:
        return Chunk(position=self.position, payload=self.payload)


@dataclass(frozen=True, slots=True)
class MetadataRecord:
    """Индирекция: какие идентификаторы чанков составляют текущую версию."""

    chunk_ids: Tuple[str, ...]
    chunk_count: int

    @classmethod
    def for_ids(cls, chunk_ids: Sequence[str]) -> "MetadataRecord":
        ids = tuple(chunk_ids)
        return cls(chunk_ids=ids, chunk_count=len(ids))


def encode_chunk_record(record: ChunkRecord) -> Bins:
    return {PAYLOAD_BIN: record.payload, POSITION_BIN: record.position}


def encode_metadata_record(record: MetadataRecord) -> Bins:
    return {CHUNK_IDS_BIN: list(record.chunk_ids), CHUNK_COUNT_BIN: record.chunk_count}


def decode_chunk_record(
    bins: Optional[Mapping[str, object]],
    expected: int,
    *,
    key: str = "?",
) -> Optional[ChunkRecord]:
    """Проверить запись чанка; некорректная запись считается отсутствующей."""

    if bins is None:
        logger.warning("Чанк %s не найден.", key)
        return None

    payload = bins.get(PAYLOAD_BIN)
    position = bins.get(POSITION_BIN)
    if isinstance(payload, bytearray):
        payload = bytes(payload)
    if not isinstance(payload, bytes):
        logger.warning("Чанк %s: данные отсутствуют.", key)
        return None
    if not payload:
        logger.warning("Чанк %s: данные пусты.", key)
        return None
    # bool является подклассом int, позицией он быть не может
    if not isinstance(position, int) or isinstance(position, bool):
        logger.warning("Чанк %s: позиция не является целым числом: %r", key, position)
        return None
    if position < 0 or position >= expected:
        logger.warning("Чанк %s: недопустимая позиция %d (всего %d).", key, position, expected)
        return None
    return ChunkRecord(payload=payload, position=position)


def decode_metadata_record(bins: Mapping[str, object]) -> MetadataRecord:
    raw_ids = bins.get(CHUNK_IDS_BIN)
    count = bins.get(CHUNK_COUNT_BIN)

    if not isinstance(raw_ids, (list, tuple)):
        raise StructuralError(f"Бин {CHUNK_IDS_BIN!r} должен быть списком, получено {type(raw_ids).__name__}.")
    if not all(isinstance(item, str) and item for item in raw_ids):
        raise StructuralError(f"Бин {CHUNK_IDS_BIN!r} содержит не строковые идентификаторы.")
    if not isinstance(count, int) or isinstance(count, bool):
        raise StructuralError(f"Бин {CHUNK_COUNT_BIN!r} должен быть целым числом.")
    if count != len(raw_ids):
        raise StructuralError(
            f"Несовпадение числа чанков: заявлено {count}, идентификаторов {len(raw_ids)}."
        )
    return MetadataRecord(chunk_ids=tuple(raw_ids), chunk_count=count)
