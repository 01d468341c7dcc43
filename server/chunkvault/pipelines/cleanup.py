"""Захват устаревшего набора чанков и его удаление после фиксации."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from ..backend.base import Keyspace, KVBackend
from ..errors import StructuralError
from .records import decode_metadata_record

logger = logging.getLogger(__name__)


def resolve_stale_set(backend: KVBackend, keyspace: Keyspace, metadata_key: str) -> Tuple[str, ...]:
    """Прочитать текущие метаданные вне транзакции и вернуть их идентификаторы.

    Удаление откладывается до успешной фиксации новой версии, поэтому при
    отмене записи прежняя версия остаётся целой. Ошибка хранилища здесь
    пробрасывается: запись без этого чтения не начинается.
    """

    bins = backend.get(keyspace.qualify(metadata_key))
    if bins is None:
        return ()
    try:
        metadata = decode_metadata_record(bins)
    except StructuralError as exc:
        logger.warning("Текущие метаданные %s повреждены, очистка пропущена: %s", metadata_key, exc)
        return ()
    return metadata.chunk_ids


@dataclass(frozen=True, slots=True)
class CleanupReport:
    deleted: Tuple[str, ...] = ()
    missing: Tuple[str, ...] = ()
    failed: Tuple[str, ...] = ()
    skipped: Tuple[str, ...] = ()

    @property
    def examined(self) -> int:
        return len(self.deleted) + len(self.missing) + len(self.failed) + len(self.skipped)

    def as_metrics(self) -> dict:
        return {
            "deleted": len(self.deleted),
            "missing": len(self.missing),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


def cleanup_stale(
    backend: KVBackend,
    keyspace: Keyspace,
    stale_ids: Iterable[str],
    *,
    keep: Iterable[str] = (),
    durable: bool = True,
) -> CleanupReport:
    """Удалить чанки прежней версии, по одному ключу за раз.

    Ошибка удаления отдельного ключа логируется и не прерывает цикл;
    уже зафиксированная версия от неё не зависит.
    """

    protected = set(keep)
    deleted: List[str] = []
    missing: List[str] = []
    failed: List[str] = []
    skipped: List[str] = []

    for chunk_id in stale_ids:
        if chunk_id in protected:
            skipped.append(chunk_id)
            continue
        try:
            existed = backend.delete(keyspace.qualify(chunk_id), durable=durable)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ошибка удаления старого чанка %s: %s", chunk_id, exc)
            failed.append(chunk_id)
            continue
        (deleted if existed else missing).append(chunk_id)

    if failed:
        logger.warning("Очистка завершена с ошибками: %d из %d.", len(failed), len(deleted) + len(missing) + len(failed))
    return CleanupReport(
        deleted=tuple(deleted),
        missing=tuple(missing),
        failed=tuple(failed),
        skipped=tuple(skipped),
    )
