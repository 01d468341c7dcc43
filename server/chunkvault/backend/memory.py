"""In-memory KV-хранилище с транзакциями для разработки и тестов."""

from __future__ import annotations

import copy
import threading
from typing import Dict, List, Mapping, Optional, Sequence

from ..errors import BackendError
from .base import BatchResult, Transaction


class InMemoryBackend:
    """Записи в словаре; транзакция копит изменения до commit."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, object]] = {}
        self._staged: Dict[str, Dict[str, Dict[str, object]]] = {}
        self._lock = threading.RLock()
        self.durable_deletes = 0

    def begin(self) -> Transaction:
        txn = Transaction()
        with self._lock:
            self._staged[txn.txn_id] = {}
        return txn

    def get(self, key: str) -> Optional[Dict[str, object]]:
        with self._lock:
            bins = self._records.get(key)
            return copy.deepcopy(bins) if bins is not None else None

    def batch_get(self, keys: Sequence[str]) -> List[BatchResult]:
        with self._lock:
            return [BatchResult(key=key, bins=self.get(key)) for key in keys]

    def put(self, txn: Optional[Transaction], key: str, bins: Mapping[str, object]) -> None:
        record = copy.deepcopy(dict(bins))
        with self._lock:
            if txn is None:
                self._records[key] = record
                return
            txn.ensure_open("put")
            staged = self._staged.get(txn.txn_id)
            if staged is None:
                raise BackendError("put", f"неизвестная транзакция {txn.txn_id}")
            staged[key] = record

    def commit(self, txn: Transaction) -> None:
        with self._lock:
            txn.ensure_open("commit")
            staged = self._staged.pop(txn.txn_id, None)
            if staged is None:
                raise BackendError("commit", f"неизвестная транзакция {txn.txn_id}")
            self._records.update(staged)
            txn.open = False

    def abort(self, txn: Transaction) -> None:
        with self._lock:
            self._staged.pop(txn.txn_id, None)
            txn.open = False

    def delete(self, key: str, *, durable: bool = True) -> bool:
        with self._lock:
            existed = self._records.pop(key, None) is not None
            if existed and durable:
                self.durable_deletes += 1
            return existed

    # -------- Вспомогательное для тестов и диагностики --------
    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def open_transactions(self) -> int:
        with self._lock:
            return len(self._staged)
