"""Эмуляция сбоев KV-хранилища."""

from __future__ import annotations

import random
import threading
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .backend.base import BatchResult, KVBackend, Transaction
from .errors import BackendError
from .pipelines.records import POSITION_BIN


@dataclass(slots=True)
class FaultConfig:
    """Вероятности потерь, дубликатов, перестановок и отказов операций."""

    loss: float = 0.0
    duplicate: float = 0.0
    reorder: float = 0.0
    corrupt_position: float = 0.0
    fail_put: float = 0.0
    fail_commit: float = 0.0
    fail_delete: float = 0.0

    def clamp(self) -> "FaultConfig":
        return FaultConfig(**{name: _clamp(value) for name, value in asdict(self).items()})


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(value, high))


@dataclass(slots=True)
class FaultStats:
    lost: int = 0
    duplicated: int = 0
    reordered: int = 0
    corrupted: int = 0
    failed_puts: int = 0
    failed_commits: int = 0
    failed_deletes: int = 0


class FaultEngine:
    """Решает, какую операцию исказить, по текущей конфигурации."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self.config = FaultConfig()
        self.random = random.Random(seed)
        self.stats = FaultStats()
        self._lock = threading.Lock()

    def configure(self, config: FaultConfig) -> FaultConfig:
        self.config = config.clamp()
        return self.config

    def current_config(self) -> Dict[str, float]:
        return asdict(self.config)

    def current_stats(self) -> Dict[str, int]:
        with self._lock:
            return asdict(self.stats)

    def count(self, counter: str) -> None:
        # обработчики запросов работают в пуле потоков
        with self._lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)

    def hit(self, probability: float) -> bool:
        if probability <= 0.0:
            return False
        with self._lock:
            return self.random.random() < probability

    def apply_batch(self, results: Sequence[BatchResult], expected: int) -> List[BatchResult]:
        cfg = self.config
        processed: List[BatchResult] = []
        for result in results:
            if result.bins is not None and self.hit(cfg.loss):
                self.count("lost")
                processed.append(BatchResult(key=result.key, bins=None))
                continue

            bins = result.bins
            if bins is not None and self.hit(cfg.corrupt_position):
                self.count("corrupted")
                bins = dict(bins)
                bins[POSITION_BIN] = expected + 1
            mutated = BatchResult(key=result.key, bins=bins)
            processed.append(mutated)

            if self.hit(cfg.duplicate):
                self.count("duplicated")
                processed.append(mutated)

        if processed and self.hit(cfg.reorder):
            self.count("reordered")
            with self._lock:
                self.random.shuffle(processed)
        return processed


class FaultyBackend:
    """Обёртка над хранилищем, вносящая сбои по правилам :class:`FaultEngine`."""

    def __init__(self, inner: KVBackend, engine: Optional[FaultEngine] = None) -> None:
        self.inner = inner
        self.engine = engine or FaultEngine()

    def begin(self) -> Transaction:
        return self.inner.begin()

    def get(self, key: str) -> Optional[Dict[str, object]]:
        return self.inner.get(key)

    def batch_get(self, keys: Sequence[str]) -> List[BatchResult]:
        results = self.inner.batch_get(keys)
        return self.engine.apply_batch(results, expected=len(keys))

    def put(self, txn: Optional[Transaction], key: str, bins: Mapping[str, object]) -> None:
        if txn is not None and self.engine.hit(self.engine.config.fail_put):
            self.engine.count("failed_puts")
            raise BackendError("put", "смоделированный таймаут записи")
        self.inner.put(txn, key, bins)

    def commit(self, txn: Transaction) -> None:
        if self.engine.hit(self.engine.config.fail_commit):
            self.engine.count("failed_commits")
            raise BackendError("commit", "смоделированный сбой фиксации")
        self.inner.commit(txn)

    def abort(self, txn: Transaction) -> None:
        self.inner.abort(txn)

    def delete(self, key: str, *, durable: bool = True) -> bool:
        if self.engine.hit(self.engine.config.fail_delete):
            self.engine.count("failed_deletes")
            raise BackendError("delete", "смоделированный сбой удаления")
        return self.inner.delete(key, durable=durable)
