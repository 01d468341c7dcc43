"""Сбор и агрегация метрик в скользящем окне."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict


@dataclass(slots=True)
class WriteSample:
    timestamp: float
    num_bytes: int
    duration: float
    chunks: int
    committed: bool


@dataclass(slots=True)
class ReadSample:
    timestamp: float
    num_bytes: int
    duration: float
    status: str


@dataclass(slots=True)
class CleanupSample:
    timestamp: float
    stats: Dict[str, int]


class MetricAggregator:
    """Собирает статистику записи, чтения и очистки в пределах окна."""

    def __init__(self, window_seconds: int = 60) -> None:
        self.window_seconds = window_seconds
        self._writes: Deque[WriteSample] = deque()
        self._reads: Deque[ReadSample] = deque()
        self._cleanups: Deque[CleanupSample] = deque()

    # ---------- Recording helpers ----------
    def record_write(self, num_bytes: int, duration: float, chunks: int, committed: bool) -> None:
        self._writes.append(WriteSample(time.time(), num_bytes, duration, chunks, committed))
        self._trim()

    def record_read(self, num_bytes: int, duration: float, status: str) -> None:
        self._reads.append(ReadSample(time.time(), num_bytes, duration, status))
        self._trim()

    def record_cleanup(self, stats: Dict[str, int]) -> None:
        self._cleanups.append(CleanupSample(time.time(), dict(stats)))
        self._trim()

    # ---------- Aggregates ----------
    def _trim(self) -> None:
        cutoff = time.time() - self.window_seconds
        for deque_ in (self._writes, self._reads, self._cleanups):
            while deque_ and deque_[0].timestamp < cutoff:
                deque_.popleft()

    def write_throughput_kbps(self) -> float:
        committed = [sample for sample in self._writes if sample.committed]
        if not committed:
            return 0.0
        total_bytes = sum(sample.num_bytes for sample in committed)
        total_time = sum(sample.duration for sample in committed) or 1e-6
        return (total_bytes * 8 / 1000) / total_time

    def read_throughput_kbps(self) -> float:
        found = [sample for sample in self._reads if sample.status == "found"]
        if not found:
            return 0.0
        total_bytes = sum(sample.num_bytes for sample in found)
        total_time = sum(sample.duration for sample in found) or 1e-6
        return (total_bytes * 8 / 1000) / total_time

    def aborted_writes(self) -> int:
        return sum(1 for sample in self._writes if not sample.committed)

    def corrupt_reads(self) -> int:
        return sum(1 for sample in self._reads if sample.status == "corrupt")

    def cleanup_totals(self) -> Dict[str, int]:
        totals = {"deleted": 0, "missing": 0, "failed": 0, "skipped": 0}
        for sample in self._cleanups:
            for key, value in sample.stats.items():
                totals[key] = totals.get(key, 0) + value
        return totals

    def snapshot(self) -> Dict[str, object]:
        self._trim()
        return {
            "window_seconds": self.window_seconds,
            "write_throughput_kbps": round(self.write_throughput_kbps(), 3),
            "read_throughput_kbps": round(self.read_throughput_kbps(), 3),
            "aborted_writes": self.aborted_writes(),
            "corrupt_reads": self.corrupt_reads(),
            "cleanup": self.cleanup_totals(),
            "samples": {
                "writes": len(self._writes),
                "reads": len(self._reads),
                "cleanups": len(self._cleanups),
            },
        }
