"""Функции нарезки и сборки чанков."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

from ..errors import StructuralError


@dataclass(frozen=True, slots=True)
class Chunk:
    """Отдельный фрагмент blob с позицией."""

    position: int
    payload: bytes


def count_chunks(length: int, chunk_size: int) -> int:
    """Число чанков: ceil(length / chunk_size)."""

    if chunk_size <= 0:
        raise ValueError("Размер чанка должен быть положительным.")
    if length < 0:
        raise ValueError("Длина не может быть отрицательной.")
    return (length + chunk_size - 1) // chunk_size


def build_chunks(data: bytes, chunk_size: int) -> List[Chunk]:
    """Нарезать байты на последовательные чанки.

    Последний чанк может быть короче ``chunk_size``. Пустой вход даёт пустой
    список, решение о том, что с ним делать, остаётся за вызывающим кодом.
    """

    count = count_chunks(len(data), chunk_size)
    chunks: List[Chunk] = []
    for position in range(count):
        start = position * chunk_size
        chunks.append(Chunk(position=position, payload=bytes(data[start : start + chunk_size])))
    return chunks


class ChunkAssembler:
    """Таблица слотов по позициям, из которой собирается blob."""

    def __init__(self, expected: int):
        if expected < 0:
            raise ValueError("Ожидаемое число чанков не может быть отрицательным.")
        self.expected = expected
        self._slots: Dict[int, bytes] = {}

    def add(self, chunk: Chunk) -> None:
        if not 0 <= chunk.position < self.expected:
            raise StructuralError(
                f"Позиция {chunk.position} вне диапазона [0, {self.expected})."
            )
        # повтор позиции перезаписывает слот
        self._slots[chunk.position] = chunk.payload

    @property
    def filled(self) -> int:
        return len(self._slots)

    def missing_positions(self) -> List[int]:
        return [pos for pos in range(self.expected) if pos not in self._slots]

    def has_all_data(self) -> bool:
        return self.filled == self.expected and not self.missing_positions()

    def reassemble(self) -> bytes:
        missing = self.missing_positions()
        if missing:
            raise StructuralError(
                f"Не хватает чанков: {missing} из {self.expected}.",
                missing=tuple(missing),
            )
        if self.filled != self.expected:
            raise StructuralError(
                f"Заполнено слотов {self.filled}, ожидалось {self.expected}."
            )
        return b"".join(self._slots[pos] for pos in range(self.expected))


def reassemble_chunks(chunks: Iterable[Chunk], expected: int) -> bytes:
    """Собрать полезную нагрузку из чанков в любом порядке."""

    assembler = ChunkAssembler(expected)
    for chunk in chunks:
        assembler.add(chunk)
    return assembler.reassemble()
