"""Контракт KV-хранилища, которым пользуется протокол записи и чтения."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from ..errors import BackendError


@dataclass(frozen=True, slots=True)
class Keyspace:
    """Пространство ключей: namespace + set, как у записей Aerospike."""

    namespace: str = "test"
    set_name: str = "demo"

    def qualify(self, user_key: str) -> str:
        return f"{self.namespace}:{self.set_name}:{user_key}"


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Один результат пакетного чтения, помеченный запрошенным ключом."""

    key: str
    bins: Optional[Dict[str, object]]


@dataclass(slots=True)
class Transaction:
    """Дескриптор транзакции; все записи одной версии идут через него."""

    txn_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    open: bool = True

    def ensure_open(self, operation: str) -> None:
        if not self.open:
            raise BackendError(operation, f"транзакция {self.txn_id} уже закрыта")


class KVBackend(Protocol):
    """Минимальный набор операций, на которые опирается ядро."""

    def begin(self) -> Transaction:
        """Открыть новую транзакцию."""

    def get(self, key: str) -> Optional[Dict[str, object]]:
        """Прочитать одну запись вне транзакции или ``None``."""

    def batch_get(self, keys: Sequence[str]) -> List[BatchResult]:
        """Прочитать записи пачкой; порядок результатов не гарантирован."""

    def put(self, txn: Optional[Transaction], key: str, bins: Mapping[str, object]) -> None:
        """Записать бины; с ``txn`` запись невидима до commit."""

    def commit(self, txn: Transaction) -> None:
        """Атомарно опубликовать все записи транзакции."""

    def abort(self, txn: Transaction) -> None:
        """Отбросить все записи транзакции."""

    def delete(self, key: str, *, durable: bool = True) -> bool:
        """Удалить запись; ``False``, если ключа не было."""
