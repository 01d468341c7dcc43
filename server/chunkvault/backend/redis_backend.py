"""KV-хранилище поверх Redis: хэш на запись, MULTI/EXEC на транзакцию."""

from __future__ import annotations

import json
import logging
import threading
from typing import Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, model_validator
from redis import Redis
from redis.exceptions import RedisError

from ..errors import BackendError
from .base import BatchResult, Transaction

logger = logging.getLogger(__name__)

# Бин хранится с однобайтовым тегом типа: bytes, int или список строк.
_TAG_BYTES = b"b"
_TAG_INT = b"i"
_TAG_LIST = b"l"


class RedisSettings(BaseModel):
    """Параметры подключения к Redis."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Optional[str] = None
    host: str = "localhost"
    port: int = Field(default=6379, gt=0)
    db: int = Field(default=0, ge=0)
    password: str = ""
    ssl: bool = False
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    socket_timeout_seconds: float = Field(default=5.0, gt=0)
    max_connections: int = Field(default=20, gt=0)

    @model_validator(mode="after")
    def _resolve_url(self) -> "RedisSettings":
        if self.url is not None and self.url.strip():
            object.__setattr__(self, "url", self.url.strip())
            return self
        if not self.host.strip():
            raise ValueError("host обязателен, если url не задан")
        auth = f":{quote_plus(self.password)}@" if self.password else ""
        scheme = "rediss" if self.ssl else "redis"
        object.__setattr__(self, "url", f"{scheme}://{auth}{self.host.strip()}:{self.port}/{self.db}")
        return self


def create_redis_client(settings: RedisSettings) -> Redis:
    """Собрать клиент; ответы не декодируются, полезная нагрузка бинарная."""
    return Redis.from_url(
        url=settings.url or "",
        socket_connect_timeout=settings.connect_timeout_seconds,
        socket_timeout=settings.socket_timeout_seconds,
        max_connections=settings.max_connections,
        decode_responses=False,
    )


def encode_value(value: object) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return _TAG_BYTES + bytes(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return _TAG_INT + str(value).encode("ascii")
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return _TAG_LIST + json.dumps(list(value)).encode("utf-8")
    raise TypeError(f"Неподдерживаемый тип бина: {type(value).__name__}")


def decode_value(raw: bytes) -> object:
    tag, body = raw[:1], raw[1:]
    if tag == _TAG_BYTES:
        return body
    if tag == _TAG_INT:
        return int(body)
    if tag == _TAG_LIST:
        return json.loads(body.decode("utf-8"))
    raise ValueError(f"Неизвестный тег бина: {tag!r}")


def decode_bins(raw: Mapping[bytes, bytes]) -> Optional[Dict[str, object]]:
    if not raw:
        return None
    bins: Dict[str, object] = {}
    for name, value in raw.items():
        field_name = name.decode("utf-8") if isinstance(name, bytes) else str(name)
        try:
            bins[field_name] = decode_value(value)
        except ValueError as exc:
            # повреждённый бин отдаём как None; проверка записи решит, что с ним делать
            logger.warning("Бин %s не декодирован: %s", field_name, exc)
            bins[field_name] = None
    return bins


class RedisBackend:
    """Хранилище на redis-py.

    Транзакция соответствует конвейеру ``MULTI/EXEC``: команды копятся на
    клиенте и выполняются атомарно в ``EXEC``, до этого их никто не видит.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._pipelines: Dict[str, object] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> "RedisBackend":
        return cls(create_redis_client(settings))

    def begin(self) -> Transaction:
        txn = Transaction()
        with self._lock:
            self._pipelines[txn.txn_id] = self._client.pipeline(transaction=True)
        return txn

    def _pipeline(self, txn: Transaction, operation: str):
        txn.ensure_open(operation)
        pipeline = self._pipelines.get(txn.txn_id)
        if pipeline is None:
            raise BackendError(operation, f"неизвестная транзакция {txn.txn_id}")
        return pipeline

    def get(self, key: str) -> Optional[Dict[str, object]]:
        try:
            raw = self._client.hgetall(key)
        except RedisError as exc:
            raise BackendError("get", str(exc)) from exc
        return decode_bins(raw)

    def batch_get(self, keys: Sequence[str]) -> List[BatchResult]:
        if not keys:
            return []
        try:
            pipeline = self._client.pipeline(transaction=False)
            for key in keys:
                pipeline.hgetall(key)
            replies = pipeline.execute()
        except RedisError as exc:
            raise BackendError("batch_get", str(exc)) from exc
        # ответы конвейера идут в порядке команд
        return [BatchResult(key=key, bins=decode_bins(raw)) for key, raw in zip(keys, replies)]

    def put(self, txn: Optional[Transaction], key: str, bins: Mapping[str, object]) -> None:
        mapping = {name: encode_value(value) for name, value in bins.items()}
        try:
            if txn is None:
                pipeline = self._client.pipeline(transaction=True)
                pipeline.delete(key)
                pipeline.hset(key, mapping=mapping)
                pipeline.execute()
                return
            with self._lock:
                pipeline = self._pipeline(txn, "put")
                pipeline.delete(key)
                pipeline.hset(key, mapping=mapping)
        except RedisError as exc:
            raise BackendError("put", str(exc)) from exc

    def commit(self, txn: Transaction) -> None:
        with self._lock:
            pipeline = self._pipeline(txn, "commit")
            try:
                pipeline.execute()
            except RedisError as exc:
                raise BackendError("commit", str(exc)) from exc
            finally:
                self._pipelines.pop(txn.txn_id, None)
                txn.open = False

    def abort(self, txn: Transaction) -> None:
        with self._lock:
            pipeline = self._pipelines.pop(txn.txn_id, None)
            txn.open = False
        if pipeline is not None:
            pipeline.reset()

    def delete(self, key: str, *, durable: bool = True) -> bool:
        # durable в Redis определяется настройками AOF/RDB сервера
        del durable
        try:
            return bool(self._client.delete(key))
        except RedisError as exc:
            raise BackendError("delete", str(exc)) from exc
