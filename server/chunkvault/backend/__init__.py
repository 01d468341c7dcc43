"""KV-хранилища, на которые опирается протокол."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import BatchResult, Keyspace, KVBackend, Transaction  # noqa: F401
from .memory import InMemoryBackend  # noqa: F401

if TYPE_CHECKING:
    from ..config import Settings


def build_backend(settings: "Settings") -> KVBackend:
    """Выбрать реализацию хранилища по настройкам."""

    if settings.backend == "redis":
        from .redis_backend import RedisBackend, RedisSettings

        return RedisBackend.from_settings(RedisSettings(url=settings.redis_url))
    return InMemoryBackend()


def keyspace_from(settings: "Settings") -> Keyspace:
    return Keyspace(namespace=settings.namespace, set_name=settings.set_name)
