"""Конфигурация приложения через pydantic settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Рабочие параметры хранилища и сервера."""

    model_config = SettingsConfigDict(env_prefix="CHUNKVAULT_")

    chunk_size: int = 1024 * 1024
    max_blob_size: int = 64 * 1024 * 1024
    namespace: str = "test"
    set_name: str = "demo"
    metadata_key: str = "metadata"
    backend: Literal["memory", "redis"] = "memory"
    redis_url: Optional[str] = None
    write_workers: int = 1
    durable_delete: bool = True
    history_size: int = 20
    metrics_window_seconds: int = 60
    sse_queue_size: int = 100
    log_level: str = "INFO"

    @field_validator("chunk_size", "write_workers", "max_blob_size")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("значение должно быть положительным")
        return v

    @field_validator("history_size")
    @classmethod
    def non_negative(cls, v: int) -> int:
        return max(0, v)


settings = Settings()
