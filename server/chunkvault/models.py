"""Общие Pydantic-модели."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class FaultConfigRequest(BaseModel):
    loss: float = 0.0
    duplicate: float = 0.0
    reorder: float = 0.0
    corrupt_position: float = 0.0
    fail_put: float = 0.0
    fail_commit: float = 0.0
    fail_delete: float = 0.0

    @field_validator("*")
    @classmethod
    def clamp(cls, v: float) -> float:
        return max(0.0, min(v, 1.0))


class CleanupSummary(BaseModel):
    deleted: int = 0
    missing: int = 0
    failed: int = 0
    skipped: int = 0


class WriteResponse(BaseModel):
    write_id: str
    committed: bool
    state: str
    size_bytes: int
    chunk_count: int
    chunk_ids: List[str] = Field(default_factory=list)
    stale_count: int = 0
    cleanup: Optional[CleanupSummary] = None
    error: Optional[str] = None


class MetadataResponse(BaseModel):
    metadata_key: str
    chunk_ids: List[str]
    chunk_count: int


class WriteSummary(BaseModel):
    write_id: str
    created_at: datetime
    committed: bool
    size_bytes: int
    stages: Dict[str, Dict[str, float | str | int | bool | None]]


class StatusResponse(BaseModel):
    metadata_key: str
    present: bool = False
    chunk_count: int = 0
    readable: Optional[bool] = None
    missing_positions: List[int] = []
    last_write: Optional[WriteSummary] = None
