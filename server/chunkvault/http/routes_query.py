"""Маршруты состояния, мониторинга и эмуляции сбоев."""

from __future__ import annotations

from typing import AsyncGenerator, Dict

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from ..errors import BackendError
from ..faults import FaultConfig
from ..models import FaultConfigRequest, StatusResponse, WriteSummary
from ..pipelines.reader import ReadStatus

router = APIRouter()


def _get_metrics(request: Request):
    return request.app.state.metrics


def _get_sse(request: Request):
    return request.app.state.sse


def _get_faults(request: Request):
    return request.app.state.faults


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request) -> StatusResponse:
    """Текущие метаданные, читаемость версии и этапы последней записи."""

    storage = request.app.state.storage
    try:
        outcome = await run_in_threadpool(storage.read)
    except BackendError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    response = StatusResponse(metadata_key=storage.metadata_key)
    if outcome.status is not ReadStatus.NOT_FOUND:
        response.present = True
        response.readable = outcome.found
        response.missing_positions = list(outcome.missing)
        if outcome.metadata is not None:
            response.chunk_count = outcome.metadata.chunk_count

    last = storage.last_write()
    if last is not None:
        response.last_write = WriteSummary(
            write_id=last.write_id,
            created_at=last.created_at,
            committed=last.committed,
            size_bytes=last.size_bytes,
            stages=last.stage_metrics,
        )
    return response


@router.get("/metrics")
async def metrics_snapshot(request: Request):
    """Снимок текущих метрик."""

    return JSONResponse(_get_metrics(request).snapshot())


@router.get("/config/faults")
async def get_fault_config(request: Request):
    """Текущие параметры эмуляции сбоев и их счётчики."""

    engine = _get_faults(request)
    return JSONResponse({"config": engine.current_config(), "stats": engine.current_stats()})


@router.post("/config/faults")
async def configure_faults(payload: FaultConfigRequest, request: Request) -> Dict[str, float]:
    """Настройка вероятностей сбоев хранилища."""

    engine = _get_faults(request)
    engine.configure(FaultConfig(**payload.model_dump()))
    data = engine.current_config()
    await _get_sse(request).publish("faults_config", data)
    return data


@router.get("/events")
async def sse_events(request: Request):
    """SSE-поток событий записи и очистки."""

    async def event_stream() -> AsyncGenerator[str, None]:
        async for msg in _get_sse(request).subscribe():
            yield msg

    return StreamingResponse(event_stream(), media_type="text/event-stream")
