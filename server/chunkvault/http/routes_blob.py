"""Маршруты записи и чтения blob."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ..errors import BackendError, BlobCorruptError, BlobNotFoundError, EmptyBlobError
from ..models import CleanupSummary, MetadataResponse, WriteResponse
from ..storage import BlobStorage, PutResult

router = APIRouter()


def _get_storage(request: Request) -> BlobStorage:
    return request.app.state.storage


def _get_sse(request: Request):
    return request.app.state.sse


def _get_metrics(request: Request):
    return request.app.state.metrics


def _write_response(result: PutResult) -> WriteResponse:
    record = result.record
    cleanup: Optional[CleanupSummary] = None
    if record.cleanup is not None:
        cleanup = CleanupSummary(**record.cleanup.as_metrics())
    return WriteResponse(
        write_id=record.write_id,
        committed=record.committed,
        state=record.outcome.state.value,
        size_bytes=record.size_bytes,
        chunk_count=len(record.outcome.chunk_ids),
        chunk_ids=list(record.outcome.chunk_ids),
        stale_count=len(record.stale_ids),
        cleanup=cleanup,
        error=record.outcome.error,
    )


@router.put("/blob", response_model=WriteResponse)
async def put_blob(request: Request) -> WriteResponse:
    """Записать тело запроса как новую версию blob."""

    storage = _get_storage(request)
    data = await request.body()
    try:
        result = await run_in_threadpool(storage.put_blob, data)
    except EmptyBlobError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))

    response = _write_response(result)
    _get_metrics(request).record_write(
        len(data),
        result.outcome.duration,
        response.chunk_count,
        result.committed,
    )

    if not result.committed:
        await _get_sse(request).publish(
            "write_aborted",
            {"write_id": response.write_id, "state": response.state, "error": response.error},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response.model_dump(),
        )

    await _get_sse(request).publish(
        "blob_written",
        {
            "write_id": response.write_id,
            "size_bytes": response.size_bytes,
            "chunk_count": response.chunk_count,
            "ts": time.time(),
        },
    )
    if result.cleanup is not None and result.cleanup.examined:
        stats = result.cleanup.as_metrics()
        _get_metrics(request).record_cleanup(stats)
        await _get_sse(request).publish("cleanup", {"write_id": response.write_id, **stats})
    return response


@router.get("/blob")
async def get_blob(request: Request) -> Response:
    """Выдать собранное содержимое текущей версии."""

    storage = _get_storage(request)
    start = time.perf_counter()
    try:
        data = await run_in_threadpool(storage.get_blob)
    except BlobNotFoundError as exc:
        _get_metrics(request).record_read(0, time.perf_counter() - start, "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except BlobCorruptError as exc:
        _get_metrics(request).record_read(0, time.perf_counter() - start, "corrupt")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": exc.reason, "missing": list(exc.missing)},
        )
    except BackendError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    _get_metrics(request).record_read(len(data), time.perf_counter() - start, "found")
    return Response(content=data, media_type="application/octet-stream")


@router.get("/blob/meta", response_model=MetadataResponse)
async def get_metadata(request: Request) -> MetadataResponse:
    """Запись метаданных текущей версии."""

    storage = _get_storage(request)
    try:
        metadata = await run_in_threadpool(storage.stat)
    except BlobCorruptError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.reason)
    except BackendError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blob не найден.")
    return MetadataResponse(
        metadata_key=storage.metadata_key,
        chunk_ids=list(metadata.chunk_ids),
        chunk_count=metadata.chunk_count,
    )
