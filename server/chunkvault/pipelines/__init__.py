"""Вспомогательные экспорты модулей конвейера."""

from .chunking import Chunk, ChunkAssembler, build_chunks, count_chunks, reassemble_chunks  # noqa: F401
from .cleanup import CleanupReport, cleanup_stale, resolve_stale_set  # noqa: F401
from .metrics import MetricAggregator  # noqa: F401
from .reader import ReadOutcome, ReadStatus, read_blob  # noqa: F401
from .records import (
    ChunkRecord,
    MetadataRecord,
    decode_chunk_record,
    decode_metadata_record,
    encode_chunk_record,
    encode_metadata_record,
)  # noqa: F401
from .writer import WriteOutcome, WriteState, write_chunks  # noqa: F401
