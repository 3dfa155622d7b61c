"""Export service: one configured column to one output file.

Wires an ExportJob to a SqlChunkSource, a FileSink and a manifest, then
runs the resumable reader. Before reading, the output file is aligned to
the saved offset so a chunk redelivered after a crash overwrites the
unacknowledged tail instead of being appended twice. After reading, the
output size can be checked against the column's byte length.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from chunkexport.lib.config_loader import ExportJob
from chunkexport.lib.connections import dialect_for, get_connection
from chunkexport.lib.errors import ExportVerificationError
from chunkexport.lib.logging import get_export_logger
from chunkexport.lib.manifest import DEFAULT_START_OFFSET, open_manifest
from chunkexport.lib.reader import ChunkedColumnReader
from chunkexport.lib.resilience import RetryingChunkSource
from chunkexport.lib.sinks import FileSink
from chunkexport.lib.sources import SqlChunkSource

logger = get_export_logger(__name__)

__all__ = ["ExportResult", "build_source", "export_column", "job_status", "reset_job"]


@dataclass
class ExportResult:
    """Outcome of one export run."""

    table: str
    column: str
    output_path: str
    start_offset: int
    end_offset: int
    bytes_written: int
    elapsed_seconds: float
    verified: bool = False
    resumed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "column": self.column,
            "output_path": self.output_path,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "bytes_written": self.bytes_written,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "verified": self.verified,
            "resumed": self.resumed,
        }


def build_source(job: ExportJob) -> Any:
    """Open (or reuse) the job's connection and build its chunk source."""
    connection = get_connection(job.connection_name, job.source_type, job.connection_options)
    dialect = job.dialect or dialect_for(job.source_type)
    source: Any = SqlChunkSource(connection, dialect, row_key=job.row_key)
    if job.retry is not None:
        source = RetryingChunkSource(source, job.retry)
    return source


def export_column(job: ExportJob, *, source: Optional[Any] = None) -> ExportResult:
    """Export ``job``'s column, resuming from its manifest.

    Args:
        job: Export job configuration
        source: ChunkSource override (defaults to ``build_source(job)``)

    Raises:
        SourceFetchError, SinkDeliveryError, ManifestError: from the reader
        ExportVerificationError: output size differs from the column length
    """
    with logger.context(table=job.table, column=job.column, output_path=job.output_path):
        return _run_export(job, source if source is not None else build_source(job))


def _run_export(job: ExportJob, source: Any) -> ExportResult:
    manifest = open_manifest(job.manifest_path, job.manifest_format)
    start_offset = manifest.get_offset(job.identity)
    started = time.monotonic()

    with FileSink(job.output_path) as sink:
        existing = sink.size()
        if start_offset == DEFAULT_START_OFFSET and existing:
            logger.warning(
                "No saved progress; overwriting %d bytes already in the output file",
                existing,
                offset=start_offset,
            )
        elif start_offset > DEFAULT_START_OFFSET:
            logger.info("Resuming export at offset %d", start_offset, offset=start_offset)
        sink.align(start_offset)
        sink.path.parent.mkdir(parents=True, exist_ok=True)
        sink.path.touch(exist_ok=True)

        reader = ChunkedColumnReader(source, job.identity, sink, manifest, job.chunk_size)
        reader.resume()
        output_size = sink.size()

    end_offset = manifest.get_offset(job.identity)
    result = ExportResult(
        table=job.table,
        column=job.column,
        output_path=job.output_path,
        start_offset=start_offset,
        end_offset=end_offset,
        bytes_written=end_offset - start_offset,
        elapsed_seconds=time.monotonic() - started,
        resumed=start_offset > DEFAULT_START_OFFSET,
    )

    if job.verify and not hasattr(source, "column_length"):
        logger.warning("Source cannot report column length; skipping verification")
    elif job.verify:
        expected = source.column_length(job.table, job.column)
        if expected != output_size:
            raise ExportVerificationError(
                "Output size does not match the column's byte length",
                table=job.table,
                column=job.column,
                output_path=job.output_path,
                expected_bytes=expected,
                actual_bytes=output_size,
            )
        result.verified = True

    logger.metric("bytes_exported", result.bytes_written, unit="bytes")
    logger.metric("duration_seconds", round(result.elapsed_seconds, 3), unit="seconds")
    logger.info("Exported %s.%s to %s", job.table, job.column, job.output_path, offset=end_offset)
    return result


def job_status(job: ExportJob) -> Dict[str, Any]:
    """Saved progress for the job's column."""
    manifest = open_manifest(job.manifest_path, job.manifest_format)
    offset = manifest.get_offset(job.identity)
    return {
        "table": job.table,
        "column": job.column,
        "manifest": job.manifest_path,
        "next_offset": offset,
        "bytes_exported": offset - DEFAULT_START_OFFSET,
    }


def reset_job(job: ExportJob, *, remove_output: bool = True) -> bool:
    """Forget saved progress so the next run starts at offset 1.

    The output file is deleted too (by default) since it would otherwise
    no longer match the manifest. A kept file is only kept until the next
    run, which starts at offset 1 and overwrites it.

    Returns:
        True if a saved offset was removed
    """
    manifest = open_manifest(job.manifest_path, job.manifest_format)
    removed = manifest.reset_offset(job.identity)
    output = Path(job.output_path)
    if remove_output and output.exists():
        output.unlink()
        logger.info("Removed output file %s", output)
    return removed
