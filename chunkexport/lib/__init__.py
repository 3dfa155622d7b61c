"""Column export library modules.

This package contains the resumable chunk reader, offset manifests,
sinks, SQL chunk sources and the export service built from them.
"""

from chunkexport.lib.config_loader import ExportJob, load_job, load_job_from_dict
from chunkexport.lib.connections import close_all_connections, get_connection
from chunkexport.lib.env import expand_connection_options, expand_env_vars, load_env_file
from chunkexport.lib.errors import (
    ConfigurationError,
    ConnectionError,
    ExportError,
    ExportVerificationError,
    ManifestCorruptError,
    ManifestError,
    RowNotFoundError,
    SinkDeliveryError,
    SourceFetchError,
)
from chunkexport.lib.export import ExportResult, export_column, job_status, reset_job
from chunkexport.lib.logging import ExportLogger, JSONFormatter, get_export_logger, setup_logging
from chunkexport.lib.manifest import (
    DEFAULT_START_OFFSET,
    ColumnIdentity,
    JournalManifest,
    Manifest,
    OffsetManifest,
    open_manifest,
)
from chunkexport.lib.reader import DEFAULT_CHUNK_SIZE, ChunkedColumnReader, ChunkSource
from chunkexport.lib.resilience import RetryConfig, RetryingChunkSource
from chunkexport.lib.sinks import CallbackSink, FileSink, ForwardingSink, MemorySink, Sink
from chunkexport.lib.sources import DIALECTS, RowKey, SqlChunkSource, SqlDialect

__all__ = [
    # Core
    "ChunkedColumnReader",
    "ChunkSource",
    "ColumnIdentity",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_START_OFFSET",
    # Manifests
    "JournalManifest",
    "Manifest",
    "OffsetManifest",
    "open_manifest",
    # Sinks
    "CallbackSink",
    "FileSink",
    "ForwardingSink",
    "MemorySink",
    "Sink",
    # Sources
    "DIALECTS",
    "RetryConfig",
    "RetryingChunkSource",
    "RowKey",
    "SqlChunkSource",
    "SqlDialect",
    "close_all_connections",
    "get_connection",
    # Export service
    "ExportJob",
    "ExportResult",
    "export_column",
    "job_status",
    "load_job",
    "load_job_from_dict",
    "reset_job",
    # Errors
    "ConfigurationError",
    "ConnectionError",
    "ExportError",
    "ExportVerificationError",
    "ManifestCorruptError",
    "ManifestError",
    "RowNotFoundError",
    "SinkDeliveryError",
    "SourceFetchError",
    # Utilities
    "ExportLogger",
    "JSONFormatter",
    "expand_connection_options",
    "expand_env_vars",
    "get_export_logger",
    "load_env_file",
    "setup_logging",
]
