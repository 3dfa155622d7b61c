"""Resumable, chunked export of a single binary database column.

Usage:
    python -m chunkexport run ./post_content.yaml
    python -m chunkexport status ./post_content.yaml
    python -m chunkexport reset ./post_content.yaml
"""

from chunkexport.lib.manifest import ColumnIdentity, OffsetManifest
from chunkexport.lib.reader import ChunkedColumnReader, ChunkSource
from chunkexport.lib.sinks import FileSink, Sink

__version__ = "1.0.0"

__all__ = [
    "ChunkedColumnReader",
    "ChunkSource",
    "ColumnIdentity",
    "FileSink",
    "OffsetManifest",
    "Sink",
]
