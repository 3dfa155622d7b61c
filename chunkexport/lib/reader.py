"""Chunked, resumable reader for a single binary column.

The reader drives one loop:

    offset = manifest.get_offset(identity)          # 1 when nothing saved
    while chunk := source.fetch_range(table, column, offset, chunk_size):
        sink.deliver(chunk)
        offset += len(chunk)
        manifest.save_offset(identity, offset)

Memory use is bounded by ``chunk_size``: a chunk is dropped as soon as the
sink returns. The offset is persisted after delivery and before the next
fetch, so a crash between the two redelivers one chunk on resume
(at-least-once across restarts) and never skips data.

Nothing is retried here. Any failure propagates and the caller decides
when to call ``resume()`` again.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from chunkexport.lib.errors import ConfigurationError, SinkDeliveryError, SourceFetchError
from chunkexport.lib.manifest import ColumnIdentity, IdentityLike, Manifest
from chunkexport.lib.sinks import as_sink

logger = logging.getLogger(__name__)

__all__ = ["ChunkSource", "ChunkedColumnReader", "DEFAULT_CHUNK_SIZE"]

DEFAULT_CHUNK_SIZE = 128


@runtime_checkable
class ChunkSource(Protocol):
    """Byte-range reader over a column value.

    ``offset`` is 1-based. Implementations return raw bytes (never
    character-decoded), at most ``length`` of them, and ``b""`` or None
    once ``offset`` is past the end of the value. Repeated calls with the
    same arguments against unchanged data return identical bytes.
    """

    def fetch_range(
        self, table: str, column: str, offset: int, length: int
    ) -> Optional[bytes]:
        ...


class ChunkedColumnReader:
    """Streams one column to a sink in fixed-size chunks, resumably.

    Args:
        source: ChunkSource doing the actual range fetch
        identity: ColumnIdentity or (table, column) pair
        sink: Sink object, or a callable taking one chunk
        manifest: Manifest holding the durable offset
        chunk_size: Maximum bytes per fetch (default 128)

    Raises:
        ConfigurationError: chunk_size is not a positive integer or the
            identity has an empty table/column name
    """

    def __init__(
        self,
        source: ChunkSource,
        identity: IdentityLike,
        sink: Any,
        manifest: Manifest,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if (
            not isinstance(chunk_size, int)
            or isinstance(chunk_size, bool)
            or chunk_size <= 0
        ):
            raise ConfigurationError(
                "chunk_size must be a positive integer",
                field="chunk_size",
                value=chunk_size,
            )
        if source is None or not callable(getattr(source, "fetch_range", None)):
            raise ConfigurationError(
                "source must provide fetch_range(table, column, offset, length)",
                field="source",
                value=type(source).__name__,
            )
        if manifest is None:
            raise ConfigurationError("manifest is required", field="manifest")

        self.source = source
        self.identity = ColumnIdentity.of(identity)
        self.sink = as_sink(sink)
        self.manifest = manifest
        self.chunk_size = chunk_size

    def process(self) -> None:
        """Export from the last saved offset until end of stream."""
        table, column = self.identity.table, self.identity.column
        offset = self.manifest.get_offset(self.identity)
        logger.info(
            "Reading %s from offset %d in chunks of %d bytes",
            self.identity,
            offset,
            self.chunk_size,
        )

        while True:
            chunk = self._fetch(offset)
            if not chunk:
                logger.info("Reached end of stream for %s at offset %d", self.identity, offset)
                return

            try:
                self.sink.deliver(chunk)
            except SinkDeliveryError:
                raise
            except Exception as exc:
                raise SinkDeliveryError(
                    f"Sink failed to handle chunk: {exc}",
                    table=table,
                    column=column,
                    offset=offset,
                    chunk_length=len(chunk),
                    cause=exc,
                ) from exc

            offset += len(chunk)
            self.manifest.save_offset(self.identity, offset)
            logger.debug("Delivered %d bytes of %s, next offset %d", len(chunk), self.identity, offset)

    def resume(self) -> None:
        """Same as ``process()``: every run starts from the saved offset."""
        self.process()

    def _fetch(self, offset: int) -> Optional[bytes]:
        table, column = self.identity.table, self.identity.column
        try:
            chunk = self.source.fetch_range(table, column, offset, self.chunk_size)
        except SourceFetchError:
            raise
        except Exception as exc:
            raise SourceFetchError(
                f"Fetch failed: {exc}",
                table=table,
                column=column,
                offset=offset,
                cause=exc,
            ) from exc

        if chunk is not None and len(chunk) > self.chunk_size:
            raise SourceFetchError(
                f"Source returned {len(chunk)} bytes for a {self.chunk_size}-byte request",
                table=table,
                column=column,
                offset=offset,
            )
        return chunk
