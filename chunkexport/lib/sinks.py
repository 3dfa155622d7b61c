"""Chunk sinks: consumers of delivered column bytes.

The reader hands every non-empty chunk to ``Sink.deliver`` exactly in
offset order. A sink that raises stops the export; the chunk is delivered
again on resume, so sinks with side effects must tolerate redelivery.
``FileSink.align`` gives file output that guarantee by truncating the
file back to the last persisted offset before an export resumes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Protocol, Union, runtime_checkable

from chunkexport.lib.errors import ConfigurationError, ExportVerificationError

logger = logging.getLogger(__name__)

__all__ = [
    "CallbackSink",
    "FileSink",
    "ForwardingSink",
    "MemorySink",
    "Sink",
    "as_sink",
]


@runtime_checkable
class Sink(Protocol):
    """Consumer of one chunk at a time."""

    def deliver(self, chunk: bytes) -> None:
        ...


class CallbackSink:
    """Adapts a plain ``callback(chunk)`` function to the Sink protocol."""

    def __init__(self, callback: Callable[[bytes], Any]) -> None:
        if not callable(callback):
            raise ConfigurationError(
                "CallbackSink requires a callable", field="callback", value=callback
            )
        self.callback = callback

    def deliver(self, chunk: bytes) -> None:
        self.callback(chunk)


class MemorySink:
    """Keeps every delivered chunk in memory. Meant for tests and small values."""

    def __init__(self) -> None:
        self.chunks: List[bytes] = []

    def deliver(self, chunk: bytes) -> None:
        self.chunks.append(bytes(chunk))

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)

    @property
    def lengths(self) -> List[int]:
        return [len(chunk) for chunk in self.chunks]


class ForwardingSink:
    """Delivers each chunk to several sinks in order.

    If one of them raises, the later ones do not see the chunk.
    """

    def __init__(self, *sinks: Any) -> None:
        if not sinks:
            raise ConfigurationError("ForwardingSink needs at least one sink", field="sinks")
        self.sinks = [as_sink(sink) for sink in sinks]

    def deliver(self, chunk: bytes) -> None:
        for sink in self.sinks:
            sink.deliver(chunk)


class FileSink:
    """Appends chunks to a binary file.

    Example:
        >>> with FileSink("./post_content.bin") as sink:
        ...     sink.align(manifest.get_offset(identity))
        ...     ChunkedColumnReader(source, identity, sink, manifest).resume()
    """

    def __init__(self, path: Union[str, Path], *, fsync: bool = False) -> None:
        self.path = Path(path)
        self.fsync = fsync
        self._handle: Optional[BinaryIO] = None

    def _open(self) -> BinaryIO:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "ab")
        return self._handle

    def deliver(self, chunk: bytes) -> None:
        handle = self._open()
        handle.write(chunk)
        handle.flush()
        if self.fsync:
            os.fsync(handle.fileno())

    def size(self) -> int:
        if self._handle is not None:
            self._handle.flush()
        return self.path.stat().st_size if self.path.exists() else 0

    def align(self, offset: int) -> int:
        """Truncate the file to the bytes before ``offset``.

        Bytes past ``offset - 1`` were written after the last persisted
        offset and will be delivered again, so they are dropped.

        Returns:
            Number of bytes removed

        Raises:
            ExportVerificationError: The file is shorter than the manifest
                says, so part of the already exported data is missing.
        """
        expected = offset - 1
        actual = self.size()
        if actual < expected:
            raise ExportVerificationError(
                "Output file is shorter than the saved offset",
                output_path=str(self.path),
                expected_bytes=expected,
                actual_bytes=actual,
                suggestion="Reset the offset and export again from the start.",
            )
        if actual == expected:
            return 0

        self.close()
        with open(self.path, "r+b") as f:
            f.truncate(expected)
        removed = actual - expected
        logger.warning(
            "Truncated %d unacknowledged bytes from %s (resuming at offset %d)",
            removed,
            self.path,
            offset,
        )
        return removed

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "FileSink":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def as_sink(sink: Any) -> Sink:
    """Return ``sink`` itself if it has ``deliver``, else wrap a callable."""
    if isinstance(sink, Sink):
        return sink
    if callable(sink):
        return CallbackSink(sink)
    raise ConfigurationError(
        "Sink must provide deliver(chunk) or be a callable",
        field="sink",
        value=type(sink).__name__,
    )
