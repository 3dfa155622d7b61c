"""Test doubles shared by the unit tests."""

from typing import List, Optional, Tuple

from chunkexport.lib.manifest import OffsetManifest


class BytesChunkSource:
    """In-memory ChunkSource over one bytes value.

    Records every fetch and can be told to raise on a given call number.
    """

    def __init__(self, data: bytes, fail_on_call: Optional[int] = None, error: Optional[Exception] = None):
        self.data = data
        self.fail_on_call = fail_on_call
        self.error = error or RuntimeError("connection lost")
        self.calls: List[Tuple[str, str, int, int]] = []

    def fetch_range(self, table: str, column: str, offset: int, length: int) -> Optional[bytes]:
        self.calls.append((table, column, offset, length))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.error
        return self.data[offset - 1 : offset - 1 + length]

    def column_length(self, table: str, column: str) -> int:
        return len(self.data)

    @property
    def offsets(self) -> List[int]:
        return [call[2] for call in self.calls]


class SimulatedCrash(BaseException):
    """Stands in for the process dying between delivery and persist."""


class RecordingManifest(OffsetManifest):
    """OffsetManifest that counts saves and can simulate a crash before one."""

    def __init__(self, path, skip_save_number: Optional[int] = None):
        super().__init__(path)
        self.saves: List[int] = []
        self.skip_save_number = skip_save_number
        self._save_attempts = 0

    def save_offset(self, identity, offset):
        self._save_attempts += 1
        if self._save_attempts == self.skip_save_number:
            raise SimulatedCrash("crash before persist")
        super().save_offset(identity, offset)
        self.saves.append(offset)
