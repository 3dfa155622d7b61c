"""Offset manifests: durable per-column export progress.

A manifest maps a (table, column) identity to the 1-based offset of the
next byte to read. Two storage layouts are provided:

- ``OffsetManifest``: a pretty-printed JSON document ``{table: {column:
  offset}}`` rewritten wholesale on every save. Easy to inspect and edit
  by hand.
- ``JournalManifest``: an append-only JSONL log, one record per save,
  latest record per identity wins. Cheaper for very frequent saves;
  ``compact()`` folds it back to one line per identity.

Both treat a missing file as "no progress yet" and an unparsable file as
fatal (``ManifestCorruptError``): silently restarting from offset 1 would
re-export data without anybody noticing.

Neither layout locks the file. Run one writer per manifest file, or wrap
saves in your own lock when several exports share one.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple, Union, runtime_checkable

from chunkexport.lib.errors import (
    ConfigurationError,
    ManifestCorruptError,
    ManifestError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_START_OFFSET",
    "ColumnIdentity",
    "JournalManifest",
    "Manifest",
    "OffsetManifest",
    "open_manifest",
]

DEFAULT_START_OFFSET = 1

IdentityLike = Union["ColumnIdentity", Tuple[str, str]]


@dataclass(frozen=True)
class ColumnIdentity:
    """Key of a single exportable byte stream."""

    table: str
    column: str

    def __post_init__(self) -> None:
        for field_name in ("table", "column"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(
                    f"Column identity {field_name} must be a non-empty string",
                    field=field_name,
                    value=value,
                )

    @classmethod
    def of(cls, identity: IdentityLike) -> "ColumnIdentity":
        """Accept either a ColumnIdentity or a (table, column) pair."""
        if isinstance(identity, cls):
            return identity
        if isinstance(identity, (str, bytes)):
            raise ConfigurationError(
                "Column identity must be a (table, column) pair, not a string",
                field="identity",
                value=identity,
            )
        try:
            table, column = identity
        except (TypeError, ValueError):
            raise ConfigurationError(
                "Column identity must be a ColumnIdentity or a (table, column) pair",
                field="identity",
                value=identity,
            ) from None
        return cls(table, column)

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


@runtime_checkable
class Manifest(Protocol):
    """Durable store of per-identity offsets."""

    def get_offset(self, identity: IdentityLike) -> int:
        """Return the saved offset, or DEFAULT_START_OFFSET when there is none."""
        ...

    def save_offset(self, identity: IdentityLike, offset: int) -> None:
        """Durably persist ``offset`` for ``identity`` before returning."""
        ...


def _is_offset(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _check_new_offset(
    identity: ColumnIdentity, offset: Any, current: Optional[int], path: Path
) -> None:
    if not _is_offset(offset):
        raise ManifestError(
            f"Offset must be an integer >= {DEFAULT_START_OFFSET}, got {offset!r}",
            table=identity.table,
            column=identity.column,
            path=str(path),
        )
    if current is not None and offset < current:
        raise ManifestError(
            f"Refusing to move offset backwards from {current} to {offset}",
            table=identity.table,
            column=identity.column,
            path=str(path),
            suggestion="Use reset_offset() to restart an export deliberately.",
        )


def _replace_file(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` through a temp file and an atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


class OffsetManifest:
    """JSON document manifest, rewritten in full on every save.

    Example:
        >>> manifest = OffsetManifest("./.state/manifest.json")
        >>> manifest.get_offset(("wp_posts", "post_content"))
        1
        >>> manifest.save_offset(("wp_posts", "post_content"), 129)
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict[str, int]]:
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ManifestCorruptError(
                f"Manifest is not valid JSON: {exc}", path=str(self.path)
            ) from exc

        if not isinstance(data, dict):
            raise ManifestCorruptError(
                f"Manifest root must be an object, got {type(data).__name__}",
                path=str(self.path),
            )
        for table, columns in data.items():
            if not isinstance(columns, dict):
                raise ManifestCorruptError(
                    f"Manifest entry for table {table!r} must be an object",
                    path=str(self.path),
                )
            for column, offset in columns.items():
                if not _is_offset(offset):
                    raise ManifestCorruptError(
                        f"Invalid offset {offset!r} for {table}.{column}",
                        path=str(self.path),
                    )
        return data

    def get_offset(self, identity: IdentityLike) -> int:
        identity = ColumnIdentity.of(identity)
        data = self._load()
        offset = data.get(identity.table, {}).get(identity.column)
        if offset is None:
            logger.debug("No saved offset for %s in %s", identity, self.path)
            return DEFAULT_START_OFFSET
        return offset

    def save_offset(self, identity: IdentityLike, offset: int) -> None:
        identity = ColumnIdentity.of(identity)
        data = self._load()
        current = data.get(identity.table, {}).get(identity.column)
        _check_new_offset(identity, offset, current, self.path)

        data.setdefault(identity.table, {})[identity.column] = offset
        _replace_file(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")
        logger.debug("Saved offset for %s: %d", identity, offset)

    def reset_offset(self, identity: IdentityLike) -> bool:
        """Forget the saved offset for one identity.

        Returns:
            True if an entry was removed
        """
        identity = ColumnIdentity.of(identity)
        data = self._load()
        columns = data.get(identity.table)
        if not columns or identity.column not in columns:
            return False

        del columns[identity.column]
        if not columns:
            del data[identity.table]
        _replace_file(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")
        logger.info("Reset offset for %s", identity)
        return True

    def list_offsets(self) -> Dict[str, Dict[str, int]]:
        return self._load()


class JournalManifest:
    """Append-only JSONL manifest.

    Each save appends ``{"table", "column", "offset", "saved_at"}`` and
    fsyncs before returning. On load the latest record per identity wins.
    A torn final line (crash during an append) is ignored with a warning:
    that save never returned, so the previous offset is the durable one.
    The next save cuts the torn bytes off before appending.
    Malformed lines anywhere else are corruption.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._offsets: Optional[Dict[ColumnIdentity, int]] = None

    def _read(self) -> Dict[ColumnIdentity, int]:
        offsets: Dict[ColumnIdentity, int] = {}
        if not self.path.exists():
            return offsets

        try:
            text = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestCorruptError(
                f"Manifest journal is not UTF-8: {exc}", path=str(self.path)
            ) from exc

        lines = text.split("\n")
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            is_torn_tail = lineno == len(lines) and not text.endswith("\n")
            try:
                record = json.loads(line)
                identity = ColumnIdentity(record["table"], record["column"])
                offset = record["offset"]
            except (json.JSONDecodeError, KeyError, TypeError, ConfigurationError) as exc:
                if is_torn_tail:
                    logger.warning(
                        "Ignoring incomplete last line of manifest journal %s",
                        self.path,
                    )
                    break
                raise ManifestCorruptError(
                    f"Malformed journal record on line {lineno}: {exc}",
                    path=str(self.path),
                ) from exc
            if not _is_offset(offset):
                raise ManifestCorruptError(
                    f"Invalid offset {offset!r} on line {lineno}",
                    path=str(self.path),
                )
            offsets[identity] = offset
        return offsets

    def _latest(self, refresh: bool) -> Dict[ColumnIdentity, int]:
        if refresh or self._offsets is None:
            self._offsets = self._read()
        return self._offsets

    def get_offset(self, identity: IdentityLike) -> int:
        identity = ColumnIdentity.of(identity)
        return self._latest(refresh=True).get(identity, DEFAULT_START_OFFSET)

    def save_offset(self, identity: IdentityLike, offset: int) -> None:
        identity = ColumnIdentity.of(identity)
        offsets = self._latest(refresh=False)
        _check_new_offset(identity, offset, offsets.get(identity), self.path)

        record = {
            "table": identity.table,
            "column": identity.column,
            "offset": offset,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._drop_torn_tail()
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
            f.flush()
            os.fsync(f.fileno())
        offsets[identity] = offset
        logger.debug("Appended offset for %s: %d", identity, offset)

    def _drop_torn_tail(self) -> None:
        """Cut an unterminated last line so the next append starts on its own line."""
        if not self.path.exists():
            return
        with open(self.path, "r+b") as f:
            size = f.seek(0, os.SEEK_END)
            if size == 0:
                return
            f.seek(size - 1)
            if f.read(1) == b"\n":
                return
            f.seek(0)
            keep = f.read().rfind(b"\n") + 1
            f.truncate(keep)
            f.flush()
            os.fsync(f.fileno())
        logger.warning(
            "Dropped %d bytes of an incomplete record from manifest journal %s",
            size - keep,
            self.path,
        )

    def reset_offset(self, identity: IdentityLike) -> bool:
        identity = ColumnIdentity.of(identity)
        offsets = self._latest(refresh=True)
        if identity not in offsets:
            return False
        del offsets[identity]
        self._rewrite(offsets)
        logger.info("Reset offset for %s", identity)
        return True

    def list_offsets(self) -> Dict[str, Dict[str, int]]:
        result: Dict[str, Dict[str, int]] = {}
        for identity, offset in self._latest(refresh=True).items():
            result.setdefault(identity.table, {})[identity.column] = offset
        return result

    def compact(self) -> int:
        """Rewrite the journal with one record per identity.

        Returns:
            Number of records kept
        """
        offsets = self._latest(refresh=True)
        self._rewrite(offsets)
        logger.info("Compacted manifest journal %s to %d records", self.path, len(offsets))
        return len(offsets)

    def _rewrite(self, offsets: Dict[ColumnIdentity, int]) -> None:
        saved_at = datetime.now(timezone.utc).isoformat()
        lines = [
            json.dumps({
                "table": identity.table,
                "column": identity.column,
                "offset": offset,
                "saved_at": saved_at,
            })
            + "\n"
            for identity, offset in offsets.items()
        ]
        _replace_file(self.path, "".join(lines))


MANIFEST_FORMATS = {
    "json": OffsetManifest,
    "journal": JournalManifest,
}


def open_manifest(path: Union[str, Path], format: str = "json") -> Union[OffsetManifest, JournalManifest]:
    """Open a manifest by storage format name ("json" or "journal")."""
    try:
        manifest_cls = MANIFEST_FORMATS[format]
    except KeyError:
        raise ConfigurationError(
            f"Unknown manifest format {format!r}. "
            f"Expected one of: {', '.join(sorted(MANIFEST_FORMATS))}",
            field="manifest_format",
            value=format,
        ) from None
    return manifest_cls(path)
