"""YAML configuration loader for column export jobs.

Example YAML (post_content.yaml):
    connection:
      source_type: database_mysql
      host: ${DB_HOST}
      database: wordpress
      user: ${DB_USER}
      password: ${DB_PASSWORD}

    export:
      table: wp_posts
      column: post_content
      row_key: {column: ID, value: 42}
      chunk_size: 128
      manifest: ./.state/manifest.json
      output: ./post_content.bin

    retry:
      max_attempts: 3

Usage:
    # Command line
    chunk-export run ./post_content.yaml

    # Python API
    from chunkexport.lib.config_loader import load_job
    from chunkexport.lib.export import export_column
    result = export_column(load_job("./post_content.yaml"))
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from chunkexport.lib.connections import SOURCE_TYPES
from chunkexport.lib.errors import ConfigurationError
from chunkexport.lib.manifest import MANIFEST_FORMATS, ColumnIdentity
from chunkexport.lib.reader import DEFAULT_CHUNK_SIZE
from chunkexport.lib.resilience import RetryConfig
from chunkexport.lib.sources import DIALECTS, RowKey

logger = logging.getLogger(__name__)

__all__ = ["ExportJob", "load_job", "load_job_from_dict"]

DEFAULT_MANIFEST = "manifest.json"


@dataclass
class ExportJob:
    """Everything needed to export one column to one file."""

    table: str
    column: str
    output_path: str
    source_type: str = "database_mysql"
    dialect: Optional[str] = None
    connection_name: Optional[str] = None
    connection_options: Dict[str, Any] = field(default_factory=dict)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    manifest_path: str = DEFAULT_MANIFEST
    manifest_format: str = "json"
    row_key: Optional[RowKey] = None
    verify: bool = True
    retry: Optional[RetryConfig] = None

    def __post_init__(self) -> None:
        if not self.connection_name:
            self.connection_name = f"{self.table}_{self.column}"

    @property
    def identity(self) -> ColumnIdentity:
        return ColumnIdentity(self.table, self.column)


def _resolve_path(path: str, config_dir: Path) -> str:
    """Resolve ./ and ../ paths against the config file's directory."""
    if not path or os.path.isabs(path):
        return path
    if path.startswith("./") or path.startswith("../"):
        return str(config_dir / path)
    return path


def _require(section: Dict[str, Any], key: str, prefix: str) -> Any:
    value = section.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"{prefix}.{key} is required", field=f"{prefix}.{key}")
    return value


def _parse_row_key(raw: Any) -> Optional[RowKey]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or "column" not in raw or "value" not in raw:
        raise ConfigurationError(
            "export.row_key must be a mapping with 'column' and 'value'",
            field="export.row_key",
            value=raw,
        )
    return RowKey(column=str(raw["column"]), value=raw["value"])


def _parse_retry(raw: Any) -> Optional[RetryConfig]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ConfigurationError("retry must be a mapping", field="retry", value=raw)
    return RetryConfig(
        max_attempts=int(raw.get("max_attempts", 3)),
        backoff_seconds=float(raw.get("backoff_seconds", 1.0)),
        exponential=bool(raw.get("exponential", True)),
        jitter=bool(raw.get("jitter", True)),
    )


def load_job_from_dict(
    config: Dict[str, Any],
    config_dir: Optional[Path] = None,
) -> ExportJob:
    """Build an ExportJob from a parsed YAML mapping.

    Raises:
        ConfigurationError: If a section or field is missing or invalid
    """
    config_dir = config_dir or Path.cwd()

    if not isinstance(config, dict):
        raise ConfigurationError("Export config must be a mapping")

    export = config.get("export")
    if not isinstance(export, dict):
        raise ConfigurationError("'export' section is required", field="export")
    connection = config.get("connection") or {}
    if not isinstance(connection, dict):
        raise ConfigurationError("'connection' must be a mapping", field="connection")

    source_type = connection.get("source_type", "database_mysql")
    if source_type not in SOURCE_TYPES:
        raise ConfigurationError(
            f"Unsupported source_type: {source_type}",
            field="connection.source_type",
            value=source_type,
        )

    chunk_size = export.get("chunk_size", DEFAULT_CHUNK_SIZE)
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
        raise ConfigurationError(
            "export.chunk_size must be a positive integer",
            field="export.chunk_size",
            value=chunk_size,
        )

    manifest_format = export.get("manifest_format", "json")
    if manifest_format not in MANIFEST_FORMATS:
        raise ConfigurationError(
            f"Unknown manifest_format: {manifest_format}",
            field="export.manifest_format",
            value=manifest_format,
        )

    dialect = connection.get("dialect")
    if dialect is not None and dialect not in DIALECTS:
        raise ConfigurationError(
            f"Unknown SQL dialect: {dialect}",
            field="connection.dialect",
            value=dialect,
            suggestion=f"Use one of: {', '.join(sorted(DIALECTS))}",
        )

    options = {
        k: v for k, v in connection.items() if k not in ("name", "source_type", "dialect")
    }
    if "path" in options:
        options["path"] = _resolve_path(str(options["path"]), config_dir)

    return ExportJob(
        table=str(_require(export, "table", "export")),
        column=str(_require(export, "column", "export")),
        output_path=_resolve_path(str(_require(export, "output", "export")), config_dir),
        source_type=source_type,
        dialect=dialect,
        connection_name=connection.get("name"),
        connection_options=options,
        chunk_size=chunk_size,
        manifest_path=_resolve_path(str(export.get("manifest", DEFAULT_MANIFEST)), config_dir),
        manifest_format=manifest_format,
        row_key=_parse_row_key(export.get("row_key")),
        verify=bool(export.get("verify", True)),
        retry=_parse_retry(config.get("retry")),
    )


def load_job(path: Union[str, Path]) -> ExportJob:
    """Load an ExportJob from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", field="config", value=str(path))

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", field="config") from exc

    logger.debug("Loaded export config from %s", path)
    return load_job_from_dict(config or {}, config_dir=path.parent)
