"""Structured exception hierarchy for column exports.

Provides specific exception types for each failure mode of the
fetch/deliver/checkpoint loop, with rich context for debugging.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "ExportError",
    "ConfigurationError",
    "ConnectionError",
    "SourceFetchError",
    "RowNotFoundError",
    "SinkDeliveryError",
    "ManifestError",
    "ManifestCorruptError",
    "ExportVerificationError",
]


class ExportError(Exception):
    """Base exception for all export errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        column: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.table = table
        self.column = column
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if table or column:
            context = f"{table or '?'}.{column or '?'}"
            parts.insert(0, f"[{context}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self.args[0]) if self.args else "",
            "table": self.table,
            "column": self.column,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(ExportError):
    """Invalid construction inputs or job configuration.

    Raised immediately; never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class ConnectionError(ExportError):
    """Error connecting to the database holding the column."""

    def __init__(
        self,
        message: str,
        *,
        connection_name: Optional[str] = None,
        host: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.connection_name = connection_name
        self.host = host
        self.cause = cause

        details = kwargs.pop("details", {})
        if connection_name:
            details["connection_name"] = connection_name
        if host:
            details["host"] = host
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check that the host is reachable and credentials are correct. "
                "Verify environment variables are set."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class SourceFetchError(ExportError):
    """A range fetch against the data source failed.

    The manifest still holds the last persisted offset, so calling
    ``resume()`` again replays from there.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.offset = offset
        self.cause = cause

        details = kwargs.pop("details", {})
        if offset is not None:
            details["offset"] = offset
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class RowNotFoundError(SourceFetchError):
    """The row holding the column value does not exist (or no longer does)."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check the row_key filter. If the row was deleted mid-export, "
                "reset the offset before exporting a different row."
            )
        super().__init__(message, suggestion=suggestion, **kwargs)


class SinkDeliveryError(ExportError):
    """The sink raised while handling a chunk.

    The offset was not advanced for that chunk; resuming redelivers it.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        chunk_length: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.offset = offset
        self.chunk_length = chunk_length
        self.cause = cause

        details = kwargs.pop("details", {})
        if offset is not None:
            details["offset"] = offset
        if chunk_length is not None:
            details["chunk_length"] = chunk_length
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ManifestError(ExportError):
    """Offset manifest could not be read or updated."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path

        details = kwargs.pop("details", {})
        if path:
            details["path"] = path

        super().__init__(message, details=details, **kwargs)


class ManifestCorruptError(ManifestError):
    """Manifest storage exists but cannot be parsed.

    Never treated as "start from offset 1": that would silently re-export
    data that was already exported.
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Inspect the manifest file and repair it by hand, or delete it "
                "together with the partial output to restart from scratch."
            )
        super().__init__(message, suggestion=suggestion, **kwargs)


class ExportVerificationError(ExportError):
    """Exported output does not match the source column."""

    def __init__(
        self,
        message: str,
        *,
        output_path: Optional[str] = None,
        expected_bytes: Optional[int] = None,
        actual_bytes: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.output_path = output_path
        self.expected_bytes = expected_bytes
        self.actual_bytes = actual_bytes

        details = kwargs.pop("details", {})
        if output_path:
            details["output_path"] = output_path
        if expected_bytes is not None:
            details["expected_bytes"] = expected_bytes
        if actual_bytes is not None:
            details["actual_bytes"] = actual_bytes

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "The column may have changed during the export. Reset the "
                "offset and export again."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
