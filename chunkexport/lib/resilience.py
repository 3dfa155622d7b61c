"""Opt-in retry for flaky chunk sources.

The reader never retries: a failed fetch ends ``process()`` and the caller
resumes later. When a source is known to drop connections now and then,
wrap it in ``RetryingChunkSource`` so each single range fetch is retried a
few times before the failure reaches the reader.

Implementation: uses tenacity internally.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import tenacity
from tenacity.wait import wait_base

from chunkexport.lib.errors import ConfigurationError, RowNotFoundError

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "RetryingChunkSource"]

# Retrying these cannot succeed.
NON_RETRYABLE = (RowNotFoundError, ConfigurationError)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
    ):
        if max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1", field="retry.max_attempts", value=max_attempts
            )
        if backoff_seconds < 0:
            raise ConfigurationError(
                "backoff_seconds must not be negative",
                field="retry.backoff_seconds",
                value=backoff_seconds,
            )
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryConfig":
        """Default retry: 3 attempts with exponential backoff."""
        return cls()

    def wait_strategy(self) -> wait_base:
        wait: wait_base
        if self.exponential:
            wait = tenacity.wait_exponential(
                multiplier=self.backoff_seconds, min=self.backoff_seconds
            )
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter and self.backoff_seconds > 0:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not isinstance(exc, NON_RETRYABLE)


class RetryingChunkSource:
    """Wraps a ChunkSource and retries each failed ``fetch_range`` call.

    ``RowNotFoundError`` and ``ConfigurationError`` are raised right away.
    Once attempts are exhausted the last error is re-raised unchanged.

    Example:
        >>> source = RetryingChunkSource(SqlChunkSource(con, "mysql"), RetryConfig.default())
    """

    def __init__(self, source: Any, config: Optional[RetryConfig] = None) -> None:
        self.source = source
        self.config = config or RetryConfig.default()

    def _before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "fetch_range attempt %d/%d failed: %s. Retrying in %.1fs...",
            retry_state.attempt_number,
            self.config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    def fetch_range(
        self, table: str, column: str, offset: int, length: int
    ) -> Optional[bytes]:
        retryer = tenacity.Retrying(
            stop=tenacity.stop_after_attempt(self.config.max_attempts),
            wait=self.config.wait_strategy(),
            retry=tenacity.retry_if_exception(_is_retryable),
            before_sleep=self._before_sleep,
            reraise=True,
        )
        return retryer(self.source.fetch_range, table, column, offset, length)

    def column_length(self, table: str, column: str) -> int:
        return self.source.column_length(table, column)
