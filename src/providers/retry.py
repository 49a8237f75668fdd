# src/providers/retry.py — v1
"""Provider retry policy with exponential backoff.

Only transient provider failures are retried (HTTP 429, 500, 502, 503).
Everything else propagates on the first attempt so configuration and
content-policy errors surface immediately as step failures.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503})
MAX_DELAY_S = 15.0


class ProviderError(Exception):
    """Provider call failed; status_code is set when the provider reported one."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderRetryExhausted(ProviderError):
    """All retries exhausted for a transient provider failure."""

    def __init__(self, label: str, attempts: int, last_error: Exception) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{label} failed after {attempts} attempts: {last_error}",
            status_code=extract_status_code(last_error),
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for transient provider errors."""

    max_retries: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    jitter: bool = True


def extract_status_code(error: BaseException) -> int | None:
    """Best-effort status code lookup across SDK exception shapes."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    nested = getattr(error, "error", None)
    if isinstance(nested, dict) and isinstance(nested.get("code"), int):
        return nested["code"]
    return None


def is_retryable(error: BaseException) -> bool:
    """Return True for transient errors worth another attempt."""
    return extract_status_code(error) in RETRYABLE_STATUS_CODES


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based), capped at MAX_DELAY_S."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay += random.random() * 0.5 * config.base_delay_s  # noqa: S311
    return min(delay, MAX_DELAY_S)


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    label: str = "provider call",
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function, retrying transient failures.

    Raises:
        ProviderRetryExhausted: If a transient error persists past max_retries.
        Exception: Any non-transient error, unchanged.
    """
    config = config or RetryConfig()
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            attempts += 1
            if not is_retryable(e):
                raise
            if attempts > config.max_retries:
                raise ProviderRetryExhausted(label, attempts, e) from e

            delay = compute_delay(config, attempts - 1)
            logger.warning(
                "%s transient error %s (attempt %d/%d), retrying in %.1fs",
                label, extract_status_code(e), attempts, config.max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
