"""HTTP utilities providing retry/backoff semantics and lenient body parsing."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, TypeVar

import httpx

T = TypeVar("T")


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


async def request_with_retry(
    func: Callable[..., httpx.Response],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: Exception | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
            response.raise_for_status()
            return response
        except (httpx.HTTPError, httpx.TimeoutException) as exc:
            last_exception = exc
            attempt += 1
            if attempt >= config.attempts:
                break
            await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


def json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    """Parse a JSON object body, returning ``{}`` for anything unparseable."""
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


__all__ = ["RetryConfig", "json_or_empty", "request_with_retry"]
