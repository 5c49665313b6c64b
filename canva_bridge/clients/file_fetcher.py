"""Download remote files (source images, finished exports) with retries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

import httpx

from canva_bridge.core.errors import UpstreamJobError
from canva_bridge.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedFile:
    content: bytes
    content_type: Optional[str]


class FileFetcher:
    """GET a URL and return its bytes, retrying transient failures."""

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
        timeout: float = 30.0,
    ) -> None:
        self._transport = transport
        self._retry = retry_config or RetryConfig(attempts=3, backoff_seconds=0.5)
        self._timeout = timeout

    async def fetch(self, url: str, *, description: str, accept: str = "*/*") -> FetchedFile:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, follow_redirects=True
        ) as client:
            try:
                response = await request_with_retry(
                    client.get,
                    url,
                    headers={"Accept": accept, "User-Agent": "Mozilla/5.0"},
                    retry_config=self._retry,
                )
            except httpx.HTTPStatusError as exc:
                raise UpstreamJobError(
                    f"Failed to download {description} (HTTP {exc.response.status_code})",
                    status_code=HTTPStatus.BAD_GATEWAY,
                ) from exc
            except httpx.HTTPError as exc:
                raise UpstreamJobError(
                    f"Failed to download {description}",
                    status_code=HTTPStatus.BAD_GATEWAY,
                ) from exc

        logger.debug("Downloaded %s (%d bytes)", description, len(response.content))
        return FetchedFile(
            content=response.content, content_type=response.headers.get("content-type")
        )


__all__ = ["FetchedFile", "FileFetcher"]
