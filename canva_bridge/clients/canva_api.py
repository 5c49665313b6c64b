"""Canva Connect REST client for asset uploads, designs and exports."""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from canva_bridge.core.config import CanvaSettings
from canva_bridge.core.errors import UpstreamJobError
from canva_bridge.utils.http import json_or_empty

logger = logging.getLogger(__name__)

_MISSING_SCOPES = re.compile(r"missing scopes?", re.IGNORECASE)


def detect_error_code(body: Dict[str, Any]) -> Optional[str]:
    """Best guess at an error code for a failed Canva response.

    Canva reports some permission failures only as free text (for example a
    gateway ``body`` of "Missing scopes: [asset:write]"), so when no structured
    ``code`` is present the text is inspected.
    """
    code = body.get("code")
    if isinstance(code, str) and code:
        return code
    for key in ("body", "message"):
        text = body.get(key)
        if isinstance(text, str) and _MISSING_SCOPES.search(text):
            return "missing_scope"
    return None


class CanvaApiClient:
    """Thin async wrapper over the Canva Connect endpoints used by the bridge."""

    def __init__(
        self,
        settings: CanvaSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = settings.api_base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def create_asset_upload(
        self, access_token: str, *, name: str, content: bytes
    ) -> Dict[str, Any]:
        metadata = {"name_base64": base64.b64encode(name.encode("utf-8")).decode("ascii")}
        return await self._request(
            "POST",
            "/asset-uploads",
            access_token,
            "Failed to upload asset to Canva",
            content=content,
            headers={
                "Content-Type": "application/octet-stream",
                "Asset-Upload-Metadata": json.dumps(metadata),
            },
        )

    async def get_asset_upload(self, access_token: str, job_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/asset-uploads/{quote(job_id, safe='')}",
            access_token,
            "Failed to check Canva asset upload status",
        )

    async def create_design(
        self, access_token: str, *, title: str, asset_id: str
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/designs",
            access_token,
            "Failed to create Canva design",
            json={"title": title, "asset_id": asset_id},
        )

    async def create_export(
        self, access_token: str, *, design_id: str, export_format: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/exports",
            access_token,
            "Failed to start Canva export",
            json={"design_id": design_id, "format": export_format},
        )

    async def get_export(self, access_token: str, job_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/exports/{quote(job_id, safe='')}",
            access_token,
            "Failed to check Canva export status",
        )

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        failure_message: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}", **kwargs.pop("headers", {})}
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.request(method, path, headers=headers, **kwargs)

        body = json_or_empty(response)
        if not response.is_success:
            code = detect_error_code(body)
            logger.warning(
                "Canva %s %s failed with HTTP %s (code=%s)",
                method,
                path,
                response.status_code,
                code,
            )
            body_text = body.get("body") if isinstance(body.get("body"), str) else ""
            raise UpstreamJobError(
                body.get("message") or body_text or failure_message,
                code=code,
                upstream=body or None,
            )
        return body


__all__ = ["CanvaApiClient", "detect_error_code"]
