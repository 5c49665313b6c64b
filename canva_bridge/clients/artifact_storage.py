"""Local filesystem storage for exported design files."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

ARTIFACT_ROUTE = "/artifacts"


class LocalArtifactStorage:
    """Write files under a directory that the app serves at ``/artifacts``."""

    def __init__(self, root: str, *, public_base_url: str = "") -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    async def save(self, content: bytes, *, extension: str) -> str:
        """Store the bytes under a fresh name and return their public URL."""
        name = f"canva-export-{uuid.uuid4().hex}.{extension.lstrip('.')}"
        await asyncio.to_thread((self._root / name).write_bytes, content)
        return f"{self._public_base_url}{ARTIFACT_ROUTE}/{name}"


__all__ = ["ARTIFACT_ROUTE", "LocalArtifactStorage"]
