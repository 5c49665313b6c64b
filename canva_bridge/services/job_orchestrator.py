"""
Submit-then-poll orchestration of Canva asset uploads and design exports.

Both workflows share one shape: submit a job, poll it at a fixed interval for a
bounded number of attempts, then classify the terminal state. Upstream errors
that mean the delegated credential is unusable become ``ReauthRequired`` so
callers can send the user back through sign-in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Dict, Literal, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from canva_bridge.clients.artifact_storage import LocalArtifactStorage
from canva_bridge.clients.canva_api import CanvaApiClient, detect_error_code
from canva_bridge.clients.file_fetcher import FileFetcher
from canva_bridge.core.errors import (
    CanvaBridgeError,
    JobTimeout,
    PollingAborted,
    ReauthRequired,
    UpstreamJobError,
)
from canva_bridge.services.image_normalizer import normalize_to_jpeg

logger = logging.getLogger(__name__)

ImageFormat = Literal["jpg", "png"]

TERMINAL_STATUSES = frozenset({"success", "failed"})
REAUTH_ERROR_CODES = frozenset(
    {"invalid_access_token", "revoked_access_token", "missing_scope"}
)
DEFAULT_DESIGN_TITLE = "RoomForge AI Edit"
DEFAULT_ASSET_NAME = "RoomForge AI Image"


def classify_upstream_error(error: UpstreamJobError) -> CanvaBridgeError:
    """Map an upstream failure onto the error the API should surface."""
    if error.code in REAUTH_ERROR_CODES:
        return ReauthRequired(error.message, code=error.code, upstream=error.upstream)
    return error


def build_export_format(
    image_format: ImageFormat = "jpg",
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Dict[str, Any]:
    """Export format object; each format carries its own quality parameter."""
    export_format: Dict[str, Any] = {"type": image_format}
    if image_format == "jpg":
        export_format["quality"] = 95
    elif image_format == "png":
        export_format["export_quality"] = "pro"
    if width and height:
        export_format["width"] = width
        export_format["height"] = height
    return export_format


def with_correlation_state(edit_url: str, correlation_state: Optional[str]) -> str:
    if not correlation_state:
        return edit_url
    parts = urlsplit(edit_url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key != "correlation_state"
    ]
    query.append(("correlation_state", correlation_state))
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass(frozen=True)
class PollPolicy:
    attempts: int = 30
    interval_seconds: float = 1.0


@dataclass(frozen=True)
class LaunchResult:
    edit_url: str
    design_id: str
    asset_id: str


@dataclass(frozen=True)
class ExportResult:
    url: str
    design_id: str
    image_format: ImageFormat


async def poll_job(
    fetch_status: Callable[[], Awaitable[Dict[str, Any]]],
    *,
    policy: PollPolicy,
    description: str,
    timeout_status: int = HTTPStatus.GATEWAY_TIMEOUT,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    should_abort: Optional[Callable[[], Awaitable[bool]]] = None,
) -> Dict[str, Any]:
    """Poll until the job reaches a terminal status and return the job object."""
    for attempt in range(1, policy.attempts + 1):
        if should_abort is not None and await should_abort():
            raise PollingAborted(f"Client disconnected while waiting for {description}")
        body = await fetch_status()
        job = body.get("job") if isinstance(body.get("job"), dict) else {}
        status = job.get("status")
        if status in TERMINAL_STATUSES:
            logger.info("%s reached %s after %d attempt(s)", description, status, attempt)
            return job
        if attempt < policy.attempts:
            await sleep(policy.interval_seconds)

    raise JobTimeout(
        f"Timed out waiting for {description} to complete",
        code="timeout",
        status_code=timeout_status,
    )


class CanvaJobOrchestrator:
    """Upload assets, create designs and export them back out of Canva."""

    def __init__(
        self,
        *,
        api_client: CanvaApiClient,
        fetcher: FileFetcher,
        artifact_storage: LocalArtifactStorage,
        policy: PollPolicy = PollPolicy(),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._api = api_client
        self._fetcher = fetcher
        self._storage = artifact_storage
        self._policy = policy
        self._sleep = sleep

    async def launch(
        self,
        access_token: str,
        *,
        image_url: str,
        title: Optional[str] = None,
        correlation_state: Optional[str] = None,
        should_abort: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> LaunchResult:
        """Fetch and normalize the image, upload it and open a design on it."""
        source = await self._fetcher.fetch(
            image_url, description="source image", accept="image/*,*/*;q=0.8"
        )
        jpeg_bytes = await asyncio.to_thread(normalize_to_jpeg, source.content)
        asset_id = await self.upload_asset(
            access_token, content=jpeg_bytes, should_abort=should_abort
        )
        design_id, edit_url = await self.create_design(
            access_token,
            asset_id=asset_id,
            title=title or DEFAULT_DESIGN_TITLE,
            correlation_state=correlation_state,
        )
        return LaunchResult(edit_url=edit_url, design_id=design_id, asset_id=asset_id)

    async def upload_asset(
        self,
        access_token: str,
        *,
        content: bytes,
        name: str = DEFAULT_ASSET_NAME,
        should_abort: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> str:
        """Submit an asset upload job and wait for its asset id."""
        try:
            submitted = await self._api.create_asset_upload(
                access_token, name=name, content=content
            )
            job_id = (submitted.get("job") or {}).get("id")
            if not job_id:
                raise UpstreamJobError("Canva asset upload did not return a job id")
            logger.info("Submitted Canva asset upload job %s", job_id)

            job = await poll_job(
                lambda: self._api.get_asset_upload(access_token, job_id),
                policy=self._policy,
                description="Canva asset upload",
                timeout_status=HTTPStatus.INTERNAL_SERVER_ERROR,
                sleep=self._sleep,
                should_abort=should_abort,
            )
        except UpstreamJobError as exc:
            raise classify_upstream_error(exc)

        if job.get("status") == "failed":
            error = job.get("error") or {}
            message = error.get("message") or "Canva asset upload failed"
            code = detect_error_code({"code": error.get("code"), "message": message})
            raise classify_upstream_error(UpstreamJobError(message, code=code, upstream=job))

        asset_id = (job.get("asset") or {}).get("id")
        if not asset_id:
            raise UpstreamJobError("Canva asset upload succeeded but returned no asset id")
        return asset_id

    async def create_design(
        self,
        access_token: str,
        *,
        asset_id: str,
        title: str = DEFAULT_DESIGN_TITLE,
        correlation_state: Optional[str] = None,
    ) -> tuple[str, str]:
        """Create a design from an asset; returns ``(design_id, edit_url)``."""
        try:
            body = await self._api.create_design(access_token, title=title, asset_id=asset_id)
        except UpstreamJobError as exc:
            raise classify_upstream_error(exc)

        design = body.get("design") or {}
        design_id = design.get("id")
        edit_url = (design.get("urls") or {}).get("edit_url")
        if not design_id or not edit_url:
            raise UpstreamJobError("Canva createDesign did not return an edit_url")
        return design_id, with_correlation_state(edit_url, correlation_state)

    async def export_design(
        self,
        access_token: str,
        *,
        design_id: str,
        image_format: ImageFormat = "jpg",
        width: Optional[int] = None,
        height: Optional[int] = None,
        should_abort: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> ExportResult:
        """Export a design, download the file and hand it to artifact storage."""
        export_format = build_export_format(image_format, width=width, height=height)
        try:
            submitted = await self._api.create_export(
                access_token, design_id=design_id, export_format=export_format
            )
            job_id = (submitted.get("job") or {}).get("id")
            if not job_id:
                raise UpstreamJobError("Canva export job did not return an id")
            logger.info("Submitted Canva export job %s for design %s", job_id, design_id)

            job = await poll_job(
                lambda: self._api.get_export(access_token, job_id),
                policy=self._policy,
                description="Canva export",
                sleep=self._sleep,
                should_abort=should_abort,
            )
        except UpstreamJobError as exc:
            raise classify_upstream_error(exc)

        if job.get("status") != "success":
            error = job.get("error") or {}
            raise classify_upstream_error(
                UpstreamJobError(
                    error.get("message") or "Canva export failed",
                    code=error.get("code"),
                    upstream=job,
                )
            )

        urls = job.get("urls") or []
        if not urls:
            raise UpstreamJobError("Canva export completed but no URL was provided")

        exported = await self._fetcher.fetch(urls[0], description="Canva export")
        stored_url = await self._storage.save(exported.content, extension=image_format)
        return ExportResult(url=stored_url, design_id=design_id, image_format=image_format)


__all__ = [
    "CanvaJobOrchestrator",
    "DEFAULT_ASSET_NAME",
    "DEFAULT_DESIGN_TITLE",
    "ExportResult",
    "LaunchResult",
    "PollPolicy",
    "REAUTH_ERROR_CODES",
    "build_export_format",
    "classify_upstream_error",
    "poll_job",
    "with_correlation_state",
]
