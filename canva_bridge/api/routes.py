"""
FastAPI routes for the Canva bridge.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from canva_bridge.api.error_handlers import bridge_error_response
from canva_bridge.core.cookies import PKCE_COOKIE, CookiePolicy
from canva_bridge.core.errors import CanvaBridgeError, ReauthRequired
from canva_bridge.dependencies import (
    get_artifact_record_store,
    get_authorization_flow,
    get_canva_settings,
    get_cookie_policy,
    get_credential_store,
    get_jwks_cache,
    get_job_orchestrator,
    get_sealed_codec,
    get_session_facade,
)
from canva_bridge.schemas import (
    LaunchRequest,
    LaunchResponse,
    OAuthCallbackParams,
    ReturnRequest,
    ReturnResponse,
)
from canva_bridge.services import (
    AccessGrant,
    CanvaSessionFacade,
    PkceCookieMap,
    SealedCodec,
    verify_return_assertion,
)

router = APIRouter()
logger = logging.getLogger(__name__)

LAUNCH_DEFAULT_RETURN_TO = "/"
RETURN_DEFAULT_RETURN_TO = "/canva/return"
RETURN_UI_PATH = "/canva/return"


def _write_pkce_cookie(
    response: Response, cookie_map: PkceCookieMap, codec: SealedCodec, cookies: CookiePolicy
) -> None:
    """Re-seal the PKCE map, or clear the cookie once nothing is pending."""
    if not cookie_map.changed:
        return
    sealed = cookie_map.to_cookie(codec)
    if sealed is None:
        cookies.clear_pkce(response)
    else:
        cookies.set_pkce(response, sealed)


def _failure_response(
    request: Request,
    exc: CanvaBridgeError,
    facade: CanvaSessionFacade,
    grant: AccessGrant,
    return_to: str,
) -> Response:
    """Render a failure that happened after the grant was obtained.

    The grant may carry a rotated refresh token, so the credential cookie is
    re-sealed on the error response too.
    """
    if isinstance(exc, ReauthRequired) and not exc.auth_start_url:
        exc.auth_start_url = facade.auth_start_url(return_to)
    response = bridge_error_response(request, exc)
    facade.persist(response, grant)
    return response


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/canva/auth/start")
async def start_canva_auth(
    request: Request,
    flow: Annotated[Any, Depends(get_authorization_flow)],
    codec: Annotated[Any, Depends(get_sealed_codec)],
    cookies: Annotated[Any, Depends(get_cookie_policy)],
    return_to: Optional[str] = Query(
        default=None, description="Path on this origin to land on after sign-in."
    ),
) -> Response:
    """Begin PKCE sign-in and redirect the browser to Canva's consent screen."""
    cookie_map = PkceCookieMap.from_cookie(codec, request.cookies.get(PKCE_COOKIE))
    authorization_url = flow.start(cookie_map, return_to=return_to)

    response = RedirectResponse(
        url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
    )
    _write_pkce_cookie(response, cookie_map, codec, cookies)
    return response


@router.get("/canva/auth/callback")
async def handle_canva_auth_callback(
    request: Request,
    flow: Annotated[Any, Depends(get_authorization_flow)],
    credential_store: Annotated[Any, Depends(get_credential_store)],
    codec: Annotated[Any, Depends(get_sealed_codec)],
    cookies: Annotated[Any, Depends(get_cookie_policy)],
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
) -> Response:
    """Complete the code exchange, set the credential cookie and redirect back."""
    params = OAuthCallbackParams(
        code=code, state=state, error=error, error_description=error_description
    )
    cookie_map = PkceCookieMap.from_cookie(codec, request.cookies.get(PKCE_COOKIE))
    outcome = await flow.callback(
        cookie_map,
        code=params.code,
        state=params.state,
        error=params.error,
        error_description=params.error_description,
        fallback_origin=str(request.base_url),
    )

    response = RedirectResponse(
        url=outcome.redirect_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
    )
    _write_pkce_cookie(response, cookie_map, codec, cookies)
    cookies.set_credential(response, credential_store.seal_credential(outcome.credentials))
    return response


@router.post("/canva/launch", response_model=LaunchResponse)
async def launch_canva_edit(
    payload: LaunchRequest,
    request: Request,
    facade: Annotated[Any, Depends(get_session_facade)],
    orchestrator: Annotated[Any, Depends(get_job_orchestrator)],
) -> Response:
    """Upload an image to Canva and return the design's editor URL."""
    return_to = payload.return_to or LAUNCH_DEFAULT_RETURN_TO
    grant = await facade.require_access_token(request, return_to=return_to)

    try:
        result = await orchestrator.launch(
            grant.access_token,
            image_url=payload.image_url,
            title=payload.title,
            correlation_state=payload.correlation_state,
            should_abort=request.is_disconnected,
        )
    except CanvaBridgeError as exc:
        return _failure_response(request, exc, facade, grant, return_to)

    logger.info("Launched Canva design %s", result.design_id)
    body = LaunchResponse(
        edit_url=result.edit_url, design_id=result.design_id, asset_id=result.asset_id
    )
    response = JSONResponse(content=body.model_dump(by_alias=True))
    facade.persist(response, grant)
    return response


@router.get("/canva/return")
async def redirect_canva_return(
    request: Request,
    canva_settings: Annotated[Any, Depends(get_canva_settings)],
    correlation_jwt: Optional[str] = Query(default=None),
    return_to: Optional[str] = Query(default=None),
) -> Response:
    """Send Canva's return navigation to the UI page that POSTs the token back."""
    base = canva_settings.resolved_public_base_url() or str(request.base_url).rstrip("/")
    forwarded = {
        key: value
        for key, value in (("correlation_jwt", correlation_jwt), ("return_to", return_to))
        if value
    }
    destination = f"{base}{RETURN_UI_PATH}"
    if forwarded:
        destination = f"{destination}?{urlencode(forwarded)}"
    return RedirectResponse(url=destination, status_code=HTTPStatus.TEMPORARY_REDIRECT)


@router.post("/canva/return", response_model=ReturnResponse)
async def complete_canva_return(
    payload: ReturnRequest,
    request: Request,
    canva_settings: Annotated[Any, Depends(get_canva_settings)],
    facade: Annotated[Any, Depends(get_session_facade)],
    orchestrator: Annotated[Any, Depends(get_job_orchestrator)],
    jwks_cache: Annotated[Any, Depends(get_jwks_cache)],
    record_store: Annotated[Any, Depends(get_artifact_record_store)],
) -> Response:
    """Verify Canva's return token, export the edited design and store it."""
    return_to = payload.return_to or RETURN_DEFAULT_RETURN_TO
    grant = await facade.require_access_token(request, return_to=return_to)

    try:
        assertion = await verify_return_assertion(
            payload.correlation_jwt, audience=canva_settings.client_id, cache=jwks_cache
        )
        exported = await orchestrator.export_design(
            grant.access_token,
            design_id=assertion.design_id,
            image_format=payload.image_format,
            width=payload.width,
            height=payload.height,
            should_abort=request.is_disconnected,
        )
    except CanvaBridgeError as exc:
        return _failure_response(request, exc, facade, grant, return_to)

    record = record_store.add_artifact(
        url=exported.url,
        design_id=exported.design_id,
        correlation_state=assertion.correlation_state,
        image_format=exported.image_format,
    )
    logger.info("Stored Canva export %s for design %s", record["id"], exported.design_id)

    body = ReturnResponse(
        url=exported.url,
        design_id=exported.design_id,
        correlation_state=assertion.correlation_state,
    )
    response = JSONResponse(content=body.model_dump(by_alias=True))
    facade.persist(response, grant)
    return response


__all__ = ["router"]
