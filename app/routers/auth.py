import logging

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings
from app.dependencies.auth import get_auth_service, get_settings
from app.dependencies.rate_limit import rate_limit
from app.schemas.auth import GoogleExchangeRequest, LoginRequest, TokenResponse
from app.services.auth_service import AuthService, IssuedSession
from app.utils.cookies import clear_refresh_cookie, read_refresh_cookie, set_refresh_cookie
from app.utils.errors import Forbidden, Unauthorized, raise_for_error
from app.utils.helpers import client_info

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(response: Response, issued: IssuedSession, settings: Settings) -> TokenResponse:
    set_refresh_cookie(response, issued.refresh_token, issued.refresh_max_age, settings)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(
        access_token=issued.access_token,
        expires_in=issued.expires_in,
        session_id=issued.session_id,
    )


@router.post("/login", response_model=TokenResponse, status_code=200)
async def login(
    request: LoginRequest,
    http_request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit),
):
    """
    Email/password login
    - Verify credentials
    - Return a short-lived access token
    - Bind the refresh token to an HttpOnly cookie
    """
    result = await run_in_threadpool(
        auth_service.login,
        request.email,
        request.password,
        client_info(http_request, request.device_id),
    )
    if not result.ok:
        raise_for_error(result, operation="login")
    return _token_response(response, result.value, settings)


@router.post("/google", response_model=TokenResponse, status_code=200)
async def google_exchange(
    request: GoogleExchangeRequest,
    http_request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit),
):
    """Exchange a Google authorization code for a session (existing accounts only)."""
    result = await run_in_threadpool(
        auth_service.exchange,
        request.code,
        client_info(http_request, request.device_id),
        request.redirect_uri,
        request.code_verifier,
    )
    if not result.ok:
        raise_for_error(result, operation="provider exchange")
    return _token_response(response, result.value, settings)


@router.post("/refresh", response_model=TokenResponse, status_code=200)
async def refresh_tokens(
    http_request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit),
):
    """Exchange the refresh cookie for a new access token and a rotated refresh cookie."""
    # a plain cross-site form post cannot set custom headers
    if not http_request.headers.get(settings.REFRESH_REQUIRED_HEADER):
        logger.warning("Refresh without %s header from %s", settings.REFRESH_REQUIRED_HEADER, client_info(http_request).ip_address)
        raise Forbidden()

    refresh_token = read_refresh_cookie(http_request, settings)
    if not refresh_token:
        raise Unauthorized()

    result = await run_in_threadpool(auth_service.refresh, refresh_token, client_info(http_request))
    if not result.ok:
        raise_for_error(result, operation="refresh")
    return _token_response(response, result.value, settings)


@router.post("/logout", status_code=200)
async def logout(
    http_request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke the session behind the refresh cookie and clear it. Always succeeds."""
    refresh_token = read_refresh_cookie(http_request, settings)
    revoked = await run_in_threadpool(auth_service.logout, refresh_token)
    logger.info("Logout (revoked=%s)", revoked)
    clear_refresh_cookie(response, settings)
    return {"success": True, "message": "Logged out successfully"}
