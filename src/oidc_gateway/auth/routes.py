"""Authentication routes for the OIDC login/logout flow."""

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from oidc_gateway.auth.middleware import AuthenticatedUser, AuthServiceDep
from oidc_gateway.auth.models import (
    AuthErrorResponse,
    CallbackResult,
    LoginInitiation,
    LoginResponse,
    PasswordLoginRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenSet,
    UserInfoResponse,
)
from oidc_gateway.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _client_details(request: Request) -> tuple[str, str]:
    ip_address = request.client.host if request.client else ""
    return ip_address, request.headers.get("User-Agent", "")


def _bad_request(error: str, description: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=AuthErrorResponse(error=error, error_description=description).model_dump(),
    )


@router.post("/login", response_model=LoginInitiation)
async def login(
    request: Request,
    auth_service: AuthServiceDep,
    redirect_uri: str | None = None,
):
    """Start the authorization code flow and return the provider URL."""
    ip_address, user_agent = _client_details(request)
    return await auth_service.initiate_login(
        redirect_uri=redirect_uri,
        ip_address=ip_address,
        user_agent=user_agent,
    )


@router.get("/callback", name="auth_callback", response_model=CallbackResult)
async def auth_callback(
    auth_service: AuthServiceDep,
    settings: Annotated[Settings, Depends(get_settings)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """
    OIDC callback handler.
    Exchanges the authorization code and issues local tokens.
    """
    # Handle error response from IdP
    if error:
        logger.error(f"OIDC error: {error} - {error_description}")
        return _bad_request("provider_error", error_description or error)

    if not code:
        return _bad_request("invalid_request", "Missing authorization code")
    if not state:
        return _bad_request("invalid_request", "Missing state parameter")

    result = await auth_service.handle_callback(code=code, state=state)

    if settings.post_login_redirect_url:
        query = urlencode({"token": result.tokens.access_token})
        return RedirectResponse(
            url=f"{settings.post_login_redirect_url}?{query}",
            status_code=status.HTTP_303_SEE_OTHER,
        )
    return result


@router.post("/refresh", response_model=TokenSet)
async def refresh(body: RefreshRequest, auth_service: AuthServiceDep):
    """Exchange a refresh token for a fresh token triple."""
    return await auth_service.refresh(body.refresh_token)


@router.post("/logout")
async def logout(
    user: AuthenticatedUser,
    auth_service: AuthServiceDep,
    post_logout_redirect_uri: str | None = None,
):
    """End the current user's sessions."""
    await auth_service.logout(user.id)

    response = {"message": "Logout successful"}
    if post_logout_redirect_uri:
        response["redirect_uri"] = post_logout_redirect_uri
    return response


@router.get("/userinfo", response_model=UserInfoResponse)
async def userinfo(user: AuthenticatedUser):
    """Get information about the currently authenticated user."""
    return UserInfoResponse(
        sub=user.id,
        email=user.email,
        name=user.name,
        picture=user.picture,
    )


@router.post("/default/login", response_model=LoginResponse)
async def default_login(
    request: Request,
    body: PasswordLoginRequest,
    auth_service: AuthServiceDep,
):
    """Log in with email and password from the user directory."""
    ip_address, user_agent = _client_details(request)
    return await auth_service.password_login(
        body.email,
        body.password,
        ip_address=ip_address,
        user_agent=user_agent,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, auth_service: AuthServiceDep):
    """Create an email and password account."""
    return await auth_service.register(body.email, body.name, body.password)
