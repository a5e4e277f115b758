"""
Authentication Router

Endpoints:
- POST /auth/login - Exchange email/password for access + refresh credentials
- POST /auth/refresh - Exchange a refresh credential for a new access credential
- POST /auth/logout - End the session and revoke the access credential
- GET /auth/me - Identity carried by the access credential
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from brevet.core.auth import AuthContext, get_auth_context
from brevet.core.database import get_db
from brevet.core.revocation import TransientDependencyError
from brevet.modules.auth.schemas import (
    AccessTokenResponse,
    CurrentUserResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    UserResponse,
)
from brevet.modules.auth.service import AuthService, AuthServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_auth_service(request: Request) -> AuthService:
    """FastAPI dependency returning the AuthService built at startup."""
    return request.app.state.auth_service


def _handle_service_error(e: AuthServiceError) -> NoReturn:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """
    Authenticate user and return credentials.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive or unverified
    """
    try:
        result = await service.login(
            db,
            credentials.email,
            credentials.password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.client.host if request.client else None,
        )
    except AuthServiceError as e:
        _handle_service_error(e)

    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserResponse.model_validate(result.user),
    )


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
) -> AccessTokenResponse:
    """
    Issue a new access credential.

    Raises:
        HTTPException 401: Refresh credential invalid or session not live
        HTTPException 403: Account deactivated since login
    """
    try:
        access_token = await service.refresh(db, data.refresh_token)
    except AuthServiceError as e:
        _handle_service_error(e)

    return AccessTokenResponse(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: LogoutRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """
    End the caller's session and revoke their access credential.

    Raises:
        HTTPException 401: Not authenticated, or no active session
        HTTPException 503: Revocation store unreachable
    """
    try:
        await service.logout(db, auth, data.refresh_token)
    except AuthServiceError as e:
        _handle_service_error(e)
    except TransientDependencyError as e:
        logger.error(f"Logout could not revoke access credential: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Logout could not be completed. Please try again later.",
            },
        ) from e

    return MessageResponse(message="Logged out successfully.")


@router.get("/me", response_model=CurrentUserResponse)
async def me(auth: AuthContext = Depends(get_auth_context)) -> CurrentUserResponse:
    """Return the identity carried by the access credential."""
    claims = auth.claims
    return CurrentUserResponse(
        id=claims.subject,
        email=claims.email,
        role=claims.role,
        name=claims.name,
        expires_at=claims.expires_at,
    )
