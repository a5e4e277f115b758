"""
Authentication and Authorization Module

Provides the request-time gates for FastAPI endpoints:

- AuthGate validates the bearer credential: header shape, revocation list,
  then signature/expiry. On success it produces an AuthContext (parsed claims
  plus the raw credential) and stores it on ``request.state.auth``.
- RoleGate runs strictly after AuthGate and checks the subject's role.

Every authentication failure returns the same 401 body, whatever the
underlying reason, so clients cannot learn why a credential was refused.

Usage:
    @router.get("/me")
    async def me(auth: AuthContext = Depends(get_auth_context)):
        ...

    @router.post(
        "/admin/thing",
        dependencies=[Depends(get_auth_context), Depends(RoleGate({UserRole.ADMIN}))],
    )
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from brevet.core.revocation import RevocationStore
from brevet.core.security import (
    Claims,
    CredentialCodec,
    CredentialError,
    ExpiredCredentialError,
    MalformedCredentialError,
)
from brevet.modules.users.models import UserRole

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation. A missing header is rejected by
# AuthGate with the generic 401, not by HTTPBearer.
bearer_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)

# Token values some clients send when they have no token
SENTINEL_TOKENS = frozenset({"null", "undefined", "none", "bearer"})


class UnauthenticatedError(HTTPException):
    """Missing, malformed, expired, revoked or otherwise invalid credential."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "UNAUTHENTICATED",
                "message": "Invalid or expired authentication token.",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    """Valid credential, but the subject's role is not allowed."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "FORBIDDEN",
                "message": "You do not have access to this resource.",
            },
        )


@dataclass(frozen=True)
class AuthContext:
    """
    Request-scoped authentication data.

    Attributes:
        claims: Parsed access-credential claims
        token: The raw credential string (needed for logout/revocation)
    """

    claims: Claims
    token: str

    @property
    def user_id(self) -> UUID:
        return self.claims.subject

    @property
    def role(self) -> UserRole | None:
        return self.claims.role

    def __str__(self) -> str:
        return f"AuthContext(user_id={self.user_id}, role={self.role})"


def extract_bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """
    Pull the credential out of the parsed Authorization header.

    HTTPBearer has already matched the scheme (case-insensitively). Returns
    None when there was no Bearer header, or it carries an empty or sentinel
    value.
    """
    if credentials is None:
        return None

    token = credentials.credentials.strip()
    if not token or token.lower() in SENTINEL_TOKENS:
        return None
    return token


class AuthGate:
    """
    Accept/reject decision for bearer credentials.

    Args:
        codec: Access-credential codec
        revocations: Revocation store consulted before parsing
    """

    def __init__(self, codec: CredentialCodec, revocations: RevocationStore):
        self.codec = codec
        self.revocations = revocations

    async def authenticate(
        self, credentials: HTTPAuthorizationCredentials | None
    ) -> AuthContext:
        """
        Validate the bearer credentials of a request.

        Raises:
            UnauthenticatedError: On any failure.
        """
        token = extract_bearer_token(credentials)
        if token is None:
            logger.info("Rejected request: missing or malformed Authorization header")
            raise UnauthenticatedError()

        if await self.revocations.is_revoked(token):
            logger.info("Rejected request: credential revoked")
            raise UnauthenticatedError()

        try:
            claims = self.codec.parse(token)
        except ExpiredCredentialError as e:
            logger.info(
                "Rejected request: credential expired",
                extra={"user_id": str(e.claims.subject)},
            )
            raise UnauthenticatedError() from e
        except MalformedCredentialError as e:
            logger.info("Rejected request: malformed credential")
            raise UnauthenticatedError() from e
        except CredentialError as e:
            logger.warning(f"Rejected request: credential verification failed ({e})")
            raise UnauthenticatedError() from e

        return AuthContext(claims=claims, token=token)


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthContext:
    """
    FastAPI dependency running the application's AuthGate.

    The gate is built at startup and stored on ``app.state.auth_gate``.
    The resulting context is attached to ``request.state.auth`` for
    downstream dependencies (RoleGate) and handlers.
    """
    gate: AuthGate = request.app.state.auth_gate
    context = await gate.authenticate(credentials)
    request.state.auth = context
    return context


class RoleGate:
    """
    FastAPI dependency allowing only the given roles.

    Must be listed after get_auth_context. A request with no authenticated
    subject is rejected as unauthenticated, never as forbidden.
    """

    def __init__(self, allowed_roles: Iterable[UserRole]):
        self.allowed_roles = frozenset(UserRole(role) for role in allowed_roles)

    def check(self, context: AuthContext | None) -> AuthContext:
        if context is None:
            raise UnauthenticatedError()

        if context.role not in self.allowed_roles:
            logger.warning(
                f"Access denied: user {context.user_id} has role "
                f"'{context.role.value if context.role else None}'",
                extra={"allowed_roles": sorted(r.value for r in self.allowed_roles)},
            )
            raise ForbiddenError()

        return context

    async def __call__(self, request: Request) -> AuthContext:
        return self.check(getattr(request.state, "auth", None))


__all__ = [
    "AuthContext",
    "AuthGate",
    "ForbiddenError",
    "RoleGate",
    "UnauthenticatedError",
    "bearer_scheme",
    "extract_bearer_token",
    "get_auth_context",
]
