"""
Authentication Service Layer

Business logic for login sessions and credentials.

This module implements:
1. Login:
   - Verify email/password (bcrypt)
   - Require a verified, active account
   - Issue access + refresh credentials and persist a UserSession holding
     the refresh credential's SHA-256 digest

2. Refresh:
   - Verify the refresh credential with the refresh secret
   - Require the session behind it to be live (not revoked, not expired)
   - Issue a new access credential

3. Logout:
   - Write a revocation marker for the access credential, capped at the
     credential's remaining lifetime
   - Then revoke the session behind the refresh credential (conditional update)

4. Verification credentials:
   - Short-lived one-time proof (user id + email) with its own secret
   - Reading tolerates expiry and reports it, so callers can decide

Security considerations:
- Login failures for unknown email and wrong password are indistinguishable
- Refresh credentials are stored hashed
- Credentials are never logged
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from brevet.core.auth import AuthContext
from brevet.core.revocation import RevocationStore
from brevet.core.security import (
    Claims,
    CredentialCodecs,
    CredentialError,
    ExpiredCredentialError,
    hash_token,
    verify_password,
)
from brevet.modules.sessions import repository as session_repository
from brevet.modules.sessions.models import UserSession
from brevet.modules.users.models import User
from brevet.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


# ============================================
# Exceptions
# ============================================


class AuthServiceError(Exception):
    """Base exception for authentication service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidCredentialsError(AuthServiceError):
    """Raised when email or password is wrong."""

    def __init__(self):
        super().__init__(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
            status_code=401,
        )


class AccountNotVerifiedError(AuthServiceError):
    """Raised when the account's email has not been verified."""

    def __init__(self):
        super().__init__(
            message="Please verify your email address before logging in.",
            error_code="ACCOUNT_NOT_VERIFIED",
            status_code=403,
        )


class AccountInactiveError(AuthServiceError):
    """Raised when the account has been deactivated."""

    def __init__(self):
        super().__init__(
            message="Your account has been deactivated.",
            error_code="ACCOUNT_INACTIVE",
            status_code=403,
        )


class InvalidRefreshTokenError(AuthServiceError):
    """Raised when a refresh credential fails verification."""

    def __init__(self):
        super().__init__(
            message="Invalid or expired refresh token.",
            error_code="INVALID_REFRESH_TOKEN",
            status_code=401,
        )


class SessionNotFoundError(AuthServiceError):
    """Raised when no live session matches a refresh credential."""

    def __init__(self):
        super().__init__(
            message="Session not found or already ended.",
            error_code="SESSION_NOT_FOUND",
            status_code=401,
        )


class InvalidVerificationTokenError(AuthServiceError):
    """Raised when a verification credential is malformed or forged."""

    def __init__(self):
        super().__init__(
            message="Invalid verification token.",
            error_code="INVALID_VERIFICATION_TOKEN",
            status_code=400,
        )


# ============================================
# Results
# ============================================


@dataclass(frozen=True)
class LoginResult:
    user: User
    session: UserSession
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class VerificationTokenStatus:
    """Claims of a verification credential and whether it has expired."""

    claims: Claims
    expired: bool


# ============================================
# Service
# ============================================


class AuthService:
    """
    Login, refresh, logout and verification credentials.

    Args:
        codecs: Credential codecs (access, refresh, verification)
        revocations: Revocation store written on logout
    """

    def __init__(self, codecs: CredentialCodecs, revocations: RevocationStore):
        self.codecs = codecs
        self.revocations = revocations

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
        now: datetime | None = None,
    ) -> LoginResult:
        """
        Authenticate a user and open a session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountNotVerifiedError: Email not yet verified
            AccountInactiveError: Account deactivated
        """
        now = now or datetime.now(UTC)
        user = await UserRepository.get_by_email(db, email)

        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Login failed: invalid email or password")
            raise InvalidCredentialsError()

        if not user.is_verified:
            logger.warning(f"Login attempt for unverified account: {user.id}")
            raise AccountNotVerifiedError()

        if not user.is_active:
            logger.warning(f"Login attempt for inactive account: {user.id}")
            raise AccountInactiveError()

        access_token = self.codecs.access.issue(
            user.id, user.email, role=user.role, name=user.name, now=now
        )
        refresh_token = self.codecs.refresh.issue(
            user.id,
            user.email,
            role=user.role,
            name=user.name,
            now=now,
            token_id=uuid.uuid4().hex,
        )

        session = await session_repository.create(
            db,
            user_id=user.id,
            refresh_token_hash=hash_token(refresh_token),
            expires_at=now + self.codecs.refresh.ttl,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        await db.commit()

        logger.info(f"User logged in: {user.id} (role: {user.role.value}, session: {session.id})")

        return LoginResult(
            user=user,
            session=session,
            access_token=access_token,
            refresh_token=refresh_token,
        )

    async def refresh(
        self,
        db: AsyncSession,
        refresh_token: str,
        now: datetime | None = None,
    ) -> str:
        """
        Issue a new access credential from a refresh credential.

        Returns:
            New access credential

        Raises:
            InvalidRefreshTokenError: Refresh credential fails verification
            SessionNotFoundError: No live session for this credential
            AccountInactiveError: Account deleted or deactivated since login
        """
        now = now or datetime.now(UTC)

        try:
            claims = self.codecs.refresh.parse(refresh_token)
        except CredentialError as e:
            logger.info(f"Refresh rejected: {type(e).__name__}")
            raise InvalidRefreshTokenError() from e

        session = await session_repository.get_live_by_refresh_hash(
            db, hash_token(refresh_token), now
        )
        if session is None:
            logger.info(f"Refresh rejected: no live session for user {claims.subject}")
            raise SessionNotFoundError()

        user = await UserRepository.get_by_id(db, claims.subject)
        if user is None or not user.is_active:
            logger.warning(f"Refresh rejected: account {claims.subject} missing or inactive")
            raise AccountInactiveError()

        logger.info(f"Access token refreshed for user {user.id}")
        return self.codecs.access.issue(
            user.id, user.email, role=user.role, name=user.name, now=now
        )

    async def logout(
        self,
        db: AsyncSession,
        auth: AuthContext,
        refresh_token: str,
        now: datetime | None = None,
    ) -> None:
        """
        End a session and revoke the caller's access credential.

        Args:
            db: Database session
            auth: Context of the authenticated request (access credential)
            refresh_token: Refresh credential of the session to end
            now: Current time (for tests)

        Raises:
            SessionNotFoundError: No unrevoked session for the refresh credential
            TransientDependencyError: The revocation store is unreachable
        """
        refresh_hash = hash_token(refresh_token)
        session = await session_repository.get_unrevoked_by_refresh_hash(
            db, refresh_hash, user_id=auth.user_id
        )
        if session is None:
            logger.info(f"Logout rejected: no active session for user {auth.user_id}")
            raise SessionNotFoundError()

        # Marker before session: a failed write leaves the session open so a retry can finish
        await self.revocations.mark_revoked(auth.token, auth.claims.expires_at, now=now)

        revoked = await session_repository.revoke_by_refresh_hash(
            db, refresh_hash, user_id=auth.user_id
        )
        if not revoked:
            logger.info(f"Session {session.id} was already revoked by a concurrent logout")
        logger.info(f"User logged out: {auth.user_id}")

    def issue_verification_token(self, user: User, now: datetime | None = None) -> str:
        """Issue a short-lived verification credential (user id + email only)."""
        return self.codecs.verification.issue(user.id, user.email, now=now)

    def read_verification_token(self, token: str) -> VerificationTokenStatus:
        """
        Read a verification credential.

        An expired credential still yields its claims, flagged as expired.

        Raises:
            InvalidVerificationTokenError: Malformed or bad signature
        """
        try:
            claims = self.codecs.verification.parse(token)
        except ExpiredCredentialError as e:
            return VerificationTokenStatus(claims=e.claims, expired=True)
        except CredentialError as e:
            logger.info(f"Verification token rejected: {type(e).__name__}")
            raise InvalidVerificationTokenError() from e

        return VerificationTokenStatus(claims=claims, expired=False)
