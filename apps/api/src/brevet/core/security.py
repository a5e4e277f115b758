"""
Security Utilities

Password hashing and signed bearer credentials.

Three credential kinds are issued, each with its own secret and lifetime:
- access: session credential carried on every authenticated request
- refresh: longer-lived credential bound to a stored UserSession
- verification: short-lived one-time proof (user id + email only)

Revoking or rotating the secret of one kind never affects the others.
"""

import enum
import hashlib
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import bcrypt
import jwt

from brevet.core.config import Settings
from brevet.modules.users.models import UserRole

ALGORITHM = "HS256"


class CredentialKind(str, enum.Enum):
    """Kinds of signed credentials."""

    ACCESS = "access"
    REFRESH = "refresh"
    VERIFICATION = "verification"


@dataclass(frozen=True)
class Claims:
    """
    Decoded credential claims.

    Verification credentials carry no role or display name.
    """

    subject: UUID
    email: str
    kind: CredentialKind
    issued_at: datetime
    expires_at: datetime
    role: UserRole | None = None
    name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


# ============================================
# Credential errors
# ============================================


class CredentialError(Exception):
    """Base class for credential parsing failures."""


class MalformedCredentialError(CredentialError):
    """The credential is not a structurally valid token."""


class InvalidSignatureError(CredentialError):
    """The credential failed verification for a reason other than expiry."""


class ExpiredCredentialError(CredentialError):
    """
    The credential's signature is valid but it has expired.

    The decoded claims are kept so callers can still identify the subject.
    """

    def __init__(self, claims: Claims):
        self.claims = claims
        super().__init__(f"Credential for {claims.subject} expired at {claims.expires_at}")


# ============================================
# Codec
# ============================================


class CredentialCodec:
    """
    Signs and parses one kind of bearer credential.

    Stateless: the same inputs always produce the same credential string.
    """

    def __init__(self, kind: CredentialKind, secret: str, ttl: timedelta):
        if not secret:
            raise ValueError(f"{kind.value} credential secret must not be empty")
        if ttl <= timedelta(0):
            raise ValueError(f"{kind.value} credential ttl must be positive")
        self.kind = kind
        self._secret = secret
        self.ttl = ttl

    def issue(
        self,
        subject: UUID,
        email: str,
        role: UserRole | str | None = None,
        name: str | None = None,
        now: datetime | None = None,
        token_id: str | None = None,
    ) -> str:
        """
        Sign a new credential.

        Args:
            subject: User id (``sub`` claim)
            email: User email
            role: User role (omitted for verification credentials)
            name: Display name (omitted for verification credentials)
            now: Issue time, defaults to the current UTC time
            token_id: Optional unique id (``jti`` claim); makes two credentials
                issued for the same subject in the same second distinct

        Returns:
            Encoded credential string
        """
        issued_at = now or datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": str(subject),
            "email": email,
            "type": self.kind.value,
            "iat": int(issued_at.timestamp()),
            "nbf": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        if self.kind is not CredentialKind.VERIFICATION:
            if role is not None:
                payload["role"] = UserRole(role).value
            if name:
                payload["name"] = name
        if token_id:
            payload["jti"] = token_id

        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def parse(self, token: str) -> Claims:
        """
        Verify and decode a credential.

        Raises:
            MalformedCredentialError: Not a structurally valid token or claims
                of the wrong shape.
            ExpiredCredentialError: Valid signature, past expiry; carries claims.
            InvalidSignatureError: Any other verification failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "require": ["sub", "exp", "iat"]},
            )
            raise ExpiredCredentialError(self._to_claims(payload)) from None
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError("Signature verification failed") from e
        except (jwt.DecodeError, jwt.MissingRequiredClaimError) as e:
            raise MalformedCredentialError("Credential is not a valid token") from e
        except jwt.InvalidTokenError as e:
            raise InvalidSignatureError(f"Credential rejected: {e}") from e

        return self._to_claims(payload)

    def _to_claims(self, payload: dict[str, Any]) -> Claims:
        token_type = payload.get("type", CredentialKind.ACCESS.value)
        if token_type != self.kind.value:
            raise InvalidSignatureError(
                f"Expected a {self.kind.value} credential, got {token_type!r}"
            )

        try:
            subject = UUID(str(payload["sub"]))
            role = UserRole(payload["role"]) if payload.get("role") else None
            issued_at = datetime.fromtimestamp(int(payload["iat"]), UTC)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedCredentialError(f"Invalid credential claims: {e}") from e

        known = {"sub", "email", "type", "role", "name", "iat", "nbf", "exp"}
        return Claims(
            subject=subject,
            email=str(payload.get("email", "")),
            kind=self.kind,
            issued_at=issued_at,
            expires_at=expires_at,
            role=role,
            name=payload.get("name"),
            extra={k: v for k, v in payload.items() if k not in known},
        )


@dataclass(frozen=True)
class CredentialCodecs:
    """The three codecs used by the application."""

    access: CredentialCodec
    refresh: CredentialCodec
    verification: CredentialCodec


def build_codecs(config: Settings) -> CredentialCodecs:
    """Build all credential codecs from settings (secrets validated first)."""
    config.validate_secrets()
    return CredentialCodecs(
        access=CredentialCodec(
            CredentialKind.ACCESS,
            config.access_token_secret,
            timedelta(hours=config.access_token_expiry_hours),
        ),
        refresh=CredentialCodec(
            CredentialKind.REFRESH,
            config.refresh_token_secret,
            timedelta(hours=config.refresh_token_expiry_hours),
        ),
        verification=CredentialCodec(
            CredentialKind.VERIFICATION,
            config.verification_token_secret,
            timedelta(minutes=config.verification_token_expiry_minutes),
        ),
    )


# ============================================
# Passwords and token digests
# ============================================


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def hash_token(token: str) -> str:
    """
    SHA-256 digest of a credential for storage.

    Refresh tokens are stored hashed so a database leak does not expose them.
    """
    return hashlib.sha256(token.encode()).hexdigest()
