"""
Tests for credential codecs and password hashing.

These tests cover:
- Issue/parse round trip for session and verification credentials
- Expired credentials reporting their claims
- Malformed and forged credentials
- Independence of secrets between credential kinds
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest

from brevet.core.config import ConfigurationError, Settings
from brevet.core.security import (
    ALGORITHM,
    CredentialCodec,
    CredentialKind,
    ExpiredCredentialError,
    InvalidSignatureError,
    MalformedCredentialError,
    build_codecs,
    hash_password,
    hash_token,
    verify_password,
)
from brevet.modules.users.models import UserRole


@pytest.fixture
def access_codec():
    return CredentialCodec(CredentialKind.ACCESS, "access-secret", timedelta(hours=1))


class TestCredentialRoundTrip:
    """Tests for CredentialCodec.issue and parse."""

    def test_session_credential_round_trip(self, access_codec):
        """Parsing an issued credential returns the same subject, email and role."""
        subject = uuid4()
        token = access_codec.issue(subject, "ana@example.com", UserRole.TEACHER, "Ana")

        claims = access_codec.parse(token)

        assert claims.subject == subject
        assert claims.email == "ana@example.com"
        assert claims.role is UserRole.TEACHER
        assert claims.name == "Ana"
        assert claims.kind is CredentialKind.ACCESS
        assert claims.expires_at - claims.issued_at == timedelta(hours=1)

    def test_verification_credential_carries_no_role(self, codecs):
        """Verification credentials hold only subject and email."""
        subject = uuid4()
        token = codecs.verification.issue(subject, "bo@example.com", UserRole.ADMIN, "Bo")

        claims = codecs.verification.parse(token)

        assert claims.subject == subject
        assert claims.role is None
        assert claims.name is None
        assert claims.expires_at - claims.issued_at == timedelta(minutes=15)

    def test_issue_is_deterministic(self, access_codec):
        """Same inputs produce the same credential."""
        subject = uuid4()
        issued_at = datetime.now(UTC)

        first = access_codec.issue(subject, "c@example.com", "student", now=issued_at)
        second = access_codec.issue(subject, "c@example.com", "student", now=issued_at)

        assert first == second

    def test_token_id_distinguishes_credentials(self, access_codec):
        """A token id makes same-second credentials distinct."""
        subject = uuid4()
        issued_at = datetime.now(UTC)

        first = access_codec.issue(subject, "c@example.com", now=issued_at, token_id="one")
        second = access_codec.issue(subject, "c@example.com", now=issued_at, token_id="two")

        assert first != second
        assert access_codec.parse(first).extra["jti"] == "one"


class TestCredentialFailures:
    """Tests for CredentialCodec.parse failures."""

    def test_expired_credential_keeps_claims(self, access_codec):
        """After expiry parse fails with Expired and the claims are retrievable."""
        subject = uuid4()
        issued_at = datetime.now(UTC) - timedelta(hours=2)
        token = access_codec.issue(subject, "d@example.com", UserRole.STUDENT, now=issued_at)

        with pytest.raises(ExpiredCredentialError) as exc_info:
            access_codec.parse(token)

        assert exc_info.value.claims.subject == subject
        assert exc_info.value.claims.email == "d@example.com"
        assert exc_info.value.claims.role is UserRole.STUDENT

    @pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c", "Bearer xyz"])
    def test_garbage_is_malformed(self, access_codec, token):
        """Structurally invalid input is Malformed."""
        with pytest.raises(MalformedCredentialError):
            access_codec.parse(token)

    def test_missing_required_claim_is_malformed(self, access_codec):
        """A signed token without a subject is Malformed."""
        token = jwt.encode(
            {"exp": datetime.now(UTC) + timedelta(hours=1), "iat": datetime.now(UTC)},
            "access-secret",
            algorithm=ALGORITHM,
        )

        with pytest.raises(MalformedCredentialError):
            access_codec.parse(token)

    def test_wrong_secret_is_invalid_signature(self, access_codec):
        """A credential signed with another secret fails signature verification."""
        forged = CredentialCodec(CredentialKind.ACCESS, "other-secret", timedelta(hours=1))
        token = forged.issue(uuid4(), "e@example.com", UserRole.ADMIN)

        with pytest.raises(InvalidSignatureError):
            access_codec.parse(token)

    def test_expired_forgery_is_invalid_signature(self, access_codec):
        """An expired credential with a bad signature is not reported as Expired."""
        forged = CredentialCodec(CredentialKind.ACCESS, "other-secret", timedelta(hours=1))
        token = forged.issue(uuid4(), "e@example.com", now=datetime.now(UTC) - timedelta(days=1))

        with pytest.raises(InvalidSignatureError):
            access_codec.parse(token)

    def test_kinds_do_not_cross(self, codecs):
        """A refresh credential is never accepted as an access credential."""
        token = codecs.refresh.issue(uuid4(), "f@example.com", UserRole.STUDENT)

        with pytest.raises(InvalidSignatureError):
            codecs.access.parse(token)

    def test_same_secret_different_kind_rejected(self):
        """Even with a shared secret the credential type must match."""
        access = CredentialCodec(CredentialKind.ACCESS, "shared", timedelta(hours=1))
        verification = CredentialCodec(CredentialKind.VERIFICATION, "shared", timedelta(hours=1))
        token = verification.issue(uuid4(), "g@example.com")

        with pytest.raises(InvalidSignatureError):
            access.parse(token)

    def test_empty_secret_rejected(self):
        """A codec cannot be built without a secret."""
        with pytest.raises(ValueError):
            CredentialCodec(CredentialKind.ACCESS, "", timedelta(hours=1))


class TestBuildCodecs:
    """Tests for build_codecs."""

    def test_uses_configured_ttls(self):
        """Each kind gets its own configured lifetime."""
        codecs = build_codecs(
            Settings(
                _env_file=None,
                access_token_expiry_hours=2,
                refresh_token_expiry_hours=48,
                verification_token_expiry_minutes=30,
            )
        )

        assert codecs.access.ttl == timedelta(hours=2)
        assert codecs.refresh.ttl == timedelta(hours=48)
        assert codecs.verification.ttl == timedelta(minutes=30)

    def test_invalid_secret_is_fatal(self):
        """Misconfigured secrets stop codec construction."""
        with pytest.raises(ConfigurationError):
            build_codecs(Settings(_env_file=None, verification_token_secret=""))


class TestPasswords:
    """Tests for password and token hashing."""

    def test_verify_password(self):
        hashed = hash_password("s3cret")

        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_password_with_corrupt_hash(self):
        """A corrupt stored hash fails verification instead of raising."""
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False

    def test_hash_token(self):
        assert len(hash_token("abc")) == 64
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
