"""
Tests for the request-time auth gate and role gate.

These tests cover:
- Header validation (missing, non-bearer, empty, sentinel values, scheme case)
- Revocation checked before parsing
- Malformed, expired and forged credentials rejected with one generic 401
- Claims and raw credential attached to the request
- Role gate: 403 for the wrong role, 401 without an authenticated subject
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from brevet.core.auth import (
    AuthContext,
    AuthGate,
    ForbiddenError,
    RoleGate,
    UnauthenticatedError,
    extract_bearer_token,
    get_auth_context,
)
from brevet.core.revocation import REVOKED_MARKER
from brevet.core.security import CredentialCodec, CredentialKind
from brevet.modules.users.models import UserRole

GENERIC_401 = {
    "detail": {
        "error": "UNAUTHENTICATED",
        "message": "Invalid or expired authentication token.",
    }
}


@pytest.fixture
def gate(codecs, revocations):
    return AuthGate(codecs.access, revocations)


@pytest.fixture
def client(gate):
    """A minimal app wired with the gates."""
    app = FastAPI()
    app.state.auth_gate = gate

    @app.get("/whoami")
    async def whoami(request: Request, auth: AuthContext = Depends(get_auth_context)):
        assert request.state.auth is auth
        return {
            "user_id": str(auth.user_id),
            "role": auth.role.value if auth.role else None,
            "token": auth.token,
        }

    @app.get(
        "/teachers-only",
        dependencies=[Depends(get_auth_context), Depends(RoleGate({UserRole.TEACHER}))],
    )
    async def teachers_only():
        return {"ok": True}

    @app.get("/role-without-auth", dependencies=[Depends(RoleGate({UserRole.ADMIN}))])
    async def role_without_auth():
        return {"ok": True}

    return TestClient(app)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestExtractBearerToken:
    """Tests for extract_bearer_token."""

    def test_no_credentials(self):
        assert extract_bearer_token(None) is None

    @pytest.mark.parametrize("value", ["", "  ", "null", "undefined", "None", "bearer"])
    def test_empty_or_sentinel_values(self, value):
        assert extract_bearer_token(_credentials(value)) is None

    def test_extracts_token(self):
        assert extract_bearer_token(_credentials("abc.def.ghi")) == "abc.def.ghi"


class TestAuthGate:
    """Tests for AuthGate via a FastAPI app."""

    def test_valid_credential_attaches_claims_and_token(self, client, codecs):
        """A valid credential exposes the subject, role and raw token."""
        subject = uuid4()
        token = codecs.access.issue(subject, "t@example.com", UserRole.TEACHER)

        response = client.get("/whoami", headers=_bearer(token))

        assert response.status_code == 200
        assert response.json() == {"user_id": str(subject), "role": "teacher", "token": token}

    def test_scheme_is_case_insensitive(self, client, codecs):
        token = codecs.access.issue(uuid4(), "t@example.com", UserRole.STUDENT)

        response = client.get("/whoami", headers={"Authorization": f"bearer {token}"})

        assert response.status_code == 200
        assert response.json()["token"] == token

    def test_bearer_scheme_in_openapi(self, client):
        schemes = client.app.openapi()["components"]["securitySchemes"]

        assert schemes["HTTPBearer"]["type"] == "http"
        assert schemes["HTTPBearer"]["scheme"] == "bearer"

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": "Token abc"},
            {"Authorization": "Basic abc"},
            _bearer("null"),
            _bearer("undefined"),
        ],
    )
    def test_missing_or_malformed_header(self, client, headers):
        response = client.get("/whoami", headers=headers)

        assert response.status_code == 401
        assert response.json() == GENERIC_401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_malformed_credential(self, client):
        response = client.get("/whoami", headers=_bearer("definitely-not-a-jwt"))

        assert response.status_code == 401
        assert response.json() == GENERIC_401

    def test_expired_credential(self, client, codecs):
        token = codecs.access.issue(
            uuid4(), "x@example.com", UserRole.STUDENT, now=datetime.now(UTC) - timedelta(days=2)
        )

        response = client.get("/whoami", headers=_bearer(token))

        assert response.status_code == 401
        assert response.json() == GENERIC_401

    def test_forged_credential(self, client):
        forged = CredentialCodec(CredentialKind.ACCESS, "attacker-secret", timedelta(hours=1))
        token = forged.issue(uuid4(), "x@example.com", UserRole.ADMIN)

        response = client.get("/whoami", headers=_bearer(token))

        assert response.status_code == 401
        assert response.json() == GENERIC_401

    def test_revoked_credential_rejected_despite_valid_signature(
        self, client, codecs, mock_redis
    ):
        """A revoked credential is refused even though it would otherwise parse."""
        token = codecs.access.issue(uuid4(), "r@example.com", UserRole.STUDENT)
        mock_redis.get = AsyncMock(return_value=REVOKED_MARKER)

        response = client.get("/whoami", headers=_bearer(token))

        assert response.status_code == 401
        assert response.json() == GENERIC_401

    @pytest.mark.asyncio
    async def test_revocation_checked_before_parse(self, codecs, revocations, mock_redis):
        """The revocation store is consulted even for garbage credentials."""
        gate = AuthGate(codecs.access, revocations)

        with pytest.raises(UnauthenticatedError):
            await gate.authenticate(_credentials("garbage"))

        mock_redis.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_revocation_store_outage_fails_open(self, codecs, revocations, mock_redis):
        """While Redis is down a valid credential is still accepted."""
        gate = AuthGate(codecs.access, revocations)
        token = codecs.access.issue(uuid4(), "o@example.com", UserRole.STUDENT)
        mock_redis.get = AsyncMock(side_effect=ConnectionError("redis down"))

        context = await gate.authenticate(_credentials(token))

        assert context.token == token


class TestRoleGate:
    """Tests for RoleGate."""

    def test_allowed_role(self, client, codecs):
        token = codecs.access.issue(uuid4(), "t@example.com", UserRole.TEACHER)

        response = client.get("/teachers-only", headers=_bearer(token))

        assert response.status_code == 200

    def test_wrong_role_is_forbidden(self, client, codecs):
        token = codecs.access.issue(uuid4(), "s@example.com", UserRole.STUDENT)

        response = client.get("/teachers-only", headers=_bearer(token))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "FORBIDDEN"

    def test_unauthenticated_before_forbidden(self, client):
        """Without a credential the role gate is never reached: 401, not 403."""
        response = client.get("/teachers-only")

        assert response.status_code == 401

    def test_role_gate_without_auth_gate_is_unauthenticated(self, client):
        """A role gate with no authenticated subject answers 401."""
        response = client.get("/role-without-auth")

        assert response.status_code == 401
        assert response.json() == GENERIC_401

    def test_check_without_role_claim_is_forbidden(self, codecs):
        """A subject without any role is not a member of any allowed set."""
        token = codecs.access.issue(uuid4(), "n@example.com")
        context = AuthContext(claims=codecs.access.parse(token), token=token)

        with pytest.raises(ForbiddenError):
            RoleGate({UserRole.ADMIN}).check(context)

    def test_check_none_is_unauthenticated(self):
        with pytest.raises(UnauthenticatedError):
            RoleGate({UserRole.ADMIN}).check(None)
