"""
Credential Revocation Store

Denylist of explicitly invalidated credentials, kept in Redis with a per-entry
TTL. Keys are the raw credential strings; values are a fixed marker.

Read-path policy: a lookup that fails because Redis is unreachable is treated
as "not revoked". An outage therefore never locks every user out, at the cost
that a revoked credential cannot be detected while Redis is down.

Write-path policy: failing to record a revocation is reported to the caller
as TransientDependencyError, since silently dropping a logout is worse.
"""

import logging
from datetime import UTC, datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REVOKED_MARKER = "blacklisted"
KEY_PREFIX = "revoked:"


class TransientDependencyError(RuntimeError):
    """A backing store (database or cache) could not be reached."""


class RevocationStore:
    """
    Redis-backed credential denylist.

    Args:
        client: Async Redis client (with socket timeouts configured)
        max_ttl_seconds: Upper bound for any marker's lifetime
    """

    def __init__(self, client: Redis, max_ttl_seconds: int):
        self._client = client
        self.max_ttl_seconds = max_ttl_seconds

    @staticmethod
    def _key(token: str) -> str:
        return f"{KEY_PREFIX}{token}"

    def ttl_for(self, expires_at: datetime | None, now: datetime | None = None) -> int:
        """
        Marker lifetime in seconds.

        A marker never outlives the credential it denies: once the credential
        has expired on its own, the marker could never be queried again.
        """
        ttl = self.max_ttl_seconds
        if expires_at is not None:
            remaining = int((expires_at - (now or datetime.now(UTC))).total_seconds())
            ttl = min(ttl, remaining)
        return ttl

    async def mark_revoked(
        self,
        token: str,
        expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Record a credential as revoked.

        Args:
            token: Raw credential string
            expires_at: The credential's own expiry, used to cap the TTL
            now: Current time (for tests)

        Returns:
            True if a marker was written, False if the credential had already
            expired and no marker is needed.

        Raises:
            TransientDependencyError: If Redis is unreachable.
        """
        ttl = self.ttl_for(expires_at, now)
        if ttl <= 0:
            logger.debug("Credential already expired, no revocation marker written")
            return False

        try:
            await self._client.set(self._key(token), REVOKED_MARKER, ex=ttl)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to write revocation marker: {e}")
            raise TransientDependencyError("Revocation store unavailable") from e

        logger.info("Credential revoked", extra={"revocation_ttl_seconds": ttl})
        return True

    async def is_revoked(self, token: str) -> bool:
        """
        Check whether a credential has been revoked.

        "Not found" and "store unreachable" both return False.
        """
        try:
            value = await self._client.get(self._key(token))
        except (RedisError, OSError) as e:
            logger.warning(f"Revocation store unavailable, treating credential as not revoked: {e}")
            return False
        return value == REVOKED_MARKER
