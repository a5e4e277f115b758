"""
Redis Configuration

Async Redis client backing the credential revocation cache.
The client is created at startup and handed to the components that need it;
there is no module-level client.
"""

from redis.asyncio import Redis, from_url

from brevet.core.config import Settings


def create_redis_client(config: Settings) -> Redis:
    """
    Build a Redis client with connect and socket timeouts.

    A stalled Redis must never wedge a request, so both timeouts are always set.
    """
    return from_url(
        config.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=config.redis_connect_timeout_seconds,
        socket_timeout=config.redis_socket_timeout_seconds,
    )


async def init_redis(config: Settings) -> Redis:
    """
    Initialize the Redis connection.

    Call this on application startup. Raises if Redis is unreachable.
    """
    client = create_redis_client(config)
    # Test connection
    await client.ping()
    return client


async def close_redis(client: Redis | None) -> None:
    """Close Redis connection."""
    if client is not None:
        await client.aclose()
