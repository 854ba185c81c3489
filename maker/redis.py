"""Redis connection and the access-token denylist used by logout."""

import redis.asyncio as aioredis

from maker.logging_config import get_logger

logger = get_logger(__name__)

_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Get the shared Redis connection. Must be initialized first via init_redis()."""
    if _redis is None:
        raise RuntimeError("Redis not initialized — app not started")
    return _redis


async def init_redis(url: str = "redis://localhost:6379/0") -> aioredis.Redis:
    """Initialize the global Redis connection."""
    global _redis
    _redis = aioredis.from_url(url, decode_responses=True)
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _revoked_key(jti: str) -> str:
    return f"revoked:{jti}"


async def revoke_token(jti: str, ttl_seconds: int) -> None:
    """Denylist a token id until the token would have expired anyway."""
    if ttl_seconds <= 0:
        return
    await get_redis().set(_revoked_key(jti), "1", ex=ttl_seconds)


async def is_token_revoked(jti: str) -> bool:
    """Check the denylist. Fails open when Redis is not initialized."""
    try:
        redis = get_redis()
    except RuntimeError:
        logger.warning("revocation_check_skipped", reason="redis_not_initialized")
        return False
    return bool(await redis.exists(_revoked_key(jti)))
