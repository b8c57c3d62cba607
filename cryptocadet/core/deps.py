"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptocadet.core.config import settings
from cryptocadet.core.database import get_async_session
from cryptocadet.core.logging_config import bind_shop
from cryptocadet.core.session_token import SessionShop, get_session_shop
from cryptocadet.integrations.shopify.oauth import is_valid_shop_domain


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session so tests can override one dependency."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(settings.redis_url, decode_responses=True)
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


def require_shop_domain(shop: str | None) -> str:
    """Validate a shop domain and bind it to the request's log context."""
    if not shop:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing shop parameter")
    shop = shop.strip().lower()
    if not is_valid_shop_domain(shop):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid shop domain")
    bind_shop(shop)
    return shop


async def get_shop_query(shop: str | None = Query(None)) -> str:
    """Shop domain from the ``shop`` query parameter."""
    return require_shop_domain(shop)


def check_session_shop(session_shop: str | None, shop: str) -> None:
    """Reject requests whose session token was issued for a different shop."""
    if session_shop is not None and session_shop != shop:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Session token does not match shop")


# Type aliases
DBSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]
ShopQuery = Annotated[str, Depends(get_shop_query)]


__all__ = [
    "DBSession",
    "RedisClient",
    "SessionShop",
    "ShopQuery",
    "check_session_shop",
    "get_db",
    "get_redis",
    "get_session_shop",
    "get_shop_query",
    "require_shop_domain",
]
