"""Pytest configuration and fixtures for the CryptoCadet test suite.

Provides:
- A throwaway SQLite database per test (aiosqlite, tables created from models)
- Mock Redis (fakeredis)
- Disabled rate limiting
- Shopify signing helpers (webhook HMAC, OAuth HMAC, App Bridge session tokens)
- Model factory fixtures for MerchantConfig and PaymentSession
"""

import base64
import hashlib
import hmac
import time
import uuid
from collections.abc import AsyncGenerator, Callable, Generator
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import urlencode

import fakeredis.aioredis
import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cryptocadet.core.deps import get_db, get_redis
from cryptocadet.core.encryption import encrypt_access_token
from cryptocadet.core.rate_limit import limiter
from cryptocadet.main import app
from cryptocadet.models.base import Base
from cryptocadet.models.merchant import MerchantConfig, MerchantStatus
from cryptocadet.models.payment_session import PaymentSession, PaymentSessionStatus

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SHOPIFY_TEST_API_KEY = "test-shopify-api-key"
SHOPIFY_TEST_API_SECRET = "test-shopify-api-secret"
SHOPIFY_TEST_SHOP = "test-store.myshopify.com"
TEST_APP_URL = "https://cryptocadet.test"
TEST_CRYPTO_APP_URL = "https://pay.cryptocadet.test"
TEST_ACCESS_TOKEN = "shpat_test_access_token_123"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Shopify settings are set for all tests."""
    monkeypatch.setattr("cryptocadet.core.config.settings.shopify_api_key", SHOPIFY_TEST_API_KEY)
    monkeypatch.setattr(
        "cryptocadet.core.config.settings.shopify_api_secret", SHOPIFY_TEST_API_SECRET
    )
    monkeypatch.setattr("cryptocadet.core.config.settings.app_url", TEST_APP_URL)
    monkeypatch.setattr("cryptocadet.core.config.settings.crypto_app_url", TEST_CRYPTO_APP_URL)
    monkeypatch.setattr("cryptocadet.core.config.settings.require_session_token", True)


# ---------------------------------------------------------------------------
# Database (fresh SQLite file per test)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create all tables in a per-test SQLite database.

    NullPool gives every session its own connection, so the test's session
    and the request's session see each other's commits like they would on
    Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and assertions."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Test client (overrides DB and Redis)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with database and Redis dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def merchant_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates MerchantConfig rows."""

    async def _create(
        *,
        shop_domain: str = SHOPIFY_TEST_SHOP,
        access_token: str | None = TEST_ACCESS_TOKEN,
        scopes: str = "write_script_tags,read_orders",
        status: MerchantStatus = MerchantStatus.INSTALLED,
        crypto_enabled: bool = False,
        script_tag_id: str | None = None,
        webhook_subscriptions: dict[str, str] | None = None,
    ) -> MerchantConfig:
        merchant = MerchantConfig(
            shop_domain=shop_domain,
            access_token=encrypt_access_token(access_token) if access_token else None,
            scopes=scopes,
            status=status,
            crypto_enabled=crypto_enabled,
            script_tag_id=script_tag_id,
            webhook_subscriptions=webhook_subscriptions or {},
        )
        db_session.add(merchant)
        await db_session.commit()
        await db_session.refresh(merchant)
        return merchant

    return _create


@pytest.fixture
def payment_session_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates PaymentSession rows."""

    async def _create(
        *,
        gid: str | None = None,
        shop_domain: str | None = SHOPIFY_TEST_SHOP,
        amount: Decimal = Decimal("29.99"),
        currency: str = "USD",
        test_mode: bool = True,
        status: PaymentSessionStatus = PaymentSessionStatus.PENDING,
        transaction_id: str | None = None,
    ) -> PaymentSession:
        session = PaymentSession(
            shopify_session_gid=gid or f"gid://shopify/PaymentSession/{uuid.uuid4().hex}",
            shop_domain=shop_domain,
            amount=amount,
            currency=currency,
            test_mode=test_mode,
            status=status,
            transaction_id=transaction_id,
        )
        db_session.add(session)
        await db_session.commit()
        await db_session.refresh(session)
        return session

    return _create


# ---------------------------------------------------------------------------
# Shopify signing helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def shopify_webhook_signature() -> Callable[[bytes], str]:
    """Generate a valid Shopify webhook HMAC signature for a given body."""

    def _sign(body: bytes) -> str:
        return base64.b64encode(
            hmac.new(
                SHOPIFY_TEST_API_SECRET.encode(),
                body,
                hashlib.sha256,
            ).digest()
        ).decode()

    return _sign


@pytest.fixture
def shopify_webhook_headers(
    shopify_webhook_signature: Callable[[bytes], str],
) -> Callable[..., dict[str, str]]:
    """Generate complete Shopify webhook headers for a given body and shop.

    Usage:
        body = b'{"id": 123}'
        headers = shopify_webhook_headers(body, webhook_id="abc")
        response = await client.post("/webhooks/orders/create", content=body, headers=headers)
    """

    def _headers(
        body: bytes,
        shop: str = SHOPIFY_TEST_SHOP,
        webhook_id: str | None = None,
    ) -> dict[str, str]:
        return {
            "X-Shopify-Hmac-Sha256": shopify_webhook_signature(body),
            "X-Shopify-Shop-Domain": shop,
            "X-Shopify-Webhook-Id": webhook_id or str(uuid.uuid4()),
            "Content-Type": "application/json",
        }

    return _headers


@pytest.fixture
def shopify_oauth_hmac() -> Callable[[dict[str, str]], str]:
    """Generate a valid Shopify OAuth HMAC over sorted query params (excluding hmac)."""

    def _compute(params: dict[str, str]) -> str:
        filtered = {k: v for k, v in sorted(params.items()) if k != "hmac"}
        message = urlencode(filtered)
        return hmac.new(
            SHOPIFY_TEST_API_SECRET.encode(),
            message.encode(),
            hashlib.sha256,
        ).hexdigest()

    return _compute


@pytest.fixture
def session_token() -> Callable[..., str]:
    """Mint an App Bridge session token for a shop.

    Usage:
        token = session_token()                      # valid for SHOPIFY_TEST_SHOP
        token = session_token(expires_in=-60)        # expired
        token = session_token(secret="wrong")        # bad signature
    """

    def _mint(
        shop: str = SHOPIFY_TEST_SHOP,
        *,
        expires_in: int = 60,
        secret: str = SHOPIFY_TEST_API_SECRET,
        audience: str = SHOPIFY_TEST_API_KEY,
        issuer_shop: str | None = None,
    ) -> str:
        now = int(time.time())
        payload = {
            "iss": f"https://{issuer_shop or shop}/admin",
            "dest": f"https://{shop}",
            "aud": audience,
            "sub": "42",
            "exp": now + expires_in,
            "nbf": now - 5,
            "iat": now - 5,
            "jti": uuid.uuid4().hex,
            "sid": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm="HS256")

    return _mint


@pytest.fixture
def auth_headers(session_token: Callable[..., str]) -> dict[str, str]:
    """Authorization header carrying a valid session token for the test shop."""
    return {"Authorization": f"Bearer {session_token()}"}


# ---------------------------------------------------------------------------
# HTTP mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_shopify_token_exchange() -> Generator[MagicMock, None, None]:
    """Mock the Shopify OAuth token exchange HTTP call."""
    with patch("cryptocadet.integrations.shopify.oauth.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client

        mock_response = MagicMock()
        mock_response.json.return_value = {
            "access_token": TEST_ACCESS_TOKEN,
            "scope": "write_script_tags,read_orders",
        }
        mock_response.raise_for_status = MagicMock()
        mock_client.post.return_value = mock_response

        yield mock_client


@pytest.fixture
def graphql_response() -> Callable[[dict[str, Any]], MagicMock]:
    """Build a mock httpx response carrying a GraphQL payload."""

    def _response(payload: dict[str, Any]) -> MagicMock:
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status = MagicMock()
        return response

    return _response


@pytest.fixture
def mock_shopify_http() -> Generator[AsyncMock, None, None]:
    """Mock httpx.AsyncClient used by ShopifyClient.

    Set ``mock_shopify_http.post.return_value`` or ``.side_effect`` to
    GraphQL responses built with the ``graphql_response`` fixture.
    """
    with patch("cryptocadet.integrations.shopify.client.httpx.AsyncClient") as mock_class:
        mock_client = AsyncMock()
        mock_class.return_value.__aenter__.return_value = mock_client
        yield mock_client


@pytest.fixture
def mock_register_task() -> Generator[MagicMock, None, None]:
    """Stop the OAuth callback from enqueueing to a real broker."""
    with patch("cryptocadet.api.auth.register_app_webhooks") as mock_task:
        yield mock_task
