"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from echat.backends.base import BackendClient
from echat.backends.document import DocumentBackend
from echat.backends.sql import SqlBackend
from echat.config import get_settings
from echat.email.service import reset_email_service
from echat.main import create_app
from echat.region.models import Region
from echat.services.chat_service import StoreChatService, chat_service_for
from echat.services.factory import ServiceRegistry
from echat.services.user_service import StoreUserService, user_service_for
from echat.users.schemas import CreateUserRequest, User

TEST_SECRET = "test-secret-key-with-enough-length-for-hs256"
TEST_PASSWORD = "Str0ngPassword1"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Pin the settings every test relies on and drop cached singletons."""
    monkeypatch.setenv("ECHAT_JWT_SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("ECHAT_EMAIL_PROVIDER", "console")
    monkeypatch.setenv("ECHAT_LOG_FORMAT", "console")
    monkeypatch.setenv("ECHAT_GEOIP_PROVIDERS", "[]")
    get_settings.cache_clear()
    reset_email_service()
    yield
    get_settings.cache_clear()
    reset_email_service()


async def make_sql_backend(tmp_path: Path, name: str = "echat.db") -> SqlBackend:
    """Row store on a file-backed SQLite database with the schema created."""
    backend = SqlBackend.from_url(f"sqlite+aiosqlite:///{tmp_path / name}", timeout=5.0)
    await backend.create_schema()
    return backend


def make_document_backend() -> DocumentBackend:
    """Document store on an isolated in-process Redis."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return DocumentBackend(client, prefix="test", timeout=5.0)


async def make_backend(region: Region, tmp_path: Path, name: str = "echat.db") -> BackendClient:
    if region is Region.CN:
        return make_document_backend()
    return await make_sql_backend(tmp_path, name)


@pytest_asyncio.fixture
async def sql_backend(tmp_path: Path) -> AsyncGenerator[SqlBackend, None]:
    backend = await make_sql_backend(tmp_path)
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def document_backend() -> AsyncGenerator[DocumentBackend, None]:
    backend = make_document_backend()
    yield backend
    await backend.close()


@pytest_asyncio.fixture(params=[Region.GLOBAL, Region.CN], ids=["global", "cn"])
async def backend(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncGenerator[BackendClient, None]:
    """Each test using this fixture runs once per region store."""
    client = await make_backend(request.param, tmp_path)
    yield client
    await client.close()


@pytest.fixture
def user_service(backend: BackendClient) -> StoreUserService:
    return user_service_for(backend)


@pytest.fixture
def chat_service(backend: BackendClient, user_service: StoreUserService) -> StoreChatService:
    return chat_service_for(backend, user_service)


@pytest.fixture
def make_user(user_service: StoreUserService) -> Callable[..., Awaitable[User]]:
    """Factory creating users directly through the service."""

    async def _make(name: str, **overrides: Any) -> User:
        user = await user_service.create_user(CreateUserRequest(email=f"{name}@acme.io", username=name))
        if overrides:
            updated = await user_service.update_user(user.id, overrides)
            assert updated is not None
            user = updated
        return user

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_email_service(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Capture verification emails instead of delivering them."""
    mock_service = MagicMock()
    mock_service.send_verification_code = AsyncMock(return_value=True)
    monkeypatch.setattr("echat.auth.router.get_email_service", lambda: mock_service)
    return mock_service


@pytest_asyncio.fixture(params=[Region.GLOBAL, Region.CN], ids=["global", "cn"])
async def app_region(
    request: pytest.FixtureRequest,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[tuple[Region, ServiceRegistry], None]:
    """A registry pinned to one deployment region, with that region's store injected."""
    region: Region = request.param
    monkeypatch.setenv("ECHAT_DEPLOYMENT_REGION", "CN" if region is Region.CN else "INTL")
    get_settings.cache_clear()

    registry = ServiceRegistry(get_settings())
    backend = await make_backend(region, tmp_path, "app.db")
    registry.backends.override(region, backend)
    yield region, registry
    await registry.close()


@pytest.fixture
def registry(app_region: tuple[Region, ServiceRegistry]) -> ServiceRegistry:
    return app_region[1]


@pytest_asyncio.fixture
async def client(registry: ServiceRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, with the test registry on app.state."""
    app = create_app()
    app.state.registry = registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register(client: AsyncClient, mock_email_service: MagicMock) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Run the send-code + register flow; returns the token body plus an ``auth`` header dict."""

    async def _register(email: str, password: str = TEST_PASSWORD, **extra: Any) -> dict[str, Any]:
        response = await client.post("/api/v1/auth/send-register-code", json={"email": email})
        assert response.status_code == 200, response.text
        code = mock_email_service.send_verification_code.call_args.args[1]
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": password, "code": code, **extra},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        body["auth"] = {"Authorization": f"Bearer {body['access_token']}"}
        return body

    return _register


@pytest_asyncio.fixture
async def alice(register: Callable[..., Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    return await register("alice@acme.io", username="alice")


@pytest_asyncio.fixture
async def bob(register: Callable[..., Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    return await register("bob@acme.io", username="bob")


@pytest.fixture
def make_admin(registry: ServiceRegistry) -> Callable[[str], Awaitable[None]]:
    """Promote a user id to administrator in the deployment region's store."""

    async def _promote(user_id: str) -> None:
        services = await registry.primary()
        await services.users.update_user(user_id, {"is_admin": True})

    return _promote
