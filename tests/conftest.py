import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Module-level app in app.main is built on import; keep it off MongoDB.
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ADGEM_WEBHOOK_SECRET", "adgem-test-secret")
os.environ.setdefault("CPX_APP_SECRET", "cpx-test-secret")
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")

from tests.helpers import ADGEM_SECRET, CPX_SECRET, INTERNAL_TOKEN  # noqa: E402


@pytest.fixture
def settings():
    from app.core.config import Settings
    return Settings(
        _env_file=None,
        store_backend="memory",
        adgem_webhook_secret=ADGEM_SECRET,
        adgem_points_per_unit=100,
        cpx_app_secret=CPX_SECRET,
        cpx_points_per_unit=75,
        internal_api_token=INTERNAL_TOKEN,
    )


@pytest.fixture
def providers(settings):
    from app.services.providers import build_providers
    return build_providers(settings)


@pytest.fixture
def store():
    from app.store.memory import InMemoryStore
    s = InMemoryStore()
    s.add_user("U1")
    s.add_user("U2", points=10)
    return s


@pytest.fixture
def dispatcher(store, providers):
    from app.services.postbacks import PostbackDispatcher
    return PostbackDispatcher(store, providers)


@pytest.fixture
def app(settings, store):
    from app.main import create_app
    return create_app(settings=settings, store=store)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
