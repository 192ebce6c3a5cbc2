import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import Settings, get_settings
from app.db.documents import DOCUMENT_MODELS
from app.store.base import PostbackStore


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(settings: Settings | None = None) -> AsyncIOMotorClient:
    settings = settings or get_settings()
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    return client


async def init_store(settings: Settings | None = None) -> PostbackStore:
    """Build the process-wide store once at startup."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        from app.store.memory import InMemoryStore
        return InMemoryStore()
    from app.store.mongo import MongoStore
    client = await init_db(settings)
    return MongoStore(client)
