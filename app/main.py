import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_id, configure_logging, get_logger
from app.db.init import init_store
from app.routers import internal, postbacks
from app.services.postbacks import PostbackDispatcher
from app.services.providers import build_providers
from app.store.base import PostbackStore

log = get_logger(__name__)


def create_app(settings: Settings | None = None, store: PostbackStore | None = None) -> FastAPI:
    """
    Build the app. Provider config is validated here, so a missing shared secret
    fails the process at startup. Pass store to skip connecting to MongoDB.
    """
    settings = settings or get_settings()
    configure_logging(debug=settings.debug)
    providers = build_providers(settings)

    app = FastAPI(
        title="Offerwall Postbacks API",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.providers = providers
    if store is not None:
        app.state.store = store
        app.state.dispatcher = PostbackDispatcher(store, providers)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_id(request_id)
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        log.info(
            "request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Routers
    app.include_router(postbacks.router, prefix="/v1/postbacks", tags=["postbacks"])
    app.include_router(internal.router, prefix="/v1/internal", tags=["internal"])

    @app.on_event("startup")
    async def startup():
        if settings.sentry_dsn:
            import sentry_sdk
            sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
            log.info("startup", msg="Sentry enabled")
        if getattr(app.state, "store", None) is None:
            app.state.store = await init_store(settings)
            app.state.dispatcher = PostbackDispatcher(app.state.store, providers)
            log.info("startup", msg="Store connected", backend=settings.store_backend)
        log.info("startup", providers=sorted(providers))

    @app.on_event("shutdown")
    async def shutdown():
        store = getattr(app.state, "store", None)
        if store is not None:
            await store.close()

    @app.get("/health")
    async def health():
        """Health check for load balancers and monitoring."""
        return {"status": "ok"}

    @app.get("/health/ready")
    async def ready():
        """Store reachability and provider configuration, without secret values."""
        checks: dict = {"status": "ok", "environment": settings.env}
        try:
            await app.state.store.ping()
            checks["store"] = "connected"
        except Exception as e:
            log.warning("store_ping_failed", error=str(e))
            checks["store"] = f"error: {e}"
            checks["status"] = "degraded"
        checks["providers"] = {
            name: {
                "secret": "set" if cfg.secret else "missing",
                "points_per_unit": str(cfg.points_per_unit),
                "scheme": cfg.scheme.value,
            }
            for name, cfg in providers.items()
        }
        return checks

    return app


app = create_app()
