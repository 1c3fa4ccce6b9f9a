"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    RouteGuardMiddleware,
    TenantRoutingMiddleware,
)
from storefront.api.routes.stores import router as stores_router
from storefront.api.routes.tenant import router as tenant_router
from storefront.auth.session import SessionAuthenticator
from storefront.cache import TTLCache
from storefront.config import RateLimitBackend, Settings, settings
from storefront.logging_config import configure_logging
from storefront.ratelimit.limiter import LayeredRateLimiter
from storefront.ratelimit.store import CounterStore, InMemoryCounterStore, RedisCounterStore
from storefront.storage.config_source import SQLTenantConfigSource
from storefront.storage.database import async_session, engine
from storefront.storage.shards import ShardRouter, shard_name
from storefront.tenancy.classifier import TenantClassifier
from storefront.tenancy.resolver import (
    CachedTenantConfigSource,
    TenantConfig,
    TenantContextResolver,
)

logger = structlog.get_logger()

CLEANUP_INTERVAL_SECONDS = 300
HEALTH_CHECK_TIMEOUT = 5.0


def build_classifier(s: Settings) -> TenantClassifier:
    return TenantClassifier(
        base_domain=s.base_domain,
        reserved_subdomains=s.reserved_subdomains,
        reserved_routes=s.reserved_routes,
    )


def build_shard_router(s: Settings) -> tuple[ShardRouter, list[AsyncEngine]]:
    """Primary database is shard-1; extra shard URLs follow in order."""
    factories: dict[str, async_sessionmaker[AsyncSession]] = {shard_name(0): async_session}
    extra_engines: list[AsyncEngine] = []
    for i, url in enumerate(s.shard_database_urls, start=1):
        shard_engine = create_async_engine(url, pool_size=5, max_overflow=10)
        extra_engines.append(shard_engine)
        factories[shard_name(i)] = async_sessionmaker(
            shard_engine, class_=AsyncSession, expire_on_commit=False
        )
    return ShardRouter(factories, default=shard_name(0)), extra_engines


async def _cleanup_loop(store: InMemoryCounterStore) -> None:
    """Periodic cleanup of expired rate limit counters."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        try:
            cleaned = await asyncio.to_thread(store.cleanup)
            if cleaned:
                logger.debug("rate_limiter_cleanup", keys_removed=cleaned)
        except Exception:
            logger.exception("rate_limiter_cleanup_error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Build shard router, cached tenant config source and resolver.
        - Build the counter store (Redis or in-process) and rate limiter.
        - Build the session authenticator.
    Shutdown:
        - Cancel cleanup task, close Redis, dispose database engines.
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )
    classifier = build_classifier(settings)
    shard_router, extra_engines = build_shard_router(settings)
    config_cache: TTLCache[TenantConfig] = TTLCache(settings.tenant_cache_ttl)
    config_source = CachedTenantConfigSource(
        SQLTenantConfigSource(shard_router, classifier), config_cache
    )

    app.state.classifier = classifier
    app.state.shard_router = shard_router
    app.state.tenant_config_source = config_source
    app.state.tenant_resolver = TenantContextResolver(
        config_source, timeout=settings.tenant_resolution_timeout
    )
    app.state.authenticator = SessionAuthenticator(
        settings.jwt_secret.get_secret_value(), settings.jwt_algorithm
    )

    redis: Redis | None = None
    cleanup_task: asyncio.Task[None] | None = None
    counter_store: CounterStore
    if settings.rate_limit_backend == RateLimitBackend.REDIS:
        redis = Redis.from_url(settings.redis_url)
        counter_store = RedisCounterStore(redis)
    else:
        memory_store = InMemoryCounterStore()
        cleanup_task = asyncio.create_task(_cleanup_loop(memory_store))
        counter_store = memory_store
    app.state.redis = redis
    app.state.rate_limiter = LayeredRateLimiter(
        counter_store, timeout=settings.counter_store_timeout
    )

    logger.info(
        "app_started",
        environment=str(settings.environment),
        rate_limit_backend=str(settings.rate_limit_backend),
        shards=shard_router.shard_names,
    )
    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
    if redis is not None:
        await redis.aclose()
    for extra in extra_engines:
        await extra.dispose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="Storefront",
    description="Multi-tenant storefront platform edge",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

# Last added runs first: CORS -> logging -> tenant routing -> rate limiting -> guard
app.add_middleware(RouteGuardMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(TenantRoutingMiddleware, classifier=build_classifier(settings))
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies every database shard and Redis."""
    checks: dict[str, str] = {}
    overall = "ok"

    try:
        shard_checks = await app.state.shard_router.health_check()
    except Exception as e:
        logger.error("health_check_db_unexpected", error=str(e), exc_info=True)
        shard_checks = {"db": f"error: {type(e).__name__}"}
    checks.update(shard_checks)
    if any(status != "ok" for status in shard_checks.values()):
        overall = "degraded"

    redis: Redis | None = getattr(app.state, "redis", None)
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await asyncio.wait_for(redis.ping(), timeout=HEALTH_CHECK_TIMEOUT)
            checks["redis"] = "ok"
        except (TimeoutError, RedisError, OSError) as e:
            logger.warning("health_check_redis_error", error=type(e).__name__)
            checks["redis"] = f"error: {type(e).__name__}"
            overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(tenant_router)
app.include_router(tenant_router, prefix="/{store}")
app.include_router(stores_router)
