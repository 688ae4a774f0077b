from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ai_gateway.config import Settings, get_settings
from ai_gateway.routes.admin import router as admin_router
from ai_gateway.routes.health import router as health_router
from ai_gateway.routes.llm import router as llm_router
from ai_gateway.services.circuit_breaker import CircuitBreakerService
from ai_gateway.services.fallback import FallbackService
from ai_gateway.services.gateway import AIGateway
from ai_gateway.services.housekeeping import HousekeepingService
from ai_gateway.services.metrics import MetricsService
from ai_gateway.services.provider_adaptor import EchoAdaptor, HTTPProviderAdaptor, ProviderAdaptor
from ai_gateway.services.provider_registry import ProviderRegistry, load_registry_file
from ai_gateway.services.rate_limiter import RateLimiterService
from ai_gateway.services.response_cache import ResponseCacheService
from ai_gateway.utils.logger import set_log_level, setup_logger

logger = setup_logger(__name__)


def build_adaptor(settings: Settings) -> ProviderAdaptor:
    if settings.ADAPTOR == "http":
        return HTTPProviderAdaptor(
            api_keys=settings.provider_api_keys(),
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
        )
    if settings.ADAPTOR != "echo":
        raise ValueError(f"Unknown adaptor {settings.ADAPTOR!r}, expected 'echo' or 'http'")
    return EchoAdaptor()


def build_gateway(settings: Settings, adaptor: Optional[ProviderAdaptor] = None) -> AIGateway:
    """Construct the gateway and its state stores from settings"""
    fallback_models = settings.FALLBACK_MODELS
    if settings.PROVIDERS_FILE:
        registry, file_fallback = load_registry_file(settings.PROVIDERS_FILE)
        fallback_models = file_fallback or fallback_models
    else:
        registry = ProviderRegistry()

    return AIGateway(
        registry=registry,
        adaptor=adaptor or build_adaptor(settings),
        rate_limiter=RateLimiterService(registry, window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS),
        circuit_breaker=CircuitBreakerService(
            failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
            cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS,
        ),
        cache=ResponseCacheService(
            default_ttl_seconds=settings.CACHE_TTL_SECONDS,
            max_entries=settings.CACHE_MAX_ENTRIES,
        ),
        metrics=MetricsService(),
        fallback=FallbackService(fallback_models),
        cache_ttl_seconds=settings.CACHE_TTL_SECONDS,
    )


def create_app(settings: Optional[Settings] = None, adaptor: Optional[ProviderAdaptor] = None) -> FastAPI:
    settings = settings or get_settings()
    set_log_level(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the gateway once, start background housekeeping, and tear both
        down on shutdown.
        """
        logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
        gateway = build_gateway(settings, adaptor)
        housekeeping = HousekeepingService(
            cache=gateway.cache,
            rate_limiter=gateway.rate_limiter,
            cache_sweep_interval=settings.CACHE_SWEEP_INTERVAL_SECONDS,
            rate_limit_sweep_interval=settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
        )
        app.state.gateway = gateway
        app.state.housekeeping = housekeeping
        housekeeping.start()

        try:
            yield
        finally:
            logger.info("Shutting down application")
            await housekeeping.stop()
            if isinstance(gateway.adaptor, HTTPProviderAdaptor):
                await gateway.adaptor.aclose()
            logger.info(f"Final gateway metrics: {gateway.metrics.collect_metrics()}")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.APP_DESCRIPTION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix="/api")
    app.include_router(llm_router, prefix="/api")
    app.include_router(admin_router, prefix="/api/admin")

    return app


def run():
    """Console entry point"""
    import uvicorn

    uvicorn.run("ai_gateway.main:create_app", factory=True, host="0.0.0.0", port=8000)
