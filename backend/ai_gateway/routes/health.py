from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ai_gateway.routes.llm import get_gateway
from ai_gateway.schemas.llm import HealthStatus
from ai_gateway.services.gateway import AIGateway
from ai_gateway.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)


@router.get("/health", tags=["Health"], response_model=HealthStatus)
async def health_check(request: Request, gateway: AIGateway = Depends(get_gateway)):
    """
    Health endpoint: breaker state per provider, cache size, housekeeping state.
    Degraded when every provider's breaker is open.
    """
    logger.debug("Health check endpoint called")

    providers = {
        provider.name: "open" if gateway.circuit_breaker.is_open(provider.name) else "closed"
        for provider in gateway.registry.providers()
    }
    housekeeping = getattr(request.app.state, "housekeeping", None)

    return HealthStatus(
        status="degraded" if providers and all(s == "open" for s in providers.values()) else "ok",
        providers=providers,
        cache_entries=len(gateway.cache),
        housekeeping_running=bool(housekeeping and housekeeping.is_running),
    )


@router.get("/metrics", tags=["Health"])
async def metrics(gateway: AIGateway = Depends(get_gateway)):
    """Gateway counters plus cache statistics"""
    return {
        **gateway.metrics.collect_metrics(),
        "cache": gateway.cache.get_stats(),
    }


@router.get("/metrics/prometheus", tags=["Health"], response_class=PlainTextResponse)
async def metrics_prometheus(gateway: AIGateway = Depends(get_gateway)):
    """Prometheus exposition format metrics"""
    metrics_data = gateway.metrics.collect_metrics()
    return gateway.metrics.format_prometheus_metrics(metrics_data)
