"""
Administrative Routes
Provider statistics, circuit breaker reset and cache management.
"""

from fastapi import APIRouter, Depends, HTTPException, Path

from ai_gateway.routes.llm import get_gateway
from ai_gateway.services.gateway import AIGateway
from ai_gateway.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)


@router.get("/providers", tags=["Provider Safety"])
async def get_provider_stats(gateway: AIGateway = Depends(get_gateway)):
    """Rate-limit window, circuit breaker and pricing for every provider"""
    return {"providers": gateway.get_provider_stats()}


@router.post("/providers/{provider_name}/reset", tags=["Provider Safety"])
async def reset_provider_circuit_breaker(
    provider_name: str = Path(..., description="The provider name to reset"),
    gateway: AIGateway = Depends(get_gateway),
):
    """Close a provider's circuit breaker and clear its failure count"""
    logger.info(f"Reset circuit breaker endpoint called for provider: {provider_name}")

    if provider_name not in gateway.registry:
        raise HTTPException(status_code=404, detail=f"Unknown provider {provider_name}")

    gateway.circuit_breaker.reset_circuit_breaker(provider_name)
    return {"provider": provider_name, "status": "closed"}


@router.delete("/cache", tags=["Admin"])
async def clear_cache(gateway: AIGateway = Depends(get_gateway)):
    """Drop every cached response"""
    entries = len(gateway.cache)
    gateway.cache.clear()
    return {"cleared": entries}
