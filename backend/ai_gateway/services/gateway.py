"""
AI Gateway Service
Fallback router over interchangeable providers with per-provider circuit
breakers, rate limiting, response caching and streaming delivery.

One AIGateway instance owns all mutable state. Every read-modify-write on
that state happens between awaits, so on a single event loop admission,
charging and breaker transitions need no locks.
"""

import asyncio
import time
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ai_gateway.services.circuit_breaker import CircuitBreakerService
from ai_gateway.services.data_structures import (
    AdapterResult,
    GenerationRequest,
    GenerationResponse,
    Provider,
    ResponseMetadata,
    StreamChunk,
    Usage,
    generate_request_id,
)
from ai_gateway.services.exceptions import (
    AllProvidersFailedError,
    InvalidRequestError,
    NoProviderAvailableError,
)
from ai_gateway.services.fallback import FallbackService
from ai_gateway.services.metrics import GatewayEvent, MetricsService
from ai_gateway.services.provider_adaptor import ProviderAdaptor
from ai_gateway.services.provider_registry import ProviderRegistry, calculate_cost
from ai_gateway.services.rate_limiter import RateLimiterService, estimate_tokens
from ai_gateway.services.response_cache import ResponseCacheService, fingerprint
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class AIGateway:
    """
    Unified entry point: process() returns one completed response, stream()
    yields incremental chunks. Both walk the same candidate chain and stop at
    the first candidate that succeeds.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        adaptor: ProviderAdaptor,
        rate_limiter: Optional[RateLimiterService] = None,
        circuit_breaker: Optional[CircuitBreakerService] = None,
        cache: Optional[ResponseCacheService] = None,
        metrics: Optional[MetricsService] = None,
        fallback: Optional[FallbackService] = None,
        cache_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.adaptor = adaptor
        self.rate_limiter = rate_limiter or RateLimiterService(registry, clock=clock)
        self.circuit_breaker = circuit_breaker or CircuitBreakerService(clock=clock)
        self.cache = cache or ResponseCacheService(default_ttl_seconds=cache_ttl_seconds, clock=clock)
        self.metrics = metrics or MetricsService()
        self.fallback = fallback or FallbackService()
        self.cache_ttl_seconds = cache_ttl_seconds

        logger.info(
            f"AI Gateway initialized with {len(registry)} providers, "
            f"fallback chain {self.fallback.get_fallback_queue()}"
        )

    async def process(self, request: GenerationRequest) -> GenerationResponse:
        """
        Serve a request from cache or from the first candidate that succeeds.

        Raises:
            InvalidRequestError: empty prompt or no resolvable provider
            NoProviderAvailableError: every candidate was skipped
            AllProvidersFailedError: every invoked candidate failed
        """
        request_id = request.metadata.request_id or generate_request_id()
        start_time = time.perf_counter()
        self.metrics.record_request()

        chain = self._resolve_chain(request)

        # requests flagged for streaming never touch the cache
        use_cache = not request.options.stream
        cache_key = fingerprint(request.model, request.prompt, request.options) if use_cache else None
        cached = self.cache.lookup(cache_key) if use_cache else None
        if cached is not None:
            self.metrics.emit(GatewayEvent.CACHE_HIT, {"request_id": request_id, "model": request.model})
            logger.info(f"Cache hit for {request.model} (request: {request_id})")
            return replace(
                cached,
                metadata=replace(
                    cached.metadata,
                    request_id=request_id,
                    processing_time_ms=(time.perf_counter() - start_time) * 1000,
                    cached=True,
                ),
            )

        estimated = estimate_tokens(request.prompt)
        attempted: List[str] = []
        last_error: Optional[Exception] = None

        for model in chain:
            provider = self._admit(model, estimated, request_id)
            if provider is None:
                continue

            attempted.append(model)
            try:
                result = await self.adaptor.complete(provider, model, request.prompt, request.options)
            except asyncio.CancelledError:
                self.rate_limiter.release(provider.name, estimated)
                raise
            except Exception as e:
                last_error = e
                self._record_failure(provider, model, e, estimated, request_id)
                continue

            response = self._build_response(provider, model, result, request_id, start_time)
            self.circuit_breaker.record_success(provider.name)
            self.rate_limiter.charge(provider.name, response.usage.total_tokens, estimated)
            if use_cache:
                self.cache.store(cache_key, response, self.cache_ttl_seconds)

            self.metrics.emit(GatewayEvent.REQUEST_SUCCESS, {
                "request_id": request_id,
                "provider": provider.name,
                "model": model,
                "processing_time_ms": response.metadata.processing_time_ms,
                "cost": response.cost,
            })
            logger.info(
                f"Request {request_id} served by {provider.name}/{model} "
                f"in {response.metadata.processing_time_ms:.1f}ms"
            )
            return response

        raise self._exhausted(request_id, last_error, attempted)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """
        Yield chunks from the first candidate that accepts the request.

        A candidate failing before its first chunk is skipped like in process().
        A candidate failing after chunks were delivered ends the stream there:
        the partial output stands, no other candidate is tried, no error is raised.
        Streaming responses are never cached.
        """
        request_id = request.metadata.request_id or generate_request_id()
        self.metrics.record_request()

        chain = self._resolve_chain(request)
        estimated = estimate_tokens(request.prompt)
        attempted: List[str] = []
        last_error: Optional[Exception] = None

        for model in chain:
            provider = self._admit(model, estimated, request_id)
            if provider is None:
                continue

            attempted.append(model)
            start_time = time.perf_counter()
            fragments = self.adaptor.stream(provider, model, request.prompt, request.options)
            content = ""
            delivered = 0
            settled = False

            try:
                try:
                    async for delta in fragments:
                        if not delta:
                            continue
                        content += delta
                        delivered += 1
                        yield StreamChunk(
                            content=content,
                            delta=delta,
                            finished=False,
                            tokens=estimate_tokens(content),
                            model=model,
                            provider=provider.name,
                            request_id=request_id,
                        )
                except Exception as e:
                    settled = True
                    self._record_failure(provider, model, e, estimated, request_id)
                    if delivered:
                        logger.warning(
                            f"Stream from {provider.name}/{model} failed after {delivered} chunks, "
                            f"ending without fallback (request: {request_id})"
                        )
                        return
                    last_error = e
                    continue

                settled = True
                output_tokens = estimate_tokens(content)
                self.circuit_breaker.record_success(provider.name)
                self.rate_limiter.charge(provider.name, estimated + output_tokens, estimated)
                processing_time_ms = (time.perf_counter() - start_time) * 1000
                self.metrics.emit(GatewayEvent.REQUEST_SUCCESS, {
                    "request_id": request_id,
                    "provider": provider.name,
                    "model": model,
                    "processing_time_ms": processing_time_ms,
                    "cost": calculate_cost(provider, estimated, output_tokens),
                })
                logger.info(f"Stream {request_id} completed by {provider.name}/{model} ({delivered} chunks)")

                yield StreamChunk(
                    content=content,
                    delta="",
                    finished=True,
                    tokens=output_tokens,
                    model=model,
                    provider=provider.name,
                    request_id=request_id,
                )
                return
            finally:
                # consumer stopped early: nothing is recorded against the provider
                if not settled:
                    self.rate_limiter.release(provider.name, estimated)
                aclose = getattr(fragments, "aclose", None)
                if aclose is not None:
                    await aclose()

        raise self._exhausted(request_id, last_error, attempted)

    def _resolve_chain(self, request: GenerationRequest) -> List[str]:
        """Validate the request and build its candidate chain"""
        if not request.model:
            raise InvalidRequestError("Model is required")
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequestError("Prompt must not be empty")

        chain = self.fallback.build_chain(request.model)
        if not any(self.registry.provider_for_model(model) for model in chain):
            raise InvalidRequestError(f"Unknown model {request.model} and no resolvable fallback provider")
        return chain

    def _admit(self, model: str, estimated: int, request_id: str) -> Optional[Provider]:
        """Return the candidate's provider if it may be called now, None to skip it"""
        provider = self.registry.provider_for_model(model)
        if provider is None:
            logger.warning(f"No provider for model {model}, skipping (request: {request_id})")
            return None

        if self.circuit_breaker.is_open(provider.name):
            logger.warning(f"Circuit breaker open for {provider.name}, skipping {model} (request: {request_id})")
            return None

        if not self.rate_limiter.admit(provider.name, estimated):
            logger.warning(f"Rate limit exceeded for {provider.name}, skipping {model} (request: {request_id})")
            return None

        return provider

    def _record_failure(self, provider: Provider, model: str, error: Exception, estimated: int, request_id: str):
        self.circuit_breaker.record_failure(provider.name)
        self.rate_limiter.release(provider.name, estimated)
        self.metrics.emit(GatewayEvent.REQUEST_ERROR, {
            "request_id": request_id,
            "provider": provider.name,
            "model": model,
            "error": str(error),
        })
        logger.error(f"AI request failed for {provider.name}/{model}: {str(error)} (request: {request_id})")

    def _exhausted(self, request_id: str, last_error: Optional[Exception], attempted: List[str]) -> Exception:
        self.metrics.record_exhausted()
        if last_error is None:
            logger.error(f"No provider available for request {request_id}")
            return NoProviderAvailableError(request_id)
        logger.error(f"All candidates failed for request {request_id}: {attempted}")
        return AllProvidersFailedError(last_error, attempted)

    def _build_response(
        self,
        provider: Provider,
        model: str,
        result: AdapterResult,
        request_id: str,
        start_time: float,
    ) -> GenerationResponse:
        usage = Usage(input_tokens=max(0, result.input_tokens), output_tokens=max(0, result.output_tokens))

        if result.quality is not None:
            quality = min(1.0, max(0.0, result.quality))
        else:
            quality = 1.0 if result.content.strip() else 0.0

        return GenerationResponse(
            content=result.content,
            model=model,
            provider=provider.name,
            usage=usage,
            cost=calculate_cost(provider, usage.input_tokens, usage.output_tokens),
            metadata=ResponseMetadata(
                request_id=request_id,
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                quality=quality,
                cached=False,
            ),
        )

    def get_available_models(self) -> List[Dict[str, Any]]:
        """Every registered model with its provider and breaker availability"""
        return [
            {
                "model": model,
                "provider": provider.name,
                "available": not self.circuit_breaker.is_open(provider.name),
            }
            for provider in self.registry.providers()
            for model in provider.models
        ]

    def get_provider_stats(self) -> Dict[str, Dict[str, Any]]:
        """Rate-limit window, breaker state and pricing per provider"""
        stats = {}
        for provider in self.registry.providers():
            window = self.rate_limiter.get_window(provider.name)
            breaker = self.circuit_breaker.get_status(provider.name)
            stats[provider.name] = {
                **provider.to_dict(),
                "window": window.to_dict() if window else {"requests": 0, "tokens": 0, "reset_at": None, "in_flight": 0},
                "circuit_breaker": breaker.to_dict() if breaker else {"failures": 0, "is_open": False, "last_failure": None},
            }
        return stats
