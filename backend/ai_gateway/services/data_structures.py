"""
Data structures for the AI gateway
Defines providers, generation requests/responses, stream chunks and the
per-provider state kept by the rate limiter, circuit breaker and cache.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Tuple


def generate_request_id() -> str:
    """Build a correlation id of the form req_<epoch-ms>_<9 hex chars>"""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class Provider:
    """Static description of an upstream provider"""
    name: str
    models: Tuple[str, ...]
    requests_per_minute: int
    tokens_per_minute: int
    input_cost_per_1k: float = 0.0
    output_cost_per_1k: float = 0.0
    base_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "models": list(self.models),
            "rate_limit": {
                "requests_per_minute": self.requests_per_minute,
                "tokens_per_minute": self.tokens_per_minute,
            },
            "pricing": {
                "input_cost_per_1k": self.input_cost_per_1k,
                "output_cost_per_1k": self.output_cost_per_1k,
            },
        }


@dataclass(frozen=True)
class GenerationOptions:
    """Optional generation parameters; part of the cache fingerprint"""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    stream: bool = False
    system_prompt: Optional[str] = None
    context: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RequestMetadata:
    """Correlation metadata supplied by the caller"""
    user_id: Optional[str] = None
    module_id: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    options: GenerationOptions = field(default_factory=GenerationOptions)
    metadata: RequestMetadata = field(default_factory=RequestMetadata)


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ResponseMetadata:
    request_id: str
    processing_time_ms: float = 0.0
    quality: float = 0.0
    cached: bool = False


@dataclass(frozen=True)
class GenerationResponse:
    """Completed generation; model/provider are the ones that actually served it"""
    content: str
    model: str
    provider: str
    usage: Usage
    cost: float
    metadata: ResponseMetadata

    @property
    def cached(self) -> bool:
        return self.metadata.cached

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "usage": {**self.usage.to_dict(), "cost": round(self.cost, 6)},
            "metadata": {
                "request_id": self.metadata.request_id,
                "processing_time_ms": round(self.metadata.processing_time_ms, 2),
                "quality": self.metadata.quality,
                "cached": self.metadata.cached,
            },
        }


@dataclass(frozen=True)
class StreamChunk:
    """Incremental fragment delivered by the streaming path"""
    content: str
    delta: str
    finished: bool
    tokens: int
    model: str
    provider: str
    request_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdapterResult:
    """What an adaptor returns for a completed upstream call"""
    content: str
    input_tokens: int
    output_tokens: int
    quality: Optional[float] = None


@dataclass
class RateLimitWindow:
    """Single rolling window of consumption for one provider"""
    requests: int
    tokens: int
    reset_at: float
    reserved_requests: int = 0
    reserved_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requests": self.requests,
            "tokens": self.tokens,
            "reset_at": self.reset_at,
            "in_flight": self.reserved_requests,
        }


@dataclass
class CircuitBreakerStatus:
    failure_count: int = 0
    last_failure_time: Optional[float] = None
    is_open: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failures": self.failure_count,
            "is_open": self.is_open,
            "last_failure": self.last_failure_time,
        }


@dataclass
class CacheEntry:
    response: GenerationResponse
    stored_at: float
    ttl_seconds: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds
