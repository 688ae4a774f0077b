"""Shared fixtures: a controllable clock and an adaptor that records every call."""

from typing import Dict, Iterable, List, Optional, Sequence, Union

import pytest

from ai_gateway.services.data_structures import (
    AdapterResult,
    GenerationOptions,
    GenerationRequest,
    Provider,
    RequestMetadata,
)
from ai_gateway.services.exceptions import ProviderError
from ai_gateway.services.fallback import FallbackService
from ai_gateway.services.gateway import AIGateway
from ai_gateway.services.provider_adaptor import ProviderAdaptor
from ai_gateway.services.provider_registry import DEFAULT_FALLBACK_MODELS, ProviderRegistry
from ai_gateway.services.rate_limiter import estimate_tokens


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


StreamStep = Union[str, Exception]


class ScriptedAdaptor(ProviderAdaptor):
    """
    Answers "<model>: <prompt>" unless the model is listed in `failing`.
    `stream_scripts` maps a model to the exact deltas (or exceptions) to produce.
    """

    def __init__(
        self,
        failing: Iterable[str] = (),
        stream_scripts: Optional[Dict[str, Sequence[StreamStep]]] = None,
        content: Optional[str] = None,
        quality: Optional[float] = None,
    ):
        self.failing = set(failing)
        self.stream_scripts = dict(stream_scripts or {})
        self.content = content
        self.quality = quality
        self.calls: List[tuple] = []

    def calls_for(self, provider_name: str) -> List[str]:
        return [model for provider, model in self.calls if provider == provider_name]

    def _fail(self, provider: Provider, model: str):
        raise ProviderError(provider.name, Exception(f"{model} unavailable"))

    async def complete(self, provider, model, prompt, options) -> AdapterResult:
        self.calls.append((provider.name, model))
        if model in self.failing:
            self._fail(provider, model)
        content = self.content if self.content is not None else f"{model}: {prompt}"
        return AdapterResult(
            content=content,
            input_tokens=estimate_tokens(prompt),
            output_tokens=estimate_tokens(content),
            quality=self.quality,
        )

    async def stream(self, provider, model, prompt, options):
        self.calls.append((provider.name, model))
        script = self.stream_scripts.get(model)
        if script is None:
            if model in self.failing:
                self._fail(provider, model)
            script = [f"{model}:", " ", prompt]
        for step in script:
            if isinstance(step, Exception):
                raise step
            yield step


def make_request(
    prompt: str = "Explain rate limiting",
    model: str = "gpt-4",
    request_id: Optional[str] = None,
    **options,
) -> GenerationRequest:
    return GenerationRequest(
        model=model,
        prompt=prompt,
        options=GenerationOptions(**options),
        metadata=RequestMetadata(request_id=request_id),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return ProviderRegistry()


@pytest.fixture
def small_registry():
    """Two providers with tiny limits so windows fill up quickly"""
    return ProviderRegistry([
        Provider(name="alpha", models=("a-1", "a-2"), requests_per_minute=2, tokens_per_minute=100,
                 input_cost_per_1k=1.0, output_cost_per_1k=2.0),
        Provider(name="beta", models=("b-1",), requests_per_minute=10, tokens_per_minute=10000),
    ])


@pytest.fixture
def adaptor():
    return ScriptedAdaptor()


@pytest.fixture
def make_gateway(clock, registry):
    def _make(adaptor=None, registry_override=None, fallback_models=DEFAULT_FALLBACK_MODELS):
        return AIGateway(
            registry=registry_override or registry,
            adaptor=adaptor or ScriptedAdaptor(),
            fallback=FallbackService(fallback_models),
            clock=clock,
        )

    return _make
