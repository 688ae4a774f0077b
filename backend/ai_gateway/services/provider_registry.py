"""
Provider Registry
Static table of known providers: supported models, per-minute limits and pricing.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ai_gateway.services.data_structures import Provider
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


DEFAULT_PROVIDERS: Tuple[Provider, ...] = (
    Provider(
        name="openai",
        models=("gpt-4", "gpt-4-turbo", "gpt-3.5-turbo"),
        requests_per_minute=500,
        tokens_per_minute=150000,
        input_cost_per_1k=0.03,
        output_cost_per_1k=0.06,
        base_url="https://api.openai.com/v1",
    ),
    Provider(
        name="anthropic",
        models=("claude-3", "claude-3-sonnet", "claude-3-haiku"),
        requests_per_minute=300,
        tokens_per_minute=100000,
        input_cost_per_1k=0.025,
        output_cost_per_1k=0.075,
        base_url="https://api.anthropic.com/v1",
    ),
    Provider(
        name="google",
        models=("gemini-pro", "gemini-pro-vision"),
        requests_per_minute=200,
        tokens_per_minute=80000,
        input_cost_per_1k=0.0005,
        output_cost_per_1k=0.0015,
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
    ),
    Provider(
        name="mistral",
        models=("mistral-large", "mistral-medium", "mistral-small"),
        requests_per_minute=100,
        tokens_per_minute=50000,
        input_cost_per_1k=0.008,
        output_cost_per_1k=0.024,
        base_url="https://api.mistral.ai/v1",
    ),
)

# Hand-curated flagship models from different providers
DEFAULT_FALLBACK_MODELS: Tuple[str, ...] = ("gpt-4", "claude-3", "gpt-3.5-turbo", "gemini-pro")


class ProviderRegistry:
    """
    Immutable lookup table of providers.
    A model belongs to exactly one provider.
    """

    def __init__(self, providers: Iterable[Provider] = DEFAULT_PROVIDERS):
        self._providers: Dict[str, Provider] = {}
        self._model_index: Dict[str, str] = {}

        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate provider {provider.name}")
            for model in provider.models:
                owner = self._model_index.get(model)
                if owner is not None:
                    raise ValueError(
                        f"Model {model} claimed by both {owner} and {provider.name}"
                    )
                self._model_index[model] = provider.name
            self._providers[provider.name] = provider

        logger.info(f"Provider registry initialized with {len(self._providers)} providers")

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, name: str) -> Optional[Provider]:
        return self._providers.get(name)

    def provider_for_model(self, model: str) -> Optional[Provider]:
        """Resolve the provider owning a model, None if unknown"""
        name = self._model_index.get(model)
        if name is None:
            return None
        return self._providers[name]

    def providers(self) -> List[Provider]:
        return list(self._providers.values())

    def models(self) -> List[str]:
        return list(self._model_index)


def calculate_cost(provider: Provider, input_tokens: int, output_tokens: int) -> float:
    """Monetary cost from per-1000-token pricing"""
    return (
        input_tokens * provider.input_cost_per_1k
        + output_tokens * provider.output_cost_per_1k
    ) / 1000


def load_registry_file(path: str) -> Tuple[ProviderRegistry, Optional[List[str]]]:
    """
    Load providers (and optionally the fallback sequence) from a JSON file:

        {"providers": [{"name": ..., "models": [...], "requests_per_minute": ...,
                        "tokens_per_minute": ..., "input_cost_per_1k": ...,
                        "output_cost_per_1k": ..., "base_url": ...}],
         "fallback_models": ["gpt-4", ...]}
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))

    providers = []
    for entry in data.get("providers", []):
        try:
            providers.append(Provider(
                name=entry["name"],
                models=tuple(entry["models"]),
                requests_per_minute=int(entry["requests_per_minute"]),
                tokens_per_minute=int(entry["tokens_per_minute"]),
                input_cost_per_1k=float(entry.get("input_cost_per_1k", 0.0)),
                output_cost_per_1k=float(entry.get("output_cost_per_1k", 0.0)),
                base_url=entry.get("base_url"),
            ))
        except KeyError as e:
            raise ValueError(f"Provider entry in {path} is missing field {e}") from e

    if not providers:
        raise ValueError(f"No providers defined in {path}")

    logger.info(f"Loaded {len(providers)} providers from {path}")
    return ProviderRegistry(providers), data.get("fallback_models")
