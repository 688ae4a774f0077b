"""
ProviderAdaptor Module
Uniform async interface over upstream providers: one completed result, or a
stream of raw text deltas. The gateway never sees wire protocols, keys or retries.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

import httpx

from ai_gateway.services.data_structures import AdapterResult, GenerationOptions, Provider
from ai_gateway.services.exceptions import ProviderError, RateLimitError
from ai_gateway.services.rate_limiter import estimate_tokens
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class ProviderAdaptor(ABC):
    """
    Adapter boundary between the gateway and an upstream provider.
    - complete(): perform the call, return content and usage counts
    - stream(): yield raw text deltas as they arrive
    Failures surface as a single exception; classify_error() normalizes them.
    """

    @abstractmethod
    async def complete(
        self,
        provider: Provider,
        model: str,
        prompt: str,
        options: GenerationOptions,
    ) -> AdapterResult:
        pass

    async def stream(
        self,
        provider: Provider,
        model: str,
        prompt: str,
        options: GenerationOptions,
    ) -> AsyncIterator[str]:
        """Adaptors without incremental delivery produce one delta"""
        result = await self.complete(provider, model, prompt, options)
        yield result.content

    def classify_error(self, error: Exception, provider: str) -> ProviderError:
        """Classify provider errors into the gateway's exception types"""
        if isinstance(error, ProviderError):
            return error

        if isinstance(error, httpx.HTTPStatusError):
            if error.response.status_code == 429:
                retry_after = error.response.headers.get("retry-after")
                return RateLimitError(
                    provider, int(retry_after) if retry_after and retry_after.isdigit() else None
                )
            return ProviderError(
                provider, Exception(f"HTTP {error.response.status_code}: {error.response.text[:200]}")
            )

        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return ProviderError(provider, asyncio.TimeoutError("Provider timeout"))

        if isinstance(error, httpx.TransportError):
            return ProviderError(provider, ConnectionError(f"Provider connection failed: {error}"))

        logger.warning(f"Unknown error type for {provider}, treating as ProviderError: {type(error).__name__}")
        return ProviderError(provider, error)


class EchoAdaptor(ProviderAdaptor):
    """
    Deterministic development adaptor; no network.
    Answers with a fixed sentence naming the model and quoting the prompt.
    """

    def _render(self, provider: Provider, model: str, prompt: str) -> str:
        excerpt = prompt[:60] + ("..." if len(prompt) > 60 else "")
        return f"[{model} via {provider.name}] Response to: {excerpt}"

    async def complete(self, provider, model, prompt, options) -> AdapterResult:
        content = self._render(provider, model, prompt)
        if options.max_tokens is not None:
            content = content[: options.max_tokens * 4]
        return AdapterResult(
            content=content,
            input_tokens=estimate_tokens(prompt),
            output_tokens=estimate_tokens(content),
        )

    async def stream(self, provider, model, prompt, options) -> AsyncIterator[str]:
        result = await self.complete(provider, model, prompt, options)
        for i, word in enumerate(result.content.split(" ")):
            yield word if i == 0 else f" {word}"


class HTTPProviderAdaptor(ProviderAdaptor):
    """
    OpenAI-compatible chat completions over httpx.
    Each provider's base_url must expose POST {base_url}/chat/completions.
    """

    def __init__(
        self,
        api_keys: Dict[str, Optional[str]],
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_keys = api_keys
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self):
        await self.client.aclose()

    def _build_payload(self, model: str, prompt: str, options: GenerationOptions, stream: bool) -> Dict:
        messages: List[Dict[str, str]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {"model": model, "messages": messages, "stream": stream}
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        return payload

    def _endpoint(self, provider: Provider) -> str:
        if not provider.base_url:
            raise ProviderError(provider.name, ValueError("no base_url configured"))
        return f"{provider.base_url.rstrip('/')}/chat/completions"

    def _headers(self, provider: Provider) -> Dict[str, str]:
        api_key = self.api_keys.get(provider.name)
        if not api_key:
            raise ProviderError(provider.name, ValueError("no API key configured"))
        return {"Authorization": f"Bearer {api_key}"}

    async def complete(self, provider, model, prompt, options) -> AdapterResult:
        try:
            response = await self.client.post(
                self._endpoint(provider),
                headers=self._headers(provider),
                json=self._build_payload(model, prompt, options, stream=False),
            )
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
            usage = data.get("usage") or {}
            input_tokens = int(usage.get("prompt_tokens", estimate_tokens(prompt)))
            output_tokens = int(usage.get("completion_tokens", estimate_tokens(content)))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(provider.name, Exception(f"Malformed upstream response: {e}")) from e
        except Exception as e:
            raise self.classify_error(e, provider.name) from e

        return AdapterResult(content=content, input_tokens=input_tokens, output_tokens=output_tokens)

    async def stream(self, provider, model, prompt, options) -> AsyncIterator[str]:
        try:
            async with self.client.stream(
                "POST",
                self._endpoint(provider),
                headers=self._headers(provider),
                json=self._build_payload(model, prompt, options, stream=True),
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        return
                    choices = json.loads(data).get("choices") or []
                    if not choices:
                        continue
                    delta = (choices[0].get("delta") or {}).get("content")
                    if delta:
                        yield delta
        except ProviderError:
            raise
        except Exception as e:
            raise self.classify_error(e, provider.name) from e
