"""
Custom exceptions for the AI gateway
Separates caller errors, chain exhaustion and upstream provider errors.
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors"""
    pass


class InvalidRequestError(GatewayError):
    """Request rejected before any candidate was attempted"""
    pass


class UnknownProviderError(GatewayError):
    """Raised when a provider name is not in the registry"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unknown provider {provider}")


class ChainExhaustedError(GatewayError):
    """Every candidate in the fallback chain was skipped or failed"""

    def __init__(self, message: str, attempted_models: Optional[list] = None):
        self.attempted_models = attempted_models or []
        super().__init__(message)


class NoProviderAvailableError(ChainExhaustedError):
    """All candidates were skipped (breaker open, rate limited or unknown)"""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"No provider available for request {request_id}")


class AllProvidersFailedError(ChainExhaustedError):
    """At least one candidate was invoked and none succeeded"""

    def __init__(self, last_error: Exception, attempted_models: list):
        self.last_error = last_error
        super().__init__(
            f"All AI models failed. Last error: {last_error}",
            attempted_models=attempted_models,
        )


class ProviderError(GatewayError):
    """General provider error (network, API, malformed response, etc.)"""

    def __init__(self, provider: str, original_error: Exception):
        self.provider = provider
        self.original_error = original_error
        super().__init__(f"Provider {provider} error: {str(original_error)}")


class RateLimitError(ProviderError):
    """Upstream answered HTTP 429"""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(provider, Exception("rate limit exceeded (HTTP 429)"))
