"""
Rate Limiter Service
Per-provider rolling window of requests and tokens, checked before every upstream call.
"""

import math
import time
from typing import Callable, Dict, Optional

from ai_gateway.services.data_structures import RateLimitWindow
from ai_gateway.services.exceptions import UnknownProviderError
from ai_gateway.services.provider_registry import ProviderRegistry
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough estimation: 1 token ~ 4 characters"""
    return math.ceil(len(text) / 4)


class RateLimiterService:
    """
    Single rolling window per provider, reset every `window_seconds`.
    Not a sliding log: a burst right after a reset is admitted immediately.

    admit() reserves one in-flight request plus its estimated tokens, so two
    requests in flight at the same time cannot both take the last unit of
    headroom. charge() turns the reservation into consumption, release()
    drops it when the call failed.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.window_seconds = window_seconds
        self.clock = clock
        self.windows: Dict[str, RateLimitWindow] = {}

    def _fresh_window(self, now: float) -> RateLimitWindow:
        return RateLimitWindow(requests=0, tokens=0, reset_at=now + self.window_seconds)

    def _current_window(self, provider: str) -> RateLimitWindow:
        """Return the live window, lazily reinitializing an expired one"""
        now = self.clock()
        window = self.windows.get(provider)
        if window is None or now >= window.reset_at:
            window = self._fresh_window(now)
            self.windows[provider] = window
        return window

    def admit(self, provider: str, estimated_tokens: int) -> bool:
        """Decide whether a prospective call to `provider` may proceed"""
        config = self.registry.get(provider)
        if config is None:
            raise UnknownProviderError(provider)

        now = self.clock()
        window = self.windows.get(provider)

        if window is None or now >= window.reset_at:
            window = self._fresh_window(now)
            self.windows[provider] = window
        else:
            requests = window.requests + window.reserved_requests
            tokens = window.tokens + window.reserved_tokens
            if requests >= config.requests_per_minute:
                logger.debug(f"Request limit reached for {provider}: {requests}/{config.requests_per_minute}")
                return False
            if tokens + estimated_tokens >= config.tokens_per_minute:
                logger.debug(f"Token limit reached for {provider}: {tokens}+{estimated_tokens}/{config.tokens_per_minute}")
                return False

        window.reserved_requests += 1
        window.reserved_tokens += estimated_tokens
        return True

    def charge(self, provider: str, actual_tokens: int, reserved_tokens: int = 0):
        """Record a completed call against the provider's window"""
        window = self._current_window(provider)
        self._drop_reservation(window, reserved_tokens)
        window.requests += 1
        window.tokens += actual_tokens

    def release(self, provider: str, reserved_tokens: int = 0):
        """Drop a reservation for a call that did not complete"""
        window = self.windows.get(provider)
        if window is not None:
            self._drop_reservation(window, reserved_tokens)

    @staticmethod
    def _drop_reservation(window: RateLimitWindow, reserved_tokens: int):
        window.reserved_requests = max(0, window.reserved_requests - 1)
        window.reserved_tokens = max(0, window.reserved_tokens - reserved_tokens)

    def reclaim_expired(self) -> int:
        """Delete windows past their reset time; their counts are no longer valid"""
        now = self.clock()
        expired = [name for name, window in self.windows.items() if now >= window.reset_at]
        for name in expired:
            del self.windows[name]
        if expired:
            logger.debug(f"Reclaimed {len(expired)} expired rate limit windows")
        return len(expired)

    def get_window(self, provider: str) -> Optional[RateLimitWindow]:
        return self.windows.get(provider)

    def get_all_windows(self) -> Dict[str, RateLimitWindow]:
        return self.windows.copy()

    def reset(self, provider: Optional[str] = None):
        """Forget recorded consumption for one provider or all of them"""
        if provider is None:
            self.windows.clear()
        else:
            self.windows.pop(provider, None)
        logger.info(f"Rate limit windows reset ({provider or 'all providers'})")
