"""
Circuit Breaker Service
Per-provider failure counter with an open flag and a cooldown timer.
CLOSED -> OPEN after `failure_threshold` consecutive failures,
OPEN -> CLOSED once `cooldown_seconds` passed since the last failure.
"""

import time
from typing import Callable, Dict, Optional

from ai_gateway.services.data_structures import CircuitBreakerStatus
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class CircuitBreakerService:
    """
    Shields a struggling provider from traffic for a bounded period.
    There is no half-open probe: the breaker heals itself on the first
    is_open() check after the cooldown.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.circuit_breakers: Dict[str, CircuitBreakerStatus] = {}

    def is_open(self, provider: str) -> bool:
        """
        Check if circuit breaker is OPEN
        Returns True if provider should be skipped
        """
        cb_status = self.circuit_breakers.get(provider)
        if cb_status is None:
            return False

        if cb_status.is_open and self._cooldown_elapsed(cb_status):
            self._transition_to_closed(provider)
            logger.info(f"Circuit breaker for {provider} healed after {self.cooldown_seconds}s cooldown")
            return False

        return cb_status.is_open

    def record_failure(self, provider: str):
        """Record a failure; opens the breaker once the threshold is reached"""
        cb_status = self.circuit_breakers.setdefault(provider, CircuitBreakerStatus())
        cb_status.failure_count += 1
        cb_status.last_failure_time = self.clock()

        logger.warning(f"Recorded failure for {provider}: {cb_status.failure_count} failures")

        if cb_status.failure_count >= self.failure_threshold and not cb_status.is_open:
            self._transition_to_open(provider)

    def record_success(self, provider: str):
        """A single success fully rehabilitates the provider"""
        cb_status = self.circuit_breakers.get(provider)
        if cb_status is None:
            return
        if cb_status.failure_count or cb_status.is_open:
            self._transition_to_closed(provider)

    def _cooldown_elapsed(self, cb_status: CircuitBreakerStatus) -> bool:
        if cb_status.last_failure_time is None:
            return True
        return self.clock() - cb_status.last_failure_time > self.cooldown_seconds

    def _transition_to_open(self, provider: str):
        """Transition circuit breaker to OPEN state"""
        cb_status = self.circuit_breakers[provider]
        cb_status.is_open = True

        logger.warning(f"Circuit breaker OPENED for provider {provider} after {cb_status.failure_count} failures")

    def _transition_to_closed(self, provider: str):
        """Transition circuit breaker to CLOSED state"""
        cb_status = self.circuit_breakers[provider]
        cb_status.is_open = False
        cb_status.failure_count = 0

        logger.info(f"Circuit breaker CLOSED for provider {provider}")

    def get_status(self, provider: str) -> Optional[CircuitBreakerStatus]:
        """Get current circuit breaker status for a provider"""
        return self.circuit_breakers.get(provider)

    def get_all_statuses(self) -> Dict[str, CircuitBreakerStatus]:
        """Get all circuit breaker statuses"""
        return self.circuit_breakers.copy()

    def reset_circuit_breaker(self, provider: str):
        """Manually reset a circuit breaker (admin function)"""
        if provider in self.circuit_breakers:
            self._transition_to_closed(provider)
            logger.info(f"Circuit breaker manually reset for {provider}")
