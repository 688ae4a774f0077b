"""
Metrics & Events Service
Fire-and-forget notifications emitted by the gateway (cache hit, dispatch
success, dispatch error), counters derived from them, and Prometheus formatting.
"""

import time
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List

from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class GatewayEvent(str, Enum):
    CACHE_HIT = "cache_hit"
    REQUEST_SUCCESS = "request_success"
    REQUEST_ERROR = "request_error"


EventListener = Callable[[GatewayEvent, Dict[str, Any]], None]


class MetricsService:
    """Collects gateway events; listeners are notified and never block the router"""

    def __init__(self):
        self._listeners: Dict[GatewayEvent, List[EventListener]] = defaultdict(list)
        self._reset_counters()

    def _reset_counters(self):
        self.requests_total = 0
        self.cache_hits_total = 0
        self.successes_total = 0
        self.errors_total = 0
        self.exhausted_total = 0
        self.total_latency_ms = 0.0
        self.total_cost = 0.0
        self.provider_successes: Dict[str, int] = defaultdict(int)
        self.provider_errors: Dict[str, int] = defaultdict(int)
        self.started_at = time.time()

    def subscribe(self, event: GatewayEvent, listener: EventListener):
        """Register a listener for one event type"""
        self._listeners[event].append(listener)
        logger.debug(f"Registered listener {getattr(listener, '__name__', listener)} for {event.value}")

    def unsubscribe(self, event: GatewayEvent, listener: EventListener):
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def emit(self, event: GatewayEvent, payload: Dict[str, Any]):
        """Update counters and notify listeners; listener errors are logged only"""
        self._record(event, payload)

        for listener in list(self._listeners[event]):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Event listener for {event.value} failed: {str(e)}")

    def _record(self, event: GatewayEvent, payload: Dict[str, Any]):
        if event == GatewayEvent.CACHE_HIT:
            self.cache_hits_total += 1
        elif event == GatewayEvent.REQUEST_SUCCESS:
            self.successes_total += 1
            self.provider_successes[payload.get("provider", "unknown")] += 1
            self.total_latency_ms += payload.get("processing_time_ms", 0.0)
            self.total_cost += payload.get("cost", 0.0)
        elif event == GatewayEvent.REQUEST_ERROR:
            self.errors_total += 1
            self.provider_errors[payload.get("provider", "unknown")] += 1

    def record_request(self):
        self.requests_total += 1

    def record_exhausted(self):
        self.exhausted_total += 1

    def collect_metrics(self) -> Dict[str, Any]:
        avg_latency = self.total_latency_ms / self.successes_total if self.successes_total else 0.0
        return {
            "requests_total": self.requests_total,
            "cache_hits_total": self.cache_hits_total,
            "successes_total": self.successes_total,
            "errors_total": self.errors_total,
            "exhausted_total": self.exhausted_total,
            "avg_latency_ms": round(avg_latency, 2),
            "total_cost": round(self.total_cost, 6),
            "provider_successes": dict(self.provider_successes),
            "provider_errors": dict(self.provider_errors),
            "uptime_seconds": round(time.time() - self.started_at, 1),
        }

    def format_prometheus_metrics(self, metrics: Dict[str, Any]) -> str:
        """Formats metrics in Prometheus exposition format"""
        prometheus_output = []

        for name, help_text in (
            ("requests_total", "Generation requests received"),
            ("cache_hits_total", "Requests served from the response cache"),
            ("successes_total", "Successful upstream dispatches"),
            ("errors_total", "Failed upstream dispatches"),
            ("exhausted_total", "Requests that exhausted the fallback chain"),
        ):
            prometheus_output.extend([
                f"# HELP gateway_{name} {help_text}",
                f"# TYPE gateway_{name} counter",
                f"gateway_{name} {metrics.get(name, 0)}",
                "",
            ])

        prometheus_output.extend([
            "# HELP gateway_provider_dispatch_total Upstream dispatches by provider and outcome",
            "# TYPE gateway_provider_dispatch_total counter",
        ])
        for provider, count in sorted(metrics.get("provider_successes", {}).items()):
            prometheus_output.append(f'gateway_provider_dispatch_total{{provider="{provider}",outcome="success"}} {count}')
        for provider, count in sorted(metrics.get("provider_errors", {}).items()):
            prometheus_output.append(f'gateway_provider_dispatch_total{{provider="{provider}",outcome="error"}} {count}')
        prometheus_output.append("")

        return "\n".join(prometheus_output)

    def reset_statistics(self):
        """Reset counters; listeners stay registered"""
        self._reset_counters()
        logger.info("Gateway metrics reset")
