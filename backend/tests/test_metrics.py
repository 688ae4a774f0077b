"""Tests for ai_gateway.services.metrics"""

from ai_gateway.services.metrics import GatewayEvent, MetricsService


class TestMetricsService:
    def test_counters(self):
        metrics = MetricsService()
        metrics.record_request()
        metrics.emit(GatewayEvent.REQUEST_ERROR, {"provider": "openai", "model": "gpt-4", "error": "boom"})
        metrics.emit(GatewayEvent.REQUEST_SUCCESS, {
            "provider": "anthropic", "model": "claude-3", "processing_time_ms": 40.0, "cost": 0.01,
        })
        metrics.emit(GatewayEvent.CACHE_HIT, {"model": "gpt-4"})

        data = metrics.collect_metrics()

        assert data["requests_total"] == 1
        assert data["errors_total"] == 1
        assert data["successes_total"] == 1
        assert data["cache_hits_total"] == 1
        assert data["avg_latency_ms"] == 40.0
        assert data["provider_errors"] == {"openai": 1}
        assert data["provider_successes"] == {"anthropic": 1}

    def test_listener_errors_are_contained(self):
        metrics = MetricsService()
        received = []

        def broken(event, payload):
            raise ValueError("bad listener")

        metrics.subscribe(GatewayEvent.CACHE_HIT, broken)
        metrics.subscribe(GatewayEvent.CACHE_HIT, lambda event, payload: received.append(payload))
        metrics.emit(GatewayEvent.CACHE_HIT, {"model": "gpt-4"})

        assert received == [{"model": "gpt-4"}]

    def test_unsubscribe(self):
        metrics = MetricsService()
        received = []
        listener = lambda event, payload: received.append(event)

        metrics.subscribe(GatewayEvent.CACHE_HIT, listener)
        metrics.unsubscribe(GatewayEvent.CACHE_HIT, listener)
        metrics.emit(GatewayEvent.CACHE_HIT, {})

        assert received == []

    def test_prometheus_format(self):
        metrics = MetricsService()
        metrics.record_request()
        metrics.emit(GatewayEvent.REQUEST_SUCCESS, {"provider": "openai"})

        text = metrics.format_prometheus_metrics(metrics.collect_metrics())

        assert "# TYPE gateway_requests_total counter" in text
        assert "gateway_requests_total 1" in text
        assert 'gateway_provider_dispatch_total{provider="openai",outcome="success"} 1' in text

    def test_reset_keeps_listeners(self):
        metrics = MetricsService()
        received = []
        metrics.subscribe(GatewayEvent.CACHE_HIT, lambda event, payload: received.append(event))
        metrics.emit(GatewayEvent.CACHE_HIT, {})

        metrics.reset_statistics()
        metrics.emit(GatewayEvent.CACHE_HIT, {})

        assert metrics.collect_metrics()["cache_hits_total"] == 1
        assert len(received) == 2
