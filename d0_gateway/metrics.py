"""
Prometheus metrics for D0 Gateway monitoring
"""
from prometheus_client import Counter, Histogram, Info

from core.logging import get_logger


class GatewayMetrics:
    """Prometheus metrics collector for D0 Gateway"""

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.logger = get_logger("gateway.metrics", domain="d0")

        # API call metrics
        self.api_calls_total = Counter(
            "gateway_api_calls_total",
            "Total number of API calls made through gateway",
            ["provider", "endpoint", "status_code"],
        )

        self.api_latency_seconds = Histogram(
            "gateway_api_latency_seconds",
            "API call latency in seconds",
            ["provider", "endpoint"],
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
        )

        # TTL cache metrics, labelled by key namespace
        self.cache_hits_total = Counter(
            "gateway_ttl_cache_hits_total",
            "Total number of TTL cache hits",
            ["namespace"],
        )

        self.cache_misses_total = Counter(
            "gateway_ttl_cache_misses_total",
            "Total number of TTL cache misses",
            ["namespace"],
        )

        self.cache_compute_failures_total = Counter(
            "gateway_ttl_cache_compute_failures_total",
            "Total number of cache computations that raised",
            ["namespace"],
        )

        self.gateway_info = Info("gateway_info", "Gateway version and configuration info")
        self.gateway_info.info({"version": "1.0.0", "domain": "d0_gateway"})

        self.__class__._initialized = True

    def record_api_call(self, provider: str, endpoint: str, status_code: int, duration: float) -> None:
        """Record an API call with metrics"""
        try:
            self.api_calls_total.labels(provider=provider, endpoint=endpoint, status_code=str(status_code)).inc()
            self.api_latency_seconds.labels(provider=provider, endpoint=endpoint).observe(duration)

            self.logger.debug(
                f"Recorded API call: {provider}/{endpoint} " f"status={status_code} duration={duration:.3f}s"
            )

        except Exception as e:
            self.logger.error(f"Failed to record API call metrics: {e}")

    def record_cache_hit(self, namespace: str) -> None:
        """Record cache hit"""
        try:
            self.cache_hits_total.labels(namespace=namespace).inc()
        except Exception as e:
            self.logger.error(f"Failed to record cache hit: {e}")

    def record_cache_miss(self, namespace: str) -> None:
        """Record cache miss"""
        try:
            self.cache_misses_total.labels(namespace=namespace).inc()
        except Exception as e:
            self.logger.error(f"Failed to record cache miss: {e}")

    def record_cache_failure(self, namespace: str) -> None:
        """Record a failed cache computation"""
        try:
            self.cache_compute_failures_total.labels(namespace=namespace).inc()
        except Exception as e:
            self.logger.error(f"Failed to record cache failure: {e}")
