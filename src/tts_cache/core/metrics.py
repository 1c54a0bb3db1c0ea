"""
Prometheus Metrics for tts-cache.

Metrics Exposed:
    tts_cache_requests_total            - Counter of requests by status
    tts_cache_request_duration_seconds  - Histogram of request latency by cache status
    tts_cache_lookups_total             - Counter of lookups by result and tier
    tts_cache_generations_total         - Counter of artifact generations by status
    tts_cache_subprocess_seconds        - Histogram of external tool runtime
    tts_cache_inflight                  - Gauge of generations currently running
    tts_cache_swept_files_total         - Counter of files removed by retention
    tts_cache_artifact_bytes_total      - Counter of artifact bytes produced

Usage:
    from tts_cache.core.metrics import metrics

    metrics.record_request("success", duration=0.02, cache_status="disk")
    metrics.record_lookup("hit", tier="mem")
    metrics.observe_subprocess("espeak", 0.41)

    content, content_type = metrics.get_metrics_response()

Prometheus Scrape Config Example:
    scrape_configs:
      - job_name: 'tts-cache'
        static_configs:
          - targets: ['localhost:3000']
        metrics_path: '/metrics'
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class CacheMetrics:
    """
    Metric collection for the artifact cache service.

    Uses a private CollectorRegistry so several instances (one per test,
    for example) never clash on metric names in the default registry.

    Thread Safety:
        All Prometheus metric operations are thread-safe.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_cache_requests_total",
            "Total audio requests",
            ["status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_cache_request_duration_seconds",
            "Audio request duration in seconds",
            ["cache_status"],
            buckets=(0.005, 0.025, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._lookups_total = Counter(
            "tts_cache_lookups_total",
            "Artifact lookups by result and tier",
            ["result", "tier"],
            registry=self._registry,
        )
        self._generations_total = Counter(
            "tts_cache_generations_total",
            "Artifact generations by outcome",
            ["status"],
            registry=self._registry,
        )
        self._subprocess_seconds = Histogram(
            "tts_cache_subprocess_seconds",
            "External tool runtime in seconds",
            ["tool"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._inflight = Gauge(
            "tts_cache_inflight",
            "Generations currently in flight",
            registry=self._registry,
        )
        self._swept_files = Counter(
            "tts_cache_swept_files_total",
            "Files removed by the retention sweeper",
            registry=self._registry,
        )
        self._artifact_bytes = Counter(
            "tts_cache_artifact_bytes_total",
            "Total artifact bytes produced",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, status: str, duration: float, cache_status: str = "miss") -> None:
        """
        Record a completed request.

        Args:
            status: "success" or an error code such as "INVALID_INPUT"
            duration: Request duration in seconds
            cache_status: "mem", "disk", "miss", or "none" for failed requests
        """
        self._requests_total.labels(status=status).inc()
        self._request_duration.labels(cache_status=cache_status).observe(duration)

    def record_lookup(self, result: str, tier: str = "none") -> None:
        """Record a lookup. result is "hit" or "miss"; tier is "mem", "disk" or "none"."""
        self._lookups_total.labels(result=result, tier=tier).inc()

    def record_generation(self, status: str, byte_size: int = 0) -> None:
        self._generations_total.labels(status=status).inc()
        if byte_size > 0:
            self._artifact_bytes.inc(byte_size)

    def observe_subprocess(self, tool: str, seconds: float) -> None:
        self._subprocess_seconds.labels(tool=tool).observe(seconds)

    def inflight_inc(self) -> None:
        self._inflight.inc()

    def inflight_dec(self) -> None:
        self._inflight.dec()

    def inc_swept(self, count: int = 1) -> None:
        if count > 0:
            self._swept_files.inc(count)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global metrics instance: from tts_cache.core.metrics import metrics
metrics = CacheMetrics()
