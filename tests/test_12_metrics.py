"""Tests for Prometheus metrics."""
from __future__ import annotations

import pytest
from prometheus_client import CONTENT_TYPE_LATEST

from tts_cache.core.metrics import CacheMetrics, metrics
from tts_cache.pipeline.artifacts import ArtifactCache
from tts_cache.pipeline.models import AudioRequest


def sample(m: CacheMetrics, name: str, labels: dict | None = None) -> float:
    value = m.registry.get_sample_value(name, labels or {})
    return 0.0 if value is None else value


class TestCacheMetrics:
    """A fresh CacheMetrics per test; private registries never clash."""

    def test_two_instances_coexist(self):
        CacheMetrics()
        CacheMetrics()

    def test_record_request(self):
        m = CacheMetrics()
        m.record_request("success", 0.02, cache_status="disk")
        m.record_request("INVALID_SPEED", 0.001, cache_status="none")

        assert sample(m, "tts_cache_requests_total", {"status": "success"}) == 1
        assert sample(m, "tts_cache_requests_total", {"status": "INVALID_SPEED"}) == 1
        assert sample(m, "tts_cache_request_duration_seconds_count", {"cache_status": "disk"}) == 1

    def test_lookup_and_generation(self):
        m = CacheMetrics()
        m.record_lookup("hit", tier="mem")
        m.record_lookup("miss")
        m.record_generation("success", byte_size=1200)
        m.record_generation("TIMEOUT")

        assert sample(m, "tts_cache_lookups_total", {"result": "hit", "tier": "mem"}) == 1
        assert sample(m, "tts_cache_lookups_total", {"result": "miss", "tier": "none"}) == 1
        assert sample(m, "tts_cache_generations_total", {"status": "TIMEOUT"}) == 1
        assert sample(m, "tts_cache_artifact_bytes_total") == 1200

    def test_inflight_gauge(self):
        m = CacheMetrics()
        m.inflight_inc()
        m.inflight_inc()
        m.inflight_dec()
        assert sample(m, "tts_cache_inflight") == 1

    def test_swept_ignores_zero(self):
        m = CacheMetrics()
        m.inc_swept(0)
        m.inc_swept(3)
        assert sample(m, "tts_cache_swept_files_total") == 3

    def test_exposition(self):
        m = CacheMetrics()
        m.observe_subprocess("espeak", 0.4)

        content, content_type = m.get_metrics_response()

        assert content_type == CONTENT_TYPE_LATEST
        assert b'tts_cache_subprocess_seconds_count{tool="espeak"} 1.0' in content


class TestPipelineInstrumentation:
    """The global instance is fed by the cache."""

    def test_generation_and_hits_are_counted(self, artifact_dir, synth, transcoder):
        cache = ArtifactCache(artifact_dir, synth, transcoder)
        request = AudioRequest("Counting", "en", 175)

        before_success = sample(metrics, "tts_cache_generations_total", {"status": "success"})
        before_disk = sample(metrics, "tts_cache_lookups_total", {"result": "hit", "tier": "disk"})

        cache.get_or_create(request)
        cache.get_or_create(request)

        assert sample(metrics, "tts_cache_generations_total", {"status": "success"}) == pytest.approx(before_success + 1)
        assert sample(metrics, "tts_cache_lookups_total", {"result": "hit", "tier": "disk"}) == pytest.approx(before_disk + 1)
