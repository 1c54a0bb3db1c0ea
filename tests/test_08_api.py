"""
Tests for the HTTP API.

Tests cover:
- POST /api/tts: inline and url modes, cache status, 400 validation, 500 spawn error
- GET /audio/{fingerprint}.{ext}: serves bytes, 404 for unknown / malformed / wrong extension
- POST /admin/sweep
- GET /health, GET /metrics
- X-Request-Id on every response
- artifacts served under a configured public prefix
- lifespan starts and stops the service once
"""
import base64
import os
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import StubSynthesizer, StubTranscoder
from tts_cache.api.dependencies import get_audio_service
from tts_cache.main import app, create_app
from tts_cache.pipeline.errors import ErrorCode, SpawnError
from tts_cache.pipeline.fingerprint import fingerprint
from tts_cache.services.audio_service import AudioService


@pytest.fixture
def service(settings_for):
    return AudioService(
        settings_for(retention={"grace_seconds": 0}),
        synthesizer=StubSynthesizer(),
        transcoder=StubTranscoder(),
    )


@pytest.fixture
def client(service):
    app.dependency_overrides[get_audio_service] = lambda: service
    try:
        # No context manager: the lifespan (sweeper thread) stays off.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestTTSEndpoint:
    def test_inline_is_default(self, client):
        r = client.post("/api/tts", json={"text": "Hello world"})

        assert r.status_code == 200
        j = r.json()
        assert j["ok"] is True
        assert j["fingerprint"] == fingerprint("Hello world", "en", 175)
        assert j["cache"] == "miss"
        assert j["url"] == f"/audio/{j['fingerprint']}.mp3"
        assert base64.b64decode(j["audio_data"]).startswith(b"ID3")
        assert j["bytes"] == len(base64.b64decode(j["audio_data"]))
        assert j["duration"] == pytest.approx(1.25)

    def test_url_mode_has_no_audio_data(self, client):
        r = client.post("/api/tts", json={"text": "Hello world", "mode": "url"})

        assert r.status_code == 200
        assert "audio_data" not in r.json()

    def test_second_request_is_a_hit(self, client, service):
        client.post("/api/tts", json={"text": "Hello world", "mode": "url"})
        r = client.post("/api/tts", json={"text": "Hello world", "mode": "url"})

        assert r.json()["cache"] in ("mem", "disk")
        assert service.cache.synthesizer.call_count == 1

    def test_empty_text_is_400(self, client, service):
        r = client.post("/api/tts", json={"text": ""})

        assert r.status_code == 400
        j = r.json()
        assert j["ok"] is False
        assert j["error"] == ErrorCode.TEXT_REQUIRED
        assert service.cache.synthesizer.call_count == 0

    def test_speed_out_of_range_is_400(self, client, service):
        r = client.post("/api/tts", json={"text": "Hello", "speed": 10000})

        assert r.status_code == 400
        assert r.json()["error"] == ErrorCode.INVALID_SPEED
        assert service.cache.synthesizer.call_count == 0

    def test_bad_voice_is_400(self, client):
        r = client.post("/api/tts", json={"text": "Hello", "voice": "--help"})
        assert r.status_code == 400
        assert r.json()["error"] == ErrorCode.INVALID_VOICE

    def test_wrong_type_is_422(self, client):
        r = client.post("/api/tts", json={"text": "Hello", "speed": "fast"})
        assert r.status_code == 422

    def test_spawn_error_is_500(self, settings_for):
        broken = AudioService(
            settings_for(),
            synthesizer=StubSynthesizer(error=SpawnError("espeak", "No such file or directory")),
            transcoder=StubTranscoder(),
        )
        app.dependency_overrides[get_audio_service] = lambda: broken
        try:
            r = TestClient(app).post("/api/tts", json={"text": "Hello world"})
        finally:
            app.dependency_overrides.clear()

        assert r.status_code == 500
        assert r.json()["error"] == ErrorCode.SPAWN_ERROR
        assert list(broken.cache.artifact_dir.iterdir()) == []

    def test_request_id_header(self, client):
        ok = client.post("/api/tts", json={"text": "Hello"})
        bad = client.post("/api/tts", json={"text": ""})

        assert len(ok.headers["X-Request-Id"]) == 12
        assert len(bad.headers["X-Request-Id"]) == 12
        assert ok.headers["X-Request-Id"] != bad.headers["X-Request-Id"]


class TestAudioEndpoint:
    def test_serves_existing_artifact(self, client, service):
        j = client.post("/api/tts", json={"text": "Hello world", "mode": "url"}).json()

        r = client.get(j["url"])

        assert r.status_code == 200
        assert r.headers["content-type"] == "audio/mpeg"
        assert r.content == (service.cache.artifact_dir / f"{j['fingerprint']}.mp3").read_bytes()
        assert "X-Request-Id" in r.headers

    def test_unknown_fingerprint_is_404(self, client, service):
        r = client.get(f"/audio/{'a' * 64}.mp3")

        assert r.status_code == 404
        assert r.json()["error"] == ErrorCode.NOT_FOUND
        assert service.cache.synthesizer.call_count == 0

    def test_malformed_fingerprint_is_404(self, client):
        assert client.get("/audio/not-a-hash.mp3").status_code == 404
        assert client.get(f"/audio/{'A' * 64}.mp3").status_code == 404

    def test_wrong_extension_is_404(self, client):
        j = client.post("/api/tts", json={"text": "Hello world", "mode": "url"}).json()
        assert client.get(f"/audio/{j['fingerprint']}.ogg").status_code == 404


class TestAdminSweep:
    def test_sweep_removes_old_artifacts(self, client, service):
        j = client.post("/api/tts", json={"text": "Hello world", "mode": "url"}).json()
        path = service.cache.artifact_dir / f"{j['fingerprint']}.mp3"
        old = time.time() - 7200
        os.utime(path, (old, old))

        r = client.post("/admin/sweep", params={"max_age_seconds": 3600})

        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["removed_count"] == 1
        assert body["errors"] == []
        assert not path.exists()
        assert client.get(j["url"]).status_code == 404

    def test_negative_max_age_rejected(self, client):
        assert client.post("/admin/sweep", params={"max_age_seconds": -1}).status_code == 422


class TestHealthAndMetrics:
    def test_health_shape(self, client):
        r = client.get("/health")

        assert r.status_code == 200
        j = r.json()
        assert j["status"] in ("ok", "degraded")
        assert set(j["binaries"]) == {"espeak", "ffmpeg", "ffprobe"}
        assert "artifact_dir" in j["cache"]
        assert j["retention"]["enabled"] is False
        assert "file_count" in j["storage"]

    def test_health_degraded_without_binaries(self, settings_for):
        service = AudioService(
            settings_for(synth={"binary": "/nonexistent/espeak"}),
            synthesizer=StubSynthesizer(),
            transcoder=StubTranscoder(),
        )
        j = service.get_health_info()
        assert j["ok"] is False
        assert j["status"] == "degraded"
        assert j["binaries"]["espeak"] is False

    def test_metrics(self, client):
        client.post("/api/tts", json={"text": "Hello world", "mode": "url"})
        r = client.get("/metrics")

        assert r.status_code == 200
        assert "tts_cache_requests_total" in r.text
        assert "tts_cache_lookups_total" in r.text


class TestPublicPrefix:
    @pytest.fixture
    def media_service(self, settings_for):
        return AudioService(
            settings_for(storage={"public_prefix": "/media/"}),
            synthesizer=StubSynthesizer(),
            transcoder=StubTranscoder(),
        )

    def test_returned_url_is_served(self, settings_for, media_service):
        media_app = create_app(settings_for(storage={"public_prefix": "/media/"}))
        media_app.dependency_overrides[get_audio_service] = lambda: media_service
        client = TestClient(media_app)

        j = client.post("/api/tts", json={"text": "Hello world", "mode": "url"}).json()
        assert j["url"] == f"/media/{j['fingerprint']}.mp3"

        r = client.get(j["url"])
        assert r.status_code == 200
        assert r.content == media_service.cache.path_for(j["fingerprint"]).read_bytes()
        assert client.get(f"/audio/{j['fingerprint']}.mp3").status_code == 404

    def test_root_prefix(self, settings_for):
        service = AudioService(
            settings_for(storage={"public_prefix": "/"}),
            synthesizer=StubSynthesizer(),
            transcoder=StubTranscoder(),
        )
        root_app = create_app(settings_for(storage={"public_prefix": "/"}))
        root_app.dependency_overrides[get_audio_service] = lambda: service
        client = TestClient(root_app)

        j = client.post("/api/tts", json={"text": "Hello world", "mode": "url"}).json()
        assert j["url"] == f"/{j['fingerprint']}.mp3"
        assert client.get(j["url"]).status_code == 200
        assert client.get("/health").status_code == 200


class TestLifespan:
    def test_startup_and_shutdown_run_once(self):
        with patch("tts_cache.main.start_service") as start, patch("tts_cache.main.stop_service") as stop:
            with TestClient(app):
                start.assert_called_once_with()
                stop.assert_not_called()
            stop.assert_called_once_with()
