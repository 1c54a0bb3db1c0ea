"""Shared fixtures: call-counting stub adapters and fake executables."""
from __future__ import annotations

import os
import shutil
import stat
import sys
import threading
import time
from pathlib import Path

import pytest

from tts_cache.core.config import Settings
from tts_cache.pipeline.artifacts import ArtifactCache
from tts_cache.pipeline.memo import MetadataMemo

FAKE_WAV = b"RIFF" + b"\x00" * 40 + b"fake-pcm-data"

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs POSIX shell scripts")


class StubSynthesizer:
    """Writes a fake WAV and counts calls. Optionally slow or failing."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def synthesize(self, text, voice, speed, output_path):
        with self._lock:
            self.calls.append((text, voice, speed, Path(output_path)))
        if self.delay:
            time.sleep(self.delay)
        Path(output_path).write_bytes(FAKE_WAV)
        if self.error is not None:
            raise self.error


class StubTranscoder:
    """Copies input to output (prefixed) and counts calls."""

    def __init__(self, error: Exception | None = None, write_partial: bool = False, duration: float = 1.25):
        self.error = error
        self.write_partial = write_partial
        self.duration = duration
        self.calls = []
        self.duration_calls = 0
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def transcode(self, input_path, output_path):
        with self._lock:
            self.calls.append((Path(input_path), Path(output_path)))
        if self.write_partial:
            Path(output_path).write_bytes(b"ID3partial")
        if self.error is not None:
            raise self.error
        Path(output_path).write_bytes(b"ID3" + Path(input_path).read_bytes())

    def get_duration(self, path):
        with self._lock:
            self.duration_calls += 1
        return self.duration


@pytest.fixture
def artifact_dir(tmp_path):
    d = tmp_path / "artifacts"
    d.mkdir()
    return d


@pytest.fixture
def synth():
    return StubSynthesizer()


@pytest.fixture
def transcoder():
    return StubTranscoder()


@pytest.fixture
def cache(artifact_dir, synth, transcoder):
    return ArtifactCache(artifact_dir, synth, transcoder, memo=MetadataMemo(64))


@pytest.fixture
def settings_for(tmp_path):
    """Build Settings pointing at tmp_path with optional section overrides."""

    def _make(**sections) -> Settings:
        raw = {
            "storage": {"artifact_dir": str(tmp_path / "artifacts")},
            "retention": {"enabled": False},
        }
        for name, values in sections.items():
            raw.setdefault(name, {}).update(values)
        return Settings(raw=raw)

    return _make


def write_script(directory: Path, name: str, body: str) -> Path:
    """Write an executable /bin/sh script and return its path."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_tools(tmp_path):
    """
    Fake espeak/ffmpeg/ffprobe scripts that behave like the real tools
    for the arguments the adapters pass.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    # espeak -v V -s S -w OUT -- TEXT
    espeak = write_script(bin_dir, "espeak", 'printf "RIFFfakewav" > "$6"')
    # ffmpeg ... OUT (last argument)
    ffmpeg = write_script(
        bin_dir,
        "ffmpeg",
        'for last; do :; done\nprintf "ID3fakemp3data" > "$last"',
    )
    ffprobe = write_script(bin_dir, "ffprobe", 'echo "0.875000"')
    return {"espeak": str(espeak), "ffmpeg": str(ffmpeg), "ffprobe": str(ffprobe), "dir": bin_dir}


def has_real_tools() -> bool:
    return all(shutil.which(b) for b in ("espeak", "ffmpeg")) and sys.platform != "win32"
