"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_version_defined(self):
        import tts_cache

        assert isinstance(tts_cache.__version__, str)
        assert len(tts_cache.__version__) > 0

    def test_modules_importable(self):
        from tts_cache import cli, main
        from tts_cache.api import routes, schemas
        from tts_cache.pipeline import artifacts, inflight, runner, sweeper
        from tts_cache.services import audio_service, publish

        for module in (cli, main, routes, schemas, artifacts, inflight, runner, sweeper, audio_service, publish):
            assert module is not None


class TestCLIEntryPoint:
    def test_cli_help_exits_zero(self):
        """CLI --help exits with code 0."""
        result = subprocess.run(
            [sys.executable, "-m", "tts_cache.cli", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "tts-cache CLI" in result.stdout


class TestPyprojectToml:
    """Test pyproject.toml configuration."""

    @pytest.fixture
    def data(self):
        tomllib = pytest.importorskip("tomllib")
        return tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))

    def test_name(self, data):
        assert data["project"]["name"] == "tts-cache"

    def test_dependencies(self, data):
        dep_names = [d.split(">=")[0].split("[")[0] for d in data["project"]["dependencies"]]
        for name in ("fastapi", "uvicorn", "pydantic", "PyYAML", "prometheus-client"):
            assert name in dep_names

    def test_script_entry(self, data):
        assert data["project"]["scripts"]["tts-cache"] == "tts_cache.cli:main"
