"""
Tests for the espeak and ffmpeg adapters.

Tests cover:
- espeak argv: voice, speed, output path, text after "--"
- Runner errors propagate unchanged
- ffmpeg argv and the nonzero-size post-condition
- ffprobe duration parsing and its fallbacks (never raises)
- End to end through the real runner with fake executables
"""
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import posix_only
from tts_cache.pipeline.errors import ExecutionError, SpawnError, TranscodeOutputError
from tts_cache.pipeline.runner import RunResult, SubprocessRunner
from tts_cache.pipeline.synthesis import EspeakSynthesizer
from tts_cache.pipeline.transcode import FfmpegTranscoder


def ok_result(stdout: str = "") -> RunResult:
    return RunResult(returncode=0, stdout=stdout, stderr="", seconds=0.01)


class TestEspeakSynthesizer:
    def test_argv(self, tmp_path):
        runner = MagicMock()
        runner.run.return_value = ok_result()
        synth = EspeakSynthesizer(runner, binary="espeak-ng", timeout=12)

        out = tmp_path / "x.wav"
        synth.synthesize("Hello world", "en-us", 175, out)

        runner.run.assert_called_once_with(
            "espeak-ng",
            ["-v", "en-us", "-s", "175", "-w", str(out), "--", "Hello world"],
            12,
        )

    def test_text_starting_with_dash_stays_after_separator(self):
        args = EspeakSynthesizer.build_args("-v xx --help", "en", 175, "o.wav")
        assert args[-2:] == ["--", "-v xx --help"]

    def test_runner_error_propagates(self, tmp_path):
        runner = MagicMock()
        runner.run.side_effect = SpawnError("espeak", "No such file or directory")
        synth = EspeakSynthesizer(runner)

        with pytest.raises(SpawnError):
            synth.synthesize("Hello", "en", 175, tmp_path / "x.wav")


class TestFfmpegTranscoder:
    def test_argv(self, tmp_path):
        out = tmp_path / "o.mp3"

        def fake_run(executable, args, timeout):
            Path(args[-1]).write_bytes(b"ID3data")
            return ok_result()

        runner = MagicMock()
        runner.run.side_effect = fake_run
        tc = FfmpegTranscoder(runner, ffmpeg="/usr/bin/ffmpeg", bitrate_kbps=96, sample_rate=44100, channels=2)

        tc.transcode(tmp_path / "in.wav", out)

        executable, args, timeout = runner.run.call_args[0]
        assert executable == "/usr/bin/ffmpeg"
        assert args == [
            "-hide_banner", "-loglevel", "error", "-y",
            "-i", str(tmp_path / "in.wav"),
            "-vn", "-ac", "2", "-ar", "44100",
            "-codec:a", "libmp3lame", "-b:a", "96k",
            str(out),
        ]
        assert timeout == tc.timeout

    def test_exit_zero_without_output_raises(self, tmp_path):
        runner = MagicMock()
        runner.run.return_value = ok_result()
        tc = FfmpegTranscoder(runner)

        with pytest.raises(TranscodeOutputError) as exc_info:
            tc.transcode(tmp_path / "in.wav", tmp_path / "missing.mp3")
        assert exc_info.value.exit_code == 0
        assert isinstance(exc_info.value, ExecutionError)

    def test_exit_zero_with_empty_output_raises(self, tmp_path):
        out = tmp_path / "empty.mp3"
        out.write_bytes(b"")
        runner = MagicMock()
        runner.run.return_value = ok_result()

        with pytest.raises(TranscodeOutputError):
            FfmpegTranscoder(runner).transcode(tmp_path / "in.wav", out)

    def test_execution_error_propagates(self, tmp_path):
        runner = MagicMock()
        runner.run.side_effect = ExecutionError("ffmpeg", 1, "Invalid data found")

        with pytest.raises(ExecutionError) as exc_info:
            FfmpegTranscoder(runner).transcode(tmp_path / "in.wav", tmp_path / "o.mp3")
        assert exc_info.value.exit_code == 1


class TestDuration:
    def test_parses_ffprobe(self, tmp_path):
        runner = MagicMock()
        runner.run.return_value = ok_result("1.234000\n")
        assert FfmpegTranscoder(runner).get_duration(tmp_path / "a.mp3") == pytest.approx(1.234)

    def test_falls_back_to_size_estimate(self, tmp_path):
        path = tmp_path / "a.mp3"
        path.write_bytes(b"\x00" * 8000)
        runner = MagicMock()
        runner.run.side_effect = SpawnError("ffprobe", "not found")

        # 8000 bytes * 8 / 64000 bps = 1.0s
        assert FfmpegTranscoder(runner, bitrate_kbps=64).get_duration(path) == pytest.approx(1.0)

    def test_unparseable_output_falls_back(self, tmp_path):
        path = tmp_path / "a.mp3"
        path.write_bytes(b"\x00" * 16000)
        runner = MagicMock()
        runner.run.return_value = ok_result("N/A\n")

        assert FfmpegTranscoder(runner, bitrate_kbps=64).get_duration(path) == pytest.approx(2.0)

    def test_negative_or_nan_falls_back(self, tmp_path):
        path = tmp_path / "a.mp3"
        path.write_bytes(b"\x00" * 8000)
        runner = MagicMock()
        for bad in ("-3.0\n", "nan\n"):
            runner.run.return_value = ok_result(bad)
            assert FfmpegTranscoder(runner).get_duration(path) == pytest.approx(1.0)

    def test_zero_when_everything_fails(self, tmp_path):
        runner = MagicMock()
        runner.run.return_value = ok_result("")
        assert FfmpegTranscoder(runner).get_duration(tmp_path / "gone.mp3") == 0.0


@posix_only
class TestAdaptersWithFakeTools:
    """Real SubprocessRunner against fake espeak/ffmpeg/ffprobe scripts."""

    def test_synthesize_then_transcode(self, tmp_path, fake_tools):
        runner = SubprocessRunner()
        synth = EspeakSynthesizer(runner, binary=fake_tools["espeak"])
        tc = FfmpegTranscoder(runner, ffmpeg=fake_tools["ffmpeg"], ffprobe=fake_tools["ffprobe"])

        wav = tmp_path / "a.wav"
        mp3 = tmp_path / "a.mp3"
        synth.synthesize("Hello; rm -rf /", "en", 175, wav)
        tc.transcode(wav, mp3)

        assert wav.read_bytes().startswith(b"RIFF")
        assert mp3.read_bytes().startswith(b"ID3")
        assert tc.get_duration(mp3) == pytest.approx(0.875)
