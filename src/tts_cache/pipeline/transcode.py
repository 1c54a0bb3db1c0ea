"""
ffmpeg Transcode Adapter.

Converts the synthesizer's WAV into the distributable format (MP3 by
default) and reports durations.

Transcode:
    ffmpeg -hide_banner -loglevel error -y -i IN -vn -ac C -ar R
           -codec:a CODEC -b:a <N>k OUT

    ``-y`` overwrites a pre-existing OUT. The exit status alone is not
    trusted: OUT must exist with a nonzero size afterwards, otherwise
    TranscodeOutputError is raised.

Duration:
    Best effort. ffprobe is asked first; if that fails the duration is
    estimated from the file size and the configured bitrate. If both fail
    the result is 0.0. Duration is informational, so get_duration() never
    raises.
"""
from __future__ import annotations

import math
from pathlib import Path
from typing import List, Optional, Union

from tts_cache.core.config import Defaults
from tts_cache.core.logging import get_logger, verbose
from tts_cache.pipeline.errors import RunnerError, TranscodeOutputError
from tts_cache.pipeline.runner import SubprocessRunner

_LOG = get_logger("tts-cache.transcode")

PathLike = Union[str, Path]

# ffprobe is quick; a hung probe should not hold a request for long.
PROBE_TIMEOUT_S = 10.0


class FfmpegTranscoder:
    """
    Transcoder backed by the ffmpeg and ffprobe executables.

    Attributes:
        codec: ffmpeg audio encoder (e.g., "libmp3lame").
        bitrate_kbps: Constant target bitrate, also used by estimate_duration().
        sample_rate: Output sample rate in Hz.
        channels: Output channel count.
    """

    def __init__(
        self,
        runner: Optional[SubprocessRunner] = None,
        ffmpeg: str = Defaults.TRANSCODE_FFMPEG,
        ffprobe: str = Defaults.TRANSCODE_FFPROBE,
        codec: str = Defaults.TRANSCODE_CODEC,
        bitrate_kbps: int = Defaults.TRANSCODE_BITRATE_KBPS,
        sample_rate: int = Defaults.TRANSCODE_SAMPLE_RATE,
        channels: int = Defaults.TRANSCODE_CHANNELS,
        timeout: float = Defaults.TRANSCODE_TIMEOUT_S,
    ):
        self.runner = runner or SubprocessRunner()
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.codec = codec
        self.bitrate_kbps = int(bitrate_kbps)
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.timeout = timeout

    def build_args(self, input_path: PathLike, output_path: PathLike) -> List[str]:
        return [
            "-hide_banner", "-loglevel", "error", "-y",
            "-i", str(input_path),
            "-vn",
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            "-codec:a", self.codec,
            "-b:a", f"{self.bitrate_kbps}k",
            str(output_path),
        ]

    def transcode(self, input_path: PathLike, output_path: PathLike) -> None:
        """
        Convert input_path into output_path.

        Raises:
            RunnerError: ffmpeg could not start, failed or timed out.
            TranscodeOutputError: ffmpeg exited 0 but output_path is missing or empty.
        """
        result = self.runner.run(self.ffmpeg, self.build_args(input_path, output_path), self.timeout)
        try:
            size = Path(output_path).stat().st_size
        except OSError:
            size = 0
        if size <= 0:
            raise TranscodeOutputError(self.ffmpeg, str(output_path), result.stderr)

    def get_duration(self, path: PathLike) -> float:
        """Duration in seconds (>= 0). Never raises."""
        args = [
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            result = self.runner.run(self.ffprobe, args, PROBE_TIMEOUT_S)
            seconds = float(result.stdout.strip().splitlines()[0])
        except (RunnerError, ValueError, IndexError) as e:
            verbose(_LOG, "probe_fallback", path=Path(path).name, error=str(e))
            return self.estimate_duration(path)

        if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
            return self.estimate_duration(path)
        return seconds

    def estimate_duration(self, path: PathLike) -> float:
        """Size-based estimate: bytes * 8 / (bitrate_kbps * 1000). 0.0 on failure."""
        try:
            size = Path(path).stat().st_size
        except OSError:
            return 0.0
        if self.bitrate_kbps <= 0:
            return 0.0
        return size * 8 / (self.bitrate_kbps * 1000)
