"""
eSpeak Synthesis Adapter.

Produces the raw WAV intermediate for one request:

    espeak -v <voice> -s <speed> -w <output.wav> -- <text>

The text is a single argv element placed after ``--``, so it is never
shell-interpreted and a text starting with ``-`` is not read as an option.
Works with both ``espeak`` and ``espeak-ng``.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from tts_cache.core.config import Defaults
from tts_cache.pipeline.runner import SubprocessRunner

PathLike = Union[str, Path]


class EspeakSynthesizer:
    """Speech synthesizer backed by the espeak executable."""

    def __init__(
        self,
        runner: Optional[SubprocessRunner] = None,
        binary: str = Defaults.SYNTH_BINARY,
        timeout: float = Defaults.SYNTH_TIMEOUT_S,
    ):
        self.runner = runner or SubprocessRunner()
        self.binary = binary
        self.timeout = timeout

    @staticmethod
    def build_args(text: str, voice: str, speed: int, output_path: PathLike) -> List[str]:
        return ["-v", voice, "-s", str(int(speed)), "-w", str(output_path), "--", text]

    def synthesize(self, text: str, voice: str, speed: int, output_path: PathLike) -> None:
        """
        Write a WAV file for text at output_path.

        Runner errors propagate unchanged. After an error the caller must
        not assume output_path exists or is complete.
        """
        self.runner.run(self.binary, self.build_args(text, voice, speed, output_path), self.timeout)
