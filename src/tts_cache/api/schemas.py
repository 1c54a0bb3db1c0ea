"""
API Request/Response Schemas.

Models:
    TTSRequest: Input schema for POST /api/tts
    TTSResponse: Success body of POST /api/tts
    SweepResponse: Body of POST /admin/sweep

Only types and defaults are enforced here. Content rules (blank text,
speed range, voice charset) are checked by the pipeline so that HTTP, CLI
and library callers get the same INVALID_INPUT errors.

Example Request (game client):
    {
        "text": "Welcome back, traveler!",
        "voice": "en",
        "speed": 175
    }
"""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from tts_cache.core.config import Defaults


class TTSRequest(BaseModel):
    """
    Audio request schema.

    Attributes:
        text: Text to speak, sent to the synthesizer unchanged.
        voice: eSpeak voice name (e.g., "en", "en-us", "en+f3").
        speed: Speaking rate in words per minute.
        mode: "inline" returns base64 bytes in ``audio_data`` (what the
            game client decodes); "url" returns only the static URL.
    """
    text: str = Field(..., description="Text to synthesize")
    voice: str = Field(default=Defaults.SYNTH_DEFAULT_VOICE, description="eSpeak voice name")
    speed: int = Field(default=Defaults.SYNTH_DEFAULT_SPEED, description="Words per minute")
    mode: Literal["inline", "url"] = Field(default="inline", description="Output mode")


class TTSResponse(BaseModel):
    ok: bool = True
    fingerprint: str
    duration: float = Field(..., description="Duration in seconds (0 if unknown)")
    bytes: int
    cache: str = Field(..., description="mem, disk or miss")
    url: str
    audio_data: Optional[str] = Field(default=None, description="Base64 artifact bytes (inline mode)")


class SweepError(BaseModel):
    file: str
    reason: str


class SweepResponse(BaseModel):
    ok: bool = True
    removed_count: int
    bytes_freed: int
    errors: List[SweepError] = Field(default_factory=list)
