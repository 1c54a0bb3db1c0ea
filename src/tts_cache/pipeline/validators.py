"""
Input Validation for Audio Requests.

Validation happens before fingerprinting, so a rejected request never
spawns a subprocess and never touches the artifact directory.

Validation Rules:
    - Text: required (not blank), at most max_text_len characters
    - Voice: required, at most max_voice_len characters, only
      letters, digits and ``_ + - .`` (eSpeak voice names such as
      ``en-us``, ``en+f3`` or ``mb-en1``), never starting with ``-``
    - Speed: integer words-per-minute within [min_speed, max_speed]

Text is checked but not rewritten: the fingerprint covers the text as sent.

Error codes follow the pattern:
    - {FIELD}_REQUIRED: Missing required field
    - {FIELD}_TOO_LONG: Exceeds max length
    - INVALID_{FIELD}: Format or range invalid
"""
from __future__ import annotations

import re

from tts_cache.core.logging import debug, get_logger
from tts_cache.pipeline.errors import ErrorCode, ValidationError
from tts_cache.pipeline.models import AudioRequest, RequestLimits

_LOG = get_logger("tts-cache.validators")

_VOICE_RE = re.compile(r"^[A-Za-z0-9_+.][A-Za-z0-9_+\-.]*$")


def validate_text(text: str, max_length: int) -> str:
    """
    Validate text input.

    Raises:
        ValidationError: TEXT_REQUIRED or TEXT_TOO_LONG
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Text is required", ErrorCode.TEXT_REQUIRED, field="text")
    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            ErrorCode.TEXT_TOO_LONG,
            field="text",
        )
    return text


def validate_voice(voice: str, max_length: int) -> str:
    if not isinstance(voice, str) or not voice:
        raise ValidationError("Voice is required", ErrorCode.INVALID_VOICE, field="voice")
    if len(voice) > max_length:
        raise ValidationError(
            f"Voice exceeds maximum length ({len(voice)} > {max_length})",
            ErrorCode.INVALID_VOICE,
            field="voice",
        )
    if not _VOICE_RE.fullmatch(voice):
        raise ValidationError(f"Invalid voice name: {voice!r}", ErrorCode.INVALID_VOICE, field="voice")
    return voice


def validate_speed(speed: int, min_speed: int, max_speed: int) -> int:
    # bool is an int subclass; True must not pass as speed 1.
    if isinstance(speed, bool) or not isinstance(speed, int):
        raise ValidationError("Speed must be an integer", ErrorCode.INVALID_SPEED, field="speed")
    if not (min_speed <= speed <= max_speed):
        raise ValidationError(
            f"Speed must be between {min_speed} and {max_speed}, got {speed}",
            ErrorCode.INVALID_SPEED,
            field="speed",
        )
    return speed


def validate_request(request: AudioRequest, limits: RequestLimits) -> AudioRequest:
    """
    Validate every field of request against limits.

    Returns:
        The same request, unchanged.

    Raises:
        ValidationError: On the first field that fails.
    """
    try:
        validate_text(request.text, limits.max_text_len)
        validate_voice(request.voice, limits.max_voice_len)
        validate_speed(request.speed, limits.min_speed, limits.max_speed)
    except ValidationError as e:
        debug(_LOG, "rejected", code=e.code, field=e.field)
        raise
    return request
