"""
Tests for input validation functions.

Tests cover:
- validate_text() - empty, whitespace, max length, unicode kept verbatim
- validate_voice() - eSpeak names, option-like and shell-like names rejected
- validate_speed() - range, bool and non-int rejected
- validate_request() - first failing field wins
- Error dict shape
"""
import pytest

from tts_cache.pipeline.errors import ErrorCode, ValidationError
from tts_cache.pipeline.models import AudioRequest, RequestLimits
from tts_cache.pipeline.validators import validate_request, validate_speed, validate_text, validate_voice


class TestValidateText:
    """Tests for validate_text() function."""

    def test_valid_text(self):
        assert validate_text("Hello, world!", 1000) == "Hello, world!"

    def test_unicode_is_not_rewritten(self):
        """Text is checked, never normalized: the fingerprint covers it as sent."""
        text = "  Café — naïve  "
        assert validate_text(text, 1000) == text

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_required(self, text):
        with pytest.raises(ValidationError) as exc_info:
            validate_text(text, 1000)
        assert exc_info.value.code == ErrorCode.TEXT_REQUIRED
        assert exc_info.value.field == "text"

    def test_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_text("a" * 1001, 1000)
        assert exc_info.value.code == ErrorCode.TEXT_TOO_LONG
        assert "1001" in exc_info.value.message

    def test_at_max_length(self):
        assert len(validate_text("a" * 1000, 1000)) == 1000


class TestValidateVoice:
    """Tests for validate_voice() function."""

    @pytest.mark.parametrize("voice", ["en", "en-us", "en+f3", "mb-en1", "en_GB", "zh.yue"])
    def test_valid(self, voice):
        assert validate_voice(voice, 64) == voice

    @pytest.mark.parametrize("voice", ["", "-v", "--help", "en us", "en;rm", "en/../x", "$(id)", "en\n"])
    def test_invalid(self, voice):
        with pytest.raises(ValidationError) as exc_info:
            validate_voice(voice, 64)
        assert exc_info.value.code == ErrorCode.INVALID_VOICE

    def test_too_long(self):
        with pytest.raises(ValidationError):
            validate_voice("e" * 65, 64)


class TestValidateSpeed:
    """Tests for validate_speed() function."""

    @pytest.mark.parametrize("speed", [80, 175, 450])
    def test_in_range(self, speed):
        assert validate_speed(speed, 80, 450) == speed

    @pytest.mark.parametrize("speed", [79, 451, 0, -175, 10000])
    def test_out_of_range(self, speed):
        with pytest.raises(ValidationError) as exc_info:
            validate_speed(speed, 80, 450)
        assert exc_info.value.code == ErrorCode.INVALID_SPEED

    @pytest.mark.parametrize("speed", [True, 175.0, "175", None])
    def test_not_an_int(self, speed):
        with pytest.raises(ValidationError) as exc_info:
            validate_speed(speed, 1, 450)
        assert exc_info.value.code == ErrorCode.INVALID_SPEED


class TestValidateRequest:
    def test_valid_request_returned_unchanged(self):
        request = AudioRequest("Hello", "en", 175)
        assert validate_request(request, RequestLimits()) is request

    def test_text_checked_first(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_request(AudioRequest("", "--bad", 1), RequestLimits())
        assert exc_info.value.field == "text"

    def test_custom_limits(self):
        with pytest.raises(ValidationError):
            validate_request(AudioRequest("Hello", "en", 175), RequestLimits(max_speed=150))

    def test_error_dict(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_request(AudioRequest("Hello", "en", 10000), RequestLimits())
        d = exc_info.value.to_dict()
        assert d["ok"] is False
        assert d["error"] == ErrorCode.INVALID_SPEED
        assert "between" in d["message"]
