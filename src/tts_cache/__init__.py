"""
tts-cache: Content-addressed text-to-speech artifact cache.

Turns (text, voice, speed) into an audio file exactly once. Synthesis runs
through espeak, transcoding through ffmpeg, and the result is stored as
<fingerprint>.mp3 in one artifact directory, served as a static URL or as
inline base64 bytes for game clients.

Key Features:
    - Deterministic SHA-256 fingerprints as cache keys and filenames
    - At most one generation per fingerprint under concurrent requests
    - Atomic artifact writes, no intermediate files left behind
    - Retention sweeper with a grace period
    - Prometheus metrics and structured logging

Example Usage:
    >>> from tts_cache.core.config import load_settings
    >>> from tts_cache.pipeline import AudioRequest
    >>> from tts_cache.services import AudioService
    >>>
    >>> service = AudioService(load_settings(missing_ok=True))
    >>> result = service.generate(AudioRequest("Hello world", "en", 175))
    >>> print(result.meta.path)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
