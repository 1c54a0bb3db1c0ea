"""
Content Fingerprints for Audio Artifacts.

A fingerprint is the SHA-256 of every parameter that affects the audio
output. It is both the cache key and the artifact filename stem, so the same
request always lands on the same file, across restarts and processes.

Encoding:
    Fields are hashed in a fixed order (text, voice, speed), each as
    ``<utf-8 byte length>:<bytes>;``. The length prefix makes the encoding
    unambiguous: ("ab", "c") and ("a", "bc") hash different byte strings,
    which plain concatenation or a separator inside user text would not
    guarantee.

    A version tag is hashed first. Bumping it moves every request to a new
    key, which is how a change of synthesizer settings invalidates the cache.
"""
from __future__ import annotations

import hashlib
import re

FINGERPRINT_VERSION = "v1"

FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


def _field(h: "hashlib._Hash", value: str) -> None:
    data = value.encode("utf-8")
    h.update(str(len(data)).encode("ascii"))
    h.update(b":")
    h.update(data)
    h.update(b";")


def fingerprint(text: str, voice: str, speed: int) -> str:
    """
    Compute the fingerprint of a synthesis request.

    Args:
        text: Text exactly as it will be passed to the synthesizer.
        voice: Voice identifier.
        speed: Speaking rate in words per minute.

    Returns:
        64-character lowercase hex string.

    Example:
        >>> fingerprint("Hello world", "en", 175) == fingerprint("Hello world", "en", 175)
        True
    """
    h = hashlib.sha256()
    _field(h, FINGERPRINT_VERSION)
    _field(h, text)
    _field(h, voice)
    _field(h, str(int(speed)))
    return h.hexdigest()


def is_fingerprint(value: str) -> bool:
    """True if value looks like a fingerprint (used to guard URL paths)."""
    return bool(FINGERPRINT_RE.fullmatch(value))
