"""
Tests for content fingerprints.

Tests cover:
- Determinism across calls
- Shape (64 lowercase hex chars)
- Field boundaries cannot be shifted between text and voice
- Every field influences the result
- No collisions across 10,000 random distinct requests
"""
import random
import string

from tts_cache.pipeline.fingerprint import FINGERPRINT_VERSION, fingerprint, is_fingerprint


class TestFingerprintBasics:
    """Deterministic, well-formed fingerprints."""

    def test_same_input_same_fingerprint(self):
        assert fingerprint("Hello world", "en", 175) == fingerprint("Hello world", "en", 175)

    def test_shape(self):
        fp = fingerprint("Hello world", "en", 175)
        assert len(fp) == 64
        assert is_fingerprint(fp)

    def test_version_tag(self):
        assert FINGERPRINT_VERSION == "v1"

    def test_unicode_text(self):
        fp = fingerprint("Merhaba dünya, ğüşiöç", "tr", 160)
        assert is_fingerprint(fp)


class TestFingerprintSeparation:
    """Distinct inputs must give distinct fingerprints."""

    def test_boundary_shift(self):
        """("ab","c") and ("a","bc") must not collide."""
        assert fingerprint("ab", "c", 175) != fingerprint("a", "bc", 175)

    def test_separator_in_text(self):
        assert fingerprint("a|b", "c", 175) != fingerprint("a", "b|c", 175)
        assert fingerprint("a;1:b", "c", 175) != fingerprint("a", "1:b;c", 175)

    def test_speed_changes_key(self):
        assert fingerprint("Hello", "en", 175) != fingerprint("Hello", "en", 176)

    def test_voice_changes_key(self):
        assert fingerprint("Hello", "en", 175) != fingerprint("Hello", "en-us", 175)

    def test_whitespace_is_significant(self):
        assert fingerprint("Hello", "en", 175) != fingerprint("Hello ", "en", 175)

    def test_no_collisions_random(self):
        """10,000 random distinct triples yield 10,000 distinct fingerprints."""
        rng = random.Random(1234)
        alphabet = string.ascii_letters + string.digits + " |;:-_."
        triples = set()
        while len(triples) < 10_000:
            text = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 24)))
            voice = rng.choice(["en", "en-us", "de", "tr", "en+f3", "a", "ab"])
            speed = rng.randint(80, 450)
            triples.add((text, voice, speed))

        fps = {fingerprint(t, v, s) for t, v, s in triples}
        assert len(fps) == len(triples)


class TestIsFingerprint:
    def test_rejects_non_hex(self):
        assert not is_fingerprint("z" * 64)

    def test_rejects_wrong_length(self):
        assert not is_fingerprint("a" * 63)

    def test_rejects_uppercase(self):
        assert not is_fingerprint("A" * 64)

    def test_rejects_path_traversal(self):
        assert not is_fingerprint("../" + "a" * 61)
