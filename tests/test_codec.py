"""
Codec tests - AES-256-GCM round trip and corruption detection.
"""

import os

import pytest

from recordvault.core.codec import decode_json, decrypt, derive_key, encode_json, encode_records, encrypt
from recordvault.core.errors import CorruptData


class TestEncryptionRoundTrip:
    """Test encrypt/decrypt symmetry."""

    @pytest.mark.parametrize("plaintext", [b"", b"x", b"Hello, secure world!", os.urandom(4096)])
    def test_round_trip(self, plaintext):
        """Test decrypt(encrypt(p, k), k) == p for assorted payloads."""
        key = os.urandom(32)
        assert decrypt(encrypt(plaintext, key), key) == plaintext

    def test_ciphertext_differs_from_plaintext(self):
        """Test that output is not the plaintext."""
        key = os.urandom(32)
        data = b"Secret message"
        assert data not in encrypt(data, key)

    def test_nonce_is_random(self):
        """Test that encrypting twice gives different ciphertext."""
        key = os.urandom(32)
        assert encrypt(b"same", key) != encrypt(b"same", key)

    def test_encrypt_rejects_short_key(self):
        """Test that keys other than 32 bytes are refused."""
        with pytest.raises(ValueError):
            encrypt(b"data", b"short")


class TestCorruptionDetection:
    """Test that bad ciphertext never decrypts to garbage."""

    def test_wrong_key(self):
        """Test that wrong key fails decryption."""
        encrypted = encrypt(b"Secret message", os.urandom(32))
        with pytest.raises(CorruptData):
            decrypt(encrypted, os.urandom(32))

    def test_truncated_input(self):
        """Test that input shorter than nonce + tag is rejected."""
        with pytest.raises(CorruptData, match="too short"):
            decrypt(b"\x00" * 27, os.urandom(32))

    def test_truncated_ciphertext(self):
        """Test that dropping trailing bytes fails authentication."""
        key = os.urandom(32)
        encrypted = encrypt(b"a longer secret message", key)
        with pytest.raises(CorruptData):
            decrypt(encrypted[:-3], key)

    def test_tampered_byte(self):
        """Test that flipping one ciphertext bit is detected."""
        key = os.urandom(32)
        encrypted = bytearray(encrypt(b"payload", key))
        encrypted[-1] ^= 0x01
        with pytest.raises(CorruptData):
            decrypt(bytes(encrypted), key)

    def test_non_ciphertext_input(self):
        """Test that arbitrary bytes are rejected."""
        with pytest.raises(CorruptData):
            decrypt(b'[{"id": "not encrypted at all"}]', os.urandom(32))

    def test_bad_key_length_on_decrypt(self):
        """Test that a malformed key is reported as corrupt data."""
        with pytest.raises(CorruptData):
            decrypt(os.urandom(64), b"too-short")


class TestJsonHelpers:
    """Test JSON well-formedness checks on decrypted payloads."""

    def test_encode_decode(self):
        data = [{"id": "a", "duration": 1.5}]
        assert decode_json(encode_json(data)) == data

    def test_pretty_encoding_is_indented(self):
        assert b"\n  " in encode_json({"a": [1]}, pretty=True)

    def test_invalid_utf8(self):
        with pytest.raises(CorruptData):
            decode_json(b"\xff\xfe\xfd")

    def test_invalid_json(self):
        with pytest.raises(CorruptData):
            decode_json(b"{not json")

    def test_encode_records_uses_wire_names(self, make_raw):
        from recordvault.core.validation import validate_one

        raw = make_raw(isPrivate=True)
        [encoded] = decode_json(encode_records([validate_one(raw)]))
        assert encoded["id"] == raw["id"]
        assert encoded["isPrivate"] is True
        assert "start_time" not in encoded

    def test_encode_records_passes_dicts_through(self):
        assert decode_json(encode_records([{"id": "x"}])) == [{"id": "x"}]


class TestKeyDerivation:
    """Test PBKDF2 passphrase keys."""

    def test_same_salt_same_key(self):
        salt = os.urandom(16)
        assert derive_key("correct horse", salt) == derive_key("correct horse", salt)

    def test_different_salt_different_key(self):
        assert derive_key("pw", b"a" * 16) != derive_key("pw", b"b" * 16)

    def test_key_length(self):
        assert len(derive_key("pw", os.urandom(16))) == 32
