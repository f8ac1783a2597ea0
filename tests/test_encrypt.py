"""
Tests for secret encryption.

Covers the AES-256-GCM scheme, the legacy secretbox scheme and the
format detection of decrypt_with_key.
"""

import json

import pytest

from crucible.core.exceptions import DecryptionError
from crucible.secrets.encrypt import (
    aes256_decrypt,
    decrypt_with_key,
    encrypt,
    libsodium_decrypt,
    libsodium_encrypt,
)


class TestAes256:
    """Tests for the current scheme."""

    @pytest.mark.asyncio
    async def test_payload_shape(self):
        """Payload carries version and base64 fields."""
        payload = await encrypt("hunter2", "pw")
        assert payload["version"] == "v1"
        assert set(payload) == {"version", "ciphertext", "iv", "salt", "tag"}
        assert "hunter2" not in json.dumps(payload)

    @pytest.mark.asyncio
    async def test_decrypt(self):
        """The right password restores the value."""
        payload = await encrypt("hunter2", "pw")
        assert await aes256_decrypt(payload, "pw") == "hunter2"

    @pytest.mark.asyncio
    async def test_fresh_salt_and_nonce(self):
        """Encrypting twice never produces the same payload."""
        first = await encrypt("same", "pw")
        second = await encrypt("same", "pw")
        assert first["salt"] != second["salt"]
        assert first["iv"] != second["iv"]

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        """A wrong password raises DecryptionError."""
        payload = await encrypt("hunter2", "pw")
        with pytest.raises(DecryptionError):
            await aes256_decrypt(payload, "wrong")

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        """Missing fields raise DecryptionError."""
        with pytest.raises(DecryptionError):
            await aes256_decrypt({"version": "v1"}, "pw")


class TestLegacy:
    """Tests for the legacy secretbox scheme."""

    @pytest.mark.asyncio
    async def test_decrypt(self):
        """Legacy payloads decrypt with the same password."""
        payload = await libsodium_encrypt("old-secret", "pw")
        assert isinstance(payload, str)
        assert await libsodium_decrypt(payload, "pw") == "old-secret"

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        """A wrong password raises DecryptionError."""
        payload = await libsodium_encrypt("old-secret", "pw")
        with pytest.raises(DecryptionError):
            await libsodium_decrypt(payload, "wrong")


class TestDecryptWithKey:
    """Tests for format detection."""

    @pytest.mark.asyncio
    async def test_structured_dict(self):
        """A structured dict is decrypted with AES-256-GCM."""
        payload = await encrypt("value", "pw")
        assert await decrypt_with_key(payload, "pw") == "value"

    @pytest.mark.asyncio
    async def test_structured_json_string(self):
        """A JSON string of the structured form is accepted."""
        payload = await encrypt("value", "pw")
        assert await decrypt_with_key(json.dumps(payload), "pw") == "value"

    @pytest.mark.asyncio
    async def test_opaque_string_uses_legacy_scheme(self):
        """Opaque strings fall back to the legacy scheme."""
        payload = await libsodium_encrypt("value", "pw")
        assert await decrypt_with_key(payload, "pw") == "value"

    @pytest.mark.asyncio
    async def test_structured_wrong_password_does_not_fall_back(self):
        """Structured payloads with a wrong password fail as AES errors."""
        payload = await encrypt("value", "pw")
        with pytest.raises(DecryptionError, match="aes-256-gcm"):
            await decrypt_with_key(payload, "wrong")
