"""
Crucible Secrets - Symmetric encryption of secret values.

Current scheme: AES-256-GCM with a scrypt-derived key (fresh salt and nonce
per call). Legacy scheme (read-only support for old state files): libsodium
secretbox, key = BLAKE2b-256(passphrase), payload = base64(nonce || box).

Key derivation is CPU bound, so it runs in a worker thread to keep the event
loop responsive.
"""

from __future__ import annotations

import asyncio
import base64
import json
import os
from typing import Any, TypedDict

import nacl.encoding
import nacl.exceptions
import nacl.hash
import nacl.secret
import nacl.utils
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from crucible.config.constants import (
    AES_IV_LEN,
    AES_KEY_LEN,
    AES_TAG_LEN,
    ENCRYPTION_VERSION,
    SCRYPT_N,
    SCRYPT_P,
    SCRYPT_R,
    SCRYPT_SALT_LEN,
)
from crucible.core.exceptions import DecryptionError


class Encrypted(TypedDict):
    """Structured AES-256-GCM payload; every field except version is base64."""

    version: str
    ciphertext: str
    iv: str
    salt: str
    tag: str


_ENCRYPTED_FIELDS = frozenset(Encrypted.__annotations__)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _derive_scrypt_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=AES_KEY_LEN, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


async def derive_scrypt_key(passphrase: str, salt: bytes) -> bytes:
    return await asyncio.to_thread(_derive_scrypt_key, passphrase, salt)


async def encrypt(value: str, passphrase: str) -> Encrypted:
    """Encrypt ``value`` with AES-256-GCM and a scrypt-derived key."""
    salt = os.urandom(SCRYPT_SALT_LEN)
    iv = os.urandom(AES_IV_LEN)
    key = await derive_scrypt_key(passphrase, salt)

    sealed = AESGCM(key).encrypt(iv, value.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AES_TAG_LEN], sealed[-AES_TAG_LEN:]

    return {
        "version": ENCRYPTION_VERSION,
        "ciphertext": _b64(ciphertext),
        "iv": _b64(iv),
        "salt": _b64(salt),
        "tag": _b64(tag),
    }


async def aes256_decrypt(parts: Encrypted | dict[str, Any], passphrase: str) -> str:
    """
    Decrypt a structured AES-256-GCM payload.

    Raises:
        DecryptionError: On a wrong passphrase or tampered payload.
    """
    try:
        salt = base64.b64decode(parts["salt"])
        iv = base64.b64decode(parts["iv"])
        ciphertext = base64.b64decode(parts["ciphertext"])
        tag = base64.b64decode(parts["tag"])
    except (KeyError, ValueError) as e:
        raise DecryptionError("aes-256-gcm", f"malformed payload ({e})") from e

    key = await derive_scrypt_key(passphrase, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("aes-256-gcm") from e
    return plaintext.decode("utf-8")


def _legacy_key(passphrase: str) -> bytes:
    return nacl.hash.blake2b(
        passphrase.encode("utf-8"),
        digest_size=nacl.secret.SecretBox.KEY_SIZE,
        encoder=nacl.encoding.RawEncoder,
    )


async def libsodium_encrypt(value: str, passphrase: str) -> str:
    """Encrypt with the legacy secretbox scheme (kept for compatibility tests)."""
    box = nacl.secret.SecretBox(_legacy_key(passphrase))
    nonce = nacl.utils.random(nacl.secret.SecretBox.NONCE_SIZE)
    combined = box.encrypt(value.encode("utf-8"), nonce)
    return _b64(bytes(combined))


async def libsodium_decrypt(encrypted_value: str, passphrase: str) -> str:
    """
    Decrypt a legacy secretbox payload.

    Raises:
        DecryptionError: On a wrong passphrase or malformed payload.
    """
    box = nacl.secret.SecretBox(_legacy_key(passphrase))
    try:
        combined = base64.b64decode(encrypted_value)
        plaintext = box.decrypt(combined)
    except (ValueError, nacl.exceptions.CryptoError) as e:
        raise DecryptionError("secretbox") from e
    return plaintext.decode("utf-8")


def _as_structured(value: str | dict[str, Any]) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except ValueError:
        return None
    if isinstance(parsed, dict) and _ENCRYPTED_FIELDS <= parsed.keys():
        return parsed
    return None


async def decrypt_with_key(value: str | Encrypted | dict[str, Any], passphrase: str) -> str:
    """
    Decrypt either payload format without a format flag.

    Structured input (a dict, or a JSON document of one) is treated as
    AES-256-GCM; only opaque strings fall back to the legacy scheme.
    """
    structured = _as_structured(value)
    if structured is not None:
        return await aes256_decrypt(structured, passphrase)
    return await libsodium_decrypt(value, passphrase)  # type: ignore[arg-type]
