"""
Crucible Secrets - Secret values, encryption and password lookup.
"""

from crucible.secrets.encrypt import (
    Encrypted,
    aes256_decrypt,
    decrypt_with_key,
    encrypt,
    libsodium_decrypt,
    libsodium_encrypt,
)
from crucible.secrets.secret import Secret, is_secret, secret
from crucible.secrets.store import PasswordStore, get_password_store, reset_password_store

__all__ = [
    "Encrypted",
    "PasswordStore",
    "Secret",
    "aes256_decrypt",
    "decrypt_with_key",
    "encrypt",
    "get_password_store",
    "is_secret",
    "libsodium_decrypt",
    "libsodium_encrypt",
    "reset_password_store",
    "secret",
]
