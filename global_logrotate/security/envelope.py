"""Encrypted archive envelope.

Layout (all fields fixed-size except the ciphertext)::

    MAGIC(4) | SALT(32) | NONCE(12) | CIPHERTEXT (+16-byte GCM tag)

The key is derived from the password and the per-archive salt with
PBKDF2-HMAC-SHA256 (100k iterations) and used for AES-256-GCM without
associated data. Salt and nonce are random for every call, so encrypting
the same bytes twice never yields the same envelope.
"""

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from global_logrotate.config.defaults import (
    ENVELOPE_MAGIC,
    GCM_TAG_SIZE,
    KDF_ITERATIONS,
    KEY_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
)

logger = logging.getLogger(__name__)

HEADER_SIZE = len(ENVELOPE_MAGIC) + SALT_SIZE + NONCE_SIZE
MIN_ENVELOPE_SIZE = HEADER_SIZE + GCM_TAG_SIZE


class DecryptionError(Exception):
    """Envelope could not be opened (malformed, wrong password or corrupt)."""


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 256-bit AES key from a password and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: bytes, password: str) -> bytes:
    """Seal ``plaintext`` into a new envelope."""
    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    key = derive_key(password, salt)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return ENVELOPE_MAGIC + salt + nonce + ciphertext


def decrypt(envelope: bytes, password: str) -> bytes:
    """Open an envelope produced by :func:`encrypt`.

    A wrong password and a tampered ciphertext raise the same error.
    """
    if len(envelope) < MIN_ENVELOPE_SIZE:
        raise DecryptionError("encrypted data too short")

    magic_len = len(ENVELOPE_MAGIC)
    if envelope[:magic_len] != ENVELOPE_MAGIC:
        raise DecryptionError("invalid encrypted file format")

    offset = magic_len
    salt = envelope[offset:offset + SALT_SIZE]
    offset += SALT_SIZE
    nonce = envelope[offset:offset + NONCE_SIZE]
    offset += NONCE_SIZE
    ciphertext = envelope[offset:]

    key = derive_key(password, salt)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        logger.debug("GCM tag verification failed")
        raise DecryptionError(
            "decryption failed - incorrect password or corrupted file"
        ) from None
