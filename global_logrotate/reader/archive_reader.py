"""Read a rotated archive back to plain text.

The format is chosen from the file suffix:

    .gz.enc  decrypt, then gunzip
    .enc     decrypt only
    .gz      gunzip only
    other    returned unchanged

Legacy ``.gz.gpg`` archives are refused.
"""

import logging
import os
import zlib

from global_logrotate.rotation.archive import decompress
from global_logrotate.security import envelope
from global_logrotate.security.credentials import CredentialResolver

logger = logging.getLogger(__name__)


class ReadError(Exception):
    """The archive could not be read or decoded."""


def _decrypt(data: bytes, resolver: CredentialResolver) -> bytes:
    password = resolver.resolve()
    if not password:
        raise ReadError("no password provided for decryption")
    try:
        return envelope.decrypt(data, password)
    except envelope.DecryptionError as exc:
        raise ReadError(str(exc)) from None


def _gunzip(data: bytes) -> bytes:
    try:
        return decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise ReadError(f"invalid gzip data: {exc}") from None


def read_archive(path: str, resolver: CredentialResolver) -> bytes:
    """Return the original log content stored in ``path``."""
    if not os.path.isfile(path):
        raise ReadError(f"file not found: {path}")
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise ReadError(str(exc)) from None

    if path.endswith(".gz.enc"):
        logger.debug("Reading encrypted gzip archive %s", path)
        return _gunzip(_decrypt(data, resolver))
    if path.endswith(".enc"):
        return _decrypt(data, resolver)
    if path.endswith(".gz.gpg"):
        raise ReadError(
            "legacy GPG format (.gz.gpg) is no longer supported. "
            "Please use gpg command directly to decrypt"
        )
    if path.endswith(".gz"):
        return _gunzip(data)
    return data
