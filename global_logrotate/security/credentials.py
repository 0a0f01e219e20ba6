"""Encryption password resolution.

Sources are tried in a fixed order and the first accepted password wins:

    1. process cache        (trusted)
    2. ENCRYPT_PASSWORD     (trusted, operator placed it in a config file)
    3. credentials.ini      (checked against ENCRYPT_PASSWORD_HASH if set)
    4. $LOGROTATE_PASSWORD  (checked against ENCRYPT_PASSWORD_HASH if set)
    5. interactive prompt   (checked against ENCRYPT_PASSWORD_HASH if set)

A hash mismatch on sources 3 and 4 falls through to the next source. A
mismatch at the prompt ends resolution with an empty password. Without a
configured hash, the first password found is accepted as-is.
"""

import getpass
import hashlib
import hmac
import logging
import os
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from global_logrotate.config import defaults
from global_logrotate.config.settings import iter_key_values

logger = logging.getLogger(__name__)


def password_hash(password: str) -> str:
    """Hex SHA-256 digest used for ENCRYPT_PASSWORD_HASH."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def matches_hash(password: str, expected_hash: str) -> bool:
    return hmac.compare_digest(password_hash(password), expected_hash.strip().lower())


def credentials_file_path() -> Path:
    return Path.home() / defaults.CREDENTIALS_RELPATH


def read_credentials_password(path: str | Path | None = None) -> str:
    """Return the password stored in the user's credentials file, or ""."""
    path = Path(path) if path else credentials_file_path()
    try:
        for key, value in iter_key_values(str(path)):
            if key in defaults.CREDENTIALS_KEYS:
                return value
    except OSError:
        return ""
    return ""


def save_credentials_password(password: str, path: str | Path | None = None) -> Path:
    """Write the plaintext password to an owner-only credentials file."""
    path = Path(path) if path else credentials_file_path()
    path.parent.mkdir(parents=True, exist_ok=True, mode=defaults.CREDENTIALS_DIR_MODE)

    content = (
        "# Global Logrotate Credentials\n"
        f"# Generated: {datetime.now().strftime(defaults.LOG_DATE_FORMAT)}\n"
        "# This file contains your encryption password\n"
        "# Keep this file secure (chmod 600)\n"
        "\n"
        f"LOGROTATE_PASSWORD = {password}\n"
    )
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                 defaults.CREDENTIALS_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    # An existing file keeps its old mode through O_CREAT
    os.chmod(str(path), defaults.CREDENTIALS_FILE_MODE)
    return path


def read_password(prompt: str) -> str:
    """Read a password without echo on a TTY, visibly otherwise."""
    if sys.stdin is not None and sys.stdin.isatty():
        return getpass.getpass(prompt)
    print(prompt, end="", flush=True)
    line = sys.stdin.readline() if sys.stdin is not None else ""
    if not line:
        raise EOFError("no input available")
    return line.strip()


@dataclass(frozen=True)
class CandidatePassword:
    value: str
    source: str
    verified: bool


class CredentialResolver:
    """Resolve the encryption password once and cache it for the run."""

    def __init__(
        self,
        config,
        prompt_fn: Callable[[str], str] = read_password,
        prompt_text: str = "Enter encryption password: ",
        environ: dict | None = None,
        credentials_path: str | Path | None = None,
    ):
        self.expected_hash = config.encrypt_password_hash
        self.config_password = config.encrypt_password
        self.prompt_fn = prompt_fn
        self.prompt_text = prompt_text
        self.environ = os.environ if environ is None else environ
        self.credentials_path = credentials_path
        self._cached = ""
        self._resolved = False
        self._lock = threading.Lock()
        self._strategies = [
            self._from_config,
            self._from_credentials_file,
            self._from_environment,
            self._from_prompt,
        ]

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _from_config(self) -> CandidatePassword | None:
        if self.config_password:
            return CandidatePassword(self.config_password, "config", verified=True)
        return None

    def _from_credentials_file(self) -> CandidatePassword | None:
        value = read_credentials_password(self.credentials_path)
        if value:
            return CandidatePassword(value, "credentials file", verified=False)
        return None

    def _from_environment(self) -> CandidatePassword | None:
        value = self.environ.get(defaults.PASSWORD_ENV_VAR, "")
        if value:
            return CandidatePassword(value, "environment variable", verified=False)
        return None

    def _from_prompt(self) -> CandidatePassword | None:
        try:
            value = self.prompt_fn(self.prompt_text)
        except (EOFError, OSError) as exc:
            print(f"Error reading password: {exc}", file=sys.stderr)
            logger.error("Error reading password: %s", exc)
            return None
        return CandidatePassword(value, "prompt", verified=False)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _report_mismatch(self, source: str):
        if source == "credentials file":
            logger.debug("Password from credentials file does not match hash")
        elif source == "environment variable":
            print(f"Warning: {defaults.PASSWORD_ENV_VAR} does not match configured hash",
                  file=sys.stderr)
            logger.error("%s environment variable does not match configured hash",
                           defaults.PASSWORD_ENV_VAR)
        else:
            print("Error: Password does not match configured hash", file=sys.stderr)
            logger.error("Entered password does not match configured hash")

    def _accept(self, candidate: CandidatePassword) -> bool:
        if candidate.verified or not self.expected_hash:
            return True
        if matches_hash(candidate.value, self.expected_hash):
            return True
        self._report_mismatch(candidate.source)
        return False

    def resolve(self) -> str:
        """Return the password, or "" when no source produced one.

        Sources are consulted on the first call only; the outcome, including
        failure, is reused for the rest of the process.
        """
        with self._lock:
            if not self._resolved:
                self._cached = self._first_accepted()
                self._resolved = True
            return self._cached

    def _first_accepted(self) -> str:
        for strategy in self._strategies:
            candidate = strategy()
            final = strategy == self._from_prompt
            if candidate is None or not candidate.value:
                if final:
                    return ""
                continue
            if self._accept(candidate):
                logger.debug("Password loaded from %s%s", candidate.source,
                             "" if self.expected_hash or candidate.verified
                             else " (no hash verification)")
                return candidate.value
            if final:
                return ""
        return ""
