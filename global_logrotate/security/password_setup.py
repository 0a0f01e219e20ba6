"""First-time password setup and password reset.

Both flows store the SHA-256 hash of the password in the system drop-in
directory (``encryption.conf``) and the plaintext in the invoking user's
credentials file, which is what lets later runs resolve the password
without prompting.
"""

import logging
import os
import secrets
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable

from global_logrotate.config import defaults
from global_logrotate.config.settings import get_str, load_config_files
from global_logrotate.security.credentials import (
    credentials_file_path,
    matches_hash,
    password_hash,
    read_password,
    save_credentials_password,
)

logger = logging.getLogger(__name__)


class PasswordSetupError(Exception):
    """Setup or reset could not complete."""


def generate_random_password(length: int = defaults.GENERATED_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(defaults.PASSWORD_CHARSET) for _ in range(length))


def mask_password(password: str) -> str:
    """Show only the first and last character."""
    if len(password) <= 2:
        return "****"
    return password[0] + "*" * (len(password) - 2) + password[-1]


def save_password_hash(hash_hex: str, dropin_dir: str | None = None) -> Path:
    """Write ENCRYPT_PASSWORD_HASH into ``<dropin>/encryption.conf``."""
    dropin = Path(dropin_dir or defaults.CONFIG_DROPIN_DIR)
    dropin.mkdir(parents=True, exist_ok=True, mode=0o755)
    path = dropin / defaults.ENCRYPTION_CONF_NAME
    content = (
        "# Global Logrotate Encryption Configuration\n"
        f"# Generated: {datetime.now().strftime(defaults.LOG_DATE_FORMAT)}\n"
        "# DO NOT share this file or commit to version control\n"
        "\n"
        "# Enable encryption by default (optional)\n"
        "# ENCRYPT = true\n"
        "\n"
        "# SHA-256 hash of encryption password\n"
        f"ENCRYPT_PASSWORD_HASH = {hash_hex}\n"
    )
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    return path


class PasswordSetup:
    """Interactive flows behind ``--pass-gen`` and ``--pass-reset``.

    ``input_fn`` reads the menu choice and ``password_fn`` reads secrets; both
    default to the terminal and are replaced in tests.
    """

    def __init__(
        self,
        main_config: str | None = None,
        dropin_dir: str | None = None,
        credentials_path: str | Path | None = None,
        input_fn: Callable[[str], str] = input,
        password_fn: Callable[[str], str] = read_password,
        out=None,
    ):
        self.main_config = main_config
        self.dropin_dir = dropin_dir or defaults.CONFIG_DROPIN_DIR
        self.credentials_path = Path(credentials_path) if credentials_path \
            else credentials_file_path()
        self.input_fn = input_fn
        self.password_fn = password_fn
        self.out = out or sys.stdout

    def _say(self, text: str = ""):
        print(text, file=self.out)

    def _configured_hash(self) -> str:
        values = load_config_files(self.main_config, self.dropin_dir)
        return get_str(values, "ENCRYPT_PASSWORD_HASH", "")

    def _read_secret(self, prompt: str) -> str:
        try:
            return self.password_fn(prompt)
        except (EOFError, OSError) as exc:
            raise PasswordSetupError(f"Error reading password: {exc}") from exc

    def _choose_password(self, label: str) -> str:
        self._say(f"Choose {label}password option:")
        self._say("  1) Generate random password (recommended)")
        self._say("  2) Enter custom password")
        self._say()
        try:
            choice = self.input_fn("Select [1/2]: ").strip()
        except EOFError:
            choice = ""
        self._say()

        if choice != "2":
            return generate_random_password()

        password = self._read_secret("Enter new password: ")
        if len(password) < defaults.MIN_PASSWORD_LENGTH:
            raise PasswordSetupError(
                f"Password must be at least {defaults.MIN_PASSWORD_LENGTH} characters")
        confirm = self._read_secret(f"Confirm {label}password: ")
        if password != confirm:
            raise PasswordSetupError("Passwords do not match")
        return password

    def _store(self, password: str) -> Path:
        try:
            conf_path = save_password_hash(password_hash(password), self.dropin_dir)
        except OSError as exc:
            raise PasswordSetupError(f"Error saving config: {exc}") from exc
        try:
            save_credentials_password(password, self.credentials_path)
        except OSError as exc:
            print(f"Warning: Could not save to credentials file: {exc}", file=sys.stderr)
            logger.warning("Could not save credentials file %s: %s",
                           self.credentials_path, exc)
        return conf_path

    def generate(self) -> str | None:
        """First-time setup. Returns the new password, or None if one exists."""
        self._say("=== Global Logrotate - Password Setup ===")
        self._say()

        if self._configured_hash():
            self._say("A password is already configured.")
            self._say()
            self._say("To change the existing password, use:")
            self._say(f"  {defaults.PROG_NAME} --pass-reset")
            return None

        password = self._choose_password("")
        conf_path = self._store(password)
        logger.info("Encryption password configured (hash in %s)", conf_path)

        self._say("PASSWORD SETUP COMPLETE")
        self._say(f"  Password: {mask_password(password)}")
        self._say("  Password saved to credentials file. No need to enter it again.")
        self._say("  Keep your credentials file secure!")
        self._say()
        self._say("Password stored in:")
        self._say(f"  {self.credentials_path}")
        self._say()
        self._say("Usage:")
        self._say(f"  {defaults.PROG_NAME} --encrypt -D -p /var/log/apps")
        self._say(f"  {defaults.PROG_NAME} --read /path/to/file.gz.enc")
        self._say()
        self._say(f"Config saved to: {conf_path}")
        return password

    def reset(self) -> str | None:
        """Replace the configured password after verifying the current one.

        Returns the new password, or None when nothing was configured.
        """
        self._say("=== Global Logrotate - Password Reset ===")
        self._say()

        existing_hash = self._configured_hash()
        if not existing_hash:
            self._say("No existing password found. Use --pass-gen for initial setup.")
            return None

        current = self._read_secret("Enter current password: ")
        if not matches_hash(current, existing_hash):
            raise PasswordSetupError("Current password is incorrect")

        self._say()
        new_password = self._choose_password("new ")
        self._store(new_password)
        logger.info("Encryption password reset")

        self._say("PASSWORD RESET COMPLETE")
        self._say(f"  New Password: {mask_password(new_password)}")
        self._say("  WARNING: Previously encrypted files will still need the OLD")
        self._say("  password to decrypt. Only new files will use this password.")
        self._say()
        self._say("  Password saved to credentials file. No need to enter it again.")
        self._say()
        self._say("Password stored in:")
        self._say(f"  {self.credentials_path}")
        return new_password
