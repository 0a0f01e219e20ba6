"""Per-run context: the run log writer and the credential cache.

A RunContext is created once at process start and passed to every component
that logs or needs the encryption password. Closing it detaches and closes
the file handler.

    with RunContext(cfg) as ctx:
        engine = RotationEngine(cfg, ctx)
        engine.rotate(candidates)
"""

import logging
import os
import sys
from pathlib import Path

from global_logrotate.config import defaults
from global_logrotate.config.settings import EffectiveConfig
from global_logrotate.security.credentials import CredentialResolver

PACKAGE_LOGGER = "global_logrotate"

# Operator messages go to stderr explicitly; without a run log, records are dropped
logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


def open_run_log(log_file: str, level: int) -> logging.FileHandler:
    """Create the append-mode run log handler."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True,
                                mode=defaults.LOG_DIR_MODE)
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        defaults.LOG_LINE_FORMAT, datefmt=defaults.LOG_DATE_FORMAT,
    ))
    return handler


class RunContext:
    """Owns the run log handler and the process-lifetime password cache."""

    def __init__(self, config: EffectiveConfig, file_log: bool = True,
                 resolver: CredentialResolver | None = None):
        self.config = config
        self.credentials = resolver or CredentialResolver(config)
        self._handler: logging.FileHandler | None = None
        self._saved_level = logging.NOTSET
        if file_log:
            self._open_log()

    def _open_log(self):
        try:
            handler = open_run_log(self.config.log_file, self.config.log_level)
        except OSError as exc:
            print(f"Warning: Could not initialize logging: {exc}", file=sys.stderr)
            return
        pkg_logger = logging.getLogger(PACKAGE_LOGGER)
        self._saved_level = pkg_logger.level
        pkg_logger.addHandler(handler)
        pkg_logger.setLevel(self.config.log_level)
        self._handler = handler
        logger.info("%s v%s started", defaults.PROG_NAME, defaults.VERSION)
        logger.debug("Log level: %s, Log file: %s",
                     logging.getLevelName(self.config.log_level),
                     os.path.abspath(self.config.log_file))

    @property
    def has_file_log(self) -> bool:
        return self._handler is not None

    def resolve_password(self) -> str:
        return self.credentials.resolve()

    def close(self):
        if self._handler is not None:
            pkg_logger = logging.getLogger(PACKAGE_LOGGER)
            pkg_logger.removeHandler(self._handler)
            pkg_logger.setLevel(self._saved_level)
            self._handler.close()
            self._handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
