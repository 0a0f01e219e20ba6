"""Configuration loading and merging.

The effective configuration for one run is layered as:

    defaults  <  global.conf  <  global.conf.d/*.conf (sorted)  <  command line

Config files are plain ``KEY = value`` lines. Blank lines and lines starting
with ``#`` or ``;`` are ignored, and surrounding quotes are stripped from
values.
"""

import glob
import logging
import os
from dataclasses import dataclass
from datetime import datetime

from global_logrotate.config import defaults

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "error": logging.ERROR,
    "0": logging.ERROR,
    "info": logging.INFO,
    "1": logging.INFO,
    "debug": logging.DEBUG,
    "2": logging.DEBUG,
}


class ConfigError(Exception):
    """Fatal configuration problem detected before any file is touched."""


def iter_key_values(path: str):
    """Yield ``(key, value)`` pairs from a ``KEY = value`` file.

    Raises OSError if the file cannot be opened.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith(("#", ";")):
                continue
            idx = line.find("=")
            if idx <= 0:
                continue
            key = line[:idx].strip()
            value = line[idx + 1:].strip().strip("\"'")
            yield key, value


def parse_config_file(path: str, into: dict[str, str]) -> dict[str, str]:
    """Merge one config file into ``into``. Unreadable files are ignored."""
    try:
        for key, value in iter_key_values(path):
            into[key] = value
    except OSError:
        return into
    return into


def load_config_files(
    main_file: str | None = None,
    dropin_dir: str | None = None,
) -> dict[str, str]:
    """Load the main config file followed by its drop-in directory."""
    main_file = main_file or defaults.MAIN_CONFIG_FILE
    dropin_dir = dropin_dir or defaults.CONFIG_DROPIN_DIR

    values: dict[str, str] = {}
    parse_config_file(main_file, values)
    for path in sorted(glob.glob(os.path.join(dropin_dir, "*.conf"))):
        parse_config_file(path, values)
    return values


def get_str(values: dict, key: str, default: str) -> str:
    val = values.get(key)
    return val if val else default


def get_int(values: dict, key: str, default: int) -> int:
    val = values.get(key)
    if val:
        try:
            return int(val)
        except ValueError:
            pass
    return default


def get_bool(values: dict, key: str, default: bool) -> bool:
    if key in values:
        return values[key].lower() in ("true", "yes", "1")
    return default


def parse_log_level(value: str | None) -> int:
    """Map ``error``/``info``/``debug`` (or 0/1/2) to a logging level."""
    return LOG_LEVELS.get((value or "").lower(), logging.INFO)


@dataclass(frozen=True)
class EffectiveConfig:
    """Immutable snapshot of the merged configuration for one run."""
    log_dir: str
    pattern: str
    exclude_file: str
    parallel_jobs: int
    dry_run: bool
    date_format: str
    date_suffix: str
    archive_day: str
    old_logs_dir: str
    encrypt: bool
    encrypt_password: str
    encrypt_password_hash: str
    log_file: str
    log_level: int
    custom_path: bool = False

    @property
    def parallel(self) -> bool:
        return self.parallel_jobs > 1

    @property
    def archive_extension(self) -> str:
        if self.encrypt:
            return defaults.GZ_EXT + defaults.ENC_EXT
        return defaults.GZ_EXT


def resolve_config(
    values: dict[str, str],
    *,
    log_dir: str | None = None,
    pattern: str | None = None,
    exclude_file: str | None = None,
    parallel_jobs: int | None = None,
    dry_run: bool = False,
    old_logs_dir: str | None = None,
    encrypt: bool = False,
    log_file: str | None = None,
    log_level: str | None = None,
    full_time: bool = False,
    date_only: bool = False,
    now: datetime | None = None,
) -> EffectiveConfig:
    """Apply command-line overrides on top of file values.

    ``None`` means "not given on the command line". Boolean switches can
    only turn a setting on, never off.
    """
    now = now or datetime.now()

    date_format = get_str(values, "DATE_FORMAT", "date")
    if full_time:
        suffix_fmt = defaults.FULL_SUFFIX_FORMAT
    elif date_only:
        suffix_fmt = defaults.DATE_ONLY_SUFFIX_FORMAT
    elif date_format == "full":
        suffix_fmt = defaults.FULL_SUFFIX_FORMAT
    else:
        suffix_fmt = defaults.DATE_ONLY_SUFFIX_FORMAT

    resolved_dir = log_dir if log_dir is not None else get_str(
        values, "LOG_DIR", defaults.DEFAULT_LOG_DIR)
    custom_path = resolved_dir != defaults.DEFAULT_LOG_DIR
    if len(resolved_dir) > 1:
        resolved_dir = resolved_dir.rstrip("/")

    if log_level:
        level = parse_log_level(log_level)
    else:
        level = parse_log_level(
            get_str(values, "LOG_LEVEL", defaults.DEFAULT_LOG_LEVEL))

    cfg = EffectiveConfig(
        log_dir=resolved_dir,
        pattern=pattern if pattern is not None else get_str(
            values, "PATTERN", defaults.DEFAULT_PATTERN),
        exclude_file=exclude_file if exclude_file is not None else get_str(
            values, "EXCLUDE_FILE", ""),
        parallel_jobs=parallel_jobs if parallel_jobs is not None else get_int(
            values, "PARALLEL_JOBS", defaults.DEFAULT_JOBS),
        dry_run=dry_run or get_bool(values, "DRY_RUN", False),
        date_format=date_format,
        date_suffix=now.strftime(suffix_fmt),
        archive_day=now.strftime(defaults.ARCHIVE_DAY_FORMAT),
        old_logs_dir=old_logs_dir if old_logs_dir is not None else get_str(
            values, "OLD_LOGS_DIR", ""),
        encrypt=encrypt or get_bool(values, "ENCRYPT", False),
        encrypt_password=get_str(values, "ENCRYPT_PASSWORD", ""),
        encrypt_password_hash=get_str(values, "ENCRYPT_PASSWORD_HASH", ""),
        log_file=log_file if log_file is not None else get_str(
            values, "LOG_FILE", defaults.DEFAULT_LOG_FILE),
        log_level=level,
        custom_path=custom_path,
    )
    logger.debug("Resolved configuration: dir=%s pattern=%s jobs=%d",
                 cfg.log_dir, cfg.pattern, cfg.parallel_jobs)
    return cfg


def validate_for_rotation(cfg: EffectiveConfig) -> None:
    """Per-run checks that must pass before any file is touched."""
    if cfg.custom_path and not os.path.isdir(cfg.log_dir):
        raise ConfigError(f"Custom log path '{cfg.log_dir}' does not exist.")
    if cfg.encrypt and not cfg.encrypt_password and not cfg.encrypt_password_hash:
        raise ConfigError("--encrypt requires password to be configured")
