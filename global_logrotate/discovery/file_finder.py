"""Candidate discovery: recursive walk, glob include and exclude, size ordering."""

import fnmatch
import logging
import os
from dataclasses import dataclass

from global_logrotate.config.settings import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A matched log file awaiting rotation."""
    path: str
    size: int


def load_exclude_patterns(exclude_file: str | None, echo: bool = True) -> list[str]:
    """Read glob patterns from an exclusion file.

    Blank lines and ``#`` comments are ignored. A configured but missing file
    is a fatal configuration error.
    """
    if not exclude_file:
        return []
    try:
        with open(exclude_file, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError:
        raise ConfigError(f"Exclude file '{exclude_file}' does not exist.") from None

    if echo:
        print(f"Excluding patterns from: {exclude_file}")
    logger.info("Loading exclude patterns from: %s", exclude_file)

    patterns = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if echo:
            print(f"  - {line}")
        logger.debug("Exclude pattern: %s", line)
        patterns.append(line)
    return patterns


def is_excluded(path: str, patterns: list[str]) -> bool:
    """True if any pattern matches the full path or the base name."""
    name = os.path.basename(path)
    for pattern in patterns:
        if fnmatch.fnmatchcase(path, pattern):
            logger.debug("Excluding file (path match): %s", path)
            return True
        if fnmatch.fnmatchcase(name, pattern):
            logger.debug("Excluding file (name match): %s", path)
            return True
    return False


def find_log_files(
    log_dir: str,
    pattern: str,
    exclude_patterns: list[str] | None = None,
) -> list[Candidate]:
    """Walk ``log_dir`` and return matching files, smallest first.

    Entries that cannot be read are logged and skipped.
    """
    exclude_patterns = exclude_patterns or []
    logger.debug("Searching for files in %s with pattern %s", log_dir, pattern)

    def on_error(exc: OSError):
        if exc.filename == log_dir:
            logger.error("Error walking directory %s: %s", log_dir, exc)
        else:
            logger.debug("Error accessing path %s: %s", exc.filename, exc)

    files: list[Candidate] = []
    for dirpath, _dirnames, filenames in os.walk(log_dir, onerror=on_error):
        for name in filenames:
            if not fnmatch.fnmatchcase(name, pattern):
                continue
            path = os.path.abspath(os.path.join(dirpath, name))
            if is_excluded(path, exclude_patterns):
                continue
            try:
                st = os.stat(path, follow_symlinks=False)
            except OSError as exc:
                logger.debug("Error accessing path %s: %s", path, exc)
                continue
            logger.debug("Found file: %s (size: %d)", path, st.st_size)
            files.append(Candidate(path=path, size=st.st_size))

    files.sort(key=lambda c: c.size)
    return files
