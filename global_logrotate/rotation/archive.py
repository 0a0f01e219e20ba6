"""Archive naming, compression and durable writes.

Archive layout::

    <old-logs-root>/
    +-- 20250201/
    |   +-- app.log.20250201.gz
    |   +-- secure.log.20250201.gz.enc
    +-- 20250202/
        +-- ...

``<old-logs-root>`` is the configured OLD_LOGS_DIR, or ``old_logs`` next to
the rotated file.
"""

import gzip
import logging
import os
import tempfile
from dataclasses import dataclass

from global_logrotate.config import defaults
from global_logrotate.config.settings import EffectiveConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveTarget:
    directory: str
    path: str

    def exists(self) -> bool:
        return os.path.exists(self.path)


def archive_target(source_path: str, cfg: EffectiveConfig) -> ArchiveTarget:
    """Derive the archive location for ``source_path`` under ``cfg``."""
    if cfg.old_logs_dir:
        root = cfg.old_logs_dir
    else:
        root = os.path.join(os.path.dirname(source_path), defaults.OLD_LOGS_DIRNAME)
    directory = os.path.join(root, cfg.archive_day)
    name = f"{os.path.basename(source_path)}.{cfg.date_suffix}{cfg.archive_extension}"
    return ArchiveTarget(directory=directory, path=os.path.join(directory, name))


def compress(data: bytes) -> bytes:
    return gzip.compress(data)


def decompress(data: bytes) -> bytes:
    return gzip.decompress(data)


def write_archive(path: str, data: bytes, mode: int) -> None:
    """Write ``data`` to ``path`` so it is either complete or absent.

    The bytes go to a temporary file in the same directory, are fsync'd,
    and the file is renamed into place.
    """
    directory = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory,
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise

    try:
        dir_fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        logger.debug("Could not fsync directory %s", directory)
    finally:
        os.close(dir_fd)


def format_size(num_bytes: int) -> str:
    """Human-readable size using 1024-based units."""
    units = (("TB", 1024 ** 4), ("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024))
    for label, factor in units:
        if abs(num_bytes) >= factor:
            return f"{num_bytes / factor:.2f} {label}"
    return f"{num_bytes} B"
