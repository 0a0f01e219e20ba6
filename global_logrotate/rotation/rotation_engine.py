"""Rotation engine.

Each candidate is archived to ``<old-logs-root>/<YYYYMMDD>/<name>.<suffix>.gz``
(``.gz.enc`` when encrypting) and then truncated in place, so a writer that
keeps its descriptor open continues appending to the now-empty file.

Failures are per file: one file's error is reported and the run moves on.
Every outcome is printed for the operator and written to the run log.

Only one rotation process per log directory is assumed. The "already
rotated" check is a plain existence test, not a lock.
"""

import logging
import os
import stat
import sys
import threading
import zlib
from dataclasses import dataclass
from datetime import datetime

from global_logrotate.config.settings import EffectiveConfig
from global_logrotate.diagnostics.open_handles import describe_holders, find_open_handles
from global_logrotate.discovery.file_finder import Candidate
from global_logrotate.rotation.archive import (
    archive_target,
    compress,
    format_size,
    write_archive,
)
from global_logrotate.runtime.context import RunContext
from global_logrotate.security import envelope

logger = logging.getLogger(__name__)

STATUS_ROTATED = "rotated"
STATUS_DRY_RUN = "dry_run"
STATUS_MISSING = "missing"
STATUS_EMPTY = "empty"
STATUS_ALREADY_ROTATED = "already_rotated"
STATUS_ERROR = "error"


@dataclass
class RotationResult:
    path: str
    status: str
    archive_path: str | None = None
    original_size: int = 0
    archived_size: int = 0
    error: str | None = None

    @property
    def compression_ratio(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return (1 - self.archived_size / self.original_size) * 100


def console_timestamp() -> str:
    return datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")


class RotationEngine:
    """Rotates candidates sequentially or with a bounded number of threads."""

    def __init__(self, config: EffectiveConfig, context: RunContext,
                 out=None, err=None):
        self.config = config
        self.context = context
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self._print_lock = threading.Lock()
        self._holders: dict[str, list[tuple[int, str]]] = {}

    # ------------------------------------------------------------------
    # Operator output
    # ------------------------------------------------------------------

    def _say(self, text: str):
        with self._print_lock:
            print(text, file=self.out, flush=True)

    def _fail(self, result: RotationResult, operator_msg: str, log_msg: str,
              *args) -> RotationResult:
        with self._print_lock:
            print(operator_msg, file=self.err, flush=True)
        logger.error(log_msg, *args)
        result.status = STATUS_ERROR
        result.error = operator_msg
        return result

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def rotate(self, candidates: list[Candidate]) -> list[RotationResult]:
        """Rotate every candidate and block until all are done."""
        if self.config.dry_run:
            self._holders = find_open_handles(c.path for c in candidates)

        if self.config.parallel:
            logger.debug("Using parallel rotation with %d jobs",
                         self.config.parallel_jobs)
            return self.rotate_parallel(candidates)
        logger.debug("Using sequential rotation")
        return self.rotate_sequential(candidates)

    def rotate_sequential(self, candidates: list[Candidate]) -> list[RotationResult]:
        return [self._run_one(c.path) for c in candidates]

    def rotate_parallel(self, candidates: list[Candidate]) -> list[RotationResult]:
        """One thread per candidate, at most ``parallel_jobs`` at a time.

        Results are returned in completion order.
        """
        slots = threading.BoundedSemaphore(max(1, self.config.parallel_jobs))
        results: list[RotationResult] = []
        results_lock = threading.Lock()
        threads: list[threading.Thread] = []

        def worker(path: str):
            try:
                result = self._run_one(path)
                with results_lock:
                    results.append(result)
            finally:
                slots.release()

        for candidate in candidates:
            slots.acquire()
            t = threading.Thread(
                target=worker,
                args=(candidate.path,),
                name=f"rotate-{os.path.basename(candidate.path)}",
            )
            threads.append(t)
            t.start()

        for t in threads:
            t.join()
        return results

    def _run_one(self, path: str) -> RotationResult:
        try:
            return self.rotate_file(path)
        except Exception as exc:
            with self._print_lock:
                print(f"Error rotating {path}: {exc}", file=self.err, flush=True)
            logger.exception("Unexpected error rotating %s", path)
            return RotationResult(path=path, status=STATUS_ERROR, error=str(exc))

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def rotate_file(self, path: str) -> RotationResult:
        """Archive and truncate one file."""
        cfg = self.config
        result = RotationResult(path=path, status=STATUS_ERROR)
        logger.debug("Processing file: %s", path)

        try:
            st = os.stat(path)
        except OSError:
            self._say(f"{console_timestamp()}: Skipping missing file: {path}")
            logger.error("Skipping missing file: %s", path)
            result.status = STATUS_MISSING
            return result
        if st.st_size == 0:
            self._say(f"{console_timestamp()}: Skipping empty file: {path}")
            logger.debug("Skipping empty file: %s", path)
            result.status = STATUS_EMPTY
            return result

        result.original_size = st.st_size
        uid, gid = st.st_uid, st.st_gid
        mode = stat.S_IMODE(st.st_mode)

        target = archive_target(path, cfg)
        result.archive_path = target.path
        enc_status = " [ENCRYPTED]" if cfg.encrypt else ""

        if target.exists():
            self._say(f"{console_timestamp()}: Already rotated, skipping: {path}")
            logger.info("Already rotated, skipping: %s", path)
            result.status = STATUS_ALREADY_ROTATED
            return result

        if cfg.dry_run:
            held = ""
            if self._holders.get(path):
                held = f" (held open by {describe_holders(self._holders[path])})"
            self._say(f"[DRY-RUN] Would Rotate: {path} ({format_size(st.st_size)})"
                      f" -> {target.path}{enc_status}{held}")
            logger.info("[DRY-RUN] Would rotate: %s -> %s", path, target.path)
            result.status = STATUS_DRY_RUN
            return result

        try:
            os.makedirs(target.directory, mode=0o755, exist_ok=True)
        except OSError as exc:
            return self._fail(result, f"Error creating backup dir: {exc}",
                              "Error creating backup dir %s: %s", target.directory, exc)

        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            return self._fail(result, f"Error reading file: {exc}",
                              "Error reading file %s: %s", path, exc)
        logger.debug("Read %d bytes from %s", len(data), path)

        try:
            payload = compress(data)
        except (OSError, zlib.error) as exc:
            return self._fail(result, f"Error compressing file: {exc}",
                              "Error compressing file %s: %s", path, exc)
        logger.debug("Compressed to %d bytes", len(payload))
        del data

        if cfg.encrypt:
            password = self.context.resolve_password()
            if not password:
                return self._fail(result, "Error: No encryption password configured",
                                  "No encryption password configured for %s", path)
            try:
                payload = envelope.encrypt(payload, password)
            except ValueError as exc:
                return self._fail(result, f"Error encrypting file: {exc}",
                                  "Error encrypting file %s: %s", path, exc)
            logger.debug("Encrypted to %d bytes", len(payload))

        try:
            write_archive(target.path, payload, mode)
        except OSError as exc:
            return self._fail(result, f"Error writing archived file: {exc}",
                              "Error writing archived file %s: %s", target.path, exc)

        try:
            os.truncate(path, 0)
        except OSError as exc:
            return self._fail(result, f"Error truncating file: {exc}",
                              "Error truncating file %s: %s", path, exc)

        try:
            os.chown(target.path, uid, gid)
        except OSError as exc:
            logger.debug("Could not restore ownership on %s: %s", target.path, exc)
        try:
            os.chmod(target.path, mode)
        except OSError as exc:
            logger.debug("Could not restore permissions on %s: %s", target.path, exc)

        result.archived_size = len(payload)
        result.status = STATUS_ROTATED
        ratio = result.compression_ratio
        saved = result.original_size - result.archived_size

        self._say(f"{console_timestamp()}: Rotated: {path} -> {target.path}{enc_status}")
        self._say(f"           Size: {format_size(result.original_size)} -> "
                  f"{format_size(result.archived_size)} ({ratio:.1f}% compression, "
                  f"saved {format_size(saved)})")
        logger.info("Rotated: %s -> %s (size: %d -> %d, ratio: %.1f%%)",
                    path, target.path, result.original_size,
                    result.archived_size, ratio)
        return result
