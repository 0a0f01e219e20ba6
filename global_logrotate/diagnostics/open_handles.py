"""Find processes that hold rotation candidates open.

Rotation truncates in place because writers keep their descriptors; this
tells the operator, in dry-run output, who those writers are.
"""

import logging
import os

import psutil

logger = logging.getLogger(__name__)


def find_open_handles(paths) -> dict[str, list[tuple[int, str]]]:
    """Map each path in ``paths`` to the ``(pid, name)`` pairs holding it open.

    Processes that vanish or deny access are skipped. Paths nobody holds are
    absent from the result.
    """
    wanted = {os.path.realpath(p): p for p in paths}
    if not wanted:
        return {}

    holders: dict[str, list[tuple[int, str]]] = {}
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            open_files = proc.open_files()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        for of in open_files:
            original = wanted.get(os.path.realpath(of.path))
            if original is None:
                continue
            entry = (proc.info["pid"], proc.info["name"] or "?")
            if entry not in holders.setdefault(original, []):
                holders[original].append(entry)

    logger.debug("Open handle scan: %d of %d candidates held open",
                 len(holders), len(wanted))
    return holders


def describe_holders(holders: list[tuple[int, str]]) -> str:
    return ", ".join(f"{name}[{pid}]" for pid, name in holders)
