"""Spawn options and termination for whole process trees."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from typing import Any, Dict

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


def group_spawn_options() -> Dict[str, Any]:
    """Keyword arguments that start a child as the leader of its own group.

    POSIX children get a new session so ``killpg`` reaches every
    descendant; Windows children get a new process group for ``taskkill /T``.
    """
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}  # type: ignore[attr-defined]
    return {"start_new_session": True}


def kill_process_tree(pid: int) -> None:
    """Forcefully terminate ``pid`` and all of its descendants.

    Blocking; call from a worker thread when on the event loop.
    """
    if IS_WINDOWS:
        result = subprocess.run(
            ["taskkill", "/F", "/T", "/PID", str(pid)],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            logger.debug("taskkill for %s exited %s: %s", pid, result.returncode, result.stderr.strip())
        return

    try:
        # The child was started as a session leader, so its pgid is its pid
        os.killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process group %s already gone", pid)
    except PermissionError as e:
        logger.warning("Cannot kill process group %s (%s), killing leader only", pid, e)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Process %s already gone", pid)
