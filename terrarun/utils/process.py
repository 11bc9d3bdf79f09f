"""
Platform helpers for launching and killing Terraform process trees.
"""

import logging
import os
import signal
import subprocess
import sys
from typing import Any, Dict

logger = logging.getLogger(__name__)


def subprocess_creation_flags() -> int:
    """Return creationflags to hide console windows on Windows, 0 elsewhere."""
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def process_group_kwargs() -> Dict[str, Any]:
    """
    Popen keyword arguments that put the child in its own process group.

    Terraform starts provider plugins as child processes; a separate
    group lets a timeout kill all of them at once.
    """
    if sys.platform == "win32":
        return {
            "creationflags": subprocess_creation_flags() | subprocess.CREATE_NEW_PROCESS_GROUP,
        }
    return {"start_new_session": True}


def kill_process_group(process: subprocess.Popen):
    """
    Kill whatever is left in the process group of an exited process.

    Provider plugins can outlive Terraform and keep its output pipes
    open. POSIX only; on Windows the group dies with its console.
    """
    if sys.platform == "win32":
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError as e:
        logger.warning(f"Could not kill process group {process.pid}: {e}")


def kill_process_tree(process: subprocess.Popen):
    """Forcibly kill a process started with process_group_kwargs() and its children."""
    if process.poll() is not None:
        return

    if sys.platform == "win32":
        subprocess.run(
            ["taskkill", "/F", "/T", "/PID", str(process.pid)],
            capture_output=True,
            creationflags=subprocess_creation_flags(),
        )
    else:
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError as e:
            logger.warning(f"Could not kill process group {process.pid}: {e}")

    try:
        process.kill()
    except OSError:
        pass
