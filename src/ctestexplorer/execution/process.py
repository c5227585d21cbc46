"""
Process helpers: one-shot output capture and platform specific termination
"""

import logging
import os
import signal
import sys
from typing import Dict, Optional, Sequence, Tuple

import pexpect
import psutil
from pexpect.popen_spawn import PopenSpawn

from ..exceptions import ProcessError

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


def spawn(
    argv: Sequence[str],
    timeout: Optional[float] = 30,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> PopenSpawn:
    """Spawn ``argv`` with piped output (stderr folded into stdout)"""
    try:
        return PopenSpawn(
            list(argv),
            timeout=timeout,
            cwd=cwd,
            env=env,
            encoding="utf-8",
            codec_errors="replace",
        )
    except (OSError, ValueError) as e:
        raise ProcessError(f"Failed to spawn {argv[0]!r}: {e}") from e


def capture_output(
    argv: Sequence[str],
    timeout: float = 30,
    cwd: Optional[str] = None,
) -> Tuple[str, Optional[int]]:
    """
    Run ``argv`` to completion and return its output and exit status

    Raises ProcessError when the program cannot be started or does not
    finish within ``timeout`` seconds (it is killed in that case).
    """
    child = spawn(argv, timeout=timeout, cwd=cwd)
    try:
        child.expect(pexpect.EOF, timeout=timeout)
    except pexpect.TIMEOUT:
        kill_process_tree(child.pid)
        raise ProcessError(f"Command {argv[0]!r} exceeded timeout of {timeout}s")

    output = child.before or ""
    child.wait()
    if child.signalstatus:
        logger.debug(f"{argv[0]} ended by signal {child.signalstatus}")
    return output, child.exitstatus


def kill_process_tree(pid: int) -> None:
    """Forcibly kill ``pid`` and all of its descendants"""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return

    for proc in children + [parent]:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(children + [parent], timeout=1)
    for proc in alive:
        logger.warning(f"Process {proc.pid} survived kill")


def terminate(pid: int) -> None:
    """
    Ask a test process to stop: tree kill on Windows, SIGHUP elsewhere

    The process ending is observed by whoever reads its output.
    """
    if IS_WINDOWS:
        kill_process_tree(pid)
        return

    try:
        os.kill(pid, signal.SIGHUP)
    except ProcessLookupError:
        logger.debug(f"Process {pid} already exited")
