"""
Debugger adapters used by debug runs, and the launch configuration that
selects between them
"""

from __future__ import annotations

import logging
import os
import shlex
import threading
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import fastjsonschema
import pexpect
import psutil
import pyjson5

from ..exceptions import ConfigError, DebuggerError

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_CONFIGURATION = {
    "name": "Test launch",
    "request": "launch",
    "type": "cppdbg",
}

_LAUNCH_SCHEMA = {
    "type": "object",
    "properties": {
        "version": {"type": "string"},
        "configurations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["request"],
                "properties": {
                    "name": {"type": "string"},
                    "type": {"type": "string"},
                    "request": {"type": "string"},
                    "MIMode": {"type": "string"},
                    "miDebuggerPath": {"type": "string"},
                    "cwd": {"type": "string"},
                    "environment": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "value"],
                            "properties": {
                                "name": {"type": "string"},
                                "value": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
    },
}

_VALIDATE_LAUNCH = fastjsonschema.compile(_LAUNCH_SCHEMA)


def load_launch_configuration(workspace: Union[str, Path] = ".") -> dict:
    """
    Pick the debug configuration from ``<workspace>/.vscode/launch.json``

    The last configuration with ``"request": "launch"`` wins; without one
    (or without the file) a default cppdbg configuration is returned.
    """
    workspace = Path(workspace)
    config = dict(DEFAULT_LAUNCH_CONFIGURATION)
    path = workspace / ".vscode" / "launch.json"
    if not path.exists():
        return config

    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = pyjson5.load(handle)
        _VALIDATE_LAUNCH(payload)
    except fastjsonschema.JsonSchemaException as e:
        raise ConfigError(f"Invalid launch configuration {path}: {e.message}") from e
    except Exception as e:
        raise ConfigError(f"Failed to read launch configuration {path}: {e}") from e

    for entry in payload.get("configurations", []):
        if entry.get("request") == "launch":
            config = dict(entry)

    folder = str(workspace.absolute())
    for key in ("cwd", "miDebuggerPath"):
        if isinstance(config.get(key), str):
            config[key] = config[key].replace("${workspaceFolder}", folder)
    return config


class DebugHandle:
    """A running debugger process and what it has printed so far"""

    def __init__(self, child: "pexpect.spawn", program: str, debugger: str):
        self.child = child
        self.program = program
        self.debugger = debugger
        self.transcript = deque(maxlen=1000)
        self.terminated = threading.Event()
        self.watcher: Optional[threading.Thread] = None

    @property
    def pid(self) -> int:
        return self.child.pid

    def record(self, text: str) -> None:
        for line in text.splitlines():
            self.transcript.append(line)
            logger.debug(f"[{self.debugger}] {line}")

    def __repr__(self):
        return (
            f"DebugHandle(debugger={self.debugger}, program={self.program!r}, "
            f"terminated={self.terminated.is_set()})"
        )


class Debugger(ABC):
    """
    Launches a program under a debugger with its output redirected to a file

    The debugger runs in batch mode; its own process exiting is the
    session-terminated notification.
    """

    name = "debugger"
    default_executable = ""

    def __init__(
        self,
        executable: Optional[str] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.executable = executable or self.default_executable
        self.cwd = cwd
        self.env = env

    @abstractmethod
    def command(self, program: str, args: List[str], output_path: str) -> List[str]:
        """Return the debugger argv that runs ``program`` with output redirected"""

    def launch(
        self,
        program: str,
        args: List[str],
        output_path: str,
        on_terminated: Callable[[], None],
    ) -> DebugHandle:
        if not hasattr(pexpect, "spawn"):
            raise DebuggerError("Debug runs need a POSIX host with pty support")

        argv = self.command(program, args, output_path)
        env = None
        if self.env:
            env = dict(os.environ)
            env.update(self.env)

        try:
            child = pexpect.spawn(
                argv[0],
                argv[1:],
                cwd=self.cwd,
                env=env,
                encoding="utf-8",
                codec_errors="replace",
                timeout=None,
                echo=False,
            )
        except pexpect.exceptions.ExceptionPexpect as e:
            raise DebuggerError(f"Failed to start {self.name}: {e}") from e

        handle = DebugHandle(child, program, self.name)
        handle.watcher = threading.Thread(
            target=self._watch,
            args=(handle, on_terminated),
            name=f"{self.name}-watch-{child.pid}",
            daemon=True,
        )
        handle.watcher.start()
        logger.info(f"Launched {program} under {self.name} (pid {child.pid})")
        return handle

    def _watch(self, handle: DebugHandle, on_terminated: Callable[[], None]) -> None:
        child = handle.child
        try:
            while True:
                try:
                    chunk = child.read_nonblocking(size=4096, timeout=1)
                except pexpect.TIMEOUT:
                    continue
                except pexpect.EOF:
                    break
                handle.record(chunk)
        except (OSError, pexpect.exceptions.ExceptionPexpect) as e:
            logger.debug(f"{self.name} output stream closed: {e}")
        finally:
            try:
                child.close()
            except (OSError, pexpect.exceptions.ExceptionPexpect) as e:
                logger.debug(f"Error closing {self.name}: {e}")
            handle.terminated.set()
            logger.info(
                f"{self.name} session for {handle.program} ended "
                f"(status={child.exitstatus}, signal={child.signalstatus})"
            )
            on_terminated()

    def stop(self, handle: DebugHandle) -> None:
        """Kill the debuggee, then the debugger; termination is reported by the watcher"""
        if handle.terminated.is_set():
            return

        try:
            children = psutil.Process(handle.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []
        for proc in children:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass

        try:
            handle.child.terminate(force=True)
        except (OSError, pexpect.exceptions.ExceptionPexpect) as e:
            logger.warning(f"Error terminating {self.name}: {e}")

    def __repr__(self):
        return f"{type(self).__name__}(executable={self.executable!r})"


class GdbDebugger(Debugger):
    """gdb in batch mode; ``run`` goes through the shell so redirection works"""

    name = "gdb"
    default_executable = "gdb"

    def command(self, program: str, args: List[str], output_path: str) -> List[str]:
        parts = ["run"] + [shlex.quote(arg) for arg in args]
        parts += [">", shlex.quote(output_path), "2>&1"]
        return [
            self.executable,
            "-q",
            "-batch",
            "-ex", "set pagination off",
            "-ex", "set confirm off",
            "-ex", " ".join(parts),
            "-ex", "bt",
            program,
        ]


class LldbDebugger(Debugger):
    name = "lldb"
    default_executable = "lldb"

    def command(self, program: str, args: List[str], output_path: str) -> List[str]:
        target = shlex.quote(output_path)
        launch = f"process launch --stdout {target} --stderr {target}"
        if args:
            launch += " -- " + " ".join(shlex.quote(arg) for arg in args)
        return [
            self.executable,
            "--batch",
            "-o", launch,
            "-k", "bt",
            "-k", "quit 1",
            "--",
            program,
        ]


_DEBUGGERS = {
    "gdb": GdbDebugger,
    "lldb": LldbDebugger,
}


def get_debugger(launch_config: Optional[dict] = None) -> Debugger:
    """Return the debugger adapter a launch configuration asks for"""
    launch_config = launch_config or DEFAULT_LAUNCH_CONFIGURATION
    config_type = launch_config.get("type", "cppdbg")

    if config_type == "cppdbg":
        mode = launch_config.get("MIMode", "gdb")
    elif config_type in ("gdb", "lldb"):
        mode = config_type
    elif config_type in ("lldb-dap", "codelldb"):
        mode = "lldb"
    else:
        raise DebuggerError(f"Unsupported debug configuration type '{config_type}'")

    debugger_cls = _DEBUGGERS.get(mode)
    if debugger_cls is None:
        raise DebuggerError(f"Unsupported MIMode '{mode}'")

    env = {
        item["name"]: item["value"]
        for item in launch_config.get("environment", [])
        if isinstance(item, dict) and "name" in item
    }
    return debugger_cls(
        executable=launch_config.get("miDebuggerPath"),
        cwd=launch_config.get("cwd"),
        env=env or None,
    )
