"""Execution strategies package exports."""

from .debug import DebugAttachStrategy, allocate_output_file
from .debuggers import (
    DebugHandle,
    Debugger,
    GdbDebugger,
    LldbDebugger,
    get_debugger,
    load_launch_configuration,
)
from .direct import DirectStrategy
from .session import ExecutionSession, ExecutionStrategy, SessionState
from .tail import FileTail

__all__ = [
    "DebugAttachStrategy",
    "DebugHandle",
    "Debugger",
    "DirectStrategy",
    "ExecutionSession",
    "ExecutionStrategy",
    "FileTail",
    "GdbDebugger",
    "LldbDebugger",
    "SessionState",
    "allocate_output_file",
    "get_debugger",
    "load_launch_configuration",
]
