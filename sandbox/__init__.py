"""Isolated, time-boxed execution of generated analysis code."""

from .runtime import ExecutionResult, PythonSandbox, SandboxState, open_sandbox
from .validation import validate_analysis_code

__all__ = [
    "ExecutionResult",
    "PythonSandbox",
    "SandboxState",
    "open_sandbox",
    "validate_analysis_code",
]
