"""
AST validation for generated analysis code.

The code runs in a separate interpreter with the selected data preloaded as
``df``. Validation blocks the constructs that would let it reach outside that
process: network and process modules, dynamic code execution, dunder access,
and file I/O beyond the scratch directory.
"""

from __future__ import annotations

import ast

# Allowed import modules (top-level names)
_ALLOWED_IMPORTS = frozenset({
    "numpy", "pandas",
    "math", "statistics", "decimal", "fractions",
    "datetime", "time", "calendar",
    "collections", "itertools", "functools", "operator",
    "re", "json", "string", "textwrap",
    "warnings", "copy", "random",
})

# Blocked import modules
_BLOCKED_IMPORTS = frozenset({
    "os", "sys", "socket", "http", "urllib", "requests", "httpx",
    "subprocess", "ctypes", "multiprocessing",
    "importlib", "builtins", "pickle", "marshal",
    "shlex", "signal", "shutil", "pathlib", "io",
    "tempfile", "webbrowser", "code", "codeop",
    "pty", "fcntl", "termios", "resource",
    "asyncio", "concurrent", "threading",
    "xmlrpc", "ftplib", "smtplib", "poplib",
    "imaplib", "telnetlib", "nntplib",
})

# Blocked builtins
_BLOCKED_BUILTINS = frozenset({
    "exec", "eval", "compile", "__import__",
    "globals", "locals", "vars",
    "breakpoint", "exit", "quit", "input",
    "getattr", "setattr", "delattr",
    "open",
    "memoryview", "type",
})

# Blocked attribute names (on any object)
_BLOCKED_ATTRS = frozenset({
    "system", "popen", "spawn",
    # File input; the data is already loaded as df
    "read_csv", "read_excel", "read_json", "read_pickle", "read_html",
    "read_sql", "read_parquet", "read_table", "read_clipboard",
    "to_pickle", "to_excel", "to_parquet", "to_hdf", "to_sql",
    "save", "savez", "savez_compressed", "loadtxt", "savetxt",
    "genfromtxt", "fromfile", "tofile", "memmap",
    # subprocess / os
    "run", "call", "check_output", "check_call",
    "Popen",
})


def validate_analysis_code(code: str, extra_allowed_imports: frozenset[str] = frozenset()) -> list[str]:
    """Validate generated analysis code for safety using AST analysis.

    Args:
        code: Python code string to validate.
        extra_allowed_imports: Additional top-level modules to accept
            (from the ``sandbox.allowed_imports`` config key).

    Returns:
        List of violation descriptions. Empty list means code is safe.
    """
    allowed_imports = _ALLOWED_IMPORTS | (extra_allowed_imports - _BLOCKED_IMPORTS)
    violations = []

    try:
        tree = ast.parse(code)
    except SyntaxError as e:
        return [f"Syntax error: {e}"]

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                top_level = alias.name.split(".")[0]
                if top_level in _BLOCKED_IMPORTS:
                    violations.append(
                        f"Blocked import: '{alias.name}' (module '{top_level}' is not allowed)"
                    )
                elif top_level not in allowed_imports:
                    violations.append(
                        f"Unknown import: '{alias.name}' (only pandas, numpy and standard "
                        f"library math/datetime/collections modules are allowed)"
                    )

        if isinstance(node, ast.ImportFrom):
            top_level = (node.module or "").split(".")[0]
            if node.level or top_level in _BLOCKED_IMPORTS:
                violations.append(
                    f"Blocked import: 'from {node.module or '.'}' is not allowed"
                )
            elif top_level not in allowed_imports:
                violations.append(
                    f"Unknown import: 'from {node.module}' (only pandas, numpy and standard "
                    f"library math/datetime/collections modules are allowed)"
                )

        if isinstance(node, ast.Name) and node.id in _BLOCKED_BUILTINS:
            violations.append(f"Blocked builtin: '{node.id}'")

        if isinstance(node, ast.Attribute):
            if node.attr.startswith("__") and node.attr.endswith("__"):
                violations.append(f"Dunder attribute access '{node.attr}' is not allowed")
            if node.attr in _BLOCKED_ATTRS:
                violations.append(f"Blocked attribute: '{node.attr}' (system access / I/O)")

        if isinstance(node, (ast.Global, ast.Nonlocal)):
            violations.append("global/nonlocal statements are not allowed")

        if isinstance(node, (ast.AsyncFunctionDef, ast.AsyncFor, ast.AsyncWith, ast.Await)):
            violations.append("Async constructs are not allowed")

    return violations
