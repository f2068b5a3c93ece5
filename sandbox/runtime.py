"""
Python sandbox — one isolated interpreter per code-execution tool call.

Lifecycle: ``create → initialize → execute → destroy``. ``initialize`` is
memoized per instance; a fresh instance is used for every tool call and is
never reused. ``open_sandbox`` wraps the whole lifecycle in an async context
manager so ``destroy`` runs on success, error, timeout and cancellation.

Each ``execute`` spawns ``python -u`` on a wrapper script that loads the
caller's CSV into ``df`` with pandas and then runs the generated code.
stdout and stderr are drained incrementally into separate buffers, so output
printed before a timeout is still returned.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
import shutil
import sys
import tempfile
import textwrap
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import config
from agent.errors import SandboxError, TurnCancelled
from agent.logging import tagged
from agent.turn_limits import get_limit

from .validation import validate_analysis_code

logger = logging.getLogger("sheetpilot")

LifecycleObserver = Callable[[str, str], None]


class SandboxState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    DESTROYED = "destroyed"


# ---- Script Wrapper ----

_SCRIPT_PREAMBLE = textwrap.dedent("""\
    # === Auto-generated wrapper: do not edit above this line ===
    import warnings

    import numpy as np
    import pandas as pd

    warnings.filterwarnings("ignore")
    pd.set_option("display.width", 200)
    pd.set_option("display.max_columns", 50)

    try:
        df = pd.read_csv({csv_path_repr})
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()

    # === User code starts below ===
""")

_PROBE = "import numpy, pandas; print(pandas.__version__)"


def build_script_wrapper(user_code: str, csv_path: Path) -> str:
    """Prefix user code with the data loader."""
    return _SCRIPT_PREAMBLE.format(csv_path_repr=repr(str(csv_path))) + user_code + "\n"


# ---- Sandbox Result ----

@dataclass
class ExecutionResult:
    """Captured output of one execution."""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = -1
    timed_out: bool = False
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


def _find_python() -> str:
    """Find the interpreter for sandboxed runs, preferring config then the venv."""
    configured = config.SANDBOX_PYTHON
    if configured:
        return configured
    venv_python = Path(sys.prefix) / "bin" / "python"
    if venv_python.exists():
        return str(venv_python)
    return sys.executable


def _minimal_env(workdir: Path) -> dict[str, str]:
    return {
        "PATH": os.environ.get("PATH", "/usr/bin:/bin"),
        "HOME": str(workdir),
        "PYTHONIOENCODING": "utf-8",
        "PYTHONDONTWRITEBYTECODE": "1",
        "MPLCONFIGDIR": str(workdir),
    }


async def _drain(stream: Optional[asyncio.StreamReader], sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        sink.append(chunk)


class PythonSandbox:
    """One isolated interpreter session.

    Args:
        python: Interpreter to run; defaults to ``sandbox.python`` config or
            the server's own interpreter.
    """

    def __init__(self, python: Optional[str] = None):
        self.id = uuid.uuid4().hex[:12]
        self.state = SandboxState.UNINITIALIZED
        self.created_at = datetime.now(timezone.utc)
        self._python = python
        self._workdir: Optional[Path] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._runs = 0

    def __repr__(self) -> str:
        return f"PythonSandbox(id={self.id!r}, state={self.state.value})"

    @property
    def workdir(self) -> Optional[Path]:
        return self._workdir

    async def initialize(self) -> None:
        """Create the scratch directory and check the interpreter can load pandas.

        Idempotent: returns immediately once the sandbox is ready.

        Raises:
            SandboxError: The sandbox was destroyed, or the interpreter is
                missing pandas/numpy.
        """
        if self.state is SandboxState.DESTROYED:
            raise SandboxError(f"Sandbox {self.id} has been destroyed")
        if self.state is not SandboxState.UNINITIALIZED:
            return

        self._python = self._python or _find_python()
        self._workdir = Path(tempfile.mkdtemp(prefix=f"sheetpilot_sbx_{self.id}_"))
        probe = await asyncio.create_subprocess_exec(
            self._python, "-c", _PROBE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self._workdir),
            env=_minimal_env(self._workdir),
        )
        self._process = probe
        try:
            out, err = await asyncio.wait_for(
                probe.communicate(), timeout=get_limit("sandbox.init_timeout_seconds")
            )
        except asyncio.TimeoutError as exc:
            await self._kill()
            raise SandboxError("Timed out loading pandas in the sandbox interpreter") from exc
        except asyncio.CancelledError:
            await self._kill()
            raise
        self._process = None
        if probe.returncode != 0:
            raise SandboxError(
                f"Sandbox interpreter {self._python} cannot load pandas/numpy: "
                f"{err.decode('utf-8', 'replace').strip()}"
            )
        self.state = SandboxState.READY
        logger.debug(
            f"[Sandbox] {self.id} ready (pandas {out.decode().strip()}, {self._python})",
            extra=tagged("sandbox"),
        )

    async def execute(
        self,
        code: str,
        csv_data: str,
        timeout: Optional[float] = None,
        token=None,
    ) -> ExecutionResult:
        """Run *code* with *csv_data* loaded as ``df``.

        Returns the captured output; on timeout the output captured so far is
        returned with ``timed_out=True``.

        Raises:
            TurnCancelled: The token fired while the code was running. The
                process is killed first.
            SandboxError: The sandbox is destroyed or busy.
        """
        if self.state is SandboxState.UNINITIALIZED:
            await self.initialize()
        if self.state is not SandboxState.READY:
            raise SandboxError(f"Sandbox {self.id} is {self.state.value}")
        if token is not None:
            token.raise_if_cancelled()
        timeout = timeout if timeout is not None else get_limit("sandbox.timeout_seconds")

        extra = frozenset(config.get("sandbox.allowed_imports", []) or [])
        violations = validate_analysis_code(code, extra)
        if violations:
            logger.warning(
                f"[Sandbox] {self.id} rejected code: {violations}", extra=tagged("sandbox")
            )
            return ExecutionResult(
                stderr="Code validation failed:\n" + "\n".join(f"  - {v}" for v in violations),
            )

        if self._workdir is None:
            raise SandboxError(f"Sandbox {self.id} has no working directory")
        self._runs += 1
        csv_path = self._workdir / f"data_{self._runs}.csv"
        script_path = self._workdir / f"analysis_{self._runs}.py"
        csv_path.write_text(csv_data, encoding="utf-8")
        script_path.write_text(build_script_wrapper(code, csv_path), encoding="utf-8")

        self.state = SandboxState.RUNNING
        started = time.monotonic()
        out_chunks: list[bytes] = []
        err_chunks: list[bytes] = []
        waiters: list[asyncio.Future] = []
        try:
            proc = await asyncio.create_subprocess_exec(
                self._python, "-u", str(script_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._workdir),
                env=_minimal_env(self._workdir),
            )
            self._process = proc
            readers = asyncio.gather(_drain(proc.stdout, out_chunks), _drain(proc.stderr, err_chunks))
            finished = asyncio.ensure_future(proc.wait())
            waiters.append(finished)
            cancelled: Optional[asyncio.Future] = None
            if token is not None:
                cancelled = asyncio.ensure_future(token.wait())
                waiters.append(cancelled)

            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if finished not in done:
                await self._kill()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(readers, timeout=1.0)

            if finished not in done and cancelled is not None and cancelled in done:
                raise TurnCancelled(token.reason or "cancelled")
            timed_out = finished not in done

            stdout = b"".join(out_chunks).decode("utf-8", "replace")
            stderr = b"".join(err_chunks).decode("utf-8", "replace")
            if timed_out:
                stderr = (stderr + "\n" if stderr else "") + f"Execution timed out after {timeout:g} seconds"
                logger.warning(
                    f"[Sandbox] {self.id} timed out after {timeout:g}s "
                    f"({len(stdout)} chars of stdout kept)",
                    extra=tagged("sandbox"),
                )
            return ExecutionResult(
                stdout=stdout,
                stderr=stderr,
                exit_code=-1 if timed_out else (proc.returncode if proc.returncode is not None else -1),
                timed_out=timed_out,
                elapsed=time.monotonic() - started,
            )
        finally:
            for w in waiters:
                w.cancel()
            await self._kill()
            if self.state is SandboxState.RUNNING:
                self.state = SandboxState.READY

    async def _kill(self) -> None:
        proc, self._process = self._process, None
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2.0)

    async def destroy(self) -> None:
        """Kill any live process and remove the scratch directory. Safe to call twice."""
        if self.state is SandboxState.DESTROYED:
            return
        await self._kill()
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
        self.state = SandboxState.DESTROYED


@contextlib.asynccontextmanager
async def open_sandbox(
    factory: Optional[Callable[[], PythonSandbox]] = None,
    token=None,
    observer: Optional[LifecycleObserver] = None,
) -> AsyncIterator[PythonSandbox]:
    """Create and initialize a sandbox; destroy it on exit, whatever happens.

    ``observer(event, sandbox_id)`` receives ``"created"`` and ``"destroyed"``.
    """
    if token is not None:
        token.raise_if_cancelled()
    sandbox = (factory or PythonSandbox)()
    logger.debug(f"[Sandbox] {sandbox.id} created", extra=tagged("sandbox"))
    if observer is not None:
        observer("created", sandbox.id)
    try:
        if token is not None:
            await token.guard(sandbox.initialize())
        else:
            await sandbox.initialize()
        yield sandbox
    finally:
        try:
            await sandbox.destroy()
        finally:
            logger.debug(f"[Sandbox] {sandbox.id} destroyed", extra=tagged("sandbox"))
            if observer is not None:
                observer("destroyed", sandbox.id)
