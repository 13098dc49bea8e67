"""
Process launcher for the language server.

Given an executable name, spawn it with no arguments and piped stdio.
The launcher keeps no state: every call produces a fresh process and
hands ownership to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Protocol

from .errors import SpawnError

logger = logging.getLogger(__name__)


class ProcessHandle(Protocol):
    """The subset of asyncio.subprocess.Process the client relies on."""

    stdin: asyncio.StreamWriter | None
    stdout: asyncio.StreamReader | None
    stderr: asyncio.StreamReader | None
    pid: int

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


Launcher = Callable[[str], Awaitable[ProcessHandle]]


def resolve_executable(executable: str) -> str | None:
    """Resolve a name on PATH, or accept an explicit path to an executable file."""
    if os.sep in executable or (os.altsep and os.altsep in executable):
        path = Path(executable)
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)
        return None
    return shutil.which(executable)


async def launch(
    executable: str,
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessHandle:
    """
    Spawn the language server.

    Args:
        executable: Name resolvable on PATH, or a path
        cwd: Working directory for the child (defaults to ours)
        env: Environment for the child (defaults to ours)

    Returns:
        Running process with stdin/stdout/stderr pipes

    Raises:
        SpawnError: executable missing or the OS refused to start it
    """
    resolved = resolve_executable(executable)
    if resolved is None:
        raise SpawnError(executable, "executable not found")

    try:
        process = await asyncio.create_subprocess_exec(
            resolved,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
        )
    except OSError as e:
        raise SpawnError(executable, e.strerror or str(e)) from e

    logger.info(f"Started language server {resolved} (pid {process.pid})")
    return process


def make_launcher(
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Launcher:
    """Bind a working directory and environment into a launcher callable."""

    async def _launch(executable: str) -> ProcessHandle:
        return await launch(executable, cwd=cwd, env=env)

    return _launch
