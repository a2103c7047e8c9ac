"""Subprocess runner for script steps."""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Callable

from abilities.utils import get_logger, truncate_string

logger = get_logger(__name__)


@dataclass
class ScriptOutcome:
    """Captured result of a finished command."""
    exit_code: int
    stdout: str
    stderr: str


def kill_process(process: asyncio.subprocess.Process) -> None:
    """Kill a command started by ``run_script`` together with its children."""
    if process.returncode is not None:
        return
    try:
        # Commands run in their own session, so the group id is the pid.
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.kill()


async def run_script(
    command: str,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    on_spawn: Callable[[asyncio.subprocess.Process], None] | None = None,
) -> ScriptOutcome:
    """Run a command through the shell and capture its output.

    Cancelling the coroutine (as a step timeout does) kills the whole process group.

    Args:
        command: Shell command text
        cwd: Working directory
        env: Variables layered over the ambient environment
        on_spawn: Called with the process handle once it has started

    Returns:
        Exit code and decoded output

    Raises:
        OSError: If the process cannot be spawned (e.g. missing cwd)
    """
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env={**os.environ, **(env or {})},
        start_new_session=True,
    )
    if on_spawn is not None:
        on_spawn(process)

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        kill_process(process)
        await process.wait()
        raise

    exit_code = process.returncode if process.returncode is not None else 1
    if exit_code != 0:
        logger.debug(
            "Command returned non-zero exit code",
            extra={"command": truncate_string(command, 50), "exit_code": exit_code},
        )

    return ScriptOutcome(
        exit_code=exit_code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
