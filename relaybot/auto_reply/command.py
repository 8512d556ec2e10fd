"""Bounded execution of the external responder process."""

import asyncio
import time
from dataclasses import dataclass

from loguru import logger

DEFAULT_COMMAND_TIMEOUT_S = 600
STDERR_PREVIEW_CHARS = 2000


class CommandError(Exception):
    """Base class for responder command failures."""


class CommandTimeout(CommandError):
    """The command ran past its wall-clock budget and was killed."""

    def __init__(self, argv: list[str], timeout_s: float):
        self.argv = argv
        self.timeout_s = timeout_s
        super().__init__(f"Command timed out after {timeout_s:g}s: {argv[0] if argv else '?'}")


class CommandFailed(CommandError):
    """The command could not start or exited non-zero."""

    def __init__(self, argv: list[str], exit_code: int | None, stderr: str = ""):
        self.argv = argv
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip()[:STDERR_PREVIEW_CHARS]
        msg = f"Command exited with code {exit_code}" if exit_code is not None else "Command failed to start"
        super().__init__(f"{msg}: {detail}" if detail else msg)


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_s: float


async def run_command(
    argv: list[str],
    cwd: str | None = None,
    timeout_s: float = DEFAULT_COMMAND_TIMEOUT_S,
) -> CommandResult:
    """Run *argv* and capture its output.

    Raises:
        CommandTimeout: the process outlived *timeout_s*; it is killed and
            reaped before this returns.
        CommandFailed: the process could not be spawned or exited non-zero.
    """
    if not argv:
        raise CommandFailed(argv, None, "empty command")

    started = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except OSError as e:
        raise CommandFailed(argv, None, str(e)) from e

    logger.debug(f"Spawned {argv[0]} (pid {process.pid}, timeout {timeout_s:g}s)")

    try:
        stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        await _kill(process)
        logger.warning(f"Command {argv[0]} timed out after {timeout_s:g}s")
        raise CommandTimeout(argv, timeout_s) from None
    except asyncio.CancelledError:
        await _kill(process)
        raise

    duration = time.monotonic() - started
    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")

    if process.returncode != 0:
        logger.warning(f"Command {argv[0]} exited {process.returncode} after {duration:.1f}s")
        raise CommandFailed(argv, process.returncode, stderr)

    logger.debug(f"Command {argv[0]} finished in {duration:.1f}s ({len(stdout)} chars)")
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=0, duration_s=duration)


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
