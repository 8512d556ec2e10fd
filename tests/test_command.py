"""Tests for the bounded responder command runner."""

import os
import sys
import time

import pytest

from relaybot.auto_reply.command import CommandFailed, CommandTimeout, run_command


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        result = await run_command(_py("print('hello')"))
        assert result.stdout.strip() == "hello"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path):
        result = await run_command(_py("import os; print(os.getcwd())"), cwd=str(tmp_path))
        assert os.path.samefile(result.stdout.strip(), tmp_path)

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self):
        with pytest.raises(CommandFailed) as exc:
            await run_command(_py("import sys; sys.stderr.write('boom'); sys.exit(3)"))
        assert exc.value.exit_code == 3
        assert "boom" in exc.value.stderr

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self):
        with pytest.raises(CommandFailed) as exc:
            await run_command(["/nonexistent/relaybot-responder"])
        assert exc.value.exit_code is None

    @pytest.mark.asyncio
    async def test_empty_argv_raises(self):
        with pytest.raises(CommandFailed):
            await run_command([])

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        pid_file = tmp_path / "pid"
        code = (
            "import os, time, pathlib; "
            f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
            "time.sleep(30)"
        )
        started = time.monotonic()
        with pytest.raises(CommandTimeout) as exc:
            await run_command(_py(code), timeout_s=1)
        assert time.monotonic() - started < 10
        assert exc.value.timeout_s == 1

        pid = int(pid_file.read_text())
        assert not _alive(pid)
