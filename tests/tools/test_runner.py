import asyncio
import subprocess
import sys
from pathlib import Path

import pytest

from skinsmith.errors import OperationCancelledError, ToolFailedError, ToolMissingError
from skinsmith.tools.runner import AsyncCommandRunner, CommandResult, kill_process_tree

PYTHON = Path(sys.executable)


class TestCommandResult:
    def test_ok_only_for_zero(self):
        assert CommandResult(0, "", "").ok
        assert not CommandResult(1, "", "").ok


class TestAsyncCommandRunner:
    @pytest.mark.asyncio
    async def test_captures_exit_code_and_streams(self):
        script = "import sys; print('hello'); sys.stderr.write('oops'); sys.exit(3)"
        result = await AsyncCommandRunner().run(PYTHON, ["-c", script], timeout=30)
        assert result.exit_code == 3
        assert result.stdout.strip() == "hello"
        assert result.stderr == "oops"
        assert not result.ok

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path):
        result = await AsyncCommandRunner().run(
            PYTHON, ["-c", "import os; print(os.getcwd())"], cwd=tmp_path, timeout=30
        )
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        with pytest.raises(ToolMissingError):
            await AsyncCommandRunner().run(tmp_path / "no-such-tool", [], timeout=5)

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        with pytest.raises(ToolFailedError) as exc_info:
            await AsyncCommandRunner().run(
                PYTHON, ["-c", "import time; time.sleep(60)"], timeout=0.5
            )
        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_cancel_event_stops_process(self):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.3, cancel.set)
        with pytest.raises(OperationCancelledError):
            await AsyncCommandRunner().run(
                PYTHON, ["-c", "import time; time.sleep(60)"], timeout=30, cancel_event=cancel
            )


class TestKillProcessTree:
    def test_kills_running_process(self):
        proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        try:
            kill_process_tree(proc.pid)
            assert proc.wait(timeout=10) is not None
        finally:
            if proc.poll() is None:
                proc.kill()

    def test_already_exited_process_is_ignored(self):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait(timeout=10)
        kill_process_tree(proc.pid)
