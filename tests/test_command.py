from __future__ import annotations

import asyncio
import time

import pytest

from feature_installer.cancel import CancelToken
from feature_installer.errors import AbortedError, ExecutionError
from feature_installer.lib.command import CmdResult, run_cmd


def test_run_cmd_captures_stdout() -> None:
    r = asyncio.run(run_cmd(["echo", "hello"]))
    assert isinstance(r, CmdResult)
    assert r.returncode == 0
    assert r.stdout == "hello\n"
    assert r.text() == "hello\n"
    assert r.duration_s >= 0


def test_run_cmd_raises_on_nonzero_exit() -> None:
    with pytest.raises(ExecutionError) as exc:
        asyncio.run(run_cmd(["sh", "-c", "echo oops >&2; exit 3"]))
    assert exc.value.returncode == 3
    assert "oops" in exc.value.stderr


def test_run_cmd_nothrow_returns_exit_code() -> None:
    r = asyncio.run(run_cmd(["sh", "-c", "exit 4"], check=False))
    assert r.returncode == 4
    assert not r.ok


def test_run_cmd_missing_executable() -> None:
    with pytest.raises(ExecutionError) as exc:
        asyncio.run(run_cmd(["definitely-not-a-real-binary-xyz"]))
    assert exc.value.returncode == 127


def test_run_cmd_shell_line() -> None:
    r = asyncio.run(run_cmd("echo a | tr a b", shell=True))
    assert r.stdout == "b\n"


def test_run_cmd_argument_type_checks() -> None:
    with pytest.raises(TypeError):
        asyncio.run(run_cmd(["echo"], shell=True))
    with pytest.raises(TypeError):
        asyncio.run(run_cmd("echo"))


def test_run_cmd_env_is_merged() -> None:
    r = asyncio.run(run_cmd("echo $FI_TEST_VALUE", shell=True, env={"FI_TEST_VALUE": "42"}))
    assert r.stdout == "42\n"


def test_run_cmd_stdin_bytes_and_text() -> None:
    assert asyncio.run(run_cmd(["cat"], stdin=b"raw")).stdout == "raw"
    assert asyncio.run(run_cmd(["cat"], stdin="text")).stdout == "text"


def test_run_cmd_stdin_async_iterable() -> None:
    async def scenario() -> CmdResult:
        async def chunks():
            yield b"echo "
            yield b"streamed\n"

        return await run_cmd(["sh", "-s"], stdin=chunks())

    assert asyncio.run(scenario()).stdout == "streamed\n"


def test_run_cmd_cancel_kills_process() -> None:
    async def scenario() -> None:
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.1, token.cancel, "test")
        await run_cmd(["sleep", "10"], cancel=token)

    start = time.monotonic()
    with pytest.raises(AbortedError) as exc:
        asyncio.run(scenario())
    assert exc.value.reason == "test"
    assert time.monotonic() - start < 5


def test_run_cmd_already_cancelled_does_not_start() -> None:
    token = CancelToken()
    token.cancel()
    with pytest.raises(AbortedError):
        asyncio.run(run_cmd(["sh", "-c", "exit 1"], cancel=token))
