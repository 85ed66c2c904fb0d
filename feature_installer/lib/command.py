from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
from dataclasses import dataclass
from typing import AsyncIterable, Mapping, Optional, Sequence, Union

from ..cancel import CancelToken
from ..errors import AbortedError, ExecutionError

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"

StdinSource = Union[bytes, str, AsyncIterable[bytes], None]


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def text(self) -> str:
        return self.stdout


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def _read(stream: Optional[asyncio.StreamReader]) -> bytes:
    if stream is None:
        return b""
    return await stream.read()


async def _feed(writer: Optional[asyncio.StreamWriter], data: StdinSource) -> None:
    if writer is None:
        return
    try:
        if isinstance(data, str):
            data = data.encode("utf-8")
        if isinstance(data, bytes):
            writer.write(data)
            await writer.drain()
        elif data is not None:
            async for chunk in data:
                writer.write(chunk)
                await writer.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The child exited before reading all of its input.
        logger.debug("stdin closed early by child process")
    finally:
        try:
            writer.close()
        except (BrokenPipeError, ConnectionResetError):
            pass


async def run_cmd(
    argv: Union[Sequence[str], str],
    *,
    check: bool = True,
    cancel: Optional[CancelToken] = None,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    stdin: StdinSource = None,
    shell: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - ``shell=True`` evaluates ``argv`` (a command line string) with /bin/sh.
    - ``stdin`` may be bytes, text or an async iterable of byte chunks.
    - Firing ``cancel`` kills the child and raises AbortedError.
    - With ``check`` a non-zero exit raises ExecutionError.
    """

    if shell:
        if not isinstance(argv, str):
            raise TypeError("shell=True requires a command line string")
        argv_list = [SHELL, "-c", argv]
        logger.info("CMD %s", argv)
    else:
        if isinstance(argv, str):
            raise TypeError("argv must be a sequence unless shell=True")
        argv_list = list(argv)
        logger.info("CMD %s", _fmt_argv(argv_list))

    if cancel is not None:
        cancel.raise_if_cancelled()

    start = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv_list,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        raise ExecutionError(
            f"Command not found: {argv_list[0]}",
            argv=argv_list,
            returncode=127,
            stderr=str(e),
        ) from e

    unregister = cancel.add_callback(lambda: _kill(proc)) if cancel is not None else None
    try:
        _, out, err = await asyncio.gather(
            _feed(proc.stdin, stdin),
            _read(proc.stdout),
            _read(proc.stderr),
        )
        returncode = await proc.wait()
    except BaseException:
        _kill(proc)
        await proc.wait()
        raise
    finally:
        if unregister is not None:
            unregister()

    duration = time.monotonic() - start
    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")

    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if cancel is not None and cancel.cancelled:
        raise AbortedError(cancel.reason)

    if check and returncode != 0:
        raise ExecutionError(
            f"Command failed ({returncode}): {_fmt_argv(argv_list)}\n{stderr}",
            argv=argv_list,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    return CmdResult(
        argv=argv_list,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        duration_s=duration,
    )
