"""
Shared test fixtures.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from feature_installer.errors import ExecutionError
from feature_installer.lib.command import CmdResult


class FakeRunner:
    """Stand-in for ``run_cmd`` that records calls and replays exit codes."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[CmdResult] = []

    def respond(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> "FakeRunner":
        self.responses.append(CmdResult(argv=[], returncode=returncode, stdout=stdout, stderr=stderr))
        return self

    async def __call__(self, argv, *, check: bool = True, stdin=None, **kwargs: Any) -> CmdResult:
        data: Optional[bytes] = None
        if stdin is not None:
            data = b"".join([chunk async for chunk in stdin])
        self.calls.append({"argv": argv, "check": check, "stdin": data, **kwargs})

        r = self.responses.pop(0) if self.responses else CmdResult(argv=[], returncode=0, stdout="", stderr="")
        argv_list = list(argv) if not isinstance(argv, str) else [argv]
        r = CmdResult(argv=argv_list, returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)
        if check and r.returncode != 0:
            raise ExecutionError(
                f"Command failed ({r.returncode})",
                argv=argv_list,
                returncode=r.returncode,
                stdout=r.stdout,
                stderr=r.stderr,
            )
        return r


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
