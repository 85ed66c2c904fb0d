from __future__ import annotations

import re
from typing import Optional, Sequence

from ..cancel import CancelToken
from ..lib.command import CmdResult, run_cmd
from ..lib.shell_command import ShellCommand
from ..lib.streams import StreamSource
from .base import InstallerBase

DEFAULT_INTERPRETER = "bash"


class ScriptInstaller(InstallerBase):
    """Install a tool by piping a script into a shell interpreter.

    ``package`` is the executable the script puts on PATH; its presence
    there means the tool is installed.
    """

    package_manager = "script"
    name_pattern = re.compile(r"[a-zA-Z0-9._+-]+")
    name_rule = "Invalid executable name"

    def __init__(
        self,
        package: str,
        source: StreamSource,
        *,
        display_name: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        interpreter: str = DEFAULT_INTERPRETER,
        script_args: Sequence[str] = (),
    ) -> None:
        super().__init__(package, display_name=display_name, cancel=cancel)
        self.source = source
        self.interpreter = interpreter
        self.script_args = list(script_args)

    async def check_presence(self, cancel: Optional[CancelToken]) -> bool:
        self.log.debug("Checking if already installed...")
        # `command -v` exits non-zero when the executable is not on PATH.
        return await ShellCommand(self.package).exists(cancel=cancel)

    def interpreter_argv(self) -> list[str]:
        argv = [self.interpreter, "-s"]
        if self.script_args:
            argv += ["--", *self.script_args]
        return argv

    async def perform_install(self, cancel: Optional[CancelToken]) -> CmdResult:
        self.log.debug("Installing package...")
        stream = await self.source.get_stream(cancel)
        async with stream:
            return await run_cmd(self.interpreter_argv(), stdin=stream, cancel=cancel)

    def on_abort(self) -> None:
        self.log.debug("Abort requested, the %s process will be killed", self.interpreter)
