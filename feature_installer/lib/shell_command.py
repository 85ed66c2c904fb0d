from __future__ import annotations

import logging
import re
import shlex
from typing import Dict, List, Mapping, Optional, Union

from ..cancel import CancelToken
from ..errors import ValidationError
from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


class _Unset:
    """Placeholder for argument slots skipped by ``set_arg``."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()

OptionValue = Union[str, List[str]]

_WHITESPACE = re.compile(r"\s")
_ESCAPE_IN_DQUOTES = re.compile(r'([\\"$`])')


def _not_blank(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def quote_value(value: str) -> str:
    """Wrap ``value`` in double quotes if it contains whitespace.

    Any whitespace (not only spaces) splits a word in the shell, so tabs and
    newlines trigger quoting too. Values without whitespace pass through
    unchanged.
    """
    if _WHITESPACE.search(value):
        return '"' + _ESCAPE_IN_DQUOTES.sub(r"\\\1", value) + '"'
    return value


class ShellCommand:
    """Build a single shell command line from a command, options and arguments.

    Options render before arguments, in insertion order::

        ShellCommand("apt-get").add_option("-y").add_arg("install", "curl").parse()
        # 'apt-get -y install curl'
    """

    def __init__(self, command: str) -> None:
        if not _not_blank(command):
            raise ValidationError("Command cannot be empty")
        self._command = command
        self._options: Dict[str, OptionValue] = {}
        self._args: List[Union[str, _Unset]] = []

    @property
    def command(self) -> str:
        return self._command

    @property
    def options(self) -> Mapping[str, OptionValue]:
        return dict(self._options)

    @property
    def arguments(self) -> List[Union[str, _Unset]]:
        return list(self._args)

    def add_option(self, name: str, value: Optional[str] = None) -> "ShellCommand":
        """Add an option, accumulating repeated values.

        A bare flag or a blank value never changes an option that is
        already set.
        """
        if name not in self._options:
            return self.set_option(name, value)

        if not _not_blank(value):
            return self

        current = self._options[name]
        if isinstance(current, list):
            current.append(value)
        elif current == "":
            self._options[name] = value
        else:
            self._options[name] = [current, value]
        return self

    def set_option(self, name: str, value: Optional[str] = None) -> "ShellCommand":
        if not name:
            return self
        self._options[name] = value or ""
        return self

    def remove_option(self, name: str) -> "ShellCommand":
        self._options.pop(name, None)
        return self

    def add_arg(self, *args: str) -> "ShellCommand":
        self._args.extend(args)
        return self

    def set_arg(self, index: int, value: str) -> "ShellCommand":
        """Set the argument at ``index`` (0-based); an empty value unsets it.

        Raises IndexError for negative indexes. Indexes past the end grow
        the list, leaving UNSET in the gap.
        """
        if index < 0:
            raise IndexError(f"Argument index out of range: {index}")
        if index >= len(self._args):
            self._args.extend([UNSET] * (index + 1 - len(self._args)))
        self._args[index] = value
        return self

    def _parse_options(self) -> List[str]:
        parts: List[str] = []
        for name, value in self._options.items():
            if not _not_blank(name):
                continue
            if isinstance(value, list):
                for v in value:
                    if _not_blank(v):
                        parts += [name, quote_value(v)]
            elif _not_blank(value):
                parts += [name, quote_value(value)]
            else:
                parts.append(name)
        return parts

    def _parse_args(self) -> List[str]:
        return [quote_value(a) for a in self._args if _not_blank(a)]

    def parse(self) -> str:
        return " ".join([self._command, *self._parse_options(), *self._parse_args()])

    async def exists(self, cancel: Optional[CancelToken] = None) -> bool:
        """Return True if the command can be found on PATH."""
        result = await run_cmd(
            f"command -v {shlex.quote(self._command)}",
            shell=True,
            check=False,
            cancel=cancel,
        )
        return result.returncode == 0

    async def run(
        self,
        cancel: Optional[CancelToken] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CmdResult:
        """Evaluate the parsed command line in a shell.

        Raises ExecutionError on a non-zero exit and AbortedError when
        ``cancel`` fires.
        """
        return await run_cmd(self.parse(), shell=True, cancel=cancel, env=env)

    def __str__(self) -> str:
        return self.parse()

    def __repr__(self) -> str:
        return f"<ShellCommand command={self._command!r}>"


def shell(command: str) -> ShellCommand:
    return ShellCommand(command)
