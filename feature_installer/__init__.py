"""Feature installer toolkit.

Core pieces:
- ShellCommand: builds one safely quoted shell command line
- Stream sources: install script content from text, a file or HTTP
- Installers: skip-if-present / install-otherwise lifecycle with apt and
  script strategies, cooperative cancellation via CancelToken
"""

from .cancel import CancelToken
from .errors import (
    AbortedError,
    ExecutionError,
    InstallationFailure,
    InstallerError,
    StreamAcquisitionError,
    ValidationError,
)
from .installers import AptInstaller, InstallResult, ScriptInstaller, run_installer
from .lib.shell_command import ShellCommand, shell
from .lib.streams import FileStreamSource, HttpStreamSource, TextStreamSource

__all__ = [
    "AbortedError",
    "AptInstaller",
    "CancelToken",
    "ExecutionError",
    "FileStreamSource",
    "HttpStreamSource",
    "InstallationFailure",
    "InstallerError",
    "InstallResult",
    "ScriptInstaller",
    "ShellCommand",
    "StreamAcquisitionError",
    "TextStreamSource",
    "ValidationError",
    "run_installer",
    "shell",
]
