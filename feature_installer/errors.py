from __future__ import annotations

from typing import Optional, Sequence


class InstallerError(Exception):
    """Base class for every error raised by feature_installer."""


class ValidationError(InstallerError, ValueError):
    """Invalid constructor input (package name, path, URL, text)."""


class ExecutionError(InstallerError):
    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        returncode: int = 1,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class InstallationFailure(InstallerError):
    def __init__(self, package: str, display_name: Optional[str] = None) -> None:
        info = f"{package} ({display_name})" if display_name else package
        super().__init__(f"installation failed for package '{info}'")
        self.package = package
        self.display_name = display_name


class AbortedError(InstallerError):
    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(f"aborted: {reason}" if reason else "aborted")
        self.reason = reason


class StreamAcquisitionError(InstallerError):
    """Install script content could not be obtained."""
