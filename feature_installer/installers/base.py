from __future__ import annotations

import abc
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from ..cancel import CancelToken
from ..errors import AbortedError, InstallationFailure, ValidationError
from ..lib.command import CmdResult
from ..logging_utils import ContextLogger, bind

logger = logging.getLogger(__name__)


class Installer(Protocol):
    """One package, one installation mechanism."""

    package: str
    display_name: Optional[str]
    package_manager: str
    cancel: Optional[CancelToken]

    @property
    def package_info(self) -> str:
        ...

    async def check_presence(self, cancel: Optional[CancelToken]) -> bool:
        ...

    async def perform_install(self, cancel: Optional[CancelToken]) -> CmdResult:
        ...

    def on_abort(self) -> None:
        ...


@dataclass(frozen=True)
class InstallResult:
    package: str
    installed: bool
    skipped: bool
    result: Optional[CmdResult] = None


def installer_logger(installer: Installer) -> ContextLogger:
    return bind(
        logging.getLogger(f"{__package__}.{installer.package_manager}"),
        package=installer.package,
        package_manager=installer.package_manager,
    )


async def run_installer(installer: Installer, *, cancel: Optional[CancelToken] = None) -> InstallResult:
    """Skip the package if present, install it otherwise.

    Raises InstallationFailure (original error as ``__cause__``) when a step
    fails, and AbortedError when ``cancel`` fires.
    """

    log = installer_logger(installer)

    def _aborted() -> None:
        log.debug("Abort event received")
        installer.on_abort()
        log.error("Installation aborted")

    unregister = cancel.add_callback(_aborted) if cancel is not None else None
    try:
        log.debug("Starting installation...")
        try:
            if cancel is not None:
                cancel.raise_if_cancelled()
            present = await installer.check_presence(cancel)
        except AbortedError:
            raise
        except Exception as e:
            log.error("Presence check failed: %s", e)
            raise InstallationFailure(installer.package, installer.display_name) from e

        if present:
            log.info("Package already installed, skipping...")
            return InstallResult(package=installer.package, installed=False, skipped=True)

        log.info("Installing...")
        try:
            if cancel is not None:
                cancel.raise_if_cancelled()
            result = await installer.perform_install(cancel)
        except AbortedError:
            raise
        except Exception as e:
            log.error("Installation failed: %s", e)
            raise InstallationFailure(installer.package, installer.display_name) from e

        log.info("Installation successful!")
        log.debug("Install output: %s", result.text())
        return InstallResult(package=installer.package, installed=True, skipped=False, result=result)
    finally:
        if unregister is not None:
            unregister()


class InstallerBase(abc.ABC):
    """Shared construction and hooks for the concrete installers.

    Subclasses set ``package_manager`` and ``name_pattern`` and implement
    ``check_presence``/``perform_install``.
    """

    package_manager = "generic"
    name_pattern: Optional["re.Pattern[str]"] = None
    name_rule = "Invalid package name"

    def __init__(
        self,
        package: str,
        *,
        display_name: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.validate_package(package)
        self.package = package
        self.display_name = display_name
        self.cancel = cancel
        self.log = installer_logger(self)
        self.log.debug("Installer created")

    @classmethod
    def validate_package(cls, package: str) -> None:
        if not isinstance(package, str) or package == "":
            raise ValidationError("Package name is required")
        if package != package.strip():
            raise ValidationError("Package name cannot have leading or trailing whitespace")
        if cls.name_pattern is not None and not cls.name_pattern.fullmatch(package):
            raise ValidationError(f"{cls.name_rule}: {package!r}")

    @property
    def package_info(self) -> str:
        return f"{self.package} ({self.display_name})" if self.display_name else self.package

    def on_abort(self) -> None:
        self.log.debug("No abort handler defined")

    @abc.abstractmethod
    async def check_presence(self, cancel: Optional[CancelToken]) -> bool:
        """True if the package is already installed."""

    @abc.abstractmethod
    async def perform_install(self, cancel: Optional[CancelToken]) -> CmdResult:
        """Install the package; raise on failure."""

    async def run(self) -> InstallResult:
        return await run_installer(self, cancel=self.cancel)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} package={self.package!r}>"
