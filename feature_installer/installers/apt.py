from __future__ import annotations

import re
from typing import Optional

from ..cancel import CancelToken
from ..lib.command import CmdResult, run_cmd
from ..lib.shell_command import ShellCommand
from .base import InstallerBase

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

# "curl/jammy-updates,now 7.81.0-1ubuntu1.16 amd64 [installed,automatic]"
_STATUS_TAG = re.compile(r"\[([^\]]*)\]\s*$")


def is_installed_line(line: str, package: str) -> bool:
    """True if an ``apt list`` line marks ``package`` itself as installed."""
    line = line.strip()
    if not line.startswith(f"{package}/"):
        return False
    m = _STATUS_TAG.search(line)
    if not m:
        return False
    return "installed" in [tag.strip() for tag in m.group(1).split(",")]


class AptInstaller(InstallerBase):
    """Install a Debian package with apt-get."""

    package_manager = "apt"
    # Debian policy: lowercase alphanumerics and + - . , starting alphanumeric.
    name_pattern = re.compile(r"[a-z0-9][a-z0-9.+-]+")
    name_rule = "Invalid apt package name"

    def __init__(
        self,
        package: str,
        *,
        display_name: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        install_recommends: bool = True,
        update_index: bool = False,
    ) -> None:
        super().__init__(package, display_name=display_name, cancel=cancel)
        self.install_recommends = install_recommends
        self.update_index = update_index

    async def check_presence(self, cancel: Optional[CancelToken]) -> bool:
        self.log.debug("Checking if already installed")
        r = await run_cmd(["apt", "list", "--installed", self.package], check=False, cancel=cancel)
        if r.returncode != 0:
            return False
        return any(is_installed_line(line, self.package) for line in r.stdout.splitlines())

    def install_command(self) -> ShellCommand:
        cmd = ShellCommand("apt-get").add_option("-y")
        if not self.install_recommends:
            cmd.add_option("--no-install-recommends")
        return cmd.add_arg("install", self.package)

    async def perform_install(self, cancel: Optional[CancelToken]) -> CmdResult:
        if self.update_index:
            self.log.debug("Updating package index")
            await ShellCommand("apt-get").add_arg("update").run(cancel=cancel, env=APT_ENV)

        self.log.debug("Installing package with apt")
        return await self.install_command().run(cancel=cancel, env=APT_ENV)
