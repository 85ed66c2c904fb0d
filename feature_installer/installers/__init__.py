from .apt import AptInstaller
from .base import Installer, InstallerBase, InstallResult, run_installer
from .script import ScriptInstaller

__all__ = [
    "AptInstaller",
    "Installer",
    "InstallerBase",
    "InstallResult",
    "ScriptInstaller",
    "run_installer",
]
