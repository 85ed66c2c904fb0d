from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .lib.streams import DEFAULT_HTTP_TIMEOUT
from .installers.script import DEFAULT_INTERPRETER


@dataclass(frozen=True)
class InstallerConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def log_path(self) -> Optional[str]:
        path = self._section("logging").get("path")
        return str(path) if path else None

    @property
    def log_level(self) -> Optional[str]:
        level = self._section("logging").get("level")
        return str(level) if level else None

    @property
    def http_timeout(self) -> float:
        return float(self._section("http").get("timeout") or DEFAULT_HTTP_TIMEOUT)

    @property
    def script_interpreter(self) -> str:
        return str(self._section("script").get("interpreter") or DEFAULT_INTERPRETER)

    @property
    def apt_install_recommends(self) -> bool:
        return bool(self._section("apt").get("install_recommends", True))

    @property
    def apt_update_index(self) -> bool:
        return bool(self._section("apt").get("update_index", False))


def load_config(path: str) -> InstallerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("installer config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("installer config must contain a mapping/object")

    return InstallerConfig(raw=raw)
