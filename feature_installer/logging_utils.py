from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple, Union

DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVEL_ENV = "FEATURE_INSTALLER_LOG_LEVEL"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter carrying structured key/value fields.

    Fields are rendered as a ``[key=value ...]`` prefix and exposed on the
    record as ``record.context``. ``bind()`` returns a new adapter, the
    original is never mutated.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        fields: Dict[str, Any] = dict(self.extra or {})
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = fields
        kwargs["extra"] = extra
        if fields:
            prefix = " ".join(f"{k}={v}" for k, v in fields.items())
            msg = f"[{prefix}] {msg}"
        return msg, kwargs

    def bind(self, **fields: Any) -> "ContextLogger":
        return ContextLogger(self.logger, {**(self.extra or {}), **fields})

    def trace(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.log(TRACE, msg, *args, **kwargs)


def bind(logger: Union[logging.Logger, ContextLogger], **fields: Any) -> ContextLogger:
    if isinstance(logger, ContextLogger):
        return logger.bind(**fields)
    return ContextLogger(logger, fields)


def resolve_level(level: Union[str, int, None], env: Optional[Mapping[str, str]] = None) -> int:
    """Resolve a level: explicit value > FEATURE_INSTALLER_LOG_LEVEL > INFO."""

    if isinstance(level, int):
        return level
    if not level:
        level = (env if env is not None else os.environ).get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    return numeric


def configure_logging(
    log_path: Optional[str] = None,
    level: Union[str, int, None] = None,
    also_console: bool = True,
) -> Optional[str]:
    """Configure root logging for the CLI.

    Notes:
    - If ``log_path`` is not writable, we fall back to a file with the same
      name in the working directory.
    - Calling this twice only updates the level.

    Returns the actual file path being used, or None without a file handler.
    """

    logger = logging.getLogger()
    logger.setLevel(resolve_level(level))

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_feature_installer_configured", False):
        return getattr(logger, "_feature_installer_log_path", log_path)

    chosen_path: Optional[str] = None
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    if log_path:
        try:
            Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            chosen_path = log_path
        except OSError:
            fallback = str(Path.cwd() / Path(log_path).name)
            file_handler = logging.FileHandler(fallback)
            chosen_path = fallback
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_feature_installer_configured", True)
    setattr(logger, "_feature_installer_log_path", chosen_path)

    logging.getLogger(__name__).debug(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path
