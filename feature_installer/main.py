from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any, Dict, List, Optional

import yaml

from .cancel import CancelToken
from .config import InstallerConfig, load_config
from .errors import AbortedError, InstallationFailure, ValidationError
from .installers import AptInstaller, InstallerBase, InstallResult, ScriptInstaller
from .lib.streams import FileStreamSource, HttpStreamSource, StreamSource, TextStreamSource
from .logging_utils import LOG_LEVEL_ENV, configure_logging
from .manifest import BooleanOption, FeatureManifest, load_manifest

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_ABORTED = 130


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="feature-installer")
    p.add_argument("--config", default=None, help="Path to installer config (yaml)")
    p.add_argument("--log", default=None, help="Path to log file")
    p.add_argument("--log-level", default=None, help=f"Log level (default: ${LOG_LEVEL_ENV} or INFO)")

    sub = p.add_subparsers(dest="command", required=True)

    apt = sub.add_parser("apt", help="Install a package with apt-get")
    apt.add_argument("package")
    apt.add_argument("--display-name", default=None)
    apt.add_argument("--no-install-recommends", action="store_true")
    apt.add_argument("--update", action="store_true", help="Run apt-get update first")

    script = sub.add_parser("script", help="Install a tool by running a script")
    script.add_argument("package", help="Executable the script installs")
    src = script.add_mutually_exclusive_group(required=True)
    src.add_argument("--url", default=None)
    src.add_argument("--file", default=None)
    src.add_argument("--text", default=None)
    script.add_argument("--display-name", default=None)
    script.add_argument("--interpreter", default=None)
    script.add_argument("script_args", nargs="*", help="Arguments passed to the script (after --)")

    manifest = sub.add_parser("manifest", help="Validate a feature manifest and print its options")
    manifest.add_argument("path")
    manifest.add_argument("--set", action="append", default=[], metavar="KEY=VALUE")

    return p


def _stream_source(args: argparse.Namespace, cfg: InstallerConfig) -> StreamSource:
    if args.url is not None:
        return HttpStreamSource(args.url, timeout=cfg.http_timeout)
    if args.file is not None:
        return FileStreamSource(args.file)
    return TextStreamSource(args.text)


def build_installer(args: argparse.Namespace, cfg: InstallerConfig, cancel: CancelToken) -> InstallerBase:
    if args.command == "apt":
        return AptInstaller(
            args.package,
            display_name=args.display_name,
            cancel=cancel,
            install_recommends=cfg.apt_install_recommends and not args.no_install_recommends,
            update_index=cfg.apt_update_index or args.update,
        )
    if args.command == "script":
        return ScriptInstaller(
            args.package,
            _stream_source(args, cfg),
            display_name=args.display_name,
            cancel=cancel,
            interpreter=args.interpreter or cfg.script_interpreter,
            script_args=args.script_args,
        )
    raise ValueError(f"Not an install command: {args.command}")


async def _run_with_signals(installer: InstallerBase, cancel: CancelToken) -> InstallResult:
    loop = asyncio.get_running_loop()
    installed: List[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.cancel, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread.
            pass
    try:
        return await installer.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _parse_overrides(pairs: List[str], manifest: FeatureManifest) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValidationError(f"Expected KEY=VALUE, got {pair!r}")
        opt = manifest.options.get(key)
        if isinstance(opt, BooleanOption):
            if value.lower() not in {"true", "false"}:
                raise ValidationError(f"Option {key} must be true or false")
            overrides[key] = value.lower() == "true"
        else:
            overrides[key] = value
    return overrides


def cmd_manifest(args: argparse.Namespace) -> int:
    manifest = load_manifest(args.path)
    resolved = manifest.resolve_options(_parse_overrides(args.set, manifest))
    sys.stdout.write(yaml.safe_dump({"id": manifest.id, "version": manifest.version, "options": resolved}, sort_keys=False))
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config) if args.config else InstallerConfig()
        configure_logging(
            log_path=args.log or cfg.log_path,
            level=args.log_level or os.environ.get(LOG_LEVEL_ENV) or cfg.log_level,
        )

        if args.command == "manifest":
            return cmd_manifest(args)

        cancel = CancelToken()
        installer = build_installer(args, cfg, cancel)
        result = asyncio.run(_run_with_signals(installer, cancel))
    except FileNotFoundError as e:
        logger.error("File not found: %s", e.filename or e)
        return EXIT_INVALID
    except ValueError as e:
        # ValidationError, bad config content, unknown log level.
        logger.error("%s", e)
        return EXIT_INVALID
    except AbortedError:
        return EXIT_ABORTED
    except InstallationFailure as e:
        logger.error("%s: %s", e, e.__cause__)
        return EXIT_FAILED

    logger.info("%s: %s", result.package, "installed" if result.installed else "already present")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
