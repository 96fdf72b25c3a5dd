"""Application bootstrap for the placekeeper desktop editor."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, cast, get_args, get_type_hints

from .services.settings import Settings, SettingsStore
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)

_BOOL_WORDS = {
    **dict.fromkeys(("1", "true", "yes", "on", "debug"), True),
    **dict.fromkeys(("0", "false", "no", "off", "disabled"), False),
}
_NULL_WORDS = {"none", "null"}
_ENV_PREFIX = "PLACEKEEPER_"


@dataclass(slots=True)
class QtRuntime:
    """QApplication plus the qasync loop driving it."""

    app: Any
    loop: asyncio.AbstractEventLoop


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging to %s at %s", log_path, logging.getLevelName(level))
    _route_qt_messages()


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load settings through ``store``; unreadable settings yield the defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def create_qapp() -> QtRuntime:
    """Create (or reuse) the QApplication and install a qasync event loop."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to launch the placekeeper UI.") from exc
    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on env setup
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("placekeeper")
    app.setApplicationDisplayName("placekeeper")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    app.aboutToQuit.connect(loop.stop)
    return QtRuntime(app=app, loop=loop)


def resolve_vault(settings: Settings, cli_vault: str | None) -> Path:
    """Vault directory from the CLI flag, else the settings, else the working directory."""

    raw = cli_vault or settings.vault_path or os.getcwd()
    return Path(raw).expanduser().resolve()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point of the ``placekeeper`` console script."""

    args, qt_args = _parse_cli_args(argv)
    sys.argv = [sys.argv[0] if sys.argv else "placekeeper", *qt_args]

    debug = os.environ.get("PLACEKEEPER_DEBUG", "").strip().lower() in _truthy_words()
    configure_logging(debug)

    try:
        cli_overrides = _coerce_cli_overrides(args.overrides)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings_path = args.settings_path or os.environ.get("PLACEKEEPER_SETTINGS_PATH")
    store = SettingsStore(Path(settings_path).expanduser() if settings_path else None)
    settings = load_settings(store=store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=cli_overrides)
        return
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    vault = resolve_vault(settings, args.vault)
    initial_path = _vault_relative(vault, args.file) if args.file else None

    runtime = create_qapp()
    from .ui.main_window import MainWindow

    window = MainWindow(settings, vault=vault, settings_store=store)
    window.show()
    loop = runtime.loop
    try:
        loop.run_until_complete(window.start(initial_path))
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Interrupted; shutting down")
    finally:
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(window.shutdown())
        _drain_event_loop(loop)
        loop.close()


def _vault_relative(vault: Path, raw: str) -> str:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        return candidate.as_posix()
    try:
        return candidate.resolve().relative_to(vault).as_posix()
    except ValueError as exc:
        raise SystemExit(f"{raw} is not inside the vault {vault}") from exc


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel leftover tasks and shut down async generators and the executor."""

    if loop.is_closed():
        return

    async def _finish() -> None:
        me = asyncio.current_task()
        leftovers = [task for task in asyncio.all_tasks(loop) if task is not me and not task.done()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            _LOGGER.debug("Cancelled %d leftover task(s)", len(leftovers))
            await asyncio.gather(*leftovers, return_exceptions=True)
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_default_executor()

    try:
        loop.run_until_complete(_finish())
    except RuntimeError as exc:  # pragma: no cover - loop already stopped
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


def _route_qt_messages() -> None:
    """Forward Qt's own diagnostics into the ``PySide6`` logger."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - PySide6 optional during tests
        return

    levels = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }
    qt_logger = logging.getLogger("PySide6")

    def _handler(mode, _context, message):  # type: ignore[no-untyped-def]
        qt_logger.log(levels.get(mode, logging.INFO), message)

    qInstallMessageHandler(_handler)


def _parse_cli_args(argv: Sequence[str] | None) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(
        prog="placekeeper",
        description="Open a vault in the placekeeper editor or inspect its configuration.",
    )
    parser.add_argument("file", nargs="?", help="document to open, relative to the vault")
    parser.add_argument("--vault", metavar="DIR", help="vault directory (default: settings, then cwd)")
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="settings file to use instead of ~/.placekeeper/settings.json",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="override a setting for this run (repeatable)",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="print the effective settings as JSON and exit",
    )
    return parser.parse_known_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into typed :class:`Settings` overrides."""

    known = {field.name for field in fields(Settings)}
    hints = get_type_hints(Settings)
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw = entry.partition("=")
        key = key.strip()
        if not separator:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(hints[key], raw.strip())
    return overrides


def _coerce_value(annotation: Any, raw: str) -> Any:
    members = [arg for arg in get_args(annotation) if arg is not type(None)]
    nullable = len(members) < len(get_args(annotation))
    target = members[0] if members else annotation

    if nullable and raw.lower() in _NULL_WORDS:
        return None
    if target is bool:
        try:
            return _BOOL_WORDS[raw.lower()]
        except KeyError:
            raise ValueError(f"Cannot coerce '{raw}' to a boolean.") from None
    if target is int:
        return int(raw, 10)
    return raw


def _truthy_words() -> set[str]:
    return {word for word, value in _BOOL_WORDS.items() if value}


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    document = {
        "settings": asdict(settings),
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(
                name for name in os.environ if name.startswith(_ENV_PREFIX)
            ),
        },
    }
    json.dump(document, destination, indent=2)
    destination.write("\n")
