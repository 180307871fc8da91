"""Debug and crash handling utilities for BrowserTabTray.

This module provides structured JSON logging, a lightweight breadcrumb
ring buffer and helpers for gathering crash context and creating crash
bundles.  Everything above ``CrashDialog`` is importable without a display,
so the tab and data modules can log through it from unit tests.
"""

from __future__ import annotations

from collections import deque
import faulthandler
import json
import logging
from logging.handlers import RotatingFileHandler
import os
import platform
import signal
import subprocess
import sys
import threading
import traceback
import urllib.parse
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, Deque, Dict

import PySide6
from PySide6.QtCore import QtMsgType, QMessageLogContext, qInstallMessageHandler, qVersion
from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPushButton,
    QTextEdit,
    QVBoxLayout,
)


# Logging configuration ----------------------------------------------------
LOG_MAX_BYTES = 1_048_576  # 1 MB
LOG_BACKUPS = 5
BREADCRUMB_LIMIT = 100

# ring buffer for recent breadcrumbs
_breadcrumbs: Deque[dict[str, Any]] = deque(maxlen=BREADCRUMB_LIMIT)

# name -> callable returning a JSON-able snapshot for crash reports
_context_providers: dict[str, Callable[[], Any]] = {}

_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "process",
    "processName",
    "message",
    "taskName",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class JsonFormatter(logging.Formatter):
    """Minimal JSON line formatter."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc)
            .replace(tzinfo=None)
            .isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        msg = record.getMessage()
        if msg:
            payload["message"] = msg

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            payload[key] = value

        if record.exc_info:
            exc_type, exc, tb = record.exc_info
            payload["exc_type"] = getattr(exc_type, "__name__", str(exc_type))
            payload["exc_msg"] = str(exc)
            payload["trace"] = "".join(traceback.format_exception(exc_type, exc, tb))

        return json.dumps(payload, ensure_ascii=False, default=str)


def sanitize_log_extra(extra: dict[str, Any] | None) -> dict[str, Any] | None:
    """Rename keys that would clash with ``LogRecord`` attributes.

    ``logging`` refuses ``extra`` keys such as ``name`` or ``message``; they
    are kept under a prefixed name instead of being dropped.
    """

    if extra is None:
        return None
    clean: dict[str, Any] = {}
    for key, value in extra.items():
        if key == "name":
            clean["entity_name"] = value
        elif key == "message":
            clean["event_message"] = value
        elif key in _RECORD_ATTRS:
            clean[f"extra_{key}"] = value
        else:
            clean[key] = value
    return clean


def record_breadcrumb(event: str, **fields: Any) -> None:
    """Add a small breadcrumb to the ring buffer and log at DEBUG."""

    entry: Dict[str, Any] = {"ts": _utcnow().isoformat(), "event": event}
    entry.update(fields)
    _breadcrumbs.append(entry)
    logging.getLogger("breadcrumb").debug("", extra=sanitize_log_extra(entry))


def get_breadcrumbs() -> list[dict[str, Any]]:
    """Return a copy of the current breadcrumb ring."""

    return list(_breadcrumbs)


def register_context_provider(name: str, provider: Callable[[], Any]) -> None:
    """Contribute a named section to crash reports."""

    _context_providers[name] = provider


SENSITIVE_KEYS = {"token", "code", "session", "auth", "key", "password"}


def sanitize_url(url: str) -> str:
    """Strip credentials and sensitive query parameters from *url*."""

    try:
        parsed = urllib.parse.urlsplit(url)
    except (TypeError, ValueError):
        return url
    netloc = parsed.netloc.split("@")[-1]
    query = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    redacted = [(k, "REDACTED" if k.lower() in SENSITIVE_KEYS else v) for k, v in query]
    new_query = urllib.parse.urlencode(redacted)
    return urllib.parse.urlunsplit(
        (parsed.scheme, netloc, parsed.path, new_query, parsed.fragment)
    )


def _log_dir(app_name: str) -> Path:
    if sys.platform.startswith("win"):
        base = Path(os.getenv("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Logs"
    else:
        base = Path(os.getenv("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    path = base / app_name
    path.mkdir(parents=True, exist_ok=True)
    return path


def collect_runtime_context(app: QApplication | None) -> dict[str, Any]:
    """Gather a snapshot of the runtime environment."""

    ctx: dict[str, Any] = {
        "app_name": app.applicationName() if app else "BrowserTabTray",
        "os": {
            "name": platform.system(),
            "release": platform.release(),
        },
        "python": platform.python_version(),
    }

    ctx["pyside6"] = PySide6.__version__
    ctx["qt"] = qVersion()

    if app:
        screen = app.primaryScreen()
        if screen:
            geom = screen.geometry()
            ctx["screen"] = {
                "width": geom.width(),
                "height": geom.height(),
                "dpr": screen.devicePixelRatio(),
            }

    for name, provider in _context_providers.items():
        try:
            ctx[name] = provider()
        except Exception as exc:  # nosec B110
            ctx[name] = {"error": str(exc)}

    ctx["breadcrumbs"] = get_breadcrumbs()[-20:]
    return ctx


def create_crash_bundle(log_dir: Path, context: dict[str, Any]) -> Path:
    """Zip logs and *context* into a timestamped crash bundle."""

    ts = _utcnow().strftime("%Y%m%d-%H%M%S")
    bundle = log_dir / f"crash-{ts}.zip"
    crash_json = log_dir / "crash.json"
    crash_json.write_text(json.dumps(context, indent=2, default=str), encoding="utf-8")
    with zipfile.ZipFile(bundle, "w", zipfile.ZIP_DEFLATED) as zf:
        for path in log_dir.glob("debug.log*"):
            zf.write(path, path.name)
        fh_path = log_dir / "faulthandler.log"
        if fh_path.exists():
            zf.write(fh_path, fh_path.name)
        zf.write(crash_json, crash_json.name)
    return bundle


class CrashDialog(QDialog):  # pragma: no cover - GUI code
    """Crash dialog with details, log folder and bundle actions."""

    def __init__(
        self,
        app: QApplication,
        app_name: str,
        exc: BaseException,
        context: dict[str, Any],
        log_dir: Path,
    ) -> None:
        super().__init__()
        self._context = context
        self._log_dir = log_dir
        self.setWindowTitle(app_name)

        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        summary = str(exc) or type(exc).__name__

        logging.getLogger(__name__).error(
            "Uncaught exception",
            extra={
                "event": "uncaught_exception",
                "exc_type": type(exc).__name__,
                "exc_msg": summary,
                "trace": trace,
                "context": context,
            },
        )

        layout = QVBoxLayout(self)
        layout.addWidget(QLabel(summary))

        self._details = QTextEdit(json.dumps(context, indent=2, default=str)[: 64 * 1024])
        self._details.setReadOnly(True)
        self._details.setVisible(False)
        layout.addWidget(self._details)

        toggle = QPushButton("Technical details")
        toggle.setCheckable(True)
        toggle.toggled.connect(self._details.setVisible)
        layout.addWidget(toggle)

        buttons = QHBoxLayout()
        copy_btn = QPushButton("Copy Details")
        copy_btn.clicked.connect(self.copy_details)
        buttons.addWidget(copy_btn)

        open_btn = QPushButton("Open Log Folder")
        open_btn.clicked.connect(self.open_logs)
        buttons.addWidget(open_btn)

        bundle_btn = QPushButton("Create Crash Bundle")
        bundle_btn.clicked.connect(self.create_bundle)
        buttons.addWidget(bundle_btn)

        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.close)
        buttons.addWidget(close_btn)

        layout.addLayout(buttons)

    # ---- button handlers -------------------------------------------------
    def copy_details(self) -> None:
        QApplication.clipboard().setText(
            json.dumps(self._context, indent=2, ensure_ascii=False, default=str)
        )

    def open_logs(self) -> None:
        path = str(self._log_dir)
        if sys.platform.startswith("win"):
            os.startfile(path)  # nosec B605 - open local folder
        elif sys.platform == "darwin":
            subprocess.call(["open", path])  # nosec B603 B607
        else:
            subprocess.call(["xdg-open", path])  # nosec B603 B607

    def create_bundle(self) -> None:
        bundle = create_crash_bundle(self._log_dir, self._context)
        QMessageBox.information(self, "Crash bundle", f"Saved to {bundle}")


def install_debug_scaffold(app: QApplication, app_name: str = "BrowserTabTray") -> Path:
    """Install JSON file logging, global exception hooks and the Qt message
    handler.  Returns the log directory."""

    app.setApplicationName(app_name)
    log_dir = _log_dir(app_name)
    log_path = log_dir / "debug.log"

    handler = RotatingFileHandler(
        log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    fh_path = log_dir / "faulthandler.log"
    fh_file = open(fh_path, "a", encoding="utf-8")
    faulthandler.enable(fh_file)
    for _sig in ("SIGUSR1", "SIGUSR2"):
        signum = getattr(signal, _sig, None)
        if signum is not None and hasattr(faulthandler, "register"):
            faulthandler.register(signum, fh_file)

    def handle_exception(
        exc_type: type[BaseException], exc: BaseException, tb: TracebackType | None
    ) -> None:
        context = collect_runtime_context(app)
        dlg = CrashDialog(app, app_name, exc, context, log_dir)
        dlg.exec()

    sys.excepthook = handle_exception

    def thread_hook(args: threading.ExceptHookArgs) -> None:
        exc = args.exc_value or RuntimeError("Uncaught thread exception")
        root_logger.error(
            "thread_exception",
            exc_info=(args.exc_type, exc, args.exc_traceback),
            extra={"event": "thread_exception", "thread_name": getattr(args.thread, "name", None)},
        )

    threading.excepthook = thread_hook

    def unraisable_hook(args: sys.UnraisableHookArgs) -> None:
        root_logger.warning(
            "Unraisable exception: %s", args.exc_value, extra={"event": "unraisable"}
        )

    sys.unraisablehook = unraisable_hook

    def qt_message_handler(
        mode: QtMsgType, context: QMessageLogContext, message: str
    ) -> None:
        level_map = {
            QtMsgType.QtDebugMsg: logging.DEBUG,
            QtMsgType.QtInfoMsg: logging.INFO,
            QtMsgType.QtWarningMsg: logging.WARNING,
            QtMsgType.QtCriticalMsg: logging.ERROR,
            QtMsgType.QtFatalMsg: logging.CRITICAL,
        }
        root_logger.log(level_map.get(mode, logging.INFO), message)
        if mode == QtMsgType.QtFatalMsg:
            raise SystemExit(message)

    qInstallMessageHandler(qt_message_handler)

    record_breadcrumb("app_start")
    return log_dir
