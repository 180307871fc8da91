# SPDX-License-Identifier: Apache-2.0
"""
Pytest bootstrap for headless/CI runs.

- QT_QPA_PLATFORM=offscreen (don't require a display)
- QT_OPENGL=software to avoid libGL/OpenGL driver lookups in headless CI
- A safe XDG_RUNTIME_DIR with 0700 perms (Qt checks this)
- Repo root on sys.path so the flat modules import
- Config file redirected into tmp_path for every test
"""

import os
import sys
import tempfile
import pathlib

import pytest

# ---------- Headless-safe Qt defaults ----------
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
os.environ.setdefault("QT_OPENGL", "software")

try:
    uid = os.getuid()  # not present on Windows
except AttributeError:
    uid = 0
_xdg = pathlib.Path(tempfile.gettempdir()) / f"xdg-runtime-{uid}"
try:
    _xdg.mkdir(parents=True, exist_ok=True)
    _xdg.chmod(0o700)
except OSError:
    pass
os.environ.setdefault("XDG_RUNTIME_DIR", str(_xdg))

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr("tab_tray.CFG_PATH", tmp_path / "config.json")
    return tmp_path / "config.json"


@pytest.fixture
def manager(qapp):
    from tab_manager import TabManager

    return TabManager()


@pytest.fixture
def tray_events():
    """Connect a recorder to every controller signal; returns (attach, log)."""
    log: list[tuple] = []

    def attach(tray):
        tray.inserted.connect(lambda i: log.append(("insert", i)))
        tray.removed.connect(lambda i: log.append(("remove", i)))
        tray.reloaded.connect(lambda: log.append(("reload",)))
        tray.empty_state_changed.connect(lambda e: log.append(("empty", e)))
        tray.dismiss_requested.connect(lambda: log.append(("dismiss",)))
        tray.snapshot_requested.connect(lambda: log.append(("snapshot",)))
        tray.content_hidden_changed.connect(lambda h: log.append(("hidden", h)))
        return tray

    return attach, log
