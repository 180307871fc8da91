# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import json
import zipfile

import pytest

from debug_scaffold import create_crash_bundle


@pytest.mark.unit
def test_crash_bundle_packs_rotated_logs_and_tray_context(tmp_path) -> None:  # type: ignore[no-untyped-def]
    (tmp_path / "debug.log").write_text('{"event": "tab_added"}\n')
    (tmp_path / "debug.log.1").write_text('{"event": "tab_removed"}\n')
    (tmp_path / "faulthandler.log").write_text("")
    (tmp_path / "browser.db").write_bytes(b"sqlite")
    context = {"tab_tray": {"private": True, "tabs": 2}, "breadcrumbs": []}

    bundle = create_crash_bundle(tmp_path, context)

    assert bundle.name.startswith("crash-") and bundle.suffix == ".zip"  # nosec B101
    with zipfile.ZipFile(bundle) as zf:
        names = set(zf.namelist())
        assert {"debug.log", "debug.log.1", "faulthandler.log", "crash.json"} <= names  # nosec B101
        assert "browser.db" not in names  # nosec B101
        crash_data = json.loads(zf.read("crash.json").decode("utf-8"))
    assert crash_data["tab_tray"] == {"private": True, "tabs": 2}  # nosec B101
