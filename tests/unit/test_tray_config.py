from __future__ import annotations

import json

import pytest

pytest.importorskip("PySide6.QtWidgets")

from tab_tray import TrayConfig


@pytest.mark.unit
def test_first_run_writes_defaults(_isolated_config):
    assert not _isolated_config.exists()
    cfg = TrayConfig.load()
    assert cfg == TrayConfig()
    data = json.loads(_isolated_config.read_text())
    assert data == {
        "private_mode_enabled": True,
        "close_private_tabs": False,
        "private_browsing_always_on": False,
    }


@pytest.mark.unit
def test_load_ignores_wrong_types(_isolated_config):
    _isolated_config.write_text(
        json.dumps(
            {
                "private_mode_enabled": "no",
                "close_private_tabs": True,
                "private_browsing_always_on": 1,
                "last_width": 800,
                "last_height": "tall",
                "last_x": True,
            }
        )
    )
    cfg = TrayConfig.load()
    assert cfg.private_mode_enabled is True
    assert cfg.close_private_tabs is True
    assert cfg.private_browsing_always_on is False
    assert cfg.last_width == 800
    assert cfg.last_height is None
    assert cfg.last_x is None


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
def test_load_unreadable_falls_back_to_defaults(_isolated_config, raw):
    _isolated_config.write_text(raw)
    assert TrayConfig.load() == TrayConfig()


@pytest.mark.unit
def test_save_round_trips_geometry(_isolated_config):
    cfg = TrayConfig(close_private_tabs=True, last_width=640, last_height=480, last_x=10, last_y=20)
    cfg.save()
    assert TrayConfig.load() == cfg
