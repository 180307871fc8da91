from __future__ import annotations

import sys

from PySide6.QtWidgets import QApplication

from browser_data import DataController
from debug_scaffold import install_debug_scaffold, register_context_provider
from tab_manager import NavigationRequest, TabManager
from tab_tray import DB_PATH, TabTrayController, TrayConfig
from tab_tray_window import TabTrayWindow


def main() -> None:
    app = QApplication(sys.argv)
    install_debug_scaffold(app, app_name="BrowserTabTray")

    cfg = TrayConfig.load()
    data = DataController(DB_PATH)
    app.aboutToQuit.connect(data.close)
    device = data.current_device()
    register_context_provider("device", lambda: device.device_display_id)

    tabs = TabManager()
    start_private = cfg.private_browsing_always_on
    tabs.select_tab(
        tabs.add_tab(NavigationRequest("about:home"), is_private=start_private)
    )

    controller = TabTrayController(tabs, cfg)
    window = TabTrayWindow(controller)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
