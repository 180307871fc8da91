from __future__ import annotations

from PySide6.QtCore import QModelIndex, QPoint, QRect, QSize, Qt
from PySide6.QtGui import QAction, QCloseEvent, QGuiApplication, QPixmap, QShowEvent
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QDialog,
    QDialogButtonBox,
    QLabel,
    QListView,
    QMainWindow,
    QMenu,
    QStackedWidget,
    QToolBar,
    QVBoxLayout,
    QWidget,
)

from debug_scaffold import record_breadcrumb, register_context_provider
from tab_tray import TabTrayController, TabTrayModel, TrayConfig

PAGE_TABS = 0
PAGE_EMPTY = 1
PAGE_HIDDEN = 2


class TraySettingsDialog(QDialog):
    def __init__(self, cfg: TrayConfig, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Tab Settings")
        lay = QVBoxLayout(self)
        self.close_private = QCheckBox("Close private tabs when leaving private mode")
        self.close_private.setChecked(cfg.close_private_tabs)
        self.always_private = QCheckBox("Always use private browsing")
        self.always_private.setChecked(cfg.private_browsing_always_on)
        lay.addWidget(self.close_private)
        lay.addWidget(self.always_private)
        box = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        box.accepted.connect(self.accept)
        box.rejected.connect(self.reject)
        lay.addWidget(box)

    def apply_to(self, cfg: TrayConfig) -> None:
        cfg.close_private_tabs = self.close_private.isChecked()
        cfg.private_browsing_always_on = self.always_private.isChecked()


class TabTrayWindow(QMainWindow):
    """Grid of open tabs.  Picking a tab hides the tray."""

    def __init__(self, controller: TabTrayController) -> None:
        super().__init__()
        self.controller = controller
        self.cfg = controller.config
        self.last_snapshot: QPixmap | None = None

        self.setWindowTitle("Tabs")
        self.setMinimumSize(320, 240)
        self._restore_geometry(720, 520)

        # toolbar
        self.toolbar = QToolBar()
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, self.toolbar)
        self.new_tab_action = QAction("➕ New Tab", self)
        self.new_tab_action.triggered.connect(lambda: self.controller.open_new_tab())
        self.toolbar.addAction(self.new_tab_action)

        self.private_action = QAction("Private", self)
        self.private_action.setCheckable(True)
        self.private_action.setChecked(controller.private_mode)
        self.private_action.triggered.connect(self._on_private_toggled)
        self.private_action.setVisible(controller.capabilities.private_mode_available)
        self.toolbar.addAction(self.private_action)

        self.settings_action = QAction("Settings…", self)
        self.settings_action.triggered.connect(self.open_settings)
        self.toolbar.addAction(self.settings_action)

        # pages: tab grid, private placeholder, privacy screen
        self.model = TabTrayModel(controller, self)
        self.list_view = QListView()
        self.list_view.setViewMode(QListView.ViewMode.IconMode)
        self.list_view.setResizeMode(QListView.ResizeMode.Adjust)
        self.list_view.setMovement(QListView.Movement.Static)
        self.list_view.setIconSize(QSize(64, 64))
        self.list_view.setGridSize(QSize(150, 110))
        self.list_view.setSpacing(12)
        self.list_view.setWordWrap(True)
        self.list_view.setModel(self.model)
        self.list_view.clicked.connect(self._on_clicked)
        self.list_view.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self.list_view.customContextMenuRequested.connect(self._show_context_menu)

        self.empty_label = QLabel(
            "Private Browsing\n\n"
            "Pages you visit in private tabs are not kept in your history."
        )
        self.empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.empty_label.setWordWrap(True)

        self.stack = QStackedWidget()
        self.stack.addWidget(self.list_view)
        self.stack.addWidget(self.empty_label)
        self.stack.addWidget(QWidget())
        self.setCentralWidget(self.stack)
        self._sync_page()

        controller.empty_state_changed.connect(lambda _e: self._sync_page())
        controller.content_hidden_changed.connect(self._on_content_hidden)
        controller.dismiss_requested.connect(self.dismiss)
        controller.snapshot_requested.connect(self._take_snapshot)
        controller.reloaded.connect(self._sync_private_action)

        app = QGuiApplication.instance()
        if app is not None:
            app.applicationStateChanged.connect(self._on_application_state)

        register_context_provider(
            "tab_tray",
            lambda: {
                "private": self.controller.private_mode,
                "tabs": self.controller.count(),
            },
        )

    # -------- geometry --------
    def _restore_geometry(self, default_w: int, default_h: int) -> None:
        lw, lh, lx, ly = (
            self.cfg.last_width,
            self.cfg.last_height,
            self.cfg.last_x,
            self.cfg.last_y,
        )
        if None not in (lw, lh, lx, ly) and self._geometry_visible(lx, ly, lw, lh):
            self.resize(lw, lh)
            self.move(lx, ly)
        else:
            self._center_on_primary(default_w, default_h)

    def _geometry_visible(self, x: int, y: int, w: int, h: int) -> bool:
        rect = QRect(x, y, w, h)
        for screen in QApplication.screens():
            if screen.availableGeometry().intersects(rect):
                return True
        return False

    def _center_on_primary(self, w: int, h: int) -> None:
        screen = QApplication.primaryScreen()
        if screen is None:
            self.resize(w, h)
            return
        avail = screen.availableGeometry()
        self.resize(w, h)
        self.move(
            avail.left() + (avail.width() - w) // 2,
            avail.top() + (avail.height() - h) // 2,
        )

    # -------- view state --------
    def _sync_page(self) -> None:
        if self.stack.currentIndex() == PAGE_HIDDEN:
            return
        self.stack.setCurrentIndex(
            PAGE_EMPTY if self.controller.is_empty_state else PAGE_TABS
        )

    def _sync_private_action(self) -> None:
        self.private_action.setChecked(self.controller.private_mode)

    def _on_content_hidden(self, hidden: bool) -> None:
        if hidden:
            self.stack.setCurrentIndex(PAGE_HIDDEN)
        else:
            self.stack.setCurrentIndex(PAGE_TABS)
            self._sync_page()

    def _on_application_state(self, state: Qt.ApplicationState) -> None:
        if state == Qt.ApplicationState.ApplicationActive:
            self.controller.app_did_become_active()
        else:
            self.controller.app_will_resign_active()

    def _take_snapshot(self) -> None:
        self.last_snapshot = self.stack.grab()

    # -------- actions --------
    def _on_private_toggled(self, checked: bool) -> None:
        self.controller.set_private_mode(checked)

    def _on_clicked(self, index: QModelIndex) -> None:
        self.controller.did_select_item(index.row())

    def _show_context_menu(self, pos: QPoint) -> None:
        index = self.list_view.indexAt(pos)
        if not index.isValid():
            return
        menu = QMenu(self)
        menu.addAction("Close Tab", lambda r=index.row(): self.controller.close_tab_at(r))
        menu.exec(self.list_view.viewport().mapToGlobal(pos))

    def open_settings(self) -> None:
        dlg = TraySettingsDialog(self.cfg, self)
        self.controller.presenting_modal = True
        try:
            if dlg.exec() == QDialog.DialogCode.Accepted:
                dlg.apply_to(self.cfg)
                self.cfg.save()
                record_breadcrumb(
                    "tray_settings_apply",
                    close_private_tabs=self.cfg.close_private_tabs,
                    always_private=self.cfg.private_browsing_always_on,
                )
        finally:
            self.controller.dismiss_modal()

    def dismiss(self) -> None:
        record_breadcrumb("tray_dismissed")
        self.hide()

    # -------- Qt events --------
    def showEvent(self, event: QShowEvent) -> None:  # noqa: D401
        super().showEvent(event)
        record_breadcrumb("tray_shown", tabs=self.controller.count())

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: D401
        try:
            self.cfg.last_width = int(self.width())
            self.cfg.last_height = int(self.height())
            self.cfg.last_x = int(self.x())
            self.cfg.last_y = int(self.y())
            self.cfg.save()
        finally:
            super().closeEvent(event)
