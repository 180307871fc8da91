# tab_tray.py
# Tab tray presentation: keeps a weak, privacy-filtered mirror of the tab
# collection and turns collection events into list deltas for Qt views.

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from PySide6.QtCore import (
    QAbstractListModel,
    QModelIndex,
    QObject,
    QPersistentModelIndex,
    Qt,
    Signal,
)
from PySide6.QtGui import QColor, QFont, QIcon, QPainter, QPixmap

from debug_scaffold import record_breadcrumb, sanitize_log_extra, sanitize_url
from tab_manager import NavigationRequest, Tab, TabManager
from weak_list import WeakList

APP_NAME = "BrowserTabTray"

logger = logging.getLogger(__name__)


def app_dirs() -> Path:
    if sys.platform.startswith("win"):
        base = Path(os.getenv("APPDATA", str(Path.home() / "AppData/Roaming")))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    cfg = base / APP_NAME
    cfg.mkdir(parents=True, exist_ok=True)
    return cfg


CFG_DIR = app_dirs()
CFG_PATH = CFG_DIR / "config.json"
DB_PATH = CFG_DIR / "browser.db"


def _as_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    return value if isinstance(value, bool) else default


def _as_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


@dataclass
class TrayConfig:
    private_mode_enabled: bool = True
    close_private_tabs: bool = False
    private_browsing_always_on: bool = False
    last_width: int | None = None
    last_height: int | None = None
    last_x: int | None = None
    last_y: int | None = None

    @staticmethod
    def load() -> "TrayConfig":
        if CFG_PATH.exists():
            try:
                data = json.loads(CFG_PATH.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning(
                    "config_unreadable",
                    extra={"event": "config_unreadable", "path": str(CFG_PATH), "error": str(exc)},
                )
                data = {}
            if not isinstance(data, dict):
                data = {}
            return TrayConfig(
                private_mode_enabled=_as_bool(data, "private_mode_enabled", True),
                close_private_tabs=_as_bool(data, "close_private_tabs", False),
                private_browsing_always_on=_as_bool(
                    data, "private_browsing_always_on", False
                ),
                last_width=_as_int(data, "last_width"),
                last_height=_as_int(data, "last_height"),
                last_x=_as_int(data, "last_x"),
                last_y=_as_int(data, "last_y"),
            )
        # first run – write defaults
        cfg = TrayConfig()
        cfg.save()
        return cfg

    def save(self) -> None:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        CFG_PATH.write_text(json.dumps(data, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class TrayCapabilities:
    """Feature switches resolved once at startup."""

    private_mode_available: bool = True

    @classmethod
    def from_config(cls, cfg: TrayConfig) -> "TrayCapabilities":
        return cls(private_mode_available=cfg.private_mode_enabled)


class DesyncError(AssertionError):
    """A logical index did not match the tray's live tabs.

    Raised when the visual list and the tab collection have drifted apart,
    which means an earlier event was missed.
    """


class TabTrayController(QObject):
    """Privacy-filtered, non-owning view over a :class:`TabManager`.

    The mirror is a :class:`WeakList` of the tabs visible in the current
    mode together with their ``tab_id`` handles, i.e. the rows the
    presentation layer currently shows.  Every delta comes as a pair:
    ``about_to_*`` while the mirror still holds the old rows, then the plain
    signal once it holds the new ones.
    """

    about_to_insert = Signal(int)
    inserted = Signal(int)
    about_to_remove = Signal(int)
    removed = Signal(int)
    about_to_reload = Signal()
    reloaded = Signal()
    empty_state_changed = Signal(bool)
    dismiss_requested = Signal()
    snapshot_requested = Signal()
    content_hidden_changed = Signal(bool)

    def __init__(
        self,
        tab_manager: TabManager,
        config: TrayConfig | None = None,
        capabilities: TrayCapabilities | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.tab_manager = tab_manager
        self.config = config or TrayConfig()
        self.capabilities = capabilities or TrayCapabilities.from_config(self.config)
        self.presenting_modal = False
        self._content_hidden = False

        selected = tab_manager.selected_tab
        if selected is not None:
            self._private_mode = selected.is_private
        else:
            self._private_mode = self.config.private_browsing_always_on

        self._mirror: WeakList[Tab] = WeakList()
        self._handles: list[int] = []
        self.update_data()
        self._empty = self._compute_empty()

        tab_manager.tab_added.connect(self.on_tab_added)
        tab_manager.tab_removed.connect(self.on_tab_removed)
        tab_manager.selected_tab_changed.connect(self._on_selected_tab_changed)
        self._attached = True

    # -------- read model --------
    @property
    def private_mode(self) -> bool:
        return self._private_mode

    @property
    def is_empty_state(self) -> bool:
        return self._empty

    @property
    def mirror(self) -> WeakList[Tab]:
        return self._mirror

    def count(self) -> int:
        return self._mirror.count()

    def item_at(self, index: int) -> Tab:
        tab = self._mirror.at(index)
        if tab is None:
            self._desync("item_at", index)
        return tab

    def tabs(self) -> list[Tab]:
        return list(self._mirror)

    # -------- mirror maintenance --------
    def update_data(self) -> None:
        """Rebuild the mirror from the collection.  Emits nothing."""
        self._set_rows(self.tab_manager.displayed_tabs_for_private_mode(self._private_mode))

    def _set_rows(self, tabs: list[Tab]) -> None:
        self._mirror = WeakList()
        self._handles = []
        for tab in tabs:
            self._mirror.insert(tab)
            self._handles.append(tab.tab_id)

    def _drop_slot(self, index: int) -> None:
        """Remove one row, keeping every other slot as it was."""
        live = {tab.tab_id: tab for tab in self._mirror}
        remaining = self._handles[:index] + self._handles[index + 1 :]
        self._set_rows([live[h] for h in remaining if h in live])

    def _reload(self) -> None:
        self.about_to_reload.emit()
        self.update_data()
        self.reloaded.emit()

    def _compute_empty(self, count: int | None = None) -> bool:
        if count is None:
            count = self._mirror.count()
        return self._private_mode and count == 0

    def _update_empty_state(self, count: int | None = None) -> None:
        empty = self._compute_empty(count)
        if empty != self._empty:
            self._empty = empty
            record_breadcrumb("tray_empty_state", empty=empty)
            self.empty_state_changed.emit(empty)

    # -------- collection events --------
    def on_tab_added(self, tab: Tab) -> None:
        if tab.is_private != self._private_mode:
            return
        current = self.tab_manager.displayed_tabs_for_private_mode(self._private_mode)
        index = next((i for i, t in enumerate(current) if t is tab), -1)
        if index < 0:
            # already gone again; nothing to show
            return

        self._update_empty_state(len(current))
        expected = self._handles[:index] + [tab.tab_id] + self._handles[index:]
        if [t.tab_id for t in current] == expected:
            self._log_delta("insert", index, tab)
            self.about_to_insert.emit(index)
            self._set_rows(current)
            self.inserted.emit(index)
        else:
            self._resync("insert")

        self.tab_manager.select_tab(tab)
        if not self.presenting_modal:
            self.dismiss_requested.emit()

    def on_tab_removed(self, tab: Tab) -> None:
        # Rows are addressed by handle: the tab object itself may already be
        # unreachable from the collection.
        try:
            removed_index = self._handles.index(tab.tab_id)
        except ValueError:
            removed_index = -1

        current_ids = [
            t.tab_id
            for t in self.tab_manager.displayed_tabs_for_private_mode(self._private_mode)
        ]
        if removed_index >= 0:
            self._log_delta("remove", removed_index, tab)
            self.about_to_remove.emit(removed_index)
            self._drop_slot(removed_index)
            self.removed.emit(removed_index)
        if self._handles != current_ids:
            self._resync("remove")
        self._update_empty_state()

    def _on_selected_tab_changed(self, tab: Tab | None) -> None:
        logger.debug(
            "tray_selection_seen",
            extra={
                "event": "tray_selection_seen",
                "tab_id": tab.tab_id if tab is not None else None,
                "in_tray": tab is not None and tab.tab_id in self._handles,
            },
        )

    # -------- privacy mode --------
    def toggle_private_mode(self) -> None:
        self.snapshot_requested.emit()
        self.about_to_reload.emit()
        self._private_mode = not self._private_mode
        if not self._private_mode and self.config.close_private_tabs:
            self.tab_manager.remove_all_private_tabs(notify=False)
        self.update_data()
        record_breadcrumb("tray_private_mode", private=self._private_mode, tabs=self.count())
        logger.info(
            "tray_private_mode",
            extra={
                "event": "tray_private_mode",
                "private": self._private_mode,
                "tabs": self.count(),
            },
        )
        self.reloaded.emit()
        self._update_empty_state()

    def set_private_mode(self, is_private: bool) -> None:
        if is_private != self._private_mode:
            self.toggle_private_mode()

    # -------- user interaction --------
    def selected_index(self, index: int) -> None:
        tab = self._mirror.at(index)
        if tab is None:
            self._desync("selected_index", index)
        self.tab_manager.select_tab(tab)
        record_breadcrumb("tray_select", index=index, tab_id=tab.tab_id)

    def did_select_item(self, index: int) -> None:
        self.selected_index(index)
        self.dismiss_requested.emit()

    def open_new_tab(self, request: NavigationRequest | None = None) -> Tab:
        return self.tab_manager.add_tab(request, is_private=self._private_mode)

    def close_tab_at(self, index: int) -> None:
        tab = self.item_at(index)
        if self.config.private_browsing_always_on:
            create_if_none = True
        else:
            create_if_none = not self._private_mode
        self.tab_manager.remove_tab(tab, create_if_none_left=create_if_none)

    def dismiss_modal(self) -> None:
        self.presenting_modal = False
        self._reload()

    # -------- application state --------
    def app_will_resign_active(self) -> None:
        if self._private_mode and not self._content_hidden:
            self._content_hidden = True
            self.content_hidden_changed.emit(True)

    def app_did_become_active(self) -> None:
        if self._content_hidden:
            self._content_hidden = False
            self.content_hidden_changed.emit(False)

    def detach(self) -> None:
        if not self._attached:
            return
        self.tab_manager.tab_added.disconnect(self.on_tab_added)
        self.tab_manager.tab_removed.disconnect(self.on_tab_removed)
        self.tab_manager.selected_tab_changed.disconnect(self._on_selected_tab_changed)
        self._attached = False

    # -------- helpers --------
    def _log_delta(self, kind: str, index: int, tab: Tab) -> None:
        record_breadcrumb("tray_delta", kind=kind, index=index, tab_id=tab.tab_id)
        logger.info(
            "tab_tray_delta",
            extra=sanitize_log_extra(
                {
                    "event": "tab_tray_delta",
                    "kind": kind,
                    "index": index,
                    "tab_id": tab.tab_id,
                    "url": sanitize_url(tab.url),
                    "private": self._private_mode,
                }
            ),
        )

    def _resync(self, op: str) -> None:
        record_breadcrumb("tray_resync", op=op, rows=len(self._handles))
        logger.warning("tab_tray_resync", extra={"event": "tab_tray_resync", "op": op})
        self._reload()

    def _desync(self, op: str, index: int) -> None:
        live = self._mirror.count()
        record_breadcrumb("tray_desync", op=op, index=index, live=live)
        logger.error(
            "tab_tray_desync",
            extra={"event": "tab_tray_desync", "op": op, "index": index, "live": live},
        )
        raise DesyncError(f"{op}: index {index} outside the {live} live tab(s)")


def letter_icon(text: str, size: int = 64, dark: bool = False) -> QIcon:
    """Generate a round icon with the first letter of the tab title."""
    ch = (text or "?").strip()[:1].upper() or "?"
    pix = QPixmap(size, size)
    pix.fill(Qt.GlobalColor.transparent)
    p = QPainter(pix)
    p.setRenderHint(QPainter.RenderHint.Antialiasing, True)
    p.setBrush(QColor("#3A3A40" if dark else "#F5F6FA"))
    p.setPen(QColor("#55555C" if dark else "#D6D8E1"))
    p.drawEllipse(1, 1, size - 2, size - 2)
    font = QFont()
    font.setBold(True)
    font.setPointSize(max(1, int(size * 0.4)))
    p.setFont(font)
    p.setPen(QColor("#EEE" if dark else "#222"))
    p.drawText(pix.rect(), Qt.AlignmentFlag.AlignCenter, ch)
    p.end()
    return QIcon(pix)


class TabTrayModel(QAbstractListModel):
    """Qt list model that applies :class:`TabTrayController` deltas."""

    TabIdRole = int(Qt.ItemDataRole.UserRole) + 1
    IsPrivateRole = int(Qt.ItemDataRole.UserRole) + 2

    def __init__(self, controller: TabTrayController, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._controller = controller
        self._icons: dict[tuple[str, bool], QIcon] = {}
        controller.about_to_insert.connect(self._on_about_to_insert)
        controller.inserted.connect(self._on_inserted)
        controller.about_to_remove.connect(self._on_about_to_remove)
        controller.removed.connect(self._on_removed)
        controller.about_to_reload.connect(self._on_about_to_reload)
        controller.reloaded.connect(self._on_reloaded)

    def rowCount(  # noqa: N802
        self, parent: QModelIndex | QPersistentModelIndex = QModelIndex()
    ) -> int:
        if parent.isValid():
            return 0
        return self._controller.count()

    def data(
        self,
        index: QModelIndex | QPersistentModelIndex,
        role: int = Qt.ItemDataRole.DisplayRole,
    ) -> Optional[Any]:
        if not index.isValid():
            return None
        tab = self._controller.mirror.at(index.row())
        if tab is None:
            return None
        if role == Qt.ItemDataRole.DisplayRole:
            return tab.display_title
        if role == Qt.ItemDataRole.ToolTipRole:
            return tab.url
        if role == Qt.ItemDataRole.DecorationRole:
            key = (tab.display_title[:1].upper(), tab.is_private)
            icon = self._icons.get(key)
            if icon is None:
                icon = letter_icon(tab.display_title, 64, dark=tab.is_private)
                self._icons[key] = icon
            return icon
        if role == self.TabIdRole:
            return tab.tab_id
        if role == self.IsPrivateRole:
            return tab.is_private
        return None

    def _on_about_to_insert(self, row: int) -> None:
        self.beginInsertRows(QModelIndex(), row, row)

    def _on_inserted(self, _row: int) -> None:
        self.endInsertRows()

    def _on_about_to_remove(self, row: int) -> None:
        self.beginRemoveRows(QModelIndex(), row, row)

    def _on_removed(self, _row: int) -> None:
        self.endRemoveRows()

    def _on_about_to_reload(self) -> None:
        self.beginResetModel()

    def _on_reloaded(self) -> None:
        self.endResetModel()
