"""The tab collection: owns every browsing tab and publishes lifecycle signals.

Listeners connect to :class:`TabManager` signals; Qt delivers them
synchronously and in connection order when emitter and receiver live on the
same thread, which is the only way this module is used.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from PySide6.QtCore import QObject, Signal

from debug_scaffold import record_breadcrumb, sanitize_log_extra, sanitize_url

logger = logging.getLogger(__name__)

_tab_ids = itertools.count(1)


@dataclass(frozen=True)
class NavigationRequest:
    url: str


@dataclass(eq=False)
class Tab:
    """One browsing session.  Identity is object identity; ``tab_id`` is a
    stable handle that outlives the object in logs and in listeners."""

    url: str = "about:blank"
    title: Optional[str] = None
    is_private: bool = False
    favicon_url: Optional[str] = None
    screenshot: Any = None  # opaque image handle owned by the renderer
    tab_id: int = field(default_factory=lambda: next(_tab_ids))

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        return self.url or ""

    def __repr__(self) -> str:
        kind = "private" if self.is_private else "normal"
        return f"Tab(#{self.tab_id} {kind} {sanitize_url(self.url)!r})"


class TabManager(QObject):
    tab_added = Signal(object)
    tab_removed = Signal(object)
    selected_tab_changed = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._tabs: list[Tab] = []
        self._selected: Tab | None = None

    # -------- queries --------
    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs)

    @property
    def normal_tabs(self) -> list[Tab]:
        return [t for t in self._tabs if not t.is_private]

    @property
    def private_tabs(self) -> list[Tab]:
        return [t for t in self._tabs if t.is_private]

    @property
    def selected_tab(self) -> Tab | None:
        return self._selected

    @property
    def count(self) -> int:
        return len(self._tabs)

    def displayed_tabs_for_private_mode(self, is_private: bool) -> list[Tab]:
        """Tabs visible under the given privacy mode, in collection order."""
        return [t for t in self._tabs if t.is_private == is_private]

    def find_tab(self, tab_id: int) -> Tab | None:
        for tab in self._tabs:
            if tab.tab_id == tab_id:
                return tab
        return None

    # -------- mutations --------
    def add_tab(
        self,
        request: NavigationRequest | None = None,
        is_private: bool = False,
        index: int | None = None,
    ) -> Tab:
        tab = Tab(url=request.url if request else "about:blank", is_private=is_private)
        if index is None or index >= len(self._tabs):
            self._tabs.append(tab)
        else:
            self._tabs.insert(max(0, index), tab)
        record_breadcrumb("tab_added", tab_id=tab.tab_id, private=is_private)
        logger.info(
            "tab_added",
            extra=sanitize_log_extra(
                {
                    "event": "tab_added",
                    "tab_id": tab.tab_id,
                    "private": is_private,
                    "url": sanitize_url(tab.url),
                    "tabs": len(self._tabs),
                }
            ),
        )
        self.tab_added.emit(tab)
        return tab

    def select_tab(self, tab: Tab | None) -> None:
        if tab is not None and not any(t is tab for t in self._tabs):
            raise ValueError(f"{tab!r} is not owned by this tab manager")
        if tab is self._selected:
            return
        self._selected = tab
        record_breadcrumb(
            "tab_selected", tab_id=tab.tab_id if tab is not None else None
        )
        self.selected_tab_changed.emit(tab)

    def remove_tab(self, tab: Tab, create_if_none_left: bool = True) -> None:
        try:
            idx = next(i for i, t in enumerate(self._tabs) if t is tab)
        except StopIteration:
            logger.debug(
                "tab_remove_ignored",
                extra={"event": "tab_remove_ignored", "tab_id": tab.tab_id},
            )
            return

        del self._tabs[idx]
        if tab is self._selected:
            self._select_neighbour(idx, tab.is_private)

        record_breadcrumb("tab_removed", tab_id=tab.tab_id, private=tab.is_private)
        logger.info(
            "tab_removed",
            extra=sanitize_log_extra(
                {
                    "event": "tab_removed",
                    "tab_id": tab.tab_id,
                    "private": tab.is_private,
                    "tabs": len(self._tabs),
                }
            ),
        )
        self.tab_removed.emit(tab)

        if create_if_none_left and not self.displayed_tabs_for_private_mode(
            tab.is_private
        ):
            self.select_tab(self.add_tab(is_private=tab.is_private))

    def remove_all_private_tabs(self, notify: bool = True) -> None:
        """Close every private tab.

        Tabs go one at a time, and ``tab_removed`` (when *notify* is set)
        fires right after each one, so listeners always see the collection
        one tab shorter than before.
        """
        doomed = self.private_tabs
        if not doomed:
            return
        if self._selected is not None and self._selected.is_private:
            self.select_tab(None)
        for tab in doomed:
            self._tabs.remove(tab)
            if notify:
                self.tab_removed.emit(tab)
        record_breadcrumb("private_tabs_cleared", count=len(doomed), notify=notify)

    def _select_neighbour(self, removed_at: int, is_private: bool) -> None:
        """Pick the next same-privacy tab after ``removed_at``, else the previous one."""
        after = [
            t for t in self._tabs[removed_at:] if t.is_private == is_private
        ]
        before = [
            t for t in self._tabs[:removed_at] if t.is_private == is_private
        ]
        candidate = after[0] if after else (before[-1] if before else None)
        self._selected = candidate
        self.selected_tab_changed.emit(candidate)
