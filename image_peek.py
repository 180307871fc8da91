"""Save / copy actions offered when peeking at an image in a page."""

from __future__ import annotations

import logging
import os
import urllib.error
import urllib.request
import uuid
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit

from PySide6.QtCore import QMimeData, QObject, QStandardPaths, QUrl
from PySide6.QtGui import QDesktopServices, QGuiApplication, QImage
from PySide6.QtWidgets import QMessageBox, QWidget

from debug_scaffold import record_breadcrumb, sanitize_url

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10


class PhotoAccessDenied(PermissionError):
    """The destination for saved images may not be written to."""


def fetch_image_bytes(url: str, timeout: float = FETCH_TIMEOUT) -> Optional[bytes]:
    """Download *url*; anything but an HTTP 2xx answer yields ``None``."""
    if urlsplit(url).scheme not in ("http", "https"):
        logger.warning(
            "image_fetch_rejected",
            extra={"event": "image_fetch_rejected", "url": sanitize_url(url)},
        )
        return None
    try:
        with urllib.request.urlopen(url, timeout=timeout) as r:  # nosec B310
            status = getattr(r, "status", 200)
            if not 200 <= status < 300:
                logger.warning(
                    "image_fetch_status",
                    extra={"event": "image_fetch_status", "url": sanitize_url(url), "status": status},
                )
                return None
            return r.read()
    except (urllib.error.URLError, OSError, ValueError) as exc:
        logger.warning(
            "image_fetch_failed",
            extra={"event": "image_fetch_failed", "url": sanitize_url(url), "error": str(exc)},
        )
        return None


class Pasteboard(Protocol):
    @property
    def change_count(self) -> int: ...

    def set_url(self, url: str) -> None: ...

    def add_image(self, data: bytes) -> None: ...


class ImageSaver(Protocol):
    def is_authorized(self) -> bool: ...

    def save(self, data: bytes, suggested_name: str) -> Optional[Path]: ...


class QtPasteboard(QObject):
    """System clipboard with a change counter like the mobile pasteboard."""

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._clipboard = QGuiApplication.clipboard()
        self._changes = 0
        self._clipboard.dataChanged.connect(self._bump)

    def _bump(self) -> None:
        self._changes += 1

    @property
    def change_count(self) -> int:
        return self._changes

    def set_url(self, url: str) -> None:
        mime = QMimeData()
        mime.setUrls([QUrl(url)])
        mime.setText(url)
        self._clipboard.setMimeData(mime)

    def add_image(self, data: bytes) -> None:
        image = QImage.fromData(data)
        if image.isNull():
            logger.warning("clipboard_image_invalid", extra={"event": "clipboard_image_invalid"})
            return
        current = self._clipboard.mimeData()
        mime = QMimeData()
        if current is not None:
            if current.hasUrls():
                mime.setUrls(current.urls())
            if current.hasText():
                mime.setText(current.text())
        mime.setImageData(image)
        # keep our own write from looking like a foreign change
        self._clipboard.blockSignals(True)
        try:
            self._clipboard.setMimeData(mime)
        finally:
            self._clipboard.blockSignals(False)


class PicturesFolderSaver:
    def __init__(self, folder: Path | None = None) -> None:
        if folder is None:
            loc = QStandardPaths.writableLocation(
                QStandardPaths.StandardLocation.PicturesLocation
            )
            folder = Path(loc) if loc else Path.home() / "Pictures"
        self.folder = folder

    def is_authorized(self) -> bool:
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.folder, os.W_OK)

    def save(self, data: bytes, suggested_name: str) -> Optional[Path]:
        name = Path(suggested_name).name or f"image-{uuid.uuid4().hex[:8]}"
        target = self.folder / name
        if target.exists():
            target = self.folder / f"{target.stem}-{uuid.uuid4().hex[:6]}{target.suffix}"
        try:
            target.write_bytes(data)
        except OSError as exc:
            logger.error(
                "image_save_failed",
                extra={"event": "image_save_failed", "path": str(target), "error": str(exc)},
            )
            return None
        return target


class ImagePeekActions:
    def __init__(
        self,
        image_url: str,
        fetch_image: Callable[[str], Optional[bytes]] = fetch_image_bytes,
        pasteboard: Pasteboard | None = None,
        saver: ImageSaver | None = None,
    ) -> None:
        self.image_url = image_url
        self._fetch = fetch_image
        self._pasteboard = pasteboard
        self._saver = saver

    @property
    def pasteboard(self) -> Pasteboard:
        if self._pasteboard is None:
            self._pasteboard = QtPasteboard()
        return self._pasteboard

    @property
    def saver(self) -> ImageSaver:
        if self._saver is None:
            self._saver = PicturesFolderSaver()
        return self._saver

    def _suggested_name(self) -> str:
        return Path(urlsplit(self.image_url).path).name or "image"

    def save_image(self) -> Optional[Path]:
        if not self.saver.is_authorized():
            raise PhotoAccessDenied(f"cannot write images to {getattr(self.saver, 'folder', '?')}")
        data = self._fetch(self.image_url)
        if data is None:
            return None
        path = self.saver.save(data, self._suggested_name())
        record_breadcrumb("image_saved", ok=path is not None)
        return path

    def copy_image(self) -> bool:
        """Copy the URL, then the image if nothing else touched the clipboard meanwhile."""
        pb = self.pasteboard
        pb.set_url(self.image_url)
        change_count = pb.change_count
        data = self._fetch(self.image_url)
        if data is None:
            return False
        if pb.change_count != change_count:
            record_breadcrumb("image_copy_superseded")
            return False
        pb.add_image(data)
        record_breadcrumb("image_copied")
        return True


def prompt_photo_access(parent: QWidget | None, folder: Path) -> None:
    box = QMessageBox(parent)
    box.setIcon(QMessageBox.Icon.Warning)
    box.setWindowTitle("Photo access")
    box.setText("This app would like to save images to your Pictures folder.")
    box.setInformativeText(f"{folder} is not writable.")
    settings = box.addButton("Open Settings", QMessageBox.ButtonRole.ActionRole)
    box.addButton(QMessageBox.StandardButton.Cancel)
    box.exec()
    if box.clickedButton() is settings:
        QDesktopServices.openUrl(QUrl.fromLocalFile(str(folder.parent)))
