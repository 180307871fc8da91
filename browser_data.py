"""Persistent browser data: bookmarks (with folders) and sync devices.

Everything lives in a single SQLite file managed through SQLModel.  Reads
that may scan the whole bookmark table (the frecency query used by the
location bar) must not run on the GUI thread; use
:meth:`DataController.submit_frecency_query` to get a future instead.
"""

from __future__ import annotations

import logging
import platform
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Optional
from urllib.parse import urlsplit

from sqlalchemy import Column
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import JSON
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from debug_scaffold import record_breadcrumb, sanitize_log_extra, sanitize_url

logger = logging.getLogger(__name__)

FRECENCY_LIMIT = 5
FRECENCY_WINDOW = timedelta(days=7)


def _utcnow_naive() -> datetime:
    """Current UTC time without tzinfo; SQLite stores naive datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MainThreadQueryError(RuntimeError):
    """A blocking query was issued from the GUI thread."""


class Bookmark(SQLModel, table=True):
    __tablename__ = "bookmarks"

    id: Optional[int] = Field(default=None, primary_key=True)
    is_folder: bool = Field(default=False)
    title: Optional[str] = Field(default=None, max_length=1024)
    custom_title: Optional[str] = Field(default=None, max_length=1024)
    url: Optional[str] = Field(default=None, index=True)
    domain: Optional[str] = Field(default=None, index=True, max_length=255)
    visits: int = Field(default=0)
    last_visited: datetime = Field(default_factory=_utcnow_naive, index=True)
    created: datetime = Field(default_factory=_utcnow_naive)
    order: int = Field(default=0)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    sync_display_uuid: Optional[str] = Field(default=None, index=True, max_length=64)
    sync_parent_display_uuid: Optional[str] = Field(default=None, max_length=64)
    parent_folder_id: Optional[int] = Field(
        default=None, foreign_key="bookmarks.id", index=True
    )

    @property
    def display_title(self) -> Optional[str]:
        if self.custom_title:
            return self.custom_title
        if self.title:
            return self.title
        return None


class Device(SQLModel, table=True):
    __tablename__ = "devices"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = Field(default=None, max_length=255)
    is_synced: bool = Field(default=False)
    is_current_device: bool = Field(default=False, index=True)
    device_display_id: Optional[str] = Field(default=None, max_length=64)
    sync_display_uuid: Optional[str] = Field(default=None, max_length=64)
    created: datetime = Field(default_factory=_utcnow_naive)


def _domain_of(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    host = urlsplit(url).hostname
    return host.lower() if host else None


class DataController:
    """Owns the engine, hands out sessions and runs background queries."""

    def __init__(self, db_path: Path | str | None = None, workers: int = 1) -> None:
        if db_path is None:
            self.engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{Path(db_path)}",
                connect_args={"check_same_thread": False},
            )
        SQLModel.metadata.create_all(self.engine)
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="browser-data"
        )
        self._current_device: Device | None = None
        self._device_lock = threading.Lock()

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.engine.dispose()

    # -------- bookmarks --------
    def add_bookmark(
        self,
        url: Optional[str] = None,
        title: Optional[str] = None,
        *,
        parent: Bookmark | None = None,
        is_folder: bool = False,
        custom_title: Optional[str] = None,
        order: int = 0,
        tags: list[str] | None = None,
    ) -> Bookmark:
        now = _utcnow_naive()
        bookmark = Bookmark(
            url=url,
            title=title,
            custom_title=custom_title,
            is_folder=is_folder,
            order=order,
            tags=list(tags or []),
            domain=_domain_of(url),
            parent_folder_id=parent.id if parent is not None else None,
            sync_display_uuid=str(uuid.uuid4()),
            sync_parent_display_uuid=parent.sync_display_uuid if parent is not None else None,
            created=now,
            last_visited=now,
        )
        with self.session() as s:
            s.add(bookmark)
            s.commit()
            s.refresh(bookmark)
        record_breadcrumb("bookmark_added", bookmark_id=bookmark.id, folder=is_folder)
        logger.info(
            "bookmark_added",
            extra=sanitize_log_extra(
                {
                    "event": "bookmark_added",
                    "id": bookmark.id,
                    "url": sanitize_url(url) if url else None,
                    "folder": is_folder,
                }
            ),
        )
        return bookmark

    def children_of(self, folder: Bookmark | None) -> list[Bookmark]:
        """Bookmarks directly inside *folder* (``None`` is the root).

        Sorted by ``order`` ascending, newest first within the same order.
        """
        stmt = select(Bookmark)
        if folder is None:
            stmt = stmt.where(col(Bookmark.parent_folder_id).is_(None))
        else:
            stmt = stmt.where(Bookmark.parent_folder_id == folder.id)
        stmt = stmt.order_by(col(Bookmark.order), col(Bookmark.created).desc())
        with self.session() as s:
            return list(s.exec(stmt).all())

    bookmarks_in_folder = children_of

    def record_visit(self, bookmark_id: int) -> Bookmark | None:
        with self.session() as s:
            bookmark = s.get(Bookmark, bookmark_id)
            if bookmark is None:
                return None
            bookmark.visits += 1
            bookmark.last_visited = _utcnow_naive()
            s.add(bookmark)
            s.commit()
            s.refresh(bookmark)
            return bookmark

    def frecency_query(self, query: Optional[str] = None) -> list[Bookmark]:
        """Recently visited bookmarks, optionally filtered by a URL substring.

        Blocks on the database; raises :class:`MainThreadQueryError` when
        called from the main thread.  Database errors are logged and yield
        an empty list.
        """
        if threading.current_thread() is threading.main_thread():
            raise MainThreadQueryError("frecency_query must not run on the main thread")

        cutoff = _utcnow_naive() - FRECENCY_WINDOW
        stmt = select(Bookmark).where(
            Bookmark.last_visited > cutoff, Bookmark.is_folder == False  # noqa: E712
        )
        if query:
            stmt = stmt.where(col(Bookmark.url).contains(query))
        stmt = stmt.order_by(
            col(Bookmark.visits).desc(), col(Bookmark.last_visited).desc()
        ).limit(FRECENCY_LIMIT)
        try:
            with self.session() as s:
                return list(s.exec(stmt).all())
        except SQLAlchemyError as exc:
            logger.error(
                "frecency_query_failed",
                extra={"event": "frecency_query_failed", "error": str(exc)},
            )
            return []

    def submit_frecency_query(self, query: Optional[str] = None) -> Future[list[Bookmark]]:
        return self._executor.submit(self.frecency_query, query)

    # -------- devices --------
    def current_device(self) -> Device:
        """The device row for this machine, created on first use and cached."""
        with self._device_lock:
            if self._current_device is not None:
                return self._current_device
            with self.session() as s:
                device = s.exec(
                    select(Device).where(Device.is_current_device == True)  # noqa: E712
                ).first()
                if device is None:
                    device = Device(
                        name=platform.node() or "This Device",
                        is_current_device=True,
                        device_display_id=str(uuid.uuid4()),
                    )
                    s.add(device)
                    s.commit()
                    s.refresh(device)
                    record_breadcrumb("device_created", device_id=device.id)
            self._current_device = device
            return device

    def add_device(self, name: str, **fields: Any) -> Device:
        device = Device(name=name, **fields)
        with self.session() as s:
            s.add(device)
            s.commit()
            s.refresh(device)
        return device

    def devices(self) -> list[Device]:
        with self.session() as s:
            return list(s.exec(select(Device).order_by(col(Device.created))).all())
