from __future__ import annotations

from datetime import timedelta

import pytest

from browser_data import (
    FRECENCY_LIMIT,
    Bookmark,
    DataController,
    MainThreadQueryError,
    _utcnow_naive,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def data(tmp_path):
    dc = DataController(tmp_path / "browser.db")
    yield dc
    dc.close()


def _frecency(dc: DataController, query: str | None = None) -> list[Bookmark]:
    return dc.submit_frecency_query(query).result(timeout=10)


def test_folder_children_sorted_by_order_then_newest(data) -> None:
    folder = data.add_bookmark(title="Work", is_folder=True)
    late = data.add_bookmark("https://b.example", "B", parent=folder, order=1)
    first = data.add_bookmark("https://a.example", "A", parent=folder, order=0)
    newer = data.add_bookmark("https://c.example", "C", parent=folder, order=1)
    data.add_bookmark("https://root.example", "Root")

    kids = data.children_of(folder)
    assert [b.id for b in kids] == [first.id, newer.id, late.id]  # nosec B101
    assert all(b.sync_parent_display_uuid == folder.sync_display_uuid for b in kids)  # nosec B101

    roots = data.bookmarks_in_folder(None)
    assert {b.title for b in roots} == {"Work", "Root"}  # nosec B101


def test_new_bookmark_fields(data) -> None:
    b = data.add_bookmark("https://Example.COM/path", "Example", tags=["news"])
    assert b.created == b.last_visited  # nosec B101
    assert b.domain == "example.com"  # nosec B101
    assert b.visits == 0  # nosec B101
    assert b.tags == ["news"]  # nosec B101
    assert b.sync_display_uuid  # nosec B101


@pytest.mark.parametrize(
    "title,custom,expected",
    [("Title", "Custom", "Custom"), ("Title", None, "Title"), (None, None, None), ("", "", None)],
)
def test_display_title(title, custom, expected) -> None:
    assert Bookmark(title=title, custom_title=custom).display_title == expected  # nosec B101


def test_frecency_refuses_main_thread(data) -> None:
    with pytest.raises(MainThreadQueryError):
        data.frecency_query()


def test_frecency_limits_and_filters(data) -> None:
    for i in range(FRECENCY_LIMIT + 2):
        data.add_bookmark(f"https://site{i}.example/", f"Site {i}")
    data.add_bookmark(title="Folder", is_folder=True)
    old = data.add_bookmark("https://old.example/", "Old")
    with data.session() as s:
        row = s.get(Bookmark, old.id)
        row.last_visited = _utcnow_naive() - timedelta(days=30)
        s.add(row)
        s.commit()

    results = _frecency(data)
    assert len(results) == FRECENCY_LIMIT  # nosec B101
    assert all(not b.is_folder for b in results)  # nosec B101
    assert "https://old.example/" not in {b.url for b in results}  # nosec B101

    only = _frecency(data, "site3")
    assert [b.url for b in only] == ["https://site3.example/"]  # nosec B101
    assert _frecency(data, "old.example") == []  # nosec B101


def test_frecency_prefers_visited(data) -> None:
    data.add_bookmark("https://a.example/", "A")
    b = data.add_bookmark("https://b.example/", "B")
    data.record_visit(b.id)
    data.record_visit(b.id)
    results = _frecency(data)
    assert results[0].id == b.id  # nosec B101
    assert results[0].visits == 2  # nosec B101


def test_record_visit_unknown_returns_none(data) -> None:
    assert data.record_visit(12345) is None  # nosec B101


def test_frecency_database_error_yields_empty(data) -> None:
    data.add_bookmark("https://a.example/", "A")
    with data.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE bookmarks")
    assert _frecency(data) == []  # nosec B101


def test_current_device_is_created_once_and_cached(tmp_path) -> None:
    dc = DataController(tmp_path / "devices.db")
    try:
        device = dc.current_device()
        assert device.is_current_device  # nosec B101
        assert dc.current_device() is device  # nosec B101
        dc.add_device("Phone", is_synced=True)
        assert [d.name for d in dc.devices()][0] == device.name  # nosec B101
        assert len(dc.devices()) == 2  # nosec B101
    finally:
        dc.close()

    again = DataController(tmp_path / "devices.db")
    try:
        assert again.current_device().id == device.id  # nosec B101
    finally:
        again.close()


def test_in_memory_controller() -> None:
    dc = DataController()
    try:
        dc.add_bookmark("https://a.example/", "A")
        assert len(dc.children_of(None)) == 1  # nosec B101
        assert len(_frecency(dc)) == 1  # nosec B101
    finally:
        dc.close()
