from __future__ import annotations

import gc

import pytest

from weak_list import WeakList

pytestmark = pytest.mark.unit


class Item:
    def __init__(self, name: str) -> None:
        self.name = name


def test_insert_keeps_order() -> None:
    items = [Item("a"), Item("b"), Item("c")]
    wl: WeakList[Item] = WeakList()
    for it in items:
        wl.insert(it)
    assert wl.count() == 3  # nosec B101
    assert [wl.at(i).name for i in range(wl.count())] == ["a", "b", "c"]  # nosec B101


def test_dead_entries_vanish_lazily() -> None:
    a, b, c, d = Item("a"), Item("b"), Item("c"), Item("d")
    wl: WeakList[Item] = WeakList()
    for it in (a, b, c, d):
        wl.insert(it)

    del b, d
    gc.collect()

    assert wl.count() == 2  # nosec B101
    assert wl.at(0) is a  # nosec B101
    assert wl.at(1) is c  # nosec B101
    assert wl.at(2) is None  # nosec B101
    assert [it.name for it in wl] == ["a", "c"]  # nosec B101


@pytest.mark.parametrize("index", [-1, 1, 99])
def test_at_out_of_range_is_none(index: int) -> None:
    keep = Item("x")
    wl: WeakList[Item] = WeakList()
    wl.insert(keep)
    assert wl.at(index) is None  # nosec B101


def test_compact_drops_dead_slots() -> None:
    a, b = Item("a"), Item("b")
    wl: WeakList[Item] = WeakList()
    wl.insert(a)
    wl.insert(b)
    del a
    gc.collect()
    assert "slots=2" in repr(wl)  # nosec B101
    wl.compact()
    assert "slots=1" in repr(wl)  # nosec B101
    assert len(wl) == 1  # nosec B101
    assert wl.at(0) is b  # nosec B101


def test_empty_list() -> None:
    wl: WeakList[Item] = WeakList()
    assert wl.count() == 0  # nosec B101
    assert wl.at(0) is None  # nosec B101
    assert list(wl) == []  # nosec B101
