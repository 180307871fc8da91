"""Ordered list of non-owning references.

Entries whose referent has been garbage collected are not removed eagerly;
they are skipped the next time the list is read.  ``count()`` and ``at()``
therefore always agree on the *live* entries, in insertion order.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class WeakList(Generic[T]):
    def __init__(self) -> None:
        self._slots: list[weakref.ref[T]] = []

    def insert(self, item: T) -> None:
        """Append a weak reference to *item*."""
        self._slots.append(weakref.ref(item))

    def _live(self) -> Iterator[T]:
        for ref in self._slots:
            obj = ref()
            if obj is not None:
                yield obj

    def count(self) -> int:
        return sum(1 for _ in self._live())

    def at(self, index: int) -> Optional[T]:
        """Return the ``index``-th live entry, or ``None`` if out of range."""
        if index < 0:
            return None
        for pos, obj in enumerate(self._live()):
            if pos == index:
                return obj
        return None

    def compact(self) -> None:
        """Drop slots whose referent is gone."""
        self._slots = [ref for ref in self._slots if ref() is not None]

    def __iter__(self) -> Iterator[T]:
        # snapshot so callers may hold strong refs while iterating
        return iter(list(self._live()))

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        return f"WeakList(live={self.count()}, slots={len(self._slots)})"
