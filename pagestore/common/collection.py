"""Keyed collection with defaults and lifecycle hooks.

A KeyedCollection is an ordered list of records (plain dicts) made unique
by a composite key: an ordered list of field names. Inserting a record
whose key values match a stored record replaces that record in place;
anything else is appended.

Insert runs a fixed pipeline::

    before_defaults hooks -> fill defaults -> before_insert hooks
        -> upsert by key -> after_insert hooks

Defaults are either Static (a constant, deep-copied on every use) or
Computed (a callable invoked with the in-progress record).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True)
class Static:
    """Constant default value.

    The value is deep-copied into each record so mutable defaults (dicts,
    lists) are never shared between records.
    """

    value: Any


@dataclass(frozen=True)
class Computed:
    """Default value produced by calling ``fn(record)`` when needed."""

    fn: Callable[[Record], Any]

    def __call__(self, record: Record) -> Any:
        return self.fn(record)


Default = Static | Computed


class HookPoint(Enum):
    """Fixed points in the insert pipeline where hooks can be bound.

    Values:
        BEFORE_DEFAULTS: ``hook(collection, raw) -> raw``
        BEFORE_INSERT: ``hook(collection, record, match) -> record``
        AFTER_INSERT: ``hook(collection, record) -> None``
    """

    BEFORE_DEFAULTS = "before_defaults"
    BEFORE_INSERT = "before_insert"
    AFTER_INSERT = "after_insert"


BeforeDefaultsHook = Callable[["KeyedCollection", Record], Record]
BeforeInsertHook = Callable[["KeyedCollection", Record, Record | None], Record]
AfterInsertHook = Callable[["KeyedCollection", Record], None]


def _as_default(value: Any) -> Default:
    if isinstance(value, (Static, Computed)):
        return value
    return Static(value)


def values_equal(left: Any, right: Any) -> bool:
    """Compare two record values without letting bools equal ints.

    ``True == 1`` in Python; stored records come from loosely typed data
    so a boolean field must not match a numeric filter.
    """
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


class KeyedCollection:
    """Ordered collection of records unique by a composite key.

    Example::

        jobs = KeyedCollection(
            ["job_id"],
            defaults={"status": "done", "created_at": Computed(now_fn)},
        )
        jobs.bind(HookPoint.AFTER_INSERT, lambda c, record: print(record))
        jobs.insert({"job_id": 1})
    """

    def __init__(
        self,
        keys: Sequence[str],
        defaults: Mapping[str, Any] | None = None,
        hooks: Mapping[HookPoint, Sequence[Callable[..., Any]]] | None = None,
    ) -> None:
        """Initialize the collection.

        Args:
            keys: Field names forming the uniqueness constraint.
            defaults: Field name to Static/Computed default. Plain values
                are wrapped in Static.
            hooks: Optional initial hooks per lifecycle point, bound in
                the given order.
        """
        self.keys: tuple[str, ...] = tuple(keys)
        self.defaults: dict[str, Default] = {
            name: _as_default(value)
            for name, value in (defaults or {}).items()
        }
        self._hooks: dict[HookPoint, list[Callable[..., Any]]] = {
            point: [] for point in HookPoint
        }
        self._items: list[Record] = []

        for point, callbacks in (hooks or {}).items():
            for callback in callbacks:
                self.bind(point, callback)

    # --- Hooks ---

    def bind(
        self, point: HookPoint | str, callback: Callable[..., Any]
    ) -> Callable[..., Any]:
        """Register a hook at a lifecycle point.

        Hooks at the same point run in registration order.
        """
        self._hooks[HookPoint(point)].append(callback)
        return callback

    def hooks(self, point: HookPoint | str) -> tuple[Callable[..., Any], ...]:
        """Hooks bound at ``point``, in run order."""
        return tuple(self._hooks[HookPoint(point)])

    # --- Insert pipeline ---

    def apply_defaults(self, record: Record) -> Record:
        """Fill fields missing from ``record`` using the collection defaults.

        Missing fields get their default. A field present with ``None`` is
        only recomputed when its default is Computed; an explicit ``None``
        against a Static default is kept.
        """
        for name, default in self.defaults.items():
            if isinstance(default, Computed):
                if record.get(name) is None:
                    record[name] = default(record)
            elif name not in record:
                record[name] = deepcopy(default.value)
        return record

    def insert(self, raw: Mapping[str, Any]) -> Record:
        """Insert or replace a record and return the stored record.

        The caller's mapping is never modified. If any hook raises, the
        collection is left as it was and the error propagates.
        """
        record: Record = deepcopy(dict(raw))
        for hook in self._hooks[HookPoint.BEFORE_DEFAULTS]:
            record = hook(self, record)

        record = self.apply_defaults(record)

        match = self.find_match(record)
        for hook in self._hooks[HookPoint.BEFORE_INSERT]:
            record = hook(self, record, match)

        index = self.index_of_match(record)
        previous: Record | None = None
        if index is None:
            self._items.append(record)
            logger.debug("Appended record %s", self.key_of(record))
        else:
            previous = self._items[index]
            self._items[index] = record
            logger.debug(
                "Replaced record %s at index %d", self.key_of(record), index
            )

        try:
            for hook in self._hooks[HookPoint.AFTER_INSERT]:
                hook(self, record)
        except BaseException:
            for position, item in enumerate(self._items):
                if item is record:
                    if previous is None:
                        del self._items[position]
                    else:
                        self._items[position] = previous
                    break
            logger.debug("Rolled back record %s", self.key_of(record))
            raise

        return record

    def insert_many(self, raws: Sequence[Mapping[str, Any]]) -> list[Record]:
        """Insert each record in order; returns the stored records."""
        return [self.insert(raw) for raw in raws]

    # --- Lookup ---

    def key_of(self, record: Mapping[str, Any]) -> tuple[Any, ...]:
        """Key tuple of ``record``; missing fields read as None."""
        return tuple(record.get(name) for name in self.keys)

    def _matches_key(
        self, item: Mapping[str, Any], criteria: Mapping[str, Any]
    ) -> bool:
        for name in self.keys:
            value = criteria.get(name)
            # nil keys never match
            if value is None:
                return False
            if not values_equal(item.get(name), value):
                return False
        return True

    def index_of_match(self, criteria: Mapping[str, Any]) -> int | None:
        """Index of the first record whose key fields equal ``criteria``."""
        if not self.keys:
            return None
        for index, item in enumerate(self._items):
            if self._matches_key(item, criteria):
                return index
        return None

    def find_match(self, criteria: Mapping[str, Any]) -> Record | None:
        """First record whose key-field values equal ``criteria``, or None."""
        index = self.index_of_match(criteria)
        return None if index is None else self._items[index]

    def find(self, predicate: Callable[[Record], bool]) -> Record | None:
        """First record satisfying ``predicate``, or None."""
        for item in self._items:
            if predicate(item):
                return item
        return None

    # --- Sequence behaviour ---

    def count(self) -> int:
        return len(self._items)

    def first(self) -> Record | None:
        return self._items[0] if self._items else None

    def last(self) -> Record | None:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        """Remove every record. Hooks and defaults are kept."""
        self._items.clear()

    def to_list(self) -> list[Record]:
        """Shallow copy of the stored records, in insertion order."""
        return list(self._items)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Record:
        return self._items[index]

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, KeyedCollection):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"KeyedCollection(keys={list(self.keys)!r}, count={len(self)})"
