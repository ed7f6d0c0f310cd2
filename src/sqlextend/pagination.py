"""
Cursor based pagination over ordered row sources.

Row source only needs to be ordered, finite, sliceable and countable, so the same windowing
rules apply to tables, filtered queries, function results and in-memory sequences.
"""
from __future__ import annotations

import base64
import binascii
import datetime
import json
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from functools import cached_property
from typing import Any, Protocol

from sqlextend.exceptions import (
    ConflictingPaginationArgumentsException,
    InvalidCursorException,
    PaginationException,
)

Row = Mapping[str, Any]
KeyValues = tuple[Any, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class Window:
    # bounds are exclusive
    after: KeyValues | None = None
    before: KeyValues | None = None
    reverse: bool = False
    offset: int = 0
    limit: int | None = None


class RowSource(Protocol):
    @property
    def order_key(self) -> Sequence[str]:
        ...

    def fetch(self, window: Window) -> Sequence[Row]:
        ...

    def count(self) -> int:
        ...

    def has_rows_beyond(self, key: KeyValues, forward: bool) -> bool:
        """
        Returns true if there is a row with key greater than or equal to ``key`` (forward) or
        less than or equal to ``key`` (backward).
        """
        ...


class SequenceRowSource:
    __slots__ = ("_order_key", "_rows")

    def __init__(self, rows: Sequence[Row], order_key: Sequence[str]):
        if not order_key:
            raise ValueError("Order key must contain at least one column")
        self._order_key = tuple(order_key)
        self._rows = sorted(rows, key=self._key_of)

    @property
    def order_key(self) -> Sequence[str]:
        return self._order_key

    def fetch(self, window: Window) -> Sequence[Row]:
        rows = [
            row
            for row in self._rows
            if (window.after is None or self._key_of(row) > window.after)
            and (window.before is None or self._key_of(row) < window.before)
        ]
        if window.reverse:
            rows.reverse()
        end = None if window.limit is None else window.offset + window.limit
        return rows[window.offset : end]

    def count(self) -> int:
        return len(self._rows)

    def has_rows_beyond(self, key: KeyValues, forward: bool) -> bool:
        if forward:
            return any(self._key_of(row) >= key for row in self._rows)
        else:
            return any(self._key_of(row) <= key for row in self._rows)

    def _key_of(self, row: Row) -> KeyValues:
        return tuple(row[name] for name in self._order_key)


# key values which JSON cannot represent are stored as single entry objects tagged with the type,
# datetime precedes date since it is a subclass of it
_TAGGED_TYPES: Mapping[str, tuple[type, Callable[[Any], str], Callable[[str], Any]]] = {
    "datetime": (datetime.datetime, datetime.datetime.isoformat, datetime.datetime.fromisoformat),
    "date": (datetime.date, datetime.date.isoformat, datetime.date.fromisoformat),
    "time": (datetime.time, datetime.time.isoformat, datetime.time.fromisoformat),
    "decimal": (Decimal, str, Decimal),
    "uuid": (uuid.UUID, str, uuid.UUID),
}


def _encode_key_value(value: Any) -> Any:
    if value is None or isinstance(value, bool | int | float | str):
        return value
    for tag, (python_type, to_text, _) in _TAGGED_TYPES.items():
        if isinstance(value, python_type):
            return {tag: to_text(value)}
    raise ValueError(f"Key value {value!r} cannot be stored in cursor")


def _decode_key_value(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    if len(value) != 1:
        raise ValueError("Tagged key value should have single entry")
    ((tag, text),) = value.items()
    if tag not in _TAGGED_TYPES or not isinstance(text, str):
        raise ValueError(f"Unknown key value tag '{tag}'")
    return _TAGGED_TYPES[tag][2](text)


class CursorCodec:
    """
    Encodes order key values of a row as opaque cursor.

    Cursor is base64 of compact JSON list holding ordering name followed by key values. Dates,
    times, decimals and UUIDs are tagged, so decoded values compare with column values again.
    """

    __slots__ = ("_ordering", "_arity")

    def __init__(self, ordering: str, arity: int):
        self._ordering = ordering
        self._arity = arity

    def encode(self, values: KeyValues) -> str:
        if len(values) != self._arity:
            raise ValueError(f"Expected {self._arity} key values, got {len(values)}")
        payload = json.dumps(
            [self._ordering, *(_encode_key_value(value) for value in values)],
            separators=(",", ":"),
        )
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    def decode(self, cursor: str) -> KeyValues:
        try:
            data = json.loads(base64.b64decode(cursor.encode("ascii"), validate=True))
        except (binascii.Error, UnicodeError, ValueError):
            raise InvalidCursorException(f"Cursor '{cursor}' is malformed") from None

        if not isinstance(data, list) or not data or data[0] != self._ordering:
            raise InvalidCursorException(f"Cursor '{cursor}' was not issued for this ordering")
        if len(data) - 1 != self._arity:
            raise InvalidCursorException(
                f"Cursor '{cursor}' has {len(data) - 1} key values, expected {self._arity}"
            )
        try:
            return tuple(_decode_key_value(value) for value in data[1:])
        except (ArithmeticError, ValueError):
            raise InvalidCursorException(f"Cursor '{cursor}' has malformed key values") from None


@dataclass(frozen=True, slots=True, kw_only=True)
class PaginationArgs:
    first: int | None = None
    last: int | None = None
    after: str | None = None
    before: str | None = None
    offset: int | None = None

    def __post_init__(self) -> None:
        if self.first is not None and self.last is not None:
            raise ConflictingPaginationArgumentsException(
                "Arguments 'first' and 'last' cannot be used together"
            )
        if self.last is not None and self.offset:
            raise ConflictingPaginationArgumentsException(
                "Arguments 'last' and 'offset' cannot be used together"
            )
        for name in ("first", "last", "offset"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise PaginationException(f"Argument '{name}' should be greater or equal to 0")

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> PaginationArgs:
        return cls(
            first=args.get("first"),
            last=args.get("last"),
            after=args.get("after"),
            before=args.get("before"),
            offset=args.get("offset"),
        )


@dataclass(frozen=True, slots=True)
class Edge:
    cursor: str
    node: Any


@dataclass(frozen=True, slots=True, kw_only=True)
class PageInfo:
    has_next_page: bool
    has_previous_page: bool
    start_cursor: str | None
    end_cursor: str | None


@dataclass(frozen=True)
class Connection:
    edges: Sequence[Edge]
    page_info: PageInfo
    _count: Callable[[], int] = field(repr=False)

    @property
    def nodes(self) -> list[Any]:
        return [edge.node for edge in self.edges]

    @cached_property
    def total_count(self) -> int:
        return self._count()


def ordering_name(order_key: Sequence[str]) -> str:
    return "natural:" + ",".join(order_key)


def paginate(
    source: RowSource,
    args: PaginationArgs,
    node_value: Callable[[Row], Any] = lambda row: row,
) -> Connection:
    codec = CursorCodec(ordering_name(source.order_key), len(source.order_key))
    after = codec.decode(args.after) if args.after is not None else None
    before = codec.decode(args.before) if args.before is not None else None
    offset = args.offset or 0

    if args.first is not None:
        rows = list(
            source.fetch(Window(after=after, before=before, offset=offset, limit=args.first + 1))
        )
        has_next_page = len(rows) > args.first
        rows = rows[: args.first]
        has_previous_page = offset > 0 or (
            after is not None and source.has_rows_beyond(after, forward=False)
        )
    elif args.last is not None:
        rows = list(
            source.fetch(Window(after=after, before=before, reverse=True, limit=args.last + 1))
        )
        has_previous_page = len(rows) > args.last
        rows = rows[: args.last]
        rows.reverse()
        has_next_page = before is not None and source.has_rows_beyond(before, forward=True)
    else:
        rows = list(source.fetch(Window(after=after, before=before, offset=offset)))
        has_next_page = before is not None and source.has_rows_beyond(before, forward=True)
        has_previous_page = offset > 0 or (
            after is not None and source.has_rows_beyond(after, forward=False)
        )

    edges = [
        Edge(codec.encode(tuple(row[name] for name in source.order_key)), node_value(row))
        for row in rows
    ]
    return Connection(
        edges,
        PageInfo(
            has_next_page=has_next_page,
            has_previous_page=has_previous_page,
            start_cursor=edges[0].cursor if edges else None,
            end_cursor=edges[-1].cursor if edges else None,
        ),
        source.count,
    )
