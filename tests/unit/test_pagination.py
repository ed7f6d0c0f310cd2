import base64
import datetime
import json
import uuid
from decimal import Decimal

import pytest

from sqlextend.exceptions import (
    ConflictingPaginationArgumentsException,
    InvalidCursorException,
    PaginationException,
)
from sqlextend.pagination import (
    CursorCodec,
    PaginationArgs,
    SequenceRowSource,
    Window,
    ordering_name,
    paginate,
)


@pytest.fixture()
def source():
    # deliberately unordered, source orders rows by key
    return SequenceRowSource([{"id": i, "name": f"row{i}"} for i in (3, 1, 5, 2, 4)], ["id"])


def _ids(connection):
    return [node["id"] for node in connection.nodes]


def _cursor(row_id):
    return CursorCodec(ordering_name(["id"]), 1).encode((row_id,))


class TestForwardPagination:
    def test_first_with_offset(self, source):
        connection = paginate(source, PaginationArgs(first=2, offset=1))

        assert _ids(connection) == [2, 3]
        assert connection.page_info.has_next_page
        assert connection.page_info.has_previous_page
        assert connection.total_count == 5

    def test_first_page(self, source):
        connection = paginate(source, PaginationArgs(first=2))

        assert _ids(connection) == [1, 2]
        assert connection.page_info.has_next_page
        assert not connection.page_info.has_previous_page

    def test_after_cursor(self, source):
        first_page = paginate(source, PaginationArgs(first=2))
        connection = paginate(
            source, PaginationArgs(first=2, after=first_page.page_info.end_cursor)
        )

        assert _ids(connection) == [3, 4]
        assert connection.page_info.has_next_page
        assert connection.page_info.has_previous_page

    def test_last_page_has_no_next_page(self, source):
        connection = paginate(source, PaginationArgs(first=2, after=_cursor(3)))

        assert _ids(connection) == [4, 5]
        assert not connection.page_info.has_next_page

    def test_first_zero(self, source):
        connection = paginate(source, PaginationArgs(first=0))

        assert connection.edges == []
        assert connection.page_info.has_next_page
        assert connection.page_info.start_cursor is None
        assert connection.page_info.end_cursor is None


class TestBackwardPagination:
    def test_last(self, source):
        connection = paginate(source, PaginationArgs(last=2))

        assert _ids(connection) == [4, 5]
        assert connection.page_info.has_previous_page
        assert not connection.page_info.has_next_page

    def test_last_before_cursor(self, source):
        connection = paginate(source, PaginationArgs(last=2, before=_cursor(5)))

        assert _ids(connection) == [3, 4]
        assert connection.page_info.has_previous_page
        assert connection.page_info.has_next_page

    def test_last_covering_start(self, source):
        connection = paginate(source, PaginationArgs(last=5, before=_cursor(3)))

        assert _ids(connection) == [1, 2]
        assert not connection.page_info.has_previous_page
        assert connection.page_info.has_next_page


class TestUnboundedPagination:
    def test_all_rows(self, source):
        connection = paginate(source, PaginationArgs())

        assert _ids(connection) == [1, 2, 3, 4, 5]
        assert not connection.page_info.has_next_page
        assert not connection.page_info.has_previous_page

    def test_between_cursors(self, source):
        connection = paginate(source, PaginationArgs(after=_cursor(1), before=_cursor(5)))

        assert _ids(connection) == [2, 3, 4]
        assert connection.page_info.has_next_page
        assert connection.page_info.has_previous_page

    def test_empty_source(self):
        connection = paginate(SequenceRowSource([], ["id"]), PaginationArgs(first=10))

        assert connection.edges == []
        assert not connection.page_info.has_next_page
        assert not connection.page_info.has_previous_page
        assert connection.total_count == 0


class TestConnectionValues:
    def test_total_count_does_not_depend_on_window(self, source):
        args = [
            PaginationArgs(first=1),
            PaginationArgs(last=1),
            PaginationArgs(first=2, offset=4),
            PaginationArgs(after=_cursor(4)),
        ]
        assert {paginate(source, entry).total_count for entry in args} == {5}

    def test_total_count_is_lazy(self):
        class CountingSource(SequenceRowSource):
            counted = 0

            def count(self):
                CountingSource.counted += 1
                return super().count()

        connection = paginate(CountingSource([{"id": 1}], ["id"]), PaginationArgs())
        assert CountingSource.counted == 0
        assert connection.total_count == 1
        assert connection.total_count == 1
        assert CountingSource.counted == 1

    def test_cursors_are_deterministic(self, source):
        first = paginate(source, PaginationArgs(first=3))
        second = paginate(source, PaginationArgs(first=3))

        assert [edge.cursor for edge in first.edges] == [edge.cursor for edge in second.edges]
        assert first.page_info.start_cursor == first.edges[0].cursor
        assert first.page_info.end_cursor == first.edges[-1].cursor

    def test_node_value(self, source):
        connection = paginate(source, PaginationArgs(first=2), lambda row: row["name"])

        assert connection.nodes == ["row1", "row2"]

    def test_composite_order_key(self):
        rows = [{"a": 1, "b": 2}, {"a": 1, "b": 1}, {"a": 0, "b": 5}]
        source = SequenceRowSource(rows, ["a", "b"])
        codec = CursorCodec(ordering_name(["a", "b"]), 2)

        connection = paginate(source, PaginationArgs(after=codec.encode((1, 1))))

        assert connection.nodes == [{"a": 1, "b": 2}]
        assert connection.page_info.has_previous_page


class TestArguments:
    def test_first_and_last(self):
        with pytest.raises(ConflictingPaginationArgumentsException):
            PaginationArgs(first=1, last=1)

    def test_last_and_offset(self):
        with pytest.raises(ConflictingPaginationArgumentsException):
            PaginationArgs(last=1, offset=1)

    @pytest.mark.parametrize("name", ["first", "last", "offset"])
    def test_negative_values(self, name):
        with pytest.raises(PaginationException):
            PaginationArgs(**{name: -1})

    def test_from_args(self):
        assert PaginationArgs.from_args({"first": 3, "after": "x"}) == PaginationArgs(
            first=3, after="x"
        )


class TestCursors:
    def test_garbage(self, source):
        with pytest.raises(InvalidCursorException):
            paginate(source, PaginationArgs(after="not a cursor"))

    def test_wrong_arity(self):
        cursor = CursorCodec("natural:id", 1).encode((1,))

        with pytest.raises(InvalidCursorException):
            CursorCodec("natural:id", 2).decode(cursor)

    def test_other_ordering(self, source):
        cursor = CursorCodec(ordering_name(["name"]), 1).encode(("row1",))

        with pytest.raises(InvalidCursorException):
            paginate(source, PaginationArgs(before=cursor))

    def test_round_trip(self):
        codec = CursorCodec("natural:id,name", 2)

        assert codec.decode(codec.encode((7, "x"))) == (7, "x")

    def test_typed_key_values_round_trip(self):
        values = (
            datetime.datetime(2024, 3, 1, 12, 30),
            datetime.date(2024, 3, 1),
            Decimal("10.50"),
            uuid.UUID("12345678-1234-5678-1234-567812345678"),
        )
        codec = CursorCodec("natural:a,b,c,d", 4)

        decoded = codec.decode(codec.encode(values))

        assert decoded == values
        assert [type(value) for value in decoded] == [type(value) for value in values]

    def test_unsupported_key_value(self):
        with pytest.raises(ValueError):
            CursorCodec("natural:id", 1).encode((object(),))

    def test_malformed_tagged_key_value(self):
        payload = json.dumps(["natural:day", {"date": "not a date"}])
        cursor = base64.b64encode(payload.encode()).decode()

        with pytest.raises(InvalidCursorException):
            CursorCodec("natural:day", 1).decode(cursor)

    def test_date_keyed_source(self):
        source = SequenceRowSource(
            [{"day": datetime.date(2024, 1, day)} for day in (3, 1, 2)], ["day"]
        )
        first_page = paginate(source, PaginationArgs(first=1))

        second_page = paginate(
            source, PaginationArgs(first=1, after=first_page.page_info.end_cursor)
        )

        assert [node["day"] for node in second_page.nodes] == [datetime.date(2024, 1, 2)]
        assert second_page.page_info.has_previous_page


def test_sequence_source_window():
    source = SequenceRowSource([{"id": i} for i in range(10)], ["id"])

    rows = source.fetch(Window(after=(2,), before=(8,), reverse=True, offset=1, limit=2))

    assert [row["id"] for row in rows] == [6, 5]
