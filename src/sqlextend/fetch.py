"""
Row fetch layer.

``select_rows`` is the only way resolvers retrieve data. Shape of the result follows the return
type of the resolved field: list of records for row types (and payloads carrying rows) and
``Connection`` for connection types.
"""
from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from operator import itemgetter
from typing import Any

from graphql import GraphQLResolveInfo
from graphql.execution.values import get_argument_values
from sqlalchemy import ColumnElement, FromClause, Row, Select, Table, func, select, tuple_
from sqlalchemy.orm import Session
from sqlalchemy.sql.selectable import TableValuedAlias

from sqlextend._graph import ConnectionInfo, RecordPayload, RowType, get_row_metadata
from sqlextend._selection import FieldWalker
from sqlextend.exceptions import InvalidOperationException
from sqlextend.pagination import Connection, KeyValues, PaginationArgs, Window, paginate
from sqlextend.query import QueryBuilder
from sqlextend.types import QueryMutator, TypedResolveContext

logger = logging.getLogger(__name__)


class Record(dict[str, Any]):
    @classmethod
    def from_row(cls, row: Row) -> Record:
        return cls(row._mapping)


@dataclass(frozen=True, slots=True)
class _Target:
    paths: Sequence[tuple[str, ...]]
    order_key: Sequence[str]
    row_type: RowType | None
    value_column: str | None = None
    is_connection: bool = False


def select_rows(
    info: GraphQLResolveInfo,
    source: FromClause | Select,
    mutator: QueryMutator | None = None,
    parent: Any = None,
) -> list[Record] | Connection:
    target = _resolve_target(info)
    alias = alias_source(source)

    with QueryBuilder.acquire(alias, parent) as query_builder:
        if mutator is not None:
            mutator(query_builder)

    query = select(*_select_columns(target, info, alias, query_builder)).select_from(alias)
    context: TypedResolveContext = info.context
    session = context["db_session"]

    if target.is_connection:
        if query_builder.has_window():
            raise InvalidOperationException(
                "Ordering, limit and offset of the connection are determined by pagination"
                " arguments"
            )
        args = get_argument_values(
            info.parent_type.fields[info.field_name], info.field_nodes[0], info.variable_values
        )
        row_source = SqlRowSource(
            session,
            query_builder.apply_filters(query),
            [alias.c[name] for name in target.order_key],
            target.order_key,
        )
        node_value: Callable[[Any], Any] = (
            itemgetter(target.value_column) if target.value_column is not None else _identity
        )
        return paginate(row_source, PaginationArgs.from_args(args), node_value)

    query = query_builder.apply(query)
    logger.debug("Selecting rows for '%s.%s'", info.parent_type.name, info.field_name)
    return [Record.from_row(row) for row in session.execute(query)]


def alias_source(source: FromClause | Select) -> FromClause:
    if isinstance(source, Select):
        return source.subquery()
    if isinstance(source, Table | TableValuedAlias):
        return source.alias()
    return source


class SqlRowSource:
    __slots__ = ("_session", "_query", "_order_columns", "_order_key")

    def __init__(
        self,
        session: Session,
        query: Select,
        order_columns: Sequence[ColumnElement],
        order_key: Sequence[str],
    ):
        if not order_key or len(order_columns) != len(order_key):
            raise ValueError("Every order key entry must have matching column")
        self._session = session
        self._query = query
        self._order_columns = order_columns
        self._order_key = tuple(order_key)

    @property
    def order_key(self) -> Sequence[str]:
        return self._order_key

    def fetch(self, window: Window) -> Sequence[Record]:
        query = self._bounded(self._query, window.after, operator.gt)
        query = self._bounded(query, window.before, operator.lt)
        query = query.order_by(
            *(column.desc() if window.reverse else column.asc() for column in self._order_columns)
        )
        if window.limit is not None:
            query = query.limit(window.limit)
        if window.offset:
            query = query.offset(window.offset)
        return [Record.from_row(row) for row in self._session.execute(query)]

    def count(self) -> int:
        count_query = self._query.with_only_columns(
            func.count(), maintain_column_froms=True
        ).order_by(None)
        return self._session.execute(count_query).scalar_one()

    def has_rows_beyond(self, key: KeyValues, forward: bool) -> bool:
        query = self._bounded(self._query, key, operator.ge if forward else operator.le)
        return self._session.execute(query.limit(1)).first() is not None

    def _bounded(
        self, query: Select, key: KeyValues | None, op: Callable[[Any, Any], Any]
    ) -> Select:
        if key is None:
            return query
        if len(self._order_columns) == 1:
            return query.where(op(self._order_columns[0], key[0]))
        return query.where(op(tuple_(*self._order_columns), tuple_(*key)))


def _identity(value: Any) -> Any:
    return value


def _resolve_target(info: GraphQLResolveInfo) -> _Target:
    metadata = get_row_metadata(info.return_type)
    match metadata:
        case RowType():
            return _Target(((),), metadata.order_key, metadata)
        case ConnectionInfo():
            return _Target(
                (("nodes",), ("edges", "node")),
                metadata.order_key,
                metadata.row_type,
                metadata.value_column,
                is_connection=True,
            )
        case RecordPayload():
            return _Target(
                tuple((name,) for name in metadata.record_fields),
                metadata.row_type.order_key,
                metadata.row_type,
            )
        case _:
            raise InvalidOperationException(
                f"Field '{info.parent_type.name}.{info.field_name}' does not return rows"
            )


def _select_columns(
    target: _Target, info: GraphQLResolveInfo, alias: FromClause, query_builder: QueryBuilder
) -> list[ColumnElement]:
    names: dict[str, None] = {}
    if target.row_type is not None:
        row_type = target.row_type
        walker = FieldWalker(info)
        for path in target.paths:
            for field_name in walker.selected_fields(path):
                column_name = row_type.columns.get(field_name)
                if column_name is not None:
                    names[column_name] = None
                for column_name in sorted(row_type.dependencies.get(field_name, ())):
                    names[column_name] = None
    elif target.value_column is not None:
        names[target.value_column] = None

    if target.is_connection or not names:
        # cursors are built from order key, and we need at least single column to select
        for column_name in target.order_key:
            names[column_name] = None
    if not names:
        names[next(iter(alias.columns)).name] = None

    columns: list[ColumnElement] = []
    for column_name in names:
        try:
            columns.append(alias.c[column_name])
        except KeyError:
            raise InvalidOperationException(
                f"Column '{column_name}' does not exist in the row source"
            ) from None
    columns.extend(query_builder.extra_columns)
    return columns
