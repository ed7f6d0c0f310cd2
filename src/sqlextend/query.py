from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import ColumnElement, ColumnExpressionArgument, FromClause, Select
from sqlalchemy.sql.elements import Label

from sqlextend.exceptions import InvalidOperationException


class QueryBuilder:
    """
    Mutable description of the additional constraints for the row query.

    Instance is handed to exactly one callback and frozen afterwards. Predicates should reference
    columns via ``get_table_alias()``, since row source is always aliased.
    """

    __slots__ = (
        "_alias",
        "_parent",
        "_where",
        "_order_by",
        "_limit",
        "_offset",
        "_extra_columns",
        "_frozen",
    )

    def __init__(self, alias: FromClause, parent: Any = None):
        self._alias = alias
        self._parent = parent
        self._where: list[ColumnExpressionArgument[bool]] = []
        self._order_by: list[ColumnExpressionArgument] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._extra_columns: list[Label] = []
        self._frozen = False

    @classmethod
    @contextmanager
    def acquire(cls, alias: FromClause, parent: Any = None) -> Iterator[QueryBuilder]:
        builder = cls(alias, parent)
        try:
            yield builder
        finally:
            builder._frozen = True

    def get_table_alias(self) -> FromClause:
        return self._alias

    @property
    def parent(self) -> Any:
        """
        Value of the parent object of the resolved field (row record for fields of row types).
        """
        return self._parent

    def where(self, predicate: ColumnExpressionArgument[bool]) -> QueryBuilder:
        self._check_mutable()
        self._where.append(predicate)
        return self

    def order_by(self, *expressions: ColumnExpressionArgument) -> QueryBuilder:
        self._check_mutable()
        self._order_by.extend(expressions)
        return self

    def limit(self, limit: int) -> QueryBuilder:
        self._check_mutable()
        if limit < 0:
            raise ValueError("Limit should be greater than or equal to 0")
        self._limit = limit
        return self

    def offset(self, offset: int) -> QueryBuilder:
        self._check_mutable()
        if offset < 0:
            raise ValueError("Offset should be greater than or equal to 0")
        self._offset = offset
        return self

    def select(self, *columns: Label) -> QueryBuilder:
        self._check_mutable()
        for column in columns:
            if not isinstance(column, Label):
                raise ValueError("Extra selected columns must be labeled")
        self._extra_columns.extend(columns)
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def extra_columns(self) -> Sequence[ColumnElement]:
        return self._extra_columns

    def has_window(self) -> bool:
        return bool(self._order_by) or self._limit is not None or self._offset is not None

    def apply_filters(self, query: Select) -> Select:
        if self._where:
            query = query.where(*self._where)
        return query

    def apply(self, query: Select) -> Select:
        query = self.apply_filters(query)
        if self._order_by:
            query = query.order_by(*self._order_by)
        if self._limit is not None:
            query = query.limit(self._limit)
        if self._offset is not None:
            query = query.offset(self._offset)
        return query

    def _check_mutable(self) -> None:
        if self._frozen:
            raise InvalidOperationException(
                "Query builder cannot be modified outside of the callback it was passed to"
            )
