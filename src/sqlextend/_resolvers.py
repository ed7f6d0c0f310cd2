from collections.abc import Callable, Mapping
from typing import Any

from graphql import GraphQLResolveInfo
from sqlalchemy import FromClause, Select

from sqlextend.fetch import select_rows
from sqlextend.query import QueryBuilder
from sqlextend.types import QueryBuilderCallback, QueryMutator, Resolver


class DbFieldResolver:
    __slots__ = ("_column_name",)

    def __init__(self, column_name: str):
        self._column_name = column_name

    def __call__(self, parent: Any, info: GraphQLResolveInfo) -> Any:
        if isinstance(parent, Mapping):
            return parent[self._column_name]
        else:
            return getattr(parent, self._column_name)


class FieldResolver:
    __slots__ = ("_field_name",)

    def __init__(self, field_name: str):
        self._field_name = field_name

    def __call__(self, parent: Any, info: GraphQLResolveInfo) -> Any:
        return getattr(parent, self._field_name)


class RecordFieldResolver:
    """
    Resolves field of a payload which carries fetched row.

    Payload may be the list of records returned by ``select_rows``, in which case the first one
    is used, or mapping/object holding the record under the field name.
    """

    __slots__ = ("_field_name",)

    def __init__(self, field_name: str):
        self._field_name = field_name

    def __call__(self, parent: Any, info: GraphQLResolveInfo) -> Any:
        if isinstance(parent, list):
            return parent[0] if parent else None
        elif isinstance(parent, Mapping):
            return parent.get(self._field_name)
        else:
            return getattr(parent, self._field_name, None)


class ConnectionResolver:
    __slots__ = ("_source",)

    def __init__(self, source: FromClause | Select):
        self._source = source

    def __call__(self, parent: object | None, info: GraphQLResolveInfo, **kwargs: Any) -> Any:
        return select_rows(info, self._source)


class RowByKeyResolver:
    __slots__ = ("_source", "_key")

    def __init__(self, source: FromClause | Select, key: Mapping[str, str]):
        self._source = source
        # argument name -> column name
        self._key = key

    def __call__(self, parent: object | None, info: GraphQLResolveInfo, **kwargs: Any) -> Any:
        def mutator(query_builder: QueryBuilder) -> None:
            alias = query_builder.get_table_alias()
            for arg_name, column_name in self._key.items():
                query_builder.where(alias.c[column_name] == kwargs[arg_name])

        rows = select_rows(info, self._source, mutator)
        return rows[0] if rows else None


class FunctionConnectionResolver:
    __slots__ = ("_factory", "_arg_names")

    def __init__(self, factory: Callable[..., FromClause], arg_names: tuple[str, ...]):
        self._factory = factory
        self._arg_names = arg_names

    def __call__(self, parent: object | None, info: GraphQLResolveInfo, **kwargs: Any) -> Any:
        source = self._factory(**{name: kwargs.get(name) for name in self._arg_names})
        return select_rows(info, source)


class QueryDelegationResolver:
    """
    Resolves field by fetching rows from the delegated source.

    Callback declared on the field may constrain the query. When resolver was supplied for the
    field as well, it receives fetched value in place of the parent.
    """

    __slots__ = ("_source", "_callback", "_single", "_resolver")

    def __init__(
        self,
        source: FromClause | Select,
        callback: QueryBuilderCallback | None,
        single: bool,
        resolver: Resolver | None = None,
    ):
        self._source = source
        self._callback = callback
        self._single = single
        self._resolver = resolver

    def __call__(self, parent: object | None, info: GraphQLResolveInfo, **kwargs: Any) -> Any:
        callback = self._callback
        mutator: QueryMutator | None = None
        if callback is not None:

            def apply_callback(query_builder: QueryBuilder) -> None:
                callback(query_builder, kwargs)

            mutator = apply_callback

        result = select_rows(info, self._source, mutator, parent)
        if self._single and isinstance(result, list):
            result = result[0] if result else None

        if self._resolver is not None:
            return self._resolver(result, info, **kwargs)
        return result
