from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from graphql import (
    GraphQLArgument,
    GraphQLError,
    GraphQLField,
    GraphQLNonNull,
    GraphQLScalarType,
    GraphQLSchema,
    get_nullable_type,
)
from graphql.pyutils import snake_to_camel
from sqlalchemy import FromClause

from sqlextend._analysis import Analyzer
from sqlextend._builders.connection import ConnectionBuilder
from sqlextend._builders.enum import EnumBuilder
from sqlextend._builders.objects import RowTypeBuilder
from sqlextend._directives import DescriptorExtractor
from sqlextend._gql import ScalarTypeRegistry
from sqlextend._graph import SchemaGraph
from sqlextend._merge import ExtensionMerger
from sqlextend._orm import TypeRegistry
from sqlextend._resolvers import ConnectionResolver, FunctionConnectionResolver, RowByKeyResolver
from sqlextend.embed import parse_extension
from sqlextend.exceptions import GQLBuilderException
from sqlextend.inflection import Inflection
from sqlextend.model import BuildContext, ExtensionFactory, QueryableNode

logger = logging.getLogger(__name__)


def _snake_to_camel_case(value: str) -> str:
    return snake_to_camel(value, upper=False)


@dataclass(frozen=True)
class _ScalarFunction:
    name: str
    factory: Callable[..., FromClause]
    value_column: str
    gql_type: GraphQLScalarType
    order_key: Sequence[str]
    args: Mapping[str, GraphQLArgument]


class SchemaBuilder:
    """
    Builds GraphQL schema from queryable nodes and extensions.

    Every node gets an object type, a connection type and root fields listing all rows and
    selecting single row by primary key. Extensions are merged on top of the generated schema in
    the order they were registered.
    """

    def __init__(
        self,
        field_name_converter: Callable[[str], str] = _snake_to_camel_case,
        inflection: Inflection | None = None,
        type_map_overrides: Mapping[type, GraphQLScalarType] | None = None,
    ):
        # config
        self._field_name_converter = field_name_converter
        self._inflection = inflection or Inflection()
        self._type_map_overrides = type_map_overrides

        # other fields
        self._nodes: dict[str, QueryableNode] = {}
        self._scalar_functions: dict[str, _ScalarFunction] = {}
        self._extensions: list[tuple[str, ExtensionFactory]] = []

    def add_node(self, node: QueryableNode) -> SchemaBuilder:
        if node.name in self._nodes:
            raise ValueError(f"Node '{node.name}' has already been added")
        self._nodes[node.name] = node
        return self

    def add_scalar_function(
        self,
        name: str,
        factory: Callable[..., FromClause],
        *,
        value_column: str,
        gql_type: GraphQLScalarType,
        order_key: Sequence[str],
        args: Mapping[str, GraphQLArgument] | None = None,
    ) -> SchemaBuilder:
        """
        Adds root connection over set returning function which yields scalar values.

        ``factory`` is called with values of ``args`` as keyword arguments and should return
        table valued selectable containing ``value_column`` and columns of ``order_key``.
        """
        if name in self._scalar_functions:
            raise ValueError(f"Function '{name}' has already been added")
        self._scalar_functions[name] = _ScalarFunction(
            name, factory, value_column, gql_type, tuple(order_key), dict(args or {})
        )
        return self

    def extend(self, factory: ExtensionFactory, name: str | None = None) -> SchemaBuilder:
        if name is None:
            name = getattr(factory, "__name__", None) or f"extension{len(self._extensions)}"
        if any(existing == name for existing, _ in self._extensions):
            raise ValueError(f"Extension '{name}' has already been registered")
        self._extensions.append((name, factory))
        return self

    def build(self) -> GraphQLSchema:
        graph = SchemaGraph()
        gql_type_registry = ScalarTypeRegistry(graph, self._type_map_overrides)
        row_type_builder = RowTypeBuilder(
            graph, EnumBuilder(graph), TypeRegistry(), gql_type_registry
        )
        connection_builder = ConnectionBuilder(graph, self._inflection)
        analyzer = Analyzer(self._field_name_converter)

        for node in self._nodes.values():
            self._build_node(graph, node, analyzer, row_type_builder, connection_builder)
        for function in self._scalar_functions.values():
            self._build_scalar_function(graph, function, connection_builder)

        context = BuildContext(MappingProxyType(dict(self._nodes)), self._inflection)
        merger = ExtensionMerger(graph)
        for name, factory in self._extensions:
            extension = factory(context)
            try:
                document = parse_extension(extension.type_defs)
            except GraphQLError as e:
                raise GQLBuilderException(f"Extension '{name}': {e.message}") from e
            merger.merge(DescriptorExtractor(name).extract(document, extension.resolvers))

        connection_builder.apply_annotations()
        schema = graph.finalize()
        logger.debug(
            "Built schema from %d nodes and %d extensions", len(self._nodes), len(self._extensions)
        )
        return schema

    def _build_node(
        self,
        graph: SchemaGraph,
        node: QueryableNode,
        analyzer: Analyzer,
        row_type_builder: RowTypeBuilder,
        connection_builder: ConnectionBuilder,
    ) -> None:
        inflection = self._inflection
        analyzed_node = analyzer.get(node)
        row_type = row_type_builder.build_row_type(analyzed_node)
        plural_name = node.plural_name or inflection.pluralize(node.name)

        if analyzed_node.order_key:
            connection_type = connection_builder.build(
                row_type.gql_type, plural_name, analyzed_node.order_key, row_type=row_type
            )
            graph.add_field(
                "Query",
                inflection.all_rows(plural_name),
                GraphQLField(
                    connection_type,
                    args=connection_builder.pagination_args(),
                    resolve=ConnectionResolver(node.source),
                ),
            )
        else:
            logger.debug("Node '%s' has no order key, connection is not generated", node.name)

        primary_key = node.primary_key
        if primary_key:
            fields = graph.get_fields(row_type.gql_type.name)
            key_fields = {
                entry.gql_name: entry
                for entry in analyzed_node.fields.values()
                if entry.orm_name in primary_key
            }
            graph.add_field(
                "Query",
                inflection.row_by_key(node.name, list(key_fields)),
                GraphQLField(
                    row_type.gql_type,
                    args={
                        name: GraphQLArgument(GraphQLNonNull(get_nullable_type(fields[name].type)))
                        for name in key_fields
                    },
                    resolve=RowByKeyResolver(
                        node.source, {name: entry.orm_name for name, entry in key_fields.items()}
                    ),
                ),
            )

    def _build_scalar_function(
        self,
        graph: SchemaGraph,
        function: _ScalarFunction,
        connection_builder: ConnectionBuilder,
    ) -> None:
        if not graph.has_type(function.gql_type.name):
            graph.add_type(function.gql_type)
        connection_type = connection_builder.build(
            function.gql_type,
            self._inflection.scalar_function_plural(function.name),
            function.order_key,
            value_column=function.value_column,
        )
        graph.add_field(
            "Query",
            self._inflection.scalar_function(function.name),
            GraphQLField(
                connection_type,
                args={**function.args, **connection_builder.pagination_args()},
                resolve=FunctionConnectionResolver(function.factory, tuple(function.args)),
            ),
        )
