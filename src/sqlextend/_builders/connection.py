"""
Connection types over ordered row sets.

Every connection has the same shape: ``nodes``, ``edges { cursor node }``, ``totalCount`` and
``pageInfo``. Row metadata stored in type extensions tells the fetch layer how rows are ordered
and which column holds the node value of scalar connections.
"""
import logging
from collections.abc import Mapping, Sequence

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLField,
    GraphQLFieldResolver,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLOutputType,
    GraphQLScalarType,
    get_named_type,
)
from sqlalchemy import FromClause, Select

from sqlextend._graph import EXTENSION_KEY, ConnectionInfo, RowType, SchemaGraph
from sqlextend._resolvers import ConnectionResolver, FieldResolver
from sqlextend.exceptions import GQLBuilderException
from sqlextend.gql_scalars import GraphQLCursor
from sqlextend.inflection import Inflection

logger = logging.getLogger(__name__)

# scope keys read from field annotations
SCOPE_IS_CONNECTION = "isConnection"
SCOPE_SOURCE = "source"


class ConnectionBuilder:
    def __init__(self, graph: SchemaGraph, inflection: Inflection) -> None:
        self._graph = graph
        self._inflection = inflection
        self._cache: dict[str, GraphQLObjectType] = {}

        if not graph.has_type(GraphQLCursor.name):
            graph.add_type(GraphQLCursor)
        self._page_info_type = graph.add_type(
            graph.object_type("PageInfo"),
            {
                "hasNextPage": GraphQLField(
                    GraphQLNonNull(GraphQLBoolean), resolve=FieldResolver("has_next_page")
                ),
                "hasPreviousPage": GraphQLField(
                    GraphQLNonNull(GraphQLBoolean), resolve=FieldResolver("has_previous_page")
                ),
                "startCursor": GraphQLField(GraphQLCursor, resolve=FieldResolver("start_cursor")),
                "endCursor": GraphQLField(GraphQLCursor, resolve=FieldResolver("end_cursor")),
            },
        )

    def build(
        self,
        node_type: GraphQLObjectType | GraphQLScalarType,
        plural_name: str,
        order_key: Sequence[str],
        *,
        row_type: RowType | None = None,
        value_column: str | None = None,
    ) -> GraphQLObjectType:
        connection_type = self._cache.get(plural_name)
        if connection_type is not None:
            return connection_type

        if not order_key:
            raise GQLBuilderException(
                f"Connection over '{node_type.name}' cannot be built without order key"
            )

        # scalar values returned by functions may be null
        node_ref: GraphQLOutputType = (
            GraphQLNonNull(node_type) if row_type is not None else node_type
        )
        edge_type = self._graph.add_type(
            self._graph.object_type(self._inflection.edge(plural_name)),
            {
                "cursor": GraphQLField(GraphQLNonNull(GraphQLCursor)),
                "node": GraphQLField(node_ref),
            },
        )
        connection_type = self._graph.object_type(self._inflection.connection(plural_name))
        connection_type.extensions[EXTENSION_KEY] = ConnectionInfo(
            order_key=tuple(order_key), row_type=row_type, value_column=value_column
        )
        self._graph.add_type(
            connection_type,
            {
                "nodes": GraphQLField(GraphQLNonNull(GraphQLList(node_ref))),
                "edges": GraphQLField(GraphQLNonNull(GraphQLList(GraphQLNonNull(edge_type)))),
                "totalCount": GraphQLField(
                    GraphQLNonNull(GraphQLInt), resolve=FieldResolver("total_count")
                ),
                "pageInfo": GraphQLField(
                    GraphQLNonNull(self._page_info_type), resolve=FieldResolver("page_info")
                ),
            },
        )
        logger.debug("Built connection type '%s'", connection_type.name)
        self._cache[plural_name] = connection_type
        return connection_type

    def pagination_args(self) -> dict[str, GraphQLArgument]:
        return {
            "first": GraphQLArgument(GraphQLInt),
            "last": GraphQLArgument(GraphQLInt),
            "offset": GraphQLArgument(GraphQLInt),
            "before": GraphQLArgument(GraphQLCursor),
            "after": GraphQLArgument(GraphQLCursor),
        }

    def apply_annotations(self) -> None:
        """
        Completes fields returning connections.

        Missing pagination arguments are added to every field whose return type is a connection
        type. Field annotated with ``source`` and without resolver gets one reading the source.
        """
        graph = self._graph
        for type_name, field_name, gql_field in list(graph.iter_fields()):
            annotation = graph.get_annotation(type_name, field_name)
            is_connection = isinstance(
                get_named_type(gql_field.type).extensions.get(EXTENSION_KEY), ConnectionInfo
            )
            if annotation.get(SCOPE_IS_CONNECTION) and not is_connection:
                raise GQLBuilderException(
                    f"Field '{type_name}.{field_name}' is marked as connection, but"
                    f" '{get_named_type(gql_field.type).name}' is not a connection type"
                )
            if not is_connection:
                continue

            args = {**self.pagination_args(), **gql_field.args}
            resolve = gql_field.resolve
            if resolve is None and SCOPE_SOURCE in annotation:
                resolve = ConnectionResolver(_read_source(type_name, field_name, annotation))
            if args.keys() == gql_field.args.keys() and resolve is gql_field.resolve:
                continue

            graph.replace_field(type_name, field_name, _copy_field(gql_field, args, resolve))


def _read_source(type_name: str, field_name: str, annotation: Mapping) -> FromClause | Select:
    source = annotation[SCOPE_SOURCE]
    if not isinstance(source, FromClause | Select):
        raise GQLBuilderException(
            f"Field '{type_name}.{field_name}': scope 'source' should be embedded selectable"
        )
    return source


def _copy_field(
    gql_field: GraphQLField,
    args: Mapping[str, GraphQLArgument],
    resolve: GraphQLFieldResolver | None,
) -> GraphQLField:
    return GraphQLField(
        gql_field.type,
        args=dict(args),
        resolve=resolve,
        subscribe=gql_field.subscribe,
        description=gql_field.description,
        deprecation_reason=gql_field.deprecation_reason,
        extensions=gql_field.extensions,
        ast_node=gql_field.ast_node,
    )
