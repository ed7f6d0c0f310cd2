from graphql import GraphQLEnumType, GraphQLField, GraphQLNonNull, GraphQLScalarType

from sqlextend._analysis import AnalyzedField, AnalyzedNode
from sqlextend._builders.enum import EnumBuilder
from sqlextend._gql import ScalarTypeRegistry
from sqlextend._graph import EXTENSION_KEY, RowType, SchemaGraph
from sqlextend._orm import TypeRegistry
from sqlextend._resolvers import DbFieldResolver
from sqlextend.exceptions import GQLBuilderException


class RowTypeBuilder:
    def __init__(
        self,
        graph: SchemaGraph,
        enum_builder: EnumBuilder,
        orm_type_registry: TypeRegistry,
        gql_type_registry: ScalarTypeRegistry,
    ):
        self._graph = graph
        self._enum_builder = enum_builder
        self._orm_type_registry = orm_type_registry
        self._gql_type_registry = gql_type_registry

    def build_row_type(self, node: AnalyzedNode) -> RowType:
        fields = {}
        columns = {}
        for entry in node.fields.values():
            gql_type = self.convert_to_gql_type(entry)
            fields[entry.gql_name] = GraphQLField(
                GraphQLNonNull(gql_type) if entry.required else gql_type,
                resolve=DbFieldResolver(entry.orm_name),
            )
            columns[entry.gql_name] = entry.orm_name

        gql_type = self._graph.object_type(node.node.name)
        row_type = RowType(
            node=node.node, gql_type=gql_type, columns=columns, order_key=node.order_key
        )
        gql_type.extensions[EXTENSION_KEY] = row_type
        self._graph.add_type(gql_type, fields)
        return row_type

    def convert_to_gql_type(self, field: AnalyzedField) -> GraphQLScalarType | GraphQLEnumType:
        enum_type = self._enum_builder.build_from_field(field)
        if enum_type is not None:
            return enum_type

        try:
            python_type = self._orm_type_registry.get_python_type(field.orm_type)
            return self._gql_type_registry.get_scalar_type(python_type)
        except ValueError as e:
            raise GQLBuilderException(f"Column '{field.orm_name}': {e}") from e
