import enum

from graphql import GraphQLEnumType, GraphQLEnumValue
from graphql.pyutils import snake_to_camel
from sqlalchemy import Enum

from sqlextend._analysis import AnalyzedField
from sqlextend._graph import SchemaGraph


class EnumBuilder:
    """
    Builds GraphQL enums for columns of ``sqlalchemy.Enum`` type.

    Enums backed by python enum class are shared by every column using the class and their
    values are enum members, since rows carry members. Enums declared with plain string values
    get type of their own, named after the column.
    """

    _TYPE_SUFFIX = "Enum"

    def __init__(self, graph: SchemaGraph) -> None:
        self._graph = graph
        self._by_class: dict[type[enum.Enum], GraphQLEnumType] = {}

    def build_from_field(self, field: AnalyzedField) -> GraphQLEnumType | None:
        column_type = field.orm_type
        if not isinstance(column_type, Enum):
            return None

        enum_cls = column_type.enum_class
        if enum_cls is None:
            return self._add_enum(
                snake_to_camel(field.orm_name),
                {value: GraphQLEnumValue(value) for value in column_type.enums},
            )

        gql_type = self._by_class.get(enum_cls)
        if gql_type is None:
            # https://github.com/graphql-python/graphql-core/issues/73
            gql_type = self._by_class[enum_cls] = self._add_enum(
                enum_cls.__name__,
                {name: GraphQLEnumValue(member) for name, member in enum_cls.__members__.items()},
            )
        return gql_type

    def _add_enum(self, name: str, values: dict[str, GraphQLEnumValue]) -> GraphQLEnumType:
        return self._graph.add_type(
            GraphQLEnumType(self._graph.get_unique_name(name, self._TYPE_SUFFIX), values)
        )
