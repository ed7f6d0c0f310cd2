import datetime
from collections.abc import Mapping
from uuid import UUID

import graphql

from sqlextend import gql_scalars
from sqlextend._graph import SchemaGraph

_DEFAULT_TYPE_MAP: Mapping[type, graphql.GraphQLScalarType] = {
    bool: graphql.GraphQLBoolean,
    float: graphql.GraphQLFloat,
    int: graphql.GraphQLInt,
    str: graphql.GraphQLString,
    datetime.date: gql_scalars.GraphQLDate,
    datetime.datetime: gql_scalars.GraphQLDateTime,
    UUID: graphql.GraphQLID,
    dict: gql_scalars.GraphQLJson,
    list: gql_scalars.GraphQLJson,
}


class ScalarTypeRegistry:
    def __init__(
        self,
        graph: SchemaGraph,
        type_map_overrides: Mapping[type, graphql.GraphQLScalarType] | None = None,
    ):
        mapping = dict(_DEFAULT_TYPE_MAP)
        if type_map_overrides:
            mapping.update(type_map_overrides)
        for entry in set(mapping.values()):
            if not graph.has_type(entry.name):
                graph.add_type(entry)
        self._mapping = mapping

    def get_scalar_type(self, python_type: type) -> graphql.GraphQLScalarType:
        gql_type = self._mapping.get(python_type)
        if gql_type is None:
            raise ValueError(f"Type '{python_type!r}' does not have GQL scalar equivalent")

        return gql_type
