from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from graphql import (
    GraphQLField,
    GraphQLNamedType,
    GraphQLObjectType,
    GraphQLSchema,
    get_named_type,
    specified_scalar_types,
    validate_schema,
)

from sqlextend._directives import FieldDependency
from sqlextend.exceptions import (
    DuplicateFieldDefinitionException,
    GQLBuilderException,
    InvalidDirectiveArgumentException,
    InvalidOperationException,
    TypeNameConflictException,
)
from sqlextend.model import QueryableNode

logger = logging.getLogger(__name__)

# key under which row metadata is stored in extensions of GraphQL types
EXTENSION_KEY = "sqlextend"

TGraphQLNamedType = TypeVar("TGraphQLNamedType", bound=GraphQLNamedType)


@dataclass(eq=False, kw_only=True)
class RowType:
    node: QueryableNode
    gql_type: GraphQLObjectType
    columns: Mapping[str, str]
    order_key: Sequence[str]
    dependencies: dict[str, frozenset[str]] = field(default_factory=dict)

    def validate_dependency(self, dependency: FieldDependency) -> None:
        missing = dependency.required_columns - set(self.node.column_names)
        if missing:
            raise InvalidDirectiveArgumentException(
                f"Columns {', '.join(sorted(missing))} do not exist on '{self.gql_type.name}'"
            )

    def register_dependency(self, dependency: FieldDependency) -> None:
        self.validate_dependency(dependency)
        existing = self.dependencies.get(dependency.field_name, frozenset())
        self.dependencies[dependency.field_name] = existing | dependency.required_columns


@dataclass(frozen=True, slots=True, kw_only=True)
class ConnectionInfo:
    order_key: Sequence[str]
    row_type: RowType | None = None
    value_column: str | None = None


@dataclass(frozen=True, slots=True)
class RecordPayload:
    row_type: RowType
    record_fields: Sequence[str]


def get_row_metadata(gql_type: Any) -> RowType | ConnectionInfo | RecordPayload | None:
    named_type = get_named_type(gql_type)
    if named_type is None:
        return None
    return named_type.extensions.get(EXTENSION_KEY)


class SchemaGraph:
    """
    Type graph which is extended while schema is being built.

    Object types are created with thunk over the field map owned by the graph, so fields can
    be appended until graph is finalized. Graph is append only: types and fields can be added,
    but never replaced by a different definition.
    """

    def __init__(self) -> None:
        self._types: dict[str, GraphQLNamedType] = {}
        self._fields: dict[str, dict[str, GraphQLField]] = {}
        self._annotations: dict[tuple[str, str], Mapping[str, Any]] = {}
        self._schema: GraphQLSchema | None = None

        for scalar in specified_scalar_types.values():
            self.add_type(scalar)
        self.query = self.add_type(self.object_type("Query"))
        self.mutation = self.add_type(self.object_type("Mutation"))

    @property
    def frozen(self) -> bool:
        return self._schema is not None

    def object_type(self, name: str, **kwargs: Any) -> GraphQLObjectType:
        return GraphQLObjectType(name, lambda: self._fields[name], **kwargs)

    def add_type(
        self, gql_type: TGraphQLNamedType, fields: Mapping[str, GraphQLField] | None = None
    ) -> TGraphQLNamedType:
        self._check_mutable()
        name = gql_type.name
        if name in self._types:
            raise TypeNameConflictException(f"Type '{name}' has already been registered.")
        self._types[name] = gql_type
        if isinstance(gql_type, GraphQLObjectType):
            self._fields[name] = dict(fields or {})
        return gql_type

    def has_type(self, name: str) -> bool:
        return name in self._types

    def get_type(self, name: str) -> GraphQLNamedType:
        try:
            return self._types[name]
        except KeyError:
            raise GQLBuilderException(f"Type '{name}' does not exist") from None

    def get_unique_name(self, name: str, suffix: str = "") -> str:
        unique_name = name + suffix
        if unique_name not in self._types:
            return unique_name

        idx = 1
        while True:
            unique_name = f"{name}{idx}{suffix}"
            if unique_name not in self._types:
                return unique_name
            idx += 1

    def is_extendable(self, type_name: str) -> bool:
        return type_name in self._fields

    def get_fields(self, type_name: str) -> Mapping[str, GraphQLField]:
        try:
            return self._fields[type_name]
        except KeyError:
            raise InvalidOperationException(
                f"Type '{type_name}' is not an object type owned by the graph"
            ) from None

    def iter_fields(self) -> Iterator[tuple[str, str, GraphQLField]]:
        for type_name, fields in self._fields.items():
            for field_name, gql_field in fields.items():
                yield type_name, field_name, gql_field

    def add_field(self, type_name: str, field_name: str, gql_field: GraphQLField) -> None:
        self._check_mutable()
        fields = self.get_fields(type_name)
        if field_name in fields:
            raise DuplicateFieldDefinitionException(
                f"Field '{field_name}' is already defined on type '{type_name}'"
            )
        self._fields[type_name][field_name] = gql_field

    def replace_field(self, type_name: str, field_name: str, gql_field: GraphQLField) -> None:
        # used only by finalizing steps which enrich already registered fields
        self._check_mutable()
        if field_name not in self.get_fields(type_name):
            raise InvalidOperationException(f"Field '{type_name}.{field_name}' does not exist")
        self._fields[type_name][field_name] = gql_field

    def annotate(self, type_name: str, field_name: str, scope: Mapping[str, Any]) -> None:
        self._check_mutable()
        self._annotations[(type_name, field_name)] = scope

    def get_annotation(self, type_name: str, field_name: str) -> Mapping[str, Any]:
        return self._annotations.get((type_name, field_name), {})

    def get_row_type(self, type_name: str) -> RowType | None:
        metadata = self._types[type_name].extensions.get(EXTENSION_KEY)
        return metadata if isinstance(metadata, RowType) else None

    def finalize(self) -> GraphQLSchema:
        if self._schema is not None:
            return self._schema

        if not self._fields["Query"]:
            raise GQLBuilderException("Schema does not define any query field")

        schema = GraphQLSchema(
            self.query,
            self.mutation if self._fields["Mutation"] else None,
        )
        errors = validate_schema(schema)
        if errors:
            raise GQLBuilderException(
                "Built schema is not valid:\n" + "\n".join(f"  {error.message}" for error in errors)
            )

        logger.debug("Schema graph finalized with %d types", len(self._types))
        self._schema = schema
        return schema

    def _check_mutable(self) -> None:
        if self._schema is not None:
            raise InvalidOperationException("Schema graph has already been finalized")
