from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from graphql import (
    DEFAULT_DEPRECATION_REASON,
    ConstDirectiveNode,
    DirectiveLocation,
    EnumTypeDefinitionNode,
    FieldDefinitionNode,
    GraphQLDeprecatedDirective,
    GraphQLDirective,
    InputObjectTypeDefinitionNode,
    InputValueDefinitionNode,
    ListValueNode,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    ObjectValueNode,
    StringValueNode,
    ValueNode,
    VariableNode,
)
from graphql.utilities import value_from_ast_untyped
from sqlalchemy import FromClause, Select

from sqlextend.embed import EmbeddedValueNode, ExtensionDocument
from sqlextend.exceptions import (
    GQLBuilderException,
    InvalidDirectiveArgumentException,
    UnknownDirectiveException,
)
from sqlextend.gql.directives import (
    GraphQLRequiresDirective,
    GraphQLScopeDirective,
    GraphQLSqlFieldDirective,
    GraphQLSqlQueryDirective,
)
from sqlextend.types import QueryBuilderCallback, Resolver, ResolverMap


class DirectiveKind(enum.Enum):
    REQUIRES = "requires"
    SQL_QUERY = "sqlQuery"
    SCOPE = "scope"
    SQL_FIELD = "sqlField"
    DEPRECATED = "deprecated"

    @property
    def definition(self) -> GraphQLDirective:
        return _DEFINITIONS[self]


_DEFINITIONS: Mapping[DirectiveKind, GraphQLDirective] = {
    DirectiveKind.REQUIRES: GraphQLRequiresDirective,
    DirectiveKind.SQL_QUERY: GraphQLSqlQueryDirective,
    DirectiveKind.SCOPE: GraphQLScopeDirective,
    DirectiveKind.SQL_FIELD: GraphQLSqlFieldDirective,
    DirectiveKind.DEPRECATED: GraphQLDeprecatedDirective,
}


class TypeKind(enum.Enum):
    OBJECT = enum.auto()
    INPUT_OBJECT = enum.auto()
    ENUM = enum.auto()


@dataclass(frozen=True, slots=True)
class FieldDependency:
    field_name: str
    required_columns: frozenset[str]


@dataclass(frozen=True, slots=True)
class QueryDelegation:
    source: FromClause | Select
    with_query_builder: QueryBuilderCallback | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class TypeDescriptor:
    name: str
    kind: TypeKind
    node: ObjectTypeDefinitionNode | InputObjectTypeDefinitionNode | EnumTypeDefinitionNode
    scope: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldDescriptor:
    type_name: str
    node: FieldDefinitionNode
    resolver: Resolver | None = None
    dependency: FieldDependency | None = None
    delegation: QueryDelegation | None = None
    scope: Mapping[str, Any] = field(default_factory=dict)
    arg_scopes: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    is_record: bool = False
    deprecation_reason: str | None = None

    @property
    def name(self) -> str:
        return self.node.name.value


@dataclass(frozen=True, slots=True, kw_only=True)
class ExtensionDescriptor:
    name: str
    types: Sequence[TypeDescriptor]
    fields: Sequence[FieldDescriptor]


class DescriptorExtractor:
    """
    Reads extension document into descriptor which can be merged into schema graph.

    Extraction does not consult the schema graph, so fields extending existing types and fields
    of new types are described the same way.
    """

    def __init__(self, extension_name: str):
        self._extension_name = extension_name

    def extract(
        self, document: ExtensionDocument, resolvers: ResolverMap | None = None
    ) -> ExtensionDescriptor:
        types: list[TypeDescriptor] = []
        fields: list[FieldDescriptor] = []
        defined_fields: set[tuple[str, str]] = set()
        resolvers = resolvers or {}

        for definition in document.document.definitions:
            match definition:
                case ObjectTypeDefinitionNode() | ObjectTypeExtensionNode():
                    type_name = definition.name.value
                    if isinstance(definition, ObjectTypeDefinitionNode):
                        types.append(self._describe_type(definition, TypeKind.OBJECT))
                    elif definition.directives:
                        raise InvalidDirectiveArgumentException(
                            f"{self._where(type_name)}: directives are not supported on type"
                            " extension"
                        )
                    if definition.interfaces:
                        raise GQLBuilderException(
                            f"{self._where(type_name)}: implementing interfaces is not supported"
                        )

                    type_resolvers = resolvers.get(type_name, {})
                    for field_node in definition.fields or ():
                        descriptor = self._describe_field(
                            type_name, field_node, type_resolvers.get(field_node.name.value)
                        )
                        defined_fields.add((type_name, descriptor.name))
                        fields.append(descriptor)
                case InputObjectTypeDefinitionNode():
                    types.append(self._describe_type(definition, TypeKind.INPUT_OBJECT))
                case EnumTypeDefinitionNode():
                    types.append(self._describe_type(definition, TypeKind.ENUM))
                case _:
                    raise GQLBuilderException(
                        f"Extension '{self._extension_name}': definition of kind"
                        f" '{definition.kind}' is not supported"
                    )

        for type_name, type_resolvers in resolvers.items():
            for field_name in type_resolvers:
                if (type_name, field_name) not in defined_fields:
                    raise GQLBuilderException(
                        f"{self._where(type_name, field_name)}: resolver is provided for a field"
                        " which is not defined by the extension"
                    )

        return ExtensionDescriptor(
            name=self._extension_name, types=tuple(types), fields=tuple(fields)
        )

    def _describe_type(
        self,
        node: ObjectTypeDefinitionNode | InputObjectTypeDefinitionNode | EnumTypeDefinitionNode,
        kind: TypeKind,
    ) -> TypeDescriptor:
        name = node.name.value
        location = {
            TypeKind.OBJECT: DirectiveLocation.OBJECT,
            TypeKind.INPUT_OBJECT: DirectiveLocation.INPUT_OBJECT,
            TypeKind.ENUM: DirectiveLocation.ENUM,
        }[kind]
        directives = self._read_directives(node.directives, location, self._where(name))
        if kind is TypeKind.INPUT_OBJECT:
            for input_field in node.fields or ():
                self._read_directives(
                    input_field.directives,
                    DirectiveLocation.INPUT_FIELD_DEFINITION,
                    self._where(name, input_field.name.value),
                )
        elif kind is TypeKind.ENUM:
            for enum_value in node.values or ():
                self._read_directives(
                    enum_value.directives,
                    DirectiveLocation.ENUM_VALUE,
                    f"{self._where(name)}, value '{enum_value.name.value}'",
                )

        return TypeDescriptor(
            name=name,
            kind=kind,
            node=node,
            scope=self._read_scope(directives),
        )

    def _describe_field(
        self, type_name: str, node: FieldDefinitionNode, resolver: Resolver | None
    ) -> FieldDescriptor:
        field_name = node.name.value
        where = self._where(type_name, field_name)
        directives = self._read_directives(
            node.directives, DirectiveLocation.FIELD_DEFINITION, where
        )

        dependency = None
        if (args := directives.get(DirectiveKind.REQUIRES)) is not None:
            dependency = FieldDependency(field_name, self._read_columns(args, where))

        delegation = None
        if (args := directives.get(DirectiveKind.SQL_QUERY)) is not None:
            delegation = self._read_delegation(args, where)

        if resolver is not None and not callable(resolver):
            raise GQLBuilderException(f"{where}: resolver is not callable")

        return FieldDescriptor(
            type_name=type_name,
            node=node,
            resolver=resolver,
            dependency=dependency,
            delegation=delegation,
            scope=self._read_scope(directives),
            arg_scopes=self._read_argument_scopes(node.arguments or (), where),
            is_record=DirectiveKind.SQL_FIELD in directives,
            deprecation_reason=self._read_deprecation(directives, where),
        )

    def _read_argument_scopes(
        self, arguments: Sequence[InputValueDefinitionNode], where: str
    ) -> Mapping[str, Mapping[str, Any]]:
        scopes = {}
        for argument in arguments:
            directives = self._read_directives(
                argument.directives,
                DirectiveLocation.ARGUMENT_DEFINITION,
                f"{where}, argument '{argument.name.value}'",
            )
            if DirectiveKind.SCOPE in directives:
                scopes[argument.name.value] = self._read_scope(directives)
        return scopes

    def _read_directives(
        self,
        nodes: Sequence[ConstDirectiveNode] | None,
        location: DirectiveLocation,
        where: str,
    ) -> dict[DirectiveKind, dict[str, ValueNode]]:
        result: dict[DirectiveKind, dict[str, ValueNode]] = {}
        for node in nodes or ():
            name = node.name.value
            try:
                kind = DirectiveKind(name)
            except ValueError:
                raise UnknownDirectiveException(f"{where}: unknown directive '@{name}'") from None

            if location not in kind.definition.locations:
                raise InvalidDirectiveArgumentException(
                    f"{where}: directive '@{name}' cannot be used on {location.name}"
                )
            if kind in result:
                raise InvalidDirectiveArgumentException(
                    f"{where}: directive '@{name}' is used more than once"
                )

            args = {argument.name.value: argument.value for argument in node.arguments or ()}
            if kind is not DirectiveKind.SCOPE:
                unknown = set(args) - set(kind.definition.args)
                if unknown:
                    raise InvalidDirectiveArgumentException(
                        f"{where}: directive '@{name}' does not accept arguments"
                        f" {', '.join(sorted(unknown))}"
                    )
            result[kind] = args
        return result

    def _read_columns(self, args: Mapping[str, ValueNode], where: str) -> frozenset[str]:
        node = args.get("columns")
        if node is None:
            raise InvalidDirectiveArgumentException(
                f"{where}: directive '@requires' expects argument 'columns'"
            )

        value = to_python_value(node)
        if isinstance(value, str):
            # list input coercion accepts single value
            value = [value]
        if not isinstance(value, list) or not all(isinstance(entry, str) for entry in value):
            raise InvalidDirectiveArgumentException(
                f"{where}: argument 'columns' of '@requires' should be a list of column names"
            )
        return frozenset(value)

    def _read_delegation(self, args: Mapping[str, ValueNode], where: str) -> QueryDelegation:
        source_node = args.get("source")
        if not isinstance(source_node, EmbeddedValueNode) or not isinstance(
            source_node.value, FromClause | Select
        ):
            raise InvalidDirectiveArgumentException(
                f"{where}: argument 'source' of '@sqlQuery' should be embedded selectable"
            )

        callback = None
        callback_node = args.get("withQueryBuilder")
        if callback_node is not None:
            if not isinstance(callback_node, EmbeddedValueNode) or not callable(
                callback_node.value
            ):
                raise InvalidDirectiveArgumentException(
                    f"{where}: argument 'withQueryBuilder' of '@sqlQuery' should be embedded"
                    " callable"
                )
            callback = callback_node.value

        return QueryDelegation(source_node.value, callback)

    @classmethod
    def _read_scope(cls, directives: Mapping[DirectiveKind, Mapping[str, ValueNode]]) -> Mapping:
        args = directives.get(DirectiveKind.SCOPE)
        if not args:
            return MappingProxyType({})
        return MappingProxyType({name: to_python_value(node) for name, node in args.items()})

    @classmethod
    def _read_deprecation(
        cls, directives: Mapping[DirectiveKind, Mapping[str, ValueNode]], where: str
    ) -> str | None:
        args = directives.get(DirectiveKind.DEPRECATED)
        if args is None:
            return None
        reason_node = args.get("reason")
        if reason_node is None:
            return DEFAULT_DEPRECATION_REASON
        if not isinstance(reason_node, StringValueNode):
            raise InvalidDirectiveArgumentException(
                f"{where}: argument 'reason' of '@deprecated' should be a string"
            )
        return reason_node.value

    def _where(self, type_name: str, field_name: str | None = None) -> str:
        where = f"Extension '{self._extension_name}', type '{type_name}'"
        if field_name is not None:
            where += f", field '{field_name}'"
        return where


def read_deprecation_reason(nodes: Sequence[ConstDirectiveNode] | None) -> str | None:
    for node in nodes or ():
        if node.name.value != DirectiveKind.DEPRECATED.value:
            continue
        for argument in node.arguments or ():
            if argument.name.value == "reason" and isinstance(argument.value, StringValueNode):
                return argument.value.value
        return DEFAULT_DEPRECATION_REASON
    return None


def to_python_value(node: ValueNode) -> Any:
    match node:
        case EmbeddedValueNode():
            return node.value
        case ListValueNode():
            return [to_python_value(entry) for entry in node.values]
        case ObjectValueNode():
            return {entry.name.value: to_python_value(entry.value) for entry in node.fields}
        case VariableNode():
            raise InvalidDirectiveArgumentException(
                "Variables cannot be used in type definitions"
            )
        case _:
            return value_from_ast_untyped(node)
