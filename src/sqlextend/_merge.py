"""
Merging of extension descriptors into the schema graph.

Merge is staged: every type and field of the extension is built and validated against the
graph first, and graph is mutated only once the whole extension is known to be valid. Failing
extension therefore never leaves partially registered types or fields behind.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from graphql import (
    EnumTypeDefinitionNode,
    GraphQLArgument,
    GraphQLEnumType,
    GraphQLEnumValue,
    GraphQLField,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLList,
    GraphQLNamedType,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLType,
    InputObjectTypeDefinitionNode,
    InputValueDefinitionNode,
    ListTypeNode,
    NamedTypeNode,
    NonNullTypeNode,
    ObjectTypeDefinitionNode,
    StringValueNode,
    TypeNode,
    Undefined,
    get_named_type,
    get_nullable_type,
    is_input_type,
    is_list_type,
    is_output_type,
    value_from_ast,
)

from sqlextend._directives import (
    ExtensionDescriptor,
    FieldDescriptor,
    FieldDependency,
    TypeDescriptor,
    TypeKind,
    read_deprecation_reason,
)
from sqlextend._graph import (
    EXTENSION_KEY,
    ConnectionInfo,
    RecordPayload,
    RowType,
    SchemaGraph,
)
from sqlextend._resolvers import QueryDelegationResolver, RecordFieldResolver
from sqlextend.exceptions import (
    DuplicateFieldDefinitionException,
    GQLBuilderException,
    InvalidDirectiveArgumentException,
    InvalidOperationException,
    TypeNameConflictException,
)
from sqlextend.types import Resolver

logger = logging.getLogger(__name__)

# key under which @scope arguments are exposed in extensions of types, fields and arguments
SCOPE_KEY = "scope"


class ExtensionMerger:
    def __init__(self, graph: SchemaGraph):
        self._graph = graph

    def merge(self, descriptor: ExtensionDescriptor) -> None:
        if self._graph.frozen:
            raise InvalidOperationException(
                f"Extension '{descriptor.name}' cannot be merged into finalized schema graph"
            )
        logger.debug(
            "Merging extension '%s' (%d types, %d fields)",
            descriptor.name,
            len(descriptor.types),
            len(descriptor.fields),
        )
        staging = _Staging(self._graph, descriptor.name)
        staging.stage(descriptor)
        staging.commit()


@dataclass(slots=True)
class _StagedField:
    type_name: str
    field_name: str
    gql_field: GraphQLField
    dependency: FieldDependency | None
    scope: Mapping[str, Any]


@dataclass
class _Staging:
    graph: SchemaGraph
    extension_name: str
    types: dict[str, GraphQLNamedType] = field(default_factory=dict)
    new_object_fields: dict[str, dict[str, GraphQLField]] = field(default_factory=dict)
    fields: list[_StagedField] = field(default_factory=list)
    input_fields: dict[str, dict[str, GraphQLInputField]] = field(default_factory=dict)

    def stage(self, descriptor: ExtensionDescriptor) -> None:
        for type_descriptor in descriptor.types:
            self._stage_type(type_descriptor)
        input_types = [entry for entry in descriptor.types if entry.kind is TypeKind.INPUT_OBJECT]
        for type_descriptor in input_types:
            self._stage_input_fields(type_descriptor)
        # defaults may reference other input types, so they are read once all fields exist
        for type_descriptor in input_types:
            self._stage_input_defaults(type_descriptor)
        self._stage_record_payloads(descriptor.fields)
        for field_descriptor in descriptor.fields:
            self._stage_field(field_descriptor)

    def commit(self) -> None:
        graph = self.graph
        for name, gql_type in self.types.items():
            graph.add_type(gql_type, self.new_object_fields.get(name))

        for staged in self.fields:
            if staged.type_name not in self.new_object_fields:
                graph.add_field(staged.type_name, staged.field_name, staged.gql_field)
            if staged.dependency is not None:
                row_type = graph.get_row_type(staged.type_name)
                if row_type is None:
                    raise InvalidOperationException(
                        f"Field '{staged.type_name}.{staged.field_name}' requires columns of a type"
                        " which is not a row type"
                    )
                row_type.register_dependency(staged.dependency)
            if staged.scope:
                graph.annotate(staged.type_name, staged.field_name, staged.scope)

        logger.debug(
            "Extension '%s' added types %s and %d fields",
            self.extension_name,
            ", ".join(self.types) or "-",
            len(self.fields),
        )

    def _stage_type(self, descriptor: TypeDescriptor) -> None:
        name = descriptor.name
        if name in self.types or self.graph.has_type(name):
            raise TypeNameConflictException(
                f"{self._where(name)}: type '{name}' has already been registered"
            )

        node = descriptor.node
        description = _description(node)
        extensions = {SCOPE_KEY: descriptor.scope} if descriptor.scope else None
        gql_type: GraphQLNamedType
        match node:
            case ObjectTypeDefinitionNode():
                gql_type = self.graph.object_type(
                    name, description=description, extensions=extensions, ast_node=node
                )
                self.new_object_fields[name] = {}
            case InputObjectTypeDefinitionNode():
                input_fields = self.input_fields[name] = {}
                gql_type = GraphQLInputObjectType(
                    name,
                    lambda: input_fields,
                    description=description,
                    extensions=extensions,
                    ast_node=node,
                )
            case EnumTypeDefinitionNode():
                gql_type = GraphQLEnumType(
                    name,
                    {
                        value.name.value: GraphQLEnumValue(
                            value.name.value,
                            description=_description(value),
                            deprecation_reason=read_deprecation_reason(value.directives),
                            ast_node=value,
                        )
                        for value in node.values or ()
                    },
                    description=description,
                    extensions=extensions,
                    ast_node=node,
                )
            case _:
                raise GQLBuilderException(f"{self._where(name)}: unsupported type definition")

        self.types[name] = gql_type

    def _stage_input_fields(self, descriptor: TypeDescriptor) -> None:
        input_fields = self.input_fields[descriptor.name]
        for node in descriptor.node.fields or ():
            where = self._where(descriptor.name, node.name.value)
            gql_type = self._resolve_input_type(node.type, where)
            input_fields[node.name.value] = GraphQLInputField(
                gql_type,
                description=_description(node),
                deprecation_reason=read_deprecation_reason(node.directives),
                ast_node=node,
            )

    def _stage_input_defaults(self, descriptor: TypeDescriptor) -> None:
        input_fields = self.input_fields[descriptor.name]
        for node in descriptor.node.fields or ():
            input_field = input_fields[node.name.value]
            input_field.default_value = self._read_default(
                node, input_field.type, self._where(descriptor.name, node.name.value)
            )

    def _stage_record_payloads(self, descriptors: Sequence[FieldDescriptor]) -> None:
        record_fields: dict[str, list[FieldDescriptor]] = {}
        for descriptor in descriptors:
            if descriptor.is_record:
                record_fields.setdefault(descriptor.type_name, []).append(descriptor)

        for type_name, entries in record_fields.items():
            payload_type = self.types.get(type_name)
            if not isinstance(payload_type, GraphQLObjectType):
                raise InvalidDirectiveArgumentException(
                    f"{self._where(type_name, entries[0].name)}: '@sqlField' can be used only on"
                    " object types defined by the extension"
                )

            row_types = set()
            for entry in entries:
                where = self._where(type_name, entry.name)
                gql_type = self._resolve_output_type(entry.node.type, where)
                row_type = get_named_type(gql_type).extensions.get(EXTENSION_KEY)
                if is_list_type(get_nullable_type(gql_type)) or not isinstance(row_type, RowType):
                    raise InvalidDirectiveArgumentException(
                        f"{where}: '@sqlField' should return single row type"
                    )
                row_types.add(row_type)

            if len(row_types) > 1:
                raise InvalidDirectiveArgumentException(
                    f"{self._where(type_name)}: all '@sqlField' fields should return the same"
                    " row type"
                )
            payload_type.extensions[EXTENSION_KEY] = RecordPayload(
                row_types.pop(), tuple(entry.name for entry in entries)
            )

    def _stage_field(self, descriptor: FieldDescriptor) -> None:
        type_name = descriptor.type_name
        field_name = descriptor.name
        where = self._where(type_name, field_name)

        if type_name in self.new_object_fields:
            existing: Mapping[str, Any] = self.new_object_fields[type_name]
        elif type_name not in self.types and not self.graph.has_type(type_name):
            raise GQLBuilderException(f"{where}: type '{type_name}' does not exist")
        elif type_name in self.types or not self.graph.is_extendable(type_name):
            raise GQLBuilderException(f"{where}: type '{type_name}' cannot be extended")
        else:
            existing = self.graph.get_fields(type_name)

        if field_name in existing or any(
            staged.type_name == type_name and staged.field_name == field_name
            for staged in self.fields
        ):
            raise DuplicateFieldDefinitionException(
                f"{where}: field '{field_name}' is already defined on type '{type_name}'"
            )

        node = descriptor.node
        gql_type = self._resolve_output_type(node.type, where)
        args = {}
        for arg_node in node.arguments or ():
            arg_where = f"{where}, argument '{arg_node.name.value}'"
            arg_type = self._resolve_input_type(arg_node.type, arg_where)
            arg_scope = descriptor.arg_scopes.get(arg_node.name.value)
            args[arg_node.name.value] = GraphQLArgument(
                arg_type,
                default_value=self._read_default(arg_node, arg_type, arg_where),
                description=_description(arg_node),
                deprecation_reason=read_deprecation_reason(arg_node.directives),
                extensions={SCOPE_KEY: arg_scope} if arg_scope else None,
                ast_node=arg_node,
            )

        if descriptor.dependency is not None:
            row_type = self.graph.get_row_type(type_name) if type_name not in self.types else None
            if row_type is None:
                raise InvalidDirectiveArgumentException(
                    f"{where}: '@requires' can be used only on fields of row types"
                )
            try:
                row_type.validate_dependency(descriptor.dependency)
            except InvalidDirectiveArgumentException as e:
                raise InvalidDirectiveArgumentException(f"{where}: {e}") from None

        gql_field = GraphQLField(
            gql_type,
            args=args,
            resolve=self._build_resolver(descriptor, gql_type, where),
            description=_description(node),
            deprecation_reason=descriptor.deprecation_reason,
            extensions={SCOPE_KEY: descriptor.scope} if descriptor.scope else None,
            ast_node=node,
        )
        if type_name in self.new_object_fields:
            self.new_object_fields[type_name][field_name] = gql_field
        self.fields.append(
            _StagedField(
                type_name, field_name, gql_field, descriptor.dependency, descriptor.scope
            )
        )

    def _build_resolver(
        self, descriptor: FieldDescriptor, gql_type: GraphQLType, where: str
    ) -> Resolver | None:
        if descriptor.is_record and descriptor.resolver is None:
            return RecordFieldResolver(descriptor.name)

        delegation = descriptor.delegation
        if delegation is None:
            return descriptor.resolver

        metadata = get_named_type(gql_type).extensions.get(EXTENSION_KEY)
        if not isinstance(metadata, RowType | ConnectionInfo | RecordPayload):
            raise InvalidDirectiveArgumentException(
                f"{where}: '@sqlQuery' field should return row type, list of row types,"
                " connection or payload carrying rows"
            )
        single = isinstance(metadata, RowType) and not is_list_type(get_nullable_type(gql_type))
        return QueryDelegationResolver(
            delegation.source, delegation.with_query_builder, single, descriptor.resolver
        )

    def _resolve_output_type(self, node: TypeNode, where: str) -> Any:
        gql_type = self._resolve_type(node, where)
        if not is_output_type(gql_type):
            raise GQLBuilderException(
                f"{where}: '{get_named_type(gql_type).name}' is not output type"
            )
        return gql_type

    def _resolve_input_type(self, node: TypeNode, where: str) -> Any:
        gql_type = self._resolve_type(node, where)
        if not is_input_type(gql_type):
            raise GQLBuilderException(
                f"{where}: '{get_named_type(gql_type).name}' is not input type"
            )
        return gql_type

    def _resolve_type(self, node: TypeNode, where: str) -> GraphQLType:
        match node:
            case NonNullTypeNode():
                return GraphQLNonNull(self._resolve_type(node.type, where))  # type: ignore
            case ListTypeNode():
                return GraphQLList(self._resolve_type(node.type, where))
            case NamedTypeNode():
                name = node.name.value
                gql_type = self.types.get(name)
                if gql_type is not None:
                    return gql_type
                if not self.graph.has_type(name):
                    raise GQLBuilderException(f"{where}: unknown type '{name}'")
                return self.graph.get_type(name)
            case _:
                raise GQLBuilderException(f"{where}: unsupported type reference")

    @classmethod
    def _read_default(cls, node: InputValueDefinitionNode, gql_type: Any, where: str) -> Any:
        if node.default_value is None:
            return Undefined
        value = value_from_ast(node.default_value, gql_type)
        if value is Undefined:
            raise GQLBuilderException(f"{where}: default value is not valid")
        return value

    def _where(self, type_name: str, field_name: str | None = None) -> str:
        where = f"Extension '{self.extension_name}', type '{type_name}'"
        if field_name is not None:
            where += f", field '{field_name}'"
        return where


def _description(node: Any) -> str | None:
    description = getattr(node, "description", None)
    return description.value if isinstance(description, StringValueNode) else None
