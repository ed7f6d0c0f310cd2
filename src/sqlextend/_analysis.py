from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import sqlalchemy
from sqlalchemy.sql.type_api import TypeEngine

from sqlextend._orm import is_required
from sqlextend.exceptions import GQLBuilderException
from sqlextend.model import QueryableNode


@dataclass(frozen=True, slots=True, kw_only=True)
class AnalyzedField:
    orm_name: str
    orm_field: sqlalchemy.ColumnElement
    required: bool
    gql_name: str

    @property
    def orm_type(self) -> TypeEngine:
        return self.orm_field.type


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class AnalyzedNode:
    node: QueryableNode
    fields: Mapping[str, AnalyzedField]
    order_key: Sequence[str]

    def __hash__(self) -> int:
        return hash(id(self))

    def __eq__(self, other: object) -> bool:
        return self is other


class Analyzer:
    def __init__(self, field_name_converter: Callable[[str], str]):
        self._field_name_converter = field_name_converter
        self._analyzed_nodes: dict[QueryableNode, AnalyzedNode] = {}

    def get(self, node: QueryableNode) -> AnalyzedNode:
        analyzed_node = self._analyzed_nodes.get(node)
        if analyzed_node is None:
            analyzed_node = self._analyzed_nodes[node] = self._create_analyzed_node(node)
        return analyzed_node

    def _create_analyzed_node(self, node: QueryableNode) -> AnalyzedNode:
        field_name_converter = self._field_name_converter
        analyzed_fields: dict[str, AnalyzedField] = {}
        for column in node.source.columns:
            gql_field_name = field_name_converter(column.name)
            if gql_field_name in analyzed_fields:
                raise GQLBuilderException(
                    f"Columns '{analyzed_fields[gql_field_name].orm_name}' and '{column.name}'"
                    f" of node '{node.name}' map to the same field '{gql_field_name}'"
                )
            analyzed_fields[gql_field_name] = AnalyzedField(
                orm_name=column.name,
                gql_name=gql_field_name,
                orm_field=column,
                required=is_required(column),
            )

        order_key = node.get_order_key()
        missing = set(order_key) - {entry.orm_name for entry in analyzed_fields.values()}
        if missing:
            raise GQLBuilderException(
                f"Order key of node '{node.name}' references unknown columns"
                f" {', '.join(sorted(missing))}"
            )

        return AnalyzedNode(node=node, fields=analyzed_fields, order_key=order_key)
