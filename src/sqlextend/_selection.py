from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import NamedTuple

from graphql import (
    FieldNode,
    FragmentSpreadNode,
    GraphQLResolveInfo,
    InlineFragmentNode,
    SelectionNode,
)


class _FieldInfo(NamedTuple):
    name: str
    node: FieldNode


class FieldWalker:
    """
    Walks requested selection of the resolved field, following fragments.
    """

    __slots__ = ("_info",)

    def __init__(self, info: GraphQLResolveInfo):
        self._info = info

    def selected_fields(self, path: Sequence[str] = ()) -> Iterator[str]:
        nodes: Iterable[FieldNode] = self._info.field_nodes
        for segment in path:
            nodes = [child.node for child in self._children(nodes) if child.name == segment]
        for child in self._children(nodes):
            yield child.name

    def _children(self, nodes: Iterable[FieldNode]) -> Iterator[_FieldInfo]:
        for node in nodes:
            if node.selection_set is None:
                continue
            for selection in node.selection_set.selections:
                yield from self._materialize_children(selection)

    def _materialize_children(self, node: SelectionNode) -> Iterator[_FieldInfo]:
        if isinstance(node, FieldNode):
            yield _FieldInfo(node.name.value, node)
        elif isinstance(node, FragmentSpreadNode):
            fragment = self._info.fragments[node.name.value]
            for selection in fragment.selection_set.selections:
                yield from self._materialize_children(selection)
        elif isinstance(node, InlineFragmentNode):
            for selection in node.selection_set.selections:
                yield from self._materialize_children(selection)
        else:
            raise ValueError(f"Unknown SelectionNode type: {type(node)!r}")
