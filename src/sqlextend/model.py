from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import FromClause, Select

from sqlextend.types import ResolverMap

if TYPE_CHECKING:
    from sqlextend.inflection import Inflection


@dataclass(frozen=True, eq=False)
class QueryableNode:
    name: str
    source: FromClause
    order_key: Sequence[str] | None = None
    plural_name: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.source, Select):
            object.__setattr__(self, "source", self.source.subquery())

    @property
    def column_names(self) -> Sequence[str]:
        return [column.name for column in self.source.columns]

    @property
    def primary_key(self) -> Sequence[str]:
        return [column.name for column in self.source.primary_key]

    def get_order_key(self) -> Sequence[str]:
        if self.order_key is not None:
            return tuple(self.order_key)
        return tuple(self.primary_key)


@dataclass(frozen=True)
class Extension:
    type_defs: str
    resolvers: ResolverMap = field(default_factory=dict)


@dataclass(frozen=True)
class BuildContext:
    nodes: Mapping[str, QueryableNode]
    inflection: Inflection

    def get_source(self, node_name: str) -> FromClause:
        return self.nodes[node_name].source


ExtensionFactory = Callable[[BuildContext], Extension]
