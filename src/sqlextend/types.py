from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, TypedDict

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from sqlextend.query import QueryBuilder

Resolver = Callable[..., Any]
ResolverMap = Mapping[str, Mapping[str, Resolver]]

QueryMutator = Callable[["QueryBuilder"], None]
QueryBuilderCallback = Callable[["QueryBuilder", dict[str, Any]], None]


class TypedResolveContext(TypedDict):
    db_session: Session
