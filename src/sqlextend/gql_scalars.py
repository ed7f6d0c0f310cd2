import datetime
from collections.abc import Callable
from typing import Any, TypeVar

from graphql import (
    GraphQLError,
    GraphQLScalarType,
    StringValueNode,
    ValueNode,
    print_ast,
)
from graphql.pyutils import inspect
from graphql.utilities import value_from_ast_untyped

TTemporal = TypeVar("TTemporal", datetime.date, datetime.datetime)


def _iso_scalar(
    name: str,
    description: str,
    python_type: type[TTemporal],
    normalize: Callable[[Any], TTemporal | None],
) -> GraphQLScalarType:
    def error(value: str) -> GraphQLError:
        return GraphQLError(f"{name} cannot represent non {name.lower()} value: {value}")

    def serialize(output_value: Any) -> str:
        value = normalize(output_value)
        if value is None:
            raise error(inspect(output_value))
        return value.isoformat()

    def coerce(input_value: Any) -> TTemporal:
        if isinstance(input_value, str):
            try:
                return python_type.fromisoformat(input_value)
            except ValueError:
                pass
        else:
            value = normalize(input_value)
            if value is not None:
                return value

        raise error(inspect(input_value))

    def parse_literal(value_node: ValueNode, _variables: Any = None) -> TTemporal:
        if isinstance(value_node, StringValueNode):
            try:
                return python_type.fromisoformat(value_node.value)
            except ValueError:
                pass

        raise error(print_ast(value_node))

    return GraphQLScalarType(
        name=name,
        description=description,
        serialize=serialize,
        parse_value=coerce,
        parse_literal=parse_literal,
    )


def _as_date(value: Any) -> datetime.date | None:
    if isinstance(value, datetime.datetime):
        return value.date()
    elif isinstance(value, datetime.date):
        return value
    return None


def _as_datetime(value: Any) -> datetime.datetime | None:
    return value if isinstance(value, datetime.datetime) else None


GraphQLDate = _iso_scalar(
    "Date",
    "Date scalar type represents date in ISO format (YYYY-MM-DD).",
    datetime.date,
    _as_date,
)

GraphQLDateTime = _iso_scalar(
    "DateTime",
    (
        "DateTime scalar type represents datetime in ISO 8601 format. Timezone information"
        " is present if date is zone aware."
    ),
    datetime.datetime,
    _as_datetime,
)


def _serialize_cursor(output_value: Any) -> str:
    if isinstance(output_value, str):
        return output_value
    raise GraphQLError("Cursor cannot represent non string value: " + inspect(output_value))


def _parse_cursor_literal(value_node: ValueNode, _variables: Any = None) -> str:
    if isinstance(value_node, StringValueNode):
        return value_node.value

    raise GraphQLError(
        "Cursor cannot represent non string value: " + print_ast(value_node),
        value_node,
    )


GraphQLCursor = GraphQLScalarType(
    name="Cursor",
    description="Opaque position of the row within ordered result set.",
    serialize=_serialize_cursor,
    parse_value=_serialize_cursor,
    parse_literal=_parse_cursor_literal,
)


def _identity(value: Any) -> Any:
    return value


GraphQLJson = GraphQLScalarType(
    name="JSON",
    description="Arbitrary JSON value.",
    serialize=_identity,
    parse_value=_identity,
    parse_literal=value_from_ast_untyped,
)
