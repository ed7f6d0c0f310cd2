from collections.abc import Mapping

from sqlalchemy import JSON, Column, ColumnElement, TypeDecorator
from sqlalchemy.sql.type_api import TypeEngine

# column types whose python_type is too generic to pick a scalar
_DEFAULT_TYPE_MAP: Mapping[type[TypeEngine], type] = {
    JSON: dict,
}


class TypeRegistry:
    """
    Maps column types to python types, which are in turn mapped to GraphQL scalars.

    Default and explicit mappings are matched on the column type class and its bases, so dialect
    variants such as PostgreSQL ``JSONB`` resolve like ``JSON``. Otherwise ``python_type`` of the
    column type is used, falling back to the underlying type of type decorators.
    """

    def __init__(self, explicit_mappings: Mapping[type[TypeEngine], type] | None = None):
        mapping = dict(_DEFAULT_TYPE_MAP)
        if explicit_mappings is not None:
            mapping.update(explicit_mappings)
        self._mapping = mapping

    def get_python_type(self, column_type: TypeEngine) -> type:
        for type_class in type(column_type).__mro__:
            python_type = self._mapping.get(type_class)
            if python_type is not None:
                return python_type

        try:
            return column_type.python_type
        except NotImplementedError:
            pass

        if isinstance(column_type, TypeDecorator):
            return self.get_python_type(column_type.impl_instance)

        raise ValueError(f"Column type {column_type!r} does not have known python type")


def is_required(column: ColumnElement) -> bool:
    # only table columns carry nullability, derived columns are treated as nullable
    return isinstance(column, Column) and column.nullable is False
