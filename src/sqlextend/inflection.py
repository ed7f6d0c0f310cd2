from collections.abc import Sequence

from graphql.pyutils import snake_to_camel


def _upper_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def _lower_first(value: str) -> str:
    return value[:1].lower() + value[1:]


class Inflection:
    """
    Naming rules of generated types and root fields. Subclass to customize.
    """

    def pluralize(self, name: str) -> str:
        if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
            return name[:-1] + "ies"
        if name.endswith(("s", "x", "z", "ch", "sh")):
            return name + "es"
        return name + "s"

    def connection(self, plural_name: str) -> str:
        return f"{_upper_first(plural_name)}Connection"

    def edge(self, plural_name: str) -> str:
        return f"{_upper_first(plural_name)}Edge"

    def all_rows(self, plural_name: str) -> str:
        return f"all{_upper_first(plural_name)}"

    def row_by_key(self, node_name: str, key_fields: Sequence[str]) -> str:
        return f"{_lower_first(node_name)}By" + "And".join(_upper_first(f) for f in key_fields)

    def scalar_function(self, function_name: str) -> str:
        return snake_to_camel(function_name, upper=False)

    def scalar_function_plural(self, function_name: str) -> str:
        return snake_to_camel(function_name)
