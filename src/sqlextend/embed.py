"""
Embedding of runtime values into the schema definition language.

SDL can only express literal values, but extension directives need to reference
callables, SQLAlchemy selectables and other host objects. ``embed`` returns a
string literal placeholder which can be interpolated into the SDL text where an
argument value is expected. After parsing, placeholders are substituted with
``EmbeddedValueNode`` instances which reference the original value.
"""
from __future__ import annotations

import itertools
import re
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from graphql import (
    DirectiveNode,
    DocumentNode,
    NameNode,
    StringValueNode,
    ValueNode,
    Visitor,
    parse,
    visit,
)

from sqlextend.exceptions import MalformedEmbedSiteException, UnresolvedPlaceholderException

_MARKER_PREFIX = "__sqlextend_embed_"
_PLACEHOLDER_PATTERN = re.compile(re.escape(_MARKER_PREFIX) + r"[0-9a-f]+_\d+__")


@dataclass(frozen=True, eq=False, slots=True)
class EmbeddedValue:
    token: str
    value: Any


class EmbeddedValueNode(ValueNode):
    __slots__ = ("embedded",)

    embedded: EmbeddedValue

    @property
    def token(self) -> str:
        return self.embedded.token

    @property
    def value(self) -> Any:
        return self.embedded.value


@dataclass(frozen=True, eq=False)
class ExtensionDocument:
    document: DocumentNode
    values: Mapping[str, Any]


class ValueRegistry:
    __slots__ = ("_marker", "_counter", "_values")

    def __init__(self) -> None:
        self._marker = f"{_MARKER_PREFIX}{secrets.token_hex(8)}_"
        self._counter = itertools.count(1)
        self._values: dict[str, Any] = {}

    def embed(self, value: Any) -> str:
        token = f"{self._marker}{next(self._counter)}__"
        self._values[token] = value
        return f'"{token}"'

    def lookup(self, token: str) -> Any:
        try:
            return self._values[token]
        except KeyError:
            raise UnresolvedPlaceholderException(
                f"Placeholder '{token}' does not have registered value"
            ) from None

    def extract(self, document: DocumentNode) -> ExtensionDocument:
        """
        Substitutes placeholders of the document. Values of substituted placeholders are moved
        to the returned document and released from the registry.
        """
        substitution = _EmbedSubstitution(self)
        try:
            cleaned = visit(document, substitution)
        finally:
            for token in substitution.found:
                del self._values[token]
        return ExtensionDocument(cleaned, MappingProxyType(substitution.found))

    def parse(self, type_defs: str) -> ExtensionDocument:
        return self.extract(parse(type_defs))


class _EmbedSubstitution(Visitor):
    def __init__(self, registry: ValueRegistry):
        super().__init__()
        self._registry = registry
        self._directive_depth = 0
        self.found: dict[str, Any] = {}

    def enter_directive(self, node: DirectiveNode, *_args: Any) -> None:
        self._directive_depth += 1

    def leave_directive(self, node: DirectiveNode, *_args: Any) -> None:
        self._directive_depth -= 1

    def enter_name(self, node: NameNode, *_args: Any) -> None:
        if _PLACEHOLDER_PATTERN.search(node.value):
            raise MalformedEmbedSiteException(
                "Embedded value cannot be used as a name:\n" f"  {node.value}"
            )

    def enter_string_value(
        self, node: StringValueNode, key: str | int | None, *_args: Any
    ) -> EmbeddedValueNode | None:
        match = _PLACEHOLDER_PATTERN.search(node.value)
        if match is None:
            return None

        if key == "description":
            raise MalformedEmbedSiteException("Embedded value cannot be used in description")
        if self._directive_depth == 0:
            raise MalformedEmbedSiteException(
                "Embedded value can only be used as directive argument value"
            )
        if match.group(0) != node.value:
            raise MalformedEmbedSiteException(
                "Embedded value must be used on its own and not as a part of the string:\n"
                f"  {node.value!r}"
            )

        token = node.value
        value = self._registry.lookup(token)
        self.found[token] = value
        return EmbeddedValueNode(embedded=EmbeddedValue(token, value), loc=node.loc)


_default_registry = ValueRegistry()


def embed(value: Any) -> str:
    return _default_registry.embed(value)


def parse_extension(type_defs: str, registry: ValueRegistry | None = None) -> ExtensionDocument:
    return (registry or _default_registry).parse(type_defs)
