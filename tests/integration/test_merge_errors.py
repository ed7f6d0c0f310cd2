import pytest
from graphql import GraphQLField, GraphQLString, lexicographic_sort_schema, print_schema

from sqlextend._directives import DescriptorExtractor
from sqlextend._graph import SchemaGraph
from sqlextend._merge import ExtensionMerger
from sqlextend.embed import embed, parse_extension
from sqlextend.exceptions import (
    DuplicateFieldDefinitionException,
    GQLBuilderException,
    InvalidDirectiveArgumentException,
    InvalidOperationException,
    TypeNameConflictException,
)
from sqlextend.model import Extension, QueryableNode
from sqlextend.schema import SchemaBuilder
from tests.integration.conftest import posts_table, users_table


def _schema_builder() -> SchemaBuilder:
    return (
        SchemaBuilder()
        .add_node(QueryableNode("User", users_table))
        .add_node(QueryableNode("Post", posts_table))
    )


def _extension(type_defs, resolvers=None):
    def factory(context):
        return Extension(type_defs, resolvers or {})

    return factory


def _descriptor(name, type_defs):
    return DescriptorExtractor(name).extract(parse_extension(type_defs))


class TestConflicts:
    def test_type_name_conflict(self):
        builder = _schema_builder().extend(_extension("type User { nickname: String }"))

        with pytest.raises(TypeNameConflictException, match="'User'"):
            builder.build()

    def test_type_name_conflict_between_extensions(self):
        builder = (
            _schema_builder()
            .extend(_extension("enum Color { RED }"), "first")
            .extend(_extension("enum Color { BLUE }"), "second")
        )

        with pytest.raises(TypeNameConflictException, match="Extension 'second'"):
            builder.build()

    def test_field_defined_by_node(self):
        builder = _schema_builder().extend(_extension("extend type User { name: String }"))

        with pytest.raises(DuplicateFieldDefinitionException, match="'name'"):
            builder.build()

    def test_field_defined_by_other_extension(self):
        builder = (
            _schema_builder()
            .extend(_extension("extend type Query { hello: String }"), "first")
            .extend(_extension("extend type Query { hello: String }"), "second")
        )

        with pytest.raises(DuplicateFieldDefinitionException, match="Extension 'second'"):
            builder.build()

    def test_field_defined_twice_in_extension(self):
        builder = _schema_builder().extend(
            _extension(
                """
                extend type Query { hello: String }
                extend type Query { hello: Int }
                """
            )
        )

        with pytest.raises(DuplicateFieldDefinitionException):
            builder.build()


class TestInvalidDefinitions:
    def test_requires_unknown_column(self):
        builder = _schema_builder().extend(
            _extension('extend type User { label: String @requires(columns: ["nickname"]) }')
        )

        with pytest.raises(InvalidDirectiveArgumentException, match="nickname"):
            builder.build()

    def test_requires_on_type_without_rows(self):
        builder = _schema_builder().extend(
            _extension('extend type Query { label: String @requires(columns: "id") }')
        )

        with pytest.raises(InvalidDirectiveArgumentException, match="row types"):
            builder.build()

    def test_sql_query_should_return_rows(self):
        builder = _schema_builder().extend(
            _extension(
                f"extend type Query {{ label: String @sqlQuery(source: {embed(users_table)}) }}"
            )
        )

        with pytest.raises(InvalidDirectiveArgumentException, match="'@sqlQuery'"):
            builder.build()

    def test_sql_field_on_existing_type(self):
        builder = _schema_builder().extend(
            _extension("extend type Post { author: User @sqlField }")
        )

        with pytest.raises(InvalidDirectiveArgumentException, match="'@sqlField'"):
            builder.build()

    def test_sql_field_should_return_single_row(self):
        builder = _schema_builder().extend(
            _extension(
                """
                type UsersPayload {
                    users: [User!] @sqlField
                }
                """
            )
        )

        with pytest.raises(InvalidDirectiveArgumentException, match="single row type"):
            builder.build()

    def test_unknown_type(self):
        builder = _schema_builder().extend(_extension("extend type Query { label: Label }"))

        with pytest.raises(GQLBuilderException, match="unknown type 'Label'"):
            builder.build()

    def test_unknown_extended_type(self):
        builder = _schema_builder().extend(_extension("extend type Label { text: String }"))

        with pytest.raises(GQLBuilderException, match="type 'Label' does not exist"):
            builder.build()

    def test_output_type_as_argument(self):
        builder = _schema_builder().extend(
            _extension("extend type Query { label(user: User): String }")
        )

        with pytest.raises(GQLBuilderException, match="not input type"):
            builder.build()

    def test_invalid_default_value(self):
        builder = _schema_builder().extend(
            _extension('extend type Query { label(size: Int = "large"): String }')
        )

        with pytest.raises(GQLBuilderException, match="default value"):
            builder.build()

    def test_syntax_error(self):
        builder = _schema_builder().extend(_extension("type {"), "broken")

        with pytest.raises(GQLBuilderException, match="Extension 'broken'"):
            builder.build()

    def test_connection_scope_on_other_type(self):
        builder = _schema_builder().extend(
            _extension("extend type Query { label: String @scope(isConnection: true) }")
        )

        with pytest.raises(GQLBuilderException, match="not a connection type"):
            builder.build()


class TestMergeAtomicity:
    @pytest.fixture()
    def graph(self):
        graph = SchemaGraph()
        graph.add_field("Query", "hello", GraphQLField(GraphQLString))
        return graph

    def test_failed_merge_leaves_graph_untouched(self, graph):
        merger = ExtensionMerger(graph)
        descriptor = _descriptor(
            "failing",
            """
            type Greeting { text: String }
            enum Tone { FORMAL }
            extend type Query { greeting: Greeting }
            extend type Query { hello: String }
            """,
        )

        with pytest.raises(DuplicateFieldDefinitionException):
            merger.merge(descriptor)

        assert not graph.has_type("Greeting")
        assert not graph.has_type("Tone")
        assert list(graph.get_fields("Query")) == ["hello"]

    def test_graph_can_be_extended_after_failed_merge(self, graph):
        merger = ExtensionMerger(graph)
        with pytest.raises(GQLBuilderException):
            merger.merge(_descriptor("failing", "extend type Query { greeting: Greeting }"))

        merger.merge(
            _descriptor(
                "working",
                """
                type Greeting { text: String }
                extend type Query { greeting: Greeting }
                """,
            )
        )

        assert graph.has_type("Greeting")
        assert list(graph.get_fields("Query")) == ["hello", "greeting"]

    def test_merge_into_finalized_graph(self, graph):
        graph.finalize()

        with pytest.raises(InvalidOperationException):
            ExtensionMerger(graph).merge(
                _descriptor("late", "extend type Query { greeting: String }")
            )


class TestBuild:
    def test_extension_order_does_not_matter(self):
        greeting = _extension(
            """
            type Greeting { text: String }
            extend type Query { greeting: Greeting }
            """
        )
        farewell = _extension("extend type Query { farewell: String }")

        first = _schema_builder().extend(greeting, "greeting").extend(farewell, "farewell").build()
        second = _schema_builder().extend(farewell, "farewell").extend(greeting, "greeting").build()

        assert print_schema(lexicographic_sort_schema(first)) == print_schema(
            lexicographic_sort_schema(second)
        )

    def test_factory_is_called_once_per_build(self):
        calls = []

        def counting(context):
            calls.append(context)
            return Extension("extend type Query { hello: String }")

        builder = _schema_builder().extend(counting)
        builder.build()
        builder.build()

        assert len(calls) == 2
        assert set(calls[0].nodes) == {"User", "Post"}

    def test_builds_are_independent(self):
        builder = _schema_builder().extend(
            _extension('extend type User { label: String @requires(columns: "name") }')
        )

        first = builder.build()
        second = builder.build()

        assert first.get_type("User") is not second.get_type("User")
        assert "label" in second.get_type("User").fields

    def test_duplicate_extension_name(self):
        builder = _schema_builder().extend(_extension("extend type Query { a: String }"), "same")

        with pytest.raises(ValueError):
            builder.extend(_extension("extend type Query { b: String }"), "same")

    def test_duplicate_node(self):
        with pytest.raises(ValueError):
            _schema_builder().add_node(QueryableNode("User", users_table))
