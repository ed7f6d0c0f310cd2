import pytest

from sqlextend.fetch import select_rows
from sqlextend.model import Extension, QueryableNode
from sqlextend.schema import SchemaBuilder
from tests.integration.conftest import UserDB, users_table


def user_mutations(context):
    users = context.get_source("User")

    def resolve_create_user(parent, info, input):
        session = info.context["db_session"]
        user = UserDB(name=input["name"], email=input.get("email"), role=input["role"])
        session.add(user)
        session.flush()

        def by_id(query_builder):
            query_builder.where(query_builder.get_table_alias().c.id == user.id)

        return select_rows(info, users, by_id)

    def resolve_rename_user(parent, info, id, name):
        session = info.context["db_session"]
        user = session.get(UserDB, id)
        if user is None:
            return {"user": None, "previousName": None}
        previous_name = user.name
        user.name = name
        session.flush()

        def by_id(query_builder):
            query_builder.where(query_builder.get_table_alias().c.id == id)

        rows = select_rows(info, users, by_id)
        return {"user": rows[0], "previousName": previous_name}

    return Extension(
        """
        input CreateUserInput {
            name: String!
            email: String
            role: UserRoleEnum = MEMBER
        }

        type CreateUserPayload {
            user: User @sqlField
        }

        type RenameUserPayload {
            user: User @sqlField
            previousName: String
        }

        extend type Mutation {
            createUser(input: CreateUserInput!): CreateUserPayload!
            renameUser(id: Int!, name: String!): RenameUserPayload!
        }
        """,
        {
            "Mutation": {
                "createUser": resolve_create_user,
                "renameUser": resolve_rename_user,
            }
        },
    )


@pytest.fixture(scope="module")
def schema():
    return (
        SchemaBuilder()
        .add_node(QueryableNode("User", users_table))
        .extend(user_mutations)
        .build()
    )


def test_mutation_type_is_generated(schema):
    assert schema.mutation_type is not None
    assert list(schema.mutation_type.fields) == ["createUser", "renameUser"]


def test_create_user_selects_only_requested_columns(schema, executor, query_watcher):
    result = executor(
        schema,
        """
        mutation {
            createUser(input: {name: "frank"}) {
                user {
                    name
                }
            }
        }
        """,
    )
    assert not result.errors
    assert result.data == {"createUser": {"user": {"name": "frank"}}}
    assert query_watcher.executed_selects[-1] == (
        "SELECT users_1.name FROM users AS users_1 WHERE users_1.id = ?"
    )


def test_create_user_returns_defaults(schema, executor):
    result = executor(
        schema,
        """
        mutation {
            createUser(input: {name: "grace", email: "grace@example.com", role: ADMIN}) {
                user {
                    name
                    email
                    role
                }
            }
        }
        """,
    )
    assert not result.errors
    assert result.data == {
        "createUser": {
            "user": {"name": "grace", "email": "grace@example.com", "role": "ADMIN"}
        }
    }


def test_mutation_is_not_persisted(schema, executor):
    executor(schema, 'mutation { createUser(input: {name: "heidi"}) { user { id } } }')

    result = executor(schema, "query { userById(id: 6) { name } }")
    assert not result.errors
    assert result.data == {"userById": None}


def test_payload_mapping(schema, executor, query_watcher):
    result = executor(
        schema,
        """
        mutation {
            renameUser(id: 3, name: "caroline") {
                previousName
                user {
                    id
                    name
                }
            }
        }
        """,
    )
    assert not result.errors
    assert result.data == {
        "renameUser": {"previousName": "carol", "user": {"id": 3, "name": "caroline"}}
    }
    assert query_watcher.executed_selects[-1] == (
        "SELECT users_1.id, users_1.name FROM users AS users_1 WHERE users_1.id = ?"
    )


def test_payload_without_row(schema, executor):
    result = executor(schema, 'mutation { renameUser(id: 99, name: "nobody") { user { id } } }')
    assert not result.errors
    assert result.data == {"renameUser": {"user": None}}
