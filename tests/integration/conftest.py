from __future__ import annotations

import enum
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import pytest
from graphql import ExecutionResult, GraphQLSchema, graphql_sync
from sqlalchemy import JSON, Connection, Enum, ForeignKey, String, create_engine, event
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.future import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from sqlextend.types import TypedResolveContext

if TYPE_CHECKING:

    class SessionFactory(sessionmaker):
        def begin(self) -> Session:
            ...

        def __call__(self) -> Session:
            ...

else:
    SessionFactory = sessionmaker


class Base(DeclarativeBase):
    pass


class UserRole(enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


class UserDB(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(200))
    bio: Mapped[str | None]
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.MEMBER)
    settings: Mapped[dict | None] = mapped_column(JSON)

    posts: Mapped[list[PostDB]] = relationship(back_populates="user")


class PostDB(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey(UserDB.id))
    title: Mapped[str] = mapped_column(String(200))
    published: Mapped[bool]

    user: Mapped[UserDB] = relationship(back_populates="posts")


users_table = UserDB.__table__
posts_table = PostDB.__table__


@pytest.fixture(scope="session")
def database_engine(tmp_path_factory) -> Engine:
    db_path = tmp_path_factory.mktemp("db").joinpath("test.db")
    connection_string = f"sqlite:///{db_path}"
    return create_engine(connection_string)


@pytest.fixture(scope="session", autouse=True)
def session_factory(database_engine) -> SessionFactory:
    Base.metadata.create_all(bind=database_engine)
    return SessionFactory(bind=database_engine, future=True)


@pytest.fixture(scope="session", autouse=True)
def insert_data(session_factory):
    with session_factory() as session:
        alice = UserDB(
            name="alice",
            email="alice@example.com",
            bio="Writes SQL",
            role=UserRole.ADMIN,
            settings={"theme": "dark"},
        )
        bob = UserDB(name="bob")
        carol = UserDB(name="carol", email="carol@example.com")
        dave = UserDB(name="dave", email="dave@example.com")
        erin = UserDB(name="erin", role=UserRole.ADMIN)

        session.add_all([alice, bob, carol, dave, erin])
        session.commit()

        session.add_all(
            [
                PostDB(user_id=alice.id, title="Joins explained", published=True),
                PostDB(user_id=alice.id, title="Window functions", published=True),
                PostDB(user_id=alice.id, title="Draft on indexes", published=False),
                PostDB(user_id=bob.id, title="Hello world", published=True),
            ]
        )
        session.commit()


@pytest.fixture()
def executor(session_factory):
    def executor(
        schema: GraphQLSchema,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        # changes made by mutations are never persisted, so every test sees the same data
        with session_factory() as session:
            try:
                return graphql_sync(
                    schema,
                    query,
                    variable_values=variables,
                    context_value=TypedResolveContext(db_session=session),
                )
            finally:
                session.rollback()

    return executor


@pytest.fixture()
def query_watcher(database_engine):
    watcher = _QueryWatcher()
    event.listen(database_engine, "before_cursor_execute", watcher.on_before_cursor_execute)
    yield watcher
    event.remove(database_engine, "before_cursor_execute", watcher.on_before_cursor_execute)


class _QueryWatcher:
    def __init__(self):
        self._executed: list[tuple[str, Any]] = []

    @property
    def executed_queries(self) -> Sequence[str]:
        return [query for query, _ in self._executed]

    @property
    def executed_queries_with_args(self) -> Sequence[tuple[str, Any]]:
        return self._executed

    @property
    def executed_selects(self) -> Sequence[str]:
        return [query for query, _ in self._executed if query.startswith("SELECT")]

    def on_before_cursor_execute(
        self,
        conn: Connection,
        cursor: DBAPICursor,
        statement: str,
        parameters: Any,
        context: ExecutionContext | None,
        executemany: bool,
    ):
        statement = re.sub(r"\s+", " ", statement)
        self._executed.append((statement, parameters))
