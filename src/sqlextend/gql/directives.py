from graphql import (
    DirectiveLocation,
    GraphQLArgument,
    GraphQLDirective,
    GraphQLList,
    GraphQLNonNull,
    GraphQLString,
)

# Directives are consumed while extension is merged and are not part of the built schema.
# Arguments which accept embedded values are typed as strings, since placeholders are string
# literals in the type definitions.
GraphQLRequiresDirective = GraphQLDirective(
    name="requires",
    locations=[DirectiveLocation.FIELD_DEFINITION],
    args={
        "columns": GraphQLArgument(GraphQLNonNull(GraphQLList(GraphQLNonNull(GraphQLString))))
    },
    description=(
        "Columns of the parent row which are fetched regardless of the selection, so that the"
        " resolver of the field can use them."
    ),
)

GraphQLSqlQueryDirective = GraphQLDirective(
    name="sqlQuery",
    locations=[DirectiveLocation.FIELD_DEFINITION],
    args={
        "source": GraphQLArgument(
            GraphQLNonNull(GraphQLString), description="Embedded selectable to fetch rows from."
        ),
        "withQueryBuilder": GraphQLArgument(
            GraphQLString,
            description="Embedded callable invoked with query builder and field arguments.",
        ),
    },
    description="Field is resolved by fetching rows from the source.",
)

GraphQLScopeDirective = GraphQLDirective(
    name="scope",
    locations=[
        DirectiveLocation.OBJECT,
        DirectiveLocation.INPUT_OBJECT,
        DirectiveLocation.ENUM,
        DirectiveLocation.FIELD_DEFINITION,
        DirectiveLocation.ARGUMENT_DEFINITION,
    ],
    description="Attaches arbitrary metadata. Accepts any arguments.",
)

GraphQLSqlFieldDirective = GraphQLDirective(
    name="sqlField",
    locations=[DirectiveLocation.FIELD_DEFINITION],
    description="Field of the payload type holds row fetched by the resolver of the parent field.",
)
