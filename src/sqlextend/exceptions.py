class GQLBuilderException(Exception):
    """
    Exception raised when building schema
    """


class InvalidOperationException(Exception):
    """
    State of the class does not allow performing requested operation
    """


class UnknownDirectiveException(GQLBuilderException):
    """
    Extension uses directive outside of supported vocabulary
    """


class InvalidDirectiveArgumentException(GQLBuilderException):
    """
    Directive argument has unexpected shape or directive is used on unsupported location
    """


class TypeNameConflictException(GQLBuilderException):
    """
    Extension defines type whose name is already taken
    """


class DuplicateFieldDefinitionException(GQLBuilderException):
    """
    Field with the same name is already defined on the type
    """


class MalformedEmbedSiteException(GQLBuilderException):
    """
    Embedded value placeholder is used where it cannot be substituted
    """


class UnresolvedPlaceholderException(InvalidOperationException):
    """
    Placeholder found in the document without registered value. Indicates defect in embedding.
    """


class PaginationException(ValueError):
    """
    Pagination arguments cannot be applied
    """


class InvalidCursorException(PaginationException):
    """
    Cursor cannot be decoded for the current ordering
    """


class ConflictingPaginationArgumentsException(PaginationException):
    """
    Pagination arguments which cannot be combined were provided
    """
