"""
Compile errors for EmbedQL.

Every recognized-but-invalid request input maps to exactly one of these,
so callers can translate them into client-facing responses.
"""


# -----------------------------
# Base
# -----------------------------


class CompileError(Exception):
    """Base class for all errors raised while compiling a request."""

    pass


# -----------------------------
# Grammar & Identifiers
# -----------------------------


class SelectParseError(CompileError):
    """Raised when a select expression is malformed."""

    def __init__(self, message: str, expression: str, position: int):
        self.expression = expression
        self.position = position
        super().__init__(f"{message} at position {position} in select '{expression}'")


class IdentifierRejectedError(CompileError):
    """Raised when an identifier fails charset validation."""

    def __init__(self, identifier: str, kind: str = "identifier"):
        self.identifier = identifier
        self.kind = kind
        super().__init__(f"Invalid {kind} '{identifier}'")


class UnsupportedSelectionError(CompileError):
    """Raised when the target SQL dialect cannot express a selection."""

    pass


# -----------------------------
# Relationships
# -----------------------------


class UnresolvableRelationshipError(CompileError):
    """Raised when no foreign key links two tables."""

    def __init__(self, parent: str, related: str, detail: str = ""):
        self.parent = parent
        self.related = related
        message = f"No relationship found between '{parent}' and '{related}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MetadataLookupError(CompileError):
    """Raised when the schema catalog cannot be queried."""

    pass


# -----------------------------
# Request Parameters
# -----------------------------


class UnsupportedOperatorError(CompileError):
    """Raised for an unknown filter operator or a malformed filter value."""

    def __init__(self, column: str, value: str, detail: str = ""):
        self.column = column
        self.value = value
        message = f"Unsupported filter '{column}={value}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidPaginationError(CompileError):
    """Raised when limit or offset is not a non-negative integer."""

    def __init__(self, name: str, value: str):
        self.name = name
        self.value = value
        super().__init__(f"'{name}' must be a non-negative integer, got '{value}'")
