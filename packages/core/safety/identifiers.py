"""
Identifier validation for EmbedQL.

SQL cannot bind identifiers as parameters, so every table, column and
tenant schema name that reaches SQL text must pass through here first.
"""

import re

from packages.core.errors import IdentifierRejectedError


# -----------------------------
# Rules
# -----------------------------

# PostgreSQL truncates identifiers beyond NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_LENGTH = 63

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# -----------------------------
# Validation
# -----------------------------


def is_valid_identifier(name: str) -> bool:
    """Return True if `name` is safe to embed as a SQL identifier."""
    return (
        isinstance(name, str)
        and len(name) <= MAX_IDENTIFIER_LENGTH
        and IDENTIFIER_PATTERN.match(name) is not None
    )


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Validate an identifier against the strict charset.

    Args:
        name: The candidate table, column or schema name.
        kind: Human-readable label used in the error message.

    Returns:
        The name unchanged, so calls can be used inline.

    Raises:
        IdentifierRejectedError: If the name is empty, too long, or
            contains characters outside [A-Za-z0-9_].
    """
    if not is_valid_identifier(name):
        raise IdentifierRejectedError(name, kind)
    return name


def validate_tenant(tenant: str | None) -> str:
    """
    Validate a tenant identifier before it is used as a schema name.

    The tenant ends up in the transaction's search_path, a position where
    SQL offers no parameterized identifiers. It is rejected unless it is a
    plain identifier.
    """
    if tenant is None or not tenant.strip():
        raise IdentifierRejectedError("", "tenant")
    return validate_identifier(tenant.strip(), "tenant")
