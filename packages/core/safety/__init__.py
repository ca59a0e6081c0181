"""Safety module for EmbedQL - identifier validation."""

from .identifiers import is_valid_identifier, validate_identifier, validate_tenant

__all__ = [
    "is_valid_identifier",
    "validate_identifier",
    "validate_tenant",
]
