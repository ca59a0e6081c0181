"""Schema catalog for EmbedQL - column metadata lookups."""

from .lookup import CatalogMetadataLookup, InMemorySchema, MetadataLookup

__all__ = [
    "CatalogMetadataLookup",
    "InMemorySchema",
    "MetadataLookup",
]
