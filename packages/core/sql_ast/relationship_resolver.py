"""
Relationship Resolver for EmbedQL.

Infers how an embedded table relates to its parent from naming
conventions checked against live schema metadata:

- parent has `{related_singular}_id`  -> many-to-one
- related has `{parent_singular}_id`  -> one-to-many

Singularization is a naive suffix rule. Irregular plurals such as
"people" or "statuses" resolve to the wrong column name and surface as
UnresolvableRelationshipError.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from packages.core.errors import UnresolvableRelationshipError
from packages.core.schema_catalog.lookup import MetadataLookup

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_KEY = "id"


# -----------------------------
# Data structures
# -----------------------------


class Cardinality(str, Enum):
    """How many related rows an embed yields per parent row."""

    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"


@dataclass(frozen=True)
class RelationshipDescriptor:
    """
    Resolved join metadata for one embed.

    `foreign_key` lives on the owning table and references
    `referenced_key` on the other table:

        MANY_TO_ONE: parent.foreign_key  -> related.referenced_key
        ONE_TO_MANY: related.foreign_key -> parent.referenced_key
    """

    parent_table: str
    related_table: str
    cardinality: Cardinality
    foreign_key: str
    referenced_key: str

    @property
    def is_many_to_one(self) -> bool:
        return self.cardinality == Cardinality.MANY_TO_ONE

    @property
    def owning_table(self) -> str:
        """The table holding the foreign key column."""
        return self.parent_table if self.is_many_to_one else self.related_table


def singularize(name: str) -> str:
    """Naive singular form of a plural table name."""
    if name.endswith("ies"):
        return name[: -len("ies")] + "y"
    if name.endswith("s"):
        return name[: -len("s")]
    return name


# -----------------------------
# Cache
# -----------------------------

CacheKey = tuple[str, str]


class RelationshipCache:
    """
    Thread-safe cache of resolved relationships keyed by (parent, related).

    Concurrent misses on the same key are serialized on a per-key lock so
    the metadata queries for a key run at most once. Failed resolutions
    are not cached.
    """

    def __init__(self):
        self._entries: dict[CacheKey, RelationshipDescriptor] = {}
        self._key_locks: dict[CacheKey, threading.Lock] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        key: CacheKey,
        factory: Callable[[], RelationshipDescriptor],
    ) -> RelationshipDescriptor:
        descriptor = self._entries.get(key)
        if descriptor is not None:
            return descriptor

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        try:
            with key_lock:
                descriptor = self._entries.get(key)
                if descriptor is None:
                    descriptor = factory()
                    self._entries[key] = descriptor
        finally:
            # Stored entries are served lock-free, so the key lock is only
            # needed while a computation is in flight
            with self._lock:
                if self._key_locks.get(key) is key_lock:
                    del self._key_locks[key]
        return descriptor

    def __len__(self) -> int:
        return len(self._entries)


# -----------------------------
# Resolver
# -----------------------------


class RelationshipResolver:
    """
    Resolves the relationship between a parent table and an embedded table.

    Uses a MetadataLookup to test for foreign-key-shaped columns and
    caches every successful resolution.
    """

    def __init__(
        self,
        lookup: MetadataLookup,
        cache: RelationshipCache | None = None,
        primary_key: str = DEFAULT_PRIMARY_KEY,
    ):
        """
        Initialize the resolver.

        Args:
            lookup: Column-existence capability for the current schema.
            cache: Shared relationship cache. A private cache is created
                   if not provided.
            primary_key: Name of the primary key column on every table.
        """
        self._lookup = lookup
        self._cache = cache if cache is not None else RelationshipCache()
        self._primary_key = primary_key

    def resolve(self, parent: str, related: str) -> RelationshipDescriptor:
        """
        Resolve how `related` is joined to `parent`.

        Raises:
            UnresolvableRelationshipError: If neither table holds a foreign
                key to the other.
            MetadataLookupError: If the schema catalog cannot be queried.
        """
        return self._cache.get_or_create(
            (parent, related),
            lambda: self._infer(parent, related),
        )

    # -------------------------
    # Helpers
    # -------------------------

    def _infer(self, parent: str, related: str) -> RelationshipDescriptor:
        many_to_one_fk = f"{singularize(related)}_id"
        one_to_many_fk = f"{singularize(parent)}_id"

        if self._lookup.column_exists(parent, many_to_one_fk):
            descriptor = RelationshipDescriptor(
                parent_table=parent,
                related_table=related,
                cardinality=Cardinality.MANY_TO_ONE,
                foreign_key=many_to_one_fk,
                referenced_key=self._primary_key,
            )
        elif self._lookup.column_exists(related, one_to_many_fk):
            descriptor = RelationshipDescriptor(
                parent_table=parent,
                related_table=related,
                cardinality=Cardinality.ONE_TO_MANY,
                foreign_key=one_to_many_fk,
                referenced_key=self._primary_key,
            )
        else:
            raise UnresolvableRelationshipError(
                parent,
                related,
                f"expected '{parent}.{many_to_one_fk}' or '{related}.{one_to_many_fk}'",
            )

        logger.debug(
            f"Resolved {parent} -> {related} as {descriptor.cardinality.value} "
            f"via {descriptor.owning_table}.{descriptor.foreign_key}"
        )
        return descriptor
