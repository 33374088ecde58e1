"""
Typed arenas and the heterogeneous node store.

Each node type gets one append-only arena. The store routes keys to the
arena of their node type and rejects keys it did not issue.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

import structlog

from typednodes.errors import ForeignOrInvalidHandle, type_name
from typednodes.identity import IdentityIndex
from typednodes.nodes import Key, node_type_of
from typednodes.schema import NodeSchema, SchemaRegistry

if TYPE_CHECKING:
    from typednodes.identity import Identity

logger = structlog.get_logger(__name__)

_store_ids = itertools.count(1)


class TypedArena[T]:
    """Append-only storage for the nodes of one node type."""

    def __init__(self, node_type: Any, store_id: int) -> None:
        self.node_type = node_type
        self.store_id = store_id
        self._values: list[T] = []

    def insert(self, value: T) -> Key[T]:
        key: Key[T] = Key(len(self._values), self.node_type, self.store_id)
        self._values.append(value)
        return key

    def get(self, key: Key[T]) -> T | None:
        """Value behind ``key``, or None if this arena did not issue it."""
        if not isinstance(key, Key):
            return None
        if key.store != self.store_id or key.node_type != self.node_type:
            return None
        if type(key.slot) is not int or not 0 <= key.slot < len(self._values):
            return None
        return self._values[key.slot]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[T]:
        return iter(self._values)

    def items(self) -> Iterator[tuple[Key[T], T]]:
        for slot, value in enumerate(self._values):
            yield Key(slot, self.node_type, self.store_id), value

    def __repr__(self) -> str:
        return f"TypedArena({type_name(self.node_type)}, {len(self)} nodes)"


class NodeStore:
    """
    Registry of typed arenas, one per node type.

    Arenas for the node types of ``schemas`` (node schemas or bare node
    types) exist from construction; any other node type gets its arena on
    first insert. Hand-written schemas are kept in ``schemas`` for parsing.
    ``bounds`` are runtime-checkable protocols every inserted value must
    satisfy.
    """

    def __init__(
        self,
        schemas: Iterable[NodeSchema | Any] = (),
        *,
        bounds: Iterable[type] = (),
    ) -> None:
        self.id = next(_store_ids)
        self.bounds = tuple(bounds)
        self._arenas: dict[Any, TypedArena[Any]] = {}
        self.identities = IdentityIndex(self)
        self.schemas = SchemaRegistry()
        for schema in schemas:
            if isinstance(schema, NodeSchema):
                self.schemas.register(schema)
                self.arena(schema.node_type)
            else:
                self.arena(schema)

    def arena(self, node_type: Any) -> TypedArena[Any]:
        """Arena for ``node_type``, created if missing."""
        arena = self._arenas.get(node_type)
        if arena is None:
            arena = self._arenas[node_type] = TypedArena(node_type, self.id)
            logger.debug("arena_created", store=self.id, node_type=type_name(node_type))
        return arena

    @property
    def node_types(self) -> tuple[Any, ...]:
        return tuple(self._arenas)

    def insert[T](self, value: T, node_type: Any = None) -> Key[T]:
        """
        Store ``value`` and return its key.

        Raises:
            TypeError: The value does not satisfy one of the store's bounds.
        """
        if node_type is None:
            node_type = node_type_of(value)
        for bound in self.bounds:
            if not isinstance(value, bound):
                msg = f"{type(value).__name__} does not implement {bound.__name__}"
                raise TypeError(msg)
        key = self.arena(node_type).insert(value)
        logger.debug("node_inserted", store=self.id, key=key)
        return key

    def find[T](self, key: Key[T]) -> T | None:
        """Value behind ``key``, or None for a key this store did not issue."""
        if not isinstance(key, Key):
            return None
        arena = self._arenas.get(key.node_type)
        if arena is None:
            return None
        return arena.get(key)

    def get[T](self, key: Key[T]) -> T:
        """
        Value behind ``key``.

        Raises:
            ForeignOrInvalidHandle: The key was not issued by this store.
        """
        if not isinstance(key, Key):
            raise ForeignOrInvalidHandle(key, "not a key")
        if key.store != self.id:
            raise ForeignOrInvalidHandle(key, f"issued by store {key.store}, not {self.id}")
        value = self.find(key)
        if value is None and key not in self:
            raise ForeignOrInvalidHandle(key, "no such slot")
        return value  # type: ignore[return-value]

    def get_key(self, identity: Identity, node_type: Any) -> Key[Any] | None:
        """Key already stored for an external identity, if any."""
        return self.identities.get_key(identity, node_type)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, Key) or key.store != self.id:
            return False
        arena = self._arenas.get(key.node_type)
        return arena is not None and type(key.slot) is int and 0 <= key.slot < len(arena)

    def __len__(self) -> int:
        return sum(len(arena) for arena in self._arenas.values())

    def items(self) -> Iterator[tuple[Key[Any], Any]]:
        for arena in self._arenas.values():
            yield from arena.items()

    def values(self) -> Iterator[Any]:
        for arena in self._arenas.values():
            yield from arena

    def __repr__(self) -> str:
        return f"NodeStore(id={self.id}, nodes={len(self)}, types={len(self._arenas)})"
