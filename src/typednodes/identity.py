"""
Identity-based deduplication of parsed nodes.

An external table that is reached twice during parsing (or across parses
sharing one store) becomes a single stored node. The index maps
``(node_type, identity)`` to the key of that node.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from typednodes.errors import IdentityCycleUnresolved

if TYPE_CHECKING:
    from typednodes.host import TableId
    from typednodes.nodes import Key
    from typednodes.store import NodeStore

logger = structlog.get_logger(__name__)

_context_serials = itertools.count(1)


@dataclass(frozen=True, slots=True)
class SyntheticId:
    """Fresh identity for a value the host cannot identify."""

    context: int
    serial: int


type Identity = TableId | SyntheticId


class IdentitySource:
    """Monotonic supply of synthetic identities for one parse context."""

    def __init__(self) -> None:
        self.context = next(_context_serials)
        self._serials = itertools.count(1)

    def next_identity(self) -> SyntheticId:
        return SyntheticId(self.context, next(self._serials))


class _Pending:
    def __repr__(self) -> str:
        return "<pending>"


_PENDING = _Pending()


class IdentityIndex:
    """Map from external identity to the key of the node built for it."""

    def __init__(self, store: NodeStore) -> None:
        self._store = store
        self._entries: dict[tuple[Any, Identity], Key[Any] | _Pending] = {}
        self._anchors: dict[tuple[Any, Identity], Any] = {}

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if entry is not _PENDING)

    def __contains__(self, item: tuple[Any, Identity]) -> bool:
        return self._entries.get(item, _PENDING) is not _PENDING

    def get_key(self, identity: Identity, node_type: Any) -> Key[Any] | None:
        """Key of the finalized node for ``identity``, if any."""
        entry = self._entries.get((node_type, identity))
        if entry is None or entry is _PENDING:
            return None
        return entry

    def is_pending(self, identity: Identity, node_type: Any) -> bool:
        return self._entries.get((node_type, identity)) is _PENDING

    def resolve_or_insert(
        self,
        identity: Identity,
        node_type: Any,
        build: Callable[[], Any],
        anchor: Any = None,
    ) -> Key[Any]:
        """
        Return the key for ``identity``, building and inserting the node once.

        The entry is reserved before ``build`` runs, so a value that reaches
        itself while its node is being built is reported instead of
        recursing forever. A failing build releases the reservation.
        ``anchor`` is kept alive as long as the entry, so an identity derived
        from which object a value is cannot be reused by another object.

        Raises:
            IdentityCycleUnresolved: The identity is already being built.
        """
        entry_key = (node_type, identity)
        entry = self._entries.get(entry_key)
        if entry is _PENDING:
            raise IdentityCycleUnresolved(identity, node_type=node_type)
        if entry is not None:
            logger.debug("identity_reused", node_type=str(node_type), identity=identity, key=entry)
            return entry

        self._entries[entry_key] = _PENDING
        try:
            value = build()
            key = self._store.insert(value, node_type)
        except BaseException:
            del self._entries[entry_key]
            raise
        self._entries[entry_key] = key
        if anchor is not None:
            self._anchors[entry_key] = anchor
        return key
