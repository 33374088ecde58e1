"""Parse context: the only path from the dispatch engine into a node store."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from typednodes.config import ParseSettings
from typednodes.dispatch import DispatchEngine
from typednodes.errors import DepthLimitExceeded
from typednodes.host import HostRuntime, PythonHost
from typednodes.identity import IdentitySource
from typednodes.schema import NodeSchema, SchemaRegistry

if TYPE_CHECKING:
    from typednodes.identity import Identity, SyntheticId
    from typednodes.nodes import Key
    from typednodes.store import NodeStore


class ParseContext:
    """
    Parsing session over one node store.

    Owns the synthetic identity counter for values the host cannot
    identify, and the nesting depth of the parse in progress.

    Args:
        nodes: Store the parsed nodes go into.
        host: Accessor for external values (``PythonHost`` by default).
        settings: Parse settings (defaults when omitted).
        schemas: Schema registry or hand-written schemas; defaults to the
            store's registry.
    """

    def __init__(
        self,
        nodes: NodeStore,
        host: HostRuntime | None = None,
        *,
        settings: ParseSettings | None = None,
        schemas: SchemaRegistry | Iterable[NodeSchema] | None = None,
    ) -> None:
        self.nodes = nodes
        self.host = host if host is not None else PythonHost()
        self.settings = settings if settings is not None else ParseSettings()
        if schemas is None:
            schemas = nodes.schemas
        elif not isinstance(schemas, SchemaRegistry):
            schemas = SchemaRegistry(schemas)
        self.schemas = schemas
        self.engine = DispatchEngine(self.schemas, self.settings)
        self.depth = 0
        self._identities = IdentitySource()

    def get_nodes(self) -> NodeStore:
        return self.nodes

    def get_nodes_mut(self) -> NodeStore:
        return self.nodes

    def next_identity(self) -> SyntheticId:
        return self._identities.next_identity()

    def identity_of(self, value: Any) -> Identity:
        """Host identity of ``value``, or a fresh synthetic one."""
        identity = self.host.identity_of(value)
        if identity is None:
            return self.next_identity()
        return identity

    def resolve_or_insert(
        self,
        identity: Identity,
        node_type: Any,
        build: Callable[[], Any],
        anchor: Any = None,
    ) -> Key[Any]:
        return self.nodes.identities.resolve_or_insert(identity, node_type, build, anchor)

    @contextmanager
    def nested(self, node_type: Any) -> Iterator[int]:
        """Track one level of nested resolution."""
        limit = self.settings.max_depth
        if limit is not None and self.depth >= limit:
            raise DepthLimitExceeded(limit, node_type=node_type)
        self.depth += 1
        try:
            yield self.depth
        finally:
            self.depth -= 1

    def parse(self, value: Any, node_type: Any) -> Key[Any]:
        """Parse ``value`` as ``node_type`` into the store and return its key."""
        return self.engine.parse_key(value, node_type, self)

    def parse_node(self, value: Any, node_type: Any) -> Any:
        """Parse ``value`` as ``node_type`` without storing the result."""
        return self.engine.parse_node(value, node_type, self)
