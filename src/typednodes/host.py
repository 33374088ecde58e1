"""
Host runtime access.

The dispatch engine and the binding generator never touch external values
directly; they go through a ``HostRuntime``. ``PythonHost`` is the runtime
shipped with the package: its tables are mappings, lists, tuples and the
``Table`` objects returned by generated bindings.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Shape(Enum):
    """Shape category of an external value."""

    NIL = "nil"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"
    TABLE = "table"
    FUNCTION = "function"
    USERDATA = "userdata"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class TableId:
    """Identity of one table object, independent of its contents."""

    value: int


class Table:
    """
    Aggregate value produced by generated bindings.

    Holds named fields and a sequence part, like a script table. Attribute
    access falls through to the bindings of the namespace the table was
    created for, so results chain: ``lib.Uint.add(1, 2).equal(3)``.
    """

    __slots__ = ("_fields", "_items", "_namespace")

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        items: Sequence[Any] = (),
        namespace: Any = None,
    ) -> None:
        self._fields = dict(fields or {})
        self._items = tuple(items)
        self._namespace = namespace

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self._items[key]
        return self._fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or self._namespace is None:
            raise AttributeError(name)
        return self._namespace.bind_method(name, self)

    def __repr__(self) -> str:
        parts = [repr(item) for item in self._items]
        parts.extend(f"{key}={value!r}" for key, value in self._fields.items())
        owner = getattr(self._namespace, "generic_key", None)
        prefix = f"{owner}:" if owner else ""
        return f"{prefix}{{{', '.join(parts)}}}"


@runtime_checkable
class HostRuntime(Protocol):
    """Accessor for the external runtime's values."""

    def shape_of(self, value: Any) -> Shape: ...

    def get_field(self, value: Any, name: str) -> Any: ...

    def sequence(self, value: Any) -> Sequence[Any]: ...

    def items(self, value: Any) -> Iterator[tuple[Any, Any]]: ...

    def identity_of(self, value: Any) -> TableId | None: ...

    def make_table(
        self,
        fields: Mapping[str, Any],
        items: Sequence[Any] = (),
        namespace: Any = None,
    ) -> Any: ...

    def make_function(
        self,
        name: str,
        call: Callable[..., Any],
        signature: inspect.Signature | None = None,
        qualname: str | None = None,
    ) -> Callable[..., Any]: ...


class PythonHost:
    """
    Host runtime backed by plain Python values.

    Tables are ``Table`` objects, mappings, lists and tuples; ``None`` is nil.
    Every table handed an identity is kept alive by the host, so ``id()``
    values are never recycled while the host is in use.
    """

    def __init__(self) -> None:
        self._pinned: dict[int, Any] = {}

    def shape_of(self, value: Any) -> Shape:
        if value is None:
            return Shape.NIL
        if isinstance(value, bool):
            return Shape.BOOLEAN
        if isinstance(value, int):
            return Shape.INTEGER
        if isinstance(value, float):
            return Shape.NUMBER
        if isinstance(value, str):
            return Shape.STRING
        if isinstance(value, Table | Mapping | list | tuple):
            return Shape.TABLE
        if callable(value):
            return Shape.FUNCTION
        return Shape.USERDATA

    def get_field(self, value: Any, name: str) -> Any:
        if isinstance(value, Table):
            return value._fields.get(name)
        if isinstance(value, Mapping):
            return value.get(name)
        return None

    def sequence(self, value: Any) -> Sequence[Any]:
        if isinstance(value, Table):
            return value._items
        if isinstance(value, list | tuple):
            return value
        return ()

    def items(self, value: Any) -> Iterator[tuple[Any, Any]]:
        if isinstance(value, Table):
            yield from enumerate(value._items)
            yield from value._fields.items()
        elif isinstance(value, Mapping):
            yield from value.items()
        elif isinstance(value, list | tuple):
            yield from enumerate(value)

    def identity_of(self, value: Any) -> TableId | None:
        if self.shape_of(value) is not Shape.TABLE:
            return None
        key = id(value)
        self._pinned.setdefault(key, value)
        return TableId(key)

    def make_table(
        self,
        fields: Mapping[str, Any],
        items: Sequence[Any] = (),
        namespace: Any = None,
    ) -> Table:
        return Table(fields, items, namespace)

    def make_function(
        self,
        name: str,
        call: Callable[..., Any],
        signature: inspect.Signature | None = None,
        qualname: str | None = None,
    ) -> Callable[..., Any]:
        def binding(*args: Any) -> Any:
            if signature is not None:
                try:
                    signature.bind(*args)
                except TypeError as exc:
                    msg = f"{qualname or name}(): {exc}"
                    raise TypeError(msg) from None
            return call(*args)

        binding.__name__ = name
        binding.__qualname__ = qualname or name
        if signature is not None:
            binding.__signature__ = signature  # type: ignore[attr-defined]
        return binding
