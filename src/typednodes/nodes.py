"""
Node system domain for typed node declarations.

A node type is a *family*: a direct subclass of ``Node``. Its variants are
subclasses of the family and become frozen dataclasses on definition. Class
keywords on a variant describe how it is parsed and which binding it gets;
``Annotated`` markers on its fields do the same per field.

    class UintExpression(Node):
        pass

    class Constant(UintExpression, untagged=("integer", "number")):
        value: int

    class Add(UintExpression):
        lhs: Annotated[Key[UintExpression], Receiver()]
        rhs: Key[UintExpression]
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, dataclass_transform, runtime_checkable

from typednodes.errors import SchemaError, type_name
from typednodes.host import Shape

if TYPE_CHECKING:
    from typednodes.store import NodeStore

# =============================================================================
# Core Types
# =============================================================================


@dataclass(frozen=True)
class Key[T]:
    """
    Handle to a node of type T inside the store that issued it.

    Keys are plain values: copy them, hash them, keep them in other nodes.
    """

    slot: int
    node_type: Any
    store: int

    def __repr__(self) -> str:
        return f"Key({type_name(self.node_type)}#{self.slot})"


@runtime_checkable
class Evaluable(Protocol):
    """Capability of node values that compute a result from the store."""

    def evaluate(self, nodes: NodeStore) -> Any: ...


# =============================================================================
# Field Markers
# =============================================================================


@dataclass(frozen=True)
class Receiver:
    """Binds the field as the receiver of a method-style binding call."""


@dataclass(frozen=True)
class Variadic:
    """Collects all remaining binding arguments into this (list) field."""


@dataclass(frozen=True)
class ParseWith:
    """Parses the field with ``parser(value, context)`` instead of its type."""

    parser: Callable[[Any, Any], Any]


# =============================================================================
# Declaration Options
# =============================================================================


@dataclass(frozen=True)
class FamilyOptions:
    """Options given as class keywords on a node family."""

    tag_field: str | None = None
    namespace: Any = None


@dataclass(frozen=True)
class VariantOptions:
    """Options given as class keywords on a node variant."""

    tag: str | None = None
    untagged: frozenset[Shape] = frozenset()
    default: bool = False
    skip: bool = False
    skip_method: bool = False
    method: str | None = None
    namespace: Any = None


def _shapes(names: Any) -> frozenset[Shape]:
    if isinstance(names, str | Shape):
        names = (names,)
    try:
        return frozenset(Shape(name) for name in names)
    except ValueError as exc:
        known = ", ".join(shape.value for shape in Shape)
        msg = f"unexpected shape category, expected one of: {known}"
        raise SchemaError(msg) from exc


@dataclass_transform(frozen_default=True)
class Node:
    """Base for node families; subclasses of a family are its variants."""

    _family: ClassVar[type[Node]]
    _variants: ClassVar[list[type[Node]]]
    _family_options: ClassVar[FamilyOptions]
    _variant_options: ClassVar[VariantOptions]

    def __init_subclass__(cls, **options: Any):
        super().__init_subclass__()

        if Node in cls.__bases__:
            cls._family = cls
            cls._variants = []
            try:
                cls._family_options = FamilyOptions(**options)
            except TypeError as exc:
                msg = f"{cls.__name__}: {exc}"
                raise SchemaError(msg) from exc
            return

        family = cls._family
        if family not in cls.__bases__:
            msg = f"{cls.__name__} must subclass its node family {family.__name__} directly"
            raise SchemaError(msg)

        if "untagged" in options:
            options["untagged"] = _shapes(options["untagged"])
        try:
            variant_options = VariantOptions(**options)
        except TypeError as exc:
            msg = f"{cls.__name__}: {exc}"
            raise SchemaError(msg) from exc
        if variant_options.tag is not None and variant_options.untagged:
            msg = f"{cls.__name__} cannot be both tagged and untagged"
            raise SchemaError(msg)

        dataclass(frozen=True, eq=True, repr=True)(cls)
        cls._variant_options = variant_options
        family._variants.append(cls)

    @classmethod
    def is_family(cls) -> bool:
        return cls.__dict__.get("_family") is cls


def node_type_of(value: Any) -> Any:
    """Node type a value is stored under when no node type is given."""
    family = getattr(type(value), "_family", None)
    if family is not None:
        return family
    return type(value)
