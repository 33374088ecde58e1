"""
Type system domain for field type representation.

This module defines the runtime representation of node field types used by
the schema, the dispatch engine and the binding generator. It uses concrete
types rather than generic wrappers to provide clear, self-documenting type
definitions.
"""

from __future__ import annotations

import functools
import operator
import types
from dataclasses import dataclass
from typing import Any, ClassVar, dataclass_transform, get_args, get_origin

from typednodes.errors import type_name

# =============================================================================
# Type Definition Base
# =============================================================================


@dataclass_transform(frozen_default=True)
class TypeDef:
    """Field type understood by the dispatch engine, registered by kind."""

    kind: ClassVar[str]
    kinds: ClassVar[dict[str, type[TypeDef]]] = {}

    def __init_subclass__(cls, tag: str | None = None, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        dataclass(frozen=True)(cls)
        cls.kind = tag or cls.__name__.lower().removesuffix("type")

        registered = TypeDef.kinds.setdefault(cls.kind, cls)
        if registered is not cls:
            msg = f"type kind {cls.kind!r} is taken by {registered.__name__}"
            raise ValueError(msg)

    def accepts_nil(self) -> bool:
        """Whether a missing or nil value is a valid value of this type."""
        return False

    def describe(self) -> str:
        """Short description used in error messages."""
        return self.kind


# =============================================================================
# Primitive Types (Concrete)
# =============================================================================


class IntType(TypeDef, tag="int"):
    """Integer type."""

    def describe(self) -> str:
        return "an integer"


class FloatType(TypeDef, tag="float"):
    """Floating point type. Integers are accepted and widened."""

    def describe(self) -> str:
        return "a number"


class StrType(TypeDef, tag="str"):
    """String type."""

    def describe(self) -> str:
        return "a string"


class BoolType(TypeDef, tag="bool"):
    """Boolean type."""

    def describe(self) -> str:
        return "a boolean"


class NoneType(TypeDef, tag="none"):
    """None/nil type."""

    def accepts_nil(self) -> bool:
        return True

    def describe(self) -> str:
        return "nil"


class AnyType(TypeDef, tag="any"):
    """Any external value, passed through unconverted."""

    def accepts_nil(self) -> bool:
        return True

    def describe(self) -> str:
        return "any value"


# =============================================================================
# Container Types (Concrete)
# =============================================================================


class ListType(TypeDef, tag="list"):
    """
    List type with element type, read from a table's sequence part.

    Example: list[int] → ListType(element=IntType())
    """

    element: TypeDef

    def describe(self) -> str:
        return "a table"


class DictType(TypeDef, tag="dict"):
    """
    Dictionary type with key and value types, read from all table pairs.

    Example: dict[str, int] → DictType(key=StrType(), value=IntType())
    """

    key: TypeDef
    value: TypeDef

    def describe(self) -> str:
        return "a table"


class TupleType(TypeDef, tag="tuple"):
    """
    Fixed-length heterogeneous tuple type, read positionally.

    Examples:
        tuple[int, str] → TupleType(elements=(IntType(), StrType()))
    """

    elements: tuple[TypeDef, ...]

    def describe(self) -> str:
        return f"a table of length {len(self.elements)}"


class LiteralType(TypeDef, tag="literal"):
    """
    Literal type representing enumeration of values.

    Examples:
        Literal["+", "-"] → LiteralType(values=("+", "-"))
    """

    values: tuple[str | int | bool, ...]

    def describe(self) -> str:
        return "one of " + ", ".join(repr(value) for value in self.values)


# =============================================================================
# Domain Types
# =============================================================================


class KeyType(TypeDef, tag="key"):
    """
    Reference to a stored node of another node type.

    The value is parsed into the store with identity deduplication and
    replaced by its handle.

    Example: Key[UintExpression] → KeyType(target=UintExpression)
    """

    target: Any

    def describe(self) -> str:
        return "a table"


class NodeType(TypeDef, tag="node"):
    """
    Node value held inline in its parent rather than in the store.

    Example: a field annotated with a node family, value: UintExpression
    """

    target: Any

    def describe(self) -> str:
        return f"a {type_name(self.target)} value"


class UnionType(TypeDef, tag="union"):
    """
    Union of multiple types, tried in declaration order.

    Example: int | None → UnionType(options=(IntType(), NoneType()))
    """

    options: tuple[TypeDef, ...]

    def accepts_nil(self) -> bool:
        return any(option.accepts_nil() for option in self.options)

    def describe(self) -> str:
        return " or ".join(option.describe() for option in self.options)


class TypeParameter(TypeDef, tag="typeparam"):
    """
    Unbound type parameter of a generic node family.

    Only appears in schemas of unparameterized generic families; such a
    schema cannot be used for parsing.
    """

    name: str


# =============================================================================
# Type Parameter Substitution
# =============================================================================


def substitute_type_params(type_expr: Any, substitutions: dict[Any, Any]) -> Any:
    """
    Replace type parameters in ``type_expr`` with their bound arguments.

    Used to turn ``With[T]`` field hints into ``With[Uint]`` ones, and to
    resolve namespace options such as ``namespace=List[T]``.
    """
    if type_expr in substitutions:
        return substitutions[type_expr]

    origin = get_origin(type_expr)
    arguments = get_args(type_expr)
    if origin is None or not arguments:
        return type_expr

    replaced = [substitute_type_params(argument, substitutions) for argument in arguments]
    # X | Y unions cannot be rebuilt by subscripting their origin
    if isinstance(type_expr, types.UnionType):
        return functools.reduce(operator.or_, replaced)
    return origin[tuple(replaced)]
