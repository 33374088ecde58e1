"""
Error hierarchy for node storage, parsing and binding generation.

Parse errors carry the node type, the variant attempted and the field being
read when those are known, plus a location path that grows as the error
propagates out of nested resolution.
"""

from __future__ import annotations

from typing import Any, get_args, get_origin


class TypedNodesError(Exception):
    """Base for all errors raised by typednodes."""


class SchemaError(TypedNodesError, TypeError):
    """A node declaration or hand-written schema is malformed."""


class BindingError(TypedNodesError):
    """A generated binding was used in a way the module does not describe."""


class ForeignOrInvalidHandle(TypedNodesError, LookupError):
    """A key was looked up in a store that did not issue it."""

    def __init__(self, key: Any, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"{key!r} is not valid in this store: {reason}")


def type_name(node_type: Any) -> str:
    """Human-readable name for a node type identifier: ``Maybe[Uint]``."""
    origin = get_origin(node_type)
    args = get_args(node_type)
    if origin is not None and args:
        return f"{type_name(origin)}[{', '.join(type_name(arg) for arg in args)}]"
    name = getattr(node_type, "__name__", None)
    if isinstance(name, str):
        return name
    return str(node_type)


class ParseError(TypedNodesError):
    """
    Failure to turn an external value into a node.

    Attributes:
        node_type: Node type being parsed, if known.
        variant: Name of the variant attempted, if one was selected.
        field: Name of the field being read, if any.
        path: Location of the failure relative to the top-level value,
            outermost first (field names and sequence indices).
    """

    def __init__(
        self,
        message: str,
        *,
        node_type: Any = None,
        variant: str | None = None,
        field: str | None = None,
    ) -> None:
        self.message = message
        self.node_type = node_type
        self.variant = variant
        self.field = field
        self.path: list[str | int] = []
        super().__init__(message)

    def add_context(self, location: str | int) -> None:
        """Record one more enclosing location (field name or index)."""
        self.path.insert(0, location)

    @property
    def location(self) -> str:
        parts: list[str] = []
        for item in self.path:
            if isinstance(item, int):
                parts.append(f"[{item}]")
            elif parts:
                parts.append(f".{item}")
            else:
                parts.append(item)
        return "".join(parts)

    def __str__(self) -> str:
        subject = []
        if self.node_type is not None:
            subject.append(type_name(self.node_type))
        if self.variant is not None:
            subject.append(self.variant)
        if self.field is not None:
            subject.append(self.field)
        text = self.message
        if subject:
            text = f"{'.'.join(subject)}: {text}"
        if self.path:
            text = f"in {self.location}, {text}"
        return text


class UnknownDiscriminant(ParseError):
    """The discriminant field is missing or names no variant."""

    def __init__(self, discriminant: str | None, expected: tuple[str, ...], **context: Any) -> None:
        self.discriminant = discriminant
        self.expected = expected
        if discriminant is None:
            shown = "missing discriminant"
        else:
            shown = f'unexpected variant "{discriminant}"'
        if expected:
            names = ", ".join(f'"{name}"' for name in expected)
            msg = f"{shown}, expected one of {names}"
        else:
            msg = f"{shown}, none were expected"
        super().__init__(msg, **context)


class NoMatchingShape(ParseError):
    """No untagged variant accepts the value's shape category."""

    def __init__(self, shape: Any, expected: tuple[Any, ...], **context: Any) -> None:
        self.shape = shape
        self.expected = expected
        if not expected:
            wanted = "no attempt to parse any value"
        elif len(expected) == 1:
            wanted = str(expected[0])
        else:
            wanted = "one of: " + ", ".join(str(item) for item in expected)
        super().__init__(f"unexpected {shape}, expected {wanted}", **context)


class MissingField(ParseError):
    """A required field is absent from the value."""

    def __init__(self, **context: Any) -> None:
        super().__init__("missing required field", **context)


class FieldShapeMismatch(ParseError):
    """A field value has the wrong shape for its declared type."""

    def __init__(self, shape: Any, expected: str, **context: Any) -> None:
        self.shape = shape
        self.expected = expected
        super().__init__(f"unexpected {shape}, expected {expected}", **context)


class IdentityCycleUnresolved(ParseError):
    """A value was reached again while its own node was still being built."""

    def __init__(self, identity: Any, **context: Any) -> None:
        self.identity = identity
        super().__init__(f"{identity!r} refers to itself before it is complete", **context)


class DepthLimitExceeded(ParseError):
    """Nested resolution went deeper than the configured limit."""

    def __init__(self, limit: int, **context: Any) -> None:
        self.limit = limit
        super().__init__(f"nesting deeper than {limit} levels", **context)
