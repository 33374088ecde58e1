"""
Binding generation from node schemas.

A ``Module`` is an inert description of construction functions, grouped by
namespace. It is built from the same schemas the dispatch engine parses
with, so every value a binding returns parses back into the node it
describes. ``Module.load`` turns the description into callables of a host
runtime; ``typednodes.lua.render_lua`` turns it into Lua source.

    module = Module()
    module.generate(UintExpression)
    lib = module.load()
    value = lib.UintExpression.add(1, 2).equal(3)
"""

from __future__ import annotations

import functools
import inspect
import keyword
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from typednodes.config import ParseSettings
from typednodes.errors import BindingError, type_name
from typednodes.host import HostRuntime, PythonHost, Shape
from typednodes.schema import NodeSchema, SchemaRegistry, VariantSchema, is_node_type
from typednodes.types import KeyType, ListType, NodeType, TypeDef, UnionType

logger = structlog.get_logger(__name__)


def python_name(name: str) -> str:
    """Name usable as a Python attribute or parameter."""
    return f"{name}_" if keyword.iskeyword(name) else name


# =============================================================================
# Module Description
# =============================================================================


@dataclass(frozen=True)
class TypeSignature:
    """Namespace a node type's bindings live in, with its type arguments."""

    name: str
    generics: tuple[TypeSignature, ...] = ()

    @property
    def generic_key(self) -> str:
        """``Maybe(Uint)`` for generic instances, the plain name otherwise."""
        if not self.generics:
            return self.name
        return f"{self.name}({','.join(g.generic_key for g in self.generics)})"

    def __str__(self) -> str:
        return self.generic_key


@dataclass(frozen=True)
class Method:
    """
    One construction function.

    ``fields`` are the variant's fields in declared order. The receiver is
    bound as the implicit target of a method-style call, every other field
    except the variadic one is a positional parameter, and the variadic field
    collects the remaining arguments. Tagged methods build a table of named
    fields plus the discriminant; positional methods build the value the
    untagged rule reads back.
    """

    variant: str
    result: TypeSignature
    fields: tuple[str, ...] = ()
    receiver: str | None = None
    variadic: str | None = None
    tag: tuple[str, str] | None = None
    positional: bool = False
    untagged: frozenset[Shape] = frozenset()

    @property
    def parameters(self) -> tuple[str, ...]:
        return tuple(name for name in self.fields if name not in (self.receiver, self.variadic))

    @property
    def arguments(self) -> tuple[str, ...]:
        """Fixed arguments in call order, the receiver first."""
        if self.receiver is None:
            return self.parameters
        return (self.receiver, *self.parameters)

    @property
    def is_static(self) -> bool:
        return self.receiver is None

    def signature(self) -> inspect.Signature:
        parameters = [
            inspect.Parameter(python_name(name), inspect.Parameter.POSITIONAL_ONLY)
            for name in self.arguments
        ]
        if self.variadic is not None:
            parameters.append(
                inspect.Parameter(python_name(self.variadic), inspect.Parameter.VAR_POSITIONAL)
            )
        return inspect.Signature(parameters)

    def build(self, values: Mapping[str, Any], host: HostRuntime, namespace: Any) -> Any:
        """Value this method returns for the given field values."""
        if self.positional:
            items = [values.get(name) for name in self.fields]
            if len(items) == 1:
                return items[0]
            if not items and Shape.TABLE not in self.untagged and Shape.NIL in self.untagged:
                return None
            return host.make_table({}, items, namespace)

        fields = {name: values.get(name) for name in self.fields}
        if self.tag is not None:
            tag_field, tag = self.tag
            fields[tag_field] = tag
        return host.make_table(fields, (), namespace)


@dataclass
class MethodTable:
    """Methods of one namespace and of each of its generic instances."""

    name: str
    methods: dict[str, Method] = field(default_factory=dict)
    generic_variants: dict[str, dict[str, Method]] = field(default_factory=dict)

    def instance(self, signature: TypeSignature) -> dict[str, Method]:
        if not signature.generics:
            return self.methods
        return self.generic_variants.setdefault(signature.generic_key, {})


class Module:
    """
    Description of the bindings for a set of node types.

    Args:
        schemas: Registry the node schemas are looked up in.
        settings: Supplies the default discriminant field name.
    """

    def __init__(
        self,
        schemas: SchemaRegistry | None = None,
        settings: ParseSettings | None = None,
    ) -> None:
        self.schemas = schemas if schemas is not None else SchemaRegistry()
        self.settings = settings if settings is not None else ParseSettings()
        self._tables: dict[str, MethodTable] = {}
        self._visited: set[Any] = set()

    @property
    def namespaces(self) -> dict[str, MethodTable]:
        return dict(sorted(self._tables.items()))

    def signature_of(self, node_type: Any) -> TypeSignature:
        """Namespace the bindings of ``node_type`` belong to."""
        if not is_node_type(node_type) and node_type not in self.schemas:
            return TypeSignature(type_name(node_type))
        schema = self.schemas.get(node_type)
        generics = tuple(self.signature_of(arg) for arg in schema.generics)
        if isinstance(schema.namespace, str):
            return TypeSignature(schema.namespace, generics)
        if schema.namespace is not None:
            return self.signature_of(schema.namespace)
        return TypeSignature(schema.display_name, generics)

    def visit_type(self, node_type: Any) -> bool:
        """Mark ``node_type`` as generated; False if it already was."""
        if node_type in self._visited:
            return False
        self._visited.add(node_type)
        signature = self.signature_of(node_type)
        table = self._tables.setdefault(signature.name, MethodTable(signature.name))
        table.instance(signature)
        return True

    def add_method(self, signature: TypeSignature, name: str, method: Method) -> None:
        table = self._tables.setdefault(signature.name, MethodTable(signature.name))
        methods = table.instance(signature)
        existing = methods.get(name)
        if existing is not None and existing != method:
            logger.warning(
                "binding_replaced",
                namespace=signature.generic_key,
                method=name,
                previous=existing.variant,
                variant=method.variant,
            )
        methods[name] = method

    def generate(self, node_type: Any) -> None:
        """
        Describe the bindings of ``node_type``.

        Also generates every node type its bindings refer to: namespaces the
        variants attach to, the family's own namespace override, its type
        arguments and the node types of its fields.
        """
        if not self.visit_type(node_type):
            return
        schema = self.schemas.get(node_type)
        signature = self.signature_of(node_type)

        if schema.namespace is not None and not isinstance(schema.namespace, str):
            self.generate(schema.namespace)
        for argument in schema.generics:
            if is_node_type(argument) or argument in self.schemas:
                self.generate(argument)

        for variant in schema.variants:
            for referenced in _referenced_node_types(variant):
                self.generate(referenced)
            if variant.skip_method:
                continue
            if variant.namespace is not None:
                self.generate(variant.namespace)
                target = self.signature_of(variant.namespace)
            else:
                target = signature
            self.add_method(target, variant.binding_name, self._method(schema, variant, signature))

    def _method(self, schema: NodeSchema, variant: VariantSchema, result: TypeSignature) -> Method:
        receiver = variant.receiver
        variadic = next((f.name for f in variant.fields if f.variadic), None)
        tag = None
        if variant.tag is not None:
            tag = (schema.tag_field or self.settings.tag_field, variant.tag)
        return Method(
            variant=variant.name,
            result=result,
            fields=tuple(f.name for f in variant.fields),
            receiver=receiver.name if receiver is not None else None,
            variadic=variadic,
            tag=tag,
            positional=variant.is_positional,
            untagged=variant.untagged,
        )

    def load(self, host: HostRuntime | None = None) -> Library:
        """Materialize the bindings as callables of ``host``."""
        host = host if host is not None else PythonHost()
        library = Library()

        for name, table in self.namespaces.items():
            namespace = Namespace(TypeSignature(name), library)
            library._namespaces[name] = namespace
            for generic_key in sorted(table.generic_variants):
                namespace._instances[generic_key] = Namespace(
                    TypeSignature(name), library, generic_key=generic_key, generic=namespace
                )

        count = 0
        for name, table in self.namespaces.items():
            namespace = library._namespaces[name]
            count += namespace._populate(table.methods, host)
            for generic_key, methods in table.generic_variants.items():
                count += namespace._instances[generic_key]._populate(methods, host)

        logger.info("module_loaded", namespaces=len(library._namespaces), methods=count)
        return library


def _referenced_node_types(variant: VariantSchema) -> Iterator[Any]:
    def visit(typedef: TypeDef) -> Iterator[Any]:
        match typedef:
            case KeyType(target=target) | NodeType(target=target):
                if is_node_type(target):
                    yield target
            case ListType(element=element):
                yield from visit(element)
            case UnionType(options=options):
                for option in options:
                    yield from visit(option)

    for f in variant.fields:
        yield from visit(f.type)


# =============================================================================
# Loaded Bindings
# =============================================================================


class Namespace:
    """
    Loaded bindings of one namespace or one of its generic instances.

    Calling a generic namespace with namespaces as arguments selects an
    instance: ``lib.Maybe(lib.Uint)``. Calling it without arguments returns
    the namespace itself.
    """

    def __init__(
        self,
        signature: TypeSignature,
        library: Library,
        *,
        generic_key: str | None = None,
        generic: Namespace | None = None,
    ) -> None:
        self.name = signature.name
        self.generic_key = generic_key or signature.generic_key
        self._library = library
        self._generic = generic
        self._methods: dict[str, Callable[..., Any]] = {}
        self._receivers: dict[str, Method] = {}
        self._instances: dict[str, Namespace] = {}

    def _populate(self, methods: Mapping[str, Method], host: HostRuntime) -> int:
        for name, method in methods.items():
            attribute = python_name(name)
            self._methods[attribute] = self._materialize(attribute, method, host)
            if not method.is_static:
                self._receivers[attribute] = method
        return len(methods)

    def _materialize(self, name: str, method: Method, host: HostRuntime) -> Callable[..., Any]:
        result = self._library.resolve(method.result)
        arguments = method.arguments

        def call(*args: Any) -> Any:
            values = dict(zip(arguments, args, strict=False))
            if method.variadic is not None:
                values[method.variadic] = list(args[len(arguments) :])
            return method.build(values, host, result)

        return host.make_function(
            name,
            call,
            method.signature(),
            qualname=f"{self.generic_key}.{name}",
        )

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._methods[name]
        except KeyError:
            msg = f"{self.generic_key} has no binding {name!r}"
            raise AttributeError(msg) from None

    def bind_method(self, name: str, receiver: Any) -> Callable[..., Any]:
        """``receiver.name`` for a value built for this namespace."""
        if name not in self._receivers:
            msg = f"{self.generic_key} value has no method {name!r}"
            raise AttributeError(msg)
        return functools.partial(self._methods[name], receiver)

    def __call__(self, *arguments: Namespace) -> Namespace:
        if not arguments:
            return self
        keys = []
        for argument in arguments:
            if not isinstance(argument, Namespace):
                msg = f"type arguments of {self.name} must be namespaces, got {argument!r}"
                raise BindingError(msg)
            keys.append(argument.generic_key)
        generic_key = f"{self.name}({','.join(keys)})"
        origin = self._generic or self
        try:
            return origin._instances[generic_key]
        except KeyError:
            msg = f"{generic_key} is not a possible instance of {self.name}"
            raise BindingError(msg) from None

    def __getitem__(self, arguments: Namespace | tuple[Namespace, ...]) -> Namespace:
        if not isinstance(arguments, tuple):
            arguments = (arguments,)
        return self(*arguments)

    def __dir__(self) -> list[str]:
        return sorted(self._methods)

    def __repr__(self) -> str:
        return f"<namespace {self.generic_key}>"


class Library:
    """Namespaces produced by ``Module.load``, one attribute each."""

    def __init__(self) -> None:
        self._namespaces: dict[str, Namespace] = {}

    def resolve(self, signature: TypeSignature) -> Namespace:
        namespace = self._namespaces[signature.name]
        if not signature.generics:
            return namespace
        try:
            return namespace._instances[signature.generic_key]
        except KeyError:
            msg = f"{signature.generic_key} is not a possible instance of {signature.name}"
            raise BindingError(msg) from None

    def __getattr__(self, name: str) -> Namespace:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._namespaces[name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, name: str) -> Namespace:
        return self._namespaces[name]

    def __contains__(self, name: object) -> bool:
        return name in self._namespaces

    def __iter__(self) -> Iterator[str]:
        return iter(self._namespaces)

    def __dir__(self) -> list[str]:
        return sorted(self._namespaces)
