"""Schema extraction and type reflection utilities."""

from __future__ import annotations

import re
import types
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import MISSING, dataclass, fields
from typing import (
    Annotated,
    Any,
    Literal,
    TypeAliasType,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from typednodes.errors import SchemaError, type_name
from typednodes.host import Shape
from typednodes.nodes import Key, Node, ParseWith, Receiver, Variadic
from typednodes.types import (
    AnyType,
    BoolType,
    DictType,
    FloatType,
    IntType,
    KeyType,
    ListType,
    LiteralType,
    NodeType,
    NoneType,
    StrType,
    TupleType,
    TypeDef,
    TypeParameter,
    UnionType,
    substitute_type_params,
)

# Mapping from Python types to their TypeDef classes (no type arguments)
_SIMPLE_TYPE_MAP: dict[Any, type[TypeDef]] = {
    int: IntType,
    float: FloatType,
    str: StrType,
    bool: BoolType,
    type(None): NoneType,
    None: NoneType,
    Any: AnyType,
}

_ELEMENT_CONTAINER_MAP: dict[Any, str] = {list: "list", Sequence: "Sequence"}
_KEY_VALUE_CONTAINER_MAP: dict[Any, str] = {dict: "dict", Mapping: "Mapping"}


def snake_case(name: str) -> str:
    """``UnwrapOr`` → ``unwrap_or``, ``HTTPGet`` → ``http_get``."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


@dataclass(frozen=True)
class FieldSchema:
    """Schema for a variant field."""

    name: str
    type: TypeDef
    receiver: bool = False
    variadic: bool = False
    parse_with: Callable[[Any, Any], Any] | None = None
    default: Any = MISSING

    @property
    def is_reference(self) -> bool:
        return isinstance(self.type, KeyType)

    @property
    def is_required(self) -> bool:
        return self.default is MISSING and not self.type.accepts_nil()


@dataclass(frozen=True)
class VariantSchema:
    """
    Schema for one variant of a node type.

    A variant is tagged (selected by the discriminant field of a table),
    untagged (selected by the shape category of the value) or the default
    variant (selected when the discriminant names nothing). Tagged and
    default variants read fields by name, untagged ones positionally.
    ``construct`` receives the extracted fields as keyword arguments.
    """

    name: str
    construct: Callable[..., Any]
    fields: tuple[FieldSchema, ...] = ()
    tag: str | None = None
    untagged: frozenset[Shape] = frozenset()
    default: bool = False
    method: str | None = None
    namespace: Any = None
    skip_method: bool = False

    def __post_init__(self) -> None:
        if self.tag is not None and (self.untagged or self.default):
            msg = f"variant {self.name} cannot be tagged and untagged at once"
            raise SchemaError(msg)
        if self.default and self.untagged:
            msg = f"default variant {self.name} cannot also be untagged"
            raise SchemaError(msg)
        if self.tag is None and not self.untagged and not self.default:
            msg = f"variant {self.name} needs a tag, an untagged shape set or the default flag"
            raise SchemaError(msg)
        if sum(f.receiver for f in self.fields) > 1:
            msg = f"variant {self.name} has more than one receiver field"
            raise SchemaError(msg)
        for index, f in enumerate(self.fields):
            if f.variadic and index != len(self.fields) - 1:
                msg = f"variadic field {self.name}.{f.name} must be the last field"
                raise SchemaError(msg)
            if f.variadic and not isinstance(f.type, ListType):
                msg = f"variadic field {self.name}.{f.name} must be a list"
                raise SchemaError(msg)
        scalar_shapes = self.untagged - {Shape.TABLE}
        if len(self.fields) > 1 and scalar_shapes:
            shown = ", ".join(sorted(shape.value for shape in scalar_shapes))
            msg = f"variant {self.name} has several fields and cannot be untagged as {shown}"
            raise SchemaError(msg)

    @property
    def is_tagged(self) -> bool:
        return self.tag is not None

    @property
    def is_positional(self) -> bool:
        """Untagged variants read their fields positionally."""
        return bool(self.untagged)

    @property
    def receiver(self) -> FieldSchema | None:
        return next((f for f in self.fields if f.receiver), None)

    @property
    def binding_name(self) -> str:
        return self.method or snake_case(self.name)


@dataclass(frozen=True)
class NodeSchema:
    """Complete schema for a node type."""

    node_type: Any
    variants: tuple[VariantSchema, ...]
    name: str | None = None
    generics: tuple[Any, ...] = ()
    tag_field: str | None = None
    namespace: Any = None

    def __post_init__(self) -> None:
        if sum(v.default for v in self.variants) > 1:
            msg = f"{self.display_name} has more than one default variant"
            raise SchemaError(msg)

    @property
    def display_name(self) -> str:
        return self.name or type_name(self.node_type)

    @property
    def tagged_variants(self) -> tuple[VariantSchema, ...]:
        return tuple(v for v in self.variants if v.is_tagged)

    @property
    def untagged_variants(self) -> tuple[VariantSchema, ...]:
        return tuple(v for v in self.variants if v.untagged)

    @property
    def default_variant(self) -> VariantSchema | None:
        return next((v for v in self.variants if v.default), None)

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(v.tag for v in self.tagged_variants if v.tag is not None)

    @property
    def is_enumeration(self) -> bool:
        """Every variant is fieldless, so a bare tag string names one."""
        return bool(self.tagged_variants) and all(not v.fields for v in self.variants)

    def expected_shapes(self) -> tuple[Shape, ...]:
        shapes: set[Shape] = set()
        for variant in self.untagged_variants:
            shapes |= variant.untagged
        if self.tagged_variants or self.default_variant is not None:
            shapes.add(Shape.TABLE)
        if self.is_enumeration:
            shapes.add(Shape.STRING)
        return tuple(shape for shape in Shape if shape in shapes)


def extract_type(py_type: Any) -> TypeDef:
    """Convert Python type annotation to TypeDef."""
    origin = get_origin(py_type)
    args = get_args(py_type)

    if isinstance(py_type, TypeVar):
        return TypeParameter(name=py_type.__name__)

    if origin is Annotated:
        return extract_type(py_type.__origin__)

    # Expand PEP 695 type aliases
    if isinstance(py_type, TypeAliasType):
        return extract_type(py_type.__value__)
    if isinstance(origin, TypeAliasType):
        parameters = origin.__type_params__
        if len(parameters) != len(args):
            msg = f"alias {origin.__name__} takes {len(parameters)} type arguments, got {len(args)}"
            raise ValueError(msg)
        bound = dict(zip(parameters, args, strict=True))
        return extract_type(substitute_type_params(origin.__value__, bound))

    if py_type in _SIMPLE_TYPE_MAP:
        return _SIMPLE_TYPE_MAP[py_type]()

    if origin in _ELEMENT_CONTAINER_MAP:
        if not args:
            msg = f"{_ELEMENT_CONTAINER_MAP[origin]} type must have an element type"
            raise ValueError(msg)
        return ListType(element=extract_type(args[0]))

    if origin in _KEY_VALUE_CONTAINER_MAP:
        if len(args) != 2:
            msg = f"{_KEY_VALUE_CONTAINER_MAP[origin]} type must have key and value types"
            raise ValueError(msg)
        return DictType(key=extract_type(args[0]), value=extract_type(args[1]))

    if origin is tuple:
        if not args:
            msg = "tuple type must have element types"
            raise ValueError(msg)
        if len(args) == 2 and args[1] is Ellipsis:
            return ListType(element=extract_type(args[0]))
        return TupleType(elements=tuple(extract_type(arg) for arg in args))

    if origin is Literal:
        invalid = [value for value in args if not isinstance(value, str | int | bool)]
        if invalid:
            msg = f"literal field values must be strings, integers or booleans, got {invalid!r}"
            raise TypeError(msg)
        return LiteralType(values=args)

    if origin is Key:
        if not args:
            msg = "Key type must name the node type it refers to"
            raise ValueError(msg)
        return KeyType(target=args[0])

    if is_node_type(py_type):
        return NodeType(target=py_type)

    if isinstance(py_type, types.UnionType) or origin is Union:
        return UnionType(tuple(extract_type(a) for a in args))

    msg = f"Cannot extract type from: {py_type}"
    raise ValueError(msg)


def is_node_type(py_type: Any) -> bool:
    family = get_origin(py_type) or py_type
    return isinstance(family, type) and issubclass(family, Node) and family.is_family()


def _family_and_arguments(node_type: Any) -> tuple[type[Node], tuple[Any, ...]]:
    if not is_node_type(node_type):
        msg = f"{node_type!r} is not a node family"
        raise SchemaError(msg)
    family = get_origin(node_type) or node_type
    args = get_args(node_type)
    params = getattr(family, "__type_params__", ())
    if args and len(args) != len(params):
        msg = f"{family.__name__} expects {len(params)} type arguments but got {len(args)}"
        raise SchemaError(msg)
    return family, args


def _variant_substitutions(
    variant: type[Node], family: type[Node], family_subs: dict[Any, Any]
) -> dict[Any, Any]:
    """Map the variant's own type parameters onto the family's arguments."""
    if not family_subs:
        return {}
    family_params = family.__type_params__
    for base in getattr(variant, "__orig_bases__", ()):
        if get_origin(base) is not family:
            continue
        subs: dict[Any, Any] = {}
        for base_arg, family_param in zip(get_args(base), family_params, strict=True):
            if isinstance(base_arg, TypeVar):
                subs[base_arg] = family_subs[family_param]
        return subs
    return {}


def _field_schema(field: Any, hint: Any, substitutions: dict[Any, Any]) -> FieldSchema:
    receiver = variadic = False
    parse_with = None
    if get_origin(hint) is Annotated:
        for marker in hint.__metadata__:
            if isinstance(marker, Receiver):
                receiver = True
            elif isinstance(marker, Variadic):
                variadic = True
            elif isinstance(marker, ParseWith):
                parse_with = marker.parser
        hint = hint.__origin__
    if substitutions:
        hint = substitute_type_params(hint, substitutions)

    if field.default is not MISSING:
        default = field.default
    elif field.default_factory is not MISSING:
        default = field.default_factory()
    else:
        default = MISSING

    return FieldSchema(
        name=field.name,
        type=extract_type(hint),
        receiver=receiver,
        variadic=variadic,
        parse_with=parse_with,
        default=default,
    )


def variant_schema(variant: type[Node], substitutions: dict[Any, Any] | None = None) -> VariantSchema:
    """Get schema for one variant class."""
    substitutions = substitutions or {}
    options = variant._variant_options
    hints = get_type_hints(variant, include_extras=True)

    variant_fields = tuple(
        _field_schema(f, hints[f.name], substitutions)
        for f in fields(variant)
        if not f.name.startswith("_")
    )

    if options.untagged or options.default:
        tag = None
    else:
        tag = options.tag or snake_case(variant.__name__)

    namespace = options.namespace
    if namespace is not None and substitutions:
        namespace = substitute_type_params(namespace, substitutions)

    return VariantSchema(
        name=variant.__name__,
        construct=variant,
        fields=variant_fields,
        tag=tag,
        untagged=options.untagged,
        default=options.default,
        method=options.method,
        namespace=namespace,
        skip_method=options.skip_method,
    )


def node_schema(node_type: Any) -> NodeSchema:
    """
    Get schema for a node family or a parameterized generic family.

    Variants are taken in declaration order; ``skip`` variants are left out.
    """
    family, args = _family_and_arguments(node_type)
    family_subs = dict(zip(family.__type_params__, args, strict=True)) if args else {}
    options = family._family_options

    variants = tuple(
        variant_schema(variant, _variant_substitutions(variant, family, family_subs))
        for variant in family._variants
        if not variant._variant_options.skip
    )

    namespace = options.namespace
    if namespace is not None and family_subs:
        namespace = substitute_type_params(namespace, family_subs)

    return NodeSchema(
        node_type=node_type,
        variants=variants,
        name=family.__name__,
        generics=args,
        tag_field=options.tag_field,
        namespace=namespace,
    )


class SchemaRegistry:
    """
    Schemas by node type.

    Hand-written schemas are registered explicitly; node families and their
    parameterizations are reflected on first use and cached.
    """

    def __init__(self, schemas: Iterable[NodeSchema] = ()) -> None:
        self._schemas: dict[Any, NodeSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: NodeSchema) -> None:
        self._schemas[schema.node_type] = schema

    def get(self, node_type: Any) -> NodeSchema:
        try:
            return self._schemas[node_type]
        except KeyError:
            pass
        if not is_node_type(node_type):
            msg = f"no schema registered for {type_name(node_type)}"
            raise SchemaError(msg)
        schema = self._schemas[node_type] = node_schema(node_type)
        return schema

    __getitem__ = get

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._schemas

    def __iter__(self) -> Iterator[NodeSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)


def all_schemas(*families: Any) -> dict[str, NodeSchema]:
    """Get schemas for the given node types, keyed by display name."""
    schemas = (node_schema(family) for family in families)
    return {schema.display_name: schema for schema in schemas}
