"""
Dispatch engine: resolves external values into typed node variants.

A value is parsed against the schema of a node type in three steps:

1. Select the variant. Tables are dispatched on their discriminant field
   when the type has tagged variants; any other value, and tables of types
   without tagged variants, are dispatched on their shape category.
2. Extract the variant's fields, by name for tagged and default variants
   and positionally for untagged variants.
3. Convert every field according to its type, recursing into nested node
   references and inline nodes.

``parse_key`` wraps the three steps in identity deduplication and stores the
result; ``parse_node`` returns the node value itself.
"""

from __future__ import annotations

from dataclasses import MISSING
from typing import TYPE_CHECKING, Any

import structlog

from typednodes.config import ParseSettings
from typednodes.errors import (
    DepthLimitExceeded,
    FieldShapeMismatch,
    IdentityCycleUnresolved,
    MissingField,
    NoMatchingShape,
    ParseError,
    SchemaError,
    UnknownDiscriminant,
)
from typednodes.host import Shape
from typednodes.schema import FieldSchema, NodeSchema, SchemaRegistry, VariantSchema
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
)

if TYPE_CHECKING:
    from typednodes.context import ParseContext
    from typednodes.nodes import Key

logger = structlog.get_logger(__name__)

# Failures that a union option must not swallow
_FATAL = (IdentityCycleUnresolved, DepthLimitExceeded)


class DispatchEngine:
    """Parses external values into nodes using node schemas."""

    def __init__(
        self,
        schemas: SchemaRegistry | None = None,
        settings: ParseSettings | None = None,
    ) -> None:
        self.schemas = schemas if schemas is not None else SchemaRegistry()
        self.settings = settings

    def _settings(self, context: ParseContext) -> ParseSettings:
        return self.settings if self.settings is not None else context.settings

    # =========================================================================
    # Entry points
    # =========================================================================

    def parse_key(self, value: Any, node_type: Any, context: ParseContext) -> Key[Any]:
        """Parse ``value`` as ``node_type``, deduplicating by identity."""
        identity = context.identity_of(value)
        return context.resolve_or_insert(
            identity,
            node_type,
            lambda: self.parse_node(value, node_type, context),
            anchor=value,
        )

    def parse_node(self, value: Any, node_type: Any, context: ParseContext) -> Any:
        """Parse ``value`` as ``node_type`` and return the node value."""
        schema = self.schemas.get(node_type)
        shape = context.host.shape_of(value)
        with context.nested(node_type):
            variant = self.select_variant(schema, value, shape, context)
            fields = self._extract_fields(schema, variant, value, context)
            return variant.construct(**fields)

    # =========================================================================
    # Variant selection
    # =========================================================================

    def select_variant(
        self,
        schema: NodeSchema,
        value: Any,
        shape: Shape,
        context: ParseContext,
    ) -> VariantSchema:
        """
        Pick the variant ``value`` is parsed as.

        Raises:
            UnknownDiscriminant: A table names no tagged variant and there is
                no default variant to fall back on.
            FieldShapeMismatch: The discriminant is not a string.
            NoMatchingShape: No untagged variant accepts the value's shape.
        """
        if shape is Shape.TABLE and (schema.tagged_variants or schema.default_variant):
            variant = self._select_tagged(schema, value, context)
            mode = "tagged"
        elif shape is Shape.STRING and schema.is_enumeration:
            variant = self._select_enumeration(schema, value)
            mode = "enumeration"
        else:
            variant = self._select_untagged(schema, shape)
            mode = "untagged"
        logger.debug(
            "variant_selected",
            node_type=schema.display_name,
            variant=variant.name,
            mode=mode,
        )
        return variant

    def _select_tagged(
        self, schema: NodeSchema, value: Any, context: ParseContext
    ) -> VariantSchema:
        tag_field = schema.tag_field or self._settings(context).tag_field
        discriminant = context.host.get_field(value, tag_field)

        if discriminant is None:
            for variant in schema.untagged_variants:
                if Shape.TABLE in variant.untagged:
                    return variant
            if schema.default_variant is not None:
                return schema.default_variant
            raise UnknownDiscriminant(None, schema.tags, node_type=schema.node_type)

        discriminant_shape = context.host.shape_of(discriminant)
        if discriminant_shape is not Shape.STRING:
            raise FieldShapeMismatch(
                discriminant_shape,
                "a string",
                node_type=schema.node_type,
                field=tag_field,
            )

        for variant in schema.tagged_variants:
            if variant.tag == discriminant:
                return variant
        if schema.default_variant is not None:
            return schema.default_variant
        raise UnknownDiscriminant(discriminant, schema.tags, node_type=schema.node_type)

    def _select_enumeration(self, schema: NodeSchema, value: str) -> VariantSchema:
        for variant in schema.tagged_variants:
            if variant.tag == value:
                return variant
        for variant in schema.untagged_variants:
            if Shape.STRING in variant.untagged:
                return variant
        raise UnknownDiscriminant(value, schema.tags, node_type=schema.node_type)

    def _select_untagged(self, schema: NodeSchema, shape: Shape) -> VariantSchema:
        for variant in schema.untagged_variants:
            if shape in variant.untagged:
                return variant
        raise NoMatchingShape(shape, schema.expected_shapes(), node_type=schema.node_type)

    # =========================================================================
    # Field extraction
    # =========================================================================

    def _extract_fields(
        self,
        schema: NodeSchema,
        variant: VariantSchema,
        value: Any,
        context: ParseContext,
    ) -> dict[str, Any]:
        host = context.host
        if variant.is_tagged or variant.default:
            raw = [(field, host.get_field(value, field.name)) for field in variant.fields]
        elif not variant.fields:
            raw = []
        elif len(variant.fields) == 1:
            raw = [(variant.fields[0], value)]
        else:
            items = host.sequence(value)
            raw = [
                (field, items[index] if index < len(items) else None)
                for index, field in enumerate(variant.fields)
            ]

        result: dict[str, Any] = {}
        for field, field_value in raw:
            try:
                result[field.name] = self._field_value(field, field_value, context)
            except ParseError as exc:
                if exc.node_type is None:
                    exc.node_type = schema.node_type
                    exc.variant = variant.name
                    exc.field = field.name
                    if exc.path:
                        exc.add_context(field.name)
                else:
                    exc.add_context(field.name)
                raise
        return result

    def _field_value(self, field: FieldSchema, value: Any, context: ParseContext) -> Any:
        if value is None:
            if field.default is not MISSING:
                return field.default
            if not field.type.accepts_nil():
                raise MissingField()
        if field.parse_with is not None:
            return field.parse_with(value, context)
        return self.convert(field.type, value, context)

    # =========================================================================
    # Conversion
    # =========================================================================

    def convert(self, typedef: TypeDef, value: Any, context: ParseContext) -> Any:
        """Convert one external value according to a field type."""
        host = context.host
        shape = host.shape_of(value)

        match typedef:
            case AnyType():
                return value

            case NoneType():
                if shape is Shape.NIL:
                    return None

            case BoolType():
                if shape is Shape.BOOLEAN:
                    return value

            case IntType():
                if shape is Shape.INTEGER:
                    return value
                if shape is Shape.NUMBER and self._settings(context).coerce_integral_numbers:
                    try:
                        if float(value).is_integer():
                            return int(value)
                    except OverflowError:
                        raise FieldShapeMismatch(shape, typedef.describe()) from None

            case FloatType():
                if shape in (Shape.INTEGER, Shape.NUMBER):
                    try:
                        return float(value)
                    except OverflowError:
                        raise FieldShapeMismatch(shape, typedef.describe()) from None

            case StrType():
                if shape is Shape.STRING:
                    return value

            case LiteralType(values=values):
                for literal in values:
                    if type(literal) is type(value) and literal == value:
                        return value
                raise FieldShapeMismatch(repr(value), typedef.describe())

            case ListType(element=element):
                if shape is Shape.TABLE:
                    return [
                        self._convert_item(element, item, index, context)
                        for index, item in enumerate(host.sequence(value))
                    ]

            case TupleType(elements=elements):
                if shape is Shape.TABLE:
                    items = host.sequence(value)
                    if len(items) == len(elements):
                        return tuple(
                            self._convert_item(element, item, index, context)
                            for index, (element, item) in enumerate(zip(elements, items, strict=True))
                        )

            case DictType(key=key_type, value=value_type):
                if shape is Shape.TABLE:
                    return {
                        self._convert_item(key_type, key, key, context): self._convert_item(
                            value_type, item, key, context
                        )
                        for key, item in host.items(value)
                    }

            case KeyType(target=target):
                return self.parse_key(value, target, context)

            case NodeType(target=target):
                return self.parse_node(value, target, context)

            case UnionType(options=options):
                return self._convert_union(typedef, options, value, shape, context)

            case TypeParameter(name=name):
                msg = f"type parameter {name} is unbound; parse a parameterized node type"
                raise SchemaError(msg)

            case _:
                msg = f"Unknown type definition: {type(typedef).__name__}"
                raise SchemaError(msg)

        raise FieldShapeMismatch(shape, typedef.describe())

    def _convert_item(self, typedef: TypeDef, value: Any, location: Any, context: ParseContext) -> Any:
        if value is None and not typedef.accepts_nil():
            error = MissingField()
            error.add_context(location)
            raise error
        try:
            return self.convert(typedef, value, context)
        except ParseError as exc:
            exc.add_context(location)
            raise

    def _convert_union(
        self,
        typedef: UnionType,
        options: tuple[TypeDef, ...],
        value: Any,
        shape: Shape,
        context: ParseContext,
    ) -> Any:
        if shape is Shape.NIL and typedef.accepts_nil():
            return None
        for option in options:
            if isinstance(option, NoneType):
                continue
            try:
                return self.convert(option, value, context)
            except _FATAL:
                raise
            except ParseError:
                continue
        raise FieldShapeMismatch(shape, typedef.describe())
