"""Tests for typednodes.dispatch module."""

import pytest

from typednodes import (
    DispatchEngine,
    FieldSchema,
    FieldShapeMismatch,
    IdentityCycleUnresolved,
    IntType,
    KeyType,
    MissingField,
    NodeSchema,
    NodeStore,
    NoMatchingShape,
    ParseContext,
    ParseSettings,
    SchemaError,
    Shape,
    StrType,
    UnknownDiscriminant,
    VariantSchema,
    node_schema,
)

from expressions import (
    Add,
    BoolExpression,
    Circle,
    Color,
    Constant,
    DarkBlue,
    Entry,
    Equal,
    Flag,
    Loud,
    Maybe,
    Missing,
    Number,
    Pair,
    Record,
    Rectangle,
    Red,
    Shape2D,
    Sum,
    Text,
    Tone,
    Uint,
    UintExpression,
    Unknown,
    Value,
    Word,
)


def parse(value, node_type, **settings):
    nodes = NodeStore()
    context = ParseContext(nodes, settings=ParseSettings(**settings))
    key = context.parse(value, node_type)
    return nodes, nodes.get(key)


class TestExpressionScenarios:
    """Test parsing the expression examples end to end."""

    def test_equal_of_add(self):
        """Test parsing and evaluating equal(add(1, 2), 3)."""
        value = {"type": "equal", "lhs": {"type": "add", "lhs": 1, "rhs": 2}, "rhs": 3}
        nodes, node = parse(value, BoolExpression)
        assert isinstance(node, Equal)
        assert node.evaluate(nodes) is True

    def test_equal_of_add_false(self):
        """Test that a different constant evaluates to False."""
        value = {"type": "equal", "lhs": {"type": "add", "lhs": 1, "rhs": 2}, "rhs": 4}
        nodes, node = parse(value, BoolExpression)
        assert node.evaluate(nodes) is False

    def test_unknown_discriminant(self):
        """Test that an unknown tag raises with the expected tags."""
        with pytest.raises(UnknownDiscriminant) as exc_info:
            parse({"type": "multiply", "lhs": 1, "rhs": 2}, UintExpression)
        error = exc_info.value
        assert error.discriminant == "multiply"
        assert error.expected == ("add", "sum")
        assert error.node_type is UintExpression
        assert 'unexpected variant "multiply"' in str(error)

    def test_missing_discriminant(self):
        """Test that a table without a tag and no fallback raises."""
        with pytest.raises(UnknownDiscriminant) as exc_info:
            parse({"lhs": 1, "rhs": 2}, UintExpression)
        assert exc_info.value.discriminant is None


class TestSharedReferences:
    """Test identity deduplication during parsing."""

    def test_shared_table_parsed_once(self):
        """Test that one table referenced twice becomes one node."""
        shared = {"type": "add", "lhs": 1, "rhs": 2}
        nodes, node = parse({"type": "add", "lhs": shared, "rhs": shared}, UintExpression)
        assert node.lhs == node.rhs
        assert len(nodes.arena(UintExpression)) == 4
        assert node.evaluate(nodes) == 6

    def test_equal_contents_are_not_shared(self):
        """Test that equal but distinct tables stay distinct nodes."""
        nodes, node = parse(
            {
                "type": "add",
                "lhs": {"type": "add", "lhs": 1, "rhs": 2},
                "rhs": {"type": "add", "lhs": 1, "rhs": 2},
            },
            UintExpression,
        )
        assert node.lhs != node.rhs

    def test_reparse_reuses_nodes(self):
        """Test that parsing the same table again returns the same key."""
        nodes = NodeStore()
        value = {"type": "add", "lhs": 1, "rhs": 2}
        first = ParseContext(nodes).parse(value, UintExpression)
        count = len(nodes)
        second = ParseContext(nodes).parse(value, UintExpression)
        assert first == second
        assert len(nodes) == count

    def test_self_reference_raises(self):
        """Test that a table containing itself cannot be resolved."""
        value = {"type": "add", "rhs": 1}
        value["lhs"] = value
        nodes = NodeStore()
        with pytest.raises(IdentityCycleUnresolved) as exc_info:
            ParseContext(nodes).parse(value, UintExpression)
        assert exc_info.value.path == ["lhs"]
        assert len(nodes) == 0


class TestTaggedDispatch:
    """Test discriminant-based variant selection."""

    def test_custom_tag_field(self):
        """Test a family-level discriminant field override."""
        _, node = parse({"kind": "circle", "radius": 2}, Shape2D)
        assert node == Circle(radius=2.0)

    def test_explicit_tag(self):
        """Test a variant with an explicit tag."""
        _, node = parse({"kind": "rect", "width": 1, "height": 2.5}, Shape2D)
        assert node == Rectangle(width=1.0, height=2.5)

    def test_default_variant(self):
        """Test that unknown and missing tags fall back to the default variant."""
        _, node = parse({"kind": "triangle"}, Shape2D)
        assert node == Unknown(kind="triangle")
        _, node = parse({}, Shape2D)
        assert node == Unknown(kind=None)

    def test_tags_are_case_sensitive(self):
        """Test that tags must match exactly."""
        with pytest.raises(UnknownDiscriminant):
            parse({"type": "Add", "lhs": 1, "rhs": 2}, UintExpression)

    def test_settings_tag_field(self):
        """Test the discriminant field from settings."""
        _, node = parse({"op": "add", "lhs": 1, "rhs": 2}, UintExpression, tag_field="op")
        assert isinstance(node, Add)

    def test_non_string_discriminant(self):
        """Test that the discriminant must be a string."""
        with pytest.raises(FieldShapeMismatch) as exc_info:
            parse({"type": 3}, UintExpression)
        assert exc_info.value.field == "type"
        assert exc_info.value.shape is Shape.INTEGER

    def test_enumeration_string(self):
        """Test that bare strings name fieldless variants."""
        _, node = parse("dark_blue", Color)
        assert node == DarkBlue()
        _, node = parse({"type": "red"}, Color)
        assert node == Red()
        with pytest.raises(UnknownDiscriminant):
            parse("green", Color)

    def test_string_variant_with_fields_disables_tag_strings(self):
        """Test that strings go to the untagged string variant when a variant has fields."""
        _, node = parse("loud", Tone)
        assert node == Word("loud")
        _, node = parse({"type": "loud"}, Tone)
        assert node == Loud()

    def test_integer_too_large_for_float(self):
        """Test that an integer beyond the float range is a shape mismatch."""
        with pytest.raises(FieldShapeMismatch) as exc_info:
            parse({"kind": "circle", "radius": 10**400}, Shape2D)
        assert exc_info.value.variant == "Circle"
        assert exc_info.value.field == "radius"
        assert exc_info.value.shape is Shape.INTEGER

    def test_variadic_field_by_name(self):
        """Test that a variadic field reads a list."""
        nodes, node = parse({"type": "sum", "terms": [1, 2, 3]}, UintExpression)
        assert isinstance(node, Sum)
        assert node.evaluate(nodes) == 6


class TestUntaggedDispatch:
    """Test shape-based variant selection."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, Missing()),
            (True, Flag(True)),
            (3, Number(3.0)),
            (2.5, Number(2.5)),
            ("hi", Text("hi")),
            ([1, "b"], Pair(1, "b")),
        ],
    )
    def test_shape_selects_variant(self, value, expected):
        """Test that each shape category selects its variant."""
        _, node = parse(value, Value)
        assert node == expected

    def test_scalar_for_tagged_type(self):
        """Test that scalars of a tagged type go through untagged variants."""
        _, node = parse(7, UintExpression)
        assert node == Constant(7)

    def test_integral_number_coerced(self):
        """Test that integral floats are accepted as integers."""
        _, node = parse(7.0, UintExpression)
        assert node == Constant(7)
        assert isinstance(node.value, int)

    def test_fractional_number_rejected(self):
        """Test that fractional floats are not integers."""
        with pytest.raises(FieldShapeMismatch) as exc_info:
            parse(7.5, UintExpression)
        assert exc_info.value.variant == "Constant"

    def test_coercion_disabled(self):
        """Test that integral floats are rejected when coercion is off."""
        with pytest.raises(FieldShapeMismatch):
            parse(7.0, UintExpression, coerce_integral_numbers=False)

    def test_no_matching_shape(self):
        """Test that an unaccepted shape raises with the expected shapes."""
        with pytest.raises(NoMatchingShape) as exc_info:
            parse("seven", UintExpression)
        error = exc_info.value
        assert error.shape is Shape.STRING
        assert error.expected == (Shape.INTEGER, Shape.NUMBER, Shape.TABLE)
        assert "expected one of: integer, number, table" in str(error)

    def test_first_declared_variant_wins(self):
        """Test that overlapping shape sets resolve in declaration order."""
        first = VariantSchema(name="First", construct=lambda: "first", untagged=frozenset({Shape.INTEGER}))
        second = VariantSchema(
            name="Second",
            construct=lambda: "second",
            untagged=frozenset({Shape.INTEGER, Shape.STRING}),
        )
        schema = NodeSchema(node_type="choice", variants=(first, second))
        nodes = NodeStore([schema])
        context = ParseContext(nodes)
        assert nodes.get(context.parse(1, "choice")) == "first"
        assert nodes.get(context.parse("x", "choice")) == "second"


class TestFieldConversion:
    """Test conversion of field values by declared type."""

    def entry(self, **overrides):
        value = {
            "type": "entry",
            "name": "alpha",
            "tags": ["a", "b"],
            "weights": {"x": 1, "y": 0.5},
            "span": [1, 2],
        }
        value.update(overrides)
        return value

    def test_rich_fields(self):
        """Test list, dict, tuple, optional and custom-parsed fields."""
        _, node = parse(self.entry(), Record)
        assert node == Entry(
            name="ALPHA",
            tags=["a", "b"],
            weights={"x": 1.0, "y": 0.5},
            span=(1, 2),
        )

    def test_optional_reference_and_inline_node(self):
        """Test optional key references and inline nodes."""
        nodes, node = parse(self.entry(parent=self.entry(name="root"), color="red", note="n"), Record)
        assert node.note == "n"
        assert node.color == Red()
        assert nodes.get(node.parent).name == "ROOT"

    def test_missing_field(self):
        """Test that a required field must be present."""
        value = self.entry()
        del value["tags"]
        with pytest.raises(MissingField) as exc_info:
            parse(value, Record)
        error = exc_info.value
        assert error.node_type is Record
        assert error.variant == "Entry"
        assert error.field == "tags"
        assert str(error) == "Record.Entry.tags: missing required field"

    def test_element_error_location(self):
        """Test that element errors carry their index."""
        with pytest.raises(FieldShapeMismatch) as exc_info:
            parse(self.entry(tags=["a", 2]), Record)
        error = exc_info.value
        assert error.field == "tags"
        assert error.path == ["tags", 1]
        assert str(error) == "in tags[1], Record.Entry.tags: unexpected integer, expected a string"

    def test_tuple_length(self):
        """Test that tuples need exactly their length."""
        with pytest.raises(FieldShapeMismatch, match="length 2"):
            parse(self.entry(span=[1, 2, 3]), Record)

    def test_nested_error_location(self):
        """Test that nested node errors carry the path to them."""
        value = {"type": "add", "lhs": {"type": "add", "lhs": 1, "rhs": "two"}, "rhs": 3}
        with pytest.raises(NoMatchingShape) as exc_info:
            parse(value, UintExpression)
        error = exc_info.value
        assert error.path == ["lhs", "rhs"]
        assert str(error).startswith("in lhs.rhs, UintExpression:")

    def test_failed_parse_keeps_finished_nodes(self):
        """Test that nodes finished before a failure stay in the store."""
        nodes = NodeStore()
        value = {"type": "add", "lhs": 1, "rhs": "two"}
        with pytest.raises(NoMatchingShape):
            ParseContext(nodes).parse(value, UintExpression)
        assert list(nodes.values()) == [Constant(1)]

    def test_unbound_type_parameter(self):
        """Test that bare generic families cannot be parsed."""
        with pytest.raises(SchemaError, match="unbound"):
            parse({"type": "some", "value": 1}, Maybe)

    def test_hand_written_schema(self):
        """Test parsing with a schema that is not a node family."""
        point = NodeSchema(
            node_type="point",
            variants=(
                VariantSchema(
                    name="Point",
                    construct=lambda x, y: (x, y),
                    fields=(FieldSchema("x", IntType()), FieldSchema("y", IntType())),
                    tag="point",
                ),
                VariantSchema(
                    name="Origin",
                    construct=lambda: (0, 0),
                    untagged=frozenset({Shape.NIL}),
                ),
            ),
        )
        label = NodeSchema(
            node_type="label",
            variants=(
                VariantSchema(
                    name="Label",
                    construct=lambda text, at: {"text": text, "at": at},
                    fields=(FieldSchema("text", StrType()), FieldSchema("at", KeyType(target="point"))),
                    tag="label",
                ),
            ),
        )
        nodes = NodeStore([point, label])
        context = ParseContext(nodes)
        key = context.parse({"type": "label", "text": "hi", "at": {"type": "point", "x": 1, "y": 2}}, "label")
        result = nodes.get(key)
        assert result["text"] == "hi"
        assert nodes.get(result["at"]) == (1, 2)

    def test_separate_engine(self):
        """Test using an engine with its own settings."""
        engine = DispatchEngine(settings=ParseSettings(tag_field="op"))
        nodes = NodeStore()
        context = ParseContext(nodes)
        key = engine.parse_key({"op": "add", "lhs": 1, "rhs": 2}, UintExpression, context)
        assert nodes.get(key).evaluate(nodes) == 3

    def test_select_variant(self):
        """Test selecting a variant without parsing its fields."""
        engine = DispatchEngine()
        context = ParseContext(NodeStore())
        schema = node_schema(Uint)
        variant = engine.select_variant(schema, 5, Shape.INTEGER, context)
        assert variant.name == "Literal"
