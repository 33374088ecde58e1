"""Tests for typednodes.bindings module."""

import inspect

import pytest

from typednodes import (
    BindingError,
    Method,
    Module,
    NodeStore,
    ParseContext,
    ParseSettings,
    Table,
    TypeSignature,
)

from expressions import (
    Add,
    BoolExpression,
    Equal,
    Expr,
    Maybe,
    Not,
    Shape2D,
    Uint,
    UintExpression,
    Value,
)


def load(*node_types, **settings):
    module = Module(settings=ParseSettings(**settings))
    for node_type in node_types:
        module.generate(node_type)
    return module, module.load()


def evaluate(value, node_type):
    nodes = NodeStore()
    key = ParseContext(nodes).parse(value, node_type)
    return nodes.get(key).evaluate(nodes)


class TestTypeSignature:
    """Test namespace signatures."""

    def test_plain_key(self):
        """Test the key of a non-generic namespace."""
        assert TypeSignature("Uint").generic_key == "Uint"

    def test_generic_key(self):
        """Test the key of nested generic instances."""
        uint = TypeSignature("Uint")
        signature = TypeSignature("Maybe", (TypeSignature("List", (uint,)),))
        assert signature.generic_key == "Maybe(List(Uint))"
        assert str(TypeSignature("Pair", (uint, uint))) == "Pair(Uint,Uint)"


class TestModuleDescription:
    """Test the inert module description."""

    def test_methods_grouped_by_namespace(self):
        """Test that variants become methods of their namespaces."""
        module = Module()
        module.generate(BoolExpression)
        namespaces = module.namespaces
        assert list(namespaces) == ["BoolExpression", "UintExpression"]
        assert set(namespaces["UintExpression"].methods) == {"add", "sum", "equal"}
        assert set(namespaces["BoolExpression"].methods) == {"not"}

    def test_method_shape(self):
        """Test parameters, receiver and tag of a method."""
        module = Module()
        module.generate(UintExpression)
        add = module.namespaces["UintExpression"].methods["add"]
        assert add.receiver == "lhs"
        assert add.parameters == ("rhs",)
        assert add.arguments == ("lhs", "rhs")
        assert add.tag == ("type", "add")
        assert add.result == TypeSignature("UintExpression")
        assert not add.is_static

    def test_cross_type_result(self):
        """Test that cross-namespace methods still build their own type."""
        module = Module()
        module.generate(BoolExpression)
        equal = module.namespaces["UintExpression"].methods["equal"]
        assert equal.result == TypeSignature("BoolExpression")
        assert equal.variant == "Equal"

    def test_variadic_method(self):
        """Test that the variadic field is not a fixed parameter."""
        module = Module()
        module.generate(UintExpression)
        total = module.namespaces["UintExpression"].methods["sum"]
        assert total.is_static
        assert total.parameters == ()
        assert total.variadic == "terms"
        assert str(total.signature()) == "(*terms)"

    def test_skip_method(self):
        """Test that skip_method variants get no binding."""
        module = Module()
        module.generate(UintExpression)
        assert "constant" not in module.namespaces["UintExpression"].methods

    def test_visit_once(self):
        """Test that each node type is visited once."""
        module = Module()
        assert module.visit_type(UintExpression)
        assert not module.visit_type(UintExpression)

    def test_family_tag_field(self):
        """Test that family discriminant overrides reach the methods."""
        module = Module()
        module.generate(Shape2D)
        methods = module.namespaces["Shape2D"].methods
        assert methods["rect"].tag == ("kind", "rect")
        assert methods["unknown"].tag is None
        assert not methods["unknown"].positional

    def test_generic_instances(self):
        """Test that generic methods live in their instance tables."""
        module = Module()
        module.generate(Expr[Uint])
        namespaces = module.namespaces
        assert list(namespaces) == ["List", "Maybe", "Uint"]
        assert namespaces["Maybe"].methods == {}
        assert set(namespaces["Maybe"].generic_variants["Maybe(Uint)"]) == {
            "some",
            "none",
            "unwrap_or",
        }
        assert set(namespaces["List"].generic_variants["List(Uint)"]) == {"new", "with", "get"}
        get = namespaces["List"].generic_variants["List(Uint)"]["get"]
        assert get.result.generic_key == "Maybe(Uint)"
        unwrap_or = namespaces["Maybe"].generic_variants["Maybe(Uint)"]["unwrap_or"]
        assert unwrap_or.result == TypeSignature("Uint")

    def test_replaced_method_logged(self):
        """Test that replacing a method with a different one is allowed."""
        module = Module()
        signature = TypeSignature("Thing")
        module.add_method(signature, "make", Method(variant="A", result=signature))
        module.add_method(signature, "make", Method(variant="B", result=signature))
        assert module.namespaces["Thing"].methods["make"].variant == "B"


class TestLoadedBindings:
    """Test materialized bindings."""

    def test_tagged_method_builds_table(self):
        """Test that a tagged binding builds a discriminated table."""
        _, lib = load(UintExpression)
        value = lib.UintExpression.add(1, 2)
        assert isinstance(value, Table)
        assert value["type"] == "add"
        assert value["lhs"] == 1
        assert value["rhs"] == 2

    def test_expression_round_trip(self):
        """Test that bound expressions parse back and evaluate."""
        _, lib = load(BoolExpression)
        assert evaluate(lib.UintExpression.add(1, 2).equal(3), BoolExpression) is True
        assert evaluate(lib.UintExpression.add(1, 2).equal(4), BoolExpression) is False

    def test_chained_parse_structure(self):
        """Test that chained calls parse to the expected variants."""
        _, lib = load(BoolExpression)
        nodes = NodeStore()
        key = ParseContext(nodes).parse(lib.UintExpression.add(1, 2).equal(3).not_(), BoolExpression)
        node = nodes.get(key)
        assert isinstance(node, Not)
        assert isinstance(nodes.get(node.operand), Equal)
        assert isinstance(nodes.get(nodes.get(node.operand).lhs), Add)
        assert node.evaluate(nodes) is False

    def test_variadic_binding(self):
        """Test that variadic bindings collect remaining arguments."""
        _, lib = load(UintExpression)
        value = lib.UintExpression.sum(1, 2, 3)
        assert value["terms"] == [1, 2, 3]
        assert evaluate(value, UintExpression) == 6

    def test_keyword_method_name(self):
        """Test that keyword method names get a trailing underscore."""
        _, lib = load(BoolExpression)
        assert callable(lib.BoolExpression.not_)
        assert "not_" in dir(lib.BoolExpression)

    def test_argument_count_checked(self):
        """Test that bindings check their argument count."""
        _, lib = load(UintExpression)
        with pytest.raises(TypeError, match=r"UintExpression\.add\(\)"):
            lib.UintExpression.add(1)

    def test_signature_exposed(self):
        """Test that bindings expose their parameters."""
        _, lib = load(UintExpression)
        assert list(inspect.signature(lib.UintExpression.add).parameters) == ["lhs", "rhs"]

    def test_static_method_not_bound_to_values(self):
        """Test that only receiver methods chain from values."""
        _, lib = load(UintExpression)
        value = lib.UintExpression.add(1, 2)
        with pytest.raises(AttributeError):
            value.sum

    def test_unknown_binding(self):
        """Test that unknown names raise AttributeError."""
        _, lib = load(UintExpression)
        with pytest.raises(AttributeError):
            lib.UintExpression.multiply
        with pytest.raises(AttributeError):
            lib.Nothing

    def test_custom_tag_field(self):
        """Test that the settings tag field is used by bindings and parsing."""
        _, lib = load(UintExpression, tag_field="op")
        value = lib.UintExpression.add(1, 2)
        assert value["op"] == "add"
        nodes = NodeStore()
        context = ParseContext(nodes, settings=ParseSettings(tag_field="op"))
        assert nodes.get(context.parse(value, UintExpression)).evaluate(nodes) == 3

    def test_default_variant_binding(self):
        """Test that default variant bindings build untagged tables."""
        _, lib = load(Shape2D)
        value = lib.Shape2D.unknown("hexagon")
        assert "kind" in value
        nodes = NodeStore()
        node = nodes.get(ParseContext(nodes).parse(value, Shape2D))
        assert node.kind == "hexagon"

    def test_untagged_bindings(self):
        """Test bindings of untagged variants of each arity."""
        _, lib = load(Value)
        assert lib.Value.flag(True) is True
        assert lib.Value.missing() is None
        pair = lib.Value.pair(1, 2)
        assert list(pair) == [1, 2]
        nodes = NodeStore()
        node = nodes.get(ParseContext(nodes).parse(pair, Value))
        assert (node.first, node.second) == (1, 2)

    def test_library_access(self):
        """Test listing and indexing loaded namespaces."""
        _, lib = load(BoolExpression)
        assert sorted(lib) == ["BoolExpression", "UintExpression"]
        assert "UintExpression" in lib
        assert lib["UintExpression"] is lib.UintExpression


class TestGenericBindings:
    """Test generic instances, mirroring the list/maybe/expr example."""

    def test_some(self):
        """Test building a present optional value."""
        _, lib = load(Expr[Uint])
        assert evaluate(lib.Maybe(lib.Uint).some(5), Maybe[Uint]) == 5

    def test_none(self):
        """Test building an absent optional value."""
        _, lib = load(Expr[Uint])
        assert evaluate(lib.Maybe(lib.Uint).none(), Maybe[Uint]) is None

    def test_chain_across_namespaces(self):
        """Test list building, indexing and defaulting in one chain."""
        _, lib = load(Expr[Uint])
        value = lib.List(lib.Uint).new().with_(48).with_(1337).get(1).unwrap_or(0)
        assert evaluate(value, Expr[Uint]) == 1337

    def test_default_used(self):
        """Test that an out-of-range index falls back to the default."""
        _, lib = load(Expr[Uint])
        value = lib.List(lib.Uint).new().with_(48).get(3).unwrap_or(7)
        assert evaluate(value, Expr[Uint]) == 7

    def test_instance_selection(self):
        """Test selecting instances by calling or indexing namespaces."""
        _, lib = load(Expr[Uint])
        assert lib.Maybe(lib.Uint) is lib.Maybe[lib.Uint]
        assert lib.Maybe(lib.Uint).generic_key == "Maybe(Uint)"
        assert lib.Maybe() is lib.Maybe

    def test_unknown_instance(self):
        """Test that instances that were never generated are rejected."""
        _, lib = load(Expr[Uint])
        with pytest.raises(BindingError, match="not a possible instance"):
            lib.Maybe(lib.List(lib.Uint))
        with pytest.raises(BindingError):
            lib.Maybe("Uint")

    def test_methods_only_on_instances(self):
        """Test that generic methods need an instance."""
        _, lib = load(Expr[Uint])
        with pytest.raises(AttributeError):
            lib.Maybe.some

    def test_result_repr(self):
        """Test that results show the namespace they chain through."""
        _, lib = load(Expr[Uint])
        assert repr(lib.Maybe(lib.Uint).none()) == "Maybe(Uint):{type='none'}"
