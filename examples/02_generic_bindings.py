"""
Generic Families and Bindings Example
=====================================

This example generates construction functions for generic node families
and chains them across namespaces. It covers:

1. Generic families parameterized by another node type
2. Variants attached to another namespace
3. Selecting generic instances: lib.Maybe(lib.Int)
4. Parsing binding results back into nodes
"""

from typing import Annotated, Any

from typednodes import Key, Module, Node, NodeStore, ParseContext, Receiver

# ============================================================================
# Step 1: Declare Generic Families
# ============================================================================


class Int(Node):
    """Plain integers."""


class Literal(Int, untagged=("integer", "number"), skip_method=True):
    value: int

    def evaluate(self, nodes: NodeStore) -> int:
        return self.value


class List[T](Node):
    """List built one element at a time."""


class Empty[T](List[T], method="new"):
    def evaluate(self, nodes: NodeStore) -> list[Any]:
        return []


class Push[T](List[T], method="with"):
    items: Annotated[Key[List[T]], Receiver()]
    value: T

    def evaluate(self, nodes: NodeStore) -> list[Any]:
        return [*nodes.get(self.items).evaluate(nodes), self.value.evaluate(nodes)]


class Maybe[T](Node):
    """Optional value."""


class Some[T](Maybe[T]):
    value: T

    def evaluate(self, nodes: NodeStore) -> Any:
        return self.value.evaluate(nodes)


class Nothing[T](Maybe[T], method="none"):
    def evaluate(self, nodes: NodeStore) -> Any:
        return None


class Get[T](Maybe[T], namespace=List[T]):
    items: Annotated[Key[List[T]], Receiver()]
    index: int

    def evaluate(self, nodes: NodeStore) -> Any:
        items = nodes.get(self.items).evaluate(nodes)
        return items[self.index] if 0 <= self.index < len(items) else None


class Expr[T](Node, namespace=T):
    """Expressions producing a T, bound in T's namespace."""


class UnwrapOr[T](Expr[T], namespace=Maybe[T]):
    optional: Annotated[Key[Maybe[T]], Receiver()]
    default: T

    def evaluate(self, nodes: NodeStore) -> Any:
        value = nodes.get(self.optional).evaluate(nodes)
        return self.default.evaluate(nodes) if value is None else value


# ============================================================================
# Step 2: Generate and Load Bindings
# ============================================================================


def evaluate(value, node_type):
    nodes = NodeStore()
    key = ParseContext(nodes).parse(value, node_type)
    return nodes.get(key).evaluate(nodes)


def example_bindings():
    """Build values through bindings and evaluate them."""
    module = Module()
    module.generate(Expr[Int])
    lib = module.load()

    for table in module.namespaces.values():
        for key, methods in table.generic_variants.items():
            print(f"{key}: {', '.join(sorted(methods))}")

    some = lib.Maybe(lib.Int).some(5)
    print(f"Maybe(Int).some(5) = {some!r} -> {evaluate(some, Maybe[Int])}")

    none = lib.Maybe(lib.Int).none()
    print(f"Maybe(Int).none() = {none!r} -> {evaluate(none, Maybe[Int])}")

    chain = lib.List(lib.Int).new().with_(48).with_(1337).get(1).unwrap_or(0)
    print(f"List(Int).new().with_(48).with_(1337).get(1).unwrap_or(0) -> {evaluate(chain, Expr[Int])}")

    fallback = lib.List(lib.Int).new().get(0).unwrap_or(7)
    print(f"List(Int).new().get(0).unwrap_or(7) -> {evaluate(fallback, Expr[Int])}")


def main():
    print("=" * 80)
    print("Generic Families and Bindings Example")
    print("=" * 80)
    print()

    print("--- Example 1: Bindings ---")
    example_bindings()
    print()


if __name__ == "__main__":
    main()
