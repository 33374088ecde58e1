"""
Expression Language Example
===========================

This example builds a small arithmetic language on typednodes. It covers:

1. Declaring node families and their variants
2. Parsing nested tables into a node store
3. Shared tables becoming a single stored node
4. Evaluating nodes through their keys
5. Reading parse errors

Integers are accepted directly as constants; everything else is a table
with a "type" field naming the variant.
"""

from typing import Annotated

from typednodes import Key, Node, NodeStore, ParseContext, ParseError, Receiver, Variadic

# ============================================================================
# Step 1: Declare the Node Families
# ============================================================================
# A family is a direct subclass of Node; its variants subclass the family.
# Tags default to the snake_case class name.


class Number(Node):
    """Expressions producing an integer."""


class Const(Number, untagged=("integer", "number"), skip_method=True):
    value: int

    def evaluate(self, nodes: NodeStore) -> int:
        return self.value


class Add(Number):
    lhs: Annotated[Key[Number], Receiver()]
    rhs: Key[Number]

    def evaluate(self, nodes: NodeStore) -> int:
        return nodes.get(self.lhs).evaluate(nodes) + nodes.get(self.rhs).evaluate(nodes)


class Mul(Number):
    lhs: Annotated[Key[Number], Receiver()]
    rhs: Key[Number]

    def evaluate(self, nodes: NodeStore) -> int:
        return nodes.get(self.lhs).evaluate(nodes) * nodes.get(self.rhs).evaluate(nodes)


class Max(Number):
    values: Annotated[list[Key[Number]], Variadic()]

    def evaluate(self, nodes: NodeStore) -> int:
        return max(nodes.get(value).evaluate(nodes) for value in self.values)


class Condition(Node):
    """Expressions producing a boolean."""


class Less(Condition, namespace=Number):
    lhs: Annotated[Key[Number], Receiver()]
    rhs: Key[Number]

    def evaluate(self, nodes: NodeStore) -> bool:
        return nodes.get(self.lhs).evaluate(nodes) < nodes.get(self.rhs).evaluate(nodes)


# ============================================================================
# Step 2: Parse and Evaluate
# ============================================================================


def example_parse():
    """Parse a nested table and evaluate it."""
    nodes = NodeStore()
    value = {"type": "less", "lhs": {"type": "add", "lhs": 1, "rhs": 2}, "rhs": 4}
    key = ParseContext(nodes).parse(value, Condition)

    print("Expression: (1 + 2) < 4")
    print(f"Root node: {nodes.get(key)}")
    print(f"Result: {nodes.get(key).evaluate(nodes)}")
    print(f"Stored nodes: {len(nodes)}")


# ============================================================================
# Step 3: Shared Tables
# ============================================================================
# A table reached twice is one node; both references hold the same key.


def example_shared():
    """Parse a tree that reuses one table."""
    nodes = NodeStore()
    total = {"type": "add", "lhs": 3, "rhs": 4}
    value = {"type": "mul", "lhs": total, "rhs": total}
    key = ParseContext(nodes).parse(value, Number)
    root = nodes.get(key)

    print("Expression: (3 + 4) * (3 + 4), sharing the addition")
    print(f"Same key for both operands: {root.lhs == root.rhs}")
    print(f"Result: {root.evaluate(nodes)}")
    print(f"Stored nodes: {len(nodes)}")

    key = ParseContext(nodes).parse({"type": "max", "values": [total, 9, 2]}, Number)
    print(f"max(3 + 4, 9, 2) = {nodes.get(key).evaluate(nodes)}")
    print(f"Stored nodes after a second parse: {len(nodes)}")


# ============================================================================
# Step 4: Errors
# ============================================================================


def example_errors():
    """Show where a bad value sits in the input."""
    value = {"type": "add", "lhs": {"type": "mul", "lhs": 2, "rhs": "three"}, "rhs": 1}
    try:
        ParseContext(NodeStore()).parse(value, Number)
    except ParseError as exc:
        print(f"Error: {exc}")
        print(f"Path: {exc.path}")

    try:
        ParseContext(NodeStore()).parse({"type": "div", "lhs": 1, "rhs": 2}, Number)
    except ParseError as exc:
        print(f"Error: {exc}")


def main():
    print("=" * 80)
    print("Expression Language Example")
    print("=" * 80)
    print()

    print("--- Example 1: Parse and Evaluate ---")
    example_parse()
    print()

    print("--- Example 2: Shared Tables ---")
    example_shared()
    print()

    print("--- Example 3: Errors ---")
    example_errors()
    print()


if __name__ == "__main__":
    main()
