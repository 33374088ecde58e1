"""
Lua Module Example
==================

This example renders generated bindings as a Lua chunk and shows how the
discriminant field name flows from settings into both the bindings and the
parser. It covers:

1. Families with a default variant
2. Custom discriminant fields
3. Rendering a module with render_lua
"""

from typednodes import Module, Node, NodeStore, ParseContext, ParseSettings
from typednodes.lua import render_lua

# ============================================================================
# Step 1: Declare a Family
# ============================================================================


class Shape(Node):
    """Shapes of a drawing, with an open-ended fallback."""


class Circle(Shape):
    radius: float


class Rect(Shape):
    width: float
    height: float


class Other(Shape, default=True):
    name: str | None = None


# ============================================================================
# Step 2: Settings Shared by Bindings and Parsing
# ============================================================================


def example_settings():
    """Use "kind" instead of "type" as the discriminant."""
    settings = ParseSettings(tag_field="kind")
    module = Module(settings=settings)
    module.generate(Shape)
    lib = module.load()

    circle = lib.Shape.circle(2.0)
    print(f"Shape.circle(2.0) = {circle!r}")

    nodes = NodeStore()
    context = ParseContext(nodes, settings=settings)
    print(f"Parsed: {nodes.get(context.parse(circle, Shape))}")
    print(f"Parsed: {nodes.get(context.parse({'name': 'hexagon'}, Shape))}")
    return module


# ============================================================================
# Step 3: Render Lua
# ============================================================================


def example_render(module):
    """Print the Lua chunk for the module."""
    print(render_lua(module))


def main():
    print("=" * 80)
    print("Lua Module Example")
    print("=" * 80)
    print()

    print("--- Example 1: Settings ---")
    module = example_settings()
    print()

    print("--- Example 2: Lua Source ---")
    example_render(module)


if __name__ == "__main__":
    main()
