"""
Settings shared by parsing and binding generation.

Settings are frozen (immutable) after construction.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_TAG_FIELD = "type"


class ParseSettings(BaseModel):
    """Knobs for the dispatch engine and the binding generator."""

    model_config = {"frozen": True}

    tag_field: str = Field(
        default=DEFAULT_TAG_FIELD,
        min_length=1,
        description="Discriminant field read from tables for tagged variants",
    )
    max_depth: int | None = Field(
        default=None,
        gt=0,
        description="Maximum nesting of node references and inline nodes (None for unbounded)",
    )
    coerce_integral_numbers: bool = Field(
        default=True,
        description="Accept floats with an integral value where an int field is declared",
    )
