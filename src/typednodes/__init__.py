"""typednodes - Typed node-graph store with parsing and binding generation."""

from typednodes.bindings import (
    Library,
    Method,
    # Binding generation
    Module,
    Namespace,
    TypeSignature,
)
from typednodes.config import (
    DEFAULT_TAG_FIELD,
    # Configuration
    ParseSettings,
)
from typednodes.context import ParseContext
from typednodes.dispatch import DispatchEngine
from typednodes.errors import (
    BindingError,
    DepthLimitExceeded,
    FieldShapeMismatch,
    ForeignOrInvalidHandle,
    IdentityCycleUnresolved,
    MissingField,
    NoMatchingShape,
    ParseError,
    SchemaError,
    # Errors
    TypedNodesError,
    UnknownDiscriminant,
)
from typednodes.host import (
    HostRuntime,
    PythonHost,
    # Host values
    Shape,
    Table,
    TableId,
)
from typednodes.identity import (
    IdentityIndex,
    IdentitySource,
    SyntheticId,
)
from typednodes.lua import render_lua
from typednodes.nodes import (
    Evaluable,
    # Core types
    Key,
    Node,
    ParseWith,
    Receiver,
    Variadic,
)
from typednodes.schema import (
    FieldSchema,
    # Schema dataclasses
    NodeSchema,
    SchemaRegistry,
    VariantSchema,
    all_schemas,
    # Schema extraction
    extract_type,
    node_schema,
)
from typednodes.store import (
    # Storage
    NodeStore,
    TypedArena,
)
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
    # Type definitions
    TypeDef,
    TypeParameter,
    UnionType,
)

__all__ = [
    "DEFAULT_TAG_FIELD",
    "AnyType",
    "BindingError",
    "BoolType",
    "DepthLimitExceeded",
    "DictType",
    "DispatchEngine",
    "Evaluable",
    "FieldSchema",
    "FieldShapeMismatch",
    "FloatType",
    "ForeignOrInvalidHandle",
    "HostRuntime",
    "IdentityCycleUnresolved",
    "IdentityIndex",
    "IdentitySource",
    "IntType",
    # Core types
    "Key",
    "KeyType",
    "Library",
    "ListType",
    "LiteralType",
    "Method",
    "MissingField",
    # Binding generation
    "Module",
    "Namespace",
    "NoMatchingShape",
    "Node",
    "NodeSchema",
    # Storage
    "NodeStore",
    "NodeType",
    "NoneType",
    "ParseContext",
    "ParseError",
    # Configuration
    "ParseSettings",
    "ParseWith",
    "PythonHost",
    "Receiver",
    "SchemaError",
    "SchemaRegistry",
    # Host values
    "Shape",
    "StrType",
    "SyntheticId",
    "Table",
    "TableId",
    "TupleType",
    # Type definitions
    "TypeDef",
    "TypeParameter",
    "TypeSignature",
    "TypedArena",
    # Errors
    "TypedNodesError",
    "UnionType",
    "UnknownDiscriminant",
    "Variadic",
    "VariantSchema",
    "all_schemas",
    # Schema extraction
    "extract_type",
    "node_schema",
    "render_lua",
]
