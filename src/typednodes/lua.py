"""
Lua rendering of binding modules.

The rendered chunk returns a table with one entry per namespace. Each
namespace is a metatable: values built by its methods get it as their
metatable, so ``value:method(...)`` chains the way the Python bindings do.
Generic instances live in ``Name.__generic_variants["Name(Arg)"]`` and are
selected by calling the namespace: ``lib.Maybe(lib.Uint)``.
"""

from __future__ import annotations

from dataclasses import dataclass

import jinja2

from typednodes.bindings import Method, Module, TypeSignature
from typednodes.host import Shape

LUA_KEYWORDS = frozenset(
    {
        "and", "break", "do", "else", "elseif", "end", "false", "for", "function",
        "goto", "if", "in", "local", "nil", "not", "or", "repeat", "return",
        "then", "true", "until", "while",
    }
)  # fmt: skip

_TEMPLATE = """\
{% for table in tables %}
local {{ table.name }} = {__generic_key = {{ table.name | lua_string }}}
{{ table.name }}.__index = {{ table.name }}
{% if table.instances %}
{{ table.name }}.__generic_variants = {}
{% for instance in table.instances %}
{{ instance.path }} = {__generic_key = {{ instance.key | lua_string }}}
{{ instance.path }}.__index = {{ instance.path }}
{% endfor %}
{% endif %}
{% endfor %}
{% for table in tables %}
{% for method in table.methods %}
local __table = {{ method.owner }}
function __table{{ method.separator }}{{ method.name }}({{ method.arguments }})
{% for line in method.body %}
{{ line }}
{% endfor %}
end
{% endfor %}
local __{{ table.name }}Meta = {}
__{{ table.name }}Meta.__index = __{{ table.name }}Meta
function __{{ table.name }}Meta:__call(...)
local args = {...}
if #args == 0 then
    return {{ table.name }}
end

local key = {{ (table.name ~ "(") | lua_string }}
for i = 1, #args do
    if i > 1 then key = key .. "," end
    key = key .. args[i].__generic_key
end
key = key .. ")"

if {{ table.name }}.__generic_variants == nil or {{ table.name }}.__generic_variants[key] == nil then
    error(key .. " is not a possible instance of " .. {{ table.name | lua_string }})
end

return {{ table.name }}.__generic_variants[key]
end
setmetatable({{ table.name }}, __{{ table.name }}Meta)
{% endfor %}
return {
{% for table in tables %}
{{ table.name }} = {{ table.name }},
{% endfor %}
}
"""


def lua_name(name: str) -> str:
    return f"{name}_" if name in LUA_KEYWORDS else name


def lua_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def table_path(signature: TypeSignature) -> str:
    """Lua expression for the metatable of ``signature``."""
    if not signature.generics:
        return signature.name
    return f"{signature.name}.__generic_variants[{lua_string(signature.generic_key)}]"


def _table_key(name: str) -> str:
    if name in LUA_KEYWORDS or not name.isidentifier():
        return f"[{lua_string(name)}]"
    return name


@dataclass(frozen=True)
class _RenderedMethod:
    owner: str
    separator: str
    name: str
    arguments: str
    body: tuple[str, ...]


def _method_body(method: Method) -> tuple[str, ...]:
    def expression(field: str) -> str:
        if field == method.receiver:
            return "self"
        if field == method.variadic:
            return "{...}"
        return lua_name(field)

    path = table_path(method.result)
    if method.positional:
        items = [expression(name) for name in method.fields]
        if len(items) == 1:
            return (f"return {items[0]}",)
        if not items and Shape.TABLE not in method.untagged and Shape.NIL in method.untagged:
            return ("return nil",)
        return (f"return setmetatable({{{', '.join(items)}}}, {path})",)

    entries = [f" {_table_key(name)} = {expression(name)}," for name in method.fields]
    if method.tag is not None:
        tag_field, tag = method.tag
        entries.append(f" {_table_key(tag_field)} = {lua_string(tag)},")
    return (
        f"local __self = {{{''.join(entries)} }}",
        f"return setmetatable(__self, {path})",
    )


def _render_method(owner: str, name: str, method: Method) -> _RenderedMethod:
    arguments = [lua_name(argument) for argument in method.parameters]
    if method.variadic is not None:
        arguments.append("...")
    return _RenderedMethod(
        owner=owner,
        separator="." if method.is_static else ":",
        name=lua_name(name),
        arguments=", ".join(arguments),
        body=_method_body(method),
    )


def _create_jinja_env() -> jinja2.Environment:
    env = jinja2.Environment(
        autoescape=False,  # Lua source, not HTML
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["lua_string"] = lua_string
    return env


def render_lua(module: Module) -> str:
    """Render ``module`` as a Lua chunk returning its namespaces."""
    tables = []
    for name, table in module.namespaces.items():
        instances = [
            {"key": key, "path": f"{name}.__generic_variants[{lua_string(key)}]"}
            for key in sorted(table.generic_variants)
        ]
        methods = [
            _render_method(name, method_name, method)
            for method_name, method in sorted(table.methods.items())
        ]
        for instance in instances:
            methods.extend(
                _render_method(instance["path"], method_name, method)
                for method_name, method in sorted(table.generic_variants[instance["key"]].items())
            )
        tables.append({"name": name, "instances": instances, "methods": methods})

    template = _create_jinja_env().from_string(_TEMPLATE)
    return template.render(tables=tables)
