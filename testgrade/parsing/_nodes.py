"""Small helpers over tree-sitter nodes shared by both extractors."""

from __future__ import annotations

import re
from collections.abc import Iterator

from testgrade.models import Span

# Function-like node types across the javascript/typescript/tsx grammars.
FUNCTION_NODE_TYPES = frozenset({
    "arrow_function",
    "function",
    "function_expression",
    "function_declaration",
    "generator_function",
    "generator_function_declaration",
    "method_definition",
})

# Literal node types recognised as call arguments.
SIMPLE_LITERAL_TYPES = frozenset({
    "number",
    "string",
    "template_string",
    "true",
    "false",
    "null",
    "undefined",
})

_WS_RE = re.compile(r"\s+")


def _make_query(language, source: str):
    """Create a tree-sitter Query."""
    from tree_sitter import Query

    return Query(language, source)


def _run_query(query, root_node) -> list[tuple[int, dict]]:
    """Run a query and return matches."""
    from tree_sitter import QueryCursor

    cursor = QueryCursor(query)
    return cursor.matches(root_node)


def _unwrap_node(node):
    """Unwrap a capture that may be a list of nodes."""
    if isinstance(node, list):
        return node[0] if node else None
    return node


def node_text(node) -> str:
    """Get text from a node as a str."""
    if node is None:
        return ""
    text = node.text
    if isinstance(text, bytes):
        return text.decode("utf-8", errors="replace")
    return str(text)


def compact_text(node) -> str:
    """Node text with all whitespace runs collapsed to one space."""
    return _WS_RE.sub(" ", node_text(node)).strip()


def span_of(node) -> Span:
    start, end = node.start_point, node.end_point
    return Span(
        line=start[0] + 1,
        column=start[1] + 1,
        end_line=end[0] + 1,
        end_column=end[1] + 1,
    )


def walk(node, *, skip_functions: bool = False) -> Iterator:
    """Pre-order, document-order walk using an explicit stack.

    With ``skip_functions`` the walk does not enter nested function nodes
    (the starting node itself is always entered).
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if skip_functions and current is not node and current.type in FUNCTION_NODE_TYPES:
            continue
        stack.extend(reversed(current.children))


def has_ancestor(node, types: frozenset[str], stop=None) -> bool:
    """True if any ancestor below ``stop`` has a type in ``types``."""
    parent = node.parent
    while parent is not None and not _same(parent, stop):
        if parent.type in types:
            return True
        parent = parent.parent
    return False


def _same(a, b) -> bool:
    if a is None or b is None:
        return False
    return (a.start_byte, a.end_byte, a.type) == (b.start_byte, b.end_byte, b.type)


def is_async_function(fn_node) -> bool:
    return any(child.type == "async" for child in fn_node.children)


def function_body(fn_node):
    return fn_node.child_by_field_name("body")


def string_value(node) -> str | None:
    """Content of a string literal or substitution-free template literal."""
    if node is None:
        return None
    if node.type == "string":
        text = node_text(node)
        return text[1:-1] if len(text) >= 2 else ""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        text = node_text(node)
        return text[1:-1] if len(text) >= 2 else ""
    return None


def display_name(node) -> str:
    """Readable name for a test/describe title argument."""
    value = string_value(node)
    if value is not None:
        return value
    if node is not None and node.type == "template_string":
        return node_text(node)[1:-1]
    return compact_text(node)


def number_value(node) -> float | None:
    """Numeric value of a number literal, including unary minus."""
    if node is None:
        return None
    if node.type == "unary_expression":
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        if operator is not None and node_text(operator) in ("-", "+") and argument is not None:
            inner = number_value(argument)
            if inner is None:
                return None
            return -inner if node_text(operator) == "-" else inner
        return None
    if node.type != "number":
        return None
    text = node_text(node).replace("_", "").rstrip("n")
    try:
        if text.lower().startswith(("0x", "0o", "0b")):
            return float(int(text, 0))
        return float(text)
    except ValueError:
        return None


def literal_kind(node) -> tuple[str, float | str | None] | None:
    """Classify a literal argument node as (kind, value), or None."""
    if node is None:
        return None
    if node.type == "parenthesized_expression" and node.named_child_count == 1:
        return literal_kind(node.named_children[0])
    value = number_value(node)
    if value is not None:
        return "number", value
    if node.type == "string":
        return "string", string_value(node)
    if node.type == "template_string":
        text = string_value(node)
        return ("template", text) if text is not None else None
    if node.type in ("true", "false"):
        return "boolean", node.type
    if node.type == "null":
        return "null", None
    if node.type == "undefined" or (node.type == "identifier" and node_text(node) == "undefined"):
        return "undefined", None
    if node.type == "array":
        return "array", None
    if node.type == "object":
        return "object", None
    return None


def member_property(node) -> str:
    """Property name of a member or subscript expression (computed keys included)."""
    if node.type == "member_expression":
        return node_text(node.child_by_field_name("property"))
    if node.type == "subscript_expression":
        index = node.child_by_field_name("index")
        value = string_value(index)
        return value if value is not None else compact_text(index)
    return ""


def callee_path(node) -> list[str] | None:
    """Dotted path of an identifier/member chain, e.g. ``it.only`` -> ['it', 'only'].

    Computed access with a string key counts as a property (``it['only']``).
    Returns None when the chain contains anything other than names.
    """
    parts: list[str] = []
    current = node
    while current is not None:
        if current.type in ("identifier", "this", "property_identifier"):
            parts.append(node_text(current))
            break
        if current.type == "member_expression":
            parts.append(node_text(current.child_by_field_name("property")))
            current = current.child_by_field_name("object")
            continue
        if current.type == "subscript_expression":
            index = current.child_by_field_name("index")
            value = string_value(index)
            if value is None:
                return None
            parts.append(value)
            current = current.child_by_field_name("object")
            continue
        return None
    parts.reverse()
    return parts


def callee_text(call_node) -> str:
    """Dotted callee text for a call expression, falling back to raw text."""
    fn = call_node.child_by_field_name("function")
    if fn is None:
        return ""
    path = callee_path(fn)
    if path is not None:
        return ".".join(path)
    return compact_text(fn)


def argument_nodes(call_node) -> list:
    args = call_node.child_by_field_name("arguments")
    if args is None:
        return []
    return [child for child in args.named_children if child.type != "comment"]


def statement_count(block) -> int:
    if block is None:
        return 0
    if block.type != "statement_block":
        return 1
    return sum(1 for child in block.named_children if child.type != "comment")


__all__ = [
    "FUNCTION_NODE_TYPES",
    "SIMPLE_LITERAL_TYPES",
    "argument_nodes",
    "callee_path",
    "callee_text",
    "compact_text",
    "display_name",
    "function_body",
    "has_ancestor",
    "is_async_function",
    "literal_kind",
    "member_property",
    "node_text",
    "number_value",
    "span_of",
    "statement_count",
    "string_value",
    "walk",
]
