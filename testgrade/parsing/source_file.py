"""Source fact extractor: the code under test -> SourceFactModel.

Best effort throughout. A missing or unparseable source file produces an
*unavailable* model, which scoring treats as unknown evidence rather than
as a clean result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from testgrade.fallbacks import log_best_effort_failure
from testgrade.models import (
    BoundaryComparison,
    FunctionSignature,
    Param,
    ReturnPath,
    SideEffect,
    SourceFactModel,
    Throws,
)
from testgrade.parsing import DEFAULT_GRAMMAR, PARSE_INIT_ERRORS, decode_source, grammar_for, parse_source
from testgrade.parsing._nodes import (
    FUNCTION_NODE_TYPES,
    argument_nodes,
    callee_path,
    compact_text,
    function_body,
    is_async_function,
    node_text,
    number_value,
    string_value,
    walk,
)

logger = logging.getLogger(__name__)

BOUNDARY_OPERATORS = frozenset({"<", "<=", ">", ">="})

# Calls that raise when their first argument is falsy.
_ASSERTION_CALLS = frozenset({"invariant", "assert", "assert.ok", "console.assert"})
_REJECT_CALLS = frozenset({"Promise.reject", "reject"})

SIDE_EFFECT_METHODS = frozenset({
    "push", "pop", "shift", "unshift", "splice", "set", "add", "delete",
    "clear", "emit", "dispatch", "save", "write", "writeFile",
    "writeFileSync", "send", "setItem", "removeItem", "insert", "update",
    "remove", "publish", "post", "put", "patch",
})
_SIDE_EFFECT_CALLS = frozenset({"fetch", "axios", "localStorage.setItem", "sessionStorage.setItem"})

_NAMED_FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "method_definition",
})


def _function_name(fn) -> str | None:
    """Name a function node, or None for anonymous callbacks."""
    if fn.type in _NAMED_FUNCTION_TYPES:
        name = fn.child_by_field_name("name")
        return node_text(name) if name is not None else None
    parent = fn.parent
    if parent is not None and parent.type == "variable_declarator":
        name = parent.child_by_field_name("name")
        if name is not None and name.type == "identifier":
            return node_text(name)
    if parent is not None and parent.type in ("pair", "public_field_definition", "field_definition"):
        key = parent.child_by_field_name("key") or parent.child_by_field_name("property")
        if key is not None:
            return string_value(key) or node_text(key)
    if parent is not None and parent.type == "assignment_expression":
        left = parent.child_by_field_name("left")
        if left is not None and left.type == "member_expression":
            return node_text(left.child_by_field_name("property"))
    return None


def _owner_class(fn) -> str:
    parent = fn.parent
    while parent is not None:
        if parent.type in ("class_declaration", "class", "abstract_class_declaration"):
            name = parent.child_by_field_name("name")
            return node_text(name) if name is not None else ""
        parent = parent.parent
    return ""


def _enclosing_function(node, *, named_only: bool):
    """Nearest enclosing function; with ``named_only`` anonymous callbacks are skipped."""
    parent = node.parent
    while parent is not None:
        if parent.type in FUNCTION_NODE_TYPES:
            if not named_only or _function_name(parent) is not None:
                return parent
        parent = parent.parent
    return None


def _is_exported(fn) -> bool:
    parent = fn.parent
    while parent is not None and parent.type not in ("program", "statement_block"):
        if parent.type == "export_statement":
            return True
        parent = parent.parent
    return False


def _params(fn) -> tuple[Param, ...]:
    params_node = fn.child_by_field_name("parameters")
    if params_node is None:
        single = fn.child_by_field_name("parameter")
        return (Param(node_text(single)),) if single is not None else ()
    params: list[Param] = []
    for child in params_node.named_children:
        if child.type == "identifier":
            params.append(Param(node_text(child)))
        elif child.type in ("required_parameter", "optional_parameter"):
            pattern = child.child_by_field_name("pattern")
            type_node = child.child_by_field_name("type")
            type_text = node_text(type_node).lstrip(":").strip() if type_node is not None else ""
            has_default = child.child_by_field_name("value") is not None
            params.append(Param(
                name=node_text(pattern) if pattern is not None else compact_text(child),
                type_text=type_text,
                optional=child.type == "optional_parameter" or has_default or _nullable(type_text),
            ))
        elif child.type == "assignment_pattern":
            left = child.child_by_field_name("left")
            params.append(Param(node_text(left) if left is not None else "", optional=True))
        elif child.type == "rest_pattern":
            params.append(Param(compact_text(child).lstrip("."), optional=True))
    return tuple(params)


def _nullable(type_text: str) -> bool:
    parts = {part.strip() for part in type_text.split("|")}
    return bool(parts & {"null", "undefined"})


def _branch_condition(node, fn) -> str:
    """Conditions guarding ``node`` inside ``fn``, outermost first."""
    conditions: list[str] = []
    child, parent = node, node.parent
    stop = (fn.start_byte, fn.end_byte) if fn is not None else None
    while parent is not None and (parent.start_byte, parent.end_byte) != stop:
        if parent.type == "if_statement":
            condition = compact_text(parent.child_by_field_name("condition"))
            if condition.startswith("(") and condition.endswith(")"):
                condition = condition[1:-1]
            alternative = parent.child_by_field_name("alternative")
            if alternative is not None and _contains(alternative, child):
                conditions.append(f"!({condition})")
            else:
                conditions.append(condition)
        elif parent.type == "switch_case":
            value = parent.child_by_field_name("value")
            conditions.append(f"case {compact_text(value)}")
        elif parent.type == "switch_default":
            conditions.append("default")
        elif parent.type == "catch_clause":
            conditions.append("catch")
        child, parent = parent, parent.parent
    if not conditions:
        return "always"
    return " && ".join(reversed(conditions))


def _contains(outer, inner) -> bool:
    return outer.start_byte <= inner.start_byte and inner.end_byte <= outer.end_byte


def _module_constants(root) -> dict[str, float]:
    constants: dict[str, float] = {}
    for stmt in root.named_children:
        decl = stmt
        if stmt.type == "export_statement":
            decl = stmt.child_by_field_name("declaration") or stmt
        if decl.type != "lexical_declaration" or not decl.children or node_text(decl.children[0]) != "const":
            continue
        for declarator in decl.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            value = number_value(declarator.child_by_field_name("value"))
            if name is not None and name.type == "identifier" and value is not None:
                constants[node_text(name)] = value
    return constants


def _local_names(fn) -> set[str]:
    names: set[str] = set()
    body = function_body(fn)
    if body is None:
        return names
    for node in walk(body):
        if node.type == "variable_declarator":
            name = node.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                names.add(node_text(name))
    return names


def _root_identifier(node) -> str:
    current = node
    while current is not None and current.type in ("member_expression", "subscript_expression"):
        current = current.child_by_field_name("object")
    if current is None:
        return ""
    return node_text(current) if current.type in ("identifier", "this") else ""


class _FactCollector:
    def __init__(self, root) -> None:
        self.root = root
        self.constants = _module_constants(root)
        self.functions: list[FunctionSignature] = []
        self.owners: dict[str, str] = {}
        self.throws: list[Throws] = []
        self.comparisons: list[BoundaryComparison] = []
        self.returns: list[ReturnPath] = []
        self.side_effects: list[SideEffect] = []
        self._locals: dict[tuple[int, int], set[str]] = {}

    def run(self) -> None:
        for node in walk(self.root):
            kind = node.type
            if kind in FUNCTION_NODE_TYPES:
                self._function(node)
            elif kind == "throw_statement":
                self._throw(node)
            elif kind == "binary_expression":
                self._comparison(node)
            elif kind == "return_statement":
                self._return(node)
            elif kind == "call_expression":
                self._call(node)
            elif kind in ("assignment_expression", "augmented_assignment_expression"):
                self._assignment(node, node.child_by_field_name("left"))
            elif kind == "update_expression":
                self._assignment(node, node.child_by_field_name("argument"))

    def _function(self, fn) -> None:
        name = _function_name(fn)
        if name is None:
            return
        owner = _owner_class(fn) if fn.type == "method_definition" else ""
        self.functions.append(FunctionSignature(
            name=name,
            params=_params(fn),
            line=fn.start_point[0] + 1,
            exported=_is_exported(fn),
            is_async=is_async_function(fn),
        ))
        if owner:
            self.owners[name] = owner
        body = function_body(fn)
        if body is not None and body.type != "statement_block":
            self.returns.append(ReturnPath(
                function=name,
                condition="always",
                line=body.start_point[0] + 1,
                keys=_object_keys(body),
            ))

    def _owner(self, node) -> tuple[object, str] | None:
        fn = _enclosing_function(node, named_only=True)
        if fn is None:
            return None
        return fn, _function_name(fn) or ""

    def _throw(self, node) -> None:
        found = self._owner(node)
        if found is None:
            return
        fn, name = found
        error_type, message = "", ""
        value = node.named_children[0] if node.named_children else None
        if value is not None:
            error_type, message = _describe_error(value)
        self.throws.append(Throws(
            function=name,
            condition=_branch_condition(node, fn),
            line=node.start_point[0] + 1,
            error_type=error_type,
            message=message,
        ))

    def _call(self, node) -> None:
        fn_node = node.child_by_field_name("function")
        path = callee_path(fn_node) if fn_node is not None else None
        if not path:
            return
        dotted = ".".join(path)
        found = self._owner(node)
        if found is None:
            return
        fn, name = found
        args = argument_nodes(node)
        if dotted in _ASSERTION_CALLS and args:
            self.throws.append(Throws(
                function=name,
                condition=f"!({compact_text(args[0])})",
                line=node.start_point[0] + 1,
                error_type="AssertionError",
                message=(string_value(args[1]) or "") if len(args) > 1 else "",
            ))
        elif dotted in _REJECT_CALLS and args and args[0].type == "new_expression":
            error_type, message = _describe_error(args[0])
            self.throws.append(Throws(
                function=name,
                condition=_branch_condition(node, fn),
                line=node.start_point[0] + 1,
                error_type=error_type,
                message=message,
            ))
        if dotted in _SIDE_EFFECT_CALLS or path[0] == "axios":
            self.side_effects.append(SideEffect(function=name, target=dotted, line=node.start_point[0] + 1))
        elif len(path) > 1 and path[-1] in SIDE_EFFECT_METHODS:
            root = path[0]
            if root == "this" or root not in self._locals_of(fn):
                self.side_effects.append(SideEffect(function=name, target=dotted, line=node.start_point[0] + 1))

    def _assignment(self, node, target) -> None:
        if target is None or target.type not in ("member_expression", "subscript_expression"):
            return
        found = self._owner(node)
        if found is None:
            return
        fn, name = found
        root = _root_identifier(target)
        if not root or (root != "this" and root in self._locals_of(fn)):
            return
        self.side_effects.append(SideEffect(
            function=name,
            target=compact_text(target),
            line=node.start_point[0] + 1,
        ))

    def _locals_of(self, fn) -> set[str]:
        key = (fn.start_byte, fn.end_byte)
        if key not in self._locals:
            self._locals[key] = _local_names(fn)
        return self._locals[key]

    def _comparison(self, node) -> None:
        operator = node.child_by_field_name("operator")
        if operator is None or node_text(operator) not in BOUNDARY_OPERATORS:
            return
        found = self._owner(node)
        if found is None:
            return
        _fn, name = found
        for side in (node.child_by_field_name("right"), node.child_by_field_name("left")):
            value = self._numeric(side)
            if value is None:
                continue
            self.comparisons.append(BoundaryComparison(
                function=name,
                operator=node_text(operator),
                operand=compact_text(side),
                value=value,
                line=node.start_point[0] + 1,
            ))
            return

    def _numeric(self, node) -> float | None:
        if node is None:
            return None
        value = number_value(node)
        if value is not None:
            return value
        if node.type == "identifier":
            return self.constants.get(node_text(node))
        return None

    def _return(self, node) -> None:
        fn = _enclosing_function(node, named_only=False)
        if fn is None:
            return
        name = _function_name(fn)
        if name is None:
            return
        self.returns.append(ReturnPath(
            function=name,
            condition=_branch_condition(node, fn),
            line=node.start_point[0] + 1,
            keys=_object_keys(node.named_children[0]) if node.named_children else (),
        ))


def _object_keys(node) -> tuple[str, ...]:
    """Property names of a returned object literal, in source order."""
    while node is not None and node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    if node is None or node.type != "object":
        return ()
    keys = []
    for child in node.named_children:
        if child.type == "shorthand_property_identifier":
            keys.append(node_text(child))
        elif child.type in ("pair", "method_definition"):
            key = child.child_by_field_name("key" if child.type == "pair" else "name")
            if key is None:
                continue
            text = string_value(key) if key.type == "string" else node_text(key)
            if text:
                keys.append(text)
    return tuple(keys)


def _describe_error(value) -> tuple[str, str]:
    """(error type, message) for ``new X('msg')``, ``createError(...)`` or a rethrown name."""
    if value.type == "new_expression":
        ctor = value.child_by_field_name("constructor")
        args = argument_nodes(value)
        message = string_value(args[0]) if args else None
        return compact_text(ctor), message or ""
    if value.type == "call_expression":
        fn = value.child_by_field_name("function")
        args = argument_nodes(value)
        message = string_value(args[0]) if args else None
        return compact_text(fn), message or ""
    if value.type == "identifier":
        return node_text(value), ""
    return "", string_value(value) or ""


def extract_facts(
    source: bytes | str | None,
    test_imports: Iterable[str] = (),
    source_path: str = "",
) -> SourceFactModel:
    """Extract facts from the mapped source file.

    ``test_imports`` narrows the facts to the functions (or classes) the
    test imports, when that narrowing leaves anything behind.
    """
    if source is None:
        return SourceFactModel.unknown()
    decoded = decode_source(source)
    if decoded is None:
        logger.debug("source file %s is not text; treating facts as unknown", source_path or "<source>")
        return SourceFactModel.unknown()
    data, _text = decoded
    grammar = grammar_for(source_path) or DEFAULT_GRAMMAR
    try:
        tree, _language = parse_source(data, grammar)
    except PARSE_INIT_ERRORS as exc:
        log_best_effort_failure(logger, f"parse source file {source_path or '<source>'}", exc)
        return SourceFactModel.unknown()

    collector = _FactCollector(tree.root_node)
    collector.run()
    model = SourceFactModel(
        available=True,
        functions=tuple(collector.functions),
        throws=tuple(collector.throws),
        comparisons=tuple(collector.comparisons),
        returns=tuple(collector.returns),
        side_effects=tuple(collector.side_effects),
        partial=tree.root_node.has_error,
    )
    return _restrict(model, set(test_imports), collector.owners)


def _restrict(model: SourceFactModel, imported: set[str], owners: dict[str, str]) -> SourceFactModel:
    if not imported or "*" in imported:
        return model
    keep = {
        fn.name for fn in model.functions
        if fn.name in imported or owners.get(fn.name, "") in imported
    }
    if not keep:
        return model
    return SourceFactModel(
        available=True,
        functions=tuple(f for f in model.functions if f.name in keep),
        throws=tuple(f for f in model.throws if f.function in keep),
        comparisons=tuple(f for f in model.comparisons if f.function in keep),
        returns=tuple(f for f in model.returns if f.function in keep),
        side_effects=tuple(f for f in model.side_effects if f.function in keep),
        partial=model.partial,
    )


__all__ = ["BOUNDARY_OPERATORS", "SIDE_EFFECT_METHODS", "extract_facts"]
