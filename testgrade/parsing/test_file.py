"""Syntax extractor: one JS/TS test file -> TestFileModel.

Handles nested describe blocks to any depth, ``it.each`` tables, focus and
skip modifiers (``it.only``, ``xit``, ``it['skip']``), and the common
assertion styles: Jest/Vitest/Playwright ``expect`` chains, chai
``expect(...).to`` and ``x.should`` chains, node ``assert`` calls, and
Cypress ``cy.get(...).should(...)`` chains with implicit ``cy.get`` /
``cy.contains`` existence checks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from testgrade.classify import detect_framework
from testgrade.enums import Framework
from testgrade.models import (
    Assertion,
    Binding,
    Hook,
    Import,
    LiteralArg,
    Marker,
    MockDecl,
    ParseFailure,
    Span,
    TestCase,
    TestFileModel,
)
from testgrade.parsing import PARSE_INIT_ERRORS, decode_source, grammar_for, parse_source
from testgrade.parsing._nodes import (
    FUNCTION_NODE_TYPES,
    _make_query,
    _run_query,
    _unwrap_node,
    argument_nodes,
    callee_path,
    callee_text,
    compact_text,
    display_name,
    function_body,
    has_ancestor,
    is_async_function,
    literal_kind,
    member_property,
    node_text,
    span_of,
    statement_count,
    string_value,
    walk,
)
from testgrade.strength import EXPECT_STRENGTH

logger = logging.getLogger(__name__)

IMPORT_QUERY = "(import_statement source: (string) @path) @import"

_DESCRIBE_ROOTS = frozenset({"describe", "context", "suite", "fdescribe", "xdescribe"})
_TEST_ROOTS = frozenset({"it", "test", "specify", "fit", "ftest", "xit", "xtest", "xspecify"})
_HOOK_NAMES: dict[str, str] = {
    "beforeEach": "beforeEach",
    "afterEach": "afterEach",
    "beforeAll": "beforeAll",
    "afterAll": "afterAll",
    "before": "beforeAll",
    "after": "afterAll",
}
_BLOCK_MODIFIERS = frozenset({
    "skip", "only", "todo", "concurrent", "serial", "parallel",
    "sequential", "fixme", "failing", "each",
})
_FOCUS_ROOTS = frozenset({"fit", "ftest", "fdescribe"})

# chai words that carry no meaning of their own.
_CHAI_LANGUAGE = frozenset({
    "to", "be", "been", "is", "that", "which", "and", "has", "have",
    "with", "at", "of", "same", "but", "does", "still", "also",
})
_CHAI_FLAGS = frozenset({"deep", "nested", "own", "ordered", "any", "all", "itself"})
_ASYNC_MODIFIERS = frozenset({"resolves", "rejects", "eventually"})

_MOCK_APIS: dict[str, str] = {
    "jest.mock": "module",
    "jest.doMock": "module",
    "jest.unstable_mockModule": "module",
    "vi.mock": "module",
    "vi.doMock": "module",
    "jest.fn": "function",
    "vi.fn": "function",
    "sinon.fake": "function",
    "sinon.stub": "function",
    "sinon.mock": "function",
    "jest.spyOn": "spy",
    "vi.spyOn": "spy",
    "sinon.spy": "spy",
    "sinon.replace": "spy",
    "jest.useFakeTimers": "timer",
    "vi.useFakeTimers": "timer",
    "sinon.useFakeTimers": "timer",
    "cy.intercept": "network",
    "cy.stub": "function",
    "cy.spy": "spy",
    "page.route": "network",
    "nock": "network",
}

MUTATING_METHODS = frozenset({
    "push", "pop", "shift", "unshift", "splice", "sort", "reverse",
    "fill", "set", "add", "delete", "clear",
})

# Calls whose literal arguments are plumbing rather than inputs under test.
_INCIDENTAL_ROOTS = frozenset({
    "cy", "page", "jest", "vi", "sinon", "screen", "console", "expect",
    "assert", "document", "window", "Promise", "JSON", "Object", "Array",
    "Math", "describe", "it", "test", "userEvent", "fireEvent", "waitFor",
})

_CUSTOM_ASSERT_RE = re.compile(r"^(?:expect|assert|verify|check)[A-Z_]\w*$")

_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})

# Nodes that add a path through a test body.
_BRANCH_TYPES = frozenset({
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
    "ternary_expression",
})
_BRANCH_OPERATORS = frozenset({"&&", "||", "??"})

# Statements after these never run; hoisted declarations are exempt.
_EXIT_TYPES = frozenset({"return_statement", "throw_statement"})
_HOISTED_TYPES = frozenset({"comment", "function_declaration", "generator_function_declaration"})


@dataclass(frozen=True)
class _Block:
    kind: str  # describe | test | hook
    name: str
    fn: object | None
    callee: str
    callee_node: object
    skipped: bool = False
    focused: bool = False
    todo: bool = False
    table: object | None = None


@dataclass
class _BodyScan:
    assertions: list[Assertion] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    literal_calls: list[tuple[str, str]] = field(default_factory=list)
    literals: list[LiteralArg] = field(default_factory=list)
    mocks: list[MockDecl] = field(default_factory=list)
    mutated: set[str] = field(default_factory=set)
    assigned: set[str] = field(default_factory=set)
    declared: set[str] = field(default_factory=set)
    await_count: int = 0
    has_try_catch: bool = False
    has_assertion_guard: bool = False
    returns_promise: bool = False
    branch_count: int = 0
    unreachable: list[Span] = field(default_factory=list)


# ── Block classification ──────────────────────────────────────


def _classify_block(call) -> _Block | None:
    """Recognise describe/test/hook calls, including ``it.each(table)(...)``."""
    fn = call.child_by_field_name("function")
    if fn is None:
        return None
    table = None
    callee_node = fn
    if fn.type == "call_expression":
        inner = fn.child_by_field_name("function")
        path = callee_path(inner) if inner is not None else None
        if not path or path[-1] != "each":
            return None
        table = fn.child_by_field_name("arguments")
        callee_node = inner
    else:
        path = callee_path(fn)
        if not path or "each" in path:
            return None

    root, rest = path[0], path[1:]
    if root == "test" and rest[:1] == ["describe"]:
        kind, rest = "describe", rest[1:]
    elif root == "test" and rest[:1] and rest[0] in _HOOK_NAMES:
        return _hook_block(call, _HOOK_NAMES[rest[0]], ".".join(path), callee_node, rest[1:])
    elif root in _DESCRIBE_ROOTS:
        kind = "describe"
    elif root in _TEST_ROOTS:
        kind = "test"
    elif root in _HOOK_NAMES:
        return _hook_block(call, _HOOK_NAMES[root], root, callee_node, rest)
    else:
        return None
    if any(part not in _BLOCK_MODIFIERS for part in rest):
        return None

    args = argument_nodes(call)
    name = display_name(args[0]) if args else ""
    fn_arg = None
    for arg in args[1:]:
        if arg.type in FUNCTION_NODE_TYPES:
            fn_arg = arg
    return _Block(
        kind=kind,
        name=name,
        fn=fn_arg,
        callee=".".join(path),
        callee_node=callee_node,
        skipped=root.startswith("x") or "skip" in rest or "fixme" in rest,
        focused=root in _FOCUS_ROOTS or "only" in rest,
        todo="todo" in rest,
        table=table,
    )


def _hook_block(call, hook_kind: str, callee: str, callee_node, rest: list[str]) -> _Block | None:
    if rest:
        return None
    fn_arg = None
    for arg in argument_nodes(call):
        if arg.type in FUNCTION_NODE_TYPES:
            fn_arg = arg
    return _Block(kind="hook", name=hook_kind, fn=fn_arg, callee=callee, callee_node=callee_node)


# ── Assertion chains ──────────────────────────────────────────


def _key(node) -> tuple[int, int]:
    return node.start_byte, node.end_byte


def _is_chain_top(node) -> bool:
    parent = node.parent
    if parent is None:
        return True
    if parent.type in ("member_expression", "subscript_expression"):
        obj = parent.child_by_field_name("object")
        return obj is None or _key(obj) != _key(node)
    if parent.type == "call_expression":
        fn = parent.child_by_field_name("function")
        return fn is None or _key(fn) != _key(node)
    return True


def _chain_links(top) -> list[tuple[str, object | None]]:
    """Flatten ``a.b(x).c.d(y)`` into [(a, None), (b, args), (c, None), (d, args)]."""
    links: list[tuple[str, object | None]] = []
    current = top
    while current is not None:
        if current.type == "call_expression":
            fn = current.child_by_field_name("function")
            args = current.child_by_field_name("arguments")
            if fn is None:
                break
            if fn.type in ("member_expression", "subscript_expression"):
                links.append((member_property(fn), args))
                current = fn.child_by_field_name("object")
                continue
            if fn.type == "identifier":
                links.append((node_text(fn), args))
            else:
                links.append(("", args))
            break
        if current.type in ("member_expression", "subscript_expression"):
            links.append((member_property(current), None))
            current = current.child_by_field_name("object")
            continue
        if current.type in ("identifier", "this"):
            links.append((node_text(current), None))
        else:
            links.append(("", None))
        break
    links.reverse()
    return links


def _is_jest_matcher(name: str) -> bool:
    if name in EXPECT_STRENGTH:
        return True
    return len(name) > 2 and name.startswith("to") and name[2].isupper()


def _args_text(args) -> tuple[str, ...]:
    if args is None:
        return ()
    return tuple(compact_text(a) for a in args.named_children if a.type != "comment")


def _first_arg_text(args) -> str:
    texts = _args_text(args)
    return texts[0] if texts else ""


class _ChainReader:
    """Turns one chain into assertions and remembers which argument lists
    hold the subject and the expected values."""

    def __init__(self) -> None:
        self.arg_roles: dict[tuple[int, int], str] = {}

    def read(self, top, links) -> list[tuple[str, str, str, tuple[str, ...], bool, tuple[str, ...]]]:
        """Return (matcher, style, subject, args, negated, modifiers) tuples."""
        if not links:
            return []
        if links[0][0] == "chai" and len(links) > 1 and links[1][0] in ("expect", "assert"):
            links = links[1:]
        root, root_args = links[0]
        if root == "expect":
            return self._expect_chain(links)
        if root == "assert":
            return self._assert_chain(links)
        if root == "sinon" and len(links) > 2 and links[1][0] == "assert":
            return self._assert_chain(links[1:])
        found = self._should_chain(links)
        if found:
            return found
        if root == "cy":
            return self._implicit_cypress(links)
        if len(links) == 1 and root_args is not None and _CUSTOM_ASSERT_RE.match(root):
            return [("custom", "custom", _first_arg_text(root_args), _args_text(root_args), False, ())]
        return []

    def _expect_chain(self, links):
        root_args = links[0][1]
        index = 1
        modifiers: list[str] = []
        if root_args is None:
            # expect.soft(x) / expect.poll(fn); everything else (expect.assertions,
            # expect.any, expect.objectContaining) is not an assertion.
            if len(links) > 1 and links[1][0] in ("soft", "poll") and links[1][1] is not None:
                root_args = links[1][1]
                modifiers.append(links[1][0])
                index = 2
            else:
                return []
        rest = links[index:]
        if not rest:
            return []
        self.arg_roles[_key(root_args)] = "subject"
        return self._tail(rest, "expect", _first_arg_text(root_args), modifiers)

    def _tail(self, rest, default_style: str, subject: str, modifiers: list[str]):
        negated = False
        for name, _args in rest[:-1]:
            if name == "not":
                negated = not negated
            elif name in _ASYNC_MODIFIERS or name in _CHAI_FLAGS:
                modifiers.append(name)
        matcher, args = rest[-1]
        if matcher == "not" or (args is None and matcher in _CHAI_LANGUAGE):
            return []
        style = default_style
        if default_style == "expect" and not _is_jest_matcher(matcher):
            style = "chai"
        if args is not None:
            self.arg_roles[_key(args)] = "expected"
        return [(matcher, style, subject, _args_text(args), negated, tuple(modifiers))]

    def _assert_chain(self, links):
        root_args = links[0][1]
        if len(links) == 1 and root_args is not None:
            matcher, args = "assert", root_args
        elif len(links) == 2 and links[1][1] is not None:
            matcher, args = f"assert.{links[1][0]}", links[1][1]
        else:
            return []
        self.arg_roles[_key(args)] = "assert"
        texts = _args_text(args)
        subject = texts[0] if texts else ""
        return [(matcher, "assert", subject, texts[1:], False, ())]

    def _should_chain(self, links):
        found = []
        for idx, (name, args) in enumerate(links[1:], start=1):
            if name == "should" and args is None:
                # chai should: value.should.equal(3)
                subject = ".".join(n for n, _ in links[:idx] if n)
                return self._tail(links[idx + 1:], "chai", subject, []) if links[idx + 1:] else []
            if name not in ("should", "and") or args is None:
                continue
            arg_nodes = [a for a in args.named_children if a.type != "comment"]
            chainer = string_value(arg_nodes[0]) if arg_nodes else None
            if chainer is None:
                continue
            negated = chainer.startswith("not.")
            matcher = chainer[4:] if negated else chainer
            self.arg_roles[_key(args)] = "expected"
            subject = ".".join(n for n, _ in links[:idx] if n)
            found.append((matcher, "should", subject, _args_text(args)[1:], negated, ()))
        return found

    def _implicit_cypress(self, links):
        for name, args in links:
            if name == "contains" and args is not None:
                self.arg_roles[_key(args)] = "expected"
                return [("cy.contains", "cypress", "cy", _args_text(args), False, ())]
        for name, args in links:
            if name in ("get", "find") and args is not None:
                return [(f"cy.{name}", "cypress", "cy", _args_text(args), False, ())]
        return []


def _is_awaited(top) -> bool:
    parent = top.parent
    if parent is None:
        return False
    if parent.type in ("await_expression", "return_statement"):
        return True
    return parent.type == "arrow_function"


def _root_name(node) -> str | None:
    current = node
    while current is not None:
        if current.type == "identifier":
            return node_text(current)
        if current.type in ("member_expression", "subscript_expression"):
            current = current.child_by_field_name("object")
            continue
        if current.type == "parenthesized_expression" and current.named_child_count:
            current = current.named_children[0]
            continue
        return None
    return None


def _mentions(node, name: str) -> bool:
    return any(n.type == "identifier" and node_text(n) == name for n in walk(node))


def _operator(node) -> str:
    op = node.child_by_field_name("operator")
    return node_text(op) if op is not None else ""


def _unreachable_after_exit(block):
    """First statement in ``block`` that follows a return or throw."""
    exited = False
    for child in block.named_children:
        if exited and child.type not in _HOISTED_TYPES:
            return child
        if child.type in _EXIT_TYPES:
            exited = True
    return None


# ── Extractor ─────────────────────────────────────────────────


class _Extractor:
    def __init__(self, framework: Framework) -> None:
        self.framework = framework
        self.tests: list[TestCase] = []
        self.hooks: list[Hook] = []
        self.mocks: list[MockDecl] = []
        self.literals: list[LiteralArg] = []
        self.markers: list[Marker] = []
        self._candidates: list[tuple[str, str, object, tuple[str, ...], bool]] = []
        self._test_scans: list[_BodyScan] = []

    def run(self, root) -> None:
        stack = [(child, (), False, True) for child in reversed(root.children)]
        while stack:
            node, chain, skipped, top_level = stack.pop()
            if top_level and node.type in _DECLARATION_TYPES:
                self._record_declaration(node, chain)
            if node.type == "call_expression":
                block = _classify_block(node)
                if block is not None:
                    self._handle_block(block, node, chain, skipped, stack)
                    continue
                mock = _mock_from_call(node, "module", None)
                if mock is not None:
                    self.mocks.append(mock)
            stack.extend((child, chain, skipped, False) for child in reversed(node.children))

    def _handle_block(self, block: _Block, call, chain, skipped, stack) -> None:
        if block.kind == "hook":
            self._build_hook(block, call, chain)
            return
        self.markers.append(Marker(
            block=block.kind,
            name=block.name,
            callee=block.callee,
            span=span_of(block.callee_node),
            focused=block.focused,
            skipped=block.skipped,
        ))
        if block.kind == "test":
            self._build_test(block, call, chain, skipped)
            return
        body = function_body(block.fn) if block.fn is not None else None
        if body is None:
            return
        children = body.named_children if body.type == "statement_block" else [body]
        inner = (*chain, block.name)
        stack.extend(
            (child, inner, skipped or block.skipped, True) for child in reversed(children)
        )

    def _build_test(self, block: _Block, call, chain, inherited_skip: bool) -> None:
        index = len(self.tests)
        scan = self._scan(block.fn, index, "test") if block.fn is not None else _BodyScan()
        if block.table is not None:
            scan.literals.extend(_table_literals(block.table, index))
        self._test_scans.append(scan)
        self.literals.extend(scan.literals)
        self.mocks.extend(scan.mocks)
        body = function_body(block.fn) if block.fn is not None else None
        self.tests.append(TestCase(
            name=block.name,
            span=span_of(call),
            assertions=tuple(scan.assertions),
            is_async=block.fn is not None and is_async_function(block.fn),
            describe_chain=tuple(chain),
            marker=block.callee,
            skipped=inherited_skip or block.skipped or (block.fn is None and not block.todo),
            focused=block.focused,
            todo=block.todo,
            parameterized=block.table is not None,
            statement_count=statement_count(body),
            await_count=scan.await_count,
            returns_promise=scan.returns_promise,
            calls=tuple(scan.calls),
            literal_calls=tuple(scan.literal_calls),
            has_try_catch=scan.has_try_catch,
            has_assertion_guard=scan.has_assertion_guard,
            branch_count=scan.branch_count,
            unreachable=tuple(scan.unreachable),
        ))

    def _build_hook(self, block: _Block, call, chain) -> None:
        scan = self._scan(block.fn, None, "hook") if block.fn is not None else _BodyScan()
        self.mocks.extend(scan.mocks)
        body = function_body(block.fn) if block.fn is not None else None
        self.hooks.append(Hook(
            kind=block.name,
            span=span_of(call),
            describe_chain=tuple(chain),
            assigned=tuple(sorted(scan.assigned | scan.mutated)),
            calls=tuple(scan.calls),
            statement_count=statement_count(body),
        ))

    def _record_declaration(self, node, chain) -> None:
        kind = node_text(node.children[0]) if node.children else ""
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            value = declarator.child_by_field_name("value")
            container = value is not None and value.type in ("array", "object", "new_expression")
            if kind == "const" and not container:
                continue
            self._candidates.append((node_text(name_node), kind, declarator, tuple(chain), container))

    # ── body scanning ─────────────────────────────────────────

    def _scan(self, fn_node, test_index: int | None, scope: str) -> _BodyScan:
        scan = _BodyScan()
        body = function_body(fn_node)
        if body is None:
            return scan
        if body.type != "statement_block":
            scan.returns_promise = body.type in ("call_expression", "await_expression")
        reader = _ChainReader()
        for node in walk(body):
            kind = node.type
            if kind in _BRANCH_TYPES or (
                kind == "binary_expression" and _operator(node) in _BRANCH_OPERATORS
            ):
                scan.branch_count += 1
            if kind == "statement_block":
                dead = _unreachable_after_exit(node)
                if dead is not None:
                    scan.unreachable.append(span_of(dead))
            if kind == "await_expression":
                scan.await_count += 1
            elif kind == "try_statement":
                scan.has_try_catch = True
            elif kind == "return_statement":
                if node.named_child_count and not has_ancestor(node, FUNCTION_NODE_TYPES, stop=fn_node):
                    scan.returns_promise = True
            elif kind == "variable_declarator":
                name = node.child_by_field_name("name")
                if name is not None and name.type == "identifier":
                    scan.declared.add(node_text(name))
            elif kind in ("assignment_expression", "augmented_assignment_expression"):
                self._note_assignment(node, scan)
            elif kind == "update_expression":
                root = _root_name(node.child_by_field_name("argument"))
                if root:
                    scan.mutated.add(root)
            elif kind == "member_expression" and _is_chain_top(node):
                if node.parent is not None and node.parent.type == "expression_statement":
                    self._collect_assertions(node, fn_node, reader, scan)
            elif kind in ("call_expression", "new_expression"):
                self._scan_call(node, fn_node, test_index, scope, reader, scan)
        return scan

    def _note_assignment(self, node, scan: _BodyScan) -> None:
        left = node.child_by_field_name("left")
        root = _root_name(left)
        if not root:
            return
        if node.type == "augmented_assignment_expression" or left.type != "identifier":
            scan.mutated.add(root)
            return
        scan.assigned.add(root)
        right = node.child_by_field_name("right")
        if right is not None and _mentions(right, root):
            scan.mutated.add(root)

    def _scan_call(self, node, fn_node, test_index, scope, reader: _ChainReader, scan: _BodyScan) -> None:
        if node.type == "call_expression":
            fn = node.child_by_field_name("function")
            path = callee_path(fn) if fn is not None else None
            if path is not None:
                dotted = ".".join(path)
                if dotted in ("expect.assertions", "expect.hasAssertions"):
                    scan.has_assertion_guard = True
                if len(path) > 1 and path[-1] in MUTATING_METHODS:
                    scan.mutated.add(path[0])
                if path[0] not in ("expect", "assert"):
                    scan.calls.append(dotted)
            mock = _mock_from_call(node, scope, test_index)
            if mock is not None:
                scan.mocks.append(mock)
            if _is_chain_top(node):
                self._collect_assertions(node, fn_node, reader, scan)
            callee = callee_text(node)
        else:
            callee = "new " + compact_text(node.child_by_field_name("constructor"))
        if test_index is not None:
            self._collect_literals(node, callee, test_index, reader, scan)

    def _collect_assertions(self, top, fn_node, reader: _ChainReader, scan: _BodyScan) -> None:
        found = reader.read(top, _chain_links(top))
        if not found:
            return
        span = span_of(top)
        awaited = _is_awaited(top)
        in_catch = has_ancestor(top, frozenset({"catch_clause"}), stop=fn_node)
        for matcher, style, subject, args, negated, modifiers in found:
            scan.assertions.append(Assertion(
                matcher=matcher,
                style=style,
                span=span,
                subject=subject,
                args=args,
                negated=negated,
                modifiers=modifiers,
                awaited=awaited,
                in_catch=in_catch,
            ))

    def _collect_literals(self, call, callee: str, test_index: int, reader: _ChainReader, scan: _BodyScan) -> None:
        args = call.child_by_field_name("arguments")
        if args is None or args.type != "arguments":
            return
        role_kind = reader.arg_roles.get(_key(args))
        root = callee.split(".", 1)[0]
        arg_nodes = [a for a in args.named_children if a.type != "comment"]
        texts: list[str] = []
        all_literal = bool(arg_nodes)
        for position, arg in enumerate(arg_nodes):
            classified = literal_kind(arg)
            if classified is None:
                all_literal = False
                continue
            if role_kind == "assert":
                role = "subject" if position == 0 else "expected"
            elif role_kind is not None:
                role = role_kind
            elif root in _INCIDENTAL_ROOTS:
                role = "incidental"
            else:
                role = "input"
            lit_kind, value = classified
            text = compact_text(arg)
            texts.append(text)
            scan.literals.append(LiteralArg(
                kind=lit_kind,
                text=text,
                span=span_of(arg),
                test_index=test_index,
                callee=callee,
                position=position,
                role=role,
                value=value,
            ))
        if all_literal and role_kind is None and root not in _INCIDENTAL_ROOTS:
            scan.literal_calls.append((callee, ", ".join(texts)))

    # ── finalisation ──────────────────────────────────────────

    def bindings(self) -> list[Binding]:
        found: list[Binding] = []
        for name, kind, declarator, chain, container in self._candidates:
            reset_by = sorted({
                hook.kind for hook in self.hooks
                if name in hook.assigned and _chains_overlap(hook.describe_chain, chain)
            })
            mutated_in = tuple(
                idx for idx, (test, scan) in enumerate(zip(self.tests, self._test_scans))
                if name in scan.mutated
                and name not in scan.declared
                and test.describe_chain[: len(chain)] == chain
            )
            found.append(Binding(
                name=name,
                kind=kind,
                span=span_of(declarator),
                describe_chain=chain,
                mutable_container=container,
                reset_by=tuple(reset_by),
                mutated_in=mutated_in,
            ))
        return found


def _chains_overlap(a: tuple[str, ...], b: tuple[str, ...]) -> bool:
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


def _mock_from_call(call, scope: str, test_index: int | None) -> MockDecl | None:
    fn = call.child_by_field_name("function")
    path = callee_path(fn) if fn is not None else None
    if not path:
        return None
    api = ".".join(path)
    kind = _MOCK_APIS.get(api)
    if kind is None:
        return None
    args = argument_nodes(call)
    target = ""
    if args:
        target = string_value(args[0])
        if target is None:
            target = compact_text(args[0])
        if kind == "spy" and len(args) > 1:
            method = string_value(args[1])
            if method:
                target = f"{target}.{method}"
    return MockDecl(api=api, kind=kind, span=span_of(call), target=target, scope=scope, test_index=test_index)


def _table_literals(table, test_index: int) -> list[LiteralArg]:
    literals: list[LiteralArg] = []
    for node in walk(table):
        if node.type in ("array", "object"):
            continue
        classified = literal_kind(node)
        if classified is None:
            continue
        if node.parent is not None and node.parent.type == "unary_expression":
            continue
        lit_kind, value = classified
        literals.append(LiteralArg(
            kind=lit_kind,
            text=compact_text(node),
            span=span_of(node),
            test_index=test_index,
            callee="each",
            role="input",
            value=value,
        ))
    return literals


# ── Imports ───────────────────────────────────────────────────


def _collect_imports(root, language) -> list[Import]:
    imports: list[Import] = []
    query = _make_query(language, IMPORT_QUERY)
    for _pattern, captures in _run_query(query, root):
        stmt = _unwrap_node(captures.get("import"))
        source = _unwrap_node(captures.get("path"))
        if stmt is None or source is None:
            continue
        imports.append(Import(
            source=string_value(source) or "",
            names=tuple(_import_names(stmt)),
            line=stmt.start_point[0] + 1,
        ))
    for node in walk(root):
        if node.type != "call_expression":
            continue
        fn = node.child_by_field_name("function")
        if fn is None or fn.type != "identifier" or node_text(fn) != "require":
            continue
        args = argument_nodes(node)
        source = string_value(args[0]) if args else None
        if source is None:
            continue
        names: list[str] = []
        parent = node.parent
        if parent is not None and parent.type == "variable_declarator":
            target = parent.child_by_field_name("name")
            if target is not None and target.type == "identifier":
                names.append(node_text(target))
            elif target is not None:
                names.extend(
                    node_text(n) for n in walk(target)
                    if n.type in ("shorthand_property_identifier_pattern", "property_identifier")
                )
        imports.append(Import(source=source, names=tuple(names), line=node.start_point[0] + 1))
    imports.sort(key=lambda imp: imp.line)
    return imports


def _import_names(stmt) -> list[str]:
    names: list[str] = []
    for node in walk(stmt):
        if node.type == "import_specifier":
            name = node.child_by_field_name("name")
            if name is not None:
                names.append(node_text(name))
        elif node.type == "namespace_import":
            names.append("*")
        elif node.type == "identifier" and node.parent is not None and node.parent.type == "import_clause":
            names.append(node_text(node))
    return names


# ── Entry point ───────────────────────────────────────────────


def extract(
    content: bytes | str,
    file_path: str,
    framework: Framework | None = None,
) -> TestFileModel:
    """Parse one test file into its structural model.

    Raises ParseFailure only when the input is not JS/TS at all (wrong
    suffix, binary content) or the grammar cannot be loaded. Malformed
    syntax yields a best-effort model flagged ``partial``.
    """
    grammar = grammar_for(file_path)
    decoded = decode_source(content)
    if grammar is None:
        raise ParseFailure(file_path, ParseFailure.UNSUPPORTED_SYNTAX, "not a JavaScript/TypeScript file")
    if decoded is None:
        raise ParseFailure(file_path, ParseFailure.UNSUPPORTED_SYNTAX, "content is not UTF-8 text")
    data, text = decoded
    try:
        tree, language = parse_source(data, grammar)
        root = tree.root_node
        imports = _collect_imports(root, language)
    except PARSE_INIT_ERRORS as exc:
        raise ParseFailure(file_path, ParseFailure.PARSER_UNAVAILABLE, str(exc)) from exc

    detected = framework or detect_framework(imports, text)
    extractor = _Extractor(detected)
    extractor.run(root)
    return TestFileModel(
        path=file_path,
        framework=detected,
        imports=tuple(imports),
        tests=tuple(extractor.tests),
        hooks=tuple(extractor.hooks),
        mocks=tuple(extractor.mocks),
        bindings=tuple(extractor.bindings()),
        literals=tuple(extractor.literals),
        markers=tuple(extractor.markers),
        lines=tuple(text.splitlines()),
        partial=root.has_error,
    )


__all__ = ["IMPORT_QUERY", "MUTATING_METHODS", "extract"]
