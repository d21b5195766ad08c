"""Shared predicates for rule modules."""

from __future__ import annotations

import re
from collections.abc import Iterable

from testgrade.models import Assertion, LiteralArg, TestCase, TestFileModel

ERROR_NAME_RE = re.compile(
    r"\b(?:throws?|throwing|errors?|rejects?|rejected|fails?|failure|invalid|exceptions?|refuses?)\b",
    re.IGNORECASE,
)
BOUNDARY_NAME_RE = re.compile(
    r"\b(?:boundary|boundaries|edge|limits?|min(?:imum)?|max(?:imum)?|zero|empty|negative|"
    r"null|undefined|overflow|threshold|exactly|at least|at most)\b",
    re.IGNORECASE,
)

_LITERAL_TEXT_RE = re.compile(
    r"""^(?:[-+]?\d[\d_]*(?:\.\d+)?(?:e[-+]?\d+)?n?|'[^']*'|"[^"]*"|`[^`$]*`|true|false|null|undefined)$""",
    re.IGNORECASE,
)
_IDENTIFIER_TEXT_RE = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*$")

CALL_VERIFICATION_MATCHERS = frozenset({
    "toHaveBeenCalled",
    "toHaveBeenCalledWith",
    "toHaveBeenCalledTimes",
    "toHaveBeenNthCalledWith",
    "toHaveBeenLastCalledWith",
    "toBeCalled",
    "toBeCalledWith",
    "toBeCalledTimes",
    "called",
    "calledWith",
    "calledOnce",
    "calledTwice",
    "calledOnceWith",
    "callCount",
    "have.been.called",
    "have.been.calledWith",
    "have.been.calledOnce",
    "assert.called",
    "assert.calledWith",
    "assert.calledOnce",
    "assert.callCount",
})

# Roles of literals that feed the code under test.
INPUT_ROLES = frozenset({"input", "subject"})


def clamp(value: float, low: float = 0, high: float = 25) -> float:
    return max(low, min(high, value))


def capped(count: int, each: float, cap: float) -> float:
    """Negative delta of ``each`` per finding, bounded by ``cap``."""
    return -min(count * each, cap)


def is_literal_text(text: str) -> bool:
    return bool(_LITERAL_TEXT_RE.match(text.strip()))


def is_identifier_text(text: str) -> bool:
    return bool(_IDENTIFIER_TEXT_RE.match(text.strip()))


def has_literal_subject(assertion: Assertion) -> bool:
    if assertion.style in ("cypress", "custom", "should"):
        return False
    return bool(assertion.subject) and is_literal_text(assertion.subject)


def is_error_test(test: TestCase) -> bool:
    return any(a.is_error_assertion or a.in_catch for a in test.assertions)


def error_tests(model: TestFileModel) -> list[TestCase]:
    return [t for t in model.active_tests if is_error_test(t)]


def calls_function(test: TestCase, name: str) -> bool:
    """True when the test body calls ``name`` directly or as a method."""
    if not name:
        return False
    suffix = "." + name
    return any(call == name or call.endswith(suffix) for call in test.calls)


def edge_kind(literal: LiteralArg) -> str | None:
    """Which edge class a literal belongs to, if any."""
    if literal.kind == "number":
        if literal.value is None:
            return None
        value = float(literal.value)
        if value == 0:
            return "zero"
        if value < 0:
            return "negative"
        return None
    if literal.kind in ("string", "template"):
        return "empty-string" if literal.value == "" else None
    if literal.kind in ("null", "undefined"):
        return "nullish"
    if literal.kind in ("array", "object") and literal.is_edge:
        return "empty-collection"
    return None


def edge_kinds(literals: Iterable[LiteralArg]) -> set[str]:
    return {kind for kind in map(edge_kind, literals) if kind is not None}


def input_literals(model: TestFileModel) -> list[LiteralArg]:
    active = {idx for idx, test in enumerate(model.tests) if not test.skipped and not test.todo}
    return [
        lit for lit in model.literals
        if lit.role in INPUT_ROLES and lit.test_index in active
    ]


def file_stem(path: str) -> str:
    """``src/__tests__/cart.test.ts`` -> ``cart``."""
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    stem = name.split(".", 1)[0]
    return stem.lower()


__all__ = [
    "BOUNDARY_NAME_RE",
    "CALL_VERIFICATION_MATCHERS",
    "ERROR_NAME_RE",
    "INPUT_ROLES",
    "calls_function",
    "capped",
    "clamp",
    "edge_kind",
    "edge_kinds",
    "error_tests",
    "has_literal_subject",
    "input_literals",
    "is_error_test",
    "is_identifier_text",
    "is_literal_text",
    "file_stem",
]
