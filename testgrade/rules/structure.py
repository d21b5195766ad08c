"""Test structure rules: bodies that are too big, dead, or typed loosely.

These read the shape of a test rather than its assertions, but a test
that is hard to follow is a weaker check, so they score under
Assertion Quality.
"""

from __future__ import annotations

import re

from testgrade.enums import Category, Severity
from testgrade.models import Issue, Span
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import capped

AQ = Category.ASSERTION_QUALITY

MAX_ASSERTIONS = 15
MAX_BODY_LINES = 50
MAX_BRANCHES = 10
COMPLEXITY_POINTS, COMPLEXITY_CAP = 3, 25
UNREACHABLE_POINTS, UNREACHABLE_CAP = 3, 15
TYPE_ESCAPE_LIMIT = 5
TYPE_ESCAPE_POINTS, TYPE_ESCAPE_CAP = 2, 10

_TYPE_ESCAPE_RE = re.compile(r"\bas\s+(?:any|unknown)\b")
_TS_SUPPRESS_RE = re.compile(r"@ts-(?:ignore|expect-error)\b")


def is_comment_line(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith(("//", "/*", "*"))


@rule(
    "test-complexity",
    display="Overly complex test",
    severity=Severity.WARNING,
    category=AQ,
    guidance="Split into smaller tests or extract setup into helpers",
)
def detect_complex_tests(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        reasons = []
        if len(test.assertions) > MAX_ASSERTIONS:
            reasons.append(f"{len(test.assertions)} assertions")
        if test.span.line_count > MAX_BODY_LINES:
            reasons.append(f"{test.span.line_count} lines")
        if test.branch_count > MAX_BRANCHES:
            reasons.append(f"{test.branch_count} branches")
        if reasons:
            found.append(issue(
                "test-complexity",
                f"Test '{test.name}' is too complex: {', '.join(reasons)}",
                test.span,
            ))
    return found


@contribution("test-complexity")
def complexity_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), COMPLEXITY_POINTS, COMPLEXITY_CAP))


@rule(
    "unreachable-test-code",
    display="Unreachable test code",
    severity=Severity.WARNING,
    category=AQ,
    guidance="Delete the dead statements or move them before the return/throw",
)
def detect_unreachable_code(ctx: RuleContext) -> list[Issue]:
    return [
        issue("unreachable-test-code", f"Unreachable code after return/throw in '{test.name}'", span)
        for test in ctx.model.active_tests
        for span in test.unreachable
    ]


@contribution("unreachable-test-code")
def unreachable_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), UNREACHABLE_POINTS, UNREACHABLE_CAP))


@rule(
    "type-assertion-abuse",
    display="Type checking bypassed",
    severity=Severity.INFO,
    category=AQ,
    guidance="Build correctly typed fixtures instead of casting to any or silencing the compiler",
)
def detect_type_escapes(ctx: RuleContext) -> list[Issue]:
    found = []
    casts = 0
    for number, line in enumerate(ctx.model.lines, start=1):
        if _TS_SUPPRESS_RE.search(line) and line.lstrip().startswith("//"):
            found.append(issue(
                "type-assertion-abuse",
                "Compiler check suppressed with a @ts- directive",
                Span(number, line.index("@ts-") + 1),
            ))
            continue
        if is_comment_line(line):
            continue
        for match in _TYPE_ESCAPE_RE.finditer(line):
            casts += 1
            if casts == TYPE_ESCAPE_LIMIT:
                found.append(issue(
                    "type-assertion-abuse",
                    f"{TYPE_ESCAPE_LIMIT} or more casts to any/unknown in this file",
                    Span(number, match.start() + 1),
                ))
    return found


@contribution("type-assertion-abuse")
def type_escape_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), TYPE_ESCAPE_POINTS, TYPE_ESCAPE_CAP))


__all__ = ["is_comment_line"]
