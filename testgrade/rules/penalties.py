"""Penalty-only rules for discrete bad patterns.

None of these lowers a category score; each finding costs fixed,
capped penalty points instead.
"""

from __future__ import annotations

import re

from testgrade.enums import Severity
from testgrade.models import Fix, Issue, Span
from testgrade.registry import RuleContext, issue, rule
from testgrade.rules._helpers import file_stem

_CONSOLE_RE = re.compile(r"^\s*console\.(?:log|debug|info|warn|error|trace|dir|table)\s*\(")
_DEBUGGER_RE = re.compile(r"^(\s*)debugger\s*;?\s*$")
_COMMENTED_TEST_RE = re.compile(r"^\s*//\s*(?:it|test|describe)(?:\.\w+)?\s*\(")
_SPEC_SUFFIX_RE = re.compile(r"\.(?:test|spec|cy|e2e|integration|int)$", re.IGNORECASE)


@rule(
    "debug-code",
    display="Debug code left in test",
    severity=Severity.INFO,
    category=None,
    guidance="Remove console output, debugger statements and commented-out tests before committing",
)
def detect_debug_code(ctx: RuleContext) -> list[Issue]:
    found = []
    for number, line in enumerate(ctx.model.lines, start=1):
        debugger = _DEBUGGER_RE.match(line)
        if debugger:
            span = Span(number, len(debugger.group(1)) + 1, number, len(line.rstrip()) + 1)
            found.append(issue(
                "debug-code",
                "debugger statement left in test",
                span,
                severity=Severity.WARNING,
                fix=Fix(span, ""),
            ))
        elif _CONSOLE_RE.match(line):
            column = len(line) - len(line.lstrip()) + 1
            found.append(issue("debug-code", "console output left in test", Span(number, column)))
        elif _COMMENTED_TEST_RE.match(line):
            column = len(line) - len(line.lstrip()) + 1
            found.append(issue("debug-code", "Commented-out test", Span(number, column)))
    return found


@rule(
    "focused-test",
    display="Focused test",
    severity=Severity.WARNING,
    category=None,
    guidance="Remove .only/fit/fdescribe so the whole suite runs",
)
def detect_focused(ctx: RuleContext) -> list[Issue]:
    return [
        issue(
            "focused-test",
            f"'{marker.callee}' makes the runner skip every other {marker.block}",
            marker.span,
            fix=Fix(marker.span, marker.unfocused_callee),
        )
        for marker in ctx.model.markers
        if marker.focused
    ]


@rule(
    "skipped-test",
    display="Skipped test",
    severity=Severity.INFO,
    category=None,
    guidance="Fix or delete skipped tests; skipped tests silently rot",
)
def detect_skipped(ctx: RuleContext) -> list[Issue]:
    return [
        issue("skipped-test", f"{marker.block.capitalize()} '{marker.name}' is skipped", marker.span)
        for marker in ctx.model.markers
        if marker.skipped
    ]


@rule(
    "empty-test",
    display="Empty test",
    severity=Severity.WARNING,
    category=None,
    guidance="Implement the test or mark it with it.todo",
)
def detect_empty_tests(ctx: RuleContext) -> list[Issue]:
    return [
        issue("empty-test", f"Test '{test.name}' has an empty body", test.span)
        for test in ctx.model.active_tests
        if test.body_empty
    ]


@rule(
    "mock-abuse",
    display="Module under test is mocked",
    severity=Severity.WARNING,
    category=None,
    guidance="Mock the dependencies of the module under test, never the module itself",
)
def detect_mock_abuse(ctx: RuleContext) -> list[Issue]:
    stem = _SPEC_SUFFIX_RE.sub("", file_stem(ctx.model.path))
    if not stem:
        return []
    found = []
    for mock in ctx.model.mocks:
        if mock.kind != "module" or not mock.target:
            continue
        target = mock.target.replace("\\", "/").rsplit("/", 1)[-1]
        target = target.split(".", 1)[0].lower()
        if target == stem:
            found.append(issue(
                "mock-abuse",
                f"{mock.api}('{mock.target}') replaces the module this file is testing",
                mock.span,
            ))
    return found
