"""Penalty-only rules for Testing Library usage.

They only run in files that import @testing-library/react or
@testing-library/dom.
"""

from __future__ import annotations

import re

from testgrade.enums import Severity
from testgrade.models import Issue, Span
from testgrade.registry import RuleContext, issue, rule
from testgrade.rules.structure import is_comment_line

TESTING_LIBRARY_MODULES = frozenset({"@testing-library/react", "@testing-library/dom"})

_CONTAINER_QUERY_RE = re.compile(r"\bcontainer\.querySelector(?:All)?\s*\(")
_TEST_ID_RE = re.compile(r"\b(?:get|query|find)(?:All)?ByTestId\s*\(")
_SEMANTIC_QUERY_RE = re.compile(r"\b(?:get|query|find)(?:All)?By(?:Role|LabelText)\s*\(")
_FIRE_EVENT_RE = re.compile(r"\bfireEvent\.")
_USER_EVENT_RE = re.compile(r"\buserEvent\b")


def uses_testing_library(ctx: RuleContext) -> bool:
    return any(imp.source in TESTING_LIBRARY_MODULES for imp in ctx.model.imports)


def _matches(ctx: RuleContext, pattern: re.Pattern, unless: re.Pattern | None = None):
    """(line number, column) of each code line matching ``pattern``."""
    if not uses_testing_library(ctx):
        return
    for number, line in enumerate(ctx.model.lines, start=1):
        if is_comment_line(line):
            continue
        match = pattern.search(line)
        if match is None:
            continue
        if unless is not None and unless.search(line):
            continue
        yield number, match.start() + 1


@rule(
    "rtl-prefer-screen",
    display="Container query instead of screen",
    severity=Severity.WARNING,
    category=None,
    guidance="Query through screen (screen.getByRole, screen.getByText) instead of container.querySelector",
)
def detect_container_queries(ctx: RuleContext) -> list[Issue]:
    return [
        issue("rtl-prefer-screen", "container.querySelector bypasses Testing Library queries", Span(number, column))
        for number, column in _matches(ctx, _CONTAINER_QUERY_RE)
    ]


@rule(
    "rtl-prefer-semantic",
    display="Test id instead of accessible query",
    severity=Severity.INFO,
    category=None,
    guidance="Prefer getByRole or getByLabelText; keep test ids for elements with no accessible name",
)
def detect_test_id_queries(ctx: RuleContext) -> list[Issue]:
    return [
        issue("rtl-prefer-semantic", "Query by test id where a role or label query would do", Span(number, column))
        for number, column in _matches(ctx, _TEST_ID_RE, unless=_SEMANTIC_QUERY_RE)
    ]


@rule(
    "rtl-prefer-user-event",
    display="fireEvent instead of userEvent",
    severity=Severity.INFO,
    category=None,
    guidance="Use userEvent (await user.click(...)), which fires the full event sequence a user would",
)
def detect_fire_event(ctx: RuleContext) -> list[Issue]:
    return [
        issue("rtl-prefer-user-event", "fireEvent dispatches a single synthetic event", Span(number, column))
        for number, column in _matches(ctx, _FIRE_EVENT_RE, unless=_USER_EVENT_RE)
    ]


__all__ = ["TESTING_LIBRARY_MODULES", "uses_testing_library"]
