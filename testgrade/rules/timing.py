"""Penalty-only async and timing rules."""

from __future__ import annotations

import re

from testgrade.enums import Framework, Severity
from testgrade.models import Assertion, Fix, Issue, Span
from testgrade.registry import RuleContext, issue, rule

# Playwright web-first assertions return promises.
_WEB_FIRST_MATCHERS = frozenset({
    "toBeVisible", "toBeHidden", "toBeAttached", "toBeChecked", "toBeDisabled",
    "toBeEnabled", "toBeEditable", "toBeFocused", "toBeEmpty", "toHaveText",
    "toContainText", "toHaveValue", "toHaveAttribute", "toHaveClass", "toHaveCount",
    "toHaveURL", "toHaveTitle", "toHaveScreenshot", "toHaveCSS", "toHaveId",
})

_FLAKY_PATTERNS: tuple[tuple[re.Pattern[str], str, bool], ...] = (
    # (pattern, description, silenced by fake timers)
    (re.compile(r"\bDate\.now\s*\(\s*\)"), "Date.now() makes the result depend on the clock", True),
    (re.compile(r"\bnew Date\s*\(\s*\)"), "new Date() makes the result depend on the clock", True),
    (re.compile(r"\bMath\.random\s*\(\s*\)"), "Math.random() makes the test non-deterministic", False),
    (re.compile(r"\bsetTimeout\s*\("), "setTimeout() in a test races the code under test", True),
    (re.compile(r"\bwaitForTimeout\s*\("), "waitForTimeout() is a fixed sleep; wait for a condition instead", False),
    (re.compile(r"\bcy\.wait\s*\(\s*\d+\s*\)"), "cy.wait(ms) is a fixed sleep; wait on an alias instead", False),
)
_COMMENT_LINE_RE = re.compile(r"^\s*(?://|/?\*)")


def _needs_await(assertion: Assertion, framework: Framework) -> bool:
    if assertion.awaited:
        return False
    if assertion.is_async_chain:
        return True
    return (
        framework == Framework.PLAYWRIGHT
        and assertion.style == "expect"
        and assertion.matcher in _WEB_FIRST_MATCHERS
    )


@rule(
    "missing-await",
    display="Missing await",
    severity=Severity.WARNING,
    category=None,
    guidance="await (or return) promise-based expectations so their failures are reported",
)
def detect_missing_await(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        flagged = False
        for assertion in test.assertions:
            if not _needs_await(assertion, ctx.framework):
                continue
            flagged = True
            fix = None
            if test.is_async:
                at = Span(assertion.span.line, assertion.span.column, assertion.span.line, assertion.span.column)
                fix = Fix(at, "await ")
            found.append(issue(
                "missing-await",
                f"'{assertion.matcher}' returns a promise that is never awaited",
                assertion.span,
                fix=fix,
            ))
        if test.is_async and not flagged and test.await_count == 0 and not test.returns_promise:
            found.append(issue(
                "missing-await",
                f"Async test '{test.name}' never awaits anything",
                test.span,
                severity=Severity.INFO,
            ))
    return found


@rule(
    "flaky-pattern",
    display="Flaky pattern",
    severity=Severity.WARNING,
    category=None,
    guidance="Control time and randomness with fake timers or injected values",
)
def detect_flaky_patterns(ctx: RuleContext) -> list[Issue]:
    fake_timers = any(m.kind == "timer" for m in ctx.model.mocks)
    found = []
    for number, line in enumerate(ctx.model.lines, start=1):
        if _COMMENT_LINE_RE.match(line):
            continue
        for pattern, message, timer_safe in _FLAKY_PATTERNS:
            if timer_safe and fake_timers:
                continue
            match = pattern.search(line)
            if match:
                found.append(issue("flaky-pattern", message, Span(number, match.start() + 1)))
    return found
