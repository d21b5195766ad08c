"""Error Coverage rules.

``missing-error-test`` compares the error tests in the file against the
throw conditions found in the source file. Its contribution reports
coverage (covered/total) rather than points, so the category can tell
"nothing throws" apart from "we could not look".
"""

from __future__ import annotations

from collections import Counter

from testgrade.enums import Category, Severity, TestType
from testgrade.models import Issue, Span, TestCase, Throws
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import (
    CALL_VERIFICATION_MATCHERS,
    ERROR_NAME_RE,
    calls_function,
    capped,
    error_tests,
    is_error_test,
)

EC = Category.ERROR_COVERAGE

RETURN_PATH_MIN = 3
RETURN_PATH_POINTS, RETURN_PATH_CAP = 2, 6
ERROR_ASSERTION_POINTS, ERROR_ASSERTION_CAP = 2, 10
ASYNC_ERROR_POINTS, ASYNC_ERROR_CAP = 3, 9
UNVERIFIED_MOCK_POINTS, UNVERIFIED_MOCK_CAP = 3, 15


# ── missing-error-test ────────────────────────────────────────


def _matches_typed(test: TestCase, fact: Throws) -> bool:
    """An error test that names the thrown type or message of ``fact``."""
    if not calls_function(test, fact.function):
        return False
    for assertion in test.assertions:
        if not (assertion.is_error_assertion or assertion.in_catch):
            continue
        text = " ".join((assertion.subject, *assertion.args))
        if fact.error_type and fact.error_type in text:
            return True
        if fact.message and fact.message[:40] in text:
            return True
    return False


def covered_throws(tests: list[TestCase], throws: tuple[Throws, ...]) -> set[int]:
    """Indices of ``throws`` covered by ``tests``.

    Typed matches (the test names the error type or message) come first;
    each remaining error test then covers one remaining condition,
    preferring a condition in a function the test calls.
    """
    covered: set[int] = set()
    used: set[int] = set()
    for fact_idx, fact in enumerate(throws):
        for test_idx, test in enumerate(tests):
            if _matches_typed(test, fact):
                covered.add(fact_idx)
                used.add(test_idx)
                break
    spare = [idx for idx in range(len(tests)) if idx not in used]
    for fact_idx, fact in enumerate(throws):
        if fact_idx in covered or not spare:
            continue
        pick = next((idx for idx in spare if calls_function(tests[idx], fact.function)), spare[0])
        spare.remove(pick)
        covered.add(fact_idx)
    return covered


@rule(
    "missing-error-test",
    display="Missing error test",
    severity=Severity.WARNING,
    category=EC,
    guidance="Add a test that triggers this condition and asserts on the thrown error",
    requires_source=True,
)
def detect_missing_error_tests(ctx: RuleContext) -> list[Issue]:
    if not ctx.facts.available or not ctx.facts.throws:
        return []
    covered = covered_throws(error_tests(ctx.model), ctx.facts.throws)
    found = []
    for idx, fact in enumerate(ctx.facts.throws):
        if idx in covered:
            continue
        what = fact.error_type or "an error"
        when = f" when {fact.condition}" if fact.condition and fact.condition != "always" else ""
        found.append(issue(
            "missing-error-test",
            f"No test covers {fact.function}() throwing {what}{when} (source line {fact.line})",
            Span(1),
        ))
    return found


@contribution("missing-error-test")
def missing_error_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    total = len(ctx.facts.throws) if ctx.facts.available else 0
    return CategoryDelta(covered=max(0, total - len(issues)), total=total)


# ── return-path-coverage ──────────────────────────────────────


@rule(
    "return-path-coverage",
    display="Return paths under-tested",
    severity=Severity.INFO,
    category=EC,
    guidance="Add a test for each branch that returns a different result",
    requires_source=True,
)
def detect_return_path_gaps(ctx: RuleContext) -> list[Issue]:
    if not ctx.facts.available:
        return []
    paths = Counter(ret.function for ret in ctx.facts.returns)
    found = []
    for function in sorted(paths):
        count = paths[function]
        if count < RETURN_PATH_MIN:
            continue
        callers = [t for t in ctx.model.active_tests if calls_function(t, function)]
        if not callers or len(callers) >= count:
            continue
        found.append(issue(
            "return-path-coverage",
            f"{function}() has {count} return paths but only {len(callers)} test(s) call it",
            callers[0].span,
        ))
    return found


@contribution("return-path-coverage")
def return_path_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), RETURN_PATH_POINTS, RETURN_PATH_CAP))


# ── error-assertion-missing ───────────────────────────────────


@rule(
    "error-assertion-missing",
    display="Error test without error assertion",
    severity=Severity.INFO,
    category=EC,
    guidance="Use toThrow()/rejects or assert.throws so the test fails when no error occurs",
)
def detect_error_assertion_missing(ctx: RuleContext) -> list[Issue]:
    # E2E error scenarios are asserted through the rendered UI, not thrown errors.
    if ctx.test_type == TestType.E2E:
        return []
    return [
        issue(
            "error-assertion-missing",
            f"Test '{test.name}' is about an error but never asserts that one is raised",
            test.span,
        )
        for test in ctx.model.active_tests
        if ERROR_NAME_RE.search(test.name) and test.assertions and not is_error_test(test)
    ]


@contribution("error-assertion-missing")
def error_assertion_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), ERROR_ASSERTION_POINTS, ERROR_ASSERTION_CAP))


# ── async-error-mishandling ───────────────────────────────────


@rule(
    "async-error-mishandling",
    display="Error asserted only inside catch",
    severity=Severity.WARNING,
    category=EC,
    guidance="Use expect(...).rejects/toThrow, or call expect.assertions(n) before the try block",
)
def detect_async_error_mishandling(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        if not test.has_try_catch or test.has_assertion_guard:
            continue
        in_catch = [a for a in test.assertions if a.in_catch]
        if not in_catch:
            continue
        found.append(issue(
            "async-error-mishandling",
            f"Test '{test.name}' passes silently when nothing throws: its assertions are only in a catch block",
            in_catch[0].span,
        ))
    return found


@contribution("async-error-mishandling")
def async_error_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), ASYNC_ERROR_POINTS, ASYNC_ERROR_CAP))


# Mock factories whose calls a test is expected to verify.
_VERIFIABLE_MOCK_APIS = frozenset({"jest.fn", "vi.fn", "jest.spyOn", "vi.spyOn"})


@rule(
    "incomplete-mock-verification",
    display="Mock never verified",
    severity=Severity.WARNING,
    category=EC,
    guidance="Verify the mock was called: expect(mock).toHaveBeenCalledWith(expectedArgs)",
)
def detect_unverified_mocks(ctx: RuleContext) -> list[Issue]:
    found = []
    tests = ctx.model.tests
    for mock in ctx.model.mocks:
        if mock.api not in _VERIFIABLE_MOCK_APIS or mock.scope != "test" or mock.test_index is None:
            continue
        test = tests[mock.test_index]
        if test.skipped or test.todo:
            continue
        if any(a.matcher in CALL_VERIFICATION_MATCHERS for a in test.assertions):
            continue
        found.append(issue(
            "incomplete-mock-verification",
            f"Mock from {mock.api}() in '{test.name}' is never checked with toHaveBeenCalled/toHaveBeenCalledWith",
            mock.span,
        ))
    return found


@contribution("incomplete-mock-verification")
def unverified_mock_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), UNVERIFIED_MOCK_POINTS, UNVERIFIED_MOCK_CAP))
