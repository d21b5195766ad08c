"""AI-smell heuristics.

Patterns that show up far more often in generated tests than in
hand-written ones. Every trip point comes from ``SmellThresholds`` on the
rule context so false-positive tuning never touches this module.
"""

from __future__ import annotations

import re

from testgrade.enums import Category, Severity
from testgrade.models import Issue, Span
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import (
    CALL_VERIFICATION_MATCHERS,
    edge_kinds,
    error_tests,
    is_identifier_text,
)
from testgrade.strength import is_weak

AI = Category.AI_SMELLS

_EQUALITY_MATCHERS = frozenset({
    "toBe", "toEqual", "toStrictEqual", "equal", "equals", "eq", "eql",
    "assert.equal", "assert.strictEqual", "assert.deepEqual", "assert.deepStrictEqual",
})
_CALL_INTENT_RE = re.compile(r"\b(?:calls?|invokes?|triggers?|fires?|dispatch(?:es)?|emits?|notif(?:y|ies))\b", re.IGNORECASE)
_VALUE_INTENT_RE = re.compile(r"\b(?:returns?|calculates?|computes?|equals?)\b", re.IGNORECASE)
_SETUP_HOOKS = frozenset({"beforeEach", "beforeAll"})


def _smell_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=-min(len(issues) * ctx.smells.points_per_smell, 25))


@rule(
    "ai-tautological-assertion",
    display="Tautological assertion",
    severity=Severity.WARNING,
    category=AI,
    guidance="Compare the result against an independently known expected value",
)
def detect_tautologies(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        for assertion in test.assertions:
            if assertion.matcher not in _EQUALITY_MATCHERS or len(assertion.args) != 1:
                continue
            subject, (expected,) = assertion.subject, assertion.args
            if subject and subject == expected and is_identifier_text(subject):
                found.append(issue(
                    "ai-tautological-assertion",
                    f"'{subject}' is compared with itself",
                    assertion.span,
                ))
    return found


@rule(
    "ai-over-mocking",
    display="Over-mocking",
    severity=Severity.WARNING,
    category=AI,
    guidance="Mock only the boundaries (network, clock, filesystem) and exercise real collaborators",
)
def detect_over_mocking(ctx: RuleContext) -> list[Issue]:
    smells = ctx.smells
    mocks = ctx.model.mocks
    tests = len(ctx.model.active_tests)
    assertions = sum(len(t.assertions) for t in ctx.model.active_tests)
    if not mocks or not tests:
        return []
    few_tests = len(mocks) >= smells.over_mock_min_mocks and tests <= smells.over_mock_max_tests
    outnumbered = assertions > 0 and len(mocks) > smells.mocks_per_assertion * assertions
    if not (few_tests or outnumbered):
        return []
    return [issue(
        "ai-over-mocking",
        f"{len(mocks)} mocks for {tests} test(s) and {assertions} assertion(s)",
        mocks[0].span,
    )]


@rule(
    "ai-shallow-variety",
    display="Shallow expected values",
    severity=Severity.INFO,
    category=AI,
    guidance="Check different expected results across tests instead of the same value every time",
)
def detect_shallow_variety(ctx: RuleContext) -> list[Issue]:
    active = {idx for idx, t in enumerate(ctx.model.tests) if not t.skipped and not t.todo}
    if len(active) < ctx.smells.shallow_min_tests:
        return []
    expected = [lit for lit in ctx.model.literals if lit.role == "expected" and lit.test_index in active]
    tests_with_expected = {lit.test_index for lit in expected}
    if len(tests_with_expected) < ctx.smells.shallow_min_tests:
        return []
    distinct = {lit.text for lit in expected}
    if len(distinct) > ctx.smells.shallow_max_distinct:
        return []
    return [issue(
        "ai-shallow-variety",
        f"Every test expects the same value {expected[0].text}",
        min(lit.span for lit in expected),
    )]


@rule(
    "ai-happy-path-only",
    display="Happy path only",
    severity=Severity.WARNING,
    category=AI,
    guidance="Add tests for invalid input, error paths and edge values",
)
def detect_happy_path_only(ctx: RuleContext) -> list[Issue]:
    tests = ctx.model.active_tests
    if len(tests) < ctx.smells.happy_path_min_tests or error_tests(ctx.model):
        return []
    active = {idx for idx, t in enumerate(ctx.model.tests) if not t.skipped and not t.todo}
    literals = [lit for lit in ctx.model.literals if lit.test_index in active and lit.role != "incidental"]
    if edge_kinds(literals):
        return []
    return [issue(
        "ai-happy-path-only",
        f"{len(tests)} tests, none with an error case or an edge value",
        Span(1),
    )]


@rule(
    "ai-intent-mismatch",
    display="Name and assertions disagree",
    severity=Severity.WARNING,
    category=AI,
    guidance="Make the assertions check what the test name promises",
)
def detect_intent_mismatch(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        if not test.assertions:
            continue
        if _CALL_INTENT_RE.search(test.name):
            if not any(a.matcher in CALL_VERIFICATION_MATCHERS for a in test.assertions):
                found.append(issue(
                    "ai-intent-mismatch",
                    f"Test '{test.name}' promises a call but never verifies one",
                    test.span,
                ))
            continue
        if _VALUE_INTENT_RE.search(test.name) and all(is_weak(a, ctx.framework) for a in test.assertions):
            found.append(issue(
                "ai-intent-mismatch",
                f"Test '{test.name}' promises a value but only checks existence",
                test.span,
            ))
    return found


@rule(
    "ai-boilerplate-padding",
    display="Boilerplate padding",
    severity=Severity.INFO,
    category=AI,
    guidance="Trim setup to what the assertions depend on",
)
def detect_boilerplate(ctx: RuleContext) -> list[Issue]:
    smells = ctx.smells
    tests = ctx.model.active_tests
    if len(tests) < smells.boilerplate_min_tests:
        return []
    setup_hooks = [h for h in ctx.model.hooks if h.kind in _SETUP_HOOKS]
    setup = sum(h.statement_count for h in setup_hooks)
    assertions = sum(len(t.assertions) for t in tests)
    if setup < smells.boilerplate_min_setup or assertions >= setup:
        return []
    if assertions > smells.boilerplate_assertions_per_test * len(tests):
        return []
    return [issue(
        "ai-boilerplate-padding",
        f"{setup} setup statements support only {assertions} assertion(s)",
        setup_hooks[0].span,
    )]


_PARROT_NAMES = frozenset({"works", "returns value", "returns result", "is correct", "succeeds"})


@rule(
    "ai-parrot-assertion",
    display="Parrot test name",
    severity=Severity.INFO,
    category=AI,
    guidance="Name the input and the expected result, e.g. 'returns 404 when the user is missing'",
)
def detect_parrot_names(ctx: RuleContext) -> list[Issue]:
    return [
        issue("ai-parrot-assertion", f"Generic test name '{test.name}' repeats no scenario or outcome", test.span)
        for test in ctx.model.active_tests
        if test.name.strip().lower() in _PARROT_NAMES
    ]


for _rule_id in (
    "ai-tautological-assertion",
    "ai-over-mocking",
    "ai-shallow-variety",
    "ai-happy-path-only",
    "ai-intent-mismatch",
    "ai-boilerplate-padding",
    "ai-parrot-assertion",
):
    contribution(_rule_id)(_smell_delta)
