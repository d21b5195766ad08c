"""Assertion Quality rules: how much each assertion actually pins down."""

from __future__ import annotations

import re

from testgrade.enums import Category, Severity
from testgrade.models import Issue, TestCase, TestFileModel
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import CALL_VERIFICATION_MATCHERS, calls_function, capped, has_literal_subject
from testgrade.strength import is_weak

AQ = Category.ASSERTION_QUALITY

SNAPSHOT_RATIO_LIMIT = 0.5
SNAPSHOT_OVERUSE_POINTS = 5
TRIVIAL_POINTS, TRIVIAL_CAP = 3, 12
SIDE_EFFECT_POINTS, SIDE_EFFECT_CAP = 2, 6
REDUNDANT_POINTS, REDUNDANT_CAP = 2, 10
HINT_POINTS, HINT_CAP = 1, 5
COMPLETENESS_POINTS, COMPLETENESS_CAP = 4, 12


@rule(
    "weak-assertion",
    display="Weak assertion",
    severity=Severity.WARNING,
    category=AQ,
    guidance="Assert on the exact expected value instead of existence, truthiness or a snapshot",
)
def detect_weak_assertions(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        for assertion in test.assertions:
            if has_literal_subject(assertion):
                continue
            if assertion.is_snapshot:
                message = f"Snapshot assertion '{assertion.matcher}' accepts whatever the code currently produces"
            elif is_weak(assertion, ctx.framework):
                prefix = "not." if assertion.negated else ""
                message = f"Weak assertion '{prefix}{assertion.matcher}' only checks existence or truthiness"
            else:
                continue
            found.append(issue("weak-assertion", message, assertion.span))
    return found


@contribution("weak-assertion")
def weak_assertion_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    total = sum(len(t.assertions) for t in ctx.model.active_tests)
    if not total:
        return CategoryDelta()
    return CategoryDelta(points=-25 * min(1.0, len(issues) / total))


@rule(
    "no-assertions",
    display="Test without assertions",
    severity=Severity.ERROR,
    category=AQ,
    guidance="Add an expect()/assert call that checks the behaviour the test name describes",
)
def detect_no_assertions(ctx: RuleContext) -> list[Issue]:
    return [
        issue("no-assertions", f"Test '{test.name}' never asserts anything", test.span)
        for test in ctx.model.active_tests
        if not test.assertions and not test.body_empty
    ]


@contribution("no-assertions")
def no_assertions_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    total = len(ctx.model.active_tests)
    if not total:
        return CategoryDelta()
    return CategoryDelta(points=-25 * min(1.0, len(issues) / total))


@rule(
    "snapshot-overuse",
    display="Snapshot overuse",
    severity=Severity.WARNING,
    category=AQ,
    guidance="Keep snapshots for large rendered output; assert specific values everywhere else",
)
def detect_snapshot_overuse(ctx: RuleContext) -> list[Issue]:
    assertions = ctx.model.assertions
    snapshots = [a for a in assertions if a.is_snapshot]
    if not assertions or len(snapshots) / len(assertions) <= SNAPSHOT_RATIO_LIMIT:
        return []
    ratio = round(100 * len(snapshots) / len(assertions))
    return [issue(
        "snapshot-overuse",
        f"{ratio}% of assertions are snapshots ({len(snapshots)} of {len(assertions)})",
        snapshots[0].span,
    )]


@contribution("snapshot-overuse")
def snapshot_overuse_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=-SNAPSHOT_OVERUSE_POINTS if issues else 0)


@rule(
    "trivial-assertion",
    display="Trivial assertion",
    severity=Severity.WARNING,
    category=AQ,
    guidance="Assert on a value produced by the code under test, not on a literal",
)
def detect_trivial_assertions(ctx: RuleContext) -> list[Issue]:
    return [
        issue(
            "trivial-assertion",
            f"Assertion on the literal {assertion.subject} can never fail for the right reason",
            assertion.span,
        )
        for test in ctx.model.active_tests
        for assertion in test.assertions
        if has_literal_subject(assertion)
    ]


@contribution("trivial-assertion")
def trivial_assertion_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), TRIVIAL_POINTS, TRIVIAL_CAP))


@rule(
    "side-effect-not-verified",
    display="Side effect not verified",
    severity=Severity.INFO,
    category=AQ,
    guidance="Assert on the state change or mock call the function performs",
    requires_source=True,
)
def detect_unverified_side_effects(ctx: RuleContext) -> list[Issue]:
    if not ctx.facts.available:
        return []
    found = []
    seen: set[str] = set()
    for effect in ctx.facts.side_effects:
        if effect.function in seen:
            continue
        callers = [t for t in ctx.model.active_tests if calls_function(t, effect.function)]
        if not callers:
            continue
        target = effect.target.rsplit(".", 1)[-1]
        if any(_verifies(t, target) for t in callers):
            continue
        seen.add(effect.function)
        found.append(issue(
            "side-effect-not-verified",
            f"{effect.function}() changes {effect.target} but no test checks the effect",
            callers[0].span,
        ))
    return found


def _verifies(test, target: str) -> bool:
    for assertion in test.assertions:
        if assertion.matcher in CALL_VERIFICATION_MATCHERS:
            return True
        if target and (target in assertion.subject or any(target in arg for arg in assertion.args)):
            return True
    return False


@contribution("side-effect-not-verified")
def side_effect_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), SIDE_EFFECT_POINTS, SIDE_EFFECT_CAP))


# ── Duplicates and loose expectations ────────────────────────

# Matchers that pin an exact value.
_EXACT_MATCHERS = frozenset({
    "toBe", "toEqual", "toStrictEqual", "toHaveLength", "equal", "equals", "eql",
    "assert.equal", "assert.strictEqual", "assert.deepEqual", "assert.deepStrictEqual",
})
# Comparisons that hold for almost any result, keyed to the argument that makes them loose.
_LOOSE_BOUNDS = {
    "toBeGreaterThan": "0",
    "toBeGreaterThanOrEqual": "0",
    "toBeLessThan": "1",
}
_BOUNDARY_WORD_RE = re.compile(r"\b(?:boundary|boundaries|edges?|limits?|min(?:imum)?|max(?:imum)?)\b", re.IGNORECASE)
_MUTATING_WORD_RE = re.compile(
    r"\b(?:updates?|updated|sets?|adds?|added|removes?|removed|creates?|created|saves?|saved|deletes?|deleted)\b",
    re.IGNORECASE,
)
_RETURN_ONLY_MATCHERS = frozenset({"toBe", "toEqual", "toStrictEqual", "toBeTruthy", "toBeDefined"})


def _assertion_signature(test: TestCase) -> tuple:
    return tuple(sorted((a.matcher, a.negated, a.subject, a.args) for a in test.assertions))


@rule(
    "redundant-test",
    display="Redundant test",
    severity=Severity.INFO,
    category=AQ,
    guidance="Merge the duplicate or change its input so it covers a different case",
)
def detect_redundant_tests(ctx: RuleContext) -> list[Issue]:
    seen: set[tuple] = set()
    found = []
    for test in ctx.model.active_tests:
        if not test.assertions or test.parameterized:
            continue
        signature = _assertion_signature(test)
        if signature in seen:
            found.append(issue(
                "redundant-test",
                f"Test '{test.name}' may duplicate another test (same assertions)",
                test.span,
            ))
        seen.add(signature)
    return found


@contribution("redundant-test")
def redundant_test_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), REDUNDANT_POINTS, REDUNDANT_CAP))


@rule(
    "mutation-resistant",
    display="Mutation-resistant assertion",
    severity=Severity.INFO,
    category=AQ,
    guidance="Assert the exact value, e.g. expect(count).toBe(3), so off-by-one changes fail the test",
)
def detect_mutation_resistant(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        for assertion in test.assertions:
            loose = _LOOSE_BOUNDS.get(assertion.matcher)
            if assertion.negated or loose is None or assertion.args != (loose,):
                continue
            found.append(issue(
                "mutation-resistant",
                f"'{assertion.matcher}({loose})' in '{test.name}' still passes if the value changes",
                assertion.span,
            ))
    return found


@rule(
    "boundary-specificity",
    display="Boundary without exact value",
    severity=Severity.INFO,
    category=AQ,
    guidance="Assert both sides of the boundary exactly, e.g. expect(isAdult(17)).toBe(false)",
)
def detect_vague_boundaries(ctx: RuleContext) -> list[Issue]:
    return [
        issue(
            "boundary-specificity",
            f"Test '{test.name}' names a boundary but never asserts an exact value",
            test.span,
        )
        for test in ctx.model.active_tests
        if _BOUNDARY_WORD_RE.search(test.name)
        and test.assertions
        and not any(a.matcher in _EXACT_MATCHERS and not a.negated for a in test.assertions)
    ]


@rule(
    "state-verification",
    display="State change not verified",
    severity=Severity.INFO,
    category=AQ,
    guidance="Also check the state or the mock the operation changes, not just its return value",
)
def detect_return_only_checks(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        if len(test.assertions) != 1 or not _MUTATING_WORD_RE.search(test.name):
            continue
        if test.assertions[0].matcher not in _RETURN_ONLY_MATCHERS:
            continue
        found.append(issue(
            "state-verification",
            f"Test '{test.name}' describes a change but only checks a return value",
            test.span,
        ))
    return found


def _hint_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), HINT_POINTS, HINT_CAP))


for _rule_id in ("mutation-resistant", "boundary-specificity", "state-verification"):
    contribution(_rule_id)(_hint_delta)


# ── Returned objects ──────────────────────────────────────────

_RESULT_PROPERTY_RE = re.compile(r"\b(?:result|response|res|data|output|value|ret)\.([A-Za-z_$][\w$]*)")
_PROPERTY_RE = re.compile(r"\.([A-Za-z_$][\w$]*)")
_OBJECT_KEY_RE = re.compile(r"([A-Za-z_$][\w$]*)\s*:")
_IGNORED_PROPERTIES = frozenset({"then", "catch", "finally", "length"})


def asserted_properties(model: TestFileModel) -> set[str]:
    """Lower-cased property names the tests read or match on."""
    found: set[str] = set()
    for assertion in model.assertions:
        found.update(_PROPERTY_RE.findall(assertion.subject))
        for arg in assertion.args:
            found.update(_OBJECT_KEY_RE.findall(arg))
            found.update(_PROPERTY_RE.findall(arg))
            if assertion.matcher == "toHaveProperty":
                found.add(arg.strip("'\"`"))
    for line in model.lines:
        found.update(_RESULT_PROPERTY_RE.findall(line))
    return {name.lower() for name in found} - _IGNORED_PROPERTIES


def _returned_keys(ctx: RuleContext) -> dict[str, list[str]]:
    keys: dict[str, list[str]] = {}
    for ret in ctx.facts.returns:
        bucket = keys.setdefault(ret.function, [])
        bucket.extend(k for k in ret.keys if k not in bucket)
    return keys


@rule(
    "behavioral-completeness",
    display="Partial result verification",
    severity=Severity.INFO,
    category=AQ,
    guidance="Assert every property of the returned object, or match the whole object with toEqual",
    requires_source=True,
)
def detect_partial_results(ctx: RuleContext) -> list[Issue]:
    tests = ctx.model.active_tests
    if not ctx.facts.available or not tests:
        return []
    text = "\n".join(ctx.model.lines).lower()
    asserted = asserted_properties(ctx.model)
    if not asserted:
        return []
    found = []
    for function, keys in sorted(_returned_keys(ctx).items()):
        if len(keys) < 2 or function.lower() not in text:
            continue
        missing = [k for k in keys if k.lower() not in asserted]
        if not missing:
            continue
        verified = len(keys) - len(missing)
        callers = [t for t in tests if calls_function(t, function)]
        span = (callers or tests)[0].span
        if verified / len(keys) < 0.5:
            found.append(issue(
                "behavioral-completeness",
                f"{function}() returns {len(keys)} properties but tests only verify {verified} "
                f"(missing: {', '.join(missing)})",
                span,
                severity=Severity.WARNING,
            ))
        else:
            found.append(issue(
                "behavioral-completeness",
                f"{function}() result property not asserted: {', '.join(missing)}",
                span,
            ))
    return found


@contribution("behavioral-completeness")
def behavioral_completeness_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), COMPLETENESS_POINTS, COMPLETENESS_CAP))
