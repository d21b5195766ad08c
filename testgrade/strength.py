"""Canonical assertion-strength tables.

Strength is never stored on an Assertion; every consumer goes through
``strength_of`` so the table below stays the single source of truth.
Unknown matchers return None and are left out of strength ratios.
"""

from __future__ import annotations

from testgrade.enums import Framework, Strength
from testgrade.models import Assertion

S, M, W = Strength.STRONG, Strength.MODERATE, Strength.WEAK

# expect(...).<matcher>(...) for Jest / Vitest / Playwright.
EXPECT_STRENGTH: dict[str, Strength] = {
    # exact values
    "toBe": S,
    "toEqual": S,
    "toStrictEqual": S,
    "toThrow": S,
    "toThrowError": S,
    "toHaveProperty": S,
    "toBeGreaterThan": S,
    "toBeLessThan": S,
    "toBeGreaterThanOrEqual": S,
    "toBeLessThanOrEqual": S,
    "toBeCloseTo": S,
    "toHaveBeenCalledTimes": S,
    "toHaveBeenNthCalledWith": S,
    "toHaveBeenLastCalledWith": S,
    "toHaveReturnedWith": S,
    "toHaveText": S,
    "toHaveValue": S,
    "toHaveAttribute": S,
    "toHaveTextContent": S,
    "toHaveURL": S,
    "toHaveTitle": S,
    "toHaveCount": S,
    # partial or structural
    "toContain": M,
    "toContainEqual": M,
    "toMatch": M,
    "toMatchObject": M,
    "toHaveLength": M,
    "toHaveBeenCalled": M,
    "toHaveBeenCalledWith": M,
    "toHaveReturned": M,
    "toBeInstanceOf": M,
    "toHaveClass": M,
    "toBeVisible": M,
    "toBeInTheDocument": M,
    "toBeDisabled": M,
    "toBeEnabled": M,
    "toBeChecked": M,
    "toHaveFocus": M,
    "toBeNaN": M,
    "toSatisfy": M,
    # existence / truthiness / snapshots
    "toBeDefined": W,
    "toBeUndefined": W,
    "toBeNull": W,
    "toBeTruthy": W,
    "toBeFalsy": W,
    "toBeAttached": W,
    "toMatchSnapshot": W,
    "toMatchInlineSnapshot": W,
    "toThrowErrorMatchingSnapshot": W,
    "toThrowErrorMatchingInlineSnapshot": W,
    "toHaveScreenshot": W,
    "toMatchAriaSnapshot": W,
}

# expect(x).to.<chain> and x.should.<chain> (chai), keyed by the last word.
CHAI_STRENGTH: dict[str, Strength] = {
    "equal": S,
    "equals": S,
    "eq": S,
    "eql": S,
    "true": S,
    "false": S,
    "throw": S,
    "throws": S,
    "above": S,
    "below": S,
    "least": S,
    "most": S,
    "within": S,
    "closeTo": S,
    "calledOnce": S,
    "calledTwice": S,
    "callCount": S,
    "calledOnceWith": S,
    "rejectedWith": S,
    "include": M,
    "includes": M,
    "contain": M,
    "contains": M,
    "match": M,
    "lengthOf": M,
    "length": M,
    "property": M,
    "keys": M,
    "instanceOf": M,
    "instanceof": M,
    "a": M,
    "an": M,
    "members": M,
    "called": M,
    "calledWith": M,
    "rejected": M,
    "fulfilled": M,
    "ok": W,
    "exist": W,
    "null": W,
    "undefined": W,
    "empty": W,
    "matchSnapshot": W,
}

# cy.get(...).should('<chainer>', ...)
CYPRESS_SHOULD_STRENGTH: dict[str, Strength] = {
    "have.text": S,
    "have.length": S,
    "eq": S,
    "equal": S,
    "have.attr": S,
    "have.value": S,
    "have.prop": S,
    "contain": M,
    "contain.text": M,
    "include": M,
    "match": M,
    "have.class": M,
    "have.css": M,
    "be.visible": M,
    "be.disabled": M,
    "be.enabled": M,
    "be.checked": M,
    "be.selected": M,
    "be.focused": M,
    "exist": W,
    "be.empty": W,
    "be.hidden": W,
    "not.exist": W,
}

# node:assert / chai.assert
ASSERT_STRENGTH: dict[str, Strength] = {
    "assert.equal": S,
    "assert.strictEqual": S,
    "assert.deepEqual": S,
    "assert.deepStrictEqual": S,
    "assert.throws": S,
    "assert.rejects": S,
    "assert.isTrue": S,
    "assert.isFalse": S,
    "assert.lengthOf": S,
    "assert.notEqual": M,
    "assert.notStrictEqual": M,
    "assert.include": M,
    "assert.match": M,
    "assert.instanceOf": M,
    "assert.property": M,
    "assert.isNull": W,
    "assert.isDefined": W,
    "assert.isUndefined": W,
    "assert.isOk": W,
    "assert.ok": W,
    "assert.exists": W,
    "assert": W,
    # sinon.assert
    "assert.calledWith": M,
    "assert.calledOnce": S,
    "assert.called": M,
    "assert.notCalled": S,
    "assert.callCount": S,
}

IMPLICIT_CYPRESS_STRENGTH: dict[str, Strength] = {
    "cy.contains": M,
    "cy.get": W,
    "cy.find": W,
}

# Per-framework adjustments applied on top of the base tables.
FRAMEWORK_ADJUSTMENTS: dict[Framework, dict[str, Strength]] = {
    # Playwright locator assertions auto-wait and check rendered state.
    Framework.PLAYWRIGHT: {
        "toBeVisible": M,
        "toBeHidden": W,
        "toBeAttached": W,
        "toHaveURL": S,
        "toHaveCount": S,
    },
    Framework.CYPRESS: {
        "be.visible": M,
        "exist": W,
    },
}

# Negating these still pins behaviour precisely ("was never called").
_NEGATION_KEEPS_STRONG = frozenset({
    "toHaveBeenCalled",
    "toThrow",
    "called",
    "throw",
})

_TABLES_BY_STYLE: dict[str, dict[str, Strength]] = {
    "expect": EXPECT_STRENGTH,
    "chai": CHAI_STRENGTH,
    "should": CYPRESS_SHOULD_STRENGTH,
    "assert": ASSERT_STRENGTH,
    "cypress": IMPLICIT_CYPRESS_STRENGTH,
}


def base_strength(matcher: str, style: str, framework: Framework) -> Strength | None:
    """Strength of a non-negated matcher, or None when unknown."""
    adjusted = FRAMEWORK_ADJUSTMENTS.get(framework, {})
    if matcher in adjusted:
        return adjusted[matcher]
    table = _TABLES_BY_STYLE.get(style, EXPECT_STRENGTH)
    if matcher in table:
        return table[matcher]
    # chai should-style calls fall back to the chai table.
    if style == "should":
        return CHAI_STRENGTH.get(matcher.rsplit(".", 1)[-1])
    return None


def strength_of(assertion: Assertion, framework: Framework = Framework.UNKNOWN) -> Strength | None:
    """Classify one assertion; negation weakens everything except call/throw checks."""
    base = base_strength(assertion.matcher, assertion.style, framework)
    if base is None or not assertion.negated:
        return base
    if assertion.matcher in _NEGATION_KEEPS_STRONG:
        return base
    return Strength.MODERATE if base == Strength.STRONG else Strength.WEAK


def is_weak(assertion: Assertion, framework: Framework = Framework.UNKNOWN) -> bool:
    return strength_of(assertion, framework) == Strength.WEAK


__all__ = [
    "ASSERT_STRENGTH",
    "CHAI_STRENGTH",
    "CYPRESS_SHOULD_STRENGTH",
    "EXPECT_STRENGTH",
    "FRAMEWORK_ADJUSTMENTS",
    "IMPLICIT_CYPRESS_STRENGTH",
    "base_strength",
    "is_weak",
    "strength_of",
]
