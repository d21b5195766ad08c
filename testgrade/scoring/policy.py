"""Scoring policy: weights, penalty constants, grades and smell thresholds.

Every number the scorer uses lives here so calibration changes are made in
one place. Config may override weights, penalties and smell thresholds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields

from testgrade.enums import Category, TestType

AQ = Category.ASSERTION_QUALITY
EC = Category.ERROR_COVERAGE
BC = Category.BOUNDARY_CONDITIONS
TI = Category.TEST_ISOLATION
IV = Category.INPUT_VARIETY
AI = Category.AI_SMELLS

MAX_RAW = 25


def _row(aq: int, ec: int, bc: int, ti: int, iv: int, ai: int) -> dict[Category, int]:
    return {AQ: aq, EC: ec, BC: bc, TI: ti, IV: iv, AI: ai}


# Category weights per test type; each row sums to 100. E2E tests lean on
# assertion quality and isolation, unit tests on boundaries and error paths.
CATEGORY_WEIGHTS: dict[TestType, dict[Category, int]] = {
    TestType.UNIT: _row(20, 15, 20, 15, 15, 15),
    TestType.E2E: _row(30, 15, 5, 25, 20, 5),
    TestType.COMPONENT: _row(25, 15, 15, 20, 20, 5),
    TestType.INTEGRATION: _row(22, 18, 15, 20, 20, 5),
}


@dataclass(frozen=True)
class PenaltyPolicy:
    """Points per penalty-only issue and the cap for each severity."""

    per_error: int = 5
    per_warning: int = 2
    per_info: int = 1
    cap_error: int = 35
    cap_warning: int = 40
    cap_info: int = 15


DEFAULT_PENALTIES = PenaltyPolicy()

# Unknown-evidence scaling. A source-dependent category scored without
# source facts keeps only this share of its test-only signal, so the gap
# between "checked, nothing found" and "could not check" is at most
# MAX_RAW * (1 - UNKNOWN_EVIDENCE_RATIO) raw points.
UNKNOWN_EVIDENCE_RATIO = 0.6
UNKNOWN_EVIDENCE_DELTA = MAX_RAW * (1 - UNKNOWN_EVIDENCE_RATIO)

# A file whose tests contain no assertions at all never scores above this.
ZERO_ASSERTION_CEILING = 30

# Error Coverage test-only signal: a floor plus points per error test.
ERROR_BASELINE = 5
ERROR_TEST_POINTS = 8

# Boundary Conditions test-only signal: points per distinct edge class in
# the inputs (zero, negative, empty string, nullish, empty collection)
# plus a small bonus for tests named after boundaries.
EDGE_KIND_POINTS = 6
BOUNDARY_NAME_POINTS = 2
BOUNDARY_NAME_CAP = 5

# Categories under this raw score get a recommendation line.
RECOMMENDATION_THRESHOLD = 15

# Per-test scoring: raw points one issue removes from its category.
PER_TEST_ISSUE_POINTS: dict[str, int] = {"error": 8, "warning": 4, "info": 2}


@dataclass(frozen=True)
class SmellThresholds:
    """Tunable trip points for the AI-smell rules.

    False-positive tuning is expected maintenance, so none of these are
    inlined in the rules themselves.
    """

    over_mock_min_mocks: int = 5
    over_mock_max_tests: int = 3
    mocks_per_assertion: float = 2.0
    shallow_min_tests: int = 3
    shallow_max_distinct: int = 1
    happy_path_min_tests: int = 4
    boilerplate_min_setup: int = 5
    boilerplate_assertions_per_test: float = 2.0
    boilerplate_min_tests: int = 2
    points_per_smell: int = 4


DEFAULT_SMELLS = SmellThresholds()

GRADE_DESCRIPTIONS: dict[str, str] = {
    "A": "Excellent: specific assertions, error paths and edge cases are covered",
    "B": "Good: solid tests with a few gaps worth closing",
    "C": "Fair: tests run but miss important behaviour",
    "D": "Poor: weak assertions or missing coverage undermine these tests",
    "F": "Failing: these tests give little confidence in the code under test",
}

RECOMMENDATIONS: dict[Category, str] = {
    AQ: "Replace existence checks (toBeDefined/toBeTruthy) with assertions on exact values",
    EC: "Add tests that trigger each error condition and assert on the thrown error",
    BC: "Exercise boundary values: the limit itself, one below and one above",
    TI: "Reset shared state in beforeEach so tests cannot depend on run order",
    IV: "Vary inputs: include zero, negatives, empty strings and null where they apply",
    AI: "Remove generated-looking boilerplate; assert on behaviour the test name promises",
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives; ``round`` would bank to even."""
    return int(math.floor(value + 0.5))


def weights_for(
    test_type: TestType,
    overrides: dict[TestType, dict[Category, int]] | None = None,
) -> dict[Category, int]:
    if overrides and test_type in overrides:
        return dict(overrides[test_type])
    return dict(CATEGORY_WEIGHTS[test_type])


def dataclass_from_overrides(cls, raw: dict, base=None):
    """Build ``cls`` from ``base`` with the keys of ``raw`` replaced.

    Unknown keys raise KeyError; values are coerced to the field's type.
    """
    base = base if base is not None else cls()
    known = {f.name: f for f in fields(cls)}
    values = {name: getattr(base, name) for name in known}
    for key, value in raw.items():
        if key not in known:
            raise KeyError(f"Unknown {cls.__name__} key: {key}")
        current = values[key]
        values[key] = type(current)(value)
    return cls(**values)


__all__ = [
    "BOUNDARY_NAME_CAP",
    "BOUNDARY_NAME_POINTS",
    "CATEGORY_WEIGHTS",
    "DEFAULT_PENALTIES",
    "DEFAULT_SMELLS",
    "EDGE_KIND_POINTS",
    "ERROR_BASELINE",
    "ERROR_TEST_POINTS",
    "GRADE_DESCRIPTIONS",
    "MAX_RAW",
    "PER_TEST_ISSUE_POINTS",
    "PenaltyPolicy",
    "RECOMMENDATIONS",
    "RECOMMENDATION_THRESHOLD",
    "SmellThresholds",
    "UNKNOWN_EVIDENCE_DELTA",
    "UNKNOWN_EVIDENCE_RATIO",
    "ZERO_ASSERTION_CEILING",
    "dataclass_from_overrides",
    "round_half_up",
    "weights_for",
]
