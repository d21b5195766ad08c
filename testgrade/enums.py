"""Canonical enums for issues, assertions and file classification.

StrEnum values compare equal to their string values (Severity.ERROR == "error"),
so config dicts and serialized output can use plain strings.
"""

from __future__ import annotations

import enum


class Severity(enum.StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class RuleSeverity(enum.StrEnum):
    """Severity as written in config; OFF disables the rule entirely."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    OFF = "off"


class Strength(enum.IntEnum):
    WEAK = 1
    MODERATE = 2
    STRONG = 3


class TestType(enum.StrEnum):
    __test__ = False

    UNIT = "unit"
    INTEGRATION = "integration"
    COMPONENT = "component"
    E2E = "e2e"


class Framework(enum.StrEnum):
    JEST = "jest"
    VITEST = "vitest"
    PLAYWRIGHT = "playwright"
    CYPRESS = "cypress"
    MOCHA = "mocha"
    UNKNOWN = "unknown"


class Category(enum.StrEnum):
    ASSERTION_QUALITY = "Assertion Quality"
    ERROR_COVERAGE = "Error Coverage"
    BOUNDARY_CONDITIONS = "Boundary Conditions"
    TEST_ISOLATION = "Test Isolation"
    INPUT_VARIETY = "Input Variety"
    AI_SMELLS = "AI Smells"


class Evidence(enum.StrEnum):
    """How much of a category's signal was measurable for this run."""

    MEASURED = "measured"
    UNKNOWN = "unknown"
    NO_TESTS = "no-tests"


# Fixed breakdown order.
CATEGORY_ORDER: tuple[Category, ...] = tuple(Category)

# Categories whose signal depends on facts from the code under test.
SOURCE_DEPENDENT_CATEGORIES: frozenset[Category] = frozenset({
    Category.ERROR_COVERAGE,
    Category.BOUNDARY_CONDITIONS,
})


__all__ = [
    "CATEGORY_ORDER",
    "Category",
    "Evidence",
    "Framework",
    "RuleSeverity",
    "SOURCE_DEPENDENT_CATEGORIES",
    "Severity",
    "Strength",
    "TestType",
]
