"""Framework detection and test-type classification.

Both are deterministic priority lists: the first matching marker wins, so
a file always gets exactly one framework and one test type.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import PurePath

from testgrade.enums import Framework, TestType
from testgrade.models import Import

# Import-source prefixes, checked in order.
_FRAMEWORK_IMPORTS: tuple[tuple[str, Framework], ...] = (
    ("vitest", Framework.VITEST),
    ("@playwright/test", Framework.PLAYWRIGHT),
    ("playwright", Framework.PLAYWRIGHT),
    ("cypress", Framework.CYPRESS),
    ("@jest/globals", Framework.JEST),
    ("jest", Framework.JEST),
    ("mocha", Framework.MOCHA),
    ("chai", Framework.MOCHA),
)

# Content fallbacks when imports are silent (globals-style Jest/Cypress).
_FRAMEWORK_PATTERNS: tuple[tuple[re.Pattern[str], Framework], ...] = (
    (re.compile(r"\bvi\.(?:fn|mock|spyOn|useFakeTimers)\s*\("), Framework.VITEST),
    (re.compile(r"\bcy\.\w+\s*\("), Framework.CYPRESS),
    (re.compile(r"\btest\.describe\s*\(|\bpage\.goto\s*\("), Framework.PLAYWRIGHT),
    (re.compile(r"\bjest\.\w+\s*\("), Framework.JEST),
    (re.compile(r"\bsinon\.\w+|\.to\.(?:be|equal|have|deep)\b"), Framework.MOCHA),
    (re.compile(r"\b(?:describe|it|test)\s*\("), Framework.JEST),
)

_E2E_SEGMENTS = frozenset({"e2e", "cypress", "playwright"})
_INTEGRATION_SEGMENTS = frozenset({"integration", "integration-tests", "integration_tests"})
_COMPONENT_SEGMENTS = frozenset({"component", "components"})

_COMPONENT_IMPORT_PREFIXES = (
    "@testing-library/",
    "@vue/test-utils",
    "enzyme",
    "react-test-renderer",
    "@angular/core/testing",
    "@storybook/test",
)
_INTEGRATION_IMPORT_PREFIXES = ("supertest", "testcontainers", "@testcontainers/")


def detect_framework(imports: Iterable[Import], content: str = "") -> Framework:
    """Identify the test framework from imports, then from content patterns."""
    sources = [imp.source for imp in imports]
    for prefix, framework in _FRAMEWORK_IMPORTS:
        if any(src == prefix or src.startswith(prefix + "/") for src in sources):
            return framework
    for pattern, framework in _FRAMEWORK_PATTERNS:
        if pattern.search(content):
            return framework
    return Framework.UNKNOWN


def _path_markers(file_path: str) -> tuple[set[str], str]:
    parts = PurePath(file_path.replace("\\", "/")).parts
    segments = {part.lower() for part in parts[:-1]}
    name = parts[-1].lower() if parts else ""
    return segments, name


def classify(file_path: str, imports: Iterable[Import], framework: Framework) -> TestType:
    """Label the file E2E > Integration > Component > Unit, first match wins."""
    segments, name = _path_markers(file_path)
    sources = [imp.source for imp in imports]

    if segments & _E2E_SEGMENTS or ".e2e." in name or ".cy." in name:
        return TestType.E2E
    if framework in (Framework.CYPRESS, Framework.PLAYWRIGHT):
        return TestType.E2E

    if segments & _INTEGRATION_SEGMENTS or ".integration." in name or ".int." in name:
        return TestType.INTEGRATION

    if segments & _COMPONENT_SEGMENTS or ".component." in name:
        return TestType.COMPONENT
    if any(src.startswith(_COMPONENT_IMPORT_PREFIXES) for src in sources):
        return TestType.COMPONENT

    if any(src.startswith(_INTEGRATION_IMPORT_PREFIXES) for src in sources):
        return TestType.INTEGRATION
    return TestType.UNIT


__all__ = ["classify", "detect_framework"]
