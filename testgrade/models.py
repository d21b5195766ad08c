"""Structural models shared by the extractors, rules and scoring.

Everything here is immutable once built: an AnalysisUnit is assembled once
per file and never mutated afterwards, which is what makes batch analysis
safe to run across worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass

from testgrade.enums import Category, Evidence, Framework, Severity, TestType

# ── Locations ─────────────────────────────────────────────────


@dataclass(frozen=True, order=True)
class Span:
    """1-based, inclusive line range with 1-based columns."""

    line: int
    column: int = 1
    end_line: int = 0
    end_column: int = 0

    def __post_init__(self) -> None:
        if self.end_line < self.line:
            object.__setattr__(self, "end_line", self.line)

    def contains_line(self, line: int) -> bool:
        return self.line <= line <= self.end_line

    @property
    def line_count(self) -> int:
        return self.end_line - self.line + 1


# ── Test file model ───────────────────────────────────────────

# Matchers that assert on a thrown error or rejected promise.
ERROR_MATCHERS = frozenset({
    "toThrow",
    "toThrowError",
    "toThrowErrorMatchingSnapshot",
    "toThrowErrorMatchingInlineSnapshot",
    "throw",
    "throws",
    "rejects",
    "rejectedWith",
    "assert.throws",
    "assert.rejects",
    "assert.throwsAsync",
})

SNAPSHOT_MATCHERS = frozenset({
    "toMatchSnapshot",
    "toMatchInlineSnapshot",
    "toThrowErrorMatchingSnapshot",
    "toThrowErrorMatchingInlineSnapshot",
    "toHaveScreenshot",
    "toMatchAriaSnapshot",
    "matchSnapshot",
})


@dataclass(frozen=True)
class Assertion:
    """One expectation call.

    ``matcher`` is normalised per style: ``toBe`` for expect chains,
    ``equal`` / ``true`` for chai chains, ``have.text`` for Cypress
    ``should`` calls, ``assert.strictEqual`` for node-style asserts and
    ``cy.contains`` / ``cy.get`` for implicit Cypress assertions.
    """

    matcher: str
    style: str
    span: Span
    subject: str = ""
    args: tuple[str, ...] = ()
    negated: bool = False
    modifiers: tuple[str, ...] = ()
    awaited: bool = False
    in_catch: bool = False

    @property
    def is_snapshot(self) -> bool:
        return self.matcher in SNAPSHOT_MATCHERS

    @property
    def is_error_assertion(self) -> bool:
        if self.negated:
            return False
        return self.matcher in ERROR_MATCHERS or "rejects" in self.modifiers

    @property
    def is_async_chain(self) -> bool:
        return "resolves" in self.modifiers or "rejects" in self.modifiers


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    name: str
    span: Span
    assertions: tuple[Assertion, ...] = ()
    is_async: bool = False
    describe_chain: tuple[str, ...] = ()
    marker: str = "it"
    skipped: bool = False
    focused: bool = False
    todo: bool = False
    parameterized: bool = False
    statement_count: int = 0
    await_count: int = 0
    returns_promise: bool = False
    calls: tuple[str, ...] = ()
    literal_calls: tuple[tuple[str, str], ...] = ()
    has_try_catch: bool = False
    has_assertion_guard: bool = False
    branch_count: int = 0
    unreachable: tuple[Span, ...] = ()

    @property
    def body_empty(self) -> bool:
        return self.statement_count == 0

    @property
    def full_name(self) -> str:
        return " > ".join((*self.describe_chain, self.name))


@dataclass(frozen=True)
class Hook:
    kind: str  # beforeEach | afterEach | beforeAll | afterAll
    span: Span
    describe_chain: tuple[str, ...] = ()
    assigned: tuple[str, ...] = ()
    calls: tuple[str, ...] = ()
    statement_count: int = 0

    @property
    def per_test(self) -> bool:
        return self.kind in ("beforeEach", "afterEach")


@dataclass(frozen=True)
class MockDecl:
    api: str  # e.g. "jest.mock", "vi.fn", "jest.spyOn", "sinon.stub"
    kind: str  # module | function | spy | timer | network
    span: Span
    target: str = ""
    scope: str = "module"  # module | hook | test
    test_index: int | None = None


@dataclass(frozen=True)
class Binding:
    """A mutable binding declared at module or describe scope."""

    name: str
    kind: str  # let | var | const
    span: Span
    describe_chain: tuple[str, ...] = ()
    mutable_container: bool = False
    reset_by: tuple[str, ...] = ()
    mutated_in: tuple[int, ...] = ()


@dataclass(frozen=True)
class LiteralArg:
    """A literal passed as a call argument inside a test body."""

    kind: str  # number | string | template | boolean | null | undefined | array | object
    text: str
    span: Span
    test_index: int
    callee: str = ""
    position: int = 0
    role: str = "input"  # input | expected | subject
    value: float | str | None = None

    @property
    def is_edge(self) -> bool:
        if self.kind == "number":
            return self.value is not None and float(self.value) <= 0
        if self.kind in ("string", "template"):
            return self.value == ""
        if self.kind in ("null", "undefined"):
            return True
        if self.kind in ("array", "object"):
            return self.text.replace(" ", "") in ("[]", "{}")
        return False


@dataclass(frozen=True)
class Marker:
    """A describe/test call as written, with its focus and skip modifiers."""

    block: str  # describe | test
    name: str
    callee: str  # e.g. "it.only", "fdescribe", "test.describe.skip"
    span: Span
    focused: bool = False
    skipped: bool = False

    @property
    def unfocused_callee(self) -> str:
        parts = [part for part in self.callee.split(".") if part != "only"]
        if parts and parts[0] in ("fit", "fdescribe", "ftest"):
            parts[0] = parts[0][1:]
        return ".".join(parts)


@dataclass(frozen=True)
class Import:
    source: str
    names: tuple[str, ...] = ()
    line: int = 1


@dataclass(frozen=True)
class TestFileModel:
    __test__ = False

    path: str
    framework: Framework = Framework.UNKNOWN
    imports: tuple[Import, ...] = ()
    tests: tuple[TestCase, ...] = ()
    hooks: tuple[Hook, ...] = ()
    mocks: tuple[MockDecl, ...] = ()
    bindings: tuple[Binding, ...] = ()
    literals: tuple[LiteralArg, ...] = ()
    markers: tuple[Marker, ...] = ()
    lines: tuple[str, ...] = ()
    partial: bool = False

    @property
    def assertions(self) -> list[Assertion]:
        return [a for t in self.tests for a in t.assertions]

    @property
    def assertion_count(self) -> int:
        return sum(len(t.assertions) for t in self.tests)

    @property
    def active_tests(self) -> list[TestCase]:
        """Tests that will actually run (not skipped or todo)."""
        return [t for t in self.tests if not t.skipped and not t.todo]

    def test_at(self, line: int) -> int | None:
        """Index of the innermost test whose span contains ``line``."""
        found = None
        for idx, test in enumerate(self.tests):
            if test.span.contains_line(line):
                if found is None or test.span.line >= self.tests[found].span.line:
                    found = idx
        return found


# ── Source facts ──────────────────────────────────────────────


@dataclass(frozen=True)
class Param:
    name: str
    type_text: str = ""
    optional: bool = False


@dataclass(frozen=True)
class FunctionSignature:
    name: str
    params: tuple[Param, ...] = ()
    line: int = 1
    exported: bool = False
    is_async: bool = False


@dataclass(frozen=True)
class Throws:
    function: str
    condition: str
    line: int
    error_type: str = ""
    message: str = ""


@dataclass(frozen=True)
class BoundaryComparison:
    function: str
    operator: str
    operand: str
    value: float
    line: int


@dataclass(frozen=True)
class ReturnPath:
    function: str
    condition: str
    line: int
    keys: tuple[str, ...] = ()  # property names when an object literal is returned


@dataclass(frozen=True)
class SideEffect:
    function: str
    target: str
    line: int


@dataclass(frozen=True)
class SourceFactModel:
    """Facts about the code under test.

    ``available`` distinguishes "no facts found" from "could not look":
    an unavailable model must never be read as a clean bill of health.
    """

    available: bool = False
    functions: tuple[FunctionSignature, ...] = ()
    throws: tuple[Throws, ...] = ()
    comparisons: tuple[BoundaryComparison, ...] = ()
    returns: tuple[ReturnPath, ...] = ()
    side_effects: tuple[SideEffect, ...] = ()
    partial: bool = False

    @classmethod
    def unknown(cls) -> SourceFactModel:
        return cls(available=False)

    def function(self, name: str) -> FunctionSignature | None:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None


# ── Issues ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Fix:
    """Replace the text from ``span.column`` up to (not including) ``span.end_column``."""

    span: Span
    replacement: str


@dataclass(frozen=True)
class Issue:
    """One rule finding.

    ``category`` is the scoring-impact tag: a Category when the finding
    lowers that category's raw score, None when it is penalty-only. It is
    copied from the rule's registry entry when the issue is built.
    """

    rule: str
    severity: Severity
    message: str
    span: Span
    category: Category | None = None
    suggestion: str = ""
    fix: Fix | None = None

    @property
    def penalty_only(self) -> bool:
        return self.category is None

    def sort_key(self) -> tuple:
        return (self.span.line, self.span.column, self.rule, self.message)


# ── Scores ────────────────────────────────────────────────────

GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)


def grade_for(value: int) -> str:
    for threshold, letter in GRADE_THRESHOLDS:
        if value >= threshold:
            return letter
    return "F"


@dataclass(frozen=True)
class Score:
    value: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", max(0, min(100, int(self.value))))

    @property
    def grade(self) -> str:
        return grade_for(self.value)

    def __str__(self) -> str:
        return f"{self.value}/{self.grade}"


@dataclass(frozen=True)
class CategoryRaw:
    category: Category
    raw: int
    evidence: Evidence = Evidence.MEASURED


@dataclass(frozen=True)
class CategoryRow:
    category: Category
    raw: int
    weight: int
    weighted: float
    evidence: Evidence = Evidence.MEASURED
    max_raw: int = 25
    weight_bonus: float = 0.0


@dataclass(frozen=True)
class Breakdown:
    rows: tuple[CategoryRow, ...]
    weighted_total: int
    penalty_errors: int = 0
    penalty_warnings: int = 0
    penalty_info: int = 0
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    zero_assertion_cap: bool = False
    final: int = 0
    source_available: bool = False
    partial_parse: bool = False
    source_partial: bool = False
    failed_rules: tuple[str, ...] = ()
    redistributed_weight: float = 0.0

    @property
    def penalty_total(self) -> int:
        return self.penalty_errors + self.penalty_warnings + self.penalty_info

    def row(self, category: Category) -> CategoryRow:
        for row in self.rows:
            if row.category == category:
                return row
        raise KeyError(category)


@dataclass(frozen=True)
class TestScore:
    __test__ = False

    name: str
    span: Span
    score: Score
    describe_chain: tuple[str, ...] = ()
    issues: tuple[Issue, ...] = ()


@dataclass(frozen=True)
class AnalysisUnit:
    path: str
    framework: Framework
    test_type: TestType
    tests: tuple[TestCase, ...]
    issues: tuple[Issue, ...]
    breakdown: Breakdown
    score: Score
    per_test: tuple[TestScore, ...] | None = None

    @property
    def source_available(self) -> bool:
        return self.breakdown.source_available


# ── Failures ──────────────────────────────────────────────────


class ParseFailure(Exception):
    """The test file could not be read as a supported JS/TS dialect.

    Distinct from "zero tests found": callers report it as "could not
    analyze", never as a low score.
    """

    UNSUPPORTED_SYNTAX = "unsupported-syntax"
    PARSER_UNAVAILABLE = "parser-unavailable"

    def __init__(self, path: str, kind: str, detail: str = "") -> None:
        self.path = path
        self.kind = kind
        self.detail = detail
        message = f"{path}: {kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


__all__ = [
    "AnalysisUnit",
    "Assertion",
    "Binding",
    "BoundaryComparison",
    "Breakdown",
    "CategoryRaw",
    "CategoryRow",
    "ERROR_MATCHERS",
    "Fix",
    "FunctionSignature",
    "GRADE_THRESHOLDS",
    "Hook",
    "Import",
    "Issue",
    "LiteralArg",
    "Marker",
    "MockDecl",
    "Param",
    "ParseFailure",
    "ReturnPath",
    "SNAPSHOT_MATCHERS",
    "Score",
    "SideEffect",
    "SourceFactModel",
    "Span",
    "TestCase",
    "TestFileModel",
    "TestScore",
    "Throws",
    "grade_for",
]
