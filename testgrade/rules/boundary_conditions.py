"""Boundary Conditions rules."""

from __future__ import annotations

from collections import defaultdict

from testgrade.enums import Category, Severity
from testgrade.models import BoundaryComparison, Issue, LiteralArg, Span
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import capped, input_literals

BC = Category.BOUNDARY_CONDITIONS

SINGLE_VALUE_POINTS, SINGLE_VALUE_CAP = 3, 15


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def numeric_inputs(ctx: RuleContext) -> list[LiteralArg]:
    return [lit for lit in input_literals(ctx.model) if lit.kind == "number" and lit.value is not None]


def is_covered(comparison: BoundaryComparison, values: set[float]) -> bool:
    """A comparison is exercised when a test passes the limit or a neighbour."""
    limit = comparison.value
    return any(candidate in values for candidate in (limit, limit - 1, limit + 1))


@rule(
    "missing-boundary-test",
    display="Missing boundary test",
    severity=Severity.WARNING,
    category=BC,
    guidance="Test the limit itself plus the values immediately below and above it",
    requires_source=True,
)
def detect_missing_boundary_tests(ctx: RuleContext) -> list[Issue]:
    if not ctx.facts.available or not ctx.facts.comparisons:
        return []
    values = {float(lit.value) for lit in numeric_inputs(ctx)}
    found = []
    for comparison in ctx.facts.comparisons:
        if is_covered(comparison, values):
            continue
        limit = comparison.value
        found.append(issue(
            "missing-boundary-test",
            f"No test exercises {comparison.function}() at its boundary "
            f"'{comparison.operator} {comparison.operand}' "
            f"(try {_fmt(limit - 1)}, {_fmt(limit)}, {_fmt(limit + 1)}; source line {comparison.line})",
            Span(1),
        ))
    return found


@contribution("missing-boundary-test")
def missing_boundary_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    total = len(ctx.facts.comparisons) if ctx.facts.available else 0
    return CategoryDelta(covered=max(0, total - len(issues)), total=total)


@rule(
    "single-value-boundary",
    display="Single-value numeric input",
    severity=Severity.WARNING,
    category=BC,
    guidance="Call the function with several values, including the edges of its valid range",
)
def detect_single_value_inputs(ctx: RuleContext) -> list[Issue]:
    by_callee: dict[str, list[LiteralArg]] = defaultdict(list)
    for lit in numeric_inputs(ctx):
        if lit.callee and lit.callee != "each":
            by_callee[lit.callee].append(lit)
    found = []
    for callee in sorted(by_callee):
        literals = by_callee[callee]
        distinct = {float(lit.value) for lit in literals}
        if len(distinct) != 1:
            continue
        (value,) = distinct
        if -1 <= value <= 1:
            continue
        found.append(issue(
            "single-value-boundary",
            f"{callee}() is only ever called with {_fmt(value)}",
            literals[0].span,
        ))
    return found


@contribution("single-value-boundary")
def single_value_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), SINGLE_VALUE_POINTS, SINGLE_VALUE_CAP))
