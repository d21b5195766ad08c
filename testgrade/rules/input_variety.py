"""Input Variety rules."""

from __future__ import annotations

import re

from testgrade.enums import Category, Severity
from testgrade.models import Issue, LiteralArg, Param
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import calls_function, capped, edge_kinds, input_literals

IV = Category.INPUT_VARIETY

REPEATED_POINTS, REPEATED_CAP = 4, 12
VARIETY_POINTS, VARIETY_CAP = 2, 8
HARDCODED_POINTS, HARDCODED_CAP = 1, 4

_EMAIL_RE = re.compile(r"^[\w.+-]+@([\w-]+(?:\.[\w-]+)+)$")
_PLACEHOLDER_DOMAINS = re.compile(
    r"(?:^|\.)(?:example\.(?:com|org|net)|test|example|invalid|localhost|test\.com|fake\.com)$",
    re.IGNORECASE,
)

_EDGE_LABELS = {
    "zero": "zero",
    "negative": "a negative number",
    "empty-string": "an empty string",
    "nullish": "null/undefined",
}


# ── repeated-literal-input ────────────────────────────────────


@rule(
    "repeated-literal-input",
    display="Repeated literal input",
    severity=Severity.WARNING,
    category=IV,
    guidance="Vary the inputs between tests, or fold them into one table-driven test",
)
def detect_repeated_inputs(ctx: RuleContext) -> list[Issue]:
    seen: dict[tuple[tuple[str, ...], str, str], int] = {}
    reported: set[tuple[tuple[str, ...], str, str]] = set()
    found = []
    for idx, test in enumerate(ctx.model.tests):
        if test.skipped or test.todo or test.parameterized:
            continue
        for callee, args in dict.fromkeys(test.literal_calls):
            key = (test.describe_chain, callee, args)
            first = seen.setdefault(key, idx)
            if first == idx or key in reported:
                continue
            reported.add(key)
            found.append(issue(
                "repeated-literal-input",
                f"{callee}({args}) is repeated in '{ctx.model.tests[first].name}' and '{test.name}'",
                test.span,
            ))
    return found


@contribution("repeated-literal-input")
def repeated_input_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), REPEATED_POINTS, REPEATED_CAP))


# ── limited-input-variety ─────────────────────────────────────


def _relevant_from_params(params: list[Param]) -> set[str]:
    relevant: set[str] = set()
    for param in params:
        text = param.type_text.lower()
        if "number" in text or "bigint" in text:
            relevant.update(("zero", "negative"))
        if "string" in text:
            relevant.add("empty-string")
        if param.optional or "null" in text or "undefined" in text:
            relevant.add("nullish")
    return relevant


def _relevant_from_literals(literals: list[LiteralArg]) -> set[str]:
    relevant: set[str] = set()
    kinds = {lit.kind for lit in literals}
    if "number" in kinds:
        relevant.update(("zero", "negative"))
    if kinds & {"string", "template"}:
        relevant.add("empty-string")
    return relevant


def relevant_edges(ctx: RuleContext, literals: list[LiteralArg]) -> set[str]:
    """Edge classes worth testing, from called signatures when source facts exist."""
    if ctx.facts.available:
        params = [
            param
            for fn in ctx.facts.functions
            if any(calls_function(t, fn.name) for t in ctx.model.active_tests)
            for param in fn.params
        ]
        typed = [p for p in params if p.type_text or p.optional]
        if typed:
            return _relevant_from_params(typed)
    return _relevant_from_literals(literals)


@rule(
    "limited-input-variety",
    display="Limited input variety",
    severity=Severity.INFO,
    category=IV,
    guidance="Add inputs such as 0, a negative number, an empty string or null where the signature allows them",
)
def detect_limited_variety(ctx: RuleContext) -> list[Issue]:
    literals = input_literals(ctx.model)
    if not literals:
        return []
    missing = relevant_edges(ctx, literals) - edge_kinds(literals)
    span = min(lit.span for lit in literals)
    return [
        issue("limited-input-variety", f"No test input uses {_EDGE_LABELS[kind]}", span)
        for kind in sorted(missing)
    ]


@contribution("limited-input-variety")
def limited_variety_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), VARIETY_POINTS, VARIETY_CAP))


# ── hardcoded-values ──────────────────────────────────────────


def looks_real_email(text: str) -> bool:
    match = _EMAIL_RE.match(text)
    return bool(match) and not _PLACEHOLDER_DOMAINS.search(match.group(1))


@rule(
    "hardcoded-values",
    display="Real-looking hardcoded data",
    severity=Severity.INFO,
    category=IV,
    guidance="Use obviously fake fixtures (user@example.com) or a data builder",
)
def detect_hardcoded_values(ctx: RuleContext) -> list[Issue]:
    per_value: dict[str, LiteralArg] = {}
    for lit in ctx.model.literals:
        if lit.kind in ("string", "template") and isinstance(lit.value, str) and looks_real_email(lit.value):
            per_value.setdefault(lit.value, lit)
    return [
        issue("hardcoded-values", f"Real-looking email address '{value}' in test data", lit.span)
        for value, lit in sorted(per_value.items())
    ]


@contribution("hardcoded-values")
def hardcoded_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), HARDCODED_POINTS, HARDCODED_CAP))
