"""Category raw scores from rule contributions.

Each category has a test-only starting signal. Rules adjust it through
their ``contribute`` functions. Error Coverage and Boundary Conditions
also take source-fact coverage; when those facts are unavailable the
category keeps only ``UNKNOWN_EVIDENCE_RATIO`` of its test-only signal and
is marked ``Evidence.UNKNOWN`` instead of defaulting to full marks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from testgrade.enums import CATEGORY_ORDER, SOURCE_DEPENDENT_CATEGORIES, Category, Evidence
from testgrade.fallbacks import log_best_effort_failure
from testgrade.models import CategoryRaw, Issue
from testgrade.registry import CategoryDelta, RuleContext, RuleMeta
from testgrade.rules._helpers import BOUNDARY_NAME_RE, clamp, edge_kinds, error_tests, input_literals
from testgrade.scoring.policy import (
    BOUNDARY_NAME_CAP,
    BOUNDARY_NAME_POINTS,
    EDGE_KIND_POINTS,
    ERROR_BASELINE,
    ERROR_TEST_POINTS,
    MAX_RAW,
    UNKNOWN_EVIDENCE_RATIO,
    round_half_up,
)

logger = logging.getLogger(__name__)


def start_score(category: Category, ctx: RuleContext) -> float:
    """Test-only starting signal for ``category`` before rule deltas."""
    if category == Category.ERROR_COVERAGE:
        return min(MAX_RAW, ERROR_BASELINE + ERROR_TEST_POINTS * len(error_tests(ctx.model)))
    if category == Category.BOUNDARY_CONDITIONS:
        kinds = edge_kinds(input_literals(ctx.model))
        named = sum(1 for t in ctx.model.active_tests if BOUNDARY_NAME_RE.search(t.name))
        bonus = min(BOUNDARY_NAME_CAP, BOUNDARY_NAME_POINTS * named)
        return min(MAX_RAW, EDGE_KIND_POINTS * len(kinds) + bonus)
    return MAX_RAW


def unknown_value(test_only: float) -> int:
    return round_half_up(test_only * UNKNOWN_EVIDENCE_RATIO)


def _deltas(
    category: Category,
    rules: Iterable[RuleMeta],
    issues_by_rule: dict[str, list[Issue]],
    ctx: RuleContext,
    failed: list[str],
) -> list[tuple[RuleMeta, CategoryDelta]]:
    found = []
    for meta in rules:
        if meta.category != category or meta.contribute is None or not meta.active:
            continue
        if meta.id in failed:
            continue
        try:
            delta = meta.contribute(issues_by_rule.get(meta.id, []), ctx)
        except Exception as exc:
            log_best_effort_failure(logger, f"score rule {meta.id}", exc)
            failed.append(meta.id)
            continue
        found.append((meta, delta))
    return found


def category_raw(
    category: Category,
    ctx: RuleContext,
    rules: Iterable[RuleMeta],
    issues_by_rule: dict[str, list[Issue]],
    failed: list[str] | None = None,
) -> CategoryRaw:
    failed = failed if failed is not None else []
    if not ctx.model.tests:
        return CategoryRaw(category, 0, Evidence.NO_TESTS)

    deltas = _deltas(category, rules, issues_by_rule, ctx, failed)
    test_points = sum(d.points for meta, d in deltas if not meta.requires_source)
    source_points = sum(d.points for meta, d in deltas if meta.requires_source)
    covered = sum(d.covered for meta, d in deltas if meta.requires_source)
    total = sum(d.total for meta, d in deltas if meta.requires_source)
    test_only = clamp(start_score(category, ctx) + test_points)

    if category not in SOURCE_DEPENDENT_CATEGORIES:
        return CategoryRaw(category, round_half_up(clamp(test_only + source_points)))

    floor = unknown_value(test_only)
    if not ctx.facts.available:
        return CategoryRaw(category, floor, Evidence.UNKNOWN)
    if total == 0:
        measured = clamp(test_only + source_points)
    else:
        measured = clamp(MAX_RAW * covered / total + test_points + source_points)
    # Checked-and-clean never scores below could-not-check.
    return CategoryRaw(category, max(round_half_up(measured), floor))


def category_raws(
    ctx: RuleContext,
    rules: Iterable[RuleMeta],
    issues_by_rule: dict[str, list[Issue]],
    failed: list[str] | None = None,
) -> list[CategoryRaw]:
    """All six raws in breakdown order."""
    rules = list(rules)
    failed = failed if failed is not None else []
    return [category_raw(c, ctx, rules, issues_by_rule, failed) for c in CATEGORY_ORDER]


__all__ = ["category_raw", "category_raws", "start_score", "unknown_value"]
