"""Scoring aggregator: category raws + penalty-only issues -> Score + Breakdown.

Every intermediate number lands on the Breakdown so a score can always
be traced back to its inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from testgrade.enums import CATEGORY_ORDER, Category, Evidence, Severity, TestType
from testgrade.models import Breakdown, CategoryRaw, CategoryRow, Issue, Score
from testgrade.scoring.policy import (
    DEFAULT_PENALTIES,
    GRADE_DESCRIPTIONS,
    MAX_RAW,
    RECOMMENDATION_THRESHOLD,
    RECOMMENDATIONS,
    UNKNOWN_EVIDENCE_RATIO,
    ZERO_ASSERTION_CEILING,
    PenaltyPolicy,
    round_half_up,
    weights_for,
)


def penalty_counts(issues: Iterable[Issue]) -> tuple[int, int, int]:
    """(errors, warnings, info) among penalty-only issues."""
    errors = warnings = info = 0
    for item in issues:
        if not item.penalty_only:
            continue
        if item.severity == Severity.ERROR:
            errors += 1
        elif item.severity == Severity.WARNING:
            warnings += 1
        else:
            info += 1
    return errors, warnings, info


def penalty_points(
    counts: tuple[int, int, int],
    policy: PenaltyPolicy = DEFAULT_PENALTIES,
) -> tuple[int, int, int]:
    errors, warnings, info = counts
    return (
        min(errors * policy.per_error, policy.cap_error),
        min(warnings * policy.per_warning, policy.cap_warning),
        min(info * policy.per_info, policy.cap_info),
    )


def redistribute_weights(
    categories: Sequence[CategoryRaw],
    row_weights: dict[Category, int],
) -> tuple[dict[Category, float], float]:
    """Move part of each unknown-evidence row's weight onto the measured rows.

    An UNKNOWN row keeps its nominal weight (its raw is already scaled by
    ``UNKNOWN_EVIDENCE_RATIO``); ``weight * (1 - ratio)`` of it is shared
    among MEASURED rows in proportion to their own weights. Returns the
    per-category bonus and the total weight moved.
    """
    moved = sum(
        row_weights[raw.category] * (1 - UNKNOWN_EVIDENCE_RATIO)
        for raw in categories
        if raw.evidence == Evidence.UNKNOWN
    )
    measured = {
        raw.category: row_weights[raw.category]
        for raw in categories
        if raw.evidence == Evidence.MEASURED and row_weights[raw.category] > 0
    }
    base = sum(measured.values())
    if not moved or not base:
        return {}, 0.0
    return {category: moved * weight / base for category, weight in measured.items()}, moved


def aggregate(
    categories: Sequence[CategoryRaw],
    test_type: TestType,
    issues: Iterable[Issue],
    *,
    weights: dict[TestType, dict[Category, int]] | None = None,
    penalties: PenaltyPolicy = DEFAULT_PENALTIES,
    zero_assertions: bool = False,
) -> tuple[Score, Breakdown]:
    """Combine six category raws into the final score.

    ``zero_assertions`` caps the result at ``ZERO_ASSERTION_CEILING`` for
    files whose tests never assert anything.
    """
    by_category = {raw.category: raw for raw in categories}
    missing = [c for c in CATEGORY_ORDER if c not in by_category]
    if missing:
        raise ValueError(f"Missing category raws: {', '.join(missing)}")

    row_weights = weights_for(test_type, weights)
    bonus, moved = redistribute_weights(categories, row_weights)
    rows = []
    for category in CATEGORY_ORDER:
        raw = by_category[category]
        value = max(0, min(MAX_RAW, raw.raw))
        weight = row_weights[category]
        extra = bonus.get(category, 0.0)
        rows.append(CategoryRow(
            category=category,
            raw=value,
            weight=weight,
            weighted=value * (weight + extra) / MAX_RAW,
            evidence=raw.evidence,
            weight_bonus=extra,
        ))
    weighted_total = max(0, min(100, round_half_up(sum(row.weighted for row in rows))))

    counts = penalty_counts(issues)
    pen_errors, pen_warnings, pen_info = penalty_points(counts, penalties)
    final = max(0, weighted_total - (pen_errors + pen_warnings + pen_info))
    if zero_assertions:
        final = min(final, ZERO_ASSERTION_CEILING)

    breakdown = Breakdown(
        rows=tuple(rows),
        weighted_total=weighted_total,
        penalty_errors=pen_errors,
        penalty_warnings=pen_warnings,
        penalty_info=pen_info,
        error_count=counts[0],
        warning_count=counts[1],
        info_count=counts[2],
        zero_assertion_cap=zero_assertions,
        final=final,
        redistributed_weight=moved,
    )
    return Score(final), breakdown


def grade_description(grade: str) -> str:
    return GRADE_DESCRIPTIONS.get(grade, "")


def recommendations(breakdown: Breakdown) -> list[str]:
    """One line per weak category, weakest first."""
    weak = sorted(
        (row for row in breakdown.rows if row.raw < RECOMMENDATION_THRESHOLD and row.weight > 0),
        key=lambda row: (row.raw, CATEGORY_ORDER.index(row.category)),
    )
    return [f"{row.category}: {RECOMMENDATIONS[row.category]}" for row in weak]


__all__ = [
    "aggregate",
    "grade_description",
    "penalty_counts",
    "penalty_points",
    "recommendations",
    "redistribute_weights",
]
