"""Inline ignore directives in test files.

    // testgrade-ignore weak-assertion          this line
    // testgrade-ignore-next-line              the following line, all rules
    /* testgrade-disable flaky-pattern */      until testgrade-enable
    // testgrade-disable-file debug-code       the whole file

Rule ids are optional; without them a directive covers every rule. Text
after ``--`` is a free-form reason and is ignored, as is any word that is
not a registered rule id.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import testgrade.rules  # noqa: F401  registers every rule
from testgrade.models import Issue
from testgrade.registry import RULES

ALL_RULES = "*"

_DIRECTIVE_RE = re.compile(
    r"(?://|/\*)\s*testgrade-(ignore-next-line|ignore|disable-file|disable|enable)\b([^\n]*)"
)


def _rule_ids(tail: str) -> frozenset[str]:
    tail = tail.split("*/", 1)[0].split("--", 1)[0]
    ids = [token for token in re.split(r"[\s,]+", tail) if token in RULES]
    return frozenset(ids) if ids else frozenset({ALL_RULES})


@dataclass
class IgnoreDirectives:
    lines: dict[int, set[str]] = field(default_factory=dict)
    ranges: list[tuple[int, int, frozenset[str]]] = field(default_factory=list)
    file_rules: set[str] = field(default_factory=set)

    @classmethod
    def parse(cls, lines: Sequence[str]) -> IgnoreDirectives:
        found = cls()
        open_ranges: dict[str, int] = {}
        for number, line in enumerate(lines, start=1):
            match = _DIRECTIVE_RE.search(line)
            if not match:
                continue
            kind, ids = match.group(1), _rule_ids(match.group(2))
            if kind == "ignore":
                found.lines.setdefault(number, set()).update(ids)
            elif kind == "ignore-next-line":
                found.lines.setdefault(number + 1, set()).update(ids)
            elif kind == "disable-file":
                found.file_rules.update(ids)
            elif kind == "disable":
                for rule_id in ids:
                    open_ranges.setdefault(rule_id, number)
            else:
                closing = list(open_ranges) if ALL_RULES in ids else [r for r in ids if r in open_ranges]
                for rule_id in closing:
                    start = open_ranges.pop(rule_id)
                    found.ranges.append((start, number, frozenset({rule_id})))
        for rule_id, start in open_ranges.items():
            found.ranges.append((start, max(len(lines), start), frozenset({rule_id})))
        return found

    def __bool__(self) -> bool:
        return bool(self.lines or self.ranges or self.file_rules)

    def is_ignored(self, line: int, rule_id: str) -> bool:
        if _covers(self.file_rules, rule_id):
            return True
        if _covers(self.lines.get(line, ()), rule_id):
            return True
        return any(
            start <= line <= end and _covers(ids, rule_id)
            for start, end, ids in self.ranges
        )

    def filter(self, issues: Iterable[Issue]) -> list[Issue]:
        return [i for i in issues if not self.is_ignored(i.span.line, i.rule)]


def _covers(ids: Iterable[str], rule_id: str) -> bool:
    ids = set(ids)
    return ALL_RULES in ids or rule_id in ids


__all__ = ["ALL_RULES", "IgnoreDirectives"]
