"""Penalty-only naming rules."""

from __future__ import annotations

import re
from collections import defaultdict

from testgrade.enums import Severity
from testgrade.models import Issue, TestCase
from testgrade.registry import RuleContext, issue, rule

_VAGUE_NAME_RE = re.compile(
    r"^(?:|tests?|it|works?|it works|should work|works correctly|does (?:it|something|stuff)|"
    r"tests?\s*\d+|case\s*\d+|handles? (?:it|this|that)|ok|correct(?:ly)?|basic|simple|"
    r"example|stuff|foo|bar|todo|should pass|passes|happy path|default)$",
    re.IGNORECASE,
)
_WORD_RE = re.compile(r"[A-Za-z']+")

# Verbs that appear in test names without an inflection suffix.
_BASE_VERBS = frozenset({
    "should", "can", "cannot", "must", "will", "does", "do", "is", "are", "has", "have",
    "return", "throw", "render", "show", "hide", "reject", "resolve", "accept", "allow",
    "call", "create", "update", "delete", "handle", "parse", "format", "validate", "emit",
    "convert", "compute", "calculate", "display", "load", "save", "send", "fail", "keep",
    "set", "get", "add", "remove", "sort", "filter", "map", "build", "open", "close",
    "match", "equal", "contain", "include", "exclude", "skip", "retry", "redirect",
    "navigate", "submit", "clear", "reset", "apply", "trim", "round", "split", "merge",
    "log", "use", "make", "give", "find", "work", "ignore", "treat", "wrap", "fall",
})
_VERB_SUFFIXES = ("s", "ed", "ing")


def has_verb(name: str) -> bool:
    """Loose check that a test name states a behaviour."""
    for word in _WORD_RE.findall(name.lower()):
        if word in _BASE_VERBS:
            return True
        if len(word) > 3 and word.endswith(_VERB_SUFFIXES) and not word.endswith("ss"):
            return True
    return False


@rule(
    "duplicate-test-name",
    display="Duplicate test name",
    severity=Severity.ERROR,
    category=None,
    guidance="Give every test in a describe block a unique name",
)
def detect_duplicate_names(ctx: RuleContext) -> list[Issue]:
    groups: dict[tuple[tuple[str, ...], str], list[TestCase]] = defaultdict(list)
    for test in ctx.model.tests:
        if test.parameterized:
            continue
        groups[(test.describe_chain, test.name.strip())].append(test)
    found = []
    for (_chain, name), tests in groups.items():
        for duplicate in tests[1:]:
            found.append(issue(
                "duplicate-test-name",
                f"Test name '{name}' is already used on line {tests[0].span.line}",
                duplicate.span,
            ))
    return found


@rule(
    "vague-test-name",
    display="Vague test name",
    severity=Severity.WARNING,
    category=None,
    guidance="Name the behaviour and the condition, e.g. 'returns 0 for an empty cart'",
)
def detect_vague_names(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.tests:
        if test.parameterized:
            continue
        name = test.name.strip()
        if _VAGUE_NAME_RE.match(name):
            found.append(issue("vague-test-name", f"Test name '{name}' does not describe a behaviour", test.span))
        elif not has_verb(name):
            found.append(issue(
                "vague-test-name",
                f"Test name '{name}' has no verb",
                test.span,
                severity=Severity.INFO,
            ))
    return found
