"""
Pattern Detector — Deterministic Phrase Matching

Scans page text against the rule catalog. No LLM, no network, no state.
Zero API cost. Runs before the generative review so obvious breaches are
caught even when the model misses them.

Two checks per rule:
  1. Prohibited phrases: every case-insensitive, word-boundary match
     yields one violation quoting the matched text.
  2. Missing qualifiers: a high-severity rule whose trigger terms appear
     in the text, with none of its required phrases present, yields one
     unquoted violation.
"""

from __future__ import annotations

import re
from functools import lru_cache

from compliancebot.models import Violation
from compliancebot.rules import Rule, RuleCatalog

GENERIC_FIX = "Replace with approved terminology from policy guidelines"
MISSING_QUALIFIER_FIX = (
    'Add conditional language like "may be eligible" or "with a Truemed LMN"'
)

# Typographic apostrophes and quotes normalized to ASCII before matching.
# Each replacement is one character for one character, so match offsets
# still index into the original text.
_TYPOGRAPHIC = str.maketrans({
    "\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"', "\u00a0": " ",
})


@lru_cache(maxsize=512)
def phrase_regex(phrase: str) -> re.Pattern:
    """
    Compile a phrase into a case-insensitive, word-boundary-aware regex.

    Internal whitespace matches any run of whitespace. Boundaries are
    lookarounds rather than \\b so phrases that begin or end with
    punctuation ("~30%", "save 30% now!") still match.
    """
    words = phrase.translate(_TYPOGRAPHIC).split()
    body = r"\s+".join(re.escape(w) for w in words)
    return re.compile(rf"(?<!\w){body}(?!\w)", re.IGNORECASE)


def _normalize(text: str) -> str:
    return text.translate(_TYPOGRAPHIC)


def _prohibited_matches(text: str, normalized: str, rule: Rule) -> list[Violation]:
    found = []
    for phrase in rule.prohibited_phrases:
        for match in phrase_regex(phrase).finditer(normalized):
            found.append(Violation(
                rule_id=rule.id,
                severity=rule.severity,
                rationale=f'Contains prohibited phrase: "{phrase}"',
                quote=text[match.start():match.end()],
                suggested_fix=GENERIC_FIX,
                rule_title=rule.title,
                source="pattern",
            ))
    return found


def _missing_qualifier(normalized: str, rule: Rule) -> list[Violation]:
    if rule.severity != "high" or not rule.required_phrases or not rule.trigger_terms:
        return []

    triggered = any(
        phrase_regex(term).search(normalized) for term in rule.trigger_terms
    )
    if not triggered:
        return []

    # Required phrases are plain substring checks; qualifiers such as "~30%"
    # are often glued to surrounding punctuation.
    lowered = normalized.lower()
    if any(p.translate(_TYPOGRAPHIC).lower() in lowered for p in rule.required_phrases):
        return []

    return [Violation(
        rule_id=rule.id,
        severity=rule.severity,
        rationale=f"Missing required qualifying language for {rule.title.lower()}",
        quote=None,
        suggested_fix=MISSING_QUALIFIER_FIX,
        rule_title=rule.title,
        source="pattern",
    )]


def detect(text: str, catalog: RuleCatalog) -> list[Violation]:
    """
    Scan text against every rule in the catalog.

    Returns violations in catalog order, prohibited-phrase matches first
    within each rule. Side-effect free.
    """
    if not text:
        return []

    normalized = _normalize(text)
    violations: list[Violation] = []
    for rule in catalog.rules:
        violations.extend(_prohibited_matches(text, normalized, rule))
        violations.extend(_missing_qualifier(normalized, rule))
    return violations
