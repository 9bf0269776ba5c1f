"""
Result Merger — One Verdict From Two Detectors

Unions the generative review with the pattern detector's findings:
  1. LLM violations get rule metadata and a suggested fix
  2. Pattern violations are appended unless their (rule_id, quote)
     pair is already present
  3. The decision is the reviewer's (already downgraded if needed)
  4. Summary and recommendations are derived from the final set
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from compliancebot.models import ComplianceResult, Violation
from compliancebot.reviewer import NormalizedReview
from compliancebot.rules import RuleCatalog

DEFAULT_SEVERITY = "medium"
SEVERITY_ORDER = ("high", "medium", "low")

# One recommendation per distinct category touched by the final violations.
CATEGORY_RECOMMENDATIONS: dict[str, str] = {
    "Terminology": "Review and update terminology to use precise medical language",
    "Eligibility Claims": "Add conditional language to all HSA/FSA eligibility statements",
    "Tax Claims": "Qualify all tax savings claims with appropriate disclaimers",
    "Medical Focus": (
        "Reframe product benefits in terms of medical conditions, not general wellness"
    ),
    "Cost Transparency": "Clarify that Truemed costs are included in product pricing",
}


def suggested_fix(rule_id: str, catalog: RuleCatalog) -> str:
    """Prefer the rule's first compliant example, else point at its guidelines."""
    rule = catalog.get(rule_id)
    if rule is None:
        return "Review compliance guidelines"
    if rule.compliant_examples:
        return f'Suggested fix: "{rule.compliant_examples[0]}"'
    return f"Review {rule.title} guidelines for proper terminology"


def enrich(violation: Violation, catalog: RuleCatalog) -> Violation:
    """Attach catalog metadata to an LLM-reported violation."""
    rule = catalog.get(violation.rule_id)
    severity = violation.severity or (rule.severity if rule else DEFAULT_SEVERITY)
    return replace(
        violation,
        severity=severity,
        rule_title=rule.title if rule else violation.rule_title,
        suggested_fix=suggested_fix(violation.rule_id, catalog),
    )


def build_summary(subject_name: str, violations: Iterable[Violation]) -> str:
    """
    Human-readable summary. Severity clauses appear in high → medium → low
    order and only when their count is non-zero.
    """
    violations = list(violations)
    if not violations:
        return f"{subject_name}'s website appears compliant with Truemed guidelines."

    counts = {s: 0 for s in SEVERITY_ORDER}
    for v in violations:
        if v.severity in counts:
            counts[v.severity] += 1

    clauses = [
        f"{counts[s]} {s}-priority" for s in SEVERITY_ORDER if counts[s] > 0
    ]
    summary = f"{subject_name}'s website has {len(violations)} compliance issue(s)"
    if clauses:
        summary += ": " + ", ".join(clauses)
    return summary + "."


def build_recommendations(
    violations: Iterable[Violation], catalog: RuleCatalog,
) -> list[str]:
    """Category recommendations in category first-seen order."""
    recommendations: list[str] = []
    seen: set[str] = set()
    for v in violations:
        rule = catalog.get(v.rule_id)
        if rule is None or rule.category in seen:
            continue
        seen.add(rule.category)
        text = CATEGORY_RECOMMENDATIONS.get(rule.category)
        if text:
            recommendations.append(text)
    return recommendations


def merge(
    review: NormalizedReview,
    pattern_violations: Iterable[Violation],
    catalog: RuleCatalog,
) -> ComplianceResult:
    """
    Merge reviewer output and pattern matches into a ComplianceResult.

    De-duplication is exact (rule_id, quote) equality. An unquoted
    violation only collides with another unquoted violation of the same
    rule. The check runs against everything already accepted, so the
    final set never holds two equal keys.
    """
    merged: list[Violation] = []
    seen: set[tuple[str, Optional[str]]] = set()

    for violation in review.violations:
        enriched = enrich(violation, catalog)
        if enriched.key in seen:
            continue
        seen.add(enriched.key)
        merged.append(enriched)

    for violation in pattern_violations:
        if violation.key in seen:
            continue
        seen.add(violation.key)
        merged.append(violation)

    name = review.subject_name
    return ComplianceResult(
        subject_name=name,
        overall_decision=review.overall_decision,
        confidence=round(review.confidence, 3),
        violations=tuple(merged),
        summary=build_summary(name, merged),
        recommendations=tuple(build_recommendations(merged, catalog)),
    )
