"""
Insight Generator — Rule Performance Reporting

Reads learning-store statistics and turns them into ranked summaries
and plain-language insights for periodic reports.

Insight rules (all applicable insights are emitted):
  - Lowest-F1 rule below 0.7 → attention needed
  - Rules with FP > TP and precision < 0.6 → high false positive rate
  - Rules with FN > TP and recall < 0.6 → missing violations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from compliancebot.models import PolicyPerformance

ATTENTION_F1_THRESHOLD = 0.7
FALSE_POSITIVE_PRECISION_THRESHOLD = 0.6
MISSED_VIOLATION_RECALL_THRESHOLD = 0.6


def generate_insights(performance: Iterable[PolicyPerformance]) -> list[str]:
    """Natural-language insights. Empty input yields no insights."""
    performance = list(performance)
    if not performance:
        return []

    insights: list[str] = []

    worst = min(performance, key=lambda p: p.f1_score)
    if worst.f1_score < ATTENTION_F1_THRESHOLD:
        insights.append(
            f'Policy "{worst.rule_id}" needs attention (F1: {worst.f1_score:.2f})'
        )

    high_fp = [
        p for p in performance
        if p.false_positives > p.true_positives
        and p.precision < FALSE_POSITIVE_PRECISION_THRESHOLD
    ]
    if high_fp:
        insights.append(
            f"{len(high_fp)} policies have high false positive rates - "
            "consider refining detection criteria"
        )

    missed = [
        p for p in performance
        if p.false_negatives > p.true_positives
        and p.recall < MISSED_VIOLATION_RECALL_THRESHOLD
    ]
    if missed:
        insights.append(
            f"{len(missed)} policies missing violations - "
            "consider strengthening detection patterns"
        )

    return insights


def rank_by_f1(performance: Iterable[PolicyPerformance]) -> list[PolicyPerformance]:
    """Best F1 first; ties broken by rule id so the order is stable."""
    return sorted(performance, key=lambda p: (-p.f1_score, p.rule_id))


@dataclass
class PerformanceReport:
    """Periodic learning summary."""
    policies_tracked: int
    pending_examples: int
    reviewed_examples: int
    average_f1: float
    insights: list[str]
    top_policies: list[PolicyPerformance]
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "policies_tracked": self.policies_tracked,
            "pending_examples": self.pending_examples,
            "reviewed_examples": self.reviewed_examples,
            "average_f1": round(self.average_f1, 4),
            "insights": list(self.insights),
            "top_policies": [p.to_dict() for p in self.top_policies],
            "generated_at": self.generated_at,
        }


def build_performance_report(store, top_n: int = 3) -> PerformanceReport:
    """Assemble a report from a LearningStore."""
    performance = store.get_policy_performance()
    stats = store.get_stats()
    average_f1 = (
        sum(p.f1_score for p in performance) / len(performance)
        if performance else 0.0
    )
    return PerformanceReport(
        policies_tracked=len(performance),
        pending_examples=stats["pending_examples"],
        reviewed_examples=stats["reviewed_examples"],
        average_f1=average_f1,
        insights=generate_insights(performance),
        top_policies=rank_by_f1(performance)[:top_n],
    )


def format_report(report: PerformanceReport) -> str:
    """Plain-text rendering for logs and chat collaborators."""
    lines = [
        "Compliance Learning Report",
        "",
        "Performance Summary:",
        f"  Policies tracked:   {report.policies_tracked}",
        f"  Pending review:     {report.pending_examples}",
        f"  Reviewed examples:  {report.reviewed_examples}",
        f"  Average F1 score:   {report.average_f1:.2f}",
    ]

    if report.insights:
        lines.extend(["", "Key Insights:"])
        lines.extend(f"  - {insight}" for insight in report.insights)

    if report.top_policies:
        lines.extend(["", "Top Performing Policies:"])
        for p in report.top_policies:
            lines.append(
                f"  - {p.rule_id}: F1={p.f1_score:.2f} "
                f"(P={p.precision:.2f}, R={p.recall:.2f})"
            )

    return "\n".join(lines)
