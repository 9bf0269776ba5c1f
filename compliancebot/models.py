"""
Shared data structures for the detection pipeline and the learning loop.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional


# ============================================================
# VOCABULARY
# ============================================================

SEVERITIES = ("high", "medium", "low")
DECISIONS = ("violation", "needs_review", "clean")

FEEDBACK_PENDING = "pending"
FEEDBACK_VALUES = ("correct", "incorrect", "needs_review")


# ============================================================
# DETECTION
# ============================================================

@dataclass(frozen=True)
class Violation:
    """A single detected instance of a rule being broken."""
    rule_id: str
    severity: str               # "high" | "medium" | "low"
    rationale: str
    quote: Optional[str] = None  # Verbatim excerpt, None when unquoted
    suggested_fix: Optional[str] = None
    rule_title: Optional[str] = None
    source: str = "pattern"     # "pattern" | "llm"

    @property
    def key(self) -> tuple[str, Optional[str]]:
        """De-duplication key."""
        return (self.rule_id, self.quote)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ComplianceResult:
    """Final verdict for one reviewed text. Never mutated after merge."""
    subject_name: str
    overall_decision: str       # "violation" | "needs_review" | "clean"
    confidence: float
    violations: tuple[Violation, ...]
    summary: str
    recommendations: tuple[str, ...] = ()

    @property
    def rule_ids(self) -> list[str]:
        return [v.rule_id for v in self.violations]

    def to_dict(self) -> dict:
        return {
            "subject_name": self.subject_name,
            "overall_decision": self.overall_decision,
            "confidence": self.confidence,
            "violations": [v.to_dict() for v in self.violations],
            "summary": self.summary,
            "recommendations": list(self.recommendations),
        }


# ============================================================
# LEARNING
# ============================================================

@dataclass
class LearningExample:
    """One recorded detection event awaiting or carrying human feedback."""
    id: str
    source_ref: str
    text_snippet: str
    ai_decision: str
    ai_confidence: float
    violations_found: list[str]
    human_feedback: str         # "pending" | "correct" | "incorrect" | "needs_review"
    timestamp: str              # ISO timestamp
    reviewer_notes: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.human_feedback == FEEDBACK_PENDING

    def to_dict(self) -> dict:
        return asdict(self)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Division that yields 0.0 instead of raising on a zero denominator."""
    return numerator / denominator if denominator > 0 else 0.0


@dataclass
class PolicyPerformance:
    """Confusion-matrix counters and derived metrics for one rule."""
    rule_id: str
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    last_updated: Optional[str] = None

    @property
    def precision(self) -> float:
        return safe_ratio(self.true_positives, self.true_positives + self.false_positives)

    @property
    def recall(self) -> float:
        return safe_ratio(self.true_positives, self.true_positives + self.false_negatives)

    @property
    def f1_score(self) -> float:
        p, r = self.precision, self.recall
        return safe_ratio(2 * p * r, p + r)

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "true_positives": self.true_positives,
            "false_positives": self.false_positives,
            "false_negatives": self.false_negatives,
            "precision": round(self.precision, 4),
            "recall": round(self.recall, 4),
            "f1_score": round(self.f1_score, 4),
            "last_updated": self.last_updated,
        }


@dataclass
class ReviewOutcome:
    """A merged result together with the learning example it was recorded as."""
    result: ComplianceResult
    example_id: str
    source_ref: str = ""
