"""
ComplianceBot — Marketing Compliance Review Engine

Reviews merchant web copy against the HSA/FSA marketing rulebook and
learns from human verdicts on its output.

Public API:
  - RuleCatalog:        Versioned rulebook (prohibited/required phrases)
  - detect:             Deterministic phrase matcher (zero API cost)
  - ComplianceReviewer: LLM-backed reviewer with response validation
  - merge:              De-duplicated ComplianceResult from both detectors
  - review_text / review_page: End-to-end pipeline
  - LearningStore:      Examples and per-rule precision/recall/F1
  - FeedbackProcessor:  Applies human verdicts
  - generate_insights:  Plain-language tuning hints
  - ReviewLedger:       SHA-256 hash-chained outcome log
  - LLMProvider:        Abstract LLM interface for provider swapping

Usage:
    from compliancebot import default_catalog, detect, review_page
    from compliancebot import LearningStore, FeedbackProcessor
"""

__version__ = "1.0.0"

from compliancebot.rules import RuleCatalog, Rule, default_catalog, CATALOG_VERSION
from compliancebot.models import (
    Violation,
    ComplianceResult,
    LearningExample,
    PolicyPerformance,
    ReviewOutcome,
)
from compliancebot.matcher import detect
from compliancebot.reviewer import ComplianceReviewer, validate_review
from compliancebot.merger import merge
from compliancebot.checker import review_text, review_page
from compliancebot.learning import LearningStore
from compliancebot.feedback import FeedbackProcessor
from compliancebot.insights import generate_insights, build_performance_report
from compliancebot.ledger import ReviewLedger
from compliancebot.llm import LLMProvider
from compliancebot.llm.factory import get_provider

__all__ = [
    "RuleCatalog",
    "Rule",
    "default_catalog",
    "CATALOG_VERSION",
    "Violation",
    "ComplianceResult",
    "LearningExample",
    "PolicyPerformance",
    "ReviewOutcome",
    "detect",
    "ComplianceReviewer",
    "validate_review",
    "merge",
    "review_text",
    "review_page",
    "LearningStore",
    "FeedbackProcessor",
    "generate_insights",
    "build_performance_report",
    "ReviewLedger",
    "LLMProvider",
    "get_provider",
]
