"""
API Schemas — Request and Response Models

Pydantic models for the ComplianceBot API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# REVIEW
# ============================================================

class ReviewRequest(BaseModel):
    """POST /review request body."""
    text: str = Field(..., min_length=1, max_length=200_000,
                      description="Visible page text to review.")
    source_ref: str = Field("", max_length=2_000,
                            description="Opaque reference to the reviewed page (usually its URL).")
    ticket_id: Optional[str] = Field(None, max_length=200,
                                     description="When set, a page already reviewed for this "
                                                 "ticket today is skipped.")

    model_config = {"json_schema_extra": {"examples": [
        {
            "text": "Use your HSA/FSA to buy this sauna. Your doctor will approve it.",
            "source_ref": "https://example.com/products/sauna",
            "ticket_id": "4821",
        },
    ]}}


class ViolationResponse(BaseModel):
    rule_id: str
    severity: str
    rationale: str
    quote: Optional[str] = None
    suggested_fix: Optional[str] = None
    rule_title: Optional[str] = None
    source: str = "pattern"


class ComplianceResultResponse(BaseModel):
    subject_name: str
    overall_decision: str
    confidence: float
    violations: list[ViolationResponse]
    summary: str
    recommendations: list[str] = []


class ReviewResponse(BaseModel):
    """POST /review response body."""
    status: str  # "reviewed" | "skipped"
    source_ref: str
    example_id: Optional[str] = None
    result: Optional[ComplianceResultResponse] = None


# ============================================================
# FEEDBACK
# ============================================================

class FeedbackRequest(BaseModel):
    """POST /feedback request body."""
    example_id: str = Field(..., min_length=1)
    feedback: str = Field(..., description="correct | incorrect | needs_review")
    notes: Optional[str] = Field(None, max_length=5_000)


class FeedbackActionRequest(BaseModel):
    """POST /feedback/action request body (chat button callback)."""
    action_id: str = Field(..., min_length=1)
    example_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=5_000)


class FeedbackResponse(BaseModel):
    example_id: str
    feedback: str
    ai_decision: str
    rules_updated: list[str]
    counter: Optional[str] = None
    message: str


# ============================================================
# LEARNING
# ============================================================

class ExampleResponse(BaseModel):
    id: str
    source_ref: str
    text_snippet: str
    ai_decision: str
    ai_confidence: float
    violations_found: list[str]
    human_feedback: str
    timestamp: str
    reviewer_notes: Optional[str] = None


class PendingExamplesResponse(BaseModel):
    examples: list[ExampleResponse]
    total: int


class PolicyPerformanceResponse(BaseModel):
    rule_id: str
    true_positives: int
    false_positives: int
    false_negatives: int
    precision: float
    recall: float
    f1_score: float
    last_updated: Optional[str] = None


class PerformanceResponse(BaseModel):
    policies: list[PolicyPerformanceResponse]
    total: int


class InsightsResponse(BaseModel):
    insights: list[str]


class ReportResponse(BaseModel):
    policies_tracked: int
    pending_examples: int
    reviewed_examples: int
    average_f1: float
    insights: list[str]
    top_policies: list[PolicyPerformanceResponse]
    generated_at: str
    text: str


class ExportResponse(BaseModel):
    examples: list[ExampleResponse]
    performance: list[PolicyPerformanceResponse]
    export_date: str
    total_examples: int
    reviewed_examples: int


# ============================================================
# RULES
# ============================================================

class RuleResponse(BaseModel):
    id: str
    category: str
    severity: str
    title: str
    description: str
    prohibited_phrases: list[str]
    required_phrases: list[str]
    trigger_terms: list[str]
    compliant_examples: list[str]
    non_compliant_examples: list[str]
    rationale: str


class RulesResponse(BaseModel):
    catalog_version: str
    categories: list[str]
    total: int
    rules: list[RuleResponse]


# ============================================================
# LEDGER
# ============================================================

class LedgerEntry(BaseModel):
    id: int
    prev_hash: str
    hash: str
    event_type: str
    data: dict
    timestamp: str
    catalog_version: str


class LedgerResponse(BaseModel):
    entries: list[LedgerEntry]
    total_count: int


class ChainVerification(BaseModel):
    verified: bool
    entries_checked: int
    broken_links: list[dict]


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    catalog_version: str
    llm_provider: str
    rules_loaded: int
    ledger_entries: int
    total_examples: int
    pending_examples: int
    auth_enabled: bool
