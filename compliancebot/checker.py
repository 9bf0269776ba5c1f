"""
Checker — Review Pipeline Orchestrator

Coordinates one page review end to end:
  1. Pattern detector (deterministic, zero API cost)
  2. Generative reviewer (the only suspend point; bounded by a timeout)
  3. Merger (de-duplicated ComplianceResult)
  4. Learning store (one pending example per successful review)

A failed review records nothing in the learning store. The failure is
written to the ledger and re-raised so the caller can surface an
explicit error state, distinct from "clean" or "violation".
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from compliancebot.config import settings
from compliancebot.learning import LearningStore
from compliancebot.ledger import ReviewLedger
from compliancebot.matcher import detect
from compliancebot.merger import merge
from compliancebot.models import ComplianceResult, ReviewOutcome
from compliancebot.reviewer import ComplianceReviewer
from compliancebot.rules import RuleCatalog

logger = logging.getLogger(__name__)


async def review_text(
    text: str,
    reviewer: ComplianceReviewer,
    catalog: Optional[RuleCatalog] = None,
) -> ComplianceResult:
    """Run both detectors over text and merge their findings."""
    catalog = catalog or reviewer.catalog
    pattern_violations = detect(text, catalog)
    review = await reviewer.review(text)
    return merge(review, pattern_violations, catalog)


async def review_page(
    text: str,
    source_ref: str,
    reviewer: ComplianceReviewer,
    store: LearningStore,
    ledger: Optional[ReviewLedger] = None,
    catalog: Optional[RuleCatalog] = None,
    snippet_chars: Optional[int] = None,
) -> ReviewOutcome:
    """
    Review a page and record it as a learning example.

    source_ref is kept for record-keeping only and is never parsed.
    """
    snippet_chars = snippet_chars if snippet_chars is not None else settings.SNIPPET_CHARS
    start = time.time()

    try:
        result = await review_text(text, reviewer, catalog)
    except Exception as e:
        if ledger is not None:
            ledger.log("review_failed", {
                "source_ref": source_ref,
                "error": str(e),
                "error_type": type(e).__name__,
            })
        logger.error(
            "Review failed for %s", source_ref,
            extra={"source_ref": source_ref, "error": str(e),
                   "error_type": type(e).__name__},
        )
        raise

    example_id = store.record_example(
        source_ref=source_ref,
        text_snippet=text[:snippet_chars],
        ai_decision=result.overall_decision,
        ai_confidence=result.confidence,
        rule_ids=result.rule_ids,
    )

    ledger_hash = None
    if ledger is not None:
        ledger_hash = ledger.log("review_completed", {
            "source_ref": source_ref,
            "example_id": example_id,
            "decision": result.overall_decision,
            "confidence": result.confidence,
            "violations": [v.to_dict() for v in result.violations],
        })

    logger.info(
        "Review complete: %s", result.overall_decision,
        extra={
            "source_ref": source_ref,
            "example_id": example_id,
            "decision": result.overall_decision,
            "confidence": result.confidence,
            "violations_count": len(result.violations),
            "ledger_hash": ledger_hash,
            "duration_ms": int((time.time() - start) * 1000),
        },
    )
    return ReviewOutcome(result=result, example_id=example_id, source_ref=source_ref)
