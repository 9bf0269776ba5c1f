"""
Generative Reviewer — LLM-backed Rulebook Review

Sends page text plus the rulebook to the configured LLM provider and
turns its reply into a typed result.

The model's reply is untrusted. Validation produces exactly one of:
  - NormalizedReview: defaults substituted for missing or invalid fields,
    downgrade rule applied
  - MalformedReview:  the body was not a JSON object at all

Only the second is an error. Everything recoverable is recovered inside
NormalizedReview construction and never surfaces to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Union

from compliancebot.config import settings
from compliancebot.errors import (
    MalformedResponseError,
    ReviewError,
    ReviewTimeoutError,
    ReviewUnavailableError,
)
from compliancebot.llm import LLMProvider, strip_code_fences
from compliancebot.models import DECISIONS, SEVERITIES, Violation
from compliancebot.rules import RuleCatalog, default_catalog

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT_NAME = "Unknown Company"
DEFAULT_DECISION = "needs_review"
DEFAULT_CONFIDENCE = 0.5


# ============================================================
# VALIDATION RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class NormalizedReview:
    """A model reply that passed validation, with defaults applied."""
    subject_name: str
    overall_decision: str
    confidence: float
    violations: tuple[Violation, ...]
    model_decision: Optional[str] = None  # What the model said before downgrade
    downgraded: bool = False


@dataclass(frozen=True)
class MalformedReview:
    """A model reply that could not be parsed as a JSON object."""
    reason: str
    raw_excerpt: str = ""


ReviewValidation = Union[NormalizedReview, MalformedReview]


# ============================================================
# FIELD NORMALIZERS
# ============================================================

def _subject_name(payload: dict) -> str:
    name = payload.get("subject_name") or payload.get("merchant_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return DEFAULT_SUBJECT_NAME


def _decision(payload: dict) -> str:
    decision = payload.get("overall_decision")
    if isinstance(decision, str) and decision.strip().lower() in DECISIONS:
        return decision.strip().lower()
    return DEFAULT_DECISION


def _confidence(payload: dict) -> float:
    value = payload.get("confidence")
    # bool is an int subclass; "true" is not a confidence
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except OverflowError:
        return DEFAULT_CONFIDENCE
    if math.isnan(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _quote(entry: Any) -> Optional[str]:
    if not isinstance(entry, dict):
        return None
    quote = entry.get("quote")
    if isinstance(quote, str) and quote.strip():
        return quote.strip()
    return None


def _violation(entry: Any, catalog: Optional[RuleCatalog]) -> Optional[Violation]:
    """Convert one raw violation entry, or None if it names no usable rule."""
    if not isinstance(entry, dict):
        return None

    rule_id = entry.get("rule_id") or entry.get("policy_id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        return None
    rule_id = rule_id.strip()
    if catalog is not None and rule_id not in catalog:
        logger.warning("Reviewer cited unknown rule %s; dropping violation", rule_id)
        return None

    severity = entry.get("severity")
    if not isinstance(severity, str) or severity.lower() not in SEVERITIES:
        severity = ""  # Merger falls back to the catalog severity

    rationale = entry.get("rationale")
    if not isinstance(rationale, str):
        rationale = ""

    return Violation(
        rule_id=rule_id,
        severity=severity.lower(),
        rationale=rationale.strip(),
        quote=_quote(entry),
        source="llm",
    )


def normalize_payload(payload: dict, catalog: Optional[RuleCatalog] = None) -> NormalizedReview:
    """
    Build a NormalizedReview from a decoded JSON object.

    Defaults:
      missing subject_name             → "Unknown Company"
      missing/invalid overall_decision → "needs_review"
      non-list violations              → []
      non-numeric confidence           → 0.5

    Downgrade rule: if any reported violation lacks a quote, the decision
    becomes "needs_review" whatever the model said. An unquoted finding
    cannot be defended, so it cannot drive a strict verdict.
    """
    raw_violations = payload.get("violations")
    if not isinstance(raw_violations, list):
        raw_violations = []

    decision = _decision(payload)
    downgraded = False
    if any(_quote(entry) is None for entry in raw_violations):
        downgraded = decision != DEFAULT_DECISION
        decision = DEFAULT_DECISION

    violations = tuple(
        v for v in (_violation(entry, catalog) for entry in raw_violations)
        if v is not None
    )

    model_decision = payload.get("overall_decision")
    return NormalizedReview(
        subject_name=_subject_name(payload),
        overall_decision=decision,
        confidence=_confidence(payload),
        violations=violations,
        model_decision=model_decision if isinstance(model_decision, str) else None,
        downgraded=downgraded,
    )


def validate_review(raw: Optional[str], catalog: Optional[RuleCatalog] = None) -> ReviewValidation:
    """Parse a raw model reply into NormalizedReview or MalformedReview."""
    cleaned = strip_code_fences(raw or "")
    if not cleaned:
        return MalformedReview(reason="empty response body")

    try:
        payload = json.loads(cleaned)
    # JSONDecodeError, or ValueError for integers past the digit limit
    except ValueError as e:
        return MalformedReview(reason=f"invalid JSON: {e}", raw_excerpt=cleaned[:300])

    if not isinstance(payload, dict):
        return MalformedReview(
            reason=f"expected a JSON object, got {type(payload).__name__}",
            raw_excerpt=cleaned[:300],
        )

    return normalize_payload(payload, catalog)


# ============================================================
# REVIEWER
# ============================================================

class ComplianceReviewer:
    """
    Wraps one LLM provider call per page.

    Text is truncated to max_chars to bound cost and latency. The call is
    bounded by timeout seconds; on timeout or provider error the review
    fails and the caller records nothing.
    """

    def __init__(
        self,
        llm: LLMProvider,
        catalog: RuleCatalog = default_catalog,
        max_chars: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.llm = llm
        self.catalog = catalog
        self.max_chars = max_chars if max_chars is not None else settings.MAX_REVIEW_CHARS
        self.timeout = timeout if timeout is not None else settings.REVIEW_TIMEOUT_SECONDS
        self._system_instruction = catalog.get_rulebook_prompt()

    def build_prompt(self, text: str) -> str:
        return f'PAGE_TEXT:\n"""{text[:self.max_chars]}"""'

    async def review(self, text: str) -> NormalizedReview:
        """
        Review text against the rulebook.

        Raises:
            ReviewTimeoutError: the model did not answer within timeout.
            ReviewUnavailableError: the provider failed.
            MalformedResponseError: the reply was not a JSON object.
        """
        try:
            raw = await asyncio.wait_for(
                self.llm.generate(
                    self.build_prompt(text),
                    system_instruction=self._system_instruction,
                    temperature=0.0,
                    json_mode=True,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ReviewTimeoutError(
                f"Reviewer did not respond within {self.timeout:g}s"
            ) from e
        except ReviewError:
            raise
        except Exception as e:
            raise ReviewUnavailableError(f"Reviewer call failed: {e}") from e

        outcome = validate_review(raw, self.catalog)
        if isinstance(outcome, MalformedReview):
            logger.warning(
                "Malformed reviewer response: %s", outcome.reason,
                extra={"error": outcome.raw_excerpt},
            )
            raise MalformedResponseError(outcome.reason)

        if outcome.downgraded:
            logger.info(
                "Decision downgraded to needs_review: unquoted violation",
                extra={"decision": outcome.model_decision},
            )
        return outcome
