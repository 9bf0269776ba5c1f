"""
Reviewer Adapter Tests

Tests response validation and the reviewer call:
  1. Malformed bodies (empty, invalid JSON, non-object)
  2. Defaults for missing fields
  3. Downgrade of unquoted violations to needs_review
  4. Timeout and provider failures
"""

from __future__ import annotations

import asyncio
import json

import pytest

from compliancebot.errors import (
    MalformedResponseError,
    ReviewTimeoutError,
    ReviewUnavailableError,
)
from compliancebot.llm import LLMProvider, strip_code_fences
from compliancebot.reviewer import (
    ComplianceReviewer,
    MalformedReview,
    NormalizedReview,
    normalize_payload,
    validate_review,
)
from compliancebot.rules import default_catalog


# ============================================================
# MOCK LLMs
# ============================================================

class MockLLM(LLMProvider):
    """Returns a fixed raw body and records every call."""

    def __init__(self, response):
        self._response = response if isinstance(response, str) else json.dumps(response)
        self.calls = []

    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "json_mode": json_mode,
        })
        return self._response


class SlowLLM(LLMProvider):
    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        await asyncio.sleep(5)
        return "{}"


class FailingLLM(LLMProvider):
    def __init__(self, error: Exception):
        self._error = error

    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        raise self._error


# ============================================================
# VALIDATION
# ============================================================

class TestMalformed:

    def test_empty_body(self):
        result = validate_review("")
        assert isinstance(result, MalformedReview)
        assert "empty" in result.reason

    def test_none_body(self):
        assert isinstance(validate_review(None), MalformedReview)

    def test_invalid_json(self):
        result = validate_review("The page looks fine to me.")
        assert isinstance(result, MalformedReview)
        assert "invalid JSON" in result.reason

    def test_non_object(self):
        result = validate_review("[1, 2, 3]")
        assert isinstance(result, MalformedReview)
        assert "list" in result.reason

    def test_integer_past_digit_limit(self):
        # json.loads raises a plain ValueError here, not JSONDecodeError
        result = validate_review('{"confidence":1' + "0" * 5000 + "}")
        assert isinstance(result, MalformedReview)
        assert "invalid JSON" in result.reason

    def test_code_fences_stripped(self):
        raw = '```json\n{"overall_decision": "clean", "confidence": 0.9, "violations": []}\n```'
        result = validate_review(raw)
        assert isinstance(result, NormalizedReview)
        assert result.overall_decision == "clean"

    def test_strip_code_fences_plain_text_untouched(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestDefaults:

    def test_empty_object(self):
        result = validate_review("{}")
        assert result.subject_name == "Unknown Company"
        assert result.overall_decision == "needs_review"
        assert result.confidence == 0.5
        assert result.violations == ()

    def test_merchant_name_alias(self):
        assert normalize_payload({"merchant_name": "Acme"}).subject_name == "Acme"

    def test_invalid_decision(self):
        assert normalize_payload({"overall_decision": "maybe"}).overall_decision == "needs_review"

    def test_decision_case_insensitive(self):
        assert normalize_payload({"overall_decision": "CLEAN"}).overall_decision == "clean"

    def test_confidence_clamped(self):
        assert normalize_payload({"confidence": 7}).confidence == 1.0
        assert normalize_payload({"confidence": -0.2}).confidence == 0.0

    def test_non_numeric_confidence(self):
        assert normalize_payload({"confidence": "high"}).confidence == 0.5
        assert normalize_payload({"confidence": True}).confidence == 0.5
        assert normalize_payload({"confidence": float("nan")}).confidence == 0.5

    def test_confidence_too_large_for_float(self):
        assert normalize_payload({"confidence": 10 ** 400}).confidence == 0.5
        raw = (
            '{"subject_name":"Acme","overall_decision":"clean","confidence":1'
            + "0" * 400
            + ',"violations":[]}'
        )
        result = validate_review(raw)
        assert isinstance(result, NormalizedReview)
        assert result.confidence == 0.5
        assert result.overall_decision == "clean"

    def test_non_list_violations(self):
        result = normalize_payload({"overall_decision": "clean", "violations": "none"})
        assert result.violations == ()
        assert result.overall_decision == "clean"


class TestViolationEntries:

    def test_quoted_violation_kept(self):
        result = normalize_payload({
            "overall_decision": "violation",
            "violations": [{
                "rule_id": "terminology_medical_professionals",
                "severity": "high",
                "quote": "  doctor  ",
                "rationale": "Uses doctor",
            }],
        }, default_catalog)
        assert result.overall_decision == "violation"
        v = result.violations[0]
        assert v.quote == "doctor"
        assert v.source == "llm"
        assert v.severity == "high"

    def test_policy_id_alias(self):
        result = normalize_payload({
            "violations": [{"policy_id": "tax_savings_qualified", "quote": "save up to 40%"}],
        }, default_catalog)
        assert result.violations[0].rule_id == "tax_savings_qualified"

    def test_unknown_rule_dropped(self):
        result = normalize_payload({
            "overall_decision": "violation",
            "violations": [{"rule_id": "made_up_rule", "quote": "x"}],
        }, default_catalog)
        assert result.violations == ()

    def test_invalid_severity_left_for_merger(self):
        result = normalize_payload({
            "violations": [{"rule_id": "tax_savings_qualified", "severity": "urgent", "quote": "x"}],
        }, default_catalog)
        assert result.violations[0].severity == ""


class TestDowngrade:

    def test_unquoted_violation_forces_needs_review(self):
        result = normalize_payload({
            "overall_decision": "violation",
            "confidence": 0.95,
            "violations": [
                {"rule_id": "terminology_medical_professionals", "quote": "doctor"},
                {"rule_id": "eligibility_conditional_language", "rationale": "no quote"},
            ],
        }, default_catalog)
        assert result.overall_decision == "needs_review"
        assert result.downgraded is True
        assert result.model_decision == "violation"
        assert len(result.violations) == 2

    def test_blank_quote_counts_as_missing(self):
        result = normalize_payload({
            "overall_decision": "clean",
            "violations": [{"rule_id": "tax_savings_qualified", "quote": "   "}],
        })
        assert result.overall_decision == "needs_review"

    def test_non_dict_entry_counts_as_unquoted(self):
        result = normalize_payload({"overall_decision": "violation", "violations": ["doctor"]})
        assert result.overall_decision == "needs_review"
        assert result.violations == ()

    def test_all_quoted_keeps_decision(self):
        result = normalize_payload({
            "overall_decision": "violation",
            "violations": [{"rule_id": "tax_savings_qualified", "quote": "Save up to 40%"}],
        })
        assert result.overall_decision == "violation"
        assert result.downgraded is False


# ============================================================
# REVIEWER CALL
# ============================================================

class TestComplianceReviewer:

    @pytest.mark.asyncio
    async def test_review_returns_normalized(self):
        llm = MockLLM({
            "subject_name": "Acme Saunas",
            "overall_decision": "violation",
            "confidence": 0.9,
            "violations": [{"rule_id": "terminology_medical_professionals", "quote": "doctor"}],
        })
        result = await ComplianceReviewer(llm).review("Your doctor will approve it.")
        assert isinstance(result, NormalizedReview)
        assert result.subject_name == "Acme Saunas"
        assert llm.calls[0]["json_mode"] is True
        assert "terminology_medical_professionals" in llm.calls[0]["system_instruction"]

    @pytest.mark.asyncio
    async def test_text_truncated(self):
        llm = MockLLM({"overall_decision": "clean", "confidence": 1.0, "violations": []})
        reviewer = ComplianceReviewer(llm, max_chars=10)
        await reviewer.review("a" * 50)
        assert llm.calls[0]["prompt"] == 'PAGE_TEXT:\n"""' + "a" * 10 + '"""'

    @pytest.mark.asyncio
    async def test_malformed_raises(self):
        reviewer = ComplianceReviewer(MockLLM("not json at all"))
        with pytest.raises(MalformedResponseError) as exc_info:
            await reviewer.review("text")
        assert "invalid JSON" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_timeout(self):
        reviewer = ComplianceReviewer(SlowLLM(), timeout=0.05)
        with pytest.raises(ReviewTimeoutError):
            await reviewer.review("text")

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self):
        reviewer = ComplianceReviewer(FailingLLM(RuntimeError("connection reset")))
        with pytest.raises(ReviewUnavailableError, match="connection reset"):
            await reviewer.review("text")

    @pytest.mark.asyncio
    async def test_review_error_passes_through(self):
        reviewer = ComplianceReviewer(FailingLLM(ReviewUnavailableError("circuit open")))
        with pytest.raises(ReviewUnavailableError, match="circuit open"):
            await reviewer.review("text")

    @pytest.mark.asyncio
    async def test_oversized_integer_body_is_malformed(self):
        reviewer = ComplianceReviewer(MockLLM('{"confidence":1' + "0" * 5000 + "}"))
        with pytest.raises(MalformedResponseError) as exc_info:
            await reviewer.review("text")
        assert "invalid JSON" in exc_info.value.reason
