"""
Review Pipeline Tests

End-to-end: pattern detector + mocked reviewer + merger + learning store.
A failed review must leave the learning store untouched.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from compliancebot.checker import review_page, review_text
from compliancebot.errors import (
    MalformedResponseError,
    ReviewTimeoutError,
    ReviewUnavailableError,
)
from compliancebot.learning import LearningStore
from compliancebot.ledger import ReviewLedger
from compliancebot.llm import LLMProvider
from compliancebot.reviewer import ComplianceReviewer


class MockLLM(LLMProvider):
    def __init__(self, payload):
        self._raw = payload if isinstance(payload, str) else json.dumps(payload)

    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        return self._raw


class BrokenLLM(LLMProvider):
    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        raise ConnectionError("upstream reset")


class HangingLLM(LLMProvider):
    async def generate(self, prompt, system_instruction=None, temperature=0.0, json_mode=False):
        await asyncio.sleep(5)
        return "{}"


CLEAN_REPLY = {
    "subject_name": "Sauna Co",
    "overall_decision": "clean",
    "confidence": 0.7,
    "violations": [],
}

HSA_DOCTOR_TEXT = "Use your HSA/FSA to buy this sauna. Your doctor will approve it."


@pytest.fixture
def store(tmp_path):
    s = LearningStore(str(tmp_path / "learning.db")).open()
    yield s
    s.close()


@pytest.fixture
def ledger(tmp_path):
    chain = ReviewLedger(str(tmp_path / "ledger.db")).open()
    yield chain
    chain.close()


class TestReviewText:

    @pytest.mark.asyncio
    async def test_pattern_findings_merged(self):
        result = await review_text(HSA_DOCTOR_TEXT, ComplianceReviewer(MockLLM(CLEAN_REPLY)))
        assert result.subject_name == "Sauna Co"
        assert result.overall_decision == "clean"
        assert len(result.violations) >= 2

    @pytest.mark.asyncio
    async def test_llm_and_pattern_overlap_deduplicated(self):
        reply = {
            "subject_name": "Sauna Co",
            "overall_decision": "violation",
            "confidence": 0.92,
            "violations": [{
                "rule_id": "terminology_medical_professionals",
                "severity": "high",
                "quote": "doctor",
                "rationale": "Uses 'doctor' instead of practitioner",
            }],
        }
        result = await review_text(HSA_DOCTOR_TEXT, ComplianceReviewer(MockLLM(reply)))
        keys = [v.key for v in result.violations]
        assert keys.count(("terminology_medical_professionals", "doctor")) == 1
        assert result.violations[0].source == "llm"
        assert result.overall_decision == "violation"


class TestReviewPage:

    @pytest.mark.asyncio
    async def test_records_pending_example(self, store, ledger):
        outcome = await review_page(
            HSA_DOCTOR_TEXT, "https://sauna.example", ComplianceReviewer(MockLLM(CLEAN_REPLY)),
            store, ledger=ledger,
        )
        example = store.get_example(outcome.example_id)
        assert example.is_pending
        assert example.source_ref == "https://sauna.example"
        assert example.ai_decision == "clean"
        assert example.violations_found == outcome.result.rule_ids
        assert ledger.get_recent(limit=1)[0]["event_type"] == "review_completed"

    @pytest.mark.asyncio
    async def test_snippet_truncated(self, store):
        outcome = await review_page(
            "x" * 100, "ref", ComplianceReviewer(MockLLM(CLEAN_REPLY)), store, snippet_chars=20,
        )
        assert store.get_example(outcome.example_id).text_snippet == "x" * 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("llm,error", [
        (MockLLM("definitely not json"), MalformedResponseError),
        (BrokenLLM(), ReviewUnavailableError),
    ])
    async def test_failure_records_nothing(self, store, ledger, llm, error):
        with pytest.raises(error):
            await review_page(HSA_DOCTOR_TEXT, "ref", ComplianceReviewer(llm), store, ledger=ledger)
        assert store.get_stats()["total_examples"] == 0
        entry = ledger.get_recent(limit=1)[0]
        assert entry["event_type"] == "review_failed"
        assert entry["data"]["error_type"] == error.__name__

    @pytest.mark.asyncio
    async def test_timeout_records_nothing(self, store):
        reviewer = ComplianceReviewer(HangingLLM(), timeout=0.05)
        with pytest.raises(ReviewTimeoutError):
            await review_page(HSA_DOCTOR_TEXT, "ref", reviewer, store)
        assert store.get_pending_examples() == []
