"""
Pattern Detector Tests

Tests the deterministic matcher:
  1. Prohibited phrases (case, word boundaries, punctuation, typography)
  2. Missing-qualifier check on high-severity rules
  3. Purity: same input, same output
"""

from __future__ import annotations

from compliancebot.matcher import (
    GENERIC_FIX,
    MISSING_QUALIFIER_FIX,
    detect,
    phrase_regex,
)
from compliancebot.rules import Rule, RuleCatalog, default_catalog


def _by_rule(violations, rule_id):
    return [v for v in violations if v.rule_id == rule_id]


# ============================================================
# PROHIBITED PHRASES
# ============================================================

class TestProhibitedPhrases:

    def test_match_quotes_original_text(self):
        found = detect("Your DOCTOR will approve it.", default_catalog)
        terms = _by_rule(found, "terminology_medical_professionals")
        assert len(terms) == 1
        assert terms[0].quote == "DOCTOR"
        assert terms[0].severity == "high"
        assert terms[0].source == "pattern"
        assert terms[0].suggested_fix == GENERIC_FIX
        assert 'prohibited phrase: "doctor"' in terms[0].rationale

    def test_word_boundary_respected(self):
        found = detect("She holds a doctorate in physiology.", default_catalog)
        assert _by_rule(found, "terminology_medical_professionals") == []

    def test_plural_is_not_a_match(self):
        found = detect("Doctors recommend stretching.", default_catalog)
        assert _by_rule(found, "terminology_medical_professionals") == []

    def test_every_occurrence_reported(self):
        found = detect("Ask a doctor. Then ask another doctor.", default_catalog)
        assert len(_by_rule(found, "terminology_medical_professionals")) == 2

    def test_typographic_apostrophe(self):
        text = "Bring a doctor’s note."
        found = detect(text, default_catalog)
        quotes = {v.quote for v in _by_rule(found, "terminology_medical_professionals")}
        assert "doctor’s note" in quotes

    def test_phrase_with_trailing_punctuation(self):
        found = detect("Save 30% now! Limited time.", default_catalog)
        tax = _by_rule(found, "tax_savings_qualified")
        assert [v.quote for v in tax] == ["Save 30% now!"]

    def test_internal_whitespace_flexible(self):
        found = detect("Guaranteed\n  approval for everyone", default_catalog)
        elig = _by_rule(found, "eligibility_conditional_language")
        assert [v.quote for v in elig] == ["Guaranteed\n  approval"]

    def test_medium_rule_has_no_qualifier_check(self):
        found = detect("Start your health journey today.", default_catalog)
        medical = _by_rule(found, "medical_focus_required")
        assert len(medical) == 1
        assert medical[0].quote == "health journey"
        assert medical[0].severity == "medium"

    def test_phrase_regex_cached(self):
        assert phrase_regex("doctor") is phrase_regex("doctor")


# ============================================================
# MISSING QUALIFIERS
# ============================================================

class TestMissingQualifiers:

    def test_trigger_without_qualifier(self):
        found = detect("Pay for this sauna with your HSA.", default_catalog)
        elig = _by_rule(found, "eligibility_conditional_language")
        assert len(elig) == 1
        assert elig[0].quote is None
        assert elig[0].suggested_fix == MISSING_QUALIFIER_FIX
        assert "Missing required qualifying language" in elig[0].rationale

    def test_trigger_with_qualifier(self):
        found = detect("You may be eligible to pay with HSA/FSA.", default_catalog)
        assert _by_rule(found, "eligibility_conditional_language") == []

    def test_qualifier_match_is_case_insensitive(self):
        found = detect("HSA/FSA eligible WITH A TRUEMED LMN.", default_catalog)
        assert _by_rule(found, "eligibility_conditional_language") == []

    def test_no_trigger_no_violation(self):
        found = detect("A comfortable chair for your office.", default_catalog)
        assert found == []

    def test_glued_qualifier_counts(self):
        found = detect("Enjoy tax-free pricing and save ~30%*.", default_catalog)
        assert _by_rule(found, "tax_savings_qualified") == []

    def test_tax_trigger_without_qualifier(self):
        found = detect("Buy with pre-tax dollars.", default_catalog)
        tax = _by_rule(found, "tax_savings_qualified")
        assert len(tax) == 1
        assert tax[0].quote is None

    def test_trigger_inside_word_does_not_fire(self):
        # "fsa" inside an unrelated word is not a trigger
        found = detect("Visit the Alfsa gallery.", default_catalog)
        assert _by_rule(found, "eligibility_conditional_language") == []


# ============================================================
# SCENARIOS
# ============================================================

class TestScenarios:

    def test_hsa_and_doctor(self):
        text = "Use your HSA/FSA to buy this sauna. Your doctor will approve it."
        found = detect(text, default_catalog)
        assert [v.rule_id for v in found] == [
            "terminology_medical_professionals",
            "eligibility_conditional_language",
        ]
        assert found[0].quote == "doctor"
        assert found[1].quote is None

    def test_empty_text(self):
        assert detect("", default_catalog) == []

    def test_deterministic(self):
        text = "Truemed is free and you can save up to 40% with your FSA."
        assert detect(text, default_catalog) == detect(text, default_catalog)

    def test_custom_catalog(self):
        catalog = RuleCatalog(rules=(
            Rule(
                id="no_miracle", category="Medical Focus", severity="low",
                title="No Miracles", description="", prohibited_phrases=("miracle cure",),
            ),
        ))
        found = detect("A miracle cure for back pain", catalog)
        assert [(v.rule_id, v.quote) for v in found] == [("no_miracle", "miracle cure")]
