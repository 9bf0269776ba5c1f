"""
Rule Catalog — Versioned Compliance Rulebook

The catalog defines:
  1. What each compliance rule prohibits and requires (phrase lists)
  2. How serious a breach is (severity drives prioritization only)
  3. Which category a rule belongs to (drives recommendations)
  4. Worked compliant / non-compliant examples (drive suggested fixes)

The catalog is STATIC. It does not learn from feedback. Performance
statistics are kept per rule id by the learning store; changing what a
rule detects requires a new CATALOG_VERSION.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

# --- Catalog Version (stamped on every export) ---
CATALOG_VERSION = "1.0.0"


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class Rule:
    """
    One named compliance requirement.

    prohibited_phrases are matched case-insensitively on word boundaries.
    required_phrases are only enforced for high-severity rules, and only
    when the text mentions one of the rule's trigger_terms.
    """
    id: str
    category: str
    severity: str  # "high" | "medium" | "low"
    title: str
    description: str
    prohibited_phrases: tuple[str, ...]
    required_phrases: tuple[str, ...] = ()
    trigger_terms: tuple[str, ...] = ()
    compliant_examples: tuple[str, ...] = ()
    non_compliant_examples: tuple[str, ...] = ()
    rationale: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "prohibited_phrases": list(self.prohibited_phrases),
            "required_phrases": list(self.required_phrases),
            "trigger_terms": list(self.trigger_terms),
            "compliant_examples": list(self.compliant_examples),
            "non_compliant_examples": list(self.non_compliant_examples),
            "rationale": self.rationale,
        }


# ============================================================
# CATEGORIES
# ============================================================

CATEGORY_DESCRIPTIONS: dict[str, str] = {
    "Terminology": "Language precision requirements",
    "Eligibility Claims": "How to properly frame HSA/FSA eligibility",
    "Tax Claims": "Requirements for tax savings statements",
    "Medical Focus": "Medical condition vs wellness language",
    "Cost Transparency": "Truemed service cost disclosure",
}


# ============================================================
# RULES
# ============================================================

RULES: tuple[Rule, ...] = (
    Rule(
        id="terminology_medical_professionals",
        category="Terminology",
        severity="high",
        title="Medical Professional Terminology",
        description="Must use precise terms for medical professionals",
        prohibited_phrases=("doctor", "doctor's note", "quick questions"),
        required_phrases=(
            "practitioner", "clinician", "healthcare provider",
            "independent", "licensed",
        ),
        trigger_terms=("lmn", "letter of medical necessity", "intake form"),
        compliant_examples=(
            "An independent licensed practitioner will review your clinical intake form",
            "Our healthcare providers are licensed partners",
        ),
        non_compliant_examples=(
            "A doctor will approve your LMN",
            "Just answer a few quick questions",
        ),
        rationale="Reflects that reviewing professionals may be NPs or PAs, not just MDs/DOs",
    ),
    Rule(
        id="eligibility_conditional_language",
        category="Eligibility Claims",
        severity="high",
        title="Conditional Eligibility Language",
        description="Eligibility must be presented as conditional, never guaranteed",
        prohibited_phrases=(
            "is eligible", "is approved", "guaranteed approval",
            "use your HSA/FSA dollars",
        ),
        required_phrases=(
            "may be eligible", "if you qualify", "with a Truemed LMN",
            "qualified customers",
        ),
        trigger_terms=("hsa", "fsa"),
        compliant_examples=(
            "HSA/FSA eligible with a Truemed LMN",
            "You may be eligible to pay with HSA/FSA",
            "This item may be HSA/FSA-eligible when used to address a specific health condition",
        ),
        non_compliant_examples=(
            "Use your HSA/FSA dollars",
            "Your purchase is now HSA/FSA eligible",
            "We're eligible for payment from HSA/FSA providers",
        ),
        rationale="Eligibility is determined by licensed practitioners, not automatic",
    ),
    Rule(
        id="tax_savings_qualified",
        category="Tax Claims",
        severity="high",
        title="Qualified Tax Savings Claims",
        description="Tax savings must be approximate and explained",
        prohibited_phrases=("save up to", "save 30% now!", "unlocks 30% savings"),
        required_phrases=(
            "~30%", "approximately", "individual tax rates vary",
            "checkout the TrueSavings Estimator",
        ),
        trigger_terms=("tax savings", "tax-free", "pre-tax"),
        compliant_examples=(
            "Customers who qualify save ~30%*",
            "When you qualify to use HSA/FSA funds, you can save about ~30%, "
            "depending on your individual tax bracket",
        ),
        non_compliant_examples=(
            "Save up to 40%",
            "Save 30% now!",
            "Your HSA/FSA unlocks 30% savings on products you were going to purchase anyway",
        ),
        rationale=(
            "Actual tax benefits vary significantly based on individual "
            "circumstances and state regulations"
        ),
    ),
    Rule(
        id="medical_focus_required",
        category="Medical Focus",
        severity="medium",
        title="Medical Condition Focus",
        description=(
            "Products must be described in terms of medical conditions, "
            "not general wellness"
        ),
        prohibited_phrases=(
            "wellness", "look radiant", "feel energized", "health journey",
            "general health",
        ),
        required_phrases=(
            "medical condition", "health condition", "chronic", "treat",
            "prevent", "manage",
        ),
        compliant_examples=(
            "This item may be eligible when used to address a specific health condition",
            "Effective way to manage chronic health conditions like diabetes, "
            "obesity, and hypertension",
        ),
        non_compliant_examples=(
            "Look radiant and feel energized by incorporating this into your daily workout routine",
            "Perfect for your health and wellness journey",
        ),
        rationale=(
            "Only products that cure, treat, mitigate, or prevent diagnosed "
            "medical conditions are HSA/FSA eligible"
        ),
    ),
    Rule(
        id="truemed_cost_transparency",
        category="Cost Transparency",
        severity="medium",
        title="Truemed Cost Disclosure",
        description="Must not imply Truemed services are free",
        prohibited_phrases=(
            "Truemed is free", "no charge", "covers the cost",
            "makes Truemed available at no charge",
        ),
        required_phrases=(
            "included in the price", "costs are built into", "no additional cost",
        ),
        compliant_examples=(
            "The cost of Truemed's services are included in your purchase price",
            "Truemed's costs are built into the purchase price, so you do not have to pay extra",
        ),
        non_compliant_examples=(
            "Truemed is free for all customers",
            "We cover the cost of Truemed for qualified customers",
        ),
        rationale=(
            "Customers pay for their own healthcare services; third-party "
            "payment could create compliance issues"
        ),
    ),
)


# ============================================================
# REVIEWER GUIDE
# ============================================================

COMPLIANCE_GUIDE = """You review public-facing marketing copy about Truemed's services and
about paying for products with Health Savings Account (HSA) and Flexible
Spending Account (FSA) funds.

## Key Principles
- HSA/FSA eligibility is contingent, never guaranteed. A licensed practitioner
  decides whether a medical condition makes a purchase eligible.
- Eligibility claims must be specific to products, not to a brand or a broad
  product category (unless nearly all of the merchant's products qualify).
- HSAs and FSAs are for medical expenses only. General wellness, mood, energy
  or appearance benefits do not qualify.
- Tax savings claims must be approximate ("~30%"), qualified and explained.
  Never "up to", never guaranteed.
- Truemed is not "free". Its cost is included in the product price.
- Do not speak for practitioners or plan administrators ("your LMN will be
  approved", "your plan will reimburse you").
- Use precise terminology: "practitioner", "clinician", "healthcare provider",
  "clinical intake form", "health survey", "Letter of Medical Necessity (LMN)".
  Do not use "doctor", "doctor's note" or describe the intake as "quick".
- Never state or imply the odds of approval. Never say "apply to Truemed".
"""

OUTPUT_CONTRACT = """Also identify the merchant/company name from the website content.

Return JSON:
{
 "subject_name": "Company name from website",
 "overall_decision": "violation|needs_review|clean",
 "confidence": 0..1,
 "violations": [{"rule_id": "id", "severity": "high|medium|low", "quote": "exact text", "rationale": "brief why"}]
}
Use only rule ids from the rulebook above.
If you cannot quote exact offending text, set overall_decision="needs_review".
"""


# ============================================================
# CATALOG
# ============================================================

class RuleCatalog:
    """
    Read-only lookup over a set of rules.

    Rule ids must be unique. Rules keep their declaration order, which is
    the order the pattern detector scans them in.
    """

    def __init__(self, rules: Iterable[Rule] = RULES, version: str = CATALOG_VERSION):
        self._rules = tuple(rules)
        self.version = version
        self._by_id: dict[str, Rule] = {}
        for rule in self._rules:
            if rule.id in self._by_id:
                raise ValueError(f"Duplicate rule id in catalog: {rule.id}")
            if rule.severity not in ("high", "medium", "low"):
                raise ValueError(f"Rule {rule.id} has invalid severity: {rule.severity}")
            self._by_id[rule.id] = rule

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    def by_category(self, category: str) -> list[Rule]:
        return [r for r in self._rules if r.category == category]

    def high_severity(self) -> list[Rule]:
        return [r for r in self._rules if r.severity == "high"]

    def categories(self) -> list[str]:
        """Distinct categories in declaration order."""
        seen: list[str] = []
        for rule in self._rules:
            if rule.category not in seen:
                seen.append(rule.category)
        return seen

    def as_dicts(self) -> list[dict]:
        """Used by the GET /rules endpoint to expose the rulebook."""
        return [r.to_dict() for r in self._rules]

    def get_rulebook_prompt(self) -> str:
        """
        Return the rulebook formatted as the reviewer's system instruction.
        """
        lines = [COMPLIANCE_GUIDE, f"## Rulebook (version {self.version})\n"]
        for rule in self._rules:
            lines.append(f"### {rule.id} — {rule.title} [{rule.severity}]")
            lines.append(f"_{rule.description}_")
            if rule.prohibited_phrases:
                lines.append(
                    "- Prohibited: " + ", ".join(f'"{p}"' for p in rule.prohibited_phrases)
                )
            if rule.required_phrases:
                lines.append(
                    "- Expected qualifiers: "
                    + ", ".join(f'"{p}"' for p in rule.required_phrases)
                )
            for example in rule.compliant_examples:
                lines.append(f"- Permissible: \"{example}\"")
            for example in rule.non_compliant_examples:
                lines.append(f"- Prohibited example: \"{example}\"")
            lines.append("")

        lines.append(OUTPUT_CONTRACT)
        return "\n".join(lines)


# ============================================================
# DEFAULT CATALOG
# ============================================================

default_catalog = RuleCatalog()
