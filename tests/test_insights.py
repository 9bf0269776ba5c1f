"""
Insight Generator Tests

Checks the insight rules, ranking, and the performance report.
"""

from __future__ import annotations

import pytest

from compliancebot.insights import (
    build_performance_report,
    format_report,
    generate_insights,
    rank_by_f1,
)
from compliancebot.learning import LearningStore
from compliancebot.models import PolicyPerformance


def _p(rule_id, tp=0, fp=0, fn=0):
    return PolicyPerformance(rule_id=rule_id, true_positives=tp, false_positives=fp, false_negatives=fn)


class TestGenerateInsights:

    def test_empty(self):
        assert generate_insights([]) == []

    def test_all_healthy(self):
        assert generate_insights([_p("a", tp=9, fp=1, fn=1), _p("b", tp=5)]) == []

    def test_attention_names_worst_rule(self):
        insights = generate_insights([_p("good", tp=10), _p("bad", tp=1, fp=1, fn=1)])
        assert insights == ['Policy "bad" needs attention (F1: 0.50)']

    def test_high_false_positive_count(self):
        insights = generate_insights([_p("a", tp=1, fp=4), _p("b", fp=2), _p("c", tp=8)])
        assert "2 policies have high false positive rates - consider refining detection criteria" in insights

    def test_missed_violations_count(self):
        insights = generate_insights([_p("a", tp=1, fn=3), _p("c", tp=8)])
        assert "1 policies missing violations - consider strengthening detection patterns" in insights

    def test_all_rules_fire_together(self):
        insights = generate_insights([_p("a", fp=2), _p("b", fn=2)])
        assert len(insights) == 3
        assert insights[0].startswith('Policy "')

    def test_fp_equal_tp_not_flagged(self):
        insights = generate_insights([_p("a", tp=2, fp=2)])
        assert not any("false positive" in i for i in insights)


class TestRanking:

    def test_best_first_ties_by_id(self):
        ranked = rank_by_f1([_p("b", tp=1), _p("c", fp=1), _p("a", tp=1)])
        assert [p.rule_id for p in ranked] == ["a", "b", "c"]


class TestReport:

    @pytest.fixture
    def store(self, tmp_path):
        s = LearningStore(str(tmp_path / "learning.db")).open()
        yield s
        s.close()

    def test_empty_store(self, store):
        report = build_performance_report(store)
        assert report.policies_tracked == 0
        assert report.average_f1 == 0.0
        assert report.insights == []
        assert "Policies tracked:   0" in format_report(report)

    def test_report_contents(self, store):
        good = store.record_example("u1", "s", "violation", 0.9, ["good_rule"])
        bad = store.record_example("u2", "s", "violation", 0.9, ["bad_rule"])
        store.record_example("u3", "s", "clean", 0.9, [])
        store.update_example_feedback(good, "correct")
        store.update_example_feedback(bad, "incorrect")

        report = build_performance_report(store, top_n=1)
        assert report.policies_tracked == 2
        assert report.pending_examples == 1
        assert report.reviewed_examples == 2
        assert report.average_f1 == pytest.approx(0.5)
        assert [p.rule_id for p in report.top_policies] == ["good_rule"]

        text = format_report(report)
        assert "Key Insights:" in text
        assert "good_rule: F1=1.00" in text
        assert report.to_dict()["top_policies"][0]["f1_score"] == 1.0
