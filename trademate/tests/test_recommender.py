"""Tests for recommendation generators, confidence gating and ranking."""
from __future__ import annotations

import pytest

from trademate.behavior import (
    Complexity, GrowthAmbition, UserBehavior, derive_user_behavior, growth_ambition_for,
)
from trademate.models import Profile, RecommendationInteraction
from trademate.recommender import (
    Priority,
    Recommendation,
    RecommendationType,
    StreamType,
    composite_score,
    financial_recommendations,
    generate_recommendations,
    get_industry_benchmarks,
    rank_recommendations,
    stream_label,
    top_recommendations,
    type_icon,
)
from trademate.synthesizer import (
    CustomerData, FinancialData, QuizInsights, SourceType, UnifiedBusinessProfile,
)

CONSTRUCTION = get_industry_benchmarks("construction")


def _profile(revenue=10000.0, expenses=5000.0, fin_conf=85, conversion=30.0, cust_conf=80,
             chaos=50) -> UnifiedBusinessProfile:
    return UnifiedBusinessProfile(
        financial_data=FinancialData(revenue=revenue, expenses=expenses, source=SourceType.BUILTIN,
                                     confidence=fin_conf),
        customer_data=CustomerData(total_leads=100, conversion_rate=conversion, source=SourceType.BUILTIN,
                                   confidence=cust_conf),
        quiz_insights=QuizInsights(chaos_score=chaos, clarity_zone="control", confidence=100),
    )


def _rec(rec_id: str, personalized: float, urgency: float, confidence: float) -> Recommendation:
    return Recommendation(
        id=rec_id, type=RecommendationType.GROWTH, priority=Priority.MEDIUM, hook="", title=rec_id,
        description="", reasoning="", expected_impact="", impact_value=0, time_to_implement="",
        personalized_score=personalized, confidence_score=confidence, urgency_score=urgency,
    )


class TestFinancialGenerator:
    def test_revenue_gap_example(self):
        recs = financial_recommendations(FinancialData(revenue=10000, confidence=85), CONSTRUCTION, 0.5)
        revenue = next(r for r in recs if r.id == "revenue_optimization")
        assert revenue.impact_value == pytest.approx(9000)
        assert revenue.priority == Priority.URGENT
        assert revenue.expected_impact == "$9,000 monthly increase"
        assert revenue.urgency_score == 100

    def test_small_gap_is_high_priority(self):
        recs = financial_recommendations(FinancialData(revenue=20000, confidence=85), CONSTRUCTION, 0.5)
        assert recs[0].priority == Priority.HIGH
        assert recs[0].impact_value == pytest.approx(3000)

    def test_expense_excess(self):
        recs = financial_recommendations(
            FinancialData(revenue=30000, expenses=20000, confidence=85), CONSTRUCTION, 0.5,
        )
        assert [r.id for r in recs] == ["expense_optimization"]
        assert recs[0].impact_value == pytest.approx(800)
        assert recs[0].stream_type == StreamType.EFFICIENCY

    def test_fast_implementers_get_shorter_timeline(self):
        fast = financial_recommendations(FinancialData(revenue=0, confidence=85), CONSTRUCTION, 0.9)
        slow = financial_recommendations(FinancialData(revenue=0, confidence=85), CONSTRUCTION, 0.2)
        assert fast[0].time_to_implement == "2-3 weeks"
        assert slow[0].time_to_implement == "1-2 months"


class TestGenerate:
    def test_low_confidence_gates_financial_and_customer(self):
        recs = generate_recommendations(
            _profile(fin_conf=70, cust_conf=0, conversion=0), UserBehavior(), CONSTRUCTION,
        )
        assert recs == []

    def test_customer_conversion_gap(self):
        recs = generate_recommendations(
            _profile(revenue=30000, fin_conf=0, conversion=5.0, cust_conf=95), UserBehavior(), CONSTRUCTION,
        )
        assert [r.id for r in recs] == ["conversion_optimization"]
        assert recs[0].impact_value == 10

    def test_high_chaos_emits_stabilization(self):
        recs = generate_recommendations(_profile(fin_conf=0, cust_conf=0, chaos=86), UserBehavior(), CONSTRUCTION)
        assert [r.id for r in recs] == ["process_stabilization"]
        assert recs[0].priority == Priority.URGENT

    def test_chaos_of_exactly_70_is_not_stabilized(self):
        recs = generate_recommendations(_profile(fin_conf=0, cust_conf=0, chaos=70), UserBehavior(), CONSTRUCTION)
        assert recs == []

    def test_scale_ambition_low_chaos_emits_strategic(self):
        behavior = UserBehavior(growth_ambition=GrowthAmbition.SCALE)
        recs = generate_recommendations(_profile(fin_conf=0, cust_conf=0, chaos=20), behavior, CONSTRUCTION)
        assert [r.id for r in recs] == ["scale_ready"]
        assert recs[0].stream_type == StreamType.STRATEGIC

    def test_all_scores_in_range(self):
        recs = generate_recommendations(
            _profile(revenue=0, expenses=99999, conversion=0, cust_conf=95, chaos=99),
            UserBehavior(), CONSTRUCTION,
        )
        assert len(recs) == 4
        for r in recs:
            for s in (r.personalized_score, r.confidence_score, r.urgency_score):
                assert 0 <= s <= 100

    def test_idempotent(self):
        profile = _profile(revenue=0, chaos=90)
        first = generate_recommendations(profile, UserBehavior(), CONSTRUCTION)
        second = generate_recommendations(profile, UserBehavior(), CONSTRUCTION)
        assert first == second


class TestRanking:
    def test_composite_weights(self):
        assert composite_score(_rec("a", 100, 0, 0)) == pytest.approx(40)
        assert composite_score(_rec("a", 90, 80, 70)) == pytest.approx(36 + 24 + 21)

    def test_sorted_descending(self):
        recs = [_rec("low", 10, 10, 10), _rec("high", 90, 90, 90), _rec("mid", 50, 50, 50)]
        assert [r.id for r in rank_recommendations(recs)] == ["high", "mid", "low"]

    def test_ties_keep_emission_order(self):
        recs = [_rec("first", 50, 50, 50), _rec("second", 50, 50, 50), _rec("third", 50, 50, 50)]
        assert [r.id for r in rank_recommendations(recs)] == ["first", "second", "third"]

    def test_top_limit(self):
        recs = [_rec(f"r{i}", i, i, i) for i in range(15)]
        top = top_recommendations(recs, 10)
        assert len(top) == 10
        assert top[0].id == "r14"

    def test_scores_clamped_on_construction(self):
        rec = _rec("x", 150, -5, 100)
        assert rec.personalized_score == 100
        assert rec.urgency_score == 0


class TestBenchmarksAndDisplay:
    def test_unknown_industry_falls_back_to_consulting(self):
        assert get_industry_benchmarks("Beekeeping") == get_industry_benchmarks("consulting")
        assert get_industry_benchmarks(None).average_revenue == 15000

    def test_case_insensitive(self):
        assert get_industry_benchmarks("Construction") == CONSTRUCTION

    def test_fallback_labels(self):
        assert stream_label("growth") != stream_label("nonsense")
        assert type_icon("unheard_of") == "lightbulb"


class TestBehavior:
    @pytest.mark.parametrize("chaos,ambition", [
        (None, GrowthAmbition.GROW), (85, GrowthAmbition.MAINTAIN),
        (70, GrowthAmbition.GROW), (41, GrowthAmbition.GROW),
        (40, GrowthAmbition.SCALE), (10, GrowthAmbition.SCALE),
    ])
    def test_growth_ambition(self, chaos, ambition):
        assert growth_ambition_for(chaos) == ambition

    def test_implementation_rate(self):
        interactions = [
            RecommendationInteraction(user_id="u1", interaction_type=t)
            for t in ("recommendation_viewed", "recommendation_implemented", "recommendation_viewed",
                      "implemented")
        ]
        behavior = derive_user_behavior(Profile(user_id="u1", setup_preference="connect"), interactions)
        assert behavior.implementation_rate == 0.5
        assert behavior.preferred_complexity == Complexity.ADVANCED

    def test_defaults_without_history(self):
        behavior = derive_user_behavior(None, [])
        assert behavior == UserBehavior()
