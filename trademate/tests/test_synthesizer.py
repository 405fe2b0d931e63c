"""Tests for the business data synthesizer: source tiers, confidence and failure isolation."""
from __future__ import annotations

import json
from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from trademate import synthesizer
from trademate.models import (
    Appointment, Base, BusinessMetric, BusinessSettings, CrmContact, Integration, Profile,
)
from trademate.synthesizer import (
    CUSTOMER_PROVIDERS,
    FINANCIAL_PROVIDERS,
    SCHEDULE_PROVIDERS,
    SOURCE_CONFIDENCE,
    SourceType,
    UnifiedBusinessProfile,
    data_quality,
    synthesize_business_data,
    synthesize_customer,
    synthesize_financial,
    synthesize_quiz_insights,
    synthesize_schedule,
    week_start,
)

NOW = datetime(2024, 5, 15, 12, 0)  # a Wednesday


# ---------------------------------------------------------------------------
# Fixtures: file-backed SQLite (fetches run on worker threads)
# ---------------------------------------------------------------------------


@pytest.fixture()
def factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


def _txn(kind: str, amount: float, when: datetime = NOW) -> BusinessMetric:
    return BusinessMetric(
        user_id="u1", metric_type="transaction", value=amount,
        context_json=json.dumps({"type": kind}), recorded_at=when,
    )


def _seed(factory, *objs):
    session = factory()
    session.add_all(objs)
    session.commit()
    session.close()


# ---------------------------------------------------------------------------
# Pure domain resolution
# ---------------------------------------------------------------------------


class TestConfidencePolicy:
    @pytest.mark.parametrize("domain,providers", [
        ("financial", FINANCIAL_PROVIDERS),
        ("customer", CUSTOMER_PROVIDERS),
        ("schedule", SCHEDULE_PROVIDERS),
    ])
    def test_table_covers_exactly_the_resolvable_tiers(self, domain, providers):
        assert set(SOURCE_CONFIDENCE[domain]) == {*providers, SourceType.BUILTIN, SourceType.NONE}

    def test_every_source_type_is_resolvable(self):
        covered = set().union(*SOURCE_CONFIDENCE.values())
        assert covered == set(SourceType)


class TestFinancial:
    def test_no_data(self):
        fin = synthesize_financial([], [], NOW)
        assert fin.source == SourceType.NONE
        assert fin.confidence == 0
        assert fin.revenue == 0

    def test_builtin_current_month_only(self):
        txns = [
            _txn("income", 5000), _txn("income", 1000), _txn("expense", 2500),
            _txn("income", 9999, datetime(2024, 4, 30)),
        ]
        fin = synthesize_financial([], txns, NOW)
        assert fin.source == SourceType.BUILTIN
        assert fin.confidence == 85
        assert fin.revenue == 6000
        assert fin.expenses == 2500
        assert fin.profit == 3500
        assert fin.cash_flow == 3500

    def test_integration_takes_precedence(self):
        integ = Integration(user_id="u1", provider="quickbooks", is_active=True)
        fin = synthesize_financial([integ], [_txn("income", 5000)], NOW)
        assert fin.source == SourceType.QUICKBOOKS
        assert fin.confidence == 95
        assert fin.revenue == 0

    def test_inactive_integration_ignored(self):
        integ = Integration(user_id="u1", provider="quickbooks", is_active=False)
        fin = synthesize_financial([integ], [_txn("income", 5000)], NOW)
        assert fin.source == SourceType.BUILTIN


class TestCustomer:
    def test_builtin_conversion_rate(self):
        contacts = [CrmContact(user_id="u1", name=f"c{i}", status="won" if i < 2 else "new") for i in range(8)]
        cust = synthesize_customer([], contacts)
        assert cust.total_leads == 8
        assert cust.conversion_rate == 25.0
        assert cust.confidence == 80

    @pytest.mark.parametrize("provider", ["hubspot", "salesforce"])
    def test_crm_integration(self, provider):
        cust = synthesize_customer([Integration(user_id="u1", provider=provider, is_active=True)], [])
        assert cust.source == SourceType(provider)
        assert cust.confidence == 95


class TestSchedule:
    def test_week_starts_sunday(self):
        assert week_start(NOW) == datetime(2024, 5, 12)
        assert week_start(datetime(2024, 5, 12, 8)) == datetime(2024, 5, 12)

    def test_counts_appointments_this_week(self):
        appts = [
            Appointment(user_id="u1", scheduled_at=datetime(2024, 5, 13, 9)),
            Appointment(user_id="u1", scheduled_at=datetime(2024, 5, 14, 9)),
            Appointment(user_id="u1", scheduled_at=datetime(2024, 5, 10, 9)),
            Appointment(user_id="u1", scheduled_at=None),
        ]
        sched = synthesize_schedule([], appts, NOW)
        assert sched.meeting_count == 2
        assert sched.utilization == 5.0
        assert sched.confidence == 75

    def test_calendar_integration(self):
        sched = synthesize_schedule([Integration(user_id="u1", provider="outlook", is_active=True)], [], NOW)
        assert sched.source == SourceType.OUTLOOK
        assert sched.confidence == 90


class TestQuizInsights:
    def test_missing_profile(self):
        quiz = synthesize_quiz_insights(None)
        assert quiz.chaos_score == 50
        assert quiz.confidence == 0

    def test_zero_score_is_valid(self):
        quiz = synthesize_quiz_insights(Profile(user_id="u1", chaos_score=0, clarity_zone="clarity"))
        assert quiz.chaos_score == 0
        assert quiz.confidence == 100


class TestDataQuality:
    def test_empty_profile_is_poor(self):
        quality = data_quality(UnifiedBusinessProfile())
        assert quality["overall_quality"] == 0
        assert quality["status"] == "poor"
        assert len(quality["missing_data"]) == 4


# ---------------------------------------------------------------------------
# Concurrent fetch
# ---------------------------------------------------------------------------


class TestSynthesizeBusinessData:
    @pytest.mark.asyncio
    async def test_unknown_user_gets_defaults(self, factory):
        profile = await synthesize_business_data("nobody", factory, NOW)
        assert profile == UnifiedBusinessProfile()

    @pytest.mark.asyncio
    async def test_full_profile(self, factory):
        _seed(
            factory,
            Profile(user_id="u1", industry="construction", business_name="Acme", chaos_score=72,
                    clarity_zone="chaos", industry_percentile=28),
            BusinessSettings(user_id="u1", company_name="Acme Builders", phone="555-0100"),
            _txn("income", 10000),
            CrmContact(user_id="u1", name="Ann", status="won"),
            CrmContact(user_id="u1", name="Bob"),
            Appointment(user_id="u1", scheduled_at=datetime(2024, 5, 13, 9)),
            Profile(user_id="u2", chaos_score=10),
        )
        profile = await synthesize_business_data("u1", factory, NOW)
        assert profile.business_info.company_name == "Acme Builders"
        assert profile.business_info.industry == "construction"
        assert profile.financial_data.revenue == 10000
        assert profile.customer_data.conversion_rate == 50.0
        assert profile.schedule_data.meeting_count == 1
        assert profile.quiz_insights.chaos_score == 72
        assert profile.quiz_insights.confidence == 100

    @pytest.mark.asyncio
    async def test_failed_fetch_only_empties_its_domain(self, factory):
        _seed(
            factory,
            Profile(user_id="u1", chaos_score=80, clarity_zone="chaos"),
            _txn("income", 4000),
        )

        def boom(session, user_id):
            raise RuntimeError("db down")

        fetches = {**synthesizer._FETCHES, "transactions": (boom, list)}
        with patch.object(synthesizer, "_FETCHES", fetches):
            records = await synthesizer.fetch_business_records("u1", factory)
            profile = await synthesize_business_data("u1", factory, NOW)

        assert records.failed == ["transactions"]
        assert profile.financial_data.source == SourceType.NONE
        assert profile.quiz_insights.chaos_score == 80
