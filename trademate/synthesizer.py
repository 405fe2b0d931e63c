"""Business data synthesis: one unified profile from built-in records and integrations.

Each of the three data domains (financial, customer, schedule) resolves
independently through a fixed source tier:

1. an active third-party integration for the domain (QuickBooks, HubSpot /
   Salesforce, Google Calendar / Outlook),
2. the built-in tables (transactions, CRM contacts, appointments),
3. ``none`` with every figure at zero.

Confidence is a policy constant per tier (:data:`SOURCE_CONFIDENCE`), not a
statistic.  Integration figures are zero until the provider APIs are wired in;
only their provenance and confidence are reported.

Record fetching is the only I/O.  The six record sets are loaded concurrently
on worker threads, each with its own session, and a failed fetch only empties
its own record set.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from trademate.db import SessionFactory, get_session, session_scope
from trademate.models import (
    Appointment, BusinessMetric, BusinessSettings, CrmContact, Integration, Profile,
)
from trademate.utils import clamp, json_parse

log = logging.getLogger(__name__)


class SourceType(StrEnum):
    QUICKBOOKS = "quickbooks"
    HUBSPOT = "hubspot"
    SALESFORCE = "salesforce"
    GOOGLE_CALENDAR = "google_calendar"
    OUTLOOK = "outlook"
    BUILTIN = "builtin"
    NONE = "none"


FINANCIAL_PROVIDERS = (SourceType.QUICKBOOKS,)
CUSTOMER_PROVIDERS = (SourceType.HUBSPOT, SourceType.SALESFORCE)
SCHEDULE_PROVIDERS = (SourceType.GOOGLE_CALENDAR, SourceType.OUTLOOK)

SOURCE_CONFIDENCE: dict[str, dict[SourceType, int]] = {
    "financial": {
        SourceType.QUICKBOOKS: 95,
        SourceType.BUILTIN: 85,
        SourceType.NONE: 0,
    },
    "customer": {
        SourceType.HUBSPOT: 95,
        SourceType.SALESFORCE: 95,
        SourceType.BUILTIN: 80,
        SourceType.NONE: 0,
    },
    "schedule": {
        SourceType.GOOGLE_CALENDAR: 90,
        SourceType.OUTLOOK: 90,
        SourceType.BUILTIN: 75,
        SourceType.NONE: 0,
    },
}
QUIZ_CONFIDENCE = 100

DEFAULT_CHAOS_SCORE = 50
DEFAULT_PERCENTILE = 50
UNKNOWN_ZONE = "unknown"
WORK_WEEK_HOURS = 40


def source_confidence(domain: str, source: SourceType) -> int:
    return SOURCE_CONFIDENCE.get(domain, {}).get(source, 0)


# ---------------------------------------------------------------------------
# Profile types
# ---------------------------------------------------------------------------


@dataclass
class BusinessInfo:
    company_name: str = ""
    industry: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


@dataclass
class FinancialData:
    revenue: float = 0.0
    expenses: float = 0.0
    profit: float = 0.0
    cash_flow: float = 0.0
    source: SourceType = SourceType.NONE
    confidence: int = 0


@dataclass
class CustomerData:
    total_leads: int = 0
    conversion_rate: float = 0.0
    average_deal_size: float = 0.0
    pipeline_value: float = 0.0
    source: SourceType = SourceType.NONE
    confidence: int = 0


@dataclass
class ScheduleData:
    utilization: float = 0.0
    meeting_count: int = 0
    productive_hours: float = 0.0
    source: SourceType = SourceType.NONE
    confidence: int = 0


@dataclass
class QuizInsights:
    chaos_score: int = DEFAULT_CHAOS_SCORE
    clarity_zone: str = UNKNOWN_ZONE
    industry_percentile: int = DEFAULT_PERCENTILE
    confidence: int = 0


@dataclass
class UnifiedBusinessProfile:
    business_info: BusinessInfo = field(default_factory=BusinessInfo)
    financial_data: FinancialData = field(default_factory=FinancialData)
    customer_data: CustomerData = field(default_factory=CustomerData)
    schedule_data: ScheduleData = field(default_factory=ScheduleData)
    quiz_insights: QuizInsights = field(default_factory=QuizInsights)


@dataclass
class BusinessRecords:
    """Raw record sets for one user, as loaded from storage."""
    profile: Profile | None = None
    settings: BusinessSettings | None = None
    integrations: list[Integration] = field(default_factory=list)
    transactions: list[BusinessMetric] = field(default_factory=list)
    contacts: list[CrmContact] = field(default_factory=list)
    appointments: list[Appointment] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Record fetching
# ---------------------------------------------------------------------------


def _fetch_profile(session: Session, user_id: str) -> Profile | None:
    return session.execute(select(Profile).where(Profile.user_id == user_id)).scalars().first()


def _fetch_settings(session: Session, user_id: str) -> BusinessSettings | None:
    return session.execute(
        select(BusinessSettings).where(BusinessSettings.user_id == user_id)
    ).scalars().first()


def _fetch_integrations(session: Session, user_id: str) -> list[Integration]:
    return list(session.execute(
        select(Integration).where(Integration.user_id == user_id, Integration.is_active.is_(True))
    ).scalars().all())


def _fetch_transactions(session: Session, user_id: str) -> list[BusinessMetric]:
    return list(session.execute(
        select(BusinessMetric).where(
            BusinessMetric.user_id == user_id,
            BusinessMetric.metric_type == "transaction",
        )
    ).scalars().all())


def _fetch_contacts(session: Session, user_id: str) -> list[CrmContact]:
    return list(session.execute(
        select(CrmContact).where(CrmContact.user_id == user_id)
    ).scalars().all())


def _fetch_appointments(session: Session, user_id: str) -> list[Appointment]:
    return list(session.execute(
        select(Appointment).where(Appointment.user_id == user_id)
    ).scalars().all())


# name -> (fetch function, empty default factory)
_FETCHES: dict[str, tuple[Callable[[Session, str], Any], Callable[[], Any]]] = {
    "profile": (_fetch_profile, lambda: None),
    "settings": (_fetch_settings, lambda: None),
    "integrations": (_fetch_integrations, list),
    "transactions": (_fetch_transactions, list),
    "contacts": (_fetch_contacts, list),
    "appointments": (_fetch_appointments, list),
}


def _run_fetch(factory: SessionFactory, fetch: Callable[[Session, str], Any], user_id: str) -> Any:
    with session_scope(factory) as session:
        return fetch(session, user_id)


async def _guarded_fetch(name: str, factory: SessionFactory, user_id: str) -> tuple[Any, bool]:
    fetch, default = _FETCHES[name]
    try:
        return await asyncio.to_thread(_run_fetch, factory, fetch, user_id), True
    except Exception as exc:
        log.warning("Fetching %s failed for user %s: %s", name, user_id, exc)
        return default(), False


async def fetch_business_records(
    user_id: str, session_factory: SessionFactory | None = None,
) -> BusinessRecords:
    """Load the six record sets concurrently; failed sets come back empty."""
    factory = session_factory or get_session
    names = list(_FETCHES)
    results = await asyncio.gather(*(_guarded_fetch(n, factory, user_id) for n in names))
    values = {}
    failed: list[str] = []
    for name, (value, ok) in zip(names, results):
        values[name] = value
        if not ok:
            failed.append(name)
    return BusinessRecords(**values, failed=failed)


# ---------------------------------------------------------------------------
# Domain resolution
# ---------------------------------------------------------------------------


def _naive_utc(dt: datetime | None) -> datetime | None:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _active_provider(integrations: list[Integration], providers: tuple[SourceType, ...]) -> SourceType | None:
    for integ in integrations:
        if integ.is_active and integ.provider in providers:
            return SourceType(integ.provider)
    return None


def _transaction_kind(txn: BusinessMetric) -> str:
    ctx = json_parse(txn.context_json, {})
    return str(ctx.get("type", "")).lower() if isinstance(ctx, dict) else ""


def synthesize_financial(
    integrations: list[Integration], transactions: list[BusinessMetric], now: datetime | None = None,
) -> FinancialData:
    provider = _active_provider(integrations, FINANCIAL_PROVIDERS)
    if provider is not None:
        return FinancialData(source=provider, confidence=source_confidence("financial", provider))

    if transactions:
        now = _naive_utc(now) or _utcnow()
        revenue = expenses = 0.0
        for txn in transactions:
            recorded = _naive_utc(txn.recorded_at)
            if recorded is None or (recorded.year, recorded.month) != (now.year, now.month):
                continue
            kind = _transaction_kind(txn)
            if kind == "income":
                revenue += txn.value or 0.0
            elif kind == "expense":
                expenses += txn.value or 0.0
        return FinancialData(
            revenue=revenue,
            expenses=expenses,
            profit=revenue - expenses,
            cash_flow=revenue - expenses,
            source=SourceType.BUILTIN,
            confidence=source_confidence("financial", SourceType.BUILTIN),
        )

    return FinancialData()


def synthesize_customer(integrations: list[Integration], contacts: list[CrmContact]) -> CustomerData:
    provider = _active_provider(integrations, CUSTOMER_PROVIDERS)
    if provider is not None:
        return CustomerData(source=provider, confidence=source_confidence("customer", provider))

    if contacts:
        total = len(contacts)
        won = sum(1 for c in contacts if (c.status or "").lower() == "won")
        return CustomerData(
            total_leads=total,
            conversion_rate=won / total * 100,
            source=SourceType.BUILTIN,
            confidence=source_confidence("customer", SourceType.BUILTIN),
        )

    return CustomerData()


def week_start(now: datetime) -> datetime:
    """Midnight of the most recent Sunday."""
    days_since_sunday = (now.weekday() + 1) % 7
    return (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)


def synthesize_schedule(
    integrations: list[Integration], appointments: list[Appointment], now: datetime | None = None,
) -> ScheduleData:
    provider = _active_provider(integrations, SCHEDULE_PROVIDERS)
    if provider is not None:
        return ScheduleData(source=provider, confidence=source_confidence("schedule", provider))

    if appointments:
        start = week_start(_naive_utc(now) or _utcnow())
        this_week = [
            a for a in appointments
            if a.scheduled_at is not None and _naive_utc(a.scheduled_at) >= start
        ]
        count = len(this_week)
        return ScheduleData(
            utilization=clamp(count / WORK_WEEK_HOURS * 100),
            meeting_count=count,
            productive_hours=float(count),  # one hour per appointment
            source=SourceType.BUILTIN,
            confidence=source_confidence("schedule", SourceType.BUILTIN),
        )

    return ScheduleData()


def synthesize_quiz_insights(profile: Profile | None) -> QuizInsights:
    if profile is None or profile.chaos_score is None:
        return QuizInsights()
    return QuizInsights(
        chaos_score=int(clamp(profile.chaos_score)),
        clarity_zone=profile.clarity_zone or UNKNOWN_ZONE,
        industry_percentile=(
            profile.industry_percentile if profile.industry_percentile is not None else DEFAULT_PERCENTILE
        ),
        confidence=QUIZ_CONFIDENCE,
    )


def synthesize_business_info(profile: Profile | None, settings: BusinessSettings | None) -> BusinessInfo:
    return BusinessInfo(
        company_name=(settings.company_name if settings else "") or (profile.business_name if profile else "") or "",
        industry=(profile.industry if profile else "") or "",
        phone=(settings.phone if settings else "") or "",
        email=(settings.email if settings else "") or (profile.email if profile else "") or "",
        address=(settings.address if settings else "") or "",
    )


def build_profile(records: BusinessRecords, now: datetime | None = None) -> UnifiedBusinessProfile:
    """Resolve every domain from already-loaded records. Pure."""
    return UnifiedBusinessProfile(
        business_info=synthesize_business_info(records.profile, records.settings),
        financial_data=synthesize_financial(records.integrations, records.transactions, now),
        customer_data=synthesize_customer(records.integrations, records.contacts),
        schedule_data=synthesize_schedule(records.integrations, records.appointments, now),
        quiz_insights=synthesize_quiz_insights(records.profile),
    )


async def synthesize_business_data(
    user_id: str, session_factory: SessionFactory | None = None, now: datetime | None = None,
) -> UnifiedBusinessProfile:
    records = await fetch_business_records(user_id, session_factory)
    if records.failed:
        log.warning("Synthesized profile for %s with missing sources: %s", user_id, ", ".join(records.failed))
    return build_profile(records, now)


# ---------------------------------------------------------------------------
# Data quality
# ---------------------------------------------------------------------------


_DOMAIN_LABELS = {
    "financial_data": "Financial data (connect QuickBooks or record transactions)",
    "customer_data": "Customer data (connect a CRM or add contacts)",
    "schedule_data": "Schedule data (connect a calendar or add appointments)",
    "quiz_insights": "Business assessment (complete the chaos quiz)",
}


def data_quality(profile: UnifiedBusinessProfile) -> dict[str, Any]:
    """Overall completeness (mean domain confidence) and the domains with no data."""
    confidences = {name: getattr(profile, name).confidence for name in _DOMAIN_LABELS}
    overall = round(sum(confidences.values()) / len(confidences))
    missing = [_DOMAIN_LABELS[name] for name, conf in confidences.items() if conf == 0]
    if overall >= 80:
        status = "good"
    elif overall >= 50:
        status = "partial"
    else:
        status = "poor"
    return {"overall_quality": overall, "status": status, "missing_data": missing, "by_domain": confidences}
