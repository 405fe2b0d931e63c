"""Shared business logic for the TradeMate API, MCP server and tracker."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any, Mapping

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from trademate.behavior import UserBehavior, get_user_behavior
from trademate.chaos import ChaosResult, QuizAnswer, industry_benchmark, process_quiz, question_contributions
from trademate.db import SessionFactory, get_session, session_scope
from trademate.models import EnhancedRecommendation, Profile, QuizResponse
from trademate.recommender import (
    DEFAULT_LIMIT, Recommendation, composite_score, generate_recommendations,
    get_industry_benchmarks, priority_color, stream_label, top_recommendations, type_icon,
)
from trademate.synthesizer import UnifiedBusinessProfile, data_quality, synthesize_business_data
from trademate.utils import json_parse

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

RECOMMENDATION_ROW_FIELDS = (
    "recommendation_type", "priority", "hook", "reasoning", "content_json",
    "expected_impact", "time_to_implement", "priority_score", "confidence_score",
    "personalized_score", "stream_type", "rank", "batch_id", "is_active",
)

MILESTONES: tuple[dict[str, Any], ...] = (
    {"score": 25, "title": "Getting Organized", "reward": "Organization Badge",
     "description": "Basic systems in place"},
    {"score": 50, "title": "Taking Control", "reward": "Control Badge",
     "description": "Efficient operations"},
    {"score": 75, "title": "Business Clarity", "reward": "Clarity Badge",
     "description": "Strategic focus achieved"},
    {"score": 100, "title": "Industry Leader", "reward": "Leadership Badge",
     "description": "Top 1% performer"},
)


def recommendation_limit() -> int:
    try:
        return max(1, int(os.environ.get("TRADEMATE_RECOMMENDATION_LIMIT", DEFAULT_LIMIT)))
    except ValueError:
        return DEFAULT_LIMIT


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def apply_updates(obj, updates: Mapping[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for f in fields:
        val = updates.get(f)
        if val is not None:
            setattr(obj, f, val)


def get_or_create_profile(session: Session, user_id: str) -> Profile:
    profile = session.execute(select(Profile).where(Profile.user_id == user_id)).scalars().first()
    if profile is None:
        profile = Profile(user_id=user_id)
        session.add(profile)
    return profile


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def profile_dict(profile: UnifiedBusinessProfile) -> dict:
    return asdict(profile)


def chaos_result_dict(result: ChaosResult, answers: list[QuizAnswer] | None = None) -> dict:
    out = asdict(result)
    if answers is not None:
        out["answers"] = [asdict(a) for a in answers]
    return out


def recommendation_dict(rec: Recommendation) -> dict:
    out = asdict(rec)
    out["composite_score"] = round(composite_score(rec), 2)
    out["stream_label"] = stream_label(rec.stream_type)
    out["icon"] = type_icon(rec.type)
    out["color"] = priority_color(rec.priority)
    return out


def recommendation_row(user_id: str, rec: Recommendation, batch_id: str, rank: int) -> dict[str, Any]:
    """Map a ranked recommendation to ``enhanced_recommendations`` column values."""
    return {
        "user_id": user_id,
        "recommendation_id": rec.id,
        "recommendation_type": str(rec.type),
        "priority": str(rec.priority),
        "hook": rec.hook,
        "reasoning": rec.reasoning,
        "content_json": json.dumps({
            "title": rec.title,
            "description": rec.description,
            "expected_impact": rec.expected_impact,
            "time_to_implement": rec.time_to_implement,
            "actions": rec.actions,
        }),
        "expected_impact": rec.expected_impact,
        "time_to_implement": rec.time_to_implement,
        "priority_score": rec.urgency_score,
        "confidence_score": rec.confidence_score,
        "personalized_score": rec.personalized_score,
        "stream_type": str(rec.stream_type),
        "rank": rank,
        "batch_id": batch_id,
        "is_active": True,
    }


def stored_recommendation_dict(row: EnhancedRecommendation) -> dict:
    content = json_parse(row.content_json, {})
    return {
        "recommendation_id": row.recommendation_id,
        "recommendation_type": row.recommendation_type,
        "priority": row.priority,
        "hook": row.hook,
        "reasoning": row.reasoning,
        "title": content.get("title", ""),
        "description": content.get("description", ""),
        "expected_impact": row.expected_impact,
        "time_to_implement": row.time_to_implement,
        "actions": content.get("actions", []),
        "priority_score": row.priority_score,
        "confidence_score": row.confidence_score,
        "personalized_score": row.personalized_score,
        "stream_type": row.stream_type,
        "rank": row.rank,
        "batch_id": row.batch_id,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Persistence sink
# ---------------------------------------------------------------------------


def store_recommendations(
    session: Session, user_id: str, recs: list[Recommendation], batch_id: str | None = None,
) -> list[EnhancedRecommendation]:
    """Upsert ranked recommendations on (user_id, recommendation_id) and drop
    the user's rows that are not part of this batch (caller must commit)."""
    batch_id = batch_id or uuid.uuid4().hex
    existing = {
        row.recommendation_id: row
        for row in session.execute(
            select(EnhancedRecommendation).where(EnhancedRecommendation.user_id == user_id)
        ).scalars().all()
    }
    stored: list[EnhancedRecommendation] = []
    for rank, rec in enumerate(recs, start=1):
        values = recommendation_row(user_id, rec, batch_id, rank)
        row = existing.get(rec.id)
        if row is None:
            row = EnhancedRecommendation(**values)
            session.add(row)
            existing[rec.id] = row
        else:
            apply_updates(row, values, RECOMMENDATION_ROW_FIELDS)
            row.updated_at = datetime.now(UTC)
        stored.append(row)

    keep = {rec.id for rec in recs}
    session.execute(delete(EnhancedRecommendation).where(
        EnhancedRecommendation.user_id == user_id,
        EnhancedRecommendation.recommendation_id.not_in(keep),
    ))
    return stored


def store_recommendations_safely(session: Session, user_id: str, recs: list[Recommendation]) -> bool:
    """Persist and commit; a failed write is logged and dropped."""
    try:
        store_recommendations(session, user_id, recs)
        session.commit()
    except Exception as exc:
        session.rollback()
        log.warning("Storing recommendations failed for user %s: %s", user_id, exc)
        return False
    return True


def list_recommendations(session: Session, user_id: str, stream_type: str | None = None) -> list[dict]:
    query = select(EnhancedRecommendation).where(
        EnhancedRecommendation.user_id == user_id,
        EnhancedRecommendation.is_active.is_(True),
    )
    if stream_type:
        query = query.where(EnhancedRecommendation.stream_type == stream_type)
    rows = session.execute(query.order_by(EnhancedRecommendation.rank)).scalars().all()
    return [stored_recommendation_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def submit_quiz(
    session: Session, user_id: str, answers: Mapping[str, Any], industry: str = "",
) -> tuple[ChaosResult, list[QuizAnswer]]:
    """Score a quiz, record each answer and update the profile (caller must commit)."""
    result = process_quiz(answers, industry)
    contributions = question_contributions(answers)
    for a in contributions:
        session.add(QuizResponse(
            user_id=user_id,
            question_id=a.question_id,
            response_json=json.dumps({"value": a.answer}),
            chaos_contribution=a.chaos_contribution,
        ))

    by_question = {a.question_id: a.answer for a in contributions}
    profile = get_or_create_profile(session, user_id)
    profile.chaos_score = result.chaos_score
    profile.clarity_zone = str(result.clarity_zone)
    profile.industry_percentile = result.industry_percentile
    profile.daily_overwhelm_score = by_question["daily_overwhelm"]
    profile.revenue_predictability_score = by_question["revenue_predictability"]
    profile.customer_acquisition_method = by_question["customer_acquisition"]
    profile.biggest_challenge = by_question["biggest_challenge"]
    profile.quiz_completed_at = datetime.now(UTC)
    if industry:
        profile.industry = industry
    log.info("Quiz submitted for user %s: chaos %d (%s)", user_id, result.chaos_score, result.clarity_zone)
    return result, contributions


def _load_behavior(factory: SessionFactory, user_id: str) -> UserBehavior:
    try:
        with session_scope(factory) as session:
            return get_user_behavior(session, user_id)
    except Exception as exc:
        log.warning("Loading behavior failed for user %s: %s", user_id, exc)
        return UserBehavior()


def _store(factory: SessionFactory, user_id: str, ranked: list[Recommendation]) -> bool:
    try:
        with session_scope(factory) as session:
            return store_recommendations_safely(session, user_id, ranked)
    except Exception as exc:
        log.warning("Opening a session to store recommendations failed for user %s: %s", user_id, exc)
        return False


async def refresh_recommendations(
    user_id: str, session_factory: SessionFactory | None = None, limit: int | None = None,
) -> tuple[list[Recommendation], bool]:
    """Synthesize, generate, rank and persist the top recommendations.

    Returns the ranked in-memory list and whether the write succeeded; a
    failed write never hides the result from the caller.
    """
    factory = session_factory or get_session
    profile = await synthesize_business_data(user_id, factory)
    behavior = await asyncio.to_thread(_load_behavior, factory, user_id)
    benchmarks = get_industry_benchmarks(profile.business_info.industry)

    ranked = top_recommendations(
        generate_recommendations(profile, behavior, benchmarks),
        limit if limit is not None else recommendation_limit(),
    )
    stored = await asyncio.to_thread(_store, factory, user_id, ranked)
    log.info("Refreshed %d recommendations for user %s (stored=%s)", len(ranked), user_id, stored)
    return ranked, stored


def business_health(profile: UnifiedBusinessProfile) -> dict:
    """Health score (inverse of chaos), its zone and the next milestone."""
    health = 100 - profile.quiz_insights.chaos_score
    if health < 40:
        zone = "chaos"
    elif health < 75:
        zone = "control"
    else:
        zone = "clarity"
    milestone = next((m for m in MILESTONES if m["score"] > health), MILESTONES[-1])
    return {
        "health_score": health,
        "zone": zone,
        "progress_to_next": (health % 25) / 25 * 100,
        "next_milestone": dict(milestone),
        "industry_average_chaos": industry_benchmark(profile.business_info.industry)["average_chaos"],
        "data_quality": data_quality(profile),
    }


def dashboard_summary(profile: UnifiedBusinessProfile, recommendations: list[dict], top_n: int = 3) -> dict:
    """Health, headline metrics and the top stored recommendations for one screen."""
    return {
        "health": business_health(profile),
        "metrics": {
            "revenue": profile.financial_data.revenue,
            "profit": profile.financial_data.profit,
            "total_leads": profile.customer_data.total_leads,
            "conversion_rate": profile.customer_data.conversion_rate,
            "utilization": profile.schedule_data.utilization,
            "chaos_score": profile.quiz_insights.chaos_score,
        },
        "top_recommendations": recommendations[:top_n],
    }
