"""Activity tracking: user actions, integration events and business outcomes.

An ``ActivityTracker`` is bound to one user and a session factory. Every
``track_*`` call is best effort: failures are logged and never raised to the
caller.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from trademate.db import SessionFactory, get_session, session_scope
from trademate.models import AutomationEvent, BusinessMetric, RecommendationInteraction
from trademate.services import refresh_recommendations
from trademate.utils import json_parse

log = logging.getLogger(__name__)

ROLLING_KEEP = 0.7
ROLLING_NEW = 0.3
INTEGRATION_EVENT_TYPES = ("connect", "sync", "error", "disconnect")


def change_percentage(before: float, after: float) -> float:
    if before == 0:
        return 0.0
    return (after - before) / before * 100


def effectiveness_score(change_pct: float, confidence: float) -> float:
    return min(100.0, abs(change_pct) * confidence)


def _upsert_metric(session: Session, user_id: str, metric_type: str, value: float, context: dict) -> BusinessMetric:
    metric = session.execute(
        select(BusinessMetric).where(
            BusinessMetric.user_id == user_id, BusinessMetric.metric_type == metric_type,
        )
    ).scalars().first()
    if metric is None:
        metric = BusinessMetric(user_id=user_id, metric_type=metric_type)
        session.add(metric)
    metric.value = value
    metric.context_json = json.dumps(context)
    metric.recorded_at = datetime.now(UTC)
    return metric


class ActivityTracker:
    def __init__(self, user_id: str, session_factory: SessionFactory | None = None,
                 session_id: str | None = None):
        self.user_id = user_id
        self.session_factory = session_factory or get_session
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"

    def _now(self) -> str:
        return datetime.now(UTC).isoformat()

    # -- user actions -------------------------------------------------------

    def track_user_action(self, action_type: str, context: dict[str, Any] | None = None,
                          outcome: str | None = None) -> bool:
        """Record an action as an automation event plus an interaction row."""
        context = {**(context or {}), "session_id": self.session_id, "timestamp": self._now()}
        try:
            with session_scope(self.session_factory) as session:
                session.add(AutomationEvent(
                    user_id=self.user_id,
                    event_type="user_action",
                    event_data_json=json.dumps({
                        "action_type": action_type, "context": context, "outcome": outcome,
                    }),
                ))
                rating = context.get("rating")
                session.add(RecommendationInteraction(
                    user_id=self.user_id,
                    recommendation_id=context.get("recommendation_id") or "general_action",
                    interaction_type=action_type,
                    time_spent=float(context.get("time_spent") or 0),
                    feedback_rating=int(rating) if rating is not None else None,
                    outcome_reported=outcome,
                    metadata_json=json.dumps({"session_id": self.session_id, "context": context}),
                ))
                session.commit()
        except Exception as exc:
            log.warning("Tracking action %s failed for user %s: %s", action_type, self.user_id, exc)
            return False
        return True

    def track_recommendation_view(self, recommendation_id: str, **context) -> bool:
        return self.track_user_action("recommendation_viewed", {"recommendation_id": recommendation_id, **context})

    def track_recommendation_implemented(self, recommendation_id: str, outcome: str,
                                         business_impact: float | None = None) -> bool:
        return self.track_user_action(
            "recommendation_implemented",
            {"recommendation_id": recommendation_id, "business_impact": business_impact},
            outcome,
        )

    def track_setup_completion(self, setup_data: dict[str, Any], chaos_score: int) -> bool:
        return self.track_user_action(
            "setup_completed",
            {"setup_data": setup_data, "chaos_score": chaos_score, "completion_time": self._now()},
            "onboarding_complete",
        )

    # -- integrations -------------------------------------------------------

    def track_integration_event(self, provider: str, event_type: str = "connect",
                                data_quality: float = 100.0, records_processed: int | None = None,
                                error_details: str | None = None) -> float | None:
        """Record an integration event and fold its data quality into the
        provider's rolling effectiveness score. Returns the new score."""
        if event_type not in INTEGRATION_EVENT_TYPES:
            log.warning("Ignoring unknown integration event type %r for user %s", event_type, self.user_id)
            return None
        metric_type = f"integration_effectiveness_{provider}"
        try:
            with session_scope(self.session_factory) as session:
                session.add(AutomationEvent(
                    user_id=self.user_id,
                    event_type="integration_event",
                    event_data_json=json.dumps({
                        "provider": provider, "event_type": event_type, "data_quality": data_quality,
                        "records_processed": records_processed, "error_details": error_details,
                        "session_id": self.session_id, "timestamp": self._now(),
                    }),
                ))
                existing = session.execute(
                    select(BusinessMetric).where(
                        BusinessMetric.user_id == self.user_id, BusinessMetric.metric_type == metric_type,
                    )
                ).scalars().first()
                if existing is None:
                    score, count = float(data_quality), 1
                else:
                    score = existing.value * ROLLING_KEEP + data_quality * ROLLING_NEW
                    count = json_parse(existing.context_json, {}).get("event_count", 0) + 1
                _upsert_metric(session, self.user_id, metric_type, score, {
                    "event_count": count, "last_updated": self._now(), "data_quality_trend": data_quality,
                })
                session.commit()
        except Exception as exc:
            log.warning("Tracking %s event for %s failed for user %s: %s", event_type, provider, self.user_id, exc)
            return None
        return score

    def track_integration_connected(self, provider: str, data_quality: float = 100.0) -> float | None:
        return self.track_integration_event(provider, "connect", data_quality)

    # -- outcomes -----------------------------------------------------------

    def _record_outcome(self, metric_type: str, before_value: float, after_value: float,
                        sources: list[str], confidence_level: float) -> bool:
        change = change_percentage(before_value, after_value)
        try:
            with session_scope(self.session_factory) as session:
                session.add(BusinessMetric(
                    user_id=self.user_id,
                    metric_type=f"outcome_{metric_type}",
                    value=after_value,
                    context_json=json.dumps({
                        "before_value": before_value, "change_percentage": change,
                        "attribution_sources": sources, "confidence_level": confidence_level,
                        "tracked_at": self._now(),
                    }),
                ))
                score = effectiveness_score(change, confidence_level)
                for source in sources:
                    _upsert_metric(session, self.user_id, f"recommendation_effectiveness_{source}", score, {
                        "outcome_type": metric_type, "change_percentage": change,
                        "confidence_level": confidence_level, "updated_at": self._now(),
                    })
                session.commit()
        except Exception as exc:
            log.warning("Tracking outcome %s failed for user %s: %s", metric_type, self.user_id, exc)
            return False
        return True

    async def track_business_outcome(self, metric_type: str, before_value: float, after_value: float,
                                     attribution_sources: list[str] | None = None,
                                     confidence_level: float = 0.8) -> bool:
        """Store an outcome, credit each attributed source and refresh the feed."""
        recorded = await asyncio.to_thread(
            self._record_outcome, metric_type, before_value, after_value,
            attribution_sources or ["general"], confidence_level,
        )
        if not recorded:
            return False
        try:
            await refresh_recommendations(self.user_id, self.session_factory)
        except Exception as exc:
            log.warning("Refreshing recommendations after outcome failed for user %s: %s", self.user_id, exc)
        return True
