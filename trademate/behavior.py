"""User behavior summary derived from the profile and recommendation interactions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.orm import Session

from trademate.models import Profile, RecommendationInteraction

log = logging.getLogger(__name__)


class Complexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    ADVANCED = "advanced"


class GrowthAmbition(StrEnum):
    MAINTAIN = "maintain"
    GROW = "grow"
    SCALE = "scale"


DEFAULT_IMPLEMENTATION_RATE = 0.5

_COMPLEXITY_BY_SETUP = {
    "minimal": Complexity.SIMPLE,
    "connect": Complexity.ADVANCED,
}


@dataclass
class UserBehavior:
    implementation_rate: float = DEFAULT_IMPLEMENTATION_RATE
    preferred_complexity: Complexity = Complexity.MODERATE
    engagement_patterns: list[str] = field(default_factory=list)
    growth_ambition: GrowthAmbition = GrowthAmbition.GROW


def growth_ambition_for(chaos_score: int | None) -> GrowthAmbition:
    if chaos_score is None:
        return GrowthAmbition.GROW
    if chaos_score > 70:
        return GrowthAmbition.MAINTAIN
    if chaos_score > 40:
        return GrowthAmbition.GROW
    return GrowthAmbition.SCALE


def derive_user_behavior(
    profile: Profile | None, interactions: list[RecommendationInteraction],
) -> UserBehavior:
    if interactions:
        implemented = sum(1 for i in interactions if i.interaction_type in ("implemented", "recommendation_implemented"))
        rate = implemented / len(interactions)
    else:
        rate = DEFAULT_IMPLEMENTATION_RATE
    setup = (profile.setup_preference or "").lower() if profile else ""
    return UserBehavior(
        implementation_rate=rate,
        preferred_complexity=_COMPLEXITY_BY_SETUP.get(setup, Complexity.MODERATE),
        engagement_patterns=[i.interaction_type for i in interactions],
        growth_ambition=growth_ambition_for(profile.chaos_score if profile else None),
    )


def get_user_behavior(session: Session, user_id: str) -> UserBehavior:
    profile = session.execute(select(Profile).where(Profile.user_id == user_id)).scalars().first()
    interactions = session.execute(
        select(RecommendationInteraction)
        .where(RecommendationInteraction.user_id == user_id)
        .order_by(RecommendationInteraction.id)
    ).scalars().all()
    return derive_user_behavior(profile, list(interactions))
