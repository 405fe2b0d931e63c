from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP

from trademate import services
from trademate.chaos import INDUSTRY_CHAOS_BENCHMARKS, process_quiz
from trademate.db import get_session, init_db
from trademate.synthesizer import synthesize_business_data
from trademate.tracking import ActivityTracker

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def trademate_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "TradeMate",
    instructions=(
        "TradeMate is a business intelligence tool for small trade and service businesses. "
        "Use these tools to score the chaos assessment, inspect a user's unified business "
        "profile, and generate ranked recommendations. Start with get_business_health(user_id) "
        "for an overview, then refresh_recommendations(user_id) to build the feed."
    ),
    lifespan=trademate_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session():
    session = get_session()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("trademate://overview")
def trademate_overview() -> str:
    """Overview of TradeMate: data model, workflow, and zones."""
    return json.dumps({
        "system": "TradeMate: Business Intelligence for Trade and Service Businesses",
        "description": (
            "TradeMate scores how chaotic a business feels, merges accounting, CRM and "
            "calendar data into one profile, and ranks recommendations by personal fit, "
            "urgency and confidence."
        ),
        "data_model": {
            "profile": "Per-user business profile with the latest chaos quiz result.",
            "unified_profile": "Financial, customer, schedule and quiz data, each with a source and confidence.",
            "recommendation": "Actionable suggestion with scores, a stream and an expected impact.",
        },
        "workflow": [
            "1. score_quiz(...) to preview a chaos score, or submit_quiz(user_id, ...) to store it.",
            "2. get_business_profile(user_id) to see what data is known and how confident it is.",
            "3. get_business_health(user_id) for health score, milestone and missing data.",
            "4. refresh_recommendations(user_id) to generate and store the ranked feed.",
            "5. list_recommendations(user_id) to read the stored feed.",
        ],
        "zones": {
            "chaos": "Chaos score 70 or above. Stabilize before growing.",
            "control": "Chaos score 40 to 69. Systems partly in place.",
            "clarity": "Chaos score below 40. Ready to scale.",
        },
        "industries": sorted(INDUSTRY_CHAOS_BENCHMARKS),
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Quiz
# ---------------------------------------------------------------------------


@mcp.tool()
def score_quiz(
    daily_overwhelm: float | None = None, revenue_predictability: float | None = None,
    customer_acquisition: str | None = None, biggest_challenge: str | None = None,
    task_management_difficulty: float | None = None, financial_tracking: float | None = None,
    customer_communication: float | None = None, time_management: float | None = None,
    industry: str = "",
) -> dict:
    """Score a chaos quiz without storing it.

    Args:
        daily_overwhelm: 1-10, higher means more overwhelmed.
        revenue_predictability: 1-10, higher means more predictable.
        customer_acquisition: "Repeat customers", "Referrals", "Online marketing", "Cold outreach" or "Other".
        biggest_challenge: e.g. "Finding customers", "Managing cash flow", "Time management".
        task_management_difficulty: 1-10, higher means harder.
        financial_tracking: 1-10, higher means better tracked.
        customer_communication: 1-10, higher means more communication trouble.
        time_management: 1-10, higher means more time pressure.
        industry: Optional industry for tailored opportunities.
    Missing or unusable answers are scored as neutral.
    """
    answers = {
        "daily_overwhelm": daily_overwhelm, "revenue_predictability": revenue_predictability,
        "customer_acquisition": customer_acquisition, "biggest_challenge": biggest_challenge,
        "task_management_difficulty": task_management_difficulty,
        "financial_tracking": financial_tracking,
        "customer_communication": customer_communication, "time_management": time_management,
    }
    return services.chaos_result_dict(process_quiz(answers, industry))


@mcp.tool()
def submit_quiz(user_id: str, answers: dict, industry: str = "") -> dict:
    """Score a chaos quiz and store it on the user's profile.

    ``answers`` uses the same keys as score_quiz.
    """
    with _session() as session:
        try:
            result, contributions = services.submit_quiz(session, user_id, answers, industry)
            session.commit()
        except Exception as exc:
            session.rollback()
            return {"error": f"Quiz submission failed: {exc}"}
        return services.chaos_result_dict(result, contributions)


# ---------------------------------------------------------------------------
# Tools: Profile
# ---------------------------------------------------------------------------


@mcp.tool()
async def get_business_profile(user_id: str) -> dict:
    """Get the unified business profile (financial, customer, schedule and quiz data)."""
    return services.profile_dict(await synthesize_business_data(user_id))


@mcp.tool()
async def get_business_health(user_id: str) -> dict:
    """Get the business health score, next milestone and data quality summary."""
    return services.business_health(await synthesize_business_data(user_id))


# ---------------------------------------------------------------------------
# Tools: Recommendations
# ---------------------------------------------------------------------------


@mcp.tool()
async def refresh_recommendations(user_id: str, limit: int | None = None) -> dict:
    """Generate, rank and store the user's top recommendations."""
    ranked, stored = await services.refresh_recommendations(
        user_id, limit=max(1, min(limit, 50)) if limit else None,
    )
    return {
        "user_id": user_id,
        "stored": stored,
        "recommendations": [services.recommendation_dict(r) for r in ranked],
    }


@mcp.tool()
def list_recommendations(user_id: str, stream: str | None = None) -> list[dict]:
    """List the user's stored recommendations in rank order, optionally for one stream."""
    with _session() as session:
        return services.list_recommendations(session, user_id, stream)


# ---------------------------------------------------------------------------
# Tools: Tracking
# ---------------------------------------------------------------------------


@mcp.tool()
def record_recommendation_implemented(user_id: str, recommendation_id: str, outcome: str = "") -> dict:
    """Mark a recommendation as implemented. Feeds the user's implementation rate."""
    ok = ActivityTracker(user_id).track_recommendation_implemented(recommendation_id, outcome)
    return {"ok": ok}


@mcp.tool()
async def record_business_outcome(
    user_id: str, metric_type: str, before_value: float, after_value: float,
    attribution_sources: list[str] | None = None, confidence_level: float = 0.8,
) -> dict:
    """Record a business metric change and refresh recommendations."""
    ok = await ActivityTracker(user_id).track_business_outcome(
        metric_type, before_value, after_value, attribution_sources, confidence_level,
    )
    return {"ok": ok}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the TradeMate MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
