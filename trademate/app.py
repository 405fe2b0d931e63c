from __future__ import annotations

import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Generator

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from trademate import services
from trademate.chaos import process_quiz
from trademate.db import SessionFactory, get_session, init_db, session_generator
from trademate.importer import import_records_xlsx
from trademate.schemas import (
    BusinessOutcomeIn,
    ChaosQuizIn,
    ChaosResultOut,
    DashboardOut,
    HealthOut,
    ImportResult,
    IntegrationEventIn,
    InteractionIn,
    QuizSubmissionOut,
    RefreshOut,
    StoredRecommendationOut,
    UnifiedProfileOut,
)
from trademate.synthesizer import synthesize_business_data
from trademate.tracking import ActivityTracker

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="TradeMate",
    version="0.1.0",
    description=(
        "Business intelligence API for small trade and service businesses. "
        "Score business chaos, synthesize a unified business profile, and "
        "generate ranked recommendations. All endpoints return JSON."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Quiz", "description": "Chaos assessment scoring and submission."},
        {"name": "Profile", "description": "Unified business profile and health."},
        {"name": "Recommendations", "description": "Generate, rank and list recommendations."},
        {"name": "Tracking", "description": "Record user actions, integration events and outcomes."},
        {"name": "Import", "description": "Bulk import built-in records from XLSX spreadsheets."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def session_factory() -> SessionFactory:
    """Factory used by the concurrent synthesizer, which opens its own sessions."""
    return get_session


# ---------------------------------------------------------------------------
# Routes: Quiz
# ---------------------------------------------------------------------------


@app.post("/api/quiz/score", response_model=ChaosResultOut,
          tags=["Quiz"], summary="Score a chaos quiz without storing it")
async def score_quiz(body: ChaosQuizIn):
    return services.chaos_result_dict(process_quiz(body.answers(), body.industry))


@app.post("/api/users/{user_id}/quiz", response_model=QuizSubmissionOut,
          tags=["Quiz"], summary="Submit a chaos quiz and update the user's profile")
async def submit_quiz(user_id: str, body: ChaosQuizIn, session: Session = Depends(db_session)):
    result, answers = services.submit_quiz(session, user_id, body.answers(), body.industry)
    session.commit()
    return services.chaos_result_dict(result, answers)


# ---------------------------------------------------------------------------
# Routes: Profile
# ---------------------------------------------------------------------------


@app.get("/api/users/{user_id}/profile", response_model=UnifiedProfileOut,
         tags=["Profile"], summary="Synthesize the unified business profile")
async def get_profile(user_id: str, factory: SessionFactory = Depends(session_factory)):
    profile = await synthesize_business_data(user_id, factory)
    return services.profile_dict(profile)


@app.get("/api/users/{user_id}/health", response_model=HealthOut,
         tags=["Profile"], summary="Business health score, next milestone and data quality")
async def get_health(user_id: str, factory: SessionFactory = Depends(session_factory)):
    profile = await synthesize_business_data(user_id, factory)
    return services.business_health(profile)


@app.get("/api/users/{user_id}/dashboard", response_model=DashboardOut,
         tags=["Profile"], summary="Health, headline metrics and top stored recommendations")
async def get_dashboard(user_id: str, factory: SessionFactory = Depends(session_factory),
                        session: Session = Depends(db_session)):
    profile = await synthesize_business_data(user_id, factory)
    return services.dashboard_summary(profile, services.list_recommendations(session, user_id))


# ---------------------------------------------------------------------------
# Routes: Recommendations
# ---------------------------------------------------------------------------


@app.post("/api/users/{user_id}/recommendations/refresh", response_model=RefreshOut,
          tags=["Recommendations"], summary="Generate, rank and store the top recommendations")
async def refresh_recommendations(
    user_id: str,
    limit: int | None = Query(None, ge=1, le=50, description="Maximum number of recommendations to keep"),
    factory: SessionFactory = Depends(session_factory),
):
    ranked, stored = await services.refresh_recommendations(user_id, factory, limit)
    return {
        "user_id": user_id,
        "stored": stored,
        "recommendations": [services.recommendation_dict(r) for r in ranked],
    }


@app.get("/api/users/{user_id}/recommendations", response_model=list[StoredRecommendationOut],
         tags=["Recommendations"], summary="List stored recommendations in rank order")
async def list_recommendations(
    user_id: str,
    stream: str | None = Query(None, description="Filter by stream: forYou, efficiency, growth, strategic, ..."),
    session: Session = Depends(db_session),
):
    return services.list_recommendations(session, user_id, stream)


# ---------------------------------------------------------------------------
# Routes: Tracking
# ---------------------------------------------------------------------------


@app.post("/api/users/{user_id}/interactions", tags=["Tracking"], status_code=201,
          summary="Record a user action such as viewing or implementing a recommendation")
async def track_interaction(user_id: str, body: InteractionIn,
                            factory: SessionFactory = Depends(session_factory)):
    context = dict(body.context)
    if body.recommendation_id:
        context["recommendation_id"] = body.recommendation_id
    ok = ActivityTracker(user_id, factory).track_user_action(body.action_type, context, body.outcome)
    return {"ok": ok}


@app.post("/api/users/{user_id}/integration-events", tags=["Tracking"], status_code=201,
          summary="Record an integration event and update its effectiveness score")
async def track_integration_event(user_id: str, body: IntegrationEventIn,
                                  factory: SessionFactory = Depends(session_factory)):
    score = ActivityTracker(user_id, factory).track_integration_event(
        body.provider, body.event_type, body.data_quality,
        records_processed=body.records_processed, error_details=body.error_details,
    )
    return {"ok": score is not None, "effectiveness": score}


@app.post("/api/users/{user_id}/outcomes", tags=["Tracking"], status_code=201,
          summary="Record a business outcome and refresh recommendations")
async def track_outcome(user_id: str, body: BusinessOutcomeIn,
                        factory: SessionFactory = Depends(session_factory)):
    ok = await ActivityTracker(user_id, factory).track_business_outcome(
        body.metric_type, body.before_value, body.after_value,
        body.attribution_sources, body.confidence_level,
    )
    return {"ok": ok}


# ---------------------------------------------------------------------------
# Routes: Import
# ---------------------------------------------------------------------------


@app.post("/api/users/{user_id}/import", response_model=ImportResult,
          tags=["Import"], summary="Import transactions, contacts and appointments from XLSX")
async def import_file(user_id: str, file: UploadFile = File(...), session: Session = Depends(db_session)):
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        return import_records_xlsx(tmp_path, session, user_id)
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    host = os.environ.get("TRADEMATE_HOST", "127.0.0.1")
    port = int(os.environ.get("TRADEMATE_PORT", "8002"))
    uvicorn.run("trademate.app:app", host=host, port=port, reload=True)


if __name__ == "__main__":
    main()
