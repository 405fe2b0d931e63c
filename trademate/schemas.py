"""Pydantic request/response schemas for the TradeMate API."""
from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, field_validator

_ORDINAL_FIELDS = (
    "daily_overwhelm", "revenue_predictability", "task_management_difficulty",
    "financial_tracking", "customer_communication", "time_management",
)


class ChaosQuizIn(BaseModel):
    """Quiz submission. Unusable answers are accepted and scored as neutral."""
    daily_overwhelm: float | None = None
    revenue_predictability: float | None = None
    customer_acquisition: str | None = None
    biggest_challenge: str | None = None
    task_management_difficulty: float | None = None
    financial_tracking: float | None = None
    customer_communication: float | None = None
    time_management: float | None = None
    industry: str = ""

    @field_validator(*_ORDINAL_FIELDS, mode="before")
    @classmethod
    def lenient_ordinal(cls, v: Any) -> float | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            num = float(v)
        except (TypeError, ValueError, OverflowError):
            return None
        return num if math.isfinite(num) else None

    @field_validator("customer_acquisition", "biggest_challenge", mode="before")
    @classmethod
    def lenient_category(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    def answers(self) -> dict[str, Any]:
        return self.model_dump(exclude={"industry"})


class QuizAnswerOut(BaseModel):
    question_id: str
    answer: int | str
    chaos_contribution: int


class ChaosResultOut(BaseModel):
    chaos_score: int
    clarity_zone: str
    industry_percentile: int
    quick_wins: list[str]
    strategic_opportunities: list[str]
    chaos_factors: list[str]


class QuizSubmissionOut(ChaosResultOut):
    answers: list[QuizAnswerOut] = []


class BusinessInfoOut(BaseModel):
    company_name: str
    industry: str
    phone: str
    email: str
    address: str


class FinancialDataOut(BaseModel):
    revenue: float
    expenses: float
    profit: float
    cash_flow: float
    source: str
    confidence: int


class CustomerDataOut(BaseModel):
    total_leads: int
    conversion_rate: float
    average_deal_size: float
    pipeline_value: float
    source: str
    confidence: int


class ScheduleDataOut(BaseModel):
    utilization: float
    meeting_count: int
    productive_hours: float
    source: str
    confidence: int


class QuizInsightsOut(BaseModel):
    chaos_score: int
    clarity_zone: str
    industry_percentile: int
    confidence: int


class UnifiedProfileOut(BaseModel):
    business_info: BusinessInfoOut
    financial_data: FinancialDataOut
    customer_data: CustomerDataOut
    schedule_data: ScheduleDataOut
    quiz_insights: QuizInsightsOut


class DataQualityOut(BaseModel):
    overall_quality: int
    status: str
    missing_data: list[str]
    by_domain: dict[str, int]


class MilestoneOut(BaseModel):
    score: int
    title: str
    reward: str
    description: str


class HealthOut(BaseModel):
    health_score: int
    zone: str
    progress_to_next: float
    next_milestone: MilestoneOut
    industry_average_chaos: int
    data_quality: DataQualityOut


class RecommendationOut(BaseModel):
    id: str
    type: str
    priority: str
    hook: str
    title: str
    description: str
    reasoning: str
    expected_impact: str
    impact_value: float
    time_to_implement: str
    personalized_score: float
    confidence_score: float
    urgency_score: float
    composite_score: float
    actions: list[str]
    stream_type: str
    stream_label: str
    icon: str
    color: str


class RefreshOut(BaseModel):
    user_id: str
    stored: bool
    recommendations: list[RecommendationOut]


class StoredRecommendationOut(BaseModel):
    recommendation_id: str
    recommendation_type: str
    priority: str
    hook: str
    reasoning: str
    title: str
    description: str
    expected_impact: str
    time_to_implement: str
    actions: list[str]
    priority_score: float
    confidence_score: float
    personalized_score: float
    stream_type: str
    rank: int
    batch_id: str
    updated_at: str | None = None


class InteractionIn(BaseModel):
    action_type: str
    recommendation_id: str | None = None
    context: dict[str, Any] = {}
    outcome: str | None = None


class IntegrationEventIn(BaseModel):
    provider: str
    event_type: str = "connect"  # connect | sync | error | disconnect
    data_quality: float = 100.0
    records_processed: int | None = None
    error_details: str | None = None

    @field_validator("event_type")
    @classmethod
    def known_event_type(cls, v: str) -> str:
        if v not in ("connect", "sync", "error", "disconnect"):
            raise ValueError("event_type must be one of connect, sync, error, disconnect")
        return v


class BusinessOutcomeIn(BaseModel):
    metric_type: str
    before_value: float
    after_value: float
    attribution_sources: list[str] = ["general"]
    confidence_level: float = 0.8


class ImportResult(BaseModel):
    transactions: int
    contacts: int
    appointments: int
    skipped_rows: int


class DashboardMetricsOut(BaseModel):
    revenue: float
    profit: float
    total_leads: int
    conversion_rate: float
    utilization: float
    chaos_score: int


class DashboardOut(BaseModel):
    health: HealthOut
    metrics: DashboardMetricsOut
    top_recommendations: list[StoredRecommendationOut]
