"""Chaos scoring: quiz answers to a 0-100 chaos score with deterministic insights.

Scoring
-------
Six ordinal questions (1-10) and two categorical questions each contribute a
fixed-weight amount of "chaos":

- ``daily_overwhelm``            : value x 10
- ``revenue_predictability``     : (11 - value) x 8   (predictable revenue reduces chaos)
- ``task_management_difficulty`` : value x 8
- ``financial_tracking``         : (11 - value) x 6   (good tracking reduces chaos)
- ``customer_communication``     : value x 6
- ``time_management``            : value x 8
- ``customer_acquisition``       : constant from :data:`ACQUISITION_CHAOS`
- ``biggest_challenge``          : constant from :data:`CHALLENGE_CHAOS`

The contributions are summed, divided by 5 and capped at 100.  The clarity
zone is a threshold partition of the score and the industry percentile is
``max(10, 100 - score)``.

Every function here is pure and total: malformed answers fall back to a
neutral mid-scale value instead of raising.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Mapping

from trademate.utils import clamp, round_half_up

log = logging.getLogger(__name__)


class ClarityZone(StrEnum):
    CHAOS = "chaos"
    CONTROL = "control"
    CLARITY = "clarity"


# ---------------------------------------------------------------------------
# Weights and lookup tables
# ---------------------------------------------------------------------------

NEUTRAL_ANSWER = 5
DEFAULT_CATEGORY = "Other"

# (weight, inverted) per ordinal question
ORDINAL_WEIGHTS: dict[str, tuple[int, bool]] = {
    "daily_overwhelm": (10, False),
    "revenue_predictability": (8, True),
    "task_management_difficulty": (8, False),
    "financial_tracking": (6, True),
    "customer_communication": (6, False),
    "time_management": (8, False),
}

ACQUISITION_CHAOS: dict[str, int] = {
    "Repeat customers": 10,
    "Referrals": 15,
    "Online marketing": 25,
    "Cold outreach": 35,
    "Other": 30,
}
ACQUISITION_FALLBACK = 30

CHALLENGE_CHAOS: dict[str, int] = {
    "Pricing/profitability": 15,
    "Team coordination": 20,
    "Time management": 25,
    "Managing cash flow": 30,
    "Finding customers": 35,
}
CHALLENGE_FALLBACK = 25

SCORE_DIVISOR = 5
CHAOS_THRESHOLD = 70
CONTROL_THRESHOLD = 40

# Industry benchmarks of the average chaos score, used for insight wording.
INDUSTRY_CHAOS_BENCHMARKS: dict[str, dict[str, int]] = {
    "Plumbing": {"average_chaos": 65, "top_percentile_threshold": 35},
    "Electrical": {"average_chaos": 58, "top_percentile_threshold": 32},
    "HVAC": {"average_chaos": 62, "top_percentile_threshold": 38},
    "General Contractor": {"average_chaos": 72, "top_percentile_threshold": 45},
    "Roofing": {"average_chaos": 68, "top_percentile_threshold": 42},
    "Flooring": {"average_chaos": 55, "top_percentile_threshold": 30},
    "Painting": {"average_chaos": 52, "top_percentile_threshold": 28},
    "Landscaping": {"average_chaos": 60, "top_percentile_threshold": 35},
    "Carpentry": {"average_chaos": 58, "top_percentile_threshold": 33},
    "Other": {"average_chaos": 60, "top_percentile_threshold": 35},
}

INDUSTRY_OPPORTUNITIES: dict[str, str] = {
    "Plumbing": "Offer emergency service premium pricing (+30% revenue)",
    "Electrical": "Add smart home installation services (+50% project value)",
    "HVAC": "Create seasonal maintenance packages for steady income",
    "General Contractor": "Partner with real estate agents for referral pipeline",
    "Roofing": "Implement drone inspections for competitive advantage",
}

_FILLER_WINS = (
    "Automate appointment scheduling with online booking",
    "Set up customer follow-up email sequences",
    "Create standardized pricing sheets for common services",
)

_FILLER_OPPORTUNITIES = (
    "Implement dynamic pricing based on demand and seasonality",
    "Create premium service tiers for higher-value customers",
    "Build strategic partnerships with complementary businesses",
)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChaosQuizResponse:
    daily_overwhelm: int = NEUTRAL_ANSWER
    revenue_predictability: int = NEUTRAL_ANSWER
    customer_acquisition: str = DEFAULT_CATEGORY
    biggest_challenge: str = DEFAULT_CATEGORY
    task_management_difficulty: int = NEUTRAL_ANSWER
    financial_tracking: int = NEUTRAL_ANSWER
    customer_communication: int = NEUTRAL_ANSWER
    time_management: int = NEUTRAL_ANSWER


@dataclass(frozen=True)
class QuizAnswer:
    """One answered question and the chaos it contributes."""
    question_id: str
    answer: int | str
    chaos_contribution: int


@dataclass
class ChaosResult:
    chaos_score: int
    clarity_zone: ClarityZone
    industry_percentile: int
    quick_wins: list[str] = field(default_factory=list)
    strategic_opportunities: list[str] = field(default_factory=list)
    chaos_factors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _ordinal(value: Any) -> int:
    """Coerce an answer to an int in 1..10, neutral when unusable."""
    if isinstance(value, bool) or value is None:
        return NEUTRAL_ANSWER
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return NEUTRAL_ANSWER
    if not math.isfinite(num):
        return NEUTRAL_ANSWER
    return int(clamp(round_half_up(num), 1, 10))


def _category(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    return text or DEFAULT_CATEGORY


def normalize_response(raw: ChaosQuizResponse | Mapping[str, Any] | None) -> ChaosQuizResponse:
    """Build a well-formed response from whatever the quiz submitted."""
    if isinstance(raw, ChaosQuizResponse):
        raw = asdict(raw)
    data = dict(raw or {})
    ordinals = {name: _ordinal(data.get(name)) for name in ORDINAL_WEIGHTS}
    return ChaosQuizResponse(
        customer_acquisition=_category(data.get("customer_acquisition")),
        biggest_challenge=_category(data.get("biggest_challenge")),
        **ordinals,
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def acquisition_chaos(method: str) -> int:
    return ACQUISITION_CHAOS.get(method, ACQUISITION_FALLBACK)


def challenge_chaos(challenge: str) -> int:
    return CHALLENGE_CHAOS.get(challenge, CHALLENGE_FALLBACK)


def question_contributions(raw: ChaosQuizResponse | Mapping[str, Any] | None) -> list[QuizAnswer]:
    """Per-question chaos contributions, in quiz order."""
    resp = normalize_response(raw)
    answers: list[QuizAnswer] = []
    for name, (weight, inverted) in ORDINAL_WEIGHTS.items():
        value = getattr(resp, name)
        factor = 11 - value if inverted else value
        answers.append(QuizAnswer(name, value, factor * weight))
    answers.append(QuizAnswer(
        "customer_acquisition", resp.customer_acquisition,
        acquisition_chaos(resp.customer_acquisition),
    ))
    answers.append(QuizAnswer(
        "biggest_challenge", resp.biggest_challenge,
        challenge_chaos(resp.biggest_challenge),
    ))
    return answers


def calculate_chaos_score(raw: ChaosQuizResponse | Mapping[str, Any] | None) -> int:
    total = sum(a.chaos_contribution for a in question_contributions(raw))
    return int(clamp(round_half_up(total / SCORE_DIVISOR)))


def clarity_zone(chaos_score: float) -> ClarityZone:
    if chaos_score >= CHAOS_THRESHOLD:
        return ClarityZone.CHAOS
    if chaos_score >= CONTROL_THRESHOLD:
        return ClarityZone.CONTROL
    return ClarityZone.CLARITY


def industry_percentile(chaos_score: float) -> int:
    """Share of peers this business outperforms, never below 10."""
    return int(max(10, 100 - chaos_score))


def industry_benchmark(industry: str) -> dict[str, int]:
    return INDUSTRY_CHAOS_BENCHMARKS.get(industry, INDUSTRY_CHAOS_BENCHMARKS["Other"])


# ---------------------------------------------------------------------------
# Insight lists
# ---------------------------------------------------------------------------


def _pad(items: list[str], filler: tuple[str, ...], minimum: int = 3, maximum: int = 4) -> list[str]:
    if len(items) < minimum:
        items.extend(filler[: minimum - len(items)])
    return items[:maximum]


def quick_wins(resp: ChaosQuizResponse) -> list[str]:
    wins: list[str] = []
    if resp.daily_overwhelm >= 7:
        wins.append("Set up a daily task priority system (impact: immediate stress reduction)")
    if resp.revenue_predictability <= 4:
        wins.append("Track monthly recurring revenue and create 90-day cash flow forecast")
    if resp.financial_tracking <= 5:
        wins.append("Set up automated expense tracking with receipt scanning")
    if resp.customer_communication >= 6:
        wins.append("Create standard response templates for common customer questions")
    if resp.time_management >= 7:
        wins.append("Block 2-hour focus periods in your calendar for important work")
    return _pad(wins, _FILLER_WINS)


def strategic_opportunities(resp: ChaosQuizResponse, industry: str) -> list[str]:
    opportunities: list[str] = []
    if resp.customer_acquisition in ("Cold outreach", "Other"):
        opportunities.append("Build referral program to reduce customer acquisition costs by 40%")
    if resp.biggest_challenge == "Finding customers":
        opportunities.append("Implement local SEO strategy to capture 70% more online leads")
    if resp.revenue_predictability <= 5:
        opportunities.append("Develop maintenance contracts for predictable monthly revenue")
    industry_opp = INDUSTRY_OPPORTUNITIES.get(industry)
    if industry_opp:
        opportunities.append(industry_opp)
    return _pad(opportunities, _FILLER_OPPORTUNITIES)


def chaos_factors(resp: ChaosQuizResponse) -> list[str]:
    factors: list[str] = []
    if resp.daily_overwhelm >= 7:
        factors.append("High daily overwhelm affecting decision quality")
    if resp.revenue_predictability <= 4:
        factors.append("Unpredictable revenue creating financial stress")
    if resp.task_management_difficulty >= 7:
        factors.append("Difficulty managing multiple tasks simultaneously")
    if resp.time_management >= 7:
        factors.append("Poor time management leading to missed opportunities")
    if resp.customer_communication >= 7:
        factors.append("Communication issues causing customer dissatisfaction")
    return factors


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def process_quiz(raw: ChaosQuizResponse | Mapping[str, Any] | None, industry: str = "") -> ChaosResult:
    """Score a quiz submission and derive zone, percentile and insight lists."""
    resp = normalize_response(raw)
    score = calculate_chaos_score(resp)
    result = ChaosResult(
        chaos_score=score,
        clarity_zone=clarity_zone(score),
        industry_percentile=industry_percentile(score),
        quick_wins=quick_wins(resp),
        strategic_opportunities=strategic_opportunities(resp, industry),
        chaos_factors=chaos_factors(resp),
    )
    log.debug("Quiz scored %d (%s) for industry %r", score, result.clarity_zone, industry)
    return result
