"""
D1 Metrics - subscription metrics reconstructed from lifecycle events

Pure reconstructors (MRR, churn, trial conversion, revenue by currency,
ARPU/LTV, daily revenue, plan breakdown, user growth) plus the cached
MetricsService that feeds them from the document store and vendor APIs.
"""

from .aggregators import (
    aggregate_daily_revenue,
    compute_arpu,
    compute_churn,
    compute_trial_conversion,
    ensure_chronological,
    estimate_ltv,
    monthly_value_cents,
    plan_breakdown,
    reconstruct_mrr,
    revenue_by_currency,
    user_growth,
)
from .currency import CENTS_PER_UNIT, round_half_up, to_usd_cents
from .models import (
    ARPUDataPoint,
    ChurnDataPoint,
    ConversionDataPoint,
    DailyRevenue,
    DailyUsers,
    EventType,
    LTVEstimate,
    MRRDataPoint,
    PlanBreakdown,
    PlanCategory,
    PlanType,
    RevenueByCountry,
    SubscriptionEvent,
    UserOverview,
    classify_plan,
)
from .service import MetricOutcome, MetricsService, build_metrics_service
from .timeseries import day_key, fill_daily_gaps, period_key

__all__ = [
    # Reconstructors
    "reconstruct_mrr",
    "compute_churn",
    "compute_trial_conversion",
    "revenue_by_currency",
    "aggregate_daily_revenue",
    "plan_breakdown",
    "compute_arpu",
    "estimate_ltv",
    "ensure_chronological",
    "monthly_value_cents",
    "user_growth",
    # Currency and calendar helpers
    "CENTS_PER_UNIT",
    "round_half_up",
    "to_usd_cents",
    "day_key",
    "period_key",
    "fill_daily_gaps",
    # Models
    "EventType",
    "SubscriptionEvent",
    "PlanType",
    "PlanCategory",
    "classify_plan",
    "MRRDataPoint",
    "ChurnDataPoint",
    "ConversionDataPoint",
    "RevenueByCountry",
    "DailyRevenue",
    "ARPUDataPoint",
    "LTVEstimate",
    "PlanBreakdown",
    "DailyUsers",
    "UserOverview",
    # Service
    "MetricsService",
    "MetricOutcome",
    "build_metrics_service",
]
