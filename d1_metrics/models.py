"""
D1 Metrics Models

Internal subscription event type, plan classification and the data points
each reconstructor emits. Store documents are mapped onto SubscriptionEvent
once, at the boundary, so the aggregators never see raw field names.
"""

import enum
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Union


class EventType(str, enum.Enum):
    """Subscription lifecycle events the aggregators understand"""

    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    CANCELLATION = "CANCELLATION"
    EXPIRATION = "EXPIRATION"
    NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"


STARTS = frozenset({EventType.INITIAL_PURCHASE, EventType.RENEWAL})
ENDS = frozenset({EventType.CANCELLATION, EventType.EXPIRATION})
REVENUE_EVENTS = frozenset({EventType.INITIAL_PURCHASE, EventType.RENEWAL, EventType.NON_RENEWING_PURCHASE})

# Store field names, in the order they appear in queries
EVENT_FIELDS = {
    "type": "type",
    "timestamp_ms": "event_timestamp_ms",
    "user_id": "app_user_id",
    "product_id": "product_id",
    "price": "price_in_purchased_currency",
    "currency": "currency",
    "expiration_at_ms": "expiration_at_ms",
    "is_trial_period": "is_trial_period",
    "period_type": "period_type",
}


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class SubscriptionEvent:
    """One billing lifecycle event; ``type`` stays a raw string when unrecognized"""

    type: Union[EventType, str]
    timestamp_ms: int
    user_id: str = ""
    product_id: str = ""
    price: float = 0.0
    currency: str = "USD"
    expiration_at_ms: Optional[int] = None
    is_trial_period: bool = False

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "SubscriptionEvent":
        """Build an event from a decoded store document, defaulting missing fields"""
        raw_type = doc.get(EVENT_FIELDS["type"]) or ""
        try:
            event_type: Union[EventType, str] = EventType(raw_type)
        except ValueError:
            event_type = str(raw_type)

        trial = doc.get(EVENT_FIELDS["is_trial_period"])
        if trial is None:
            trial = str(doc.get(EVENT_FIELDS["period_type"]) or "").upper() == "TRIAL"

        return cls(
            type=event_type,
            timestamp_ms=_as_int(doc.get(EVENT_FIELDS["timestamp_ms"])) or 0,
            user_id=str(doc.get(EVENT_FIELDS["user_id"]) or ""),
            product_id=str(doc.get(EVENT_FIELDS["product_id"]) or ""),
            price=_as_float(doc.get(EVENT_FIELDS["price"])),
            currency=str(doc.get(EVENT_FIELDS["currency"]) or "USD"),
            expiration_at_ms=_as_int(doc.get(EVENT_FIELDS["expiration_at_ms"])),
            is_trial_period=bool(trial),
        )


class PlanType(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"
    TRIAL = "trial"
    OTHER = "other"


@dataclass(frozen=True)
class PlanCategory:
    name: str
    type: PlanType


def classify_plan(product_id: str) -> PlanCategory:
    """
    Classify a store product ID by case-insensitive substring

    The order matters: ``lifetime`` wins over everything, ``yearly``/``annual``
    over ``monthly``, and ``welcome`` offers are yearly plans.
    """
    pid = (product_id or "").lower()
    if "lifetime" in pid:
        return PlanCategory("Lifetime", PlanType.LIFETIME)
    if "yearly" in pid or "annual" in pid:
        return PlanCategory("Yearly", PlanType.YEARLY)
    if "monthly" in pid:
        return PlanCategory("Monthly", PlanType.MONTHLY)
    if "welcome" in pid:
        return PlanCategory("Welcome Yearly", PlanType.YEARLY)
    if "trial" in pid:
        return PlanCategory("Trial", PlanType.TRIAL)
    return PlanCategory(product_id or "Other", PlanType.OTHER)


class DataPoint:
    """Mixin for reconstructor outputs"""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MRRDataPoint(DataPoint):
    date: str  # YYYY-MM-DD
    mrr: int  # USD cents
    subscribers: int


@dataclass
class ChurnDataPoint(DataPoint):
    date: str  # period key
    churn_rate: float  # percentage
    churned: int
    active_start: int


@dataclass
class ConversionDataPoint(DataPoint):
    date: str  # YYYY-MM
    conversion_rate: float  # percentage
    trials_started: int
    trials_converted: int


@dataclass
class RevenueByCountry(DataPoint):
    country: str  # currency code as proxy
    revenue: int  # USD cents
    percentage: float
    transactions: int


@dataclass
class DailyRevenue(DataPoint):
    date: str
    revenue: int = 0  # USD cents
    new_subscriptions: int = 0
    renewals: int = 0
    cancellations: int = 0
    churns: int = 0  # expirations


@dataclass
class ARPUDataPoint(DataPoint):
    date: str  # YYYY-MM
    arpu: int  # USD cents
    total_revenue: int
    active_users: int


@dataclass
class LTVEstimate(DataPoint):
    avg_subscription_duration: int  # days
    avg_monthly_revenue: int  # USD cents (ARPU)
    estimated_ltv: int  # USD cents


@dataclass
class PlanBreakdown(DataPoint):
    name: str
    type: PlanType
    subscribers: int = 0
    revenue: int = 0  # USD cents


@dataclass
class DailyUsers(DataPoint):
    date: str
    new_users: int = 0
    cumulative_users: int = 0


@dataclass
class UserOverview(DataPoint):
    total_users: int
    new_users_today: int
    new_users_this_week: int  # trailing 7 days
    new_users_this_month: int  # trailing 30 days
