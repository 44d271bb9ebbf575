"""
Type definitions for gateway domain

Vendor payloads are parsed into these models at the client boundary, with
defaulting for missing or malformed fields, so the metric layer never
indexes raw JSON.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def coerce_int(value: Any) -> int:
    """Round a loosely typed number half-up to int, treating junk as 0"""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return 0


def coerce_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


# --- Document store query ---


class FilterOperator(str, Enum):
    """Structured-query comparison operators (wire names)"""

    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"

    @classmethod
    def from_symbol(cls, symbol: str) -> "FilterOperator":
        symbols = {
            "<": cls.LESS_THAN,
            "<=": cls.LESS_THAN_OR_EQUAL,
            ">": cls.GREATER_THAN,
            ">=": cls.GREATER_THAN_OR_EQUAL,
            "==": cls.EQUAL,
            "!=": cls.NOT_EQUAL,
        }
        try:
            return symbols[symbol]
        except KeyError:
            return cls(symbol)


class Direction(str, Enum):
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


@dataclass(frozen=True)
class FieldFilter:
    """``field <op> value``; the value is a plain Python value, encoded on send"""

    field: str
    op: FilterOperator
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = Direction.ASCENDING


@dataclass
class DocumentQuery:
    """A structured query against one collection; filters combine with AND"""

    collection: str
    filters: List[FieldFilter] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    select: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None


# --- RevenueCat ---

REVENUECAT_METRIC_FIELDS = {
    "mrr": "mrr",
    "active_subscriptions": "active_subscriptions",
    "revenue": "revenue_28d",
    "active_users": "active_users_28d",
    "new_customers": "new_customers_28d",
    "active_trials": "active_trials",
    "num_tx_last_28_days": "transactions_28d",
}


class RevenueCatOverview(BaseModel):
    """Current-snapshot billing metrics (MRR and revenue in USD cents)"""

    mrr: int = 0
    active_subscriptions: int = 0
    revenue_28d: int = 0
    active_users_28d: int = 0
    new_customers_28d: int = 0
    active_trials: int = 0
    transactions_28d: int = 0

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RevenueCatOverview":
        """Parse ``{"metrics": [{"id", "value"}]}``; unknown ids are ignored"""
        values: Dict[str, int] = {}
        for metric in (payload or {}).get("metrics") or []:
            if not isinstance(metric, dict):
                continue
            name = REVENUECAT_METRIC_FIELDS.get(metric.get("id"))
            if name:
                values[name] = coerce_int(metric.get("value"))
        return cls(**values)


# --- Sentry ---


class SentryIssue(BaseModel):
    id: str = ""
    title: str = ""
    count: int = 0
    user_count: int = 0
    last_seen: str = ""
    first_seen: str = ""
    level: str = ""
    culprit: str = ""

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "SentryIssue":
        return cls(
            id=coerce_str(raw.get("id")),
            title=coerce_str(raw.get("title")),
            count=coerce_int(raw.get("count")),
            user_count=coerce_int(raw.get("userCount")),
            last_seen=coerce_str(raw.get("lastSeen")),
            first_seen=coerce_str(raw.get("firstSeen")),
            level=coerce_str(raw.get("level")),
            culprit=coerce_str(raw.get("culprit")),
        )


class DailyErrors(BaseModel):
    date: str
    accepted: int = 0
    rate_limited: int = 0
    invalid: int = 0


class ErrorsOverview(BaseModel):
    issues: List[SentryIssue] = Field(default_factory=list)
    total_unresolved: int = 0
    total_events_today: int = 0


# --- PostHog ---


class DailyValue(BaseModel):
    date: str
    value: int = 0


class ActiveUsers(BaseModel):
    dau: int = 0
    wau: int = 0
    mau: int = 0
    dau_trend: List[DailyValue] = Field(default_factory=list)
    wau_trend: List[DailyValue] = Field(default_factory=list)
    mau_trend: List[DailyValue] = Field(default_factory=list)


class TopEvent(BaseModel):
    event: str
    count: int = 0
    unique_users: int = 0


class Retention(BaseModel):
    """Share of new users returning on day 1, 7 and 30 (percent, one decimal)"""

    d1: float = 0.0
    d7: float = 0.0
    d30: float = 0.0


class SessionStats(BaseModel):
    total_sessions: int = 0
    avg_session_duration: int = 0  # seconds
    sessions_per_user: float = 0.0
    daily_sessions: List[DailyValue] = Field(default_factory=list)
