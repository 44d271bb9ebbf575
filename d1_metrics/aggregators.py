"""
D1 Metrics Aggregators

Event-sourced reconstructors for subscription metrics. Every reconstructor is
a pure scan over an ascending-ordered list of SubscriptionEvent; per-user state
(active subscriptions, trial starts, tenure) depends on that order, so each
entry point checks it first. User growth is built from account creation times.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from core.exceptions import ValidationError
from core.logging import get_logger
from d0_gateway.types import RevenueCatOverview

from .currency import round_half_up, to_usd_cents
from .models import (
    ENDS,
    REVENUE_EVENTS,
    STARTS,
    ARPUDataPoint,
    ChurnDataPoint,
    ConversionDataPoint,
    DailyRevenue,
    DailyUsers,
    EventType,
    LTVEstimate,
    MRRDataPoint,
    PlanBreakdown,
    PlanType,
    RevenueByCountry,
    SubscriptionEvent,
    classify_plan,
)
from .timeseries import PERIODS, as_utc_datetime, day_key, fill_daily_gaps, month_key, period_key, utc_date

logger = get_logger(__name__, domain="d1")

MS_PER_DAY = 86_400_000
DAYS_PER_MONTH = 30


def ensure_chronological(events: Sequence[SubscriptionEvent]) -> None:
    """Raise ValidationError unless events are in ascending timestamp order"""
    for index in range(1, len(events)):
        if events[index].timestamp_ms < events[index - 1].timestamp_ms:
            raise ValidationError(
                "Subscription events must be ordered by ascending timestamp",
                field="timestamp_ms",
                index=index,
            )


def monthly_value_cents(event: SubscriptionEvent) -> int:
    """MRR contribution of a purchase: monthly plans in full, yearly plans / 12"""
    plan = classify_plan(event.product_id)
    if plan.type == PlanType.MONTHLY:
        return to_usd_cents(event.price, event.currency)
    if plan.type == PlanType.YEARLY:
        return round_half_up(to_usd_cents(event.price, event.currency) / 12)
    return 0


@dataclass
class _ActiveSubscription:
    product_id: str
    expiration_at_ms: Optional[int]
    monthly_value_cents: int

    def entitled_at(self, timestamp_ms: int) -> bool:
        return self.expiration_at_ms is not None and self.expiration_at_ms > timestamp_ms


def reconstruct_mrr(events: Sequence[SubscriptionEvent]) -> List[MRRDataPoint]:
    """
    Rebuild daily MRR and subscriber counts from lifecycle events

    A purchase or renewal (re)writes the user's active subscription; a
    cancellation or expiration removes it. After each event the totals are
    taken over subscriptions still entitled at that event's instant, so a
    lapsed subscription drops out even without an explicit expiration event.
    The last totals of each day are kept and silent days are carried forward.
    """
    ensure_chronological(events)

    active: Dict[str, _ActiveSubscription] = {}
    daily: Dict[str, MRRDataPoint] = {}

    for event in events:
        if event.type in STARTS:
            active[event.user_id] = _ActiveSubscription(
                product_id=event.product_id,
                expiration_at_ms=event.expiration_at_ms,
                monthly_value_cents=monthly_value_cents(event),
            )
        elif event.type in ENDS:
            active.pop(event.user_id, None)
        else:
            continue

        entitled = [sub for sub in active.values() if sub.entitled_at(event.timestamp_ms)]
        day = day_key(event.timestamp_ms)
        daily[day] = MRRDataPoint(
            date=day,
            mrr=sum(sub.monthly_value_cents for sub in entitled),
            subscribers=len(entitled),
        )

    return fill_daily_gaps(list(daily.values()))


def compute_churn(events: Sequence[SubscriptionEvent], period: str = "monthly") -> List[ChurnDataPoint]:
    """
    Churn rate per weekly (Monday-keyed) or monthly period

    The active set is the users with a purchase or renewal inside the
    period, not a snapshot of subscribers at its start.
    """
    if period not in PERIODS:
        raise ValidationError(f"Unsupported period: {period}", field="period")
    ensure_chronological(events)

    active: Dict[str, Set[str]] = defaultdict(set)
    churned: Dict[str, Set[str]] = defaultdict(set)

    for event in events:
        key = period_key(utc_date(event.timestamp_ms), period)
        if event.type in STARTS:
            active[key].add(event.user_id)
        elif event.type in ENDS:
            churned[key].add(event.user_id)

    points = []
    for key in sorted(set(active) | set(churned)):
        active_start = len(active.get(key, ()))
        churned_count = len(churned.get(key, ()))
        rate = round(churned_count / active_start * 100, 2) if active_start else 0.0
        points.append(ChurnDataPoint(date=key, churn_rate=rate, churned=churned_count, active_start=active_start))
    return points


def compute_trial_conversion(events: Sequence[SubscriptionEvent]) -> List[ConversionDataPoint]:
    """Trial starts vs. paid renewals per calendar month"""
    ensure_chronological(events)

    started: Dict[str, Set[str]] = defaultdict(set)
    converted: Dict[str, Set[str]] = defaultdict(set)

    for event in events:
        key = month_key(utc_date(event.timestamp_ms))
        if event.type == EventType.INITIAL_PURCHASE and event.is_trial_period:
            started[key].add(event.user_id)
        elif event.type == EventType.RENEWAL and not event.is_trial_period:
            converted[key].add(event.user_id)

    points = []
    for key in sorted(set(started) | set(converted)):
        trials_started = len(started.get(key, ()))
        trials_converted = len(converted.get(key, ()))
        rate = round(trials_converted / trials_started * 100, 2) if trials_started else 0.0
        points.append(
            ConversionDataPoint(
                date=key,
                conversion_rate=rate,
                trials_started=trials_started,
                trials_converted=trials_converted,
            )
        )
    return points


def revenue_by_currency(events: Iterable[SubscriptionEvent]) -> List[RevenueByCountry]:
    """Revenue share per purchase currency, highest first"""
    revenue: Dict[str, int] = defaultdict(int)
    transactions: Dict[str, int] = defaultdict(int)

    for event in events:
        if event.type not in REVENUE_EVENTS:
            continue
        revenue[event.currency] += to_usd_cents(event.price, event.currency)
        transactions[event.currency] += 1

    total = sum(revenue.values())
    rows = [
        RevenueByCountry(
            country=currency,
            revenue=amount,
            percentage=amount / total * 100 if total else 0.0,
            transactions=transactions[currency],
        )
        for currency, amount in revenue.items()
    ]
    rows.sort(key=lambda row: row.revenue, reverse=True)
    return rows


def aggregate_daily_revenue(events: Sequence[SubscriptionEvent]) -> List[DailyRevenue]:
    """Daily revenue and lifecycle counts; days without events are zero"""
    ensure_chronological(events)

    daily: Dict[str, DailyRevenue] = {}
    for event in events:
        if not isinstance(event.type, EventType):
            continue
        day = day_key(event.timestamp_ms)
        point = daily.setdefault(day, DailyRevenue(date=day))

        if event.type in REVENUE_EVENTS:
            point.revenue += to_usd_cents(event.price, event.currency)
        if event.type == EventType.INITIAL_PURCHASE:
            point.new_subscriptions += 1
        elif event.type == EventType.RENEWAL:
            point.renewals += 1
        elif event.type == EventType.CANCELLATION:
            point.cancellations += 1
        elif event.type == EventType.EXPIRATION:
            point.churns += 1

    return fill_daily_gaps(list(daily.values()), carry_forward=False)


def plan_breakdown(events: Iterable[SubscriptionEvent]) -> List[PlanBreakdown]:
    """Transactions and revenue grouped by plan type, highest revenue first"""
    plans: Dict[PlanType, PlanBreakdown] = {}

    for event in events:
        if event.type not in REVENUE_EVENTS:
            continue
        plan = classify_plan(event.product_id)
        entry = plans.get(plan.type)
        if entry is None:
            name = "Other" if plan.type == PlanType.OTHER else plan.name
            entry = plans[plan.type] = PlanBreakdown(name=name, type=plan.type)
        entry.subscribers += 1
        entry.revenue += to_usd_cents(event.price, event.currency)

    return sorted(plans.values(), key=lambda entry: entry.revenue, reverse=True)


def user_growth(created_at: Iterable[Any]) -> List[DailyUsers]:
    """
    Daily sign-ups with a running total, one point per day

    Accepts account creation timestamps as datetimes or ISO strings; values
    that cannot be read as a timestamp are skipped.
    """
    counts: Dict[str, int] = defaultdict(int)
    for value in created_at:
        created = as_utc_datetime(value)
        if created is not None:
            counts[created.date().isoformat()] += 1

    daily = [DailyUsers(date=day, new_users=counts[day]) for day in sorted(counts)]

    cumulative = 0
    series = fill_daily_gaps(daily, carry_forward=False)
    for point in series:
        cumulative += point.new_users
        point.cumulative_users = cumulative
    return series


def compute_arpu(overview: RevenueCatOverview, today: date) -> List[ARPUDataPoint]:
    """Current-month ARPU from the billing vendor's live MRR and subscriber count"""
    active = overview.active_subscriptions
    arpu = round_half_up(overview.mrr / active) if active > 0 else 0
    return [
        ARPUDataPoint(
            date=month_key(today),
            arpu=arpu,
            total_revenue=overview.mrr,
            active_users=active,
        )
    ]


def estimate_ltv(events: Sequence[SubscriptionEvent], arpu_cents: int) -> LTVEstimate:
    """
    Estimate lifetime value as ARPU times average tenure in 30-day months

    Tenure runs from a user's first purchase to the latest expiration seen on
    their renewals. Users whose first event is a renewal are not tracked.
    """
    ensure_chronological(events)

    starts: Dict[str, int] = {}
    ends: Dict[str, int] = {}
    for event in events:
        if event.type == EventType.INITIAL_PURCHASE and event.user_id not in starts:
            starts[event.user_id] = event.timestamp_ms
            ends[event.user_id] = event.expiration_at_ms or event.timestamp_ms
        elif event.type == EventType.RENEWAL and event.user_id in starts:
            ends[event.user_id] = max(ends[event.user_id], event.expiration_at_ms or event.timestamp_ms)

    if starts:
        avg_ms = sum(ends[user] - starts[user] for user in starts) / len(starts)
        avg_days = round_half_up(avg_ms / MS_PER_DAY)
    else:
        avg_days = 0

    return LTVEstimate(
        avg_subscription_duration=avg_days,
        avg_monthly_revenue=arpu_cents,
        estimated_ltv=round_half_up(arpu_cents * avg_days / DAYS_PER_MONTH),
    )
