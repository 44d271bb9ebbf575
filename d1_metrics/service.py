"""
D1 Metrics Service

Cached async facade over the reconstructors and vendor fetchers. Each public
method is one dashboard metric: it wraps its computation in the TTL cache
under a ``<domain>:<metric>:<params...>`` key and lets transport and
configuration errors propagate to the caller.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from core.config import Settings, get_settings
from core.logging import get_logger
from d0_gateway.cache import TTLCache, cache_key, range_cache_key
from d0_gateway.providers import FirestoreClient, PostHogClient, RevenueCatClient, SentryClient
from d0_gateway.types import (
    ActiveUsers,
    DailyErrors,
    Direction,
    DocumentQuery,
    ErrorsOverview,
    FieldFilter,
    FilterOperator,
    OrderBy,
    Retention,
    RevenueCatOverview,
    SentryIssue,
    SessionStats,
    TopEvent,
)

from . import aggregators
from .models import (
    EVENT_FIELDS,
    ARPUDataPoint,
    ChurnDataPoint,
    ConversionDataPoint,
    DailyRevenue,
    DailyUsers,
    LTVEstimate,
    MRRDataPoint,
    PlanBreakdown,
    RevenueByCountry,
    SubscriptionEvent,
    UserOverview,
)
from .timeseries import end_of_day, end_of_day_ms, start_of_day, start_of_day_ms

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

PLAN_BREAKDOWN_DAYS = 90

# Field projections per reconstructor
MRR_FIELDS = ["type", "timestamp_ms", "user_id", "product_id", "price", "currency", "expiration_at_ms"]
CHURN_FIELDS = ["type", "timestamp_ms", "user_id"]
CONVERSION_FIELDS = ["type", "timestamp_ms", "user_id", "is_trial_period", "period_type"]
REVENUE_FIELDS = ["type", "timestamp_ms", "price", "currency"]
PLAN_FIELDS = ["type", "timestamp_ms", "product_id", "price", "currency"]
LTV_FIELDS = ["type", "timestamp_ms", "user_id", "expiration_at_ms"]

USER_CREATED_FIELD = "createdAt"


@dataclass
class MetricOutcome:
    """Result of one concurrently-fetched metric: a value or the error it raised"""

    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class MetricsService:
    """Dashboard metrics backed by the event store and vendor APIs"""

    def __init__(
        self,
        cache: TTLCache,
        firestore: FirestoreClient,
        revenuecat: RevenueCatClient,
        sentry: SentryClient,
        posthog: PostHogClient,
        settings: Optional[Settings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.cache = cache
        self.firestore = firestore
        self.revenuecat = revenuecat
        self.sentry = sentry
        self.posthog = posthog
        self.settings = settings or get_settings()
        self.today = today or _utc_today
        self.logger = get_logger("d1.metrics_service", domain="d1")

    async def close(self) -> None:
        for client in (self.firestore, self.revenuecat, self.sentry, self.posthog):
            await client.close()

    # Events

    async def fetch_subscription_events(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[SubscriptionEvent]:
        """
        Load lifecycle events in ascending timestamp order

        Args:
            start_date: Inclusive ``YYYY-MM-DD`` lower bound (from 00:00:00Z)
            end_date: Inclusive ``YYYY-MM-DD`` upper bound (to 23:59:59Z)
            fields: Event attributes to project; all when omitted

        Returns:
            Events mapped onto the internal event type
        """
        timestamp_field = EVENT_FIELDS["timestamp_ms"]
        filters = []
        if start_date:
            start_ms = start_of_day_ms(start_date)
            filters.append(FieldFilter(timestamp_field, FilterOperator.GREATER_THAN_OR_EQUAL, start_ms))
        if end_date:
            end_ms = end_of_day_ms(end_date)
            filters.append(FieldFilter(timestamp_field, FilterOperator.LESS_THAN_OR_EQUAL, end_ms))

        query = DocumentQuery(
            collection=self.settings.events_collection,
            filters=filters,
            order_by=[OrderBy(timestamp_field, Direction.ASCENDING)],
            select=[EVENT_FIELDS[name] for name in fields or ()],
            limit=self.settings.events_query_limit,
        )
        documents = await self.firestore.run_query(query)
        events = [SubscriptionEvent.from_document(doc) for doc in documents]

        if len(events) >= self.settings.events_query_limit:
            self.logger.warning(
                f"Event query hit the {self.settings.events_query_limit} row limit; results are truncated"
            )
        return events

    # Event-sourced metrics

    async def get_mrr_evolution(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[MRRDataPoint]:
        async def compute():
            events = await self.fetch_subscription_events(start_date, end_date, MRR_FIELDS)
            return aggregators.reconstruct_mrr(events)

        key = range_cache_key("metrics", "mrr", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, 30 * MINUTE_MS)

    async def get_churn(
        self,
        period: str = "monthly",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ChurnDataPoint]:
        async def compute():
            events = await self.fetch_subscription_events(start_date, end_date, CHURN_FIELDS)
            return aggregators.compute_churn(events, period)

        key = range_cache_key("metrics", "churn", start_date, end_date, period)
        return await self.cache.get_or_compute(key, compute, HOUR_MS)

    async def get_trial_conversion(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[ConversionDataPoint]:
        async def compute():
            events = await self.fetch_subscription_events(start_date, end_date, CONVERSION_FIELDS)
            return aggregators.compute_trial_conversion(events)

        key = range_cache_key("metrics", "conversion", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, HOUR_MS)

    async def get_revenue_by_country(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[RevenueByCountry]:
        """Revenue share by purchase currency, used as a country proxy"""

        async def compute():
            events = await self.fetch_subscription_events(start_date, end_date, REVENUE_FIELDS)
            return aggregators.revenue_by_currency(events)

        key = range_cache_key("analytics", "revenue-by-country", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, HOUR_MS)

    async def get_revenue_history(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[DailyRevenue]:
        async def compute():
            events = await self.fetch_subscription_events(start_date, end_date, REVENUE_FIELDS)
            return aggregators.aggregate_daily_revenue(events)

        key = range_cache_key("revenuecat", "history", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, HOUR_MS)

    async def get_plan_breakdown(self) -> List[PlanBreakdown]:
        async def compute():
            start = (self.today() - timedelta(days=PLAN_BREAKDOWN_DAYS)).isoformat()
            events = await self.fetch_subscription_events(start, None, PLAN_FIELDS)
            return aggregators.plan_breakdown(events)

        return await self.cache.get_or_compute("analytics:plan-breakdown", compute, HOUR_MS)

    # User growth

    def _created_since(self, moment: datetime) -> List[FieldFilter]:
        return [FieldFilter(USER_CREATED_FIELD, FilterOperator.GREATER_THAN_OR_EQUAL, moment)]

    async def get_total_users(self) -> int:
        return await self.cache.get_or_compute(
            "users:total", lambda: self.firestore.run_aggregation(self.settings.users_collection), 30 * MINUTE_MS
        )

    async def get_user_growth(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[DailyUsers]:
        """Daily sign-ups and running total from account creation times"""

        async def compute():
            filters = []
            if start_date:
                filters.extend(self._created_since(start_of_day(start_date)))
            if end_date:
                end = end_of_day(end_date)
                filters.append(FieldFilter(USER_CREATED_FIELD, FilterOperator.LESS_THAN_OR_EQUAL, end))

            query = DocumentQuery(
                collection=self.settings.users_collection,
                filters=filters,
                order_by=[OrderBy(USER_CREATED_FIELD, Direction.ASCENDING)],
                select=[USER_CREATED_FIELD],
                limit=self.settings.users_query_limit,
            )
            documents = await self.firestore.run_query(query)
            if len(documents) >= self.settings.users_query_limit:
                self.logger.warning(
                    f"User query hit the {self.settings.users_query_limit} row limit; growth is truncated"
                )
            return aggregators.user_growth(doc.get(USER_CREATED_FIELD) for doc in documents)

        key = range_cache_key("users", "growth", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, HOUR_MS)

    async def get_user_overview(self) -> UserOverview:
        """Total users plus sign-ups since today 00:00Z, 7 days and 30 days before it"""

        async def compute():
            today = self.today()
            midnight = datetime(today.year, today.month, today.day, tzinfo=timezone.utc)
            collection = self.settings.users_collection

            total, today_count, week_count, month_count = await asyncio.gather(
                self.get_total_users(),
                self.firestore.run_aggregation(collection, self._created_since(midnight)),
                self.firestore.run_aggregation(collection, self._created_since(midnight - timedelta(days=7))),
                self.firestore.run_aggregation(collection, self._created_since(midnight - timedelta(days=30))),
            )
            return UserOverview(
                total_users=total,
                new_users_today=today_count,
                new_users_this_week=week_count,
                new_users_this_month=month_count,
            )

        return await self.cache.get_or_compute("users:overview", compute, 30 * MINUTE_MS)

    # Vendor-backed metrics

    async def get_overview(self) -> RevenueCatOverview:
        return await self.cache.get_or_compute("revenuecat:overview", self.revenuecat.fetch_overview, 30 * MINUTE_MS)

    async def get_arpu(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[ARPUDataPoint]:
        """
        Current-month ARPU from the live billing overview

        The range only scopes the cache key; a historical ARPU series is not
        reconstructed.
        """

        async def compute():
            overview = await self.get_overview()
            return aggregators.compute_arpu(overview, self.today())

        key = range_cache_key("analytics", "arpu", start_date, end_date)
        return await self.cache.get_or_compute(key, compute, 30 * MINUTE_MS)

    async def get_ltv(self) -> LTVEstimate:
        async def compute():
            overview, events = await asyncio.gather(
                self.get_overview(),
                self.fetch_subscription_events(fields=LTV_FIELDS),
            )
            arpu = aggregators.compute_arpu(overview, self.today())[0].arpu
            return aggregators.estimate_ltv(events, arpu)

        return await self.cache.get_or_compute("analytics:ltv", compute, 2 * HOUR_MS)

    async def get_sentry_issues(self, limit: int = 25) -> List[SentryIssue]:
        return await self.cache.get_or_compute(
            cache_key("sentry", "issues", limit), lambda: self.sentry.fetch_issues(limit), 15 * MINUTE_MS
        )

    async def get_errors_overview(self) -> ErrorsOverview:
        return await self.cache.get_or_compute(
            "sentry:overview", lambda: self.sentry.errors_overview(self.today()), 15 * MINUTE_MS
        )

    async def get_error_history(self, days: int = 90) -> List[DailyErrors]:
        return await self.cache.get_or_compute(
            cache_key("sentry", "history", days), lambda: self.sentry.fetch_error_history(days), 30 * MINUTE_MS
        )

    async def get_active_users(self, days: int = 30) -> ActiveUsers:
        return await self.cache.get_or_compute(
            cache_key("posthog", "active-users", days), lambda: self.posthog.fetch_active_users(days), 30 * MINUTE_MS
        )

    async def get_top_events(self, days: int = 7, limit: int = 15) -> List[TopEvent]:
        return await self.cache.get_or_compute(
            cache_key("posthog", "top-events", days, limit),
            lambda: self.posthog.fetch_top_events(days, limit),
            30 * MINUTE_MS,
        )

    async def get_retention(self) -> Retention:
        return await self.cache.get_or_compute("posthog:retention", self.posthog.fetch_retention, HOUR_MS)

    async def get_session_stats(self, days: int = 30) -> SessionStats:
        return await self.cache.get_or_compute(
            cache_key("posthog", "sessions", days), lambda: self.posthog.fetch_session_stats(days), 30 * MINUTE_MS
        )

    # Coordination

    def refresh(self, prefix: str = "") -> int:
        """Drop cached metrics under ``prefix`` (everything when empty)"""
        removed = self.cache.invalidate_prefix(prefix)
        self.logger.info(f"Refreshed {removed} cached metrics", extra={"prefix": prefix})
        return removed

    async def gather(self, **named: Awaitable[Any]) -> Dict[str, MetricOutcome]:
        """
        Await several metrics concurrently; one failure never cancels the rest

        Example:
            results = await service.gather(mrr=service.get_mrr_evolution(), ltv=service.get_ltv())
        """
        names = list(named)
        results = await asyncio.gather(*named.values(), return_exceptions=True)

        outcomes: Dict[str, MetricOutcome] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                self.logger.warning(f"Metric {name} failed: {result}")
                outcomes[name] = MetricOutcome(error=result)
            else:
                outcomes[name] = MetricOutcome(value=result)
        return outcomes


def build_metrics_service(
    settings: Optional[Settings] = None,
    cache: Optional[TTLCache] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> MetricsService:
    """Wire a MetricsService with vendor clients built from settings"""
    settings = settings or get_settings()
    return MetricsService(
        cache=cache or TTLCache(default_ttl_ms=settings.cache_default_ttl_ms),
        firestore=FirestoreClient(transport=transport),
        revenuecat=RevenueCatClient(transport=transport),
        sentry=SentryClient(transport=transport),
        posthog=PostHogClient(transport=transport),
        settings=settings,
    )
