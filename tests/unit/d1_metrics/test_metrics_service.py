"""
Tests for the cached metrics service
"""
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from core.config import Settings
from core.exceptions import ConfigurationError, ExternalAPIError
from d0_gateway.cache import TTLCache
from d0_gateway.types import Direction, FilterOperator, Retention, RevenueCatOverview, SessionStats, TopEvent
from d1_metrics.models import DailyUsers, MRRDataPoint, UserOverview
from d1_metrics.service import MetricOutcome, MetricsService, build_metrics_service
from d1_metrics.timeseries import end_of_day_ms, start_of_day_ms

pytestmark = pytest.mark.unit

T0 = 1_704_067_200_000  # 2024-01-01T00:00:00Z
DAY_MS = 86_400_000

DOCUMENTS = [
    {
        "_id": "e1",
        "type": "INITIAL_PURCHASE",
        "event_timestamp_ms": T0,
        "app_user_id": "A",
        "product_id": "premium_monthly",
        "price_in_purchased_currency": 10,
        "currency": "USD",
        "expiration_at_ms": T0 + 30 * DAY_MS,
    },
    {
        "_id": "e2",
        "type": "INITIAL_PURCHASE",
        "event_timestamp_ms": T0 + DAY_MS,
        "app_user_id": "B",
        "product_id": "premium_monthly",
        "price_in_purchased_currency": 10,
        "currency": "EUR",
        "expiration_at_ms": T0 + 31 * DAY_MS,
    },
]


@pytest.fixture
def firestore():
    return Mock(run_query=AsyncMock(return_value=DOCUMENTS), run_aggregation=AsyncMock(return_value=7))


@pytest.fixture
def revenuecat():
    return Mock(fetch_overview=AsyncMock(return_value=RevenueCatOverview(mrr=2100, active_subscriptions=2)))


@pytest.fixture
def sentry():
    return Mock(fetch_issues=AsyncMock(return_value=[]), errors_overview=AsyncMock(), fetch_error_history=AsyncMock())


@pytest.fixture
def posthog():
    return Mock(
        fetch_active_users=AsyncMock(),
        fetch_top_events=AsyncMock(return_value=[TopEvent(event="paywall_viewed", count=10, unique_users=4)]),
        fetch_retention=AsyncMock(return_value=Retention(d1=40.0, d7=20.0)),
        fetch_session_stats=AsyncMock(return_value=SessionStats(total_sessions=12)),
    )


@pytest.fixture
def cache(fake_clock):
    return TTLCache(clock=fake_clock)


@pytest.fixture
def service(cache, firestore, revenuecat, sentry, posthog):
    return MetricsService(
        cache=cache,
        firestore=firestore,
        revenuecat=revenuecat,
        sentry=sentry,
        posthog=posthog,
        settings=Settings(_env_file=None, events_query_limit=1000),
        today=lambda: date(2024, 3, 15),
    )


class TestFetchSubscriptionEvents:
    @pytest.mark.asyncio
    async def test_builds_ascending_range_query(self, service, firestore):
        events = await service.fetch_subscription_events("2024-01-01", "2024-01-31", ["type", "user_id"])

        query = firestore.run_query.await_args.args[0]
        assert query.collection == "revenuecat_events"
        assert [(f.field, f.op, f.value) for f in query.filters] == [
            ("event_timestamp_ms", FilterOperator.GREATER_THAN_OR_EQUAL, start_of_day_ms("2024-01-01")),
            ("event_timestamp_ms", FilterOperator.LESS_THAN_OR_EQUAL, end_of_day_ms("2024-01-31")),
        ]
        assert [(o.field, o.direction) for o in query.order_by] == [("event_timestamp_ms", Direction.ASCENDING)]
        assert query.select == ["type", "app_user_id"]
        assert query.limit == 1000
        assert [e.user_id for e in events] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_unbounded_query_has_no_filters(self, service, firestore):
        await service.fetch_subscription_events()

        query = firestore.run_query.await_args.args[0]
        assert query.filters == []
        assert query.select == []


class TestCachedMetrics:
    @pytest.mark.asyncio
    async def test_mrr_is_cached_by_range(self, service, firestore, cache):
        first = await service.get_mrr_evolution("2024-01-01", "2024-01-31")
        second = await service.get_mrr_evolution("2024-01-01", "2024-01-31")

        assert first is second
        assert first == [MRRDataPoint("2024-01-01", 1000, 1), MRRDataPoint("2024-01-02", 2100, 2)]
        assert firestore.run_query.await_count == 1
        assert cache.get("metrics:mrr:2024-01-01:2024-01-31") is first

    @pytest.mark.asyncio
    async def test_mrr_expires_after_thirty_minutes(self, service, firestore, fake_clock):
        await service.get_mrr_evolution()
        fake_clock.advance(30 * 60 * 1000)
        await service.get_mrr_evolution()

        assert firestore.run_query.await_count == 2

    @pytest.mark.asyncio
    async def test_store_failure_propagates_and_is_not_cached(self, service, firestore, cache):
        firestore.run_query.side_effect = [ExternalAPIError("firestore", "query failed", status_code=503), DOCUMENTS]

        with pytest.raises(ExternalAPIError):
            await service.get_churn("monthly")

        assert cache.get("metrics:churn:monthly:all:now") is None
        points = await service.get_churn("monthly")
        assert points[0].active_start == 2

    @pytest.mark.asyncio
    async def test_revenue_by_country(self, service, cache):
        rows = await service.get_revenue_by_country()

        assert [(r.country, r.revenue) for r in rows] == [("EUR", 1100), ("USD", 1000)]
        assert cache.get("analytics:revenue-by-country:all:now") is rows

    @pytest.mark.asyncio
    async def test_trial_conversion_and_revenue_history_keys(self, service, cache):
        await service.get_trial_conversion("2024-01-01", None)
        await service.get_revenue_history("2024-01-01", "2024-01-02")

        assert cache.get("metrics:conversion:2024-01-01:now") == []
        assert [p.revenue for p in cache.get("revenuecat:history:2024-01-01:2024-01-02")] == [1000, 1100]

    @pytest.mark.asyncio
    async def test_plan_breakdown_covers_last_ninety_days(self, service, firestore, cache):
        plans = await service.get_plan_breakdown()

        query = firestore.run_query.await_args.args[0]
        assert query.filters[0].value == start_of_day_ms("2023-12-16")
        assert len(query.filters) == 1
        assert plans[0].revenue == 2100
        assert cache.get("analytics:plan-breakdown") is plans

    @pytest.mark.asyncio
    async def test_arpu_uses_cached_overview(self, service, revenuecat, cache):
        [point] = await service.get_arpu()

        assert point.date == "2024-03"
        assert point.arpu == 1050
        assert cache.get("revenuecat:overview") == RevenueCatOverview(mrr=2100, active_subscriptions=2)

        await service.get_ltv()
        revenuecat.fetch_overview.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ltv(self, service):
        ltv = await service.get_ltv()

        assert ltv.avg_monthly_revenue == 1050
        assert ltv.avg_subscription_duration == 30
        assert ltv.estimated_ltv == 1050

    @pytest.mark.asyncio
    async def test_vendor_pass_through_keys(self, service, posthog, sentry, cache):
        await service.get_top_events(7, 15)
        await service.get_top_events(7, 15)
        await service.get_sentry_issues(25)

        posthog.fetch_top_events.assert_awaited_once_with(7, 15)
        sentry.fetch_issues.assert_awaited_once_with(25)
        assert cache.get("posthog:top-events:7:15")[0].event == "paywall_viewed"
        assert cache.get("sentry:issues:25") == []

    @pytest.mark.asyncio
    async def test_retention_and_session_keys(self, service, posthog, cache):
        retention = await service.get_retention()
        await service.get_retention()
        stats = await service.get_session_stats(14)

        assert retention == Retention(d1=40.0, d7=20.0)
        posthog.fetch_retention.assert_awaited_once_with()
        posthog.fetch_session_stats.assert_awaited_once_with(14)
        assert cache.get("posthog:retention") is retention
        assert cache.get("posthog:sessions:14") is stats


class TestUserMetrics:
    USERS = [
        {"_id": "u1", "createdAt": datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)},
        {"_id": "u2", "createdAt": "2024-03-01T18:30:00Z"},
        {"_id": "u3", "createdAt": datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc)},
        {"_id": "u4"},
    ]

    @pytest.mark.asyncio
    async def test_total_users_is_cached(self, service, firestore, cache):
        assert await service.get_total_users() == 7
        assert await service.get_total_users() == 7

        firestore.run_aggregation.assert_awaited_once_with("users")
        assert cache.get("users:total") == 7

    @pytest.mark.asyncio
    async def test_user_growth_queries_creation_range(self, service, firestore, cache):
        firestore.run_query.return_value = self.USERS

        growth = await service.get_user_growth("2024-03-01", "2024-03-03")

        query = firestore.run_query.await_args.args[0]
        assert query.collection == "users"
        assert [(f.field, f.op, f.value) for f in query.filters] == [
            ("createdAt", FilterOperator.GREATER_THAN_OR_EQUAL, datetime(2024, 3, 1, tzinfo=timezone.utc)),
            ("createdAt", FilterOperator.LESS_THAN_OR_EQUAL, datetime(2024, 3, 3, 23, 59, 59, tzinfo=timezone.utc)),
        ]
        assert [(o.field, o.direction) for o in query.order_by] == [("createdAt", Direction.ASCENDING)]
        assert query.select == ["createdAt"]
        assert query.limit == 100000
        assert growth == [
            DailyUsers("2024-03-01", new_users=2, cumulative_users=2),
            DailyUsers("2024-03-02", new_users=0, cumulative_users=2),
            DailyUsers("2024-03-03", new_users=1, cumulative_users=3),
        ]
        assert cache.get("users:growth:2024-03-01:2024-03-03") is growth

    @pytest.mark.asyncio
    async def test_user_growth_without_range(self, service, firestore, cache):
        firestore.run_query.return_value = []

        assert await service.get_user_growth() == []
        assert firestore.run_query.await_args.args[0].filters == []
        assert cache.get("users:growth:all:now") == []

    @pytest.mark.asyncio
    async def test_user_overview_counts_since_midnight(self, service, firestore, cache):
        overview = await service.get_user_overview()

        assert overview == UserOverview(
            total_users=7, new_users_today=7, new_users_this_week=7, new_users_this_month=7
        )
        filtered = [call.args for call in firestore.run_aggregation.await_args_list if len(call.args) > 1]
        assert [collection for collection, _ in filtered] == ["users"] * 3
        assert [[(f.field, f.op, f.value) for f in filters] for _, filters in filtered] == [
            [("createdAt", FilterOperator.GREATER_THAN_OR_EQUAL, datetime(2024, 3, 15, tzinfo=timezone.utc))],
            [("createdAt", FilterOperator.GREATER_THAN_OR_EQUAL, datetime(2024, 3, 8, tzinfo=timezone.utc))],
            [("createdAt", FilterOperator.GREATER_THAN_OR_EQUAL, datetime(2024, 2, 14, tzinfo=timezone.utc))],
        ]
        assert cache.get("users:overview") is overview
        assert cache.get("users:total") == 7


class TestCoordination:
    @pytest.mark.asyncio
    async def test_refresh_invalidates_prefix(self, service, firestore):
        await service.get_mrr_evolution()
        await service.get_churn()
        await service.get_revenue_by_country()

        assert service.refresh("metrics:") == 2
        await service.get_revenue_by_country()
        assert firestore.run_query.await_count == 3

    @pytest.mark.asyncio
    async def test_gather_isolates_failures(self, service, revenuecat):
        revenuecat.fetch_overview.side_effect = ConfigurationError(
            "REVENUECAT_API_KEY not configured", setting="revenuecat_api_key"
        )

        results = await service.gather(mrr=service.get_mrr_evolution(), arpu=service.get_arpu())

        assert results["mrr"].ok
        assert len(results["mrr"].value) == 2
        assert not results["arpu"].ok
        assert isinstance(results["arpu"].error, ConfigurationError)

    def test_metric_outcome_defaults(self):
        assert MetricOutcome(value=1).ok
        assert not MetricOutcome(error=RuntimeError()).ok


class TestBuildMetricsService:
    @pytest.mark.asyncio
    async def test_wires_clients_and_cache(self):
        service = build_metrics_service(settings=Settings(_env_file=None, cache_default_ttl_ms=1234))

        assert service.cache.default_ttl_ms == 1234
        assert service.firestore.provider == "firestore"
        assert service.revenuecat.provider == "revenuecat"
        assert service.sentry.provider == "sentry"
        assert service.posthog.provider == "posthog"
        await service.close()
