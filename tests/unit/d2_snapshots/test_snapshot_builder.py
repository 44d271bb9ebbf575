"""
Tests for capturing daily snapshots from vendor clients
"""
from datetime import date
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from sqlalchemy.orm import sessionmaker

from core.exceptions import ConfigurationError, ExternalAPIError
from d0_gateway.types import RevenueCatOverview, SentryIssue
from d2_snapshots.builder import SnapshotBuilder, capture_daily_snapshot
from d2_snapshots.store import SnapshotStore
from database.base import Base
from database.session import build_engine

pytestmark = pytest.mark.unit

OVERVIEW = RevenueCatOverview(
    mrr=250000,
    active_subscriptions=410,
    revenue_28d=230000,
    active_users_28d=5200,
    new_customers_28d=900,
    active_trials=35,
    transactions_28d=480,
)


@pytest.fixture
def store():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield SnapshotStore(session)
    session.close()
    engine.dispose()


@pytest.fixture
def revenuecat():
    return Mock(fetch_overview=AsyncMock(return_value=OVERVIEW))


@pytest.fixture
def sentry():
    return Mock(fetch_issues=AsyncMock(return_value=[SentryIssue(id="1"), SentryIssue(id="2")]))


class TestSnapshotBuilder:
    @pytest.mark.asyncio
    async def test_capture_merges_vendor_values(self, store, revenuecat, sentry):
        builder = SnapshotBuilder(store, revenuecat, sentry)

        snapshot = await builder.capture(date(2024, 3, 15))

        assert snapshot.to_dict() == {
            "date": "2024-03-15",
            "mrr": 250000,
            "subscribers": 410,
            "active_trials": 35,
            "revenue_28d": 230000,
            "active_users_28d": 5200,
            "new_customers_28d": 900,
            "transactions_28d": 480,
            "sentry_unresolved": 2,
        }
        sentry.fetch_issues.assert_awaited_once_with(25)

    @pytest.mark.asyncio
    async def test_failed_billing_contributes_zeros(self, store, revenuecat, sentry):
        revenuecat.fetch_overview.side_effect = ExternalAPIError("revenuecat", "HTTP 500", status_code=500)
        builder = SnapshotBuilder(store, revenuecat, sentry)

        snapshot = await builder.capture(date(2024, 3, 15))

        assert snapshot.mrr == 0
        assert snapshot.subscribers == 0
        assert snapshot.sentry_unresolved == 2

    @pytest.mark.asyncio
    async def test_failed_sentry_contributes_zero(self, store, revenuecat, sentry):
        sentry.fetch_issues.side_effect = ConfigurationError("SENTRY_TOKEN not configured", setting="sentry_token")
        builder = SnapshotBuilder(store, revenuecat, sentry)

        snapshot = await builder.capture(date(2024, 3, 15))

        assert snapshot.mrr == 250000
        assert snapshot.sentry_unresolved == 0

    @pytest.mark.asyncio
    async def test_recapture_same_day_overwrites(self, store, revenuecat, sentry):
        builder = SnapshotBuilder(store, revenuecat, sentry)
        await builder.capture(date(2024, 3, 15))

        revenuecat.fetch_overview.return_value = OVERVIEW.model_copy(update={"mrr": 260000})
        snapshot = await builder.capture(date(2024, 3, 15))

        assert snapshot.mrr == 260000
        assert len(store.get_history(days=1, today=date(2024, 3, 15))) == 1


class TestCaptureDailySnapshot:
    @staticmethod
    def client_class(client):
        """Stand-in for a client class used as an async context manager"""
        cls = MagicMock()
        cls.return_value.__aenter__.return_value = client
        return cls

    @pytest.mark.asyncio
    async def test_wires_session_and_clients(self, store, revenuecat, sentry):
        @contextmanager
        def session_scope():
            yield store.session

        with patch("d2_snapshots.builder.get_db_sync", session_scope), patch(
            "d2_snapshots.builder.RevenueCatClient", self.client_class(revenuecat)
        ) as revenuecat_cls, patch("d2_snapshots.builder.SentryClient", self.client_class(sentry)):
            snapshot = await capture_daily_snapshot(date(2024, 3, 15))

        assert snapshot.mrr == 250000
        assert store.get(date(2024, 3, 15)) is not None
        revenuecat_cls.return_value.__aexit__.assert_awaited_once()
