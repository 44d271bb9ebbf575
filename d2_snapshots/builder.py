"""
Snapshot builder - captures today's vendor metrics into a DailySnapshot
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from core.logging import get_logger
from d0_gateway.providers import RevenueCatClient, SentryClient
from d0_gateway.types import RevenueCatOverview
from database.session import get_db_sync

from .models import DailySnapshot
from .store import SnapshotStore

logger = get_logger(__name__, domain="d2")

SENTRY_ISSUE_LIMIT = 25


class SnapshotBuilder:
    """
    Collects the billing overview and unresolved Sentry issues for a day

    Each collaborator is awaited independently; one that fails is logged and
    contributes zeros so the rest of the snapshot is still stored.
    """

    def __init__(self, store: SnapshotStore, revenuecat: RevenueCatClient, sentry: SentryClient):
        self.store = store
        self.revenuecat = revenuecat
        self.sentry = sentry

    async def collect(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Fetch vendor values without persisting them"""
        day = today or datetime.now(timezone.utc).date()
        overview, issues = await asyncio.gather(
            self.revenuecat.fetch_overview(),
            self.sentry.fetch_issues(SENTRY_ISSUE_LIMIT),
            return_exceptions=True,
        )

        if isinstance(overview, Exception):
            logger.error(f"Billing overview unavailable for snapshot {day}: {overview}")
            overview = RevenueCatOverview()
        if isinstance(issues, Exception):
            logger.error(f"Sentry issues unavailable for snapshot {day}: {issues}")
            issues = []

        return {
            "date": day,
            "mrr": overview.mrr,
            "subscribers": overview.active_subscriptions,
            "active_trials": overview.active_trials,
            "revenue_28d": overview.revenue_28d,
            "active_users_28d": overview.active_users_28d,
            "new_customers_28d": overview.new_customers_28d,
            "transactions_28d": overview.transactions_28d,
            "sentry_unresolved": len(issues),
        }

    async def capture(self, today: Optional[date] = None) -> DailySnapshot:
        """Collect today's values and upsert them by date"""
        values = await self.collect(today)
        return self.store.upsert(values)


async def capture_daily_snapshot(today: Optional[date] = None) -> DailySnapshot:
    """Scheduled-job entry point: capture today's snapshot with clients built from settings"""
    with get_db_sync() as session:
        async with RevenueCatClient() as revenuecat, SentryClient() as sentry:
            builder = SnapshotBuilder(SnapshotStore(session), revenuecat, sentry)
            return await builder.capture(today)
