"""
Sentry API client - unresolved issues and daily error volume
"""
import asyncio
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError

from ..base import BaseAPIClient
from ..types import DailyErrors, ErrorsOverview, SentryIssue, coerce_int


class SentryClient(BaseAPIClient):
    """Sentry crash-reporting client"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        org: Optional[str] = None,
        project: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(provider="sentry", api_key=api_key, **kwargs)
        self.org = org or self.settings.sentry_org
        self.project = project or self.settings.sentry_project

    def _get_base_url(self) -> str:
        return self.settings.sentry_base_url

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def _prepare_headers(self) -> Dict[str, str]:
        if not self.org:
            raise ConfigurationError("SENTRY_ORG not configured", setting="sentry_org")
        if not self.project:
            raise ConfigurationError("SENTRY_PROJECT not configured", setting="sentry_project")
        return await super()._prepare_headers()

    async def fetch_issues(self, limit: int = 25) -> List[SentryIssue]:
        """Fetch unresolved issues for the configured project"""
        data = await self.make_request(
            "GET",
            f"/projects/{self.org}/{self.project}/issues/",
            params={"query": "is:unresolved", "limit": limit},
        )
        return [SentryIssue.from_api(raw) for raw in data or [] if isinstance(raw, dict)]

    async def fetch_error_history(self, days: int = 90) -> List[DailyErrors]:
        """
        Fetch daily error counts grouped by ingestion outcome

        Args:
            days: Size of the trailing window

        Returns:
            One DailyErrors per interval; outcomes missing from the response count as 0
        """
        data = await self.make_request(
            "GET",
            f"/organizations/{self.org}/stats_v2/",
            params={
                "field": "sum(quantity)",
                "groupBy": "outcome",
                "category": "error",
                "interval": "1d",
                "statsPeriod": f"{days}d",
            },
        )
        data = data if isinstance(data, dict) else {}
        intervals: List[str] = data.get("intervals") or []

        series: Dict[str, List[Any]] = {}
        for group in data.get("groups") or []:
            outcome = (group.get("by") or {}).get("outcome")
            if outcome:
                series[outcome] = (group.get("series") or {}).get("sum(quantity)") or []

        def value_at(outcome: str, index: int) -> int:
            values = series.get(outcome, [])
            return coerce_int(values[index]) if index < len(values) else 0

        return [
            DailyErrors(
                date=interval.split("T")[0],
                accepted=value_at("accepted", i),
                rate_limited=value_at("rate_limited", i),
                invalid=value_at("invalid", i),
            )
            for i, interval in enumerate(intervals)
        ]

    async def errors_overview(self, today: Optional[date] = None) -> ErrorsOverview:
        """Top 10 unresolved issues plus today's accepted error count"""
        issues, history = await asyncio.gather(self.fetch_issues(10), self.fetch_error_history(7))

        day = (today or datetime.now(timezone.utc).date()).isoformat()
        today_errors = next((d for d in history if d.date == day), None)

        return ErrorsOverview(
            issues=issues,
            total_unresolved=len(issues),
            total_events_today=today_errors.accepted if today_errors else 0,
        )
