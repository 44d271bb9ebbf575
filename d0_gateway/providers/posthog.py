"""
PostHog API client - HogQL queries for product analytics (active users, retention, sessions, top events)
"""
from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError

from ..base import BaseAPIClient
from ..types import ActiveUsers, DailyValue, Retention, SessionStats, TopEvent, coerce_int, coerce_str

# Internal PostHog events ($pageview, $autocapture, ...) are excluded everywhere
CUSTOM_EVENTS_ONLY = "event NOT LIKE '$%'"


class PostHogClient(BaseAPIClient):
    """PostHog query client"""

    def __init__(self, api_key: Optional[str] = None, project_id: Optional[str] = None, **kwargs):
        super().__init__(provider="posthog", api_key=api_key, **kwargs)
        self.project_id = project_id or self.settings.posthog_project_id

    def _get_base_url(self) -> str:
        return self.settings.posthog_host

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _prepare_headers(self) -> Dict[str, str]:
        if not self.project_id:
            raise ConfigurationError("POSTHOG_PROJECT_ID not configured", setting="posthog_project_id")
        return await super()._prepare_headers()

    async def hogql(self, query: str) -> List[List[Any]]:
        """Run a HogQL query and return its result rows"""
        data = await self.make_request(
            "POST",
            f"/api/projects/{self.project_id}/query/",
            json={"query": {"kind": "HogQLQuery", "query": query}},
        )
        rows = (data or {}).get("results") if isinstance(data, dict) else None
        return rows or []

    async def _unique_users_by(self, bucket: str, days: int) -> List[DailyValue]:
        rows = await self.hogql(
            f"""
            SELECT {bucket} AS period, count(DISTINCT distinct_id) AS users
            FROM events
            WHERE timestamp >= now() - interval {int(days)} day
              AND {CUSTOM_EVENTS_ONLY}
            GROUP BY period
            ORDER BY period
            """
        )
        return [DailyValue(date=coerce_str(row[0]), value=coerce_int(row[1])) for row in rows if len(row) >= 2]

    async def fetch_active_users(self, days: int = 30) -> ActiveUsers:
        """DAU/WAU trends over ``days`` and MAU over 90 days; current values are the latest bucket"""
        dau_trend = await self._unique_users_by("toDate(timestamp)", days)
        wau_trend = await self._unique_users_by("toStartOfWeek(timestamp, 1)", days)
        mau_trend = await self._unique_users_by("toStartOfMonth(timestamp)", 90)

        return ActiveUsers(
            dau=dau_trend[-1].value if dau_trend else 0,
            wau=wau_trend[-1].value if wau_trend else 0,
            mau=mau_trend[-1].value if mau_trend else 0,
            dau_trend=dau_trend,
            wau_trend=wau_trend,
            mau_trend=mau_trend,
        )

    async def fetch_top_events(self, days: int = 7, limit: int = 15) -> List[TopEvent]:
        """Most frequent custom events in the trailing window"""
        rows = await self.hogql(
            f"""
            SELECT event, count() AS total, count(DISTINCT distinct_id) AS unique_users
            FROM events
            WHERE timestamp >= now() - interval {int(days)} day
              AND {CUSTOM_EVENTS_ONLY}
            GROUP BY event
            ORDER BY total DESC
            LIMIT {int(limit)}
            """
        )
        return [
            TopEvent(event=coerce_str(row[0]), count=coerce_int(row[1]), unique_users=coerce_int(row[2]))
            for row in rows
            if len(row) >= 3
        ]

    async def fetch_retention(self) -> Retention:
        """
        Day-1, day-7 and day-30 return rates for users first seen in the last 30 days

        Each rate only counts users old enough to have reached that day. Day 7
        and day 30 accept a return within a small window around the target day.
        """
        rows = await self.hogql(
            f"""
            WITH new_users AS (
                SELECT distinct_id, toDate(min(timestamp)) AS first_seen
                FROM events
                WHERE timestamp >= now() - interval 30 day
                  AND {CUSTOM_EVENTS_ONLY}
                GROUP BY distinct_id
            ),
            returned_d1 AS (
                SELECT nu.distinct_id
                FROM new_users nu
                JOIN events e ON e.distinct_id = nu.distinct_id
                  AND toDate(e.timestamp) = nu.first_seen + interval 1 day
                  AND e.{CUSTOM_EVENTS_ONLY}
                WHERE nu.first_seen <= now() - interval 2 day
                GROUP BY nu.distinct_id
            ),
            returned_d7 AS (
                SELECT nu.distinct_id
                FROM new_users nu
                JOIN events e ON e.distinct_id = nu.distinct_id
                  AND toDate(e.timestamp) BETWEEN nu.first_seen + interval 6 day AND nu.first_seen + interval 8 day
                  AND e.{CUSTOM_EVENTS_ONLY}
                WHERE nu.first_seen <= now() - interval 9 day
                GROUP BY nu.distinct_id
            ),
            returned_d30 AS (
                SELECT nu.distinct_id
                FROM new_users nu
                JOIN events e ON e.distinct_id = nu.distinct_id
                  AND toDate(e.timestamp) BETWEEN nu.first_seen + interval 28 day AND nu.first_seen + interval 32 day
                  AND e.{CUSTOM_EVENTS_ONLY}
                WHERE nu.first_seen <= now() - interval 33 day
                GROUP BY nu.distinct_id
            )
            SELECT
                (SELECT count() FROM new_users WHERE first_seen <= now() - interval 2 day),
                (SELECT count() FROM returned_d1),
                (SELECT count() FROM new_users WHERE first_seen <= now() - interval 9 day),
                (SELECT count() FROM returned_d7),
                (SELECT count() FROM new_users WHERE first_seen <= now() - interval 33 day),
                (SELECT count() FROM returned_d30)
            """
        )
        row = [coerce_int(value) for value in (rows[0] if rows else [])]
        row += [0] * (6 - len(row))

        def rate(eligible: int, retained: int) -> float:
            # An empty cohort reads as 0%, not a division error
            return round(retained / (eligible or 1) * 100, 1)

        return Retention(d1=rate(row[0], row[1]), d7=rate(row[2], row[3]), d30=rate(row[4], row[5]))

    async def fetch_session_stats(self, days: int = 30) -> SessionStats:
        """Session totals over the trailing window; durations ignore single-event sessions"""
        daily_rows = await self.hogql(
            f"""
            SELECT toDate(timestamp) AS day, count(DISTINCT $session_id) AS sessions
            FROM events
            WHERE timestamp >= now() - interval {int(days)} day
              AND $session_id IS NOT NULL
              AND $session_id != ''
            GROUP BY day
            ORDER BY day
            """
        )
        total_rows = await self.hogql(
            f"""
            SELECT
                count(DISTINCT $session_id) AS total_sessions,
                count(DISTINCT distinct_id) AS total_users,
                avg(session_duration) AS avg_duration
            FROM (
                SELECT
                    $session_id,
                    distinct_id,
                    dateDiff('second', min(timestamp), max(timestamp)) AS session_duration
                FROM events
                WHERE timestamp >= now() - interval {int(days)} day
                  AND $session_id IS NOT NULL
                  AND $session_id != ''
                GROUP BY $session_id, distinct_id
                HAVING session_duration > 0
            )
            """
        )

        total = total_rows[0] if total_rows else []
        total_sessions = coerce_int(total[0]) if len(total) > 0 else 0
        total_users = (coerce_int(total[1]) if len(total) > 1 else 0) or 1
        avg_duration = coerce_int(total[2]) if len(total) > 2 else 0

        return SessionStats(
            total_sessions=total_sessions,
            avg_session_duration=avg_duration,
            sessions_per_user=round(total_sessions / total_users, 1),
            daily_sessions=[
                DailyValue(date=coerce_str(row[0]), value=coerce_int(row[1])) for row in daily_rows if len(row) >= 2
            ],
        )
