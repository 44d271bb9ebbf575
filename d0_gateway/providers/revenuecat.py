"""
RevenueCat API v2 client - current billing snapshot

Only the project overview endpoint is used; history is reconstructed from the
webhook events mirrored into the document store.
"""
from typing import Dict, Optional

from core.exceptions import ConfigurationError

from ..base import BaseAPIClient
from ..types import RevenueCatOverview


class RevenueCatClient(BaseAPIClient):
    """RevenueCat metrics client"""

    def __init__(self, api_key: Optional[str] = None, project_id: Optional[str] = None, **kwargs):
        super().__init__(provider="revenuecat", api_key=api_key, **kwargs)
        self.project_id = project_id or self.settings.revenuecat_project_id

    def _get_base_url(self) -> str:
        return self.settings.revenuecat_base_url

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def _prepare_headers(self) -> Dict[str, str]:
        if not self.project_id:
            raise ConfigurationError("REVENUECAT_PROJECT_ID not configured", setting="revenuecat_project_id")
        return await super()._prepare_headers()

    async def fetch_overview(self) -> RevenueCatOverview:
        """
        Fetch current MRR, active subscriptions and trailing 28-day totals

        Returns:
            RevenueCatOverview with every known metric rounded to int (0 when absent)
        """
        data = await self.make_request("GET", f"/projects/{self.project_id}/metrics/overview")
        overview = RevenueCatOverview.from_api(data if isinstance(data, dict) else {})
        self.logger.info(
            f"RevenueCat overview: mrr={overview.mrr} active_subscriptions={overview.active_subscriptions}"
        )
        return overview
