"""
Ads Connector

Campaign-level insights from the Facebook Graph API. Short-lived user tokens
are upgraded to long-lived ones when app credentials are configured; the
upgraded token is written back to the account settings store.
"""

import json
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from unified_dashboard.config.accounts import AccountSettings, AccountSettingsStore, SourceCredentials
from unified_dashboard.config.settings import ConnectorSettings
from unified_dashboard.errors import ConfigurationMissing, SourceUnavailable
from unified_dashboard.models import TODAY, Campaign, DateRange, Identity, SourceName
from .base import SourceConnector, to_float, to_int

logger = structlog.get_logger(__name__)

INSIGHT_FIELDS = "campaign_name,spend,impressions,clicks,ctr,cpc,actions,action_values"
LONG_LIVED_TOKEN_PREFIX = "EAAG"
PURCHASE_ACTION = "purchase"


def _action_value(actions: Optional[List[Dict[str, Any]]], action_type: str) -> float:
    for action in actions or []:
        if action.get("action_type") == action_type:
            return to_float(action.get("value"))
    return 0.0


def map_campaign(raw: Dict[str, Any]) -> Campaign:
    """Normalize one insights row"""
    return Campaign(
        campaign_name=raw.get("campaign_name") or "Unnamed Campaign",
        spend=to_float(raw.get("spend")),
        impressions=to_int(raw.get("impressions")),
        clicks=to_int(raw.get("clicks")),
        ctr=to_float(raw.get("ctr")),
        cpc=to_float(raw.get("cpc")),
        purchases=int(_action_value(raw.get("actions"), PURCHASE_ACTION)),
        purchase_value=_action_value(raw.get("action_values"), PURCHASE_ACTION),
    )


def insights_time_range(date_range: DateRange, today: Optional[date] = None) -> Tuple[str, str]:
    """(since, until) as ISO dates for the insights ``time_range``"""
    today = today or date.today()
    since = today if date_range == TODAY else today - timedelta(days=int(date_range))
    return since.isoformat(), today.isoformat()


class AdsConnector(SourceConnector):
    """Facebook ads insights connector"""

    source = SourceName.ADS

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: ConnectorSettings,
        settings_store: Optional[AccountSettingsStore] = None,
    ):
        super().__init__(client)
        self.graph_url = config.facebook_graph_url.rstrip("/")
        self.page_size = config.facebook_page_size
        self._settings_store = settings_store

    async def _upgrade_token(self, identity: Identity, credentials: SourceCredentials) -> str:
        """
        Exchange a short-lived token for a long-lived one.

        Any failure keeps the original token; the fetch goes ahead with it.
        """
        token = credentials.facebook_access_token
        if (
            not credentials.facebook_app_id
            or not credentials.facebook_app_secret
            or token.startswith(LONG_LIVED_TOKEN_PREFIX)
        ):
            return token

        try:
            response = await self._request(
                "GET",
                f"{self.graph_url}/oauth/access_token",
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": credentials.facebook_app_id,
                    "client_secret": credentials.facebook_app_secret,
                    "fb_exchange_token": token,
                },
            )
            upgraded = self._json(response).get("access_token")
        except SourceUnavailable as e:
            logger.warning("Token exchange failed, using original token", identity=identity.key, error=str(e))
            return token

        if not upgraded:
            return token

        if self._settings_store is not None:
            try:
                await self._settings_store.save_source_token(identity, self.name, upgraded)
            except Exception as e:
                logger.error("Failed to persist upgraded token", identity=identity.key, error=str(e))

        logger.info("Upgraded ads token to long-lived", identity=identity.key)
        return upgraded

    def _insights_url(self, ad_account_id: str) -> str:
        account = ad_account_id.strip()
        if not account.startswith("act_"):
            account = f"act_{account}"
        return f"{self.graph_url}/{account}/insights"

    async def fetch(
        self,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> List[Campaign]:
        credentials = account.credentials
        if not credentials.facebook_access_token or not credentials.facebook_ad_account_id:
            raise ConfigurationMissing(self.name, identity.key)

        access_token = await self._upgrade_token(identity, credentials)
        since, until = insights_time_range(date_range)

        url: Optional[str] = self._insights_url(credentials.facebook_ad_account_id)
        params: Optional[Dict[str, Any]] = {
            "fields": INSIGHT_FIELDS,
            "level": "campaign",
            "time_range": json.dumps({"since": since, "until": until}),
            "limit": self.page_size,
            "access_token": access_token,
        }

        raw_campaigns: List[Dict[str, Any]] = []
        while url:
            response = await self._request("GET", url, params=params)
            data = self._json(response)
            if data.get("error"):
                message = data["error"].get("message") or "Facebook API error"
                raise SourceUnavailable(self.name, message)

            batch = data.get("data") or []
            raw_campaigns.extend(batch)

            # The next link already carries every query parameter
            url = (data.get("paging") or {}).get("next")
            params = None
            if len(batch) < self.page_size:
                break

        campaigns = [map_campaign(raw) for raw in raw_campaigns]
        logger.info(
            "Fetched campaigns",
            identity=identity.key,
            campaigns=len(campaigns),
            since=since,
            until=until,
        )
        return campaigns
