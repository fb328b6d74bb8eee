"""
Shipments Connector

Pulls shipments from the Shiprocket external API. Requires a credential
exchange (email/password -> bearer token) before any list call. Shiprocket
orders are swept as well to recover the storefront order number
(``channel_order_id``) and a more reliable creation date per shipment.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from unified_dashboard.config.accounts import AccountSettings
from unified_dashboard.config.settings import ConnectorSettings
from unified_dashboard.errors import ConfigurationMissing, SourceUnavailable
from unified_dashboard.models import DateRange, Identity, Shipment, SourceName
from .base import SourceConnector, to_float, to_str
from .dates import filter_by_window, parse_timestamp

logger = structlog.get_logger(__name__)


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def map_shipment(raw: Dict[str, Any], order: Optional[Dict[str, Any]] = None) -> Shipment:
    """
    Normalize one Shiprocket shipment.

    Args:
        raw: Shipment payload
        order: The Shiprocket order with the same ``order_id``, if known
    """
    order = order or {}
    charges = raw.get("charges") or {}
    freight = to_float(_first(charges.get("freight_charges"), charges.get("applied_weight_amount")))
    cod = to_float(charges.get("cod_charges"))

    return Shipment(
        shipment_id=to_str(raw.get("id")),
        order_id=to_str(raw.get("order_id")),
        order_number=to_str(_first(order.get("channel_order_id"), raw.get("channel_order_id"))),
        awb=to_str(_first(raw.get("awb_code"), raw.get("awb"))),
        courier=to_str(_first(raw.get("courier_name"), raw.get("courier_company_id"))),
        status=_first(raw.get("status"), raw.get("shipment_status")) or "pending",
        rto_status=to_str(raw.get("rto_status")),
        shipping_charge=freight + cod,
        freight_charges=freight,
        cod_charges=cod,
        customer_state=to_str(_first(raw.get("customer_state"), order.get("customer_state"))),
        etd=to_str(_first(raw.get("etd"), raw.get("expected_delivery_date"))),
        rto_reason=to_str(raw.get("rto_reason")),
        payment_method=to_str(raw.get("payment_method")),
        created_at=parse_timestamp(
            _first(
                order.get("created_at"),
                raw.get("created_at"),
                raw.get("pickup_scheduled_date"),
                raw.get("awb_assign_date"),
            )
        ),
    )


class ShipmentsConnector(SourceConnector):
    """Shiprocket shipments connector"""

    source = SourceName.SHIPMENTS

    def __init__(self, client: httpx.AsyncClient, config: ConnectorSettings):
        super().__init__(client)
        self.base_url = config.shiprocket_base_url.rstrip("/")
        self.page_size = config.shiprocket_page_size

    async def _authenticate(self, email: str, password: str) -> str:
        response = await self._request(
            "POST",
            f"{self.base_url}/auth/login",
            json={"email": email, "password": password},
        )
        token = self._json(response).get("token")
        if not token:
            raise SourceUnavailable(self.name, "authentication failed - no token received")
        return token

    async def _sweep(self, path: str, headers: Dict[str, str]) -> List[Dict[str, Any]]:
        """Page through a list endpoint until a short page"""
        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"{self.base_url}/{path}",
                headers=headers,
                params={"per_page": self.page_size, "page": page},
            )
            batch = self._json(response).get("data") or []
            records.extend(batch)
            logger.debug("Fetched shiprocket page", path=path, page=page, records=len(batch), total=len(records))
            if len(batch) < self.page_size:
                return records
            page += 1

    async def _sweep_orders(self, headers: Dict[str, str]) -> Dict[str, Dict[str, Any]]:
        """
        Shiprocket orders keyed by id.

        Only enriches shipments, so a failure here ends the sweep with what
        was collected instead of failing the connector.
        """
        try:
            orders = await self._sweep("orders", headers)
        except SourceUnavailable as e:
            logger.warning("Shiprocket order lookup incomplete", error=str(e))
            return {}
        return {str(order.get("id")): order for order in orders if order.get("id") is not None}

    async def fetch(
        self,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> List[Shipment]:
        credentials = account.credentials
        if not credentials.shiprocket_email or not credentials.shiprocket_password:
            raise ConfigurationMissing(self.name, identity.key)

        token = await self._authenticate(credentials.shiprocket_email, credentials.shiprocket_password)
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        raw_shipments = await self._sweep("shipments", headers)
        orders_by_id = await self._sweep_orders(headers)

        shipments = filter_by_window(
            (
                map_shipment(raw, orders_by_id.get(str(raw.get("order_id"))))
                for raw in raw_shipments
            ),
            date_range,
            lambda shipment: shipment.created_at,
        )

        logger.info(
            "Fetched shipments",
            identity=identity.key,
            fetched=len(raw_shipments),
            in_window=len(shipments),
            orders_indexed=len(orders_by_id),
        )
        return shipments
