"""
Orders Connector

Pulls storefront orders from the Shopify Admin REST API using cursor
(``page_info``) pagination from the ``Link`` header.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from unified_dashboard.config.accounts import AccountSettings
from unified_dashboard.config.settings import ConnectorSettings
from unified_dashboard.errors import ConfigurationMissing
from unified_dashboard.models import (
    CustomerIdentity,
    DateRange,
    Identity,
    LineItem,
    Order,
    PaymentMethod,
    SourceName,
)
from .base import SourceConnector, to_float, to_int, to_str
from .dates import filter_by_window, parse_timestamp

logger = structlog.get_logger(__name__)

COST_PROPERTY_NAMES = ("cost", "cost_price")


def normalize_payment_method(gateway: Optional[str]) -> PaymentMethod:
    """
    Map a storefront gateway name onto prepaid / cod / other.

    Cash-on-delivery gateways are detected by name; manual and missing
    gateways are ``other``; any other gateway collected money up front.
    """
    if not gateway:
        return PaymentMethod.OTHER
    name = gateway.strip().lower()
    if "cod" in name or "cash" in name:
        return PaymentMethod.COD
    if name in ("manual", "none", "other"):
        return PaymentMethod.OTHER
    return PaymentMethod.PREPAID


def extract_line_cost(item: Dict[str, Any]) -> Optional[float]:
    """
    Unit cost stowed in a line item's ``properties`` bag.

    This is a data-entry convention, not a schema field: absence means the
    cost is unknown, never zero.
    """
    for prop in item.get("properties") or []:
        name = (prop.get("name") or "").strip().lower()
        if name in COST_PROPERTY_NAMES:
            return to_float(prop.get("value"))
    return None


def map_order(raw: Dict[str, Any]) -> Order:
    """Normalize one Shopify order payload"""
    line_items = [
        LineItem(
            product=item.get("name") or item.get("title") or "Unknown Product",
            quantity=to_int(item.get("quantity")),
            unit_price=to_float(item.get("price")),
            unit_cost=extract_line_cost(item),
            vendor=to_str(item.get("vendor")),
            sku=to_str(item.get("sku")),
        )
        for item in raw.get("line_items") or []
    ]

    known_costs = [item.cost for item in line_items if item.unit_cost is not None]
    cost_price = sum(known_costs) if known_costs else None

    customer = raw.get("customer") or {}
    shipping = raw.get("shipping_address") or {}
    billing = raw.get("billing_address") or {}
    first = customer.get("first_name")
    last = customer.get("last_name")
    full_name = " ".join(part for part in (first, last) if part) or None

    gateway = raw.get("gateway")
    if not gateway and raw.get("payment_gateway_names"):
        gateway = raw["payment_gateway_names"][0]

    return Order(
        order_id=str(raw.get("id")),
        order_number=to_str(raw.get("name")),
        order_value=to_float(raw.get("total_price")),
        cost_price=cost_price,
        payment_method=normalize_payment_method(gateway),
        payment_gateway=to_str(gateway),
        financial_status=raw.get("financial_status") or "pending",
        fulfillment_status=raw.get("fulfillment_status"),
        customer=CustomerIdentity(
            customer_id=to_str(customer.get("id")),
            email=customer.get("email") or raw.get("email") or None,
            phone=(
                customer.get("phone")
                or (customer.get("default_address") or {}).get("phone")
                or shipping.get("phone")
                or billing.get("phone")
                or None
            ),
            name=full_name,
        ),
        line_items=line_items,
        created_at=parse_timestamp(raw.get("created_at")),
        shipping_state=shipping.get("province"),
        shipping_city=shipping.get("city"),
    )


class OrdersConnector(SourceConnector):
    """
    Shopify orders connector.

    Example:
        async with httpx.AsyncClient() as client:
            orders = await OrdersConnector(client, settings.connectors).fetch(identity, 30, account)
    """

    source = SourceName.ORDERS

    def __init__(self, client: httpx.AsyncClient, config: ConnectorSettings):
        super().__init__(client)
        self.api_version = config.shopify_api_version
        self.page_size = config.shopify_page_size

    def _base_url(self, store_url: str) -> str:
        store = store_url.strip().rstrip("/")
        if not store.startswith("http"):
            store = f"https://{store}"
        return f"{store}/admin/api/{self.api_version}/orders.json"

    async def fetch(
        self,
        identity: Identity,
        date_range: DateRange,
        account: AccountSettings,
    ) -> List[Order]:
        credentials = account.credentials
        if not credentials.shopify_store_url or not credentials.shopify_access_token:
            raise ConfigurationMissing(self.name, identity.key)

        url = self._base_url(credentials.shopify_store_url)
        headers = {
            "X-Shopify-Access-Token": credentials.shopify_access_token,
            "Content-Type": "application/json",
        }

        raw_orders: List[Dict[str, Any]] = []
        page_info: Optional[str] = None
        page = 0

        while True:
            # Shopify rejects filters other than limit alongside a cursor
            params: Dict[str, Any] = {"limit": self.page_size}
            if page_info:
                params["page_info"] = page_info
            else:
                params["status"] = "any"

            response = await self._request("GET", url, headers=headers, params=params)
            batch = self._json(response).get("orders") or []
            raw_orders.extend(batch)
            page += 1

            logger.debug("Fetched orders page", page=page, records=len(batch), total=len(raw_orders))

            next_link = response.links.get("next", {}).get("url")
            page_info = httpx.URL(next_link).params.get("page_info") if next_link else None
            if not page_info or len(batch) < self.page_size:
                break

        orders = filter_by_window(
            (map_order(raw) for raw in raw_orders),
            date_range,
            lambda order: order.created_at,
        )

        logger.info(
            "Fetched orders",
            identity=identity.key,
            fetched=len(raw_orders),
            in_window=len(orders),
            pages=page,
        )
        return orders
