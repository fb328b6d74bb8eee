"""
Unit Tests - Source Connectors

Upstream APIs are replaced with ``httpx.MockTransport`` handlers.
"""
from datetime import date, datetime, timedelta, timezone
import json

import httpx
import pytest

from unified_dashboard.config.accounts import AccountSettings, SourceCredentials
from unified_dashboard.config.settings import ConnectorSettings
from unified_dashboard.connectors import AdsConnector, OrdersConnector, ShipmentsConnector
from unified_dashboard.connectors.ads import insights_time_range, map_campaign
from unified_dashboard.connectors.dates import filter_by_window, parse_timestamp
from unified_dashboard.connectors.orders import map_order, normalize_payment_method
from unified_dashboard.connectors.shipments import map_shipment
from unified_dashboard.errors import ConfigurationMissing, SourceUnavailable
from unified_dashboard.models import PaymentMethod


def iso_days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def raw_order(order_id: int, days_ago: int = 1, **overrides) -> dict:
    order = {
        "id": order_id,
        "name": f"#{order_id}",
        "total_price": "1000.00",
        "gateway": "razorpay",
        "financial_status": "paid",
        "created_at": iso_days_ago(days_ago),
        "customer": {"id": 77, "first_name": "Asha", "last_name": "Rao", "email": "asha@example.com"},
        "shipping_address": {"province": "Karnataka", "city": "Bengaluru"},
        "line_items": [
            {
                "name": "Kurta",
                "quantity": 2,
                "price": "500.00",
                "vendor": "Loom Co",
                "properties": [{"name": "Cost", "value": "200"}],
            }
        ],
    }
    order.update(overrides)
    return order


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDates:
    """Tests for timestamp parsing and window filtering"""

    def test_parse_formats(self):
        assert parse_timestamp("2025-02-20T10:00:00Z") == datetime(2025, 2, 20, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2025-02-20 10:00:00") == datetime(2025, 2, 20, 10, 0)
        assert parse_timestamp("20 Feb 2025, 10:30 AM") == datetime(2025, 2, 20, 10, 30)

    @pytest.mark.parametrize("value", [None, "", "0000-00-00 00:00:00", "not a date"])
    def test_unparseable_is_none(self, value):
        assert parse_timestamp(value) is None

    def test_records_without_date_are_kept(self):
        now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        records = [
            ("recent", now - timedelta(days=2)),
            ("old", now - timedelta(days=40)),
            ("undated", None),
        ]

        kept = filter_by_window(records, 30, lambda record: record[1], now=now)

        assert [name for name, _ in kept] == ["recent", "undated"]

    def test_today_window_starts_at_midnight(self):
        now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        records = [now.replace(hour=0, minute=5), now - timedelta(hours=13)]

        kept = filter_by_window(records, "today", lambda record: record, now=now)

        assert kept == [records[0]]


class TestOrdersConnector:
    """Tests for the Shopify orders connector"""

    @pytest.fixture
    def config(self):
        return ConnectorSettings(shopify_page_size=2)

    def test_map_order(self):
        order = map_order(raw_order(1001))

        assert order.order_id == "1001"
        assert order.order_number == "#1001"
        assert order.order_value == 1000.0
        assert order.cost_price == pytest.approx(400.0)
        assert order.payment_method == PaymentMethod.PREPAID
        assert order.customer.customer_id == "77"
        assert order.customer.name == "Asha Rao"
        assert order.line_items[0].vendor == "Loom Co"
        assert order.shipping_state == "Karnataka"

    def test_missing_cost_is_unknown(self):
        raw = raw_order(1001)
        raw["line_items"][0]["properties"] = []

        assert map_order(raw).cost_price is None

    @pytest.mark.parametrize(
        "gateway, expected",
        [
            ("Cash on Delivery (COD)", PaymentMethod.COD),
            ("cod", PaymentMethod.COD),
            ("razorpay", PaymentMethod.PREPAID),
            ("manual", PaymentMethod.OTHER),
            (None, PaymentMethod.OTHER),
        ],
    )
    def test_payment_method(self, gateway, expected):
        assert normalize_payment_method(gateway) == expected

    async def test_follows_page_info_until_short_page(self, identity, configured_account, config):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
            if "page_info" not in request.url.params:
                next_url = "https://demo-store.myshopify.com/admin/api/2025-01/orders.json?limit=2&page_info=cursor-2"
                return httpx.Response(
                    200,
                    json={"orders": [raw_order(1), raw_order(2)]},
                    headers={"Link": f'<{next_url}>; rel="next"'},
                )
            return httpx.Response(200, json={"orders": [raw_order(3)]})

        async with make_client(handler) as client:
            orders = await OrdersConnector(client, config).fetch(identity, 30, configured_account)

        assert [order.order_id for order in orders] == ["1", "2", "3"]
        assert len(requests) == 2
        assert requests[0].url.params["status"] == "any"
        assert requests[1].url.params["page_info"] == "cursor-2"
        assert "status" not in requests[1].url.params
        assert requests[0].url.path == "/admin/api/2025-01/orders.json"

    async def test_stops_without_next_link(self, identity, configured_account, config):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"orders": [raw_order(1), raw_order(2)]})

        async with make_client(handler) as client:
            orders = await OrdersConnector(client, config).fetch(identity, 30, configured_account)

        assert len(orders) == 2
        assert len(calls) == 1

    async def test_filters_by_window_keeping_undated(self, identity, configured_account, config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"orders": [raw_order(1), raw_order(2, days_ago=60), raw_order(3, created_at="0000-00-00 00:00:00")]},
            )

        async with make_client(handler) as client:
            orders = await OrdersConnector(client, ConnectorSettings(shopify_page_size=250)).fetch(
                identity, 30, configured_account
            )

        assert [order.order_id for order in orders] == ["1", "3"]

    async def test_missing_credentials(self, identity, config):
        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ConfigurationMissing):
                await OrdersConnector(client, config).fetch(identity, 30, AccountSettings())

    async def test_error_status_is_unavailable(self, identity, configured_account, config):
        async with make_client(lambda request: httpx.Response(500, text="boom")) as client:
            with pytest.raises(SourceUnavailable) as exc_info:
                await OrdersConnector(client, config).fetch(identity, 30, configured_account)

        assert exc_info.value.source == "orders"

    async def test_transport_error_is_unavailable(self, identity, configured_account, config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(SourceUnavailable):
                await OrdersConnector(client, config).fetch(identity, 30, configured_account)


class TestShipmentsConnector:
    """Tests for the Shiprocket shipments connector"""

    @pytest.fixture
    def config(self):
        return ConnectorSettings(shiprocket_base_url="https://shiprocket.test/v1/external", shiprocket_page_size=2)

    def test_map_shipment(self):
        shipment = map_shipment(
            {
                "id": 9,
                "order_id": 55,
                "status": "RTO Initiated",
                "charges": {"freight_charges": "70", "cod_charges": "30"},
                "created_at": "0000-00-00 00:00:00",
            },
            {"id": 55, "channel_order_id": "#1001", "created_at": "2025-02-20 10:00:00"},
        )

        assert shipment.order_id == "55"
        assert shipment.order_number == "#1001"
        assert shipment.status == "rto initiated"
        assert shipment.shipping_charge == pytest.approx(100.0)
        assert shipment.created_at == datetime(2025, 2, 20, 10, 0)

    def test_map_shipment_without_order(self):
        shipment = map_shipment({"id": 9, "order_id": 55, "charges": {"applied_weight_amount": "45"}})

        assert shipment.order_number is None
        assert shipment.freight_charges == pytest.approx(45.0)
        assert shipment.status == "pending"

    async def test_login_then_sweep(self, identity, configured_account, config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, request.url.params.get("page")))
            if request.url.path.endswith("/auth/login"):
                assert json.loads(request.content) == {"email": "ops@example.com", "password": "secret"}
                return httpx.Response(200, json={"token": "jwt"})
            assert request.headers["Authorization"] == "Bearer jwt"
            if request.url.path.endswith("/shipments"):
                if request.url.params["page"] == "1":
                    return httpx.Response(200, json={"data": [
                        {"id": 1, "order_id": 11, "status": "Delivered", "created_at": iso_days_ago(1)},
                        {"id": 2, "order_id": 12, "status": "In Transit", "created_at": iso_days_ago(2)},
                    ]})
                return httpx.Response(200, json={"data": []})
            return httpx.Response(200, json={"data": [{"id": 11, "channel_order_id": "#1001"}]})

        async with make_client(handler) as client:
            shipments = await ShipmentsConnector(client, config).fetch(identity, 30, configured_account)

        assert [shipment.shipment_id for shipment in shipments] == ["1", "2"]
        assert shipments[0].order_number == "#1001"
        assert shipments[1].order_number is None
        assert seen[0] == ("POST", "/v1/external/auth/login", None)
        assert ("GET", "/v1/external/shipments", "2") in seen

    async def test_login_without_token(self, identity, configured_account, config):
        async with make_client(lambda request: httpx.Response(200, json={"message": "Invalid credentials"})) as client:
            with pytest.raises(SourceUnavailable):
                await ShipmentsConnector(client, config).fetch(identity, 30, configured_account)

    async def test_order_lookup_failure_keeps_shipments(self, identity, configured_account, config):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/auth/login"):
                return httpx.Response(200, json={"token": "jwt"})
            if request.url.path.endswith("/shipments"):
                return httpx.Response(200, json={"data": [{"id": 1, "order_id": 11, "status": "delivered"}]})
            return httpx.Response(502)

        async with make_client(handler) as client:
            shipments = await ShipmentsConnector(client, config).fetch(identity, 30, configured_account)

        assert len(shipments) == 1
        assert shipments[0].order_number is None

    async def test_missing_credentials(self, identity, config):
        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ConfigurationMissing):
                await ShipmentsConnector(client, config).fetch(identity, 30, AccountSettings())


class TestAdsConnector:
    """Tests for the Facebook ads connector"""

    @pytest.fixture
    def config(self):
        return ConnectorSettings(facebook_graph_url="https://graph.test/v18.0")

    @pytest.fixture
    def account_with_app(self, configured_account):
        credentials = configured_account.credentials.model_copy(
            update={"facebook_app_id": "app", "facebook_app_secret": "app-secret"}
        )
        return AccountSettings(fees=configured_account.fees, credentials=credentials)

    def test_map_campaign(self):
        campaign = map_campaign({
            "campaign_name": "Spring Sale",
            "spend": "150.5",
            "impressions": "1000",
            "clicks": "20",
            "actions": [{"action_type": "link_click", "value": "20"}, {"action_type": "purchase", "value": "3"}],
            "action_values": [{"action_type": "purchase", "value": "900"}],
        })

        assert campaign.spend == pytest.approx(150.5)
        assert campaign.purchases == 3
        assert campaign.purchase_value == pytest.approx(900.0)
        assert campaign.roas == pytest.approx(900.0 / 150.5)

    def test_time_range(self):
        today = date(2025, 3, 1)

        assert insights_time_range(30, today) == ("2025-01-30", "2025-03-01")
        assert insights_time_range("today", today) == ("2025-03-01", "2025-03-01")

    async def test_fetch_insights(self, identity, configured_account, config):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": [{"campaign_name": "Spring Sale", "spend": "150"}]})

        async with make_client(handler) as client:
            campaigns = await AdsConnector(client, config).fetch(identity, 30, configured_account)

        assert [campaign.campaign_name for campaign in campaigns] == ["Spring Sale"]
        assert len(requests) == 1
        assert requests[0].url.path == "/v18.0/act_123456/insights"
        assert requests[0].url.params["level"] == "campaign"
        assert requests[0].url.params["access_token"] == "short-token"

    async def test_token_exchange_failure_keeps_original_token(
        self, identity, account_with_app, config, settings_store
    ):
        insight_tokens = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/oauth/access_token"):
                return httpx.Response(400, json={"error": {"message": "bad token"}})
            insight_tokens.append(request.url.params["access_token"])
            return httpx.Response(200, json={"data": []})

        async with make_client(handler) as client:
            campaigns = await AdsConnector(client, config, settings_store).fetch(identity, 30, account_with_app)

        assert campaigns == []
        assert insight_tokens == ["short-token"]
        assert settings_store.saved_tokens == []

    async def test_token_exchange_persists_long_lived_token(
        self, identity, account_with_app, config, settings_store
    ):
        insight_tokens = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/oauth/access_token"):
                assert request.url.params["fb_exchange_token"] == "short-token"
                return httpx.Response(200, json={"access_token": "EAAGlong"})
            insight_tokens.append(request.url.params["access_token"])
            return httpx.Response(200, json={"data": []})

        async with make_client(handler) as client:
            await AdsConnector(client, config, settings_store).fetch(identity, 30, account_with_app)

        assert insight_tokens == ["EAAGlong"]
        assert settings_store.saved_tokens == [("user-1", "ads", "EAAGlong")]

    async def test_follows_paging_next(self, identity, configured_account):
        config = ConnectorSettings(facebook_graph_url="https://graph.test/v18.0", facebook_page_size=1)
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if "after" not in request.url.params:
                return httpx.Response(200, json={
                    "data": [{"campaign_name": "A"}],
                    "paging": {"next": "https://graph.test/v18.0/act_123456/insights?after=c2&access_token=short-token"},
                })
            return httpx.Response(200, json={"data": [{"campaign_name": "B"}]})

        async with make_client(handler) as client:
            campaigns = await AdsConnector(client, config).fetch(identity, 30, configured_account)

        assert [campaign.campaign_name for campaign in campaigns] == ["A", "B"]
        assert len(calls) == 2

    async def test_error_body_is_unavailable(self, identity, configured_account, config):
        async with make_client(
            lambda request: httpx.Response(200, json={"error": {"message": "rate limited"}})
        ) as client:
            with pytest.raises(SourceUnavailable):
                await AdsConnector(client, config).fetch(identity, 30, configured_account)

    async def test_missing_credentials(self, identity, config):
        account = AccountSettings(credentials=SourceCredentials(facebook_access_token="t"))
        async with make_client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ConfigurationMissing):
                await AdsConnector(client, config).fetch(identity, 30, account)
