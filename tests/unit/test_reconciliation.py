"""
Unit Tests - Reconciliation Engine
"""
import pytest

from unified_dashboard.config.accounts import FeeSettings
from unified_dashboard.models import AggregatedSnapshot, LineItem, Order, PaymentMethod, Shipment
from unified_dashboard.reconciliation import reconcile, scope_to_vendor


def make_snapshot(clock, orders=(), shipments=(), campaigns=()) -> AggregatedSnapshot:
    return AggregatedSnapshot(
        identity_key="user-1",
        date_range=30,
        orders=list(orders),
        shipments=list(shipments),
        campaigns=list(campaigns),
        fetched_at=clock(),
    )


class TestMetrics:
    """Headline figures"""

    def test_sample_snapshot(self, clock, sample_orders, sample_shipments, sample_campaigns):
        report = reconcile(make_snapshot(clock, sample_orders, sample_shipments, sample_campaigns), FeeSettings())
        metrics = report.metrics

        assert metrics.total_revenue == pytest.approx(1750.0)
        assert metrics.total_cost == pytest.approx(600.0)
        assert metrics.total_orders == 3
        assert metrics.total_ad_spend == pytest.approx(200.0)
        assert metrics.total_shipping_cost == pytest.approx(140.0)
        assert metrics.delivered_count == 1
        assert metrics.delivered_percentage == pytest.approx(50.0)
        assert metrics.rto_count == 1
        assert metrics.total_fees == pytest.approx(25.49)
        assert metrics.rto_revenue_loss == pytest.approx(500.0)
        assert metrics.total_profit == pytest.approx(284.51)
        assert metrics.roi == pytest.approx(875.0)
        assert metrics.aov == pytest.approx(1750.0 / 3)

    def test_rto_percentage_is_relative_to_delivered(self, clock):
        shipments = [Shipment(status="delivered") for _ in range(80)]
        shipments += [Shipment(status="rto delivered") for _ in range(20)]

        metrics = reconcile(make_snapshot(clock, shipments=shipments)).metrics

        assert metrics.delivered_count == 80
        assert metrics.rto_count == 20
        assert metrics.rto_percentage == pytest.approx(25.0)
        assert metrics.delivered_percentage == pytest.approx(80.0)

    def test_ndr_excluded_from_rto_count(self, clock):
        shipments = [
            Shipment(status="ndr", rto_status="rto initiated"),
            Shipment(status="rto initiated"),
            Shipment(status="delivered"),
        ]
        metrics = reconcile(make_snapshot(clock, shipments=shipments)).metrics

        assert metrics.ndr_count == 1
        assert metrics.rto_count == 1

    def test_unmatched_rto_shipment_adds_no_revenue_loss(self, clock):
        orders = [Order(order_id="1", order_number="#1", order_value=300.0)]
        shipments = [Shipment(order_number="#999", status="rto initiated")]

        report = reconcile(make_snapshot(clock, orders, shipments))

        assert report.metrics.rto_revenue_loss == 0.0
        assert report.match_stats.unmatched_rto_shipments == 1

    def test_empty_snapshot(self, clock):
        report = reconcile(make_snapshot(clock))

        assert report.metrics.total_orders == 0
        assert report.metrics.rto_percentage == 0.0
        assert report.metrics.roi == 0.0
        assert report.metrics.aov == 0.0
        assert report.best_sellers == []
        assert report.customers.total_customers == 0
        assert report.vendor_payables.vendors == []
        assert report.daily_profit == []


class TestRankings:
    """Best sellers and customers"""

    def test_best_sellers_by_line_item_revenue(self, clock, sample_orders):
        report = reconcile(make_snapshot(clock, sample_orders))

        assert [row.product for row in report.best_sellers] == ["Scarf", "Kurta"]
        scarf, kurta = report.best_sellers
        assert scarf.quantity == 2
        assert scarf.revenue == pytest.approx(900.0)
        assert scarf.orders == 2
        assert kurta.quantity == 3
        assert kurta.profit == pytest.approx(610.0)

    def test_ties_keep_input_order(self, clock):
        orders = [
            Order(order_id=str(i), line_items=[LineItem(product=name, quantity=1, unit_price=100.0)])
            for i, name in enumerate(["Zeta", "Alpha", "Mid"])
        ]
        report = reconcile(make_snapshot(clock, orders))

        assert [row.product for row in report.best_sellers] == ["Zeta", "Alpha", "Mid"]

    def test_top_n(self, clock):
        orders = [
            Order(order_id=str(i), line_items=[LineItem(product=f"P{i}", quantity=1, unit_price=float(i))])
            for i in range(5)
        ]
        report = reconcile(make_snapshot(clock, orders), top_n=2)

        assert [row.product for row in report.best_sellers] == ["P4", "P3"]

    def test_customers(self, clock, sample_orders):
        customers = reconcile(make_snapshot(clock, sample_orders)).customers

        assert customers.total_customers == 2
        assert customers.repeat_customers == 1
        assert customers.repeat_rate == pytest.approx(50.0)
        top = customers.customers[0]
        assert top.customer_key == "c-1"
        assert top.orders == 2
        assert top.revenue == pytest.approx(1250.0)
        assert top.avg_order_value == pytest.approx(625.0)
        assert top.customer_name == "Asha Rao"


class TestVendorPayables:
    """Vendors are owed only for delivered orders"""

    def test_only_delivered_orders_count(self, clock, sample_orders, sample_shipments):
        payables = reconcile(make_snapshot(clock, sample_orders, sample_shipments)).vendor_payables

        assert [vendor.vendor for vendor in payables.vendors] == ["Loom Co", "Silk House"]
        assert payables.vendors[0].total_cost == pytest.approx(240.0)
        assert payables.vendors[1].total_cost == pytest.approx(160.0)
        assert payables.total_vendor_cost == pytest.approx(400.0)
        assert payables.total_delivered_orders == 1

    def test_rto_order_contributes_nothing(self, clock):
        orders = [
            Order(
                order_id="1",
                order_number="#1",
                order_value=900.0,
                cost_price=300.0,
                line_items=[LineItem(product="Lamp", quantity=1, unit_price=900.0, unit_cost=300.0, vendor="V")],
            )
        ]
        shipments = [Shipment(order_number="#1", status="rto delivered")]

        payables = reconcile(make_snapshot(clock, orders, shipments)).vendor_payables

        assert payables.vendors == []
        assert payables.total_vendor_cost == 0.0

    def test_missing_vendor_grouped_as_unknown(self, clock):
        orders = [Order(order_id="1", order_value=100.0, cost_price=40.0)]
        shipments = [Shipment(order_id="1", status="delivered")]

        payables = reconcile(make_snapshot(clock, orders, shipments)).vendor_payables

        assert payables.vendors[0].vendor == "Unknown Vendor"
        assert payables.vendors[0].total_cost == pytest.approx(40.0)
        assert payables.vendors[0].margin == pytest.approx(60.0)


class TestReports:
    """COD, RTO, daily profit and match statistics"""

    def test_cod_remittance(self, clock):
        orders = [
            Order(order_id="1", order_value=400.0, payment_method=PaymentMethod.COD, shipping_state="Goa"),
            Order(order_id="2", order_value=600.0, payment_method=PaymentMethod.COD, shipping_state="Goa"),
            Order(order_id="3", order_value=700.0, payment_method=PaymentMethod.PREPAID),
        ]
        shipments = [Shipment(order_id="1", status="delivered")]

        cod = reconcile(make_snapshot(clock, orders, shipments), FeeSettings(cod_remittance_fee=1.5)).cod_remittance

        assert cod.total_cod_orders == 2
        assert cod.delivered_cod_orders == 1
        assert cod.pending_cod_value == pytest.approx(600.0)
        assert cod.remittance_fees == pytest.approx(1.5)
        assert cod.net_cod_amount == pytest.approx(398.5)
        assert cod.by_state[0].state == "Goa"
        assert cod.by_state[0].count == 2

    def test_rto_breakdown(self, clock, sample_shipments):
        breakdown = reconcile(make_snapshot(clock, shipments=sample_shipments)).rto_breakdown

        assert breakdown.rto_shipping_loss == pytest.approx(80.0)
        assert breakdown.by_reason[0].label == "Customer refused"
        assert breakdown.by_state[0].label == "Kerala"

    def test_daily_profit_is_chronological(self, clock, sample_orders):
        daily = reconcile(make_snapshot(clock, reversed(sample_orders)), FeeSettings()).daily_profit

        assert [day.date for day in daily] == ["2025-02-20", "2025-02-21"]
        assert daily[0].profit == pytest.approx(580.0)
        assert daily[1].orders == 2

    def test_match_stats(self, clock, sample_orders, sample_shipments):
        stats = reconcile(make_snapshot(clock, sample_orders, sample_shipments)).match_stats

        assert stats.matched_orders == 2
        assert stats.unmatched_orders == 1
        assert stats.ambiguous_orders == 0
        assert stats.unmatched_rto_shipments == 0

    def test_same_input_same_report(self, clock, sample_orders, sample_shipments, sample_campaigns):
        snapshot = make_snapshot(clock, sample_orders, sample_shipments, sample_campaigns)

        assert reconcile(snapshot) == reconcile(snapshot)


class TestVendorScope:
    """Restricting a snapshot to one vendor's lines"""

    def test_keeps_only_vendor_lines(self, clock, sample_orders, sample_shipments, sample_campaigns):
        snapshot = make_snapshot(clock, sample_orders, sample_shipments, sample_campaigns)

        scoped = scope_to_vendor(snapshot, "silk house")

        assert [order.order_id for order in scoped.orders] == ["1001", "1002"]
        assert [item.product for item in scoped.orders[0].line_items] == ["Scarf"]
        assert scoped.orders[0].order_value == pytest.approx(400.0)
        assert scoped.orders[0].cost_price == pytest.approx(160.0)
        assert [shipment.shipment_id for shipment in scoped.shipments] == ["s-1", "s-2"]
        assert scoped.campaigns == []
        assert len(snapshot.orders) == 3

    def test_shipments_follow_kept_orders(self, clock, sample_orders, sample_shipments):
        scoped = scope_to_vendor(make_snapshot(clock, sample_orders, sample_shipments), "Loom Co")

        assert [order.order_id for order in scoped.orders] == ["1001"]
        assert scoped.orders[0].order_value == pytest.approx(600.0)
        assert [shipment.shipment_id for shipment in scoped.shipments] == ["s-1"]

    def test_unknown_line_costs_stay_unknown(self, clock):
        order = Order(
            order_id="1",
            order_value=100.0,
            cost_price=40.0,
            line_items=[LineItem(product="Mat", quantity=1, unit_price=100.0, vendor="Weave")],
        )

        scoped = scope_to_vendor(make_snapshot(clock, [order]), "weave")

        assert scoped.orders[0].cost_price is None

    def test_vendor_report(self, clock, sample_orders, sample_shipments, sample_campaigns):
        snapshot = scope_to_vendor(make_snapshot(clock, sample_orders, sample_shipments, sample_campaigns), "Silk House")

        metrics = reconcile(snapshot, FeeSettings()).metrics

        assert metrics.total_revenue == pytest.approx(900.0)
        assert metrics.total_ad_spend == 0.0
        assert metrics.delivered_count == 1
        assert metrics.rto_count == 1

    def test_no_matching_vendor(self, clock, sample_orders, sample_shipments):
        scoped = scope_to_vendor(make_snapshot(clock, sample_orders, sample_shipments), "Nobody")

        assert scoped.orders == []
        assert scoped.shipments == []
