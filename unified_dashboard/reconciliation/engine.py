"""
Reconciliation Engine

Joins the orders, shipments and campaigns of one snapshot into dashboard
figures. Rankings are polars group-bys; every group-by keeps first-seen key
order and every sort is stable, so ties resolve by input order.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import polars as pl
import structlog

from unified_dashboard.config.accounts import FeeSettings
from unified_dashboard.models import AggregatedSnapshot, Order, PaymentMethod, Shipment
from .classification import (
    is_delivered,
    is_ndr,
    is_out_for_delivery,
    is_out_for_pickup,
    is_remaining,
    is_rto,
)
from .fees import FeeResult, compute_fees, sum_fees
from .matching import ShipmentIndex, customer_key
from .report import (
    CodRemittance,
    CountByLabel,
    CustomerRanking,
    CustomerSummary,
    DailyProfit,
    DashboardMetrics,
    MatchStats,
    ProductRanking,
    ReconciliationReport,
    RtoBreakdown,
    StateAmount,
    VendorPayable,
    VendorPayables,
)

logger = structlog.get_logger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"
UNKNOWN = "Unknown"
DAILY_PROFIT_DAYS = 30


@dataclass
class _OrderContext:
    """One order with its matched shipment and fees"""
    order: Order
    shipment: Optional[Shipment]
    candidates: int
    delivered: bool
    rto: bool
    fees: FeeResult


def _percentage(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def _frame(rows: List[Dict[str, Any]], schema: Dict[str, Any]) -> pl.DataFrame:
    """Build a frame column-wise so an empty row list still has typed columns"""
    return pl.DataFrame(
        {name: [row[name] for row in rows] for name in schema},
        schema=schema,
    )


def _match_orders(
    snapshot: AggregatedSnapshot,
    index: ShipmentIndex,
    fee_settings: FeeSettings,
) -> List[_OrderContext]:
    contexts = []
    for order in snapshot.orders:
        shipment = index.match(order)
        delivered = shipment is not None and is_delivered(shipment)
        contexts.append(
            _OrderContext(
                order=order,
                shipment=shipment,
                candidates=len(index.candidates(order)),
                delivered=delivered,
                rto=shipment is not None and is_rto(shipment),
                fees=compute_fees(order, delivered, fee_settings),
            )
        )
    return contexts


def compute_metrics(snapshot: AggregatedSnapshot, contexts: List[_OrderContext]) -> DashboardMetrics:
    """Headline figures for the snapshot"""
    shipments = snapshot.shipments

    total_revenue = sum(ctx.order.order_value for ctx in contexts)
    total_cost = sum(ctx.order.effective_cost for ctx in contexts)
    total_ad_spend = sum(campaign.spend for campaign in snapshot.campaigns)
    total_shipping_cost = sum(shipment.shipping_charge for shipment in shipments)

    delivered_count = sum(1 for shipment in shipments if is_delivered(shipment))
    rto_count = sum(1 for shipment in shipments if is_rto(shipment))

    fees = sum_fees(ctx.fees for ctx in contexts)
    rto_revenue_loss = sum(ctx.order.order_value for ctx in contexts if ctx.rto)

    total_profit = total_revenue - (
        total_cost + total_ad_spend + total_shipping_cost + fees.total + rto_revenue_loss
    )

    return DashboardMetrics(
        total_revenue=total_revenue,
        total_cost=total_cost,
        total_orders=len(contexts),
        total_ad_spend=total_ad_spend,
        total_shipping_cost=total_shipping_cost,
        total_shipments=len(shipments),
        delivered_count=delivered_count,
        delivered_percentage=_percentage(delivered_count, len(shipments)),
        rto_count=rto_count,
        rto_percentage=_percentage(rto_count, delivered_count),
        ndr_count=sum(1 for shipment in shipments if is_ndr(shipment)),
        out_for_delivery_count=sum(1 for shipment in shipments if is_out_for_delivery(shipment)),
        out_for_pickup_count=sum(1 for shipment in shipments if is_out_for_pickup(shipment)),
        remaining_count=sum(1 for shipment in shipments if is_remaining(shipment)),
        total_fees=fees.total,
        fee_breakdown=fees.breakdown,
        rto_revenue_loss=rto_revenue_loss,
        total_profit=total_profit,
        roi=_percentage(total_revenue, total_ad_spend),
        aov=total_revenue / len(contexts) if contexts else 0.0,
    )


def rank_products(contexts: List[_OrderContext], top_n: int) -> List[ProductRanking]:
    """Best sellers by line-item revenue"""
    rows = [
        {
            "product": item.product,
            "order_id": ctx.order.order_id,
            "quantity": item.quantity,
            "revenue": item.revenue,
            "cost": item.cost,
        }
        for ctx in contexts
        for item in ctx.order.line_items
    ]
    df = _frame(
        rows,
        {"product": pl.Utf8, "order_id": pl.Utf8, "quantity": pl.Int64, "revenue": pl.Float64, "cost": pl.Float64},
    )

    ranked = (
        df.group_by("product", maintain_order=True)
        .agg([
            pl.col("quantity").sum().alias("quantity"),
            pl.col("revenue").sum().alias("revenue"),
            pl.col("cost").sum().alias("cost"),
            pl.col("order_id").n_unique().alias("orders"),
        ])
        .with_columns((pl.col("revenue") - pl.col("cost")).alias("profit"))
        .sort("revenue", descending=True, maintain_order=True)
        .head(top_n)
    )
    return [ProductRanking(**row) for row in ranked.to_dicts()]


def summarize_customers(contexts: List[_OrderContext], top_n: int) -> CustomerSummary:
    """Per-customer totals and repeat rate"""
    rows = []
    for ctx in contexts:
        key = customer_key(ctx.order)
        if key is None:
            continue
        customer = ctx.order.customer
        rows.append({
            "customer_key": key,
            "customer_name": customer.name,
            "email": customer.email,
            "phone": customer.phone,
            "state": ctx.order.shipping_state,
            "revenue": ctx.order.order_value,
            "profit": ctx.order.profit,
        })
    df = _frame(
        rows,
        {
            "customer_key": pl.Utf8,
            "customer_name": pl.Utf8,
            "email": pl.Utf8,
            "phone": pl.Utf8,
            "state": pl.Utf8,
            "revenue": pl.Float64,
            "profit": pl.Float64,
        },
    )

    grouped = (
        df.group_by("customer_key", maintain_order=True)
        .agg([
            pl.col("customer_name").first(),
            pl.col("email").first(),
            pl.col("phone").first(),
            pl.col("state").first(),
            pl.len().cast(pl.Int64).alias("orders"),
            pl.col("revenue").sum(),
            pl.col("profit").sum(),
        ])
        .with_columns((pl.col("revenue") / pl.col("orders")).alias("avg_order_value"))
    )

    total_customers = grouped.height
    repeat_customers = grouped.filter(pl.col("orders") > 1).height
    total_revenue = sum(row["revenue"] for row in rows)

    ranked = grouped.sort("revenue", descending=True, maintain_order=True).head(top_n)
    return CustomerSummary(
        total_customers=total_customers,
        repeat_customers=repeat_customers,
        repeat_rate=_percentage(repeat_customers, total_customers),
        avg_order_value=total_revenue / len(rows) if rows else 0.0,
        customers=[CustomerRanking(**row) for row in ranked.to_dicts()],
    )


def compute_vendor_payables(contexts: List[_OrderContext]) -> VendorPayables:
    """
    What each vendor is owed.

    Only orders matched to a delivered shipment count. Cost is allocated
    per line item; an order without line items is owed in full to the
    unknown vendor.
    """
    rows = []
    for ctx in contexts:
        if not ctx.delivered:
            continue
        order = ctx.order
        if not order.line_items:
            rows.append({
                "vendor": UNKNOWN_VENDOR,
                "order_id": order.order_id,
                "cost": order.effective_cost,
                "revenue": order.order_value,
            })
            continue
        for item in order.line_items:
            rows.append({
                "vendor": item.vendor or UNKNOWN_VENDOR,
                "order_id": order.order_id,
                "cost": item.cost,
                "revenue": item.revenue,
            })
    df = _frame(rows, {"vendor": pl.Utf8, "order_id": pl.Utf8, "cost": pl.Float64, "revenue": pl.Float64})

    ranked = (
        df.group_by("vendor", maintain_order=True)
        .agg([
            pl.col("cost").sum().alias("total_cost"),
            pl.col("order_id").n_unique().alias("delivered_orders"),
            pl.col("revenue").sum().alias("revenue"),
        ])
        .with_columns((pl.col("revenue") - pl.col("total_cost")).alias("margin"))
        .sort("total_cost", descending=True, maintain_order=True)
    )
    return VendorPayables(
        total_vendor_cost=sum(row["cost"] for row in rows),
        total_delivered_orders=sum(1 for ctx in contexts if ctx.delivered),
        vendors=[VendorPayable(**row) for row in ranked.to_dicts()],
    )


def compute_cod_remittance(
    contexts: List[_OrderContext],
    fee_settings: FeeSettings,
    top_n: int,
) -> CodRemittance:
    """Cash-on-delivery collections, split by delivery state"""
    cod = [ctx for ctx in contexts if ctx.order.payment_method == PaymentMethod.COD]
    delivered = [ctx for ctx in cod if ctx.delivered]
    pending = [ctx for ctx in cod if not ctx.delivered]

    delivered_value = sum(ctx.order.order_value for ctx in delivered)
    remittance_fees = len(delivered) * fee_settings.cod_remittance_fee

    rows = [
        {
            "state": ctx.order.shipping_state
            or (ctx.shipment.customer_state if ctx.shipment else None)
            or UNKNOWN,
            "amount": ctx.order.order_value,
        }
        for ctx in cod
    ]
    df = _frame(rows, {"state": pl.Utf8, "amount": pl.Float64})
    by_state = (
        df.group_by("state", maintain_order=True)
        .agg([
            pl.len().cast(pl.Int64).alias("count"),
            pl.col("amount").sum(),
        ])
        .sort("amount", descending=True, maintain_order=True)
        .head(top_n)
    )

    return CodRemittance(
        total_cod_orders=len(cod),
        delivered_cod_orders=len(delivered),
        pending_cod_orders=len(pending),
        total_cod_value=sum(ctx.order.order_value for ctx in cod),
        delivered_cod_value=delivered_value,
        pending_cod_value=sum(ctx.order.order_value for ctx in pending),
        remittance_fees=remittance_fees,
        net_cod_amount=delivered_value - remittance_fees,
        by_state=[StateAmount(**row) for row in by_state.to_dicts()],
    )


def _count_by(labels: List[str], top_n: Optional[int] = None) -> List[CountByLabel]:
    df = _frame([{"label": label} for label in labels], {"label": pl.Utf8})
    counted = (
        df.group_by("label", maintain_order=True)
        .agg(pl.len().cast(pl.Int64).alias("count"))
        .sort("count", descending=True, maintain_order=True)
    )
    if top_n is not None:
        counted = counted.head(top_n)
    return [CountByLabel(**row) for row in counted.to_dicts()]


def compute_rto_breakdown(snapshot: AggregatedSnapshot, top_n: int) -> RtoBreakdown:
    """Returned shipments by reason and destination state"""
    returned = [shipment for shipment in snapshot.shipments if is_rto(shipment)]
    return RtoBreakdown(
        rto_shipping_loss=sum(shipment.shipping_charge for shipment in returned),
        by_reason=_count_by([shipment.rto_reason or UNKNOWN for shipment in returned]),
        by_state=_count_by([shipment.customer_state or UNKNOWN for shipment in returned], top_n),
    )


def compute_daily_profit(contexts: List[_OrderContext]) -> List[DailyProfit]:
    """Net profit per order date (after fees), most recent days with data, oldest first"""
    rows = [
        {
            "date": ctx.order.created_at.date().isoformat(),
            "revenue": ctx.order.order_value,
            "cost": ctx.order.effective_cost,
            "fees": ctx.fees.total,
        }
        for ctx in contexts
        if ctx.order.created_at is not None
    ]
    df = _frame(rows, {"date": pl.Utf8, "revenue": pl.Float64, "cost": pl.Float64, "fees": pl.Float64})

    daily = (
        df.group_by("date", maintain_order=True)
        .agg([
            pl.col("revenue").sum(),
            pl.col("cost").sum(),
            pl.col("fees").sum(),
            pl.len().cast(pl.Int64).alias("orders"),
        ])
        .with_columns((pl.col("revenue") - pl.col("cost") - pl.col("fees")).alias("profit"))
        .sort("date")
        .tail(DAILY_PROFIT_DAYS)
        .drop("fees")
    )
    return [DailyProfit(**row) for row in daily.to_dicts()]


def compute_match_stats(snapshot: AggregatedSnapshot, contexts: List[_OrderContext]) -> MatchStats:
    matched_ids = {id(ctx.shipment) for ctx in contexts if ctx.shipment is not None}
    return MatchStats(
        matched_orders=sum(1 for ctx in contexts if ctx.shipment is not None),
        unmatched_orders=sum(1 for ctx in contexts if ctx.shipment is None),
        ambiguous_orders=sum(1 for ctx in contexts if ctx.candidates > 1),
        unmatched_rto_shipments=sum(
            1 for shipment in snapshot.shipments
            if is_rto(shipment) and id(shipment) not in matched_ids
        ),
    )


def reconcile(
    snapshot: AggregatedSnapshot,
    fee_settings: Optional[FeeSettings] = None,
    top_n: int = 10,
) -> ReconciliationReport:
    """
    Compute every dashboard figure for a snapshot.

    Pure: the same snapshot and fee settings always give the same report.
    Failed sources simply contribute empty lists.

    Args:
        snapshot: Orders, shipments and campaigns for one identity and range
        fee_settings: Fee configuration; defaults apply when omitted
        top_n: Length of ranked lists

    Returns:
        ReconciliationReport
    """
    fee_settings = fee_settings or FeeSettings()
    index = ShipmentIndex(snapshot.shipments)
    contexts = _match_orders(snapshot, index, fee_settings)

    report = ReconciliationReport(
        metrics=compute_metrics(snapshot, contexts),
        best_sellers=rank_products(contexts, top_n),
        customers=summarize_customers(contexts, top_n),
        vendor_payables=compute_vendor_payables(contexts),
        cod_remittance=compute_cod_remittance(contexts, fee_settings, top_n),
        rto_breakdown=compute_rto_breakdown(snapshot, top_n),
        daily_profit=compute_daily_profit(contexts),
        match_stats=compute_match_stats(snapshot, contexts),
    )

    if report.match_stats.ambiguous_orders:
        logger.debug(
            "Orders with more than one candidate shipment",
            identity=snapshot.identity_key,
            ambiguous=report.match_stats.ambiguous_orders,
        )
    return report
