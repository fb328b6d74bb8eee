"""
Reconciliation Report Models

Derived figures are recomputed from a snapshot on every request and never
stored as a source of truth.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DashboardMetrics(BaseModel):
    """Headline figures"""
    total_revenue: float = 0.0
    total_cost: float = 0.0
    total_orders: int = 0
    total_ad_spend: float = 0.0
    total_shipping_cost: float = 0.0
    total_shipments: int = 0
    delivered_count: int = 0
    delivered_percentage: float = 0.0
    rto_count: int = 0
    # Relative to delivered volume, not to all shipments
    rto_percentage: float = 0.0
    ndr_count: int = 0
    out_for_delivery_count: int = 0
    out_for_pickup_count: int = 0
    remaining_count: int = 0
    total_fees: float = 0.0
    fee_breakdown: Dict[str, float] = Field(default_factory=dict)
    rto_revenue_loss: float = 0.0
    total_profit: float = 0.0
    roi: float = 0.0
    aov: float = 0.0


class ProductRanking(BaseModel):
    product: str
    quantity: int
    revenue: float
    cost: float
    orders: int
    profit: float


class CustomerRanking(BaseModel):
    customer_key: str
    customer_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    state: Optional[str] = None
    orders: int
    revenue: float
    profit: float
    avg_order_value: float


class CustomerSummary(BaseModel):
    total_customers: int = 0
    repeat_customers: int = 0
    repeat_rate: float = 0.0
    avg_order_value: float = 0.0
    customers: List[CustomerRanking] = Field(default_factory=list)


class VendorPayable(BaseModel):
    vendor: str
    total_cost: float
    delivered_orders: int
    revenue: float
    margin: float


class VendorPayables(BaseModel):
    total_vendor_cost: float = 0.0
    total_delivered_orders: int = 0
    vendors: List[VendorPayable] = Field(default_factory=list)


class StateAmount(BaseModel):
    state: str
    count: int
    amount: float


class CodRemittance(BaseModel):
    total_cod_orders: int = 0
    delivered_cod_orders: int = 0
    pending_cod_orders: int = 0
    total_cod_value: float = 0.0
    delivered_cod_value: float = 0.0
    pending_cod_value: float = 0.0
    remittance_fees: float = 0.0
    net_cod_amount: float = 0.0
    by_state: List[StateAmount] = Field(default_factory=list)


class CountByLabel(BaseModel):
    label: str
    count: int


class RtoBreakdown(BaseModel):
    rto_shipping_loss: float = 0.0
    by_reason: List[CountByLabel] = Field(default_factory=list)
    by_state: List[CountByLabel] = Field(default_factory=list)


class DailyProfit(BaseModel):
    date: str
    revenue: float
    cost: float
    orders: int
    profit: float


class MatchStats(BaseModel):
    """How well orders and shipments lined up; ambiguity is reported, never raised"""
    matched_orders: int = 0
    unmatched_orders: int = 0
    ambiguous_orders: int = 0
    unmatched_rto_shipments: int = 0


class ReconciliationReport(BaseModel):
    metrics: DashboardMetrics
    best_sellers: List[ProductRanking] = Field(default_factory=list)
    customers: CustomerSummary = Field(default_factory=CustomerSummary)
    vendor_payables: VendorPayables = Field(default_factory=VendorPayables)
    cod_remittance: CodRemittance = Field(default_factory=CodRemittance)
    rto_breakdown: RtoBreakdown = Field(default_factory=RtoBreakdown)
    daily_profit: List[DailyProfit] = Field(default_factory=list)
    match_stats: MatchStats = Field(default_factory=MatchStats)
