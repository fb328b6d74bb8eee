"""
Normalized Source Records

Canonical shapes produced by the source connectors. Upstream payloads are
untyped; everything downstream of a connector works with these models only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


class PaymentMethod(str, Enum):
    """Payment method enumeration"""
    PREPAID = "prepaid"
    COD = "cod"
    OTHER = "other"


class LineItem(BaseModel):
    """One product line on an order"""
    product: str
    quantity: int = 0
    unit_price: float = 0.0
    # None means the storefront carried no cost for this line
    unit_cost: Optional[float] = None
    vendor: Optional[str] = None
    sku: Optional[str] = None

    @property
    def revenue(self) -> float:
        return self.unit_price * self.quantity

    @property
    def cost(self) -> float:
        return (self.unit_cost or 0.0) * self.quantity


class CustomerIdentity(BaseModel):
    """Best-effort customer details; any field may be missing"""
    customer_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class Order(BaseModel):
    """
    One storefront purchase.

    ``cost_price`` is ``None`` when no line item carried a cost. Aggregations
    use ``effective_cost``, which treats unknown cost as zero and therefore
    overstates profit for such orders.
    """
    order_id: str
    order_number: Optional[str] = None
    order_value: float = 0.0
    cost_price: Optional[float] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    payment_gateway: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    customer: CustomerIdentity = Field(default_factory=CustomerIdentity)
    line_items: List[LineItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    shipping_state: Optional[str] = None
    shipping_city: Optional[str] = None

    @property
    def effective_cost(self) -> float:
        return self.cost_price if self.cost_price is not None else 0.0

    @property
    def profit(self) -> float:
        """Profit before fees"""
        return self.order_value - self.effective_cost

    @property
    def product(self) -> Optional[str]:
        return self.line_items[0].product if self.line_items else None

    @property
    def quantity(self) -> int:
        return sum(item.quantity for item in self.line_items)


class Shipment(BaseModel):
    """
    One logistics record.

    Linked to an order only through ``order_number`` or ``order_id``; neither
    is guaranteed. Status fields are lowercased on construction so that
    classification can use plain substring checks.
    """
    shipment_id: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    awb: Optional[str] = None
    courier: Optional[str] = None
    status: str = "pending"
    rto_status: Optional[str] = None
    shipping_charge: float = 0.0
    freight_charges: float = 0.0
    cod_charges: float = 0.0
    customer_state: Optional[str] = None
    etd: Optional[str] = None
    rto_reason: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> str:
        return str(v or "pending").strip().lower()

    @field_validator("rto_status", mode="before")
    @classmethod
    def normalize_rto_status(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip().lower()


class Campaign(BaseModel):
    """One ad campaign's spend for the period"""
    campaign_name: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0.0
    cpc: float = 0.0
    purchases: int = 0
    purchase_value: float = 0.0

    @property
    def roas(self) -> float:
        return self.purchase_value / self.spend if self.spend > 0 else 0.0
