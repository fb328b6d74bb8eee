"""
Fee Policy

Pure functions deriving per-order fees from the account's fee settings.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable

from unified_dashboard.config.accounts import FeeSettings, MarketerType
from unified_dashboard.models import Order, PaymentMethod

PAYMENT_GATEWAY = "payment_gateway"
COD_REMITTANCE = "cod_remittance"
MARKETER = "marketer"

FEE_TYPES = (PAYMENT_GATEWAY, COD_REMITTANCE, MARKETER)


def _empty_breakdown() -> Dict[str, float]:
    return {fee_type: 0.0 for fee_type in FEE_TYPES}


@dataclass(frozen=True)
class FeeResult:
    """Fees for one order (or a sum of orders); breakdown always has every fee type"""
    total: float = 0.0
    breakdown: Dict[str, float] = field(default_factory=_empty_breakdown)


def compute_fees(order: Order, is_delivered: bool, settings: FeeSettings) -> FeeResult:
    """
    Compute the fees charged against one order.

    - Payment gateway: ``order_value * percent / 100`` on prepaid orders,
      when enabled.
    - COD remittance: flat fee on COD orders (only delivered ones when
      ``cod_fee_on_delivery_only`` is set).
    - Marketer commission: percentage of profit or a flat amount per
      order, when enabled.

    Args:
        order: The order
        is_delivered: Whether the order matched a delivered shipment
        settings: Fee configuration for the account

    Returns:
        FeeResult with the total and a breakdown keyed by fee type
    """
    breakdown = _empty_breakdown()

    if settings.gateway_fee_enabled and order.payment_method == PaymentMethod.PREPAID:
        breakdown[PAYMENT_GATEWAY] = order.order_value * settings.gateway_fee_percent / 100

    if order.payment_method == PaymentMethod.COD and (is_delivered or not settings.cod_fee_on_delivery_only):
        breakdown[COD_REMITTANCE] = settings.cod_remittance_fee

    if settings.marketer_enabled:
        if settings.marketer_type == MarketerType.PERCENTAGE:
            breakdown[MARKETER] = order.profit * settings.marketer_value / 100
        else:
            breakdown[MARKETER] = settings.marketer_value

    return FeeResult(total=sum(breakdown.values()), breakdown=breakdown)


def sum_fees(results: Iterable[FeeResult]) -> FeeResult:
    """Add fee results key by key"""
    breakdown = _empty_breakdown()
    total = 0.0
    for result in results:
        total += result.total
        for fee_type, amount in result.breakdown.items():
            breakdown[fee_type] = breakdown.get(fee_type, 0.0) + amount
    return FeeResult(total=total, breakdown=breakdown)
