"""
Vendor scoping.

A vendor sees only its own share of a snapshot: the line items carrying its
vendor label, the orders those items belong to, and the shipments matched to
those orders.
"""

from typing import List

from unified_dashboard.models import AggregatedSnapshot, Order, Shipment
from .matching import ShipmentIndex


def _vendor_label(value) -> str:
    return (value or "").strip().lower()


def scope_to_vendor(snapshot: AggregatedSnapshot, vendor_name: str) -> AggregatedSnapshot:
    """
    Restrict a snapshot to one vendor.

    Vendor labels compare case-insensitively. A kept order's value and cost
    become those of the vendor's lines (cost stays unknown when none of them
    carries one). Ad spend is store-wide and not attributable, so campaigns
    are dropped.

    Args:
        snapshot: Full snapshot for the account
        vendor_name: Storefront vendor label

    Returns:
        A new snapshot; the input is not modified
    """
    wanted = _vendor_label(vendor_name)
    index = ShipmentIndex(snapshot.shipments)

    orders: List[Order] = []
    matched = set()
    for order in snapshot.orders:
        items = [item for item in order.line_items if _vendor_label(item.vendor) == wanted]
        if not items:
            continue

        known_costs = [item.unit_cost * item.quantity for item in items if item.unit_cost is not None]
        orders.append(
            order.model_copy(
                update={
                    "line_items": items,
                    "order_value": sum(item.revenue for item in items),
                    "cost_price": sum(known_costs) if known_costs else None,
                }
            )
        )
        matched.update(id(shipment) for shipment in index.candidates(order))

    # Snapshot order keeps first-candidate matching unchanged
    shipments: List[Shipment] = [shipment for shipment in snapshot.shipments if id(shipment) in matched]

    return snapshot.model_copy(update={"orders": orders, "shipments": shipments, "campaigns": []})
