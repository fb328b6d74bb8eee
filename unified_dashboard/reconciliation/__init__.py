"""
Reconciliation: joins orders, shipments and campaigns into dashboard figures.
"""

from .classification import (
    is_delivered,
    is_ndr,
    is_out_for_delivery,
    is_out_for_pickup,
    is_remaining,
    is_rto,
)
from .engine import reconcile
from .fees import FEE_TYPES, FeeResult, compute_fees, sum_fees
from .matching import ShipmentIndex, customer_key
from .report import DashboardMetrics, ReconciliationReport
from .scoping import scope_to_vendor

__all__ = [
    "is_delivered",
    "is_ndr",
    "is_out_for_delivery",
    "is_out_for_pickup",
    "is_remaining",
    "is_rto",
    "reconcile",
    "FEE_TYPES",
    "FeeResult",
    "compute_fees",
    "sum_fees",
    "ShipmentIndex",
    "customer_key",
    "DashboardMetrics",
    "ReconciliationReport",
    "scope_to_vendor",
]
