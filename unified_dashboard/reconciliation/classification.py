"""
Shipment status classification.

Carrier statuses are free text; ``Shipment`` lowercases them on
construction, so every rule here is a plain substring or equality check.
"""

from unified_dashboard.models import Shipment


def is_ndr(shipment: Shipment) -> bool:
    """Non-delivery report: an open delivery exception awaiting action"""
    return "ndr" in shipment.status or "action" in shipment.status


def is_rto(shipment: Shipment) -> bool:
    """
    Return-to-origin.

    An "rto" marker in either status field counts, unless the main status
    is an NDR: a shipment under NDR is never also counted as returned.
    """
    rto_status = shipment.rto_status or ""
    has_rto = "rto" in shipment.status or "rto" in rto_status
    return has_rto and "ndr" not in shipment.status


def is_delivered(shipment: Shipment) -> bool:
    # exact match: "rto delivered" is a return, not a delivery
    return shipment.status == "delivered"


def is_out_for_delivery(shipment: Shipment) -> bool:
    return "out for delivery" in shipment.status or "out_for_delivery" in shipment.status


def is_out_for_pickup(shipment: Shipment) -> bool:
    return "pickup" in shipment.status or "ready to ship" in shipment.status


def is_remaining(shipment: Shipment) -> bool:
    """Still in the pipeline: not delivered, returned or cancelled"""
    status = shipment.status
    return "delivered" not in status and "rto" not in status and "cancelled" not in status
