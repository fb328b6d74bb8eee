"""
Order/shipment matching.

Orders and shipments share no foreign key. A shipment belongs to an order
when its order number equals the order's number, or failing that, when its
order id equals the order's id. The index is built once per reconciliation
pass; candidates keep shipment iteration order and the first one wins.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from unified_dashboard.models import Order, Shipment


class ShipmentIndex:
    """
    Multi-key index from join keys to candidate shipments.

    Example:
        index = ShipmentIndex(snapshot.shipments)
        shipment = index.match(order)
    """

    def __init__(self, shipments: Iterable[Shipment]):
        self._by_number: Dict[str, List[Shipment]] = defaultdict(list)
        self._by_id: Dict[str, List[Shipment]] = defaultdict(list)

        for shipment in shipments:
            if shipment.order_number:
                self._by_number[shipment.order_number].append(shipment)
            if shipment.order_id:
                self._by_id[shipment.order_id].append(shipment)

    def candidates(self, order: Order) -> List[Shipment]:
        """
        All shipments that could belong to ``order``, in priority order.

        Number matches come first, then id matches; a shipment matching on
        both keys is listed once.
        """
        found: List[Shipment] = []
        seen = set()
        keys = (
            (self._by_number, order.order_number),
            (self._by_id, order.order_id),
        )
        for table, key in keys:
            if not key:
                continue
            for shipment in table.get(key, ()):
                if id(shipment) not in seen:
                    seen.add(id(shipment))
                    found.append(shipment)
        return found

    def match(self, order: Order) -> Optional[Shipment]:
        """The shipment for ``order``: first number match, else first id match"""
        if order.order_number and self._by_number.get(order.order_number):
            return self._by_number[order.order_number][0]
        if order.order_id and self._by_id.get(order.order_id):
            return self._by_id[order.order_id][0]
        return None


def customer_key(order: Order) -> Optional[str]:
    """
    Grouping key for customer analytics.

    First non-empty of customer id, email, phone and name.
    """
    customer = order.customer
    for value in (customer.customer_id, customer.email, customer.phone, customer.name):
        if value:
            return value
    return None
