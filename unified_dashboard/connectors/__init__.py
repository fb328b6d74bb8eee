"""
Source Connectors Module
"""
from .base import SourceConnector
from .ads import AdsConnector
from .orders import OrdersConnector
from .shipments import ShipmentsConnector

__all__ = [
    "SourceConnector",
    "AdsConnector",
    "OrdersConnector",
    "ShipmentsConnector",
]
